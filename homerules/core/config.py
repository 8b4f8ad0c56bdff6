from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Home Rules Engine"
    timezone: str = "Asia/Jerusalem"

    # Device control driver: "sim" for development, "http" for real hosts
    mode: str = Field(default="sim")

    # Room sensor source: "sim" or "http"
    sensor_mode: str = "sim"

    # Polling
    poll_seconds: int = 30

    # Storage
    sqlite_path: str = Field(default="homerules.db")

    # Room / device map (falls back to the bundled default when empty)
    home_config_path: str = ""

    # Device hosts
    http_timeout_seconds: float = 5.0
    device_api_key: str = ""

    # Valid AC set-point range
    ac_min_temperature: float = 16.0
    ac_max_temperature: float = 30.0

    # Logging
    log_file: str = "homerules.log"
    log_level: str = "INFO"


settings = Settings()
