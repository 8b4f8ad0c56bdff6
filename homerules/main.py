from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.config import settings
from .core.log import configure_logging

from .api.routes import router as api_router
import homerules.api.routes as routes_module

from .domain.actions import ActionRegistry
from .domain.interfaces import DeviceControl
from .domain.rule_manager import RuleManager
from .drivers.device_http import HttpDeviceControl
from .drivers.device_sim import SimulatedDeviceControl
from .drivers.directory import StaticDeviceDirectory, load_home_config
from .sensors.base import RoomSensor
from .sensors.http_room_sensor import HttpRoomSensor
from .sensors.simulated_room_sensor import SimulatedRoomSensor
from .services.poller import SensorPoller
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)


rooms = load_home_config(settings.home_config_path)
directory = StaticDeviceDirectory(rooms)
sim_sensors: dict[str, SimulatedRoomSensor] = {}


def build_control() -> DeviceControl:
    if settings.mode.lower() == "http":
        return HttpDeviceControl(timeout=settings.http_timeout_seconds, api_key=settings.device_api_key)
    return SimulatedDeviceControl()


def build_sensors() -> list[RoomSensor]:
    if settings.sensor_mode.lower() == "http":
        return [
            HttpRoomSensor(room=r.name, host=r.sensor_host, timeout=settings.http_timeout_seconds)
            for r in rooms
            if r.sensor_host
        ]

    # default to sim
    for r in rooms:
        sim_sensors[r.name] = SimulatedRoomSensor(room=r.name)
    return list(sim_sensors.values())


# --- Singletons ---
repo = SQLiteRepository(settings.sqlite_path)
action_registry = ActionRegistry()
manager = RuleManager(
    directory=directory,
    control=build_control(),
    action_registry=action_registry,
    mirror=repo,
)
sensors = build_sensors()
poller: SensorPoller | None = None


def get_manager() -> RuleManager:
    return manager


def get_repo() -> SQLiteRepository:
    return repo


def get_poller() -> SensorPoller:
    assert poller is not None
    return poller


def get_sim_sensors() -> dict[str, SimulatedRoomSensor]:
    if not sim_sensors:
        raise RuntimeError("Sim sensors not available (sensor_mode is not 'sim').")
    return sim_sensors


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (mode=%s sensor_mode=%s)", settings.app_name, settings.mode, settings.sensor_mode)

    await repo.init()

    # Seed the dedup registry with the last mirrored device states
    for device_id, state in (await repo.list_device_states()).items():
        action_registry.record(device_id, state)

    await manager.load_rules(repo)

    global poller
    poller = SensorPoller(sensors=sensors, manager=manager, interval_seconds=settings.poll_seconds)
    await poller.start()

    try:
        yield
    finally:
        if poller:
            await poller.stop()

        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_manager] = get_manager
app.dependency_overrides[routes_module.get_repo] = get_repo
app.dependency_overrides[routes_module.get_poller] = get_poller
app.dependency_overrides[routes_module.get_sim_sensors] = get_sim_sensors

app.include_router(api_router, prefix="/api")
