from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict


class RuleCreateRequest(BaseModel):
    text: str = Field(min_length=1)
    id: Optional[str] = None


class ExecuteRequest(BaseModel):
    force: bool = False


class SensorSnapshotIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    temp: Optional[Dict[str, float]] = None
    temperature: Optional[Dict[str, float]] = None
    humidity: Optional[Dict[str, float]] = None
    motion: Optional[Dict[str, bool]] = None


class SimSensorRequest(BaseModel):
    temperature: Optional[float] = None
    humidity: Optional[float] = Field(default=None, ge=0, le=100)
    motion: Optional[bool] = None
