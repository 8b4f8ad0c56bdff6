from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


# Snapshot key -> metric
SNAPSHOT_KEYS = {
    "temp": "temperature",
    "temperature": "temperature",
    "humidity": "humidity",
    "motion": "motion",
}


@dataclass(frozen=True)
class Condition:
    """Structural identity of an Event.

    Two conditions are the same Event when every field matches, no matter how
    the rule text that produced them was written.
    """

    metric: str
    location: str
    operator: Optional[str] = None   # None for motion
    threshold: Optional[float] = None  # None for motion
    expected: bool = True  # motion only: "motion in" vs "no motion in"

    @property
    def key(self) -> tuple[str, str]:
        return (self.metric, self.location)

    def describe(self) -> str:
        if self.metric == "motion":
            prefix = "motion" if self.expected else "no motion"
            return f"{prefix} in {self.location}"
        return f"{self.metric} {self.operator} {self.threshold:g} in {self.location}"


@dataclass(frozen=True)
class ActionSpec:
    device_type: str
    location: str
    power: bool
    temperature: Optional[float] = None
    mode: Optional[str] = None
    brightness: Optional[int] = None
    extras: tuple[str, ...] = ()

    def describe(self) -> str:
        parts = [self.location, self.device_type, "on" if self.power else "off"]
        if self.brightness is not None:
            parts.append(f"{self.brightness}%")
        if self.temperature is not None:
            parts.append(f"{self.temperature:g}")
        if self.mode:
            parts.append(self.mode)
        parts.extend(self.extras)
        return " ".join(parts)


@dataclass(frozen=True)
class ParsedRule:
    condition: Condition
    action: ActionSpec


@dataclass(frozen=True)
class DeviceState:
    power: bool
    temperature: Optional[float] = None
    mode: Optional[str] = None
    brightness: Optional[int] = None

    def as_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {"power": self.power}
        if self.temperature is not None:
            out["temperature"] = self.temperature
        if self.mode is not None:
            out["mode"] = self.mode
        if self.brightness is not None:
            out["brightness"] = self.brightness
        return out

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "DeviceState":
        temp = data.get("temperature")
        level = data.get("brightness")
        return cls(
            power=bool(data.get("power", False)),
            temperature=float(temp) if temp is not None else None,
            mode=data.get("mode"),
            brightness=int(level) if level is not None else None,
        )


@dataclass(frozen=True)
class DeviceTarget:
    device_id: str
    host: str
    device_type: str = ""
    location: str = ""


@dataclass(frozen=True)
class DeviceRecord:
    state: DeviceState
    ts_utc: datetime


@dataclass(frozen=True)
class ControlResponse:
    success: bool
    status_code: int
    data: Optional[dict[str, Any]] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class RollbackOutcome:
    attempted: bool
    success: bool
    state: Optional[DeviceState] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ExecuteResult:
    success: bool
    device_id: str
    no_change: bool = False
    state: Optional[DeviceState] = None
    message: str = ""


@dataclass(frozen=True)
class SensorReading:
    metric: str
    location: str
    value: Any


@dataclass(frozen=True)
class RuleSpec:
    id: str
    text: str
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ActionOutcome:
    """Result of one Action inside a notify fan-out."""

    rule_id: str
    condition: str
    result: Optional[ExecuteResult] = None
    error: Optional[str] = None
    skipped: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None
