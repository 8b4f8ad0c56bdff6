from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class RoomSensor(ABC):
    """Sensor source for one room."""

    @property
    @abstractmethod
    def room(self) -> str:
        ...

    @abstractmethod
    async def read(self) -> dict[str, Any]:
        """Return a snapshot fragment, e.g. ``{"temp": {"kitchen": 22.5}}``. Raise on failure."""
        ...


def snapshot_fragment(room: str, temperature=None, humidity=None, motion=None) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if temperature is not None:
        out["temp"] = {room: float(temperature)}
    if humidity is not None:
        out["humidity"] = {room: float(humidity)}
    if motion is not None:
        out["motion"] = {room: bool(motion)}
    return out
