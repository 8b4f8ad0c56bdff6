from __future__ import annotations

from threading import Lock
from typing import Any, Optional

from .base import RoomSensor, snapshot_fragment


class SimulatedRoomSensor(RoomSensor):
    def __init__(
        self,
        room: str,
        temperature: Optional[float] = 24.0,
        humidity: Optional[float] = 45.0,
        motion: Optional[bool] = False,
    ) -> None:
        self._room = room
        self._lock = Lock()
        self._enabled = True
        self._temperature = temperature
        self._humidity = humidity
        self._motion = motion

    @property
    def room(self) -> str:
        return self._room

    def enable(self) -> None:
        with self._lock:
            self._enabled = True

    def disable(self) -> None:
        with self._lock:
            self._enabled = False

    def set_values(self, temperature=None, humidity=None, motion=None) -> None:
        with self._lock:
            if temperature is not None:
                self._temperature = float(temperature)
            if humidity is not None:
                self._humidity = float(humidity)
            if motion is not None:
                self._motion = bool(motion)

    def status(self) -> dict:
        with self._lock:
            return {
                "room": self._room,
                "enabled": self._enabled,
                "temperature": self._temperature,
                "humidity": self._humidity,
                "motion": self._motion,
            }

    async def read(self) -> dict[str, Any]:
        with self._lock:
            if not self._enabled:
                raise RuntimeError(f"Simulated sensor for {self._room} disabled")
            return snapshot_fragment(self._room, self._temperature, self._humidity, self._motion)
