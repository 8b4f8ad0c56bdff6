from __future__ import annotations

import logging
from typing import Any

import httpx

from .base import RoomSensor, snapshot_fragment

logger = logging.getLogger(__name__)


class HttpRoomSensor(RoomSensor):
    """Reads ``GET {host}/api/sensors`` -> ``{"temperature", "humidity", "motion"}``."""

    def __init__(self, room: str, host: str, timeout: float = 5.0) -> None:
        self._room = room
        base = host if host.startswith(("http://", "https://")) else f"http://{host}"
        self._url = f"{base.rstrip('/')}/api/sensors"
        self._timeout = timeout

    @property
    def room(self) -> str:
        return self._room

    async def read(self) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.get(self._url)
            resp.raise_for_status()
            data = resp.json()
        logger.debug("sensor %s -> %s", self._room, data)
        return snapshot_fragment(
            self._room,
            temperature=data.get("temperature"),
            humidity=data.get("humidity"),
            motion=data.get("motion"),
        )
