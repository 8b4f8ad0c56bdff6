from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..domain.errors import DeviceNotFound
from ..domain.models import DeviceTarget
from ..domain.parser import normalize

logger = logging.getLogger(__name__)

DEFAULT_HOME_PATH = Path(__file__).resolve().parent.parent / "config" / "default_home.json"


@dataclass
class Room:
    name: str
    sensor_host: str = ""
    devices: list[DeviceTarget] = field(default_factory=list)


class StaticDeviceDirectory:
    """Room/device map loaded once from the home config."""

    def __init__(self, rooms: list[Room]) -> None:
        self._rooms = {normalize(r.name): r for r in rooms}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StaticDeviceDirectory":
        return cls(parse_rooms(data))

    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def resolve(self, location: str, device_type: str) -> DeviceTarget:
        room = self._rooms.get(normalize(location))
        if room is not None:
            for dev in room.devices:
                if dev.device_type == device_type:
                    return dev
        raise DeviceNotFound(location, device_type)


def parse_rooms(data: dict[str, Any]) -> list[Room]:
    rooms = []
    for r in data.get("rooms", []):
        name = normalize(r["name"])
        rooms.append(Room(
            name=name,
            sensor_host=r.get("sensor_host", ""),
            devices=[
                DeviceTarget(
                    device_id=str(d["device_id"]),
                    host=d.get("host") or r.get("sensor_host", ""),
                    device_type=d["type"].lower(),
                    location=name,
                )
                for d in r.get("devices", [])
            ],
        ))
    return rooms


def load_home_config(path: str = "") -> list[Room]:
    config_path = Path(path) if path else DEFAULT_HOME_PATH
    try:
        data = json.loads(config_path.read_text())
        return parse_rooms(data)
    except (OSError, ValueError, KeyError) as e:
        logger.warning("Failed to load home config %s, using built-in defaults: %s", config_path, e)
        return [
            Room(
                name="living room",
                sensor_host="127.0.0.1:5000",
                devices=[
                    DeviceTarget("ac-living-room", "127.0.0.1:5000", "ac", "living room"),
                    DeviceTarget("light-living-room", "127.0.0.1:5000", "light", "living room"),
                ],
            ),
        ]
