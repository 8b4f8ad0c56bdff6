from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..core.timeutil import now_utc
from ..domain.rule_manager import RuleManager
from ..sensors.base import RoomSensor


logger = logging.getLogger(__name__)


@dataclass
class RoomLiveState:
    last_snapshot: Optional[dict[str, Any]] = None
    last_ok_utc: Optional[datetime] = None
    last_error: Optional[str] = None
    ticks: int = 0
    failures: int = 0


@dataclass
class PollerLiveState:
    rooms: dict[str, RoomLiveState] = field(default_factory=dict)


class SensorPoller:
    """One fixed-interval loop per room.

    Every tick fetches and dispatches in its own task, so a slow fetch can
    overlap the next tick; RuleManager serializes the snapshots.
    """

    def __init__(self, sensors: list[RoomSensor], manager: RuleManager, interval_seconds: float) -> None:
        self._sensors = sensors
        self._manager = manager
        self._interval = interval_seconds

        self._loops: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()
        self._stop = asyncio.Event()

        self.live = PollerLiveState(rooms={s.room: RoomLiveState() for s in sensors})

    async def start(self) -> None:
        self._stop.clear()
        for sensor in self._sensors:
            self._loops.append(
                asyncio.create_task(self._run(sensor), name=f"poll:{sensor.room}")
            )

    async def stop(self) -> None:
        self._stop.set()
        if self._loops:
            await asyncio.gather(*self._loops)
            self._loops = []
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _run(self, sensor: RoomSensor) -> None:
        logger.info("Polling %s every %ss", sensor.room, self._interval)

        while not self._stop.is_set():
            task = asyncio.create_task(self.tick(sensor))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

            # sleep with cancellation awareness
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Polling %s stopped", sensor.room)

    async def tick(self, sensor: RoomSensor) -> None:
        state = self.live.rooms.setdefault(sensor.room, RoomLiveState())
        state.ticks += 1
        try:
            snapshot = await sensor.read()
        except Exception as e:
            state.failures += 1
            state.last_error = str(e)
            logger.warning("Sensor read FAILED for %s: %s", sensor.room, e)
            return

        state.last_snapshot = snapshot
        state.last_ok_utc = now_utc()
        state.last_error = None

        try:
            await self._manager.process_sensor_data(snapshot)
        except Exception as e:
            logger.exception("Dispatch error for %s: %s", sensor.room, e)
