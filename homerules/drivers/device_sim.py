from __future__ import annotations
import logging
from typing import Optional

from ..domain.models import ControlResponse, DeviceState

logger = logging.getLogger(__name__)


class SimulatedDeviceControl:
    def __init__(self) -> None:
        self._states: dict[str, DeviceState] = {}
        self._fail_next = 0
        self.commands: list[tuple[str, DeviceState]] = []

    def fail_next(self, count: int = 1) -> None:
        self._fail_next = count

    async def get_state(self, device_id: str, host: str) -> Optional[DeviceState]:
        return self._states.get(device_id)

    async def set_state(self, device_id: str, host: str, state: DeviceState) -> ControlResponse:
        self.commands.append((device_id, state))
        if self._fail_next > 0:
            self._fail_next -= 1
            logger.info("DEVICE %s set_state=%s -> simulated failure", device_id, state.as_payload())
            return ControlResponse(success=False, status_code=503, message="Simulated failure")
        self._states[device_id] = state
        logger.info("DEVICE %s set_state=%s", device_id, state.as_payload())
        return ControlResponse(success=True, status_code=200, data=state.as_payload())
