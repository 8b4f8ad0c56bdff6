from __future__ import annotations
from typing import Protocol, Optional, runtime_checkable
from .models import ControlResponse, DeviceState, DeviceTarget, RuleSpec


@runtime_checkable
class DeviceDirectory(Protocol):
    def resolve(self, location: str, device_type: str) -> DeviceTarget:
        """Raise DeviceNotFound when nothing is mapped."""
        ...


@runtime_checkable
class DeviceControl(Protocol):
    async def get_state(self, device_id: str, host: str) -> Optional[DeviceState]:
        ...

    async def set_state(self, device_id: str, host: str, state: DeviceState) -> ControlResponse:
        ...


@runtime_checkable
class RuleRepository(Protocol):
    async def list_active(self) -> list[RuleSpec]:
        ...

    async def upsert(self, rule_id: str, spec: RuleSpec) -> None:
        ...


@runtime_checkable
class DeviceStateMirror(Protocol):
    async def save_device_state(self, device_id: str, state: DeviceState) -> None:
        ...
