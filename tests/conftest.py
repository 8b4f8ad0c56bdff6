"""Shared fakes for the rule engine tests."""

from typing import Optional

import pytest

from homerules.domain.actions import ActionRegistry
from homerules.domain.models import ControlResponse, DeviceState, DeviceTarget, RuleSpec
from homerules.domain.rule_manager import RuleManager
from homerules.drivers.directory import Room, StaticDeviceDirectory


class RecordingControl:
    """Device control mock: remembers states, records every call."""

    def __init__(self) -> None:
        self.states: dict[str, DeviceState] = {}
        self.set_calls: list[tuple[str, DeviceState]] = []
        self.get_calls: list[str] = []
        self.fail_with: list[Optional[ControlResponse]] = []
        self.raise_with: list[Optional[Exception]] = []

    def queue_failure(self, status_code: int = 500, message: str = "boom") -> None:
        self.fail_with.append(ControlResponse(success=False, status_code=status_code, message=message))

    async def get_state(self, device_id: str, host: str) -> Optional[DeviceState]:
        self.get_calls.append(device_id)
        return self.states.get(device_id)

    async def set_state(self, device_id: str, host: str, state: DeviceState) -> ControlResponse:
        self.set_calls.append((device_id, state))
        if self.raise_with:
            exc = self.raise_with.pop(0)
            if exc is not None:
                raise exc
        if self.fail_with:
            failure = self.fail_with.pop(0)
            if failure is not None:
                return failure
        self.states[device_id] = state
        return ControlResponse(success=True, status_code=200, data=state.as_payload())


class MemoryRuleRepository:
    def __init__(self, specs=()) -> None:
        self.rules = {s.id: s for s in specs}
        self.device_states: dict[str, DeviceState] = {}

    async def list_active(self) -> list[RuleSpec]:
        return [s for s in self.rules.values() if s.active]

    async def upsert(self, rule_id: str, spec: RuleSpec) -> None:
        self.rules[rule_id] = spec

    async def save_device_state(self, device_id: str, state: DeviceState) -> None:
        self.device_states[device_id] = state


def make_directory() -> StaticDeviceDirectory:
    return StaticDeviceDirectory([
        Room(
            name="living room",
            sensor_host="10.0.0.2",
            devices=[
                DeviceTarget("ac-1", "10.0.0.2", "ac", "living room"),
                DeviceTarget("light-1", "10.0.0.2", "light", "living room"),
                DeviceTarget("fan-1", "10.0.0.2", "fan", "living room"),
            ],
        ),
        Room(
            name="kitchen",
            sensor_host="10.0.0.3",
            devices=[DeviceTarget("light-2", "10.0.0.3", "light", "kitchen")],
        ),
    ])


@pytest.fixture
def control():
    return RecordingControl()


@pytest.fixture
def directory():
    return make_directory()


@pytest.fixture
def registry():
    return ActionRegistry()


@pytest.fixture
def repo():
    return MemoryRuleRepository()


@pytest.fixture
def manager(directory, control, registry, repo):
    return RuleManager(directory=directory, control=control, action_registry=registry, mirror=repo)
