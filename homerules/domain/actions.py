from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

from ..core.timeutil import now_utc
from .errors import ExternalCallError, RollbackError
from .interfaces import DeviceControl, DeviceDirectory, DeviceStateMirror
from .models import (
    ActionSpec,
    DeviceRecord,
    DeviceState,
    DeviceTarget,
    ExecuteResult,
    RollbackOutcome,
)

if TYPE_CHECKING:
    from .events import Event

logger = logging.getLogger(__name__)


# --- Device payloads ---

@dataclass(frozen=True)
class ACParams:
    temperature: Optional[float] = None
    mode: Optional[str] = None

    def desired_state(self, power: bool) -> DeviceState:
        return DeviceState(power=power, temperature=self.temperature, mode=self.mode)


@dataclass(frozen=True)
class LightParams:
    brightness: Optional[int] = None
    color: Optional[str] = None

    def desired_state(self, power: bool) -> DeviceState:
        return DeviceState(power=power, mode=self.color, brightness=self.brightness)


@dataclass(frozen=True)
class FanParams:
    speed: Optional[str] = None

    def desired_state(self, power: bool) -> DeviceState:
        return DeviceState(power=power, mode=self.speed)


DeviceParams = Union[ACParams, LightParams, FanParams]


def build_params(spec: ActionSpec) -> DeviceParams:
    if spec.device_type == "ac":
        return ACParams(temperature=spec.temperature, mode=spec.mode)
    if spec.device_type == "light":
        if spec.temperature is not None:
            logger.warning("light action ignores numeric parameter %g (use <n>%% for brightness)", spec.temperature)
        return LightParams(brightness=spec.brightness, color=spec.mode)
    if spec.device_type == "fan":
        speed = spec.mode
        if spec.temperature is not None:
            if speed is None:
                speed = f"{spec.temperature:g}"
            else:
                logger.warning("fan action ignores numeric parameter %g (speed is %r)", spec.temperature, speed)
        return FanParams(speed=speed)
    raise ValueError(f"Unsupported device type: {spec.device_type}")


# --- Last commanded state per device ---

class ActionRegistry:
    """Last commanded state per device, plus one lock per device.

    The lock makes lookup, state read, command and record a single critical
    section for a given device_id.
    """

    def __init__(self) -> None:
        self._records: dict[str, DeviceRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, device_id: str) -> asyncio.Lock:
        lock = self._locks.get(device_id)
        if lock is None:
            lock = self._locks[device_id] = asyncio.Lock()
        return lock

    def get(self, device_id: str) -> Optional[DeviceRecord]:
        return self._records.get(device_id)

    def record(self, device_id: str, state: DeviceState) -> DeviceRecord:
        rec = DeviceRecord(state=state, ts_utc=now_utc())
        self._records[device_id] = rec
        logger.debug("registry: %s -> %s", device_id, state.as_payload())
        return rec

    def is_change_needed(self, device_id: str, desired: DeviceState) -> bool:
        rec = self._records.get(device_id)
        return rec is None or rec.state != desired

    def records(self) -> dict[str, DeviceRecord]:
        return dict(self._records)


# --- Action ---

class Action:
    """Device command attached to an Event.

    ``previous_state`` is only set while execute() runs and is what rollback
    restores.
    """

    def __init__(
        self,
        rule_id: str,
        spec: ActionSpec,
        directory: DeviceDirectory,
        control: DeviceControl,
        registry: ActionRegistry,
        mirror: Optional[DeviceStateMirror] = None,
    ) -> None:
        self.rule_id = rule_id
        self.spec = spec
        self.params = build_params(spec)
        self.previous_state: Optional[DeviceState] = None
        self.last_executed = None
        self._directory = directory
        self._control = control
        self._registry = registry
        self._mirror = mirror

    @property
    def device_type(self) -> str:
        return self.spec.device_type

    @property
    def location(self) -> str:
        return self.spec.location

    def desired_state(self) -> DeviceState:
        return self.params.desired_state(self.spec.power)

    def describe(self) -> str:
        return f"[{self.rule_id}] {self.spec.describe()}"

    async def on_event(self, event: "Event", force: bool = False) -> Optional[ExecuteResult]:
        if not event.state:
            logger.debug("%s: %s no longer met, nothing to do", self.describe(), event.condition.describe())
            return None
        return await self.execute(force=force)

    async def execute(self, force: bool = False) -> ExecuteResult:
        # Raises DeviceNotFound before anything external is touched
        target = self._directory.resolve(self.location, self.device_type)
        desired = self.desired_state()
        device_id = target.device_id

        async with self._registry.lock(device_id):
            if not force and not self._registry.is_change_needed(device_id, desired):
                logger.info("%s: %s already in desired state, skipping", self.describe(), device_id)
                return ExecuteResult(
                    success=True,
                    device_id=device_id,
                    no_change=True,
                    state=desired,
                    message="Device already in desired state",
                )

            try:
                self.previous_state = await self._read_previous(target)
                await self._command(target, desired)
                self._registry.record(device_id, desired)
                await self._mirror_state(device_id, desired)
            finally:
                self.previous_state = None

        self.last_executed = now_utc()
        logger.info("%s: %s set to %s", self.describe(), device_id, desired.as_payload())
        return ExecuteResult(
            success=True,
            device_id=device_id,
            state=desired,
            message=f"{self.device_type} in {self.location} set to {'on' if desired.power else 'off'}",
        )

    async def _read_previous(self, target: DeviceTarget) -> Optional[DeviceState]:
        try:
            actual = await self._control.get_state(target.device_id, target.host)
        except Exception:
            logger.warning("Reading state of %s failed", target.device_id, exc_info=True)
            actual = None
        if actual is not None:
            return actual
        rec = self._registry.get(target.device_id)
        return rec.state if rec else None

    async def _command(self, target: DeviceTarget, desired: DeviceState) -> None:
        try:
            response = await self._control.set_state(target.device_id, target.host, desired)
        except Exception as e:
            logger.error("Command to %s raised: %s", target.device_id, e)
            rollback = await self.rollback(target)
            raise ExternalCallError(
                f"Command to {target.device_id} failed: {e}",
                device_id=target.device_id,
                rollback=rollback,
            ) from e

        if not response.success:
            logger.error(
                "Command to %s rejected (status=%s): %s",
                target.device_id, response.status_code, response.message,
            )
            rollback = await self.rollback(target)
            raise ExternalCallError(
                response.message or f"Command to {target.device_id} failed",
                device_id=target.device_id,
                status_code=response.status_code,
                rollback=rollback,
            )

    async def rollback(self, target: DeviceTarget) -> RollbackOutcome:
        """Best-effort restore of ``previous_state``. Never raises."""
        previous = self.previous_state
        if previous is None:
            logger.warning("No previous state for %s, rollback skipped", target.device_id)
            return RollbackOutcome(attempted=False, success=False, error="no previous state")

        try:
            response = await self._control.set_state(target.device_id, target.host, previous)
            if not response.success:
                raise RollbackError(
                    f"Rollback of {target.device_id} rejected (status={response.status_code}): "
                    f"{response.message}",
                    device_id=target.device_id,
                )
        except Exception as e:
            logger.warning("Rollback failed for %s", target.device_id, exc_info=True)
            return RollbackOutcome(attempted=True, success=False, state=previous, error=str(e))

        self._registry.record(target.device_id, previous)
        await self._mirror_state(target.device_id, previous)
        logger.info("Rolled back %s to %s", target.device_id, previous.as_payload())
        return RollbackOutcome(attempted=True, success=True, state=previous)

    async def _mirror_state(self, device_id: str, state: DeviceState) -> None:
        if self._mirror is None:
            return
        try:
            await self._mirror.save_device_state(device_id, state)
        except Exception:
            # The command itself succeeded; a stale mirror is not fatal.
            logger.warning("Mirroring state of %s failed", device_id, exc_info=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "device_type": self.device_type,
            "location": self.location,
            "desired": self.desired_state().as_payload(),
            "extras": list(self.spec.extras),
            "last_executed": self.last_executed.isoformat() if self.last_executed else None,
        }
