from __future__ import annotations
import asyncio
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Union

from .actions import Action, ActionRegistry
from .errors import ParseError, RuleNotFound
from .events import Event, EventRegistry
from .interfaces import DeviceControl, DeviceDirectory, DeviceStateMirror, RuleRepository
from .models import SNAPSHOT_KEYS, ActionOutcome, ExecuteResult, SensorReading
from .parser import normalize, parse_rule

logger = logging.getLogger(__name__)

# Precedence between snapshot keys that map to the same metric
_KEY_RANK = {"temp": 1}


@dataclass(eq=False)
class RuleHandle:
    rule_id: str
    text: str
    event: Event
    action: Action

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.rule_id,
            "text": self.text,
            "condition": self.event.condition.describe(),
            "event_state": self.event.state,
            "action": self.action.to_dict(),
        }


def iter_readings(snapshot: Mapping[str, Any]) -> Iterator[SensorReading]:
    """Flatten ``{"temp": {"living room": 26}, ...}`` into readings.

    Unknown top-level keys are ignored. Location names are normalized the
    same way rule text is. At most one reading is produced per
    (metric, location): ``temp`` wins over its ``temperature`` alias, and
    otherwise the later value wins.
    """
    merged: dict[tuple[str, str], tuple[int, SensorReading]] = {}
    for key, values in snapshot.items():
        metric = SNAPSHOT_KEYS.get(key)
        if metric is None:
            continue
        if not isinstance(values, Mapping):
            logger.warning("Ignoring snapshot key %r: expected a mapping, got %r", key, values)
            continue
        rank = _KEY_RANK.get(key, 0)
        for location, value in values.items():
            reading = SensorReading(metric=metric, location=normalize(str(location)), value=value)
            slot = (metric, reading.location)
            held = merged.get(slot)
            if held is not None:
                if held[0] > rank:
                    logger.debug("Dropping %s=%r for %s: %r already read", key, value, reading.location, held[1].value)
                    continue
                logger.debug("Duplicate %s reading for %s: %r replaces %r", metric, reading.location, value, held[1].value)
            merged[slot] = (rank, reading)
    for _, reading in merged.values():
        yield reading


class RuleManager:
    """Parses rules, wires them to shared Events and dispatches snapshots.

    Snapshots are processed one at a time; within a snapshot every triggered
    fan-out runs concurrently.
    """

    def __init__(
        self,
        directory: DeviceDirectory,
        control: DeviceControl,
        action_registry: ActionRegistry,
        event_registry: Optional[EventRegistry] = None,
        mirror: Optional[DeviceStateMirror] = None,
    ) -> None:
        self._directory = directory
        self._control = control
        self._actions = action_registry
        self._events = event_registry if event_registry is not None else EventRegistry()
        self._mirror = mirror
        self._rules: dict[str, RuleHandle] = {}
        self._snapshot_lock = asyncio.Lock()

    @property
    def event_registry(self) -> EventRegistry:
        return self._events

    @property
    def action_registry(self) -> ActionRegistry:
        return self._actions

    def register(self, rule_text: str, rule_id: Optional[str] = None) -> RuleHandle:
        """Parse ``rule_text`` and attach it to the Event for its condition.

        Raises ParseError; on failure nothing is registered.
        """
        parsed = parse_rule(rule_text)

        rule_id = rule_id or f"rule_{uuid.uuid4().hex[:12]}"
        if rule_id in self._rules:
            self.remove_rule(rule_id)

        event, created = self._events.get_or_create(parsed.condition)
        action = Action(
            rule_id=rule_id,
            spec=parsed.action,
            directory=self._directory,
            control=self._control,
            registry=self._actions,
            mirror=self._mirror,
        )
        event.attach(action)

        handle = RuleHandle(rule_id=rule_id, text=rule_text, event=event, action=action)
        self._rules[rule_id] = handle
        logger.info(
            "Rule %s registered: %s -> %s (%s event, %d action(s))",
            rule_id,
            parsed.condition.describe(),
            parsed.action.describe(),
            "new" if created else "shared",
            len(event.actions),
        )
        return handle

    def remove_rule(self, handle: Union[RuleHandle, str]) -> bool:
        rule_id = handle.rule_id if isinstance(handle, RuleHandle) else handle
        found = self._rules.pop(rule_id, None)
        if found is None:
            logger.warning("Rule %s not found for removal", rule_id)
            return False
        found.event.detach(found.action)
        self._events.prune(found.event)
        logger.info("Rule %s removed", rule_id)
        return True

    def get_rule(self, rule_id: str) -> RuleHandle:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise RuleNotFound(rule_id) from None

    def rules(self) -> list[RuleHandle]:
        return list(self._rules.values())

    def events(self) -> list[Event]:
        return self._events.all()

    async def process_sensor_data(self, snapshot: Mapping[str, Any]) -> list[ActionOutcome]:
        async with self._snapshot_lock:
            triggered: list[Event] = []
            for reading in iter_readings(snapshot):
                for event in self._events.matching(reading.metric, reading.location):
                    if event.update_with_sensor_data(reading) and event not in triggered:
                        triggered.append(event)

            if not triggered:
                return []

            fanouts = await asyncio.gather(*(event.notify() for event in triggered))

        outcomes = [o for batch in fanouts for o in batch]
        failed = sum(1 for o in outcomes if not o.ok)
        if failed:
            logger.warning("Snapshot dispatch: %d of %d action(s) failed", failed, len(outcomes))
        return outcomes

    async def execute_rule(self, rule_id: str, force: bool = False) -> ExecuteResult:
        handle = self.get_rule(rule_id)
        logger.info("Manual execute of rule %s (force=%s)", rule_id, force)
        return await handle.action.execute(force=force)

    async def load_rules(self, repo: RuleRepository) -> list[RuleHandle]:
        loaded: list[RuleHandle] = []
        for spec in await repo.list_active():
            try:
                loaded.append(self.register(spec.text, rule_id=spec.id))
            except ParseError as e:
                logger.error("Skipping stored rule %s (%r): %s", spec.id, spec.text, e)
        logger.info("Loaded %d rule(s) from storage", len(loaded))
        return loaded
