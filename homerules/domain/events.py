from __future__ import annotations
import asyncio
import logging
import operator
from typing import TYPE_CHECKING, Any, Callable

from ..core.timeutil import now_utc
from .models import ActionOutcome, Condition, SensorReading

if TYPE_CHECKING:
    from .actions import Action

logger = logging.getLogger(__name__)


# "==" is exact float equality on purpose; readings like 24.999 never match 25.
_COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
}


class Event:
    """Live state of one Condition plus the Actions wired to it.

    State is edge-triggered: notify() only follows a flip of ``state``.
    """

    def __init__(self, condition: Condition) -> None:
        if condition.metric != "motion" and condition.operator not in _COMPARATORS:
            raise ValueError(f"Unknown operator: {condition.operator}")
        self.condition = condition
        self.current_value: Any = None
        self.state = False
        self.last_updated = None
        self._actions: list["Action"] = []

    @property
    def metric(self) -> str:
        return self.condition.metric

    @property
    def location(self) -> str:
        return self.condition.location

    @property
    def actions(self) -> list["Action"]:
        return list(self._actions)

    def attach(self, action: "Action") -> None:
        if action not in self._actions:
            self._actions.append(action)

    def detach(self, action: "Action") -> bool:
        try:
            self._actions.remove(action)
        except ValueError:
            return False
        return True

    def evaluate(self, value: Any) -> bool:
        if self.metric == "motion":
            return bool(value) == self.condition.expected
        compare = _COMPARATORS[self.condition.operator]
        return compare(float(value), self.condition.threshold)

    def update_with_sensor_data(self, data: SensorReading) -> bool:
        """Apply a reading; return True when the state flipped."""
        if data.location != self.location or data.metric != self.metric:
            return False

        if self.metric == "motion":
            value: Any = bool(data.value)
        else:
            try:
                value = float(data.value)
            except (TypeError, ValueError):
                logger.warning(
                    "Ignoring non-numeric %s reading for %s: %r",
                    self.metric, self.location, data.value,
                )
                return False

        self.current_value = value
        new_state = self.evaluate(value)
        if new_state == self.state:
            return False

        logger.info(
            "Event %s: %s -> %s (value=%s)",
            self.condition.describe(), self.state, new_state, value,
        )
        self.state = new_state
        self.last_updated = now_utc()
        return True

    async def notify(self, force: bool = False) -> list[ActionOutcome]:
        """Fan out to every attached Action in attachment order.

        Actions run concurrently; one failing does not stop the others.
        """
        actions = list(self._actions)
        if not actions:
            return []
        logger.info(
            "Notifying %d action(s) for %s (state=%s)",
            len(actions), self.condition.describe(), self.state,
        )
        return list(await asyncio.gather(*(self._run(a, force) for a in actions)))

    async def _run(self, action: "Action", force: bool) -> ActionOutcome:
        outcome = ActionOutcome(rule_id=action.rule_id, condition=self.condition.describe())
        try:
            result = await action.on_event(self, force=force)
        except Exception as e:
            logger.exception("Action %s failed: %s", action.describe(), e)
            outcome.error = str(e)
            to_dict = getattr(e, "to_dict", None)
            if to_dict is not None:
                outcome.extra = to_dict()
            return outcome
        if result is None:
            outcome.skipped = True
        else:
            outcome.result = result
        return outcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition.describe(),
            "metric": self.metric,
            "location": self.location,
            "operator": self.condition.operator,
            "threshold": self.condition.threshold,
            "expected": self.condition.expected if self.metric == "motion" else None,
            "current_value": self.current_value,
            "state": self.state,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "actions": [a.rule_id for a in self._actions],
        }


class EventRegistry:
    """One Event per distinct Condition value."""

    def __init__(self) -> None:
        self._events: dict[Condition, Event] = {}
        self._by_key: dict[tuple[str, str], list[Event]] = {}

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, condition: object) -> bool:
        return condition in self._events

    def get_or_create(self, condition: Condition) -> tuple[Event, bool]:
        event = self._events.get(condition)
        if event is not None:
            return event, False
        event = Event(condition)
        self._events[condition] = event
        self._by_key.setdefault(condition.key, []).append(event)
        logger.info("Registered event %s", condition.describe())
        return event, True

    def matching(self, metric: str, location: str) -> list[Event]:
        return list(self._by_key.get((metric, location), ()))

    def all(self) -> list[Event]:
        return list(self._events.values())

    def remove(self, event: Event) -> bool:
        if self._events.get(event.condition) is not event:
            return False
        del self._events[event.condition]
        bucket = self._by_key.get(event.condition.key, [])
        if event in bucket:
            bucket.remove(event)
        if not bucket:
            self._by_key.pop(event.condition.key, None)
        logger.info("Removed event %s", event.condition.describe())
        return True

    def prune(self, event: Event) -> bool:
        if event.actions:
            return False
        return self.remove(event)
