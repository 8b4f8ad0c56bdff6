"""Rule text parser.

Grammar (case-insensitive)::

    if <condition> then <action>

    condition := "motion in" <location>
               | "no motion in" <location>
               | ("temp" | "temperature" | "humidity") <op> <number> "in" <location>
    op        := ">" | "<" | ">=" | "<=" | "=="
    action    := [<location>] ("ac" | "light" | "fan") ("on" | "off") <param>*

Action parameters after the power word: the first numeric token is the
temperature, the first non-numeric token is the mode, anything left over is
kept as an opaque extra. For lights a ``<n>%`` token is a brightness.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Optional

from ..core.config import settings
from .errors import ParseError, UnknownDeviceType, UnknownMetric
from .models import ActionSpec, Condition, ParsedRule

logger = logging.getLogger(__name__)

_RULE_RE = re.compile(r"^if\s+(?P<cond>.+?)\s+then\s+(?P<action>.+)$")
_MOTION_RE = re.compile(r"^(?P<neg>no\s+)?motion\s+in\s+(?P<loc>.+)$")
_NUMERIC_RE = re.compile(
    r"^(?P<metric>\S+)\s+(?P<op>>=|<=|==|>|<)\s+(?P<num>\S+)\s+in\s+(?P<loc>.+)$"
)
_OPERATOR_RE = re.compile(r"\s*(>=|<=|==|>|<)\s*")

METRIC_WORDS = {
    "temp": "temperature",
    "temperature": "temperature",
    "humidity": "humidity",
}

DEVICE_WORDS = {
    "ac": "ac",
    "light": "light",
    "lights": "light",
    "fan": "fan",
}

POWER_WORDS = {"on": True, "off": False}


def normalize(text: str) -> str:
    return " ".join(text.lower().split())


def _to_number(token: str) -> Optional[float]:
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_condition(text: str) -> Condition:
    text = normalize(_OPERATOR_RE.sub(r" \1 ", text))

    m = _MOTION_RE.match(text)
    if m:
        return Condition(
            metric="motion",
            location=m.group("loc").strip(),
            expected=m.group("neg") is None,
        )

    m = _NUMERIC_RE.match(text)
    if m:
        word = m.group("metric")
        metric = METRIC_WORDS.get(word)
        if metric is None:
            raise UnknownMetric(f"Unknown metric '{word}'", text)
        threshold = _to_number(m.group("num"))
        if threshold is None:
            raise ParseError(f"Invalid threshold '{m.group('num')}'", text)
        return Condition(
            metric=metric,
            location=m.group("loc").strip(),
            operator=m.group("op"),
            threshold=threshold,
        )

    first = text.split(" ", 1)[0] if text else ""
    if first and first not in METRIC_WORDS and first not in ("motion", "no"):
        raise UnknownMetric(f"Unknown metric '{first}'", text)
    raise ParseError(f"Invalid condition: '{text}'", text)


def parse_action(text: str, default_location: str = "") -> ActionSpec:
    tokens = normalize(text).split(" ")

    power_idx = next((i for i, t in enumerate(tokens) if t in POWER_WORDS), None)
    if power_idx is None:
        raise ParseError(f"Action has no on/off: '{text}'", text)
    if power_idx == 0:
        raise ParseError(f"Action has no device: '{text}'", text)

    word = tokens[power_idx - 1]
    device_type = DEVICE_WORDS.get(word)
    if device_type is None:
        raise UnknownDeviceType(f"Unknown device type '{word}'", text)

    location = " ".join(tokens[: power_idx - 1]) or default_location
    if not location:
        raise ParseError(f"Action has no location: '{text}'", text)

    temperature: Optional[float] = None
    mode: Optional[str] = None
    brightness: Optional[int] = None
    extras: list[str] = []

    for token in tokens[power_idx + 1:]:
        if device_type == "light" and brightness is None and token.endswith("%"):
            pct = _to_number(token[:-1])
            if pct is not None and 0 <= pct <= 100:
                brightness = int(pct)
                continue
            raise ParseError(f"Invalid brightness '{token}'", text)

        number = _to_number(token)
        if number is not None:
            if temperature is None:
                temperature = number
                continue
        elif mode is None:
            mode = token
            continue
        extras.append(token)

    if device_type == "ac" and temperature is not None:
        lo, hi = settings.ac_min_temperature, settings.ac_max_temperature
        if not lo <= temperature <= hi:
            raise ParseError(
                f"AC temperature {temperature:g} outside valid range ({lo:g}-{hi:g})", text
            )

    return ActionSpec(
        device_type=device_type,
        location=location,
        power=POWER_WORDS[tokens[power_idx]],
        temperature=temperature,
        mode=mode,
        brightness=brightness,
        extras=tuple(extras),
    )


def parse_rule(text: str) -> ParsedRule:
    """Parse ``text`` into a condition and an action spec.

    Raises ParseError (or one of its subclasses UnknownMetric /
    UnknownDeviceType). Nothing outside this function is touched.
    """
    if not isinstance(text, str):
        raise ParseError("Rule text must be a string")

    norm = normalize(text)
    m = _RULE_RE.match(norm)
    if not m:
        raise ParseError('Invalid rule format. Expected "if <condition> then <action>"', text)

    condition = parse_condition(m.group("cond"))
    action = parse_action(m.group("action"), default_location=condition.location)
    logger.debug("parsed rule %r -> %s / %s", text, condition.describe(), action.describe())
    return ParsedRule(condition=condition, action=action)
