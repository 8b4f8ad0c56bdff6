"""Tests for the rule text parser."""

import pytest

from homerules.domain.errors import ParseError, UnknownDeviceType, UnknownMetric
from homerules.domain.models import Condition
from homerules.domain.parser import parse_action, parse_condition, parse_rule


class TestConditions:
    def test_temperature_condition(self):
        rule = parse_rule("if temp > 25 in living room then ac on cool 23")
        assert rule.condition == Condition(
            metric="temperature", location="living room", operator=">", threshold=25.0
        )

    def test_temperature_long_keyword_is_same_condition(self):
        a = parse_rule("if temp > 25 in living room then ac on")
        b = parse_rule("if Temperature > 25.0 in Living  Room then fan on")
        assert a.condition == b.condition
        assert hash(a.condition) == hash(b.condition)

    @pytest.mark.parametrize("op", [">", "<", ">=", "<=", "=="])
    def test_all_operators(self, op):
        cond = parse_condition(f"humidity {op} 40 in bedroom")
        assert cond.metric == "humidity"
        assert cond.operator == op
        assert cond.threshold == 40.0

    def test_motion_condition(self):
        cond = parse_condition("motion in kitchen")
        assert cond.metric == "motion"
        assert cond.location == "kitchen"
        assert cond.operator is None
        assert cond.threshold is None
        assert cond.expected is True

    def test_no_motion_condition_is_distinct(self):
        cond = parse_condition("no motion in kitchen")
        assert cond.expected is False
        assert cond != parse_condition("motion in kitchen")

    def test_unknown_metric(self):
        with pytest.raises(UnknownMetric):
            parse_rule("if pressure > 3 in garage then light on")

    def test_unknown_metric_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_rule("if co2 > 800 in office then fan on")

    def test_operator_without_spaces(self):
        assert parse_rule("if temp>25 in living room then ac on").condition == \
            parse_rule("if temp > 25 in living room then ac on").condition
        assert parse_condition("humidity<=40 in bedroom").operator == "<="

    def test_unknown_metric_without_spaces(self):
        with pytest.raises(UnknownMetric, match="co2"):
            parse_rule("if co2>800 in office then fan on")

    def test_bad_threshold(self):
        with pytest.raises(ParseError):
            parse_rule("if temp > hot in living room then ac on")

    def test_missing_location(self):
        with pytest.raises(ParseError):
            parse_rule("if temp > 25 then ac on")


class TestActions:
    def test_ac_mode_then_temperature(self):
        action = parse_rule("if temp > 25 in living room then ac on cool 23").action
        assert action.device_type == "ac"
        assert action.location == "living room"
        assert action.power is True
        assert action.temperature == 23.0
        assert action.mode == "cool"

    def test_ac_temperature_then_mode(self):
        action = parse_action("ac on 22 heat", default_location="bedroom")
        assert action.temperature == 22.0
        assert action.mode == "heat"
        assert action.location == "bedroom"

    def test_explicit_action_location(self):
        action = parse_rule("if motion in hallway then living room light on").action
        assert action.location == "living room"
        assert action.device_type == "light"

    def test_off_without_params(self):
        action = parse_rule("if temp < 20 in living room then ac off").action
        assert action.power is False
        assert action.temperature is None
        assert action.mode is None

    def test_trailing_tokens_kept_as_extras(self):
        action = parse_action("ac on cool 23 swing 4", default_location="living room")
        assert action.mode == "cool"
        assert action.temperature == 23.0
        assert action.extras == ("swing", "4")

    def test_light_brightness(self):
        action = parse_action("light on 80% warm", default_location="kitchen")
        assert action.brightness == 80
        assert action.mode == "warm"
        assert action.temperature is None

    def test_invalid_brightness(self):
        with pytest.raises(ParseError):
            parse_action("light on 180%", default_location="kitchen")

    def test_unknown_device(self):
        with pytest.raises(UnknownDeviceType):
            parse_rule("if temp > 25 in living room then heater on")

    def test_missing_power_word(self):
        with pytest.raises(ParseError):
            parse_rule("if temp > 25 in living room then ac cool")

    def test_ac_temperature_out_of_range(self):
        with pytest.raises(ParseError):
            parse_rule("if temp > 25 in living room then ac on cool 40")


class TestRuleShape:
    @pytest.mark.parametrize("text", [
        "",
        "temp > 25 in living room then ac on",
        "if temp > 25 in living room",
        "if then ac on",
    ])
    def test_malformed(self, text):
        with pytest.raises(ParseError):
            parse_rule(text)

    def test_not_a_string(self):
        with pytest.raises(ParseError):
            parse_rule(None)
