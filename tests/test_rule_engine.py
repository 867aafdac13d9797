from __future__ import annotations

from datetime import timedelta

import pytest

from alertcore.alerts import RuleEngine
from alertcore.alerts.rules.conditions import evaluate_conditions, get_nested_value
from alertcore.errors import ConfigError

from conftest import make_event


def test_meeting_produces_three_tiers_least_urgent_first():
    engine = RuleEngine()

    specs = engine.evaluate(make_event(starts_in=timedelta(hours=1)))

    assert [spec.alert_type for spec in specs] == [
        "MEETING_UPCOMING_EMAIL",
        "MEETING_URGENT_MESSAGE",
        "MEETING_CRITICAL_CALL",
    ]
    assert [spec.offset_before_event for spec in specs] == [
        timedelta(minutes=12),
        timedelta(minutes=5),
        timedelta(minutes=2),
    ]
    assert [spec.channel for spec in specs] == ["email", "sms", "voice"]


def test_unknown_category_yields_nothing():
    engine = RuleEngine()

    assert engine.evaluate(make_event(category="GARDENING")) == []


def test_missed_meeting_is_immediate_email():
    engine = RuleEngine()

    specs = engine.evaluate(make_event(status="MISSED"))

    assert len(specs) == 1
    assert specs[0].alert_type == "MEETING_MISSED"
    assert specs[0].offset_before_event == timedelta(0)


def test_offsets_override_tier_defaults():
    engine = RuleEngine({"offsets": {"early": timedelta(minutes=30), "critical": "90 seconds"}})

    specs = engine.evaluate(make_event())

    offsets = {spec.alert_type: spec.offset_before_event for spec in specs}
    assert offsets["MEETING_UPCOMING_EMAIL"] == timedelta(minutes=30)
    assert offsets["MEETING_CRITICAL_CALL"] == timedelta(seconds=90)


def test_disabled_channel_filters_specs():
    engine = RuleEngine({"channels": {"email": True, "sms": False, "voice": True}})

    specs = engine.evaluate(make_event())

    assert [spec.channel for spec in specs] == ["email", "voice"]


def test_custom_rules_replace_category_and_keep_declaration_order_on_ties():
    engine = RuleEngine(
        {
            "rules": {
                "include_defaults": False,
                "categories": {
                    "TRAVEL": [
                        {"name": "first", "alert_type": "BOARDING_A", "offset": "10 minutes"},
                        {"name": "second", "alert_type": "BOARDING_B", "offset": "10 minutes"},
                        {"name": "off", "alert_type": "NEVER", "offset": 5, "enabled": False},
                        {"name": "dup", "alert_type": "BOARDING_A", "offset": "1 minute"},
                    ]
                },
            }
        }
    )

    specs = engine.evaluate(make_event(category="TRAVEL"))

    assert engine.categories == ["TRAVEL"]
    assert [spec.alert_type for spec in specs] == ["BOARDING_A", "BOARDING_B"]


def test_rule_with_unknown_tier_is_rejected():
    with pytest.raises(ConfigError):
        RuleEngine(
            {
                "rules": {
                    "categories": {"MEETING": [{"name": "x", "alert_type": "X", "tier": "nope"}]},
                }
            }
        )


def test_conditions_are_and_combined_and_tolerate_missing_fields():
    event = make_event(priority=5, tags="standup,weekly")

    assert evaluate_conditions(
        [
            {"field": "payload.priority", "operator": "greater_than", "value": 3},
            {"field": "payload.tags", "operator": "contains", "value": "weekly"},
        ],
        event,
    )
    assert not evaluate_conditions(
        [
            {"field": "payload.priority", "operator": "greater_than", "value": 3},
            {"field": "payload.missing", "operator": "less_than", "value": 3},
        ],
        event,
    )
    assert evaluate_conditions([{"field": "payload.missing", "operator": "not_exists"}], event)
    assert evaluate_conditions(
        [{"field": "payload.status", "operator": "in_list", "value": ["SCHEDULED", "MOVED"]}],
        event,
    )


def test_unknown_operator_is_false():
    assert not evaluate_conditions([{"field": "category", "operator": "matches_regex"}], make_event())


def test_get_nested_value_walks_dotted_paths():
    event = make_event(location={"room": "4B"})

    assert get_nested_value(event, "payload.location.room") == "4B"
    assert get_nested_value(event, "payload.location.floor") is None
    assert get_nested_value(event, "category") == "MEETING"
