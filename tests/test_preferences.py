from datetime import UTC, datetime

import pytest

from travelai.errors import InvalidPayload
from travelai.preferences import (
    changed_fields,
    default_preferences,
    iso_now,
    validate_partial,
    validate_preferences,
)

NOW = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=UTC)


def _problems(exc_info):
    return {p["name"]: p["reason"] for p in exc_info.value.invalid_params}


def test_defaults_are_valid():
    prefs = default_preferences("u1", display_name="Ann", now=NOW)
    assert validate_preferences(prefs) == prefs
    assert prefs["updatedAt"] == "2026-01-02T03:04:05.678Z"
    assert prefs["displayName"] == "Ann"
    assert prefs["locationSharing"] == "off"
    assert prefs["autoJoin"] is False


def test_missing_list_fields_default_to_empty():
    prefs = default_preferences("u1", now=NOW)
    del prefs["interests"]
    del prefs["accessibilityNeeds"]
    out = validate_preferences(prefs)
    assert out["interests"] == [] and out["accessibilityNeeds"] == []


@pytest.mark.parametrize(
    "value,reason",
    [(0, "radiusKm must be at least 1"), (51, "radiusKm must be at most 50"), ("5", "radiusKm must be a number")],
)
def test_radius_bounds(value, reason):
    prefs = {**default_preferences("u1", now=NOW), "radiusKm": value}
    with pytest.raises(InvalidPayload) as ei:
        validate_preferences(prefs)
    assert _problems(ei)["radiusKm"] == reason


def test_unknown_keys_and_required_fields_reported():
    prefs = default_preferences("u1", now=NOW)
    del prefs["spontaneity"]
    prefs["favouriteColour"] = "blue"
    with pytest.raises(InvalidPayload) as ei:
        validate_preferences(prefs)
    problems = _problems(ei)
    assert problems["spontaneity"] == "Required"
    assert problems["favouriteColour"] == "Unrecognized key"
    assert ei.value.status == 400


def test_budget_shapes():
    base = default_preferences("u1", now=NOW)
    assert validate_preferences({**base, "budget": {"maxCents": 2500}})["budget"] == {"maxCents": 2500}
    with pytest.raises(InvalidPayload) as ei:
        validate_preferences({**base, "budget": {"maxCents": -1}})
    assert _problems(ei)["budget.maxCents"] == "maxCents must be positive"
    with pytest.raises(InvalidPayload):
        validate_preferences({**base, "budget": "$$$$"})


def test_time_availability_and_dnd_schedule():
    base = default_preferences("u1", now=NOW)
    ok = {**base, "timeAvailability": {"from": "18:00"}, "dndSchedule": [{"day": 0, "from": "22:00", "to": "07:00"}]}
    assert validate_preferences(ok)["dndSchedule"][0]["day"] == 0
    with pytest.raises(InvalidPayload) as ei:
        validate_preferences({**base, "timeAvailability": {}})
    assert "timeAvailability.from" in _problems(ei)
    with pytest.raises(InvalidPayload) as ei:
        validate_preferences({**base, "dndSchedule": [{"day": 7, "from": "25:00", "to": "07:00"}]})
    problems = _problems(ei)
    assert problems["dndSchedule.0.day"] == "day must be between 0 and 6"
    assert problems["dndSchedule.0.from"] == "Time values must be ISO-8601 compliant"


def test_booleans_are_not_numbers():
    base = default_preferences("u1", now=NOW)
    with pytest.raises(InvalidPayload) as ei:
        validate_preferences({**base, "radiusKm": True})
    assert _problems(ei)["radiusKm"] == "radiusKm must be a number"


def test_partial_only_checks_present_keys():
    assert validate_partial({"locationSharing": "live"}) == {"locationSharing": "live"}
    with pytest.raises(InvalidPayload) as ei:
        validate_partial({"locationSharing": "everywhere", "bogus": 1})
    assert set(_problems(ei)) == {"locationSharing", "bogus"}
    with pytest.raises(InvalidPayload):
        validate_partial(["not", "an", "object"])


def test_changed_fields_ignores_updated_at():
    a = {"radiusKm": 5, "updatedAt": "x"}
    b = {"radiusKm": 6, "updatedAt": "y", "autoJoin": True}
    assert changed_fields(a, b) == ["autoJoin", "radiusKm"]


def test_iso_now_is_millisecond_utc():
    assert iso_now(NOW) == "2026-01-02T03:04:05.678Z"
