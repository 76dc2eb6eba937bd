import logging

import pytest

from travelai.db import Database
from travelai.errors import Unexpected
from travelai.feature_flags import DEFAULT_SNAPSHOT, FeatureFlagStore, enforce_preference_flags


class CountingMetrics:
    def __init__(self):
        self.events = []

    def increment(self, name, tags=None):
        self.events.append((name, dict(tags or {})))


@pytest.fixture
def store(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'flags.db'}")
    yield FeatureFlagStore(db, metrics=CountingMetrics())
    db.dispose()


@pytest.fixture
def broken_store(tmp_path):
    # parent directory does not exist, so sqlite cannot open the file
    db = Database(f"sqlite:///{tmp_path / 'missing' / 'flags.db'}")
    yield FeatureFlagStore(db, metrics=CountingMetrics())
    db.dispose()


def test_defaults_before_any_toggle(store):
    store.ensure_defaults()
    snap = store.snapshot()
    assert snap["settings_ui_enabled"] == {"enabled": True, "payload": None}
    assert snap["auto_join_v1"]["enabled"] is False
    assert snap["live_location"]["enabled"] is False
    assert [f["key"] for f in store.list_flags()] == ["settings_ui_enabled", "auto_join_v1", "live_location"]


def test_ensure_defaults_is_idempotent(store):
    store.ensure_defaults()
    store.ensure_defaults()
    assert len(store.list_flags()) == 3


def test_set_flag_overrides_default(store):
    store.ensure_defaults()
    store.set_flag("settings_ui_enabled", False)
    store.set_flag("live_location", True, {"rollout": 10})
    assert store.is_enabled("settings_ui_enabled") is False
    assert store.get_flag("live_location") == {"enabled": True, "payload": {"rollout": 10}}
    listed = {f["key"]: f for f in store.list_flags()}
    assert listed["live_location"]["updatedAt"] is not None


def test_get_flag_default_for_untoggled_row(store):
    store.ensure_defaults()
    assert store.get_flag("auto_join_v1", default=True)["enabled"] is True
    store.set_flag("auto_join_v1", False)
    assert store.get_flag("auto_join_v1", default=True)["enabled"] is False


def test_set_unknown_flag_rejected(store):
    with pytest.raises(ValueError):
        store.set_flag("nope", True)


def test_reads_fail_open_when_store_unavailable(broken_store, caplog):
    with caplog.at_level(logging.WARNING, logger="travelai.feature_flags"):
        broken_store.ensure_defaults()
        snap = broken_store.snapshot()
        flag = broken_store.get_flag("settings_ui_enabled")
    assert snap == dict(DEFAULT_SNAPSHOT)
    assert flag["enabled"] is True
    assert any("unavailable" in rec.getMessage() for rec in caplog.records)
    ops = [t["operation"] for n, t in broken_store.metrics.events if n == "feature_flags.degraded"]
    assert ops == ["ensure_defaults", "snapshot", "get_flag"]


def test_writes_do_not_fail_silently(broken_store):
    with pytest.raises(Unexpected):
        broken_store.set_flag("live_location", True)


def test_enforce_preference_flags_suppresses_and_is_idempotent():
    prefs = {"autoJoin": True, "locationSharing": "live", "radiusKm": 5}
    off = {
        "settings_ui_enabled": {"enabled": True, "payload": None},
        "auto_join_v1": {"enabled": False, "payload": None},
        "live_location": {"enabled": False, "payload": None},
    }
    once = enforce_preference_flags(prefs, off)
    assert once == {"autoJoin": False, "locationSharing": "off", "radiusKm": 5}
    assert enforce_preference_flags(once, off) == once
    assert prefs["autoJoin"] is True

    on = {**off, "auto_join_v1": {"enabled": True, "payload": None}, "live_location": {"enabled": True, "payload": None}}
    assert enforce_preference_flags(prefs, on) == prefs
