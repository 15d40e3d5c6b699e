"""Tests for RemoteSnapshotSource.

Tests cover:
- Initial and follow-up full snapshots
- Ordering with missing/invalid order values
- Terminal error handling (sync and async failures)
- Unsubscribe and close
"""

import pytest
from propsync.errors import InvariantViolation, SubscriptionError
from propsync.schemas import SCHEDULER, SECURITY_CHECKLIST, CHECKLIST_KEY
from propsync.snapshot_source import RemoteSnapshotSource


@pytest.fixture
def source(store, building) -> RemoteSnapshotSource:
    return RemoteSnapshotSource(store, SCHEDULER, building)


@pytest.fixture
def recorder():
    events = {"snapshots": [], "errors": []}

    def on_snapshot(key, items):
        events["snapshots"].append((key, items))

    def on_error(key, error):
        events["errors"].append((key, error))

    events["on_snapshot"] = on_snapshot
    events["on_error"] = on_error
    return events


class TestDecode:
    """Tests for snapshot decoding and ordering."""

    def test_sorted_by_order(self, source):
        items = source.decode([("b", {"order": 2}), ("a", {"order": 1})])
        assert [i.id for i in items] == ["a", "b"]

    def test_missing_order_sorts_last(self, source):
        items = source.decode([
            ("x", {}),
            ("big", {"order": 5000}),
            ("y", {"order": "1"}),
            ("a", {"order": 0}),
        ])
        assert [i.id for i in items] == ["a", "big", "x", "y"]

    def test_boolean_order_is_invalid(self, source):
        items = source.decode([("t", {"order": True}), ("a", {"order": 3})])
        assert [i.id for i in items] == ["a", "t"]

    def test_uses_layout_defaults(self, source):
        (item,) = source.decode([("a", {"order": 0})])
        assert item.get("title") == "Untitled"


class TestSubscribe:
    """Tests for subscribe()."""

    def test_initial_snapshot(self, source, seeded_store, recorder):
        source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])

        assert len(recorder["snapshots"]) == 1
        key, items = recorder["snapshots"][0]
        assert key == "mon"
        assert [i.id for i in items] == ["a", "b"]

    def test_empty_bucket_still_delivers(self, source, recorder):
        source.subscribe("tue", recorder["on_snapshot"], recorder["on_error"])
        assert recorder["snapshots"] == [("tue", [])]

    def test_full_list_on_every_change(self, source, seeded_store, mon_path, recorder):
        source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])
        seeded_store.put(mon_path, "c", {"title": "New", "order": 2})

        assert len(recorder["snapshots"]) == 2
        _, items = recorder["snapshots"][-1]
        assert [i.id for i in items] == ["a", "b", "c"]

    def test_unknown_key(self, source, recorder):
        with pytest.raises(InvariantViolation, match="Unknown bucket key"):
            source.subscribe("funday", recorder["on_snapshot"], recorder["on_error"])

    def test_double_subscribe(self, source, recorder):
        source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])
        with pytest.raises(InvariantViolation, match="already has"):
            source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])

    def test_checklist_layout(self, store, building, seed, recorder):
        seed(SECURITY_CHECKLIST.path(building, CHECKLIST_KEY), [{"id": "p1", "place": "Lobby", "order": 0}])
        source = RemoteSnapshotSource(store, SECURITY_CHECKLIST, building)
        source.subscribe(CHECKLIST_KEY, recorder["on_snapshot"], recorder["on_error"])

        _, items = recorder["snapshots"][0]
        assert items[0].get("place") == "Lobby"


class TestErrors:
    """Tests for terminal subscription errors."""

    def test_listen_failure(self, source, store, building, recorder):
        store.fail_listen(SCHEDULER.path(building, "mon"), PermissionError("denied"))
        source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])

        assert recorder["snapshots"] == []
        assert len(recorder["errors"]) == 1
        key, error = recorder["errors"][0]
        assert key == "mon"
        assert isinstance(error, SubscriptionError)
        assert "denied" in str(error)
        assert source.active_keys == []

    def test_interrupted_subscription_is_terminal(self, source, seeded_store, mon_path, recorder):
        source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])
        seeded_store.interrupt(mon_path, ConnectionError("stream reset"))
        seeded_store.put(mon_path, "c", {"order": 2})

        assert len(recorder["errors"]) == 1
        assert len(recorder["snapshots"]) == 1
        assert "mon" not in source.active_keys

    def test_subscription_error_passed_through(self, source, seeded_store, mon_path, recorder):
        original = SubscriptionError("already wrapped", key="mon")
        source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])
        seeded_store.interrupt(mon_path, original)

        assert recorder["errors"][0][1] is original


class TestUnsubscribe:
    """Tests for unsubscribe and close."""

    def test_unsubscribe_stops_events(self, source, seeded_store, mon_path, recorder):
        unsubscribe = source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])
        unsubscribe()
        seeded_store.put(mon_path, "c", {"order": 2})

        assert len(recorder["snapshots"]) == 1
        assert seeded_store.listener_count(mon_path) == 0

    def test_unsubscribe_is_idempotent(self, source, recorder):
        unsubscribe = source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])
        unsubscribe()
        unsubscribe()
        assert source.active_keys == []

    def test_close_stops_everything(self, source, store, recorder):
        source.subscribe_all(recorder["on_snapshot"], recorder["on_error"])
        assert store.listener_count() == 7

        source.close()
        assert store.listener_count() == 0
        assert source.active_keys == []

    def test_resubscribe_after_unsubscribe(self, source, recorder):
        unsubscribe = source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])
        unsubscribe()
        source.subscribe("mon", recorder["on_snapshot"], recorder["on_error"])
        assert source.active_keys == ["mon"]
