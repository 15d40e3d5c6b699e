"""Tests for DraftStore.

Tests cover:
- Snapshot application for clean and dirty buckets
- Local edits (reorder, insert, remove, clear) and the dirty flag
- Discard restoring the original
- Folding a commit, including edits made while it was in flight
"""

import pytest
from propsync.draft import DraftStore
from propsync.errors import InvariantViolation, SubscriptionError
from propsync.schemas import DAYS, OrderedItem


def _items(*ids):
    return [OrderedItem(id=item_id, order=i, fields={"title": item_id.upper()}) for i, item_id in enumerate(ids)]


@pytest.fixture
def drafts() -> DraftStore:
    store = DraftStore(DAYS)
    store.apply_snapshot("mon", _items("a", "b", "c"))
    return store


class TestSnapshots:
    """Tests for apply_snapshot and mark_error."""

    def test_new_buckets_are_loading(self):
        store = DraftStore(DAYS)
        assert store.bucket("mon").loading is True
        assert store.keys == list(DAYS)

    def test_unknown_key(self):
        with pytest.raises(InvariantViolation, match="Unknown bucket key"):
            DraftStore(DAYS).bucket("holiday")

    def test_clean_bucket_accepts_snapshot(self, drafts):
        view = drafts.view("mon")
        assert [i.id for i in view.items] == ["a", "b", "c"]
        assert view.loading is False
        assert view.dirty is False
        assert drafts.bucket("mon").original == _items("a", "b", "c")

    def test_draft_and_original_are_separate_copies(self, drafts):
        b = drafts.bucket("mon")
        b.draft[0].fields["title"] = "changed"
        assert b.original[0].get("title") == "A"

    def test_dirty_bucket_drops_snapshot(self, drafts):
        drafts.remove("mon", "c")
        accepted = drafts.apply_snapshot("mon", _items("a", "b", "c", "d"))

        assert accepted is False
        assert [i.id for i in drafts.bucket("mon").draft] == ["a", "b"]
        assert [i.id for i in drafts.bucket("mon").original] == ["a", "b", "c"]

    def test_snapshot_is_deduplicated(self):
        store = DraftStore(DAYS)
        store.apply_snapshot("tue", _items("a", "b") + _items("a"))
        assert [i.id for i in store.bucket("tue").draft] == ["a", "b"]

    def test_error_keeps_state(self, drafts):
        error = SubscriptionError("gone", key="mon")
        drafts.mark_error("mon", error)

        view = drafts.view("mon")
        assert view.error is error
        assert [i.id for i in view.items] == ["a", "b", "c"]

    def test_error_ends_loading(self):
        store = DraftStore(DAYS)
        store.mark_error("wed", SubscriptionError("denied"))
        assert store.bucket("wed").loading is False

    def test_later_snapshot_clears_error(self, drafts):
        drafts.mark_error("mon", SubscriptionError("gone"))
        drafts.apply_snapshot("mon", _items("a"))
        assert drafts.bucket("mon").error is None


class TestEdits:
    """Tests for local edits."""

    def test_reorder_by_ids(self, drafts):
        drafts.reorder("mon", ["c", "a", "b"])
        assert [i.id for i in drafts.bucket("mon").draft] == ["c", "a", "b"]
        assert drafts.is_dirty("mon")

    def test_reorder_keeps_item_objects(self, drafts):
        before = {i.id: i for i in drafts.bucket("mon").draft}
        drafts.reorder("mon", list(reversed(drafts.bucket("mon").draft)))
        assert all(before[i.id] is i for i in drafts.bucket("mon").draft)

    @pytest.mark.parametrize("ids", [["a", "b"], ["a", "b", "c", "d"], ["a", "a", "b"]])
    def test_reorder_needs_same_items(self, drafts, ids):
        with pytest.raises(InvariantViolation, match="same items"):
            drafts.reorder("mon", ids)
        assert not drafts.is_dirty("mon")

    def test_insert_gets_temp_id_and_provisional_order(self, drafts):
        item = drafts.insert("mon", {"title": "Boiler check"})
        assert item.is_temporary
        assert item.order == 9999
        assert item.get("title") == "Boiler check"
        assert drafts.bucket("mon").draft[-1] is item
        assert drafts.is_dirty("mon")

    def test_inserts_stack_after_each_other(self, drafts):
        first = drafts.insert("mon", title="one")
        second = drafts.insert("mon", title="two")
        assert second.order == first.order + 1

    def test_insert_ignores_given_order(self, drafts):
        item = drafts.insert("mon", {"title": "x", "order": 0})
        assert item.order == 9999
        assert "order" not in item.fields

    def test_insert_ordered_item_with_store_id(self):
        store = DraftStore(DAYS)
        store.apply_snapshot("tue", [])
        item = store.insert("tue", OrderedItem(id="known"), title="moved")
        assert item.id == "known"
        assert item.get("title") == "moved"

    def test_insert_duplicate_store_id(self, drafts):
        with pytest.raises(InvariantViolation, match="already in bucket"):
            drafts.insert("mon", {"id": "a"})

    def test_insert_same_temp_item_twice(self, drafts):
        item = drafts.insert("mon", {"title": "X"})
        with pytest.raises(InvariantViolation, match="already in bucket"):
            drafts.insert("mon", item)
        ids = [i.id for i in drafts.bucket("mon").draft]
        assert len(ids) == len(set(ids)) == 4

    def test_insert_from_other_bucket_leaves_it_untouched(self, drafts):
        drafts.apply_snapshot("tue", [])
        source = drafts.bucket("mon").draft[0]

        inserted = drafts.insert("tue", source)

        assert inserted is not source
        assert inserted.id == "a"
        assert (source.id, source.order) == ("a", 0)
        assert not drafts.is_dirty("mon")
        assert drafts.bucket("mon").draft == drafts.bucket("mon").original

    def test_insert_copies_fields(self, drafts):
        drafts.apply_snapshot("tue", [])
        source = OrderedItem(id="", fields={"assignedWorkerIds": ["w1"]})
        inserted = drafts.insert("tue", source)
        inserted.fields["assignedWorkerIds"].append("w2")
        assert source.fields["assignedWorkerIds"] == ["w1"]
        assert source.id == ""

    def test_insert_inactive(self, drafts):
        assert drafts.insert("mon", {"active": False}).active is False

    def test_remove(self, drafts):
        removed = drafts.remove("mon", "b")
        assert removed.id == "b"
        assert [i.id for i in drafts.bucket("mon").draft] == ["a", "c"]

    def test_remove_unknown(self, drafts):
        with pytest.raises(InvariantViolation, match="not in bucket"):
            drafts.remove("mon", "zzz")

    def test_clear(self, drafts):
        drafts.clear("mon")
        assert drafts.bucket("mon").draft == []
        assert drafts.dirty_keys() == ["mon"]

    def test_every_edit_bumps_revision(self, drafts):
        start = drafts.bucket("mon").revision
        drafts.insert("mon", title="x")
        drafts.reorder("mon", ["c", "b", "a", drafts.bucket("mon").draft[-1].id])
        assert drafts.bucket("mon").revision == start + 2


class TestDiscard:
    """Tests for discard."""

    def test_discard_restores_original(self, drafts):
        drafts.remove("mon", "b")
        drafts.insert("mon", title="new")

        assert drafts.discard("mon") is True
        assert [i.id for i in drafts.bucket("mon").draft] == ["a", "b", "c"]
        assert not drafts.is_dirty("mon")

    def test_discard_clean_bucket(self, drafts):
        assert drafts.discard("mon") is False

    def test_discard_while_saving(self, drafts):
        drafts.clear("mon")
        drafts.bucket("mon").saving = True
        with pytest.raises(InvariantViolation, match="while it is saving"):
            drafts.discard("mon")
        assert drafts.bucket("mon").draft == []

    def test_discarded_draft_is_a_copy(self, drafts):
        drafts.clear("mon")
        drafts.discard("mon")
        drafts.bucket("mon").draft[0].fields["title"] = "edited"
        assert drafts.bucket("mon").original[0].get("title") == "A"


class TestFoldCommit:
    """Tests for fold_commit."""

    def test_rewrites_ids_in_place(self, drafts):
        new = drafts.insert("mon", title="new")
        b = drafts.bucket("mon")
        live = list(b.draft)
        committed = [i.copy() for i in live]
        committed[-1].id = "stored"
        for index, item in enumerate(committed):
            item.order = index

        drafts.fold_commit("mon", committed, live, b.revision)

        assert new.id == "stored"
        assert new.order == 3
        assert [i.order for i in b.draft] == [0, 1, 2, 3]
        assert [i.id for i in b.original] == ["a", "b", "c", "stored"]
        assert not b.dirty

    def test_edit_during_commit_stays_dirty(self, drafts):
        drafts.remove("mon", "c")
        b = drafts.bucket("mon")
        started = b.revision
        live = list(b.draft)
        committed = [i.copy() for i in live]

        drafts.insert("mon", title="late")
        drafts.fold_commit("mon", committed, live, started)

        assert b.dirty
        assert [i.id for i in b.original] == ["a", "b"]
        assert len(b.draft) == 3
