"""
Tests for overlay stores and the mark/star/rename/sort managers.

Every manager test runs against both the in-memory store and the
SQLAlchemy store.
"""

import threading

import pytest

from lyra.core.database import SQLOverlayStore
from lyra.core.models import Conversation, ConversationMetadata, Message
from lyra.core.overlays import (
    MarkManager, MemoryOverlayStore, NamespacedStore, RenameManager, SortManager, StarManager
)


@pytest.fixture(params=["memory", "sql"])
def store(request, temp_dir):
    """Each overlay backend"""
    if request.param == "memory":
        yield MemoryOverlayStore()
    else:
        db = SQLOverlayStore(temp_dir / "overlays.db")
        yield db
        db.close()


def _messages(count):
    return [Message(uuid=f"m{i}", display_text=f"message {i}", index=i) for i in range(count)]


def _conversation(uuid, starred=False):
    return Conversation(metadata=ConversationMetadata(uuid=uuid, is_starred=starred))


# ===========================================================================
# Stores
# ===========================================================================


class TestOverlayStore:
    """get/set/delete/keys/update contract"""

    @pytest.mark.unit
    def test_get_missing_returns_default(self, store):
        assert store.get("nope") is None
        assert store.get("nope", {}) == {}

    @pytest.mark.unit
    def test_set_get_roundtrip_is_a_copy(self, store):
        value = {"a": [1, 2]}
        store.set("k", value)
        value["a"].append(3)
        assert store.get("k") == {"a": [1, 2]}

    @pytest.mark.unit
    def test_delete_and_keys(self, store):
        store.set("marks_a", 1)
        store.set("marks_b", 2)
        store.set("other", 3)
        assert store.keys("marks_") == ["marks_a", "marks_b"]
        store.delete("marks_a")
        store.delete("missing")
        assert store.keys("marks_") == ["marks_b"]

    @pytest.mark.unit
    def test_update_none_deletes(self, store):
        store.set("k", 1)
        store.update("k", lambda _: None)
        assert store.get("k") is None

    @pytest.mark.unit
    def test_concurrent_updates_do_not_lose_writes(self, store):
        def worker():
            for _ in range(20):
                store.update("counter", lambda v: (v or 0) + 1)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.get("counter") == 80

    @pytest.mark.unit
    def test_namespaced_store(self, store):
        ns = NamespacedStore(store, "viewer_")
        ns.set("x", 1)
        assert store.get("viewer_x") == 1
        assert ns.keys() == ["x"]
        ns.update("x", lambda v: v + 1)
        assert ns.get("x") == 2


class TestSQLOverlayStore:
    """Persistence specifics"""

    @pytest.mark.unit
    def test_values_survive_reopen(self, temp_dir):
        path = temp_dir / "persist.db"
        with SQLOverlayStore(path) as db:
            db.set("renames", {"c1": "New"})
        with SQLOverlayStore(path) as db:
            assert db.get("renames") == {"c1": "New"}

    @pytest.mark.unit
    def test_update_rolls_back_on_error(self, temp_dir):
        with SQLOverlayStore(temp_dir / "rollback.db") as db:
            db.set("k", 1)

            def boom(_):
                raise RuntimeError("boom")

            with pytest.raises(RuntimeError):
                db.update("k", boom)
            assert db.get("k") == 1


# ===========================================================================
# Managers
# ===========================================================================


class TestMarkManager:
    """Per-message marks"""

    @pytest.mark.unit
    def test_toggle_on_and_off(self, store):
        marks = MarkManager(store, "file-1")
        assert marks.toggle(3, "important") is True
        assert marks.is_marked(3, "important")
        assert marks.toggle(3, "important") is False
        assert not marks.is_marked(3, "important")

    @pytest.mark.unit
    def test_stored_under_prefixed_key(self, store):
        MarkManager(store, "file-1").set_mark(2, "deleted")
        assert store.get("marks_file-1")["deleted"] == [2]

    @pytest.mark.unit
    def test_batch_and_stats(self, store):
        marks = MarkManager(store, "f")
        marks.batch([1, 2, 3], "completed")
        marks.set_mark(1, "deleted")
        marks.batch([2], "completed", False)
        assert marks.get_marks()["completed"] == {1, 3}
        assert marks.stats() == {"completed": 2, "important": 0, "deleted": 1, "total": 3}

    @pytest.mark.unit
    def test_clear_type_and_all(self, store):
        marks = MarkManager(store, "f")
        marks.set_mark(1, "deleted")
        marks.set_mark(1, "important")
        marks.clear_type("deleted")
        assert marks.get_marks()["deleted"] == set()
        marks.clear_all()
        assert store.get("marks_f") is None

    @pytest.mark.unit
    def test_unknown_type_rejected(self, store):
        with pytest.raises(ValueError):
            MarkManager(store, "f").toggle(1, "favourite")


class TestStarManager:
    """Star overrides over native flags"""

    @pytest.mark.unit
    def test_overlay_wins_over_native(self, store):
        stars = StarManager(store)
        assert stars.is_starred("c1", native=True) is True
        assert stars.toggle("c1", native=True) is False
        assert stars.is_starred("c1", native=True) is False

    @pytest.mark.unit
    def test_toggle_back_removes_override(self, store):
        stars = StarManager(store)
        stars.toggle("c1")
        stars.toggle("c1")
        assert store.get("starred_conversations_v1") is None

    @pytest.mark.unit
    def test_disabled_returns_native(self, store):
        stars = StarManager(store, enabled=False)
        assert stars.toggle("c1", native=True) is True
        assert stars.is_starred("c1", native=False) is False

    @pytest.mark.unit
    def test_stats(self, store):
        stars = StarManager(store)
        conversations = [_conversation("a", True), _conversation("b"), _conversation("c", True)]
        stars.toggle("b")
        stars.toggle("c", native=True)
        assert stars.stats(conversations) == {
            "total_starred": 2, "manually_starred": 1, "manually_unstarred": 1,
        }


class TestRenameManager:
    """Conversation renames"""

    @pytest.mark.unit
    def test_rename_and_get_name(self, store):
        renames = RenameManager(store)
        renames.rename("c1", "  Better title  ")
        assert renames.get_name("c1", "Original") == "Better title"
        assert renames.get_name("c2", "Original") == "Original"
        assert renames.has_rename("c1")

    @pytest.mark.unit
    def test_blank_name_removes(self, store):
        renames = RenameManager(store)
        renames.rename("c1", "x")
        renames.rename("c1", "   ")
        assert not renames.has_rename("c1")

    @pytest.mark.unit
    def test_remove_and_clear(self, store):
        renames = RenameManager(store)
        renames.rename("a", "A")
        renames.rename("b", "B")
        renames.remove("a")
        assert renames.renames() == {"b": "B"}
        renames.clear()
        assert renames.renames() == {}


class TestSortManager:
    """Custom message order"""

    @pytest.mark.unit
    def test_no_order_keeps_list(self, store):
        messages = _messages(3)
        assert SortManager(store, "f").apply(messages) == messages

    @pytest.mark.unit
    def test_move_persists_order(self, store):
        sorter = SortManager(store, "f")
        moved = sorter.move(_messages(3), 2, -2)
        assert [m.index for m in moved] == [2, 0, 1]
        assert sorter.has_custom_order()
        assert [m.index for m in sorter.apply(_messages(3))] == [2, 0, 1]

    @pytest.mark.unit
    def test_out_of_range_move_is_noop(self, store):
        sorter = SortManager(store, "f")
        assert [m.index for m in sorter.move(_messages(3), 0, -1)] == [0, 1, 2]
        assert not sorter.has_custom_order()

    @pytest.mark.unit
    def test_stale_order_ignored(self, store):
        sorter = SortManager(store, "f")
        sorter.set_order([1, 0])
        assert [m.index for m in sorter.apply(_messages(3))] == [0, 1, 2]

    @pytest.mark.unit
    def test_reset(self, store):
        sorter = SortManager(store, "f")
        sorter.set_order([1, 0])
        sorter.reset()
        assert not sorter.has_custom_order()
