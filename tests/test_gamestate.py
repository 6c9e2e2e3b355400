"""
Game state store tests

Tests locking, once keys, scoped state managers, atomic commits,
checkpoints, persisted saves and change notification.
"""

import json

import pytest

from campfire.lib.gamestate import GameStateStore, StateManager, path_get
from campfire.lib.storage import FileStorage, MemoryStorage
from campfire.models.game import Checkpoint, CheckpointMode, StateChanges


class TestLocking:
    """Test that locked keys never change"""

    def test_locked_key_ignores_set(self):
        """gameData_set skips locked keys and writes the rest"""
        store = GameStateStore({"hp": 10})
        store.key_lock("hp")
        written = store.gameData_set({"hp": 0, "gold": 5})
        assert written == {"gold"}
        assert store.gameData == {"hp": 10, "gold": 5}

    @pytest.mark.parametrize("value", [0, None, "x", [1], {"a": 1}])
    def test_locked_key_for_any_value(self, value):
        """No value gets through a lock"""
        store = GameStateStore({"k": 1})
        store.key_lock("k")
        store.gameData_set({"k": value})
        assert store.value_get("k") == 1

    def test_unset_releases_lock(self):
        """Unsetting a locked key removes it together with its lock"""
        store = GameStateStore({"hp": 10})
        store.key_lock("hp")
        assert store.gameData_unset("hp") is True
        assert store.gameData == {}
        assert not store.key_isLocked("hp")
        store.gameData_set({"hp": 3})
        assert store.value_get("hp") == 3

    def test_unlock(self):
        """Unlocked keys are writable again"""
        store = GameStateStore({"hp": 10})
        store.key_lock("hp")
        store.key_unlock("hp")
        store.gameData_set({"hp": 1})
        assert store.value_get("hp") == 1

    def test_commit_respects_locks(self):
        """A committed pass cannot overwrite a locked key"""
        store = GameStateStore({"hp": 10})
        store.key_lock("hp")
        store.changes_commit(StateChanges(data={"hp": 0}))
        assert store.value_get("hp") == 10

    def test_commit_unset_releases_lock(self):
        """A committed unset drops the key, its lock and its once flag"""
        store = GameStateStore({"hp": 10})
        store.key_lock("hp")
        store.once_mark("hp")
        store.changes_commit(StateChanges(unset=["hp"], unlocks=["hp"]))
        assert store.gameData == {}
        assert store.lockedKeys == set()
        assert store.onceKeys == set()


class TestOnceAndReset:
    """Test once keys, unset and reset"""

    def test_unset_clears_once(self):
        """Removing a key also clears its once flag"""
        store = GameStateStore({"seen": True})
        store.once_mark("seen")
        store.gameData_unset("seen")
        assert not store.once_has("seen")

    def test_reset_restores_init_snapshot(self):
        """reset() returns to init() data and clears locks, once keys and errors"""
        store = GameStateStore({"hp": 10})
        store.gameData_set({"hp": 3, "gold": 1})
        store.key_lock("hp")
        store.once_mark("intro")
        store.error_add("oops")
        store.reset()
        assert store.gameData == {"hp": 10}
        assert store.lockedKeys == set()
        assert store.onceKeys == set()
        assert store.errors == []

    def test_snapshots_are_copies(self):
        """Mutating a snapshot does not touch the store"""
        store = GameStateStore({"items": [1]})
        store.gameData["items"].append(2)
        assert store.value_get("items") == [1]


class TestStateManager:
    """Test the working copy used by a pass"""

    def test_dot_paths(self):
        """Nested paths create intermediate maps"""
        manager = StateManager()
        manager.value_set("player.stats.hp", 5)
        assert manager.data == {"player": {"stats": {"hp": 5}}}
        assert manager.value_get("player.stats.hp") == 5

    def test_locked_write_refused(self):
        """Writes to a locked top-level key return False"""
        manager = StateManager({"hp": {"max": 1}}, locked={"hp"})
        assert manager.value_set("hp", 2) is False
        assert manager.value_unset("hp.max") is False
        assert manager.data["hp"] == {"max": 1}

    def test_unset_releases_lock(self):
        """Unsetting a locked top-level key records the unlock"""
        manager = StateManager({"hp": 1}, locked={"hp"})
        assert manager.value_unset("hp") is True
        assert manager.value_set("hp", 2) is True
        changes = manager.changes_get()
        assert changes.unlocks == ["hp"]
        assert changes.data == {"hp": 2}
        assert changes.unset == []

    def test_lock_after_write(self):
        """lock=True writes first, then locks"""
        manager = StateManager()
        manager.value_set("seed", 42, lock=True)
        assert manager.value_set("seed", 1) is False
        assert manager.changes_get().locks == ["seed"]

    def test_scope_changes_fold_back(self):
        """A child scope's changes replay onto its parent"""
        parent = StateManager({"a": 1})
        child = parent.scope_create()
        child.value_set("b", 2)
        child.value_unset("a")
        assert parent.data == {"a": 1}
        parent.changes_apply(child.changes_get())
        assert parent.data == {"b": 2}

    def test_range_clamped(self):
        """Range values are clamped into bounds"""
        manager = StateManager()
        manager.range_set("hp", 0, 10, 15)
        assert manager.value_get("hp") == {"min": 0, "max": 10, "value": 10}

    def test_path_get_list_index(self):
        """Numeric segments index lists"""
        assert path_get({"items": ["a", "b"]}, "items.1") == "b"
        assert path_get({"items": ["a"]}, "items.5") is None


class TestCheckpoints:
    """Test checkpoint storage and the round-trip property"""

    def test_round_trip(self):
        """save, mutate, load restores data, locks and once keys exactly"""
        store = GameStateStore({"hp": 10, "inv": ["key"]})
        store.key_lock("inv")
        store.once_mark("intro")
        saved = store.checkpoint_save("cp")

        store.gameData_set({"hp": 1, "gold": 99})
        store.key_unlock("inv")
        store.gameData_unset("inv")
        store.once_mark("other")

        loaded = store.checkpoint_load("cp")
        assert loaded is not None
        assert store.gameData == saved.gameData == {"hp": 10, "inv": ["key"]}
        assert store.lockedKeys == saved.lockedKeys == {"inv"}
        assert store.onceKeys == saved.onceKeys == {"intro"}

    def test_snapshot_is_deep(self):
        """Later mutation does not leak into a stored checkpoint"""
        store = GameStateStore({"inv": ["key"]})
        store.checkpoint_save("cp")
        store.gameData_set({"inv": ["key", "map"]})
        assert store.checkpoints["cp"].gameData == {"inv": ["key"]}

    def test_single_slot_replaces_map(self):
        """SINGLE_SLOT keeps only the newest checkpoint"""
        store = GameStateStore()
        store.checkpoint_save("a")
        store.checkpoint_save("b", mode=CheckpointMode.SINGLE_SLOT)
        assert list(store.checkpoints) == ["b"]

    def test_multi_slot_adds(self):
        """MULTI_SLOT adds by id"""
        store = GameStateStore()
        store.checkpoint_save("a")
        store.checkpoint_save("b")
        assert set(store.checkpoints) == {"a", "b"}

    def test_load_missing(self):
        """A missing checkpoint records an error and changes nothing"""
        store = GameStateStore({"hp": 1})
        assert store.checkpoint_load("nope") is None
        assert store.errors == ["Checkpoint not found: nope"]
        assert store.gameData == {"hp": 1}

    def test_load_most_recent(self):
        """Without an id the most recent checkpoint is loaded"""
        store = GameStateStore()
        store.checkpoint_save("old", Checkpoint(gameData={"v": 1}))
        store.checkpoint_save("new", Checkpoint(gameData={"v": 2}))
        store._checkpoints["old"].timestamp = 1
        store.checkpoint_load()
        assert store.gameData == {"v": 2}

    def test_remove_and_clear(self):
        """Checkpoints can be removed one by one or all at once"""
        store = GameStateStore()
        store.checkpoint_save("a")
        store.checkpoint_save("b")
        store.checkpoint_remove("a")
        assert set(store.checkpoints) == {"b"}
        store.checkpoints_clear()
        assert store.checkpoints == {}


class TestPersistedSaves:
    """Test save slots written through a Storage"""

    def test_save_and_load(self):
        """A save restores data, locks, once keys and the passage"""
        storage = MemoryStorage()
        store = GameStateStore({"hp": 7})
        store.key_lock("hp")
        store.once_mark("intro")
        store.checkpoint_save("cp")
        assert store.game_save(storage, "slot1", currentPassageId="cave")

        other = GameStateStore()
        saved = other.game_load(storage, "slot1")
        assert saved.currentPassageId == "cave"
        assert other.gameData == {"hp": 7}
        assert other.lockedKeys == {"hp"}
        assert other.onceKeys == {"intro"}
        assert set(other.checkpoints) == {"cp"}
        assert other.currentPassageId == "cave"

    def test_payload_format(self):
        """The payload is JSON with sorted key lists"""
        storage = MemoryStorage()
        store = GameStateStore({"b": 1, "a": 2})
        store.key_lock("b")
        store.key_lock("a")
        store.game_save(storage, currentPassageId="start")
        payload = json.loads(storage.get("campfire.save").decode("utf-8"))
        assert payload["lockedKeys"] == ["a", "b"]
        assert payload["currentPassageId"] == "start"
        assert set(payload) == {"gameData", "lockedKeys", "onceKeys", "checkpoints", "currentPassageId"}

    def test_load_missing_slot(self):
        """Loading an empty slot records an error"""
        store = GameStateStore()
        assert store.game_load(MemoryStorage(), "none") is None
        assert store.errors == ["No saved game found: none"]

    def test_load_broken_slot(self):
        """Malformed payloads are reported"""
        storage = MemoryStorage({"campfire.save": b"not json"})
        store = GameStateStore()
        assert store.game_load(storage) is None
        assert store.errors == ["Failed to load game state"]

    def test_load_without_passage(self):
        """A payload with no passage is applied and reported"""
        storage = MemoryStorage({"campfire.save": b'{"gameData": {"x": 1}}'})
        store = GameStateStore()
        store.game_load(storage)
        assert store.gameData == {"x": 1}
        assert store.errors == ["Saved game state has no current passage"]

    def test_save_failure(self):
        """A storage that refuses the write records an error"""

        class BrokenStorage(MemoryStorage):
            def set(self, key, value):
                raise OSError("disk full")

        store = GameStateStore({"x": 1})
        assert store.game_save(BrokenStorage()) is False
        assert store.errors == ["Failed to save game state"]

    def test_clear_and_list(self, tmp_path):
        """File storage lists and clears slots"""
        storage = FileStorage(tmp_path)
        store = GameStateStore({"x": 1})
        store.game_save(storage, "campfire.save.1", currentPassageId="a")
        store.game_save(storage, "campfire.save.2", currentPassageId="b")
        entries = store.saves_list(storage)
        assert [e["currentPassageId"] for e in entries] == ["a", "b"]
        store.save_clear(storage, "campfire.save.1")
        assert [e["id"] for e in store.saves_list(storage)] == ["campfire.save.2"]


class TestFileStorage:
    """Test the directory backend"""

    def test_keys_do_not_collide(self, tmp_path):
        """Keys that differ only in unsafe characters stay separate"""
        storage = FileStorage(tmp_path)
        storage.set("a/b", b"slash")
        storage.set("a_b", b"underscore")
        assert storage.get("a/b") == b"slash"
        assert storage.get("a_b") == b"underscore"

    def test_list_returns_stored_keys(self, tmp_path):
        """list() reports keys as they were written, filtered by prefix"""
        storage = FileStorage(tmp_path)
        for key in ("story/1", "story 2", "other"):
            storage.set(key, b"{}")
        assert storage.list("story") == ["story 2", "story/1"]
        assert storage.list() == ["other", "story 2", "story/1"]

    def test_dot_keys(self, tmp_path):
        """Keys naming the directory itself still get their own file"""
        storage = FileStorage(tmp_path)
        storage.set("..", b"up")
        assert storage.get("..") == b"up"
        assert storage.list() == [".."]

    def test_empty_key(self, tmp_path):
        """Empty keys are rejected"""
        with pytest.raises(ValueError):
            FileStorage(tmp_path).set("", b"")


class TestNotification:
    """Test subscriber callbacks"""

    def test_commit_notifies_changed_keys(self):
        """Subscribers receive the changed keys of a commit"""
        store = GameStateStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)
        store.changes_commit(StateChanges(data={"a": 1}, locks=["b"]))
        unsubscribe()
        store.gameData_set({"c": 1})
        assert seen == [{"a", "b"}]

    def test_commit_records_errors(self):
        """Errors passed to a commit join the store's list"""
        store = GameStateStore()
        store.changes_commit(StateChanges(), ["first", "second"])
        assert store.errors == ["first", "second"]
