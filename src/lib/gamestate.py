"""
Game state store

GameStateStore holds the live story state: the data map, locked keys,
once keys, the error log and the checkpoint map. All writes take the
store's lock and swap in fully built containers, so readers never observe
a partially merged map.

StateManager is the working copy a render pass mutates. It reads and writes
dot-separated paths, records every change, and can spawn nested scopes
(used by batch, for and deferred blocks). Changes reach the store only
through GameStateStore.changes_commit, which applies a whole pass in one
step.

Invariants:
- A locked key is never altered by a write until it is unlocked; unsetting
  a top-level key removes it together with its lock and once flag
- A once key, once marked, stays marked until reset or unset
- Checkpoint storage discipline is chosen by the caller (CheckpointMode)

Example:
    >>> store = GameStateStore({"hp": 10})
    >>> store.key_lock("hp")
    >>> store.gameData_set({"hp": 0, "gold": 5})
    {'gold'}
    >>> store.gameData
    {'hp': 10, 'gold': 5}
"""

import copy
import json
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from ..config import appsettings
from ..models.game import (
    Checkpoint,
    CheckpointMode,
    SavedGame,
    StateChanges,
    range_make,
)
from .log import LOG
from .storage import Storage


Subscriber = Callable[[Set[str]], None]


def timestamp_now() -> int:
    """Milliseconds since the epoch"""
    return int(time.time() * 1000)


def path_get(data: Mapping[str, Any], path: str) -> Any:
    """Resolve a dot-separated path; missing segments yield None"""
    current: Any = data
    for part in path.split('.'):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            position = int(part)
            current = current[position] if position < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


class StateManager:
    """
    Mutable working copy of game state for one pass or scope

    Writes to locked top-level keys are ignored. Every accepted change is
    recorded so that a scope can hand its changes to its parent
    (changes_apply) or the engine can commit them to the store.

    Attributes:
        data: Current data map (deep copy of the source)
        locked: Locked keys visible to this manager
        once: Once keys visible to this manager
        modified: Top-level keys touched since creation
    """

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        locked: Optional[Set[str]] = None,
        once: Optional[Set[str]] = None,
        scoped: bool = False,
    ):
        self.data: Dict[str, Any] = copy.deepcopy(dict(data or {}))
        self.locked: Set[str] = set(locked or ())
        self.once: Set[str] = set(once or ())
        self.scoped = scoped
        self.modified: Set[str] = set()
        self.pending = StateChanges()

    def value_get(self, path: str) -> Any:
        return path_get(self.data, path)

    def value_has(self, path: str) -> bool:
        return self.value_get(path) is not None

    def key_isLocked(self, path: str) -> bool:
        return path.split('.')[0] in self.locked

    def record(self, key: str) -> None:
        self.modified.add(key)
        if key in self.pending.unset:
            self.pending.unset.remove(key)
        self.pending.data[key] = copy.deepcopy(self.data[key])

    def value_set(self, path: str, value: Any, lock: bool = False, once: bool = False) -> bool:
        """
        Write a value at a dot-separated path.

        Args:
            path: "key" or "key.sub.field"
            value: New value
            lock: Lock the top-level key after writing
            once: Mark the top-level key as a once key

        Returns:
            False when the top-level key is locked and nothing was written
        """
        parts = path.split('.')
        top = parts[0]
        if top in self.locked:
            LOG(f"state: write to locked key '{top}' ignored", level=2)
            return False
        if len(parts) == 1:
            self.data[top] = copy.deepcopy(value)
        else:
            base = self.data.get(top)
            base = dict(base) if isinstance(base, dict) else {}
            cursor = base
            for part in parts[1:-1]:
                following = cursor.get(part)
                following = dict(following) if isinstance(following, dict) else {}
                cursor[part] = following
                cursor = following
            cursor[parts[-1]] = copy.deepcopy(value)
            self.data[top] = base
        if once:
            self.once_mark(top)
        self.record(top)
        if lock:
            self.key_lock(top)
        return True

    def range_set(self, path: str, lower: float, upper: float, value: float, lock: bool = False) -> bool:
        """Store a clamped {min, max, value} range; unchanged ranges are not rewritten"""
        target = range_make(lower, upper, value)
        if self.value_get(path) == target:
            return False
        return self.value_set(path, target, lock=lock)

    def value_unset(self, path: str) -> bool:
        """
        Remove a value at a dot-separated path.

        Removing a top-level key also clears its lock and once flag, so a
        locked key can be unset and written again. Nested paths under a
        locked key are left alone.

        Returns:
            False when nothing was removed
        """
        parts = path.split('.')
        top = parts[0]
        if len(parts) == 1:
            existed = top in self.data or top in self.locked or top in self.once
            self.data.pop(top, None)
            self.pending.data.pop(top, None)
            if top not in self.pending.unset:
                self.pending.unset.append(top)
            self.modified.add(top)
            self.key_unlock(top)
            self.once.discard(top)
            if top in self.pending.once:
                self.pending.once.remove(top)
            return existed

        if top in self.locked:
            LOG(f"state: unset below locked key '{top}' ignored", level=2)
            return False
        base = self.data.get(top)
        if not isinstance(base, dict):
            return False
        base = dict(base)
        cursor = base
        for part in parts[1:-1]:
            following = cursor.get(part)
            if not isinstance(following, dict):
                return False
            cursor[part] = dict(following)
            cursor = cursor[part]
        if parts[-1] not in cursor:
            return False
        del cursor[parts[-1]]
        self.data[top] = base
        self.record(top)
        return True

    def key_lock(self, key: str) -> None:
        self.locked.add(key)
        if key in self.pending.unlocks:
            self.pending.unlocks.remove(key)
        if key not in self.pending.locks:
            self.pending.locks.append(key)
        self.modified.add(key)

    def key_unlock(self, key: str) -> None:
        self.locked.discard(key)
        if key in self.pending.locks:
            self.pending.locks.remove(key)
        if key not in self.pending.unlocks:
            self.pending.unlocks.append(key)

    def once_mark(self, key: str) -> None:
        self.once.add(key)
        if key not in self.pending.once:
            self.pending.once.append(key)

    def once_has(self, key: str) -> bool:
        return key in self.once

    def changes_get(self) -> StateChanges:
        """Copy of the changes recorded so far"""
        return StateChanges(
            data=copy.deepcopy(self.pending.data),
            unset=list(self.pending.unset),
            locks=list(self.pending.locks),
            once=list(self.pending.once),
            unlocks=list(self.pending.unlocks),
        )

    def changes_apply(self, changes: StateChanges) -> None:
        """Replay changes recorded by a child scope onto this manager"""
        for key in changes.unlocks:
            self.key_unlock(key)
        for key in changes.unset:
            self.value_unset(key)
        for key, value in changes.data.items():
            self.value_set(key, value)
        for key in changes.locks:
            self.key_lock(key)
        for key in changes.once:
            self.once_mark(key)

    def scope_create(self) -> 'StateManager':
        """A child manager seeded with this manager's current state"""
        return StateManager(self.data, self.locked, self.once, scoped=True)


class GameStateStore:
    """
    Thread-safe store of the live game state

    Attributes:
        currentPassageId: Passage the story is on (set by the engine, goto
                          and load)
    """

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}
        self._initial: Dict[str, Any] = {}
        self._locked: Set[str] = set()
        self._once: Set[str] = set()
        self._errors: List[str] = []
        self._checkpoints: Dict[str, Checkpoint] = {}
        self._subscribers: List[Subscriber] = []
        self.currentPassageId: Optional[str] = None
        if data is not None:
            self.init(data)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @property
    def gameData(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)

    @property
    def lockedKeys(self) -> Set[str]:
        with self._lock:
            return set(self._locked)

    @property
    def onceKeys(self) -> Set[str]:
        with self._lock:
            return set(self._once)

    @property
    def errors(self) -> List[str]:
        with self._lock:
            return list(self._errors)

    @property
    def checkpoints(self) -> Dict[str, Checkpoint]:
        with self._lock:
            return {cid: copy.deepcopy(cp) for cid, cp in self._checkpoints.items()}

    def value_get(self, path: str, default: Any = None) -> Any:
        with self._lock:
            value = path_get(self._data, path)
        return default if value is None else copy.deepcopy(value)

    def stateManager_create(self) -> StateManager:
        """A working copy of the current data, locks and once keys"""
        with self._lock:
            return StateManager(self._data, self._locked, self._once)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def init(self, data: Mapping[str, Any]) -> None:
        """Set live data and remember it as the snapshot restored by reset()"""
        with self._lock:
            self._initial = copy.deepcopy(dict(data))
            self._data = copy.deepcopy(dict(data))
            self._locked = set()
            self._once = set()
            self._errors = []
        self.subscribers_notify(set(data))

    def gameData_set(self, partial: Mapping[str, Any]) -> Set[str]:
        """
        Merge partial data, skipping locked keys.

        Returns:
            Keys actually written
        """
        with self._lock:
            merged = dict(self._data)
            written: Set[str] = set()
            for key, value in partial.items():
                if key in self._locked:
                    continue
                merged[key] = copy.deepcopy(value)
                written.add(key)
            self._data = merged
        self.subscribers_notify(written)
        return written

    def gameData_unset(self, key: str) -> bool:
        """
        Remove a key and clear its lock and once flag.

        Returns:
            True when the key held data
        """
        with self._lock:
            removed = key in self._data
            data = dict(self._data)
            data.pop(key, None)
            self._data = data
            self._locked = self._locked - {key}
            self._once = self._once - {key}
        self.subscribers_notify({key})
        return removed

    def key_lock(self, key: str) -> None:
        with self._lock:
            self._locked = self._locked | {key}

    def key_unlock(self, key: str) -> None:
        with self._lock:
            self._locked = self._locked - {key}

    def key_isLocked(self, key: str) -> bool:
        with self._lock:
            return key in self._locked

    def once_mark(self, key: str) -> None:
        with self._lock:
            self._once = self._once | {key}

    def once_has(self, key: str) -> bool:
        with self._lock:
            return key in self._once

    def error_add(self, message: str) -> None:
        LOG(f"error: {message}", level=1)
        with self._lock:
            self._errors = self._errors + [message]

    def errors_clear(self) -> None:
        with self._lock:
            self._errors = []

    def reset(self) -> None:
        """Restore data from the init() snapshot; clear locks, once keys and errors"""
        with self._lock:
            changed = set(self._data) | set(self._initial)
            self._data = copy.deepcopy(self._initial)
            self._locked = set()
            self._once = set()
            self._errors = []
        self.subscribers_notify(changed)

    def changes_commit(self, changes: StateChanges, errors: Optional[List[str]] = None) -> Set[str]:
        """
        Apply the changes of a completed pass in one atomic step.

        Args:
            changes: Changes recorded by the pass's StateManager
            errors: Validation errors recorded during the pass

        Returns:
            Keys whose data, lock or once state changed
        """
        with self._lock:
            data = dict(self._data)
            locked = set(self._locked)
            once = set(self._once)
            locked.difference_update(changes.unlocks)
            for key in changes.unset:
                data.pop(key, None)
                locked.discard(key)
                once.discard(key)
            for key, value in changes.data.items():
                if key not in locked:
                    data[key] = copy.deepcopy(value)
            locked.update(changes.locks)
            once.update(changes.once)
            self._data, self._locked, self._once = data, locked, once
            if errors:
                self._errors = self._errors + list(errors)
        for message in errors or ():
            LOG(f"error: {message}", level=1)
        changed = changes.keys()
        self.subscribers_notify(changed)
        return changed

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def checkpoint_save(
        self,
        checkpoint_id: str,
        data: Optional[Checkpoint] = None,
        mode: CheckpointMode = CheckpointMode.MULTI_SLOT,
        currentPassageId: Optional[str] = None,
        label: Optional[str] = None,
    ) -> Checkpoint:
        """
        Store a checkpoint with a fresh timestamp.

        Args:
            checkpoint_id: Checkpoint id
            data: Snapshot to store; the live state when omitted
            mode: SINGLE_SLOT replaces the whole map with this entry;
                  MULTI_SLOT adds or overwrites by id
            currentPassageId: Passage recorded with a live-state snapshot
            label: Label recorded with a live-state snapshot

        Returns:
            The stored checkpoint
        """
        with self._lock:
            if data is None:
                data = Checkpoint(
                    gameData=self._data,
                    lockedKeys=self._locked,
                    onceKeys=self._once,
                    currentPassageId=currentPassageId if currentPassageId is not None else self.currentPassageId,
                    label=label,
                )
            checkpoint = Checkpoint(
                gameData=copy.deepcopy(data.gameData),
                lockedKeys=set(data.lockedKeys),
                onceKeys=set(data.onceKeys),
                currentPassageId=data.currentPassageId,
                label=data.label,
                timestamp=timestamp_now(),
            )
            if mode is CheckpointMode.SINGLE_SLOT:
                self._checkpoints = {checkpoint_id: checkpoint}
            else:
                checkpoints = dict(self._checkpoints)
                checkpoints[checkpoint_id] = checkpoint
                self._checkpoints = checkpoints
        LOG(f"checkpoint: saved '{checkpoint_id}' ({mode.value})", level=2)
        return copy.deepcopy(checkpoint)

    def checkpoint_load(self, checkpoint_id: Optional[str] = None) -> Optional[Checkpoint]:
        """
        Restore data, locks and once keys from a checkpoint.

        Without an id the most recent checkpoint is used (the only one under
        the single-slot discipline).

        Returns:
            The checkpoint, or None after recording "Checkpoint not found"
        """
        with self._lock:
            if checkpoint_id:
                checkpoint = self._checkpoints.get(checkpoint_id)
            else:
                checkpoint = max(
                    self._checkpoints.values(),
                    key=lambda cp: cp.timestamp,
                    default=None,
                )
            if checkpoint is None:
                message = "Checkpoint not found" + (f": {checkpoint_id}" if checkpoint_id else "")
                self._errors = self._errors + [message]
            else:
                changed = set(self._data) | set(checkpoint.gameData)
                self._data = copy.deepcopy(checkpoint.gameData)
                self._locked = set(checkpoint.lockedKeys)
                self._once = set(checkpoint.onceKeys)
        if checkpoint is None:
            LOG(f"error: {message}", level=1)
            return None
        self.subscribers_notify(changed)
        return copy.deepcopy(checkpoint)

    def checkpoint_remove(self, checkpoint_id: str) -> None:
        with self._lock:
            checkpoints = dict(self._checkpoints)
            checkpoints.pop(checkpoint_id, None)
            self._checkpoints = checkpoints

    def checkpoints_clear(self) -> None:
        with self._lock:
            self._checkpoints = {}

    # ------------------------------------------------------------------
    # Persisted saves
    # ------------------------------------------------------------------

    def savedGame_make(self, currentPassageId: Optional[str] = None) -> SavedGame:
        with self._lock:
            return SavedGame(
                gameData=copy.deepcopy(self._data),
                lockedKeys=sorted(self._locked),
                onceKeys=sorted(self._once),
                checkpoints={cid: copy.deepcopy(cp) for cid, cp in self._checkpoints.items()},
                currentPassageId=currentPassageId if currentPassageId is not None else self.currentPassageId,
            )

    def game_save(
        self,
        storage: Storage,
        save_id: Optional[str] = None,
        currentPassageId: Optional[str] = None,
    ) -> bool:
        """
        Serialize the store to JSON and write it under a save slot.

        Returns:
            False after recording "Failed to save game state"
        """
        return self.savedGame_write(storage, save_id, self.savedGame_make(currentPassageId))

    def savedGame_write(self, storage: Storage, save_id: Optional[str], saved: SavedGame) -> bool:
        key = appsettings.saveKey_make(save_id)
        payload = saved.to_dict()
        try:
            storage.set(key, json.dumps(payload).encode('utf-8'))
        except (OSError, TypeError, ValueError) as error:
            LOG(f"save: {key} failed: {error}", level=1)
            self.error_add("Failed to save game state")
            return False
        LOG(f"save: wrote slot '{key}'", level=2)
        return True

    def game_load(self, storage: Storage, save_id: Optional[str] = None) -> Optional[SavedGame]:
        """
        Re-seed the store from a save slot.

        Returns:
            The loaded SavedGame, or None when the slot is missing or broken.
            A payload without a current passage is applied and reported.
        """
        key = appsettings.saveKey_make(save_id)
        try:
            raw = storage.get(key)
        except OSError as error:
            LOG(f"load: {key} failed: {error}", level=1)
            self.error_add("Failed to load game state")
            return None
        if raw is None:
            self.error_add("No saved game found" + (f": {save_id}" if save_id else ""))
            return None
        try:
            payload = json.loads(raw.decode('utf-8'))
            saved = SavedGame.from_dict(payload)
        except (ValueError, AttributeError, TypeError) as error:
            LOG(f"load: {key} is malformed: {error}", level=1)
            self.error_add("Failed to load game state")
            return None
        with self._lock:
            changed = set(self._data) | set(saved.gameData)
            self._data = copy.deepcopy(saved.gameData)
            self._locked = set(saved.lockedKeys)
            self._once = set(saved.onceKeys)
            self._checkpoints = dict(saved.checkpoints)
            if saved.currentPassageId:
                self.currentPassageId = saved.currentPassageId
        if not saved.currentPassageId:
            self.error_add("Saved game state has no current passage")
        self.subscribers_notify(changed)
        return saved

    def save_clear(self, storage: Storage, save_id: Optional[str] = None) -> bool:
        key = appsettings.saveKey_make(save_id)
        try:
            storage.delete(key)
        except OSError as error:
            LOG(f"clearSave: {key} failed: {error}", level=1)
            self.error_add("Failed to clear saved game state")
            return False
        return True

    def saves_list(self, storage: Storage, prefix: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Metadata of stored saves: [{id, currentPassageId}], skipping
        entries that are not valid JSON objects.
        """
        entries: List[Dict[str, Any]] = []
        for key in storage.list(prefix if prefix is not None else appsettings.default_save_id):
            raw = storage.get(key)
            if raw is None:
                continue
            try:
                payload = json.loads(raw.decode('utf-8'))
            except ValueError:
                continue
            if not isinstance(payload, dict):
                continue
            entries.append({
                'id': key,
                'currentPassageId': payload.get('currentPassageId'),
                'label': payload.get('label'),
                'timestamp': payload.get('timestamp'),
            })
        return entries

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            A function that removes the listener
        """
        with self._lock:
            self._subscribers = self._subscribers + [callback]

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers = [cb for cb in self._subscribers if cb is not callback]

        return unsubscribe

    def subscribers_notify(self, keys: Set[str]) -> None:
        if not keys:
            return
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(set(keys))
