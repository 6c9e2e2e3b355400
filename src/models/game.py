"""
Game state and navigation models

Checkpoint snapshots, the checkpoint storage disciplines, the persisted
save payload and the deck navigation state.
"""

import copy
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set


class CheckpointMode(Enum):
    """
    Checkpoint storage discipline, chosen by the caller

    SINGLE_SLOT: saving replaces the whole checkpoint map with one entry
                 (the ::checkpoint directive)
    MULTI_SLOT:  saving adds or overwrites one entry by id (host/API use)
    """
    SINGLE_SLOT = "single"
    MULTI_SLOT = "multi"


@dataclass
class Checkpoint:
    """
    Saved snapshot of game state

    Attributes:
        gameData: Deep copy of the data map at save time
        lockedKeys: Locked keys at save time
        onceKeys: Once keys at save time
        currentPassageId: Passage active when the checkpoint was taken
        label: Human readable label
        timestamp: Milliseconds since the epoch
    """
    gameData: Dict[str, Any] = field(default_factory=dict)
    lockedKeys: Set[str] = field(default_factory=set)
    onceKeys: Set[str] = field(default_factory=set)
    currentPassageId: Optional[str] = None
    label: Optional[str] = None
    timestamp: int = 0

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "gameData": copy.deepcopy(self.gameData),
            "lockedKeys": sorted(self.lockedKeys),
            "onceKeys": sorted(self.onceKeys),
            "timestamp": self.timestamp,
        }
        if self.currentPassageId is not None:
            payload["currentPassageId"] = self.currentPassageId
        if self.label is not None:
            payload["label"] = self.label
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Checkpoint":
        return cls(
            gameData=copy.deepcopy(payload.get("gameData") or {}),
            lockedKeys=set(payload.get("lockedKeys") or []),
            onceKeys=set(payload.get("onceKeys") or []),
            currentPassageId=payload.get("currentPassageId"),
            label=payload.get("label"),
            timestamp=int(payload.get("timestamp") or 0),
        )


@dataclass
class SavedGame:
    """
    Persisted save slot payload

    Serialized as JSON: {gameData, lockedKeys, onceKeys, checkpoints,
    currentPassageId}.
    """
    gameData: Dict[str, Any] = field(default_factory=dict)
    lockedKeys: List[str] = field(default_factory=list)
    onceKeys: List[str] = field(default_factory=list)
    checkpoints: Dict[str, Checkpoint] = field(default_factory=dict)
    currentPassageId: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gameData": copy.deepcopy(self.gameData),
            "lockedKeys": sorted(self.lockedKeys),
            "onceKeys": sorted(self.onceKeys),
            "checkpoints": {cid: cp.to_dict() for cid, cp in self.checkpoints.items()},
            "currentPassageId": self.currentPassageId,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SavedGame":
        return cls(
            gameData=copy.deepcopy(payload.get("gameData") or {}),
            lockedKeys=list(payload.get("lockedKeys") or []),
            onceKeys=list(payload.get("onceKeys") or []),
            checkpoints={
                cid: Checkpoint.from_dict(cp)
                for cid, cp in (payload.get("checkpoints") or {}).items()
            },
            currentPassageId=payload.get("currentPassageId"),
        )


@dataclass
class DeckNavState:
    """
    Deck navigation position

    Invariants (maintained by DeckNavigator):
        0 <= currentStep <= maxSteps
        0 <= currentSlide < slidesCount whenever slidesCount > 0
        maxSteps == stepsPerSlide.get(currentSlide, 0) after any transition
    """
    currentSlide: int = 0
    currentStep: int = 0
    maxSteps: int = 0
    slidesCount: int = 0
    stepsPerSlide: Dict[int, int] = field(default_factory=dict)

    def copy(self) -> "DeckNavState":
        return DeckNavState(
            currentSlide=self.currentSlide,
            currentStep=self.currentStep,
            maxSteps=self.maxSteps,
            slidesCount=self.slidesCount,
            stepsPerSlide=dict(self.stepsPerSlide),
        )


def range_is(value: Any) -> bool:
    """True for range values: {"min": n, "max": n, "value": n}"""
    if not isinstance(value, dict):
        return False
    return all(
        isinstance(value.get(part), (int, float)) and not isinstance(value.get(part), bool)
        for part in ("min", "max", "value")
    )


def range_make(lower: float, upper: float, value: float) -> Dict[str, float]:
    """Build a range value with `value` clamped into [lower, upper]"""
    if lower > upper:
        lower, upper = upper, lower
    return {"min": lower, "max": upper, "value": min(max(value, lower), upper)}


@dataclass
class StateChanges:
    """
    Pending changes recorded by a scoped StateManager

    Attributes:
        data: Top-level keys written, with their new values
        unset: Top-level keys removed
        locks: Keys locked
        once: Once keys marked
        unlocks: Keys whose lock was released (by unset)
    """
    data: Dict[str, Any] = field(default_factory=dict)
    unset: List[str] = field(default_factory=list)
    locks: List[str] = field(default_factory=list)
    once: List[str] = field(default_factory=list)
    unlocks: List[str] = field(default_factory=list)

    def keys(self) -> Set[str]:
        return set(self.data) | set(self.unset) | set(self.locks) | set(self.once) | set(self.unlocks)

    def empty(self) -> bool:
        return not self.keys()
