"""
Models package for campfire

Contains the node tree, directive, attribute and game state data structures.
"""

from .state import ProgramState, pipeline
from .directives import DirectiveSpec, DirectiveCategory
from .nodes import Node, DirectiveNode, RenderNode, DirectiveKind
from .game import Checkpoint, CheckpointMode, SavedGame, DeckNavState, StateChanges
from .attributes import AttributeSpec, ExtractResult

__all__ = [
    "ProgramState",
    "pipeline",
    "DirectiveSpec",
    "DirectiveCategory",
    "Node",
    "DirectiveNode",
    "RenderNode",
    "DirectiveKind",
    "Checkpoint",
    "CheckpointMode",
    "SavedGame",
    "DeckNavState",
    "StateChanges",
    "AttributeSpec",
    "ExtractResult",
]
