"""
Core library for campfire

Scanner, parser, directive registry, transformer and the state, deck,
localization and storage collaborators a pass runs against.
"""

from .parser import Parser
from .directives import DirectiveRegistry
from .engine import Engine, RenderResult, ValidationFailed
from .gamestate import GameStateStore, StateManager
from .deck import DeckNavigator
from .i18n import MemoryTranslator
from .storage import MemoryStorage, FileStorage
from .log import LOG, state_connectToLogger

__all__ = [
    "Parser",
    "DirectiveRegistry",
    "Engine",
    "RenderResult",
    "ValidationFailed",
    "GameStateStore",
    "StateManager",
    "DeckNavigator",
    "MemoryTranslator",
    "MemoryStorage",
    "FileStorage",
    "LOG",
    "state_connectToLogger",
]
