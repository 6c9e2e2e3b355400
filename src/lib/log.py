"""
Verbosity-gated logging for the engine and the CLI

Library code calls LOG() freely; nothing is printed until a caller binds
an object with a ``verbosity`` attribute (normally the CLI ProgramState)
via state_connectToLogger(). Engine, handlers and stores therefore stay
silent when campfire is embedded or under test.

Verbosity levels map onto loguru levels:
    1 → INFO    directive errors, pass summaries
    2 → DEBUG   state writes, unknown directives, storage traffic
    3 → TRACE   scanner tokens and handler dispatch

Usage:
    from campfire.lib.log import LOG, state_connectToLogger

    state_connectToLogger(state)
    LOG("Unknown directive: sparkle", level=2)
"""

from loguru import logger
from typing import Any, Optional
from contextvars import ContextVar
import sys

_bound_state: ContextVar[Optional[Any]] = ContextVar('campfire_log_state', default=None)

LEVEL_NAMES = {1: "INFO", 2: "DEBUG", 3: "TRACE"}

logger_format = (
    "<green>{time:HH:mm:ss}</green> │ "
    "<level>{level: <5}</level> │ "
    "<cyan>{module: <12}</cyan>:<cyan>{line: <4}</cyan> ║ "
    "<level>{message}</level>"
)

logger.remove()
logger.add(sys.stderr, format=logger_format, level="TRACE")


def state_connectToLogger(state: Any) -> None:
    """
    Bind the verbosity source for LOG() in the current context.

    Args:
        state: Anything with a ``verbosity`` attribute; None silences LOG()
    """
    _bound_state.set(state)


def LOG(message: str, level: int = 1, **kwargs: Any) -> None:
    """
    Emit ``message`` when the bound verbosity is at least ``level``.

    Args:
        message: Text to log
        level: Required verbosity, 1 to 3; higher values log as TRACE
        **kwargs: Passed through to loguru for message formatting

    Example:
        LOG(f"checkpoint: saved '{checkpoint_id}'", level=2)
    """
    state = _bound_state.get()
    if state is None or getattr(state, 'verbosity', 0) < level:
        return
    logger.opt(depth=1).log(LEVEL_NAMES.get(level, "TRACE"), message, **kwargs)
