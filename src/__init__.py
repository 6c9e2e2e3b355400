"""
campfire - Interactive fiction directive engine

Markdown passages annotated with :text, ::leaf and :::container directives
are transformed against a shared game state into a render tree.
"""

__version__ = "1.0.0"

from .lib import Engine, Parser, DirectiveRegistry, LOG, state_connectToLogger

__all__ = ["Engine", "Parser", "DirectiveRegistry", "LOG", "state_connectToLogger", "__version__"]
