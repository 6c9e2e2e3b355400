"""
Persistence directive handlers

    ::save{id="slot1"}        ::load{id="slot1"}        ::clearSave{id="slot1"}
    ::checkpoint{id="cave" label="Entering the cave"}
    ::loadCheckpoint          ::clearCheckpoint

All are leaf directives. The state they capture is the pass state at the
point the directive is visited; the store itself is written by deferred
operations that run after the pass commits, in document order. A pass
that is cancelled therefore never saves, loads or checkpoints anything.

Checkpoints use the single-slot discipline: a new checkpoint replaces every
stored one, and a passage may declare at most one.
"""

import copy
from typing import Any, Optional

from ...models.game import Checkpoint, CheckpointMode, SavedGame
from ...models.nodes import DirectiveKind, DirectiveNode, Node
from ..attributes import DirectiveError, directiveKind_require, key_ensure, quotes_strip
from ..transformer import node_remove


def id_get(directive: DirectiveNode, default: Optional[str] = None) -> Optional[str]:
    raw = (directive.attributes or {}).get('id')
    if isinstance(raw, str) and quotes_strip(raw).strip():
        return quotes_strip(raw).strip()
    return default


def save_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    save_id = id_get(directive, transformer.settings.default_save_id)
    state = transformer.state
    data = copy.deepcopy(state.data)
    locked, once = sorted(state.locked), sorted(state.once)
    passage_id = transformer.context.passage_id
    storage = transformer.storage

    def save(store: Any) -> None:
        saved = SavedGame(
            gameData=data,
            lockedKeys=locked,
            onceKeys=once,
            checkpoints=store.checkpoints,
            currentPassageId=passage_id,
        )
        store.savedGame_write(storage, save_id, saved)

    transformer.deferred_add(save)
    return node_remove(parent, index)


def load_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    save_id = id_get(directive)
    storage = transformer.storage

    def load(store: Any) -> Optional[str]:
        saved = store.game_load(storage, save_id)
        return saved.currentPassageId if saved is not None else None

    transformer.deferred_add(load)
    return node_remove(parent, index)


def clearSave_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    save_id = id_get(directive)
    storage = transformer.storage
    transformer.deferred_add(lambda store: store.save_clear(storage, save_id) and None)
    return node_remove(parent, index)


def checkpoint_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Snapshot the pass state as the passage's checkpoint.

    Ignored inside included passages. A second checkpoint in one passage
    cancels the first, is reported once, and any further ones are dropped
    silently.
    """
    directiveKind_require(directive, DirectiveKind.LEAF)
    context = transformer.context
    if context.include_depth > 0:
        return node_remove(parent, index)
    checkpoint_id = key_ensure((directive.attributes or {}).get('id'))
    if context.checkpoint_error:
        raise DirectiveError(None)
    if context.checkpoint_id:
        existing = context.checkpoint_id
        transformer.deferred_add(lambda store: store.checkpoint_remove(existing))
        context.checkpoint_id = None
        context.checkpoint_error = True
        raise DirectiveError("Multiple checkpoints in a single passage are not allowed")
    context.checkpoint_id = checkpoint_id

    raw_label = (directive.attributes or {}).get('label')
    label = transformer.translator.translate(quotes_strip(raw_label)) if isinstance(raw_label, str) else None
    state = transformer.state
    snapshot = Checkpoint(
        gameData=copy.deepcopy(state.data),
        lockedKeys=set(state.locked),
        onceKeys=set(state.once),
        currentPassageId=context.passage_id,
        label=label,
    )
    transformer.deferred_add(
        lambda store: store.checkpoint_save(checkpoint_id, snapshot, mode=CheckpointMode.SINGLE_SLOT) and None
    )
    return node_remove(parent, index)


def loadCheckpoint_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    if transformer.context.include_depth > 0:
        return node_remove(parent, index)
    checkpoint_id = id_get(directive)

    def load(store: Any) -> Optional[str]:
        checkpoint = store.checkpoint_load(checkpoint_id)
        return checkpoint.currentPassageId if checkpoint is not None else None

    transformer.deferred_add(load)
    return node_remove(parent, index)


def clearCheckpoint_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    if transformer.context.include_depth > 0:
        return node_remove(parent, index)
    checkpoint_id = id_get(directive)
    if checkpoint_id:
        transformer.deferred_add(lambda store: store.checkpoint_remove(checkpoint_id))
    else:
        transformer.deferred_add(lambda store: store.checkpoints_clear())
    return node_remove(parent, index)
