"""
Directive tree transformer

Walks a parsed document tree and hands every directive to its registered
handler. Handlers rewrite the tree in place: they replace a directive with
RenderNode output, remove it, or run nested content through block_run()
before deciding what to emit.

Handler contract:
    handler(directive, parent, index, transformer) -> Optional[int]

    An int is the index of the next sibling to visit; the replaced output
    is not visited again. None lets the walker descend into the directive's
    children and continue with index + 1. Handlers report validation
    problems by raising DirectiveError before they touch the tree; the
    walker records the message, drops the directive and, for containers,
    any closing marker left behind.

Container resolution runs Scanning -> LabelStripped -> ChildrenTransformed
-> MarkerRemoved -> Emitted, or ends in Removed on a validation failure.

State mutations go to the transformer's StateManager, so later directives
in the same pass see them at once. Nothing reaches the GameStateStore until
the engine commits the pass.
"""

import random
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from ..config import appsettings
from ..config.settings import AppSettings
from ..models.directives import IGNORED_ATTRIBUTES, RESERVED_ATTRIBUTE_ERROR, reserved_is
from ..models.nodes import (
    DirectiveKind,
    DirectiveNode,
    Node,
    RenderNode,
    label_strip,
    node_toString,
    text_make,
)
from .attributes import DirectiveError, attributes_interpolate
from .deck import DeckNavigator
from .expression import Evaluator
from .gamestate import StateManager
from .i18n import MemoryTranslator, Translator
from .log import LOG
from .parser import Parser
from .storage import MemoryStorage, Storage


# Render conversion of plain markup nodes
HEADING_TAGS = {depth: f"h{depth}" for depth in range(1, 7)}

# Parents whose whitespace-only text children carry no content
BLOCK_TAGS = frozenset({"root", "deck", "slide"})

_WHITESPACE = re.compile(r'\s+')

DeferredOp = Callable[[Any], Optional[str]]


class StructuralError(TypeError):
    """Processed output held something that is not a document node"""


class TransformCancelled(RuntimeError):
    """The caller abandoned the pass; its state changes must be discarded"""


@dataclass
class PassContext:
    """
    Book-keeping of one transformation pass

    Attributes:
        passage_id: Passage being transformed
        errors: Validation messages recorded during the pass
        deferred: Store operations run in order after the pass commits
        checkpoint_id: Id of the first checkpoint seen in the passage
        checkpoint_error: A duplicate checkpoint was already reported
        onexit_seen: An onExit block was already emitted
        onexit_error: A duplicate onExit was already reported
        include_depth: Nesting depth of include directives
        title: Title set by the title directive
        next_passage_id: Passage requested by goto or load
        allow_landscape: Landscape orientation flag, as left by allowLandscape
    """
    passage_id: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    deferred: List[DeferredOp] = field(default_factory=list)
    checkpoint_id: Optional[str] = None
    checkpoint_error: bool = False
    onexit_seen: bool = False
    onexit_error: bool = False
    include_depth: int = 0
    title: Optional[str] = None
    next_passage_id: Optional[str] = None
    allow_landscape: bool = False


def whitespace_is(node: Any) -> bool:
    """True for whitespace-only text, or a paragraph holding only such text"""
    if isinstance(node, str):
        return not node.strip()
    if isinstance(node, RenderNode) or not isinstance(node, Node):
        return False
    if node.type == "text":
        return not (node.value or "").strip()
    if node.type == "paragraph":
        return all(whitespace_is(child) for child in node.children)
    return False


def markerParagraph_is(node: Any, marker: Optional[str] = None) -> bool:
    """
    True for a paragraph whose text is nothing but directive markers.

    Whitespace is stripped, the remainder is split on the marker and every
    fragment must be empty.
    """
    marker = marker or appsettings.directive_marker
    if isinstance(node, RenderNode) or not isinstance(node, Node) or node.type != "paragraph":
        return False
    if not node.children or any(
        isinstance(child, RenderNode) or child.type != "text" for child in node.children
    ):
        return False
    text = _WHITESPACE.sub("", node_toString(node))
    if not text:
        return False
    fragments = text.split(marker)
    return len(fragments) > 1 and all(not part.strip(marker[0]) for part in fragments)


def node_remove(parent: Node, index: int) -> int:
    """Remove parent.children[index]; the index of the next sibling is unchanged"""
    if 0 <= index < len(parent.children):
        del parent.children[index]
    return index


def indentation_replace(directive: DirectiveNode, parent: Node, index: int, nodes: List[Node]) -> int:
    """
    Replace a directive with nodes, restoring its indentation.

    The indentation stripped from the directive line comes back as a
    leading text node when the directive sat inside a paragraph.

    Returns:
        Index of the first sibling after the inserted nodes
    """
    replacement = list(nodes)
    if directive.indentation and parent.type == "paragraph":
        replacement.insert(0, text_make(directive.indentation))
    parent.children[index:index + 1] = replacement
    return index + len(replacement)


def marker_remove(parent: Node, index: int, marker: Optional[str] = None) -> bool:
    """
    Drop the closing marker of a resolved container found at index.

    A marker paragraph is removed whole. A paragraph or text node that
    merely starts with the marker loses the marker and is removed when
    nothing but whitespace remains.

    Returns:
        True when something was removed
    """
    marker = marker or appsettings.directive_marker
    if not 0 <= index < len(parent.children):
        return False
    node = parent.children[index]
    if markerParagraph_is(node, marker):
        del parent.children[index]
        return True
    if isinstance(node, RenderNode) or not isinstance(node, Node):
        return False
    target = node
    if node.type == "paragraph" and node.children:
        target = node.children[0]
    if isinstance(target, RenderNode) or target.type != "text":
        return False
    value = target.value or ""
    if not value.strip().startswith(marker):
        return False
    target.value = value.strip()[len(marker):].lstrip(marker[0]).lstrip()
    if whitespace_is(node):
        del parent.children[index]
    return True


def markerAfter_remove(parent: Node, index: int, marker: Optional[str] = None) -> None:
    """Remove every consecutive marker paragraph starting at index"""
    while index < len(parent.children) and markerParagraph_is(parent.children[index], marker):
        del parent.children[index]


class Transformer:
    """
    Applies directive handlers to a document tree

    Args:
        registry: DirectiveRegistry mapping names to handlers
        state: Working StateManager of the pass
        evaluator: Expression evaluator (a fresh one when omitted)
        translator: Localization collaborator
        navigator: Deck navigation state machine
        passages: Passage name/id -> source text, for include and goto
        settings: Application settings
        rng: Random source for random directives
        cancel: Predicate polled between nodes; True abandons the pass
        context: Pass book-keeping (a fresh PassContext when omitted)
        storage: Persistence collaborator for save/load directives
    """

    def __init__(
        self,
        registry: Any,
        state: Optional[StateManager] = None,
        evaluator: Optional[Evaluator] = None,
        translator: Optional[Translator] = None,
        navigator: Optional[DeckNavigator] = None,
        passages: Optional[Mapping[str, str]] = None,
        settings: Optional[AppSettings] = None,
        rng: Optional[random.Random] = None,
        cancel: Optional[Callable[[], bool]] = None,
        context: Optional[PassContext] = None,
        storage: Optional[Storage] = None,
    ):
        self.registry = registry
        self.state = state if state is not None else StateManager()
        self.settings = settings if settings is not None else appsettings
        self.evaluator = evaluator if evaluator is not None else Evaluator(self.settings.expression_cache_size)
        self.translator = translator if translator is not None else MemoryTranslator()
        self.navigator = navigator if navigator is not None else DeckNavigator()
        self.passages: Mapping[str, str] = passages or {}
        self.rng = rng if rng is not None else random.Random()
        self.cancel = cancel
        self.context = context if context is not None else PassContext()
        self.storage = storage if storage is not None else MemoryStorage()
        self.presets: Dict[Tuple[str, str], Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Handler services
    # ------------------------------------------------------------------

    def scope(self) -> Dict[str, Any]:
        """Data visible to expressions at this point of the pass"""
        return self.state.data

    def error_add(self, message: str) -> None:
        self.context.errors.append(message)
        LOG(f"directive: {message}", level=2)

    def deferred_add(self, operation: DeferredOp) -> None:
        self.context.deferred.append(operation)

    def preset_set(self, preset_type: str, name: str, attrs: Mapping[str, Any]) -> None:
        self.presets[(preset_type, name)] = dict(attrs)

    def preset_get(self, preset_type: str, name: Any) -> Optional[Dict[str, Any]]:
        if not name:
            return None
        preset = self.presets.get((preset_type, str(name)))
        return dict(preset) if preset is not None else None

    def passage_find(self, name: str) -> Optional[str]:
        return self.passages.get(name)

    def cancel_check(self) -> None:
        if self.cancel is not None and self.cancel():
            raise TransformCancelled(f"Pass over '{self.context.passage_id}' cancelled")

    @contextmanager
    def state_scoped(self, exclude: Tuple[str, ...] = ()) -> Iterator[StateManager]:
        """
        Run a block against a child scope and fold its changes back in.

        Changes are applied to the enclosing state only when the block
        completes; keys in `exclude` (loop variables) are dropped.
        """
        previous = self.state
        scope = previous.scope_create()
        self.state = scope
        try:
            yield scope
        finally:
            self.state = previous
        changes = scope.changes_get()
        for key in exclude:
            changes.data.pop(key, None)
            if key in changes.unset:
                changes.unset.remove(key)
        previous.changes_apply(changes)

    # ------------------------------------------------------------------
    # Walking
    # ------------------------------------------------------------------

    def tree_transform(self, root: Node) -> Node:
        """
        Transform a document tree in place.

        Args:
            root: Parsed "root" node

        Returns:
            The same root, with every directive resolved
        """
        self.children_transform(root)
        return root

    def children_transform(self, parent: Node) -> None:
        """Dispatch every directive among parent's children, depth first"""
        block = parent.type not in ("paragraph", "heading")
        index = 0
        while index < len(parent.children):
            self.cancel_check()
            node = parent.children[index]
            if isinstance(node, DirectiveNode):
                index = self.directive_dispatch(node, parent, index)
                continue
            if block and markerParagraph_is(node, self.settings.directive_marker):
                del parent.children[index]
                continue
            if isinstance(node, Node) and not isinstance(node, RenderNode) and node.children:
                self.children_transform(node)
            index += 1

    def directive_dispatch(self, directive: DirectiveNode, parent: Node, index: int) -> int:
        """
        Run the handler of one directive.

        Returns:
            Index of the next sibling to visit
        """
        handler = self.registry.get(directive.name)
        if handler is None:
            handler = self.unknown_handle
        LOG(f"dispatch: {directive.type} '{directive.name}' at {index}", level=3)
        try:
            result = handler(directive, parent, index, self)
        except DirectiveError as error:
            if error.message:
                self.error_add(error.message)
            if index < len(parent.children) and parent.children[index] is directive:
                del parent.children[index]
                if directive.kind is DirectiveKind.CONTAINER:
                    marker_remove(parent, index, self.settings.directive_marker)
            return index
        if result is None:
            if index < len(parent.children) and parent.children[index] is directive:
                self.children_transform(directive)
            return index + 1
        return result

    def unknown_handle(self, directive: DirectiveNode, parent: Node, index: int, transformer: Any = None) -> int:
        """
        Fallback for directives with no handler.

        Text directives go back to their source text. Block directives become
        a generic element named after the directive, carrying interpolated
        attributes as props.
        """
        LOG(f"dispatch: unknown directive '{directive.name}'", level=2)
        if directive.kind is DirectiveKind.TEXT:
            parent.children[index] = text_make(directive.raw)
            return index + 1
        attrs: Dict[str, Any] = {}
        for name, value in (directive.attributes or {}).items():
            if reserved_is(name):
                raise DirectiveError(RESERVED_ATTRIBUTE_ERROR)
            if name not in IGNORED_ATTRIBUTES:
                attrs[name] = value
        props = attributes_interpolate(attrs, self.scope(), self.evaluator)
        if directive.kind is DirectiveKind.LEAF:
            children = [text_make(directive.label)] if directive.label else []
        else:
            children = self.block_run(label_strip(directive.children))
        following = indentation_replace(directive, parent, index, [
            RenderNode(tag=directive.name, props=props, children=children)
        ])
        if directive.kind is DirectiveKind.CONTAINER:
            marker_remove(parent, following, self.settings.directive_marker)
        return following

    def block_run(self, nodes: List[Node]) -> List[Node]:
        """
        Transform a detached block of nodes with the current state.

        Indented code inside the block is re-read as markup first.

        Raises:
            StructuralError: when the output holds something other than nodes
        """
        holder = Node(type="root", children=self.indentedCode_expand(list(nodes)))
        self.children_transform(holder)
        for child in holder.children:
            if not isinstance(child, Node):
                raise StructuralError(
                    f"Directive block produced {type(child).__name__}, expected a document node"
                )
        return holder.children

    def indentedCode_expand(self, nodes: List[Node], depth: int = 0, max_depth: Optional[int] = None) -> List[Node]:
        """
        Re-parse indented (lang-less) code blocks as campfire markup.

        Leftover indentation makes nested directive content look like an
        indented code block; such blocks are parsed again, recursively, up
        to max_depth levels.

        Args:
            nodes: Block nodes
            depth: Current re-parse depth
            max_depth: Recursion bound (settings.max_expand_depth by default)
        """
        limit = self.settings.max_expand_depth if max_depth is None else max_depth
        expanded: List[Node] = []
        for node in nodes:
            if isinstance(node, RenderNode) or not isinstance(node, Node):
                expanded.append(node)
                continue
            if node.type == "code" and node.lang is None and depth < limit:
                reparsed = Parser(node.value or "").parse().children
                expanded.extend(self.indentedCode_expand(reparsed, depth + 1, limit))
                continue
            if node.children and depth < limit:
                node.children = self.indentedCode_expand(node.children, depth, limit)
            expanded.append(node)
        return expanded

    # ------------------------------------------------------------------
    # Render conversion
    # ------------------------------------------------------------------

    def text_interpolate(self, value: str, scope: Optional[Mapping[str, Any]] = None) -> str:
        if "${" not in value:
            return value
        return self.evaluator.string_interpolate(value, scope if scope is not None else self.scope())

    def tree_render(self, root: Node) -> RenderNode:
        """
        Convert a transformed tree into RenderNode elements and strings.

        Raises:
            StructuralError: for directives or node types no handler resolved
        """
        rendered = self.node_render(root, block=False)
        if not isinstance(rendered, RenderNode):
            raise StructuralError("Document root did not render to an element")
        return rendered

    def children_render(self, children: List[Any], block: bool) -> List[Any]:
        rendered: List[Any] = []
        for child in children:
            output = self.node_render(child, block)
            if output is None:
                continue
            if block and isinstance(output, str) and not output.strip():
                continue
            rendered.append(output)
        return rendered

    def node_render(self, node: Any, block: bool) -> Any:
        if isinstance(node, str):
            return self.text_interpolate(node)
        if isinstance(node, RenderNode):
            return RenderNode(
                tag=node.tag,
                props=node.props,
                children=self.children_render(node.children, node.tag in BLOCK_TAGS),
            )
        if not isinstance(node, Node):
            raise StructuralError(f"Cannot render {type(node).__name__}")
        if isinstance(node, DirectiveNode):
            raise StructuralError(f"Unresolved directive '{node.name}' reached rendering")
        if node.type == "root":
            return RenderNode(tag="root", children=self.children_render(node.children, True))
        if node.type == "text":
            return self.text_interpolate(node.value or "")
        if node.type == "paragraph":
            children = self.children_render(node.children, False)
            if all(isinstance(child, str) and not child.strip() for child in children):
                return None
            return RenderNode(tag="p", children=children)
        if node.type == "heading":
            return RenderNode(
                tag=HEADING_TAGS.get(node.depth, "h6"),
                children=self.children_render(node.children, False),
            )
        if node.type == "code":
            props = {"className": f"language-{node.lang}"} if node.lang else {}
            return RenderNode(tag="pre", children=[
                RenderNode(tag="code", props=props, children=[node.value or ""])
            ])
        if node.type == "inlineCode":
            return RenderNode(tag="code", children=[node.value or ""])
        if node.type == "thematicBreak":
            return RenderNode(tag="hr")
        raise StructuralError(f"Unknown node type '{node.type}' reached rendering")
