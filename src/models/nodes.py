"""
Document tree models

The markup parser produces a tree of Node objects (paragraphs, text,
headings, code blocks) with three directive shapes layered on top as
DirectiveNode. Directive handlers rewrite matched subtrees into RenderNode
elements; after a pass every remaining Node is converted so the tree handed
to the rendering layer holds only RenderNode objects and plain strings.
"""

import copy
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


class DirectiveKind(Enum):
    """
    Directive shapes recognised by the markup grammar

    LEAF:      ::name[label]{attrs}        - block level, never has children
    CONTAINER: :::name[label]{attrs} ... ::: - block level with children
    TEXT:      :name[label]{attrs}         - inline, label only
    """
    LEAF = "leafDirective"
    CONTAINER = "containerDirective"
    TEXT = "textDirective"


DIRECTIVE_TYPES = frozenset(kind.value for kind in DirectiveKind)

# Node types the transformer knows how to carry through a pass
KNOWN_NODE_TYPES = frozenset({
    "root",
    "paragraph",
    "text",
    "heading",
    "code",
    "inlineCode",
    "thematicBreak",
    "element",
}) | DIRECTIVE_TYPES


@dataclass
class Node:
    """
    A node of the parsed document tree (mdast-like)

    Attributes:
        type: Node type ("paragraph", "text", "code", ...)
        value: Literal text for text/code/inlineCode nodes
        children: Child nodes for parent types
        data: Free-form metadata (e.g. {"directiveLabel": True} on the
              synthetic label paragraph of a container directive)
        lang: Info string of fenced code blocks; None for indented code
        depth: Heading level (1-6)
        line: Source line number where the node starts (0 when synthetic)
    """
    type: str
    value: Optional[str] = None
    children: List['Node'] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)
    lang: Optional[str] = None
    depth: int = 0
    line: int = 0


@dataclass
class DirectiveNode(Node):
    """
    A directive recognised in the source

    Attributes:
        name: Directive name (e.g. "set", "if", "deck")
        attributes: Raw attribute map; values keep their source quoting so
                    the attribute parser can tell literals from expressions.
                    Bare keys map to None.
        label: Bracketed argument for leaf and text directives. Container
               labels live in a first child paragraph flagged
               data["directiveLabel"].
        raw: Original source text of the directive line (used when an
             unknown text directive is rendered back as prose)

    Indentation stripped from the directive's line is kept in
    data["indentation"] and restored when the directive is replaced.
    """
    name: str = ""
    attributes: Dict[str, Optional[str]] = field(default_factory=dict)
    label: Optional[str] = None
    raw: str = ""

    @property
    def kind(self) -> DirectiveKind:
        return DirectiveKind(self.type)

    @property
    def indentation(self) -> str:
        return self.data.get("indentation", "") or ""


@dataclass
class RenderNode(Node):
    """
    Output element of the transformer

    A generic element with a tag name and an already-typed, already
    interpolated property map. The rendering layer resolves `tag` against
    its component table (deck, slide, reveal, layer, text, shape, trigger,
    if, show, ...).

    Attributes:
        tag: Element / component name
        props: Typed property bag
    """
    type: str = "element"
    tag: str = "div"
    props: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation: {tag, props, children}"""
        return {
            "tag": self.tag,
            "props": _jsonable(self.props),
            "children": [
                child.to_dict() if isinstance(child, RenderNode)
                else node_toDict(child) if isinstance(child, Node)
                else child
                for child in self.children
            ],
        }

    def text_collect(self) -> str:
        """Concatenated text content of the rendered subtree"""
        parts: List[str] = []
        for child in self.children:
            if isinstance(child, RenderNode):
                parts.append(child.text_collect())
            elif isinstance(child, str):
                parts.append(child)
        return "".join(parts)

    def find_all(self, tag: str) -> List['RenderNode']:
        """All descendant elements (including self) with the given tag"""
        found: List[RenderNode] = [self] if self.tag == tag else []
        for child in self.children:
            if isinstance(child, RenderNode):
                found.extend(child.find_all(tag))
        return found


# Handler return value: index of the next sibling to visit, or None to let
# the visitor descend into the directive's children and move on.
TransformResult = Optional[int]

RenderChild = Union[RenderNode, str]


def _jsonable(value: Any) -> Any:
    if isinstance(value, RenderNode):
        return value.to_dict()
    if isinstance(value, Node):
        return node_toDict(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_jsonable(v) for v in value)
    return value


def text_make(value: str) -> Node:
    return Node(type="text", value=value)


def paragraph_make(children: List[Node], **data: Any) -> Node:
    return Node(type="paragraph", children=children, data=dict(data))


def node_isDirective(node: Any) -> bool:
    return isinstance(node, DirectiveNode)


def node_toString(node: Any) -> str:
    """
    Plain text content of a node, recursively (mdast-util-to-string).

    Directive labels of leaf and text directives count as content.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(node_toString(child) for child in node)
    if isinstance(node, DirectiveNode) and node.type != DirectiveKind.CONTAINER.value:
        return node.label or ""
    if node.type in ("text", "inlineCode", "code"):
        return node.value or ""
    return "".join(node_toString(child) for child in node.children)


def node_clone(node: Node) -> Node:
    return copy.deepcopy(node)


def node_toDict(node: Node) -> Dict[str, Any]:
    """
    Serialize a document node for deferred execution (trigger / onExit /
    effect blocks) or JSON output.
    """
    if isinstance(node, RenderNode):
        return {"type": "element", **node.to_dict()}
    result: Dict[str, Any] = {"type": node.type}
    if node.value is not None:
        result["value"] = node.value
    if node.children:
        result["children"] = [node_toDict(child) for child in node.children]
    if node.data:
        result["data"] = dict(node.data)
    if node.lang is not None:
        result["lang"] = node.lang
    if node.depth:
        result["depth"] = node.depth
    if isinstance(node, DirectiveNode):
        result["name"] = node.name
        result["attributes"] = dict(node.attributes)
        if node.label is not None:
            result["label"] = node.label
        if node.raw:
            result["raw"] = node.raw
    return result


def node_fromDict(payload: Dict[str, Any]) -> Node:
    """Inverse of node_toDict"""
    node_type = payload.get("type", "element")
    if node_type == "element":
        return RenderNode(
            tag=payload.get("tag", "div"),
            props=dict(payload.get("props", {})),
            children=[
                node_fromDict(child) if isinstance(child, dict) else text_make(child)
                for child in payload.get("children", [])
            ],
        )
    children = [node_fromDict(child) for child in payload.get("children", [])]
    common = dict(
        type=node_type,
        value=payload.get("value"),
        children=children,
        data=dict(payload.get("data", {})),
        lang=payload.get("lang"),
        depth=payload.get("depth", 0),
    )
    if node_type in DIRECTIVE_TYPES:
        return DirectiveNode(
            **common,
            name=payload.get("name", ""),
            attributes=dict(payload.get("attributes", {})),
            label=payload.get("label"),
            raw=payload.get("raw", ""),
        )
    return Node(**common)


def labelParagraph_is(node: Any) -> bool:
    """True for the synthetic first-child paragraph holding a container label"""
    return (
        isinstance(node, Node)
        and node.type == "paragraph"
        and bool(node.data.get("directiveLabel"))
    )


def label_get(directive: Node) -> str:
    """
    Label text of a directive.

    Containers keep their label in a flagged first child paragraph; leaf and
    text directives carry it directly.
    """
    if isinstance(directive, DirectiveNode) and directive.type != DirectiveKind.CONTAINER.value:
        return directive.label or ""
    if directive.children and labelParagraph_is(directive.children[0]):
        return node_toString(directive.children[0])
    return ""


def label_strip(children: List[Node]) -> List[Node]:
    """Children without the leading label paragraph"""
    if children and labelParagraph_is(children[0]):
        return children[1:]
    return children
