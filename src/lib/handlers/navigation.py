"""
Navigation directive handlers

    ::goto["Cave"]            ::goto[12]        ::goto{passage=nextRoom}
    ::title["Chapter One"]
    ::include["Inventory"]
    ::allowLandscape          ::allowLandscape[false]

Passage names are quoted; bare numbers are passage ids. An unquoted
`passage` attribute names a state key holding the target.
"""

import re
from typing import Any, Mapping, Optional

from ...models.nodes import DirectiveKind, DirectiveNode, Node, label_get
from ..attributes import DirectiveError, directiveKind_require, quoted_extract
from ..log import LOG
from ..parser import Parser
from ..scanner import indentation_normalize
from ..transformer import indentation_replace, node_remove


NUMERIC_PATTERN = re.compile(r'^\d+$')


def stateValue_get(key: str, data: Mapping[str, Any]) -> Optional[str]:
    """String form of a string or numeric state value"""
    if key not in data:
        return None
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    return str(value)


def passageTarget_resolve(raw_text: str, attrs: Mapping[str, Any], data: Mapping[str, Any]) -> Optional[str]:
    """
    Target passage of goto and include.

    Returns:
        Passage name or id, or None when the input matches no accepted form
    """
    if raw_text:
        quoted = quoted_extract(raw_text)
        if quoted is not None:
            return quoted
        return raw_text if NUMERIC_PATTERN.match(raw_text) else None
    attr = attrs.get('passage')
    if not isinstance(attr, str) or not attr.strip():
        return None
    attr = attr.strip()
    quoted = quoted_extract(attr)
    if quoted:
        return quoted
    if NUMERIC_PATTERN.match(attr):
        return attr
    return stateValue_get(attr, data)


def goto_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    attrs = directive.attributes or {}
    raw_text = label_get(directive).strip()
    target = passageTarget_resolve(raw_text, attrs, transformer.scope())
    if target and transformer.passage_find(target) is not None:
        transformer.context.next_passage_id = target
        LOG(f"goto: '{target}'", level=2)
    elif raw_text or attrs.get('passage'):
        raise DirectiveError(f"Passage not found: {raw_text or attrs.get('passage')}")
    return node_remove(parent, index)


def title_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    if transformer.context.include_depth > 0:
        return node_remove(parent, index)
    raw = label_get(directive).strip()
    title = quoted_extract(raw)
    if title:
        transformer.context.title = transformer.translator.translate(title)
    elif raw:
        raise DirectiveError("Title directive value must be wrapped in matching quotes or backticks")
    return node_remove(parent, index)


def include_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Splice another passage's transformed content in place of the directive.

    Included content runs against the same pass state. Nesting deeper than
    settings.max_include_depth is dropped.
    """
    directiveKind_require(directive, DirectiveKind.LEAF)
    context = transformer.context
    target = passageTarget_resolve(
        label_get(directive).strip(), directive.attributes or {}, transformer.scope(),
    )
    if not target:
        return node_remove(parent, index)
    if context.include_depth >= transformer.settings.max_include_depth:
        LOG(f"include: max depth reached at '{target}'", level=1)
        return node_remove(parent, index)
    source = transformer.passage_find(target)
    if source is None:
        return node_remove(parent, index)

    tree = Parser(indentation_normalize(source)).parse()
    context.include_depth += 1
    try:
        nodes = transformer.block_run(tree.children)
    finally:
        context.include_depth -= 1
    return indentation_replace(directive, parent, index, nodes)


LANDSCAPE_VALUES = {'true': True, 'false': False}


def allowLandscape_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Toggle whether the host permits landscape orientation.

    ::allowLandscape[true] and ::allowLandscape[false] set the flag instead
    of flipping it. The flag lives on the pass and reaches the engine when
    the pass commits.
    """
    directiveKind_require(directive, DirectiveKind.LEAF)
    context = transformer.context
    raw = quoted_extract(label_get(directive).strip()) or label_get(directive).strip()
    if not raw:
        context.allow_landscape = not context.allow_landscape
    elif raw in LANDSCAPE_VALUES:
        context.allow_landscape = LANDSCAPE_VALUES[raw]
    else:
        raise DirectiveError(f"allowLandscape value must be true or false, got {raw}")
    LOG(f"allowLandscape: {context.allow_landscape}", level=2)
    return node_remove(parent, index)
