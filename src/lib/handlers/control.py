"""
Control flow directive handlers

    :::if[hp > 0]            :::for[item in inventory]      :::switch[mood]
    Alive                    - :show[item]                  :::case["calm"]
    :::else                  :::                            ...
    Dead                                                    :::
    :::                      :::batch                       :::default
    :::                      ::set[a=1]                     ...
                             ::set[b=2]                     :::
    :::once[intro]           :::                            :::
    Shown a single time
    :::

Conditions are evaluated when the passage is transformed and only the
chosen branch is processed, so directives in the other branch have no
effect. Loop bodies run once per item against a child scope; batch bodies
run against a child scope whose changes are folded back in one step.
"""

import json
import re
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple

from ...models.game import range_is
from ...models.nodes import (
    DirectiveKind,
    DirectiveNode,
    Node,
    RenderNode,
    label_get,
    label_strip,
    node_clone,
)
from ..attributes import (
    DirectiveError,
    directiveKind_require,
    key_ensure,
    quoted_extract,
    typedValue_parse,
)
from ..expression import js_string, js_truthy, strict_equal
from ..transformer import (
    indentation_replace,
    marker_remove,
    markerAfter_remove,
    markerParagraph_is,
    node_remove,
    whitespace_is,
)


FOR_PATTERN = re.compile(r'^([A-Za-z_$][\w$]*)\s+in\s+(.+)$', re.S)
LITERAL_PATTERN = re.compile(r'^-?\d+(?:\.\d+)?$')

# Directives a batch block may contain
BATCH_ALLOWED: Sequence[str] = (
    'set', 'setOnce', 'array', 'arrayOnce', 'createRange', 'setRange', 'unset',
    'random', 'randomOnce', 'push', 'pop', 'shift', 'unshift', 'splice', 'concat', 'if',
)
BATCH_BANNED: Set[str] = {'batch'}


def directiveChildren_filter(
    children: Iterable[Node],
    allowed: Iterable[str],
    banned: Iterable[str] = (),
) -> Tuple[List[DirectiveNode], bool, bool]:
    """
    Pick the allowed directives out of a block.

    Whitespace is skipped and directives are looked for one level down
    inside paragraphs.

    Returns:
        (kept directives, other content found, banned directive found)
    """
    allowed, banned = set(allowed), set(banned)
    kept: List[DirectiveNode] = []
    invalid = nested = False

    def inspect(node: Node, top: bool) -> None:
        nonlocal invalid, nested
        if whitespace_is(node) and node.type == 'text':
            return
        if isinstance(node, DirectiveNode):
            if node.name in banned:
                nested = True
            elif node.name in allowed:
                kept.append(node)
            else:
                invalid = True
            return
        if top and node.type == 'paragraph' and not isinstance(node, RenderNode):
            if markerParagraph_is(node):
                return
            for child in node.children:
                inspect(child, False)
            return
        invalid = True

    for child in children:
        inspect(child, True)
    return kept, invalid, nested


def test_extract(directive: DirectiveNode) -> str:
    """
    Condition of an if directive: its label, or {key} / {key=value}
    meaning key === value.
    """
    expr = label_get(directive).strip()
    if expr or not directive.attributes:
        return expr
    name, raw = next(iter(directive.attributes.items()))
    if raw is None or raw == '':
        return name
    quoted = quoted_extract(raw)
    value = raw.strip()
    if quoted is not None:
        literal = json.dumps(quoted)
    elif value in ('true', 'false') or LITERAL_PATTERN.match(value):
        literal = value
    else:
        literal = json.dumps(value)
    return f"{name} === {literal}"


def expression_extract(directive: DirectiveNode) -> str:
    """Label, else the first attribute's value, else its name"""
    expr = label_get(directive).strip()
    if expr or not directive.attributes:
        return expr
    name, raw = next(iter(directive.attributes.items()))
    return raw if raw not in (None, '') else name


def condition_test(expr: str, transformer: Any) -> bool:
    if not expr:
        return False
    scope = transformer.scope()
    value = transformer.evaluator.evaluate_safe(expr, scope)
    if value is None:
        value = typedValue_parse(expr, scope, transformer.evaluator)
    return js_truthy(value)


def content_clean(nodes: List[Node]) -> List[Node]:
    return [node for node in nodes if not (node.type == 'text' and whitespace_is(node))]


def siblingMarker_remove(parent: Node, index: int) -> None:
    """Drop the closing marker that follows index, skipping whitespace"""
    cursor = index
    while cursor < len(parent.children):
        sibling = parent.children[cursor]
        if markerParagraph_is(sibling):
            marker_remove(parent, cursor)
            return
        if whitespace_is(sibling) and not isinstance(sibling, DirectiveNode):
            cursor += 1
            continue
        return


def siblingElse_take(parent: Node, index: int) -> Optional[DirectiveNode]:
    """Detach an else container directly following index, if any"""
    cursor = index
    while cursor < len(parent.children):
        sibling = parent.children[cursor]
        if isinstance(sibling, DirectiveNode):
            if sibling.name == 'else' and sibling.kind is DirectiveKind.CONTAINER:
                del parent.children[cursor]
                marker_remove(parent, cursor)
                return sibling
            return None
        if markerParagraph_is(sibling) or whitespace_is(sibling):
            cursor += 1
            continue
        return None
    return None


def if_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Evaluate the condition and emit only the chosen branch.

    The else branch is an :::else container nested in the if block or
    immediately following it.
    """
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    expr = test_extract(directive)
    children = label_strip(directive.children)
    main, fallback, trailing = children, None, []
    for position, child in enumerate(children):
        if isinstance(child, DirectiveNode) and child.name == 'else':
            main, fallback = children[:position], label_strip(child.children)
            trailing = children[position + 1:]
            break
    if fallback is None:
        following = siblingElse_take(parent, index + 1)
        if following is not None:
            fallback = label_strip(following.children)

    passed = condition_test(expr, transformer)
    chosen = main if passed else (fallback or [])
    content = content_clean(transformer.block_run([node_clone(node) for node in chosen]))
    node = RenderNode(tag='if', props={'test': expr, 'result': passed}, children=content)
    following_index = indentation_replace(directive, parent, index, [node])
    siblingMarker_remove(parent, following_index)
    # content after a nested else closed by a single marker belongs after the if
    parent.children[following_index:following_index] = trailing
    return following_index


def else_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """An else with no if before it is unwrapped in place"""
    content = label_strip(directive.children)
    parent.children[index:index + 1] = content
    marker_remove(parent, index + len(content))
    return index


def loopVars_expand(nodes: List[Any], name: str, item: Any, transformer: Any) -> None:
    """
    Pin loop variable references to the iteration's item.

    show elements bound to the loop variable would otherwise look up a key
    that no longer exists once the iteration scope is gone.
    """
    for position, node in enumerate(nodes):
        if isinstance(node, RenderNode):
            if node.tag == 'show' and node.props.get('data-key') == name:
                extra = [key for key in node.props if key != 'data-key']
                if not extra:
                    nodes[position] = Node(type='text', value=js_string(item))
                    continue
                node.props.pop('data-key')
                node.props['data-expr'] = json.dumps(item)
            loopVars_expand(node.children, name, item, transformer)
            continue
        if isinstance(node, Node):
            if node.type == 'text' and node.value and '${' in node.value:
                node.value = transformer.text_interpolate(node.value)
            loopVars_expand(node.children, name, item, transformer)


def renderable_has(nodes: List[Any]) -> bool:
    for node in nodes:
        if isinstance(node, RenderNode):
            return True
        if node.type == 'text':
            if (node.value or '').strip():
                return True
            continue
        if node.children:
            if renderable_has(node.children):
                return True
            continue
        if node.type in ('code', 'inlineCode', 'thematicBreak'):
            return True
    return False


def iterable_items(value: Any) -> List[Any]:
    if isinstance(value, list):
        return list(value)
    if range_is(value):
        items, current = [], value['min']
        while current <= value['max']:
            items.append(current)
            current += 1
        return items
    return []


def for_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Repeat the block for every item of an array or range.

    Each iteration runs against a child scope holding the loop variable;
    its other state changes are kept, the loop variable is not.
    """
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    label = label_get(directive).strip()
    match = FOR_PATTERN.match(label)
    if not match:
        raise DirectiveError(f"Malformed for directive: {label}")
    name = key_ensure(match.group(1))
    expr = match.group(2).strip()
    scope = transformer.scope()
    value = transformer.evaluator.evaluate_safe(expr, scope)
    if value is None:
        value = typedValue_parse(expr, scope, transformer.evaluator)

    template = label_strip(directive.children)
    output: List[Node] = []
    for item in iterable_items(value):
        with transformer.state_scoped(exclude=(name,)) as state:
            state.data[name] = item
            processed = transformer.block_run([node_clone(node) for node in template])
            loopVars_expand(processed, name, item, transformer)
        if renderable_has(processed):
            output.extend(processed)

    following = indentation_replace(directive, parent, index, output)
    marker_remove(parent, following)
    return following


def switch_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Emit the first case whose value strictly equals the switch value, or
    the default block. case/default may be nested or follow the switch.
    """
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    expr = expression_extract(directive)
    branches = [
        child for child in label_strip(directive.children)
        if isinstance(child, DirectiveNode) and child.name in ('case', 'default')
    ]
    cursor = index + 1
    while cursor < len(parent.children):
        sibling = parent.children[cursor]
        if markerParagraph_is(sibling):
            marker_remove(parent, cursor)
            break
        if isinstance(sibling, DirectiveNode) and sibling.name in ('case', 'default'):
            branches.append(sibling)
            del parent.children[cursor]
            continue
        if whitespace_is(sibling):
            del parent.children[cursor]
            continue
        break

    scope = transformer.scope()
    value = transformer.evaluator.evaluate_safe(expr, scope) if expr else None
    chosen: Optional[DirectiveNode] = None
    matched: Any = None
    for position, branch in enumerate(b for b in branches if b.name == 'case'):
        case_expr = expression_extract(branch)
        case_value = transformer.evaluator.evaluate_safe(case_expr, scope)
        if case_value is None:
            case_value = typedValue_parse(case_expr, scope, transformer.evaluator)
        if strict_equal(value, case_value):
            chosen, matched = branch, position
            break
    if chosen is None:
        chosen = next((b for b in branches if b.name == 'default'), None)
        matched = 'default' if chosen is not None else None

    content: List[Node] = []
    if chosen is not None:
        content = content_clean(transformer.block_run(
            [node_clone(node) for node in label_strip(chosen.children)]
        ))
    node = RenderNode(tag='switch', props={'test': expr, 'matched': matched}, children=content)
    following = indentation_replace(directive, parent, index, [node])
    siblingMarker_remove(parent, following)
    return following


def caseOrphan_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """case/default outside a switch are dropped"""
    node_remove(parent, index)
    marker_remove(parent, index)
    return index


def batch_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Run data directives against a child scope and apply the result as one
    change set. Anything else in the block is reported and skipped.
    """
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    kept, invalid, nested = directiveChildren_filter(
        transformer.indentedCode_expand(label_strip(directive.children)),
        BATCH_ALLOWED,
        BATCH_BANNED,
    )
    if nested:
        transformer.error_add("Nested batch directives are not allowed")
    if invalid:
        transformer.error_add(f"batch only supports directives: {', '.join(BATCH_ALLOWED)}")
    with transformer.state_scoped():
        transformer.block_run(kept)
    node_remove(parent, index)
    markerAfter_remove(parent, index)
    return index


def once_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Unwrap the block the first time its key is seen; drop it afterwards.

    The key comes from {key=...}, the label, or the first attribute name.
    """
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    attrs = directive.attributes or {}
    raw = attrs.get('key')
    if raw is None:
        raw = label_get(directive).strip() or next(iter(attrs), None)
    key = key_ensure(raw)
    if transformer.state.once_has(key):
        node_remove(parent, index)
        marker_remove(parent, index)
        return index
    transformer.state.once_mark(key)
    content = label_strip(directive.children)
    parent.children[index:index + 1] = content
    marker_remove(parent, index + len(content))
    return index
