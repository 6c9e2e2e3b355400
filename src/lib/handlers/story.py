"""
Story directive handlers

    HP: :show[hp]                    reactive value
    ::preset{type="layer" name="hud" x=10 y=20}
    :::onExit                        runs when the reader leaves the passage
    ::set[visited=true]
    :::
    :::effect[gold]                  runs whenever gold changes
    ::set[rich=gold > 100]
    :::
    :::trigger[Open the door]        a button
    ::set[doorOpen=true]
    :::

onExit, effect and trigger bodies are not run during the pass. Their
directives are serialized into the element's `content` prop and handed
back to Engine.block_run by the host when the event fires.
"""

import re
from typing import Any, Dict, List

from ...models.attributes import AttributeSpec
from ...models.directives import RESERVED_ATTRIBUTE_ERROR
from ...models.game import range_is
from ...models.nodes import (
    DirectiveKind,
    DirectiveNode,
    Node,
    RenderNode,
    label_get,
    label_strip,
    node_toDict,
    text_make,
)
from ..attributes import (
    DirectiveError,
    additionalAttributes_apply,
    attributes_extract,
    attributes_interpolate,
    directiveKind_require,
    numericValue_parse,
    quotes_strip,
)
from ..expression import js_string
from ..transformer import indentation_replace, marker_remove, node_remove
from .control import directiveChildren_filter


KEY_PATTERN = re.compile(r'^[A-Za-z_$][A-Za-z0-9_$]*$')
NUMERIC_PATTERN = re.compile(r'^\d+$')
WATCH_SPLIT = re.compile(r'[\s,]+')

# Directives an onExit or effect block may hold
SERIALIZED_ALLOWED = (
    'set', 'setOnce', 'array', 'arrayOnce', 'createRange', 'setRange', 'unset',
    'random', 'randomOnce', 'push', 'pop', 'shift', 'unshift', 'splice', 'concat',
    'checkpoint', 'loadCheckpoint', 'clearCheckpoint', 'save', 'load', 'clearSave',
    'lang', 'translations', 'if', 'for', 'switch', 'batch',
)

PRESET_SCHEMA = {
    'type': AttributeSpec('string', required=True),
    'name': AttributeSpec('string', required=True),
}


def show_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Replace :show[key] or :show[expression] with a show element.

    A plain identifier is bound as data-key, anything else as data-expr;
    the value at transform time is the element's text.
    """
    raw = label_get(directive).strip()
    if not raw:
        return node_remove(parent, index)
    scope = transformer.scope()
    if KEY_PATTERN.match(raw):
        props: Dict[str, Any] = {'data-key': raw}
        value = transformer.state.value_get(raw)
    else:
        props = {'data-expr': raw}
        value = transformer.evaluator.evaluate_safe(raw, scope)
    if range_is(value):
        value = value['value']

    source = directive.attributes or {}
    if 'class' in source:
        raise DirectiveError(RESERVED_ATTRIBUTE_ERROR)
    attrs = attributes_interpolate(source, scope, transformer.evaluator)
    if isinstance(attrs.get('as'), str):
        props['as'] = attrs['as']
        if attrs.get('className'):
            props['className'] = attrs['className']
        if isinstance(attrs.get('style'), str):
            props['style'] = attrs['style']
    additionalAttributes_apply(attrs, props, ('as', 'className', 'style'))

    text = '' if value is None else js_string(value)
    node = RenderNode(tag='show', props=props, children=[text_make(text)] if text else [])
    return indentation_replace(directive, parent, index, [node])


def preset_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Store a named attribute bag for directives of one type.

    Attributes other than type and name are kept raw, so they parse later
    exactly as if written on the directive; digit-only values become
    numbers.
    """
    result = attributes_extract(directive, PRESET_SCHEMA, transformer.scope(), transformer.evaluator)
    if not result.valid:
        for message in result.errors[:-1]:
            transformer.error_add(message)
        raise DirectiveError(result.errors[-1])
    attrs: Dict[str, Any] = {}
    for name, value in (directive.attributes or {}).items():
        if name in ('type', 'name'):
            continue
        if isinstance(value, str) and NUMERIC_PATTERN.match(value):
            value = numericValue_parse(value)
        attrs[name] = value
    transformer.preset_set(result.attrs['type'], result.attrs['name'], attrs)
    node_remove(parent, index)
    if directive.kind is DirectiveKind.CONTAINER:
        marker_remove(parent, index)
    return index


def content_serialize(directive: DirectiveNode, name: str, transformer: Any) -> List[Dict[str, Any]]:
    """Serialize the allowed directives of a deferred block"""
    children = transformer.indentedCode_expand(label_strip(directive.children))
    kept, invalid, _ = directiveChildren_filter(children, SERIALIZED_ALLOWED)
    if invalid:
        transformer.error_add(f"{name} only supports directives: {', '.join(SERIALIZED_ALLOWED)}")
    return [node_toDict(node) for node in kept]


def serialized_emit(directive: DirectiveNode, parent: Node, index: int, transformer: Any, node: RenderNode) -> int:
    following = indentation_replace(directive, parent, index, [node])
    marker_remove(parent, following)
    return following


def onExit_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """Emit the passage's single onExit block; later ones are reported once and dropped"""
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    context = transformer.context
    if context.onexit_error:
        raise DirectiveError(None)
    if context.onexit_seen:
        context.onexit_error = True
        raise DirectiveError("Multiple onExit directives in a single passage are not allowed")
    context.onexit_seen = True
    content = content_serialize(directive, 'onExit', transformer)
    return serialized_emit(directive, parent, index, transformer, RenderNode(
        tag='onExit', props={'content': content},
    ))


def effect_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """Emit an effect block watching the keys named by {watch} or the label"""
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    result = attributes_extract(
        directive, {'watch': AttributeSpec('string', expression=False)}, label=True,
    )
    raw = result.attrs.get('watch') or result.label or ''
    watch = [key for key in WATCH_SPLIT.split(raw.strip()) if key]
    content = content_serialize(directive, 'effect', transformer)
    return serialized_emit(directive, parent, index, transformer, RenderNode(
        tag='effect', props={'watch': watch, 'content': content},
    ))


def trigger_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Emit a trigger button.

    The label comes from {label} or the container label; the body is
    serialized whole and run by Engine.block_run on activation.
    """
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    attrs = directive.attributes or {}
    if 'class' in attrs:
        raise DirectiveError(RESERVED_ATTRIBUTE_ERROR)
    label = quotes_strip(attrs['label']) if isinstance(attrs.get('label'), str) else label_get(directive)
    classes = attrs.get('className') or attrs.get('classes') or ''
    class_list = [name for name in str(quotes_strip(classes)).split() if name]
    raw_disabled = attrs.get('disabled', False)
    if 'disabled' in attrs and raw_disabled is None:
        disabled = True
    elif isinstance(raw_disabled, str):
        disabled = quotes_strip(raw_disabled) != 'false'
    else:
        disabled = bool(raw_disabled)
    content = [
        node_toDict(node)
        for node in transformer.indentedCode_expand(label_strip(directive.children))
    ]
    node = RenderNode(
        tag='trigger',
        props={'className': class_list, 'content': content, 'disabled': disabled},
        children=[text_make(label)] if label else [],
    )
    return serialized_emit(directive, parent, index, transformer, node)
