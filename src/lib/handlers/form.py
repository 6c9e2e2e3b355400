"""
Form directive handlers

    Name :input[name]{placeholder="Your name"}
    :checkbox[agree]{checked}
    :radio[color]{value="red"} :radio[color]{value="blue" checked}
    :textarea[notes]
    :::select[color]{value="red"}
    ::option{value="red" label="Red"}
    :::option{value="blue"}
    Deep blue
    :::
    :::

Every element is bound to the state key named by its label; the rendering
layer writes user input back to that key. A key that holds no value yet
is seeded from value / defaultValue (checked for checkboxes and radios),
so later directives of the same pass already see it. Values already in
state are never overwritten.

Container forms may hold onMouseEnter, onMouseLeave, onFocus and onBlur
blocks. They are serialized like trigger content and run through
Engine.block_run when the event fires.

The reserved `class` attribute is reported but does not drop the element.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from ...models.attributes import AttributeSpec
from ...models.directives import RESERVED_ATTRIBUTE_ERROR
from ...models.nodes import DirectiveKind, DirectiveNode, Node, RenderNode, label_get, label_strip, text_make
from ..attributes import (
    DirectiveError,
    additionalAttributes_apply,
    attributes_extract,
    attributes_interpolate,
    directiveKind_require,
    key_ensure,
    quotes_strip,
)
from ..log import LOG
from ..transformer import indentation_replace, whitespace_is
from .layout import container_emit
from .story import content_serialize


STATE_KEY_PATTERN = re.compile(r'^[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*$')

INTERACTIVE_EVENTS = ('onMouseEnter', 'onMouseLeave', 'onFocus', 'onBlur')

# Attributes each element consumes itself; everything else becomes a prop
INPUT_HANDLED = ('className', 'style', 'placeholder', 'type', 'value', 'defaultValue')
TEXTAREA_HANDLED = ('className', 'style', 'placeholder', 'value', 'defaultValue')
TOGGLE_HANDLED = ('className', 'style', 'value', 'defaultValue', 'checked')
SELECT_HANDLED = ('className', 'style', 'value', 'defaultValue')
OPTION_HANDLED = ('value', 'label', 'className', 'style')

CHECKBOX_STATES = {'true': True, 'false': False}

OPTION_SCHEMA = {
    'value': AttributeSpec('string'),
    'label': AttributeSpec('string'),
}


def stateKey_get(directive: DirectiveNode) -> str:
    """
    State key bound by a form element.

    Raises:
        DirectiveError: silently for an empty label, with a message when
                        the label is not a key or dotted key path
    """
    key = key_ensure(label_get(directive))
    if not STATE_KEY_PATTERN.match(key):
        raise DirectiveError(f'{directive.name} requires a state key, got "{key}"')
    return key


def formAttrs_read(directive: DirectiveNode, transformer: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Raw and interpolated attributes of a form directive.

    Returns:
        (raw attributes without `class`, interpolated attributes)
    """
    raw = dict(directive.attributes or {})
    if 'class' in raw:
        LOG(f"form: '{directive.name}' uses reserved attribute class", level=2)
        transformer.error_add(RESERVED_ATTRIBUTE_ERROR)
        del raw['class']
    return raw, attributes_interpolate(raw, transformer.scope(), transformer.evaluator)


def initialValue_get(attrs: Dict[str, Any], names: Tuple[str, ...]) -> Optional[str]:
    """First non-empty string among the named attributes"""
    for name in names:
        value = attrs.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def classStyle_apply(attrs: Dict[str, Any], props: Dict[str, Any], names: Tuple[str, ...] = ('style',)) -> None:
    classes = attrs.get('className')
    if isinstance(classes, str) and classes.split():
        props['className'] = classes.split()
    for name in names:
        value = attrs.get(name)
        if isinstance(value, str) and value:
            props[name] = value


def formProps_make(
    key: str,
    raw: Dict[str, Any],
    attrs: Dict[str, Any],
    handled: Tuple[str, ...],
    initial: Optional[str],
) -> Dict[str, Any]:
    props: Dict[str, Any] = {'stateKey': key}
    classStyle_apply(attrs, props, tuple(name for name in ('style', 'placeholder') if name in handled))
    if initial:
        props['initialValue'] = initial
    additionalAttributes_apply(raw, props, handled)
    return props


def stateKey_seed(key: str, value: Any, transformer: Any) -> None:
    """Give a key holding no value its initial value"""
    if value is None or transformer.state.value_get(key) is not None:
        return
    if transformer.state.value_set(key, value):
        LOG(f"form: seeded '{key}' with {value!r}", level=3)


def events_extract(nodes: List[Node], transformer: Any) -> Tuple[Dict[str, Any], List[Node]]:
    """
    Serialize interactive event blocks.

    Returns:
        (event name -> serialized content, remaining non-blank nodes)
    """
    events: Dict[str, Any] = {}
    remaining: List[Node] = []
    for node in nodes:
        if (
            isinstance(node, DirectiveNode)
            and node.kind is DirectiveKind.CONTAINER
            and node.name in INTERACTIVE_EVENTS
        ):
            events[node.name] = content_serialize(node, node.name, transformer)
        elif not whitespace_is(node):
            remaining.append(node)
    return events, remaining


def content_flatten(nodes: List[Node]) -> List[Any]:
    """Inline content of paragraphs, other nodes as they are, blanks dropped"""
    content: List[Any] = []
    for node in nodes:
        if not isinstance(node, RenderNode) and node.type == 'paragraph':
            content.extend(node.children)
        else:
            content.append(node)
    return [node for node in content if not whitespace_is(node)]


def formElement_emit(directive: DirectiveNode, parent: Node, index: int, transformer: Any, node: RenderNode) -> int:
    """Replace an inline form directive, or a container one together with its event blocks"""
    if directive.kind is not DirectiveKind.CONTAINER:
        return indentation_replace(directive, parent, index, [node])
    events, _ = events_extract(transformer.indentedCode_expand(label_strip(directive.children)), transformer)
    node.props.update(events)
    return container_emit(directive, parent, index, transformer, node)


def input_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Emit a text input bound to a state key.

    type="checkbox" and type="radio" hand over to the checkbox and radio
    handlers; any other type is passed to the element.
    """
    input_type = quotes_strip((directive.attributes or {}).get('type'))
    if input_type in ('checkbox', 'radio'):
        directive.attributes = {
            name: value for name, value in directive.attributes.items() if name != 'type'
        }
        handler = checkbox_handle if input_type == 'checkbox' else radio_handle
        return handler(directive, parent, index, transformer)
    key = stateKey_get(directive)
    raw, attrs = formAttrs_read(directive, transformer)
    initial = initialValue_get(attrs, ('value', 'defaultValue'))
    props = formProps_make(key, raw, attrs, INPUT_HANDLED, initial)
    if isinstance(attrs.get('type'), str) and attrs['type']:
        props['type'] = attrs['type']
    stateKey_seed(key, initial, transformer)
    return formElement_emit(directive, parent, index, transformer, RenderNode(tag='input', props=props))


def textarea_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    key = stateKey_get(directive)
    raw, attrs = formAttrs_read(directive, transformer)
    initial = initialValue_get(attrs, ('value', 'defaultValue'))
    props = formProps_make(key, raw, attrs, TEXTAREA_HANDLED, initial)
    stateKey_seed(key, initial, transformer)
    return formElement_emit(directive, parent, index, transformer, RenderNode(tag='textarea', props=props))


def checkbox_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Emit a checkbox bound to a state key.

    The initial value comes from value, defaultValue or checked; a bare
    `checked` means "true". Only "true" and "false" seed the key.
    """
    key = stateKey_get(directive)
    raw, attrs = formAttrs_read(directive, transformer)
    if attrs.get('checked') is True:
        attrs['checked'] = 'true'
    initial = initialValue_get(attrs, ('value', 'defaultValue', 'checked'))
    props = formProps_make(key, raw, attrs, TOGGLE_HANDLED, initial)
    stateKey_seed(key, CHECKBOX_STATES.get(initial or ''), transformer)
    return formElement_emit(directive, parent, index, transformer, RenderNode(tag='checkbox', props=props))


def radio_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Emit one radio button of the group bound to a state key.

    The button's value is its {value}; a checked button (or defaultValue)
    seeds the group key.
    """
    key = stateKey_get(directive)
    raw, attrs = formAttrs_read(directive, transformer)
    value = attrs['value'] if isinstance(attrs.get('value'), str) else ''
    if isinstance(attrs.get('defaultValue'), str):
        initial: Optional[str] = attrs['defaultValue']
    elif 'checked' in attrs:
        initial = value
    else:
        initial = None
    props = formProps_make(key, raw, attrs, TOGGLE_HANDLED, initial)
    props['value'] = value
    stateKey_seed(key, initial or None, transformer)
    return formElement_emit(directive, parent, index, transformer, RenderNode(tag='radio', props=props))


def select_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """Emit a select bound to a state key; the body holds its options"""
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    key = stateKey_get(directive)
    raw, attrs = formAttrs_read(directive, transformer)
    initial = initialValue_get(attrs, ('value', 'defaultValue'))
    props = formProps_make(key, raw, attrs, SELECT_HANDLED, initial)
    events, remaining = events_extract(
        transformer.indentedCode_expand(label_strip(directive.children)), transformer,
    )
    props.update(events)
    stateKey_seed(key, initial, transformer)
    options = content_flatten(transformer.block_run(remaining))
    return container_emit(directive, parent, index, transformer, RenderNode(tag='select', props=props, children=options))


def option_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Emit an option of a select.

    A leaf option takes its text from {label}; a container option renders
    its body.
    """
    if directive.kind is DirectiveKind.TEXT:
        raise DirectiveError("option cannot be used as an inline directive")
    raw, attrs = formAttrs_read(directive, transformer)
    result = attributes_extract(
        directive, OPTION_SCHEMA, transformer.scope(), transformer.evaluator, raw_attrs=raw,
    )
    value = result.attrs.get('value')
    if value is None or value == '':
        raise DirectiveError("option requires a value attribute")
    props: Dict[str, Any] = {'value': value}
    classStyle_apply(attrs, props)
    additionalAttributes_apply(raw, props, OPTION_HANDLED)

    if directive.kind is DirectiveKind.LEAF:
        label = result.attrs.get('label')
        if label is None:
            raise DirectiveError("option leaf directives require a label attribute")
        node = RenderNode(tag='option', props=props, children=[text_make(label)])
        return indentation_replace(directive, parent, index, [node])

    content = content_flatten(transformer.block_run(label_strip(directive.children)))
    return container_emit(directive, parent, index, transformer, RenderNode(tag='option', props=props, children=content))
