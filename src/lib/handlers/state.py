"""
State directive handlers

Leaf directives that write the pass's working state:

    ::set[hp=10 name="Ann"]          typed values, several pairs per label
    ::setOnce[seed=42]               set and lock
    ::array[items=[1, 2, 'three']]   arrays in [ ] notation
    ::createRange[hp=5]{min=0 max=10}
    ::setRange[hp=hp - 1]            clamped into the existing range
    ::random[roll]{min=1 max=6}      or {from=options}
    ::push{key=items value="a, b"}   pop, shift, unshift, splice, concat
    ::unset[hp]

Writes to locked keys are ignored by the StateManager. Every handler
removes its directive from the tree.
"""

import json
import re
from typing import Any, Dict, List

from ..attributes import (
    DirectiveError,
    attributes_extract,
    directiveKind_require,
    items_split,
    key_ensure,
    keyValue_extract,
    numericValue_parse,
    quoted_extract,
    typedValue_parse,
)
from ...models.attributes import AttributeSpec
from ...models.game import range_is
from ...models.nodes import DirectiveKind, DirectiveNode, Node, label_get
from ..transformer import node_remove


PAIR_PATTERN = re.compile(r'\S+=\s*[\s\S]+?(?=\s+\S+=|$)')

RANGE_SCHEMA = {
    'min': AttributeSpec('number', required=True),
    'max': AttributeSpec('number', required=True),
}

RANDOM_SCHEMA = {
    'from': AttributeSpec('array'),
    'min': AttributeSpec('number'),
    'max': AttributeSpec('number'),
}


def items_parse(raw: str, transformer: Any) -> List[Any]:
    """Comma separated values, typed; array results are flattened"""
    values: List[Any] = []
    for item in (part.strip() for part in raw.split(',')):
        if not item:
            continue
        value = typedValue_parse(item, transformer.scope(), transformer.evaluator)
        if value is None:
            values.append(item)
        elif isinstance(value, list):
            values.extend(value)
        else:
            values.append(value)
    return values


def set_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any, lock: bool = False) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    shorthand = label_get(directive).strip()
    values: Dict[str, Any] = {}
    if '=' in shorthand:
        for pair in PAIR_PATTERN.findall(shorthand):
            eq = pair.find('=')
            key = pair[:eq].strip()
            if not key:
                continue
            parsed = typedValue_parse(pair[eq + 1:], transformer.scope(), transformer.evaluator)
            if parsed is not None:
                values[key] = parsed
    elif shorthand:
        transformer.error_add(f"Malformed set directive: {shorthand}")
    for key, value in values.items():
        transformer.state.value_set(key, value, lock=lock)
    return node_remove(parent, index)


def setOnce_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    return set_handle(directive, parent, index, transformer, lock=True)


def arrayValue_parse(key: str, raw: str, transformer: Any) -> Any:
    """
    Parse the value of an ::array pair.

    Quoted values are stored as strings. Anything else must be written in
    [ ] notation; JSON is tried first, then a bracket-aware split.
    """
    quoted = quoted_extract(raw)
    if quoted is not None:
        return quoted
    if not (raw.startswith('[') and raw.endswith(']')):
        transformer.error_add(f"Array directive value must be in [ ] notation: {key}={raw}")
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        return parsed
    return [
        typedValue_parse(item, transformer.scope(), transformer.evaluator)
        for item in items_split(raw[1:-1])
    ]


def array_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any, lock: bool = False) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    key, raw = keyValue_extract(directive)
    transformer.state.value_set(key, arrayValue_parse(key, raw, transformer), lock=lock)
    return node_remove(parent, index)


def arrayOnce_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    return array_handle(directive, parent, index, transformer, lock=True)


def range_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any, create: bool) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    key, raw = keyValue_extract(directive)
    if create:
        result = attributes_extract(directive, RANGE_SCHEMA, transformer.scope(), transformer.evaluator)
        if not result.valid:
            for message in result.errors:
                transformer.error_add(message)
            return node_remove(parent, index)
        lower, upper = result.attrs['min'], result.attrs['max']
    else:
        current = transformer.state.value_get(key)
        if not range_is(current):
            raise DirectiveError(f"setRange target is not a range: {key}")
        lower, upper = current['min'], current['max']
    value = numericValue_parse(typedValue_parse(raw, transformer.scope(), transformer.evaluator))
    transformer.state.range_set(key, lower, upper, value)
    return node_remove(parent, index)


def createRange_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    return range_handle(directive, parent, index, transformer, create=True)


def setRange_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    return range_handle(directive, parent, index, transformer, create=False)


def random_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any, lock: bool = False) -> int:
    """
    ::random[key]{from=[...]} picks an item; {min max} picks an integer in
    [min, max], both ends included.
    """
    directiveKind_require(directive, DirectiveKind.LEAF)
    key = key_ensure(label_get(directive))
    raw = directive.attributes or {}
    if 'from' in raw and ('min' in raw or 'max' in raw):
        raise DirectiveError('random accepts either "from" or "min"/"max", not both')
    result = attributes_extract(directive, RANDOM_SCHEMA, transformer.scope(), transformer.evaluator)
    attrs = result.attrs
    if 'from' in raw:
        options = attrs.get('from')
        if not isinstance(options, list) or not options:
            raise DirectiveError('random "from" attribute must be a non-empty array')
        value = transformer.rng.choice(options)
    elif 'min' in raw or 'max' in raw:
        if 'min' not in attrs or 'max' not in attrs:
            raise DirectiveError('random requires both "min" and "max" when "from" is absent')
        lower, upper = sorted((int(attrs['min']), int(attrs['max'])))
        value = transformer.rng.randint(lower, upper)
    else:
        raise DirectiveError('random requires either "from" or both "min" and "max"')
    transformer.state.value_set(key, value, lock=lock)
    return node_remove(parent, index)


def randomOnce_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    return random_handle(directive, parent, index, transformer, lock=True)


def arrayOperation_make(operation: str):
    """
    Build the handler of one array operation.

    Attributes: key (target array), value (comma separated items), into
    (key receiving popped/shifted/spliced items), index and count (splice).
    """

    def handler(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
        directiveKind_require(directive, DirectiveKind.LEAF)
        attrs = directive.attributes or {}
        key = key_ensure(attrs.get('key'))
        state = transformer.state
        current = state.value_get(key)
        items = list(current) if isinstance(current, list) else []
        into = attrs.get('into')
        into = quoted_extract(into) or into if isinstance(into, str) else None
        raw_value = attrs.get('value')
        values = items_parse(quoted_extract(raw_value) or raw_value, transformer) if isinstance(raw_value, str) else []

        if operation in ('push', 'unshift', 'concat'):
            if values:
                state.value_set(key, values + items if operation == 'unshift' else items + values)
        elif operation in ('pop', 'shift'):
            value = None
            if items:
                value = items.pop() if operation == 'pop' else items.pop(0)
            state.value_set(key, items)
            if into and value is not None:
                state.value_set(into, value)
        elif operation == 'splice':
            start = int(numericValue_parse(count_parse(attrs.get('index'), transformer)))
            count = int(numericValue_parse(count_parse(attrs.get('count'), transformer)))
            if start < 0:
                start = max(len(items) + start, 0)
            removed = items[start:start + max(count, 0)]
            items[start:start + max(count, 0)] = values
            state.value_set(key, items)
            if into:
                state.value_set(into, removed)
        return node_remove(parent, index)

    handler.__name__ = f"{operation}_handle"
    return handler


def count_parse(raw: Any, transformer: Any) -> Any:
    if isinstance(raw, str):
        return typedValue_parse(raw, transformer.scope(), transformer.evaluator)
    return raw


push_handle = arrayOperation_make('push')
pop_handle = arrayOperation_make('pop')
shift_handle = arrayOperation_make('shift')
unshift_handle = arrayOperation_make('unshift')
splice_handle = arrayOperation_make('splice')
concat_handle = arrayOperation_make('concat')


def unset_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    raw = (directive.attributes or {}).get('key')
    key = key_ensure(raw if raw is not None else label_get(directive))
    transformer.state.value_unset(key)
    return node_remove(parent, index)
