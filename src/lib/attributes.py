"""
Attribute and value parsing for directives

Converts raw directive attribute strings into typed values according to an
AttributeSpec, honouring the quoted-value escape (a value wrapped in matching
quotes or backticks is always a literal) and falling back to expression
evaluation for unquoted values.

Raw values keep their source quoting: {title="Hello"} arrives here as
'"Hello"' and parses to the literal Hello, while {title=name} evaluates the
expression `name` against the scope.

Example:
    >>> attributeValue_parse('"{\\"a\\":1}"', AttributeSpec("object"))
    '{"a":1}'
    >>> attributeValue_parse('{"a":1}', AttributeSpec("object"))
    {'a': 1}
    >>> attributeValue_parse('hp * 2', AttributeSpec("number"), {"hp": 4})
    8
"""

import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..models.attributes import AttributeSchema, AttributeSpec, ExtractResult
from ..models.directives import IGNORED_ATTRIBUTES, RESERVED_ATTRIBUTE_ERROR, reserved_is
from ..models.nodes import DirectiveKind, DirectiveNode, label_get, node_toString
from .expression import (
    Evaluator,
    ExpressionError,
    js_number,
    js_string,
    nan_is,
    number_is,
    parse_float,
)


QUOTE_PATTERN = re.compile(r'^([\'"`])(.*)\1$', re.S)


class DirectiveError(ValueError):
    """
    Validation failure of a single directive

    Raised by handlers and helpers; the transformer records the message in
    the pass error list and removes the offending node. A None message
    removes the node silently.
    """

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "")
        self.message = message


def _evaluator(evaluator: Optional[Evaluator]) -> Evaluator:
    return evaluator if evaluator is not None else Evaluator()


def quoted_extract(raw: Any) -> Optional[str]:
    """Inner text of a value wrapped in matching quotes/backticks, else None"""
    if not isinstance(raw, str):
        return None
    match = QUOTE_PATTERN.match(raw.strip())
    return match.group(2) if match else None


def quotes_strip(raw: Any) -> Any:
    """Unwrap a quoted string, leaving anything else untouched"""
    inner = quoted_extract(raw)
    return raw if inner is None else inner


def attributeValue_parse(
    raw: Any,
    spec: AttributeSpec,
    scope: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[Evaluator] = None,
) -> Any:
    """
    Parse one raw attribute value into the type described by spec.

    Args:
        raw: Raw attribute (string with source quoting, or an already typed
             value coming from a preset)
        spec: Target type and evaluation policy
        scope: Data visible to expressions
        evaluator: Evaluator to use (a throwaway one when omitted)

    Returns:
        Typed value, or None when the value cannot be parsed
    """
    if raw is None:
        return None
    scope = scope if scope is not None else {}

    def evaluate(expr: str) -> Any:
        try:
            return _evaluator(evaluator).evaluate(expr, scope)
        except ExpressionError:
            return None

    if spec.type == 'string':
        if not isinstance(raw, str):
            return js_string(raw)
        inner = quoted_extract(raw)
        if inner is not None:
            return inner
        if spec.expression is False:
            return raw
        evaluated = evaluate(raw)
        if isinstance(evaluated, str):
            return evaluated
        if evaluated is None or nan_is(evaluated):
            return raw
        return js_string(evaluated)

    if spec.type == 'number':
        if number_is(raw):
            return raw
        text = raw if isinstance(raw, str) else js_string(raw)
        evaluated = text if spec.expression is False else evaluate(text)
        number = evaluated if number_is(evaluated) else parse_float(js_string(evaluated))
        if nan_is(number):
            return None
        return number

    if spec.type == 'boolean':
        if isinstance(raw, bool):
            return raw
        if not isinstance(raw, str):
            return None
        if spec.expression is False:
            return raw == 'true'
        evaluated = evaluate(raw)
        return evaluated if isinstance(evaluated, bool) else raw == 'true'

    if spec.type == 'object':
        if isinstance(raw, dict):
            return raw
        if not isinstance(raw, str):
            return None
        inner = quoted_extract(raw)
        if inner is not None:
            return inner
        evaluated = None if spec.expression is False else evaluate(raw)
        if isinstance(evaluated, dict):
            return evaluated
        return objectLiteral_parse(raw, scope, evaluator)

    if spec.type == 'array':
        if isinstance(raw, (list, tuple)):
            return list(raw)
        if not isinstance(raw, str):
            return None
        inner = quoted_extract(raw)
        if inner is not None:
            return inner
        evaluated = None if spec.expression is False else evaluate(raw)
        if isinstance(evaluated, list):
            return evaluated
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return [item.strip() for item in raw.split(',') if item.strip()]
        return parsed if isinstance(parsed, list) else None

    return raw


def attributes_extract(
    directive: DirectiveNode,
    schema: AttributeSchema,
    scope: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[Evaluator] = None,
    key_attr: Optional[str] = None,
    label: bool = False,
    raw_attrs: Optional[Mapping[str, Any]] = None,
) -> ExtractResult:
    """
    Parse and validate a directive's attributes against a schema.

    Missing required attributes are collected as errors, never raised; the
    caller decides whether to remove the directive.

    Args:
        directive: Directive carrying the raw attribute map
        schema: Attribute name -> AttributeSpec
        scope: Data visible to expressions
        evaluator: Evaluator to use
        key_attr: Schema entry whose value must be a non-empty string key
        label: Include the directive label in the result
        raw_attrs: Override of the raw attribute map (e.g. preset-merged)

    Returns:
        ExtractResult with attrs, key, label, valid and errors

    Example:
        >>> node = DirectiveNode(type="leafDirective", name="slide",
        ...                      attributes={"steps": "3"})
        >>> attributes_extract(node, {"steps": AttributeSpec("number")}).attrs
        {'steps': 3}
    """
    attrs = dict(raw_attrs if raw_attrs is not None else (directive.attributes or {}))
    result = ExtractResult()
    ev = _evaluator(evaluator)

    for name, spec in schema.items():
        raw = attrs.get(name)
        if raw is None and name in attrs and spec.type == 'boolean':
            value: Any = True
        else:
            value = attributeValue_parse(raw, spec, scope, ev)
        if value is None and spec.default is not None:
            value = spec.default
        if name == key_attr:
            if not isinstance(value, str) or not value:
                result.errors.append(
                    f'Directive "{directive.name}" missing required key attribute "{name}"'
                )
                result.valid = False
                return result
            result.key = value
            continue
        if value is None:
            if spec.required:
                result.errors.append(
                    f'Directive "{directive.name}" missing required attribute "{name}"'
                )
            continue
        result.attrs[name] = value

    if label:
        result.label = label_get(directive)
    result.valid = not result.errors
    return result


def objectLiteral_parse(
    value: str,
    scope: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[Evaluator] = None,
) -> Optional[Dict[str, Any]]:
    """
    Parse JSON objects and the brace-less colon form "a: 1, b: 'x'".

    Returns:
        dict, or None when the text is not an object literal
    """
    trimmed = value.strip()
    wrapped = trimmed if trimmed.startswith('{') else '{' + trimmed + '}'
    try:
        parsed = json.loads(wrapped)
    except json.JSONDecodeError:
        parsed = typedValue_parse(wrapped, scope, evaluator, evaluate=False)
    return parsed if isinstance(parsed, dict) else None


def typedValue_parse(
    raw: str,
    scope: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[Evaluator] = None,
    evaluate: bool = True,
) -> Any:
    """
    Parse a free-standing value: quoted string, boolean, {a:1} object,
    number, then expression, then bare scope lookup.

    Used by ::set, ::array and the array operations.

    Example:
        >>> typedValue_parse("'hi'")
        'hi'
        >>> typedValue_parse("{a: 1, b: true}")
        {'a': 1, 'b': True}
        >>> typedValue_parse("gold + 5", {"gold": 10})
        15
    """
    scope = scope if scope is not None else {}
    trimmed = raw.strip()
    if not trimmed:
        return None
    inner = quoted_extract(trimmed)
    if inner is not None:
        return inner
    if trimmed == 'true':
        return True
    if trimmed == 'false':
        return False
    if trimmed.startswith('{') and trimmed.endswith('}'):
        result: Dict[str, Any] = {}
        for part in items_split(trimmed[1:-1]):
            colon = part.find(':')
            if colon == -1:
                continue
            key = quotes_strip(part[:colon].strip())
            if not key:
                continue
            parsed = typedValue_parse(part[colon + 1:], scope, evaluator, evaluate)
            if parsed is not None:
                result[key] = parsed
        return result
    number = js_number(trimmed)
    if not nan_is(number):
        return number
    if not evaluate:
        return trimmed
    try:
        return _evaluator(evaluator).evaluate(trimmed, scope)
    except ExpressionError:
        return scope.get(trimmed)


def items_split(text: str) -> List[str]:
    """
    Split on top-level commas, respecting brackets and quotes.

    Example:
        >>> items_split("1, [2, 3], 'a,b'")
        ['1', '[2, 3]', "'a,b'"]
    """
    items: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None
    position = 0
    while position < len(text):
        ch = text[position]
        if quote:
            current.append(ch)
            if ch == '\\' and position + 1 < len(text):
                current.append(text[position + 1])
                position += 2
                continue
            if ch == quote:
                quote = None
        elif ch in '\'"`':
            quote = ch
            current.append(ch)
        elif ch in '[{(':
            depth += 1
            current.append(ch)
        elif ch in ']})':
            depth -= 1
            current.append(ch)
        elif ch == ',' and depth == 0:
            items.append(''.join(current).strip())
            current = []
        else:
            current.append(ch)
        position += 1
    tail = ''.join(current).strip()
    if tail:
        items.append(tail)
    return items


def keyValue_extract(directive: DirectiveNode) -> Tuple[str, str]:
    """
    Split a "key=value" directive label.

    Raises:
        DirectiveError: "Malformed {name} directive: {label}" when there is
                        no '=', or silently when the key is empty
    """
    source = directive.label if directive.label is not None else node_toString(directive)
    text = source.strip()
    eq = text.find('=')
    if eq == -1:
        raise DirectiveError(f"Malformed {directive.name or 'unknown'} directive: {text}")
    key = text[:eq].strip()
    if not key:
        raise DirectiveError(None)
    return key, text[eq + 1:].strip()


def key_ensure(raw: Any) -> str:
    """Require a non-empty string key; otherwise remove the directive silently"""
    if isinstance(raw, str):
        text = quotes_strip(raw.strip())
        if text:
            return text
    raise DirectiveError(None)


def numericValue_parse(value: Any) -> Any:
    """Coerce to a number; unparsable values become 0"""
    if number_is(value):
        return value
    number = parse_float(value) if isinstance(value, str) else js_number(value)
    return 0 if nan_is(number) else number


def attrs_merge(preset: Optional[Mapping[str, Any]], raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Preset attributes underneath explicit ones; explicit values win"""
    merged: Dict[str, Any] = dict(preset or {})
    merged.update(raw)
    return merged


def attributes_interpolate(
    attrs: Mapping[str, Any],
    scope: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[Evaluator] = None,
) -> Dict[str, Any]:
    """
    Unquote raw string attributes and expand ${expr} inside them.

    Non-string values are passed through unchanged; bare keys become True.
    """
    ev = _evaluator(evaluator)
    result: Dict[str, Any] = {}
    for name, value in attrs.items():
        if value is None:
            result[name] = True
            continue
        if isinstance(value, str):
            text = quotes_strip(value)
            result[name] = ev.string_interpolate(text, scope) if '${' in text else text
            continue
        result[name] = value
    return result


def additionalAttributes_apply(
    source: Mapping[str, Any],
    target: Dict[str, Any],
    exclude: Iterable[str],
) -> Dict[str, Any]:
    """
    Copy attributes not otherwise handled into a render prop bag.

    Raises:
        DirectiveError: when the reserved `class` attribute is present
    """
    excluded = set(exclude)
    for name, value in source.items():
        if reserved_is(name):
            raise DirectiveError(RESERVED_ATTRIBUTE_ERROR)
        if name in IGNORED_ATTRIBUTES or name in excluded:
            continue
        target[name] = True if value is None else quotes_strip(value)
    return target


def directiveKind_require(directive: DirectiveNode, kind: DirectiveKind) -> None:
    """
    Reject directives used in the wrong shape.

    Raises:
        DirectiveError: "{name} can only be used as a {leaf|container} directive"
    """
    if directive.kind is kind:
        return
    shape = 'leaf' if kind is DirectiveKind.LEAF else 'container' if kind is DirectiveKind.CONTAINER else 'text'
    raise DirectiveError(f"{directive.name} can only be used as a {shape} directive")
