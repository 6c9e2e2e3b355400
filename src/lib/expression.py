"""
Expression evaluator for author-supplied expressions

Compiles small JavaScript-flavoured expression strings into Python callables
and evaluates them against a data scope (the game state).

Supported syntax:
- Literals: numbers, 'single'/"double" quoted strings, `template ${strings}`,
  true/false/null/undefined/NaN/Infinity, [arrays], {object: literals}
- Operators: ! - + typeof, * / % **, + -, < <= > >=, == != === !==,
  && || ??, cond ? a : b
- Member access a.b, a?.b, a[b]; calls of builtins and non-mutating
  string/array/number methods (includes, join, slice, toUpperCase, ...)

There is no assignment, no function definition and no statement syntax, so
an expression cannot mutate its scope. Unknown identifiers and missing
properties resolve to None (JavaScript's undefined) instead of raising.

Compiled expressions are cached per Evaluator instance in a bounded LRU map
keyed by the exact expression string.

Example:
    >>> ev = Evaluator()
    >>> ev.evaluate("x > 1 && name === 'Ada'", {"x": 2, "name": "Ada"})
    True
    >>> ev.evaluate("missing.deep.key", {}) is None
    True
    >>> ev.string_interpolate("HP: ${hp}/${max}", {"hp": 3, "max": 10})
    'HP: 3/10'
"""

import json
import math
import random
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config import appsettings
from .log import LOG


Scope = Mapping[str, Any]
Compiled = Callable[[Scope], Any]

NaN = float('nan')


class ExpressionError(ValueError):
    """Syntax or runtime failure of an author expression"""


# ---------------------------------------------------------------------------
# JavaScript-flavoured value semantics
# ---------------------------------------------------------------------------

_NUMERIC_TEXT = re.compile(r'[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
_NUMERIC_PREFIX = re.compile(r'\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))')
_INT_PREFIX = re.compile(r'\s*([+-]?\d+)')


def number_is(value: Any) -> bool:
    """True for int/float values (bool excluded)"""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def nan_is(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def js_truthy(value: Any) -> bool:
    """Truthiness with JavaScript rules: [] and {} are truthy, NaN is falsy"""
    if value is None or value is False:
        return False
    if value is True:
        return True
    if number_is(value):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return value != ''
    return True


def _number_tidy(value: float) -> Any:
    if isinstance(value, float) and value.is_integer() and abs(value) < 2 ** 53:
        return int(value)
    return value


def js_number(value: Any) -> Any:
    """ToNumber conversion; returns NaN when the value has no numeric reading"""
    if value is None:
        return NaN
    if isinstance(value, bool):
        return 1 if value else 0
    if number_is(value):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if _NUMERIC_TEXT.fullmatch(text):
            number = float(text)
            return _number_tidy(number) if re.fullmatch(r'[+-]?\d+', text) else number
        if text in ('Infinity', '+Infinity'):
            return math.inf
        if text == '-Infinity':
            return -math.inf
        return NaN
    if isinstance(value, (list, tuple)):
        if not value:
            return 0
        if len(value) == 1:
            return js_number(value[0])
    return NaN


def parse_float(value: Any) -> Any:
    """parseFloat(): numeric prefix of the string form, NaN when none"""
    if number_is(value):
        return value
    match = _NUMERIC_PREFIX.match(js_string(value))
    if not match:
        return NaN
    text = match.group(1)
    if text.endswith('Infinity'):
        return -math.inf if text.startswith('-') else math.inf
    number = float(text)
    if re.fullmatch(r'[+-]?\d+', text):
        return int(text)
    return number


def parse_int(value: Any, radix: Any = None) -> Any:
    """parseInt(): integer prefix of the string form, NaN when none"""
    text = js_string(value).strip()
    base = int(js_number(radix)) if radix is not None and not nan_is(js_number(radix)) else 10
    if base == 16 or (radix is None and re.match(r'[+-]?0[xX]', text)):
        match = re.match(r'([+-]?)(?:0[xX])?([0-9a-fA-F]+)', text)
        if not match:
            return NaN
        sign = -1 if match.group(1) == '-' else 1
        return sign * int(match.group(2), 16)
    if base == 10:
        match = _INT_PREFIX.match(text)
        return int(match.group(1)) if match else NaN
    digits = ''
    for ch in text.lstrip('+-'):
        if ch.isalnum() and int(ch, 36) < base:
            digits += ch
        else:
            break
    if not digits:
        return NaN
    return (-1 if text.startswith('-') else 1) * int(digits, base)


def js_string(value: Any) -> str:
    """ToString conversion with JavaScript formatting of numbers and arrays"""
    if value is None:
        return 'undefined'
    if value is True:
        return 'true'
    if value is False:
        return 'false'
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return 'NaN'
        if math.isinf(value):
            return 'Infinity' if value > 0 else '-Infinity'
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ','.join('' if item is None else js_string(item) for item in value)
    if isinstance(value, dict):
        return '[object Object]'
    if callable(value):
        return 'function'
    return str(value)


def js_typeof(value: Any) -> str:
    if value is None:
        return 'undefined'
    if isinstance(value, bool):
        return 'boolean'
    if number_is(value):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if callable(value) and not isinstance(value, _Namespace):
        return 'function'
    return 'object'


def strict_equal(a: Any, b: Any) -> bool:
    """=== semantics: no type coercion, containers compare by identity"""
    if a is None or b is None:
        return a is b
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if number_is(a) and number_is(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def loose_equal(a: Any, b: Any) -> bool:
    """== semantics: numbers, numeric strings and booleans coerce"""
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, (list, dict)) and isinstance(b, (list, dict)):
        return a is b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, (list, dict)):
        a = js_string(a)
    if isinstance(b, (list, dict)):
        b = js_string(b)
    if (number_is(a) or isinstance(a, (bool, str))) and (number_is(b) or isinstance(b, (bool, str))):
        if isinstance(a, str) and isinstance(b, str):
            return a == b
        na, nb = js_number(a), js_number(b)
        return not (nan_is(na) or nan_is(nb)) and na == nb
    return strict_equal(a, b)


def _compare(op: str, a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        left, right = a, b
    else:
        left, right = js_number(a), js_number(b)
        if nan_is(left) or nan_is(right):
            return False
    if op == '<':
        return left < right
    if op == '<=':
        return left <= right
    if op == '>':
        return left > right
    return left >= right


def _add(a: Any, b: Any) -> Any:
    if isinstance(a, (str, list, dict)) or isinstance(b, (str, list, dict)):
        return js_string(a) + js_string(b)
    return js_number(a) + js_number(b)


def _arith(op: str, a: Any, b: Any) -> Any:
    na, nb = js_number(a), js_number(b)
    if nan_is(na) or nan_is(nb):
        return NaN
    if op == '-':
        return na - nb
    if op == '*':
        return na * nb
    if op == '/':
        if nb == 0:
            if na == 0:
                return NaN
            return math.copysign(math.inf, na) * math.copysign(1, nb)
        result = na / nb
        if isinstance(na, int) and isinstance(nb, int):
            return _number_tidy(result)
        return result
    if op == '%':
        if nb == 0 or math.isinf(na):
            return NaN
        result = math.fmod(na, nb)
        if isinstance(na, int) and isinstance(nb, int):
            return int(result)
        return result
    try:
        result = na ** nb
    except (OverflowError, ZeroDivisionError):
        return math.inf
    return NaN if isinstance(result, complex) else result


# ---------------------------------------------------------------------------
# Builtins and member access
# ---------------------------------------------------------------------------

class _Namespace(dict):
    """Read-only builtin namespace such as Math or JSON"""


def _js_round(value: Any) -> Any:
    number = js_number(value)
    if nan_is(number) or math.isinf(number):
        return number
    return int(math.floor(number + 0.5))


def _math_minmax(pick: Callable, empty: float) -> Callable:
    def compute(*values: Any) -> Any:
        numbers = [js_number(v) for v in values]
        if any(nan_is(n) for n in numbers):
            return NaN
        return pick(numbers) if numbers else empty
    return compute


def _json_stringify(value: Any, *_: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, separators=(',', ':'), ensure_ascii=False)


def _json_parse(text: Any) -> Any:
    try:
        return json.loads(js_string(text))
    except json.JSONDecodeError as exc:
        raise ExpressionError(f"JSON.parse: {exc}") from exc


def _number_call(value: Any = 0) -> Any:
    return js_number(value)


def _string_call(value: Any = '') -> str:
    return js_string(value)


MATH = _Namespace(
    floor=lambda v: _number_tidy(math.floor(js_number(v))) if not nan_is(js_number(v)) else NaN,
    ceil=lambda v: _number_tidy(math.ceil(js_number(v))) if not nan_is(js_number(v)) else NaN,
    round=_js_round,
    trunc=lambda v: int(js_number(v)) if not nan_is(js_number(v)) else NaN,
    abs=lambda v: abs(js_number(v)),
    sign=lambda v: (js_number(v) > 0) - (js_number(v) < 0) if not nan_is(js_number(v)) else NaN,
    sqrt=lambda v: math.sqrt(js_number(v)) if js_number(v) >= 0 else NaN,
    pow=lambda a, b: _arith('**', a, b),
    min=_math_minmax(min, math.inf),
    max=_math_minmax(max, -math.inf),
    random=random.random,
    PI=math.pi,
    E=math.e,
)

JSON = _Namespace(stringify=_json_stringify, parse=_json_parse)

ARRAY = _Namespace(isArray=lambda v: isinstance(v, (list, tuple)))

OBJECT = _Namespace(
    keys=lambda v: list(v.keys()) if isinstance(v, Mapping) else [],
    values=lambda v: list(v.values()) if isinstance(v, Mapping) else [],
    entries=lambda v: [[k, val] for k, val in v.items()] if isinstance(v, Mapping) else [],
)

BUILTINS: Dict[str, Any] = {
    'Math': MATH,
    'JSON': JSON,
    'Array': ARRAY,
    'Object': OBJECT,
    'Number': _number_call,
    'String': _string_call,
    'Boolean': js_truthy,
    'parseInt': parse_int,
    'parseFloat': parse_float,
    'isNaN': lambda v: nan_is(js_number(v)),
    'isFinite': lambda v: not (nan_is(js_number(v)) or math.isinf(js_number(v))),
}


def _slice_bounds(length: int, start: Any = None, end: Any = None):
    def norm(value: Any, default: int) -> int:
        if value is None:
            return default
        number = js_number(value)
        if nan_is(number):
            return 0
        number = int(number)
        if number < 0:
            return max(length + number, 0)
        return min(number, length)
    return norm(start, 0), norm(end, length)


def _index_of(seq: Any, item: Any, start: Any = 0) -> int:
    if isinstance(seq, str):
        return seq.find(js_string(item), int(js_number(start) or 0))
    for position in range(int(js_number(start) or 0), len(seq)):
        if strict_equal(seq[position], item):
            return position
    return -1


def _string_method(text: str, name: str) -> Optional[Callable]:
    methods: Dict[str, Callable] = {
        'toUpperCase': lambda: text.upper(),
        'toLowerCase': lambda: text.lower(),
        'trim': lambda: text.strip(),
        'trimStart': lambda: text.lstrip(),
        'trimEnd': lambda: text.rstrip(),
        'includes': lambda s, *_: js_string(s) in text,
        'startsWith': lambda s, *_: text.startswith(js_string(s)),
        'endsWith': lambda s, *_: text.endswith(js_string(s)),
        'indexOf': lambda s, start=0: _index_of(text, s, start),
        'lastIndexOf': lambda s: text.rfind(js_string(s)),
        'slice': lambda start=None, end=None: text[slice(*_slice_bounds(len(text), start, end))],
        'substring': lambda start=0, end=None: text[slice(*sorted(_slice_bounds(len(text), max(js_number(start), 0), end)))],
        'split': lambda sep=None, *_: [text] if sep is None else (list(text) if sep == '' else text.split(js_string(sep))),
        'replace': lambda old, new: text.replace(js_string(old), js_string(new), 1),
        'replaceAll': lambda old, new: text.replace(js_string(old), js_string(new)),
        'charAt': lambda i=0: text[int(js_number(i))] if 0 <= int(js_number(i)) < len(text) else '',
        'padStart': lambda n, fill=' ': text.rjust(int(js_number(n)), js_string(fill)[:1] or ' '),
        'padEnd': lambda n, fill=' ': text.ljust(int(js_number(n)), js_string(fill)[:1] or ' '),
        'repeat': lambda n: text * int(js_number(n)),
        'concat': lambda *parts: text + ''.join(js_string(p) for p in parts),
        'toString': lambda: text,
    }
    return methods.get(name)


def _array_method(items: Any, name: str) -> Optional[Callable]:
    methods: Dict[str, Callable] = {
        'includes': lambda item, *_: any(
            strict_equal(x, item) or (nan_is(x) and nan_is(item)) for x in items
        ),
        'indexOf': lambda item, start=0: _index_of(items, item, start),
        'join': lambda sep=',': js_string(sep).join('' if x is None else js_string(x) for x in items),
        'slice': lambda start=None, end=None: list(items[slice(*_slice_bounds(len(items), start, end))]),
        'concat': lambda *parts: list(items) + [
            y for p in parts for y in (p if isinstance(p, (list, tuple)) else [p])
        ],
        'at': lambda i=0: _element_get(items, int(js_number(i)) + (len(items) if int(js_number(i)) < 0 else 0)),
        'toString': lambda: js_string(items),
    }
    return methods.get(name)


def _number_method(number: Any, name: str) -> Optional[Callable]:
    methods: Dict[str, Callable] = {
        'toFixed': lambda digits=0: f"{number:.{int(js_number(digits))}f}",
        'toString': lambda *_: js_string(number),
    }
    return methods.get(name)


def _element_get(items: Any, position: Any) -> Any:
    if isinstance(position, bool) or not number_is(position):
        return None
    if isinstance(position, float):
        if not position.is_integer():
            return None
        position = int(position)
    if 0 <= position < len(items):
        return items[position]
    return None


def member_get(obj: Any, key: Any) -> Any:
    """
    Permissive property access: anything missing resolves to None.

    Mappings are read by key, strings and sequences support `length`,
    numeric indexes and a fixed set of non-mutating methods.
    """
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        if key in obj:
            return obj[key]
        if not isinstance(key, str) and number_is(key):
            return obj.get(js_string(key))
        return None
    if isinstance(obj, str):
        if key == 'length':
            return len(obj)
        if number_is(key) or (isinstance(key, str) and key.isdigit()):
            char = _element_get(obj, js_number(key))
            return char
        return _string_method(obj, key) if isinstance(key, str) else None
    if isinstance(obj, (list, tuple)):
        if key == 'length':
            return len(obj)
        if number_is(key) or (isinstance(key, str) and key.isdigit()):
            return _element_get(obj, js_number(key))
        return _array_method(obj, key) if isinstance(key, str) else None
    if number_is(obj) and isinstance(key, str):
        return _number_method(obj, key)
    return None


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

@dataclass
class _Token:
    kind: str     # num, str, template, name, op, eof
    value: Any
    pos: int


_OPERATORS = (
    '===', '!==', '**', '==', '!=', '<=', '>=', '&&', '||', '??', '?.',
    '+', '-', '*', '/', '%', '<', '>', '!', '?', ':', '.', ',',
    '(', ')', '[', ']', '{', '}',
)

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'b': '\b', 'f': '\f', 'v': '\v', '0': '\0'}

_NUMBER_PATTERN = re.compile(r'0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
_NAME_PATTERN = re.compile(r'[A-Za-z_$][\w$]*')


def _string_read(source: str, pos: int, quote: str) -> tuple:
    """Read a quoted string starting after the opening quote"""
    out: List[str] = []
    while pos < len(source):
        ch = source[pos]
        if ch == '\\' and pos + 1 < len(source):
            nxt = source[pos + 1]
            if nxt == 'u' and re.fullmatch(r'[0-9a-fA-F]{4}', source[pos + 2:pos + 6] or ''):
                out.append(chr(int(source[pos + 2:pos + 6], 16)))
                pos += 6
                continue
            out.append(_ESCAPES.get(nxt, nxt))
            pos += 2
            continue
        if ch == quote:
            return ''.join(out), pos + 1
        out.append(ch)
        pos += 1
    raise ExpressionError(f"Unterminated string in expression: {source}")


def _template_read(source: str, pos: int) -> tuple:
    """Read a backtick template, keeping ${...} bodies raw"""
    parts: List[Any] = []
    literal: List[str] = []
    while pos < len(source):
        ch = source[pos]
        if ch == '\\' and pos + 1 < len(source):
            literal.append(_ESCAPES.get(source[pos + 1], source[pos + 1]))
            pos += 2
            continue
        if ch == '`':
            if literal:
                parts.append(''.join(literal))
            return parts, pos + 1
        if ch == '$' and source[pos + 1:pos + 2] == '{':
            if literal:
                parts.append(''.join(literal))
                literal = []
            depth = 1
            start = pos + 2
            pos = start
            quote: Optional[str] = None
            while pos < len(source) and depth:
                c = source[pos]
                if quote:
                    if c == '\\':
                        pos += 1
                    elif c == quote:
                        quote = None
                elif c in '\'"`':
                    quote = c
                elif c == '{':
                    depth += 1
                elif c == '}':
                    depth -= 1
                pos += 1
            if depth:
                break
            parts.append(('expr', source[start:pos - 1]))
            continue
        literal.append(ch)
        pos += 1
    raise ExpressionError(f"Unterminated template in expression: {source}")


def tokens_make(source: str) -> List[_Token]:
    """Split an expression into tokens"""
    tokens: List[_Token] = []
    pos = 0
    length = len(source)
    while pos < length:
        ch = source[pos]
        if ch.isspace():
            pos += 1
            continue
        if ch.isdigit() or (ch == '.' and source[pos + 1:pos + 2].isdigit()):
            match = _NUMBER_PATTERN.match(source, pos)
            text = match.group(0)
            if text[:2] in ('0x', '0X'):
                value: Any = int(text, 16)
            elif re.fullmatch(r'\d+', text):
                value = int(text)
            else:
                value = float(text)
            tokens.append(_Token('num', value, pos))
            pos = match.end()
            if pos < length and (source[pos].isalpha() or source[pos] == '_'):
                raise ExpressionError(f"Invalid number at position {pos} in: {source}")
            continue
        if ch in '\'"':
            value, end = _string_read(source, pos + 1, ch)
            tokens.append(_Token('str', value, pos))
            pos = end
            continue
        if ch == '`':
            parts, end = _template_read(source, pos + 1)
            tokens.append(_Token('template', parts, pos))
            pos = end
            continue
        match = _NAME_PATTERN.match(source, pos)
        if match:
            tokens.append(_Token('name', match.group(0), pos))
            pos = match.end()
            continue
        for op in _OPERATORS:
            if source.startswith(op, pos):
                # "?." followed by a digit is a ternary with a decimal operand
                if op == '?.' and source[pos + 2:pos + 3].isdigit():
                    continue
                tokens.append(_Token('op', op, pos))
                pos += len(op)
                break
        else:
            raise ExpressionError(f"Unexpected character {ch!r} at position {pos} in: {source}")
    tokens.append(_Token('eof', None, length))
    return tokens


# ---------------------------------------------------------------------------
# Pratt parser compiling straight to closures
# ---------------------------------------------------------------------------

_BINARY_POWER = {
    '??': 4, '||': 4,
    '&&': 5,
    '==': 8, '!=': 8, '===': 8, '!==': 8,
    '<': 9, '<=': 9, '>': 9, '>=': 9,
    '+': 11, '-': 11,
    '*': 12, '/': 12, '%': 12,
    '**': 13,
}
_TERNARY_POWER = 2
_UNARY_POWER = 14
_POSTFIX_POWER = 17

_CONSTANTS = {
    'true': True,
    'false': False,
    'null': None,
    'undefined': None,
    'NaN': NaN,
    'Infinity': math.inf,
}


class _ExpressionParser:
    """Compile one expression string into a closure over (scope)"""

    def __init__(self, source: str, builtins: Mapping[str, Any]):
        self.source = source
        self.builtins = builtins
        self.tokens = tokens_make(source)
        self.pos = 0

    def parse(self) -> Compiled:
        if self.peek().kind == 'eof':
            raise ExpressionError("Empty expression")
        compiled = self.expression(0)
        token = self.peek()
        if token.kind != 'eof':
            self.error(token, "Unexpected token")
        return compiled

    # -- token helpers

    def peek(self) -> _Token:
        return self.tokens[self.pos]

    def advance(self) -> _Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def expect(self, op: str) -> _Token:
        token = self.advance()
        if token.kind != 'op' or token.value != op:
            self.error(token, f"Expected '{op}'")
        return token

    def error(self, token: _Token, message: str) -> None:
        shown = 'end of input' if token.kind == 'eof' else repr(token.value)
        raise ExpressionError(f"{message} at position {token.pos} ({shown}) in: {self.source}")

    def power_left(self, token: _Token) -> int:
        if token.kind != 'op':
            return 0
        if token.value in _BINARY_POWER:
            return _BINARY_POWER[token.value]
        if token.value == '?':
            return _TERNARY_POWER
        if token.value in ('.', '?.', '[', '('):
            return _POSTFIX_POWER
        return 0

    # -- grammar

    def expression(self, power_right: int) -> Compiled:
        token = self.advance()
        left = self.prefix(token)
        while power_right < self.power_left(self.peek()):
            token = self.advance()
            left = self.infix(token, left)
        return left

    def prefix(self, token: _Token) -> Compiled:
        if token.kind in ('num', 'str'):
            value = token.value
            return lambda scope: value
        if token.kind == 'template':
            return self.template_compile(token.value)
        if token.kind == 'name':
            return self.name_compile(token)
        if token.kind == 'op':
            op = token.value
            if op == '(':
                inner = self.expression(0)
                self.expect(')')
                return inner
            if op == '[':
                return self.array_compile()
            if op == '{':
                return self.object_compile()
            if op == '!':
                operand = self.expression(_UNARY_POWER)
                return lambda scope: not js_truthy(operand(scope))
            if op == '-':
                operand = self.expression(_UNARY_POWER)
                return lambda scope: _arith('-', 0, operand(scope))
            if op == '+':
                operand = self.expression(_UNARY_POWER)
                return lambda scope: js_number(operand(scope))
        self.error(token, "Unexpected token")
        raise AssertionError("unreachable")

    def name_compile(self, token: _Token) -> Compiled:
        name = token.value
        if name in _CONSTANTS:
            value = _CONSTANTS[name]
            return lambda scope: value
        if name == 'typeof':
            operand = self.expression(_UNARY_POWER)
            return lambda scope: js_typeof(operand(scope))
        if name in ('new', 'function', 'var', 'let', 'const', 'delete', 'void', 'this', 'class'):
            self.error(token, "Unsupported keyword")
        builtins = self.builtins

        def lookup(scope: Scope) -> Any:
            if name in scope:
                return scope[name]
            return builtins.get(name)
        return lookup

    def template_compile(self, parts: List[Any]) -> Compiled:
        pieces: List[Any] = []
        for part in parts:
            if isinstance(part, tuple):
                pieces.append(_ExpressionParser(part[1], self.builtins).parse())
            else:
                pieces.append(part)

        def render(scope: Scope) -> str:
            return ''.join(
                piece if isinstance(piece, str) else js_string(piece(scope))
                for piece in pieces
            )
        return render

    def array_compile(self) -> Compiled:
        elements: List[Compiled] = []
        while not (self.peek().kind == 'op' and self.peek().value == ']'):
            elements.append(self.expression(0))
            if self.peek().kind == 'op' and self.peek().value == ',':
                self.advance()
                continue
            break
        self.expect(']')
        return lambda scope: [element(scope) for element in elements]

    def object_compile(self) -> Compiled:
        entries: List[tuple] = []
        while not (self.peek().kind == 'op' and self.peek().value == '}'):
            token = self.advance()
            if token.kind in ('name', 'str'):
                key = token.value
            elif token.kind == 'num':
                key = js_string(token.value)
            else:
                self.error(token, "Expected property name")
            if self.peek().kind == 'op' and self.peek().value == ':':
                self.advance()
                entries.append((key, self.expression(0)))
            elif token.kind == 'name':
                entries.append((key, self.name_compile(token)))
            else:
                self.error(self.peek(), "Expected ':'")
            if self.peek().kind == 'op' and self.peek().value == ',':
                self.advance()
                continue
            break
        self.expect('}')
        return lambda scope: {key: value(scope) for key, value in entries}

    def infix(self, token: _Token, left: Compiled) -> Compiled:
        op = token.value
        if op in ('.', '?.'):
            name_token = self.advance()
            if name_token.kind == 'op' and name_token.value == '[' and op == '?.':
                index = self.expression(0)
                self.expect(']')
                return lambda scope: member_get(left(scope), index(scope))
            if name_token.kind == 'op' and name_token.value == '(' and op == '?.':
                return self.call_compile(left, optional=True)
            if name_token.kind != 'name':
                self.error(name_token, "Expected property name")
            prop = name_token.value
            return lambda scope: member_get(left(scope), prop)
        if op == '[':
            index = self.expression(0)
            self.expect(']')
            return lambda scope: member_get(left(scope), index(scope))
        if op == '(':
            return self.call_compile(left)
        if op == '?':
            then = self.expression(0)
            self.expect(':')
            otherwise = self.expression(_TERNARY_POWER - 1)
            return lambda scope: then(scope) if js_truthy(left(scope)) else otherwise(scope)
        power = _BINARY_POWER[op]
        right = self.expression(power - 1 if op == '**' else power)
        return self.binary_compile(op, left, right)

    def call_compile(self, callee: Compiled, optional: bool = False) -> Compiled:
        args: List[Compiled] = []
        while not (self.peek().kind == 'op' and self.peek().value == ')'):
            args.append(self.expression(0))
            if self.peek().kind == 'op' and self.peek().value == ',':
                self.advance()
                continue
            break
        self.expect(')')
        source = self.source

        def call(scope: Scope) -> Any:
            fn = callee(scope)
            if fn is None and optional:
                return None
            if not callable(fn) or isinstance(fn, _Namespace):
                raise ExpressionError(f"Value is not a function in: {source}")
            return fn(*[arg(scope) for arg in args])
        return call

    def binary_compile(self, op: str, left: Compiled, right: Compiled) -> Compiled:
        if op == '&&':
            return lambda scope: (lambda a: right(scope) if js_truthy(a) else a)(left(scope))
        if op == '||':
            return lambda scope: (lambda a: a if js_truthy(a) else right(scope))(left(scope))
        if op == '??':
            return lambda scope: (lambda a: right(scope) if a is None else a)(left(scope))
        if op == '===':
            return lambda scope: strict_equal(left(scope), right(scope))
        if op == '!==':
            return lambda scope: not strict_equal(left(scope), right(scope))
        if op == '==':
            return lambda scope: loose_equal(left(scope), right(scope))
        if op == '!=':
            return lambda scope: not loose_equal(left(scope), right(scope))
        if op in ('<', '<=', '>', '>='):
            return lambda scope: _compare(op, left(scope), right(scope))
        if op == '+':
            return lambda scope: _add(left(scope), right(scope))
        return lambda scope: _arith(op, left(scope), right(scope))


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------

_INTERPOLATION = re.compile(r'\$\{([^}]+)\}')


class Evaluator:
    """
    Compiles and evaluates expressions with an instance-owned LRU cache

    Each interpreter (engine, test) owns its Evaluator, so caches are never
    shared between independent instances.

    Args:
        cache_size: Maximum number of compiled expressions kept; defaults to
                    appsettings.expression_cache_size
        builtins: Extra names visible to every expression (after the scope)
    """

    def __init__(self, cache_size: Optional[int] = None,
                 builtins: Optional[Mapping[str, Any]] = None) -> None:
        self.cache_size: int = cache_size if cache_size is not None else appsettings.expression_cache_size
        self.builtins: Dict[str, Any] = dict(BUILTINS)
        if builtins:
            self.builtins.update(builtins)
        self._cache: "OrderedDict[str, Compiled]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def compile(self, expr: str) -> Compiled:
        """
        Compile an expression, reusing the cached closure when present.

        Raises:
            ExpressionError: on syntax errors (failures are not cached)
        """
        compiled = self._cache.get(expr)
        if compiled is not None:
            self._cache.move_to_end(expr)
            self.hits += 1
            return compiled
        self.misses += 1
        compiled = _ExpressionParser(expr, self.builtins).parse()
        self._cache[expr] = compiled
        while len(self._cache) > max(self.cache_size, 0):
            self._cache.popitem(last=False)
        return compiled

    def compiled_get(self, expr: str) -> Optional[Compiled]:
        """Cached closure for expr, without compiling"""
        return self._cache.get(expr)

    def cache_clear(self) -> None:
        self._cache.clear()
        self.hits = 0
        self.misses = 0

    @property
    def cached_count(self) -> int:
        return len(self._cache)

    def evaluate(self, expr: str, scope: Optional[Scope] = None) -> Any:
        """
        Evaluate an expression against a scope.

        Args:
            expr: Expression source
            scope: Name -> value mapping; unknown names resolve to None

        Returns:
            Expression value (None stands for undefined/null)

        Raises:
            ExpressionError: on syntax or runtime failure. Callers treat this
                             as an undefined result.
        """
        if not isinstance(expr, str):
            raise ExpressionError(f"Expression must be a string, got {type(expr).__name__}")
        compiled = self.compile(expr)
        try:
            return compiled(scope if scope is not None else {})
        except ExpressionError:
            raise
        except (TypeError, ValueError, KeyError, IndexError, ZeroDivisionError,
                AttributeError, OverflowError, RecursionError) as exc:
            raise ExpressionError(f"Error evaluating {expr!r}: {exc}") from exc

    def evaluate_safe(self, expr: str, scope: Optional[Scope] = None, default: Any = None) -> Any:
        """evaluate(), returning `default` instead of raising"""
        try:
            return self.evaluate(expr, scope)
        except ExpressionError as exc:
            LOG(f"Expression failed: {exc}", level=3)
            return default

    def test(self, expr: str, scope: Optional[Scope] = None) -> bool:
        """Truthiness of an expression; failures count as false"""
        return js_truthy(self.evaluate_safe(expr, scope))

    def string_interpolate(self, template: str, scope: Optional[Scope] = None) -> str:
        """
        Replace each ${expr} in template with its evaluated value.

        Range values ({min, max, value}) render their value; undefined
        results and failures render as the empty string.

        Example:
            >>> Evaluator().string_interpolate("${a} + ${b}", {"a": 1, "b": 2})
            '1 + 2'
        """
        def replace(match: "re.Match") -> str:
            try:
                value = self.evaluate(match.group(1), scope)
            except ExpressionError:
                return ''
            if isinstance(value, dict) and 'value' in value:
                value = value['value']
            return '' if value is None else js_string(value)
        return _INTERPOLATION.sub(replace, template)
