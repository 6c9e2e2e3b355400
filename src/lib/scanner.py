"""
Directive marker scanner

Locates directive markers in raw campfire source and splits it into
alternating prose and directive tokens. A marker is one to three colons
followed by a name, optionally followed by a bracketed [label] and a
braced {attribute list}; it only counts when everything between the start
of its line and the first colon is spaces or tabs. A line holding only
three or more colons is a container closer.

Key features:
- Bracket depth tracking so nested [ ] / { } do not end a label early
- Backslash escapes inside labels and attribute lists
- Label and attribute scans never cross a line break
- Indentation normalization, driven by the scanned tokens, so that nested
  directives are not read as indented code by the block grammar
- Restoration of container boundaries collapsed into one colon run

Example:
    >>> [t.type for t in directives_scan("Hi\\n::set[x=1]\\n")]
    ['text', 'leaf', 'text']
    >>> attributes_tokenize('id="intro" count=3 hidden')
    {'id': '"intro"', 'count': '3', 'hidden': None}
"""

import re
from typing import Dict, List, Optional, Tuple

from ..models.parser import BracketScan, DirectiveToken
from .log import LOG


# Leading whitespace, 1-3 colons (not followed by another colon), name
MARKER_PATTERN = re.compile(r'([ \t]*)(:{1,3})(?!:)([A-Za-z][\w-]*)')

# A line holding only colons (a container close) with optional indentation
CLOSING_PATTERN = re.compile(r'^([ \t]*)(:{3,})[ \t]*$')

# A run of three or more colons alone on its line (container close)
CLOSER_PATTERN = re.compile(r'([ \t]*)(:{3,})(?=[ \t]*(?:\n|\Z))')

# Letter or digit directly before a run of colons
WORD_CHARACTER = re.compile(r'[A-Za-z0-9]')

BRACKET_PAIRS = {'[': ']', '{': '}', '(': ')'}
QUOTES = '\'"`'


def bracket_scan(source: str, start: int, opening: str = '[', closing: str = ']') -> Optional[BracketScan]:
    """
    Scan a balanced bracketed segment starting at an opening bracket.

    Tracks nesting depth of the same bracket pair and skips backslash
    escaped characters. The scan gives up at a line break or the end of
    the source.

    Args:
        source: Text to scan
        start: Position of the opening bracket
        opening: Opening bracket character
        closing: Closing bracket character

    Returns:
        BracketScan with the inner text and the position after the closing
        bracket, or None when the segment is unbalanced on its line

    Example:
        For "::set[x=[1,2]]" at position 5:
        BracketScan(content="x=[1,2]", end=14)

        Depth tracking: [1 x=[2 1,2 ]1 ]0
    """
    if start >= len(source) or source[start] != opening:
        return None
    depth = 1
    pos = start + 1
    while pos < len(source):
        ch = source[pos]
        if ch == '\\':
            pos += 2
            continue
        if ch == '\n':
            return None
        if ch == opening:
            depth += 1
        elif ch == closing:
            depth -= 1
            if depth == 0:
                return BracketScan(content=source[start + 1:pos], end=pos + 1)
        pos += 1
    return None


def marker_match(source: str, line_start: int) -> Optional[DirectiveToken]:
    """
    Try to read a directive marker at the start of a line.

    Args:
        source: Full source text
        line_start: Offset of the first character of the line

    Returns:
        A "leaf" or "container" DirectiveToken (a closing line is a
        container token without a name), or None when the line does not
        begin with a directive marker
    """
    match = MARKER_PATTERN.match(source, line_start)
    if not match:
        closer = CLOSER_PATTERN.match(source, line_start)
        if not closer:
            return None
        return DirectiveToken(
            type='container',
            value=closer.group(2),
            start=line_start + len(closer.group(1)),
            colons=len(closer.group(2)),
            indentation=closer.group(1),
        )
    indentation, colons, name = match.group(1), match.group(2), match.group(3)
    cursor = match.end()
    label: Optional[str] = None
    attributes: Optional[str] = None

    if cursor < len(source) and source[cursor] == '[':
        scan = bracket_scan(source, cursor, '[', ']')
        if scan is not None:
            label = scan.content
            cursor = scan.end
    if cursor < len(source) and source[cursor] == '{':
        scan = bracket_scan(source, cursor, '{', '}')
        if scan is not None:
            attributes = scan.content
            cursor = scan.end

    marker_start = line_start + len(indentation)
    return DirectiveToken(
        type='container' if len(colons) == 3 else 'leaf',
        value=source[marker_start:cursor],
        start=marker_start,
        name=name,
        label=label,
        attributes=attributes,
        colons=len(colons),
        indentation=indentation,
    )


def directives_scan(source: str) -> List[DirectiveToken]:
    """
    Tokenize source into alternating text and directive tokens.

    Args:
        source: Raw campfire source

    Returns:
        Tokens in source order; concatenating their values reproduces the
        source (marker indentation belongs to the preceding text token)

    Example:
        >>> tokens = directives_scan(":::if[x > 1]\\nYes\\n:::")
        >>> tokens[0].type, tokens[0].name, tokens[0].label
        ('container', 'if', 'x > 1')
    """
    tokens: List[DirectiveToken] = []
    text_start = 0
    line_start = 0
    while line_start <= len(source):
        token = marker_match(source, line_start)
        line_end = source.find('\n', line_start)
        if token is not None:
            if token.start > text_start:
                tokens.append(DirectiveToken(
                    type='text',
                    value=source[text_start:token.start],
                    start=text_start,
                ))
            tokens.append(token)
            text_start = token.start + len(token.value)
            LOG(f"scanner: {token.type} '{token.name}' at {token.start}", level=3)
        if line_end == -1:
            break
        line_start = line_end + 1
    if text_start < len(source):
        tokens.append(DirectiveToken(
            type='text',
            value=source[text_start:],
            start=text_start,
        ))
    return tokens


def indentation_split(line: str) -> Tuple[str, str]:
    """Leading spaces/tabs of a line and the remainder"""
    stripped = line.lstrip(' \t')
    return line[:len(line) - len(stripped)], stripped


def indentation_isCode(indentation: str) -> bool:
    """True for indentation the block grammar would read as indented code"""
    return '\t' in indentation or len(indentation) >= 4


def containerBoundaries_restore(source: str) -> str:
    """
    Put back the line break between container markers run together.

    Editors that trim whitespace can collapse a closing marker and the
    next opening marker into one run (`::::::wrapper`). A `:::` followed
    directly by another `:::` gets a newline after it, unless the colons
    follow a letter or digit.

    Example:
        >>> containerBoundaries_restore(":::wrapper\\nA\\n::::::wrapper\\nB\\n:::")
        ':::wrapper\\nA\\n:::\\n:::wrapper\\nB\\n:::'
    """
    pieces: List[str] = []
    copied = 0
    index = source.find(':::')
    while index != -1:
        after = index + 3
        previous = source[index - 1] if index else ''
        if source.startswith(':::', after) and not WORD_CHARACTER.match(previous):
            pieces.append(source[copied:after])
            pieces.append('\n')
            copied = after
        index = source.find(':::', after)
    pieces.append(source[copied:])
    return ''.join(pieces)


def indentation_normalize(source: str) -> str:
    """
    Strip code-like indentation in front of directive markers.

    Collapsed container boundaries are restored first; the source is then
    walked once as directives_scan tokens. Leading tabs or four-or-more
    spaces before a directive marker (or a container closing line) are
    removed; one to three spaces are kept since the block grammar treats
    them as ordinary indentation.

    Example:
        >>> indentation_normalize("    ::set[x=1]\\n  ::set[y=2]\\n    code")
        '::set[x=1]\\n  ::set[y=2]\\n    code'
    """
    pieces: List[str] = []
    for token in directives_scan(containerBoundaries_restore(source)):
        if token.type != 'text' and pieces and indentation_isCode(token.indentation):
            pieces[-1] = pieces[-1][:-len(token.indentation)]
        pieces.append(token.value)
    return ''.join(pieces)


def quoted_read(text: str, pos: int) -> int:
    """Position just past the quoted string starting at pos"""
    quote = text[pos]
    pos += 1
    while pos < len(text):
        if text[pos] == '\\':
            pos += 2
            continue
        if text[pos] == quote:
            return pos + 1
        pos += 1
    return len(text)


def bareValue_read(text: str, pos: int) -> int:
    """
    Position just past an unquoted attribute value.

    The value runs to the next whitespace outside of brackets and quotes,
    so {from=[1, 2, 3]} keeps its list intact.
    """
    stack: List[str] = []
    while pos < len(text):
        ch = text[pos]
        if ch in QUOTES:
            pos = quoted_read(text, pos)
            continue
        if ch in BRACKET_PAIRS:
            stack.append(BRACKET_PAIRS[ch])
        elif stack and ch == stack[-1]:
            stack.pop()
        elif not stack and ch.isspace():
            break
        pos += 1
    return pos


def attributes_tokenize(text: Optional[str]) -> Dict[str, Optional[str]]:
    """
    Split a raw attribute list into a {name: raw value} map.

    Quoted values keep their quotes; bare keys map to None; `#name` is
    shorthand for id and `.name` adds to class (which handlers reject as a
    reserved attribute).

    Args:
        text: Content between the braces of a directive

    Returns:
        Ordered attribute map

    Example:
        >>> attributes_tokenize('#intro .big x=10 label=\\'Hi there\\'')
        {'id': '"intro"', 'class': '"big"', 'x': '10', 'label': "'Hi there'"}
    """
    attrs: Dict[str, Optional[str]] = {}
    if not text:
        return attrs
    classes: List[str] = []
    pos = 0
    while pos < len(text):
        ch = text[pos]
        if ch.isspace() or ch == ',':
            pos += 1
            continue
        if ch in '#.':
            end = pos + 1
            while end < len(text) and not text[end].isspace() and text[end] not in '#.':
                end += 1
            name = text[pos + 1:end]
            if name:
                if ch == '#':
                    attrs['id'] = f'"{name}"'
                else:
                    classes.append(name)
                    attrs['class'] = '"' + ' '.join(classes) + '"'
            pos = end
            continue
        end = pos
        while end < len(text) and not text[end].isspace() and text[end] != '=':
            end += 1
        key = text[pos:end]
        pos = end
        probe = pos
        while probe < len(text) and text[probe] in ' \t':
            probe += 1
        if probe < len(text) and text[probe] == '=':
            pos = probe + 1
            while pos < len(text) and text[pos] in ' \t':
                pos += 1
            if pos < len(text) and text[pos] in QUOTES:
                end = quoted_read(text, pos)
            else:
                end = bareValue_read(text, pos)
            attrs[key] = text[pos:end]
            pos = end
        else:
            attrs[key] = None
    return attrs
