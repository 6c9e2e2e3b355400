"""
Block/inline markup parser with directive extensions

Transforms campfire source into an mdast-like tree of Node objects.

The parser is line based:
1. Block pass: paragraphs, ATX headings, fenced and indented code, thematic
   breaks, and the two block directive shapes (leaf `::name` and container
   `:::name ... :::`). Containers nest through recursion, the innermost
   open container closing first.
2. Inline pass: paragraph and heading text is split into text, inline code
   and text directives (`:name[label]{attrs}`).

Key features:
- Directive lines may interrupt a paragraph
- Any indentation in front of a directive marker is stripped and kept in
  the directive's data["indentation"]
- A closing line with no open container becomes an ordinary ":::"
  paragraph (a marker paragraph, removed by the transformer)
- Container labels become a first child paragraph flagged
  data["directiveLabel"]
- The parser never fails: malformed directives fall back to prose

Example:
    >>> root = Parser(":::if[x > 1]\\nYes\\n:::").parse()
    >>> node = root.children[0]
    >>> node.type, node.name
    ('containerDirective', 'if')
    >>> [child.type for child in node.children]
    ['paragraph', 'paragraph']
"""

import re
from typing import List, Optional, Tuple

from ..models.nodes import DirectiveKind, DirectiveNode, Node, paragraph_make, text_make
from .log import LOG
from .scanner import (
    CLOSING_PATTERN,
    attributes_tokenize,
    bracket_scan,
    indentation_isCode,
    indentation_split,
)


OPENING_PATTERN = re.compile(r'(:+)([A-Za-z][\w-]*)')
TEXT_DIRECTIVE_PATTERN = re.compile(r':([A-Za-z][\w-]*)')
FENCE_PATTERN = re.compile(r'^( {0,3})(`{3,}|~{3,})[ \t]*([^`\s]*)[^`]*$')
HEADING_PATTERN = re.compile(r'^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$')
THEMATIC_PATTERN = re.compile(r'^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$')
LABEL_ESCAPE_PATTERN = re.compile(r'\\([\[\]{}\\])')

# Characters a backslash may escape in prose
ESCAPABLE = set(':[]{}`\\*_#')


def label_unescape(label: str) -> str:
    return LABEL_ESCAPE_PATTERN.sub(r'\1', label)


class Parser:
    """
    Parser for campfire markup

    Handles:
    - Leaf, container and text directives
    - Nested containers (closing lines need at least the opening colons)
    - Paragraphs, headings, code blocks, thematic breaks, inline code
    - Backslash escapes of directive punctuation in prose
    """

    def __init__(self, source: str, debug: bool = False):
        """
        Initialize parser with source text

        Args:
            source: Raw campfire source
            debug: Trace block decisions through LOG at level 3

        Attributes:
            lines: Source split into lines (CRLF normalized)
            position: Index of the next unread line
        """
        self.source = source
        self.debug = debug
        self.lines: List[str] = source.replace('\r\n', '\n').split('\n')
        self.position = 0

    def trace(self, message: str) -> None:
        if self.debug:
            LOG(f"parser: line {self.position + 1}: {message}", level=3)

    def parse(self) -> Node:
        """
        Parse the whole source into a root node

        Returns:
            Node of type "root" whose children are block nodes
        """
        self.position = 0
        return Node(type='root', children=self.blocks_parse(None), line=1)

    def directiveLine_match(self, line: str) -> Optional[Tuple[str, DirectiveNode, int]]:
        """
        Recognise a block directive line.

        A line is a block directive when, after its indentation, it holds
        two colons (leaf) or three or more (container), a name, an optional
        label and attribute list, and nothing but whitespace afterwards.

        Returns:
            (kind, node, colons) or None
        """
        indentation, rest = indentation_split(line)
        match = OPENING_PATTERN.match(rest)
        if not match:
            return None
        colons = len(match.group(1))
        if colons < 2:
            return None
        cursor = match.end()
        label: Optional[str] = None
        attributes: Optional[str] = None
        if cursor < len(rest) and rest[cursor] == '[':
            scan = bracket_scan(rest, cursor, '[', ']')
            if scan is None:
                return None
            label = label_unescape(scan.content)
            cursor = scan.end
        if cursor < len(rest) and rest[cursor] == '{':
            scan = bracket_scan(rest, cursor, '{', '}')
            if scan is None:
                return None
            attributes = scan.content
            cursor = scan.end
        if rest[cursor:].strip():
            return None

        kind = DirectiveKind.LEAF if colons == 2 else DirectiveKind.CONTAINER
        node = DirectiveNode(
            type=kind.value,
            name=match.group(2),
            attributes=attributes_tokenize(attributes),
            label=label if kind is DirectiveKind.LEAF else None,
            raw=rest.rstrip(),
            data={'indentation': indentation},
            line=self.position + 1,
        )
        if kind is DirectiveKind.CONTAINER and label is not None:
            node.children.append(paragraph_make([text_make(label)], directiveLabel=True))
        return kind.value, node, colons

    def blocks_parse(self, close_at: Optional[int]) -> List[Node]:
        """
        Parse block nodes until the enclosing container closes.

        Args:
            close_at: Colon count of the enclosing container's opening
                      marker, or None at the top level

        Returns:
            Block nodes in source order
        """
        blocks: List[Node] = []
        paragraph: List[str] = []
        paragraph_line = 0

        def paragraph_flush() -> None:
            nonlocal paragraph
            if paragraph:
                text = '\n'.join(paragraph)
                node = paragraph_make(self.inline_parse(text))
                node.line = paragraph_line
                blocks.append(node)
                paragraph = []

        while self.position < len(self.lines):
            line = self.lines[self.position]

            if not line.strip():
                paragraph_flush()
                self.position += 1
                continue

            closing = CLOSING_PATTERN.match(line)
            if closing:
                paragraph_flush()
                colons = len(closing.group(2))
                self.position += 1
                if close_at is not None and colons >= close_at:
                    self.trace("container close")
                    return blocks
                self.trace("stray closing marker")
                node = paragraph_make([text_make(closing.group(2))])
                node.line = self.position
                blocks.append(node)
                continue

            directive = self.directiveLine_match(line)
            if directive is not None:
                paragraph_flush()
                kind, node, colons = directive
                self.position += 1
                if kind == DirectiveKind.CONTAINER.value:
                    self.trace(f"container '{node.name}' open")
                    node.children.extend(self.blocks_parse(colons))
                else:
                    self.trace(f"leaf '{node.name}'")
                blocks.append(node)
                continue

            fence = FENCE_PATTERN.match(line)
            if fence:
                paragraph_flush()
                blocks.append(self.fencedCode_parse(fence))
                continue

            heading = HEADING_PATTERN.match(line)
            if heading:
                paragraph_flush()
                blocks.append(Node(
                    type='heading',
                    depth=len(heading.group(1)),
                    children=self.inline_parse(heading.group(2) or ''),
                    line=self.position + 1,
                ))
                self.position += 1
                continue

            if THEMATIC_PATTERN.match(line):
                paragraph_flush()
                blocks.append(Node(type='thematicBreak', line=self.position + 1))
                self.position += 1
                continue

            indentation, rest = indentation_split(line)
            if not paragraph and indentation_isCode(indentation):
                blocks.append(self.indentedCode_parse())
                continue

            if not paragraph:
                paragraph_line = self.position + 1
            paragraph.append(rest.rstrip() if paragraph else line.strip())
            self.position += 1

        paragraph_flush()
        return blocks

    def fencedCode_parse(self, fence: 're.Match') -> Node:
        """Read a fenced code block starting at the current line"""
        indent = len(fence.group(1))
        marker = fence.group(2)
        lang = fence.group(3) or None
        start_line = self.position + 1
        self.position += 1
        body: List[str] = []
        while self.position < len(self.lines):
            line = self.lines[self.position]
            self.position += 1
            stripped = line.strip()
            if stripped.startswith(marker[0] * len(marker)) and not stripped.strip(marker[0]):
                break
            body.append(line[indent:] if line[:indent].isspace() else line.lstrip(' '))
        return Node(type='code', value='\n'.join(body), lang=lang, line=start_line)

    def indentedCode_parse(self) -> Node:
        """Read a run of indented lines (blank lines allowed in between)"""
        start_line = self.position + 1
        body: List[str] = []
        while self.position < len(self.lines):
            line = self.lines[self.position]
            indentation, _ = indentation_split(line)
            if line.strip() and not indentation_isCode(indentation):
                break
            if line.strip() and (CLOSING_PATTERN.match(line) or self.directiveLine_match(line)):
                break
            if line.startswith('\t'):
                body.append(line[1:])
            else:
                body.append(line[4:] if line.startswith('    ') else line.lstrip(' '))
            self.position += 1
        while body and not body[-1].strip():
            body.pop()
        self.trace("indented code")
        return Node(type='code', value='\n'.join(body), lang=None, line=start_line)

    def inline_parse(self, text: str) -> List[Node]:
        """
        Split inline text into text, inlineCode and text directive nodes

        Args:
            text: Paragraph or heading content

        Returns:
            Inline nodes; adjacent literal text is merged into one node

        Example:
            >>> [n.type for n in Parser("").inline_parse("HP :show[hp] `x`")]
            ['text', 'textDirective', 'text', 'inlineCode']
        """
        nodes: List[Node] = []
        buffer: List[str] = []

        def buffer_flush() -> None:
            if buffer:
                nodes.append(text_make(''.join(buffer)))
                buffer.clear()

        pos = 0
        while pos < len(text):
            ch = text[pos]

            if ch == '\\' and pos + 1 < len(text) and text[pos + 1] in ESCAPABLE:
                buffer.append(text[pos + 1])
                pos += 2
                continue

            if ch == '`':
                run = len(text) - len(text[pos:].lstrip('`'))
                run = run - pos
                closing = text.find('`' * run, pos + run)
                while closing != -1 and closing + run < len(text) and text[closing + run] == '`':
                    closing = text.find('`' * run, closing + run + 1)
                if closing != -1:
                    buffer_flush()
                    code = text[pos + run:closing]
                    if code.startswith(' ') and code.endswith(' ') and code.strip():
                        code = code[1:-1]
                    nodes.append(Node(type='inlineCode', value=code))
                    pos = closing + run
                    continue
                buffer.append('`' * run)
                pos += run
                continue

            if ch == ':' and (pos == 0 or text[pos - 1].isspace() or text[pos - 1] in '(['):
                directive = self.textDirective_match(text, pos)
                if directive is not None:
                    buffer_flush()
                    node, pos = directive
                    nodes.append(node)
                    continue

            buffer.append(ch)
            pos += 1

        buffer_flush()
        return nodes

    def textDirective_match(self, text: str, pos: int) -> Optional[Tuple[DirectiveNode, int]]:
        """Read a :name[label]{attrs} text directive at pos"""
        match = TEXT_DIRECTIVE_PATTERN.match(text, pos)
        if not match:
            return None
        cursor = match.end()
        label: Optional[str] = None
        attributes: Optional[str] = None
        if cursor < len(text) and text[cursor] == '[':
            scan = bracket_scan(text, cursor, '[', ']')
            if scan is not None:
                label = label_unescape(scan.content)
                cursor = scan.end
        if cursor < len(text) and text[cursor] == '{':
            scan = bracket_scan(text, cursor, '{', '}')
            if scan is not None:
                attributes = scan.content
                cursor = scan.end
        node = DirectiveNode(
            type=DirectiveKind.TEXT.value,
            name=match.group(1),
            attributes=attributes_tokenize(attributes),
            label=label,
            raw=text[pos:cursor],
            data={'indentation': ''},
        )
        return node, cursor
