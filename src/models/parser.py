"""
Scanner and parser data models

Type-safe structures for scanner operations and return values.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class BracketScan:
    """
    Result of scanning a bracketed segment ([label] or {attrs})

    Returned by bracket_scan() when a balanced segment is found on the
    current line.

    Attributes:
        content: Text between the outer brackets, escapes left in place
        end: Position just past the closing bracket

    Example:
        For source "::set[x=[1,2]]" scanning from position 5:
        BracketScan(content="x=[1,2]", end=14)
    """
    content: str
    end: int


@dataclass
class DirectiveToken:
    """
    One token of the directive scanner's output

    Tokens alternate between prose ("text") and directive markers
    ("leaf" for one or two colons, "container" for exactly three).

    Attributes:
        type: "text", "leaf" or "container"
        value: Source text covered by the token
        start: Offset of the token in the source
        name: Directive name (directive tokens only)
        label: Raw label text without brackets, when present
        attributes: Raw attribute text without braces, when present
        colons: Number of colons in the marker
        indentation: Whitespace between line start and the marker

    Example:
        For source "  ::set[x=1]" :
        DirectiveToken(type="leaf", value="::set[x=1]", start=2, name="set",
                       label="x=1", attributes=None, colons=2, indentation="  ")
    """
    type: str
    value: str
    start: int
    name: str = ""
    label: Optional[str] = None
    attributes: Optional[str] = None
    colons: int = 0
    indentation: str = ""
