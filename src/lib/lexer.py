"""
Custom Pygments lexer for campfire syntax highlighting

Used by the CLI to echo passage source at debug verbosity.

Token types:
- Keyword.Declaration: Container markers and names (:::if, :::deck)
- Name.Function: Leaf directives (::set, ::goto)
- Name.Tag: Text directives (:show, :t)
- String: Labels inside [ ]
- Name.Attribute / Literal.String: Attribute keys and values inside { }
- String.Interpol: ${expr} interpolations
- Punctuation: Closing ::: markers and brackets
"""

from pygments.lexer import RegexLexer, bygroups, default
from pygments.token import (
    Text,
    Punctuation,
    Name,
    String,
    Keyword,
    Literal,
    Operator,
)


class CampfireLexer(RegexLexer):
    """
    Lexer for campfire directive markup

    Example:
        :::if[hp > 0]{id="alive"}
        HP: :show[hp]
        :::

    Tokens:
        ::: + if → Keyword.Declaration
        [hp > 0] → Punctuation, String, Punctuation
        id → Name.Attribute, "alive" → Literal.String
        :show → Name.Tag
    """

    name = 'Campfire'
    aliases = ['campfire', 'cf']
    filenames = ['*.cf', '*.campfire']

    tokens = {
        'root': [
            # Closing marker on a line of its own
            (r'^[ \t]*:::[ \t]*$', Punctuation),

            # Container directive
            (r'^([ \t]*)(:::)([A-Za-z][\w-]*)',
             bygroups(Text, Punctuation, Keyword.Declaration), 'directive'),

            # Leaf directive
            (r'^([ \t]*)(::)([A-Za-z][\w-]*)',
             bygroups(Text, Punctuation, Name.Function), 'directive'),

            # Text directive
            (r'(?<![\w:])(:)([A-Za-z][\w-]*)',
             bygroups(Punctuation, Name.Tag), 'directive'),

            (r'\$\{[^}]*\}', String.Interpol),

            (r'[^:$\n]+', Text),
            (r'\n', Text),
            (r'.', Text),
        ],

        'directive': [
            (r'\[', Punctuation, 'label'),
            (r'\{', Punctuation, 'attributes'),
            default('#pop'),
        ],

        'label': [
            (r'\\.', String.Escape),
            (r'\$\{[^}]*\}', String.Interpol),
            (r'\[', String, 'label'),
            (r'\]', Punctuation, '#pop'),
            (r'[^\\\[\]$]+', String),
            (r'.', String),
        ],

        'attributes': [
            (r'\}', Punctuation, '#pop'),
            (r'\s+', Text),
            (r'([A-Za-z_$][\w$:.-]*)(=)',
             bygroups(Name.Attribute, Operator)),
            (r'"(\\\\|\\"|[^"])*"', Literal.String),
            (r"'(\\\\|\\'|[^'])*'", Literal.String),
            (r'`[^`]*`', Literal.String),
            (r'[A-Za-z_$][\w$:.-]*', Name.Attribute),
            (r'[^\s}"\'`]+', Literal),
        ],
    }


def get_lexer() -> CampfireLexer:
    """
    Get the CampfireLexer instance

    Returns:
        CampfireLexer instance ready for use with Pygments
    """
    return CampfireLexer()
