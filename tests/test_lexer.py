"""
Lexer tests

Tests the Pygments lexer used to highlight passage source.
"""

from pygments.token import Keyword, Literal, Name, Operator, Punctuation, String

from campfire.lib.lexer import CampfireLexer, get_lexer


def tokens_get(source):
    return [(token, value) for token, value in CampfireLexer().get_tokens(source) if value]


class TestLexer:
    """Test token classification of directive markup"""

    def test_container(self):
        """Container markers and names are declarations"""
        tokens = tokens_get(":::if[hp > 0]\nAlive\n:::\n")
        assert (Punctuation, ":::") in tokens
        assert (Keyword.Declaration, "if") in tokens
        assert (String, "hp > 0") in tokens
        assert tokens[-2] == (Punctuation, ":::")

    def test_leaf(self):
        """Leaf directive names are functions"""
        tokens = tokens_get("::set[gold=5]\n")
        assert tokens[0] == (Punctuation, "::")
        assert tokens[1] == (Name.Function, "set")

    def test_text_directive(self):
        """Inline directive names are tags"""
        tokens = tokens_get("HP: :show[hp]\n")
        assert (Name.Tag, "show") in tokens
        assert (String, "hp") in tokens

    def test_interpolation(self):
        """${expr} spans are one token"""
        tokens = tokens_get("Gold: ${gold * 2}\n")
        assert (String.Interpol, "${gold * 2}") in tokens

    def test_attributes(self):
        """Attribute keys and quoted values are told apart"""
        tokens = tokens_get('::checkpoint{id="cave" label=\'Cave\'}\n')
        assert (Name.Attribute, "id") in tokens
        assert (Operator, "=") in tokens
        assert (Literal.String, '"cave"') in tokens
        assert (Literal.String, "'Cave'") in tokens

    def test_metadata(self):
        """The lexer is registered under its aliases"""
        lexer = get_lexer()
        assert lexer.name == "Campfire"
        assert "campfire" in lexer.aliases
