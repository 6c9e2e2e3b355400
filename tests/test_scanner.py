"""
Scanner tests

Tests marker tokenization, bracket depth tracking, attribute tokenizing
and indentation normalization.
"""

import pytest

from campfire.lib.scanner import (
    attributes_tokenize,
    bracket_scan,
    containerBoundaries_restore,
    directives_scan,
    indentation_normalize,
)


class TestBracketScan:
    """Test balanced bracket scanning"""

    def test_simple_label(self):
        """A flat label is returned with the position after the bracket"""
        scan = bracket_scan("[hello]", 0)
        assert scan.content == "hello"
        assert scan.end == 7

    def test_nested_brackets(self):
        """Nested brackets of the same pair do not end the segment early"""
        scan = bracket_scan("::set[x=[1,2]]", 5)
        assert scan.content == "x=[1,2]"
        assert scan.end == 14

    def test_escaped_closing_bracket(self):
        """A backslash escaped bracket is skipped"""
        scan = bracket_scan(r"[a\]b]", 0)
        assert scan.content == r"a\]b"

    def test_unbalanced_returns_none(self):
        """An unclosed segment yields None"""
        assert bracket_scan("[never closed", 0) is None

    def test_line_break_stops_scan(self):
        """A label may not span lines"""
        assert bracket_scan("[one\ntwo]", 0) is None

    def test_braces(self):
        """Attribute braces use the same scan"""
        scan = bracket_scan('{id="x"}', 0, '{', '}')
        assert scan.content == 'id="x"'


class TestDirectivesScan:
    """Test source tokenization"""

    def test_text_only(self):
        """Plain prose is a single text token"""
        tokens = directives_scan("Just words")
        assert [t.type for t in tokens] == ["text"]

    def test_leaf_between_text(self):
        """A leaf marker splits surrounding prose"""
        tokens = directives_scan("Hi\n::set[x=1]\n")
        assert [t.type for t in tokens] == ["text", "leaf", "text"]
        assert tokens[1].name == "set"
        assert tokens[1].label == "x=1"

    def test_container_with_attributes(self):
        """Container markers carry label and raw attributes"""
        tokens = directives_scan(':::if[x > 1]{id="a"}\nYes\n:::')
        assert tokens[0].type == "container"
        assert tokens[0].name == "if"
        assert tokens[0].label == "x > 1"
        assert tokens[0].attributes == 'id="a"'

    def test_indented_marker(self):
        """Indentation before a marker is recorded, not part of the value"""
        tokens = directives_scan("  ::unset[hp]")
        leaf = [t for t in tokens if t.type == "leaf"][0]
        assert leaf.indentation == "  "
        assert leaf.value == "::unset[hp]"

    def test_mid_line_colons_ignored(self):
        """Markers only count at the start of a line"""
        tokens = directives_scan("time is 10::30 here")
        assert [t.type for t in tokens] == ["text"]


class TestAttributesTokenize:
    """Test raw attribute list splitting"""

    def test_empty(self):
        """No text gives an empty map"""
        assert attributes_tokenize(None) == {}
        assert attributes_tokenize("") == {}

    def test_quoted_values_keep_quotes(self):
        """Quoted values keep their quotes for the typed parser"""
        assert attributes_tokenize('id="intro" count=3') == {"id": '"intro"', "count": "3"}

    def test_bare_key(self):
        """A key with no value maps to None"""
        assert attributes_tokenize("hidden") == {"hidden": None}

    def test_id_and_class_shorthand(self):
        """#name is id and .name is class"""
        attrs = attributes_tokenize("#intro .big")
        assert attrs["id"] == '"intro"'
        assert attrs["class"] == '"big"'

    def test_bracketed_bare_value(self):
        """A bare list value keeps its inner spaces"""
        assert attributes_tokenize("from=[1, 2, 3] x=1") == {"from": "[1, 2, 3]", "x": "1"}

    def test_single_quoted_with_spaces(self):
        """Single quoted values may contain spaces"""
        assert attributes_tokenize("label='Hi there'") == {"label": "'Hi there'"}


class TestIndentationNormalize:
    """Test removal of code-like indentation before markers"""

    def test_strips_four_spaces_before_directive(self):
        """Four spaces before a directive are removed"""
        assert indentation_normalize("    ::set[x=1]") == "::set[x=1]"

    def test_keeps_small_indentation(self):
        """One to three spaces are kept"""
        assert indentation_normalize("  ::set[y=2]") == "  ::set[y=2]"

    def test_leaves_code_alone(self):
        """Indented prose stays indented code"""
        assert indentation_normalize("    code") == "    code"

    def test_closing_marker(self):
        """Indented closing lines are normalized too"""
        assert indentation_normalize("\t:::") == ":::"

    @pytest.mark.parametrize("source", ["", "plain", "::leaf"])
    def test_untouched_inputs(self, source):
        """Unindented inputs are returned unchanged"""
        assert indentation_normalize(source) == source

    def test_tab_before_named_container(self):
        """A tab before a container opening is removed"""
        assert indentation_normalize(":::if[true]\n\t:::wrapper\n\tX\n\t:::\n:::") == (
            ":::if[true]\n:::wrapper\n\tX\n:::\n:::"
        )


class TestContainerBoundaries:
    """Test splitting of collapsed container markers"""

    def test_collapsed_close_and_open(self):
        """A closing marker run into the next opening is split onto two lines"""
        source = ":::wrapper\nA\n::::::wrapper\nB\n:::"
        assert containerBoundaries_restore(source) == ":::wrapper\nA\n:::\n:::wrapper\nB\n:::"

    def test_word_before_colons(self):
        """Colons following a letter or digit are left together"""
        assert containerBoundaries_restore("ratio a::::::b") == "ratio a::::::b"

    def test_plain_markers_untouched(self):
        """Ordinary markers and closers are returned unchanged"""
        source = ":::if[x]\nYes\n:::"
        assert containerBoundaries_restore(source) == source

    def test_normalize_restores_boundaries(self):
        """Normalization restores the boundary before walking the tokens"""
        assert indentation_normalize("::::::wrapper") == ":::\n:::wrapper"


class TestClosingTokens:
    """Test scanning of container closers"""

    def test_closer_is_container_token(self):
        """A bare ::: line is a container token without a name"""
        tokens = directives_scan(":::if[x]\nYes\n  :::  \n")
        closer = tokens[2]
        assert closer.type == "container"
        assert closer.name == ""
        assert closer.value == ":::"
        assert closer.indentation == "  "
        assert "".join(t.value for t in tokens) == ":::if[x]\nYes\n  :::  \n"
