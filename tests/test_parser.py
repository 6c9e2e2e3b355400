"""
Parser tests

Tests block structure, directive shapes, container nesting, inline text
directives and escaping.
"""

from campfire.lib.parser import Parser
from campfire.models.nodes import DirectiveNode, label_get, node_toString


def blocks(source):
    return Parser(source).parse().children


class TestBlocks:
    """Test plain markup blocks"""

    def test_empty_source(self):
        """Empty source parses to an empty root"""
        root = Parser("").parse()
        assert root.type == "root"
        assert root.children == []

    def test_paragraphs(self):
        """Blank lines separate paragraphs; lines within one join"""
        nodes = blocks("One\ntwo\n\nThree")
        assert [n.type for n in nodes] == ["paragraph", "paragraph"]
        assert node_toString(nodes[0]) == "One\ntwo"

    def test_heading(self):
        """ATX headings record their depth"""
        nodes = blocks("## Title")
        assert nodes[0].type == "heading"
        assert nodes[0].depth == 2
        assert node_toString(nodes[0]) == "Title"

    def test_fenced_code(self):
        """Fenced code keeps content and language"""
        nodes = blocks("```python\nx = 1\n```")
        assert nodes[0].type == "code"
        assert nodes[0].lang == "python"
        assert nodes[0].value == "x = 1"

    def test_indented_code(self):
        """Indented lines form lang-less code"""
        nodes = blocks("    indented")
        assert nodes[0].type == "code"
        assert nodes[0].lang is None
        assert nodes[0].value == "indented"

    def test_thematic_break(self):
        """Three dashes are a thematic break"""
        assert blocks("---")[0].type == "thematicBreak"


class TestDirectives:
    """Test the three directive shapes"""

    def test_leaf(self):
        """A leaf directive line carries label and attributes"""
        node = blocks('::set[hp=10]{id="a"}')[0]
        assert isinstance(node, DirectiveNode)
        assert node.type == "leafDirective"
        assert node.name == "set"
        assert node.label == "hp=10"
        assert node.attributes == {"id": '"a"'}

    def test_container_label_paragraph(self):
        """Container labels become a flagged first paragraph"""
        node = blocks(":::if[x > 1]\nYes\n:::")[0]
        assert node.type == "containerDirective"
        assert node.children[0].data.get("directiveLabel") is True
        assert label_get(node) == "x > 1"
        assert node_toString(node.children[1]) == "Yes"

    def test_nested_containers(self):
        """The innermost container closes first"""
        node = blocks(":::deck\n:::slide\nA\n:::\n:::")[0]
        assert node.name == "deck"
        assert len(node.children) == 1
        inner = node.children[0]
        assert inner.name == "slide"
        assert node_toString(inner) == "A"

    def test_unclosed_container_runs_to_end(self):
        """An unclosed container swallows the rest of its parent"""
        node = blocks(":::once[intro]\nHello\nWorld")[0]
        assert node.name == "once"
        assert node_toString(node.children[-1]) == "Hello\nWorld"

    def test_stray_closing_marker(self):
        """A closing line with nothing open becomes a marker paragraph"""
        nodes = blocks("Text\n\n:::")
        assert node_toString(nodes[-1]) == ":::"

    def test_directive_interrupts_paragraph(self):
        """A directive line ends the running paragraph"""
        nodes = blocks("Before\n::set[x=1]\nAfter")
        assert [n.type for n in nodes] == ["paragraph", "leafDirective", "paragraph"]

    def test_indentation_recorded(self):
        """Indentation in front of a directive is kept in data"""
        node = blocks("  ::set[x=1]")[0]
        assert node.indentation == "  "

    def test_trailing_text_is_not_a_directive(self):
        """A leaf line followed by prose is a paragraph"""
        nodes = blocks("::set[x=1] and more")
        assert nodes[0].type == "paragraph"


class TestInline:
    """Test inline text directives and code"""

    def test_text_directive(self):
        """A text directive inside prose"""
        inline = blocks("HP :show[hp] left")[0].children
        assert [n.type for n in inline] == ["text", "textDirective", "text"]
        assert inline[1].name == "show"
        assert inline[1].label == "hp"

    def test_text_directive_needs_boundary(self):
        """A colon inside a word does not start a directive"""
        inline = blocks("ratio a:b")[0].children
        assert [n.type for n in inline] == ["text"]

    def test_inline_code(self):
        """Backtick spans become inlineCode"""
        inline = blocks("use `x` here")[0].children
        assert inline[1].type == "inlineCode"
        assert inline[1].value == "x"

    def test_escaped_colon(self):
        """An escaped colon keeps a would-be directive literal"""
        inline = blocks(r"\:show[hp]")[0].children
        assert [n.type for n in inline] == ["text"]
        assert inline[0].value == ":show[hp]"

    def test_escaped_bracket_in_label(self):
        """Escaped brackets inside a label are unescaped"""
        node = blocks(r"::title[a\]b]")[0]
        assert node.label == "a]b"
