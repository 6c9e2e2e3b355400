"""
Attribute parser tests

Tests typed attribute parsing, the quoted-value escape, schema extraction,
free-standing typed values and prop bag helpers.
"""

import pytest

from campfire.lib.attributes import (
    DirectiveError,
    additionalAttributes_apply,
    attributeValue_parse,
    attributes_extract,
    attributes_interpolate,
    attrs_merge,
    items_split,
    keyValue_extract,
    objectLiteral_parse,
    typedValue_parse,
)
from campfire.models.attributes import AttributeSpec
from campfire.models.nodes import DirectiveNode


def leaf(name, label=None, **attributes):
    return DirectiveNode(type="leafDirective", name=name, label=label, attributes=attributes)


class TestAttributeValueParse:
    """Test parsing of single raw values"""

    def test_quoted_object_stays_string(self):
        """A quoted value is a literal string, even if it looks like JSON"""
        assert attributeValue_parse('"{"a":1}"', AttributeSpec("object")) == '{"a":1}'

    def test_unquoted_object_is_parsed(self):
        """An unquoted JSON object is parsed"""
        assert attributeValue_parse('{"a":1}', AttributeSpec("object")) == {"a": 1}

    def test_number_literal_and_expression(self):
        """Numbers parse directly or through the evaluator"""
        assert attributeValue_parse("3", AttributeSpec("number")) == 3
        assert attributeValue_parse("x * 2", AttributeSpec("number"), {"x": 4}) == 8

    def test_unparsable_number(self):
        """A value with no numeric reading is None"""
        assert attributeValue_parse("'abc'", AttributeSpec("number")) is None

    def test_string_expression(self):
        """Unquoted strings are evaluated, quoted ones are not"""
        scope = {"who": "Ada"}
        assert attributeValue_parse("who", AttributeSpec("string"), scope) == "Ada"
        assert attributeValue_parse("'who'", AttributeSpec("string"), scope) == "who"

    def test_string_without_expression(self):
        """expression=False keeps the raw text"""
        assert attributeValue_parse("ease-in", AttributeSpec("string", expression=False)) == "ease-in"

    def test_unknown_identifier_string_falls_back_to_raw(self):
        """An identifier that resolves to nothing is its own text"""
        assert attributeValue_parse("fade", AttributeSpec("string")) == "fade"

    def test_boolean(self):
        """Booleans accept true/false and expressions"""
        assert attributeValue_parse("true", AttributeSpec("boolean")) is True
        assert attributeValue_parse("x > 1", AttributeSpec("boolean"), {"x": 2}) is True

    def test_array(self):
        """Arrays come from expressions, JSON or comma lists"""
        assert attributeValue_parse("[1, 2]", AttributeSpec("array")) == [1, 2]
        assert attributeValue_parse("items", AttributeSpec("array"), {"items": ["a"]}) == ["a"]

    def test_missing(self):
        """None stays None"""
        assert attributeValue_parse(None, AttributeSpec("string")) is None


class TestAttributesExtract:
    """Test schema driven extraction"""

    def test_typed_values(self):
        """Values are typed per schema"""
        node = leaf("slide", steps="3", transition='"fade"')
        result = attributes_extract(node, {
            "steps": AttributeSpec("number"),
            "transition": AttributeSpec("string"),
        })
        assert result.valid
        assert result.attrs == {"steps": 3, "transition": "fade"}

    def test_required_missing(self):
        """Missing required attributes are reported, not raised"""
        node = leaf("createRange")
        result = attributes_extract(node, {"min": AttributeSpec("number", required=True)})
        assert not result.valid
        assert result.errors == ['Directive "createRange" missing required attribute "min"']

    def test_default(self):
        """Defaults fill absent values"""
        node = leaf("shape")
        result = attributes_extract(node, {"type": AttributeSpec("string", default="rect")})
        assert result.attrs["type"] == "rect"

    def test_bare_boolean_key(self):
        """A bare boolean key is True"""
        node = leaf("deck", autoplay=None)
        result = attributes_extract(node, {"autoplay": AttributeSpec("boolean")})
        assert result.attrs["autoplay"] is True

    def test_key_attribute(self):
        """A key attribute must be a non-empty string"""
        node = leaf("thing")
        result = attributes_extract(node, {"id": AttributeSpec("string")}, key_attr="id")
        assert not result.valid
        assert "missing required key attribute" in result.errors[0]

    def test_raw_override(self):
        """raw_attrs replaces the directive's own map"""
        node = leaf("layer", x="1")
        result = attributes_extract(node, {"x": AttributeSpec("number")}, raw_attrs={"x": "5"})
        assert result.attrs["x"] == 5


class TestTypedValueParse:
    """Test free-standing values used by set and friends"""

    @pytest.mark.parametrize("raw, expected", [
        ("'hi'", "hi"),
        ("true", True),
        ("false", False),
        ("42", 42),
        ("2.5", 2.5),
    ])
    def test_literals(self, raw, expected):
        """Literals parse without a scope"""
        assert typedValue_parse(raw) == expected

    def test_object_literal(self):
        """Brace-wrapped key: value pairs become dicts"""
        assert typedValue_parse("{a: 1, b: true}") == {"a": 1, "b": True}

    def test_expression(self):
        """Anything else is evaluated"""
        assert typedValue_parse("gold + 5", {"gold": 10}) == 15

    def test_blank(self):
        """Blank input is None"""
        assert typedValue_parse("   ") is None

    def test_object_literal_colon_form(self):
        """The brace-less colon form parses"""
        assert objectLiteral_parse("a: 1, b: 'x'") == {"a": 1, "b": "x"}


class TestHelpers:
    """Test splitting and prop helpers"""

    def test_items_split(self):
        """Top-level commas only"""
        assert items_split("1, [2, 3], 'a,b'") == ["1", "[2, 3]", "'a,b'"]

    def test_key_value_extract(self):
        """key=value labels split on the first ="""
        assert keyValue_extract(leaf("array", "items=[1, 2]")) == ("items", "[1, 2]")

    def test_key_value_malformed(self):
        """A label without = is a validation error"""
        with pytest.raises(DirectiveError) as info:
            keyValue_extract(leaf("array", "items"))
        assert info.value.message == "Malformed array directive: items"

    def test_attrs_merge(self):
        """Explicit attributes win over presets"""
        assert attrs_merge({"x": 1, "y": 2}, {"x": 5}) == {"x": 5, "y": 2}

    def test_interpolate(self):
        """Quotes are stripped and ${} expanded"""
        attrs = attributes_interpolate({"className": '"hp-${hp}"', "flag": None}, {"hp": 3})
        assert attrs == {"className": "hp-3", "flag": True}

    def test_additional_rejects_class(self):
        """class is reserved"""
        with pytest.raises(DirectiveError) as info:
            additionalAttributes_apply({"class": '"x"'}, {}, ())
        assert info.value.message == "class is a reserved attribute. Use className instead."

    def test_additional_copies_rest(self):
        """Unhandled attributes pass through, excluded ones do not"""
        props = additionalAttributes_apply({"data-x": '"1"', "x": "2"}, {}, ("x",))
        assert props == {"data-x": "1"}
