"""
Localization tests

Tests the in-memory translator and the lang, translations and t
directives.
"""

import pytest

from campfire.lib.engine import Engine
from campfire.lib.gamestate import GameStateStore
from campfire.lib.i18n import MemoryTranslator, locale_isValid
from campfire.models.directives import RESERVED_ATTRIBUTE_ERROR


RESOURCES = {
    "en": {
        "translation": {"hello": "Hello", "apples_one": "{{count}} apple", "apples_other": "{{count}} apples"},
        "ui": {"greet": "Hi {{name}}"},
    },
    "fr": {"translation": {"hello": "Bonjour"}},
}


@pytest.fixture
def translator():
    return MemoryTranslator("en", "en", RESOURCES)


class TestMemoryTranslator:
    """Test key lookup, plurals and interpolation"""

    def test_lookup(self, translator):
        """Keys resolve in the active locale"""
        assert translator.translate("hello") == "Hello"

    def test_namespace_prefix(self, translator):
        """ns:key selects a namespace"""
        assert translator.translate("ui:greet", vars={"name": "Ann"}) == "Hi Ann"

    def test_plural(self, translator):
        """count picks _one or _other"""
        assert translator.translate("apples", count=1) == "1 apple"
        assert translator.translate("apples", count=3) == "3 apples"

    def test_fallback_locale(self, translator):
        """Missing keys fall back to the fallback locale"""
        translator.changeLocale("fr")
        assert translator.translate("hello") == "Bonjour"
        assert translator.translate("ui:greet", vars={"name": "Jo"}) == "Hi Jo"

    def test_missing(self, translator):
        """Without any entry the fallback text, else the key, is used"""
        assert translator.translate("nope", fallback="Default") == "Default"
        assert translator.translate("nope") == "nope"

    def test_unknown_variable_kept(self, translator):
        """Unfilled placeholders stay in place"""
        assert translator.translate("ui:greet") == "Hi {{name}}"

    def test_resources(self, translator):
        """Resources can be added and queried"""
        translator.addResource("de", "translation", "hello", "Hallo")
        assert translator.hasResource("de", "translation", "hello")
        assert not translator.hasResource("de", "ui")

    @pytest.mark.parametrize("code, valid", [
        ("en", True), ("en-US", True), ("zh-Hans", True), ("", False), ("english!", False),
    ])
    def test_locale_validation(self, code, valid):
        """Locale codes look like en, en-US or zh-Hans"""
        assert locale_isValid(code) is valid


class TestDirectives:
    """Test lang, translations and t"""

    def render(self, source, translator=None, data=None):
        translator = translator or MemoryTranslator("en", "en", RESOURCES)
        engine = Engine(store=GameStateStore(data or {}), translator=translator)
        return engine.render(source), translator

    def test_lang_switches_locale(self):
        """lang changes the active locale for the rest of the pass"""
        result, translator = self.render("::lang[fr]\n\n:t[hello]")
        assert translator.locale == "fr"
        assert result.root.text_collect() == "Bonjour"

    def test_lang_invalid_ignored(self):
        """Invalid locale codes are ignored"""
        _, translator = self.render("::lang[not a locale]")
        assert translator.locale == "en"

    def test_translations_adds_resource(self):
        """translations registers one ns:key value"""
        result, translator = self.render('::translations[fr]{ui:bye="Au revoir"}')
        assert translator.lookup("fr", "ui", "bye") == "Au revoir"
        assert result.errors == []

    def test_translations_needs_pair(self):
        """A translations directive without a pair is reported"""
        result, _ = self.render("::translations[fr]")
        assert result.errors == ['Translations directive expects [locale]{ns:key="value"}']

    def test_t_element(self):
        """t emits a translate element with its key and namespace"""
        result, _ = self.render("Say :t[ui:greet]{name=who}", data={"who": "Ann"})
        element = result.root.find_all("translate")[0]
        assert element.props["data-i18n-ns"] == "ui"
        assert element.props["data-i18n-key"] == "greet"
        assert element.text_collect() == "Hi Ann"

    def test_t_count(self):
        """count chooses the plural form"""
        result, _ = self.render(":t[apples]{count=n}", data={"n": 2})
        assert result.root.text_collect() == "2 apples"

    def test_t_fallback(self):
        """A quoted fallback is used for unknown keys"""
        result, _ = self.render(':t[missing]{fallback="Nothing here"}')
        assert result.root.text_collect() == "Nothing here"

    def test_t_expression_key(self):
        """A non-key label is evaluated to find the key"""
        result, _ = self.render(":t[prefix + 'greet']{name=\"Bo\"}", data={"prefix": "ui:"})
        element = result.root.find_all("translate")[0]
        assert element.props["data-i18n-expr"] == "prefix + 'greet'"
        assert element.text_collect() == "Hi Bo"

    def test_t_class_reported(self):
        """class is reported but the text still renders"""
        result, _ = self.render(':t[hello]{class="x"}')
        assert result.errors == [RESERVED_ATTRIBUTE_ERROR]
        assert result.root.text_collect() == "Hello"

    def test_t_inside_link(self):
        """Inside [[...]] the text merges into the link"""
        result, _ = self.render("Go [[:t[hello]]]")
        assert result.root.text_collect() == "Go [[Hello]]"
