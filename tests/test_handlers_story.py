"""
Story directive tests

Tests show, preset and the deferred onExit, effect and trigger blocks,
including replaying their serialized content through Engine.block_run.
"""

from campfire.lib.engine import Engine
from campfire.lib.gamestate import GameStateStore
from campfire.models.directives import RESERVED_ATTRIBUTE_ERROR


def render(source, data=None):
    store = GameStateStore(data or {})
    engine = Engine(store=store)
    result = engine.render(source, passage_id="test")
    return result, store, engine


class TestShow:
    """Test reactive value output"""

    def test_key(self):
        """A plain key is bound by name and shows its value"""
        result, _, _ = render("HP: :show[hp]", {"hp": 7})
        element = result.root.find_all("show")[0]
        assert element.props == {"data-key": "hp"}
        assert result.root.text_collect() == "HP: 7"

    def test_expression(self):
        """Anything but a key is bound as an expression"""
        result, _, _ = render(":show[hp * 2]", {"hp": 4})
        element = result.root.find_all("show")[0]
        assert element.props == {"data-expr": "hp * 2"}
        assert element.text_collect() == "8"

    def test_range(self):
        """Ranges show their current value"""
        result, _, _ = render(":show[hp]", {"hp": {"min": 0, "max": 10, "value": 3}})
        assert result.root.text_collect() == "3"

    def test_missing_value(self):
        """An unknown key shows nothing but keeps its binding"""
        result, _, _ = render(":show[nobody]")
        element = result.root.find_all("show")[0]
        assert element.children == []

    def test_as_and_class_name(self):
        """as picks the element and className passes through"""
        result, _, _ = render(':show[name]{as="strong" className="big"}', {"name": "Ann"})
        props = result.root.find_all("show")[0].props
        assert props["as"] == "strong"
        assert props["className"] == "big"

    def test_class_is_reserved(self):
        """class is rejected and the directive dropped"""
        result, _, _ = render('Name :show[name]{class="big"}', {"name": "Ann"})
        assert result.errors == [RESERVED_ATTRIBUTE_ERROR]
        assert result.root.find_all("show") == []

    def test_reads_pass_state(self):
        """show sees writes made earlier in the same pass"""
        result, _, _ = render("::set[gold=5]\n\nGold :show[gold]")
        assert result.root.text_collect() == "Gold 5"


class TestPreset:
    """Test named attribute bags"""

    def test_preset_feeds_layer(self):
        """Preset attributes apply underneath explicit ones"""
        source = '::preset{type="layer" name="hud" x=10 y=20}\n\n:::layer{from="hud" x=5}\nHUD\n:::'
        result, _, _ = render(source)
        props = result.root.find_all("layer")[0].props
        assert props["x"] == 5
        assert props["y"] == 20

    def test_preset_requires_name(self):
        """type and name are required"""
        result, _, _ = render('::preset{type="layer"}')
        assert result.errors == ['Directive "preset" missing required attribute "name"']

    def test_unknown_preset(self):
        """A missing preset leaves the explicit attributes alone"""
        result, _, _ = render(':::layer{from="nope" x=1}\nX\n:::')
        assert result.root.find_all("layer")[0].props["x"] == 1


class TestOnExit:
    """Test onExit blocks"""

    SOURCE = ":::onExit\n::set[visited=true]\n:::"

    def test_serialized_not_run(self):
        """The body is serialized, not executed during the pass"""
        result, store, _ = render(self.SOURCE)
        element = result.root.find_all("onExit")[0]
        content = element.props["content"]
        assert [item["name"] for item in content] == ["set"]
        assert "visited" not in store.gameData

    def test_replay(self):
        """block_run executes the serialized content later"""
        result, store, engine = render(self.SOURCE)
        content = result.root.find_all("onExit")[0].props["content"]
        engine.block_run(content)
        assert store.value_get("visited") is True

    def test_only_one_per_passage(self):
        """A second onExit is reported once; later ones are dropped silently"""
        result, _, _ = render("\n".join([self.SOURCE] * 3))
        assert result.errors == ["Multiple onExit directives in a single passage are not allowed"]
        assert len(result.root.find_all("onExit")) == 1

    def test_rejects_text(self):
        """Only directives are allowed"""
        result, _, _ = render(":::onExit\nBye\n:::")
        assert result.errors[0].startswith("onExit only supports directives:")


class TestEffect:
    """Test effect blocks"""

    def test_watch_from_label(self):
        """The label lists watched keys"""
        result, _, _ = render(":::effect[gold, gems]\n::set[rich=true]\n:::")
        element = result.root.find_all("effect")[0]
        assert element.props["watch"] == ["gold", "gems"]
        assert element.props["content"][0]["name"] == "set"

    def test_watch_attribute(self):
        """{watch} overrides the label"""
        result, _, _ = render(":::effect[ignored]{watch=hp}\n::set[low=hp < 3]\n:::")
        assert result.root.find_all("effect")[0].props["watch"] == ["hp"]


class TestTrigger:
    """Test trigger buttons"""

    SOURCE = ':::trigger[Open]{className="primary big" disabled}\n::set[open=true]\n:::'

    def test_props(self):
        """Label, classes and disabled flag are captured"""
        result, store, _ = render(self.SOURCE)
        element = result.root.find_all("trigger")[0]
        assert element.text_collect() == "Open"
        assert element.props["className"] == ["primary", "big"]
        assert element.props["disabled"] is True
        assert "open" not in store.gameData

    def test_activation(self):
        """Running the content applies its directives"""
        result, store, engine = render(self.SOURCE)
        engine.block_run(result.root.find_all("trigger")[0].props["content"])
        assert store.value_get("open") is True

    def test_disabled_false(self):
        """disabled="false" leaves the trigger enabled"""
        result, _, _ = render(':::trigger[Go]{disabled="false"}\n::set[go=true]\n:::')
        assert result.root.find_all("trigger")[0].props["disabled"] is False
