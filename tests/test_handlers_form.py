"""
Form directive tests

Tests inputs, textareas, checkboxes, radios, selects and options: their
render props, seeding of the bound state key, event blocks and the
reserved class attribute.
"""

from campfire.lib.engine import Engine
from campfire.lib.gamestate import GameStateStore
from campfire.models.directives import RESERVED_ATTRIBUTE_ERROR


def render(source, data=None):
    store = GameStateStore(data or {})
    engine = Engine(store=store)
    result = engine.render(source, passage_id="test")
    return result, store, engine


class TestInput:
    """Test text inputs"""

    def test_inline(self):
        """An inline input is bound to the key named by its label"""
        result, store, _ = render('Name: :input[name]{placeholder="Your name"}')
        element = result.root.find_all("input")[0]
        assert element.props == {"stateKey": "name", "placeholder": "Your name"}
        assert "name" not in store.gameData

    def test_seeds_missing_key(self):
        """value seeds a key that holds nothing yet"""
        result, store, _ = render(':input[name]{value="Ann"}')
        assert result.root.find_all("input")[0].props["initialValue"] == "Ann"
        assert store.gameData["name"] == "Ann"

    def test_keeps_existing_value(self):
        """A value already in state is not overwritten"""
        _, store, _ = render(':input[name]{defaultValue="Ann"}', {"name": "Bo"})
        assert store.gameData["name"] == "Bo"

    def test_seed_visible_in_pass(self):
        """Later directives of the same pass see the seeded value"""
        result, _, _ = render(':input[name]{defaultValue="Ann"}\n\nHi :show[name]')
        assert "Hi Ann" in result.root.text_collect()

    def test_type_and_extra_attributes(self):
        """type and unknown attributes reach the element"""
        result, _, _ = render(":input[age]{type=\"number\" min=0}")
        props = result.root.find_all("input")[0].props
        assert props["type"] == "number"
        assert props["min"] == "0"

    def test_class_name_split(self):
        """className becomes a list of class names"""
        result, _, _ = render(':input[name]{className="wide  dark"}')
        assert result.root.find_all("input")[0].props["className"] == ["wide", "dark"]

    def test_class_is_reserved(self):
        """class is reported but the input is still emitted"""
        result, _, _ = render(':input[name]{class="wide"}')
        assert result.errors == [RESERVED_ATTRIBUTE_ERROR]
        element = result.root.find_all("input")[0]
        assert "class" not in element.props

    def test_checkbox_type(self):
        """type="checkbox" hands over to the checkbox handler"""
        result, store, _ = render(':input[agree]{type="checkbox" checked}')
        assert result.root.find_all("input") == []
        assert len(result.root.find_all("checkbox")) == 1
        assert store.gameData["agree"] is True

    def test_invalid_key(self):
        """A label that is not a key is reported"""
        result, _, _ = render("Type :input[two words] here")
        assert result.errors == ['input requires a state key, got "two words"']
        assert result.root.find_all("input") == []

    def test_missing_key(self):
        """Without a label the input is dropped silently"""
        result, _, _ = render("Type :input here")
        assert result.errors == []
        assert result.root.find_all("input") == []


class TestTextarea:
    """Test multi-line inputs and event blocks"""

    SOURCE = (
        ':::textarea[notes]{placeholder="Write here"}\n'
        ':::onFocus\n'
        '::set[typing=true]\n'
        ':::\n'
        ':::'
    )

    def test_container_events(self):
        """Event blocks are serialized into props, not run"""
        result, store, _ = render(self.SOURCE)
        props = result.root.find_all("textarea")[0].props
        assert props["placeholder"] == "Write here"
        assert props["onFocus"][0]["name"] == "set"
        assert "typing" not in store.gameData

    def test_event_replay(self):
        """The serialized block runs through Engine.block_run"""
        result, store, engine = render(self.SOURCE)
        props = result.root.find_all("textarea")[0].props
        engine.block_run(props["onFocus"])
        assert store.gameData["typing"] is True

    def test_inline(self):
        """An inline textarea seeds from defaultValue"""
        _, store, _ = render(':textarea[notes]{defaultValue="Dear diary"}')
        assert store.gameData["notes"] == "Dear diary"


class TestCheckbox:
    """Test boolean inputs"""

    def test_bare_checked(self):
        """A bare checked attribute seeds true"""
        result, store, _ = render(":checkbox[agree]{checked}")
        props = result.root.find_all("checkbox")[0].props
        assert props == {"stateKey": "agree", "initialValue": "true"}
        assert store.gameData["agree"] is True

    def test_checked_false(self):
        """checked="false" seeds false"""
        _, store, _ = render(':checkbox[agree]{checked="false"}')
        assert store.gameData["agree"] is False

    def test_no_initial_value(self):
        """Without an initial value the key is left alone"""
        result, store, _ = render(":checkbox[agree]")
        assert result.root.find_all("checkbox")[0].props == {"stateKey": "agree"}
        assert "agree" not in store.gameData


class TestRadio:
    """Test radio groups"""

    def test_group(self):
        """The checked radio seeds the group key"""
        result, store, _ = render(':radio[color]{value="red"} :radio[color]{value="blue" checked}')
        first, second = result.root.find_all("radio")
        assert first.props == {"stateKey": "color", "value": "red"}
        assert second.props == {"stateKey": "color", "initialValue": "blue", "value": "blue"}
        assert store.gameData["color"] == "blue"

    def test_default_value(self):
        """defaultValue seeds the key whatever the radio's own value"""
        _, store, _ = render(':radio[color]{value="red" defaultValue="green"}')
        assert store.gameData["color"] == "green"


class TestSelect:
    """Test drop-downs and their options"""

    def test_leaf_options(self):
        """Leaf options take their text from label"""
        source = (
            ':::select[color]{value="red"}\n'
            '::option{value="red" label="Red"}\n'
            '::option{value="blue" label="Blue"}\n'
            ':::'
        )
        result, store, _ = render(source)
        select = result.root.find_all("select")[0]
        assert select.props == {"stateKey": "color", "initialValue": "red"}
        options = select.find_all("option")
        assert [option.props["value"] for option in options] == ["red", "blue"]
        assert [option.text_collect() for option in options] == ["Red", "Blue"]
        assert store.gameData["color"] == "red"

    def test_container_option(self):
        """A container option renders its body"""
        source = ':::select[color]\n:::option{value="blue"}\nDeep blue\n:::\n:::'
        result, _, _ = render(source)
        option = result.root.find_all("option")[0]
        assert option.props == {"value": "blue"}
        assert option.text_collect() == "Deep blue"

    def test_option_value_expression(self):
        """An unquoted option value is evaluated"""
        source = ':::select[color]\n::option{value=choice label="Pick"}\n:::'
        result, _, _ = render(source, {"choice": "green"})
        assert result.root.find_all("option")[0].props["value"] == "green"

    def test_option_requires_value(self):
        """An option without a value is reported and dropped"""
        result, _, _ = render(':::select[color]\n::option{label="Red"}\n:::')
        assert result.errors == ["option requires a value attribute"]
        assert result.root.find_all("option") == []

    def test_leaf_option_requires_label(self):
        """A leaf option needs a label"""
        result, _, _ = render(':::select[color]\n::option{value="red"}\n:::')
        assert result.errors == ["option leaf directives require a label attribute"]

    def test_inline_option(self):
        """Options cannot be inline"""
        result, _, _ = render("Pick :option[red]{value=\"red\"}")
        assert result.errors == ["option cannot be used as an inline directive"]

    def test_select_is_container(self):
        """A leaf select is rejected"""
        result, _, _ = render("::select[color]")
        assert result.errors == ["select can only be used as a container directive"]
        assert result.root.find_all("select") == []

    def test_class_is_reserved(self):
        """class is reported and the select kept"""
        source = ':::select[color]{class="big"}\n::option{value="red" label="Red"}\n:::'
        result, _, _ = render(source)
        assert result.errors == [RESERVED_ATTRIBUTE_ERROR]
        assert len(result.root.find_all("select")) == 1
