"""
Engine tests

End-to-end passes: rendering, atomic commits, strict mode, cancellation,
deferred block execution, unknown directives and structural failures.
"""

import json

import pytest

from campfire.config.settings import AppSettings
from campfire.lib.directives import DirectiveRegistry
from campfire.lib.engine import Engine, RenderResult, ValidationFailed
from campfire.lib.gamestate import GameStateStore
from campfire.lib.storage import MemoryStorage
from campfire.lib.transformer import StructuralError, TransformCancelled
from campfire.models.directives import DirectiveCategory, DirectiveSpec


STORY = """\
::set[hp=3 name="Ann"]

# Chapter ${name}

:::if[hp > 2]
You feel strong.
:::else
You feel weak.
:::

HP: :show[hp]
"""


class TestRender:
    """Test complete passes"""

    def test_story(self):
        """State, headings, conditionals and reactive values work together"""
        store = GameStateStore()
        result = Engine(store=store).render(STORY, passage_id="start")
        root = result.root
        assert root.tag == "root"
        assert root.find_all("h1")[0].text_collect() == "Chapter Ann"
        assert root.find_all("if")[0].text_collect() == "You feel strong."
        assert root.find_all("show")[0].text_collect() == "3"
        assert result.errors == []
        assert store.gameData == {"hp": 3, "name": "Ann"}

    def test_result_is_json(self):
        """to_dict output serializes to JSON"""
        result = Engine().render(STORY)
        payload = json.loads(json.dumps(result.to_dict()))
        assert payload["root"]["tag"] == "root"
        assert payload["errors"] == []

    def test_passage_render(self):
        """Registered passages render by name"""
        engine = Engine(passages={"start": "Hello"})
        result = engine.passage_render("start")
        assert result.root.text_collect() == "Hello"
        assert engine.store.currentPassageId == "start"

    def test_passage_render_missing(self):
        """A missing passage is reported with an empty root"""
        engine = Engine()
        result = engine.passage_render("nowhere")
        assert isinstance(result, RenderResult)
        assert result.errors == ["Passage not found: nowhere"]
        assert result.root.children == []
        assert engine.store.errors == ["Passage not found: nowhere"]


class TestMarkers:
    """Test that container markers never leak into output"""

    @pytest.mark.parametrize("source", [
        ":::if[true]\n:::layer{x=1}\nInner\n:::\n:::",
        ":::once[a]\n:::if[true]\n:::wrapper\nInner\n:::\n:::\n:::",
        ":::for[i in items]\n:::if[i > 1]\nInner\n:::\n:::",
        "Inner\n\n:::\n\n:::",
    ])
    def test_nested_containers(self, source):
        """Resolved nested containers leave no ::: text behind"""
        result = Engine(store=GameStateStore({"items": [1, 2]})).render(source)
        text = result.root.text_collect()
        assert "Inner" in text
        assert ":::" not in text

    def test_collapsed_boundary(self):
        """A closing marker run into the next opening yields siblings"""
        result = Engine().render(":::wrapper\nA\n::::::wrapper\nB\n:::")
        assert [child.tag for child in result.root.children] == ["div", "div"]
        assert [child.text_collect() for child in result.root.children] == ["A", "B"]


class TestAtomicity:
    """Test that passes commit all or nothing"""

    def test_strict_mode(self):
        """Strict mode raises before anything is committed"""
        store = GameStateStore({"hp": 1})
        engine = Engine(store=store, settings=AppSettings(strict_mode=True))
        with pytest.raises(ValidationFailed) as info:
            engine.render("::set[hp=2]\n\n::set[oops]")
        assert info.value.errors == ["Malformed set directive: oops"]
        assert store.gameData == {"hp": 1}
        assert store.errors == []

    def test_lenient_mode_commits(self):
        """Without strict mode errors are recorded and changes land"""
        store = GameStateStore({"hp": 1})
        result = Engine(store=store).render("::set[hp=2]\n\n::set[oops]")
        assert result.errors == ["Malformed set directive: oops"]
        assert store.value_get("hp") == 2

    def test_cancel(self):
        """A cancelled pass changes neither state nor storage"""
        store = GameStateStore({"hp": 1})
        storage = MemoryStorage()
        engine = Engine(store=store, storage=storage)
        checks = []

        def cancel():
            checks.append(1)
            return len(checks) > 2

        with pytest.raises(TransformCancelled):
            engine.render("::set[hp=2]\n\n::save\n\nText\n\nMore", cancel=cancel)
        assert store.gameData == {"hp": 1}
        assert storage.list() == []
        assert store.currentPassageId is None

    def test_deferred_run_in_order(self):
        """Store operations run after the commit, in document order"""
        storage = MemoryStorage()
        engine = Engine(storage=storage)
        engine.render('::save{id="a"}\n\n::clearSave{id="a"}\n\n::save{id="b"}')
        assert storage.list() == ["b"]


class TestBlockRun:
    """Test running detached blocks"""

    def test_source_block(self):
        """Markup runs as its own committed pass"""
        store = GameStateStore({"gold": 1})
        result = Engine(store=store).block_run("::set[gold=gold + 1]\n\nGold ${gold}")
        assert store.value_get("gold") == 2
        assert result.root.text_collect() == "Gold 2"

    def test_indented_code_expanded(self):
        """Indented code in serialized content is read as markup"""
        store = GameStateStore()
        Engine(store=store).block_run([{"type": "code", "value": "::set[a=1]"}])
        assert store.value_get("a") == 1

    def test_top_level_code_kept(self):
        """Outside blocks, indented prose stays code"""
        result = Engine().render("    plain code")
        assert result.root.find_all("pre")[0].text_collect() == "plain code"

    def test_container_code_expanded(self):
        """Indented prose inside a container becomes a paragraph"""
        result = Engine().render(":::if[true]\n    Indented\n:::")
        assert result.root.find_all("pre") == []
        assert result.root.find_all("p")[0].text_collect() == "Indented"


class TestUnknownAndStructure:
    """Test fallbacks and structural failures"""

    def test_unknown_text_directive(self):
        """Unknown inline directives go back to source text"""
        result = Engine().render("A :wink[x] B")
        assert result.root.text_collect() == "A :wink[x] B"

    def test_unknown_block_directive(self):
        """Unknown block directives become generic elements"""
        result = Engine().render("::widget[Hi]")
        element = result.root.find_all("widget")[0]
        assert element.text_collect() == "Hi"

    def test_unknown_container(self):
        """Unknown containers keep their processed content"""
        result = Engine(store=GameStateStore({"n": 2})).render(":::panel\nN is ${n}\n:::")
        assert result.root.find_all("panel")[0].text_collect() == "N is 2"

    def test_structural_error(self):
        """A handler that leaves a non-node behind fails the pass"""

        def broken_handle(directive, parent, index, transformer):
            parent.children[index] = 42
            return index + 1

        registry = DirectiveRegistry()
        registry.register(DirectiveSpec(
            name="broken",
            category=DirectiveCategory.STORY,
            description="Leaves a number in the tree",
            handler=broken_handle,
        ))
        store = GameStateStore()
        with pytest.raises(StructuralError):
            Engine(store=store, registry=registry).render("::set[a=1]\n\n::broken")
        assert store.gameData == {}

    def test_unregistered_falls_back(self):
        """Removing a directive makes it unknown"""
        registry = DirectiveRegistry()
        registry.unregister("show")
        result = Engine(registry=registry).render("X :show[hp] Y")
        assert result.root.text_collect() == "X :show[hp] Y"
