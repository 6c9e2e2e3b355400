"""
CLI pipeline tests

Runs the env_check, source_parse, story_render and results_report stages
over passage files on disk and checks the JSON they write.
"""

import json

import pytest

from campfire.__main__ import env_check, source_parse, story_render, results_report
from campfire.models import ProgramState, pipeline


START = """\
::set[hp=hp - 1]

HP: ${hp}

::save

::goto["cave"]
"""


@pytest.fixture
def story_dir(tmp_path):
    inputdir = tmp_path / "story"
    inputdir.mkdir()
    (inputdir / "start.md").write_text(START, encoding="utf-8")
    (inputdir / "cave.md").write_text("It is dark.", encoding="utf-8")
    (inputdir / "init.yaml").write_text("hp: 5\nname: Ann\n", encoding="utf-8")
    return tmp_path


def state_make(root, **kwargs):
    options = {
        "inputdir": root / "story",
        "outputdir": root / "out",
        "inputFile": "start.md",
        "stateFile": "init.yaml",
        "verbosity": 0,
    }
    options.update(kwargs)
    return ProgramState(**options)


class TestPipeline:
    """Test a full run from files to JSON"""

    def test_full_run(self, story_dir):
        """render.json and state.json are written"""
        final = pipeline(state_make(story_dir), env_check, source_parse, story_render, results_report)

        render = json.loads((story_dir / "out" / "render.json").read_text(encoding="utf-8"))
        state = json.loads((story_dir / "out" / "state.json").read_text(encoding="utf-8"))
        assert render["errors"] == []
        assert render["nextPassageId"] == "cave"
        assert render["root"]["tag"] == "root"
        assert state["gameData"] == {"hp": 4, "name": "Ann"}
        assert state["currentPassageId"] == "start"
        assert final.finalState == state

    def test_passages_by_stem(self, story_dir):
        """Every passage file is available by its stem"""
        state = source_parse(env_check(state_make(story_dir)))
        assert sorted(state.passages) == ["cave", "start"]
        assert state.initialState == {"hp": 5, "name": "Ann"}

    def test_save_dir(self, story_dir):
        """Save slots land in the save directory"""
        saves = story_dir / "saves"
        pipeline(state_make(story_dir, saveDir=str(saves)), env_check, source_parse, story_render)
        payload = json.loads((saves / "campfire.save").read_text(encoding="utf-8"))
        assert payload["gameData"]["hp"] == 4
        assert payload["currentPassageId"] == "start"

    def test_debug_verbosity(self, story_dir):
        """High verbosity highlights the source without changing results"""
        state = pipeline(state_make(story_dir, verbosity=3), env_check, source_parse, story_render)
        assert state.renderResult["nextPassageId"] == "cave"

    def test_without_state_file(self, story_dir):
        """The state file is optional"""
        state = pipeline(state_make(story_dir, stateFile=None), env_check, source_parse, story_render)
        assert state.initialState == {}
        assert state.renderResult["nextPassageId"] == "cave"


class TestFailures:
    """Test stages that stop the run"""

    def test_missing_input(self, story_dir):
        """A missing passage file exits"""
        with pytest.raises(SystemExit):
            env_check(state_make(story_dir, inputFile="nowhere.md"))

    def test_missing_state_file(self, story_dir):
        """A missing state file exits"""
        with pytest.raises(SystemExit):
            env_check(state_make(story_dir, stateFile="nowhere.yaml"))

    def test_state_not_mapping(self, story_dir):
        """YAML that is not a mapping exits"""
        (story_dir / "story" / "init.yaml").write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(SystemExit):
            source_parse(env_check(state_make(story_dir)))

    def test_empty_state_file(self, story_dir):
        """An empty YAML file seeds nothing"""
        (story_dir / "story" / "init.yaml").write_text("", encoding="utf-8")
        state = source_parse(env_check(state_make(story_dir)))
        assert state.initialState == {}

    def test_report_without_render(self, story_dir):
        """Reporting before rendering exits"""
        with pytest.raises(SystemExit):
            results_report(env_check(state_make(story_dir)))
