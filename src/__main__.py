#!/usr/bin/env python3
"""
campfire - Interactive fiction directive engine

Renders one passage of a campfire story: directives are interpreted
against a game state seeded from YAML, and the resulting render tree and
final state are written as JSON for a presentation layer to consume.

As an aside, this codebase leverages the ChRIS "plugin" concept/pattern as
general purpose python app development framework.

Usage:
    campfire inputdir/ outputdir/ --inputFile start.md

    Every *.md file in inputdir is a passage named after its stem, so
    ::include and ::goto can refer to the others.

Examples:
    # Render a passage
    campfire story/ out/ --inputFile start.md

    # Seed state, pick a locale and keep save slots on disk
    campfire story/ out/ --inputFile start.md --stateFile init.yaml --locale fr --saveDir saves/

    # Debug output with highlighted source
    campfire story/ out/ --inputFile start.md -vv
"""

import json
import sys
from pathlib import Path
from argparse import ArgumentParser, Namespace, ArgumentDefaultsHelpFormatter

import yaml
from chris_plugin import chris_plugin
from pygments import highlight
from pygments.formatters import TerminalFormatter

from . import __version__
from .lib import Engine, GameStateStore, LOG, MemoryTranslator, state_connectToLogger
from .lib.lexer import CampfireLexer
from .lib.storage import FileStorage, MemoryStorage
from .models import ProgramState, pipeline


DISPLAY_TITLE = r"""
                       __ _
   ___ __ _ _ __ ___  / _(_)_ __ ___
  / __/ _` | '_ ` _ \| |_| | '__/ _ \
 | (_| (_| | | | | | |  _| | | |  __/
  \___\__,_|_| |_| |_|_| |_|_|  \___|

  Interactive fiction directive engine
"""

# Define CLI arguments
parser = ArgumentParser(
    description="campfire - Interactive fiction directive engine",
    formatter_class=ArgumentDefaultsHelpFormatter,
)

parser.add_argument(
    "--inputFile", required=True, type=str, help="Passage file to render (relative to inputdir)"
)

parser.add_argument(
    "--stateFile",
    default=None,
    type=str,
    help="YAML file with the initial game state (relative to inputdir)",
)

parser.add_argument(
    "--passageId",
    default=None,
    type=str,
    help="Passage id of the rendered file. Defaults to the file stem",
)

parser.add_argument("--locale", default="en", type=str, help="Active locale")

parser.add_argument(
    "--saveDir",
    default=None,
    type=str,
    help="Directory for save slots. Saves are kept in memory when omitted",
)

parser.add_argument(
    "-v",
    "--verbosity",
    action="count",
    default=1,
    help="Increase output verbosity (can be repeated: -v, -vv, -vvv)",
)

parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")


def env_check(inputstate: ProgramState) -> ProgramState:
    """
    Validate environment and resolve all file paths.

    Returns:
        ProgramState with added fields:
            - inputSourceFile: Resolved path to the passage file
            - stateSourceFile: Resolved path to the YAML state, if any
            - envOK: True if environment is valid

    Exits:
        1 if the passage or state file is missing
    """
    state = inputstate.copy()

    if state.verbosity >= 2:
        LOG(DISPLAY_TITLE, level=2)

    LOG("Checking environment...", level=2)

    input_file = state.inputdir / state.inputFile
    if not input_file.exists():
        print(f"Error: Input file not found: {input_file}", file=sys.stderr)
        state.envOK = False
        sys.exit(1)
    state.inputSourceFile = input_file
    LOG(f"Input file: {input_file}", level=2)

    if state.stateFile:
        state_file = state.inputdir / state.stateFile
        if not state_file.exists():
            print(f"Error: State file not found: {state_file}", file=sys.stderr)
            state.envOK = False
            sys.exit(1)
        state.stateSourceFile = state_file
        LOG(f"State file: {state_file}", level=2)

    state.outputdir.mkdir(parents=True, exist_ok=True)
    LOG(f"Output directory: {state.outputdir}", level=2)

    state.envOK = True
    return state


def source_parse(inputstate: ProgramState) -> ProgramState:
    """
    Read the passage, its sibling passages and the initial state.

    Returns:
        ProgramState with added fields:
            - sourceText: Passage markup
            - passages: {stem: markup} for every passage file in inputdir
            - initialState: Mapping loaded from the YAML state file

    Exits:
        1 if a file cannot be read or the YAML is not a mapping
    """
    state = inputstate.copy()

    LOG("Reading passages...", level=1)
    try:
        state.sourceText = state.inputSourceFile.read_text(encoding="utf-8")
        suffix = state.inputSourceFile.suffix
        state.passages = {
            path.stem: path.read_text(encoding="utf-8")
            for path in sorted(state.inputdir.glob(f"*{suffix}"))
            if path.is_file()
        }
    except OSError as e:
        print(f"Error reading input file: {e}", file=sys.stderr)
        sys.exit(1)
    LOG(f"Read {len(state.passages)} passage(s)", level=2)

    if state.verbosity >= 3:
        LOG("\n" + highlight(state.sourceText, CampfireLexer(), TerminalFormatter()), level=3)

    if state.stateSourceFile is not None:
        try:
            seed = yaml.safe_load(state.stateSourceFile.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            print(f"Error reading state file: {e}", file=sys.stderr)
            sys.exit(1)
        if seed is None:
            seed = {}
        if not isinstance(seed, dict):
            print("Error: State file must hold a mapping", file=sys.stderr)
            sys.exit(1)
        state.initialState = seed
        LOG(f"Seeded {len(seed)} state key(s)", level=2)
    return state


def story_render(inputstate: ProgramState) -> ProgramState:
    """
    Run one engine pass over the passage.

    Returns:
        ProgramState with added fields:
            - renderResult: Render tree, errors, next passage and title
            - finalState: Game state after the pass
    """
    state = inputstate.copy()

    LOG("Rendering passage...", level=1)
    store = GameStateStore(state.initialState)
    storage = FileStorage(state.saveDir) if state.saveDir else MemoryStorage()
    engine = Engine(
        store=store,
        translator=MemoryTranslator(locale=state.locale),
        storage=storage,
        passages=state.passages,
    )
    passage_id = state.passageId or state.inputSourceFile.stem
    result = engine.render(state.sourceText, passage_id=passage_id)
    state.renderResult = result.to_dict()
    state.finalState = {
        "gameData": store.gameData,
        "lockedKeys": sorted(store.lockedKeys),
        "onceKeys": sorted(store.onceKeys),
        "checkpoints": {cid: cp.to_dict() for cid, cp in store.checkpoints.items()},
        "currentPassageId": store.currentPassageId,
        "errors": store.errors,
        "deck": {
            "currentSlide": engine.navigator.state.currentSlide,
            "currentStep": engine.navigator.state.currentStep,
            "slidesCount": engine.navigator.state.slidesCount,
        },
    }
    LOG(f"Pass complete with {len(result.errors)} error(s)", level=2)
    return state


def results_report(inputstate: ProgramState) -> ProgramState:
    """
    Write render.json and state.json and summarize the run.

    Exits:
        1 if no render result is available
    """
    state: ProgramState = inputstate.copy()
    if state.renderResult is None or state.finalState is None:
        print("Error: Rendering failed", file=sys.stderr)
        sys.exit(1)

    render_file = state.outputdir / "render.json"
    state_file = state.outputdir / "state.json"
    render_file.write_text(json.dumps(state.renderResult, indent=2, default=str), encoding="utf-8")
    state_file.write_text(json.dumps(state.finalState, indent=2, default=str), encoding="utf-8")

    LOG("\n✓ Render successful!", level=1)
    LOG(f"  Render tree: {render_file}", level=1)
    LOG(f"  Game state:  {state_file}", level=1)
    for message in state.renderResult["errors"]:
        LOG(f"  ! {message}", level=1)
    if state.renderResult.get("nextPassageId"):
        LOG(f"  Next passage: {state.renderResult['nextPassageId']}", level=1)
    return state


@chris_plugin(
    parser=parser,
    title="campfire - Interactive fiction directive engine",
    category="Utility",
    min_memory_limit="100Mi",
    min_cpu_limit="500m",
)
def main(options: Namespace, inputdir: Path, outputdir: Path):
    """
    Main entry point - render one campfire passage to JSON.

    Orchestrates the pipeline:
        1. env_check: Validate paths and environment
        2. source_parse: Read passages and the initial state
        3. story_render: Run the engine pass
        4. results_report: Write render.json and state.json

    Note:
        This function is wrapped by @chris_plugin which handles CLI
        argument parsing and invokes this function with parsed values.
    """
    state: ProgramState = ProgramState.state_createFromNamespace(
        options=options, inputdir=inputdir, outputdir=outputdir
    )

    state_connectToLogger(state)

    pipeline(state, env_check, source_parse, story_render, results_report)


if __name__ == "__main__":
    main()  # type: ignore  # @chris_plugin decorator transforms signature
