"""
Program state model and pipeline helper

Defines ProgramState dataclass for the functional pipeline pattern and
the pipeline() helper for composing transformation stages.
"""

import dataclasses
from functools import reduce
from pathlib import Path
from argparse import Namespace
from typing import Any, Optional, Type, TypeVar, Dict, Callable
from dataclasses import dataclass, field


PS = TypeVar("PS", bound="ProgramState")


@dataclass
class ProgramState:
    """
    Central state container for the CLI pipeline (state bus pattern).

    This dataclass carries all program state through the functional pipeline,
    with each stage adding new fields as the run progresses.

    Pipeline stages and their state additions:
        - Initial: inputdir, outputdir, verbosity, inputFile, stateFile,
                   passageId, locale, saveDir
        - env_check: inputSourceFile, stateSourceFile, envOK
        - source_parse: sourceText, passages, initialState
        - story_render: renderResult, finalState
        - results_report: (no additions, terminal stage)

    Attributes:
        inputdir: Directory containing passage files
        outputdir: Directory receiving render.json and state.json
        verbosity: Logging verbosity level (1-3)
        inputFile: Passage file to render (relative to inputdir)
        stateFile: Optional YAML file seeding the game state
        passageId: Passage id; defaults to the input file's stem
        locale: Active locale for :t and ::lang
        saveDir: Directory for save slots; in-memory when omitted
        envOK: Environment validation passed
        inputSourceFile: Resolved path to the passage file
        stateSourceFile: Resolved path to the YAML state file
        sourceText: Passage markup
        passages: Every passage in inputdir, by file stem
        initialState: Parsed YAML seed
        renderResult: RenderResult.to_dict() of the pass
        finalState: Store snapshot after the pass
    """

    # CLI arguments
    inputdir: Optional[Path] = field(default=None)
    outputdir: Optional[Path] = field(default=None)
    verbosity: int = field(default=1)
    inputFile: str = field(default="")
    stateFile: Optional[str] = field(default=None)
    passageId: Optional[str] = field(default=None)
    locale: str = field(default="en")
    saveDir: Optional[str] = field(default=None)

    # Pipeline state
    envOK: bool = field(default=False)
    inputSourceFile: Path = field(default=Path("/"))
    stateSourceFile: Optional[Path] = field(default=None)
    sourceText: str = field(default="")
    passages: Dict[str, str] = field(default_factory=dict)
    initialState: Dict[str, Any] = field(default_factory=dict)
    renderResult: Optional[Dict[str, Any]] = field(default=None)
    finalState: Optional[Dict[str, Any]] = field(default=None)

    @classmethod
    def state_createFromNamespace(
        cls: Type["ProgramState"], options: Namespace, inputdir: Path, outputdir: Path
    ) -> "ProgramState":
        """
        Create ProgramState from argparse Namespace and directory paths.

        Args:
            options: Parsed CLI arguments (inputFile, stateFile, etc.)
            inputdir: Directory containing passage files
            outputdir: Directory for render output

        Returns:
            ProgramState instance with all CLI options as attributes
        """
        options_dict = vars(options)
        valid_fields = {f.name for f in dataclasses.fields(cls)}
        filtered_options = {k: v for k, v in options_dict.items() if k in valid_fields}
        merged_args = {**filtered_options, "inputdir": inputdir, "outputdir": outputdir}
        return cls(**merged_args)

    def copy(self: PS) -> PS:
        """
        Creates a shallow copy of the ProgramState instance.

        Returns:
            A new ProgramState instance.
        """
        return type(self)(**self.__dict__)


def pipeline(
    initial_state: ProgramState, *stages: Callable[[ProgramState], ProgramState]
) -> ProgramState:
    """
    Execute a functional pipeline of state transformations.

    Each stage is a function (ProgramState) -> ProgramState that receives
    the output of the previous stage and returns a new state.

    Example:
        final_state = pipeline(
            initial_state,
            env_check,
            source_parse,
            story_render,
            results_report
        )

    This is equivalent to:
        results_report(story_render(source_parse(env_check(initial_state))))
    """
    return reduce(lambda state, stage: stage(state), stages, initial_state)
