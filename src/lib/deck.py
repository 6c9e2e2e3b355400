"""
Deck navigation state machine

Tracks the (slide, step) position of a presentation deck. Slides register
their step counts as the document is transformed; the rendering layer calls
next/prev/goTo in response to input and reads `state` to decide what is
visible.

Updates are copy-on-write: every transition builds a new DeckNavState, so
a state object handed out earlier is never modified afterwards.

Invariants after every operation:
    0 <= currentStep <= maxSteps
    0 <= currentSlide < slidesCount whenever slidesCount > 0
    maxSteps == stepsPerSlide.get(currentSlide, 0) after next/prev/goTo

Example:
    >>> nav = DeckNavigator()
    >>> nav.slidesCount_set(2)
    >>> nav.stepsForSlide_set(0, 3)
    >>> nav.goTo(0, 5)
    >>> nav.state.currentStep
    3
"""

from dataclasses import replace
from typing import Any, Callable, List, Optional

from ..models.game import DeckNavState
from .log import LOG


# Shared initial state; never mutated in place
INITIAL_STATE = DeckNavState()


def step_clamp(value: Any, upper: int) -> int:
    return min(max(int(value), 0), max(upper, 0))


class DeckNavigator:
    """
    Slide/step navigation for one deck

    Args:
        persistent: reset() installs a private copy of the initial state
                    instead of the shared one; used by navigators that
                    outlive a passage (e.g. an overlay deck)
    """

    def __init__(self, persistent: bool = False):
        self.persistent = persistent
        self._state = INITIAL_STATE.copy()
        self._listeners: List[Callable[[DeckNavState], None]] = []

    @property
    def state(self) -> DeckNavState:
        return self._state

    def state_replace(self, state: DeckNavState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def subscribe(self, listener: Callable[[DeckNavState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def slidesCount_set(self, count: int) -> None:
        """Update the number of slides, pulling the position back inside the deck"""
        count = max(int(count), 0)
        state = self._state
        if count and state.currentSlide >= count:
            slide = count - 1
            steps = state.stepsPerSlide.get(slide, 0)
            self.state_replace(replace(
                state, slidesCount=count, currentSlide=slide,
                currentStep=min(state.currentStep, steps), maxSteps=steps,
            ))
            return
        self.state_replace(replace(state, slidesCount=count))

    def slides_register(self, steps: List[int]) -> None:
        """
        Replace the whole deck layout in one transition.

        Counts left over from an earlier, longer deck are dropped and the
        position is clamped into the new layout.

        Args:
            steps: Step count of each slide, in order
        """
        per_slide = {position: max(int(count), 0) for position, count in enumerate(steps)}
        state = self._state
        slide = step_clamp(state.currentSlide, len(per_slide) - 1)
        max_steps = per_slide.get(slide, 0)
        self.state_replace(replace(
            state,
            slidesCount=len(per_slide),
            stepsPerSlide=per_slide,
            currentSlide=slide,
            maxSteps=max_steps,
            currentStep=min(state.currentStep, max_steps),
        ))

    def maxSteps_set(self, steps: int) -> None:
        """Set the step count of the active slide"""
        self.stepsForSlide_set(self._state.currentSlide, steps)

    def stepsForSlide_set(self, slide: int, steps: int) -> None:
        """
        Record the step count of a slide.

        When the slide is active, maxSteps follows and currentStep is
        clamped down to the new maximum.
        """
        steps = max(int(steps), 0)
        state = self._state
        per_slide = dict(state.stepsPerSlide)
        per_slide[slide] = steps
        if state.currentSlide == slide:
            self.state_replace(replace(
                state,
                stepsPerSlide=per_slide,
                maxSteps=steps,
                currentStep=min(state.currentStep, steps),
            ))
        else:
            self.state_replace(replace(state, stepsPerSlide=per_slide))

    def next(self) -> None:
        """Advance one step, or to step 0 of the next slide; no-op at the end"""
        state = self._state
        following = state.currentSlide + 1
        if state.currentStep < state.maxSteps:
            self.state_replace(replace(state, currentStep=state.currentStep + 1))
        elif following < state.slidesCount:
            self.state_replace(replace(
                state,
                currentSlide=following,
                currentStep=0,
                maxSteps=state.stepsPerSlide.get(following, 0),
            ))

    def prev(self) -> None:
        """Go back one step, or to the last step of the previous slide; no-op at (0, 0)"""
        state = self._state
        if state.currentStep > 0:
            self.state_replace(replace(state, currentStep=state.currentStep - 1))
        elif state.currentSlide > 0:
            previous = state.currentSlide - 1
            steps = state.stepsPerSlide.get(previous, 0)
            self.state_replace(replace(
                state, currentSlide=previous, maxSteps=steps, currentStep=steps,
            ))

    def goTo(self, slide: int, step: int = 0) -> None:
        """Jump to a position, clamping both parts into range"""
        state = self._state
        target = step_clamp(slide, state.slidesCount - 1)
        steps = state.stepsPerSlide.get(target, 0)
        LOG(f"deck: goTo({slide}, {step}) -> ({target}, {step_clamp(step, steps)})", level=3)
        self.state_replace(replace(
            state,
            currentSlide=target,
            currentStep=step_clamp(step, steps),
            maxSteps=steps,
        ))

    def reset(self, persistent: Optional[bool] = None) -> None:
        """
        Return to the initial position with no registered slides.

        Args:
            persistent: Overrides the navigator's own setting for this call
        """
        clone = self.persistent if persistent is None else persistent
        self.state_replace(INITIAL_STATE.copy() if clone else INITIAL_STATE)
