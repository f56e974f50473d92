"""
animation.py — Frame Clock and Sub-Stepping Driver
===================================================
One external frame (e.g. 1/60 s of screen time) is split into k equal
sub-steps before it reaches the solver:

  fixed    → k = number_of_fixed_sub_time_steps
  adaptive → k = stepper.number_of_sub_time_steps(frame_dt)
             (the grid solver answers max(1, ceil(cfl / max_cfl)))

Sub-step i+1 reads what sub-step i wrote, so they always run in order,
one at a time. k is decided (and checked against the cap) before the
first sub-step runs: a frame that would need too many sub-steps fails
without touching the simulation state.

The driver talks to the solver only through the narrow `TimeSteppable`
protocol below; it knows nothing about grids.
"""

import logging
import math
from dataclasses import dataclass
from typing import Protocol

from .constants import DEFAULT_FIXED_SUBSTEPS, DEFAULT_FRAME_INTERVAL, MAX_SUB_TIME_STEPS
from .errors import UnboundedSubstepping

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """An external animation frame: its index and how long it lasts."""

    index: int = 0
    time_interval_in_seconds: float = DEFAULT_FRAME_INTERVAL

    def time_in_seconds(self) -> float:
        return self.index * self.time_interval_in_seconds

    def advance(self, delta: int = 1):
        self.index += delta


class TimeSteppable(Protocol):
    """What the driver needs from a solver."""

    def initialize(self) -> None:
        ...

    def on_advance_time_step(self, time_interval: float) -> None:
        ...

    def number_of_sub_time_steps(self, time_interval: float) -> int:
        ...


class PhysicsAnimation:
    """
    Owns the simulation clock and decides how each frame is sub-stepped.

    Args:
        stepper                       : The solver being driven
        frame_interval                : Seconds per external frame
        is_using_fixed_sub_time_steps : Fixed count (True) or CFL-adaptive (False)
        number_of_fixed_sub_time_steps: k when stepping is fixed
        max_sub_time_steps            : Hard cap on k
    """

    def __init__(self, stepper: TimeSteppable,
                 frame_interval: float = DEFAULT_FRAME_INTERVAL,
                 is_using_fixed_sub_time_steps: bool = True,
                 number_of_fixed_sub_time_steps: int = DEFAULT_FIXED_SUBSTEPS,
                 max_sub_time_steps: int = MAX_SUB_TIME_STEPS):
        self._stepper = stepper
        self.is_using_fixed_sub_time_steps = is_using_fixed_sub_time_steps
        self.number_of_fixed_sub_time_steps = number_of_fixed_sub_time_steps
        self.max_sub_time_steps = max_sub_time_steps
        # Index -1 means "nothing simulated yet"; frame 0 is the first one advanced
        self.current_frame = Frame(-1, frame_interval)
        self.current_time = 0.0
        self._initialized = False

    @property
    def number_of_fixed_sub_time_steps(self) -> int:
        return self._number_of_fixed_sub_time_steps

    @number_of_fixed_sub_time_steps.setter
    def number_of_fixed_sub_time_steps(self, count: int):
        self._number_of_fixed_sub_time_steps = max(int(count), 1)

    @property
    def frame_interval(self) -> float:
        return self.current_frame.time_interval_in_seconds

    @frame_interval.setter
    def frame_interval(self, seconds: float):
        self.current_frame.time_interval_in_seconds = float(seconds)

    def advance_frame(self, frame_index: int):
        """
        Advance frame by frame until `frame_index` is the current frame.
        Frames at or behind the current one are a no-op.
        """
        if frame_index <= self.current_frame.index:
            logger.debug("Frame %d already simulated (current %d)", frame_index, self.current_frame.index)
            return

        if not self._initialized:
            self._stepper.initialize()
            self._initialized = True

        for _ in range(frame_index - self.current_frame.index):
            self._advance_time_step(self.frame_interval)
            self.current_frame.advance()

    def advance_single_frame(self):
        self.advance_frame(self.current_frame.index + 1)

    def sub_step_count(self, time_interval: float) -> int:
        """How many sub-steps the next frame of length `time_interval` would take."""
        if self.is_using_fixed_sub_time_steps:
            return self.number_of_fixed_sub_time_steps
        return max(1, int(self._stepper.number_of_sub_time_steps(time_interval)))

    def _advance_time_step(self, time_interval: float):
        count = self.sub_step_count(time_interval)
        if count > self.max_sub_time_steps:
            cfl = getattr(self._stepper, "cfl", None)
            raise UnboundedSubstepping(count, self.max_sub_time_steps,
                                       cfl(time_interval) if callable(cfl) else math.nan)

        sub_interval = time_interval / count
        for _ in range(count):
            self._stepper.on_advance_time_step(sub_interval)
            self.current_time += sub_interval

        logger.debug("Frame %d: %d sub-step(s) of %.4g s, t=%.4g",
                     self.current_frame.index + 1, count, sub_interval, self.current_time)
