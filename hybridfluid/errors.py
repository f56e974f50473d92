"""
errors.py — Simulation Error Taxonomy
======================================
Everything here is a *precondition* failure: it is detected when a solver
is built or when a frame starts, never halfway through a sub-step. A failed
frame leaves the grids exactly as they were before the call.

  InvalidConfiguration  → bad resolution / spacing handed to the constructor
  DegenerateField       → CFL estimate would divide by a zero spacing
  UnboundedSubstepping  → adaptive CFL asks for more sub-steps than allowed
"""


class FluidSimulationError(Exception):
    """Base class for every error raised by the solver core."""


class InvalidConfiguration(FluidSimulationError, ValueError):
    """Grid resolution or spacing cannot describe a valid domain."""


class DegenerateField(FluidSimulationError, ArithmeticError):
    """A field quantity needed by the step is undefined (e.g. zero spacing)."""


class UnboundedSubstepping(FluidSimulationError, RuntimeError):
    """The adaptive sub-step count exceeds the configured cap."""

    def __init__(self, requested: int, limit: int, cfl: float = float("nan")):
        self.requested = requested
        self.limit = limit
        self.cfl = cfl
        super().__init__(
            f"Adaptive time stepping requested {requested} sub-steps "
            f"(cfl={cfl:.3f}) but the limit is {limit}. "
            f"Lower the frame interval or raise max_cfl / max_sub_time_steps."
        )
