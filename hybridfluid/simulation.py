"""
simulation.py — Grid Solver (Master Physics Loop)
==================================================
This is the complete simulation sub-step that ties everything together.
One call to `on_advance_time_step(dt)` advances the fluid by dt seconds;
`advance_frame()` splits an external frame into such sub-steps.

Physics pipeline per sub-step:
  0. Begin: move the collider, re-sample it on the grid, apply BCs
  1. Density step
       a. Sources (queued density/velocity injections)
       b. Diffusion → pass-through (viscosity only acts on velocity)
       c. Advect density
  2. Velocity step
       a. External forces (gravity, queued impulses)
       b. Diffuse velocity (only if viscosity > 0)
       c. Project velocity (enforce incompressibility, always)
       d. Advect velocity (self-advection)
  3. End: user callback

Every phase that writes a field re-applies the boundary conditions before
the next phase reads it.
"""

import collections
import logging
import math
import time
from typing import Callable, Optional

import numpy as np

from .advect import advect_density, advect_velocity
from .animation import PhysicsAnimation
from .boundary import FractionalBoundaryConditionSolver, apply_density_boundary, extrapolate_to_region
from .collider import is_inside_sdf
from .constants import (DEFAULT_FRAME_INTERVAL, DEFAULT_GRAVITY, DEFAULT_MAX_CFL, DIRECTION_ALL,
                        MAX_SUB_TIME_STEPS, REAL_EPSILON, REAL_INFINITY)
from .diffuse import BackwardEulerDiffusionSolver
from .errors import DegenerateField, InvalidConfiguration
from .forces import add_density, add_velocity, apply_gravity, apply_impulse
from .grid import CellCenteredScalarGrid, ConstantScalarField, FaceCenteredGrid
from .solver import FractionalPressureSolver

logger = logging.getLogger(__name__)

PERF_LOG_LENGTH = 1000


def _validate_configuration(size, grid_spacing, origin):
    """Check resolution/spacing up front; returns normalised (size, spacing, origin)."""
    try:
        size = tuple(int(n) for n in size)
    except TypeError:
        raise InvalidConfiguration(f"Grid size must be a sequence of integers, got {size!r}") from None
    if not size:
        raise InvalidConfiguration("Grid size needs at least one axis")
    if any(n <= 0 for n in size):
        raise InvalidConfiguration(f"Grid resolution must be positive on every axis, got {size}")

    spacing = np.asarray(grid_spacing, dtype=np.float64)
    if spacing.ndim == 0:
        spacing = np.full(len(size), float(spacing))
    if spacing.shape != (len(size),):
        raise InvalidConfiguration(f"Grid spacing must be a scalar or a {len(size)}-vector")
    if not np.all(np.isfinite(spacing)) or np.any(spacing <= 0.0):
        raise InvalidConfiguration(f"Grid spacing must be positive and finite, got {spacing.tolist()}")

    origin = np.zeros(len(size)) if origin is None else np.asarray(origin, dtype=np.float64)
    if origin.ndim == 0:
        origin = np.full(len(size), float(origin))
    if origin.shape != (len(size),):
        raise InvalidConfiguration(f"Grid origin must be a scalar or a {len(size)}-vector")
    return size, spacing, origin


def _default_gravity(dimension: int) -> np.ndarray:
    gravity = np.zeros(dimension)
    n = min(dimension, len(DEFAULT_GRAVITY))
    gravity[:n] = DEFAULT_GRAVITY[:n]
    return gravity


class GridSolver:
    """
    Incompressible smoke/ink solver on a uniform grid with one ghost ring.

    Usage:
        solver = GridSolver(size=(64, 64), grid_spacing=1.0 / 64)
        solver.density[10, 10] = 1.0
        for frame in range(100):
            solver.advance_frame(frame)
            density = solver.density.data      # hand to a viewer

    Args:
        size           : Interior cell count per axis (N → storage N + 2)
        grid_spacing   : Cell size (scalar or per axis)
        origin         : Position of the domain's lower corner
        frame_interval : Seconds per external frame
        on_begin_step  : Optional callback(solver, dt) after the begin phase
        on_end_step    : Optional callback(solver, dt) at the end of a sub-step
    """

    def __init__(self, size, grid_spacing, origin=None, *,
                 frame_interval: float = DEFAULT_FRAME_INTERVAL,
                 on_begin_step: Optional[Callable] = None,
                 on_end_step: Optional[Callable] = None):
        size, spacing, origin = _validate_configuration(size, grid_spacing, origin)
        dim = len(size)
        storage = tuple(n + 2 for n in size)

        # Index 0 sits one spacing outside the domain's lower corner
        self._size = size
        self._velocity = FaceCenteredGrid(storage, spacing, origin - spacing)
        self._density = CellCenteredScalarGrid(storage, spacing, origin - spacing)

        self._gravity = _default_gravity(dim)
        self._viscosity_coefficient = 0.0
        self._max_cfl = DEFAULT_MAX_CFL
        self._closed_domain_boundary_flag = DIRECTION_ALL
        self._collider = None
        # Negative everywhere: no free surface, the whole box is fluid
        self._fluid_sdf = ConstantScalarField(-REAL_INFINITY)

        self._diffusion_solver = BackwardEulerDiffusionSolver()
        self._pressure_solver = FractionalPressureSolver()
        self._boundary_condition_solver = FractionalBoundaryConditionSolver(DIRECTION_ALL)

        self._animation = PhysicsAnimation(self, frame_interval=frame_interval,
                                           is_using_fixed_sub_time_steps=False,
                                           max_sub_time_steps=MAX_SUB_TIME_STEPS)
        self.on_begin_step = on_begin_step
        self.on_end_step = on_end_step

        self._pending_sources = []
        self._pending_impulses = []
        self._step_metrics = {}
        self.last_step_metrics = {}
        self.perf_log = collections.deque(maxlen=PERF_LOG_LENGTH)

        logger.info("GridSolver created: size=%s spacing=%s origin=%s", size, spacing.tolist(), origin.tolist())

    # ── Public state ──────────────────────────────────────────────────────────

    @property
    def size(self) -> tuple:
        """Interior cell count per axis."""
        return self._size

    @property
    def dimension(self) -> int:
        return len(self._size)

    @property
    def grid_spacing(self) -> np.ndarray:
        return self._velocity.grid_spacing

    @property
    def grid_origin(self) -> np.ndarray:
        """Position of storage index 0 (one spacing outside the domain)."""
        return self._velocity.origin

    @property
    def velocity(self) -> FaceCenteredGrid:
        return self._velocity

    @property
    def density(self) -> CellCenteredScalarGrid:
        return self._density

    @property
    def pressure(self) -> Optional[np.ndarray]:
        """Pressure from the most recent projection (None before the first one)."""
        return self._pressure_solver.pressure

    @property
    def gravity(self) -> np.ndarray:
        return self._gravity.copy()

    @gravity.setter
    def gravity(self, value):
        value = np.asarray(value, dtype=np.float64)
        if value.shape != (self.dimension,):
            raise ValueError(f"Gravity must be a {self.dimension}-vector, got shape {value.shape}")
        self._gravity = value.copy()

    @property
    def viscosity_coefficient(self) -> float:
        return self._viscosity_coefficient

    @viscosity_coefficient.setter
    def viscosity_coefficient(self, value: float):
        # Negative input is clamped to zero
        self._viscosity_coefficient = max(float(value), 0.0)

    @property
    def max_cfl(self) -> float:
        return self._max_cfl

    @max_cfl.setter
    def max_cfl(self, value: float):
        self._max_cfl = max(float(value), REAL_EPSILON)

    @property
    def closed_domain_boundary_flag(self) -> int:
        return self._closed_domain_boundary_flag

    @closed_domain_boundary_flag.setter
    def closed_domain_boundary_flag(self, flag: int):
        self._closed_domain_boundary_flag = int(flag)
        self._boundary_condition_solver.closed_domain_boundary_flag = int(flag)
        logger.info("Closed domain boundary flag set to %#04x", int(flag))

    @property
    def collider(self):
        return self._collider

    @collider.setter
    def collider(self, collider):
        self._collider = collider
        logger.info("Collider set: %s", type(collider).__name__ if collider is not None else None)

    @property
    def fluid_sdf(self) -> ConstantScalarField:
        return self._fluid_sdf

    # Method-style mutators for control layers that push settings in by call
    def set_gravity(self, gravity):
        self.gravity = gravity

    def set_viscosity_coefficient(self, value: float):
        self.viscosity_coefficient = value

    def set_max_cfl(self, value: float):
        self.max_cfl = value

    def set_closed_domain_boundary_flag(self, flag: int):
        self.closed_domain_boundary_flag = flag

    def set_collider(self, collider):
        self.collider = collider

    # ── Time-stepping configuration (delegated to the driver) ────────────────

    @property
    def is_using_fixed_sub_time_steps(self) -> bool:
        return self._animation.is_using_fixed_sub_time_steps

    @is_using_fixed_sub_time_steps.setter
    def is_using_fixed_sub_time_steps(self, value: bool):
        self._animation.is_using_fixed_sub_time_steps = bool(value)

    @property
    def number_of_fixed_sub_time_steps(self) -> int:
        return self._animation.number_of_fixed_sub_time_steps

    @number_of_fixed_sub_time_steps.setter
    def number_of_fixed_sub_time_steps(self, count: int):
        self._animation.number_of_fixed_sub_time_steps = count

    @property
    def max_sub_time_steps(self) -> int:
        return self._animation.max_sub_time_steps

    @max_sub_time_steps.setter
    def max_sub_time_steps(self, count: int):
        self._animation.max_sub_time_steps = int(count)

    @property
    def frame_interval(self) -> float:
        return self._animation.frame_interval

    @frame_interval.setter
    def frame_interval(self, seconds: float):
        self._animation.frame_interval = seconds

    @property
    def frame(self) -> int:
        """Index of the last simulated frame (-1 before the first one)."""
        return self._animation.current_frame.index

    @property
    def current_time(self) -> float:
        return self._animation.current_time

    # ── Frame entry points ────────────────────────────────────────────────────

    def advance_frame(self, frame_index: Optional[int] = None):
        """Simulate up to `frame_index` (next frame if omitted)."""
        if frame_index is None:
            self._animation.advance_single_frame()
        else:
            self._animation.advance_frame(frame_index)

    def advance_single_frame(self):
        self._animation.advance_single_frame()

    def add_source(self, index, density: float = 0.0, velocity=None, radius: int = 0):
        """
        Queue a density/velocity injection at cell `index` (ghost ring counted).
        Applied once, during the source phase of the next sub-step.
        """
        self._pending_sources.append((tuple(int(i) for i in index), float(density), velocity, int(radius)))

    def add_force(self, position, force, radius: float):
        """Queue a localized force around a world `position` for the next sub-step."""
        self._pending_impulses.append((np.asarray(position, dtype=np.float64),
                                       np.asarray(force, dtype=np.float64), float(radius)))

    # ── TimeSteppable ─────────────────────────────────────────────────────────

    def initialize(self):
        self._update_collider(0.0)
        self._update_boundary_geometry()

    def cfl(self, time_interval: float) -> float:
        """
        How many cells the fastest parcel crosses in `time_interval`:
          max |v_center + dt·g| · dt / min(spacing)
        """
        min_spacing = float(np.min(self.grid_spacing))
        if min_spacing <= 0.0:
            raise DegenerateField("CFL is undefined: minimum grid spacing is zero")

        vel = self._velocity.value_at_cell_center() + time_interval * self._gravity
        max_speed = float(np.linalg.norm(vel, axis=-1).max())
        return max_speed * time_interval / min_spacing

    def number_of_sub_time_steps(self, time_interval: float) -> int:
        ratio = self.cfl(time_interval) / self._max_cfl
        if not math.isfinite(ratio):
            raise DegenerateField(f"CFL estimate is not finite ({ratio}); velocity field has diverged")
        return max(1, math.ceil(ratio))

    def on_advance_time_step(self, time_interval: float):
        t_total_start = time.perf_counter()
        self._step_metrics = {}

        self._begin_advance_time_step(time_interval)
        self._density_step(time_interval)
        self._velocity_step(time_interval)
        self._end_advance_time_step(time_interval)

        t_total = (time.perf_counter() - t_total_start) * 1000
        metrics = dict(self._step_metrics)
        metrics.update({
            "frame"         : self.frame + 1,
            "time"          : self.current_time + time_interval,
            "dt"            : time_interval,
            "total_ms"      : t_total,
            "density_total" : self._density.total(),
        })
        self.last_step_metrics = metrics
        self.perf_log.append(metrics)
        logger.debug("Sub-step dt=%.4g took %.2f ms", time_interval, t_total)

    # ── Phases ────────────────────────────────────────────────────────────────

    def _timed(self, key: str, phase, *args):
        t0 = time.perf_counter()
        result = phase(*args)
        self._step_metrics[key] = (time.perf_counter() - t0) * 1000
        return result

    def _density_step(self, time_interval: float):
        self._timed("source_ms", self.compute_source, time_interval)
        # Viscosity only diffuses velocity; density passes through unchanged
        self._timed("advect_density_ms", self.compute_density_advection, time_interval)

    def _velocity_step(self, time_interval: float):
        self._timed("forces_ms", self.compute_external_forces, time_interval)
        self._timed("diffuse_velocity_ms", self.compute_viscosity, time_interval)
        self._timed("project_ms", self.compute_pressure, time_interval)
        self._timed("advect_velocity_ms", self.compute_velocity_advection, time_interval)

    def compute_source(self, time_interval: float):
        sources, self._pending_sources = self._pending_sources, []
        for index, amount, velocity, radius in sources:
            if amount:
                add_density(self._density, index, amount, radius)
            if velocity is not None:
                add_velocity(self._velocity, index, velocity)
        self.apply_boundary_condition()

    def compute_external_forces(self, time_interval: float):
        changed = apply_gravity(self._velocity, self._gravity, time_interval)

        impulses, self._pending_impulses = self._pending_impulses, []
        for position, force, radius in impulses:
            apply_impulse(self._velocity, position, force, time_interval, radius)
            changed = True

        if changed:
            self.apply_boundary_condition()

    def compute_viscosity(self, time_interval: float):
        if self._viscosity_coefficient <= 0.0:
            return
        self._diffusion_solver.solve(
            self._velocity,
            self._viscosity_coefficient,
            time_interval,
            self._boundary_condition_solver.collider_sdf,
            self._fluid_sdf,
        )
        self.apply_boundary_condition()

    def compute_pressure(self, time_interval: float):
        proj = self._pressure_solver.solve(
            self._velocity,
            time_interval,
            self._boundary_condition_solver.collider_sdf,
            self._fluid_sdf,
            self._boundary_condition_solver.collider_velocity_field,
            self._closed_domain_boundary_flag,
            weights=self._boundary_condition_solver.face_weights(self._velocity),
        )
        self._step_metrics["pressure_iterations"] = proj["iterations"]
        self._step_metrics["divergence_max"] = proj["divergence_after_max"]
        self._step_metrics["divergence_mean"] = proj["divergence_after_mean"]
        self.apply_boundary_condition()

    def compute_density_advection(self, time_interval: float):
        inside = None
        if self._boundary_condition_solver.has_collider:
            inside = self._extrapolate_into_collider(self._density)

        advect_density(self._density, self._velocity, time_interval)

        if inside is not None:
            self._density.data[inside] = 0.0
        self.apply_boundary_condition()

    def compute_velocity_advection(self, time_interval: float):
        advect_velocity(self._velocity, time_interval)
        self.apply_boundary_condition()

    def apply_boundary_condition(self):
        """Constrain velocity against walls/collider, then refill the density ghost ring."""
        depth = math.ceil(self._max_cfl)
        self._boundary_condition_solver.constrain_velocity(self._velocity, depth)
        apply_density_boundary(self._density.data)

    # ── Begin / end ───────────────────────────────────────────────────────────

    def _begin_advance_time_step(self, time_interval: float):
        self._update_collider(time_interval)
        self._update_boundary_geometry()
        self.apply_boundary_condition()

        if self.on_begin_step is not None:
            self.on_begin_step(self, time_interval)

    def _end_advance_time_step(self, time_interval: float):
        if self.on_end_step is not None:
            self.on_end_step(self, time_interval)

    def _update_collider(self, time_interval: float):
        if self._collider is not None:
            self._collider.update(self.current_time, time_interval)

    def _update_boundary_geometry(self):
        self._boundary_condition_solver.update_collider(
            self._collider,
            self._velocity.size,
            self._velocity.grid_spacing,
            self._velocity.origin,
        )

    def _extrapolate_into_collider(self, grid: CellCenteredScalarGrid) -> np.ndarray:
        """
        Fill cells inside the collider from the fluid side, ceil(max_cfl) deep,
        so back-traces landing in the solid read plausible values.

        Returns the inside-collider mask.
        """
        sdf = self._boundary_condition_solver.collider_sdf
        inside = is_inside_sdf(sdf.sample(grid.data_positions()))
        extrapolate_to_region(grid.data, ~inside, math.ceil(self._max_cfl))
        return inside

    # ── Diagnostics ───────────────────────────────────────────────────────────

    def compute_divergence(self) -> np.ndarray:
        """Plain (unweighted) divergence over the interior cells."""
        return self._velocity.divergence()[(slice(1, -1),) * self.dimension]

    def total_density(self) -> float:
        return self._density.total()

    def print_status(self):
        """Pretty-print current simulation state."""
        div = self.compute_divergence()
        vc = self._velocity.value_at_cell_center()
        print(f"\n{'='*50}")
        print(f"  Frame: {self.frame}  |  t={self.current_time:.4f}s")
        print(f"  Density   : max={self._density.data.max():.4f}, total={self.total_density():.4f}")
        print(f"  Velocity  : max_speed={np.linalg.norm(vc, axis=-1).max():.4f}")
        print(f"  Divergence: max={np.abs(div).max():.6f}, mean={np.abs(div).mean():.8f}")
        if self.last_step_metrics:
            last = self.last_step_metrics
            print(f"  Perf      : {last['total_ms']:.1f}ms/sub-step")
        print(f"{'='*50}")

    def __repr__(self):
        return (
            f"GridSolver(size={self._size}, spacing={self.grid_spacing.tolist()}, "
            f"frame={self.frame}, viscosity={self._viscosity_coefficient}, max_cfl={self._max_cfl})"
        )
