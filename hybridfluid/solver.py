"""
solver.py — Fractional Pressure Projection
===========================================
The pressure projection step enforces INCOMPRESSIBILITY:
  div(v) = 0 everywhere in the fluid

After forces and diffusion the velocity field is generally NOT
divergence-free (fluid "piles up" in some cells). We fix this by:
  1. Computing the (weighted) divergence of the current velocity field
  2. Solving the Poisson equation for pressure:  dt·∇·(w ∇p) = ∇·v
  3. Subtracting the pressure gradient from velocity:  v = v - dt·∇p

"Fractional" means every face carries a weight w ∈ [0, 1], the part of the
face that is open to fluid (see boundary.face_fluid_weights). A face half
covered by the collider contributes half its flux; that is what removes
the stair-stepping you get from a binary solid/fluid mask.

Divergence on a face blends fluid and solid velocity:
  u_eff = w·u + (1 - w)·u_solid
so a moving obstacle pushes fluid with its own normal velocity.

The Poisson system is symmetric positive (semi-)definite, so it is solved
with conjugate gradients, preconditioned by its diagonal (fully vectorised,
no Python loops over cells). The solve covers interior cells 1..N only;
ghost cells act as "air" (p = 0) behind open walls, and closed walls get
w = 0 so nothing flows through them. With every wall closed and no air the
pressure is only defined up to a constant; the right-hand side is then
made mean-free so the system stays consistent.
"""

import logging
import time

import numpy as np

from .collider import is_inside_sdf
from .constants import DIRECTION_ALL, PRESSURE_ITERATIONS, PRESSURE_TOLERANCE, REAL_EPSILON, direction_bits
from .boundary import face_fluid_weights
from .grid import CellCenteredScalarGrid, FaceCenteredGrid

logger = logging.getLogger(__name__)


def _face_slices(dim: int, axis: int) -> tuple[tuple, tuple, tuple]:
    """
    Slices into a face array along `axis` for the interior cells 1..N:
    (low faces of each cell, high faces of each cell, every face 1..N+1).
    """
    lo = [slice(1, -1)] * dim
    hi = [slice(1, -1)] * dim
    every = [slice(1, -1)] * dim
    lo[axis] = slice(1, -2)
    hi[axis] = slice(2, -1)
    return tuple(lo), tuple(hi), tuple(every)


def _weighted_divergence(velocity: FaceCenteredGrid, weights, solid) -> np.ndarray:
    """Divergence over interior cells using u_eff = w·u + (1-w)·u_solid."""
    dim = velocity.dimension
    div = 0.0
    for a in range(dim):
        lo, hi, _ = _face_slices(dim, a)
        u = velocity.velocity_at(a)
        w, us = weights[a], solid[a]
        flux_hi = w[hi] * u[hi] + (1.0 - w[hi]) * us[hi]
        flux_lo = w[lo] * u[lo] + (1.0 - w[lo]) * us[lo]
        div = div + (flux_hi - flux_lo) / velocity.grid_spacing[a]
    return div


class _WeightedLaplacian:
    """
    The matrix-free operator  (A p)_i = Σ_a c_a·(w_lo + w_hi)·p_i - c_a·(w_lo·p_below + w_hi·p_above)
    on the interior cells, with p = 0 outside the `active` set.
    """

    def __init__(self, face_weights, coefficients, active):
        self.face_weights = face_weights
        self.coefficients = coefficients
        self.active = active
        self.dimension = active.ndim

        self.diagonal = np.zeros(active.shape, dtype=np.float64)
        for a, (w_lo, w_hi) in enumerate(face_weights):
            self.diagonal += coefficients[a] * (w_lo + w_hi)

    def has_dirichlet_cells(self) -> bool:
        """True if some active cell is coupled to a pinned (p = 0) neighbour."""
        dim = self.dimension
        padded = np.pad(self.active, 1, constant_values=False)
        for a, (w_lo, w_hi) in enumerate(self.face_weights):
            below = [slice(1, -1)] * dim
            above = [slice(1, -1)] * dim
            below[a] = slice(0, -2)
            above[a] = slice(2, None)
            if np.any(self.active & (w_lo > 0.0) & ~padded[tuple(below)]):
                return True
            if np.any(self.active & (w_hi > 0.0) & ~padded[tuple(above)]):
                return True
        return False

    def __call__(self, p: np.ndarray) -> np.ndarray:
        dim = self.dimension
        padded = np.pad(p, 1)
        out = self.diagonal * p
        for a, (w_lo, w_hi) in enumerate(self.face_weights):
            below = [slice(1, -1)] * dim
            above = [slice(1, -1)] * dim
            below[a] = slice(0, -2)
            above[a] = slice(2, None)
            out -= self.coefficients[a] * (w_lo * padded[tuple(below)] + w_hi * padded[tuple(above)])
        return np.where(self.active, out, 0.0)


class FractionalPressureSolver:
    """
    Single-phase pressure projection with fractional face weights.

    Args:
        iterations : Max CG iterations; None scales with the grid
                     (4 per cell along the longest axis, at least PRESSURE_ITERATIONS)
        tolerance  : Stop once the largest residual drops below
                     tolerance × the largest divergence
    """

    def __init__(self, iterations: int = None, tolerance: float = PRESSURE_TOLERANCE):
        self.iterations = iterations
        self.tolerance = tolerance
        self.pressure = None

    def max_iterations(self, size) -> int:
        if self.iterations is not None:
            return int(self.iterations)
        return max(PRESSURE_ITERATIONS, 4 * max(size))

    def solve(self, velocity: FaceCenteredGrid, time_interval: float,
              collider_sdf, fluid_sdf, collider_velocity: FaceCenteredGrid = None,
              closed_domain_boundary_flag: int = DIRECTION_ALL, weights=None) -> dict:
        """
        Make `velocity` divergence-free over `time_interval`.

        Args:
            weights : Open-area fraction per face component, if the caller
                      already has them for this collider (not modified)

        Modifies: velocity (in-place), self.pressure

        Returns:
            dict with timing, iteration count and divergence metrics
        """
        t_start = time.perf_counter()
        dim = velocity.dimension
        h = velocity.grid_spacing
        interior = (slice(1, -1),) * dim

        if weights is None:
            weights = face_fluid_weights(collider_sdf, velocity)
        weights = [w.copy() for w in weights]
        solid = [np.zeros_like(velocity.velocity_at(a)) if collider_velocity is None
                 else collider_velocity.velocity_at(a).copy() for a in range(dim)]

        # ── Closed domain walls: no open area, static wall velocity ───────
        for a in range(dim):
            low_bit, high_bit = direction_bits(a)
            wall_lo = [slice(None)] * dim
            wall_hi = [slice(None)] * dim
            wall_lo[a], wall_hi[a] = 1, -2
            if closed_domain_boundary_flag & low_bit:
                weights[a][tuple(wall_lo)] = 0.0
                solid[a][tuple(wall_lo)] = 0.0
            if closed_domain_boundary_flag & high_bit:
                weights[a][tuple(wall_hi)] = 0.0
                solid[a][tuple(wall_hi)] = 0.0

        divergence = _weighted_divergence(velocity, weights, solid)

        cells = CellCenteredScalarGrid(velocity.size, h, velocity.origin)
        fluid = is_inside_sdf(fluid_sdf.sample(cells.data_positions()[interior]))

        # ── Assemble the operator: diagonal Σ_a dt/h_a² · (w_lo + w_hi) ────
        coefficients = time_interval / h ** 2
        face_weights = []
        for a in range(dim):
            lo, hi, _ = _face_slices(dim, a)
            face_weights.append((weights[a][lo], weights[a][hi]))
        diag = sum(coefficients[a] * (w_lo + w_hi) for a, (w_lo, w_hi) in enumerate(face_weights))
        active = fluid & (diag > 0.0)
        laplacian = _WeightedLaplacian(face_weights, coefficients, active)

        rhs = np.where(active, -divergence, 0.0)
        if active.any() and not laplacian.has_dirichlet_cells():
            rhs[active] -= rhs[active].mean()

        p = np.zeros(velocity.size, dtype=np.float64)
        x = np.zeros(divergence.shape, dtype=np.float64)
        if self.pressure is not None and self.pressure.shape == p.shape:
            x = np.where(active, self.pressure[interior], 0.0)

        x, used, residual = self._conjugate_gradient(laplacian, rhs, x, self.max_iterations(velocity.size))
        p[interior] = x
        self.pressure = p

        # ── Subtract dt·∇p on open faces, solid faces take the solid velocity ─
        for a in range(dim):
            _, _, every = _face_slices(dim, a)
            below = [slice(1, -1)] * dim
            above = [slice(1, -1)] * dim
            below[a] = slice(0, -1)
            above[a] = slice(1, None)
            gradient = (p[tuple(above)] - p[tuple(below)]) / h[a]
            u = velocity.velocity_at(a)
            w = weights[a][every]
            u[every] = np.where(w > 0.0, u[every] - time_interval * gradient, solid[a][every])

        div_after = _weighted_divergence(velocity, weights, solid)
        t_end = time.perf_counter()

        metrics = {
            "time_ms"               : (t_end - t_start) * 1000,
            "iterations"            : used,
            "residual"              : residual,
            "divergence_before_max" : float(np.abs(divergence).max()) if divergence.size else 0.0,
            "divergence_after_max"  : float(np.abs(div_after).max()) if div_after.size else 0.0,
            "divergence_after_mean" : float(np.abs(div_after).mean()) if div_after.size else 0.0,
        }
        logger.debug("Pressure solve: %d CG iterations, max div %.3e → %.3e", used,
                     metrics["divergence_before_max"], metrics["divergence_after_max"])
        return metrics

    def _conjugate_gradient(self, laplacian: _WeightedLaplacian, rhs: np.ndarray, x: np.ndarray,
                            max_iterations: int) -> tuple[np.ndarray, int, float]:
        """
        Diagonally preconditioned CG on the active cells.

        Returns:
            (solution, iterations used, final max residual)
        """
        active = laplacian.active
        inv_diag = np.where(active, 1.0 / np.where(active, laplacian.diagonal, 1.0), 0.0)
        threshold = self.tolerance * max(float(np.abs(rhs).max()) if rhs.size else 0.0, REAL_EPSILON)

        r = rhs - laplacian(x)
        residual = float(np.abs(r).max()) if r.size else 0.0
        if residual <= threshold:
            return x, 0, residual

        z = inv_diag * r
        d = z.copy()
        rz = float(np.sum(r * z))
        used = 0
        for used in range(1, max_iterations + 1):
            q = laplacian(d)
            dq = float(np.sum(d * q))
            if dq <= 0.0:
                break
            alpha = rz / dq
            x = x + alpha * d
            r = r - alpha * q
            residual = float(np.abs(r).max())
            if residual <= threshold:
                break
            z = inv_diag * r
            rz_next = float(np.sum(r * z))
            d = z + (rz_next / rz) * d
            rz = rz_next
        else:
            logger.warning("Pressure CG hit the iteration cap (%d), residual %.3e", max_iterations, residual)

        return x, used, residual
