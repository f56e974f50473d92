"""
boundary.py — Fractional Boundary Conditions (Domain Walls + Collider)
======================================================================
Three jobs, all re-run after every phase that writes to a field:

  1. Cache the collider geometry on the grid each sub-step
     (cell-centred SDF + face-centred collider velocity).
  2. Velocity: extrapolate fluid velocities into the solid, then make the
     normal velocity inside the solid match the solid's own (free slip,
     no penetration). Closed domain walls get zero normal velocity.
  3. Density: zero-gradient (Neumann) copy into the ghost ring, corners
     averaged from their two (or more) neighbouring ghost cells.

"Fractional" means a face is not simply solid or fluid: it carries the
fraction of its area that is open to the fluid, computed from the SDF at
the face's two ends. The pressure solver uses the same weights.
"""

import itertools
import logging

import numpy as np

from .collider import fraction_inside_sdf, is_inside_sdf
from .constants import DIRECTION_ALL, REAL_INFINITY, direction_bits
from .grid import CellCenteredScalarGrid, ConstantScalarField, FaceCenteredGrid, shift_array

logger = logging.getLogger(__name__)


def extrapolate_to_region(values: np.ndarray, valid: np.ndarray, depth: int):
    """
    Grow `values` from the `valid` region outward, `depth` cells deep.

    Each pass fills every invalid cell that touches a valid one with the
    average of its valid axis-neighbours, then marks it valid.

    Modifies: values (in-place)

    Returns:
        The grown valid mask (cells further than `depth` away stay False)
    """
    valid = np.asarray(valid, dtype=bool).copy()
    for _ in range(int(depth)):
        total = np.zeros_like(values)
        count = np.zeros(values.shape, dtype=np.int64)
        for a in range(values.ndim):
            for offset in (-1, 1):
                nb_valid = shift_array(valid, a, offset, False)
                nb_value = shift_array(values, a, offset, 0.0)
                total += np.where(nb_valid, nb_value, 0.0)
                count += nb_valid
        frontier = ~valid & (count > 0)
        if not frontier.any():
            break
        values[frontier] = total[frontier] / count[frontier]
        valid |= frontier
    return valid


def apply_density_boundary(data: np.ndarray):
    """
    Zero-gradient condition for a cell-centred field with one ghost ring.

    In 2D, for an N×N interior:
      d[0, i]   = d[1, i]     d[N+1, i] = d[N, i]
      d[i, 0]   = d[i, 1]     d[i, N+1] = d[i, N]
      d[0, 0]   = 0.5 * (d[1, 0] + d[0, 1])   (and the other 3 corners alike)

    The result depends on interior values only, so applying it twice is the
    same as applying it once.

    Modifies: data (in-place)
    """
    dim = data.ndim
    interior = slice(1, -1)

    # ── Faces of the ghost ring: copy the adjacent interior cell ──────────
    for a in range(dim):
        for ghost, inner in ((0, 1), (-1, -2)):
            dst = [interior] * dim
            src = [interior] * dim
            dst[a] = ghost
            src[a] = inner
            data[tuple(dst)] = data[tuple(src)]

    # ── Edges/corners: average of the ghost neighbours one step inward ────
    for k in range(2, dim + 1):
        for axes in itertools.combinations(range(dim), k):
            for sides in itertools.product((0, -1), repeat=k):
                region = [interior] * dim
                for a, s in zip(axes, sides):
                    region[a] = s
                acc = 0.0
                for a, s in zip(axes, sides):
                    nb = list(region)
                    nb[a] = 1 if s == 0 else -2
                    acc = acc + data[tuple(nb)]
                data[tuple(region)] = acc / k


def face_fluid_weights(collider_sdf, velocity: FaceCenteredGrid) -> list[np.ndarray]:
    """
    Open-area fraction of every velocity face: 1 = fully fluid, 0 = fully solid.

    The face is the segment (2D) through the face centre across the
    tangential axis; its ends are sampled in the collider SDF. In 3D the
    fractions along each tangential axis are averaged.
    """
    weights = []
    dim = velocity.dimension
    h = velocity.grid_spacing
    for a in range(dim):
        pos = velocity.component_positions(a)
        tangential = [t for t in range(dim) if t != a]
        if not tangential:
            weights.append(np.where(is_inside_sdf(collider_sdf.sample(pos)), 0.0, 1.0))
            continue
        covered = np.zeros(pos.shape[:-1], dtype=np.float64)
        for t in tangential:
            step = np.zeros(dim)
            step[t] = 0.5 * h[t]
            covered += fraction_inside_sdf(collider_sdf.sample(pos - step),
                                           collider_sdf.sample(pos + step))
        weights.append(1.0 - covered / len(tangential))
    return weights


def sdf_normal(sdf, positions: np.ndarray, grid_spacing: np.ndarray) -> np.ndarray:
    """Unit outward normal from central differences of the SDF (zero where flat)."""
    dim = positions.shape[-1]
    grad = np.zeros(positions.shape, dtype=np.float64)
    for a in range(dim):
        step = np.zeros(dim)
        step[a] = grid_spacing[a]
        grad[..., a] = (sdf.sample(positions + step) - sdf.sample(positions - step)) / (2.0 * grid_spacing[a])
    length = np.linalg.norm(grad, axis=-1, keepdims=True)
    return np.divide(grad, length, out=np.zeros_like(grad), where=length > 0)


class FractionalBoundaryConditionSolver:
    """
    Keeps the collider's grid footprint and enforces wall/collider conditions.

    Call `update_collider()` once per sub-step (after the collider moved),
    then `constrain_velocity()` after any phase that writes velocity.
    """

    def __init__(self, closed_domain_boundary_flag: int = DIRECTION_ALL):
        self.closed_domain_boundary_flag = closed_domain_boundary_flag
        self._collider = None
        self._collider_sdf = ConstantScalarField(REAL_INFINITY)
        self._collider_velocity = None
        self._weights = None
        self._inside = None

    @property
    def has_collider(self) -> bool:
        return self._collider is not None

    @property
    def collider_sdf(self):
        """Cell-centred collider SDF (a constant +inf field without a collider)."""
        return self._collider_sdf

    @property
    def collider_velocity_field(self) -> FaceCenteredGrid:
        return self._collider_velocity

    def update_collider(self, collider, size, grid_spacing, origin):
        """Re-sample the collider's SDF and surface velocity onto the grid."""
        self._collider = collider
        self._weights = None
        self._inside = None
        self._collider_velocity = FaceCenteredGrid(size, grid_spacing, origin)
        if collider is None:
            self._collider_sdf = ConstantScalarField(REAL_INFINITY)
            return

        sdf_grid = CellCenteredScalarGrid(size, grid_spacing, origin)
        sdf_grid.data[...] = collider.sdf(sdf_grid.data_positions())
        self._collider_sdf = sdf_grid

        for a, comp in enumerate(self._collider_velocity.components):
            comp.data[...] = collider.velocity_at(comp.data_positions())[..., a]
        logger.debug("Collider re-sampled: %d cells inside", int(is_inside_sdf(sdf_grid.data).sum()))

    def face_weights(self, velocity: FaceCenteredGrid) -> list[np.ndarray]:
        """Open-area fraction per face, cached until the collider is re-sampled."""
        shapes = [c.data.shape for c in velocity.components]
        if self._weights is None or [w.shape for w in self._weights] != shapes:
            self._weights = face_fluid_weights(self._collider_sdf, velocity)
        return self._weights

    def inside_faces(self, velocity: FaceCenteredGrid) -> list[np.ndarray]:
        """Per-component mask of faces whose centre lies inside the collider."""
        shapes = [c.data.shape for c in velocity.components]
        if self._inside is None or [m.shape for m in self._inside] != shapes:
            self._inside = [is_inside_sdf(self._collider_sdf.sample(velocity.component_positions(a)))
                            for a in range(velocity.dimension)]
        return self._inside

    def constrain_velocity(self, velocity: FaceCenteredGrid, extrapolation_depth: int = 5):
        """
        Make `velocity` consistent with the collider and the domain walls.

        Faces inside the collider are rebuilt from the fluid faces outside it
        (ghost ring excluded), so applying this twice changes nothing.

        Modifies: velocity (in-place)
        """
        self._constrain_domain_walls(velocity)
        if not self.has_collider:
            return

        dim = velocity.dimension
        inside = self.inside_faces(velocity)
        if not any(m.any() for m in inside):
            return

        # ── Extrapolate fluid velocity into the solid, on a scratch copy ──
        extrapolated = velocity.copy()
        for a in range(dim):
            u = extrapolated.velocity_at(a)
            source = ~inside[a]
            for b in range(dim):
                for edge in (0, -1):
                    ring = [slice(None)] * dim
                    ring[b] = edge
                    source[tuple(ring)] = False
            u[~source] = self._collider_velocity.velocity_at(a)[~source]
            extrapolate_to_region(u, source, extrapolation_depth)

        # ── No penetration: inside the solid, normal velocity = solid's ──
        for a in range(dim):
            if not inside[a].any():
                continue
            p_in = velocity.component_positions(a)[inside[a]]
            vel = extrapolated.sample(p_in)
            solid_vel = self._collider_velocity.sample(p_in)
            n = sdf_normal(self._collider_sdf, p_in, velocity.grid_spacing)
            rel = vel - solid_vel
            rel -= np.sum(rel * n, axis=-1, keepdims=True) * n
            velocity.velocity_at(a)[inside[a]] = (rel + solid_vel)[:, a]

        self._constrain_domain_walls(velocity)

    def _constrain_domain_walls(self, velocity: FaceCenteredGrid):
        """
        Walls sit on faces 1 and N+1 of each axis (between ghost and interior).
        Closed wall → zero normal velocity; open wall → left as solved.
        Ghost-ring faces copy their neighbour so samplers never read stale data.
        """
        dim = velocity.dimension
        for a in range(dim):
            low_bit, high_bit = direction_bits(a)
            u = velocity.velocity_at(a)
            wall_lo = [slice(None)] * dim
            wall_hi = [slice(None)] * dim
            wall_lo[a] = 1
            wall_hi[a] = -2
            if self.closed_domain_boundary_flag & low_bit:
                u[tuple(wall_lo)] = 0.0
            if self.closed_domain_boundary_flag & high_bit:
                u[tuple(wall_hi)] = 0.0

            ghost_lo = list(wall_lo)
            ghost_hi = list(wall_hi)
            ghost_lo[a] = 0
            ghost_hi[a] = -1
            u[tuple(ghost_lo)] = u[tuple(wall_lo)]
            u[tuple(ghost_hi)] = u[tuple(wall_hi)]

            # Tangential components: free slip into the ghost cells along axis a
            for b in range(dim):
                if b == a:
                    continue
                w = velocity.velocity_at(b)
                dst_lo = [slice(None)] * dim
                src_lo = [slice(None)] * dim
                dst_lo[a], src_lo[a] = 0, 1
                dst_hi = [slice(None)] * dim
                src_hi = [slice(None)] * dim
                dst_hi[a], src_hi[a] = -1, -2
                w[tuple(dst_lo)] = w[tuple(src_lo)]
                w[tuple(dst_hi)] = w[tuple(src_hi)]
