"""
grid.py — Ghost-Ringed Scalar and MAC (Staggered) Grids
========================================================
The foundation of the entire simulation.

Every field is stored on an index space that is one cell larger than the
interior on each side (a "ghost ring"):

  interior size N   → storage size N + 2 per axis
  index 0 and N + 1 → ghost cells (boundary conditions live here)
  index 1 .. N      → the actual fluid domain

Positions follow a single rule:

  data_position(index) = data_origin + index * grid_spacing

Layout on a single cell:
  - Density `d` lives at CELL CENTERS        → shape (N+2, N+2)
  - Velocity `u` lives on X-FACES            → shape (N+3, N+2)
  - Velocity `v` lives on Y-FACES            → shape (N+2, N+3)
Face i along an axis sits half a spacing *below* cell i on that axis.

Why staggered? It prevents the "checkerboard" pressure instability
that appears on collocated grids.

Nothing here is hard-wired to 2D: the dimension is simply `data.ndim`.
"""

import itertools

import numpy as np

# Fractional indices this close to an integer are snapped onto the node,
# so sampling exactly at a stored node returns the stored value.
_NODE_SNAP_TOLERANCE = 1e-9


def _as_vector(value, dimension: int) -> np.ndarray:
    """Broadcast a scalar or sequence to a float vector of length `dimension`."""
    vec = np.asarray(value, dtype=np.float64)
    if vec.ndim == 0:
        vec = np.full(dimension, float(vec))
    if vec.shape != (dimension,):
        raise ValueError(f"Expected a scalar or a {dimension}-vector, got shape {vec.shape}")
    return vec


def shift_array(arr: np.ndarray, axis: int, offset: int, fill) -> np.ndarray:
    """out[i] = arr[i + offset] along `axis`, `fill` where that falls off the array."""
    out = np.full_like(arr, fill)
    n = arr.shape[axis]
    src = [slice(None)] * arr.ndim
    dst = [slice(None)] * arr.ndim
    if offset > 0:
        src[axis] = slice(offset, n)
        dst[axis] = slice(0, n - offset)
    else:
        src[axis] = slice(0, n + offset)
        dst[axis] = slice(-offset, n)
    out[tuple(dst)] = arr[tuple(src)]
    return out


def multilinear_interpolate(data: np.ndarray, fractional_index: np.ndarray) -> np.ndarray:
    """
    Bi/trilinear interpolation of an N-D array at fractional index positions.

    Think of it as a weighted average of the 2^D surrounding node values.
    Query positions outside the array are clamped onto its border.

    Args:
        data             : D-dimensional array to sample from
        fractional_index : (..., D) array of (possibly fractional) indices

    Returns:
        Interpolated values, shape fractional_index.shape[:-1]
    """
    dim = data.ndim
    shape = np.array(data.shape)
    f = np.clip(np.asarray(fractional_index, dtype=np.float64), 0, shape - 1)

    snapped = np.round(f)
    f = np.where(np.abs(f - snapped) < _NODE_SNAP_TOLERANCE, snapped, f)

    # Lower corner; the upper node is never past the end of the array
    i0 = np.minimum(np.floor(f).astype(np.int64), np.maximum(shape - 2, 0))
    t = f - i0

    result = np.zeros(f.shape[:-1], dtype=np.float64)
    for corner in itertools.product((0, 1), repeat=dim):
        weight = np.ones(f.shape[:-1], dtype=np.float64)
        idx = []
        for a in range(dim):
            ta = t[..., a]
            weight = weight * (ta if corner[a] else 1.0 - ta)
            idx.append(np.minimum(i0[..., a] + corner[a], shape[a] - 1))
        result += weight * data[tuple(idx)]
    return result


class GridField:
    """
    A scalar array with a position attached to every entry.

    Args:
        data_size   : Array shape (already including ghost cells)
        grid_spacing: Cell size per axis (scalar or D-vector)
        data_origin : Position of index (0, 0, ...)
        initial_value: Fill value
    """

    def __init__(self, data_size, grid_spacing, data_origin, initial_value: float = 0.0):
        self.data = np.full(tuple(int(n) for n in data_size), initial_value, dtype=np.float64)
        self.grid_spacing = _as_vector(grid_spacing, self.data.ndim)
        self.data_origin = _as_vector(data_origin, self.data.ndim)

    @property
    def dimension(self) -> int:
        return self.data.ndim

    @property
    def data_size(self) -> tuple:
        return self.data.shape

    def data_position(self, index) -> np.ndarray:
        """World position of an index (or of an (..., D) array of indices)."""
        return self.data_origin + np.asarray(index, dtype=np.float64) * self.grid_spacing

    def data_positions(self) -> np.ndarray:
        """World positions of every stored entry, shape (*data_size, D)."""
        axes = [np.arange(n, dtype=np.float64) for n in self.data.shape]
        idx = np.stack(np.meshgrid(*axes, indexing="ij"), axis=-1)
        return self.data_position(idx)

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """(lower, upper) corners spanned by the stored nodes."""
        upper = self.data_position(np.array(self.data.shape) - 1)
        return self.data_origin.copy(), upper

    def fractional_index(self, positions) -> np.ndarray:
        return (np.asarray(positions, dtype=np.float64) - self.data_origin) / self.grid_spacing

    def sample(self, positions) -> np.ndarray:
        """Interpolated value at world position(s), shape positions.shape[:-1]."""
        return multilinear_interpolate(self.data, self.fractional_index(positions))

    def fill(self, value: float):
        self.data[...] = value

    def __getitem__(self, index):
        return self.data[index]

    def __setitem__(self, index, value):
        self.data[index] = value


class CellCenteredScalarGrid(GridField):
    """
    Scalar quantity stored at cell centres (density, pressure, SDFs).

    `origin` is the position of cell (0, 0, ...), i.e. one spacing outside
    the domain's lower corner when the grid carries a ghost ring.
    """

    def __init__(self, size, grid_spacing, origin, initial_value: float = 0.0):
        super().__init__(size, grid_spacing, origin, initial_value)

    @property
    def size(self) -> tuple:
        return self.data.shape

    @property
    def origin(self) -> np.ndarray:
        return self.data_origin

    def total(self, interior_only: bool = True) -> float:
        """Sum of the stored values (ghost ring excluded by default)."""
        if interior_only:
            return float(self.data[(slice(1, -1),) * self.dimension].sum())
        return float(self.data.sum())


class FaceCenteredGrid:
    """
    MAC velocity field: one scalar array per axis, each on its own face grid.

    Component `a` has the cell shape with one extra entry along axis `a`.
    Face i along axis a sits at `cell_position(i) - 0.5 * spacing[a]`.

    Args:
        size         : Cell count per axis (including ghost cells)
        grid_spacing : Cell size per axis
        origin       : Position of cell (0, 0, ...)
        initial_value: Initial velocity (scalar or D-vector)
    """

    def __init__(self, size, grid_spacing, origin, initial_value=0.0):
        self.size = tuple(int(n) for n in size)
        dim = len(self.size)
        self.grid_spacing = _as_vector(grid_spacing, dim)
        self.origin = _as_vector(origin, dim)
        initial = _as_vector(initial_value, dim)

        self.components = []
        for a in range(dim):
            shape = list(self.size)
            shape[a] += 1
            offset = np.zeros(dim)
            offset[a] = -0.5 * self.grid_spacing[a]
            self.components.append(GridField(shape, self.grid_spacing, self.origin + offset, initial[a]))

    @property
    def dimension(self) -> int:
        return len(self.size)

    def velocity_at(self, axis: int) -> np.ndarray:
        """Raw face array of one velocity component (mutable view)."""
        return self.components[axis].data

    def component_positions(self, axis: int) -> np.ndarray:
        return self.components[axis].data_positions()

    def fill(self, value):
        value = _as_vector(value, self.dimension)
        for a, comp in enumerate(self.components):
            comp.fill(value[a])

    def value_at_cell_center(self) -> np.ndarray:
        """
        Average the two faces bounding each cell, per axis.

        Returns (*size, D) array of cell-centred velocity vectors.
        """
        out = np.empty(self.size + (self.dimension,), dtype=np.float64)
        for a, comp in enumerate(self.components):
            lo = [slice(None)] * self.dimension
            hi = [slice(None)] * self.dimension
            lo[a] = slice(0, -1)
            hi[a] = slice(1, None)
            out[..., a] = 0.5 * (comp.data[tuple(lo)] + comp.data[tuple(hi)])
        return out

    def sample(self, positions) -> np.ndarray:
        """Full velocity vector at world position(s), shape (..., D)."""
        positions = np.asarray(positions, dtype=np.float64)
        return np.stack([comp.sample(positions) for comp in self.components], axis=-1)

    def divergence(self) -> np.ndarray:
        """
        div(v) = du/dx + dv/dy (+ dw/dz) at every cell, shape `size`.

        For an incompressible fluid this should be ~0 in the interior.
        """
        div = np.zeros(self.size, dtype=np.float64)
        for a, comp in enumerate(self.components):
            lo = [slice(None)] * self.dimension
            hi = [slice(None)] * self.dimension
            lo[a] = slice(0, -1)
            hi[a] = slice(1, None)
            div += (comp.data[tuple(hi)] - comp.data[tuple(lo)]) / self.grid_spacing[a]
        return div

    def copy(self) -> "FaceCenteredGrid":
        other = FaceCenteredGrid(self.size, self.grid_spacing, self.origin)
        for dst, src in zip(other.components, self.components):
            np.copyto(dst.data, src.data)
        return other


class ConstantScalarField:
    """A field with the same value everywhere (e.g. the "all fluid" SDF)."""

    def __init__(self, value: float):
        self.value = float(value)

    def sample(self, positions) -> np.ndarray:
        positions = np.asarray(positions, dtype=np.float64)
        return np.full(positions.shape[:-1], self.value, dtype=np.float64)
