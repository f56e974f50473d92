"""
neighbors.py — Uniform Point Grid for Fixed-Radius Neighbour Search
====================================================================
Buckets a 2D point set into square cells whose size equals the search
radius. A query point then only has to look at its own cell and the 8 cells
around it (3×3 block): anything further away is at least one full cell,
i.e. one radius, from the query point.

  home cell  = floor((p - lower) / radius), clamped onto the grid
  neighbour  = any stored point with 0 < |p - q|² <= radius²

The zero-distance test drops the query point itself when it is one of the
stored points (it also drops exact duplicates of the query point).

The point array is owned by the caller; call `build()` again whenever it
changes. Changing the radius means constructing a new grid.
"""

import numpy as np


class PointGrid2:
    """
    Args:
        points : (n, 2) array of positions (kept by reference)
        radius : Search radius, also the cell size
        lower  : Lower corner of the bucketed region (default: points' min)
        upper  : Upper corner of the bucketed region (default: points' max)
    """

    def __init__(self, points, radius: float, lower=None, upper=None):
        if not radius > 0.0:
            raise ValueError(f"Search radius must be positive, got {radius}")
        self.radius = float(radius)
        self._lower_arg = lower
        self._upper_arg = upper
        self._cells = {}
        self.build(points)

    @property
    def cell_size(self) -> np.ndarray:
        return np.full(2, self.radius)

    @property
    def points(self) -> np.ndarray:
        return self._points

    def build(self, points):
        """(Re)bucket `points`. Indices returned by queries refer to this array."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 2:
            raise ValueError(f"Expected an (n, 2) point array, got shape {points.shape}")
        self._points = points

        if len(points):
            lower = points.min(axis=0) if self._lower_arg is None else self._lower_arg
            upper = points.max(axis=0) if self._upper_arg is None else self._upper_arg
        else:
            lower = np.zeros(2) if self._lower_arg is None else self._lower_arg
            upper = lower if self._upper_arg is None else self._upper_arg
        self.lower = np.asarray(lower, dtype=np.float64)
        self.upper = np.asarray(upper, dtype=np.float64)

        extent = np.maximum(self.upper - self.lower, 0.0)
        self.size = (np.floor(extent / self.radius).astype(np.int64) + 1)

        self._cells = {}
        if not len(points):
            return
        keys = self._cell_of(points)
        buckets = {}
        for i, key in enumerate(map(tuple, keys)):
            buckets.setdefault(key, []).append(i)
        self._cells = {k: np.array(v, dtype=np.int64) for k, v in buckets.items()}

    def _cell_of(self, positions: np.ndarray) -> np.ndarray:
        idx = np.floor((positions - self.lower) / self.radius).astype(np.int64)
        return np.clip(idx, 0, self.size - 1)

    def index(self, point) -> tuple:
        """Home cell of `point`, clamped onto the grid."""
        return tuple(int(i) for i in self._cell_of(np.asarray(point, dtype=np.float64)))

    def __getitem__(self, cell) -> np.ndarray:
        """Indices of the points bucketed in `cell` (empty if none)."""
        return self._cells.get(tuple(cell), np.empty(0, dtype=np.int64))

    def find_neighbors(self, point) -> list:
        """Indices of stored points within `radius` of `point`, excluding exact coincidences."""
        point = np.asarray(point, dtype=np.float64)
        sx, sy = self.index(point)
        nx, ny = self.size
        h2 = self.radius ** 2

        found = []
        for j in (-1, 0, 1):
            cy = sy + j
            if cy < 0 or cy >= ny:
                continue
            for i in (-1, 0, 1):
                cx = sx + i
                if cx < 0 or cx >= nx:
                    continue
                ids = self._cells.get((cx, cy))
                if ids is None:
                    continue
                diff = self._points[ids] - point
                d2 = np.einsum("ij,ij->i", diff, diff)
                found.extend(int(k) for k in ids[(d2 != 0.0) & (d2 <= h2)])
        return found

    def find_all_neighbors(self) -> list:
        """One neighbour list per stored point, in point order."""
        return [self.find_neighbors(p) for p in self._points]

    def __len__(self):
        return len(self._points)
