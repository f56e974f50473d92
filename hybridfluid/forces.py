"""
forces.py — External Forces and Sources (Gravity, Impulses, Density)
=====================================================================
Applies body forces to the velocity field each sub-step and injects
density where a user drags a source.

Gravity is a uniform acceleration: every face of axis `a` gains
dt · g[a]. Axes with zero gravity are skipped entirely.
"""

import numpy as np

from .grid import CellCenteredScalarGrid, FaceCenteredGrid


def apply_gravity(velocity: FaceCenteredGrid, gravity, time_interval: float) -> bool:
    """
    Add dt * gravity to every velocity sample, axis by axis.

    Returns:
        True if any component was touched (caller re-applies boundary conditions)
    """
    gravity = np.asarray(gravity, dtype=np.float64)
    changed = False
    for a in range(velocity.dimension):
        if gravity[a] == 0.0:
            continue
        velocity.velocity_at(a)[...] += time_interval * gravity[a]
        changed = True
    return changed


def apply_impulse(velocity: FaceCenteredGrid, center, force, time_interval: float, radius: float):
    """
    Apply a localized force (a fan, a drag of the mouse).
    Force falls off linearly with distance from the center point.

    Args:
        center : World position of the impulse
        force  : Force vector (acceleration per unit mass)
        radius : Influence radius in world units
    """
    center = np.asarray(center, dtype=np.float64)
    force = np.asarray(force, dtype=np.float64)
    for a in range(velocity.dimension):
        if force[a] == 0.0:
            continue
        dist = np.linalg.norm(velocity.component_positions(a) - center, axis=-1)
        mask = dist < radius
        velocity.velocity_at(a)[mask] += force[a] * time_interval * (1.0 - dist[mask] / radius)


def add_velocity(velocity: FaceCenteredGrid, index, delta):
    """
    Add a velocity kick to cell `index`.
    Because of staggering, both faces bounding the cell on each axis get it.
    """
    delta = np.asarray(delta, dtype=np.float64)
    for a in range(velocity.dimension):
        lo = list(index)
        hi = list(index)
        hi[a] += 1
        u = velocity.velocity_at(a)
        u[tuple(lo)] += delta[a]
        u[tuple(hi)] += delta[a]


def add_density(density: CellCenteredScalarGrid, index, amount: float, radius: int = 0):
    """
    Inject density into the interior around cell `index`.

    Args:
        index  : Cell index (ghost ring counted, so the interior is 1..N)
        amount : How much density to add per cell
        radius : Injection radius in cells (0 = that cell only)
    """
    slices = []
    for a, i in enumerate(index):
        n = density.data.shape[a]
        slices.append(slice(max(1, i - radius), min(n - 1, i + radius + 1)))
    density.data[tuple(slices)] += amount
