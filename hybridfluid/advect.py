"""
advect.py — Semi-Lagrangian Advection
======================================
This is what makes the fluid look like it's *actually flowing*.

The algorithm (per sample point):
  1. Look at the sample's position (cell centre or face centre).
  2. Trace BACKWARD along the velocity field by one timestep (dt).
     → "Where did the stuff at this point come FROM?"
  3. Sample the field at that back-traced position with multilinear
     interpolation (it'll land between grid nodes).
  4. That sampled value becomes the new value at this point.

Back-traced positions are clamped so they never leave the fluid domain:
density stops at the centres of the first interior ring, velocity at the
domain walls. Clamping is the only place where this step can gain or
lose mass.

Key reference: Jos Stam, "Stable Fluids" (SIGGRAPH 1999)
"""

import numpy as np

from .grid import CellCenteredScalarGrid, FaceCenteredGrid


def advect_density(density: CellCenteredScalarGrid, velocity: FaceCenteredGrid, time_interval: float):
    """
    Advect the density (smoke) field through the velocity field.

    Only interior cells are rewritten; ghost cells are left for the
    boundary condition to refill.

    Modifies: density (in-place; every sample reads the pre-step field)
    """
    dim = density.dimension
    interior = (slice(1, -1),) * dim
    h = density.grid_spacing

    pos = density.data_positions()[interior]
    vel = velocity.value_at_cell_center()[interior]

    # Stop back-tracing at the first interior ring
    lower, upper = density.bounds()
    back = np.clip(pos - time_interval * vel, lower + h, upper - h)

    density.data[interior] = density.sample(back)


def advect_velocity(velocity: FaceCenteredGrid, time_interval: float):
    """
    Advect the velocity field through itself (self-advection).

    Each component lives on its own staggered face grid, so each one is
    traced back from its own face positions; the full velocity vector at a
    face is interpolated from all components of the pre-step field.

    Modifies: velocity (in-place)
    """
    dim = velocity.dimension
    h = velocity.grid_spacing
    previous = velocity.copy()

    n_interior = np.array(velocity.size) - 2
    lower = velocity.origin + 0.5 * h
    upper = velocity.origin + (n_interior + 0.5) * h

    for a in range(dim):
        every = [slice(1, -1)] * dim
        pos = velocity.component_positions(a)[tuple(every)]
        vel = previous.sample(pos)
        back = np.clip(pos - time_interval * vel, lower, upper)
        velocity.velocity_at(a)[tuple(every)] = previous.components[a].sample(back)
