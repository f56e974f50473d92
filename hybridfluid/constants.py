"""
constants.py — Shared Tunables and Direction Flags
===================================================
Domain faces are addressed with one bit per side, two bits per axis:

  axis 0 → LEFT  (low x) / RIGHT (high x)
  axis 1 → DOWN  (low y) / UP    (high y)
  axis 2 → BACK  (low z) / FRONT (high z)

A closed side is a solid wall (no flux through it); an open side lets
fluid leave the box (pressure is pinned to zero just outside).
"""

import numpy as np

# ── Direction bit flags ───────────────────────────────────────────────────────
DIRECTION_NONE  = 0
DIRECTION_LEFT  = 1 << 0
DIRECTION_RIGHT = 1 << 1
DIRECTION_DOWN  = 1 << 2
DIRECTION_UP    = 1 << 3
DIRECTION_BACK  = 1 << 4
DIRECTION_FRONT = 1 << 5
DIRECTION_ALL   = (DIRECTION_LEFT | DIRECTION_RIGHT | DIRECTION_DOWN |
                   DIRECTION_UP | DIRECTION_BACK | DIRECTION_FRONT)


def direction_bits(axis: int) -> tuple[int, int]:
    """(low side bit, high side bit) for the given axis."""
    return 1 << (2 * axis), 1 << (2 * axis + 1)


# ── Solver defaults ───────────────────────────────────────────────────────────
DEFAULT_GRAVITY          = (0.0, -9.8)
DEFAULT_MAX_CFL          = 5.0
DEFAULT_FRAME_INTERVAL   = 1.0 / 60.0
DEFAULT_FIXED_SUBSTEPS   = 1
MAX_SUB_TIME_STEPS       = 256      # adaptive stepping refuses to go past this

# Smallest positive normalised float, the floor for max_cfl
REAL_EPSILON = float(np.finfo(np.float64).tiny)
# "Infinitely far from any surface" for SDF placeholders
REAL_INFINITY = float(np.finfo(np.float64).max)

# ── Iterative solver settings ─────────────────────────────────────────────────
DIFFUSION_ITERATIONS = 100
DIFFUSION_TOLERANCE  = 1e-7
PRESSURE_ITERATIONS  = 1000     # floor; large grids get 4 CG iterations per cell along the longest axis
PRESSURE_TOLERANCE   = 1e-10    # relative to the largest divergence
