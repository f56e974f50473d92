"""
hybridfluid/ — Grid Fluid Solver Package
=========================================
Exports the interfaces the viewer, the CLI and embedding code use.

Viewer imports:  GridSolver → density, velocity, frame
CLI imports:     GridSolver, RigidBodyCollider, Sphere, Box
Particle side:   PointGrid2 (fixed-radius neighbour search)
"""

from .animation import Frame, PhysicsAnimation
from .collider import Box, RigidBodyCollider, Sphere
from .constants import (DIRECTION_ALL, DIRECTION_BACK, DIRECTION_DOWN, DIRECTION_FRONT,
                        DIRECTION_LEFT, DIRECTION_NONE, DIRECTION_RIGHT, DIRECTION_UP)
from .errors import DegenerateField, FluidSimulationError, InvalidConfiguration, UnboundedSubstepping
from .grid import CellCenteredScalarGrid, ConstantScalarField, FaceCenteredGrid
from .neighbors import PointGrid2
from .simulation import GridSolver

__all__ = [
    "GridSolver", "PhysicsAnimation", "Frame",
    "CellCenteredScalarGrid", "FaceCenteredGrid", "ConstantScalarField",
    "RigidBodyCollider", "Sphere", "Box",
    "PointGrid2",
    "FluidSimulationError", "InvalidConfiguration", "DegenerateField", "UnboundedSubstepping",
    "DIRECTION_NONE", "DIRECTION_LEFT", "DIRECTION_RIGHT", "DIRECTION_DOWN",
    "DIRECTION_UP", "DIRECTION_BACK", "DIRECTION_FRONT", "DIRECTION_ALL",
]
