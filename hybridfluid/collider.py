"""
collider.py — Solid Obstacles as Signed Distance Fields
========================================================
An obstacle is described by a signed distance field (SDF):

  sdf(p) < 0   → p is inside the solid
  sdf(p) = 0   → p is on the surface
  sdf(p) > 0   → p is in the fluid, |sdf| metres from the surface

The solver never looks at the obstacle's shape directly; the boundary
condition solver samples `sdf()` and `velocity_at()` on the grid once per
sub-step, after calling `update()`.
"""

from typing import Callable, Optional, Protocol

import numpy as np


def is_inside_sdf(phi) -> np.ndarray:
    """True where the signed distance is negative (inside the solid)."""
    return np.asarray(phi) < 0.0


def fraction_inside_sdf(phi0, phi1) -> np.ndarray:
    """
    Fraction of the segment [p0, p1] that lies inside the SDF, given the
    signed distances at its two ends. Linear in between.

      both inside  → 1
      both outside → 0
      one each     → length of the inside part / segment length
    """
    phi0 = np.asarray(phi0, dtype=np.float64)
    phi1 = np.asarray(phi1, dtype=np.float64)
    in0 = phi0 < 0.0
    in1 = phi1 < 0.0

    denom = phi0 - phi1
    safe = np.where(denom == 0.0, 1.0, denom)
    frac = np.zeros(np.broadcast(phi0, phi1).shape, dtype=np.float64)
    frac = np.where(in0 & in1, 1.0, frac)
    frac = np.where(in0 & ~in1, phi0 / safe, frac)
    frac = np.where(~in0 & in1, -phi1 / safe, frac)
    return np.clip(frac, 0.0, 1.0)


# ── Implicit surfaces ─────────────────────────────────────────────────────────

class Sphere:
    """Disc (2D) / ball (3D) of the given radius."""

    def __init__(self, center, radius: float):
        self.center = np.asarray(center, dtype=np.float64)
        self.radius = float(radius)

    def signed_distance(self, positions) -> np.ndarray:
        p = np.asarray(positions, dtype=np.float64)
        return np.linalg.norm(p - self.center, axis=-1) - self.radius

    def translate(self, delta):
        self.center = self.center + np.asarray(delta, dtype=np.float64)


class Box:
    """Axis-aligned box between `lower` and `upper` corners."""

    def __init__(self, lower, upper):
        self.lower = np.asarray(lower, dtype=np.float64)
        self.upper = np.asarray(upper, dtype=np.float64)

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.lower + self.upper)

    def signed_distance(self, positions) -> np.ndarray:
        p = np.asarray(positions, dtype=np.float64)
        half = 0.5 * (self.upper - self.lower)
        q = np.abs(p - self.center) - half
        outside = np.linalg.norm(np.maximum(q, 0.0), axis=-1)
        inside = np.minimum(q.max(axis=-1), 0.0)
        return outside + inside

    def translate(self, delta):
        delta = np.asarray(delta, dtype=np.float64)
        self.lower = self.lower + delta
        self.upper = self.upper + delta


# ── Colliders ─────────────────────────────────────────────────────────────────

class Collider(Protocol):
    """What the grid solver needs from an obstacle."""

    def update(self, current_time: float, time_interval: float) -> None:
        ...

    def sdf(self, positions) -> np.ndarray:
        ...

    def velocity_at(self, positions) -> np.ndarray:
        ...


class RigidBodyCollider:
    """
    A surface moving as a rigid body.

    velocity(p) = linear_velocity + angular_velocity x (p - center)

    In 2D `angular_velocity` is a scalar (rotation about the out-of-plane
    axis); in 3D it is a 3-vector.

    Args:
        surface          : Anything with `signed_distance(positions)` and `center`
        linear_velocity  : Translational velocity
        angular_velocity : Rotation rate (rad/s)
        on_update        : Optional hook `on_update(collider, current_time, dt)`,
                           called every sub-step; move the surface here.
    """

    def __init__(self, surface, linear_velocity=None, angular_velocity=0.0,
                 on_update: Optional[Callable] = None):
        self.surface = surface
        dim = np.asarray(surface.center).shape[0]
        self.linear_velocity = (np.zeros(dim) if linear_velocity is None
                                else np.asarray(linear_velocity, dtype=np.float64))
        self.angular_velocity = np.asarray(angular_velocity, dtype=np.float64)
        self.on_update = on_update

    def update(self, current_time: float, time_interval: float) -> None:
        if self.on_update is not None:
            self.on_update(self, current_time, time_interval)

    def sdf(self, positions) -> np.ndarray:
        return self.surface.signed_distance(positions)

    def velocity_at(self, positions) -> np.ndarray:
        p = np.asarray(positions, dtype=np.float64)
        r = p - np.asarray(self.surface.center)
        vel = np.broadcast_to(self.linear_velocity, p.shape).copy()
        if p.shape[-1] == 2:
            w = float(self.angular_velocity)
            vel[..., 0] -= w * r[..., 1]
            vel[..., 1] += w * r[..., 0]
        else:
            vel += np.cross(np.broadcast_to(self.angular_velocity, p.shape), r)
        return vel
