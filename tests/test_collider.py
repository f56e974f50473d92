import numpy as np
import pytest

from hybridfluid.collider import Box, RigidBodyCollider, Sphere, fraction_inside_sdf, is_inside_sdf


@pytest.mark.parametrize("phi0, phi1, expected", [
    (-1.0, -1.0, 1.0),
    (1.0, 1.0, 0.0),
    (-1.0, 1.0, 0.5),
    (-1.0, 3.0, 0.25),
    (3.0, -1.0, 0.25),
])
def test_fraction_inside(phi0, phi1, expected):
    assert fraction_inside_sdf(phi0, phi1) == pytest.approx(expected)


def test_fraction_inside_is_vectorised():
    out = fraction_inside_sdf(np.array([-1.0, 2.0]), np.array([-1.0, 2.0]))
    np.testing.assert_allclose(out, [1.0, 0.0])


def test_inside_is_strictly_negative():
    np.testing.assert_array_equal(is_inside_sdf([-0.1, 0.0, 0.1]), [True, False, False])


def test_sphere_distance():
    s = Sphere((1.0, 0.0), 0.5)
    np.testing.assert_allclose(s.signed_distance([[1.0, 0.0], [3.0, 0.0]]), [-0.5, 1.5])
    s.translate((1.0, 0.0))
    assert s.signed_distance([2.0, 0.0]) == pytest.approx(-0.5)


def test_box_distance():
    b = Box((0.0, 0.0), (2.0, 1.0))
    np.testing.assert_allclose(b.signed_distance([[1.0, 0.5], [3.0, 0.5], [3.0, 2.0]]),
                               [-0.5, 1.0, np.sqrt(2.0)])
    np.testing.assert_allclose(b.center, [1.0, 0.5])


def test_rigid_body_rotation_in_2d():
    collider = RigidBodyCollider(Sphere((0.0, 0.0), 1.0), angular_velocity=2.0)
    np.testing.assert_allclose(collider.velocity_at([[1.0, 0.0], [0.0, 1.0]]),
                               [[0.0, 2.0], [-2.0, 0.0]])


def test_rigid_body_linear_velocity_everywhere():
    collider = RigidBodyCollider(Box((0, 0), (1, 1)), linear_velocity=(0.5, -1.0))
    vel = collider.velocity_at(np.zeros((3, 4, 2)))
    assert vel.shape == (3, 4, 2)
    assert np.all(vel[..., 0] == 0.5)


def test_rigid_body_in_3d_uses_cross_product():
    collider = RigidBodyCollider(Sphere((0.0, 0.0, 0.0), 1.0), angular_velocity=(0.0, 0.0, 1.0))
    np.testing.assert_allclose(collider.velocity_at([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0])


def test_update_hook_moves_the_surface():
    calls = []

    def slide(collider, t, dt):
        calls.append((t, dt))
        collider.surface.translate(collider.linear_velocity * dt)

    collider = RigidBodyCollider(Sphere((0.0, 0.0), 0.5), linear_velocity=(1.0, 0.0), on_update=slide)
    collider.update(0.0, 0.5)
    assert calls == [(0.0, 0.5)]
    np.testing.assert_allclose(collider.surface.center, [0.5, 0.0])
    assert collider.sdf([0.5, 0.0]) == pytest.approx(-0.5)
