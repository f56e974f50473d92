import numpy as np
import pytest

from hybridfluid.boundary import (FractionalBoundaryConditionSolver, apply_density_boundary,
                                  extrapolate_to_region)
from hybridfluid.collider import RigidBodyCollider, Sphere
from hybridfluid.constants import DIRECTION_ALL, DIRECTION_LEFT, DIRECTION_NONE
from hybridfluid.grid import FaceCenteredGrid
from hybridfluid.simulation import GridSolver


@pytest.fixture
def density():
    rng = np.random.default_rng(3)
    return rng.uniform(size=(6, 6))  # 4x4 interior plus ghost ring


def test_density_edges_mirror_interior(density):
    apply_density_boundary(density)
    N = 4
    for i in range(1, N + 1):
        assert density[0, i] == density[1, i]
        assert density[N + 1, i] == density[N, i]
        assert density[i, 0] == density[i, 1]
        assert density[i, N + 1] == density[i, N]


def test_density_corners_average_adjacent_edge_ghosts(density):
    apply_density_boundary(density)
    d = density
    assert d[0, 0] == pytest.approx(0.5 * (d[1, 0] + d[0, 1]))
    assert d[5, 0] == pytest.approx(0.5 * (d[4, 0] + d[5, 1]))
    assert d[0, 5] == pytest.approx(0.5 * (d[1, 5] + d[0, 4]))
    assert d[5, 5] == pytest.approx(0.5 * (d[4, 5] + d[5, 4]))


def test_density_boundary_is_idempotent(density):
    apply_density_boundary(density)
    once = density.copy()
    apply_density_boundary(density)
    np.testing.assert_array_equal(density, once)


def test_density_boundary_in_3d_fills_every_ghost():
    rng = np.random.default_rng(4)
    d = rng.uniform(size=(5, 5, 5))
    apply_density_boundary(d)
    np.testing.assert_array_equal(d[0, 2, 2], d[1, 2, 2])
    assert d[0, 0, 0] == pytest.approx((d[1, 0, 0] + d[0, 1, 0] + d[0, 0, 1]) / 3.0)


def test_solver_boundary_application_mirrors_density():
    solver = GridSolver(size=(4, 4), grid_spacing=0.25)
    rng = np.random.default_rng(5)
    solver.density.data[1:-1, 1:-1] = rng.uniform(size=(4, 4))

    solver.apply_boundary_condition()
    d = solver.density.data.copy()
    assert np.all(d[0, 1:-1] == d[1, 1:-1])
    assert d[0, 0] == pytest.approx(0.5 * (d[1, 0] + d[0, 1]))

    solver.apply_boundary_condition()
    np.testing.assert_array_equal(solver.density.data, d)


def test_extrapolation_grows_by_depth():
    values = np.array([2.0, 0.0, 0.0, 0.0])
    valid = np.array([True, False, False, False])
    extrapolate_to_region(values, valid, depth=2)
    np.testing.assert_allclose(values, [2.0, 2.0, 2.0, 0.0])


def test_extrapolation_averages_valid_neighbours():
    values = np.array([[1.0, 0.0, 3.0]])
    valid = np.array([[True, False, True]])
    extrapolate_to_region(values, valid, depth=1)
    assert values[0, 1] == pytest.approx(2.0)


def _uniform_velocity(value=(1.0, 1.0)):
    vel = FaceCenteredGrid((6, 6), 0.25, (-0.25, -0.25))
    vel.fill(value)
    return vel


def test_closed_walls_have_zero_normal_velocity():
    bc = FractionalBoundaryConditionSolver(DIRECTION_ALL)
    bc.update_collider(None, (6, 6), 0.25, (-0.25, -0.25))
    vel = _uniform_velocity()

    bc.constrain_velocity(vel)
    u, v = vel.velocity_at(0), vel.velocity_at(1)
    for face in (0, 1, -2, -1):
        assert np.all(u[face, :] == 0.0)
        assert np.all(v[:, face] == 0.0)
    assert np.all(u[2:-2, :] == 1.0)


def test_open_walls_keep_their_flow():
    bc = FractionalBoundaryConditionSolver(DIRECTION_NONE)
    bc.update_collider(None, (6, 6), 0.25, (-0.25, -0.25))
    vel = _uniform_velocity()

    bc.constrain_velocity(vel)
    assert np.all(vel.velocity_at(0) == 1.0)
    assert np.all(vel.velocity_at(1) == 1.0)


def test_single_closed_side():
    bc = FractionalBoundaryConditionSolver(DIRECTION_LEFT)
    bc.update_collider(None, (6, 6), 0.25, (-0.25, -0.25))
    vel = _uniform_velocity()

    bc.constrain_velocity(vel)
    u = vel.velocity_at(0)
    assert np.all(u[1, :] == 0.0)
    assert np.all(u[-2, :] == 1.0)


def _sphere_setup(linear_velocity=None):
    # 10x10 interior over [0, 1]², sphere of radius 0.3 in the middle
    size, h, origin = (12, 12), 0.1, (-0.1, -0.1)
    collider = RigidBodyCollider(Sphere((0.5, 0.5), 0.3), linear_velocity=linear_velocity)
    bc = FractionalBoundaryConditionSolver(DIRECTION_NONE)
    bc.update_collider(collider, size, h, origin)
    vel = FaceCenteredGrid(size, h, origin)
    vel.fill((1.0, 0.0))
    return bc, vel


def test_face_weights_follow_the_collider():
    bc, vel = _sphere_setup()
    w = bc.face_weights(vel)[0]
    # x-face at (0.55, 0.5) is deep inside, (0.05, 0.1) far outside
    assert w[7, 6] == pytest.approx(0.0)
    assert w[2, 2] == pytest.approx(1.0)


def test_static_collider_removes_normal_velocity_inside():
    bc, vel = _sphere_setup()
    bc.constrain_velocity(vel, extrapolation_depth=5)
    # Inside the sphere on the horizontal centre line the normal is along x
    assert vel.velocity_at(0)[7, 6] == pytest.approx(0.0, abs=1e-6)
    # Far from the sphere nothing changes
    assert vel.velocity_at(0)[2, 2] == pytest.approx(1.0)


def test_collider_moving_with_the_flow_keeps_it():
    bc, vel = _sphere_setup(linear_velocity=(1.0, 0.0))
    bc.constrain_velocity(vel, extrapolation_depth=5)
    assert vel.velocity_at(0)[7, 6] == pytest.approx(1.0, abs=1e-6)


@pytest.mark.parametrize("flag", [DIRECTION_NONE, DIRECTION_ALL])
def test_constraining_twice_around_a_rotating_sphere_changes_nothing(flag):
    size, h, origin = (18, 18), 1.0 / 16, (-1.0 / 16, -1.0 / 16)
    collider = RigidBodyCollider(Sphere((0.5, 0.5), 0.2), angular_velocity=2.0)
    bc = FractionalBoundaryConditionSolver(flag)
    bc.update_collider(collider, size, h, origin)

    rng = np.random.default_rng(7)
    vel = FaceCenteredGrid(size, h, origin)
    for a in range(2):
        vel.velocity_at(a)[...] = rng.normal(size=vel.velocity_at(a).shape)

    bc.constrain_velocity(vel, extrapolation_depth=5)
    once = vel.copy()
    bc.constrain_velocity(vel, extrapolation_depth=5)

    np.testing.assert_allclose(vel.velocity_at(0), once.velocity_at(0), atol=1e-12)
    np.testing.assert_allclose(vel.velocity_at(1), once.velocity_at(1), atol=1e-12)


def test_faces_deeper_than_the_extrapolation_take_the_solid_velocity():
    bc, vel = _sphere_setup(linear_velocity=(0.25, 0.0))
    bc.constrain_velocity(vel, extrapolation_depth=0)
    # Nothing is grown into the sphere, so its own velocity fills it
    assert vel.velocity_at(0)[7, 6] == pytest.approx(0.25)
    assert vel.velocity_at(0)[2, 2] == pytest.approx(1.0)


def test_solver_boundary_application_is_idempotent_with_a_collider():
    solver = GridSolver(size=(16, 16), grid_spacing=1.0 / 16)
    solver.set_collider(RigidBodyCollider(Sphere((0.5, 0.5), 0.2), angular_velocity=2.0))
    solver.advance_frame(0)
    rng = np.random.default_rng(8)
    for a in range(2):
        solver.velocity.velocity_at(a)[...] = rng.normal(size=solver.velocity.velocity_at(a).shape)

    solver.apply_boundary_condition()
    once = solver.velocity.copy()
    solver.apply_boundary_condition()

    np.testing.assert_allclose(solver.velocity.velocity_at(0), once.velocity_at(0), atol=1e-12)
    np.testing.assert_allclose(solver.velocity.velocity_at(1), once.velocity_at(1), atol=1e-12)
