import numpy as np
import pytest

from hybridfluid import (DIRECTION_NONE, DegenerateField, GridSolver, InvalidConfiguration,
                         RigidBodyCollider, Sphere, UnboundedSubstepping)
from hybridfluid.collider import is_inside_sdf
from hybridfluid.constants import PRESSURE_ITERATIONS, REAL_EPSILON


@pytest.fixture
def still_solver():
    """4x4 interior over [0, 1]², no gravity."""
    solver = GridSolver(size=(4, 4), grid_spacing=0.25)
    solver.set_gravity((0.0, 0.0))
    return solver


def test_construction_layout():
    solver = GridSolver(size=(4, 6), grid_spacing=0.25, origin=(1.0, 2.0))
    assert solver.size == (4, 6)
    assert solver.density.data.shape == (6, 8)
    assert solver.velocity.velocity_at(0).shape == (7, 8)
    assert solver.velocity.velocity_at(1).shape == (6, 9)
    # Index 0 sits one spacing outside the domain's lower corner
    np.testing.assert_allclose(solver.grid_origin, [0.75, 1.75])
    np.testing.assert_allclose(solver.grid_spacing, [0.25, 0.25])
    np.testing.assert_allclose(solver.gravity, [0.0, -9.8])
    assert solver.frame == -1


@pytest.mark.parametrize("size, spacing", [
    ((0, 4), 0.25),
    ((4, -2), 0.25),
    ((4, 4), 0.0),
    ((4, 4), (0.25, 0.0)),
    ((4, 4), -1.0),
    ((4, 4), float("nan")),
])
def test_invalid_configuration_is_rejected(size, spacing):
    with pytest.raises(InvalidConfiguration):
        GridSolver(size=size, grid_spacing=spacing)


def test_invalid_configuration_is_a_value_error():
    with pytest.raises(ValueError):
        GridSolver(size=(4, 4), grid_spacing=0.0)


def test_cfl_of_uniform_velocity(still_solver):
    still_solver.velocity.fill((3.0, 4.0))
    assert still_solver.cfl(0.1) == pytest.approx(5.0 * 0.1 / 0.25)


def test_cfl_includes_gravity(still_solver):
    still_solver.set_gravity((0.0, -10.0))
    assert still_solver.cfl(0.1) == pytest.approx(1.0 * 0.1 / 0.25)


def test_adaptive_sub_step_count():
    solver = GridSolver(size=(4, 4), grid_spacing=1.0)
    solver.set_gravity((0.0, 0.0))
    solver.set_max_cfl(5.0)

    solver.velocity.fill((12.0, 0.0))
    assert solver.cfl(1.0) == pytest.approx(12.0)
    assert solver.number_of_sub_time_steps(1.0) == 3

    solver.velocity.fill((0.0, 0.0))
    assert solver.number_of_sub_time_steps(1.0) == 1


def test_setters_clamp(still_solver):
    still_solver.set_viscosity_coefficient(-5.0)
    assert still_solver.viscosity_coefficient == 0.0
    still_solver.set_max_cfl(-1.0)
    assert still_solver.max_cfl == REAL_EPSILON
    still_solver.set_max_cfl(3.0)
    assert still_solver.max_cfl == 3.0


def test_gravity_must_match_dimension(still_solver):
    with pytest.raises(ValueError):
        still_solver.set_gravity((0.0, -9.8, 0.0))


def test_zero_spacing_cfl_is_degenerate(still_solver):
    still_solver.velocity.grid_spacing = np.zeros(2)
    with pytest.raises(DegenerateField):
        still_solver.cfl(0.1)


def test_diverged_velocity_is_degenerate(still_solver):
    still_solver.velocity.fill((np.nan, 0.0))
    with pytest.raises(DegenerateField):
        still_solver.number_of_sub_time_steps(0.1)


def test_unbounded_sub_stepping_leaves_state_untouched(still_solver):
    still_solver.velocity.fill((1e6, 0.0))
    still_solver.density.data[2, 2] = 1.0
    density = still_solver.density.data.copy()
    u = still_solver.velocity.velocity_at(0).copy()

    with pytest.raises(UnboundedSubstepping):
        still_solver.advance_frame(0)

    assert still_solver.frame == -1
    assert still_solver.current_time == 0.0
    np.testing.assert_array_equal(still_solver.density.data, density)
    np.testing.assert_array_equal(still_solver.velocity.velocity_at(0), u)


def test_still_fluid_conserves_density(still_solver):
    still_solver.density.data[2, 3] = 1.0
    still_solver.advance_frame(0)

    assert still_solver.frame == 0
    assert still_solver.total_density() == pytest.approx(1.0)
    assert still_solver.density.data[2, 3] == pytest.approx(1.0)
    np.testing.assert_allclose(still_solver.compute_divergence(), 0.0, atol=1e-12)


def test_frames_and_time_advance(still_solver):
    still_solver.advance_frame(2)
    assert still_solver.frame == 2
    assert still_solver.current_time == pytest.approx(3.0 / 60.0)
    still_solver.advance_frame()
    assert still_solver.frame == 3


def test_fixed_sub_steps_reach_the_callbacks():
    calls = []
    solver = GridSolver(size=(4, 4), grid_spacing=0.25,
                        on_begin_step=lambda s, dt: calls.append(("begin", dt)),
                        on_end_step=lambda s, dt: calls.append(("end", dt)))
    solver.is_using_fixed_sub_time_steps = True
    solver.number_of_fixed_sub_time_steps = 5

    solver.advance_single_frame()
    assert [c[0] for c in calls] == ["begin", "end"] * 5
    assert calls[0][1] == pytest.approx(1.0 / 300.0)


def test_queued_source_is_applied_once(still_solver):
    still_solver.add_source((2, 2), density=0.5)
    still_solver.advance_frame(0)
    still_solver.advance_frame(1)
    assert still_solver.total_density() == pytest.approx(0.5)


def test_gravity_in_a_closed_box_is_balanced_by_pressure():
    solver = GridSolver(size=(8, 8), grid_spacing=0.125)
    solver.advance_frame(3)

    assert np.abs(solver.compute_divergence()).max() < 1e-3
    # Hydrostatic: the pressure gradient cancels gravity, nothing moves
    assert np.abs(solver.velocity.value_at_cell_center()[1:-1, 1:-1]).max() < 1e-2
    p = solver.pressure[1:-1, 1:-1]
    assert np.all(np.diff(p, axis=1) < 0.0)


def test_hydrostatic_box_stays_still_at_32_cells_with_defaults():
    solver = GridSolver(size=(32, 32), grid_spacing=1.0 / 32)
    for frame in range(3):
        solver.advance_frame(frame)

    assert np.abs(solver.compute_divergence()).max() < 1e-6
    assert np.abs(solver.velocity.value_at_cell_center()[1:-1, 1:-1]).max() < 1e-5
    assert 1 <= solver.last_step_metrics["pressure_iterations"] < PRESSURE_ITERATIONS


def test_open_box_lets_fluid_fall():
    solver = GridSolver(size=(8, 8), grid_spacing=0.125)
    solver.set_closed_domain_boundary_flag(DIRECTION_NONE)
    solver.advance_frame(0)
    v = solver.velocity.velocity_at(1)
    assert v[4, 4] < 0.0


def test_collider_keeps_density_out():
    solver = GridSolver(size=(16, 16), grid_spacing=1.0 / 16)
    solver.set_collider(RigidBodyCollider(Sphere((0.5, 0.5), 0.2)))
    solver.density.data[4:8, 2:5] = 1.0

    for frame in range(3):
        solver.advance_frame(frame)

    assert np.all(np.isfinite(solver.density.data))
    assert np.all(np.isfinite(solver.velocity.velocity_at(0)))
    inside = is_inside_sdf(solver.collider.sdf(solver.density.data_positions()))
    assert np.all(solver.density.data[1:-1, 1:-1][inside[1:-1, 1:-1]] == 0.0)
    assert solver.last_step_metrics["pressure_iterations"] >= 1


def test_viscosity_runs_the_diffusion_phase():
    solver = GridSolver(size=(8, 8), grid_spacing=0.125)
    solver.set_gravity((0.0, 0.0))
    solver.set_viscosity_coefficient(0.01)
    solver.add_source((4, 4), velocity=(1.0, 0.0))
    solver.advance_frame(0)

    assert "diffuse_velocity_ms" in solver.last_step_metrics
    assert np.all(np.isfinite(solver.velocity.velocity_at(0)))
    assert len(solver.perf_log) >= 1
