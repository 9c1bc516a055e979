"""Boundary classification and projection tests."""

from __future__ import annotations

import numpy as np
import pytest

from mpm_engine.physics_world.solvers.mpm import Boundary, BoundaryKind, Grid, Wall, apply_boundary
from mpm_engine.physics_world.solvers.mpm.mpm_boundary import apply_friction_forces

IDEMPOTENT = [
    Boundary.none(),
    Boundary.sticky(),
    Boundary.sliding((0.0, 1.0, 0.0)),
    Boundary.sliding((1.0, 1.0, 0.0)),
    Boundary.friction((0.0, 0.0, -1.0), 0.4),
    Boundary.velocity_diminish((1.0, 0.0, 0.0), 1.0),
    Boundary.velocity_diminish((1.0, 0.0, 0.0), 0.0),
]


@pytest.mark.parametrize("boundary", IDEMPOTENT, ids=lambda b: b.kind.name)
def test_boundary_enforcement_is_idempotent(boundary, rng):
    for velocity in rng.normal(size=(20, 3)):
        once = apply_boundary(velocity, boundary)
        twice = apply_boundary(once, boundary)
        np.testing.assert_allclose(twice, once, atol=1e-12)


def test_sticky_zeroes_velocity():
    np.testing.assert_array_equal(apply_boundary((1.0, -2.0, 3.0), Boundary.sticky()), np.zeros(3))


def test_sliding_removes_normal_component():
    v = apply_boundary((1.0, -2.0, 3.0), Boundary.sliding((0.0, 1.0, 0.0)))
    np.testing.assert_allclose(v, (1.0, 0.0, 3.0))


def test_velocity_diminish_scales_tangential_part():
    v = apply_boundary((1.0, -2.0, 3.0), Boundary.velocity_diminish((0.0, 1.0, 0.0), 0.5))
    np.testing.assert_allclose(v, (0.5, 0.0, 1.5))


def test_normals_are_normalised():
    boundary = Boundary.sliding((0.0, 3.0, 4.0))
    assert boundary.normal == pytest.approx((0.0, 0.6, 0.8))


def test_zero_normal_rejected():
    with pytest.raises(ValueError):
        Boundary.sliding((0.0, 0.0, 0.0))


def test_wall_normals_point_inward():
    assert Wall.LEFT.normal == (1.0, 0.0, 0.0)
    assert Wall.RIGHT.normal == (-1.0, 0.0, 0.0)
    assert Wall.BOTTOM.normal == (0.0, 1.0, 0.0)
    assert Wall.UP.normal == (0.0, -1.0, 0.0)
    assert Wall.BACK.normal == (0.0, 0.0, 1.0)
    assert Wall.FRONT.normal == (0.0, 0.0, -1.0)


def test_grid_enforcement_matches_single_node_rule(rng):
    grid = Grid(dims=(len(IDEMPOTENT), 1, 1), h=0.1)
    for x, boundary in enumerate(IDEMPOTENT):
        grid.set_boundary((x, 0, 0), boundary)
    grid.velocity[:] = rng.normal(size=grid.velocity.shape)
    expected = np.array([apply_boundary(grid.velocity[i], b) for i, b in enumerate(IDEMPOTENT)])

    grid.enforce_boundaries()

    np.testing.assert_allclose(grid.velocity, expected, atol=1e-12)


def test_boundary_round_trips_through_grid_storage():
    grid = Grid(dims=(2, 2, 2), h=0.5)
    friction = Boundary.friction((0.0, 1.0, 0.0), 0.3)
    diminish = Boundary.velocity_diminish((1.0, 0.0, 0.0), 0.25)
    grid.set_boundary((1, 0, 0), friction)
    grid.set_boundary((0, 1, 1), diminish)
    assert grid.boundary_at((1, 0, 0)) == friction
    assert grid.boundary_at((0, 1, 1)) == diminish
    assert grid.boundary_at((0, 0, 0)).kind == BoundaryKind.NONE


def _friction_node(mu: float, velocity, force, mass: float = 2.0):
    kind = np.array([BoundaryKind.FRICTION], dtype=np.int8)
    normal = np.array([[0.0, 1.0, 0.0]])
    return kind, normal, np.array([mu]), np.array([mass]), np.array([velocity], dtype=float), np.array([force], dtype=float)


def test_friction_limited_by_normal_force():
    kind, normal, mu, mass, velocity, force = _friction_node(0.5, (1.0, 0.0, 0.0), (0.0, -10.0, 0.0))
    assert apply_friction_forces(kind, normal, mu, mass, velocity, force, dt=0.1) == 1
    np.testing.assert_allclose(force[0], (-5.0, -10.0, 0.0))


def test_friction_limited_by_stopping_force():
    kind, normal, mu, mass, velocity, force = _friction_node(10.0, (1.0, 0.0, 0.0), (0.0, -10.0, 0.0))
    apply_friction_forces(kind, normal, mu, mass, velocity, force, dt=0.1)
    # m |v_t| / dt = 2 * 1 / 0.1
    np.testing.assert_allclose(force[0], (-20.0, -10.0, 0.0))


def test_friction_skipped_without_tangential_motion():
    kind, normal, mu, mass, velocity, force = _friction_node(0.5, (0.0, -3.0, 0.0), (0.0, -10.0, 0.0))
    assert apply_friction_forces(kind, normal, mu, mass, velocity, force, dt=0.1) == 0
    np.testing.assert_allclose(force[0], (0.0, -10.0, 0.0))


def test_friction_needs_pressing_force():
    kind, normal, mu, mass, velocity, force = _friction_node(0.5, (1.0, 0.0, 0.0), (0.0, 10.0, 0.0))
    apply_friction_forces(kind, normal, mu, mass, velocity, force, dt=0.1)
    np.testing.assert_allclose(force[0], (0.0, 10.0, 0.0))
