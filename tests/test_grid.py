"""Grid layout and per-step update tests."""

from __future__ import annotations

import numpy as np
import pytest

from mpm_engine.physics_world.solvers.mpm import Boundary, BoundaryKind, Grid


def test_from_size_floors_node_counts():
    grid = Grid.from_size((1.0, 0.5, 0.75), 0.25)
    assert grid.dims == (4, 2, 3)
    assert grid.num_nodes == 24
    assert grid.size() == pytest.approx((1.0, 0.5, 0.75))


def test_invalid_grid_rejected():
    with pytest.raises(ValueError):
        Grid.from_size((1.0, 1.0, 1.0), 0.0)
    with pytest.raises(ValueError):
        Grid(dims=(0, 2, 2), h=0.1)


def test_raw_index_is_x_fastest():
    grid = Grid(dims=(3, 4, 5), h=0.1)
    raws = [grid.raw_index(index) for index in grid.indices()]
    assert raws == list(range(grid.num_nodes))
    assert grid.node_index(grid.raw_index((2, 1, 3))) == (2, 1, 3)
    assert grid.contains_index((2, 3, 4))
    assert not grid.contains_index((3, 0, 0))
    assert not grid.contains_index((0, -1, 0))


def test_node_position():
    grid = Grid(dims=(4, 4, 4), h=0.5)
    np.testing.assert_allclose(grid.node_position((1, 2, 3)), (0.5, 1.0, 1.5))


def test_neighbor_weights_cover_interior_point():
    grid = Grid(dims=(10, 10, 10), h=0.1)
    neighbours = list(grid.neighbor_weights((0.43, 0.51, 0.6)))
    assert len(neighbours) == 27
    assert sum(weight for _, weight, _ in neighbours) == pytest.approx(1.0)


def test_zero_mass_nodes_stay_at_rest():
    grid = Grid(dims=(2, 2, 2), h=1.0)
    grid.momentum[:] = 1.0
    grid.mass[0] = 2.0
    grid.momentum_to_velocity()
    grid.add_gravity((0.0, -9.8, 0.0))
    grid.force_to_velocity(0.1)

    assert np.isfinite(grid.velocity).all()
    np.testing.assert_allclose(grid.velocity[0], (0.5, 0.5 - 0.98, 0.5))
    np.testing.assert_array_equal(grid.velocity[1:], 0.0)
    np.testing.assert_allclose(grid.velocity_temp[0], (0.5, 0.5, 0.5))


def test_clear_keeps_boundaries():
    grid = Grid(dims=(2, 2, 2), h=1.0)
    grid.set_boundary((1, 1, 1), Boundary.sticky())
    grid.mass[:] = 1.0
    grid.force[:] = 3.0
    grid.clear()
    assert grid.mass.sum() == 0.0
    assert not grid.force.any()
    assert grid.boundary_at((1, 1, 1)).kind == BoundaryKind.STICKY


def test_put_boundary_skips_none():
    grid = Grid(dims=(3, 3, 3), h=1.0)
    count = grid.put_boundary(lambda index: Boundary.sticky() if index[1] == 0 else None)
    assert count == 9
    assert grid.boundary_at((2, 0, 1)).kind == BoundaryKind.STICKY
    assert grid.boundary_at((2, 1, 1)).kind == BoundaryKind.NONE


def test_node_snapshot_is_a_copy():
    grid = Grid(dims=(2, 2, 2), h=1.0)
    grid.velocity[grid.raw_index((1, 0, 0))] = (1.0, 2.0, 3.0)
    node = grid.node((1, 0, 0))
    node.velocity[:] = 0.0
    np.testing.assert_allclose(grid.velocity[1], (1.0, 2.0, 3.0))
