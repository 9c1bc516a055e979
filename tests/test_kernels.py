"""Interpolation stencil tests."""

from __future__ import annotations

import numpy as np
import pytest

from mpm_engine.errors import NumericalError
from mpm_engine.physics_world.solvers.mpm import Grid
from mpm_engine.physics_world.solvers.mpm.mpm_kernels import STENCIL_SIZE, Stencil


@pytest.fixture
def grid() -> Grid:
    return Grid(dims=(10, 10, 10), h=0.1)


def test_weights_sum_to_one_inside_grid(grid, rng):
    positions = rng.uniform(0.2, 0.8, size=(500, 3))
    stencil = Stencil.compute(positions, grid.h, grid.dims)
    assert np.all(stencil.indices >= 0)
    np.testing.assert_allclose(stencil.weight_sums(), 1.0, atol=1e-12)


def test_weight_gradients_sum_to_zero_inside_grid(grid, rng):
    positions = rng.uniform(0.2, 0.8, size=(200, 3))
    stencil = Stencil.compute(positions, grid.h, grid.dims)
    np.testing.assert_allclose(stencil.gradients.sum(axis=1), 0.0, atol=1e-9)


def test_weights_are_non_negative(grid, rng):
    positions = rng.uniform(0.0, 1.0, size=(300, 3))
    stencil = Stencil.compute(positions, grid.h, grid.dims)
    assert np.all(stencil.weights >= 0.0)


def test_stencil_orders_x_fastest(grid):
    stencil = Stencil.compute(np.array([[0.5, 0.5, 0.5]]), grid.h, grid.dims)
    base = grid.raw_index((4, 4, 4))
    assert stencil.indices.shape == (1, STENCIL_SIZE)
    assert stencil.indices[0, 0] == base
    assert stencil.indices[0, 1] == base + 1
    assert stencil.indices[0, 3] == base + grid.dims[0]
    assert stencil.indices[0, 9] == base + grid.dims[0] * grid.dims[1]


def test_weights_at_node_position(grid):
    # Exactly on a node: 0.75 on the node and 0.125 on each axis neighbour
    stencil = Stencil.compute(np.array([[0.5, 0.5, 0.5]]), grid.h, grid.dims)
    center = grid.raw_index((5, 5, 5))
    slot = int(np.flatnonzero(stencil.indices[0] == center)[0])
    assert stencil.weights[0, slot] == pytest.approx(0.75 ** 3)
    np.testing.assert_allclose(stencil.gradients[0, slot], 0.0, atol=1e-12)


def test_out_of_grid_neighbours_are_skipped(grid):
    neighbours = list(grid.neighbor_weights((0.0, 0.0, 0.0)))
    assert len(neighbours) == 8
    assert all(all(0 <= i < 2 for i in index) for index, _, _ in neighbours)
    assert sum(w for _, w, _ in neighbours) < 1.0


def test_linear_velocity_field_is_reproduced(grid, rng):
    A = rng.normal(size=(3, 3))
    b = rng.normal(size=3)
    node_positions = np.array([grid.node_position(grid.node_index(i)) for i in range(grid.num_nodes)])
    field = node_positions @ A.T + b

    positions = rng.uniform(0.2, 0.8, size=(50, 3))
    stencil = Stencil.compute(positions, grid.h, grid.dims)

    np.testing.assert_allclose(stencil.gather(field), positions @ A.T + b, atol=1e-10)
    np.testing.assert_allclose(stencil.velocity_gradient(field), np.broadcast_to(A, (50, 3, 3)), atol=1e-9)


def test_non_finite_position_raises(grid):
    with pytest.raises(NumericalError):
        Stencil.compute(np.array([[0.5, np.nan, 0.5]]), grid.h, grid.dims)


def test_empty_stencil(grid):
    stencil = Stencil.compute(np.empty((0, 3)), grid.h, grid.dims)
    assert len(stencil) == 0
    assert stencil.gather(grid.velocity).shape == (0, 3)
