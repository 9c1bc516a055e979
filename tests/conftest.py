"""Shared fixtures for the MPM engine tests."""

from __future__ import annotations

import numpy as np
import pytest

from mpm_engine.mesh_utils import TetrahedronMesh
from mpm_engine.physics_world import WorldBuilder


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def coarse_builder() -> WorldBuilder:
    """Unit box with 0.05 m cells, which keeps Poisson fills small."""
    return WorldBuilder().with_dx(0.05).with_dt(1e-3).with_seed(11)


@pytest.fixture
def unit_tetra() -> TetrahedronMesh:
    nodes = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.0, 1.0],
        ]
    )
    return TetrahedronMesh(nodes=nodes, elements=np.array([[0, 1, 2, 3]]))


@pytest.fixture
def unit_cube_mesh() -> TetrahedronMesh:
    """Unit cube split into six tetrahedra around the (0,0,0)-(1,1,1) diagonal."""
    nodes = np.array(
        [[x, y, z] for z in (0.0, 1.0) for y in (0.0, 1.0) for x in (0.0, 1.0)]
    )
    # Corner ids: bit 0 = x, bit 1 = y, bit 2 = z
    elements = np.array(
        [
            [0, 1, 3, 7],
            [0, 3, 2, 7],
            [0, 2, 6, 7],
            [0, 6, 4, 7],
            [0, 4, 5, 7],
            [0, 5, 1, 7],
        ]
    )
    return TetrahedronMesh(nodes=nodes, elements=elements)
