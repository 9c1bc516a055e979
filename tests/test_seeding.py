"""Geometry, sampling and region containment tests."""

from __future__ import annotations

from math import pi

import numpy as np
import pytest
from scipy.spatial.distance import pdist

from mpm_engine.physics_world import BoundingBox, Similarity
from mpm_engine.physics_world.seeding import Cube, Sphere, TetMesh, TetraSpatialHash, poisson_samples


def test_bounding_box_translation():
    box = BoundingBox((0.0, 0.0, 0.0), (1.0, 1.0, 1.0)).transform(Similarity.from_translation((3.0, 3.0, 3.0)))
    np.testing.assert_allclose(box.min, (3.0, 3.0, 3.0))
    np.testing.assert_allclose(box.max, (4.0, 4.0, 4.0))


def test_bounding_box_rotation():
    transform = Similarity.from_axis_angle((0.0, 1.0, 0.0), pi / 2, translation=(3.0, 3.0, 3.0))
    box = BoundingBox((0.0, 0.0, 0.0), (1.0, 1.0, 1.0)).transform(transform)
    np.testing.assert_allclose(box.min, (3.0, 3.0, 2.0), atol=1e-12)
    np.testing.assert_allclose(box.max, (4.0, 4.0, 3.0), atol=1e-12)


def test_bounding_box_queries():
    box = BoundingBox.from_points([[0.0, 1.0, 2.0], [2.0, -1.0, 4.0]])
    np.testing.assert_allclose(box.size(), (2.0, 2.0, 2.0))
    np.testing.assert_allclose(box.center(), (1.0, 0.0, 3.0))
    assert box.contains((1.0, 0.0, 3.0))
    assert not box.contains((1.0, 0.0, 5.0))
    assert len(box.corners()) == 8
    with pytest.raises(ValueError):
        BoundingBox.from_points(np.empty((0, 3)))


def test_similarity_inverse_and_compose(rng):
    transform = Similarity.from_axis_angle((1.0, 2.0, 0.5), 0.7, translation=(0.1, -0.3, 2.0), scale=1.7)
    points = rng.normal(size=(10, 3))
    np.testing.assert_allclose(transform.inverse().apply(transform.apply(points)), points, atol=1e-12)

    shift = Similarity.from_translation((1.0, 0.0, 0.0))
    np.testing.assert_allclose(
        shift.compose(transform).apply(points), shift.apply(transform.apply(points)), atol=1e-12
    )
    with pytest.raises(ValueError):
        Similarity(scale=0.0)


def test_cube_and_sphere_are_strict():
    cube = Cube((1.0, 2.0, 1.0))
    assert cube.contains((0.49, 0.99, -0.49))
    assert not cube.contains((0.5, 0.0, 0.0))
    sphere = Sphere(0.5)
    assert sphere.contains((0.0, 0.49, 0.0))
    assert not sphere.contains((0.0, 0.5, 0.0))
    np.testing.assert_allclose(sphere.bound().min, (-0.5, -0.5, -0.5))


def test_unit_tetra_containment(unit_tetra, rng):
    region = TetMesh(unit_tetra)
    points = rng.uniform(-0.2, 1.2, size=(2000, 3))
    expected = np.all(points >= 0.0, axis=1) & (points.sum(axis=1) <= 1.0)
    np.testing.assert_array_equal(region.contains_many(points), expected)


def test_tetra_faces_count_as_inside(unit_tetra):
    region = TetMesh(unit_tetra)
    assert region.contains((0.2, 0.2, 0.0))
    assert region.contains((0.0, 0.0, 0.0))
    assert region.contains((1.0 / 3, 1.0 / 3, 1.0 / 3))
    assert not region.contains((0.5, 0.5, 0.1))


def test_cube_mesh_containment(unit_cube_mesh, rng):
    region = TetMesh(unit_cube_mesh, cell_size=0.3)
    assert region.num_tetrahedra == 6
    points = rng.uniform(-0.5, 1.5, size=(3000, 3))
    expected = np.all((points >= 0.0) & (points <= 1.0), axis=1)
    np.testing.assert_array_equal(region.contains_many(points), expected)
    np.testing.assert_allclose(region.bound().max, (1.0, 1.0, 1.0))


def test_degenerate_tetrahedra_are_skipped(unit_tetra):
    flat = type(unit_tetra)(
        nodes=np.vstack([unit_tetra.nodes, [[1.0, 1.0, 0.0]]]),
        elements=np.array([[0, 1, 2, 3], [0, 1, 2, 4]]),
    )
    assert TetMesh(flat).num_tetrahedra == 1


def test_spatial_hash_queries():
    spatial_hash = TetraSpatialHash(np.array([[0.0, 0.0, 0.0], [2.0, 2.0, 2.0]]), np.array([[1.5, 0.5, 0.5], [2.5, 2.5, 2.5]]), 1.0)
    assert spatial_hash.query_point(np.array([1.2, 0.2, 0.2])) == [0]
    assert spatial_hash.query_point(np.array([2.2, 2.2, 2.2])) == [1]
    assert spatial_hash.query_point(np.array([5.0, 5.0, 5.0])) == []
    stats = spatial_hash.get_stats()
    assert stats["total_cells"] == 3
    assert stats["max_tetras_per_cell"] == 1


def test_poisson_samples_keep_their_distance():
    box = BoundingBox((0.2, 0.1, 0.3), (0.5, 0.4, 0.4))
    samples = poisson_samples(box, 0.03, rng=5)
    assert len(samples) > 10
    assert np.all(samples >= box.min) and np.all(samples <= box.max)
    assert pdist(samples).min() >= 0.03 * (1.0 - 1e-9)


def test_poisson_samples_validation():
    with pytest.raises(ValueError):
        poisson_samples(BoundingBox((0.0, 0.0, 0.0), (1.0, 1.0, 1.0)), 0.0)
    empty = poisson_samples(BoundingBox((1.0, 1.0, 1.0), (1.0, 1.0, 1.0)), 0.1)
    assert empty.shape == (0, 3)
