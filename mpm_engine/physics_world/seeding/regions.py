"""Geometric regions particles can be seeded into.

Regions live in their own local frame; placement into the world goes
through a :class:`~mpm_engine.physics_world.math_utils.Similarity`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from ...mesh_utils import TetrahedronMesh
from ..math_utils import BoundingBox
from .spatial_hash import TetraSpatialHash

logger = logging.getLogger(__name__)

# Each face of a tetrahedron as (three vertex slots, opposite vertex slot)
_FACES = ((0, 1, 2, 3), (1, 2, 3, 0), (2, 3, 0, 1), (3, 0, 1, 2))


class Region(ABC):
    @abstractmethod
    def contains_many(self, points: np.ndarray) -> np.ndarray:
        """Boolean mask of the ``(N, 3)`` local-space points inside the region."""

    @abstractmethod
    def bound(self) -> BoundingBox:
        """Local-space axis-aligned bounding box."""

    def contains(self, point: Sequence[float]) -> bool:
        return bool(self.contains_many(np.asarray(point, dtype=np.float64).reshape(1, 3))[0])


class Cube(Region):
    """Axis-aligned box of ``size`` centred at the origin."""

    def __init__(self, size: Sequence[float]):
        self.size = np.asarray(size, dtype=np.float64).reshape(3)
        if np.any(self.size <= 0.0):
            raise ValueError(f"cube size must be positive, got {tuple(self.size)}")
        self.half_size = 0.5 * self.size

    def contains_many(self, points: np.ndarray) -> np.ndarray:
        return np.all(np.abs(np.asarray(points).reshape(-1, 3)) < self.half_size, axis=1)

    def bound(self) -> BoundingBox:
        return BoundingBox(-self.half_size, self.half_size)


class Sphere(Region):
    def __init__(self, radius: float):
        if radius <= 0.0:
            raise ValueError(f"sphere radius must be positive, got {radius}")
        self.radius = float(radius)

    def contains_many(self, points: np.ndarray) -> np.ndarray:
        return np.linalg.norm(np.asarray(points).reshape(-1, 3), axis=1) < self.radius

    def bound(self) -> BoundingBox:
        r = np.full(3, self.radius)
        return BoundingBox(-r, r)


class TetMesh(Region):
    """Union of the tetrahedra of a volume mesh.

    A point is inside when it lies on the inner side of all four faces of
    at least one tetrahedron; points on a face count as inside. Candidate
    tetrahedra come from a :class:`TetraSpatialHash`.
    """

    def __init__(self, mesh: TetrahedronMesh, cell_size: Optional[float] = None):
        if mesh.num_nodes == 0 or mesh.num_elements == 0:
            raise ValueError("tetrahedron mesh has no nodes or no elements")
        corners = mesh.nodes[mesh.elements]  # (K, 4, 3)

        normals = np.empty((len(corners), 4, 3))
        offsets = np.empty((len(corners), 4))
        for f, (a, b, c, d) in enumerate(_FACES):
            pa, pb, pc, pd = corners[:, a], corners[:, b], corners[:, c], corners[:, d]
            n = np.cross(pb - pa, pc - pa)
            # Orient every face normal towards the opposite vertex
            flip = np.einsum("ij,ij->i", n, pd - pa) < 0.0
            n[flip] *= -1.0
            normals[:, f] = n
            offsets[:, f] = np.einsum("ij,ij->i", n, pa)

        volume6 = np.abs(np.einsum("ij,ij->i", normals[:, 0], corners[:, 3] - corners[:, 0]))
        keep = volume6 > 0.0
        if not keep.all():
            logger.warning("Skipping %d degenerate tetrahedra", int((~keep).sum()))
        self._normals = normals[keep]
        self._offsets = offsets[keep]
        corners = corners[keep]

        lo, hi = mesh.bounds()
        self._bound = BoundingBox(lo, hi)
        extent = float(np.max(hi - lo)) or 1.0
        # Scale-aware tolerance so points on shared faces are not lost
        self._tolerance = 1e-9 * extent * np.linalg.norm(self._normals, axis=2)
        self._hash = TetraSpatialHash(corners.min(axis=1), corners.max(axis=1), cell_size)
        logger.debug("TetMesh hash: %s", self._hash.get_stats())

    @property
    def num_tetrahedra(self) -> int:
        return len(self._normals)

    def _inside(self, points: np.ndarray, candidates: np.ndarray) -> np.ndarray:
        signed = np.einsum("cfk,pk->pcf", self._normals[candidates], points) - self._offsets[candidates]
        return np.all(signed >= -self._tolerance[candidates], axis=2).any(axis=1)

    def contains_many(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        result = np.zeros(len(points), dtype=bool)
        if len(points) == 0:
            return result
        cells, inverse = np.unique(self._hash.points_to_cells(points), axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)
        for cell_id, cell in enumerate(cells):
            candidates = self._hash.query_cell((int(cell[0]), int(cell[1]), int(cell[2])))
            if not candidates:
                continue
            members = np.flatnonzero(inverse == cell_id)
            result[members] = self._inside(points[members], np.asarray(candidates))
        return result

    def bound(self) -> BoundingBox:
        return self._bound
