"""Particle seeding: regions, Poisson-disk sampling and the tetrahedron hash."""

from .poisson import poisson_samples
from .regions import Cube, Region, Sphere, TetMesh
from .spatial_hash import TetraSpatialHash

__all__ = ["Cube", "Region", "Sphere", "TetMesh", "TetraSpatialHash", "poisson_samples"]
