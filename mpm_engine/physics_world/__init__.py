"""Physics world package: grid, particles, seeding and the MPM solver."""

from .math_utils import BoundingBox, Similarity
from .state import ParticleSnapshot, StepStatistics, WorldSnapshot
from .world import ParticleBatch, World, WorldBuilder

__all__ = [
    "BoundingBox",
    "ParticleBatch",
    "ParticleSnapshot",
    "Similarity",
    "StepStatistics",
    "World",
    "WorldBuilder",
    "WorldSnapshot",
]
