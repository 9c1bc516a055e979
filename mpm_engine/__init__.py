"""Core engine package for the Material Point Method simulator."""

from .world_container import WorldContainer, build_world
from .configuration import load_scene_config, SceneConfig
from .errors import MeshFormatError, MPMError, NumericalError
from .logging_config import setup_logging
from .physics_world import World, WorldBuilder

__all__ = [
    "MPMError",
    "MeshFormatError",
    "NumericalError",
    "SceneConfig",
    "World",
    "WorldBuilder",
    "WorldContainer",
    "build_world",
    "load_scene_config",
    "setup_logging",
]
