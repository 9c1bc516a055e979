"""High-level orchestration layer around the simulation world and exporter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .configuration import BodyConfig, BoundaryConfig, SceneConfig, load_scene_config
from .exporter import PolyDumpSystem
from .mesh_utils import load_msh
from .physics_world.math_utils import Similarity
from .physics_world.solvers.mpm import Deformation, SolverSettings
from .physics_world.world import ParticleBatch, World, WorldBuilder

logger = logging.getLogger(__name__)


def _apply_boundary(world: World, config: BoundaryConfig) -> None:
    if config.kind == "none":
        return
    if config.kind == "sticky":
        world.put_sticky_boundary(config.thickness)
    elif config.kind == "sliding":
        world.put_sliding_boundary(config.thickness)
    elif config.kind == "friction":
        world.put_friction_boundary(config.thickness, config.mu)
    elif config.kind == "velocity_diminish":
        world.put_velocity_diminish_boundary(config.thickness, config.factor)


def _deformation(body: BodyConfig) -> Optional[Deformation]:
    material = body.material
    if material.kind == "snow":
        return Deformation.snow()
    if material.kind == "elastic":
        return Deformation.elastic(material.youngs_modulus, material.poisson_ratio)
    return None


def _place_body(world: World, body: BodyConfig) -> ParticleBatch:
    if body.shape == "ball":
        batch = world.put_ball(body.center, body.radius, body.mass)
    elif body.shape == "cube":
        batch = world.put_cube(body.min_corner, body.max_corner, body.mass)
    else:
        mesh = load_msh(body.mesh_path)
        transform = Similarity.from_quaternion(tuple(body.rotation), body.translation, body.scale)
        batch = world.put_tetra_mesh(mesh, transform, body.mass)

    batch.with_velocity(body.velocity).with_deformation(_deformation(body))
    if body.hidden_portion > 0.0:
        batch.hide_random_portion(body.hidden_portion)
    logger.info("Body %s: %d particles (%s, material=%s)", body.name, len(batch), body.shape, body.material.kind)
    return batch


def build_world(config: SceneConfig, dump: bool = True) -> World:
    """Create the world described by ``config``, including boundary, bodies and the dump system."""
    sim = config.simulation
    settings = SolverSettings(
        dt=sim.time_step,
        gravity=tuple(sim.gravity),
        pic_ratio=sim.pic_ratio,
        apply_hardening=sim.apply_hardening,
        debug_interval=sim.debug_interval,
    )
    builder = (
        WorldBuilder()
        .with_size(config.grid.size)
        .with_dx(config.grid.dx)
        .with_density(config.grid.particle_density)
        .with_settings(settings)
        .with_seed(sim.seed)
    )
    if dump and config.export is not None:
        builder.with_system(PolyDumpSystem.from_config(config.export))

    world = builder.build()
    _apply_boundary(world, config.boundary)
    for body in config.bodies:
        _place_body(world, body)
    logger.info("Scene %s ready: %d particles", config.scene_name, world.num_particles())
    return world


@dataclass
class WorldContainer:
    """Bundles scene configuration and the simulation world."""

    config: SceneConfig
    world: World

    @classmethod
    def from_config(cls, config: SceneConfig, dump: bool = True) -> "WorldContainer":
        return cls(config=config, world=build_world(config, dump=dump))

    @classmethod
    def from_config_file(cls, config_path: str | Path, dump: bool = True) -> "WorldContainer":
        return cls.from_config(load_scene_config(config_path), dump=dump)

    @property
    def current_step(self) -> int:
        return self.world.step_count

    def step(self, dt: float | None = None) -> None:
        """Advance the world by a single step, optionally with a new time step."""
        if dt is not None:
            self.world.set_dt(dt)
        self.world.step()

    def run(self, steps: Optional[int] = None) -> None:
        """Execute multiple simulation steps."""
        total_steps = steps if steps is not None else self.config.simulation.total_steps
        for _ in range(total_steps):
            self.step()
