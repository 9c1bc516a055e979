"""Simulation world: owns the grid, the particle store and the solver."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..mesh_utils import TetrahedronMesh
from .math_utils import Similarity
from .seeding import Cube, Region, Sphere, TetMesh, poisson_samples
from .solvers.mpm import Boundary, Deformation, Grid, MPMSolver, ParticleStore, SolverSettings, Wall
from .state import ParticleSnapshot, WorldSnapshot

logger = logging.getLogger(__name__)

System = Callable[["World"], None]


class World:
    """A grid, its particles and the pipeline that advances them.

    Build one with :class:`WorldBuilder`. Extra systems registered through
    :meth:`WorldBuilder.with_system` run after the solver pipeline on every
    step, in registration order.
    """

    def __init__(
        self,
        grid: Grid,
        settings: SolverSettings,
        particle_density: float = 2.0,
        systems: Sequence[System] = (),
        seed: Optional[int] = None,
    ):
        if particle_density <= 0.0:
            raise ValueError(f"particle density must be positive, got {particle_density}")
        self.grid = grid
        self.particles = ParticleStore()
        self.solver = MPMSolver(grid, self.particles, settings)
        self.particle_density = particle_density
        self.systems: List[System] = list(systems)
        self.rng = np.random.default_rng(seed)

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------
    def step(self) -> None:
        self.solver.step()
        for system in self.systems:
            system(self)

    def set_dt(self, dt: float) -> None:
        self.solver.dt = dt

    @property
    def dt(self) -> float:
        return self.solver.dt

    @property
    def step_count(self) -> int:
        return self.solver.step_count

    @property
    def time(self) -> float:
        return self.solver.time

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def num_particles(self) -> int:
        return len(self.particles)

    def dimension(self) -> Tuple[int, int, int]:
        return self.grid.dims

    def dx(self) -> float:
        return self.grid.h

    def size(self) -> Tuple[float, float, float]:
        return self.grid.size()

    def position(self, handle: int) -> np.ndarray:
        return self.particles.position[handle].copy()

    def velocity(self, handle: int) -> np.ndarray:
        return self.particles.velocity[handle].copy()

    def snapshot(self) -> WorldSnapshot:
        p = self.particles
        return WorldSnapshot(
            step_index=self.step_count,
            time=self.time,
            particles=ParticleSnapshot(
                positions=p.position.copy(),
                velocities=p.velocity.copy(),
                masses=p.mass.copy(),
                volumes=p.volume.copy(),
                hidden=p.hidden.copy(),
            ),
        )

    def hide_random_portion(self, percentage: float) -> None:
        """Mark roughly ``percentage`` of all particles hidden, unhide the rest."""
        self.all_particles().hide_random_portion(percentage)

    def all_particles(self) -> "ParticleBatch":
        return ParticleBatch(self, np.arange(len(self.particles)))

    # ------------------------------------------------------------------
    # Boundaries
    # ------------------------------------------------------------------
    def put_boundary(self, f: Callable[[Tuple[int, int, int]], Optional[Boundary]]) -> None:
        """Set the boundary of every node for which ``f(node_index)`` is not ``None``."""
        count = self.grid.put_boundary(f)
        logger.info("Boundary set on %d of %d nodes", count, self.grid.num_nodes)

    def put_wrapping_boundary(self, thickness: float, f: Callable[[Wall], Boundary]) -> None:
        """Wrap the grid in walls ``thickness`` thick; ``f`` picks each wall's boundary."""
        nx, ny, nz = self.dimension()
        n = int(thickness / self.dx())

        def wall_boundary(index: Tuple[int, int, int]) -> Optional[Boundary]:
            x, y, z = index
            if x < n:
                return f(Wall.LEFT)
            if x > nx - n:
                return f(Wall.RIGHT)
            if y < n:
                return f(Wall.BOTTOM)
            if y > ny - n:
                return f(Wall.UP)
            if z < n:
                return f(Wall.BACK)
            if z > nz - n:
                return f(Wall.FRONT)
            return None

        self.put_boundary(wall_boundary)

    def put_sticky_boundary(self, thickness: float) -> None:
        self.put_wrapping_boundary(thickness, lambda wall: Boundary.sticky())

    def put_sliding_boundary(self, thickness: float) -> None:
        self.put_wrapping_boundary(thickness, lambda wall: Boundary.sliding(wall.normal))

    def put_friction_boundary(self, thickness: float, mu: float) -> None:
        self.put_wrapping_boundary(thickness, lambda wall: Boundary.friction(wall.normal, mu))

    def put_velocity_diminish_boundary(self, thickness: float, factor: float) -> None:
        self.put_wrapping_boundary(thickness, lambda wall: Boundary.velocity_diminish(wall.normal, factor))

    # ------------------------------------------------------------------
    # Particles
    # ------------------------------------------------------------------
    def put_particle(self, position: Sequence[float], mass: float) -> "ParticleBatch":
        """A single point mass at rest, with no volume and no material."""
        handles = self.particles.add(np.asarray(position, dtype=np.float64), mass=mass)
        return ParticleBatch(self, handles)

    def put_region(self, region: Region, transform: Similarity, mass: float) -> "ParticleBatch":
        """Fill ``region`` placed by ``transform`` with Poisson-sampled particles of total ``mass``."""
        radius = self.dx() / self.particle_density
        inverse = transform.inverse()
        bbox = region.bound().transform(transform)

        samples = poisson_samples(bbox, radius, rng=self.rng)
        inside = samples[region.contains_many(inverse.apply(samples))] if len(samples) else samples
        if len(inside) == 0:
            logger.warning("Region %s produced no particles (radius=%g)", type(region).__name__, radius)
            return ParticleBatch(self, np.empty(0, dtype=np.int64))

        handles = self.particles.add(inside, mass=mass / len(inside), volume=radius ** 3)
        logger.info(
            "Placed %d particles for %s, mass %.6g each",
            len(handles), type(region).__name__, mass / len(inside),
        )
        return ParticleBatch(self, handles)

    def put_ball(self, center: Sequence[float], radius: float, mass: float) -> "ParticleBatch":
        return self.put_region(Sphere(radius), Similarity.from_translation(center), mass)

    def put_cube(self, min_corner: Sequence[float], max_corner: Sequence[float], mass: float) -> "ParticleBatch":
        lo = np.asarray(min_corner, dtype=np.float64)
        hi = np.asarray(max_corner, dtype=np.float64)
        return self.put_region(Cube(hi - lo), Similarity.from_translation(0.5 * (lo + hi)), mass)

    def put_tetra_mesh(self, mesh: TetrahedronMesh, transform: Similarity, mass: float) -> "ParticleBatch":
        return self.put_region(TetMesh(mesh), transform, mass)


@dataclass
class ParticleBatch:
    """Handles of a group of particles, with chainable setters."""

    world: World
    handles: np.ndarray

    def __len__(self) -> int:
        return len(self.handles)

    def __iter__(self) -> Iterator[int]:
        return iter(int(h) for h in self.handles)

    def first(self) -> int:
        if len(self.handles) == 0:
            raise IndexError("particle batch is empty")
        return int(self.handles[0])

    def with_velocity(self, velocity: Sequence[float]) -> "ParticleBatch":
        self.world.particles.velocity[self.handles] = np.asarray(velocity, dtype=np.float64)
        return self

    def with_deformation(self, deformation: Optional[Deformation]) -> "ParticleBatch":
        self.world.particles.set_deformation(self.handles, deformation)
        return self

    def with_volume(self, volume: float) -> "ParticleBatch":
        self.world.particles.volume[self.handles] = volume
        return self

    def with_mass(self, mass: float) -> "ParticleBatch":
        self.world.particles.mass[self.handles] = mass
        return self

    def hide_random_portion(self, percentage: float) -> "ParticleBatch":
        draws = self.world.rng.random(len(self.handles))
        self.world.particles.hidden[self.handles] = draws <= percentage
        return self

    def each(self, f: Callable[[int, World], None]) -> "ParticleBatch":
        for handle in self:
            f(handle, self.world)
        return self


@dataclass
class WorldBuilder:
    size: Tuple[float, float, float] = (1.0, 1.0, 1.0)  # meters (m)
    dx: float = 0.02  # meters (m)
    particle_density: float = 2.0  # samples per cell width
    settings: SolverSettings = field(default_factory=SolverSettings)
    systems: List[System] = field(default_factory=list)
    seed: Optional[int] = None

    def with_size(self, size: Sequence[float]) -> "WorldBuilder":
        self.size = tuple(float(s) for s in size)
        return self

    def with_dx(self, dx: float) -> "WorldBuilder":
        self.dx = float(dx)
        return self

    def with_density(self, density: float) -> "WorldBuilder":
        self.particle_density = float(density)
        return self

    def with_dt(self, dt: float) -> "WorldBuilder":
        self.settings = replace(self.settings, dt=float(dt))
        return self

    def with_gravity(self, gravity: Sequence[float]) -> "WorldBuilder":
        self.settings = replace(self.settings, gravity=tuple(gravity))
        return self

    def with_settings(self, settings: SolverSettings) -> "WorldBuilder":
        self.settings = settings
        return self

    def with_system(self, system: System) -> "WorldBuilder":
        self.systems.append(system)
        return self

    def with_seed(self, seed: Optional[int]) -> "WorldBuilder":
        self.seed = seed
        return self

    def build(self) -> World:
        grid = Grid.from_size(self.size, self.dx)
        return World(
            grid=grid,
            settings=replace(self.settings),
            particle_density=self.particle_density,
            systems=self.systems,
            seed=self.seed,
        )
