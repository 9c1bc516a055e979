"""
MPM solver - main Material Point Method simulation engine.

One call to :meth:`MPMSolver.step` runs every stage of the transfer and
update pipeline once, in dependency order::

    clean_grid -> p2g -> grid_m2v -> apply_gravity -> apply_elasticity
        -> apply_friction -> grid_f2v -> grid_set_boundary
        -> evolve_deformation -> g2p

``step_counter`` has no dependencies. Each stage finishes before the next
one starts.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ....errors import NumericalError
from ...state import StepStatistics
from .mpm_boundary import apply_friction_forces
from .mpm_grid import Grid
from .mpm_kernels import Stencil, scatter_mass_momentum, scatter_stress_force
from .mpm_materials import fixed_corotated_stress, hardening_scale, plastic_split
from .mpm_state import ParticleStore

logger = logging.getLogger(__name__)


@dataclass
class SolverSettings:
    dt: float = 1e-3  # seconds (s)
    gravity: Tuple[float, float, float] = (0.0, -9.8, 0.0)  # meters per second squared (m/s^2)
    pic_ratio: float = 0.05  # share of PIC velocity in the PIC/FLIP blend
    apply_hardening: bool = False  # scale mu/lambda by exp(hardening * (1 - J_plastic))
    friction_epsilon: float = 1e-6  # tangential speeds below this get no friction
    debug_interval: int = 100  # steps between debug statistics, 0 disables

    def __post_init__(self) -> None:
        if self.dt <= 0.0:
            raise ValueError(f"time step must be positive, got {self.dt}")
        if not 0.0 <= self.pic_ratio <= 1.0:
            raise ValueError(f"pic_ratio must lie in [0, 1], got {self.pic_ratio}")
        self.gravity = tuple(float(g) for g in self.gravity)


class StageGraph:
    """Named stages with declared predecessors, run in a topological order.

    Dependencies must name stages that are already registered. Ties are
    broken by registration order, so the schedule is deterministic.
    """

    def __init__(self) -> None:
        self._stages: "OrderedDict[str, Tuple[Callable[[], None], Tuple[str, ...]]]" = OrderedDict()
        self._order: Optional[List[str]] = None

    def add(self, name: str, stage: Callable[[], None], after: Iterable[str] = ()) -> None:
        if name in self._stages:
            raise ValueError(f"stage {name!r} is already registered")
        after = tuple(after)
        for dependency in after:
            if dependency not in self._stages:
                raise ValueError(f"stage {name!r} depends on unknown stage {dependency!r}")
        self._stages[name] = (stage, after)
        self._order = None

    def dependencies(self, name: str) -> Tuple[str, ...]:
        return self._stages[name][1]

    def __contains__(self, name: str) -> bool:
        return name in self._stages

    def order(self) -> List[str]:
        if self._order is not None:
            return list(self._order)
        remaining: Dict[str, set] = {name: set(after) for name, (_, after) in self._stages.items()}
        order: List[str] = []
        while remaining:
            ready = [name for name, deps in remaining.items() if not deps]
            if not ready:
                raise ValueError(f"cyclic stage dependencies among {sorted(remaining)}")
            name = ready[0]
            order.append(name)
            del remaining[name]
            for deps in remaining.values():
                deps.discard(name)
        self._order = order
        return list(order)

    def run(self) -> None:
        for name in self.order():
            self._stages[name][0]()


def _require_positive(values: np.ndarray, what: str, stage: str, handles: np.ndarray) -> None:
    bad = ~(values > 0.0)
    if bad.any():
        raise NumericalError(
            f"{what} must stay positive; violated by particles {handles[bad][:10].tolist()} "
            f"(min {float(np.min(values)):.6g})",
            stage=stage,
        )


class MPMSolver:
    """Explicit MPM time integrator over a :class:`Grid` and a :class:`ParticleStore`."""

    def __init__(self, grid: Grid, particles: ParticleStore, settings: Optional[SolverSettings] = None):
        self.grid = grid
        self.particles = particles
        self.settings = settings or SolverSettings()
        self.step_count = 0
        self.time = 0.0
        self._stencil: Optional[Stencil] = None

        self.stages = StageGraph()
        self.stages.add("step_counter", self.step_counter)
        self.stages.add("clean_grid", self.clean_grid)
        self.stages.add("p2g", self.particle_to_grid, after=["clean_grid"])
        self.stages.add("grid_m2v", self.grid_momentum_to_velocity, after=["p2g"])
        self.stages.add("apply_gravity", self.apply_gravity, after=["grid_m2v"])
        self.stages.add("apply_elasticity", self.apply_elasticity, after=["apply_gravity"])
        self.stages.add("apply_friction", self.apply_friction, after=["apply_elasticity"])
        self.stages.add("grid_f2v", self.grid_force_to_velocity, after=["apply_elasticity", "apply_friction"])
        self.stages.add("grid_set_boundary", self.grid_set_boundary, after=["grid_f2v"])
        self.stages.add("evolve_deformation", self.evolve_deformation, after=["grid_set_boundary"])
        self.stages.add("g2p", self.grid_to_particle, after=["grid_set_boundary", "evolve_deformation"])

        logger.info(
            "MPM solver ready: grid=%s dx=%g dt=%g gravity=%s pic_ratio=%g hardening=%s",
            grid.dims, grid.h, self.settings.dt, self.settings.gravity,
            self.settings.pic_ratio, self.settings.apply_hardening,
        )

    @property
    def dt(self) -> float:
        return self.settings.dt

    @dt.setter
    def dt(self, value: float) -> None:
        if value <= 0.0:
            raise ValueError(f"time step must be positive, got {value}")
        self.settings.dt = float(value)

    def step(self) -> None:
        """Advance the simulation by one time step."""
        self.stages.run()
        self.time += self.settings.dt
        interval = self.settings.debug_interval
        if interval and self.step_count % interval == 0 and logger.isEnabledFor(logging.DEBUG):
            stats = self.statistics()
            logger.debug(
                "step %d: particles=%d mass=%.6g J=[%.4f, %.4f, %.4f] |v|=[%.4f, %.4f, %.4f]",
                stats.step_index, stats.particle_count, stats.total_mass,
                stats.min_j, stats.avg_j, stats.max_j,
                stats.min_speed, stats.avg_speed, stats.max_speed,
            )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def step_counter(self) -> None:
        self.step_count += 1

    def clean_grid(self) -> None:
        self.grid.clear()

    def particle_to_grid(self) -> None:
        particles = self.particles
        self._stencil = Stencil.compute(particles.position, self.grid.h, self.grid.dims)
        if len(particles):
            scatter_mass_momentum(
                self._stencil.indices,
                self._stencil.weights,
                particles.mass,
                particles.velocity,
                self.grid.mass,
                self.grid.momentum,
            )

    def grid_momentum_to_velocity(self) -> None:
        self.grid.momentum_to_velocity()

    def apply_gravity(self) -> None:
        self.grid.add_gravity(self.settings.gravity)

    def _trial_elastic_gradient(self, handles: np.ndarray, stage: str) -> Tuple[Stencil, np.ndarray]:
        stencil = self._stencil.subset(handles)
        grad_v = stencil.velocity_gradient(self.grid.velocity)
        F_hat = (np.eye(3) + self.settings.dt * grad_v) @ self.particles.f_elastic[handles]
        _require_positive(np.linalg.det(F_hat), "det(F_hat)", stage, handles)
        return stencil, F_hat

    def apply_elasticity(self) -> None:
        particles = self.particles
        handles = particles.deformed()
        if handles.size == 0:
            return
        stencil, F_hat = self._trial_elastic_gradient(handles, "apply_elasticity")

        mu = particles.mu0[handles]
        lam = particles.lambda0[handles]
        if self.settings.apply_hardening:
            plastic = particles.plastic[handles]
            scale = np.ones(handles.size)
            scale[plastic] = hardening_scale(
                particles.f_plastic[handles[plastic]], particles.hardening[handles[plastic]]
            )
            mu = mu * scale
            lam = lam * scale

        P = fixed_corotated_stress(F_hat, mu, lam, stage="apply_elasticity")
        F_elastic_t = np.swapaxes(particles.f_elastic[handles], 1, 2)
        stress = particles.volume[handles][:, None, None] * (P @ F_elastic_t)
        scatter_stress_force(stencil.indices, stencil.gradients, np.ascontiguousarray(stress), self.grid.force)

    def apply_friction(self) -> None:
        grid = self.grid
        apply_friction_forces(
            grid.boundary_kind,
            grid.boundary_normal,
            grid.boundary_param,
            grid.mass,
            grid.velocity_temp,
            grid.force,
            self.settings.dt,
            self.settings.friction_epsilon,
        )

    def grid_force_to_velocity(self) -> None:
        self.grid.force_to_velocity(self.settings.dt)

    def grid_set_boundary(self) -> None:
        self.grid.enforce_boundaries()

    def evolve_deformation(self) -> None:
        particles = self.particles
        handles = particles.deformed()
        if handles.size == 0:
            return
        _, F_hat = self._trial_elastic_gradient(handles, "evolve_deformation")

        F_elastic = F_hat.copy()
        plastic = particles.plastic[handles]
        if plastic.any():
            rows = handles[plastic]
            F_elastic[plastic], F_plastic = plastic_split(
                F_hat[plastic],
                particles.f_plastic[rows],
                particles.theta_c[rows],
                particles.theta_s[rows],
                stage="evolve_deformation",
            )
            _require_positive(np.linalg.det(F_plastic), "det(F_plastic)", "evolve_deformation", rows)
            particles.f_plastic[rows] = F_plastic
        _require_positive(np.linalg.det(F_elastic), "det(F_elastic)", "evolve_deformation", handles)
        particles.f_elastic[handles] = F_elastic

    def grid_to_particle(self) -> None:
        particles = self.particles
        if len(particles) == 0:
            return
        grid = self.grid
        stencil = self._stencil
        alpha = self.settings.pic_ratio

        v_pic = stencil.gather(grid.velocity)
        v_flip = particles.velocity + stencil.gather(grid.velocity - grid.velocity_temp)
        velocity = alpha * v_pic + (1.0 - alpha) * v_flip
        position = particles.position + v_pic * self.settings.dt

        bad = ~(np.isfinite(velocity).all(axis=1) & np.isfinite(position).all(axis=1))
        if bad.any():
            raise NumericalError(
                f"non-finite particle state for particles {np.flatnonzero(bad)[:10].tolist()}",
                stage="g2p",
            )
        particles.velocity[:] = velocity
        particles.position[:] = position

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def statistics(self) -> StepStatistics:
        particles = self.particles
        speed = np.linalg.norm(particles.velocity, axis=1)
        handles = particles.deformed()
        J = np.linalg.det(particles.f_elastic[handles]) if handles.size else np.ones(1)
        if speed.size == 0:
            speed = np.zeros(1)
        return StepStatistics(
            step_index=self.step_count,
            time=self.time,
            particle_count=len(particles),
            total_mass=particles.total_mass(),
            min_j=float(J.min()),
            avg_j=float(J.mean()),
            max_j=float(J.max()),
            min_speed=float(speed.min()),
            avg_speed=float(speed.mean()),
            max_speed=float(speed.max()),
        )

    def weight_sums(self, positions: Sequence[Sequence[float]]) -> np.ndarray:
        """Sum of in-grid interpolation weights at each position."""
        stencil = Stencil.compute(np.asarray(positions, dtype=np.float64), self.grid.h, self.grid.dims)
        return stencil.weight_sums()
