"""Dataclasses describing the evolving simulation state."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class ParticleSnapshot:
    positions: np.ndarray  # meters (m), shape (N, 3)
    velocities: np.ndarray  # meters per second (m/s), shape (N, 3)
    masses: np.ndarray  # kilograms (kg)
    volumes: np.ndarray  # cubic meters (m^3)
    hidden: np.ndarray  # bool mask, excluded from dumps

    def particle_count(self) -> int:
        return len(self.positions)

    def visible_positions(self) -> np.ndarray:
        return self.positions[~self.hidden]


@dataclass
class StepStatistics:
    step_index: int
    time: float  # seconds (s)
    particle_count: int
    total_mass: float  # kilograms (kg)
    min_j: float  # det(F_elastic)
    avg_j: float
    max_j: float
    min_speed: float  # meters per second (m/s)
    avg_speed: float
    max_speed: float


@dataclass
class WorldSnapshot:
    step_index: int
    time: float
    particles: ParticleSnapshot
