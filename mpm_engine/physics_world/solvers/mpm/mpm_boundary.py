"""
MPM boundary handling - per-node boundary classification and its projections.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]


class BoundaryKind(IntEnum):
    NONE = 0
    STICKY = 1
    SLIDING = 2
    VELOCITY_DIMINISH = 3
    FRICTION = 4


# Kinds whose velocity loses its normal component during enforcement
_PROJECTING = (BoundaryKind.SLIDING, BoundaryKind.VELOCITY_DIMINISH, BoundaryKind.FRICTION)


def _unit(normal: Sequence[float]) -> Vec3:
    n = np.asarray(normal, dtype=np.float64)
    norm = float(np.linalg.norm(n))
    if norm <= 1e-12:
        raise ValueError(f"boundary normal must be non-zero, got {tuple(normal)}")
    n = n / norm
    return float(n[0]), float(n[1]), float(n[2])


@dataclass(frozen=True)
class Boundary:
    """Boundary condition of one grid node.

    ``normal`` points into the simulation domain. ``mu`` is only used by
    friction nodes and ``factor`` only by velocity-diminishing nodes.
    """

    kind: BoundaryKind = BoundaryKind.NONE
    normal: Vec3 = (0.0, 0.0, 0.0)
    mu: float = 0.0
    factor: float = 1.0

    @classmethod
    def none(cls) -> "Boundary":
        return cls()

    @classmethod
    def sticky(cls) -> "Boundary":
        return cls(kind=BoundaryKind.STICKY)

    @classmethod
    def sliding(cls, normal: Sequence[float]) -> "Boundary":
        return cls(kind=BoundaryKind.SLIDING, normal=_unit(normal))

    @classmethod
    def velocity_diminish(cls, normal: Sequence[float], factor: float) -> "Boundary":
        return cls(kind=BoundaryKind.VELOCITY_DIMINISH, normal=_unit(normal), factor=float(factor))

    @classmethod
    def friction(cls, normal: Sequence[float], mu: float) -> "Boundary":
        if mu < 0.0:
            raise ValueError(f"friction coefficient must be non-negative, got {mu}")
        return cls(kind=BoundaryKind.FRICTION, normal=_unit(normal), mu=float(mu))

    @property
    def param(self) -> float:
        """Scalar parameter stored on the grid next to the normal."""
        if self.kind == BoundaryKind.FRICTION:
            return self.mu
        if self.kind == BoundaryKind.VELOCITY_DIMINISH:
            return self.factor
        return 0.0


class Wall(Enum):
    """Faces of the grid box, used by wrapping boundaries."""

    LEFT = (1.0, 0.0, 0.0)
    RIGHT = (-1.0, 0.0, 0.0)
    BOTTOM = (0.0, 1.0, 0.0)
    UP = (0.0, -1.0, 0.0)
    BACK = (0.0, 0.0, 1.0)
    FRONT = (0.0, 0.0, -1.0)

    @property
    def normal(self) -> Vec3:
        return self.value


def apply_boundary(velocity: Sequence[float], boundary: Boundary) -> np.ndarray:
    """Return ``velocity`` after enforcing ``boundary`` on a single node."""
    v = np.array(velocity, dtype=np.float64)
    if boundary.kind == BoundaryKind.NONE:
        return v
    if boundary.kind == BoundaryKind.STICKY:
        return np.zeros(3)
    n = np.asarray(boundary.normal)
    v -= np.dot(v, n) * n
    if boundary.kind == BoundaryKind.VELOCITY_DIMINISH:
        v *= boundary.factor
    return v


def enforce_boundaries(
    kind: np.ndarray,
    normal: np.ndarray,
    param: np.ndarray,
    velocity: np.ndarray,
) -> None:
    """Vectorised :func:`apply_boundary` over every node, in place."""
    velocity[kind == BoundaryKind.STICKY] = 0.0

    projecting = np.flatnonzero(np.isin(kind, _PROJECTING))
    if projecting.size:
        n = normal[projecting]
        v = velocity[projecting]
        vn = np.einsum("ij,ij->i", v, n)
        velocity[projecting] = v - vn[:, None] * n

    diminish = kind == BoundaryKind.VELOCITY_DIMINISH
    velocity[diminish] *= param[diminish, None]


def apply_friction_forces(
    kind: np.ndarray,
    normal: np.ndarray,
    mu: np.ndarray,
    mass: np.ndarray,
    velocity: np.ndarray,
    force: np.ndarray,
    dt: float,
    epsilon: float = 1e-6,
) -> int:
    """Add Coulomb friction to ``force`` on friction nodes.

    The magnitude is ``min(mu * max(-n.f, 0), m |v_t| / dt)`` and the force
    opposes the tangential velocity. Nodes slower than ``epsilon`` are left
    alone. Returns the number of nodes that received a friction force.
    """
    nodes = np.flatnonzero(kind == BoundaryKind.FRICTION)
    if nodes.size == 0:
        return 0

    n = normal[nodes]
    v = velocity[nodes]
    f = force[nodes]
    tangential = v - np.einsum("ij,ij->i", v, n)[:, None] * n
    speed = np.linalg.norm(tangential, axis=1)

    moving = speed > epsilon
    if not moving.any():
        return 0
    nodes, n, f, tangential, speed = nodes[moving], n[moving], f[moving], tangential[moving], speed[moving]

    pressing = np.maximum(-np.einsum("ij,ij->i", f, n), 0.0)
    magnitude = np.minimum(mu[nodes] * pressing, mass[nodes] * speed / dt)
    force[nodes] -= (magnitude / speed)[:, None] * tangential
    return int(nodes.size)
