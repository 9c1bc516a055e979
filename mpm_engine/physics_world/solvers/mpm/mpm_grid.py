"""
MPM grid - background Eulerian lattice for momentum transfer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Sequence, Tuple

import numpy as np

from .mpm_boundary import Boundary, BoundaryKind, enforce_boundaries
from .mpm_kernels import STENCIL_SIZE, Stencil

logger = logging.getLogger(__name__)

NodeIndex = Tuple[int, int, int]


@dataclass
class GridNode:
    """Read-only view of one node, for inspection and tests."""

    index: NodeIndex
    mass: float
    velocity: np.ndarray
    velocity_temp: np.ndarray
    momentum: np.ndarray
    force: np.ndarray
    boundary: Boundary


@dataclass
class Grid:
    """Regular lattice of ``dims[0] * dims[1] * dims[2]`` nodes spaced ``h`` apart.

    Transient per-step state (mass, momentum, velocities, force) is stored in
    flat arrays indexed by ``x + nx * (y + ny * z)``. The boundary arrays are
    persistent and only change through :meth:`set_boundary`.
    """

    dims: Tuple[int, int, int]
    h: float
    mass: np.ndarray = field(init=False, repr=False)
    momentum: np.ndarray = field(init=False, repr=False)
    velocity: np.ndarray = field(init=False, repr=False)
    velocity_temp: np.ndarray = field(init=False, repr=False)
    force: np.ndarray = field(init=False, repr=False)
    boundary_kind: np.ndarray = field(init=False, repr=False)
    boundary_normal: np.ndarray = field(init=False, repr=False)
    boundary_param: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.h <= 0.0:
            raise ValueError(f"grid spacing must be positive, got {self.h}")
        self.dims = tuple(int(d) for d in self.dims)
        if any(d <= 0 for d in self.dims):
            raise ValueError(f"grid dimensions must be positive, got {self.dims}")
        n = self.num_nodes
        self.mass = np.zeros(n)
        self.momentum = np.zeros((n, 3))
        self.velocity = np.zeros((n, 3))
        self.velocity_temp = np.zeros((n, 3))
        self.force = np.zeros((n, 3))
        self.boundary_kind = np.zeros(n, dtype=np.int8)
        self.boundary_normal = np.zeros((n, 3))
        self.boundary_param = np.zeros(n)

    @classmethod
    def from_size(cls, size: Sequence[float], h: float) -> "Grid":
        """Allocate a grid covering ``size`` with ``floor(size / h)`` nodes per axis."""
        if h <= 0.0:
            raise ValueError(f"grid spacing must be positive, got {h}")
        dims = tuple(int(s / h) for s in size)
        grid = cls(dims=dims, h=h)
        logger.info("Allocated grid %s (%d nodes), dx=%g", grid.dims, grid.num_nodes, h)
        return grid

    @property
    def num_nodes(self) -> int:
        return self.dims[0] * self.dims[1] * self.dims[2]

    def size(self) -> Tuple[float, float, float]:
        return tuple(d * self.h for d in self.dims)

    def raw_index(self, index: Sequence[int]) -> int:
        x, y, z = index
        return x + self.dims[0] * (y + self.dims[1] * z)

    def node_index(self, raw: int) -> NodeIndex:
        nx, ny = self.dims[0], self.dims[1]
        return raw % nx, (raw // nx) % ny, raw // (nx * ny)

    def contains_index(self, index: Sequence[int]) -> bool:
        return all(0 <= i < d for i, d in zip(index, self.dims))

    def indices(self) -> Iterator[NodeIndex]:
        """All node indices, x fastest."""
        nx, ny, nz = self.dims
        for z in range(nz):
            for y in range(ny):
                for x in range(nx):
                    yield x, y, z

    def node_position(self, index: Sequence[int]) -> np.ndarray:
        return np.asarray(index, dtype=np.float64) * self.h

    def node(self, index: Sequence[int]) -> GridNode:
        raw = self.raw_index(index)
        return GridNode(
            index=tuple(index),
            mass=float(self.mass[raw]),
            velocity=self.velocity[raw].copy(),
            velocity_temp=self.velocity_temp[raw].copy(),
            momentum=self.momentum[raw].copy(),
            force=self.force[raw].copy(),
            boundary=self.boundary_at(index),
        )

    def neighbor_weights(self, position: Sequence[float]) -> Iterator[Tuple[NodeIndex, float, np.ndarray]]:
        """Yield ``(node_index, weight, grad_weight)`` for the in-grid stencil of one point."""
        stencil = Stencil.compute(np.asarray([position], dtype=np.float64), self.h, self.dims)
        for slot in range(STENCIL_SIZE):
            raw = stencil.indices[0, slot]
            if raw < 0:
                continue
            yield self.node_index(int(raw)), float(stencil.weights[0, slot]), stencil.gradients[0, slot].copy()

    # ------------------------------------------------------------------
    # Boundaries
    # ------------------------------------------------------------------
    def set_boundary(self, index: Sequence[int], boundary: Boundary) -> None:
        raw = self.raw_index(index)
        self.boundary_kind[raw] = int(boundary.kind)
        self.boundary_normal[raw] = boundary.normal
        self.boundary_param[raw] = boundary.param

    def boundary_at(self, index: Sequence[int]) -> Boundary:
        raw = self.raw_index(index)
        kind = BoundaryKind(int(self.boundary_kind[raw]))
        normal = tuple(float(c) for c in self.boundary_normal[raw])
        param = float(self.boundary_param[raw])
        if kind == BoundaryKind.FRICTION:
            return Boundary(kind=kind, normal=normal, mu=param)
        if kind == BoundaryKind.VELOCITY_DIMINISH:
            return Boundary(kind=kind, normal=normal, factor=param)
        return Boundary(kind=kind, normal=normal if kind == BoundaryKind.SLIDING else (0.0, 0.0, 0.0))

    def put_boundary(self, f: Callable[[NodeIndex], Optional[Boundary]]) -> int:
        """Ask ``f`` for every node; nodes for which it returns ``None`` are left untouched."""
        count = 0
        for index in self.indices():
            boundary = f(index)
            if boundary is not None:
                self.set_boundary(index, boundary)
                count += 1
        return count

    # ------------------------------------------------------------------
    # Per-step updates
    # ------------------------------------------------------------------
    def clear(self) -> None:
        self.mass.fill(0.0)
        self.momentum.fill(0.0)
        self.velocity.fill(0.0)
        self.velocity_temp.fill(0.0)
        self.force.fill(0.0)

    def momentum_to_velocity(self) -> None:
        self.velocity.fill(0.0)
        active = self.mass != 0.0
        self.velocity[active] = self.momentum[active] / self.mass[active, None]
        self.velocity_temp[:] = self.velocity

    def add_gravity(self, gravity: Sequence[float]) -> None:
        self.force += self.mass[:, None] * np.asarray(gravity, dtype=np.float64)

    def force_to_velocity(self, dt: float) -> None:
        active = self.mass != 0.0
        self.velocity[active] += self.force[active] / self.mass[active, None] * dt

    def enforce_boundaries(self) -> None:
        enforce_boundaries(self.boundary_kind, self.boundary_normal, self.boundary_param, self.velocity)
