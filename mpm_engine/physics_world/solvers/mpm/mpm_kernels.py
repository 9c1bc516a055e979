"""
MPM numba kernels - interpolation stencil, scatter and gather.

Every particle touches the 3x3x3 block of grid nodes around
``base = floor(pos / h - 0.5)``. Slots are ordered with x fastest, then y,
then z. Slots that fall outside the grid carry index -1 and zero weight.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numba as nb
import numpy as np

from ....errors import NumericalError

STENCIL_SIZE = 27


@nb.njit(inline="always")
def _weights_1d(x: float, w: np.ndarray, dw: np.ndarray) -> int:
    """Quadratic B-spline weights and derivatives along one axis.

    ``x`` is the coordinate already divided by the cell spacing. Returns the
    base node index.
    """
    base = int(np.floor(x - 0.5))
    d0 = x - base
    w[0] = 0.5 * (1.5 - d0) ** 2
    dw[0] = -(1.5 - d0)
    d1 = d0 - 1.0
    w[1] = 0.75 - d1 * d1
    dw[1] = -2.0 * d1
    d2 = 1.0 - d1
    w[2] = 0.5 * (1.5 - d2) ** 2
    dw[2] = 1.5 - d2
    return base


@nb.njit(parallel=True, cache=True)
def compute_stencil(
    positions: np.ndarray,
    h: float,
    dims: np.ndarray,
    indices: np.ndarray,
    weights: np.ndarray,
    gradients: np.ndarray,
) -> None:
    n = positions.shape[0]
    inv_h = 1.0 / h
    for p in nb.prange(n):
        w = np.empty((3, 3))
        dw = np.empty((3, 3))
        base = np.empty(3, dtype=np.int64)
        for d in range(3):
            base[d] = _weights_1d(positions[p, d] * inv_h, w[d], dw[d])
        for k in range(3):
            nz = base[2] + k
            for j in range(3):
                ny = base[1] + j
                for i in range(3):
                    nx = base[0] + i
                    slot = i + 3 * (j + 3 * k)
                    if (
                        nx < 0 or ny < 0 or nz < 0
                        or nx >= dims[0] or ny >= dims[1] or nz >= dims[2]
                    ):
                        indices[p, slot] = -1
                        weights[p, slot] = 0.0
                        gradients[p, slot, 0] = 0.0
                        gradients[p, slot, 1] = 0.0
                        gradients[p, slot, 2] = 0.0
                        continue
                    indices[p, slot] = nx + dims[0] * (ny + dims[1] * nz)
                    weights[p, slot] = w[0, i] * w[1, j] * w[2, k]
                    gradients[p, slot, 0] = dw[0, i] * inv_h * w[1, j] * w[2, k]
                    gradients[p, slot, 1] = w[0, i] * dw[1, j] * inv_h * w[2, k]
                    gradients[p, slot, 2] = w[0, i] * w[1, j] * dw[2, k] * inv_h


@nb.njit(cache=True)
def scatter_mass_momentum(
    indices: np.ndarray,
    weights: np.ndarray,
    mass: np.ndarray,
    velocity: np.ndarray,
    grid_mass: np.ndarray,
    grid_momentum: np.ndarray,
) -> None:
    # Must stay serial: neighbouring particles write the same nodes.
    n = indices.shape[0]
    for p in range(n):
        m = mass[p]
        for s in range(indices.shape[1]):
            node = indices[p, s]
            if node < 0:
                continue
            mw = m * weights[p, s]
            grid_mass[node] += mw
            for c in range(3):
                grid_momentum[node, c] += mw * velocity[p, c]


@nb.njit(cache=True)
def scatter_stress_force(
    indices: np.ndarray,
    gradients: np.ndarray,
    stress: np.ndarray,
    grid_force: np.ndarray,
) -> None:
    """``force[node] -= stress[p] @ grad_weight`` for every particle/node pair."""
    n = indices.shape[0]
    for p in range(n):
        for s in range(indices.shape[1]):
            node = indices[p, s]
            if node < 0:
                continue
            for a in range(3):
                acc = 0.0
                for b in range(3):
                    acc += stress[p, a, b] * gradients[p, s, b]
                grid_force[node, a] -= acc


@nb.njit(parallel=True, cache=True)
def gather_vectors(
    indices: np.ndarray,
    weights: np.ndarray,
    field: np.ndarray,
    out: np.ndarray,
) -> None:
    n = indices.shape[0]
    for p in nb.prange(n):
        acc0 = 0.0
        acc1 = 0.0
        acc2 = 0.0
        for s in range(indices.shape[1]):
            node = indices[p, s]
            if node < 0:
                continue
            w = weights[p, s]
            acc0 += w * field[node, 0]
            acc1 += w * field[node, 1]
            acc2 += w * field[node, 2]
        out[p, 0] = acc0
        out[p, 1] = acc1
        out[p, 2] = acc2


@nb.njit(parallel=True, cache=True)
def gather_velocity_gradient(
    indices: np.ndarray,
    gradients: np.ndarray,
    velocity: np.ndarray,
    out: np.ndarray,
) -> None:
    """``grad_v[p] = sum(v_node (outer) grad_weight)`` over the stencil."""
    n = indices.shape[0]
    for p in nb.prange(n):
        for a in range(3):
            for b in range(3):
                out[p, a, b] = 0.0
        for s in range(indices.shape[1]):
            node = indices[p, s]
            if node < 0:
                continue
            for a in range(3):
                va = velocity[node, a]
                for b in range(3):
                    out[p, a, b] += va * gradients[p, s, b]


@dataclass
class Stencil:
    """Interpolation neighbourhood of a batch of particles for one step."""

    indices: np.ndarray  # (N, 27) raw node index or -1
    weights: np.ndarray  # (N, 27)
    gradients: np.ndarray  # (N, 27, 3)

    @classmethod
    def compute(cls, positions: np.ndarray, h: float, dims: Tuple[int, int, int]) -> "Stencil":
        n = positions.shape[0]
        indices = np.empty((n, STENCIL_SIZE), dtype=np.int64)
        weights = np.empty((n, STENCIL_SIZE), dtype=np.float64)
        gradients = np.empty((n, STENCIL_SIZE, 3), dtype=np.float64)
        if n == 0:
            return cls(indices=indices, weights=weights, gradients=gradients)

        positions = np.ascontiguousarray(positions, dtype=np.float64)
        bad = ~np.isfinite(positions).all(axis=1)
        if bad.any():
            raise NumericalError(
                f"non-finite positions for particles {np.flatnonzero(bad)[:10].tolist()}",
                stage="stencil",
            )
        compute_stencil(positions, float(h), np.asarray(dims, dtype=np.int64), indices, weights, gradients)
        bad = ~(np.isfinite(weights).all(axis=1) & np.isfinite(gradients).all(axis=(1, 2)))
        if bad.any():
            raise NumericalError(
                f"non-finite interpolation weights for particles {np.flatnonzero(bad)[:10].tolist()}",
                stage="stencil",
            )
        return cls(indices=indices, weights=weights, gradients=gradients)

    def __len__(self) -> int:
        return self.indices.shape[0]

    def subset(self, rows: np.ndarray) -> "Stencil":
        return Stencil(
            indices=np.ascontiguousarray(self.indices[rows]),
            weights=np.ascontiguousarray(self.weights[rows]),
            gradients=np.ascontiguousarray(self.gradients[rows]),
        )

    def weight_sums(self) -> np.ndarray:
        return self.weights.sum(axis=1)

    def velocity_gradient(self, grid_velocity: np.ndarray) -> np.ndarray:
        out = np.empty((len(self), 3, 3), dtype=np.float64)
        if len(self):
            gather_velocity_gradient(self.indices, self.gradients, grid_velocity, out)
        return out

    def gather(self, field: np.ndarray) -> np.ndarray:
        out = np.empty((len(self), 3), dtype=np.float64)
        if len(self):
            gather_vectors(self.indices, self.weights, field, out)
        return out
