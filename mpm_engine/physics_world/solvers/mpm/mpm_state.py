"""
MPM state management - stores particle positions, velocities, deformation, etc.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .mpm_materials import Deformation

logger = logging.getLogger(__name__)

# name -> (trailing shape, dtype, fill value)
_COLUMNS = {
    "mass": ((), np.float64, 0.0),
    "volume": ((), np.float64, 0.0),
    "position": ((3,), np.float64, 0.0),
    "velocity": ((3,), np.float64, 0.0),
    "f_elastic": ((3, 3), np.float64, None),
    "f_plastic": ((3, 3), np.float64, None),
    "mu0": ((), np.float64, 0.0),
    "lambda0": ((), np.float64, 0.0),
    "theta_c": ((), np.float64, 0.0),
    "theta_s": ((), np.float64, 0.0),
    "hardening": ((), np.float64, 0.0),
    "plastic": ((), np.bool_, False),
    "has_deformation": ((), np.bool_, False),
    "hidden": ((), np.bool_, False),
}


class ParticleStore:
    """Struct-of-arrays particle storage.

    A particle handle is its integer row in every column. Rows are never
    removed, so handles stay valid for the lifetime of the store.
    """

    def __init__(self, capacity: int = 1024):
        self._count = 0
        self._capacity = 0
        for name, (shape, dtype, _) in _COLUMNS.items():
            setattr(self, f"_{name}", np.empty((0,) + shape, dtype=dtype))
        self._grow(max(int(capacity), 1))

    def __len__(self) -> int:
        return self._count

    def _grow(self, capacity: int) -> None:
        for name, (shape, dtype, _) in _COLUMNS.items():
            old = getattr(self, f"_{name}")
            new = np.zeros((capacity,) + shape, dtype=dtype)
            new[: self._count] = old[: self._count]
            setattr(self, f"_{name}", new)
        self._capacity = capacity

    def add(self, positions: np.ndarray, mass: float | np.ndarray = 0.0, volume: float | np.ndarray = 0.0) -> np.ndarray:
        """Append particles at ``positions``; returns their handles."""
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        n = positions.shape[0]
        if self._count + n > self._capacity:
            self._grow(max(self._capacity * 2, self._count + n))
        start, stop = self._count, self._count + n
        for name, (shape, _, fill) in _COLUMNS.items():
            column = getattr(self, f"_{name}")
            if fill is None:
                column[start:stop] = np.eye(3)
            else:
                column[start:stop] = fill
        self._position[start:stop] = positions
        self._mass[start:stop] = mass
        self._volume[start:stop] = volume
        self._count = stop
        return np.arange(start, stop)

    # Column views over the live rows
    @property
    def mass(self) -> np.ndarray:
        return self._mass[: self._count]

    @property
    def volume(self) -> np.ndarray:
        return self._volume[: self._count]

    @property
    def position(self) -> np.ndarray:
        return self._position[: self._count]

    @property
    def velocity(self) -> np.ndarray:
        return self._velocity[: self._count]

    @property
    def f_elastic(self) -> np.ndarray:
        return self._f_elastic[: self._count]

    @property
    def f_plastic(self) -> np.ndarray:
        return self._f_plastic[: self._count]

    @property
    def mu0(self) -> np.ndarray:
        return self._mu0[: self._count]

    @property
    def lambda0(self) -> np.ndarray:
        return self._lambda0[: self._count]

    @property
    def theta_c(self) -> np.ndarray:
        return self._theta_c[: self._count]

    @property
    def theta_s(self) -> np.ndarray:
        return self._theta_s[: self._count]

    @property
    def hardening(self) -> np.ndarray:
        return self._hardening[: self._count]

    @property
    def plastic(self) -> np.ndarray:
        return self._plastic[: self._count]

    @property
    def has_deformation(self) -> np.ndarray:
        return self._has_deformation[: self._count]

    @property
    def hidden(self) -> np.ndarray:
        return self._hidden[: self._count]

    def set_deformation(self, handles: Sequence[int], deformation: Optional[Deformation]) -> None:
        """Attach a material to ``handles`` and reset their gradients to identity."""
        handles = np.asarray(handles, dtype=np.int64)
        self.f_elastic[handles] = np.eye(3)
        self.f_plastic[handles] = np.eye(3)
        if deformation is None:
            self.has_deformation[handles] = False
            return
        self.has_deformation[handles] = True
        self.mu0[handles] = deformation.mu
        self.lambda0[handles] = deformation.lam
        self.plastic[handles] = deformation.plastic
        self.theta_c[handles] = deformation.theta_c
        self.theta_s[handles] = deformation.theta_s
        self.hardening[handles] = deformation.hardening

    def deformation_of(self, handle: int) -> Optional[Deformation]:
        if not self.has_deformation[handle]:
            return None
        return Deformation(
            mu=float(self.mu0[handle]),
            lam=float(self.lambda0[handle]),
            plastic=bool(self.plastic[handle]),
            theta_c=float(self.theta_c[handle]),
            theta_s=float(self.theta_s[handle]),
            hardening=float(self.hardening[handle]),
        )

    def deformed(self) -> np.ndarray:
        """Handles of particles that carry a material."""
        return np.flatnonzero(self.has_deformation)

    def visible_positions(self) -> np.ndarray:
        return self.position[~self.hidden]

    def total_mass(self) -> float:
        return float(self.mass.sum())
