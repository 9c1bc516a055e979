"""
MPM material models - fixed-corotated elasticity and snow plasticity.

All functions operate on batches of 3x3 matrices shaped ``(N, 3, 3)``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ....errors import NumericalError

# Snow parameters from Stomakhin et al. 2013
SNOW_YOUNGS_MODULUS = 1.4e5
SNOW_POISSON_RATIO = 0.2
SNOW_THETA_C = 2.5e-2
SNOW_THETA_S = 7.5e-3
SNOW_HARDENING = 10.0


def lame_parameters(youngs_modulus: float, poisson_ratio: float) -> Tuple[float, float]:
    """Convert (E, nu) to the Lame parameters (mu, lambda)."""
    if not -1.0 < poisson_ratio < 0.5:
        raise ValueError(f"Poisson ratio must lie in (-1, 0.5), got {poisson_ratio}")
    mu = youngs_modulus / (2.0 * (1.0 + poisson_ratio))
    lam = youngs_modulus * poisson_ratio / ((1.0 + poisson_ratio) * (1.0 - 2.0 * poisson_ratio))
    return mu, lam


@dataclass(frozen=True)
class Deformation:
    """Material description attached to particles.

    Elastic bodies carry a single gradient and never clamp. Plastic bodies
    split it into elastic and plastic factors and clamp singular values of
    the elastic factor to ``[1 - theta_c, 1 + theta_s]``.
    """

    mu: float
    lam: float
    plastic: bool = False
    theta_c: float = 0.0
    theta_s: float = 0.0
    hardening: float = 0.0

    @classmethod
    def elastic(cls, youngs_modulus: float, poisson_ratio: float) -> "Deformation":
        mu, lam = lame_parameters(youngs_modulus, poisson_ratio)
        return cls(mu=mu, lam=lam)

    @classmethod
    def with_plasticity(
        cls,
        youngs_modulus: float,
        poisson_ratio: float,
        theta_c: float,
        theta_s: float,
        hardening: float,
    ) -> "Deformation":
        if theta_c < 0.0 or theta_s < 0.0 or theta_c >= 1.0:
            raise ValueError(f"invalid clamp bounds theta_c={theta_c}, theta_s={theta_s}")
        mu, lam = lame_parameters(youngs_modulus, poisson_ratio)
        return cls(mu=mu, lam=lam, plastic=True, theta_c=theta_c, theta_s=theta_s, hardening=hardening)

    @classmethod
    def snow(cls) -> "Deformation":
        return cls.with_plasticity(
            SNOW_YOUNGS_MODULUS, SNOW_POISSON_RATIO, SNOW_THETA_C, SNOW_THETA_S, SNOW_HARDENING
        )


def cofactor(F: np.ndarray) -> np.ndarray:
    """Cofactor matrix ``det(F) * F^-T`` without inverting ``F``."""
    r0, r1, r2 = F[:, 0, :], F[:, 1, :], F[:, 2, :]
    return np.stack([np.cross(r1, r2), np.cross(r2, r0), np.cross(r0, r1)], axis=1)


def svd(F: np.ndarray, stage: Optional[str] = None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    try:
        return np.linalg.svd(F)
    except np.linalg.LinAlgError as exc:
        raise NumericalError(f"SVD failed: {exc}", stage=stage) from exc


def polar_rotation(F: np.ndarray, stage: Optional[str] = None) -> np.ndarray:
    """Rotation ``R = U V^T`` of the polar decomposition of each ``F``.

    ``U`` and ``V`` are sign corrected on the smallest singular axis so
    both are proper rotations.
    """
    U, _, Vt = svd(F, stage)
    U = U.copy()
    Vt = Vt.copy()
    flip_u = np.linalg.det(U) < 0.0
    U[flip_u, :, 2] *= -1.0
    flip_v = np.linalg.det(Vt) < 0.0
    Vt[flip_v, 2, :] *= -1.0
    return U @ Vt


def fixed_corotated_stress(
    F: np.ndarray,
    mu: np.ndarray,
    lam: np.ndarray,
    stage: Optional[str] = None,
) -> np.ndarray:
    """First Piola-Kirchhoff stress ``2 mu (F - R) + lambda (J - 1) J F^-T``."""
    R = polar_rotation(F, stage)
    J = np.linalg.det(F)
    return (
        2.0 * mu[:, None, None] * (F - R)
        + (lam * (J - 1.0))[:, None, None] * cofactor(F)
    )


def hardening_scale(F_plastic: np.ndarray, hardening: np.ndarray) -> np.ndarray:
    """Stiffness multiplier ``exp(hardening * (1 - J_plastic))``."""
    return np.exp(hardening * (1.0 - np.linalg.det(F_plastic)))


def plastic_split(
    F_hat: np.ndarray,
    F_plastic: np.ndarray,
    theta_c: np.ndarray,
    theta_s: np.ndarray,
    stage: Optional[str] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Clamp the elastic part of ``F_hat`` and push the excess into the plastic factor.

    Returns ``(F_elastic_new, F_plastic_new)`` with
    ``F_elastic_new @ F_plastic_new == F_hat @ F_plastic``.
    """
    U, sigma, Vt = svd(F_hat, stage)
    clamped = np.clip(sigma, (1.0 - theta_c)[:, None], (1.0 + theta_s)[:, None])
    F_elastic = (U * clamped[:, None, :]) @ Vt
    V = np.swapaxes(Vt, 1, 2)
    Ut = np.swapaxes(U, 1, 2)
    F_plastic_new = (V * (1.0 / clamped)[:, None, :]) @ Ut @ F_hat @ F_plastic
    return F_elastic, F_plastic_new
