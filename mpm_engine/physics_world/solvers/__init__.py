"""Solvers used by the physics world."""

from .mpm import MPMSolver, SolverSettings

__all__ = ["MPMSolver", "SolverSettings"]
