"""
MPM (Material Point Method) solver module.
Provides the grid, particle storage, constitutive models and the transfer pipeline.
"""

from .mpm_boundary import Boundary, BoundaryKind, Wall, apply_boundary
from .mpm_grid import Grid, GridNode
from .mpm_materials import Deformation
from .mpm_solver import MPMSolver, SolverSettings, StageGraph
from .mpm_state import ParticleStore

__all__ = [
    'Boundary',
    'BoundaryKind',
    'Deformation',
    'Grid',
    'GridNode',
    'MPMSolver',
    'ParticleStore',
    'SolverSettings',
    'StageGraph',
    'Wall',
    'apply_boundary',
]
