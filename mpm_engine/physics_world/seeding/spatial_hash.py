"""Spatial hash grid for accelerating point-in-tetrahedron queries."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import numpy as np

Cell = Tuple[int, int, int]


class TetraSpatialHash:
    """3D spatial hash grid over tetrahedron bounding boxes.

    Divides space into uniform cells and stores tetrahedron indices in each
    cell their AABB overlaps. A containment query then only tests the
    tetrahedra registered in the query point's cell instead of the whole mesh.
    """

    def __init__(self, bounds_min: np.ndarray, bounds_max: np.ndarray, cell_size: Optional[float] = None):
        """Initialize spatial hash grid.

        Args:
            bounds_min: Per-tetrahedron AABB minimum corners, shape (K, 3)
            bounds_max: Per-tetrahedron AABB maximum corners, shape (K, 3)
            cell_size: Edge length of a cell. Defaults to the mean largest
                AABB extent, so a typical tetrahedron spans a couple of cells.
        """
        bounds_min = np.asarray(bounds_min, dtype=np.float64).reshape(-1, 3)
        bounds_max = np.asarray(bounds_max, dtype=np.float64).reshape(-1, 3)
        if cell_size is None:
            extents = (bounds_max - bounds_min).max(axis=1) if len(bounds_min) else np.ones(1)
            cell_size = float(extents.mean()) or 1.0
        if cell_size <= 0.0:
            raise ValueError(f"cell size must be positive, got {cell_size}")
        self.cell_size = cell_size
        self.inv_cell_size = 1.0 / cell_size
        self.grid: Dict[Cell, List[int]] = {}

        min_cells = self.points_to_cells(bounds_min)
        max_cells = self.points_to_cells(bounds_max)
        for tet_idx in range(len(bounds_min)):
            self._insert_tetra(tet_idx, min_cells[tet_idx], max_cells[tet_idx])

    def _insert_tetra(self, tet_idx: int, min_cell: np.ndarray, max_cell: np.ndarray) -> None:
        """Insert a tetrahedron into all cells its AABB overlaps."""
        for cx in range(min_cell[0], max_cell[0] + 1):
            for cy in range(min_cell[1], max_cell[1] + 1):
                for cz in range(min_cell[2], max_cell[2] + 1):
                    self.grid.setdefault((cx, cy, cz), []).append(tet_idx)

    def points_to_cells(self, points: np.ndarray) -> np.ndarray:
        """Convert world positions to integer cell coordinates, shape (N, 3)."""
        return np.floor(np.asarray(points, dtype=np.float64) * self.inv_cell_size).astype(np.int64)

    def query_point(self, point: np.ndarray) -> List[int]:
        """Tetrahedra registered in the cell containing ``point``."""
        cell = self.points_to_cells(np.asarray(point).reshape(1, 3))[0]
        return self.grid.get((int(cell[0]), int(cell[1]), int(cell[2])), [])

    def query_cell(self, cell: Cell) -> List[int]:
        return self.grid.get(cell, [])

    def get_stats(self) -> Dict[str, int]:
        """Get statistics about the grid for debugging."""
        if not self.grid:
            return {
                'total_cells': 0,
                'total_entries': 0,
                'avg_tetras_per_cell': 0,
                'max_tetras_per_cell': 0,
            }

        cell_counts = [len(tets) for tets in self.grid.values()]
        return {
            'total_cells': len(self.grid),
            'total_entries': sum(cell_counts),
            'avg_tetras_per_cell': sum(cell_counts) // len(cell_counts),
            'max_tetras_per_cell': max(cell_counts),
        }
