"""Exporter that writes visible particles as ``.poly`` point clouds.

Output structure::

  outputs/<scene>/
  ├── 1.poly
  ├── 2.poly
  ...

Each file holds a ``POINTS`` section with one ``"{index}: {x} {y} {z}"``
line per visible particle (1-based), followed by an empty ``POLYS``
section and ``END``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from .configuration import ExportConfig

if TYPE_CHECKING:
    from .physics_world.world import World

logger = logging.getLogger(__name__)


def write_poly(path: Path, positions: Iterable[Sequence[float]]) -> int:
    """Write a points-only ``.poly`` file; returns the number of points written."""
    count = 0
    with path.open("w", encoding="utf-8") as handle:
        handle.write("POINTS\n")
        for count, (x, y, z) in enumerate(positions, start=1):
            handle.write(f"{count}: {float(x)} {float(y)} {float(z)}\n")
        handle.write("POLYS\nEND\n")
    return count


@dataclass
class PolyDumpSystem:
    """World system dumping a frame every ``dump_skip`` steps."""

    output_root: Path
    dump_skip: int = 10
    dump_count: int = field(default=0, init=False)
    _ready: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.output_root = Path(self.output_root)
        if self.dump_skip < 1:
            raise ValueError(f"dump_skip must be at least 1, got {self.dump_skip}")

    @classmethod
    def from_config(cls, config: Optional[ExportConfig]) -> "PolyDumpSystem":
        if config is None:
            return cls(output_root=Path("outputs"))
        return cls(output_root=config.output_root, dump_skip=config.dump_skip)

    def _ensure_directories(self) -> None:
        if not self._ready:
            self.output_root.mkdir(parents=True, exist_ok=True)
            logger.info("Dumping frames to %s every %d steps", self.output_root, self.dump_skip)
            self._ready = True

    def frame_path(self, dump_index: int) -> Path:
        return self.output_root / f"{dump_index}.poly"

    def __call__(self, world: "World") -> None:
        if world.step_count % self.dump_skip != 0:
            return
        self._ensure_directories()
        self.dump_count += 1
        path = self.frame_path(self.dump_count)
        written = write_poly(path, world.particles.visible_positions())
        logger.debug("Wrote %s (%d points)", path, written)
