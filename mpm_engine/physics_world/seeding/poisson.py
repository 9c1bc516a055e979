"""Poisson-disk sampling of axis-aligned boxes."""

from __future__ import annotations

import logging
from typing import Union

import numpy as np
from scipy.stats import qmc

from ..math_utils import BoundingBox

logger = logging.getLogger(__name__)

SeedLike = Union[None, int, np.random.Generator]


def poisson_samples(bbox: BoundingBox, radius: float, rng: SeedLike = None) -> np.ndarray:
    """Points inside ``bbox`` no closer than ``radius`` to each other.

    The sampler runs in the unit cube scaled by the box's largest side, so
    distances are preserved, and the result is cropped to the box.
    """
    if radius <= 0.0:
        raise ValueError(f"sampling radius must be positive, got {radius}")
    size = bbox.size()
    if np.any(size < 0.0):
        raise ValueError(f"bounding box is inverted: min={bbox.min}, max={bbox.max}")
    extent = float(size.max())
    if extent == 0.0:
        return np.empty((0, 3))

    engine = qmc.PoissonDisk(d=3, radius=radius / extent, rng=rng)
    samples = engine.fill_space() * extent
    samples = samples[np.all(samples <= size, axis=1)]
    logger.debug("Poisson sampled %d points, radius=%g, box size=%s", len(samples), radius, size)
    return samples + bbox.min
