"""A raw point cloud frame as delivered by a sensor."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


def _empty(columns: int | None = None) -> np.ndarray:
    return np.empty((0, columns)) if columns else np.empty(0)


@dataclass
class RawPoints:
    """Points of one scan.

    ``times`` are per-point timestamps relative to ``stamp``, the time of the first
    point. ``points`` and ``colors`` are ``(N, 4)`` arrays.
    """

    stamp: float = 0.0
    times: np.ndarray = field(default_factory=_empty)
    intensities: np.ndarray = field(default_factory=_empty)
    points: np.ndarray = field(default_factory=lambda: _empty(4))
    colors: np.ndarray = field(default_factory=lambda: _empty(4))

    def __post_init__(self) -> None:
        self.times = np.asarray(self.times, dtype=float).ravel()
        self.intensities = np.asarray(self.intensities, dtype=float).ravel()
        self.points = np.asarray(self.points, dtype=float).reshape(-1, 4)
        self.colors = np.asarray(self.colors, dtype=float).reshape(-1, 4)

    def __len__(self) -> int:
        return len(self.points)