"""A pose graph of relative pose constraints, optimised by Levenberg-Marquardt."""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass

import numpy as np

from lidarmap.geometry import invert_isometry, se3_expmap, se3_logmap

_JACOBIAN_STEP = 1e-6


@dataclass(eq=False)
class BetweenFactor:
    """Constraint that the pose of ``key2`` seen from ``key1`` equals ``measured``.

    The error is isotropic with standard deviation ``sigma``; with a
    ``robust_width`` it is turned into a Huber loss of that width.
    """

    key1: Hashable
    key2: Hashable
    measured: np.ndarray
    sigma: float = 1.0
    robust_width: float | None = None

    def __post_init__(self) -> None:
        self.measured = np.asarray(self.measured, dtype=float).reshape(4, 4)
        if self.sigma <= 0.0:
            raise ValueError(f"sigma must be positive, got {self.sigma}")
        if self.robust_width is not None and self.robust_width <= 0.0:
            raise ValueError(f"robust width must be positive, got {self.robust_width}")
        self._measured_inv = invert_isometry(self.measured)

    def keys(self) -> tuple[Hashable, Hashable]:
        return self.key1, self.key2

    def whitened_error(self, pose1, pose2) -> np.ndarray:
        """Tangent-space error divided by ``sigma``."""
        delta = self._measured_inv @ invert_isometry(np.asarray(pose1, dtype=float)) @ np.asarray(pose2, dtype=float)
        return np.asarray(se3_logmap(delta), dtype=float).ravel() / self.sigma

    def weight(self, residual_norm: float) -> float:
        """Reweighting factor of the Huber loss for a whitened error of this norm."""
        if self.robust_width is None or residual_norm <= self.robust_width:
            return 1.0
        return self.robust_width / residual_norm

    def error(self, pose1, pose2) -> float:
        """Loss of the factor at the given poses."""
        r = float(np.linalg.norm(self.whitened_error(pose1, pose2)))
        if self.robust_width is None or r <= self.robust_width:
            return 0.5 * r * r
        k = self.robust_width
        return k * r - 0.5 * k * k


class PoseGraph:
    """Poses linked by between factors; the pose inserted first is held fixed."""

    def __init__(self, enable_optimization: bool = True, max_iterations: int = 20) -> None:
        self.enable_optimization = enable_optimization
        self.max_iterations = max_iterations
        self._values: dict[Hashable, np.ndarray] = {}
        self._factors: list[BetweenFactor] = []
        self._anchor: Hashable | None = None

    def __len__(self) -> int:
        return len(self._values)

    def has_pose(self, key: Hashable) -> bool:
        return key in self._values

    def estimate(self, key: Hashable) -> np.ndarray:
        """Current estimate of the pose ``key``; KeyError if it is unknown."""
        return self._values[key].copy()

    def factors(self) -> list[BetweenFactor]:
        return list(self._factors)

    def update(
        self,
        new_factors: Iterable[BetweenFactor] = (),
        new_values: Mapping[Hashable, np.ndarray] | None = None,
    ) -> float:
        """Add poses and factors, optimise, and return the total error afterwards."""
        values = dict(new_values or {})
        factors = list(new_factors)

        duplicates = [key for key in values if key in self._values]
        if duplicates:
            raise ValueError(f"poses already exist: {duplicates}")
        known = set(self._values) | set(values)
        for factor in factors:
            for key in factor.keys():
                if key not in known:
                    raise ValueError(f"factor refers to unknown pose {key!r}")

        for key, pose in values.items():
            self._values[key] = np.array(pose, dtype=float).reshape(4, 4)
            if self._anchor is None:
                self._anchor = key
        self._factors.extend(factors)

        if self.enable_optimization:
            self._optimize()
        return self.total_error()

    def total_error(self) -> float:
        """Sum of the losses of all factors at the current estimate."""
        return self._error_at(self._values)

    def _error_at(self, values: Mapping[Hashable, np.ndarray]) -> float:
        return sum(factor.error(values[factor.key1], values[factor.key2]) for factor in self._factors)

    def _jacobian(self, factor: BetweenFactor, values, key: Hashable) -> np.ndarray:
        jacobian = np.empty((6, 6))
        for d in range(6):
            step = np.zeros(6)
            step[d] = _JACOBIAN_STEP
            errors = []
            for sign in (1.0, -1.0):
                perturbed = dict(values)
                perturbed[key] = values[key] @ se3_expmap(sign * step)
                errors.append(factor.whitened_error(perturbed[factor.key1], perturbed[factor.key2]))
            jacobian[:, d] = (errors[0] - errors[1]) / (2.0 * _JACOBIAN_STEP)
        return jacobian

    def _linearize(self, index: Mapping[Hashable, int]) -> tuple[np.ndarray, np.ndarray]:
        size = 6 * len(index)
        H = np.zeros((size, size))
        b = np.zeros(size)
        for factor in self._factors:
            error = factor.whitened_error(self._values[factor.key1], self._values[factor.key2])
            weight = factor.weight(float(np.linalg.norm(error)))
            blocks = [
                (index[key], self._jacobian(factor, self._values, key))
                for key in dict.fromkeys(factor.keys())
                if key in index
            ]
            for i, Ji in blocks:
                b[6 * i : 6 * i + 6] += weight * Ji.T @ error
                for j, Jj in blocks:
                    H[6 * i : 6 * i + 6, 6 * j : 6 * j + 6] += weight * Ji.T @ Jj
        return H, b

    def _optimize(self) -> None:
        free = [key for key in self._values if key != self._anchor]
        if not free or not self._factors:
            return
        index = {key: i for i, key in enumerate(free)}
        current = self.total_error()
        lam = 1e-6

        for _ in range(self.max_iterations):
            if current <= 0.0:
                break
            H, b = self._linearize(index)
            accepted = False
            while lam < 1e10:
                dx = np.linalg.solve(H + lam * np.eye(len(b)), -b)
                candidate = dict(self._values)
                for key, i in index.items():
                    candidate[key] = self._values[key] @ se3_expmap(dx[6 * i : 6 * i + 6])
                error = self._error_at(candidate)
                if error < current:
                    previous = current
                    self._values = candidate
                    current = error
                    lam = max(lam / 10.0, 1e-12)
                    accepted = True
                    break
                lam *= 10.0
            if not accepted:
                break
            if previous - current <= 1e-12 * max(1.0, previous) or np.linalg.norm(dx) < 1e-10:
                break