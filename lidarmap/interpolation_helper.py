"""Find the stamped values that bracket a target time in a data stream."""

from __future__ import annotations

import bisect
import enum
from collections import deque
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

V = TypeVar("V")


class InterpolationResult(enum.Enum):
    SUCCESS = enum.auto()  # values cover the target timestamp
    FAILURE = enum.auto()  # all values are newer than the target timestamp
    WAITING = enum.auto()  # all values are older than the target timestamp


class SearchMode(enum.Enum):
    LINEAR = enum.auto()
    BINARY = enum.auto()


@dataclass(frozen=True)
class InterpolationMatch(Generic[V]):
    """The values on either side of a target stamp."""

    left: tuple[float, V]
    right: tuple[float, V]
    remove_cursor: int


class InterpolationHelper(Generic[V]):
    """Keeps time-ordered values and finds the pair around a given stamp."""

    def __init__(self, search_mode: SearchMode = SearchMode.LINEAR) -> None:
        self.search_mode = search_mode
        self._values: deque[tuple[float, Any]] = deque()

    def __len__(self) -> int:
        return len(self._values)

    def leftmost_time(self) -> float:
        """Oldest stamp, or 0.0 when empty."""
        return self._values[0][0] if self._values else 0.0

    def rightmost_time(self) -> float:
        """Newest stamp, or 0.0 when empty."""
        return self._values[-1][0] if self._values else 0.0

    def add(self, stamp: float, value: V) -> None:
        """Append a value; stamps must not decrease."""
        if self._values and self._values[-1][0] > stamp:
            raise ValueError(f"inserting non-ordered value: {stamp} < {self._values[-1][0]}")
        self._values.append((stamp, value))

    def find(self, stamp: float) -> tuple[InterpolationResult, InterpolationMatch[V] | None]:
        """Locate the values around ``stamp``; the match is None unless the result is SUCCESS."""
        values = self._values
        if not values or values[-1][0] < stamp:
            return InterpolationResult.WAITING, None
        if values[0][0] > stamp:
            return InterpolationResult.FAILURE, None

        if self.search_mode is SearchMode.LINEAR:
            right = 1
            while right < len(values) and values[right][0] < stamp:
                right += 1
        else:
            right = max(1, bisect.bisect_left(values, stamp, key=lambda item: item[0]))

        left = right - 1
        if right >= len(values) or values[left][0] > stamp or values[right][0] < stamp:
            raise RuntimeError(f"no pair of values brackets stamp {stamp}")

        match = InterpolationMatch(left=values[left], right=values[right], remove_cursor=left - 1)
        return InterpolationResult.SUCCESS, match

    def erase(self, remove_cursor: int) -> None:
        """Drop the ``remove_cursor`` oldest values."""
        for _ in range(max(0, min(remove_cursor, len(self._values)))):
            self._values.popleft()