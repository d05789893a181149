r"""
Bounded containers feeding the visual layer.

This module provides:

:class:`NeedleRing`
    Fixed-capacity FIFO of the most recent drops, for drawing the needle field.
:class:`HistorySeries`
    Convergence series of ``(trial_index, estimate)`` points whose physical
    size is bounded by halving compaction.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional

import numpy as np

from .core import HistoryPoint, InvalidParameter, NeedleSample, TrialOutcome

logger = logging.getLogger(__name__)

__all__ = ["NeedleRing", "HistorySeries"]


def _check_size(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
        raise InvalidParameter(f"{name} must be a positive integer, got {value!r}")
    return int(value)


class NeedleRing:
    r"""
    Fixed-capacity ring of recent :class:`~buffon.core.NeedleSample` objects.

    Samples live in preallocated NumPy arrays indexed from ``head``. Pushing
    into a full ring overwrites the oldest slot and advances ``head``, and
    :meth:`clear` only resets the bookkeeping, so both run in constant time
    regardless of capacity.

    Parameters
    ----------
    capacity : int, default ``500``
        Maximum number of samples kept.

    Examples
    --------
    >>> ring = NeedleRing(capacity=2)
    >>> for i in range(3):
    ...     ring.push(NeedleSample(TrialOutcome(float(i), 0.0, False), 0.5, 0.5))
    >>> [s.outcome.offset for s in ring]
    [1.0, 2.0]
    """

    DEFAULT_CAPACITY = 500

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._capacity = _check_size("capacity", capacity)
        self._offset = np.zeros(self._capacity, dtype=float)
        self._angle = np.zeros(self._capacity, dtype=float)
        self._crosses = np.zeros(self._capacity, dtype=bool)
        self._x = np.zeros(self._capacity, dtype=float)
        self._y = np.zeros(self._capacity, dtype=float)
        self._head = 0
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_full(self) -> bool:
        return self._size == self._capacity

    def __len__(self) -> int:
        return self._size

    def push(self, sample: NeedleSample) -> None:
        """Insert ``sample``, evicting the oldest one when the ring is full."""
        if self._size < self._capacity:
            slot = (self._head + self._size) % self._capacity
            self._size += 1
        else:
            slot = self._head
            self._head = (self._head + 1) % self._capacity
        out = sample.outcome
        self._offset[slot] = out.offset
        self._angle[slot] = out.angle
        self._crosses[slot] = out.crosses
        self._x[slot] = sample.x
        self._y[slot] = sample.y

    def clear(self) -> None:
        self._head = 0
        self._size = 0

    def _order(self) -> np.ndarray:
        return (self._head + np.arange(self._size)) % self._capacity

    def __iter__(self) -> Iterator[NeedleSample]:
        """Yield samples oldest first."""
        for slot in self._order():
            yield NeedleSample(
                outcome=TrialOutcome(
                    offset=float(self._offset[slot]),
                    angle=float(self._angle[slot]),
                    crosses=bool(self._crosses[slot]),
                ),
                x=float(self._x[slot]),
                y=float(self._y[slot]),
            )

    def as_arrays(self) -> dict[str, np.ndarray]:
        r"""
        Chronological copies of the stored columns.

        Returns
        -------
        dict of str to ndarray
            Keys ``"offset"``, ``"angle"``, ``"crosses"``, ``"x"`` and ``"y"``,
            each of length ``len(self)``.
        """
        idx = self._order()
        return {
            "offset": self._offset[idx],
            "angle": self._angle[idx],
            "crosses": self._crosses[idx],
            "x": self._x[idx],
            "y": self._y[idx],
        }


class HistorySeries:
    r"""
    Memory-bounded convergence series for a live chart.

    :meth:`maybe_append` always appends; callers decide how often to call it
    (the simulator throttles by wall-clock time). Whenever the length exceeds
    ``threshold`` the series is replaced by its even-indexed points
    ``0, 2, 4, ...``. The first point always survives and older regions of the
    chart grow sparser over time. The result depends only on the sequence of
    appends.

    Parameters
    ----------
    threshold : int, default ``200``
        Length above which the series is halved.

    Examples
    --------
    >>> series = HistorySeries(threshold=4)
    >>> for i in range(5):
    ...     series.maybe_append(i, 3.0)
    >>> [p.trial_index for p in series]
    [0, 2, 4]
    """

    DEFAULT_THRESHOLD = 200

    def __init__(self, threshold: int = DEFAULT_THRESHOLD):
        self._threshold = _check_size("threshold", threshold)
        self._points: list[HistoryPoint] = []

    @property
    def threshold(self) -> int:
        return self._threshold

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[HistoryPoint]:
        return iter(self._points)

    @property
    def last(self) -> Optional[HistoryPoint]:
        return self._points[-1] if self._points else None

    def points(self) -> tuple[HistoryPoint, ...]:
        return tuple(self._points)

    def maybe_append(self, trial_index: int, estimate: float, crossings: int = 0) -> None:
        """Append a point and compact if the threshold is exceeded."""
        self._points.append(HistoryPoint(int(trial_index), float(estimate), int(crossings)))
        self._compact()

    def extend(self, points: Iterable[HistoryPoint]) -> None:
        """Append several points in order, compacting as :meth:`maybe_append` would."""
        for p in points:
            self.maybe_append(p.trial_index, p.estimate, p.crossings)

    def _compact(self) -> None:
        if len(self._points) > self._threshold:
            before = len(self._points)
            self._points = self._points[::2]
            logger.debug(f"History compacted from {before} to {len(self._points)} points")

    def reset(self) -> None:
        self._points = []

    def trial_indices(self) -> np.ndarray:
        return np.fromiter((p.trial_index for p in self._points), dtype=np.int64, count=len(self._points))

    def estimates(self) -> np.ndarray:
        return np.fromiter((p.estimate for p in self._points), dtype=float, count=len(self._points))
