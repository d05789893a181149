r"""
Rate-controlled trial scheduling.

This module provides:

Protocol
    :class:`FrameRequester` – "call me back on the next frame" capability.

Classes
    :class:`SchedulerState` – ``IDLE`` / ``RUNNING`` / ``PAUSED``.
    :class:`RateAccumulator` – converts elapsed time into whole trials.
    :class:`TrialScheduler` – the state machine driving a session.
    :class:`ManualFrameLoop` – deterministic, caller-driven frame loop.

Rate control
------------

On every frame the scheduler adds :math:`r \cdot \Delta t / 1000` to a
fractional accumulator (rate :math:`r` in trials per second, :math:`\Delta t` in
milliseconds), runs the integer part and carries the remainder to the next
frame. Over any run of frames the number of trials executed stays within one of
:math:`\lfloor r E / 1000 \rfloor` for total elapsed time :math:`E`, whatever the
frame jitter.
"""

from __future__ import annotations

import logging
import math
import time
from enum import Enum
from typing import Any, Callable, Hashable, Optional, Protocol

from .core import require_positive

logger = logging.getLogger(__name__)

__all__ = [
    "SchedulerState",
    "FrameRequester",
    "FrameCallback",
    "RateAccumulator",
    "TrialScheduler",
    "ManualFrameLoop",
    "monotonic_ms",
]

FrameCallback = Callable[[float], Any]


def monotonic_ms() -> float:
    """Monotonic clock reading in milliseconds."""
    return time.perf_counter() * 1000.0


class SchedulerState(str, Enum):
    r"""
    Lifecycle of a session.

    Attributes
    ----------
    IDLE : str
        Nothing recorded since the last reset.
    RUNNING : str
        Frames are being requested and trials executed.
    PAUSED : str
        Stopped with counters kept; no frame is pending.
    """

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class FrameRequester(Protocol):
    r"""
    Capability to run a callback on the next rendering frame.

    A GUI toolkit's animation timer, an event loop's ``call_later`` or
    :class:`ManualFrameLoop` can all implement this.
    """

    def request(self, callback: FrameCallback) -> Hashable:
        r"""
        Arrange for ``callback(now_ms)`` to run once on the next frame.

        Returns
        -------
        Hashable
            Handle accepted by :meth:`cancel`.
        """

    def cancel(self, handle: Hashable) -> None:
        """Drop a pending request. Unknown or already-fired handles are ignored."""


class ManualFrameLoop:
    r"""
    Frame loop driven explicitly by the caller.

    Requests queue up until :meth:`run_frame` is called with the frame time.
    Only requests made before the frame started are served, and a request
    cancelled while the frame is being served does not run.

    Examples
    --------
    >>> loop = ManualFrameLoop()
    >>> seen = []
    >>> handle = loop.request(seen.append)
    >>> loop.run_frame(16.0)
    1
    >>> seen
    [16.0]
    """

    def __init__(self):
        self._pending: dict[int, FrameCallback] = {}
        self._next_handle = 1

    @property
    def pending(self) -> int:
        return len(self._pending)

    def request(self, callback: FrameCallback) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._pending[handle] = callback
        return handle

    def cancel(self, handle: Hashable) -> None:
        self._pending.pop(handle, None)

    def run_frame(self, now_ms: float) -> int:
        """Serve the requests queued so far and return how many callbacks ran."""
        ran = 0
        for handle in list(self._pending):
            callback = self._pending.pop(handle, None)
            if callback is None:
                continue
            callback(now_ms)
            ran += 1
        return ran


class RateAccumulator:
    r"""
    Fractional trial budget carried between frames.

    Parameters
    ----------
    rate : float
        Trials per second, :math:`r > 0`.
    """

    UNIT_MS = 1000.0

    def __init__(self, rate: float):
        self.rate = require_positive("rate", rate)
        self.fraction = 0.0

    def add(self, elapsed_ms: float) -> int:
        """Accumulate ``elapsed_ms`` worth of trials and return the whole part."""
        if elapsed_ms > 0:
            self.fraction += self.rate * elapsed_ms / self.UNIT_MS
        whole = math.floor(self.fraction)
        self.fraction -= whole
        return int(whole)

    def reset(self) -> None:
        self.fraction = 0.0


class TrialScheduler:
    r"""
    State machine deciding how many trials each frame runs.

    Parameters
    ----------
    rate : float, default ``100.0``
        Trials per second.
    frames : FrameRequester, optional
        Where follow-up frames are requested. Without one, the caller drives
        :meth:`advance` directly.
    clock : callable, optional
        Monotonic clock in milliseconds used when :meth:`start` is called
        without a timestamp. Defaults to :func:`monotonic_ms`.

    Notes
    -----
    :meth:`pause` and :meth:`reset` cancel the pending frame before returning,
    and :meth:`advance` returns ``0`` unless the state is ``RUNNING``. A stale
    frame can therefore never produce trials after a pause.
    """

    def __init__(
        self,
        rate: float = 100.0,
        *,
        frames: Optional[FrameRequester] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._accumulator = RateAccumulator(rate)
        self._frames = frames
        self._clock = clock or monotonic_ms
        self._state = SchedulerState.IDLE
        self._last_ms: Optional[float] = None
        self._pending: Optional[Hashable] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def has_pending_frame(self) -> bool:
        return self._pending is not None

    @property
    def rate(self) -> float:
        return self._accumulator.rate

    @rate.setter
    def rate(self, value: float) -> None:
        self._accumulator.rate = require_positive("rate", value)

    @property
    def carry(self) -> float:
        """Fractional trial budget waiting for the next frame."""
        return self._accumulator.fraction

    def now(self) -> float:
        return float(self._clock())

    def start(self, now_ms: Optional[float] = None) -> bool:
        """
        Enter ``RUNNING`` from ``IDLE`` or ``PAUSED``.

        Returns ``False`` (and changes nothing) when already running.
        """
        if self.is_running:
            return False
        self._last_ms = self.now() if now_ms is None else float(now_ms)
        self._accumulator.reset()
        self._state = SchedulerState.RUNNING
        return True

    def pause(self) -> bool:
        """Leave ``RUNNING`` for ``PAUSED``. Returns ``False`` when not running."""
        if not self.is_running:
            return False
        self._state = SchedulerState.PAUSED
        self._cancel_pending()
        return True

    def reset(self) -> None:
        self._cancel_pending()
        self._state = SchedulerState.IDLE
        self._accumulator.reset()
        self._last_ms = None

    def advance(self, now_ms: float) -> int:
        """Return the number of trials to run for a frame at ``now_ms``."""
        if not self.is_running or self._last_ms is None:
            return 0
        elapsed = float(now_ms) - self._last_ms
        self._last_ms = float(now_ms)
        return self._accumulator.add(elapsed)

    def schedule_next(self, callback: FrameCallback) -> bool:
        """
        Request the next frame, replacing any request still pending.

        Returns ``False`` when not running or no frame requester is attached.
        """
        if not self.is_running or self._frames is None:
            return False
        self._cancel_pending()
        self._pending = self._frames.request(callback)
        return True

    def frame_fired(self) -> None:
        """Forget the pending handle once its frame has been served."""
        self._pending = None

    def _cancel_pending(self) -> None:
        if self._pending is not None and self._frames is not None:
            self._frames.cancel(self._pending)
            logger.debug("Cancelled pending frame request")
        self._pending = None
