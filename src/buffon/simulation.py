r"""
Needle simulation session.

This module provides :class:`NeedleSimulation`, the object a rendering layer
talks to. It owns one explicit set of state per session (estimator, recent
needle ring, convergence history, scheduler, RNG) and wires the data flow of a
frame:

1. the scheduler turns elapsed time into a whole number of trials,
2. each trial is evaluated and recorded by the estimator,
3. each trial is pushed into the ring with a fresh random placement,
4. at most once per ``chart_interval_ms`` the current estimate is appended to
   the history.

Example
-------
>>> from buffon import ManualFrameLoop, NeedleSimulation, SimulationConfig
>>> loop = ManualFrameLoop()
>>> sim = NeedleSimulation(SimulationConfig(rate=1000.0, seed=7), frames=loop)
>>> sim.start(now_ms=0.0)
>>> loop.run_frame(16.0)
1
>>> sim.state.total_trials
16
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from . import export as export_mod
from . import snapshot as snapshot_mod
from .buffers import HistorySeries, NeedleRing
from .core import (
    DecodeError,
    EstimatorState,
    InvalidParameter,
    NeedleSample,
    RandomSource,
    SimulationConfig,
    SimulationParameters,
    TrialOutcome,
    check_parameters,
)
from .estimator import RunningEstimator, relative_error_pct
from .geometry import evaluate_params
from .scheduler import FrameRequester, SchedulerState, TrialScheduler

logger = logging.getLogger(__name__)

__all__ = ["NeedleSimulation", "TickResult", "EstimateReading"]


@dataclass(frozen=True)
class TickResult:
    r"""
    What a frame produced.

    Attributes
    ----------
    outcomes : tuple of TrialOutcome
        Drops executed during this frame, oldest first.
    state : EstimatorState
        Counters after the frame.
    history_appended : bool
        Whether a point was added to the convergence history.
    """

    outcomes: tuple[TrialOutcome, ...]
    state: EstimatorState
    history_appended: bool = False


@dataclass(frozen=True)
class EstimateReading:
    """Current estimate and its percent error; both ``None`` before the first crossing."""

    value: Optional[float]
    error_pct: Optional[float]


class NeedleSimulation:
    r"""
    One Buffon's needle session.

    Parameters
    ----------
    config : SimulationConfig, optional
        Geometry, rate and container sizes. Defaults to :class:`SimulationConfig`.
    rng : RandomSource, optional
        Randomness source. Defaults to a :class:`numpy.random.Generator` seeded
        from ``config.seed``.
    frames : FrameRequester, optional
        Frame loop used to keep the session running after :meth:`start`.
        Without one, the caller calls :meth:`tick` itself.
    clock : callable, optional
        Monotonic millisecond clock used when :meth:`start` gets no timestamp.

    Notes
    -----
    **Pausing.** :meth:`pause` cancels the pending frame before it returns and
    :meth:`tick` does nothing unless the session is running, so no trial runs
    after a pause even if a stale frame callback fires.

    **Long needles.** With ``allow_long_needle=True`` (the default) a needle
    longer than the line spacing is accepted and the estimator switches to the
    long-needle formula. Set it to ``False`` to reject such geometry.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        *,
        rng: Optional[RandomSource] = None,
        frames: Optional[FrameRequester] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or SimulationConfig()
        self.seed_seq: Optional[np.random.SeedSequence] = None
        if rng is None:
            self.set_seed(self.config.seed)
        else:
            self.rng = rng
        self._params = self.config.params
        self._estimator = RunningEstimator(self._params)
        self._ring = NeedleRing(self.config.ring_capacity)
        self._history = HistorySeries(self.config.history_threshold)
        self._scheduler = TrialScheduler(self.config.rate, frames=frames, clock=clock)
        self._last_chart_ms: Optional[float] = None

    # -- read-only views -------------------------------------------------------

    @property
    def params(self) -> SimulationParameters:
        return self._params

    @property
    def rate(self) -> float:
        return self._scheduler.rate

    @property
    def state(self) -> EstimatorState:
        return self._estimator.state

    @property
    def is_running(self) -> bool:
        return self._scheduler.is_running

    @property
    def scheduler_state(self) -> SchedulerState:
        return self._scheduler.state

    @property
    def estimator(self) -> RunningEstimator:
        return self._estimator

    @property
    def ring(self) -> NeedleRing:
        return self._ring

    @property
    def history(self) -> HistorySeries:
        return self._history

    # -- configuration ---------------------------------------------------------

    def set_seed(self, seed: Optional[int]) -> None:
        r"""
        Reseed the default generator.

        Parameters
        ----------
        seed : int or None
            Seed for :class:`numpy.random.SeedSequence`. ``None`` draws entropy
            from the OS.
        """
        self.seed_seq = np.random.SeedSequence(seed)
        self.rng = np.random.default_rng(self.seed_seq)

    def configure(self, params: SimulationParameters) -> None:
        r"""
        Change the needle geometry.

        Counts gathered under one geometry do not estimate :math:`\pi` under
        another, so if the geometry actually changes after trials were recorded,
        the counters, history and ring are cleared. The scheduler state is kept.

        Raises
        ------
        InvalidParameter
            If ``params`` is invalid. Nothing is changed in that case.
        """
        check_parameters(params, self.config.allow_long_needle)
        if params == self._params:
            return
        had_trials = self._estimator.total_trials > 0
        self._params = params
        self._estimator.params = params
        if had_trials:
            self._clear_results()
        logger.info(
            f"Configured needle_length={params.needle_length}, line_spacing={params.line_spacing}"
            + (" (results cleared)" if had_trials else "")
        )

    def set_rate(self, rate: float) -> None:
        """Change the number of trials per second. Raises :class:`InvalidParameter` if not positive."""
        self._scheduler.rate = rate

    # -- lifecycle -------------------------------------------------------------

    def start(self, now_ms: Optional[float] = None) -> None:
        """Start or resume; a no-op when already running."""
        if not self._scheduler.start(now_ms):
            return
        logger.info(f"Simulation started at {self.rate:g} trials/s")
        self._scheduler.schedule_next(self._on_frame)

    def pause(self) -> None:
        if self._scheduler.pause():
            logger.info(f"Simulation paused after {self._estimator.total_trials} trials")

    def reset(self) -> None:
        """Stop and clear counters, history and ring."""
        self._scheduler.reset()
        self._clear_results()
        logger.info("Simulation reset")

    def _clear_results(self) -> None:
        self._estimator.reset()
        self._ring.clear()
        self._history.reset()
        self._last_chart_ms = None

    # -- frame handling --------------------------------------------------------

    def _on_frame(self, now_ms: float) -> None:
        self._scheduler.frame_fired()
        self.tick(now_ms)

    def tick(self, now_ms: float) -> TickResult:
        r"""
        Advance the session to ``now_ms``.

        Returns
        -------
        TickResult
            Drops executed this frame and the counters afterwards. Empty when
            the session is not running.
        """
        if not self._scheduler.is_running:
            return TickResult(outcomes=(), state=self.state)
        n = self._scheduler.advance(now_ms)
        outcomes = self._run(n)
        appended = self._maybe_record_history(now_ms)
        self._scheduler.schedule_next(self._on_frame)
        if n:
            logger.debug(f"Frame at {now_ms:.1f} ms ran {n} trials")
        return TickResult(outcomes=outcomes, state=self.state, history_appended=appended)

    def run_trials(self, n: int) -> tuple[TrialOutcome, ...]:
        r"""
        Run ``n`` trials immediately, outside the frame loop.

        The scheduler and history are left untouched; the estimator and ring
        are updated as in :meth:`tick`.
        """
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise InvalidParameter(f"n must be a non-negative integer, got {n!r}")
        return self._run(n)

    def _run(self, n: int) -> tuple[TrialOutcome, ...]:
        outcomes = []
        for _ in range(n):
            outcome = evaluate_params(self._params, self.rng)
            self._estimator.record(outcome)
            self._ring.push(NeedleSample(outcome, float(self.rng.random()), float(self.rng.random())))
            outcomes.append(outcome)
        return tuple(outcomes)

    def _maybe_record_history(self, now_ms: float) -> bool:
        if self._estimator.total_trials == 0:
            return False
        if self._last_chart_ms is not None and now_ms - self._last_chart_ms < self.config.chart_interval_ms:
            return False
        self._last_chart_ms = now_ms
        estimate = self._estimator.estimate()
        if estimate <= 0:
            return False
        self._history.maybe_append(self._estimator.total_trials, estimate, self._estimator.total_crossings)
        return True

    # -- readings and exports --------------------------------------------------

    def current_estimate(self) -> EstimateReading:
        estimate = self._estimator.estimate()
        if estimate <= 0:
            return EstimateReading(value=None, error_pct=None)
        return EstimateReading(value=estimate, error_pct=relative_error_pct(estimate))

    def export_snapshot(self) -> snapshot_mod.Snapshot:
        """Capture geometry, rate, counters and every ``snapshot_stride``-th history point."""
        snap = snapshot_mod.encode(
            self._params,
            self.rate,
            self.state,
            self._history.points(),
            stride=self.config.snapshot_stride,
        )
        logger.info(f"Exported snapshot at {snap.total_trials} trials ({len(snap.history)} history points)")
        return snap

    def import_snapshot(self, snapshot: Optional[snapshot_mod.Snapshot]) -> None:
        r"""
        Restore a session from a snapshot.

        The session is paused first. Geometry, rate and counters come back
        exactly; the history is rebuilt from the stored subsample and the ring
        starts empty.

        Raises
        ------
        DecodeError
            If the snapshot is absent, malformed, or its geometry is rejected by
            the long-needle policy. The session is left untouched.
        """
        try:
            restored = snapshot_mod.decode(snapshot)
            check_parameters(restored.params, self.config.allow_long_needle)
        except DecodeError as e:
            logger.warning(f"Rejected snapshot: {e}")
            raise
        except InvalidParameter as e:
            logger.warning(f"Rejected snapshot: {e}")
            raise DecodeError(str(e)) from e

        self.pause()
        self._params = restored.params
        self._estimator.params = restored.params
        self._estimator.restore(restored.state.total_trials, restored.state.total_crossings)
        self._scheduler.rate = restored.rate
        self._history.reset()
        self._history.extend(restored.history)
        self._ring.clear()
        self._last_chart_ms = None
        logger.info(
            f"Imported snapshot with {restored.state.total_trials} trials"
            + (f" saved at {restored.saved_at}" if restored.saved_at else "")
        )

    def export_history_as_rows(self, max_rows: Optional[int] = None) -> list[export_mod.HistoryRow]:
        r"""
        History as ``(trial_index, crossings, estimate, error_pct)`` rows.

        Parameters
        ----------
        max_rows : int, optional
            Row cap, reached by uniform stride sampling. Defaults to
            ``config.export_max_rows``.

        Raises
        ------
        EmptyHistoryError
            If no history point has been recorded.
        """
        cap = self.config.export_max_rows if max_rows is None else max_rows
        return export_mod.history_rows(self._history.points(), cap)

    def export_results(self) -> dict:
        """JSON-ready summary: parameters, results and subsampled history."""
        return export_mod.results_document(
            self._params,
            self.state,
            self._estimator.estimate(),
            self._history.points(),
            stride=self.config.snapshot_stride,
        )

    def __repr__(self) -> str:
        reading = self.current_estimate()
        value = "-" if reading.value is None else f"{reading.value:.6f}"
        return (
            f"NeedleSimulation(L={self._params.needle_length:g}, D={self._params.line_spacing:g}, "
            f"trials={self._estimator.total_trials}, pi~{value}, state={self.scheduler_state.value})"
        )
