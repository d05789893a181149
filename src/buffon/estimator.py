r"""
Running estimate of :math:`\pi` from cumulative drop and crossing counts.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from .core import EstimatorState, InvalidParameter, SimulationParameters, TrialOutcome
from .geometry import estimator_constant

logger = logging.getLogger(__name__)

__all__ = ["RunningEstimator", "relative_error_pct"]

NO_ESTIMATE = 0.0


def relative_error_pct(estimate: float) -> Optional[float]:
    r"""
    Percent error :math:`100\,|\hat\pi - \pi| / \pi`.

    Returns ``None`` for the "no estimate yet" sentinel (``0.0``).
    """
    if estimate <= NO_ESTIMATE:
        return None
    return abs(estimate - math.pi) / math.pi * 100.0


class RunningEstimator:
    r"""
    Accumulate drops and derive the point estimate on demand.

    The two counters only ever grow between resets and are always replaced
    together, so :attr:`state` never shows one of them reset without the other.

    Parameters
    ----------
    params : SimulationParameters
        Geometry used to turn counts into :math:`\hat\pi`.

    Examples
    --------
    >>> est = RunningEstimator(SimulationParameters(1.0, 2.0))
    >>> est.estimate()
    0.0
    >>> est.record(TrialOutcome(0.3, 1.57, True))
    >>> est.estimate()
    1.0
    """

    def __init__(self, params: SimulationParameters):
        self._params = params
        self._constant = estimator_constant(params.needle_length, params.line_spacing)
        self._counts = (0, 0)

    @property
    def params(self) -> SimulationParameters:
        return self._params

    @params.setter
    def params(self, value: SimulationParameters) -> None:
        self._constant = estimator_constant(value.needle_length, value.line_spacing)
        self._params = value

    @property
    def total_trials(self) -> int:
        return self._counts[0]

    @property
    def total_crossings(self) -> int:
        return self._counts[1]

    @property
    def state(self) -> EstimatorState:
        trials, crossings = self._counts
        return EstimatorState(total_trials=trials, total_crossings=crossings)

    def record(self, outcome: TrialOutcome) -> None:
        """Count one drop."""
        trials, crossings = self._counts
        self._counts = (trials + 1, crossings + 1 if outcome.crosses else crossings)

    def estimate(self) -> float:
        r"""
        Current estimate of :math:`\pi`.

        Returns
        -------
        float
            ``0.0`` while no crossing has been recorded. That value means
            "no estimate available" and must not be read as an approximation.
            Otherwise :math:`c\,n/h`, i.e. :math:`2Ln/(Dh)` for short needles.
        """
        trials, crossings = self._counts
        if crossings == 0:
            return NO_ESTIMATE
        return self._constant * trials / crossings

    def error_pct(self) -> Optional[float]:
        """Percent error of :meth:`estimate`, or ``None`` before the first crossing."""
        return relative_error_pct(self.estimate())

    def reset(self) -> None:
        self._counts = (0, 0)

    def restore(self, total_trials: int, total_crossings: int) -> None:
        """Replace both counters, e.g. when loading a snapshot."""
        if total_trials < 0 or total_crossings < 0:
            raise InvalidParameter("counters must be non-negative")
        if total_crossings > total_trials:
            raise InvalidParameter(
                f"total_crossings ({total_crossings}) exceeds total_trials ({total_trials})"
            )
        self._counts = (int(total_trials), int(total_crossings))
        logger.debug(f"Estimator restored to {total_trials} trials / {total_crossings} crossings")
