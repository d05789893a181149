r"""

buffon.core
===========

Core value types, configuration and errors shared by the needle simulator.

This module provides:

* :class:`~buffon.core.SimulationParameters` – needle length and line spacing.
* :class:`~buffon.core.TrialOutcome` – one needle drop.
* :class:`~buffon.core.NeedleSample` – a drop plus its on-screen placement.
* :class:`~buffon.core.EstimatorState` – immutable view of the two counters.
* :class:`~buffon.core.HistoryPoint` – one point of the convergence chart.
* :class:`~buffon.core.SimulationConfig` – tunables for a session.
* :class:`~buffon.core.RandomSource` – the randomness capability.

Errors
------

Every error raised by the package derives from :class:`BuffonError`, which is a
:class:`ValueError`, so callers that already guard against bad input keep
working:

* :class:`InvalidParameter` – rejected configuration, raised before any mutation.
* :class:`DecodeError` – a snapshot that is absent, malformed or inconsistent.
* :class:`EmptyHistoryError` – tabular export with nothing recorded.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Optional, Protocol

logger = logging.getLogger("buffon")  # pragma: no cover
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class BuffonError(ValueError):
    """Base class for errors reported by :mod:`buffon`."""


class InvalidParameter(BuffonError):
    """A length, spacing, rate or capacity failed validation."""


class DecodeError(BuffonError):
    """A snapshot could not be turned back into simulation state."""


class EmptyHistoryError(BuffonError):
    """Tabular export was requested before any history point was recorded."""


def require_positive(name: str, value: float) -> float:
    r"""
    Return ``value`` as a float if it is finite and strictly positive.

    Parameters
    ----------
    name : str
        Field name used in the error message.
    value : float
        Candidate value.

    Returns
    -------
    float

    Raises
    ------
    InvalidParameter
        If ``value`` is not a real number, not finite, or ``<= 0``.
    """
    if isinstance(value, bool):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    try:
        v = float(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidParameter(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(v) or v <= 0.0:
        raise InvalidParameter(f"{name} must be positive and finite, got {value!r}")
    return v


class RandomSource(Protocol):
    r"""
    Capability interface for drawing uniform variates.

    :class:`numpy.random.Generator` satisfies this protocol, which is what the
    simulator uses by default. Tests substitute a scripted source to pin the
    offset and angle of individual drops.
    """

    def uniform(self, low: float = 0.0, high: float = 1.0) -> float:
        """Draw one value uniformly from ``[low, high)``."""

    def random(self) -> float:
        """Draw one value uniformly from ``[0, 1)``."""


@dataclass(frozen=True)
class SimulationParameters:
    r"""
    Geometry of the experiment.

    Attributes
    ----------
    needle_length : float
        Needle length :math:`L > 0`.
    line_spacing : float
        Distance :math:`D > 0` between neighbouring ruled lines.

    Notes
    -----
    The classical estimator :math:`\hat\pi = 2Ln / (Dh)` assumes the short
    needle case :math:`L \le D`. Longer needles are handled by
    :func:`buffon.geometry.estimator_constant`.
    """

    needle_length: float = 1.0
    line_spacing: float = 2.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "needle_length", require_positive("needle_length", self.needle_length))
        object.__setattr__(self, "line_spacing", require_positive("line_spacing", self.line_spacing))

    @property
    def is_long_needle(self) -> bool:
        """``True`` when the needle is longer than the line spacing."""
        return self.needle_length > self.line_spacing


@dataclass(frozen=True)
class TrialOutcome:
    r"""
    Result of a single needle drop.

    Attributes
    ----------
    offset : float
        Distance from the needle's centre to the nearest line, in ``[0, D/2]``.
    angle : float
        Angle between the needle and the lines, in ``[0, π)``.
    crosses : bool
        Whether the needle touches a line.
    """

    offset: float
    angle: float
    crosses: bool


@dataclass(frozen=True)
class NeedleSample:
    """A drop kept for drawing. ``x`` and ``y`` are placement fractions in ``[0, 1)``."""

    outcome: TrialOutcome
    x: float
    y: float


@dataclass(frozen=True)
class EstimatorState:
    """Counter snapshot handed to the rendering layer."""

    total_trials: int = 0
    total_crossings: int = 0


@dataclass(frozen=True)
class HistoryPoint:
    r"""
    One point of the convergence series.

    Attributes
    ----------
    trial_index : int
        Cumulative number of trials when the point was taken.
    estimate : float
        Estimate of :math:`\pi` at that moment.
    crossings : int
        Cumulative number of crossings at that moment.
    """

    trial_index: int
    estimate: float
    crossings: int = 0


@dataclass
class SimulationConfig:
    r"""
    Tunables for a :class:`~buffon.simulation.NeedleSimulation` session.

    Attributes
    ----------
    params : SimulationParameters
        Initial needle geometry.
    rate : float, default ``100.0``
        Target number of trials per second of wall-clock time.
    ring_capacity : int, default ``500``
        Number of recent drops kept for drawing.
    history_threshold : int, default ``200``
        History length above which the series is halved.
    chart_interval_ms : float, default ``50.0``
        Minimum wall-clock gap between two history points.
    snapshot_stride : int, default ``10``
        Keep every N-th history point when encoding a snapshot.
    export_max_rows : int, default ``1000``
        Default row cap for tabular export.
    allow_long_needle : bool, default ``True``
        Accept :math:`L > D` and apply the long-needle correction. When
        ``False``, such parameters are rejected with :class:`InvalidParameter`.
    seed : int, optional
        Seed for the default :class:`numpy.random.Generator`.
    """

    params: SimulationParameters = field(default_factory=SimulationParameters)
    rate: float = 100.0
    ring_capacity: int = 500
    history_threshold: int = 200
    chart_interval_ms: float = 50.0
    snapshot_stride: int = 10
    export_max_rows: int = 1000
    allow_long_needle: bool = True
    seed: Optional[int] = None

    def with_overrides(self, **changes) -> "SimulationConfig":
        """Return a validated copy with selected fields replaced."""
        return replace(self, **changes)

    def __post_init__(self) -> None:
        self.rate = require_positive("rate", self.rate)
        if self.chart_interval_ms < 0 or not math.isfinite(self.chart_interval_ms):
            raise InvalidParameter("chart_interval_ms must be a non-negative finite number")
        for name in ("ring_capacity", "history_threshold", "snapshot_stride", "export_max_rows"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidParameter(f"{name} must be a positive integer, got {value!r}")
        check_parameters(self.params, self.allow_long_needle)


def check_parameters(params: SimulationParameters, allow_long_needle: bool = True) -> SimulationParameters:
    """Validate ``params`` against the long-needle policy and return it unchanged."""
    if not isinstance(params, SimulationParameters):
        raise InvalidParameter(f"expected SimulationParameters, got {type(params).__name__}")
    if params.is_long_needle and not allow_long_needle:
        raise InvalidParameter(
            f"needle_length ({params.needle_length}) exceeds line_spacing ({params.line_spacing})"
        )
    return params


__all__ = [
    "BuffonError",
    "InvalidParameter",
    "DecodeError",
    "EmptyHistoryError",
    "RandomSource",
    "SimulationParameters",
    "TrialOutcome",
    "NeedleSample",
    "EstimatorState",
    "HistoryPoint",
    "SimulationConfig",
    "check_parameters",
    "require_positive",
]
