r"""
Snapshot codec.

A :class:`Snapshot` holds the minimal reproducible state of a session: the
geometry, the trial rate, both counters and a subsample of the convergence
history. The recent-needle ring is deliberately left out; it only exists for
drawing.

The codec is independent of the storage medium. :func:`to_dict` /
:func:`from_dict` map a snapshot to a JSON-compatible document and
:func:`dumps` / :func:`loads` add the JSON text layer. Writing the text
somewhere is the caller's business.

Document layout
---------------

.. code-block:: json

    {
      "version": 1,
      "needleLength": 1.0,
      "lineSpacing": 2.0,
      "speed": 100,
      "totalThrows": 12000,
      "crossings": 3811,
      "history": [{"throws": 42, "crossings": 13, "pi": 3.2307}],
      "savedAt": "2024-03-14T15:09:26+00:00"
    }

Decoding never invents a number: a required field that is absent, of the wrong
type, non-finite or out of range raises :class:`~buffon.core.DecodeError`.
``history``, ``version`` and ``savedAt`` may be omitted.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

from .core import (
    DecodeError,
    EstimatorState,
    HistoryPoint,
    InvalidParameter,
    SimulationParameters,
    require_positive,
)

logger = logging.getLogger(__name__)

__all__ = [
    "SNAPSHOT_VERSION",
    "Snapshot",
    "RestoredState",
    "subsample",
    "encode",
    "decode",
    "to_dict",
    "from_dict",
    "dumps",
    "loads",
]

SNAPSHOT_VERSION = 1
DEFAULT_STRIDE = 10
# Counts above 2**53 no longer map one-to-one onto floats.
MAX_COUNT = 2**53


@dataclass(frozen=True)
class Snapshot:
    r"""
    Serialized copy of a session.

    Attributes
    ----------
    needle_length : float
        Needle length :math:`L`.
    line_spacing : float
        Line spacing :math:`D`.
    rate : float
        Trials per second.
    total_trials : int
        Number of drops.
    total_crossings : int
        Number of drops touching a line.
    history : tuple of HistoryPoint
        Subsampled convergence series, oldest first.
    saved_at : str, optional
        ISO-8601 timestamp, informational only.
    version : int
        Document layout version.
    """

    needle_length: float
    line_spacing: float
    rate: float
    total_trials: int
    total_crossings: int
    history: tuple[HistoryPoint, ...] = ()
    saved_at: Optional[str] = None
    version: int = SNAPSHOT_VERSION


@dataclass(frozen=True)
class RestoredState:
    """Validated state recovered from a :class:`Snapshot`."""

    params: SimulationParameters
    rate: float
    state: EstimatorState
    history: tuple[HistoryPoint, ...]
    saved_at: Optional[str] = None


def subsample(points: Sequence[HistoryPoint], stride: int = DEFAULT_STRIDE) -> tuple[HistoryPoint, ...]:
    """Keep the points whose position is a multiple of ``stride``."""
    if isinstance(stride, bool) or not isinstance(stride, int) or stride < 1:
        raise InvalidParameter(f"stride must be a positive integer, got {stride!r}")
    return tuple(points[::stride])


def encode(
    params: SimulationParameters,
    rate: float,
    state: EstimatorState,
    history: Iterable[HistoryPoint],
    *,
    stride: int = DEFAULT_STRIDE,
    saved_at: Optional[str] = None,
) -> Snapshot:
    r"""
    Capture a session.

    Parameters
    ----------
    params : SimulationParameters
        Current geometry.
    rate : float
        Current trials per second.
    state : EstimatorState
        Counter snapshot.
    history : iterable of HistoryPoint
        Full convergence series; every ``stride``-th point is kept.
    stride : int, default ``10``
        Subsampling stride for the history.
    saved_at : str, optional
        Timestamp to record. Defaults to the current UTC time.

    Returns
    -------
    Snapshot
    """
    return Snapshot(
        needle_length=params.needle_length,
        line_spacing=params.line_spacing,
        rate=float(rate),
        total_trials=int(state.total_trials),
        total_crossings=int(state.total_crossings),
        history=subsample(list(history), stride),
        saved_at=saved_at or datetime.now(timezone.utc).isoformat(),
    )


def _count(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise DecodeError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise DecodeError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise DecodeError(f"{name} must be non-negative, got {value}")
    if value > MAX_COUNT:
        raise DecodeError(f"{name} exceeds the largest supported count")
    return value


def _real(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"{name} must be a number, got {value!r}")
    try:
        v = float(value)
    except OverflowError:
        raise DecodeError(f"{name} must be finite, got an out-of-range number") from None
    if not math.isfinite(v):
        raise DecodeError(f"{name} must be finite, got {value!r}")
    return v


def _check_history(points: Sequence[HistoryPoint], total_trials: int) -> tuple[HistoryPoint, ...]:
    previous = -1
    checked = []
    for i, p in enumerate(points):
        if not isinstance(p, HistoryPoint):
            raise DecodeError(f"history[{i}] is not a history point")
        index = _count(f"history[{i}].trial_index", p.trial_index)
        crossings = _count(f"history[{i}].crossings", p.crossings)
        estimate = _real(f"history[{i}].estimate", p.estimate)
        if estimate < 0:
            raise DecodeError(f"history[{i}].estimate must be non-negative")
        if crossings > index:
            raise DecodeError(f"history[{i}] has more crossings than trials")
        if index < previous:
            raise DecodeError("history is not ordered by trial index")
        if index > total_trials:
            raise DecodeError(f"history[{i}] lies beyond the recorded trial count")
        previous = index
        checked.append(HistoryPoint(index, estimate, crossings))
    return tuple(checked)


def decode(snapshot: Optional[Snapshot]) -> RestoredState:
    r"""
    Validate a snapshot and recover the session state.

    Parameters
    ----------
    snapshot : Snapshot or mapping
        A :class:`Snapshot`, or a document as produced by :func:`to_dict`.

    Returns
    -------
    RestoredState
        Parameters and counters exactly as saved; the history is the stored
        subsample, so it is sparser than the history at save time.

    Raises
    ------
    DecodeError
        If the snapshot is absent, malformed or internally inconsistent.
    """
    if snapshot is None:
        raise DecodeError("no snapshot to restore")
    if isinstance(snapshot, Mapping):
        snapshot = from_dict(snapshot)
    if not isinstance(snapshot, Snapshot):
        raise DecodeError(f"expected a Snapshot, got {type(snapshot).__name__}")
    if snapshot.version != SNAPSHOT_VERSION:
        raise DecodeError(f"unsupported snapshot version {snapshot.version!r}")

    try:
        params = SimulationParameters(
            needle_length=_real("needle_length", snapshot.needle_length),
            line_spacing=_real("line_spacing", snapshot.line_spacing),
        )
        rate = require_positive("rate", _real("rate", snapshot.rate))
    except InvalidParameter as e:
        raise DecodeError(str(e)) from e

    trials = _count("total_trials", snapshot.total_trials)
    crossings = _count("total_crossings", snapshot.total_crossings)
    if crossings > trials:
        raise DecodeError(f"total_crossings ({crossings}) exceeds total_trials ({trials})")
    if not isinstance(snapshot.history, (list, tuple)):
        raise DecodeError("history must be a list")
    history = _check_history(tuple(snapshot.history), trials)

    return RestoredState(
        params=params,
        rate=rate,
        state=EstimatorState(total_trials=trials, total_crossings=crossings),
        history=history,
        saved_at=snapshot.saved_at,
    )


def to_dict(snapshot: Snapshot) -> dict[str, Any]:
    """Render ``snapshot`` as a JSON-compatible document."""
    return {
        "version": snapshot.version,
        "needleLength": snapshot.needle_length,
        "lineSpacing": snapshot.line_spacing,
        "speed": snapshot.rate,
        "totalThrows": snapshot.total_trials,
        "crossings": snapshot.total_crossings,
        "history": [
            {"throws": p.trial_index, "crossings": p.crossings, "pi": p.estimate}
            for p in snapshot.history
        ],
        "savedAt": snapshot.saved_at,
    }


_REQUIRED = {
    "needleLength": "needle_length",
    "lineSpacing": "line_spacing",
    "speed": "rate",
    "totalThrows": "total_trials",
    "crossings": "total_crossings",
}


def _history_point(i: int, item: Any) -> HistoryPoint:
    if not isinstance(item, Mapping):
        raise DecodeError(f"history[{i}] must be an object")
    missing = [k for k in ("throws", "crossings", "pi") if k not in item]
    if missing:
        raise DecodeError(f"history[{i}] is missing {', '.join(missing)}")
    return HistoryPoint(
        trial_index=_count(f"history[{i}].throws", item["throws"]),
        estimate=_real(f"history[{i}].pi", item["pi"]),
        crossings=_count(f"history[{i}].crossings", item["crossings"]),
    )


def from_dict(data: Mapping[str, Any]) -> Snapshot:
    r"""
    Build a :class:`Snapshot` from a document produced by :func:`to_dict`.

    Raises
    ------
    DecodeError
        If ``data`` is not a mapping, a required key is missing, or a value
        has the wrong type.
    """
    if not isinstance(data, Mapping):
        raise DecodeError(f"snapshot document must be an object, got {type(data).__name__}")
    missing = [key for key in _REQUIRED if key not in data or data[key] is None]
    if missing:
        raise DecodeError(f"snapshot is missing required fields: {', '.join(missing)}")

    raw_history = data.get("history")
    if raw_history is None:
        raw_history = []
    if not isinstance(raw_history, (list, tuple)):
        raise DecodeError("history must be a list")

    saved_at = data.get("savedAt")
    if saved_at is not None and not isinstance(saved_at, str):
        raise DecodeError("savedAt must be a string")

    version = data.get("version", SNAPSHOT_VERSION)
    if isinstance(version, bool) or not isinstance(version, int):
        raise DecodeError(f"version must be an integer, got {version!r}")

    return Snapshot(
        needle_length=_real("needleLength", data["needleLength"]),
        line_spacing=_real("lineSpacing", data["lineSpacing"]),
        rate=_real("speed", data["speed"]),
        total_trials=_count("totalThrows", data["totalThrows"]),
        total_crossings=_count("crossings", data["crossings"]),
        history=tuple(_history_point(i, item) for i, item in enumerate(raw_history)),
        saved_at=saved_at,
        version=version,
    )


def dumps(snapshot: Snapshot, *, indent: Optional[int] = None) -> str:
    """Serialize ``snapshot`` to JSON text."""
    return json.dumps(to_dict(snapshot), indent=indent)


def loads(text: Optional[str]) -> Snapshot:
    """Parse JSON text produced by :func:`dumps`."""
    if text is None or (isinstance(text, str) and not text.strip()):
        raise DecodeError("no saved snapshot")
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"snapshot is not valid JSON: {e}") from e
    return from_dict(data)
