"""
Tabular and document exports of a session.

Everything here produces in-memory values (rows, CSV text, JSON-ready dicts).
Writing them to a file or download is left to the caller.
"""

from __future__ import annotations

import csv
import io
import math
from datetime import datetime, timezone
from typing import Iterable, NamedTuple, Optional, Sequence, TypeVar

from .core import EmptyHistoryError, EstimatorState, HistoryPoint, InvalidParameter, SimulationParameters
from .estimator import relative_error_pct
from .snapshot import DEFAULT_STRIDE, subsample

__all__ = [
    "HistoryRow",
    "CSV_HEADER",
    "stride_sample",
    "history_rows",
    "rows_to_csv",
    "results_document",
]

T = TypeVar("T")

CSV_HEADER = ("trials", "crossings", "pi_estimate", "error_pct")


class HistoryRow(NamedTuple):
    """One exported history row. ``error_pct`` is ``None`` when no estimate existed."""

    trial_index: int
    crossings: int
    estimate: float
    error_pct: Optional[float]


def stride_sample(items: Sequence[T], max_rows: int) -> list[T]:
    r"""
    Pick at most ``max_rows`` items with a uniform stride.

    The stride is :math:`\lceil n / \text{max\_rows} \rceil`, starting at the
    first item, so the output is deterministic and evenly spaced.

    Examples
    --------
    >>> stride_sample(list(range(10)), 4)
    [0, 3, 6, 9]
    """
    if isinstance(max_rows, bool) or not isinstance(max_rows, int) or max_rows < 1:
        raise InvalidParameter(f"max_rows must be a positive integer, got {max_rows!r}")
    step = max(1, math.ceil(len(items) / max_rows))
    return list(items[::step])


def history_rows(points: Sequence[HistoryPoint], max_rows: int = 1000) -> list[HistoryRow]:
    r"""
    Turn a convergence series into export rows.

    Raises
    ------
    EmptyHistoryError
        If ``points`` is empty.
    InvalidParameter
        If ``max_rows`` is not a positive integer.
    """
    if len(points) == 0:
        raise EmptyHistoryError("no history recorded yet")
    return [
        HistoryRow(p.trial_index, p.crossings, p.estimate, relative_error_pct(p.estimate))
        for p in stride_sample(points, max_rows)
    ]


def rows_to_csv(rows: Iterable[HistoryRow]) -> str:
    """Render rows as CSV text with :data:`CSV_HEADER` as the first line."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in rows:
        writer.writerow([
            row.trial_index,
            row.crossings,
            f"{row.estimate:.8f}",
            "" if row.error_pct is None else f"{row.error_pct:.6f}",
        ])
    return buf.getvalue()


def results_document(
    params: SimulationParameters,
    state: EstimatorState,
    estimate: float,
    history: Sequence[HistoryPoint],
    *,
    stride: int = DEFAULT_STRIDE,
    exported_at: Optional[str] = None,
) -> dict:
    r"""
    Build a JSON-ready summary of a session.

    ``piEstimate`` and ``errorRate`` are ``None`` while no crossing has been
    recorded. The history is subsampled with ``stride`` like a snapshot.
    """
    has_estimate = estimate > 0
    return {
        "parameters": {
            "needleLength": params.needle_length,
            "lineSpacing": params.line_spacing,
        },
        "results": {
            "totalThrows": state.total_trials,
            "crossings": state.total_crossings,
            "piEstimate": estimate if has_estimate else None,
            "actualPi": math.pi,
            "errorRate": relative_error_pct(estimate) if has_estimate else None,
        },
        "history": [
            {"throws": p.trial_index, "crossings": p.crossings, "pi": p.estimate}
            for p in subsample(list(history), stride)
        ],
        "exportedAt": exported_at or datetime.now(timezone.utc).isoformat(),
    }
