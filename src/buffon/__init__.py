"""buffon package public API."""

from .buffers import HistorySeries, NeedleRing
from .core import (
    BuffonError,
    DecodeError,
    EmptyHistoryError,
    EstimatorState,
    HistoryPoint,
    InvalidParameter,
    NeedleSample,
    RandomSource,
    SimulationConfig,
    SimulationParameters,
    TrialOutcome,
)
from .estimator import RunningEstimator, relative_error_pct
from .export import HistoryRow, history_rows, rows_to_csv
from .geometry import estimator_constant, evaluate
from .scheduler import FrameRequester, ManualFrameLoop, SchedulerState, TrialScheduler
from .simulation import EstimateReading, NeedleSimulation, TickResult
from .snapshot import Snapshot

__all__ = [
    "NeedleSimulation",
    "SimulationConfig",
    "SimulationParameters",
    "TrialOutcome",
    "NeedleSample",
    "EstimatorState",
    "HistoryPoint",
    "RandomSource",
    "evaluate",
    "estimator_constant",
    "RunningEstimator",
    "relative_error_pct",
    "NeedleRing",
    "HistorySeries",
    "SchedulerState",
    "TrialScheduler",
    "FrameRequester",
    "ManualFrameLoop",
    "Snapshot",
    "HistoryRow",
    "history_rows",
    "rows_to_csv",
    "TickResult",
    "EstimateReading",
    "BuffonError",
    "InvalidParameter",
    "DecodeError",
    "EmptyHistoryError",
]

__version__ = "0.1.0"
