import itertools

import numpy as np
import pytest

from buffon import ManualFrameLoop, NeedleSimulation, SimulationConfig, SimulationParameters


class ScriptedSource:
    """Randomness source that replays fixed values instead of drawing them."""

    def __init__(self, uniforms, randoms=(0.5,)):
        self._uniforms = itertools.cycle(uniforms)
        self._randoms = itertools.cycle(randoms)
        self.calls = []

    def uniform(self, low=0.0, high=1.0):
        value = next(self._uniforms)
        self.calls.append((low, high))
        assert low <= value <= high
        return value

    def random(self):
        return next(self._randoms)


class RecordingFrames:
    """Frame requester that keeps callbacks and ignores cancellation.

    Mimics a frame that was already dispatched by the host loop when
    the session got paused.
    """

    def __init__(self):
        self.callbacks = []
        self.cancelled = []

    def request(self, callback):
        self.callbacks.append(callback)
        return len(self.callbacks)

    def cancel(self, handle):
        self.cancelled.append(handle)


@pytest.fixture
def params():
    """Short needle: L=1, D=2."""
    return SimulationParameters(needle_length=1.0, line_spacing=2.0)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def scripted():
    """Factory for scripted randomness sources."""
    return ScriptedSource


@pytest.fixture
def frame_loop():
    return ManualFrameLoop()


@pytest.fixture
def recording_frames():
    return RecordingFrames()


@pytest.fixture
def simulation(frame_loop):
    """Seeded session driven by a manual frame loop, 1000 trials/s."""
    config = SimulationConfig(
        params=SimulationParameters(needle_length=1.0, line_spacing=1.0),
        rate=1000.0,
        seed=42,
    )
    return NeedleSimulation(config, frames=frame_loop)
