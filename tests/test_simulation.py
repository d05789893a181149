import math

import pytest

from buffon import (
    DecodeError,
    EmptyHistoryError,
    InvalidParameter,
    NeedleSimulation,
    SchedulerState,
    SimulationConfig,
    SimulationParameters,
)
from buffon.snapshot import Snapshot, dumps, loads, to_dict


def drive(loop, start, stop, step):
    """Serve frames at ``start + step, ..., stop``."""
    t = start
    while t < stop:
        t += step
        loop.run_frame(t)


class TestConfiguration:
    """Test configure and set_rate"""

    def test_defaults(self):
        sim = NeedleSimulation()
        assert sim.params == SimulationParameters(1.0, 2.0)
        assert sim.rate == 100.0
        assert sim.ring.capacity == 500
        assert sim.history.threshold == 200
        assert sim.scheduler_state is SchedulerState.IDLE

    def test_configure_replaces_params(self, simulation):
        simulation.configure(SimulationParameters(0.5, 1.0))
        assert simulation.params == SimulationParameters(0.5, 1.0)

    def test_configure_clears_results_on_change(self, simulation):
        simulation.run_trials(100)
        simulation.configure(SimulationParameters(0.5, 1.0))
        assert simulation.state.total_trials == 0
        assert len(simulation.ring) == 0

    def test_configure_same_params_keeps_results(self, simulation):
        simulation.run_trials(100)
        simulation.configure(SimulationParameters(1.0, 1.0))
        assert simulation.state.total_trials == 100

    def test_long_needle_rejected_when_disallowed(self):
        sim = NeedleSimulation(SimulationConfig(allow_long_needle=False, seed=1))
        sim.run_trials(10)
        with pytest.raises(InvalidParameter, match="exceeds"):
            sim.configure(SimulationParameters(3.0, 2.0))
        assert sim.params == SimulationParameters(1.0, 2.0)
        assert sim.state.total_trials == 10

    def test_long_needle_accepted_by_default(self, simulation):
        simulation.configure(SimulationParameters(3.0, 2.0))
        assert simulation.params.is_long_needle

    def test_config_rejects_long_needle(self):
        with pytest.raises(InvalidParameter):
            SimulationConfig(params=SimulationParameters(3.0, 2.0), allow_long_needle=False)

    def test_invalid_params_object(self, simulation):
        with pytest.raises(InvalidParameter):
            simulation.configure((1.0, 2.0))

    def test_set_rate(self, simulation):
        simulation.set_rate(50.0)
        assert simulation.rate == 50.0
        with pytest.raises(InvalidParameter):
            simulation.set_rate(-1.0)
        assert simulation.rate == 50.0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"rate": 0.0},
            {"ring_capacity": 0},
            {"history_threshold": -5},
            {"snapshot_stride": 0},
            {"export_max_rows": 0},
            {"chart_interval_ms": -1.0},
        ],
    )
    def test_config_validation(self, overrides):
        with pytest.raises(InvalidParameter):
            SimulationConfig().with_overrides(**overrides)


class TestLifecycle:
    """Test start, pause, reset and ticking"""

    def test_frames_run_trials(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        assert simulation.is_running
        drive(frame_loop, 0.0, 100.0, 10.0)
        assert simulation.state.total_trials == 100

    def test_tick_returns_outcomes(self, simulation):
        simulation.start(now_ms=0.0)
        result = simulation.tick(25.0)
        assert len(result.outcomes) == 25
        assert result.state.total_trials == 25
        assert result.state.total_crossings == sum(o.crosses for o in result.outcomes)

    def test_tick_when_idle_is_empty(self, simulation):
        result = simulation.tick(1000.0)
        assert result.outcomes == ()
        assert result.state.total_trials == 0

    def test_pause_stops_trials(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        drive(frame_loop, 0.0, 50.0, 10.0)
        simulation.pause()
        assert simulation.scheduler_state is SchedulerState.PAUSED
        assert frame_loop.pending == 0
        before = simulation.state
        drive(frame_loop, 50.0, 500.0, 10.0)
        assert simulation.tick(600.0).outcomes == ()
        assert simulation.state == before

    def test_stale_frame_after_pause_is_harmless(self, recording_frames):
        """A frame already handed to the host loop cannot run trials after pause"""
        sim = NeedleSimulation(SimulationConfig(rate=1000.0, seed=3), frames=recording_frames)
        sim.start(now_ms=0.0)
        stale = recording_frames.callbacks[-1]
        sim.pause()
        assert recording_frames.cancelled
        stale(1000.0)
        assert sim.state.total_trials == 0

    def test_resume_does_not_credit_paused_time(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        drive(frame_loop, 0.0, 20.0, 10.0)
        simulation.pause()
        simulation.start(now_ms=10_000.0)
        frame_loop.run_frame(10_010.0)
        assert simulation.state.total_trials == 30

    def test_start_twice_is_noop(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        simulation.start(now_ms=0.0)
        assert frame_loop.pending == 1

    def test_reset(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        drive(frame_loop, 0.0, 200.0, 10.0)
        simulation.reset()
        assert simulation.scheduler_state is SchedulerState.IDLE
        assert simulation.state.total_trials == 0
        assert simulation.state.total_crossings == 0
        assert len(simulation.ring) == 0
        assert len(simulation.history) == 0
        assert frame_loop.pending == 0

    def test_ring_tracks_recent_trials(self, frame_loop):
        sim = NeedleSimulation(SimulationConfig(rate=1000.0, ring_capacity=50, seed=5), frames=frame_loop)
        sim.start(now_ms=0.0)
        drive(frame_loop, 0.0, 200.0, 20.0)
        assert sim.state.total_trials == 200
        assert len(sim.ring) == 50
        for s in sim.ring:
            assert 0.0 <= s.x < 1.0 and 0.0 <= s.y < 1.0

    def test_run_trials(self, simulation):
        outcomes = simulation.run_trials(10_000)
        h = simulation.state.total_crossings
        assert len(outcomes) == 10_000
        assert simulation.estimator.estimate() == pytest.approx(2 * 1.0 * 10_000 / (1.0 * h))
        assert len(simulation.history) == 0
        with pytest.raises(InvalidParameter):
            simulation.run_trials(-1)

    def test_seed_reproducibility(self):
        a = NeedleSimulation(SimulationConfig(seed=9))
        b = NeedleSimulation(SimulationConfig(seed=9))
        assert a.run_trials(200) == b.run_trials(200)

    def test_injected_randomness(self, scripted):
        sim = NeedleSimulation(rng=scripted([0.3, math.pi / 2]))
        (outcome,) = sim.run_trials(1)
        assert outcome.crosses
        assert sim.current_estimate().value == pytest.approx(1.0)


class TestHistoryThrottle:
    """Test the wall-clock throttle on history appends"""

    def test_at_most_one_point_per_interval(self, frame_loop):
        sim = NeedleSimulation(SimulationConfig(params=SimulationParameters(1.0, 1.0), rate=10_000.0, seed=1),
                               frames=frame_loop)
        sim.start(now_ms=0.0)
        drive(frame_loop, 0.0, 200.0, 10.0)
        assert sim.state.total_trials == 2000
        assert [p.trial_index for p in sim.history] == [100, 600, 1100, 1600]

    def test_history_grows_with_time_not_trials(self, frame_loop):
        sim = NeedleSimulation(SimulationConfig(rate=100_000.0, seed=2), frames=frame_loop)
        sim.start(now_ms=0.0)
        drive(frame_loop, 0.0, 1000.0, 10.0)
        assert sim.state.total_trials == 100_000
        assert len(sim.history) == 20

    def test_no_point_without_estimate(self, scripted, frame_loop):
        sim = NeedleSimulation(SimulationConfig(rate=1000.0), rng=scripted([0.9, 0.1]), frames=frame_loop)
        sim.start(now_ms=0.0)
        drive(frame_loop, 0.0, 200.0, 50.0)
        assert sim.state.total_trials == 200
        assert sim.state.total_crossings == 0
        assert len(sim.history) == 0
        assert sim.current_estimate().value is None
        assert sim.current_estimate().error_pct is None

    def test_history_points_carry_crossings(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        drive(frame_loop, 0.0, 500.0, 50.0)
        for p in simulation.history:
            assert 0 < p.crossings <= p.trial_index
            assert p.estimate == pytest.approx(2.0 * p.trial_index / p.crossings)


class TestSnapshots:
    """Test export_snapshot / import_snapshot on a live session"""

    def test_round_trip(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        drive(frame_loop, 0.0, 3000.0, 25.0)
        snap = simulation.export_snapshot()

        other = NeedleSimulation(SimulationConfig(seed=0))
        other.import_snapshot(loads(dumps(snap)))
        assert other.params == simulation.params
        assert other.rate == simulation.rate
        assert other.state == simulation.state
        assert 0 < len(other.history) <= len(simulation.history)
        assert len(other.ring) == 0
        assert other.current_estimate() == simulation.current_estimate()

    def test_import_pauses(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        drive(frame_loop, 0.0, 100.0, 10.0)
        snap = simulation.export_snapshot()
        simulation.import_snapshot(snap)
        assert simulation.scheduler_state is SchedulerState.PAUSED
        assert frame_loop.pending == 0

    def test_snapshot_skips_ring(self, simulation):
        simulation.run_trials(50)
        snap = simulation.export_snapshot()
        assert not hasattr(snap, "ring")
        assert snap.history == ()

    def test_bad_snapshot_leaves_state(self, simulation):
        simulation.run_trials(100)
        before = simulation.state
        with pytest.raises(DecodeError):
            simulation.import_snapshot(None)
        with pytest.raises(DecodeError):
            simulation.import_snapshot(Snapshot(1.0, 1.0, 100.0, total_trials=1, total_crossings=2))
        assert simulation.state == before
        assert len(simulation.ring) == 100

    def test_out_of_range_speed_leaves_state(self, simulation):
        simulation.run_trials(20)
        document = to_dict(simulation.export_snapshot())
        document["speed"] = 10**400
        with pytest.raises(DecodeError, match="speed"):
            simulation.import_snapshot(document)
        assert simulation.state.total_trials == 20
        assert simulation.rate == 1000.0

    def test_long_needle_snapshot_rejected_when_disallowed(self):
        sim = NeedleSimulation(SimulationConfig(allow_long_needle=False))
        with pytest.raises(DecodeError, match="exceeds"):
            sim.import_snapshot(Snapshot(3.0, 2.0, 100.0, 10, 5))


class TestExports:
    """Test tabular and document exports"""

    def test_rows_require_history(self, simulation):
        with pytest.raises(EmptyHistoryError):
            simulation.export_history_as_rows()

    def test_rows(self, simulation, frame_loop):
        simulation.start(now_ms=0.0)
        drive(frame_loop, 0.0, 5000.0, 50.0)
        rows = simulation.export_history_as_rows(max_rows=10)
        assert 0 < len(rows) <= 10
        indices = [r.trial_index for r in rows]
        assert indices == sorted(indices)
        for r in rows:
            assert r.error_pct == pytest.approx(abs(r.estimate - math.pi) / math.pi * 100)

    def test_results_document(self, simulation):
        simulation.run_trials(500)
        doc = simulation.export_results()
        assert doc["results"]["totalThrows"] == 500
        assert doc["results"]["piEstimate"] == pytest.approx(simulation.current_estimate().value)

    def test_repr(self, simulation):
        assert "trials=0" in repr(simulation)
