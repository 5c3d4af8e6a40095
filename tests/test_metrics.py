"""Tests for the event-driven KPI collector."""
import pytest

from paxsim.entities import StageKind
from paxsim.metrics import Metrics
from paxsim.queues import Event
from paxsim.simulation import Simulation


class _Agent:
    def __init__(self, kind="passenger", t_spawned=0.0):
        self.kind = kind
        self.t_spawned = t_spawned


def _metrics(warmup=0.0, duration=100.0):
    return Metrics({"sim": {"warmup_seconds": warmup, "duration_seconds": duration}})


class TestNotes:

    def test_warmup_samples_excluded(self):
        M = _metrics(warmup=10.0)
        M.on_event(Event(5.0, "spawned", {"agent": _Agent()}))
        M.on_event(Event(15.0, "spawned", {"agent": _Agent()}))
        assert M.spawned == 1

    def test_done_all_tracks_time_in_system_and_raw_series(self):
        M = _metrics(warmup=10.0)
        M.on_event(Event(8.0, "done_all", {"agent": _Agent(t_spawned=1.0), "stage": StageKind.BOARDING}))
        M.on_event(Event(40.0, "done_all", {"agent": _Agent(t_spawned=10.0), "stage": StageKind.BOARDING}))
        assert M.completed == 1
        assert M.system_times == [30.0]
        assert [p["completed_total"] for p in M.time_series] == [1, 2]

    def test_unknown_events_ignored(self):
        M = _metrics()
        M.on_event(Event(1.0, "position", {"agent": None}))
        assert M.summary()["completed"] == 0

    def test_attempt_and_wait_aggregation(self):
        M = _metrics()
        sec = StageKind.SECURITY
        for ok in (False, False, True):
            M.on_event(Event(1.0, "attempt", {"agent": None, "stage": sec, "chance": 0.3,
                                              "roll": 0.5, "success": ok}))
        M.on_event(Event(2.0, "stage_done", {"agent": None, "stage": sec}))
        M.on_event(Event(2.0, "processing", {"agent": None, "stage": sec, "wait": 4.0}))
        M.on_event(Event(3.0, "processing", {"agent": None, "stage": sec, "wait": 2.0}))
        res = M.summary()
        assert res["attempts_by_stage"] == {"security": 3}
        assert res["failed_attempts_by_stage"] == {"security": 2}
        assert res["mean_attempts_per_pass"] == {"security": pytest.approx(3.0)}
        assert res["avg_wait_seconds"] == {"security": pytest.approx(3.0)}
        assert res["max_wait_seconds"] == {"security": pytest.approx(4.0)}


class TestSummary:

    def test_summary_from_a_run(self, make_cfg):
        cfg = make_cfg(order=("check_in", "security"), pool_size=4, base=0.5,
                       spawn_interval=2.0, tick=0.5)
        sim = Simulation(cfg)
        sim.run_until(60.0)
        res = sim.summary()
        assert res["spawned"] > 0
        assert 0 < res["completed"] <= res["spawned"]
        assert res["completed"] + res["in_flight"] == res["spawned"]
        assert set(res["station_utilization"]) == {"check_in", "security"}
        assert all(0.0 <= u <= 1.0 for u in res["station_utilization"].values())
        assert res["processed_by_stage"]["check_in"] >= res["processed_by_stage"]["security"]
        assert res["avg_time_in_system_seconds"] > 0.0
        assert res["p90_time_in_system_seconds"] <= res["max_time_in_system_seconds"]
