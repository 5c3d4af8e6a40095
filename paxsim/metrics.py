# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# metrics.py
# -----------------------------------------------------------------------------
# Purpose:
#   Collect and summarize KPIs: spawns, completions, per-stage waits, attempt
#   counts, utilizations, and time in system.
#
# Design notes:
#   - Metrics listens to env events; on_event dispatches to note_* methods.
#   - Samples before warm-up are kept only in the raw time series.
#   - Summaries return JSON-serializable dicts for easy tabulation.
#
# Usage:
#   M = Metrics(cfg); env.listen(M.on_event); M.summary()
# -----------------------------------------------------------------------------

from __future__ import annotations
from typing import Dict, Any
from collections import defaultdict
import math


class Metrics:
    def __init__(self, cfg: dict):
        self.cfg = cfg
        self.warmup_sec = cfg.get("sim", {}).get("warmup_seconds", 0.0)
        self.spawned = 0
        self.spawn_skipped = defaultdict(int)    # pool exhaustion per kind
        self.completed = 0                       # passengers that reached DoneAll
        self.completed_by_kind = defaultdict(int)
        self.unroutable = defaultdict(int)       # drops per missing stage
        self.system_times: list[float] = []      # spawn -> DoneAll, seconds
        self.entered = defaultdict(int)          # per-stage queue arrivals
        self.processed = defaultdict(int)        # per-stage completions
        self.wait_totals = defaultdict(float)
        self.wait_counts = defaultdict(int)
        self.wait_max = defaultdict(float)
        self.attempts = defaultdict(int)
        self.failed_attempts = defaultdict(int)
        self.stages: Dict[str, Any] = {}
        # Raw counters (include warm-up) for time-series diagnostics
        self.raw_completed = 0
        self.time_series: list[Dict[str, float]] = []

    def _active(self, t: float) -> bool:
        """Return True if t is beyond the warm-up period."""
        return t >= self.warmup_sec

    def attach_stages(self, stages: Dict[Any, Any]):
        self.stages = {getattr(st, "name", str(k)): st for k, st in stages.items()}

    def on_event(self, ev):
        hook = getattr(self, "note_" + ev.kind, None)
        if hook is not None:
            hook(ev.t, **ev.data)

    # -- note_* hooks (one per event kind) --------------------------------------
    def note_spawned(self, t: float, agent):
        if self._active(t):
            self.spawned += 1

    def note_spawn_skipped(self, t: float, kind: str):
        if self._active(t):
            self.spawn_skipped[kind] += 1

    def note_enqueued(self, t: float, agent, stage):
        if self._active(t):
            self.entered[stage.value] += 1

    def note_processing(self, t: float, agent, stage, wait):
        if wait is None or not self._active(t):
            return
        name = stage.value
        self.wait_totals[name] += wait
        self.wait_counts[name] += 1
        self.wait_max[name] = max(self.wait_max[name], wait)

    def note_attempt(self, t: float, agent, stage, chance, roll, success):
        if not self._active(t):
            return
        self.attempts[stage.value] += 1
        if not success:
            self.failed_attempts[stage.value] += 1

    def note_stage_done(self, t: float, agent, stage):
        if self._active(t):
            self.processed[stage.value] += 1

    def note_done_all(self, t: float, agent, stage):
        self.raw_completed += 1
        self._record_time_series(t)
        if not self._active(t):
            return
        self.completed += 1
        self.completed_by_kind[agent.kind] += 1
        if agent.t_spawned is not None:
            self.system_times.append(max(t - agent.t_spawned, 0.0))

    def note_unroutable(self, t: float, agent, stage):
        # drops are always counted; they indicate a wiring problem
        self.unroutable[stage.value] += 1

    def _record_time_series(self, t: float):
        """Cumulative completions (including warm-up) for throughput plots."""
        self.time_series.append({
            "time_seconds": t,
            "completed_total": self.raw_completed,
        })

    def summary(self, now: float | None = None, in_flight: int = 0) -> Dict:
        duration = now if now is not None else self.cfg["sim"]["duration_seconds"]
        span = max(duration - self.warmup_sec, 0.0)
        utilization: Dict[str, float] = {}
        for name, st in self.stages.items():
            denom = duration * getattr(st, "c", 1)
            utilization[name] = getattr(st, "busy_time", 0.0) / denom if denom > 0 else 0.0
        avg_wait = {
            name: self.wait_totals[name] / n for name, n in self.wait_counts.items() if n > 0
        }
        mean_attempts = {
            name: self.attempts[name] / self.processed[name]
            for name in self.attempts if self.processed.get(name, 0) > 0
        }
        times = sorted(self.system_times)
        p90 = 0.0
        if times:
            idx = int(math.ceil(0.9 * len(times))) - 1
            p90 = times[max(0, min(idx, len(times) - 1))]
        return {
            "spawned": self.spawned,
            "spawn_skipped": dict(self.spawn_skipped),
            "completed": self.completed,
            "completed_by_kind": dict(self.completed_by_kind),
            "in_flight": in_flight,
            "unroutable": dict(self.unroutable),
            "throughput_per_minute": (self.completed / span * 60.0) if span > 0 else 0.0,
            "avg_time_in_system_seconds": (sum(times) / len(times)) if times else 0.0,
            "max_time_in_system_seconds": times[-1] if times else 0.0,
            "p90_time_in_system_seconds": p90,
            "entered_by_stage": dict(self.entered),
            "processed_by_stage": dict(self.processed),
            "avg_wait_seconds": avg_wait,
            "max_wait_seconds": dict(self.wait_max),
            "max_queue_length": {name: st.max_queue_len for name, st in self.stages.items()},
            "attempts_by_stage": dict(self.attempts),
            "failed_attempts_by_stage": dict(self.failed_attempts),
            "mean_attempts_per_pass": mean_attempts,
            "station_utilization": utilization,
            # Raw time-series for warm-up diagnostics and plotting (includes warm-up period).
            "time_series": list(self.time_series),
        }
