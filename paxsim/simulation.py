# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# simulation.py
# -----------------------------------------------------------------------------
# Purpose:
#   Build stages, flow graph, pool and metrics from a config and advance them
#   tick by tick. run_one_day() simulates a single replication and returns
#   the metrics summary.
#
# Design notes:
#   - Tick order: spawn check -> every stage admits -> every stage sweeps ->
#     every passenger's attempt timer. Sweeps run after all admissions so a
#     slot freed this tick is backfilled this tick.
#   - The clock advances before the timers run, so attempts and completions
#     carry the time at the end of the tick that used up the interval.
#   - A success is routed on the next tick's sweep. Set sim.route_same_tick
#     to sweep a second time after the timers and route it immediately.
#   - Warm-up handling lives in Metrics and in experiments/.
#
# Usage:
#   from paxsim.simulation import Simulation, run_one_day
#   results = run_one_day(cfg)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging, random
from typing import Dict, Iterable, Optional

from .arrivals import AgentPool
from .config import validate_cfg
from .entities import StageKind
from .metrics import Metrics
from .network import build_flow
from .queues import Env
from .stations import make_stages

logger = logging.getLogger(__name__)


class Simulation:
    """One wired-up terminal: env, stages, flow graph, pool and metrics.

    Parameters
    ----------
    cfg : dict
        Raw or validated config; it is validated again here.
    rng : object, optional
        Random stream with .random(); defaults to random.Random(sim.seed).
    """
    def __init__(self, cfg: Dict, rng=None):
        self.cfg = validate_cfg(cfg)
        sim = self.cfg["sim"]
        self.rng = rng if rng is not None else random.Random(sim["seed"])
        self.route_same_tick = sim["route_same_tick"]
        self.env = Env(dt=sim["tick_seconds"])
        self.stages = make_stages(self.cfg)
        self.flow = build_flow(self.cfg["flow"]["stage_order"], self.stages)
        self.pool = AgentPool(
            self.cfg["agents"]["kinds"],
            self.flow,
            self.rng,
            spawn_interval=self.cfg["spawner"]["spawn_interval"],
        )
        self.metrics = Metrics(self.cfg)
        self.metrics.attach_stages(self.stages)
        self.env.listen(self.metrics.on_event)
        # stages tick in chain order, then any registered off-chain stages
        self._ordered = [self.stages[k] for k in self.flow.order if k in self.stages]
        self._ordered += [st for k, st in self.stages.items() if k not in self.flow.order]

        missing = self.flow.missing_stages()
        if missing:
            logger.warning(
                "no stage configured for %s; passengers routed there will be dropped",
                ", ".join(k.value for k in missing),
            )

    def listen(self, fn):
        """Subscribe a presentation/diagnostic listener to all lifecycle events."""
        self.env.listen(fn)

    def stage(self, kind: StageKind):
        return self.flow.stage_instance(kind)

    def step(self, spawn: bool = True):
        env = self.env
        if spawn:
            self.pool.tick(env, env.dt)
        for st in self._ordered:
            st.admit(env)
        for st in self._ordered:
            st.sweep(env)
        # timers consume this tick, so their outcomes are stamped at its end
        env.advance()
        for agent in self.pool.active_agents():
            agent.tick(env, env.dt)
        if self.route_same_tick:
            for st in self._ordered:
                st.sweep(env)

    def run_until(self, t_end: float, spawn: bool = True):
        # compare in whole ticks so float steps do not add an extra tick
        n = int(round(t_end / self.env.dt))
        while self.env.ticks < n:
            self.step(spawn=spawn)

    def drain(self, max_ticks: int = 1_000_000) -> bool:
        """Run without spawning until no passenger is in flight."""
        for _ in range(max_ticks):
            if not self.pool.active_agents():
                return True
            self.step(spawn=False)
        return not self.pool.active_agents()

    def in_flight(self) -> int:
        return sum(c["active"] for c in self.pool.counts().values())

    def summary(self) -> Dict:
        for st in self.stages.values():
            st.close(self.env.t)
        out = self.metrics.summary(now=self.env.t, in_flight=self.in_flight())
        out["pool"] = self.pool.counts()
        return out


def run_one_day(cfg: Dict, listeners: Optional[Iterable] = None) -> Dict:
    sim = Simulation(cfg)
    for fn in listeners or ():
        sim.listen(fn)
    T_end = sim.cfg["sim"]["duration_seconds"]
    logger.info("running %s for %.0fs (seed=%s)", sim.flow.describe(), T_end, sim.cfg["sim"]["seed"])
    sim.run_until(T_end)
    res = sim.summary()
    logger.info("finished: %d boarded, %d in flight", res["completed"], res["in_flight"])
    return res

