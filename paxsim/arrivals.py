# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# arrivals.py
# -----------------------------------------------------------------------------
# Purpose:
#   Generate arrivals from a fixed pool of pre-allocated passengers. One
#   passenger is activated every spawn_interval seconds and sent to the head
#   stage; passengers that board are reclaimed and reused.
#
# Design notes:
#   - Pool size never changes. If every passenger of the chosen kind is out,
#     the spawn is skipped (back-pressure), not queued and not an error.
#   - Each kind keeps a min-heap of free indices, so the lowest free index
#     (pool scan order) is handed out without a linear scan.
#
# Usage:
#   pool = AgentPool(cfg["agents"]["kinds"], flow, rng, spawn_interval=3.0)
#   pool.tick(env, env.dt)
# -----------------------------------------------------------------------------

from __future__ import annotations
import heapq, logging
from typing import Dict, List, Optional

from .entities import Passenger
from .network import FlowGraph, UnroutableAgent
from .policies import pick_kind

logger = logging.getLogger(__name__)


class AgentPool:
    """Fixed-size passenger store plus the spawn timer.

    Parameters
    ----------
    kinds : dict[str, dict]
        Per-kind settings: pool_size, service_interval, base_success_rate,
        success_increment.
    flow : FlowGraph
        Destination for spawned passengers (its head stage).
    rng : random.Random
        Shared random stream; used for kind selection and handed to every
        passenger for its attempt rolls.
    spawn_interval : float
        Seconds between spawn attempts. The first tick spawns immediately.
    """
    def __init__(self, kinds: Dict[str, dict], flow: FlowGraph, rng, spawn_interval: float = 3.0):
        self.flow = flow
        self.rng = rng
        self.spawn_interval = spawn_interval
        self.timer: float = 0.0
        self.pools: Dict[str, List[Passenger]] = {}
        self._free: Dict[str, List[int]] = {}
        for name, k in kinds.items():
            self.pools[name] = [
                Passenger(
                    pid=i,
                    kind=name,
                    service_interval=k["service_interval"],
                    base_success_rate=k["base_success_rate"],
                    success_increment=k["success_increment"],
                    rng=rng,
                )
                for i in range(k["pool_size"])
            ]
            self._free[name] = list(range(k["pool_size"]))
        self.kinds = list(self.pools)
        flow.attach_pool(self)

    def tick(self, env, elapsed: float):
        self.timer -= elapsed
        if self.timer <= 0.0:
            self.spawn(env)
            self.timer = self.spawn_interval

    def spawn(self, env, kind: Optional[str] = None) -> Optional[Passenger]:
        kind = kind or pick_kind(self.kinds, self.rng)
        free = self._free[kind]
        if not free:
            logger.debug("t=%.2f pool '%s' exhausted; spawn skipped", env.t, kind)
            env.emit("spawn_skipped", kind=kind)
            return None
        agent = self.pools[kind][heapq.heappop(free)]
        agent.active = True
        agent.reset(self.flow.head, now=env.t)
        env.emit("spawned", agent=agent)
        try:
            self.flow.enter(env, agent)
        except UnroutableAgent as err:
            # flow already released the passenger back to this pool
            logger.error("spawned passenger %s/%d could not enter: %s", kind, agent.pid, err)
            return None
        return agent

    def reclaim(self, agent: Passenger):
        if not agent.active:
            return
        agent.active = False
        heapq.heappush(self._free[agent.kind], agent.pid)

    # -- introspection ----------------------------------------------------------
    def active_agents(self) -> List[Passenger]:
        return [a for pool in self.pools.values() for a in pool if a.active]

    def counts(self) -> Dict[str, Dict[str, int]]:
        out = {}
        for name, pool in self.pools.items():
            inactive = len(self._free[name])
            out[name] = {"size": len(pool), "active": len(pool) - inactive, "inactive": inactive}
        return out
