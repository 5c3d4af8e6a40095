# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# network.py
# -----------------------------------------------------------------------------
# Purpose:
#   FlowGraph wiring. Holds the fixed stage -> next stage chain plus the live
#   registry of Stage instances, and routes a passenger onward every time a
#   stage reports it finished.
#
# Design notes:
#   - The chain is validated on construction: no cycles, no mapped stage that
#     the head cannot reach, exactly one terminal sink (StageKind.NONE).
#   - on_agent_finished runs to completion before the calling stage moves on,
#     so a passenger is never visible in two stages at once.
#   - Routing to a stage with no registered instance drops only that
#     passenger: it goes back to the pool and UnroutableAgent is raised to the
#     caller.
#
# Usage:
#   flow = FlowGraph.from_order([StageKind.CHECK_IN, StageKind.SECURITY])
#   flow.register(stage); flow.attach_pool(pool)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .config import ConfigError
from .entities import Passenger, StageKind

logger = logging.getLogger(__name__)

CompletionCallback = Callable[..., None]


class UnroutableAgent(LookupError):
    """A passenger was routed to a stage that has no registered instance."""
    def __init__(self, agent: Passenger, stage: StageKind):
        super().__init__(f"no stage instance registered for '{stage.value}'")
        self.agent = agent
        self.stage = stage


class FlowGraph:
    def __init__(self, mapping: Mapping[StageKind, StageKind], head: StageKind):
        self.flow: Dict[StageKind, StageKind] = dict(mapping)
        self.head = head
        self.stages: Dict[StageKind, object] = {}
        self.pool = None
        self._subscribers: List[CompletionCallback] = []
        self.order = self._validate()

    @classmethod
    def from_order(cls, order: Iterable[StageKind]) -> "FlowGraph":
        """Build the linear chain order[0] -> order[1] -> ... -> NONE."""
        kinds = list(order)
        if not kinds:
            raise ConfigError("stage_order must name at least one stage")
        seen = set()
        for k in kinds:
            if k in seen:
                raise ConfigError(f"stage_order forms a cycle: '{k.value}' appears more than once")
            seen.add(k)
        mapping = {a: b for a, b in zip(kinds, kinds[1:] + [StageKind.NONE])}
        return cls(mapping, kinds[0])

    def _validate(self) -> List[StageKind]:
        if self.head is StageKind.NONE:
            raise ConfigError("flow graph head cannot be the terminal sentinel")
        if StageKind.NONE in self.flow:
            raise ConfigError("the terminal sentinel cannot have a successor")
        chain: List[StageKind] = []
        cur = self.head
        while cur is not StageKind.NONE:
            if cur in chain:
                raise ConfigError(f"flow graph is cyclic at stage '{cur.value}'")
            chain.append(cur)
            cur = self.next(cur)
        unreachable = [k for k in self.flow if k not in chain]
        if unreachable:
            names = ", ".join(k.value for k in unreachable)
            raise ConfigError(f"stage(s) unreachable from '{self.head.value}': {names}")
        return chain

    # -- lookups --------------------------------------------------------------
    def next(self, stage: StageKind) -> StageKind:
        return self.flow.get(stage, StageKind.NONE)

    def stage_instance(self, kind: StageKind):
        return self.stages.get(kind)

    def missing_stages(self) -> List[StageKind]:
        """Stages on the chain that have no registered instance."""
        return [k for k in self.order if k not in self.stages]

    # -- wiring ---------------------------------------------------------------
    def register(self, stage):
        if stage.kind not in self.order:
            logger.warning("stage '%s' registered but not on the flow chain", stage.name)
        self.stages[stage.kind] = stage
        stage.on_finished = self.on_agent_finished

    def attach_pool(self, pool):
        self.pool = pool

    def subscribe(self, callback: CompletionCallback):
        """Call callback(env, agent, stage_kind) once per stage completion."""
        self._subscribers.append(callback)

    # -- routing --------------------------------------------------------------
    def enter(self, env, agent: Passenger):
        """Send a freshly spawned passenger into the head stage."""
        agent.current_stage = self.head
        self._move(env, agent, self.head)

    def on_agent_finished(self, env, agent: Passenger):
        finished_at = agent.current_stage
        agent.visits += 1
        try:
            for cb in self._subscribers:
                cb(env, agent, finished_at)
        finally:
            # a failing subscriber must not strand the passenger between stages
            self._route(env, agent, finished_at)

    def _route(self, env, agent: Passenger, finished_at: StageKind):
        nxt = self.next(finished_at)
        if nxt is StageKind.NONE:
            # terminal stage: passenger has boarded
            agent.flag_done_all(env)
            env.emit("done_all", agent=agent, stage=finished_at)
            self._release(agent)
            return
        agent.current_stage = nxt
        self._move(env, agent, nxt)

    def _move(self, env, agent: Passenger, kind: StageKind):
        stage = self.stage_instance(kind)
        if stage is None:
            err = UnroutableAgent(agent, kind)
            logger.error("passenger %s/%d is unroutable: %s", agent.kind, agent.pid, err)
            env.emit("unroutable", agent=agent, stage=kind)
            self._release(agent)
            raise err
        agent.go_to_stage(env, stage)
        stage.refresh_positions(env)

    def _release(self, agent: Passenger):
        if self.pool is not None:
            self.pool.reclaim(agent)
        else:
            agent.active = False

    def describe(self) -> str:
        return " -> ".join([k.value for k in self.order] + [StageKind.NONE.value])


def parse_order(names: Iterable[str]) -> List[StageKind]:
    kinds: List[StageKind] = []
    for name in names:
        try:
            kind = StageKind.parse(name)
        except ValueError as err:
            raise ConfigError(str(err)) from None
        if kind is StageKind.NONE:
            raise ConfigError("stage_order cannot contain the terminal sentinel 'none'")
        kinds.append(kind)
    return kinds


def build_flow(order_names: Iterable[str], stages: Optional[Dict[StageKind, object]] = None) -> FlowGraph:
    flow = FlowGraph.from_order(parse_order(order_names))
    for stage in (stages or {}).values():
        flow.register(stage)
    return flow
