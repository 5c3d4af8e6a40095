# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# queues.py
# -----------------------------------------------------------------------------
# Purpose:
#   Tick-driven primitives: Event, Env, and a Stage with a FIFO wait queue and
#   c parallel service slots. Stages never allocate passengers; they only hold
#   references while a passenger waits or is served.
#
# Design notes:
#   - A tick is split into admit() and sweep() so the driver can run every
#     stage's admission before any completion sweep.
#   - Completions are handed to the on_finished callback (the FlowGraph) and
#     the freed slot is refilled in the same sweep.
#   - Lifecycle and position updates go out through env.emit() for whatever
#     presentation layer or metrics collector is listening.
#
# Usage:
#   from paxsim.queues import Env, Event, Stage
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from .entities import AgentState, Passenger, StageKind, Vec3
from .network import UnroutableAgent

logger = logging.getLogger(__name__)


class Event:
    """Lifecycle notification delivered to env listeners."""
    __slots__ = ("t", "kind", "data")
    def __init__(self, t: float, kind: str, data: dict):
        self.t = t; self.kind = kind; self.data = data
    def __repr__(self):
        return f"Event(t={self.t:.3f}, kind={self.kind!r})"


class Env:
    """Simulation environment holding the clock and event listeners.

    Attributes
    ----------
    t : float
        Simulation time (seconds).
    dt : float
        Length of one tick (seconds).
    listeners : list[callable]
        Called with every emitted Event, in subscription order.
    """
    def __init__(self, dt: float = 0.1):
        self.t: float = 0.0
        self.dt = dt
        self.ticks: int = 0
        self.listeners: List[Callable[[Event], None]] = []

    def listen(self, fn: Callable[[Event], None]):
        self.listeners.append(fn)

    def emit(self, kind: str, /, **data):
        if not self.listeners:
            return
        ev = Event(self.t, kind, data)
        for fn in self.listeners:
            fn(ev)

    def advance(self):
        self.ticks += 1
        self.t = self.ticks * self.dt


class Stage:
    """FIFO stage with c parallel service slots and an unbounded queue.

    Parameters
    ----------
    kind : StageKind
        Stage identity in the flow graph.
    c : int
        Number of passengers served concurrently (>= 1).
    on_finished : callable
        Invoked as on_finished(env, passenger) for every completed passenger;
        must finish relocating the passenger before returning.

    Notes
    -----
    - base_success_rate / success_increment / service_interval are optional
      per-stage overrides; None means "use the passenger kind's value".
    - Queue slot i sits at queue_origin - forward * queue_spacing * i.
    """
    def __init__(
        self,
        kind: StageKind,
        c: int = 1,
        on_finished: Optional[Callable[[Env, Passenger], None]] = None,
        queue_spacing: float = 1.5,
        entry_point: Vec3 = (0.0, 0.0, 0.0),
        queue_origin: Optional[Vec3] = None,
        forward: Vec3 = (0.0, 0.0, 1.0),
        base_success_rate: Optional[float] = None,
        success_increment: Optional[float] = None,
        service_interval: Optional[float] = None,
    ):
        self.kind = kind
        self.name = kind.value
        self.c = c
        self.on_finished = on_finished
        self.queue_spacing = queue_spacing
        self.entry_point = tuple(entry_point)
        self.queue_origin = tuple(queue_origin) if queue_origin is not None else self.entry_point
        self.forward = tuple(forward)
        self.base_success_rate = base_success_rate
        self.success_increment = success_increment
        self.service_interval = service_interval
        self.queue: Deque[Passenger] = deque()
        self.active: List[Passenger] = []
        self.busy_time: float = 0.0
        self.last_change: float = 0.0
        self._prev_in_service: int = 0
        self.max_queue_len: int = 0

    def __repr__(self):
        return f"Stage({self.name}, c={self.c}, queued={len(self.queue)}, active={len(self.active)})"

    def holds(self, agent: Passenger) -> bool:
        return agent in self.active or agent in self.queue

    # arriving passengers call this to join the queue
    def enqueue(self, env: Env, agent: Passenger):
        agent.queue_entry_times[self.name] = env.t
        self.queue.append(agent)
        agent.state = AgentState.IN_QUEUE
        self.max_queue_len = max(self.max_queue_len, len(self.queue))
        env.emit("enqueued", agent=agent, stage=self.kind)
        self.refresh_positions(env)

    def mark_done(self, agent: Passenger):
        """Flag agent as finished; removal and routing happen in the next sweep."""
        agent.state = AgentState.DONE
        agent.stage_complete = True

    def admit(self, env: Env):
        while self.queue and len(self.active) < self.c:
            self._start(env, self.queue.popleft())
        self.refresh_positions(env)

    def sweep(self, env: Env):
        finished = [a for a in self.active if a.stage_complete]
        for agent in finished:
            self.active.remove(agent)
            self._mark_busy(env.t)
            env.emit("stage_done", agent=agent, stage=self.kind)
            self._hand_off(env, agent)
            # refill the slot now so stages keep working in parallel
            if self.queue:
                self._start(env, self.queue.popleft())
        if finished:
            self.refresh_positions(env)

    def refresh_positions(self, env: Env):
        for index, agent in enumerate(self.queue):
            target = self.slot_position(index)
            if agent.place_in_line == index and agent.position == target:
                continue
            agent.move_to_queue_position(index, target)
            env.emit("position", agent=agent, stage=self.kind, index=index, position=target)

    def slot_position(self, index: int) -> Vec3:
        ox, oy, oz = self.queue_origin
        fx, fy, fz = self.forward
        d = self.queue_spacing * index
        return (ox - fx * d, oy - fy * d, oz - fz * d)

    def _start(self, env: Env, agent: Passenger):
        agent.start_processing(env, self)
        self.active.append(agent)
        self._mark_busy(env.t)
        wait = self._extract_wait(agent, env.t)
        env.emit("processing", agent=agent, stage=self.kind, wait=wait)

    def _hand_off(self, env: Env, agent: Passenger):
        if self.on_finished is None:
            return
        try:
            self.on_finished(env, agent)
        except UnroutableAgent as err:
            logger.error("stage %s dropped passenger %s/%d: %s", self.name, agent.kind, agent.pid, err)

    def _mark_busy(self, now: float):
        # Integrate busy slot-seconds by tracking how many slots were occupied
        dt = now - self.last_change
        if dt > 0:
            self.busy_time += self._prev_in_service * dt
        self.last_change = now
        self._prev_in_service = len(self.active)

    def close(self, now: float):
        """Flush busy-time integration up to `now` (end of run)."""
        self._mark_busy(now)

    def _extract_wait(self, agent: Passenger, now: float) -> Optional[float]:
        t_arr = agent.queue_entry_times.pop(self.name, None)
        if t_arr is None:
            return None
        wait = now - t_arr
        return wait if wait > 0 else 0.0

