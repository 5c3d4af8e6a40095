# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# entities.py
# -----------------------------------------------------------------------------
# Purpose:
#   Entity definitions for the passenger flow DES: StageKind, AgentState and
#   Passenger. A Passenger carries its own attempt state machine; stages only
#   hold references to it while it passes through.
#
# Design notes:
#   - Success chance climbs by a fixed increment after every failed attempt
#     and is reset to the base rate whenever a new stage visit starts.
#   - The random stream is injected (random.Random) so a seed reproduces a run.
#
# Usage:
#   from paxsim.entities import Passenger, StageKind, AgentState
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .policies import attempt_succeeds, escalate

Vec3 = Tuple[float, float, float]
ORIGIN: Vec3 = (0.0, 0.0, 0.0)
# timers within this of zero count as expired (fractional ticks accumulate error)
TIMER_EPS = 1e-9


class StageKind(str, Enum):
    """Named points in the terminal. NONE marks the end of the chain."""
    CHECK_IN = "check_in"
    SECURITY = "security"
    BOARDING = "boarding"
    NONE = "none"

    @classmethod
    def parse(cls, name: str) -> "StageKind":
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            valid = ", ".join(k.value for k in cls if k is not cls.NONE)
            raise ValueError(f"unknown stage '{name}' (expected one of: {valid})") from None


class AgentState(str, Enum):
    IDLE = "idle"
    MOVING = "moving"
    IN_QUEUE = "in_queue"
    PROCESSING = "processing"
    DONE = "done"
    DONE_ALL = "done_all"


@dataclass(eq=False)
class Passenger:
    pid: int
    kind: str
    service_interval: float          # seconds between attempts
    base_success_rate: float         # p0, in (0, 1]
    success_increment: float         # boost to p after each failure
    rng: Any = None                  # object with .random() -> [0, 1)
    current_stage: StageKind = StageKind.CHECK_IN
    state: AgentState = AgentState.IDLE
    chance: float = 0.0
    timer: float = 0.0
    stage_complete: bool = False
    active: bool = False
    position: Vec3 = ORIGIN
    place_in_line: Optional[int] = None
    attempts: int = 0                # attempts in the current stage visit
    visits: int = 0                  # completed stage visits this run
    t_spawned: Optional[float] = None
    t_finished: Optional[float] = None
    queue_entry_times: Dict[str, float] = field(default_factory=dict)   # per-stage queue arrival stamps

    # Per-visit parameters, taken from the stage when it overrides the kind
    _visit_interval: float = field(default=0.0, repr=False)
    _visit_base: float = field(default=0.0, repr=False)
    _visit_increment: float = field(default=0.0, repr=False)
    _stage: Any = field(default=None, repr=False)

    def __post_init__(self):
        self.chance = self.base_success_rate
        self.timer = self.service_interval

    # -- lifecycle ------------------------------------------------------------
    def reset(self, first_stage: StageKind, now: float = 0.0):
        """Clear all per-run state before the pool hands the passenger out."""
        self.stage_complete = False
        self.current_stage = first_stage
        self.chance = self.base_success_rate
        self.state = AgentState.IDLE
        self.timer = self.service_interval
        self.attempts = 0
        self.visits = 0
        self.place_in_line = None
        self.position = ORIGIN
        self.t_spawned = now
        self.t_finished = None
        self.queue_entry_times.clear()
        self._stage = None

    def go_to_stage(self, env, stage):
        """Teleport to the stage entry point and join its queue."""
        self.state = AgentState.MOVING
        self.stage_complete = False
        self._stage = stage
        self.position = stage.entry_point
        env.emit("moving", agent=self, stage=stage.kind)
        stage.enqueue(env, self)

    def start_processing(self, env, stage):
        self.state = AgentState.PROCESSING
        self._stage = stage
        self.place_in_line = None
        self._visit_interval = _pick(stage.service_interval, self.service_interval)
        self._visit_base = _pick(stage.base_success_rate, self.base_success_rate)
        self._visit_increment = _pick(stage.success_increment, self.success_increment)
        self.chance = self._visit_base
        self.attempts = 0
        self.timer = self._visit_interval

    def tick(self, env, dt: float):
        # timer drives attempts until success
        if self.state is not AgentState.PROCESSING or self.stage_complete:
            return
        self.timer -= dt
        if self.timer <= TIMER_EPS:
            self.try_complete(env)
            self.timer = self._visit_interval

    def try_complete(self, env) -> bool:
        roll = self.rng.random()
        used = self.chance
        self.attempts += 1
        success = attempt_succeeds(roll, used)
        if success:
            self._stage.mark_done(self)
            self.chance = self._visit_base
        else:
            self.chance = escalate(used, self._visit_increment)
        env.emit("attempt", agent=self, stage=self._stage.kind,
                 chance=used, roll=roll, success=success)
        return success

    def flag_done_all(self, env):
        self.state = AgentState.DONE_ALL
        self.current_stage = StageKind.NONE
        self.t_finished = env.t
        self._stage = None

    def move_to_queue_position(self, index: int, target: Vec3):
        self.place_in_line = index
        self.position = target


def _pick(override: Optional[float], default: float) -> float:
    return default if override is None else override
