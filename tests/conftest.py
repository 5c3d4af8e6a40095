"""Shared fixtures for the passenger flow tests.

ScriptedRng: deterministic stand-in for random.Random
Recorder: env listener that keeps every emitted event
make_cfg: builds small configs with 1-second ticks
"""
import pytest

from paxsim.entities import Passenger
from paxsim.queues import Env


class ScriptedRng:
    """Returns the scripted rolls in order, then `default` forever."""

    def __init__(self, rolls=(), default=0.5):
        self.rolls = list(rolls)
        self.default = default
        self.calls = 0

    def random(self):
        self.calls += 1
        if self.rolls:
            return self.rolls.pop(0)
        return self.default


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, ev):
        self.events.append(ev)

    def of(self, kind):
        return [e for e in self.events if e.kind == kind]


def _make_cfg(order=("check_in",), stages=None, capacity=1, pool_size=1,
              service_interval=1.0, base=1.0, inc=0.1, spawn_interval=1000.0,
              tick=1.0, same_tick=False, kinds=None, warmup=0.0):
    if stages is None:
        stages = {name: {"capacity": capacity} for name in order}
    if kinds is None:
        kinds = {
            "passenger": {
                "pool_size": pool_size,
                "service_interval": service_interval,
                "base_success_rate": base,
                "success_increment": inc,
            }
        }
    return {
        "sim": {
            "duration_seconds": 100.0,
            "tick_seconds": tick,
            "warmup_seconds": warmup,
            "seed": 11,
            "route_same_tick": same_tick,
        },
        "flow": {"stage_order": list(order)},
        "stages": stages,
        "agents": {"kinds": kinds},
        "spawner": {"spawn_interval": spawn_interval},
    }


@pytest.fixture
def make_cfg():
    return _make_cfg


@pytest.fixture
def env():
    return Env(dt=1.0)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_passenger():
    def _make(pid=0, rng=None, base=0.3, inc=0.1, interval=1.0, kind="passenger"):
        p = Passenger(
            pid=pid,
            kind=kind,
            service_interval=interval,
            base_success_rate=base,
            success_increment=inc,
            rng=rng or ScriptedRng(),
        )
        p.active = True
        return p
    return _make


@pytest.fixture
def scripted():
    """Factory: scripted(rolls, default=0.5) -> ScriptedRng."""
    return ScriptedRng
