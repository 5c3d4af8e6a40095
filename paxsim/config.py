# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# config.py
# -----------------------------------------------------------------------------
# Purpose:
#   Load, merge and validate the YAML configuration. Everything is read once
#   at start-up; a bad value is a ConfigError before the first tick.
#
# Design notes:
#   - Keys mirror the recognized options: capacity, base_success_rate,
#     success_increment, service_interval, pool_size, spawn_interval and
#     stage_order. Times are in SECONDS.
#   - Stage entries may override the passenger kind's attempt parameters.
#
# Usage:
#   cfg = validate_cfg(load_cfg())
# -----------------------------------------------------------------------------

from __future__ import annotations
import copy, os
from typing import Any, Dict, Optional

import yaml

from .entities import StageKind

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_CONFIG = os.path.join(ROOT, "config", "baseline.yaml")

SIM_DEFAULTS = {
    "duration_seconds": 600.0,
    "tick_seconds": 0.1,
    "warmup_seconds": 0.0,
    "seed": 0,
    "route_same_tick": False,
}
STAGE_DEFAULTS = {
    "capacity": 1,
    "queue_spacing": 1.5,
    "entry_point": [0.0, 0.0, 0.0],
    "forward": [0.0, 0.0, 1.0],
}
KIND_DEFAULTS = {
    "service_interval": 5.0,
    "base_success_rate": 0.3,
    "success_increment": 0.1,
    "pool_size": 50,
}


class ConfigError(ValueError):
    """Invalid configuration, raised at initialization."""


def load_cfg(path: Optional[str] = None) -> Dict:
    with open(path or DEFAULT_CONFIG, "r") as f:
        cfg = yaml.safe_load(f)
    if not isinstance(cfg, dict):
        raise ConfigError(f"{path or DEFAULT_CONFIG}: top level must be a mapping")
    return cfg


def apply_overrides(cfg: Dict, overrides: Dict) -> Dict:
    """Apply scenario overrides (recursive merge) on top of the base config."""
    new = copy.deepcopy(cfg)

    def _merge(dst: Dict, src: Dict):
        for key, val in src.items():
            if isinstance(val, dict) and isinstance(dst.get(key), dict):
                _merge(dst[key], val)
            else:
                dst[key] = copy.deepcopy(val)

    _merge(new, overrides)
    return new


def _num(section: str, key: str, val: Any) -> float:
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        raise ConfigError(f"{section}.{key} must be a number, got {val!r}")
    return float(val)


def _rate(section: str, key: str, val: Any) -> float:
    p = _num(section, key, val)
    if not 0.0 < p <= 1.0:
        raise ConfigError(f"{section}.{key} must be in (0, 1], got {p}")
    return p


def _positive(section: str, key: str, val: Any) -> float:
    x = _num(section, key, val)
    if x <= 0.0:
        raise ConfigError(f"{section}.{key} must be > 0, got {x}")
    return x


def _count(section: str, key: str, val: Any) -> int:
    if isinstance(val, bool) or not isinstance(val, int) or val < 1:
        raise ConfigError(f"{section}.{key} must be an integer >= 1, got {val!r}")
    return val


def _vec3(section: str, key: str, val: Any):
    if not isinstance(val, (list, tuple)) or len(val) != 3:
        raise ConfigError(f"{section}.{key} must be a list of 3 numbers, got {val!r}")
    return tuple(_num(section, key, v) for v in val)


def _attempt_params(section: str, raw: Dict, out: Dict):
    if "base_success_rate" in raw:
        out["base_success_rate"] = _rate(section, "base_success_rate", raw["base_success_rate"])
    if "success_increment" in raw:
        inc = _num(section, "success_increment", raw["success_increment"])
        if inc < 0.0:
            raise ConfigError(f"{section}.success_increment must be >= 0, got {inc}")
        out["success_increment"] = inc
    if "service_interval" in raw:
        out["service_interval"] = _positive(section, "service_interval", raw["service_interval"])


def validate_cfg(cfg: Dict) -> Dict:
    """
    Return a normalized copy of cfg with defaults filled in.

    Raises
    ------
    ConfigError
        On a zero capacity, a success probability outside (0, 1], an empty,
        unknown or repeated stage in stage_order, or any non-positive timing.
    """
    # Local import: network imports ConfigError from this module
    from .network import FlowGraph, parse_order

    out: Dict[str, Any] = {}

    sim = dict(SIM_DEFAULTS)
    sim.update(cfg.get("sim") or {})
    sim["duration_seconds"] = _positive("sim", "duration_seconds", sim["duration_seconds"])
    sim["tick_seconds"] = _positive("sim", "tick_seconds", sim["tick_seconds"])
    sim["warmup_seconds"] = _num("sim", "warmup_seconds", sim["warmup_seconds"])
    sim["route_same_tick"] = bool(sim["route_same_tick"])
    out["sim"] = sim

    flow = cfg.get("flow") or {}
    order_names = flow.get("stage_order", cfg.get("stage_order"))
    if not order_names:
        raise ConfigError("flow.stage_order must list at least one stage")
    order = FlowGraph.from_order(parse_order(order_names)).order
    out["flow"] = {"stage_order": [k.value for k in order]}

    stages: Dict[str, Dict] = {}
    for name, raw in (cfg.get("stages") or {}).items():
        try:
            kind = StageKind.parse(name)
        except ValueError as err:
            raise ConfigError(str(err)) from None
        raw = raw or {}
        section = f"stages.{kind.value}"
        st = dict(STAGE_DEFAULTS)
        st["capacity"] = _count(section, "capacity", raw.get("capacity", STAGE_DEFAULTS["capacity"]))
        st["queue_spacing"] = _num(section, "queue_spacing", raw.get("queue_spacing", STAGE_DEFAULTS["queue_spacing"]))
        st["entry_point"] = _vec3(section, "entry_point", raw.get("entry_point", STAGE_DEFAULTS["entry_point"]))
        st["queue_origin"] = _vec3(section, "queue_origin", raw.get("queue_origin", st["entry_point"]))
        st["forward"] = _vec3(section, "forward", raw.get("forward", STAGE_DEFAULTS["forward"]))
        _attempt_params(section, raw, st)
        stages[kind.value] = st
    out["stages"] = stages

    agents = cfg.get("agents") or {}
    kinds_raw = agents.get("kinds") or {"passenger": {}}
    kinds: Dict[str, Dict] = {}
    for name, raw in kinds_raw.items():
        raw = raw or {}
        section = f"agents.kinds.{name}"
        k = dict(KIND_DEFAULTS)
        k["pool_size"] = _count(section, "pool_size", raw.get("pool_size", KIND_DEFAULTS["pool_size"]))
        _attempt_params(section, raw, k)
        kinds[str(name)] = k
    out["agents"] = {"kinds": kinds}

    spawner = dict(cfg.get("spawner") or {})
    spawner["spawn_interval"] = _positive("spawner", "spawn_interval", spawner.get("spawn_interval", 3.0))
    out["spawner"] = spawner

    # Pass through sections the core does not interpret (experiments, ...)
    for key, val in cfg.items():
        out.setdefault(key, copy.deepcopy(val))
    return out
