# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# stations.py
# -----------------------------------------------------------------------------
# Purpose:
#   Build the concrete Stage instances (check-in, security, boarding) from a
#   validated config.
#
# Design notes:
#   - Only stages with a `stages:` entry are built. A stage on the chain with
#     no entry is left unregistered; passengers routed there are dropped as
#     unroutable instead of vanishing.
#
# Usage:
#   from paxsim.stations import make_stages
# -----------------------------------------------------------------------------

from __future__ import annotations
from typing import Dict
from .entities import StageKind
from .queues import Stage


def make_stages(cfg: dict) -> Dict[StageKind, Stage]:
    """
    Create all stages from a validated config.

    Parameters
    ----------
    cfg : dict
        Output of config.validate_cfg, with a 'stages' section keyed by
        stage name.

    Returns
    -------
    dict[StageKind, Stage]
        Mapping stage kind -> Stage instance, in config order.
    """
    S: Dict[StageKind, Stage] = {}
    for name, st in cfg.get("stages", {}).items():
        kind = StageKind.parse(name)
        S[kind] = Stage(
            kind,
            c=st["capacity"],
            queue_spacing=st["queue_spacing"],
            entry_point=st["entry_point"],
            queue_origin=st["queue_origin"],
            forward=st["forward"],
            base_success_rate=st.get("base_success_rate"),
            success_increment=st.get("success_increment"),
            service_interval=st.get("service_interval"),
        )
    return S
