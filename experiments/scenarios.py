"""
experiments/scenarios.py

Holds scenario definitions (decision variables) to sweep during experiments.
Add stage capacities, attempt parameters, and pool sizes here.
"""

from __future__ import annotations

BASELINE = {
    "name": "baseline",
    "overrides": {},  # override config keys here per scenario
}

EXTRA_SECURITY_LANE = {
    "name": "extra_security_lane",
    "overrides": {
        "stages": {
            "security": {"capacity": 2},
        },
    },
}

STRICT_SECURITY = {
    "name": "strict_security",
    "overrides": {
        "stages": {
            "security": {
                "capacity": 2,
                "service_interval": 8.0,
                "base_success_rate": 0.15,
                "success_increment": 0.05,
            },
        },
    },
}

HIGH_LOAD = {
    "name": "high_load",
    "overrides": {
        "spawner": {"spawn_interval": 1.5},
        "agents": {
            "kinds": {
                "passenger": {"pool_size": 80},
                "family": {"pool_size": 20},
            },
        },
        "sim": {
            "duration_seconds": 3600,
            "warmup_seconds": 300,
            "seed": 3,
        },
    },
}

HIGH_LOAD_OPTIMIZED = {
    "name": "high_load_optimized",
    "overrides": {
        "spawner": {"spawn_interval": 1.5},
        "agents": {
            "kinds": {
                "passenger": {"pool_size": 80},
                "family": {"pool_size": 20},
            },
        },
        "stages": {
            "check_in": {"capacity": 4},
            "security": {"capacity": 3},
            "boarding": {"capacity": 4},
        },
        "sim": {
            "duration_seconds": 3600,
            "warmup_seconds": 300,
            "seed": 3,
        },
    },
}

SCENARIOS = [BASELINE, EXTRA_SECURITY_LANE, STRICT_SECURITY, HIGH_LOAD, HIGH_LOAD_OPTIMIZED]
