"""
paxsim package initializer.

This package contains the tick-driven simulation engine, primitives
(stages/env), flow-graph routing, the passenger pool, policies, and metric
collection used by the airport passenger flow model.
"""
__all__ = [
    "entities", "queues", "stations", "network", "config",
    "arrivals", "policies", "metrics", "simulation",
]
