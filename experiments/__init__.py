"""Scenario definitions and the replication harness for paxsim."""
