"""Workload shuffling, sharding and multi-process execution."""
