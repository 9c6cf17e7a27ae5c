"""Validation driver: dataset loading, per-item runners and operation dispatch."""
