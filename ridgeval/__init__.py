"""
Core package init for the ridgeval validation harness.

Makes the `ridgeval` modules importable without requiring an editable install.
"""

__all__ = [
    "archive",
    "database",
    "harness",
    "implementations",
    "results",
    "workload",
    "errors",
    "io_utils",
    "types",
]
