"""Command-line entry points for the ridgeval harness."""
