"""Extraction and search implementations the harness drives."""
