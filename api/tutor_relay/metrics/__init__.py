"""Prometheus metrics for the question review workflow."""
