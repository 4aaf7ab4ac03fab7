"""Logging and Prometheus helpers."""
