"""Shared utilities: telemetry (logging, tracing) and small helpers."""
