"""Telemetry: system log and decision audit log."""
