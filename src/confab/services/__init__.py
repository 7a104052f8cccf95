"""Ambient services: persisted settings and in-process telemetry."""
