"""Observability layer: in-memory counters for lock, semaphore and rate-limit events."""

from distsync.observability.metrics import MetricsCollector

__all__ = ["MetricsCollector"]
