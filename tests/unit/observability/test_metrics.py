"""MetricsCollector: labelled counters, export, reset; JSON log formatting."""

import json
import logging

from distsync.config.logging import JsonFormatter
from distsync.core.context import correlation_id_ctx
from distsync.observability.metrics import MetricsCollector


def test_increment_with_and_without_labels():
    m = MetricsCollector()
    m.increment("lock_acquired", resource="a")
    m.increment("lock_acquired", resource="a")
    m.increment("lock_acquired", resource="b")
    m.increment("store_errors")
    assert m.get("lock_acquired", resource="a") == 2
    assert m.get("lock_acquired") == 3
    assert m.get("store_errors") == 1
    assert m.get("never_seen") == 0


def test_export_uses_series_names():
    m = MetricsCollector()
    m.increment("rate_limit_exceeded", identifier="general:1.2.3.4")
    exported = m.export_metrics()
    assert exported["counters"] == {"rate_limit_exceeded{identifier=general:1.2.3.4}": 1}


def test_reset():
    m = MetricsCollector()
    m.increment("x")
    m.reset()
    assert m.export_metrics() == {"counters": {}}


def test_json_formatter_includes_context_and_extras():
    token = correlation_id_ctx.set("corr-1")
    try:
        record = logging.LogRecord("distsync.test", logging.WARNING, __file__, 1, "lock_acquire_timeout", (), None)
        record.resource = "orders"
        record.attempts = 11
        payload = json.loads(JsonFormatter().format(record))
    finally:
        correlation_id_ctx.reset(token)
    assert payload["message"] == "lock_acquire_timeout"
    assert payload["level"] == "WARNING"
    assert payload["correlation_id"] == "corr-1"
    assert payload["resource"] == "orders"
    assert payload["attempts"] == 11
