from __future__ import annotations

import json
import logging

import pytest

from backend.core import metrics
from backend.core.config import settings
from backend.core.logging import JSONFormatter, PIIRedactionFilter


@pytest.fixture(autouse=True)
def _clean_metrics():
    metrics.reset_metrics()
    yield
    metrics.reset_metrics()


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("vine.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_redaction_masks_vat_email_and_token() -> None:
    redactor = PIIRedactionFilter()

    text = redactor.redact('USt DE123456789 an erika@example.com {"token": "abc123"}')

    assert "DE******789" in text
    assert "e****@example.com" in text
    assert "abc123" not in text
    assert '"token": "***' in text


def test_redaction_masks_iban() -> None:
    assert PIIRedactionFilter().redact("IBAN DE89370400440532013000") == "IBAN DE" + "*" * 20


def test_filter_redacts_message_args() -> None:
    record = logging.LogRecord("vine.test", logging.INFO, __file__, 1, "Absender %s", ("DE123456789",), None)
    PIIRedactionFilter().filter(record)
    assert record.getMessage() == "Absender DE******789"


def test_json_formatter_includes_redacted_extras() -> None:
    payload = json.loads(JSONFormatter().format(_record("Sync", asin="B0A", error="token=geheim")))

    assert payload["level"] == "info"
    assert payload["logger"] == "vine.test"
    assert payload["asin"] == "B0A"
    assert payload["error"] == "token=***"
    assert payload["ts_utc"].endswith("Z")


def test_counters_and_histograms() -> None:
    metrics.increment_sync_outcome("get_all", "success")
    metrics.increment_sync_outcome("get_all", "success")
    metrics.record_remote_duration("get_all", 12.0)
    metrics.record_remote_duration("get_all", 8.0)

    snapshot = metrics.get_metrics()

    assert metrics.get_counter("vine_sync_total", {"operation": "get_all", "status": "success"}) == 2
    assert snapshot["vine_remote_duration_ms{operation=get_all}"]["avg"] == 10.0
    assert metrics.get_counter("vine_sync_total", {"operation": "delete_all", "status": "success"}) == 0


def test_metrics_can_be_disabled(monkeypatch) -> None:
    monkeypatch.setattr(settings, "enable_metrics", False)
    metrics.increment_finalizations("single", "synced")

    assert metrics.get_metrics() == {"note": "metrics disabled"}
    assert metrics.get_counter("vine_finalizations_total", {"kind": "single", "status": "synced"}) == 0
