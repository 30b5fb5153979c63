"""Tests for structured logging.

Verifies that:
- TG_LOG_FORMAT=json produces valid JSON log lines with request and audit fields.
- TG_LOG_FORMAT=text (or unset) produces human-readable output.
- TG_LOG_LEVEL controls the effective log level; invalid values are rejected.
- The request middleware attaches request_id, path, method, status_code, duration_ms.
"""

from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError

from conftest import auth
from tenantgate.config import Settings
from tenantgate.logging_config import StructuredJsonFormatter, log_startup_info, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="tenantgate",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


# ---------------------------------------------------------------------------
# StructuredJsonFormatter
# ---------------------------------------------------------------------------


class TestStructuredJsonFormatter:
    def test_basic_log_record_is_valid_json(self):
        parsed = json.loads(StructuredJsonFormatter().format(_record("hello world")))
        assert parsed["message"] == "hello world"
        assert parsed["levelname"] == "INFO"
        assert "asctime" in parsed

    def test_audit_extras_appear_in_json(self):
        record = _record("Access denied: graph:delete")
        record.action = "graph:delete"
        record.actor = "user:u1"
        record.namespace_id = "ns1"
        record.resource_id = "g1"
        parsed = json.loads(StructuredJsonFormatter().format(record))
        assert parsed["action"] == "graph:delete"
        assert parsed["actor"] == "user:u1"
        assert parsed["namespace_id"] == "ns1"
        assert parsed["resource_id"] == "g1"

    def test_operational_lines_are_categorised(self):
        parsed = json.loads(StructuredJsonFormatter().format(_record("hello")))
        assert parsed["event_category"] == "operational"

    def test_audit_category_is_kept(self):
        record = _record("Access denied")
        record.event_category = "audit"
        parsed = json.loads(StructuredJsonFormatter().format(record))
        assert parsed["event_category"] == "audit"


# ---------------------------------------------------------------------------
# setup_logging
# ---------------------------------------------------------------------------


class TestSetupLogging:
    def test_json_mode(self, monkeypatch):
        monkeypatch.setenv("TG_LOG_FORMAT", "json")
        setup_logging()
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredJsonFormatter)

    def test_default_mode_is_text(self, monkeypatch):
        monkeypatch.delenv("TG_LOG_FORMAT", raising=False)
        setup_logging()
        assert not isinstance(logging.getLogger().handlers[0].formatter, StructuredJsonFormatter)

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("TG_LOG_LEVEL", "WARNING")
        setup_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_log_level_is_rejected(self, monkeypatch):
        monkeypatch.setenv("TG_LOG_LEVEL", "NOTAVALIDLEVEL")
        with pytest.raises(ValidationError):
            setup_logging()

    def test_explicit_settings(self):
        setup_logging(Settings(log_format="json", log_level="debug"))
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, StructuredJsonFormatter)


# ---------------------------------------------------------------------------
# log_startup_info and request logging
# ---------------------------------------------------------------------------


class TestStartupAndRequestLogs:
    def test_startup_log(self, caplog):
        with caplog.at_level(logging.INFO, logger="tenantgate"):
            log_startup_info()
        rec = caplog.records[-1]
        assert "TenantGate started" in rec.message
        assert rec.version == "0.1.0"
        assert hasattr(rec, "conceal_unreadable")

    async def test_request_fields(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="tenantgate"):
            resp = await client.get("/v1/me/permissions", headers=auth("viewer-token"))
        assert resp.status_code == 200
        request_id = resp.headers["X-Request-ID"]
        [rec] = [r for r in caplog.records if getattr(r, "request_id", None) == request_id]
        assert rec.path == "/v1/me/permissions"
        assert rec.method == "GET"
        assert rec.status_code == 200
        assert rec.actor == "victor"
        assert rec.duration_ms >= 0
