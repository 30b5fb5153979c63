"""Logging setup for TenantGate.

``TG_LOG_FORMAT=json`` switches the root handler to one JSON object per
line; anything passed through ``extra=`` (request fields, audit fields)
becomes a top-level key.  ``TG_LOG_LEVEL`` sets the level.  Both are read
through :class:`tenantgate.config.Settings`, so invalid values fail loudly.
"""

from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

from tenantgate.config import Settings


class StructuredJsonFormatter(JsonFormatter):
    """JSON formatter tagging every line with an ``event_category``."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    def add_fields(self, log_record, record, message_dict) -> None:
        super().add_fields(log_record, record, message_dict)
        # Audit lines set their own category.
        log_record.setdefault("event_category", "operational")


def setup_logging(config: Settings | None = None) -> None:
    """Configure the root logger from *config* (environment by default)."""
    config = config or Settings()
    level = getattr(logging, config.log_level)
    root = logging.getLogger()
    root.setLevel(level)

    # Remove any existing handlers so we don't double-log during tests.
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(level)
    if config.log_format == "json":
        handler.setFormatter(StructuredJsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root.addHandler(handler)


def log_startup_info() -> None:
    """Emit a structured startup log line with service configuration."""
    import tenantgate
    from tenantgate.config import settings

    logging.getLogger("tenantgate").info(
        "TenantGate started",
        extra={
            "version": tenantgate.__version__,
            "db_path": settings.db_path,
            "auth_provider": settings.auth_provider,
            "conceal_unreadable": settings.conceal_unreadable,
        },
    )
