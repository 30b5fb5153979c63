"""Centralized configuration for TenantGate.

Uses Pydantic BaseSettings with environment variable loading and validation.
All TG_* environment variables are validated at import time.
"""

from __future__ import annotations

import json

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = {"env_prefix": "TG_", "case_sensitive": False, "extra": "ignore"}

    # Storage
    db_path: str = Field(default="tenantgate.db", description="SQLite database path")

    # Auth
    api_keys: str = Field(
        default="",
        description=(
            "JSON map of token -> actor, e.g. "
            '\'{"tok": {"organization_id": "org1", "user_id": "u1"}}\''
        ),
    )

    auth_provider: str = Field(default="api_key", description="Auth provider: api_key or jwt")
    jwt_secret: str | None = Field(default=None, description="HS256 secret for session tokens")
    jwt_audience: str = Field(default="tenantgate", description="Expected JWT audience")

    # Authorization
    conceal_unreadable: bool = Field(
        default=True,
        description="Answer 404 instead of 403 for targets the actor cannot read",
    )

    # Logging
    log_format: str = Field(default="text", description="Log format: text or json")
    log_level: str = Field(default="INFO", description="Python log level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")  # noqa: S104
    port: int = Field(default=8000, ge=1, le=65535, description="Server bind port")

    @field_validator("api_keys")
    @classmethod
    def validate_api_keys(cls, v: str) -> str:
        if not v.strip():
            return ""
        try:
            parsed = json.loads(v)
        except json.JSONDecodeError as exc:
            msg = f"TG_API_KEYS must be a JSON object: {exc.msg}"
            raise ValueError(msg) from exc
        if not isinstance(parsed, dict):
            msg = "TG_API_KEYS must be a JSON object mapping tokens to actors"
            raise ValueError(msg)
        return v

    @field_validator("auth_provider")
    @classmethod
    def validate_auth_provider(cls, v: str) -> str:
        v = v.lower()
        if v not in ("api_key", "jwt"):
            msg = f"TG_AUTH_PROVIDER must be 'api_key' or 'jwt', got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "json"):
            msg = f"TG_LOG_FORMAT must be 'text' or 'json', got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        import logging

        v = v.upper()
        if not isinstance(getattr(logging, v, None), int):
            msg = f"TG_LOG_LEVEL must be a valid Python log level, got '{v}'"
            raise ValueError(msg)
        return v

    @property
    def api_key_map(self) -> dict[str, dict]:
        """Return parsed token -> actor mapping."""
        if not self.api_keys.strip():
            return {}
        return json.loads(self.api_keys)


# Singleton, validated at import time.
settings = Settings()
