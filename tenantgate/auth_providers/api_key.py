"""Static API key authentication provider."""

from __future__ import annotations

import hmac
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from tenantgate.auth_providers.base import AuthResult
from tenantgate.core.models import Actor

logger = logging.getLogger("tenantgate.auth_providers.api_key")


class ApiKeyProvider:
    """Authenticate tokens configured in TG_API_KEYS.

    Each token maps to ``{"organization_id", "user_id" | "api_key_id", "legacy"}``.
    """

    name = "api_key"

    def __init__(self, keys: dict[str, dict[str, Any]]) -> None:
        self._keys = keys

    def _lookup(self, token: str) -> dict[str, Any] | None:
        for candidate, entry in self._keys.items():
            if hmac.compare_digest(candidate.encode(), token.encode()):
                return entry
        return None

    async def authenticate(self, token: str) -> AuthResult:
        entry = self._lookup(token)
        if entry is None:
            return AuthResult(authenticated=False, provider=self.name, error="Invalid API key")
        try:
            actor = Actor(
                organization_id=entry["organization_id"],
                user_id=entry.get("user_id"),
                api_key_id=entry.get("api_key_id"),
                legacy_api_key=bool(entry.get("legacy", False)),
            )
        except (KeyError, TypeError, PydanticValidationError):
            logger.warning("Misconfigured API key entry for token %s...", token[:4])
            return AuthResult(
                authenticated=False, provider=self.name, error="API key is misconfigured"
            )
        return AuthResult(
            authenticated=True,
            identity=f"user:{actor.user_id}" if actor.user_id else f"api_key:{actor.api_key_id}",
            provider=self.name,
            actor=actor,
        )
