"""Factory for creating auth providers based on configuration."""

from __future__ import annotations

from typing import Any

from tenantgate.auth_providers.api_key import ApiKeyProvider
from tenantgate.auth_providers.base import AuthProvider


def create_provider(
    provider_name: str,
    *,
    api_keys: dict[str, dict[str, Any]] | None = None,
    jwt_secret: str | None = None,
    jwt_audience: str | None = None,
) -> AuthProvider:
    """Create an auth provider by name."""
    if provider_name == "api_key":
        return ApiKeyProvider(api_keys or {})

    if provider_name == "jwt":
        if not jwt_secret or not jwt_audience:
            msg = "jwt_secret and jwt_audience required for jwt auth provider"
            raise ValueError(msg)
        from tenantgate.auth_providers.jwt_provider import JWTProvider

        return JWTProvider(jwt_secret, jwt_audience)

    msg = f"Unknown auth provider: {provider_name}"
    raise ValueError(msg)
