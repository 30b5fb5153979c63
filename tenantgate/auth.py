"""Request authentication and per-request policy construction.

Authentication is controlled by environment variables:
- ``TG_AUTH_PROVIDER`` selects the backend: ``api_key`` (default) or ``jwt``.
- ``TG_API_KEYS`` is a JSON map of token -> actor for the api_key provider.
  When empty, every protected request is rejected.
- ``TG_JWT_SECRET`` / ``TG_JWT_AUDIENCE`` configure the jwt provider.

Clients supply credentials via:
- ``Authorization: Bearer <token>`` header (preferred)
- ``X-API-Key`` header

After authentication the actor's groups are loaded from the store and a new
:class:`PolicyEvaluator` is built.  Nothing is cached between requests.
"""

from __future__ import annotations

import json
import logging
import os

from fastapi import HTTPException, Request, status

from tenantgate.auth_providers.factory import create_provider
from tenantgate.authz import Guard, PolicyEvaluator, QueryScoper
from tenantgate.config import settings
from tenantgate.core.models import Actor

# Paths that are always public, even when auth is enabled.
PUBLIC_PATHS: frozenset[str] = frozenset({"/health"})

_audit_logger = logging.getLogger("tenantgate.audit")


def _extract_token(request: Request) -> str | None:
    """Extract auth token from request headers.

    Priority: Authorization Bearer > X-API-Key header.
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return request.headers.get("X-API-Key")


def _parse_api_keys(raw: str) -> dict[str, dict]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


async def require_actor(request: Request) -> None:
    """FastAPI dependency that authenticates and resolves the actor's policy.

    Attaches ``actor``, ``policy``, ``guard`` and ``scoper`` to
    ``request.state``.  A failure to load groups propagates as
    :class:`~tenantgate.exceptions.DataLoadError` (503), never as a denial.

    Raises:
        HTTPException 403: no token was provided.
        HTTPException 401: a token was provided but it is not valid.
    """
    if request.url.path in PUBLIC_PATHS:
        return

    # Read config from os.environ so monkeypatch works in tests.
    provider = create_provider(
        os.environ.get("TG_AUTH_PROVIDER", settings.auth_provider).lower(),
        api_keys=_parse_api_keys(os.environ.get("TG_API_KEYS", settings.api_keys)),
        jwt_secret=os.environ.get("TG_JWT_SECRET", settings.jwt_secret),
        jwt_audience=os.environ.get("TG_JWT_AUDIENCE", settings.jwt_audience),
    )

    token = _extract_token(request)
    if token is None:
        _audit_logger.warning(
            "Auth failure (no token): %s %s",
            request.method,
            request.url.path,
            extra={
                "event_category": "audit",
                "action": "auth_failure",
                "reason": "no_token",
                "path": request.url.path,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Credentials required. Provide a Bearer token or X-API-Key header.",
        )

    result = await provider.authenticate(token)
    if not result.authenticated or result.actor is None:
        _audit_logger.warning(
            "Auth failure (invalid token): %s %s",
            request.method,
            request.url.path,
            extra={
                "event_category": "audit",
                "action": "auth_failure",
                "reason": "invalid_token",
                "path": request.url.path,
                "provider": result.provider,
                "error": result.error,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials.",
        )

    db = request.app.state.db
    actor: Actor = await db.load_actor(result.actor)
    policy = PolicyEvaluator.for_actor(actor)

    request.state.auth = result
    request.state.actor = actor
    request.state.policy = policy
    request.state.guard = Guard(policy, actor_id=result.identity)
    request.state.scoper = QueryScoper(policy)


def get_actor(request: Request) -> Actor:
    return request.state.actor


def get_policy(request: Request) -> PolicyEvaluator:
    return request.state.policy


def get_guard(request: Request) -> Guard:
    return request.state.guard


def get_scoper(request: Request) -> QueryScoper:
    return request.state.scoper
