"""JWT session token authentication provider.

Tokens are HS256-signed by the identity service and carry the organization
and the subject kind:

    {"sub": "<user or api key id>", "org": "<organization id>",
     "kind": "user" | "api_key", "aud": <audience>, "exp": ...}
"""

from __future__ import annotations

import logging

import jwt
from pydantic import ValidationError as PydanticValidationError

from tenantgate.auth_providers.base import AuthResult
from tenantgate.core.models import Actor

logger = logging.getLogger("tenantgate.auth_providers.jwt")

_JWT_ALGORITHM = "HS256"


class JWTProvider:
    """Authenticate signed session tokens."""

    name = "jwt"

    def __init__(self, secret: str, audience: str) -> None:
        self._secret = secret
        self._audience = audience

    async def authenticate(self, token: str) -> AuthResult:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_JWT_ALGORITHM],
                audience=self._audience,
                options={"require": ["sub", "org", "exp"]},
            )
        except jwt.PyJWTError as e:
            return AuthResult(
                authenticated=False,
                provider=self.name,
                error=f"JWT validation failed: {e}",
            )

        kind = payload.get("kind", "user")
        try:
            if kind == "api_key":
                actor = Actor(organization_id=payload["org"], api_key_id=payload["sub"])
            else:
                actor = Actor(organization_id=payload["org"], user_id=payload["sub"])
        except PydanticValidationError as e:
            logger.warning("JWT carried unusable claims: %s", e)
            return AuthResult(authenticated=False, provider=self.name, error="Invalid claims")

        return AuthResult(
            authenticated=True,
            identity=f"{kind}:{payload['sub']}",
            provider=self.name,
            actor=actor,
        )


def issue_token(
    secret: str,
    *,
    subject: str,
    organization_id: str,
    audience: str,
    expires_at: int,
    kind: str = "user",
) -> str:
    """Sign a session token (used by the identity service and tests)."""
    return jwt.encode(
        {"sub": subject, "org": organization_id, "kind": kind, "aud": audience, "exp": expires_at},
        secret,
        algorithm=_JWT_ALGORITHM,
    )
