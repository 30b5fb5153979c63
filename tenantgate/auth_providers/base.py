"""Base authentication provider protocol and result types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from tenantgate.core.models import Actor


@dataclass
class AuthResult:
    """Result of an authentication attempt.

    ``actor`` carries identity and organization only; groups are loaded
    afterwards so authorization always sees current membership.
    """

    authenticated: bool
    identity: str = ""
    provider: str = ""
    actor: Actor | None = None
    error: str | None = None


@runtime_checkable
class AuthProvider(Protocol):
    """Protocol that all auth providers must implement."""

    name: str

    async def authenticate(self, token: str) -> AuthResult:
        """Authenticate a token/key and return an AuthResult."""
        ...
