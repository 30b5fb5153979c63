"""Shared fixtures for TenantGate tests."""

from __future__ import annotations

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tenantgate.api.app import _db, app
from tenantgate.core.models import Group, Rule
from tenantgate.rbac import Role
from tenantgate.storage.database import Database

ORG = "org-1"


def make_group(*rules: Rule, name: str = "g", org: str = ORG) -> Group:
    return Group(organization_id=org, name=name, rules=rules)


def rule(role: Role | str, namespaces=(), resources=()) -> Rule:
    return Rule(role=role, namespaces=frozenset(namespaces), resources=frozenset(resources))


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh on-disk database for each test."""
    database = Database(tmp_path / "test.db")
    await database.connect()
    yield database
    await database.close()


#: Tokens configured for API tests, one per persona.
API_TOKENS: dict[str, dict] = {
    "admin-token": {"organization_id": ORG, "user_id": "alice"},
    "viewer-token": {"organization_id": ORG, "user_id": "victor"},
    "team-token": {"organization_id": ORG, "user_id": "tina"},
    "nobody-token": {"organization_id": ORG, "user_id": "nora"},
    "legacy-token": {"organization_id": ORG, "api_key_id": "key-legacy", "legacy": True},
    "other-org-token": {"organization_id": "org-2", "user_id": "oscar"},
}


@pytest.fixture
def api_keys(monkeypatch):
    monkeypatch.setenv("TG_AUTH_PROVIDER", "api_key")
    monkeypatch.setenv("TG_API_KEYS", json.dumps(API_TOKENS))
    return API_TOKENS


@pytest_asyncio.fixture
async def client(tmp_path, api_keys):
    """HTTP test client wired to a fresh database."""
    # Swap the global DB for tests
    _db.db_path = tmp_path / "api_test.db"
    await _db.connect()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await _db.close()


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
