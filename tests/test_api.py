"""End-to-end tests for the HTTP API: authentication, guarded routes and list scoping."""

from __future__ import annotations

import pytest_asyncio

from conftest import ORG, auth, rule
from tenantgate.api.app import _db
from tenantgate.config import settings
from tenantgate.core.models import Group, Namespace, Target
from tenantgate.exceptions import DataLoadError
from tenantgate.rbac import ResourceKind, Role


@pytest_asyncio.fixture
async def world(client):
    """Two namespaces with graphs and subgraphs, plus one group per persona.

    - alice: builtin admin group
    - victor: builtin viewer group
    - tina: graph-admin on ns1, subgraph-checker on one subgraph in ns2
    - nora: no groups
    """
    ns1 = await _db.create_namespace(Namespace(organization_id=ORG, name="ns1"))
    ns2 = await _db.create_namespace(Namespace(organization_id=ORG, name="ns2"))

    async def target(ns, name, kind=ResourceKind.GRAPH):
        return await _db.create_target(
            Target(organization_id=ORG, namespace_id=ns.id, kind=kind, name=name)
        )

    g1 = await target(ns1, "products")
    s1 = await target(ns1, "products-sub", ResourceKind.SUBGRAPH)
    g2 = await target(ns2, "billing")
    s2 = await target(ns2, "billing-sub", ResourceKind.SUBGRAPH)

    builtin = await _db.seed_builtin_groups(ORG)
    await _db.add_member(builtin["admin"].id, "alice")
    await _db.add_member(builtin["viewer"].id, "victor")

    team = await _db.create_group(
        Group(
            organization_id=ORG,
            name="team",
            rules=(
                rule(Role.GRAPH_ADMIN, namespaces=[ns1.id]),
                rule(Role.SUBGRAPH_CHECKER, resources=[s2.id]),
            ),
        )
    )
    await _db.add_member(team.id, "tina")

    return {"ns1": ns1, "ns2": ns2, "g1": g1, "s1": s1, "g2": g2, "s2": s2}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestAuthentication:
    async def test_health_is_public(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_missing_credentials(self, client):
        resp = await client.get("/v1/namespaces")
        assert resp.status_code == 403

    async def test_invalid_credentials(self, client):
        resp = await client.get("/v1/namespaces", headers=auth("wrong"))
        assert resp.status_code == 401

    async def test_x_api_key_header(self, client):
        resp = await client.get("/v1/me/permissions", headers={"X-API-Key": "viewer-token"})
        assert resp.status_code == 200

    async def test_request_id_header(self, client):
        resp = await client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 8


# ---------------------------------------------------------------------------
# Permissions summary
# ---------------------------------------------------------------------------


class TestMe:
    async def test_team_member(self, client, world):
        resp = await client.get("/v1/me/permissions", headers=auth("team-token"))
        body = resp.json()
        assert body["actor"] == "tina"
        assert body["groups"] == ["team"]
        assert body["policy"]["roles"] == ["graph-admin", "subgraph-checker"]
        assert body["policy"]["is_organization_viewer"] is False

    async def test_no_groups(self, client, world):
        body = (await client.get("/v1/me/permissions", headers=auth("nobody-token"))).json()
        assert body["groups"] == []
        assert body["policy"]["roles"] == []

    async def test_legacy_key(self, client, world):
        body = (await client.get("/v1/me/permissions", headers=auth("legacy-token"))).json()
        assert body["policy"]["is_organization_admin"] is True
        assert body["policy"]["is_api_key"] is True


# ---------------------------------------------------------------------------
# Namespaces
# ---------------------------------------------------------------------------


class TestNamespaces:
    async def test_admin_sees_all(self, client, world):
        resp = await client.get("/v1/namespaces", headers=auth("admin-token"))
        assert [n["name"] for n in resp.json()] == ["ns1", "ns2"]

    async def test_graph_grant_does_not_list_namespace(self, client, world):
        resp = await client.get("/v1/namespaces", headers=auth("team-token"))
        assert resp.json() == []
        resp = await client.get(f"/v1/namespaces/{world['ns1'].id}", headers=auth("team-token"))
        assert resp.status_code == 404

    async def test_listed_namespaces_open(self, client, world):
        group = await _db.create_group(
            Group(
                organization_id=ORG,
                name="ns1-viewers",
                rules=(rule(Role.NAMESPACE_VIEWER, namespaces=[world["ns1"].id]),),
            )
        )
        await _db.add_member(group.id, "nora")
        listed = (await client.get("/v1/namespaces", headers=auth("nobody-token"))).json()
        assert [n["name"] for n in listed] == ["ns1"]
        for ns in listed:
            resp = await client.get(f"/v1/namespaces/{ns['id']}", headers=auth("nobody-token"))
            assert resp.status_code == 200
        resp = await client.get(f"/v1/namespaces/{world['ns2'].id}", headers=auth("nobody-token"))
        assert resp.status_code == 404

    async def test_no_grants_sees_nothing(self, client, world):
        resp = await client.get("/v1/namespaces", headers=auth("nobody-token"))
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_create_requires_namespace_admin(self, client, world):
        resp = await client.post(
            "/v1/namespaces", json={"name": "ns3"}, headers=auth("team-token")
        )
        assert resp.status_code == 403
        body = resp.json()
        assert body["error"] == "access_denied"
        assert "namespace:create" in body["message"]
        assert "request_id" in body

    async def test_admin_creates(self, client, world):
        resp = await client.post(
            "/v1/namespaces", json={"name": "ns3"}, headers=auth("admin-token")
        )
        assert resp.status_code == 201
        assert resp.json()["name"] == "ns3"

    async def test_legacy_key_creates(self, client, world):
        resp = await client.post(
            "/v1/namespaces", json={"name": "ns4"}, headers=auth("legacy-token")
        )
        assert resp.status_code == 201

    async def test_duplicate_is_a_validation_error(self, client, world):
        resp = await client.post(
            "/v1/namespaces", json={"name": "ns1"}, headers=auth("admin-token")
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    async def test_get_unreadable_namespace_is_concealed(self, client, world):
        resp = await client.get(f"/v1/namespaces/{world['ns2'].id}", headers=auth("team-token"))
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Graph listing
# ---------------------------------------------------------------------------


class TestListGraphs:
    async def test_admin_sees_everything(self, client, world):
        resp = await client.get("/v1/graphs", headers=auth("admin-token"))
        assert resp.json()["total"] == 4

    async def test_team_sees_grants_only(self, client, world):
        resp = await client.get("/v1/graphs", headers=auth("team-token"))
        ids = {t["id"] for t in resp.json()["items"]}
        assert ids == {world["g1"].id, world["s2"].id}

    async def test_kind_filter(self, client, world):
        resp = await client.get("/v1/graphs?kind=subgraph", headers=auth("team-token"))
        assert [t["id"] for t in resp.json()["items"]] == [world["s2"].id]

    async def test_no_grants_sees_empty_list(self, client, world):
        resp = await client.get("/v1/graphs", headers=auth("nobody-token"))
        assert resp.status_code == 200
        assert resp.json() == {"items": [], "total": 0}

    async def test_search_composes_with_scope(self, client, world):
        resp = await client.get("/v1/graphs?search=billing", headers=auth("team-token"))
        assert [t["name"] for t in resp.json()["items"]] == ["billing-sub"]

    async def test_other_organization_sees_nothing(self, client, world):
        resp = await client.get("/v1/graphs", headers=auth("other-org-token"))
        assert resp.json()["total"] == 0


# ---------------------------------------------------------------------------
# Single graph access
# ---------------------------------------------------------------------------


class TestGetGraph:
    async def test_readable(self, client, world):
        resp = await client.get(f"/v1/graphs/{world['g1'].id}", headers=auth("team-token"))
        assert resp.status_code == 200
        assert resp.json()["name"] == "products"

    async def test_unreadable_looks_like_missing(self, client, world):
        hidden = await client.get(f"/v1/graphs/{world['g2'].id}", headers=auth("team-token"))
        missing = await client.get("/v1/graphs/does-not-exist", headers=auth("team-token"))
        assert hidden.status_code == missing.status_code == 404
        assert hidden.json()["error"] == missing.json()["error"] == "not_found"

    async def test_unreadable_is_403_when_not_concealed(self, client, world, monkeypatch):
        monkeypatch.setattr(settings, "conceal_unreadable", False)
        resp = await client.get(f"/v1/graphs/{world['g2'].id}", headers=auth("team-token"))
        assert resp.status_code == 403
        assert resp.json()["error"] == "access_denied"

    async def test_other_organization(self, client, world):
        resp = await client.get(f"/v1/graphs/{world['g1'].id}", headers=auth("other-org-token"))
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class TestMutations:
    async def test_viewer_can_read_but_not_rename(self, client, world):
        url = f"/v1/graphs/{world['g2'].id}"
        assert (await client.get(url, headers=auth("viewer-token"))).status_code == 200
        resp = await client.patch(url, json={"name": "renamed"}, headers=auth("viewer-token"))
        assert resp.status_code == 403

    async def test_graph_admin_renames_and_deletes_in_namespace(self, client, world):
        url = f"/v1/graphs/{world['g1'].id}"
        resp = await client.patch(url, json={"name": "catalog"}, headers=auth("team-token"))
        assert resp.status_code == 200
        assert resp.json()["name"] == "catalog"
        assert (await client.delete(url, headers=auth("team-token"))).status_code == 204
        assert (await client.get(url, headers=auth("admin-token"))).status_code == 404

    async def test_graph_admin_cannot_touch_subgraphs(self, client, world):
        url = f"/v1/graphs/{world['s1'].id}"
        resp = await client.patch(url, json={"name": "x"}, headers=auth("team-token"))
        assert resp.status_code == 404

    async def test_create_graph_in_granted_namespace(self, client, world):
        body = {"namespace_id": world["ns1"].id, "kind": "graph", "name": "orders"}
        resp = await client.post("/v1/graphs", json=body, headers=auth("team-token"))
        assert resp.status_code == 201
        assert resp.json()["kind"] == "graph"

    async def test_create_graph_elsewhere_is_denied(self, client, world):
        body = {"namespace_id": world["ns2"].id, "kind": "graph", "name": "orders"}
        resp = await client.post("/v1/graphs", json=body, headers=auth("team-token"))
        assert resp.status_code == 403

    async def test_create_subgraph_is_denied_for_graph_admin(self, client, world):
        body = {"namespace_id": world["ns1"].id, "kind": "subgraph", "name": "orders"}
        resp = await client.post("/v1/graphs", json=body, headers=auth("team-token"))
        assert resp.status_code == 403

    async def test_create_in_missing_namespace(self, client, world):
        body = {"namespace_id": "nope", "kind": "graph", "name": "orders"}
        resp = await client.post("/v1/graphs", json=body, headers=auth("admin-token"))
        assert resp.status_code == 404

    async def test_subgraph_check(self, client, world):
        url = f"/v1/graphs/{world['s2'].id}/check"
        assert (await client.post(url, headers=auth("team-token"))).status_code == 202
        assert (await client.post(url, headers=auth("viewer-token"))).status_code == 403

    async def test_check_on_a_graph_is_not_found(self, client, world):
        url = f"/v1/graphs/{world['g1'].id}/check"
        assert (await client.post(url, headers=auth("admin-token"))).status_code == 404


# ---------------------------------------------------------------------------
# Authorization data failures
# ---------------------------------------------------------------------------


class TestDataLoadFailure:
    async def test_load_failure_is_503_not_403(self, client, world, monkeypatch):
        async def broken(actor_id, organization_id):
            raise DataLoadError("Could not load authorization data")

        monkeypatch.setattr(_db, "load_groups_for_actor", broken)
        resp = await client.get("/v1/graphs", headers=auth("admin-token"))
        assert resp.status_code == 503
        assert resp.json()["error"] == "data_load_failure"
