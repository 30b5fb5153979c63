"""Federated graph and subgraph routes.

Existence and authorization are resolved together: a target that does not
exist and one the actor may not read produce the same 404 (unless
``TG_CONCEAL_UNREADABLE`` is off), so the endpoint can't be used to probe
for other teams' graphs.  403 is reserved for targets the actor can see but
not change.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import BaseModel, Field

from tenantgate.auth import get_actor, get_guard, get_policy, get_scoper
from tenantgate.authz import Guard, PolicyEvaluator, QueryScoper
from tenantgate.config import settings
from tenantgate.core.models import Actor, Target
from tenantgate.exceptions import NotFoundError
from tenantgate.rbac import ResourceKind, Role
from tenantgate.storage.database import Database

router = APIRouter(prefix="/v1/graphs", tags=["Graphs"])


class TargetOut(BaseModel):
    id: str
    namespace_id: str
    kind: ResourceKind
    name: str
    created_at: datetime

    @classmethod
    def from_target(cls, target: Target) -> TargetOut:
        return cls(
            id=target.id,
            namespace_id=target.namespace_id,
            kind=target.kind,
            name=target.name,
            created_at=target.created_at,
        )


class TargetList(BaseModel):
    items: list[TargetOut]
    total: int


class CreateTargetRequest(BaseModel):
    namespace_id: str = Field(min_length=1)
    kind: ResourceKind
    name: str = Field(min_length=1, max_length=128)


class UpdateTargetRequest(BaseModel):
    name: str = Field(min_length=1, max_length=128)


def _db(request: Request) -> Database:
    return request.app.state.db


def _admin_role(kind: ResourceKind) -> Role:
    return Role.GRAPH_ADMIN if kind is ResourceKind.GRAPH else Role.SUBGRAPH_ADMIN


async def load_visible_target(
    db: Database, guard: Guard, actor: Actor, target_id: str
) -> Target:
    """Fetch a target the actor may read, or fail as if it didn't exist."""
    target = await db.get_target(actor.organization_id, target_id)
    if target is None:
        raise NotFoundError(f"Graph {target_id} not found")
    if settings.conceal_unreadable and not guard.policy.check_read_access(target):
        raise NotFoundError(f"Graph {target_id} not found")
    guard.assert_read(target)
    return target


@router.get("", response_model=TargetList)
async def list_targets(
    request: Request,
    kind: ResourceKind | None = None,
    namespace_id: str | None = None,
    search: str | None = Query(default=None, max_length=128),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    scoper: QueryScoper = Depends(get_scoper),
):
    """List graphs and subgraphs visible to the actor."""
    items, total = await _db(request).list_targets(
        actor.organization_id,
        kind=kind,
        scope=scoper.readable_targets(kind),
        namespace_id=namespace_id,
        name_search=search,
        limit=limit,
        offset=offset,
    )
    return TargetList(items=[TargetOut.from_target(t) for t in items], total=total)


@router.post("", response_model=TargetOut, status_code=201)
async def create_target(
    req: CreateTargetRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    policy: PolicyEvaluator = Depends(get_policy),
    guard: Guard = Depends(get_guard),
):
    guard.require(
        policy.can_create(req.namespace_id, req.kind),
        f"{req.kind}:create",
        namespace_id=req.namespace_id,
        required_roles=(_admin_role(req.kind),),
    )
    target = await _db(request).create_target(
        Target(
            organization_id=actor.organization_id,
            namespace_id=req.namespace_id,
            kind=req.kind,
            name=req.name,
            creator_user_id=actor.user_id,
        )
    )
    return TargetOut.from_target(target)


@router.get("/{target_id}", response_model=TargetOut)
async def get_target(
    target_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    guard: Guard = Depends(get_guard),
):
    target = await load_visible_target(_db(request), guard, actor, target_id)
    return TargetOut.from_target(target)


@router.patch("/{target_id}", response_model=TargetOut)
async def update_target(
    target_id: str,
    req: UpdateTargetRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    policy: PolicyEvaluator = Depends(get_policy),
    guard: Guard = Depends(get_guard),
):
    db = _db(request)
    target = await load_visible_target(db, guard, actor, target_id)
    guard.require(
        policy.has_write_access(target, target.kind),
        f"{target.kind}:write",
        namespace_id=target.namespace_id,
        resource_id=target.id,
        required_roles=(_admin_role(target.kind),),
    )
    updated = await db.rename_target(actor.organization_id, target.id, req.name)
    return TargetOut.from_target(updated)


@router.delete("/{target_id}", status_code=204)
async def delete_target(
    target_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    policy: PolicyEvaluator = Depends(get_policy),
    guard: Guard = Depends(get_guard),
):
    db = _db(request)
    target = await load_visible_target(db, guard, actor, target_id)
    guard.require(
        policy.can_delete(target, target.kind),
        f"{target.kind}:delete",
        namespace_id=target.namespace_id,
        resource_id=target.id,
        required_roles=(_admin_role(target.kind),),
    )
    await db.delete_target(actor.organization_id, target.id)
    return Response(status_code=204)


@router.post("/{target_id}/check", status_code=202)
async def check_subgraph(
    target_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    policy: PolicyEvaluator = Depends(get_policy),
    guard: Guard = Depends(get_guard),
):
    """Accept a schema check request for a subgraph.

    Composition runs elsewhere; this endpoint only gates the request.
    """
    target = await load_visible_target(_db(request), guard, actor, target_id)
    if target.kind is not ResourceKind.SUBGRAPH:
        raise NotFoundError(f"Subgraph {target_id} not found")
    guard.require(
        policy.has_subgraph_check_access(target),
        "subgraph:check",
        namespace_id=target.namespace_id,
        resource_id=target.id,
        required_roles=(Role.SUBGRAPH_CHECKER,),
    )
    return {"target_id": target.id, "status": "accepted"}
