"""Namespace routes."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from tenantgate.auth import get_actor, get_guard, get_policy, get_scoper
from tenantgate.authz import Guard, PolicyEvaluator, QueryScoper
from tenantgate.config import settings
from tenantgate.core.models import Actor, Namespace
from tenantgate.exceptions import NotFoundError
from tenantgate.rbac import Role

router = APIRouter(prefix="/v1/namespaces", tags=["Namespaces"])


class NamespaceOut(BaseModel):
    id: str
    name: str
    created_at: datetime


class CreateNamespaceRequest(BaseModel):
    name: str = Field(min_length=1, max_length=128)


def _out(ns: Namespace) -> NamespaceOut:
    return NamespaceOut(id=ns.id, name=ns.name, created_at=ns.created_at)


@router.get("", response_model=list[NamespaceOut])
async def list_namespaces(
    request: Request,
    actor: Actor = Depends(get_actor),
    scoper: QueryScoper = Depends(get_scoper),
):
    """List the namespaces the actor can see."""
    namespaces = await request.app.state.db.list_namespaces(
        actor.organization_id, scoper.namespace_predicate()
    )
    return [_out(ns) for ns in namespaces]


@router.post("", response_model=NamespaceOut, status_code=201)
async def create_namespace(
    req: CreateNamespaceRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    policy: PolicyEvaluator = Depends(get_policy),
    guard: Guard = Depends(get_guard),
):
    guard.require(
        policy.can_create_namespace,
        "namespace:create",
        required_roles=(Role.NAMESPACE_ADMIN,),
    )
    ns = await request.app.state.db.create_namespace(
        Namespace(organization_id=actor.organization_id, name=req.name)
    )
    return _out(ns)


@router.get("/{namespace_id}", response_model=NamespaceOut)
async def get_namespace(
    namespace_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
    policy: PolicyEvaluator = Depends(get_policy),
    guard: Guard = Depends(get_guard),
):
    ns = await request.app.state.db.get_namespace(actor.organization_id, namespace_id)
    if ns is None:
        raise NotFoundError(f"Namespace {namespace_id} not found")
    if settings.conceal_unreadable and not policy.has_namespace_read_access(ns.id):
        raise NotFoundError(f"Namespace {namespace_id} not found")
    guard.assert_namespace_read(ns.id)
    return _out(ns)
