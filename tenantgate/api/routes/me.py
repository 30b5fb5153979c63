"""Introspection of the calling actor's effective permissions."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tenantgate.auth import get_actor, get_policy
from tenantgate.authz import PolicyEvaluator
from tenantgate.core.models import Actor

router = APIRouter(prefix="/v1/me", tags=["Me"])


@router.get("/permissions")
async def my_permissions(
    actor: Actor = Depends(get_actor),
    policy: PolicyEvaluator = Depends(get_policy),
):
    return {
        "actor": actor.id,
        "organization_id": actor.organization_id,
        "groups": [g.name for g in actor.groups],
        "policy": policy.summary(),
    }
