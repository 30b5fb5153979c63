"""Fail-fast authorization assertions for request handlers.

Each ``assert_*`` method asks the :class:`PolicyEvaluator` one question and
raises :class:`~tenantgate.exceptions.Unauthorized` when the answer is no.
Denials are an expected, policy-driven outcome: they go to the audit logger
at INFO, not to the error log.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from tenantgate.authz.evaluator import PolicyEvaluator, TargetRef
from tenantgate.exceptions import Unauthorized
from tenantgate.rbac import Role, VIEWER_ROLES

_audit_logger = logging.getLogger("tenantgate.audit")

_WRITE_ROLES = tuple(r for r in Role if r not in VIEWER_ROLES)


class Guard:
    """Stateless wrapper around one request's evaluator."""

    def __init__(self, policy: PolicyEvaluator, *, actor_id: str | None = None) -> None:
        self.policy = policy
        self.actor_id = actor_id

    def assert_namespace_write(self, namespace_id: str) -> None:
        self.require(
            self.policy.check_namespace_write_access(namespace_id),
            "namespace:write",
            namespace_id=namespace_id,
            required_roles=_WRITE_ROLES,
        )

    def assert_namespace_read(self, namespace_id: str) -> None:
        self.require(
            self.policy.has_namespace_read_access(namespace_id),
            "namespace:read",
            namespace_id=namespace_id,
            required_roles=(Role.NAMESPACE_VIEWER,),
        )

    def assert_resource_write(self, resource_id: str) -> None:
        self.require(
            self.policy.check_resource_write_access(resource_id),
            "resource:write",
            resource_id=resource_id,
            required_roles=_WRITE_ROLES,
        )

    def assert_read(self, resource: TargetRef) -> None:
        self.require(
            self.policy.check_read_access(resource),
            "resource:read",
            namespace_id=resource.namespace_id,
            resource_id=resource.target_id,
            required_roles=(Role.ORGANIZATION_VIEWER,),
        )

    def require(
        self,
        allowed: bool,
        action: str,
        *,
        namespace_id: str | None = None,
        resource_id: str | None = None,
        required_roles: Iterable[Role] = (),
    ) -> None:
        """Raise :class:`Unauthorized` unless *allowed*."""
        if allowed:
            return
        exc = Unauthorized(
            action,
            namespace_id=namespace_id,
            resource_id=resource_id,
            required_roles=required_roles,
        )
        _audit_logger.info(
            "Access denied: %s (namespace=%s resource=%s)",
            action,
            namespace_id,
            resource_id,
            extra={
                "event_category": "audit",
                "action": action,
                "actor": self.actor_id,
                "namespace_id": namespace_id,
                "resource_id": resource_id,
                "required_roles": list(exc.required_roles),
            },
        )
        raise exc
