"""Row filters for list queries.

:class:`QueryScoper` turns a resolved policy into a predicate that the
storage layer ANDs into every list query, so rows outside the actor's
entitlement are excluded by the query itself.  ``None`` means "no filter";
an actor without grants gets :data:`MATCH_NONE`, never ``None``.

The organization condition is not part of these predicates.  The store
applies it unconditionally.
"""

from __future__ import annotations

from tenantgate.authz.evaluator import PolicyEvaluator
from tenantgate.authz.predicates import Column, Predicate, and_, eq, in_, or_
from tenantgate.rbac import ResourceKind, Role

TARGET_ID = Column("targets", "id")
TARGET_NAMESPACE_ID = Column("targets", "namespace_id")
TARGET_KIND = Column("targets", "kind")
TARGET_NAME = Column("targets", "name")
NAMESPACE_ID = Column("namespaces", "id")


class QueryScoper:
    def __init__(self, policy: PolicyEvaluator) -> None:
        self.policy = policy

    def predicate_for(self, kind: ResourceKind | None = None) -> Predicate | None:
        """Filter over targets visible to the actor.

        Without *kind*, the namespaces and resources of every held role count.
        With *kind*, only roles that grant read on that kind count, and an
        unrestricted rule among them lifts the filter.
        """
        if self.policy.is_org_viewer:
            return None

        if kind is None:
            # Kinds readable without restriction are matched by kind.
            open_kinds = [
                eq(TARGET_KIND, k.value) for k in ResourceKind if self._unrestricted_reader(k)
            ]
            namespaces = self.policy.namespaces
            resources = self.policy.resources
        else:
            if self._unrestricted_reader(kind):
                return None
            open_kinds: list[Predicate] = []
            scopes = [self.policy.rules_by_role[r] for r in self.policy.read_roles_for(kind)]
            namespaces = frozenset().union(*(s.namespaces for s in scopes))
            resources = frozenset().union(*(s.resources for s in scopes))

        # Empty sets drop out; with nothing left this is MATCH_NONE.
        return or_(*open_kinds, in_(TARGET_NAMESPACE_ID, namespaces), in_(TARGET_ID, resources))

    def readable_targets(self, kind: ResourceKind | None = None) -> Predicate | None:
        """Targets the actor may open, mirroring ``check_read_access``.

        Unlike ``predicate_for(None)``, a namespace grant only exposes targets
        of the kind the granting role applies to.  An explicit resource grant
        exposes the target whatever role carries it.
        """
        if self.policy.is_org_viewer:
            return None
        kinds = list(ResourceKind) if kind is None else [kind]
        return or_(
            in_(TARGET_ID, self.policy.resources),
            *(and_(eq(TARGET_KIND, k.value), self.predicate_for(k)) for k in kinds),
        )

    def namespace_predicate(self) -> Predicate | None:
        """Filter over namespace rows the actor may open.

        Mirrors ``has_namespace_read_access``: only namespace roles count, so
        a graph or subgraph grant in a namespace does not list the namespace.
        """
        if self.policy.is_org_viewer or self.policy.can_view_any_namespace:
            return None
        scopes = [self.policy.rule_for(r) for r in (Role.NAMESPACE_ADMIN, Role.NAMESPACE_VIEWER)]
        namespaces = frozenset().union(*(s.namespaces for s in scopes if s is not None))
        return in_(NAMESPACE_ID, namespaces)

    def scoped(self, kind: ResourceKind | None, *filters: Predicate | None) -> Predicate:
        """The scoping predicate ANDed with caller-supplied *filters*."""
        return and_(self.predicate_for(kind), *filters)

    def _unrestricted_reader(self, kind: ResourceKind) -> bool:
        return any(
            self.policy.rules_by_role[r].unrestricted for r in self.policy.read_roles_for(kind)
        )
