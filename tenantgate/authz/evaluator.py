"""Resolved authorization policy for one actor.

A :class:`PolicyEvaluator` is built from the groups an actor holds at the
start of a request and answers every "may this actor ..." question for the
rest of that request.  It performs no I/O and is never mutated after
construction, so one instance can be shared by concurrent tasks handling the
same request.  It must not be cached across requests: group edits take
effect on the next request only because every request builds a new one.

Scope semantics: an empty namespace or resource set on a rule is the
"unrestricted" sentinel.  A resource-kind rule with neither namespaces nor
resources grants every target of its kind, including targets created after
the rule.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol

from tenantgate.core.models import Actor, Group, Rule
from tenantgate.rbac import (
    ResourceKind,
    Role,
    RoleScope,
    is_write_role,
    kind_of,
    parse_role,
    roles_implying,
    scope_of,
)

logger = logging.getLogger("tenantgate.authz.evaluator")


class TargetRef(Protocol):
    """Anything addressable as a target: a graph, a subgraph, a feature flag row."""

    @property
    def target_id(self) -> str: ...

    @property
    def namespace_id(self) -> str: ...


@dataclass(frozen=True)
class RuleScope:
    """Merged scope of every rule bound to one role.

    The sets are plain unions.  The flags keep the empty-set sentinel of any
    single rule alive after merging: ``all_namespaces`` is set when some rule
    listed no namespaces, ``all_resources`` when some rule listed no
    resources, and ``unrestricted`` when some rule listed neither.
    """

    namespaces: frozenset[str] = frozenset()
    resources: frozenset[str] = frozenset()
    all_namespaces: bool = True
    all_resources: bool = True
    unrestricted: bool = True

    @classmethod
    def merge(cls, rules: Iterable[Rule]) -> RuleScope:
        rules = tuple(rules)
        return cls(
            namespaces=frozenset().union(*(r.namespaces for r in rules)),
            resources=frozenset().union(*(r.resources for r in rules)),
            all_namespaces=any(not r.namespaces for r in rules),
            all_resources=any(not r.resources for r in rules),
            unrestricted=any(r.unrestricted for r in rules),
        )


@dataclass(frozen=True)
class ResolvedTarget:
    """Minimal :class:`TargetRef` for callers that only hold ids."""

    target_id: str
    namespace_id: str
    kind: ResourceKind | None = None


_GRAPH_READERS = roles_implying(Role.GRAPH_VIEWER)
_SUBGRAPH_WRITERS = roles_implying(Role.SUBGRAPH_PUBLISHER)
_SUBGRAPH_CHECKERS = roles_implying(Role.SUBGRAPH_CHECKER)
_SUBGRAPH_READERS = roles_implying(Role.SUBGRAPH_VIEWER)


class PolicyEvaluator:
    """Aggregates an actor's groups into a queryable capability set."""

    def __init__(
        self,
        groups: Iterable[Group] = (),
        *,
        is_api_key: bool = False,
        legacy_api_key: bool = False,
    ) -> None:
        self.groups: tuple[Group, ...] = tuple(groups)
        self.is_api_key = is_api_key or legacy_api_key

        # Rules holding the same role are merged, never replaced.  See RuleScope.
        rules_by_role: dict[Role, list[Rule]] = {}
        for group in self.groups:
            for rule in group.rules:
                rules_by_role.setdefault(rule.role, []).append(rule)

        self.rules_by_role: Mapping[Role, RuleScope] = MappingProxyType(
            {role: RuleScope.merge(rules) for role, rules in rules_by_role.items()}
        )
        self.roles: frozenset[Role] = frozenset(self.rules_by_role)
        scopes = self.rules_by_role.values()
        self.namespaces: frozenset[str] = frozenset().union(*(s.namespaces for s in scopes))
        self.resources: frozenset[str] = frozenset().union(*(s.resources for s in scopes))

        # Legacy organization API keys predate groups and act as admins.
        self.is_org_admin = legacy_api_key or Role.ORGANIZATION_ADMIN in self.roles
        self.is_org_admin_or_developer = (
            self.is_org_admin or Role.ORGANIZATION_DEVELOPER in self.roles
        )
        self.is_org_viewer = (
            self.is_org_admin_or_developer or Role.ORGANIZATION_VIEWER in self.roles
        )
        self.is_org_apikey_manager = (
            self.is_org_admin or Role.ORGANIZATION_APIKEY_MANAGER in self.roles
        )

        ns_admin = self.rules_by_role.get(Role.NAMESPACE_ADMIN)
        ns_viewer = self.rules_by_role.get(Role.NAMESPACE_VIEWER)
        self.can_admin_any_namespace = self.is_org_admin_or_developer or (
            ns_admin is not None and ns_admin.all_namespaces
        )
        self.can_view_any_namespace = self.can_admin_any_namespace or (
            ns_viewer is not None and ns_viewer.all_namespaces
        )

        logger.debug(
            "Resolved policy from %d group(s): roles=%s",
            len(self.groups),
            sorted(self.roles),
        )

    @classmethod
    def for_actor(cls, actor: Actor) -> PolicyEvaluator:
        return cls(
            actor.groups,
            is_api_key=actor.is_api_key,
            legacy_api_key=actor.legacy_api_key,
        )

    def __repr__(self) -> str:
        return f"PolicyEvaluator(roles={sorted(self.roles)!r}, groups={len(self.groups)})"

    # ------------------------------------------------------------------
    # Generic queries
    # ------------------------------------------------------------------

    def has_role(self, *roles: Role | str) -> bool:
        """True iff the actor holds at least one of *roles*.

        No arguments means False, never "anything goes".
        """
        return any(parse_role(r) in self.roles for r in roles)

    def rule_for(self, role: Role | str) -> RuleScope | None:
        return self.rules_by_role.get(parse_role(role))

    def check_namespace_access(self, namespace_id: str, *roles: Role | str) -> bool:
        """Is *namespace_id* visible under the given roles (or any held role)?"""
        if not roles:
            return namespace_id in self.namespaces
        for role in roles:
            scope = self.rule_for(role)
            if scope is not None and (scope.all_namespaces or namespace_id in scope.namespaces):
                return True
        return False

    def check_target_access(self, resource_id: str, *roles: Role | str) -> bool:
        """Resource-set counterpart of :meth:`check_namespace_access`."""
        if not roles:
            return resource_id in self.resources
        for role in roles:
            scope = self.rule_for(role)
            if scope is not None and (scope.all_resources or resource_id in scope.resources):
                return True
        return False

    def check_read_access(self, resource: TargetRef) -> bool:
        """May the actor read *resource*?

        Organization viewers (and above) always may.  Otherwise an explicit
        resource grant under any role suffices.  When the resource carries a
        ``kind``, rules of that kind also grant it if they are unrestricted or
        list the resource's namespace.
        """
        if self.is_org_viewer:
            return True
        if any(resource.target_id in scope.resources for scope in self.rules_by_role.values()):
            return True
        kind = getattr(resource, "kind", None)
        if kind is None:
            return False
        return self._grants_target(
            resource, (role for role in self.roles if kind_of(role) == kind)
        )

    def check_namespace_write_access(self, namespace_id: str) -> bool:
        if self.is_org_admin_or_developer:
            return True
        for role, scope in self.rules_by_role.items():
            if not is_write_role(role):
                continue
            if namespace_id in scope.namespaces:
                return True
            if scope_of(role) is RoleScope.NAMESPACE and scope.all_namespaces:
                return True
        return False

    def check_resource_write_access(self, resource_id: str) -> bool:
        if self.is_org_admin_or_developer:
            return True
        for role, scope in self.rules_by_role.items():
            if not is_write_role(role):
                continue
            if resource_id in scope.resources:
                return True
            if scope_of(role) is RoleScope.RESOURCE and scope.unrestricted:
                return True
        return False

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    @property
    def can_create_namespace(self) -> bool:
        return self.can_admin_any_namespace

    def has_namespace_read_access(self, namespace_id: str) -> bool:
        return self.is_org_viewer or self.check_namespace_access(
            namespace_id, Role.NAMESPACE_ADMIN, Role.NAMESPACE_VIEWER
        )

    def has_namespace_write_access(self, namespace_id: str) -> bool:
        return self.is_org_admin_or_developer or self.check_namespace_access(
            namespace_id, Role.NAMESPACE_ADMIN
        )

    # ------------------------------------------------------------------
    # Federated graphs and contracts
    # ------------------------------------------------------------------

    def can_create_federated_graph(self, namespace_id: str) -> bool:
        return self.is_org_admin_or_developer or self._grants_namespace(
            namespace_id, (Role.GRAPH_ADMIN,)
        )

    def can_create_contract(self, namespace_id: str) -> bool:
        return self.can_create_federated_graph(namespace_id)

    def can_delete_federated_graph(self, target: TargetRef) -> bool:
        return self.is_org_admin_or_developer or self._grants_namespace(
            target.namespace_id, (Role.GRAPH_ADMIN,)
        )

    def has_federated_graph_write_access(self, target: TargetRef) -> bool:
        return self.is_org_admin_or_developer or self._grants_target(target, (Role.GRAPH_ADMIN,))

    def has_federated_graph_read_access(self, target: TargetRef) -> bool:
        return self.is_org_viewer or self._grants_target(target, _GRAPH_READERS)

    # ------------------------------------------------------------------
    # Subgraphs
    # ------------------------------------------------------------------

    def can_create_subgraph(self, namespace_id: str) -> bool:
        return self.is_org_admin_or_developer or self._grants_namespace(
            namespace_id, (Role.SUBGRAPH_ADMIN,)
        )

    def can_update_subgraph(self, target: TargetRef) -> bool:
        return self.is_org_admin_or_developer or self._grants_target(
            target, (Role.SUBGRAPH_ADMIN,)
        )

    def can_delete_subgraph(self, target: TargetRef) -> bool:
        return self.is_org_admin_or_developer or self._grants_namespace(
            target.namespace_id, (Role.SUBGRAPH_ADMIN,)
        )

    def has_subgraph_write_access(self, target: TargetRef) -> bool:
        return self.is_org_admin_or_developer or self._grants_target(target, _SUBGRAPH_WRITERS)

    def has_subgraph_check_access(self, target: TargetRef) -> bool:
        return self.is_org_admin_or_developer or self._grants_target(target, _SUBGRAPH_CHECKERS)

    def has_subgraph_read_access(self, target: TargetRef) -> bool:
        return self.is_org_viewer or self._grants_target(target, _SUBGRAPH_READERS)

    # ------------------------------------------------------------------
    # Feature flags
    # ------------------------------------------------------------------

    def can_create_feature_flag(self, namespace_id: str) -> bool:
        return self.is_org_admin_or_developer

    def has_feature_flag_write_access(self, namespace_id: str) -> bool:
        return self.is_org_admin_or_developer

    def has_feature_flag_read_access(self, namespace_id: str) -> bool:
        return self.is_org_viewer

    # ------------------------------------------------------------------
    # Per-kind dispatch used by handlers and the scoper
    # ------------------------------------------------------------------

    def has_read_access(self, target: TargetRef, kind: ResourceKind) -> bool:
        if kind is ResourceKind.GRAPH:
            return self.has_federated_graph_read_access(target)
        return self.has_subgraph_read_access(target)

    def has_write_access(self, target: TargetRef, kind: ResourceKind) -> bool:
        if kind is ResourceKind.GRAPH:
            return self.has_federated_graph_write_access(target)
        return self.can_update_subgraph(target)

    def can_create(self, namespace_id: str, kind: ResourceKind) -> bool:
        if kind is ResourceKind.GRAPH:
            return self.can_create_federated_graph(namespace_id)
        return self.can_create_subgraph(namespace_id)

    def can_delete(self, target: TargetRef, kind: ResourceKind) -> bool:
        if kind is ResourceKind.GRAPH:
            return self.can_delete_federated_graph(target)
        return self.can_delete_subgraph(target)

    def read_roles_for(self, kind: ResourceKind) -> frozenset[Role]:
        """Held roles that grant read on targets of *kind*."""
        readers = _GRAPH_READERS if kind is ResourceKind.GRAPH else _SUBGRAPH_READERS
        return self.roles & readers

    def summary(self) -> dict[str, Any]:
        return {
            "roles": sorted(self.roles),
            "namespaces": sorted(self.namespaces),
            "resources": sorted(self.resources),
            "is_api_key": self.is_api_key,
            "is_organization_admin": self.is_org_admin,
            "is_organization_admin_or_developer": self.is_org_admin_or_developer,
            "is_organization_viewer": self.is_org_viewer,
            "is_organization_apikey_manager": self.is_org_apikey_manager,
            "can_admin_any_namespace": self.can_admin_any_namespace,
            "can_view_any_namespace": self.can_view_any_namespace,
        }

    # ------------------------------------------------------------------

    def _grants_namespace(self, namespace_id: str, roles: Iterable[Role]) -> bool:
        # Namespace-level grants only: rules scoped to single resources don't count.
        for role in roles:
            scope = self.rules_by_role.get(role)
            if scope is not None and (scope.unrestricted or namespace_id in scope.namespaces):
                return True
        return False

    def _grants_target(self, target: TargetRef, roles: Iterable[Role]) -> bool:
        for role in roles:
            scope = self.rules_by_role.get(role)
            if scope is None:
                continue
            if (
                scope.unrestricted
                or target.target_id in scope.resources
                or target.namespace_id in scope.namespaces
            ):
                return True
        return False
