"""Role catalog for organization member groups.

Defines the closed set of roles a group rule can bind, the scope each role
applies to, and the implication table between them.  Everything here is a
pure lookup table; the evaluator in ``tenantgate.authz`` consumes it.

Roles (by scope):
    organization: admin, developer, apikey-manager, viewer
    namespace: admin, viewer
    graph: admin, viewer
    subgraph: admin, publisher, checker, viewer
"""

from __future__ import annotations

from enum import StrEnum


class UnknownRoleError(ValueError):
    """Raised when a role name is not part of the catalog."""


class RoleScope(StrEnum):
    ORGANIZATION = "organization"
    NAMESPACE = "namespace"
    RESOURCE = "resource"


class ResourceKind(StrEnum):
    """Kinds of individually addressable targets."""

    GRAPH = "graph"
    SUBGRAPH = "subgraph"


class Role(StrEnum):
    """Enumerated organization roles."""

    ORGANIZATION_ADMIN = "organization-admin"
    ORGANIZATION_DEVELOPER = "organization-developer"
    ORGANIZATION_APIKEY_MANAGER = "organization-apikey-manager"
    ORGANIZATION_VIEWER = "organization-viewer"
    NAMESPACE_ADMIN = "namespace-admin"
    NAMESPACE_VIEWER = "namespace-viewer"
    GRAPH_ADMIN = "graph-admin"
    GRAPH_VIEWER = "graph-viewer"
    SUBGRAPH_ADMIN = "subgraph-admin"
    SUBGRAPH_PUBLISHER = "subgraph-publisher"
    SUBGRAPH_CHECKER = "subgraph-checker"
    SUBGRAPH_VIEWER = "subgraph-viewer"


#: Scope each role is bound to.
ROLE_SCOPE: dict[Role, RoleScope] = {
    Role.ORGANIZATION_ADMIN: RoleScope.ORGANIZATION,
    Role.ORGANIZATION_DEVELOPER: RoleScope.ORGANIZATION,
    Role.ORGANIZATION_APIKEY_MANAGER: RoleScope.ORGANIZATION,
    Role.ORGANIZATION_VIEWER: RoleScope.ORGANIZATION,
    Role.NAMESPACE_ADMIN: RoleScope.NAMESPACE,
    Role.NAMESPACE_VIEWER: RoleScope.NAMESPACE,
    Role.GRAPH_ADMIN: RoleScope.RESOURCE,
    Role.GRAPH_VIEWER: RoleScope.RESOURCE,
    Role.SUBGRAPH_ADMIN: RoleScope.RESOURCE,
    Role.SUBGRAPH_PUBLISHER: RoleScope.RESOURCE,
    Role.SUBGRAPH_CHECKER: RoleScope.RESOURCE,
    Role.SUBGRAPH_VIEWER: RoleScope.RESOURCE,
}

#: Resource kind for resource-scoped roles.
ROLE_KIND: dict[Role, ResourceKind] = {
    Role.GRAPH_ADMIN: ResourceKind.GRAPH,
    Role.GRAPH_VIEWER: ResourceKind.GRAPH,
    Role.SUBGRAPH_ADMIN: ResourceKind.SUBGRAPH,
    Role.SUBGRAPH_PUBLISHER: ResourceKind.SUBGRAPH,
    Role.SUBGRAPH_CHECKER: ResourceKind.SUBGRAPH,
    Role.SUBGRAPH_VIEWER: ResourceKind.SUBGRAPH,
}

#: Read-only roles.  Every other role is a write role.
VIEWER_ROLES: frozenset[Role] = frozenset(
    {
        Role.ORGANIZATION_VIEWER,
        Role.NAMESPACE_VIEWER,
        Role.GRAPH_VIEWER,
        Role.SUBGRAPH_VIEWER,
    }
)

#: Direct implications.  The closure is computed below.
_DIRECT_IMPLIES: dict[Role, frozenset[Role]] = {
    Role.ORGANIZATION_ADMIN: frozenset(
        {Role.ORGANIZATION_DEVELOPER, Role.ORGANIZATION_APIKEY_MANAGER}
    ),
    Role.ORGANIZATION_DEVELOPER: frozenset({Role.ORGANIZATION_VIEWER}),
    Role.ORGANIZATION_APIKEY_MANAGER: frozenset(),
    Role.ORGANIZATION_VIEWER: frozenset(),
    Role.NAMESPACE_ADMIN: frozenset({Role.NAMESPACE_VIEWER}),
    Role.NAMESPACE_VIEWER: frozenset(),
    Role.GRAPH_ADMIN: frozenset({Role.GRAPH_VIEWER}),
    Role.GRAPH_VIEWER: frozenset(),
    Role.SUBGRAPH_ADMIN: frozenset({Role.SUBGRAPH_PUBLISHER}),
    Role.SUBGRAPH_PUBLISHER: frozenset({Role.SUBGRAPH_CHECKER}),
    Role.SUBGRAPH_CHECKER: frozenset({Role.SUBGRAPH_VIEWER}),
    Role.SUBGRAPH_VIEWER: frozenset(),
}


def _closure(direct: dict[Role, frozenset[Role]]) -> dict[Role, frozenset[Role]]:
    """Reflexive-transitive closure of *direct*, rejecting cycles."""
    missing = set(Role) - set(direct)
    if missing:
        msg = f"Roles without an implication entry: {sorted(missing)}"
        raise RuntimeError(msg)

    resolved: dict[Role, frozenset[Role]] = {}

    def visit(role: Role, path: tuple[Role, ...]) -> frozenset[Role]:
        if role in path:
            msg = f"Role implication cycle: {' -> '.join(path + (role,))}"
            raise RuntimeError(msg)
        if role in resolved:
            return resolved[role]
        out = {role}
        for implied in direct[role]:
            out |= visit(implied, path + (role,))
        resolved[role] = frozenset(out)
        return resolved[role]

    for role in Role:
        visit(role, ())
    return resolved


#: Mapping from each role to every role it implies, itself included.
ROLE_INCLUDES: dict[Role, frozenset[Role]] = _closure(_DIRECT_IMPLIES)


def parse_role(value: str | Role) -> Role:
    """Return the catalog entry for *value* or raise :class:`UnknownRoleError`."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        msg = f"Unknown role: {value!r}"
        raise UnknownRoleError(msg) from None


def implies(a: Role | str, b: Role | str) -> bool:
    """True when holding *a* grants everything *b* grants."""
    return parse_role(b) in ROLE_INCLUDES[parse_role(a)]


def is_write_role(role: Role | str) -> bool:
    """Every role except the viewer roles may mutate something."""
    return parse_role(role) not in VIEWER_ROLES


def roles_implying(role: Role | str) -> frozenset[Role]:
    """All catalog roles that imply *role* (including *role* itself)."""
    target = parse_role(role)
    return frozenset(r for r, included in ROLE_INCLUDES.items() if target in included)


def scope_of(role: Role | str) -> RoleScope:
    return ROLE_SCOPE[parse_role(role)]


def kind_of(role: Role | str) -> ResourceKind | None:
    return ROLE_KIND.get(parse_role(role))
