"""Domain models for organization groups and the targets they protect.

- Rule: a (role, namespace scope, resource scope) binding
- Group: a named bundle of rules assigned to users and API keys
- Actor: an authenticated user or API key with its current groups
- Namespace / Target: the entities access is scoped to
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tenantgate.rbac import ResourceKind, Role


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# Groups and rules
# ---------------------------------------------------------------------------


class Rule(BaseModel):
    """A single role binding.

    An empty ``namespaces`` or ``resources`` set means "unrestricted within
    this role's scope", never "nothing".  Callers must test emptiness.
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    namespaces: frozenset[str] = Field(default_factory=frozenset)
    resources: frozenset[str] = Field(default_factory=frozenset)

    @property
    def unrestricted(self) -> bool:
        return not self.namespaces and not self.resources


class Group(BaseModel):
    """A persisted, named bundle of rules."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    organization_id: str
    name: str = Field(min_length=1, max_length=128)
    description: str = ""
    builtin: bool = False
    rules: tuple[Rule, ...] = ()


class Actor(BaseModel):
    """An authenticated identity scoped to one organization.

    Exactly one of ``user_id`` and ``api_key_id`` is set.  ``legacy_api_key``
    marks organization-wide keys created before groups existed.
    """

    model_config = ConfigDict(frozen=True)

    organization_id: str
    user_id: str | None = None
    api_key_id: str | None = None
    legacy_api_key: bool = False
    groups: tuple[Group, ...] = ()

    @model_validator(mode="after")
    def _one_identity(self) -> Actor:
        if (self.user_id is None) == (self.api_key_id is None):
            msg = "Actor needs exactly one of user_id or api_key_id"
            raise ValueError(msg)
        if self.legacy_api_key and self.api_key_id is None:
            msg = "legacy_api_key is only valid for API key actors"
            raise ValueError(msg)
        return self

    @property
    def id(self) -> str:
        return self.user_id if self.user_id is not None else self.api_key_id  # type: ignore[return-value]

    @property
    def is_api_key(self) -> bool:
        return self.api_key_id is not None

    def with_groups(self, groups: list[Group] | tuple[Group, ...]) -> Actor:
        return self.model_copy(update={"groups": tuple(groups)})


# ---------------------------------------------------------------------------
# Namespaces and targets
# ---------------------------------------------------------------------------


class Namespace(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    organization_id: str
    name: str = Field(min_length=1, max_length=128)
    created_at: datetime = Field(default_factory=_utcnow)


class Target(BaseModel):
    """A graph or subgraph.  ``id`` is the target id rules refer to."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    organization_id: str
    namespace_id: str
    kind: ResourceKind
    name: str = Field(min_length=1, max_length=128)
    creator_user_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def target_id(self) -> str:
        return self.id
