"""Async SQLite storage for namespaces, targets and organization groups.

Uses aiosqlite for async access.  Group and rule rows are the durable source
of truth for authorization; ``load_groups_for_actor`` is the only read the
authorization core depends on.  List queries take a
:mod:`tenantgate.authz.predicates` filter and compile it to parameterised SQL.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import aiosqlite
from pydantic import ValidationError as PydanticValidationError

from tenantgate.authz.predicates import (
    And,
    Column,
    Const,
    Contains,
    Eq,
    In,
    Or,
    Predicate,
    and_,
    contains,
    eq,
)
from tenantgate.authz.scoper import TARGET_KIND, TARGET_NAME, TARGET_NAMESPACE_ID
from tenantgate.core.models import Actor, Group, Namespace, Rule, Target, new_id
from tenantgate.exceptions import DataLoadError, NotFoundError, StorageError, ValidationError
from tenantgate.rbac import ResourceKind, Role

logger = logging.getLogger("tenantgate.storage")

DEFAULT_DB_PATH = Path(os.environ.get("TG_DB_PATH", "tenantgate.db"))

SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS namespaces (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (organization_id, name)
);

CREATE TABLE IF NOT EXISTS targets (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    namespace_id TEXT NOT NULL REFERENCES namespaces (id) ON DELETE CASCADE,
    kind TEXT NOT NULL,
    name TEXT NOT NULL,
    creator_user_id TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (namespace_id, kind, name)
);

CREATE INDEX IF NOT EXISTS idx_targets_org_kind
    ON targets (organization_id, kind);

CREATE TABLE IF NOT EXISTS organization_groups (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    builtin INTEGER NOT NULL DEFAULT 0,
    UNIQUE (organization_id, name)
);

CREATE TABLE IF NOT EXISTS organization_group_rules (
    id TEXT PRIMARY KEY,
    group_id TEXT NOT NULL REFERENCES organization_groups (id) ON DELETE CASCADE,
    role TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_group_rules_group
    ON organization_group_rules (group_id);

CREATE TABLE IF NOT EXISTS organization_group_rule_namespaces (
    rule_id TEXT NOT NULL REFERENCES organization_group_rules (id) ON DELETE CASCADE,
    namespace_id TEXT NOT NULL,
    PRIMARY KEY (rule_id, namespace_id)
);

CREATE TABLE IF NOT EXISTS organization_group_rule_targets (
    rule_id TEXT NOT NULL REFERENCES organization_group_rules (id) ON DELETE CASCADE,
    target_id TEXT NOT NULL,
    PRIMARY KEY (rule_id, target_id)
);

CREATE TABLE IF NOT EXISTS organization_group_members (
    group_id TEXT NOT NULL REFERENCES organization_groups (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    PRIMARY KEY (group_id, user_id)
);

CREATE TABLE IF NOT EXISTS api_key_groups (
    group_id TEXT NOT NULL REFERENCES organization_groups (id) ON DELETE CASCADE,
    api_key_id TEXT NOT NULL,
    PRIMARY KEY (group_id, api_key_id)
);
"""

#: Builtin groups seeded for every organization.
BUILTIN_GROUPS: dict[str, tuple[str, Role]] = {
    "admin": ("Full access to the organization", Role.ORGANIZATION_ADMIN),
    "developer": ("Manage every namespace, graph and subgraph", Role.ORGANIZATION_DEVELOPER),
    "viewer": ("Read-only access to the organization", Role.ORGANIZATION_VIEWER),
}

#: Logical predicate columns and the SQL they compile to.  Anything else is rejected.
_SQL_COLUMNS: dict[tuple[str, str], str] = {
    ("targets", "id"): "targets.id",
    ("targets", "namespace_id"): "targets.namespace_id",
    ("targets", "kind"): "targets.kind",
    ("targets", "name"): "targets.name",
    ("targets", "organization_id"): "targets.organization_id",
    ("namespaces", "id"): "namespaces.id",
    ("namespaces", "name"): "namespaces.name",
    ("namespaces", "organization_id"): "namespaces.organization_id",
}

TARGET_ORGANIZATION_ID = Column("targets", "organization_id")
NAMESPACE_ORGANIZATION_ID = Column("namespaces", "organization_id")


def _sql_column(column: Column) -> str:
    try:
        return _SQL_COLUMNS[(column.table, column.name)]
    except KeyError:
        msg = f"Column {column} cannot be used in a filter"
        raise ValidationError(msg) from None


def compile_predicate(predicate: Predicate) -> tuple[str, list[Any]]:
    """Translate a predicate tree into a SQL condition and bound parameters."""
    if isinstance(predicate, Const):
        return ("1 = 1" if predicate.value else "1 = 0"), []
    if isinstance(predicate, Eq):
        return f"{_sql_column(predicate.column)} = ?", [predicate.value]
    if isinstance(predicate, In):
        values = sorted(predicate.values)
        placeholders = ",".join("?" for _ in values)
        return f"{_sql_column(predicate.column)} IN ({placeholders})", values
    if isinstance(predicate, Contains):
        escaped = predicate.value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"{_sql_column(predicate.column)} LIKE ? ESCAPE '\\'", [f"%{escaped}%"]
    if isinstance(predicate, (And, Or)):
        joiner = " AND " if isinstance(predicate, And) else " OR "
        parts: list[str] = []
        params: list[Any] = []
        for op in predicate.operands:
            sql, op_params = compile_predicate(op)
            parts.append(f"({sql})")
            params.extend(op_params)
        return joiner.join(parts), params
    msg = f"Unsupported predicate node: {type(predicate).__name__}"
    raise TypeError(msg)


class Database:
    """Async SQLite database wrapper."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._db

    # --- Namespaces ---

    async def create_namespace(self, namespace: Namespace) -> Namespace:
        try:
            await self.db.execute(
                "INSERT INTO namespaces (id, organization_id, name, created_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    namespace.id,
                    namespace.organization_id,
                    namespace.name,
                    namespace.created_at.isoformat(),
                ),
            )
        except aiosqlite.IntegrityError as exc:
            msg = f"Namespace '{namespace.name}' already exists"
            raise ValidationError(msg) from exc
        await self.db.commit()
        return namespace

    async def get_namespace(self, organization_id: str, namespace_id: str) -> Namespace | None:
        cursor = await self.db.execute(
            "SELECT * FROM namespaces WHERE organization_id = ? AND id = ?",
            (organization_id, namespace_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_namespace(row)

    async def list_namespaces(
        self, organization_id: str, scope: Predicate | None = None
    ) -> list[Namespace]:
        where, params = compile_predicate(
            and_(eq(NAMESPACE_ORGANIZATION_ID, organization_id), scope)
        )
        cursor = await self.db.execute(
            f"SELECT * FROM namespaces WHERE {where} ORDER BY name ASC",  # noqa: S608
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_namespace(r) for r in rows]

    def _row_to_namespace(self, row: aiosqlite.Row) -> Namespace:
        return Namespace(
            id=row["id"],
            organization_id=row["organization_id"],
            name=row["name"],
            created_at=row["created_at"],
        )

    # --- Targets ---

    async def create_target(self, target: Target) -> Target:
        if await self.get_namespace(target.organization_id, target.namespace_id) is None:
            raise NotFoundError(f"Namespace {target.namespace_id} not found")
        try:
            await self.db.execute(
                """INSERT INTO targets
                   (id, organization_id, namespace_id, kind, name, creator_user_id, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    target.id,
                    target.organization_id,
                    target.namespace_id,
                    target.kind.value,
                    target.name,
                    target.creator_user_id,
                    target.created_at.isoformat(),
                ),
            )
        except aiosqlite.IntegrityError as exc:
            msg = f"A {target.kind.value} named '{target.name}' already exists in this namespace"
            raise ValidationError(msg) from exc
        await self.db.commit()
        return target

    async def get_target(self, organization_id: str, target_id: str) -> Target | None:
        cursor = await self.db.execute(
            "SELECT * FROM targets WHERE organization_id = ? AND id = ?",
            (organization_id, target_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_target(row)

    async def rename_target(self, organization_id: str, target_id: str, name: str) -> Target:
        try:
            cursor = await self.db.execute(
                "UPDATE targets SET name = ? WHERE organization_id = ? AND id = ?",
                (name, organization_id, target_id),
            )
        except aiosqlite.IntegrityError as exc:
            msg = f"Name '{name}' is already taken in this namespace"
            raise ValidationError(msg) from exc
        await self.db.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"Target {target_id} not found")
        target = await self.get_target(organization_id, target_id)
        if target is None:
            raise NotFoundError(f"Target {target_id} not found")
        return target

    async def delete_target(self, organization_id: str, target_id: str) -> bool:
        cursor = await self.db.execute(
            "DELETE FROM targets WHERE organization_id = ? AND id = ?",
            (organization_id, target_id),
        )
        await self.db.commit()
        return cursor.rowcount > 0

    async def list_targets(
        self,
        organization_id: str,
        *,
        kind: ResourceKind | None = None,
        scope: Predicate | None = None,
        namespace_id: str | None = None,
        name_search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Target], int]:
        """Return a page of targets and the total count.

        The organization condition is always applied and ANDed with *scope*
        and the caller's filters.
        """
        conditions: list[Predicate | None] = [
            eq(TARGET_ORGANIZATION_ID, organization_id),
            scope,
        ]
        if kind is not None:
            conditions.append(eq(TARGET_KIND, kind.value))
        if namespace_id is not None:
            conditions.append(eq(TARGET_NAMESPACE_ID, namespace_id))
        if name_search:
            conditions.append(contains(TARGET_NAME, name_search))
        where, params = compile_predicate(and_(*conditions))

        count_cursor = await self.db.execute(
            f"SELECT COUNT(*) FROM targets WHERE {where}",  # noqa: S608
            params,
        )
        row = await count_cursor.fetchone()
        total = row[0] if row else 0

        cursor = await self.db.execute(
            f"SELECT * FROM targets WHERE {where} "  # noqa: S608
            "ORDER BY namespace_id ASC, name ASC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        )
        rows = await cursor.fetchall()
        return [self._row_to_target(r) for r in rows], total

    def _row_to_target(self, row: aiosqlite.Row) -> Target:
        return Target(
            id=row["id"],
            organization_id=row["organization_id"],
            namespace_id=row["namespace_id"],
            kind=ResourceKind(row["kind"]),
            name=row["name"],
            creator_user_id=row["creator_user_id"],
            created_at=row["created_at"],
        )

    # --- Groups and rules (administrative writes) ---

    async def create_group(self, group: Group) -> Group:
        try:
            await self.db.execute(
                """INSERT INTO organization_groups (id, organization_id, name, description, builtin)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    group.id,
                    group.organization_id,
                    group.name,
                    group.description,
                    int(group.builtin),
                ),
            )
            for rule in group.rules:
                await self._insert_rule(group.id, rule)
        except aiosqlite.IntegrityError as exc:
            await self.db.rollback()
            msg = f"Group '{group.name}' already exists"
            raise ValidationError(msg) from exc
        await self.db.commit()
        return group

    async def add_rule(self, group_id: str, rule: Rule) -> str:
        rule_id = await self._insert_rule(group_id, rule)
        await self.db.commit()
        return rule_id

    async def _insert_rule(self, group_id: str, rule: Rule) -> str:
        rule_id = new_id()
        await self.db.execute(
            "INSERT INTO organization_group_rules (id, group_id, role) VALUES (?, ?, ?)",
            (rule_id, group_id, rule.role.value),
        )
        await self.db.executemany(
            "INSERT INTO organization_group_rule_namespaces (rule_id, namespace_id) VALUES (?, ?)",
            [(rule_id, ns) for ns in sorted(rule.namespaces)],
        )
        await self.db.executemany(
            "INSERT INTO organization_group_rule_targets (rule_id, target_id) VALUES (?, ?)",
            [(rule_id, t) for t in sorted(rule.resources)],
        )
        return rule_id

    async def add_member(self, group_id: str, user_id: str) -> None:
        await self.db.execute(
            "INSERT OR IGNORE INTO organization_group_members (group_id, user_id) VALUES (?, ?)",
            (group_id, user_id),
        )
        await self.db.commit()

    async def assign_api_key_group(self, group_id: str, api_key_id: str) -> None:
        await self.db.execute(
            "INSERT OR IGNORE INTO api_key_groups (group_id, api_key_id) VALUES (?, ?)",
            (group_id, api_key_id),
        )
        await self.db.commit()

    async def seed_builtin_groups(self, organization_id: str) -> dict[str, Group]:
        """Create the builtin admin/developer/viewer groups if missing."""
        seeded: dict[str, Group] = {}
        for name, (description, role) in BUILTIN_GROUPS.items():
            cursor = await self.db.execute(
                "SELECT id FROM organization_groups WHERE organization_id = ? AND name = ?",
                (organization_id, name),
            )
            row = await cursor.fetchone()
            if row is not None:
                seeded[name] = await self._load_group(row["id"])
                continue
            group = Group(
                organization_id=organization_id,
                name=name,
                description=description,
                builtin=True,
                rules=(Rule(role=role),),
            )
            seeded[name] = await self.create_group(group)
            logger.info("Seeded builtin group %s for organization %s", name, organization_id)
        return seeded

    # --- Group loading (read-only, used by the authorization core) ---

    async def load_groups_for_actor(self, actor_id: str, organization_id: str) -> list[Group]:
        """Load every group held by a user or API key in one organization.

        Driver failures surface as :class:`DataLoadError`.  They are not
        retried and must not be treated as a denial.
        """
        try:
            cursor = await self.db.execute(
                """SELECT g.* FROM organization_groups g
                   WHERE g.organization_id = ?
                     AND (g.id IN (SELECT group_id FROM organization_group_members
                                  WHERE user_id = ?)
                          OR g.id IN (SELECT group_id FROM api_key_groups
                                      WHERE api_key_id = ?))
                   ORDER BY g.name ASC""",
                (organization_id, actor_id, actor_id),
            )
            group_rows = await cursor.fetchall()
            return [await self._group_from_row(row) for row in group_rows]
        except (aiosqlite.Error, RuntimeError, PydanticValidationError) as exc:
            logger.error(
                "Failed to load groups for actor %s in organization %s",
                actor_id,
                organization_id,
                exc_info=True,
            )
            raise DataLoadError("Could not load authorization data") from exc

    async def load_actor(self, actor: Actor) -> Actor:
        """Return *actor* with its current groups attached."""
        groups = await self.load_groups_for_actor(actor.id, actor.organization_id)
        return actor.with_groups(groups)

    async def _load_group(self, group_id: str) -> Group:
        cursor = await self.db.execute(
            "SELECT * FROM organization_groups WHERE id = ?", (group_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise StorageError(f"Group {group_id} vanished during load")
        return await self._group_from_row(row)

    async def _group_from_row(self, row: aiosqlite.Row) -> Group:
        cursor = await self.db.execute(
            "SELECT id, role FROM organization_group_rules WHERE group_id = ? ORDER BY id",
            (row["id"],),
        )
        rule_rows = await cursor.fetchall()
        rules: list[Rule] = []
        for rule_row in rule_rows:
            ns_cursor = await self.db.execute(
                "SELECT namespace_id FROM organization_group_rule_namespaces WHERE rule_id = ?",
                (rule_row["id"],),
            )
            target_cursor = await self.db.execute(
                "SELECT target_id FROM organization_group_rule_targets WHERE rule_id = ?",
                (rule_row["id"],),
            )
            rules.append(
                Rule(
                    role=rule_row["role"],
                    namespaces=frozenset(r[0] for r in await ns_cursor.fetchall()),
                    resources=frozenset(r[0] for r in await target_cursor.fetchall()),
                )
            )
        return Group(
            id=row["id"],
            organization_id=row["organization_id"],
            name=row["name"],
            description=row["description"],
            builtin=bool(row["builtin"]),
            rules=tuple(rules),
        )

