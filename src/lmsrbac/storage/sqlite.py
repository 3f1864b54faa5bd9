"""SQLite-backed store.

Uniqueness is enforced by the schema (primary keys and unique indexes),
so concurrent processes sharing one database file still get exactly one
winner per key; the loser's ``IntegrityError`` surfaces as ``ConflictError``.
Any other ``sqlite3.Error`` surfaces as ``StorageError`` naming the operation.

Grants are written row by row (``add_grant`` / ``remove_grant``), never by
rewriting a role's grant set from a snapshot read earlier, so concurrent
writers on the same role do not overwrite each other.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..exceptions import ConflictError, NotFoundError, StorageError
from ..models import Permission, Role, UserRoleAssignment
from ..permissions.patterns import PermissionGrant, parse_grant
from .base import RbacStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS permissions (
    resource TEXT NOT NULL,
    action TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (resource, action)
);

CREATE TABLE IF NOT EXISTS roles (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    level INTEGER NOT NULL,
    is_system INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS role_grants (
    role_id TEXT NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
    pattern TEXT NOT NULL,
    PRIMARY KEY (role_id, pattern)
);

CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS user_roles (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    role_id TEXT NOT NULL REFERENCES roles(id),
    institution_id TEXT,
    department_id TEXT,
    assigned_by TEXT NOT NULL,
    valid_until TEXT,
    assigned_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_user_roles_scope
    ON user_roles (user_id, role_id, COALESCE(institution_id, ''), COALESCE(department_id, ''));

CREATE INDEX IF NOT EXISTS idx_user_roles_user ON user_roles (user_id);
CREATE INDEX IF NOT EXISTS idx_user_roles_role ON user_roles (role_id);
"""


def get_db_connection(db_path: Path | str) -> sqlite3.Connection:
    """Open a connection with row factory and concurrency-friendly settings."""
    conn = sqlite3.connect(str(db_path), timeout=30.0)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")

    return conn


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqliteStore(RbacStore):
    """:class:`RbacStore` on a SQLite database file.

    A connection is opened per operation; ``atomic()`` additionally
    serializes check-then-write sequences within this process.
    """

    def __init__(self, db_path: Path | str) -> None:
        super().__init__()
        if str(db_path) == ":memory:":
            raise StorageError(
                "SqliteStore needs a database file; use InMemoryStore for process-local storage",
                operation="init",
            )
        self.db_path = Path(db_path)
        with self._connection("init") as conn:
            conn.executescript(SCHEMA)
        logger.info("SQLite RBAC store ready at %s", self.db_path)

    @contextmanager
    def _connection(self, operation: str, conflict: str | None = None) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_db_connection(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"{operation}: cannot open database: {e}", operation=operation) from e
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError as e:
            raise ConflictError(conflict or f"{operation}: constraint violated", operation=operation) from e
        except sqlite3.Error as e:
            raise StorageError(f"{operation} failed: {e}", operation=operation) from e
        finally:
            conn.close()

    # ── Row mapping ─────────────────────────────────────

    @staticmethod
    def _permission(row: sqlite3.Row) -> Permission:
        return Permission(resource=row["resource"], action=row["action"], description=row["description"])

    @staticmethod
    def _assignment(row: sqlite3.Row) -> UserRoleAssignment:
        return UserRoleAssignment(
            id=row["id"],
            user_id=row["user_id"],
            role_id=row["role_id"],
            assigned_by=row["assigned_by"],
            institution_id=row["institution_id"],
            department_id=row["department_id"],
            valid_until=_from_text(row["valid_until"]),
            assigned_at=_from_text(row["assigned_at"]),
        )

    def _load_roles(self, conn: sqlite3.Connection, where: str = "", params: tuple = ()) -> list[Role]:
        rows = conn.execute(f"SELECT * FROM roles {where}", params).fetchall()
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        placeholders = ",".join("?" for _ in ids)
        grants: dict[str, set] = {role_id: set() for role_id in ids}
        for grant_row in conn.execute(
            f"SELECT role_id, pattern FROM role_grants WHERE role_id IN ({placeholders})", ids
        ):
            grants[grant_row["role_id"]].add(parse_grant(grant_row["pattern"]))
        return [
            Role(
                id=row["id"],
                name=row["name"],
                display_name=row["display_name"],
                description=row["description"],
                level=row["level"],
                is_system=bool(row["is_system"]),
                is_active=bool(row["is_active"]),
                grants=frozenset(grants[row["id"]]),
                created_at=_from_text(row["created_at"]),
            )
            for row in rows
        ]

    @staticmethod
    def _insert_grants(conn: sqlite3.Connection, role_id: str, patterns: Iterable[str]) -> None:
        conn.executemany(
            "INSERT OR IGNORE INTO role_grants (role_id, pattern) VALUES (?, ?)",
            [(role_id, pattern) for pattern in patterns],
        )

    @staticmethod
    def _require_role(conn: sqlite3.Connection, role_id: str) -> None:
        if conn.execute("SELECT 1 FROM roles WHERE id = ?", (role_id,)).fetchone() is None:
            raise NotFoundError(f"Role {role_id!r} not found", role_id=role_id)

    # ── Permissions ─────────────────────────────────────

    def upsert_permission(self, permission: Permission) -> Permission:
        with self._connection("upsert_permission") as conn:
            conn.execute(
                """
                INSERT INTO permissions (resource, action, description) VALUES (?, ?, ?)
                ON CONFLICT(resource, action) DO UPDATE SET description = excluded.description
                """,
                (permission.resource, permission.action, permission.description),
            )
        return permission

    def get_permission(self, resource: str, action: str) -> Optional[Permission]:
        with self._connection("get_permission") as conn:
            row = conn.execute(
                "SELECT * FROM permissions WHERE resource = ? AND action = ?", (resource, action)
            ).fetchone()
        return self._permission(row) if row else None

    def list_permissions(self, resource: Optional[str] = None) -> list[Permission]:
        with self._connection("list_permissions") as conn:
            if resource is None:
                rows = conn.execute("SELECT * FROM permissions ORDER BY resource, action").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM permissions WHERE resource = ? ORDER BY action", (resource,)
                ).fetchall()
        return [self._permission(row) for row in rows]

    # ── Roles ───────────────────────────────────────────

    def insert_role(self, role: Role) -> Role:
        with self._connection("insert_role", conflict=f"Role name {role.name!r} already exists") as conn:
            conn.execute(
                """
                INSERT INTO roles (id, name, display_name, description, level, is_system, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    role.id,
                    role.name,
                    role.display_name,
                    role.description,
                    role.level,
                    int(role.is_system),
                    int(role.is_active),
                    _to_text(role.created_at),
                ),
            )
            self._insert_grants(conn, role.id, role.patterns)
        return role

    def update_role(self, role: Role) -> Role:
        with self._connection("update_role", conflict=f"Role name {role.name!r} already exists") as conn:
            cursor = conn.execute(
                """
                UPDATE roles
                SET name = ?, display_name = ?, description = ?, level = ?, is_system = ?, is_active = ?
                WHERE id = ?
                """,
                (
                    role.name,
                    role.display_name,
                    role.description,
                    role.level,
                    int(role.is_system),
                    int(role.is_active),
                    role.id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Role {role.id!r} not found", role_id=role.id)
            return self._load_roles(conn, "WHERE id = ?", (role.id,))[0]

    def add_grant(self, role_id: str, grant: PermissionGrant) -> bool:
        with self._connection("add_grant") as conn:
            self._require_role(conn, role_id)
            cursor = conn.execute(
                "INSERT OR IGNORE INTO role_grants (role_id, pattern) VALUES (?, ?)",
                (role_id, grant.pattern),
            )
        return cursor.rowcount == 1

    def remove_grant(self, role_id: str, grant: PermissionGrant) -> bool:
        with self._connection("remove_grant") as conn:
            self._require_role(conn, role_id)
            cursor = conn.execute(
                "DELETE FROM role_grants WHERE role_id = ? AND pattern = ?",
                (role_id, grant.pattern),
            )
        return cursor.rowcount == 1

    def replace_grants(self, role_id: str, grants: Iterable[PermissionGrant]) -> None:
        patterns = sorted({grant.pattern for grant in grants})
        with self._connection("replace_grants") as conn:
            # BEGIN IMMEDIATE takes the write lock before the existence check.
            conn.execute("BEGIN IMMEDIATE")
            self._require_role(conn, role_id)
            conn.execute("DELETE FROM role_grants WHERE role_id = ?", (role_id,))
            self._insert_grants(conn, role_id, patterns)

    def delete_role(self, role_id: str) -> None:
        with self._connection("delete_role", conflict="Role is still referenced by assignments") as conn:
            conn.execute("DELETE FROM role_grants WHERE role_id = ?", (role_id,))
            conn.execute("DELETE FROM roles WHERE id = ?", (role_id,))

    def get_role(self, role_id: str) -> Optional[Role]:
        with self._connection("get_role") as conn:
            roles = self._load_roles(conn, "WHERE id = ?", (role_id,))
        return roles[0] if roles else None

    def get_role_by_name(self, name: str) -> Optional[Role]:
        with self._connection("get_role_by_name") as conn:
            roles = self._load_roles(conn, "WHERE name = ?", (name,))
        return roles[0] if roles else None

    def list_roles(self) -> list[Role]:
        with self._connection("list_roles") as conn:
            return self._load_roles(conn, "ORDER BY level, name")

    # ── Users ───────────────────────────────────────────

    def add_user(self, user_id: str) -> None:
        with self._connection("add_user") as conn:
            conn.execute("INSERT OR IGNORE INTO users (user_id) VALUES (?)", (user_id,))

    def has_user(self, user_id: str) -> bool:
        with self._connection("has_user") as conn:
            row = conn.execute("SELECT 1 FROM users WHERE user_id = ?", (user_id,)).fetchone()
        return row is not None

    # ── Assignments ─────────────────────────────────────

    def insert_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        with self._connection(
            "insert_assignment",
            conflict="User already has this role in the specified context",
        ) as conn:
            conn.execute(
                """
                INSERT INTO user_roles
                    (id, user_id, role_id, institution_id, department_id, assigned_by, valid_until, assigned_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    assignment.id,
                    assignment.user_id,
                    assignment.role_id,
                    assignment.institution_id,
                    assignment.department_id,
                    assignment.assigned_by,
                    _to_text(assignment.valid_until),
                    _to_text(assignment.assigned_at),
                ),
            )
        return assignment

    def delete_assignment(self, assignment_id: str) -> Optional[UserRoleAssignment]:
        with self._connection("delete_assignment") as conn:
            row = conn.execute("SELECT * FROM user_roles WHERE id = ?", (assignment_id,)).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM user_roles WHERE id = ?", (assignment_id,))
        return self._assignment(row)

    def get_assignment(self, assignment_id: str) -> Optional[UserRoleAssignment]:
        with self._connection("get_assignment") as conn:
            row = conn.execute("SELECT * FROM user_roles WHERE id = ?", (assignment_id,)).fetchone()
        return self._assignment(row) if row else None

    def list_assignments(self, user_id: str) -> list[UserRoleAssignment]:
        with self._connection("list_assignments") as conn:
            rows = conn.execute(
                "SELECT * FROM user_roles WHERE user_id = ? ORDER BY assigned_at", (user_id,)
            ).fetchall()
        return [self._assignment(row) for row in rows]

    def count_assignments(self, role_id: str) -> int:
        with self._connection("count_assignments") as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM user_roles WHERE role_id = ?", (role_id,)).fetchone()
        return int(row["n"])


__all__ = ["SqliteStore", "get_db_connection"]
