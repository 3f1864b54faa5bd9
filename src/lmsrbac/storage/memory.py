"""Process-local store backed by dicts.

Writers hold the store lock and publish changes copy-on-write: a new dict
is built and rebound, never mutated in place. Readers take no lock; they
see either the old or the new mapping, and only frozen entities.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from ..exceptions import ConflictError, NotFoundError
from ..models import Permission, Role, UserRoleAssignment
from ..permissions.patterns import PermissionGrant
from .base import RbacStore


class InMemoryStore(RbacStore):
    """Thread-safe in-memory :class:`RbacStore`."""

    def __init__(self) -> None:
        super().__init__()
        self._permissions: dict[tuple[str, str], Permission] = {}
        self._roles: dict[str, Role] = {}
        self._role_ids_by_name: dict[str, str] = {}
        self._users: frozenset[str] = frozenset()
        self._assignments: dict[str, UserRoleAssignment] = {}
        self._assignment_keys: dict[tuple, str] = {}

    # ── Permissions ─────────────────────────────────────

    def upsert_permission(self, permission: Permission) -> Permission:
        key = (permission.resource, permission.action)
        with self._lock:
            existing = self._permissions.get(key)
            if existing is not None:
                permission = replace(existing, description=permission.description)
            self._permissions = {**self._permissions, key: permission}
            return permission

    def get_permission(self, resource: str, action: str) -> Optional[Permission]:
        return self._permissions.get((resource, action))

    def list_permissions(self, resource: Optional[str] = None) -> list[Permission]:
        return [p for p in self._permissions.values() if resource is None or p.resource == resource]

    # ── Roles ───────────────────────────────────────────

    def _require_role(self, role_id: str) -> Role:
        role = self._roles.get(role_id)
        if role is None:
            raise NotFoundError(f"Role {role_id!r} not found", role_id=role_id)
        return role

    def _publish_role(self, role: Role) -> Role:
        self._roles = {**self._roles, role.id: role}
        return role

    def insert_role(self, role: Role) -> Role:
        with self._lock:
            if role.name in self._role_ids_by_name:
                raise ConflictError(f"Role name {role.name!r} already exists", role=role.name)
            if role.id in self._roles:
                raise ConflictError(f"Role id {role.id!r} already exists", role_id=role.id)
            self._publish_role(role)
            self._role_ids_by_name = {**self._role_ids_by_name, role.name: role.id}
            return role

    def update_role(self, role: Role) -> Role:
        with self._lock:
            current = self._require_role(role.id)
            # Grants change only through the grant methods below.
            role = replace(role, grants=current.grants)
            if current.name != role.name:
                if role.name in self._role_ids_by_name:
                    raise ConflictError(f"Role name {role.name!r} already exists", role=role.name)
                names = dict(self._role_ids_by_name)
                del names[current.name]
                names[role.name] = role.id
                self._publish_role(role)
                self._role_ids_by_name = names
                return role
            return self._publish_role(role)

    def add_grant(self, role_id: str, grant: PermissionGrant) -> bool:
        with self._lock:
            role = self._require_role(role_id)
            if grant in role.grants:
                return False
            self._publish_role(replace(role, grants=role.grants | {grant}))
            return True

    def remove_grant(self, role_id: str, grant: PermissionGrant) -> bool:
        with self._lock:
            role = self._require_role(role_id)
            if grant not in role.grants:
                return False
            self._publish_role(replace(role, grants=role.grants - {grant}))
            return True

    def replace_grants(self, role_id: str, grants: Iterable[PermissionGrant]) -> None:
        with self._lock:
            role = self._require_role(role_id)
            self._publish_role(replace(role, grants=frozenset(grants)))

    def delete_role(self, role_id: str) -> None:
        with self._lock:
            role = self._roles.get(role_id)
            if role is None:
                return
            self._role_ids_by_name = {k: v for k, v in self._role_ids_by_name.items() if k != role.name}
            self._roles = {k: v for k, v in self._roles.items() if k != role_id}

    def get_role(self, role_id: str) -> Optional[Role]:
        return self._roles.get(role_id)

    def get_role_by_name(self, name: str) -> Optional[Role]:
        role_id = self._role_ids_by_name.get(name)
        return self._roles.get(role_id) if role_id is not None else None

    def list_roles(self) -> list[Role]:
        return list(self._roles.values())

    # ── Users ───────────────────────────────────────────

    def add_user(self, user_id: str) -> None:
        with self._lock:
            self._users = self._users | {user_id}

    def has_user(self, user_id: str) -> bool:
        return user_id in self._users

    # ── Assignments ─────────────────────────────────────

    def insert_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        key = assignment.scope_key
        with self._lock:
            if key in self._assignment_keys:
                raise ConflictError(
                    "User already has this role in the specified context",
                    user_id=assignment.user_id,
                    role_id=assignment.role_id,
                )
            self._assignments = {**self._assignments, assignment.id: assignment}
            self._assignment_keys = {**self._assignment_keys, key: assignment.id}
            return assignment

    def delete_assignment(self, assignment_id: str) -> Optional[UserRoleAssignment]:
        with self._lock:
            assignment = self._assignments.get(assignment_id)
            if assignment is None:
                return None
            self._assignments = {k: v for k, v in self._assignments.items() if k != assignment_id}
            self._assignment_keys = {
                k: v for k, v in self._assignment_keys.items() if k != assignment.scope_key
            }
            return assignment

    def get_assignment(self, assignment_id: str) -> Optional[UserRoleAssignment]:
        return self._assignments.get(assignment_id)

    def list_assignments(self, user_id: str) -> list[UserRoleAssignment]:
        return [a for a in self._assignments.values() if a.user_id == user_id]

    def count_assignments(self, role_id: str) -> int:
        return sum(1 for a in self._assignments.values() if a.role_id == role_id)


__all__ = ["InMemoryStore"]
