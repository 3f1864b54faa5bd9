"""Persistence contract for the access-control core.

The core treats the data store as a collaborator. Implementations must:

- enforce uniqueness of permission ``(resource, action)``, role ``name``
  and assignment ``(user_id, role_id, institution_id, department_id)``;
- make inserts create-if-absent atomically: racing inserts of the same key
  have exactly one winner, the others raise ``ConflictError``;
- return immutable snapshots (the frozen entities of :mod:`lmsrbac.models`).

``atomic()`` serializes a read-check-write sequence so that a guard check
and the write it authorizes observe the same state.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from ..models import Permission, Role, UserRoleAssignment
from ..permissions.patterns import PermissionGrant


class RbacStore(ABC):
    """Abstract store for permissions, roles, users and assignments."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Hold the store's mutation lock for the duration of the block."""
        with self._lock:
            yield

    # ── Permissions ─────────────────────────────────────

    @abstractmethod
    def upsert_permission(self, permission: Permission) -> Permission:
        """Insert, or update the description of, a permission."""

    @abstractmethod
    def get_permission(self, resource: str, action: str) -> Optional[Permission]:
        raise NotImplementedError

    @abstractmethod
    def list_permissions(self, resource: Optional[str] = None) -> list[Permission]:
        raise NotImplementedError

    # ── Roles ───────────────────────────────────────────

    @abstractmethod
    def insert_role(self, role: Role) -> Role:
        """Insert a role. Raises ``ConflictError`` if the name is taken."""

    @abstractmethod
    def update_role(self, role: Role) -> Role:
        """Replace the attributes of a stored role (matched by id).

        Grants are left as stored; they change only through ``add_grant``,
        ``remove_grant`` and ``replace_grants``. Returns the stored role.
        Raises ``NotFoundError``.
        """

    @abstractmethod
    def add_grant(self, role_id: str, grant: PermissionGrant) -> bool:
        """Add one grant in a single write. False if already held."""

    @abstractmethod
    def remove_grant(self, role_id: str, grant: PermissionGrant) -> bool:
        """Remove one grant in a single write. False if not held."""

    @abstractmethod
    def replace_grants(self, role_id: str, grants: Iterable[PermissionGrant]) -> None:
        """Swap the whole grant set of a role in a single write."""

    @abstractmethod
    def delete_role(self, role_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_role(self, role_id: str) -> Optional[Role]:
        raise NotImplementedError

    @abstractmethod
    def get_role_by_name(self, name: str) -> Optional[Role]:
        raise NotImplementedError

    @abstractmethod
    def list_roles(self) -> list[Role]:
        raise NotImplementedError

    # ── Users ───────────────────────────────────────────

    @abstractmethod
    def add_user(self, user_id: str) -> None:
        """Record a known user id. Idempotent."""

    @abstractmethod
    def has_user(self, user_id: str) -> bool:
        raise NotImplementedError

    # ── Assignments ─────────────────────────────────────

    @abstractmethod
    def insert_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        """Insert an assignment. Raises ``ConflictError`` on a duplicate scope tuple."""

    @abstractmethod
    def delete_assignment(self, assignment_id: str) -> Optional[UserRoleAssignment]:
        """Hard-delete an assignment, returning it (None if absent)."""

    @abstractmethod
    def get_assignment(self, assignment_id: str) -> Optional[UserRoleAssignment]:
        raise NotImplementedError

    @abstractmethod
    def list_assignments(self, user_id: str) -> list[UserRoleAssignment]:
        raise NotImplementedError

    @abstractmethod
    def count_assignments(self, role_id: str) -> int:
        """Number of assignments (any state) referencing a role."""


__all__ = ["RbacStore"]
