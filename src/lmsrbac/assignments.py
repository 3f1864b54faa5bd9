"""Role assignment store: binds users to roles in an optional scope.

The store checks uniqueness of ``(user_id, role_id, institution_id,
department_id)`` and referential validity (role and user exist). It does
not check authority: callers run the hierarchy guard first (see
:mod:`lmsrbac.admin`).

Expiry is evaluated lazily at query time. An assignment is active while
``valid_until`` is None or not earlier than the query time and its role
is active.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from .exceptions import NotFoundError, ValidationError
from .models import Role, UserRoleAssignment, ensure_utc, utcnow
from .roles import RoleRef, RoleRegistry
from .storage.base import RbacStore

logger = logging.getLogger(__name__)


def require_id(value: object, field_name: str = "user_id") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required", field=field_name)
    return value


def _scope_id(value: Optional[str], field_name: str) -> Optional[str]:
    # Empty strings mean "unscoped", like None.
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string", field=field_name)
    return value.strip() or None


class RoleAssignmentStore:
    """User ↔ role bindings over an :class:`RbacStore`."""

    def __init__(self, store: RbacStore, registry: RoleRegistry) -> None:
        self._store = store
        self._registry = registry

    # ── Users ───────────────────────────────────────────

    def register_user(self, user_id: str) -> None:
        """Make a user id known to the store (users live outside this core)."""
        self._store.add_user(require_id(user_id))

    def has_user(self, user_id: str) -> bool:
        return self._store.has_user(require_id(user_id))

    # ── Mutation ────────────────────────────────────────

    def assign(
        self,
        user_id: str,
        role_id: RoleRef,
        *,
        assigned_by: str,
        institution_id: Optional[str] = None,
        department_id: Optional[str] = None,
        valid_until: Optional[datetime] = None,
    ) -> UserRoleAssignment:
        """Bind ``user_id`` to a role.

        Raises:
            ValidationError: Missing user id or assigner, bad ``valid_until``.
            NotFoundError: Unknown role or user.
            ConflictError: The same role is already held in the same scope.
        """
        user_id = require_id(user_id)
        assigned_by = require_id(assigned_by, "assigned_by")
        if valid_until is not None and not isinstance(valid_until, datetime):
            raise ValidationError("valid_until must be a datetime", field="valid_until")

        with self._store.atomic():
            role = self._registry.get(role_id)
            if not self._store.has_user(user_id):
                raise NotFoundError(f"User {user_id!r} not found", user_id=user_id)

            assignment = self._store.insert_assignment(
                UserRoleAssignment(
                    id=uuid.uuid4().hex,
                    user_id=user_id,
                    role_id=role.id,
                    assigned_by=assigned_by,
                    institution_id=_scope_id(institution_id, "institution_id"),
                    department_id=_scope_id(department_id, "department_id"),
                    valid_until=ensure_utc(valid_until),
                )
            )

        logger.info(
            "Assigned role %s to user %s (institution=%s, department=%s, valid_until=%s)",
            role.name,
            user_id,
            assignment.institution_id,
            assignment.department_id,
            assignment.valid_until,
        )
        return assignment

    def revoke_assignment(self, assignment_id: str) -> UserRoleAssignment:
        """Hard-delete an assignment and return it.

        Raises:
            NotFoundError: If no such assignment exists.
        """
        assignment_id = require_id(assignment_id, "assignment_id")
        removed = self._store.delete_assignment(assignment_id)
        if removed is None:
            raise NotFoundError(f"Assignment {assignment_id!r} not found", assignment_id=assignment_id)
        logger.info("Revoked assignment %s (user %s, role %s)", removed.id, removed.user_id, removed.role_id)
        return removed

    # ── Queries ─────────────────────────────────────────

    def get(self, assignment_id: str) -> UserRoleAssignment:
        assignment = self._store.get_assignment(require_id(assignment_id, "assignment_id"))
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id!r} not found", assignment_id=assignment_id)
        return assignment

    def assignments_for(self, user_id: str) -> list[UserRoleAssignment]:
        """All assignments of a user, expired and inactive ones included."""
        assignments = self._store.list_assignments(require_id(user_id))
        return sorted(assignments, key=lambda a: (a.assigned_at, a.id))

    def active_bindings_for(
        self,
        user_id: str,
        as_of: Optional[datetime] = None,
    ) -> list[tuple[UserRoleAssignment, Role]]:
        """Active assignments paired with their (active) roles."""
        as_of = utcnow() if as_of is None else ensure_utc(as_of)
        bindings = []
        for assignment in self.assignments_for(user_id):
            if assignment.is_expired(as_of):
                continue
            role = self._store.get_role(assignment.role_id)
            if role is None or not role.is_active:
                continue
            bindings.append((assignment, role))
        return bindings

    def active_assignments_for(
        self,
        user_id: str,
        as_of: Optional[datetime] = None,
    ) -> list[UserRoleAssignment]:
        """Assignments not expired at ``as_of`` (default now) whose role is active."""
        return [assignment for assignment, _ in self.active_bindings_for(user_id, as_of)]


__all__ = ["RoleAssignmentStore", "require_id"]
