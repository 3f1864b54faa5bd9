"""Guarded administration entry points.

Every mutation here takes the acting user, runs the hierarchy guard and
the write inside one ``store.atomic()`` block, and audit-logs the outcome
with the actor attached. A refused check raises ``AuthorizationError``
before anything is written.

Usage:
    admin = AccessAdministration(store, catalog, registry, assignments, engine, guard, config)
    admin.assign_role("u-admin", "u-42", "instructor", institution_id="inst-1")
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional, Union

from .assignments import RoleAssignmentStore, require_id
from .config import RbacConfig
from .engine import AuthorizationEngine
from .exceptions import AuthorizationError, ConflictError, ValidationError
from .hierarchy import HierarchyGuard
from .levels import is_more_authoritative_than
from .logging import AuditLoggerAdapter, get_audit_logger
from .models import Permission, Role, UserRoleAssignment
from .permissions.catalog import PermissionCatalog
from .permissions.constants import ROLE_MANAGEMENT_PERMISSION
from .permissions.patterns import PermissionGrant
from .roles import RoleRef, RoleRegistry
from .storage.base import RbacStore

ROLE_MANAGEMENT_RULE = "role_management_permission"
DEFAULT_ROLE_FLOOR_RULE = "default_role_floor"
SYSTEM_ACTOR = "system"


class AccessAdministration:
    """Role, grant and assignment mutations behind the hierarchy guard."""

    def __init__(
        self,
        store: RbacStore,
        catalog: PermissionCatalog,
        registry: RoleRegistry,
        assignments: RoleAssignmentStore,
        engine: AuthorizationEngine,
        guard: HierarchyGuard,
        config: Optional[RbacConfig] = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._registry = registry
        self._assignments = assignments
        self._engine = engine
        self._guard = guard
        self._config = config or RbacConfig()

    @contextmanager
    def _guarded(self, acting_user_id: str, operation: str) -> Iterator[AuditLoggerAdapter]:
        require_id(acting_user_id, "acting_user_id")
        audit = get_audit_logger(__name__, actor_id=acting_user_id)
        try:
            with self._store.atomic():
                yield audit
        except AuthorizationError as e:
            audit.warning(
                "%s denied: %s",
                operation,
                e.message,
                extra={"operation": operation, "rule": e.details.get("rule")},
            )
            raise

    def _ensure_role_management(self, acting_user_id: str) -> None:
        if not self._config.require_manage_roles_permission:
            return
        if not self._engine.authorize(acting_user_id, *ROLE_MANAGEMENT_PERMISSION):
            raise AuthorizationError(
                "Managing user roles requires user:manage_roles",
                rule=ROLE_MANAGEMENT_RULE,
            )

    def _ensure_role_mutation(self, acting_user_id: str, role: Role) -> None:
        self._guard.ensure_can_mutate_role_permissions(acting_user_id)
        self._guard.ensure_can_manage_level(acting_user_id, role.level, role=role.name)

    # ── Catalog ─────────────────────────────────────────

    def register_permission(
        self,
        acting_user_id: str,
        resource: str,
        action: str,
        description: str = "",
    ) -> Permission:
        with self._guarded(acting_user_id, "register_permission") as audit:
            self._guard.ensure_can_mutate_role_permissions(acting_user_id)
            permission = self._catalog.register(resource, action, description)
        audit.info("Permission registered", extra={"permission": permission.key})
        return permission

    # ── Roles ───────────────────────────────────────────

    def create_role(
        self,
        acting_user_id: str,
        name: str,
        display_name: str,
        level: int,
        description: str = "",
        permissions: Iterable[Union[str, PermissionGrant]] = (),
    ) -> Role:
        """Create a non-system role at or below the actor's authority."""
        with self._guarded(acting_user_id, "create_role") as audit:
            self._guard.ensure_can_mutate_role_permissions(acting_user_id)
            if isinstance(level, int) and not isinstance(level, bool):
                self._guard.ensure_can_manage_level(acting_user_id, level, role=name)
            role = self._registry.create_role(
                name,
                display_name,
                level,
                description,
                is_system=False,
                permissions=tuple(permissions),
            )
        audit.info("Role created", extra={"role": role.name, "level": role.level, "grants": role.patterns})
        return role

    def update_role(
        self,
        acting_user_id: str,
        role: RoleRef,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        level: Optional[int] = None,
        is_active: Optional[bool] = None,
        permissions: Optional[Iterable[Union[str, PermissionGrant]]] = None,
    ) -> Role:
        """Update a role; ``permissions`` replaces its whole grant set."""
        with self._guarded(acting_user_id, "update_role") as audit:
            current = self._registry.get(role)
            self._ensure_role_mutation(acting_user_id, current)
            if isinstance(level, int) and not isinstance(level, bool):
                self._guard.ensure_can_manage_level(acting_user_id, level, role=current.name)
            updated = self._registry.update_metadata(
                current,
                display_name=display_name,
                description=description,
                level=level,
                is_active=is_active,
                permissions=None if permissions is None else tuple(permissions),
            )
        audit.info(
            "Role updated",
            extra={
                "role": updated.name,
                "level": updated.level,
                "is_active": updated.is_active,
                "grants": updated.patterns,
            },
        )
        return updated

    def grant_permission(self, acting_user_id: str, role: RoleRef, pattern: Union[str, PermissionGrant]) -> Role:
        with self._guarded(acting_user_id, "grant_permission") as audit:
            current = self._registry.get(role)
            self._ensure_role_mutation(acting_user_id, current)
            updated = self._registry.grant(current, pattern)
        audit.info("Permission granted", extra={"role": updated.name, "grants": updated.patterns})
        return updated

    def revoke_permission(
        self,
        acting_user_id: str,
        role: RoleRef,
        pattern: Union[str, PermissionGrant, Permission],
    ) -> Role:
        with self._guarded(acting_user_id, "revoke_permission") as audit:
            current = self._registry.get(role)
            self._ensure_role_mutation(acting_user_id, current)
            updated = self._registry.revoke(current, pattern)
        audit.info("Permission revoked", extra={"role": updated.name, "grants": updated.patterns})
        return updated

    def delete_role(self, acting_user_id: str, role: RoleRef) -> None:
        with self._guarded(acting_user_id, "delete_role") as audit:
            current = self._registry.get(role)
            self._ensure_role_mutation(acting_user_id, current)
            self._registry.delete_role(current)
        audit.info("Role deleted", extra={"role": current.name})

    def list_roles(self, is_active: Optional[bool] = None, level: Optional[int] = None) -> list[Role]:
        return self._registry.list_roles(is_active=is_active, level=level)

    def role_usage(self, role: RoleRef) -> int:
        return self._registry.usage(role)

    # ── Assignments ─────────────────────────────────────

    def assign_role(
        self,
        acting_user_id: str,
        user_id: str,
        role: RoleRef,
        institution_id: Optional[str] = None,
        department_id: Optional[str] = None,
        valid_until: Optional[datetime] = None,
    ) -> UserRoleAssignment:
        """Assign a role the actor is allowed to hand out.

        Raises:
            AuthorizationError: Missing ``user:manage_roles`` or role above the actor.
            NotFoundError: Unknown role or user.
            ConflictError: Identical assignment already exists.
        """
        with self._guarded(acting_user_id, "assign_role") as audit:
            self._ensure_role_management(acting_user_id)
            target = self._guard.ensure_can_assign(acting_user_id, role)
            assignment = self._assignments.assign(
                user_id,
                target,
                assigned_by=acting_user_id,
                institution_id=institution_id,
                department_id=department_id,
                valid_until=valid_until,
            )
        audit.info(
            "Role assigned",
            extra={
                "user_id": assignment.user_id,
                "role": target.name,
                "institution_id": assignment.institution_id,
                "department_id": assignment.department_id,
            },
        )
        return assignment

    def revoke_role(
        self,
        acting_user_id: str,
        assignment_id: str,
        user_id: Optional[str] = None,
    ) -> UserRoleAssignment:
        with self._guarded(acting_user_id, "revoke_role") as audit:
            # Authority is checked before the assignment is looked at.
            self._ensure_role_management(acting_user_id)
            self._guard.ensure_has_authority(acting_user_id)
            assignment = self._guard.ensure_can_revoke(acting_user_id, assignment_id)
            if user_id is not None and assignment.user_id != user_id:
                raise ValidationError(
                    "assignment does not belong to user",
                    field="user_id",
                    assignment_id=assignment_id,
                )
            removed = self._assignments.revoke_assignment(assignment.id)
        audit.info("Role revoked", extra={"user_id": removed.user_id, "role_id": removed.role_id})
        return removed

    def _unscoped_assignment(self, user_id: str, role: Role) -> Optional[UserRoleAssignment]:
        for assignment in self._assignments.assignments_for(user_id):
            if assignment.role_id == role.id and assignment.institution_id is None and assignment.department_id is None:
                return assignment
        return None

    def provision_account(self, user_id: str) -> Optional[UserRoleAssignment]:
        """Register a new account and give it ``config.default_role``.

        Returns None when no default role is configured; re-running returns
        the existing assignment. Runs without an acting user, so the default
        role may not be more authoritative than ``config.default_role_min_level``.

        Raises:
            AuthorizationError: The configured default role is above the floor.
        """
        require_id(user_id)
        audit = get_audit_logger(__name__, actor_id=SYSTEM_ACTOR)
        role_name = self._config.default_role

        with self._store.atomic():
            target = self._registry.get(role_name) if role_name is not None else None
            if target is not None and is_more_authoritative_than(target.level, self._config.default_role_min_level):
                audit.warning(
                    "provision_account denied: default role %s is above level %d",
                    target.name,
                    self._config.default_role_min_level,
                    extra={"operation": "provision_account", "rule": DEFAULT_ROLE_FLOOR_RULE},
                )
                raise AuthorizationError(
                    "Default role exceeds the authority allowed for new accounts",
                    rule=DEFAULT_ROLE_FLOOR_RULE,
                    role=target.name,
                )
            self._assignments.register_user(user_id)
            if target is None:
                return None
            existing = self._unscoped_assignment(user_id, target)
            if existing is not None:
                return existing
            try:
                assignment = self._assignments.assign(user_id, target, assigned_by=SYSTEM_ACTOR)
            except ConflictError:
                # Another process sharing the database assigned it first.
                existing = self._unscoped_assignment(user_id, target)
                if existing is None:
                    raise
                return existing

        audit.info("Default role assigned", extra={"user_id": user_id, "role": target.name})
        return assignment


__all__ = ["AccessAdministration", "DEFAULT_ROLE_FLOOR_RULE", "ROLE_MANAGEMENT_RULE", "SYSTEM_ACTOR"]
