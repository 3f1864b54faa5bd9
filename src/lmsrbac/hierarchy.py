"""Hierarchy guard: who may grant, revoke or reshape what.

Rules (computed fresh per call, the guard holds no state):

- assign / revoke: the target role's level must be within the actor's
  authority, i.e. numerically >= the actor's highest authority level;
- role and catalog mutation: the actor must hold the meta-permission
  ``system:manage_settings``, independently of levels.

``can_*`` return booleans. ``ensure_*`` raise ``AuthorizationError`` with
a ``rule`` detail and are what mutation entry points call.
"""

from __future__ import annotations

import logging
from typing import Union

from .assignments import RoleAssignmentStore
from .engine import AuthorizationEngine
from .exceptions import AuthorizationError
from .levels import (
    NO_AUTHORITY_LEVEL,
    highest_authority,
    is_more_authoritative_than,
    is_within_authority,
)
from .models import Role, UserRoleAssignment
from .permissions.constants import META_PERMISSION
from .roles import RoleRef, RoleRegistry

logger = logging.getLogger(__name__)

ROLE_LEVEL_RULE = "role_level"
META_PERMISSION_RULE = "meta_permission"

AssignmentRef = Union[UserRoleAssignment, str]


class HierarchyGuard:
    """Level and meta-permission checks for mutation requests."""

    def __init__(
        self,
        engine: AuthorizationEngine,
        registry: RoleRegistry,
        assignments: RoleAssignmentStore,
    ) -> None:
        self._engine = engine
        self._registry = registry
        self._assignments = assignments

    # ── Checks ──────────────────────────────────────────

    def can_manage_level(self, acting_user_id: str, level: int) -> bool:
        return is_within_authority(level, self._engine.highest_authority_level(acting_user_id))

    def can_assign(self, acting_user_id: str, target_role: RoleRef) -> bool:
        role = self._registry.get(target_role)
        return self.can_manage_level(acting_user_id, role.level)

    def can_revoke(self, acting_user_id: str, existing_assignment: AssignmentRef) -> bool:
        if not isinstance(existing_assignment, UserRoleAssignment):
            existing_assignment = self._assignments.get(existing_assignment)
        role = self._registry.get(existing_assignment.role_id)
        return self.can_manage_level(acting_user_id, role.level)

    def can_mutate_role_permissions(self, acting_user_id: str) -> bool:
        return self._engine.authorize(acting_user_id, *META_PERMISSION)

    def manageable_roles(self, acting_user_id: str) -> list[Role]:
        """Active roles the actor may assign, ordered by level."""
        actor_level = self._engine.highest_authority_level(acting_user_id)
        if actor_level == NO_AUTHORITY_LEVEL:
            return []
        return [
            role
            for role in self._registry.list_roles(is_active=True)
            if is_within_authority(role.level, actor_level)
        ]

    # ── Enforcing variants ──────────────────────────────

    def ensure_can_manage_level(self, acting_user_id: str, level: int, *, role: str | None = None) -> None:
        if not self.can_manage_level(acting_user_id, level):
            logger.debug(
                "Denied: user=%s cannot manage level %s%s",
                acting_user_id,
                level,
                f" (role {role})" if role else "",
            )
            raise AuthorizationError(
                "Cannot manage a role above your own authority level",
                rule=ROLE_LEVEL_RULE,
                role=role,
            )

    def ensure_has_authority(self, acting_user_id: str) -> None:
        """Refuse actors without any active role."""
        if self._engine.highest_authority_level(acting_user_id) == NO_AUTHORITY_LEVEL:
            logger.debug("Denied: user=%s holds no active role", acting_user_id)
            raise AuthorizationError("No active role to act with", rule=ROLE_LEVEL_RULE)

    def ensure_can_assign(self, acting_user_id: str, target_role: RoleRef) -> Role:
        role = self._registry.get(target_role)
        self.ensure_can_manage_level(acting_user_id, role.level, role=role.name)
        return role

    def ensure_can_revoke(self, acting_user_id: str, existing_assignment: AssignmentRef) -> UserRoleAssignment:
        if not isinstance(existing_assignment, UserRoleAssignment):
            existing_assignment = self._assignments.get(existing_assignment)
        role = self._registry.get(existing_assignment.role_id)
        self.ensure_can_manage_level(acting_user_id, role.level, role=role.name)
        return existing_assignment

    def ensure_can_mutate_role_permissions(self, acting_user_id: str) -> None:
        if not self.can_mutate_role_permissions(acting_user_id):
            logger.debug("Denied: user=%s lacks %s:%s", acting_user_id, *META_PERMISSION)
            raise AuthorizationError(
                "Managing roles and permissions requires system:manage_settings",
                rule=META_PERMISSION_RULE,
            )


__all__ = [
    "AssignmentRef",
    "HierarchyGuard",
    "META_PERMISSION_RULE",
    "NO_AUTHORITY_LEVEL",
    "ROLE_LEVEL_RULE",
    "highest_authority",
    "is_more_authoritative_than",
    "is_within_authority",
]
