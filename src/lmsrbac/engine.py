"""Authorization engine.

Resolves a user's effective permissions (union over active assignments,
wildcards expanded against the current catalog) and answers point-in-time
authorization queries.

Queries re-read current state on every call and have no side effects.
An unknown or unprivileged user gets an empty permission set and the
``NO_AUTHORITY_LEVEL`` sentinel; only malformed input raises.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional, Union

from .assignments import RoleAssignmentStore, require_id
from .exceptions import AuthorizationError, StorageError, ValidationError
from .levels import NO_AUTHORITY_LEVEL, highest_authority
from .models import Permission, Role
from .permissions.catalog import PermissionCatalog
from .permissions.patterns import validate_identifier
from .roles import RoleRegistry

logger = logging.getLogger(__name__)

PERMISSION_REQUIRED_RULE = "permission_required"

PermissionCheck = Union[tuple[str, str], Permission]


@dataclass(frozen=True)
class AccessProfile:
    """Snapshot of what a user holds at one point in time."""

    user_id: str
    roles: tuple[Role, ...]
    permissions: frozenset[Permission]
    highest_level: int = NO_AUTHORITY_LEVEL

    @property
    def role_names(self) -> tuple[str, ...]:
        return tuple(role.name for role in self.roles)

    @property
    def permission_keys(self) -> tuple[str, ...]:
        return tuple(sorted(p.key for p in self.permissions))

    def has_permission(self, resource: str, action: str) -> bool:
        return Permission(resource, action) in self.permissions


def _check_parts(check: PermissionCheck) -> tuple[str, str]:
    if isinstance(check, Permission):
        return check.resource, check.action
    if isinstance(check, tuple) and len(check) == 2:
        return check
    raise ValidationError(f"Invalid permission check: {check!r}", field="checks")


class AuthorizationEngine:
    """Read-only authorization queries over catalog, registry and assignments."""

    def __init__(
        self,
        catalog: PermissionCatalog,
        registry: RoleRegistry,
        assignments: RoleAssignmentStore,
    ) -> None:
        self._catalog = catalog
        self._registry = registry
        self._assignments = assignments

    @contextmanager
    def _storage_context(self, operation: str, user_id: str) -> Iterator[None]:
        try:
            yield
        except StorageError as e:
            raise StorageError(
                f"{operation} for user {user_id!r} failed: {e.message}",
                operation=operation,
                user_id=user_id,
                cause=e.details,
            ) from e

    def _active_roles(self, user_id: str, as_of: Optional[datetime]) -> list[Role]:
        roles: dict[str, Role] = {}
        for _, role in self._assignments.active_bindings_for(user_id, as_of):
            roles.setdefault(role.id, role)
        return sorted(roles.values(), key=lambda r: (r.level, r.name))

    def active_roles(self, user_id: str, as_of: Optional[datetime] = None) -> list[Role]:
        """Distinct active roles of a user, most authoritative first."""
        require_id(user_id)
        with self._storage_context("active_roles", user_id):
            return self._active_roles(user_id, as_of)

    def effective_permissions(self, user_id: str, as_of: Optional[datetime] = None) -> frozenset[Permission]:
        """Union of the resolved permissions of all active roles."""
        require_id(user_id)
        with self._storage_context("effective_permissions", user_id):
            roles = self._active_roles(user_id, as_of)
            return self._registry.resolve_grants(grant for role in roles for grant in role.grants)

    def _covered(self, roles: Iterable[Role], resource: str, action: str) -> bool:
        if not any(grant.covers(resource, action) for role in roles for grant in role.grants):
            return False
        # Grants only ever cover catalog permissions.
        return self._catalog.find(resource, action) is not None

    def authorize(self, user_id: str, resource: str, action: str, as_of: Optional[datetime] = None) -> bool:
        """True iff ``(resource, action)`` is among the user's effective permissions."""
        require_id(user_id)
        validate_identifier(resource, "resource")
        validate_identifier(action, "action")

        with self._storage_context("authorize", user_id):
            allowed = self._covered(self._active_roles(user_id, as_of), resource, action)

        logger.debug("authorize user=%s %s:%s -> %s", user_id, resource, action, allowed)
        return allowed

    def authorize_any(
        self,
        user_id: str,
        checks: Iterable[PermissionCheck],
        as_of: Optional[datetime] = None,
    ) -> bool:
        """True if at least one ``(resource, action)`` check passes."""
        require_id(user_id)
        parts = [_check_parts(check) for check in checks]
        for resource, action in parts:
            validate_identifier(resource, "resource")
            validate_identifier(action, "action")
        if not parts:
            return False

        with self._storage_context("authorize_any", user_id):
            roles = self._active_roles(user_id, as_of)
            return any(self._covered(roles, resource, action) for resource, action in parts)

    def highest_authority_level(self, user_id: str, as_of: Optional[datetime] = None) -> int:
        """Minimum level across active roles; ``NO_AUTHORITY_LEVEL`` if none."""
        require_id(user_id)
        with self._storage_context("highest_authority_level", user_id):
            return highest_authority(role.level for role in self._active_roles(user_id, as_of))

    def access_profile(self, user_id: str, as_of: Optional[datetime] = None) -> AccessProfile:
        require_id(user_id)
        with self._storage_context("access_profile", user_id):
            roles = self._active_roles(user_id, as_of)
            permissions = self._registry.resolve_grants(grant for role in roles for grant in role.grants)
        return AccessProfile(
            user_id=user_id,
            roles=tuple(roles),
            permissions=permissions,
            highest_level=highest_authority(role.level for role in roles),
        )

    def require(self, user_id: str, resource: str, action: str) -> None:
        """Raise ``AuthorizationError`` unless the user holds ``resource:action``."""
        if not self.authorize(user_id, resource, action):
            logger.warning("Permission denied: user=%s needs %s:%s", user_id, resource, action)
            raise AuthorizationError(
                f"Insufficient permissions: {resource}:{action}",
                rule=PERMISSION_REQUIRED_RULE,
                permission=f"{resource}:{action}",
            )


__all__ = ["AccessProfile", "AuthorizationEngine", "PERMISSION_REQUIRED_RULE", "PermissionCheck"]
