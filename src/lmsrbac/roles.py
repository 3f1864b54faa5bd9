"""Role registry: named, leveled bundles of permission grants.

Roles hold parsed grant patterns. Wildcards are kept as patterns and
expanded against the catalog on every ``resolve_permissions`` call, so a
permission registered later is picked up without re-granting.

System roles (seeded at provisioning) cannot be deleted, and their level
and active state cannot be changed through the mutators here.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Iterable, Optional, Union

from .exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .levels import is_valid_role_level
from .models import Permission, Role
from .permissions.catalog import PermissionCatalog
from .permissions.patterns import (
    AllPermissions,
    ExactPermission,
    PermissionGrant,
    parse_grant,
    validate_identifier,
)
from .storage.base import RbacStore

logger = logging.getLogger(__name__)

# A role is referenced by instance, id or unique name.
RoleRef = Union[Role, str]

SYSTEM_ROLE_RULE = "system_role_protection"


def _require_text(value: object, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required", field=field_name)
    return value.strip()


def _require_level(level: object) -> int:
    if not is_valid_role_level(level):
        raise ValidationError(f"Invalid role level: {level!r}", field="level", value=level)
    return level  # type: ignore[return-value]


class RoleRegistry:
    """Create, mutate and resolve roles stored in an :class:`RbacStore`."""

    def __init__(self, store: RbacStore, catalog: PermissionCatalog) -> None:
        self._store = store
        self._catalog = catalog

    # ── Lookup ──────────────────────────────────────────

    def find(self, ref: RoleRef) -> Optional[Role]:
        """Current state of a role by instance, id or name; None if absent."""
        if isinstance(ref, Role):
            return self._store.get_role(ref.id)
        if not isinstance(ref, str) or not ref:
            raise ValidationError("role is required", field="role")
        return self._store.get_role(ref) or self._store.get_role_by_name(ref)

    def get(self, ref: RoleRef) -> Role:
        role = self.find(ref)
        if role is None:
            label = ref.name if isinstance(ref, Role) else ref
            raise NotFoundError(f"Role {label!r} not found", role=label)
        return role

    def list_roles(self, is_active: Optional[bool] = None, level: Optional[int] = None) -> list[Role]:
        """Roles ordered by level then name, optionally filtered."""
        roles = [
            role
            for role in self._store.list_roles()
            if (is_active is None or role.is_active == is_active) and (level is None or role.level == level)
        ]
        return sorted(roles, key=lambda r: (r.level, r.name))

    def usage(self, ref: RoleRef) -> int:
        """Number of assignments referencing the role."""
        return self._store.count_assignments(self.get(ref).id)

    # ── Creation ────────────────────────────────────────

    def create_role(
        self,
        name: str,
        display_name: str,
        level: int,
        description: str = "",
        is_system: bool = False,
        *,
        is_active: bool = True,
        permissions: Iterable[Union[str, PermissionGrant]] = (),
    ) -> Role:
        """Create a role.

        Grants given in ``permissions`` are validated before anything is
        written and stored together with the role.

        Raises:
            ValidationError: On a malformed name, level or pattern.
            NotFoundError: If an exact pattern names an unknown permission.
            ConflictError: If ``name`` already exists.
        """
        name = validate_identifier(name, "name")
        display_name = _require_text(display_name, "display_name")
        level = _require_level(level)
        grants = frozenset(self._checked_grant(pattern) for pattern in permissions)

        role = Role(
            id=uuid.uuid4().hex,
            name=name,
            display_name=display_name,
            description=description or "",
            level=level,
            is_system=bool(is_system),
            is_active=bool(is_active),
            grants=grants,
        )
        with self._store.atomic():
            if self._store.get_role_by_name(name) is not None:
                raise ConflictError(f"Role name {name!r} already exists", role=name)
            self._store.insert_role(role)

        logger.info("Created role %s (level %d, %d grants)", name, level, len(grants))
        return role

    def ensure_role(
        self,
        name: str,
        display_name: str,
        level: int,
        description: str = "",
        is_system: bool = False,
    ) -> Role:
        """Create the role, or refresh its metadata if it already exists.

        Provisioning path: it may set the level of a system role, which the
        mutation API refuses. Existing grants are kept.
        """
        name = validate_identifier(name, "name")
        display_name = _require_text(display_name, "display_name")
        level = _require_level(level)

        with self._store.atomic():
            existing = self._store.get_role_by_name(name)
            if existing is None:
                return self.create_role(name, display_name, level, description, is_system)
            updated = replace(
                existing,
                display_name=display_name,
                description=description or "",
                level=level,
                is_system=bool(is_system),
            )
            if updated != existing:
                self._store.update_role(updated)
                logger.debug("Refreshed role %s", name)
            return updated

    # ── Grants ──────────────────────────────────────────

    def _checked_grant(self, pattern: Union[str, PermissionGrant]) -> PermissionGrant:
        grant = parse_grant(pattern)
        if isinstance(grant, ExactPermission) and self._catalog.find(grant.resource, grant.action) is None:
            raise NotFoundError(
                f"Permission {grant.pattern!r} does not exist",
                permission=grant.pattern,
            )
        return grant

    def grant(self, ref: RoleRef, pattern: Union[str, PermissionGrant]) -> Role:
        """Add a grant to a role. Granting an already held pattern is a no-op.

        Raises:
            ValidationError: If ``pattern`` does not follow the grammar.
            NotFoundError: If the role, or the exact permission, does not exist.
        """
        grant = self._checked_grant(pattern)
        with self._store.atomic():
            role = self.get(ref)
            added = self._store.add_grant(role.id, grant)
            updated = self.get(role.id)
        if added:
            logger.info("Granted %s to role %s", grant.pattern, updated.name)
        return updated

    def revoke(self, ref: RoleRef, permission: Union[str, PermissionGrant, Permission]) -> Role:
        """Remove a grant from a role.

        ``permission`` names the grant exactly as held: revoking
        ``course:read`` does not narrow a ``course:*`` grant.

        Raises:
            NotFoundError: If the role does not hold the grant.
        """
        if isinstance(permission, Permission):
            grant: PermissionGrant = ExactPermission(permission.resource, permission.action)
        else:
            grant = parse_grant(permission)

        with self._store.atomic():
            role = self.get(ref)
            if not self._store.remove_grant(role.id, grant):
                raise NotFoundError(
                    f"Role {role.name!r} does not hold {grant.pattern!r}",
                    role=role.name,
                    permission=grant.pattern,
                )
            updated = self.get(role.id)
        logger.info("Revoked %s from role %s", grant.pattern, updated.name)
        return updated

    def resolve_permissions(self, ref: RoleRef) -> frozenset[Permission]:
        """Expand a role's grants against the current catalog."""
        role = ref if isinstance(ref, Role) else self.get(ref)
        return self.resolve_grants(role.grants)

    def resolve_grants(self, grants: Iterable[PermissionGrant]) -> frozenset[Permission]:
        grants = tuple(grants)
        if any(isinstance(grant, AllPermissions) for grant in grants):
            return self._catalog.all()
        resolved: set[Permission] = set()
        for grant in grants:
            resolved |= grant.resolve(self._catalog)
        return frozenset(resolved)

    # ── Metadata & lifecycle ────────────────────────────

    def update_metadata(
        self,
        ref: RoleRef,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        level: Optional[int] = None,
        *,
        is_active: Optional[bool] = None,
        permissions: Optional[Iterable[Union[str, PermissionGrant]]] = None,
    ) -> Role:
        """Update descriptive fields, level and/or active state.

        ``permissions``, when given, replaces the whole grant set. Every
        argument is validated before anything is written.

        Raises:
            AuthorizationError: If a system role is given a level or deactivated.
        """
        changes: dict[str, object] = {}
        if display_name is not None:
            changes["display_name"] = _require_text(display_name, "display_name")
        if description is not None:
            changes["description"] = description
        if level is not None:
            changes["level"] = _require_level(level)
        if is_active is not None:
            changes["is_active"] = bool(is_active)
        grants = None
        if permissions is not None:
            grants = frozenset(self._checked_grant(pattern) for pattern in permissions)

        with self._store.atomic():
            role = self.get(ref)
            if role.is_system and ("level" in changes or changes.get("is_active") is False):
                raise AuthorizationError(
                    "cannot modify system role structure",
                    rule=SYSTEM_ROLE_RULE,
                    role=role.name,
                )
            updated = role
            if changes:
                updated = self._store.update_role(replace(role, **changes))
            if grants is not None:
                self._store.replace_grants(role.id, grants)
                updated = self.get(role.id)

        if changes or grants is not None:
            logger.info(
                "Updated role %s: %s",
                updated.name,
                sorted(changes) + (["permissions"] if grants is not None else []),
            )
        return updated

    def set_active(self, ref: RoleRef, active: bool) -> Role:
        return self.update_metadata(ref, is_active=active)

    def delete_role(self, ref: RoleRef) -> None:
        """Delete a non-system role nobody is assigned to.

        Raises:
            AuthorizationError: If the role is a system role.
            ConflictError: If any assignment (expired ones included) references it.
        """
        with self._store.atomic():
            role = self.get(ref)
            if role.is_system:
                raise AuthorizationError("cannot delete system role", rule=SYSTEM_ROLE_RULE, role=role.name)
            in_use = self._store.count_assignments(role.id)
            if in_use:
                raise ConflictError(
                    f"Role {role.name!r} is assigned to {in_use} user(s)",
                    role=role.name,
                    assignments=in_use,
                )
            self._store.delete_role(role.id)
        logger.info("Deleted role %s", role.name)


__all__ = ["RoleRef", "RoleRegistry", "SYSTEM_ROLE_RULE"]
