"""Permission catalog: the universe of ``(resource, action)`` pairs.

Permissions are append-only. ``register`` is idempotent on the pair and
only refreshes the description; there is no delete, so role grants are
never orphaned silently.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..models import Permission
from .patterns import validate_identifier

if TYPE_CHECKING:
    from ..storage.base import RbacStore

logger = logging.getLogger(__name__)


class PermissionCatalog:
    """Catalog of permissions backed by an :class:`RbacStore`."""

    def __init__(self, store: RbacStore) -> None:
        self._store = store

    def register(self, resource: str, action: str, description: str = "") -> Permission:
        """Register a permission, or update the description of an existing one.

        Raises:
            ValidationError: If ``resource`` or ``action`` is malformed.
        """
        validate_identifier(resource, "resource")
        validate_identifier(action, "action")
        permission = self._store.upsert_permission(
            Permission(resource=resource, action=action, description=description or "")
        )
        logger.debug("Registered permission %s", permission.key)
        return permission

    def find(self, resource: str, action: str) -> Permission | None:
        validate_identifier(resource, "resource")
        validate_identifier(action, "action")
        return self._store.get_permission(resource, action)

    def list_by_resource(self, resource: str) -> frozenset[Permission]:
        validate_identifier(resource, "resource")
        return frozenset(self._store.list_permissions(resource))

    def all(self) -> frozenset[Permission]:
        return frozenset(self._store.list_permissions())

    def __contains__(self, permission: object) -> bool:
        if not isinstance(permission, Permission):
            return False
        return self._store.get_permission(permission.resource, permission.action) is not None


__all__ = ["PermissionCatalog"]
