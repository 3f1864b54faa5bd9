"""Permission grant patterns.

A role holds grants, each one of:

- ``AllPermissions``: ``"*"``, every permission in the catalog
- ``ResourceWildcard(res)``: ``"res:*"``, every action on one resource
- ``ExactPermission(res, a)``: ``"res:a"``, one permission

Wildcards are resolved against the catalog at call time, so a permission
registered after the grant is covered without re-granting. Strings are
parsed once by :func:`parse_grant`; the authorization path only calls
``covers()`` on the parsed variants.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from ..exceptions import ValidationError

if TYPE_CHECKING:
    from ..models import Permission
    from .catalog import PermissionCatalog

WILDCARD = "*"
SEPARATOR = ":"

# Resource and action names: no separator, no wildcard, no whitespace.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")


def validate_identifier(value: object, field_name: str) -> str:
    """Return ``value`` if it is a well-formed resource/action name.

    Raises:
        ValidationError: On missing, non-string or malformed values.
    """
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field_name} is required", field=field_name)
    if not _IDENTIFIER_RE.match(value):
        raise ValidationError(
            f"Invalid {field_name} {value!r}: only letters, digits, '_', '.' and '-' are allowed",
            field=field_name,
            value=value,
        )
    return value


@dataclass(frozen=True)
class AllPermissions:
    """Global wildcard grant (``*``)."""

    @property
    def pattern(self) -> str:
        return WILDCARD

    def covers(self, resource: str, action: str) -> bool:
        return True

    def resolve(self, catalog: PermissionCatalog) -> frozenset[Permission]:
        return catalog.all()


@dataclass(frozen=True)
class ResourceWildcard:
    """All actions on one resource (``resource:*``)."""

    resource: str

    @property
    def pattern(self) -> str:
        return f"{self.resource}{SEPARATOR}{WILDCARD}"

    def covers(self, resource: str, action: str) -> bool:
        return resource == self.resource

    def resolve(self, catalog: PermissionCatalog) -> frozenset[Permission]:
        return catalog.list_by_resource(self.resource)


@dataclass(frozen=True)
class ExactPermission:
    """A single ``resource:action`` permission."""

    resource: str
    action: str

    @property
    def pattern(self) -> str:
        return f"{self.resource}{SEPARATOR}{self.action}"

    def covers(self, resource: str, action: str) -> bool:
        return resource == self.resource and action == self.action

    def resolve(self, catalog: PermissionCatalog) -> frozenset[Permission]:
        permission = catalog.find(self.resource, self.action)
        return frozenset({permission}) if permission is not None else frozenset()


PermissionGrant = Union[AllPermissions, ResourceWildcard, ExactPermission]

ALL_PERMISSIONS = AllPermissions()


def parse_grant(pattern: str | PermissionGrant) -> PermissionGrant:
    """Parse a permission pattern string.

    Grammar: ``"*" | "<resource>:*" | "<resource>:<action>"``. No other
    wildcard position is accepted (``"*:read"`` is invalid).

    Args:
        pattern: Pattern string, or an already parsed grant (returned as-is).

    Returns:
        The grant variant for the pattern.

    Raises:
        ValidationError: If the pattern does not follow the grammar.

    Example::

        parse_grant("*")               # AllPermissions()
        parse_grant("course:*")        # ResourceWildcard("course")
        parse_grant("course:publish")  # ExactPermission("course", "publish")
    """
    if isinstance(pattern, (AllPermissions, ResourceWildcard, ExactPermission)):
        return pattern
    if not isinstance(pattern, str) or not pattern:
        raise ValidationError("Permission pattern is required", field="pattern")

    if pattern == WILDCARD:
        return ALL_PERMISSIONS

    parts = pattern.split(SEPARATOR)
    if len(parts) != 2:
        raise ValidationError(
            f"Invalid permission pattern {pattern!r}: expected '*', 'resource:*' or 'resource:action'",
            field="pattern",
            value=pattern,
        )

    resource, action = parts
    try:
        validate_identifier(resource, "resource")
        if action == WILDCARD:
            return ResourceWildcard(resource)
        validate_identifier(action, "action")
    except ValidationError as e:
        raise ValidationError(
            f"Invalid permission pattern {pattern!r}: {e.message}",
            field="pattern",
            value=pattern,
        ) from e

    return ExactPermission(resource, action)


def grant_for(permission: Permission) -> ExactPermission:
    """Exact grant for a catalog permission."""
    return ExactPermission(permission.resource, permission.action)


__all__ = [
    "ALL_PERMISSIONS",
    "AllPermissions",
    "ExactPermission",
    "PermissionGrant",
    "ResourceWildcard",
    "grant_for",
    "parse_grant",
    "validate_identifier",
]
