"""Permission catalog, grant patterns and LMS provisioning data.

Defines:
- PermissionCatalog: append-only registry of (resource, action) pairs
- Grant patterns: AllPermissions / ResourceWildcard / ExactPermission
- Permissions / Resources: canonical keys
- provision(): seed the catalog and system roles
"""

from .catalog import PermissionCatalog
from .constants import META_PERMISSION, ROLE_MANAGEMENT_PERMISSION, Permissions, Resources
from .patterns import (
    ALL_PERMISSIONS,
    AllPermissions,
    ExactPermission,
    PermissionGrant,
    ResourceWildcard,
    parse_grant,
)
from .seed import (
    DEFAULT_PERMISSIONS,
    ROLE_PERMISSION_PATTERNS,
    SYSTEM_ROLES,
    ProvisionReport,
    RoleDefinition,
    provision,
)

__all__ = [
    "ALL_PERMISSIONS",
    "DEFAULT_PERMISSIONS",
    "META_PERMISSION",
    "ROLE_MANAGEMENT_PERMISSION",
    "ROLE_PERMISSION_PATTERNS",
    "SYSTEM_ROLES",
    "AllPermissions",
    "ExactPermission",
    "PermissionCatalog",
    "PermissionGrant",
    "Permissions",
    "ProvisionReport",
    "ResourceWildcard",
    "Resources",
    "RoleDefinition",
    "parse_grant",
    "provision",
]
