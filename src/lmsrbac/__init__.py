from .config import LogLevel, RbacConfig, StorageBackend, load_config_from_env
from .exceptions import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    RbacError,
    StorageError,
    ValidationError,
)
from .levels import NO_AUTHORITY_LEVEL, highest_authority, is_more_authoritative_than, is_within_authority
from .logging import AuditLoggerAdapter, RbacFormatter, get_audit_logger, safe_preview, setup_logging
from .models import Permission, Role, UserRoleAssignment
from .permissions import (
    AllPermissions,
    ExactPermission,
    PermissionCatalog,
    PermissionGrant,
    Permissions,
    ResourceWildcard,
    Resources,
    parse_grant,
    provision,
)
from .roles import RoleRegistry
from .assignments import RoleAssignmentStore
from .engine import AccessProfile, AuthorizationEngine
from .hierarchy import HierarchyGuard
from .admin import AccessAdministration
from .storage import InMemoryStore, RbacStore, SqliteStore, build_store
from .bootstrap import AccessControl, create_access_control

__all__ = [
    'AccessAdministration',
    'AccessControl',
    'AccessProfile',
    'AllPermissions',
    'AuditLoggerAdapter',
    'AuthorizationEngine',
    'AuthorizationError',
    'ConfigurationError',
    'ConflictError',
    'ExactPermission',
    'HierarchyGuard',
    'InMemoryStore',
    'LogLevel',
    'NO_AUTHORITY_LEVEL',
    'NotFoundError',
    'Permission',
    'PermissionCatalog',
    'PermissionGrant',
    'Permissions',
    'RbacConfig',
    'RbacError',
    'RbacFormatter',
    'RbacStore',
    'ResourceWildcard',
    'Resources',
    'Role',
    'RoleAssignmentStore',
    'RoleRegistry',
    'SqliteStore',
    'StorageBackend',
    'StorageError',
    'UserRoleAssignment',
    'ValidationError',
    'build_store',
    'create_access_control',
    'get_audit_logger',
    'highest_authority',
    'is_more_authoritative_than',
    'is_within_authority',
    'load_config_from_env',
    'parse_grant',
    'provision',
    'safe_preview',
    'setup_logging',
]
