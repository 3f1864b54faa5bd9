"""Core entities of the access-control model.

Entities are frozen dataclasses: stores hand out immutable snapshots and
mutations produce new instances via ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from .levels import is_more_authoritative_than

if TYPE_CHECKING:
    from .permissions.patterns import PermissionGrant


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Permission:
    """Atomic capability, identified by ``(resource, action)``.

    ``description`` is informational and does not take part in equality,
    so sets of permissions deduplicate on the pair alone.
    """

    resource: str
    action: str
    description: str = field(default="", compare=False)

    @property
    def key(self) -> str:
        return f"{self.resource}:{self.action}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Role:
    """Named, leveled bundle of permission grants.

    Attributes:
        id: Store identifier.
        name: Unique machine key (e.g. ``"institution_admin"``).
        display_name: Human-readable name.
        level: Authority rank, lower = more authority.
        description: Free text.
        is_system: Seeded role; cannot be deleted, level/active state frozen.
        is_active: Inactive roles grant nothing even when assigned.
        grants: Direct grants, possibly wildcarded.
    """

    id: str
    name: str
    display_name: str
    level: int
    description: str = ""
    is_system: bool = False
    is_active: bool = True
    grants: frozenset[PermissionGrant] = frozenset()
    created_at: datetime = field(default_factory=utcnow, compare=False)

    @property
    def patterns(self) -> tuple[str, ...]:
        """Grant patterns as sorted strings (for display and persistence)."""
        return tuple(sorted(grant.pattern for grant in self.grants))

    def is_more_authoritative_than(self, other: Role) -> bool:
        return is_more_authoritative_than(self.level, other.level)


@dataclass(frozen=True)
class UserRoleAssignment:
    """Binding of a user to a role, optionally scoped and time-limited.

    ``(user_id, role_id, institution_id, department_id)`` is unique.
    """

    id: str
    user_id: str
    role_id: str
    assigned_by: str
    institution_id: Optional[str] = None
    department_id: Optional[str] = None
    valid_until: Optional[datetime] = None
    assigned_at: datetime = field(default_factory=utcnow)

    @property
    def scope_key(self) -> tuple[str, str, Optional[str], Optional[str]]:
        return (self.user_id, self.role_id, self.institution_id, self.department_id)

    def is_expired(self, as_of: Optional[datetime] = None) -> bool:
        """True once ``valid_until`` lies before ``as_of`` (default: now)."""
        if self.valid_until is None:
            return False
        t = utcnow() if as_of is None else ensure_utc(as_of)
        return ensure_utc(self.valid_until) < t


__all__ = [
    "Permission",
    "Role",
    "UserRoleAssignment",
    "ensure_utc",
    "utcnow",
]
