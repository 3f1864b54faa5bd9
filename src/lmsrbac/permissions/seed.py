"""Provisioning data for the nationwide LMS.

Provides:
- ``DEFAULT_PERMISSIONS``: the permission catalog (resource, action, description).
- ``SYSTEM_ROLES``: seeded roles from ministry down to observer.
- ``ROLE_PERMISSION_PATTERNS``: role name → granted patterns.
- ``provision()``: load all of the above into a catalog and registry.

``provision`` takes its collaborators as arguments and keeps no module
state, so every test can build an isolated catalog and registry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..roles import RoleRegistry
    from .catalog import PermissionCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleDefinition:
    name: str
    display_name: str
    description: str
    level: int


# ── Permission catalog ──────────────────────────────────

DEFAULT_PERMISSIONS: tuple[tuple[str, str, str], ...] = (
    # User Management
    ("user", "create", "Create new users"),
    ("user", "read", "View user information"),
    ("user", "update", "Update user information"),
    ("user", "delete", "Delete users"),
    ("user", "manage_roles", "Assign/remove user roles"),
    # Course Management
    ("course", "create", "Create new courses"),
    ("course", "read", "View course content"),
    ("course", "update", "Update course content"),
    ("course", "delete", "Delete courses"),
    ("course", "publish", "Publish/unpublish courses"),
    ("course", "enroll", "Enroll in courses"),
    ("course", "manage_enrollment", "Manage course enrollments"),
    # Assessment Management
    ("assessment", "create", "Create assessments"),
    ("assessment", "read", "View assessments"),
    ("assessment", "update", "Update assessments"),
    ("assessment", "delete", "Delete assessments"),
    ("assessment", "attempt", "Take assessments"),
    ("assessment", "grade", "Grade assessments"),
    ("assessment", "view_all_results", "View all assessment results"),
    # Assignment Management
    ("assignment", "create", "Create assignments"),
    ("assignment", "read", "View assignments"),
    ("assignment", "update", "Update assignments"),
    ("assignment", "delete", "Delete assignments"),
    ("assignment", "submit", "Submit assignments"),
    ("assignment", "grade", "Grade assignments"),
    # Resource Management
    ("resource", "create", "Upload resources"),
    ("resource", "read", "View resources"),
    ("resource", "update", "Update resources"),
    ("resource", "delete", "Delete resources"),
    ("resource", "manage_library", "Manage e-library"),
    # Analytics & Reports
    ("analytics", "view_own", "View own analytics"),
    ("analytics", "view_course", "View course analytics"),
    ("analytics", "view_institution", "View institution analytics"),
    ("analytics", "view_system", "View system-wide analytics"),
    ("analytics", "export", "Export analytics data"),
    # Communication
    ("message", "send", "Send messages"),
    ("message", "broadcast", "Send broadcast messages"),
    ("announcement", "create", "Create announcements"),
    ("announcement", "update", "Update announcements"),
    ("announcement", "delete", "Delete announcements"),
    # Chat/AI Assistant
    ("chat", "access", "Access AI chat assistant"),
    ("chat", "view_history", "View chat history"),
    ("chat", "moderate", "Moderate chat interactions"),
    # Institution Management
    ("institution", "create", "Create institutions"),
    ("institution", "read", "View institution details"),
    ("institution", "update", "Update institution details"),
    ("institution", "delete", "Delete institutions"),
    ("institution", "manage", "Manage institution settings"),
    # System Administration
    ("system", "manage_settings", "Manage system settings"),
    ("system", "view_logs", "View system logs"),
    ("system", "backup", "Perform system backups"),
    ("system", "maintain", "Perform system maintenance"),
)


# ── System roles ────────────────────────────────────────

SYSTEM_ROLES: tuple[RoleDefinition, ...] = (
    # Ministry
    RoleDefinition("super_admin", "Super Administrator", "Full system access across all institutions", 1),
    RoleDefinition(
        "ministry_admin",
        "Ministry Administrator",
        "Ministry of Education administrator with oversight capabilities",
        2,
    ),
    RoleDefinition(
        "ministry_coordinator",
        "Ministry Coordinator",
        "Coordinates educational programs at ministry level",
        3,
    ),
    RoleDefinition(
        "ministry_analyst",
        "Ministry Data Analyst",
        "Access to analytics and reporting across institutions",
        3,
    ),
    # Regional / district
    RoleDefinition(
        "regional_director",
        "Regional Education Director",
        "Manages educational institutions in a region",
        4,
    ),
    RoleDefinition(
        "district_supervisor",
        "District Education Supervisor",
        "Supervises educational quality at district level",
        5,
    ),
    # Institution
    RoleDefinition(
        "institution_admin",
        "Institution Administrator",
        "Full administrative access within an institution",
        6,
    ),
    RoleDefinition("principal", "Principal/Dean", "Head of teacher education institution", 7),
    RoleDefinition("academic_director", "Academic Director", "Manages academic programs and curriculum", 8),
    RoleDefinition("registrar", "Registrar", "Manages student records and enrollment", 9),
    RoleDefinition(
        "quality_assurance",
        "Quality Assurance Officer",
        "Monitors and ensures educational quality standards",
        9,
    ),
    # Department
    RoleDefinition("department_head", "Department Head", "Leads an academic department", 10),
    RoleDefinition("program_coordinator", "Program Coordinator", "Coordinates specific educational programs", 11),
    # Teaching
    RoleDefinition(
        "senior_instructor",
        "Senior Instructor",
        "Experienced teacher educator with mentoring responsibilities",
        12,
    ),
    RoleDefinition("instructor", "Instructor", "Teacher educator responsible for courses", 13),
    RoleDefinition(
        "assistant_instructor",
        "Assistant Instructor",
        "Supporting instructor for courses and practicals",
        14,
    ),
    RoleDefinition(
        "practicum_supervisor",
        "Practicum Supervisor",
        "Supervises student teachers during practice teaching",
        14,
    ),
    RoleDefinition("mentor_teacher", "Mentor Teacher", "Experienced teacher who mentors student teachers", 15),
    # Support
    RoleDefinition("librarian", "Librarian", "Manages educational resources and e-library", 16),
    RoleDefinition("it_support", "IT Support", "Technical support for the LMS", 16),
    RoleDefinition("counselor", "Student Counselor", "Provides guidance and support to student teachers", 16),
    RoleDefinition("content_developer", "Content Developer", "Creates and manages educational content", 17),
    # External
    RoleDefinition("external_examiner", "External Examiner", "External quality assurance and examination", 18),
    RoleDefinition("guest_lecturer", "Guest Lecturer", "External expert providing specialized lectures", 19),
    # Students
    RoleDefinition("student_teacher", "Student Teacher", "Pre-service teacher in training", 20),
    RoleDefinition(
        "in_service_teacher",
        "In-Service Teacher",
        "Practicing teacher enrolled in professional development",
        20,
    ),
    RoleDefinition("alumni", "Alumni", "Graduated teacher with limited access", 21),
    RoleDefinition("observer", "Observer", "Limited read-only access for monitoring", 25),
)


# ── Role → permission patterns ──────────────────────────
# Roles without an entry are seeded with no grants.

ROLE_PERMISSION_PATTERNS: dict[str, tuple[str, ...]] = {
    "super_admin": ("*",),
    "ministry_admin": (
        "user:*",
        "course:*",
        "institution:*",
        "analytics:*",
        "system:manage_settings",
    ),
    "ministry_coordinator": (
        "user:read",
        "course:read",
        "institution:read",
        "analytics:view_system",
        "analytics:export",
    ),
    "ministry_analyst": (
        "analytics:*",
        "user:read",
        "course:read",
        "institution:read",
    ),
    "regional_director": (
        "institution:read",
        "institution:update",
        "analytics:view_institution",
        "user:read",
        "course:read",
    ),
    "institution_admin": (
        "user:create",
        "user:read",
        "user:update",
        "user:manage_roles",
        "course:*",
        "assessment:*",
        "assignment:*",
        "resource:*",
        "analytics:view_institution",
        "announcement:*",
        "institution:manage",
    ),
    "principal": (
        "user:read",
        "course:read",
        "course:publish",
        "analytics:view_institution",
        "announcement:*",
        "institution:manage",
    ),
    "academic_director": (
        "course:*",
        "assessment:*",
        "assignment:*",
        "resource:*",
        "analytics:view_course",
        "user:read",
    ),
    "registrar": (
        "user:create",
        "user:read",
        "user:update",
        "course:manage_enrollment",
        "analytics:view_institution",
    ),
    "instructor": (
        "course:create",
        "course:read",
        "course:update",
        "course:publish",
        "assessment:*",
        "assignment:*",
        "resource:create",
        "resource:read",
        "resource:update",
        "analytics:view_course",
        "message:send",
        "announcement:create",
        "chat:access",
    ),
    "student_teacher": (
        "course:read",
        "course:enroll",
        "assessment:attempt",
        "assignment:submit",
        "resource:read",
        "analytics:view_own",
        "message:send",
        "chat:access",
    ),
    "librarian": (
        "resource:*",
        "analytics:view_course",
    ),
    "it_support": (
        "user:read",
        "system:view_logs",
        "chat:moderate",
    ),
}


@dataclass(frozen=True)
class ProvisionReport:
    permissions: int
    roles: int
    grants: int


def provision(
    catalog: PermissionCatalog,
    registry: RoleRegistry,
    *,
    permissions: tuple[tuple[str, str, str], ...] = DEFAULT_PERMISSIONS,
    roles: tuple[RoleDefinition, ...] = SYSTEM_ROLES,
    role_patterns: dict[str, tuple[str, ...]] | None = None,
) -> ProvisionReport:
    """Seed the catalog and registry. Safe to run on every bootstrap.

    Existing permissions keep their identity (descriptions are refreshed),
    existing system roles get their metadata refreshed and already held
    grants are not duplicated.

    Args:
        catalog: Target permission catalog.
        registry: Target role registry.
        permissions: Catalog entries to register.
        roles: System roles to ensure.
        role_patterns: Role name → patterns (default: ``ROLE_PERMISSION_PATTERNS``).

    Returns:
        Counts of what was processed.
    """
    mapping = ROLE_PERMISSION_PATTERNS if role_patterns is None else role_patterns

    for resource, action, description in permissions:
        catalog.register(resource, action, description)
    logger.info("Provisioned %d permissions", len(permissions))

    for definition in roles:
        registry.ensure_role(
            name=definition.name,
            display_name=definition.display_name,
            description=definition.description,
            level=definition.level,
            is_system=True,
        )
    logger.info("Provisioned %d roles", len(roles))

    grant_count = 0
    for role_name, patterns in mapping.items():
        role = registry.find(role_name)
        if role is None:
            logger.warning("Skipping grants for unknown role %s", role_name)
            continue
        for pattern in patterns:
            registry.grant(role.id, pattern)
            grant_count += 1
    logger.info("Provisioned %d role grants", grant_count)

    return ProvisionReport(permissions=len(permissions), roles=len(roles), grants=grant_count)


__all__ = [
    "DEFAULT_PERMISSIONS",
    "ROLE_PERMISSION_PATTERNS",
    "SYSTEM_ROLES",
    "ProvisionReport",
    "RoleDefinition",
    "provision",
]
