"""Permission constants for the LMS.

Provides:
- ``Resources`` — resource names known to the LMS.
- ``Permissions`` — commonly checked permission keys (``resource:action``)
  and builders for patterns.
"""

from __future__ import annotations


class Resources:
    """Resource names of the LMS permission catalog."""

    USER = "user"
    COURSE = "course"
    ASSESSMENT = "assessment"
    ASSIGNMENT = "assignment"
    RESOURCE = "resource"
    ANALYTICS = "analytics"
    MESSAGE = "message"
    ANNOUNCEMENT = "announcement"
    CHAT = "chat"
    INSTITUTION = "institution"
    SYSTEM = "system"

    ALL = frozenset(
        {
            "user",
            "course",
            "assessment",
            "assignment",
            "resource",
            "analytics",
            "message",
            "announcement",
            "chat",
            "institution",
            "system",
        }
    )


class Permissions:
    """Canonical permission keys.

    Format: ``{resource}:{action}``

    Two modes of use:

    1. **Static constants** — permissions the core and request handlers check::

        engine.authorize(user_id, *Permissions.split(Permissions.CHAT_ACCESS))

    2. **Builders** — for patterns granted to roles::

        Permissions.key("course", "publish")  → "course:publish"
        Permissions.wildcard("course")        → "course:*"
    """

    ALL = "*"

    # ── Administration ──────────────────────────────────
    SYSTEM_MANAGE_SETTINGS = "system:manage_settings"  # gates role/catalog mutation
    SYSTEM_VIEW_LOGS = "system:view_logs"
    USER_MANAGE_ROLES = "user:manage_roles"  # gates role assignment
    USER_READ = "user:read"

    # ── Courses ─────────────────────────────────────────
    COURSE_READ = "course:read"
    COURSE_ENROLL = "course:enroll"
    COURSE_PUBLISH = "course:publish"
    COURSE_MANAGE_ENROLLMENT = "course:manage_enrollment"

    # ── Assessments & Assignments ───────────────────────
    ASSESSMENT_ATTEMPT = "assessment:attempt"
    ASSESSMENT_GRADE = "assessment:grade"
    ASSIGNMENT_SUBMIT = "assignment:submit"
    ASSIGNMENT_GRADE = "assignment:grade"

    # ── Communication & Chat ────────────────────────────
    MESSAGE_SEND = "message:send"
    ANNOUNCEMENT_CREATE = "announcement:create"
    CHAT_ACCESS = "chat:access"
    CHAT_MODERATE = "chat:moderate"

    # ── Builders ────────────────────────────────────────

    @staticmethod
    def key(resource: str, action: str) -> str:
        """Build a ``resource:action`` key."""
        return f"{resource}:{action}"

    @staticmethod
    def wildcard(resource: str) -> str:
        """Build a ``resource:*`` pattern."""
        return f"{resource}:*"

    @staticmethod
    def split(key: str) -> tuple[str, str]:
        """Split a ``resource:action`` key into its parts."""
        resource, _, action = key.partition(":")
        return resource, action


# The meta-permission gating role and catalog mutation.
META_PERMISSION = Permissions.split(Permissions.SYSTEM_MANAGE_SETTINGS)

# Required (with the level rule) to assign or revoke roles.
ROLE_MANAGEMENT_PERMISSION = Permissions.split(Permissions.USER_MANAGE_ROLES)


__all__ = [
    "META_PERMISSION",
    "ROLE_MANAGEMENT_PERMISSION",
    "Permissions",
    "Resources",
]
