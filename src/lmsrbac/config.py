"""Configuration for the LMS access-control core.

Pydantic-validated settings shared by every component that is assembled
at bootstrap (store backend, logging, default-role policy).

Direct os.environ/os.getenv usage is limited to
``load_config_from_env()``; all other code receives an ``RbacConfig``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Supported persistence collaborators.

    - MEMORY: process-local, thread-safe dict store (tests, single worker)
    - SQLITE: stdlib sqlite3 file with unique indexes
    """

    MEMORY = "memory"
    SQLITE = "sqlite"


class RbacConfig(BaseModel):
    """Settings for the authorization engine and its administration service.

    Environment variables (see ``load_config_from_env``):
        RBAC_LOG_LEVEL                     — DEBUG | INFO | WARNING | ERROR | CRITICAL
        RBAC_LOG_JSON                      — JSON log format (true/false)
        RBAC_STORAGE_BACKEND               — memory | sqlite
        RBAC_SQLITE_PATH                   — database file for the sqlite backend
        RBAC_DEFAULT_ROLE                  — role auto-assigned to new accounts
        RBAC_DEFAULT_ROLE_MIN_LEVEL        — most authoritative level allowed for that role
        RBAC_REQUIRE_MANAGE_ROLES          — require user:manage_roles to (un)assign
    """

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    storage_backend: StorageBackend = Field(
        default=StorageBackend.MEMORY,
        description="Persistence collaborator: memory or sqlite",
    )
    sqlite_path: Optional[str] = Field(
        default=None,
        description="Path of the sqlite database file (sqlite backend only)",
    )

    default_role: Optional[str] = Field(
        default="student_teacher",
        description="Role name auto-assigned to newly provisioned accounts. None disables it.",
    )
    default_role_min_level: int = Field(
        default=20,
        ge=1,
        description="Most authoritative level the default role may carry (lower = more authority)",
    )
    require_manage_roles_permission: bool = Field(
        default=True,
        description="Require (user, manage_roles) in addition to the level rule when assigning/revoking roles",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @field_validator("default_role")
    @classmethod
    def validate_default_role(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def validate_sqlite_path(self) -> "RbacConfig":
        if self.storage_backend == StorageBackend.SQLITE and not self.sqlite_path:
            raise ValueError("sqlite_path is required when storage_backend is 'sqlite'")
        return self

    model_config = {
        "extra": "forbid",
    }


def load_config_from_env() -> RbacConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed for these settings.

    Returns:
        RbacConfig instance with values from environment or defaults.
    """
    import os

    truthy = ("true", "1", "yes", "on")

    return RbacConfig(
        log_level=os.getenv("RBAC_LOG_LEVEL", "INFO"),
        log_json=os.getenv("RBAC_LOG_JSON", "false").lower() in truthy,
        storage_backend=os.getenv("RBAC_STORAGE_BACKEND", "memory").lower(),
        sqlite_path=os.getenv("RBAC_SQLITE_PATH") or None,
        default_role=os.getenv("RBAC_DEFAULT_ROLE", "student_teacher"),
        default_role_min_level=int(os.getenv("RBAC_DEFAULT_ROLE_MIN_LEVEL", "20")),
        require_manage_roles_permission=os.getenv("RBAC_REQUIRE_MANAGE_ROLES", "true").lower() in truthy,
    )


__all__ = [
    "LogLevel",
    "RbacConfig",
    "StorageBackend",
    "load_config_from_env",
]
