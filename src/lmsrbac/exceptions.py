"""Unified exception hierarchy for the LMS access-control core.

Every error raised by the catalog, registry, assignment store, engine and
guard inherits from RbacError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for protocol mapping
- gRPC / HTTP status mapping and an async gRPC error handler decorator

Usage in request handlers:
    from lmsrbac.exceptions import (
        AuthorizationError,
        ConflictError,
        grpc_error_handler,
    )

No error kind here is fatal to the process: each one is local to the
requested operation and is raised before any state is written.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "RbacError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "AuthorizationError",
    "StorageError",
    "ConfigurationError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # Protocol helpers
    "get_grpc_status_code",
    "grpc_error_handler",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class RbacError(Exception):
    """Base exception for the access-control core.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "CONFLICT_ERROR").
        message: Human-readable error description.
        http_status: HTTP status used by the API layer for this error kind.
        details: Additional context as keyword arguments (operation, entity ids, rule).
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"
    http_status: int = 500

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(RbacError):
    """Malformed input (bad permission pattern, missing required field)."""

    code: str = "VALIDATION_ERROR"
    message: str = "Invalid input"
    http_status: int = 400


class ConflictError(RbacError):
    """Uniqueness violation (duplicate role name or assignment tuple)."""

    code: str = "CONFLICT_ERROR"
    message: str = "Resource conflict"
    http_status: int = 409


class NotFoundError(RbacError):
    """Referenced role, user, permission or assignment does not exist."""

    code: str = "NOT_FOUND_ERROR"
    message: str = "Resource not found"
    http_status: int = 404


class AuthorizationError(RbacError):
    """Hierarchy or system-role protection rule rejected the operation.

    ``details["rule"]`` names the rule that refused, for audit logging.
    """

    code: str = "AUTHORIZATION_ERROR"
    message: str = "Insufficient permissions"
    http_status: int = 403


class StorageError(RbacError):
    """Persistence collaborator failure."""

    code: str = "STORAGE_ERROR"
    message: str = "Storage operation failed"
    http_status: int = 503


class ConfigurationError(RbacError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[RbacError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[RbacError]] = {}

    def register(self, code: str, error_cls: type[RbacError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[RbacError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[RbacError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("ENROLLMENT_CLOSED")
        class EnrollmentClosedError(RbacError):
            code = "ENROLLMENT_CLOSED"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


error_registry.register("INTERNAL_ERROR", RbacError)
error_registry.register("VALIDATION_ERROR", ValidationError)
error_registry.register("CONFLICT_ERROR", ConflictError)
error_registry.register("NOT_FOUND_ERROR", NotFoundError)
error_registry.register("AUTHORIZATION_ERROR", AuthorizationError)
error_registry.register("STORAGE_ERROR", StorageError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)


# ---- gRPC Error Handling Utilities ------------------------------------------


def get_grpc_status_code(error: RbacError) -> Any:
    """Map an RbacError to a gRPC status code.

    Import grpc locally to avoid hard dependency at module level.
    """
    import grpc

    error_to_status = {
        "VALIDATION_ERROR": grpc.StatusCode.INVALID_ARGUMENT,
        "CONFLICT_ERROR": grpc.StatusCode.ALREADY_EXISTS,
        "NOT_FOUND_ERROR": grpc.StatusCode.NOT_FOUND,
        "AUTHORIZATION_ERROR": grpc.StatusCode.PERMISSION_DENIED,
        "STORAGE_ERROR": grpc.StatusCode.UNAVAILABLE,
        "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)


def grpc_error_handler(method):
    """Decorator for unary gRPC service methods with proper error handling.

    Catches RbacError and aborts with the mapped gRPC status code. The
    ``error-code`` trailing metadata carries the stable error code.

    Usage:
        @grpc_error_handler
        async def AssignRole(self, request, context):
            ...
    """

    @functools.wraps(method)
    async def wrapper(self, request, context):
        try:
            return await method(self, request, context)
        except RbacError as e:
            status_code = get_grpc_status_code(e)
            error_message = f"[{e.code}] {e.message}"

            logger.error(
                "%s failed: %s",
                method.__name__,
                error_message,
                extra={
                    "error_code": e.code,
                    "error_details": e.details,
                },
            )

            context.set_trailing_metadata([("error-code", e.code)])
            await context.abort(status_code, error_message)
            return

        except Exception as e:
            import grpc

            logger.exception("%s unexpected error: %s", method.__name__, e)
            await context.abort(
                grpc.StatusCode.INTERNAL,
                f"Unexpected {type(e)}: {e}",
            )
            return

    return wrapper
