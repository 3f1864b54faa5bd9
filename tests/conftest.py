"""Shared fixtures: isolated access-control instances per test."""

from __future__ import annotations

from typing import Callable

import pytest

from lmsrbac import AccessControl, UserRoleAssignment, create_access_control


@pytest.fixture
def access() -> AccessControl:
    """Empty in-memory instance (no catalog, no roles)."""
    return create_access_control(seed=False)


@pytest.fixture
def seeded() -> AccessControl:
    """In-memory instance provisioned with the LMS catalog and system roles."""
    return create_access_control()


@pytest.fixture
def bind() -> Callable[..., UserRoleAssignment]:
    """Register a user and bind it to a role, bypassing the guard."""

    def _bind(ac: AccessControl, user_id: str, role: str, **kwargs) -> UserRoleAssignment:
        ac.assignments.register_user(user_id)
        return ac.assignments.assign(user_id, role, assigned_by="system", **kwargs)

    return _bind
