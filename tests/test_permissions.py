"""Tests for grant patterns, the permission catalog and permission constants."""

from __future__ import annotations

import pytest

from lmsrbac import (
    AllPermissions,
    ExactPermission,
    Permission,
    Permissions,
    ResourceWildcard,
    Resources,
    ValidationError,
    parse_grant,
)
from lmsrbac.permissions import DEFAULT_PERMISSIONS


class TestParseGrant:
    """Tests for the permission-pattern grammar."""

    def test_global_wildcard(self) -> None:
        assert parse_grant("*") == AllPermissions()

    def test_resource_wildcard(self) -> None:
        assert parse_grant("course:*") == ResourceWildcard("course")

    def test_exact(self) -> None:
        assert parse_grant("course:publish") == ExactPermission("course", "publish")

    def test_parsed_grant_passes_through(self) -> None:
        grant = ExactPermission("chat", "access")
        assert parse_grant(grant) is grant

    @pytest.mark.parametrize(
        "pattern",
        ["*:read", "course", "course:", ":read", "a:b:c", "**", "course:**", "course:pub lish", ""],
    )
    def test_invalid_patterns(self, pattern: str) -> None:
        """Only '*', 'res:*' and 'res:action' are accepted."""
        with pytest.raises(ValidationError):
            parse_grant(pattern)

    def test_non_string_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_grant(None)  # type: ignore[arg-type]

    def test_pattern_property_round_trips(self) -> None:
        for text in ("*", "user:*", "user:manage_roles"):
            assert parse_grant(text).pattern == text


class TestGrantCoverage:
    """Tests for grant matching on the authorization path."""

    def test_all_covers_everything(self) -> None:
        assert AllPermissions().covers("system", "backup")

    def test_resource_wildcard_covers_only_its_resource(self) -> None:
        grant = ResourceWildcard("course")
        assert grant.covers("course", "archive")
        assert not grant.covers("assessment", "read")

    def test_exact_covers_one_pair(self) -> None:
        grant = ExactPermission("course", "read")
        assert grant.covers("course", "read")
        assert not grant.covers("course", "update")


class TestPermissionCatalog:
    """Tests for PermissionCatalog."""

    def test_register_and_find(self, access) -> None:
        permission = access.catalog.register("course", "publish", "Publish courses")
        assert permission == Permission("course", "publish")
        assert access.catalog.find("course", "publish").description == "Publish courses"
        assert access.catalog.find("course", "archive") is None

    def test_register_is_idempotent(self, access) -> None:
        """Re-registering updates the description instead of duplicating."""
        access.catalog.register("course", "publish", "desc A")
        access.catalog.register("course", "publish", "desc B")

        matching = [p for p in access.catalog.all() if p.key == "course:publish"]
        assert len(matching) == 1
        assert access.catalog.find("course", "publish").description == "desc B"

    def test_list_by_resource(self, access) -> None:
        access.catalog.register("course", "read")
        access.catalog.register("course", "update")
        access.catalog.register("user", "read")

        assert access.catalog.list_by_resource("course") == {
            Permission("course", "read"),
            Permission("course", "update"),
        }
        assert access.catalog.list_by_resource("chat") == frozenset()

    def test_contains(self, access) -> None:
        access.catalog.register("chat", "access")
        assert Permission("chat", "access") in access.catalog
        assert Permission("chat", "moderate") not in access.catalog
        assert "chat:access" not in access.catalog

    @pytest.mark.parametrize("resource,action", [("", "read"), ("course", ""), ("cou:rse", "read"), ("*", "read")])
    def test_register_rejects_malformed(self, access, resource: str, action: str) -> None:
        with pytest.raises(ValidationError):
            access.catalog.register(resource, action)

    def test_catalog_has_no_delete(self, access) -> None:
        assert not hasattr(access.catalog, "delete")
        assert not hasattr(access.catalog, "remove")


class TestPermissionsConstants:
    """Tests for Permissions / Resources constants."""

    def test_permission_format(self) -> None:
        """All string-constant permissions follow resource:action format."""
        for attr in dir(Permissions):
            if attr.startswith("_") or attr == "ALL":
                continue
            value = getattr(Permissions, attr)
            if callable(value):
                continue
            resource, _, action = value.partition(":")
            assert resource in Resources.ALL, f"{attr}={value} has unknown resource"
            assert action, f"{attr} has empty action"

    def test_constants_exist_in_default_catalog(self) -> None:
        keys = {f"{resource}:{action}" for resource, action, _ in DEFAULT_PERMISSIONS}
        for attr in dir(Permissions):
            value = getattr(Permissions, attr)
            if attr.startswith("_") or attr == "ALL" or callable(value):
                continue
            assert value in keys, f"{value} missing from DEFAULT_PERMISSIONS"

    def test_builders(self) -> None:
        assert Permissions.key("course", "publish") == "course:publish"
        assert Permissions.wildcard("course") == "course:*"
        assert Permissions.split("user:manage_roles") == ("user", "manage_roles")
