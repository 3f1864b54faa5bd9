"""Tests for RoleRegistry."""

from __future__ import annotations

import threading

import pytest

from lmsrbac import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    Permission,
    ResourceWildcard,
    ValidationError,
)


def _catalog(ac) -> None:
    for resource, action in (
        ("course", "read"),
        ("course", "update"),
        ("assignment", "grade"),
        ("assignment", "submit"),
        ("system", "manage_settings"),
    ):
        ac.catalog.register(resource, action)


class TestCreateRole:
    """Tests for role creation."""

    def test_create_role(self, access) -> None:
        role = access.registry.create_role("tutor", "Tutor", 12, "Helps students")
        assert role.name == "tutor"
        assert role.level == 12
        assert role.is_active is True
        assert role.is_system is False
        assert access.registry.get("tutor") == role
        assert access.registry.get(role.id) == role

    def test_duplicate_name_conflicts(self, access) -> None:
        access.registry.create_role("tutor", "Tutor", 12)
        with pytest.raises(ConflictError):
            access.registry.create_role("tutor", "Another Tutor", 13)
        assert len(access.registry.list_roles()) == 1

    @pytest.mark.parametrize("level", [0, -1, True, "3", 2**31 - 1])
    def test_invalid_level(self, access, level) -> None:
        with pytest.raises(ValidationError):
            access.registry.create_role("tutor", "Tutor", level)

    def test_missing_display_name(self, access) -> None:
        with pytest.raises(ValidationError):
            access.registry.create_role("tutor", "  ", 12)

    def test_create_with_permissions(self, access) -> None:
        _catalog(access)
        role = access.registry.create_role("tutor", "Tutor", 12, permissions=("course:read", "assignment:*"))
        assert role.patterns == ("assignment:*", "course:read")

    def test_create_with_unknown_permission_writes_nothing(self, access) -> None:
        _catalog(access)
        with pytest.raises(NotFoundError):
            access.registry.create_role("tutor", "Tutor", 12, permissions=("course:read", "course:archive"))
        assert access.registry.find("tutor") is None

    def test_get_unknown_role(self, access) -> None:
        with pytest.raises(NotFoundError):
            access.registry.get("nobody")


class TestGrantAndResolve:
    """Tests for grants and live wildcard resolution."""

    def test_exact_grant_requires_catalog_entry(self, access) -> None:
        _catalog(access)
        access.registry.create_role("tutor", "Tutor", 12)
        with pytest.raises(NotFoundError):
            access.registry.grant("tutor", "course:archive")

    def test_wildcard_grant_does_not_require_catalog_entry(self, access) -> None:
        access.registry.create_role("tutor", "Tutor", 12)
        role = access.registry.grant("tutor", "forum:*")
        assert ResourceWildcard("forum") in role.grants
        assert access.registry.resolve_permissions(role) == frozenset()

    def test_invalid_pattern(self, access) -> None:
        access.registry.create_role("tutor", "Tutor", 12)
        with pytest.raises(ValidationError):
            access.registry.grant("tutor", "*:read")

    def test_grant_is_idempotent(self, access) -> None:
        _catalog(access)
        access.registry.create_role("tutor", "Tutor", 12)
        access.registry.grant("tutor", "course:read")
        role = access.registry.grant("tutor", "course:read")
        assert role.patterns == ("course:read",)

    def test_resource_wildcard_is_live(self, access) -> None:
        """A permission added after a 'course:*' grant is covered without re-granting."""
        _catalog(access)
        access.registry.create_role("editor", "Editor", 10)
        access.registry.grant("editor", "course:*")

        before = access.registry.resolve_permissions("editor")
        assert before == {Permission("course", "read"), Permission("course", "update")}

        access.catalog.register("course", "archive", "Archive courses")
        after = access.registry.resolve_permissions("editor")
        assert Permission("course", "archive") in after
        assert len(after) == 3

    def test_global_wildcard_equals_catalog(self, access) -> None:
        """A '*' role resolves to the whole catalog at every point in time."""
        _catalog(access)
        access.registry.create_role("root", "Root", 1)
        access.registry.grant("root", "*")
        assert access.registry.resolve_permissions("root") == access.catalog.all()

        access.catalog.register("backup", "run")
        assert access.registry.resolve_permissions("root") == access.catalog.all()

    def test_revoke_exact_grant(self, access) -> None:
        _catalog(access)
        access.registry.create_role("tutor", "Tutor", 12, permissions=("course:read", "course:update"))
        role = access.registry.revoke("tutor", "course:update")
        assert role.patterns == ("course:read",)
        assert access.registry.resolve_permissions("tutor") == {Permission("course", "read")}

    def test_revoke_accepts_permission(self, access) -> None:
        _catalog(access)
        access.registry.create_role("tutor", "Tutor", 12, permissions=("course:read",))
        role = access.registry.revoke("tutor", Permission("course", "read"))
        assert role.grants == frozenset()

    def test_revoke_does_not_narrow_wildcard(self, access) -> None:
        _catalog(access)
        access.registry.create_role("editor", "Editor", 10, permissions=("course:*",))
        with pytest.raises(NotFoundError):
            access.registry.revoke("editor", "course:read")
        assert access.registry.get("editor").patterns == ("course:*",)


class TestRoleLifecycle:
    """Tests for metadata updates, activation and deletion."""

    def test_update_metadata(self, access) -> None:
        access.registry.create_role("tutor", "Tutor", 12)
        role = access.registry.update_metadata("tutor", display_name="Senior Tutor", level=11)
        assert role.display_name == "Senior Tutor"
        assert role.level == 11

    def test_set_active(self, access) -> None:
        access.registry.create_role("tutor", "Tutor", 12)
        assert access.registry.set_active("tutor", False).is_active is False
        assert access.registry.list_roles(is_active=True) == []
        assert access.registry.set_active("tutor", True).is_active is True

    def test_system_role_level_is_frozen(self, access) -> None:
        access.registry.create_role("registrar", "Registrar", 9, is_system=True)
        with pytest.raises(AuthorizationError, match="cannot modify system role structure"):
            access.registry.update_metadata("registrar", level=3)
        assert access.registry.get("registrar").level == 9

    def test_system_role_cannot_be_deactivated(self, access) -> None:
        access.registry.create_role("registrar", "Registrar", 9, is_system=True)
        with pytest.raises(AuthorizationError) as exc_info:
            access.registry.set_active("registrar", False)
        assert exc_info.value.details["rule"] == "system_role_protection"
        assert access.registry.get("registrar").is_active is True

    def test_system_role_rejection_is_atomic(self, access) -> None:
        """A refused structural change does not apply the other fields either."""
        access.registry.create_role("registrar", "Registrar", 9, is_system=True)
        with pytest.raises(AuthorizationError):
            access.registry.update_metadata("registrar", display_name="Records", is_active=False)
        assert access.registry.get("registrar").display_name == "Registrar"

    def test_system_role_metadata_editable(self, access) -> None:
        access.registry.create_role("registrar", "Registrar", 9, is_system=True)
        role = access.registry.update_metadata("registrar", display_name="Records Office", description="x")
        assert role.display_name == "Records Office"
        assert role.level == 9

    def test_system_role_refuses_any_level(self, access) -> None:
        """Even restating the current level is a structural change."""
        access.registry.create_role("registrar", "Registrar", 9, is_system=True)
        with pytest.raises(AuthorizationError, match="cannot modify system role structure"):
            access.registry.update_metadata("registrar", display_name="Records", level=9)
        assert access.registry.get("registrar").display_name == "Registrar"

    def test_replace_permissions(self, access) -> None:
        _catalog(access)
        access.registry.create_role("tutor", "Tutor", 12, permissions=("course:read", "assignment:*"))

        role = access.registry.update_metadata("tutor", display_name="Lead Tutor", permissions=("course:update",))

        assert role.display_name == "Lead Tutor"
        assert role.patterns == ("course:update",)
        assert access.registry.resolve_permissions("tutor") == {Permission("course", "update")}

    def test_replace_permissions_with_empty_set(self, access) -> None:
        _catalog(access)
        access.registry.create_role("tutor", "Tutor", 12, permissions=("course:read",))
        assert access.registry.update_metadata("tutor", permissions=()).patterns == ()

    def test_replace_permissions_is_validated_first(self, access) -> None:
        _catalog(access)
        access.registry.create_role("tutor", "Tutor", 12, permissions=("course:read",))
        with pytest.raises(NotFoundError):
            access.registry.update_metadata("tutor", display_name="Lead Tutor", permissions=("course:archive",))
        role = access.registry.get("tutor")
        assert (role.display_name, role.patterns) == ("Tutor", ("course:read",))

    def test_metadata_update_keeps_grants(self, access) -> None:
        _catalog(access)
        access.registry.create_role("tutor", "Tutor", 12, permissions=("course:read",))
        access.registry.grant("tutor", "course:update")
        role = access.registry.update_metadata("tutor", description="Helps")
        assert role.patterns == ("course:read", "course:update")

    def test_delete_system_role_refused(self, access) -> None:
        access.registry.create_role("registrar", "Registrar", 9, is_system=True)
        with pytest.raises(AuthorizationError):
            access.registry.delete_role("registrar")
        assert access.registry.find("registrar") is not None

    def test_delete_role_in_use_conflicts(self, access, bind) -> None:
        access.registry.create_role("tutor", "Tutor", 12)
        bind(access, "u-1", "tutor")
        with pytest.raises(ConflictError):
            access.registry.delete_role("tutor")
        assert access.registry.usage("tutor") == 1

    def test_delete_unused_role(self, access) -> None:
        access.registry.create_role("tutor", "Tutor", 12)
        access.registry.delete_role("tutor")
        assert access.registry.find("tutor") is None

    def test_list_roles_ordered_and_filtered(self, access) -> None:
        access.registry.create_role("b_role", "B", 5)
        access.registry.create_role("a_role", "A", 5)
        access.registry.create_role("top", "Top", 1)

        assert [r.name for r in access.registry.list_roles()] == ["top", "a_role", "b_role"]
        assert [r.name for r in access.registry.list_roles(level=5)] == ["a_role", "b_role"]

    def test_ensure_role_refreshes_existing(self, access) -> None:
        _catalog(access)
        first = access.registry.ensure_role("registrar", "Registrar", 9, is_system=True)
        access.registry.grant("registrar", "course:read")
        second = access.registry.ensure_role("registrar", "Registrar Office", 8, "Records", is_system=True)

        assert second.id == first.id
        assert second.level == 8
        assert second.display_name == "Registrar Office"
        assert second.patterns == ("course:read",)
        assert len(access.registry.list_roles()) == 1


class TestConcurrentCreation:
    """Racing creations of one role name have exactly one winner."""

    def test_concurrent_create_one_winner(self, access) -> None:
        barrier = threading.Barrier(6)
        outcomes: list[str] = []

        def worker(level: int) -> None:
            barrier.wait()
            try:
                access.registry.create_role("dup", "Duplicate", level)
                outcomes.append("ok")
            except ConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=worker, args=(10 + i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["conflict"] * 5 + ["ok"]
        assert [r.name for r in access.registry.list_roles()] == ["dup"]


class TestLockFreeReads:
    """Reads proceed while a writer holds the store lock."""

    def test_reads_do_not_wait_for_atomic_block(self, access) -> None:
        access.registry.create_role("tutor", "Tutor", 12)
        entered, release = threading.Event(), threading.Event()

        def hold_lock() -> None:
            with access.store.atomic():
                entered.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            assert entered.wait(5)
            result: list[object] = []
            reader = threading.Thread(target=lambda: result.append(access.registry.find("tutor")))
            reader.start()
            reader.join(2)
            assert not reader.is_alive()
            assert result[0].name == "tutor"
        finally:
            release.set()
            holder.join()
