"""Tests for the SQLite store."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from lmsrbac import (
    AllPermissions,
    ConflictError,
    ExactPermission,
    NotFoundError,
    Permission,
    ResourceWildcard,
    SqliteStore,
    StorageError,
    create_access_control,
)
from lmsrbac.models import Role, UserRoleAssignment


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "rbac.db"


@pytest.fixture
def store(db_path) -> SqliteStore:
    return SqliteStore(db_path)


class TestSqliteStore:
    """Tests for SqliteStore CRUD and constraints."""

    def test_permission_upsert(self, store) -> None:
        store.upsert_permission(Permission("course", "publish", "desc A"))
        store.upsert_permission(Permission("course", "publish", "desc B"))

        permissions = store.list_permissions()
        assert len(permissions) == 1
        assert permissions[0].description == "desc B"
        assert store.list_permissions("user") == []

    def test_role_round_trip(self, store) -> None:
        role = Role(
            id="r-1",
            name="editor",
            display_name="Editor",
            level=10,
            grants=frozenset({ResourceWildcard("course")}),
        )
        store.insert_role(role)

        loaded = store.get_role_by_name("editor")
        assert loaded == role
        assert loaded.patterns == ("course:*",)
        assert store.get_role("r-1") == role
        assert store.get_role("missing") is None

    def test_duplicate_role_name(self, store) -> None:
        store.insert_role(Role(id="r-1", name="editor", display_name="Editor", level=10))
        with pytest.raises(ConflictError):
            store.insert_role(Role(id="r-2", name="editor", display_name="Editor 2", level=11))

    def test_assignment_unique_with_null_scope(self, store) -> None:
        """The unique index treats NULL scopes as equal."""
        store.insert_role(Role(id="r-1", name="editor", display_name="Editor", level=10))
        store.insert_assignment(UserRoleAssignment(id="a-1", user_id="u-1", role_id="r-1", assigned_by="system"))

        with pytest.raises(ConflictError, match="already has this role"):
            store.insert_assignment(
                UserRoleAssignment(id="a-2", user_id="u-1", role_id="r-1", assigned_by="system")
            )
        store.insert_assignment(
            UserRoleAssignment(id="a-3", user_id="u-1", role_id="r-1", assigned_by="system", institution_id="i-1")
        )
        assert store.count_assignments("r-1") == 2

    def test_assignment_round_trip(self, store) -> None:
        store.insert_role(Role(id="r-1", name="editor", display_name="Editor", level=10))
        assignment = UserRoleAssignment(
            id="a-1",
            user_id="u-1",
            role_id="r-1",
            assigned_by="admin",
            department_id="dep-1",
            valid_until=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )
        store.insert_assignment(assignment)

        assert store.get_assignment("a-1") == assignment
        assert store.list_assignments("u-1") == [assignment]
        assert store.delete_assignment("a-1") == assignment
        assert store.delete_assignment("a-1") is None

    def test_grant_rows(self, store) -> None:
        store.insert_role(Role(id="r-1", name="editor", display_name="Editor", level=10))
        assert store.add_grant("r-1", ExactPermission("course", "read")) is True
        assert store.add_grant("r-1", ExactPermission("course", "read")) is False
        assert store.remove_grant("r-1", ResourceWildcard("course")) is False
        store.replace_grants("r-1", [ResourceWildcard("course"), AllPermissions()])
        assert store.get_role("r-1").patterns == ("*", "course:*")
        with pytest.raises(NotFoundError):
            store.add_grant("missing", AllPermissions())

    def test_writers_on_one_file_keep_each_others_grants(self, db_path) -> None:
        first, second = SqliteStore(db_path), SqliteStore(db_path)
        first.insert_role(Role(id="r-1", name="editor", display_name="Editor", level=10))
        snapshot = first.get_role("r-1")

        second.add_grant("r-1", ExactPermission("course", "read"))
        first.add_grant(snapshot.id, ExactPermission("course", "enroll"))
        first.update_role(replace(snapshot, display_name="Chief Editor"))

        role = second.get_role("r-1")
        assert role.patterns == ("course:enroll", "course:read")
        assert role.display_name == "Chief Editor"

    def test_users(self, store) -> None:
        store.add_user("u-1")
        store.add_user("u-1")
        assert store.has_user("u-1")
        assert not store.has_user("u-2")

    def test_memory_path_rejected(self) -> None:
        with pytest.raises(StorageError):
            SqliteStore(":memory:")

    def test_unopenable_path(self, tmp_path) -> None:
        with pytest.raises(StorageError):
            SqliteStore(tmp_path)


class TestSqliteAccessControl:
    """The full stack on a database file."""

    def test_scenario_persists_across_instances(self, db_path) -> None:
        ac = create_access_control(store=SqliteStore(db_path))
        ac.assignments.register_user("S")
        ac.assignments.assign("S", "student_teacher", assigned_by="system")
        ac.catalog.register("course", "archive")
        ac.registry.create_role("archivist", "Archivist", 18, permissions=("course:*",))

        reopened = create_access_control(store=SqliteStore(db_path))
        assert reopened.engine.authorize("S", "course", "read")
        assert not reopened.engine.authorize("S", "system", "manage_settings")
        assert Permission("course", "archive") in reopened.registry.resolve_permissions("archivist")
        assert len(reopened.registry.list_roles()) == 29
        assert len(reopened.catalog.all()) == 53

    def test_concurrent_assign_one_winner(self, db_path) -> None:
        ac = create_access_control(store=SqliteStore(db_path))
        ac.assignments.register_user("u-1")
        barrier = threading.Barrier(4)
        outcomes: list[str] = []

        def worker() -> None:
            barrier.wait()
            try:
                ac.assignments.assign("u-1", "instructor", assigned_by="system")
                outcomes.append("ok")
            except ConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["conflict"] * 3 + ["ok"]
        assert len(ac.assignments.active_assignments_for("u-1")) == 1

    def test_delete_role(self, db_path) -> None:
        ac = create_access_control(store=SqliteStore(db_path), seed=False)
        ac.registry.create_role("tutor", "Tutor", 12)
        ac.registry.delete_role("tutor")
        assert ac.registry.find("tutor") is None

    def test_concurrent_grants_from_two_stores(self, db_path) -> None:
        ac = create_access_control(store=SqliteStore(db_path))
        ac.registry.create_role("lab_lead", "Lab Lead", 10)
        other = create_access_control(store=SqliteStore(db_path), seed=False)
        barrier = threading.Barrier(2)

        def worker(registry, pattern: str) -> None:
            barrier.wait()
            registry.grant("lab_lead", pattern)

        threads = [
            threading.Thread(target=worker, args=(ac.registry, "course:read")),
            threading.Thread(target=worker, args=(other.registry, "course:enroll")),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert ac.registry.get("lab_lead").patterns == ("course:enroll", "course:read")

    def test_concurrent_create_role_across_stores(self, db_path) -> None:
        """Each racer has its own store, so only the unique index decides."""
        instances = [create_access_control(store=SqliteStore(db_path), seed=False) for _ in range(4)]
        barrier = threading.Barrier(len(instances))
        outcomes: list[str] = []

        def worker(ac) -> None:
            barrier.wait()
            try:
                ac.registry.create_role("dup", "Duplicate", 10)
                outcomes.append("ok")
            except ConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=worker, args=(ac,)) for ac in instances]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["conflict"] * 3 + ["ok"]
        assert [r.name for r in instances[0].registry.list_roles()] == ["dup"]
