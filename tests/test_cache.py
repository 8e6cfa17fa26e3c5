"""
Tests for the EntityCache module.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from conftest import FakeClock, SOURCE, element_record, table_record
from sn_typings.core.schema.cache import EntityCache
from sn_typings.core.schema.models import (
    EntityKind,
    FieldType,
    FieldTypeRecord,
    IncompleteRecord,
    PackageKind,
    PackageRecord,
    Table,
    TableRecord,
)


class TestUpsert:
    """Tests for upsert and deduplication."""

    def test_upsert_creates_resolved_entity(self, cache):
        table = cache.upsert(table_record("incident", label="Incident"))

        assert isinstance(table, Table)
        assert table.is_stub is False
        assert table.label == "Incident"
        assert table.sys_id == "incident_id"
        assert cache.get_table("incident") is table

    def test_upsert_twice_updates_in_place(self, cache):
        """Test that a second fetch never duplicates the entity."""
        first = cache.upsert(table_record("incident", label="Incident"))
        first_updated = first.last_updated

        second = cache.upsert(table_record("incident", label="Incidents"))

        assert second is first
        assert second.label == "Incidents"
        assert second.last_updated > first_updated
        assert len(cache.tables()) == 1

    def test_lookup_is_case_insensitive(self, cache):
        table = cache.upsert(TableRecord(name="Incident", sys_id="i1"))

        assert cache.get_table("INCIDENT") is table
        assert cache.upsert(TableRecord(name="incident", sys_id="i1")) is table

    def test_last_updated_uses_clock(self):
        clock = FakeClock()
        cache = EntityCache(SOURCE, clock=clock)

        table = cache.upsert(table_record("incident"))

        assert table.last_updated == clock.now

    def test_incomplete_record_raises(self, cache):
        with pytest.raises(IncompleteRecord):
            cache.upsert(TableRecord(name="incident", sys_id=""))

        assert cache.get_table("incident") is None

    def test_element_attached_to_table(self, cache):
        cache.upsert(table_record("incident"))
        element = cache.upsert(element_record("incident", "number", max_length=40))

        table = cache.get_table("incident")
        assert table.elements == [element]
        assert element.table is table
        assert element.max_length == 40
        assert cache.get_element("incident", "NUMBER") is element
        assert cache.elements_of("incident") == [element]

    def test_element_before_table(self, cache):
        """Test that an element can arrive before its table is fetched."""
        element = cache.upsert(element_record("incident", "number"))

        assert element.table.is_stub is True

        table = cache.upsert(table_record("incident"))

        assert element.table is table
        assert table.is_stub is False
        assert table.elements == [element]

    def test_upsert_many(self, cache):
        entities = cache.upsert_many([
            table_record("incident"),
            table_record("problem"),
        ])

        assert [e.name for e in entities] == ["incident", "problem"]
        assert cache.count(EntityKind.TABLE) == 2


class TestStubs:
    """Tests for stub registration and upgrade."""

    def test_resolve_registers_stub(self, cache):
        stub = cache.resolve_table("sys_user")

        assert stub.is_stub is True
        assert cache.get_table("sys_user") is stub
        assert cache.tables() == []
        assert cache.tables(include_stubs=True) == [stub]

    def test_get_does_not_create(self, cache):
        assert cache.get_table("sys_user") is None
        assert len(cache) == 0

    def test_type_stub_upgraded_in_place(self, cache):
        """Test that a referenced type stub is filled when its record arrives."""
        element = cache.upsert(element_record("task", "state", "integer"))
        stub = element.type

        assert isinstance(stub, FieldType)
        assert stub.is_stub is True

        resolved = cache.upsert(FieldTypeRecord(name="integer", sys_id="t1", label="Integer"))

        assert resolved is stub
        assert element.type is resolved
        assert element.type.is_stub is False
        assert element.type.label == "Integer"

    def test_reference_stub_upgraded(self, cache):
        element = cache.upsert(element_record("incident", "caller_id", "reference", reference="sys_user"))

        assert element.reference_name == "sys_user"
        assert element.reference.is_stub is True

        user = cache.upsert(table_record("sys_user"))

        assert element.reference is user

    def test_id_and_name_stubs_merge(self, cache):
        """Test that a superclass id stub and a reference name stub become one table."""
        problem = cache.upsert(table_record("problem", super_class="task"))
        element = cache.upsert(element_record("incident", "parent", "reference", reference="task"))

        id_stub = problem.super_class
        name_stub = element.reference
        assert id_stub is not name_stub

        task = cache.upsert(table_record("task"))

        assert problem.super_class is task
        assert element.reference is task
        assert problem.super_class_name == "task"
        assert cache.get_by_id(EntityKind.TABLE, "task_id") is task
        assert len(cache.tables(include_stubs=True)) == 3

    def test_package_by_identifier(self, cache):
        table = cache.upsert(table_record("x_acme_app_widget", scope="x_acme_app_id"))

        assert table.scope.is_stub is True

        package = cache.upsert(PackageRecord(
            name="Acme App",
            sys_id="x_acme_app_id",
            package_kind=PackageKind.CUSTOM_APP,
            scope="x_acme_app",
        ))

        assert table.scope is package
        assert table.scope.scope == "x_acme_app"

    def test_resolve_element_rejects_missing_names(self, cache):
        with pytest.raises(ValueError):
            cache.resolve_element("", "number")

    def test_resolve_element_kind_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.resolve(EntityKind.ELEMENT, "incident.number")


class TestConcurrency:
    """Tests for concurrent upserts."""

    def test_concurrent_upserts_single_entity(self, cache):
        """Test that racing upserts of one key produce one entity."""
        records = [FieldTypeRecord(name="integer", sys_id="t1", label="Integer")] * 64

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(cache.upsert, records))

        assert len({id(r) for r in results}) == 1
        assert cache.count(EntityKind.FIELD_TYPE) == 1

    def test_concurrent_element_upserts(self, cache):
        cache.upsert(table_record("incident"))
        records = [element_record("incident", f"u_field_{i % 10}", "integer") for i in range(100)]

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(cache.upsert, records))

        table = cache.get_table("incident")
        assert len(table.elements) == 10
        assert cache.count(EntityKind.ELEMENT) == 10
        assert len({id(e.type) for e in table.elements}) == 1


class TestSnapshot:
    """Tests for snapshot save and load."""

    @pytest.fixture
    def populated(self, schema):
        schema.task_and_problem()
        schema.field_type("integer", "Integer")
        schema.package("x_acme_app")
        return schema.cache

    def test_round_trip(self, populated, tmp_path, clock):
        path = populated.save(tmp_path / "snapshot.json")

        restored = EntityCache(SOURCE, clock=clock)
        assert restored.load(path) is True

        problem = restored.get_table("problem")
        task = restored.get_table("task")
        assert problem.super_class is task
        assert [e.name for e in problem.elements] == ["known_error", "number", "short_description"]
        assert problem.get_element("short_description").label == "Problem statement"
        assert task.get_element("priority").type.label == "Integer"
        assert restored.to_records() == populated.to_records()

    def test_wrong_source_rejected(self, populated, tmp_path):
        path = populated.save(tmp_path / "snapshot.json")

        other = EntityCache("other.service-now.com")

        assert other.load(path) is False
        assert len(other) == 0

    def test_expired_rejected(self, populated, tmp_path):
        path = populated.save(tmp_path / "snapshot.json")

        later = FakeClock(populated._clock() + timedelta(hours=25))
        stale = EntityCache(SOURCE, clock=later, ttl_hours=24)

        assert stale.load(path) is False

    def test_missing_file(self, cache, tmp_path):
        assert cache.load(tmp_path / "missing.json") is False
        assert cache.get_snapshot_info(tmp_path / "missing.json") is None

    def test_snapshot_info(self, populated, tmp_path):
        path = populated.save(tmp_path / "snapshot.json")

        info = populated.get_snapshot_info(path)

        assert info["source"] == SOURCE
        assert info["expires_at"] is not None
