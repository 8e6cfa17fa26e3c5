"""
Shared fixtures: an in-memory schema source and a cache builder.
"""

import threading
from datetime import datetime, timedelta

import pytest

from sn_typings.core.schema.cache import EntityCache
from sn_typings.core.schema.models import (
    ElementRecord,
    FieldTypeRecord,
    IncompleteRecord,
    PackageKind,
    PackageRecord,
    TableRecord,
)


SOURCE = "dev1234.service-now.com"


class FakeClock:
    """Clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def table_record(name: str, super_class: str | None = None, **fields) -> TableRecord:
    return TableRecord(
        name=name,
        sys_id=f"{name}_id",
        label=fields.pop("label", name.replace("_", " ").title()),
        super_class=f"{super_class}_id" if super_class else None,
        **fields,
    )


def element_record(table: str, name: str, type: str | None = "string", **fields) -> ElementRecord:
    return ElementRecord(
        name=name,
        table_name=table,
        sys_id=f"{table}.{name}",
        label=fields.pop("label", name.replace("_", " ").title()),
        type=type,
        **fields,
    )


def base_record_elements(table: str) -> list[ElementRecord]:
    return [
        element_record(table, "sys_id", "GUID", label="Sys ID"),
        element_record(table, "sys_created_on", "glide_date_time", label="Created"),
        element_record(table, "sys_created_by", label="Created by"),
        element_record(table, "sys_updated_on", "glide_date_time", label="Updated"),
        element_record(table, "sys_updated_by", label="Updated by"),
        element_record(table, "sys_mod_count", "integer", label="Updates"),
    ]


class SchemaBuilder:
    """Upserts tables, columns and packages straight into a cache."""

    def __init__(self, cache: EntityCache):
        self.cache = cache

    def package(self, name: str, kind: PackageKind = PackageKind.APPLICATION, **fields):
        if kind.is_application:
            fields.setdefault("scope", name)
        return self.cache.upsert(PackageRecord(name=name, sys_id=f"{name}_id", package_kind=kind, **fields))

    def table(self, name: str, super_class: str | None = None, columns: list[ElementRecord] | None = None, **fields):
        table = self.cache.upsert(table_record(name, super_class, **fields))
        for record in columns or []:
            self.cache.upsert(record)
        return table

    def element(self, table: str, name: str, type: str | None = "string", **fields):
        return self.cache.upsert(element_record(table, name, type, **fields))

    def field_type(self, name: str, label: str):
        return self.cache.upsert(FieldTypeRecord(name=name, sys_id=f"{name}_type", label=label))

    def task_and_problem(self):
        """``task`` root with base columns, and ``problem`` extending it."""
        task = self.table("task", columns=base_record_elements("task") + [
            element_record("task", "number", label="Number"),
            element_record("task", "short_description", label="Short description"),
            element_record("task", "priority", "integer", label="Priority"),
        ])
        problem = self.table("problem", super_class="task", columns=[
            element_record("problem", "number", label="Number"),
            element_record("problem", "short_description", label="Problem statement"),
            element_record("problem", "known_error", "boolean", label="Known error"),
        ])
        return task, problem


class FakeSchemaSource:
    """In-memory schema source that records every lookup."""

    def __init__(self):
        self.tables: dict[str, TableRecord] = {}
        self.elements: dict[str, list[ElementRecord | IncompleteRecord]] = {}
        self.field_types: dict[str, FieldTypeRecord] = {}
        self.packages: dict[str, PackageRecord] = {}
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def _call(self, method: str, arg: str) -> None:
        with self._lock:
            self.calls.append((method, arg))

    def calls_to(self, method: str) -> list[str]:
        return [arg for name, arg in self.calls if name == method]

    def add_table(self, name: str, super_class: str | None = None, columns: list | None = None, **fields) -> TableRecord:
        record = table_record(name, super_class, **fields)
        self.tables[name] = record
        self.elements[name] = list(columns or [])
        return record

    def add_field_type(self, name: str, label: str) -> FieldTypeRecord:
        record = FieldTypeRecord(name=name, sys_id=f"{name}_type", label=label)
        self.field_types[name] = record
        return record

    def add_package(self, name: str, kind: PackageKind = PackageKind.APPLICATION, **fields) -> PackageRecord:
        if kind.is_application:
            fields.setdefault("scope", name)
        record = PackageRecord(name=name, sys_id=f"{name}_id", package_kind=kind, **fields)
        self.packages[record.sys_id] = record
        return record

    def get_table_by_name(self, name: str) -> TableRecord | None:
        self._call("get_table_by_name", name)
        return self.tables.get(name)

    def get_table_by_id(self, sys_id: str) -> TableRecord | None:
        self._call("get_table_by_id", sys_id)
        return next((t for t in self.tables.values() if t.sys_id == sys_id), None)

    def get_elements_by_table_name(self, name: str, on_incomplete=None) -> list[ElementRecord]:
        self._call("get_elements_by_table_name", name)
        records = []
        for item in self.elements.get(name, []):
            if isinstance(item, IncompleteRecord):
                if on_incomplete is None:
                    raise item
                on_incomplete(item)
            else:
                records.append(item)
        return records

    def get_field_type_by_name(self, name: str) -> FieldTypeRecord | None:
        self._call("get_field_type_by_name", name)
        return self.field_types.get(name)

    def get_package_by_identifier(self, identifier: str) -> PackageRecord | None:
        self._call("get_package_by_identifier", identifier)
        return self.packages.get(identifier)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return EntityCache(SOURCE, clock=clock)


@pytest.fixture
def schema(cache):
    return SchemaBuilder(cache)


@pytest.fixture
def fake_source():
    return FakeSchemaSource()
