"""
Tests for the SchemaLoader module.
"""

import pytest

from conftest import SOURCE, base_record_elements, element_record
from sn_typings.core.cancellation import CancellationToken, OperationCancelled
from sn_typings.core.logger import GenerationLogger
from sn_typings.core.schema.cache import EntityCache
from sn_typings.core.schema.loader import SchemaLoader, TableLoadError
from sn_typings.core.schema.models import IncompleteRecord


@pytest.fixture
def task_source(fake_source):
    """Source holding task, problem and the types and packages they use."""
    fake_source.add_package("com.snc.incident", short_description="Incident Management")
    fake_source.add_table("task", package="com.snc.incident_id", columns=base_record_elements("task") + [
        element_record("task", "number", label="Number"),
        element_record("task", "priority", "integer", label="Priority"),
        element_record("task", "assigned_to", "reference", label="Assigned to", reference="sys_user"),
    ])
    fake_source.add_table("problem", super_class="task", columns=[
        element_record("problem", "number", label="Number"),
        element_record("problem", "known_error", "boolean", label="Known error"),
    ])
    fake_source.add_table("sys_user", columns=[element_record("sys_user", "name", label="Name")])
    fake_source.add_field_type("integer", "Integer")
    fake_source.add_field_type("boolean", "True/False")
    fake_source.add_field_type("string", "String")
    fake_source.add_field_type("GUID", "Sys ID (GUID)")
    fake_source.add_field_type("glide_date_time", "Date/Time")
    fake_source.add_field_type("reference", "Reference")
    return fake_source


@pytest.fixture
def logger():
    return GenerationLogger(console_output=False)


class TestSchemaLoader:
    """Tests for SchemaLoader."""

    def test_loads_superclass_chain(self, task_source, cache, logger):
        loader = SchemaLoader(task_source, cache, logger)

        result = loader.load_tables(["problem"])

        assert result.success is True
        assert [t.name for t in result.loaded] == ["problem"]
        assert [t.name for t in result.tables] == ["problem", "task"]
        problem = cache.get_table("problem")
        assert problem.super_class is cache.get_table("task")
        assert problem.super_class.is_stub is False
        assert [e.name for e in problem.super_class.elements][:2] == ["assigned_to", "number"]
        assert task_source.calls_to("get_table_by_id") == ["task_id"]

    def test_field_types_fetched_once(self, task_source, cache):
        SchemaLoader(task_source, cache, max_workers=4).load_tables(["problem", "task"])

        fetched = task_source.calls_to("get_field_type_by_name")
        assert len(fetched) == len(set(fetched))
        assert cache.get_element("task", "priority").type.label == "Integer"

    def test_packages_loaded(self, task_source, cache):
        SchemaLoader(task_source, cache).load_tables(["task"])

        package = cache.get_table("task").package
        assert package.is_stub is False
        assert package.short_description == "Incident Management"

    def test_missing_type_is_skipped(self, task_source, cache, logger):
        """Test that a missing glide type is a diagnostic, not a failure."""
        del task_source.field_types["boolean"]
        logger.start_run("dev1234.service-now.com")

        result = SchemaLoader(task_source, cache, logger).load_tables(["problem"])

        assert result.success is True
        assert result.skipped_records >= 1
        assert any("boolean" in e.message for e in logger.get_failures())

    def test_missing_table(self, task_source, cache, logger):
        logger.start_run("dev1234.service-now.com")

        result = SchemaLoader(task_source, cache, logger).load_tables(["u_missing", "task"])

        assert result.failed == {"u_missing": "table not found"}
        assert [t.name for t in result.loaded] == ["task"]
        assert logger.summary.failed_tables == ["u_missing"]

    def test_missing_superclass_fails_owner_only(self, task_source, cache):
        """Test that an unresolvable superclass fails only the owning table."""
        task_source.add_table("u_orphan", super_class="u_gone", columns=[element_record("u_orphan", "u_code")])

        result = SchemaLoader(task_source, cache).load_tables(["u_orphan", "task"])

        assert list(result.failed) == ["u_orphan"]
        assert "not found" in result.failed["u_orphan"]
        assert [t.name for t in result.loaded] == ["task"]

    def test_cached_table_with_missing_ancestor_fails(self, task_source, cache):
        """Test that a table cached by a failed pass still fails on its own request."""
        task_source.add_table("u_mid", super_class="u_gone", columns=[element_record("u_mid", "u_code")])
        task_source.add_table("u_child", super_class="u_mid", columns=[element_record("u_child", "u_extra")])

        result = SchemaLoader(task_source, cache).load_tables(["u_child", "u_mid"])

        assert set(result.failed) == {"u_child", "u_mid"}
        assert "u_gone_id" in result.failed["u_mid"]
        assert result.tables == []
        assert task_source.calls_to("get_table_by_name") == ["u_child"]

    def test_restored_table_with_missing_ancestor_fails(self, task_source, cache, clock, tmp_path):
        """Test that a snapshot saved after a partial failure is not trusted blindly."""
        task_source.add_table("u_mid", super_class="u_gone", columns=[element_record("u_mid", "u_code")])
        task_source.add_table("u_child", super_class="u_mid", columns=[element_record("u_child", "u_extra")])
        SchemaLoader(task_source, cache).load_tables(["u_child"])
        path = cache.save(tmp_path / "snapshot.json")

        restored = EntityCache(SOURCE, clock=clock)
        assert restored.load(path) is True
        assert restored.get_table("u_mid").is_stub is False

        result = SchemaLoader(task_source, restored).load_tables(["u_mid", "task"])

        assert list(result.failed) == ["u_mid"]
        assert [t.name for t in result.loaded] == ["task"]
        assert task_source.calls_to("get_table_by_id") == ["u_mid_id", "u_gone_id", "u_gone_id"]

    def test_incomplete_element_skipped(self, task_source, cache, logger):
        task_source.elements["problem"].append(
            IncompleteRecord("element", ["sys_id"], {"name": "u_broken", "table_name": "problem"})
        )
        logger.start_run("dev1234.service-now.com")

        result = SchemaLoader(task_source, cache, logger).load_tables(["problem"])

        assert result.success is True
        assert result.skipped_records == 1
        assert cache.get_element("problem", "u_broken") is None
        assert logger.get_failures()[0].element == "u_broken"

    def test_cached_tables_reused(self, task_source, cache):
        SchemaLoader(task_source, cache).load_tables(["problem"])
        SchemaLoader(task_source, cache).load_tables(["problem"])

        assert task_source.calls_to("get_table_by_name") == ["problem"]

    def test_refresh_refetches(self, task_source, cache):
        SchemaLoader(task_source, cache).load_tables(["problem"])
        SchemaLoader(task_source, cache, refresh=True).load_tables(["problem"])

        assert task_source.calls_to("get_table_by_name") == ["problem", "problem"]
        assert task_source.calls_to("get_table_by_id") == ["task_id", "task_id"]

    def test_referenced_tables(self, task_source, cache):
        result = SchemaLoader(task_source, cache, include_referenced_tables=True).load_tables(["task"])

        assert [t.name for t in result.loaded] == ["task"]
        assert [t.name for t in result.tables] == ["task", "sys_user"]
        assert cache.get_element("task", "assigned_to").reference is cache.get_table("sys_user")

    def test_referenced_tables_off_by_default(self, task_source, cache):
        result = SchemaLoader(task_source, cache).load_tables(["task"])

        assert [t.name for t in result.tables] == ["task"]
        assert cache.get_table("sys_user").is_stub is True

    def test_load_table_raises(self, task_source, cache):
        with pytest.raises(TableLoadError) as exc_info:
            SchemaLoader(task_source, cache).load_table("u_missing")

        assert exc_info.value.table == "u_missing"

    def test_cancellation(self, task_source, cache):
        """Test that a cancelled token stops the pass before any fetch."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelled):
            SchemaLoader(task_source, cache).load_tables(["problem"], token)

        assert task_source.calls == []

    def test_cancellation_mid_pass(self, task_source, cache):
        token = CancellationToken()
        original = task_source.get_elements_by_table_name

        def cancel_after_first(name, on_incomplete=None):
            token.cancel()
            return original(name, on_incomplete)

        task_source.get_elements_by_table_name = cancel_after_first

        with pytest.raises(OperationCancelled):
            SchemaLoader(task_source, cache).load_tables(["problem", "task"], token)

        assert task_source.calls_to("get_table_by_id") == []
