"""
Tests for the InheritanceResolver module.
"""

import pytest

from conftest import base_record_elements, element_record
from sn_typings.core.schema.classifier import RenderMode
from sn_typings.core.schema.inheritance import (
    BASE_RECORD_ELEMENTS,
    ElementComparer,
    InheritanceResolver,
    extends_base_record,
)


def names(elements):
    return [e.name for e in elements]


class TestBaseRecord:
    """Tests for implicit base record detection on root tables."""

    @pytest.fixture
    def resolver(self):
        return InheritanceResolver()

    def test_root_with_identity_columns(self, schema, resolver):
        """Test that base record columns are dropped entirely."""
        incident = schema.table("incident", columns=base_record_elements("incident") + [
            element_record("incident", "number"),
            element_record("incident", "state", "integer"),
        ])

        partition = resolver.partition_table(incident)

        assert partition.extends_base_record is True
        assert names(partition.declared) == ["number", "state"]
        assert partition.overridden == []
        assert partition.inherited_unchanged == []

    def test_root_without_identity_columns(self, schema, resolver):
        table = schema.table("u_lookup", columns=[
            element_record("u_lookup", "sys_id", "GUID"),
            element_record("u_lookup", "u_code"),
        ])

        partition = resolver.partition_table(table)

        assert partition.extends_base_record is False
        assert names(partition.declared) == ["sys_id", "u_code"]

    def test_identity_detection(self, schema):
        table = schema.table("incident", columns=base_record_elements("incident"))

        assert extends_base_record(table.elements) is True
        assert extends_base_record([e for e in table.elements if e.name != "sys_created_on"]) is False
        assert len(BASE_RECORD_ELEMENTS) == 6

    def test_empty_root(self, schema, resolver):
        table = schema.table("u_empty")

        partition = resolver.partition_table(table)

        assert partition.is_empty is True
        assert partition.extends_base_record is False

    def test_derived_table_keeps_base_columns(self, schema, resolver):
        """Test that a table with a superclass never re-checks base columns."""
        schema.table("task", columns=base_record_elements("task"))
        problem = schema.table("problem", super_class="task", columns=base_record_elements("problem"))

        partition = resolver.partition_table(problem)

        assert partition.extends_base_record is False
        assert names(partition.inherited_unchanged) == sorted(BASE_RECORD_ELEMENTS)


class TestPartition:
    """Tests for diffing against the superclass."""

    @pytest.fixture
    def resolver(self):
        return InheritanceResolver()

    def test_problem_extends_task(self, schema, resolver):
        task, problem = schema.task_and_problem()

        partition = resolver.partition(problem.elements, problem.super_class_chain())

        assert names(partition.declared) == ["known_error"]
        assert names(partition.overridden) == ["short_description"]
        assert names(partition.inherited_unchanged) == ["number"]
        assert names(partition.rendered) == ["known_error", "short_description"]
        assert partition.is_override(problem.get_element("short_description")) is True
        assert partition.is_override(problem.get_element("known_error")) is False

    def test_wrapper_change_with_inherited_active(self, schema, resolver):
        """Test a script column re-declared as journal next to an unchanged column."""
        schema.table("task", columns=[
            element_record("task", "short_description", "script", label="Short description"),
            element_record("task", "active", "boolean", label="Active"),
        ])
        problem = schema.table("problem", super_class="task", columns=[
            element_record("problem", "short_description", "journal", label="Short description"),
            element_record("problem", "active", "boolean", label="Active"),
        ])

        partition = resolver.partition_table(problem)

        assert partition.declared == []
        assert names(partition.overridden) == ["short_description"]
        assert names(partition.inherited_unchanged) == ["active"]

    def test_only_direct_parent_compared(self, schema, resolver):
        """Test that a column only on the grandparent counts as declared."""
        schema.task_and_problem()
        schema.table("u_problem_ext", super_class="problem", columns=[
            element_record("u_problem_ext", "priority", "integer", label="Priority"),
        ])
        table = schema.cache.get_table("u_problem_ext")

        partition = resolver.partition_table(table)

        assert [t.name for t in table.super_class_chain()] == ["problem", "task"]
        assert names(partition.declared) == ["priority"]

    def test_type_change_is_override(self, schema, resolver):
        schema.table("task", columns=[element_record("task", "priority", "integer", label="Priority")])
        child = schema.table("u_child", super_class="task", columns=[
            element_record("u_child", "priority", "string", label="Priority"),
        ])

        assert names(resolver.partition_table(child).overridden) == ["priority"]

    def test_explicit_type_name_change_is_override(self, schema, resolver):
        """Test that explicit types differ by name even within one category."""
        schema.table("task", columns=[element_record("task", "amount", "decimal", label="Amount")])
        child = schema.table("u_child", super_class="task", columns=[
            element_record("u_child", "amount", "float", label="Amount"),
        ])

        assert names(resolver.partition_table(child).overridden) == ["amount"]

    def test_flag_change_is_override(self, schema, resolver):
        schema.table("task", columns=[element_record("task", "number", label="Number")])
        child = schema.table("u_child", super_class="task", columns=[
            element_record("u_child", "number", label="Number", is_mandatory=True),
        ])

        assert names(resolver.partition_table(child).overridden) == ["number"]

    def test_reference_change_is_override(self, schema, resolver):
        schema.table("task", columns=[
            element_record("task", "assigned_to", "reference", label="Assigned to", reference="sys_user"),
        ])
        child = schema.table("u_child", super_class="task", columns=[
            element_record("u_child", "assigned_to", "reference", label="Assigned to", reference="u_agent"),
        ])

        assert names(resolver.partition_table(child).overridden) == ["assigned_to"]


class TestElementComparer:
    """Tests for the configurable equality predicate."""

    @pytest.fixture
    def elements(self, schema):
        schema.table("task", columns=[
            element_record("task", "description", label="Description", comments="Original", max_length=4000),
        ])
        schema.table("u_child", super_class="task", columns=[
            element_record("u_child", "description", label="Description", comments="Changed", max_length=8000),
        ])
        cache = schema.cache
        return cache.get_element("u_child", "description"), cache.get_element("task", "description")

    def test_comments_ignored_by_default(self, elements):
        own, inherited = elements

        assert ElementComparer().equals(own, inherited) is True

    def test_compare_comments(self, elements):
        own, inherited = elements

        assert ElementComparer(compare_comments=True).equals(own, inherited) is False

    def test_explicit_flag_compared(self, schema):
        """Test that types sharing a wrapper still differ when one is explicit."""
        schema.table("task", columns=[element_record("task", "notes", "journal", label="Notes")])
        schema.table("u_child", super_class="task", columns=[
            element_record("u_child", "notes", "journal_input", label="Notes"),
        ])
        own = schema.cache.get_element("u_child", "notes")
        inherited = schema.cache.get_element("task", "notes")

        assert ElementComparer(RenderMode.GLOBAL).equals(own, inherited) is False
        assert ElementComparer(RenderMode.SCOPED).equals(own, inherited) is False
        assert ElementComparer(RenderMode.SCOPED)(own, own) is True
