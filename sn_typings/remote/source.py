"""
Remote Schema Source

Reads schema rows (tables, dictionary entries, glide types, packages) through
the Table API and converts them to cache records.

Rows are requested with ``sysparm_display_value=all``, so every field arrives
as a ``{"value": ..., "display_value": ...}`` pair; only ``value`` is used for
resolution.
"""

from typing import Any, Callable

from sn_typings.core.logger import GenerationLogger
from sn_typings.core.schema.models import (
    ElementRecord,
    FieldTypeRecord,
    IncompleteRecord,
    PackageKind,
    PackageRecord,
    RecordRef,
    TableRecord,
)
from sn_typings.remote.client import TableApiClient


TABLE_NAME_SYS_DB_OBJECT = "sys_db_object"
TABLE_NAME_SYS_DICTIONARY = "sys_dictionary"
TABLE_NAME_SYS_GLIDE_OBJECT = "sys_glide_object"
TABLE_NAME_SYS_PLUGINS = "sys_plugins"
TABLE_NAME_SYS_STORE_APP = "sys_store_app"
TABLE_NAME_SYS_APP = "sys_app"
TABLE_NAME_SYS_SCOPE = "sys_scope"
TABLE_NAME_SYS_PACKAGE = "sys_package"

# Tables searched for a package identifier, in priority order
PACKAGE_TABLES: list[tuple[str, PackageKind]] = [
    (TABLE_NAME_SYS_PLUGINS, PackageKind.PLUGIN),
    (TABLE_NAME_SYS_STORE_APP, PackageKind.STORE_APP),
    (TABLE_NAME_SYS_APP, PackageKind.CUSTOM_APP),
    (TABLE_NAME_SYS_SCOPE, PackageKind.APPLICATION),
    (TABLE_NAME_SYS_PACKAGE, PackageKind.PACKAGE),
]

# Dictionary rows of this internal type describe related lists, not columns
COLLECTION_TYPE = "collection"

# Encoded query term separator; never part of a name or identifier
QUERY_SEPARATOR = "^"


# ---------------------------------------------------------------------------
# Field value helpers
# ---------------------------------------------------------------------------


def get_ref(row: dict[str, Any], key: str) -> RecordRef | None:
    """Read a field as a value/display-value pair; empty values yield None."""
    raw = row.get(key)
    if isinstance(raw, dict):
        value = raw.get("value")
        if value is None or str(value).strip() == "":
            return None
        display = raw.get("display_value")
        display = str(display) if display not in (None, "") else str(value)
        return RecordRef(str(value), display)
    if raw is None or str(raw).strip() == "":
        return None
    return RecordRef(str(raw), str(raw))


def get_value(row: dict[str, Any], key: str) -> str | None:
    ref = get_ref(row, key)
    return ref.value if ref else None


def get_display(row: dict[str, Any], key: str) -> str | None:
    ref = get_ref(row, key)
    return ref.display_value if ref else None


def get_bool(row: dict[str, Any], key: str, default: bool = False) -> bool:
    value = get_value(row, key)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def get_int(row: dict[str, Any], key: str) -> int | None:
    value = get_value(row, key)
    if value is None:
        return None
    try:
        return int(value.replace(",", ""))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------


def parse_table(row: dict[str, Any]) -> TableRecord:
    """Convert a sys_db_object row; raises IncompleteRecord without name or sys_id."""
    record = TableRecord(
        name=get_value(row, "name") or "",
        sys_id=get_value(row, "sys_id") or "",
        label=get_display(row, "label") or "",
        is_extendable=get_bool(row, "is_extendable"),
        number_prefix=get_display(row, "number_ref"),
        super_class=get_value(row, "super_class"),
        package=get_value(row, "sys_package"),
        scope=get_value(row, "sys_scope"),
    )
    record.validate()
    return record


def parse_element(row: dict[str, Any]) -> ElementRecord:
    """Convert a sys_dictionary row."""
    record = ElementRecord(
        name=get_value(row, "element") or "",
        table_name=get_value(row, "name") or "",
        sys_id=get_value(row, "sys_id") or "",
        label=get_display(row, "column_label") or "",
        type=get_value(row, "internal_type"),
        reference=get_value(row, "reference"),
        package=get_value(row, "sys_package"),
        is_active=get_bool(row, "active", default=True),
        is_array=get_bool(row, "array"),
        is_display=get_bool(row, "display"),
        is_mandatory=get_bool(row, "mandatory"),
        is_primary=get_bool(row, "primary"),
        is_read_only=get_bool(row, "read_only"),
        is_calculated=get_bool(row, "virtual"),
        is_unique=get_bool(row, "unique"),
        max_length=get_int(row, "max_length"),
        size_class=get_int(row, "sizeclass"),
        default_value=get_value(row, "default_value"),
        comments=get_value(row, "comments"),
    )
    record.validate()
    return record


def parse_field_type(row: dict[str, Any]) -> FieldTypeRecord:
    """Convert a sys_glide_object row."""
    record = FieldTypeRecord(
        name=get_value(row, "name") or "",
        sys_id=get_value(row, "sys_id") or "",
        label=get_display(row, "label") or "",
        scalar_type=get_value(row, "scalar_type"),
        scalar_length=get_int(row, "scalar_length"),
        class_name=get_value(row, "class_name"),
        use_original_value=get_bool(row, "use_original_value"),
        is_visible=get_bool(row, "visible"),
        package=get_value(row, "sys_package"),
    )
    record.validate()
    return record


def parse_package(row: dict[str, Any], kind: PackageKind) -> PackageRecord:
    """Convert a package, plugin or application row."""
    record = PackageRecord(
        name=get_value(row, "name") or get_value(row, "id") or "",
        sys_id=get_value(row, "sys_id") or "",
        package_kind=kind,
        short_description=get_display(row, "short_description"),
        scope=get_value(row, "scope") if kind.is_application else None,
        version=get_value(row, "version"),
        package_id=get_value(row, "source") or get_value(row, "id"),
        is_active=get_bool(row, "active") if kind is PackageKind.PLUGIN else None,
    )
    record.validate()
    return record


class RemoteSchemaSource:
    """
    Schema records read from a remote instance.

    Lookups by name or id return ``None`` when nothing matches. When more
    rows than expected come back, the first is used and the excess logged.

    Example:
        >>> source = RemoteSchemaSource(client)
        >>> record = source.get_table_by_name("incident")
        >>> record.super_class
        '2a8ae7b0c0a8010e003c0f7b6b8b7e1c'
    """

    def __init__(self, client: TableApiClient, logger: GenerationLogger | None = None):
        self.client = client
        self.logger = logger

    @property
    def fqdn(self) -> str:
        return self.client.fqdn

    def _warn(self, message: str) -> None:
        if self.logger:
            self.logger.log_warning(message)

    def _queryable(self, table: str, value: str) -> bool:
        if QUERY_SEPARATOR in value:
            self._warn(f"Not querying {table} for '{value}': '{QUERY_SEPARATOR}' is not allowed in a name")
            return False
        return True

    def _single(self, rows: list[dict[str, Any]], table: str, query: str) -> dict[str, Any] | None:
        if not rows:
            return None
        if len(rows) > 1:
            self._warn(f"{len(rows)} results from {table} for '{query}', {len(rows) - 1} ignored")
        first = rows[0]
        if not isinstance(first, dict):
            raise IncompleteRecord(table, ["sys_id"], {})
        return first

    def _query_one(self, table: str, query: str) -> dict[str, Any] | None:
        return self._single(self.client.query(table, query), table, query)

    def get_table_by_name(self, name: str) -> TableRecord | None:
        if not self._queryable(TABLE_NAME_SYS_DB_OBJECT, name):
            return None
        row = self._query_one(TABLE_NAME_SYS_DB_OBJECT, f"name={name}")
        return parse_table(row) if row else None

    def get_table_by_id(self, sys_id: str) -> TableRecord | None:
        row = self.client.get_record(TABLE_NAME_SYS_DB_OBJECT, sys_id)
        return parse_table(row) if row else None

    def get_elements_by_table_name(
        self,
        name: str,
        on_incomplete: Callable[[IncompleteRecord], None] | None = None,
    ) -> list[ElementRecord]:
        """
        Dictionary entries (columns) declared on a table.

        Rows lacking identity fields are passed to ``on_incomplete`` and
        skipped; without a callback they raise.
        """
        records: list[ElementRecord] = []
        if not self._queryable(TABLE_NAME_SYS_DICTIONARY, name):
            return records
        for row in self.client.query(TABLE_NAME_SYS_DICTIONARY, f"name={name}"):
            if get_value(row, "internal_type") == COLLECTION_TYPE:
                continue
            try:
                records.append(parse_element(row))
            except IncompleteRecord as e:
                if on_incomplete is None:
                    raise
                on_incomplete(e)
        return records

    def get_field_type_by_name(self, name: str) -> FieldTypeRecord | None:
        if not self._queryable(TABLE_NAME_SYS_GLIDE_OBJECT, name):
            return None
        row = self._query_one(TABLE_NAME_SYS_GLIDE_OBJECT, f"name={name}")
        return parse_field_type(row) if row else None

    def get_package_by_identifier(self, identifier: str) -> PackageRecord | None:
        """
        Look up a package by sys_id, source id or name.

        Plugin, store app, custom app, scope and bare package tables are
        tried in that order; the first match wins.
        """
        if not self._queryable(TABLE_NAME_SYS_PACKAGE, identifier):
            return None
        query = f"sys_id={identifier}^ORsource={identifier}^ORname={identifier}"
        for table, kind in PACKAGE_TABLES:
            row = self._query_one(table, query)
            if row:
                return parse_package(row, kind)
        return None
