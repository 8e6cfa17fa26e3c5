"""
Schema Loader

Pulls table definitions from a remote schema source into the entity cache:
the table row, its columns, the columns' glide types, the owning packages
and the full superclass chain.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Protocol

from sn_typings.core.cancellation import CancellationToken, NONE
from sn_typings.core.logger import GenerationLogger
from sn_typings.core.schema.cache import EntityCache
from sn_typings.core.schema.models import (
    ElementRecord,
    EntityKind,
    FieldTypeRecord,
    IncompleteRecord,
    PackageRecord,
    Table,
    TableRecord,
    normalize_name,
)


class SchemaSource(Protocol):
    """Anything that returns schema records by name or identifier."""

    def get_table_by_name(self, name: str) -> TableRecord | None: ...

    def get_table_by_id(self, sys_id: str) -> TableRecord | None: ...

    def get_elements_by_table_name(self, name: str, on_incomplete=None) -> list[ElementRecord]: ...

    def get_field_type_by_name(self, name: str) -> FieldTypeRecord | None: ...

    def get_package_by_identifier(self, identifier: str) -> PackageRecord | None: ...


class TableLoadError(Exception):
    """Raised when a table, or a table its definition depends on, cannot be loaded."""

    def __init__(self, table: str, message: str):
        super().__init__(f"{table}: {message}")
        self.table = table
        self.message = message


@dataclass
class LoadResult:
    """Outcome of a load pass."""

    loaded: list[Table] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped_records: int = 0
    related: list[Table] = field(default_factory=list)

    @property
    def tables(self) -> list[Table]:
        """Requested, ancestor and referenced tables, without duplicates."""
        seen: set[int] = set()
        result: list[Table] = []
        for table in self.loaded + self.related:
            table = table.canonical()  # type: ignore[assignment]
            if id(table) not in seen and not table.is_stub:
                seen.add(id(table))
                result.append(table)
        return result

    @property
    def success(self) -> bool:
        return not self.failed


class SchemaLoader:
    """
    Cache-and-resolve driver.

    Tables already cached (and not stubs) are reused unless ``refresh`` is
    set; their superclass chain is still walked so a missing ancestor fails
    the table. Glide types are fetched concurrently; everything else is
    fetched in order so the cache fills deterministically.

    Example:
        >>> loader = SchemaLoader(source, cache, logger)
        >>> result = loader.load_tables(["incident", "problem"])
        >>> [t.name for t in result.tables]
        ['incident', 'task', 'problem']
    """

    def __init__(
        self,
        source: SchemaSource,
        cache: EntityCache,
        logger: GenerationLogger | None = None,
        max_workers: int = 4,
        include_referenced_tables: bool = False,
        refresh: bool = False,
    ):
        """
        Initialize loader.

        Args:
            source: Remote schema source
            cache: Entity cache to fill
            logger: Run logger for diagnostics
            max_workers: Concurrent glide type fetches
            include_referenced_tables: Also load tables that columns reference
            refresh: Re-fetch tables that are already cached
        """
        self.source = source
        self.cache = cache
        self.logger = logger
        self.max_workers = max(1, max_workers)
        self.include_referenced_tables = include_referenced_tables
        self.refresh = refresh

        self._skipped = 0
        self._fetched: set[str] = set()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def load_tables(self, names: list[str], cancellation: CancellationToken = NONE) -> LoadResult:
        """
        Load the named tables and everything needed to render them.

        Args:
            names: Table names
            cancellation: Token checked before every table and remote request

        Returns:
            LoadResult; tables that failed are listed in ``failed``

        Raises:
            OperationCancelled: If cancellation was requested
        """
        result = LoadResult()
        self._skipped = 0
        queue = list(dict.fromkeys(n.strip() for n in names if n and n.strip()))
        requested = {normalize_name(n) for n in queue}
        queued = set(requested)

        while queue:
            name = queue.pop(0)
            cancellation.raise_if_cancelled()
            try:
                table = self.load_table(name, cancellation)
            except TableLoadError as e:
                result.failed[name] = e.message
                if self.logger:
                    self.logger.log_table_failed(name, e.message)
                continue

            if normalize_name(name) in requested:
                result.loaded.append(table)
            else:
                result.related.append(table)
            result.related.extend(table.super_class_chain())

            if self.include_referenced_tables:
                for element in table.elements:
                    ref = element.reference_name
                    if ref and normalize_name(ref) not in queued:
                        queued.add(normalize_name(ref))
                        queue.append(ref)

        result.skipped_records = self._skipped
        return result

    def load_table(self, name: str, cancellation: CancellationToken = NONE) -> Table:
        """
        Load one table with its columns, types, packages and ancestors.

        Raises:
            TableLoadError: If the table or its superclass chain cannot be loaded
        """
        cancellation.raise_if_cancelled()
        cached = self.cache.get_table(name)
        if cached is not None and not cached.is_stub and not self._needs_fetch(cached):
            self._load_super_classes(cached, cancellation)
            return cached

        try:
            record = self.source.get_table_by_name(name)
        except IncompleteRecord as e:
            self._skip(name, str(e), record=e.record)
            raise TableLoadError(name, str(e)) from e
        if record is None:
            raise TableLoadError(name, "table not found")

        table: Table = self.cache.upsert(record)  # type: ignore[assignment]
        self._fetched.add(normalize_name(table.name))
        self._load_definition(table, cancellation)
        self._load_super_classes(table, cancellation)
        return table

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _needs_fetch(self, table: Table) -> bool:
        return self.refresh and normalize_name(table.name) not in self._fetched

    def _load_definition(self, table: Table, cancellation: CancellationToken) -> None:
        self._load_packages([table._package.identifier(), table._scope.identifier()], cancellation)
        self._load_elements(table, cancellation)

    def _load_super_classes(self, table: Table, cancellation: CancellationToken) -> None:
        """Fetch each ancestor by sys_id until a cached or root table is reached."""
        visited = {id(table)}
        current = table
        while True:
            cancellation.raise_if_cancelled()
            parent_id = current._super_class.identifier()
            if not parent_id:
                return
            parent = current.super_class
            if parent is None:
                raise TableLoadError(table.name, f"superclass '{parent_id}' is not linked")
            if id(parent) in visited:
                raise TableLoadError(table.name, f"superclass cycle at '{parent.name}'")
            visited.add(id(parent))

            if parent.is_stub or self._needs_fetch(parent):
                try:
                    record = self.source.get_table_by_id(parent.sys_id or parent_id)
                except IncompleteRecord as e:
                    self._skip(table.name, str(e), record=e.record)
                    raise TableLoadError(table.name, f"superclass '{parent_id}' is incomplete") from e
                if record is None:
                    raise TableLoadError(table.name, f"superclass '{parent_id}' not found")
                parent = self.cache.upsert(record)  # type: ignore[assignment]
                self._fetched.add(normalize_name(parent.name))
                self._load_definition(parent, cancellation)
            current = parent

    def _load_elements(self, table: Table, cancellation: CancellationToken) -> None:
        cancellation.raise_if_cancelled()

        def on_incomplete(error: IncompleteRecord) -> None:
            self._skip(table.name, str(error), element=error.record.get("name"), record=error.record)

        records = self.source.get_elements_by_table_name(table.name, on_incomplete=on_incomplete)
        package_ids: list[str | None] = []
        for record in records:
            cancellation.raise_if_cancelled()
            try:
                self.cache.upsert(record)
            except IncompleteRecord as e:
                self._skip(table.name, str(e), element=record.name, record=e.record)
                continue
            package_ids.append(record.package)

        self._load_field_types(table, cancellation)
        self._load_packages(package_ids, cancellation)
        if self.logger:
            self.logger.log_table_loaded(table.name, len(table.elements))

    def _load_field_types(self, table: Table, cancellation: CancellationToken) -> None:
        """Fetch the glide types of a table's columns concurrently."""
        pending: dict[str, str] = {}
        for element in table.elements:
            type_name = element.type_name
            if not type_name or normalize_name(type_name) in pending:
                continue
            field_type = element.type
            if field_type is None or field_type.is_stub:
                pending[normalize_name(type_name)] = type_name
        if not pending:
            return

        def fetch(type_name: str) -> tuple[str, str | None]:
            cancellation.raise_if_cancelled()
            try:
                record = self.source.get_field_type_by_name(type_name)
            except IncompleteRecord as e:
                return type_name, str(e)
            if record is None:
                return type_name, "glide type not found"
            self.cache.upsert(record)
            return type_name, None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = list(executor.map(fetch, pending.values()))

        for type_name, problem in outcomes:
            if problem:
                self._skip(table.name, f"type '{type_name}': {problem}")

    def _load_packages(self, identifiers: list[str | None], cancellation: CancellationToken) -> None:
        for identifier in dict.fromkeys(i for i in identifiers if i):
            cancellation.raise_if_cancelled()
            package = self.cache.get_by_id(EntityKind.PACKAGE, identifier) or \
                self.cache.get(EntityKind.PACKAGE, identifier)
            if package is not None and not package.is_stub:
                continue
            try:
                record = self.source.get_package_by_identifier(identifier)
            except IncompleteRecord as e:
                self._skip("", str(e), record=e.record)
                continue
            if record is None:
                if self.logger:
                    self.logger.log_warning(f"Package '{identifier}' not found")
                continue
            self.cache.upsert(record)

    def _skip(self, table: str, message: str, element: str | None = None, record: dict | None = None) -> None:
        self._skipped += 1
        if self.logger:
            self.logger.log_skipped(table, message, element=element, record=record)
