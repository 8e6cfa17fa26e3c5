"""
Entity Cache

Holds resolved and partially resolved schema entities, keyed by natural key
(name + source instance, case-insensitive). Records fetched from the remote
source are upserted; references to entities that were not fetched yet are
linked to stubs which are filled in place once the full record arrives.

The cache can be snapshotted to a JSON file and restored later.
"""

import json
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from sn_typings.core.schema.models import (
    Element,
    ElementRecord,
    Entity,
    EntityKind,
    FieldType,
    FieldTypeRecord,
    Package,
    PackageRecord,
    RECORD_TYPES,
    SchemaRecord,
    Source,
    Table,
    TableRecord,
    normalize_name,
)


ENTITY_TYPES: dict[EntityKind, type[Entity]] = {
    EntityKind.TABLE: Table,
    EntityKind.FIELD_TYPE: FieldType,
    EntityKind.PACKAGE: Package,
}

# Order in which snapshot records are replayed
SNAPSHOT_ORDER = (
    EntityKind.PACKAGE,
    EntityKind.FIELD_TYPE,
    EntityKind.TABLE,
    EntityKind.ELEMENT,
)


@dataclass
class CacheMetadata:
    """Metadata about a cache snapshot."""

    source: str
    created_at: str
    expires_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheMetadata":
        return cls(
            source=data["source"],
            created_at=data["created_at"],
            expires_at=data.get("expires_at"),
        )


class EntityCache:
    """
    Cache of schema entities with upsert/dedup semantics.

    Upserts are serialized per natural key. Index lookups and registration
    happen under a single inner lock that is never held while waiting for a
    key lock, and field updates happen under the entity's own lock.

    Example:
        >>> cache = EntityCache("dev1234.service-now.com")
        >>> element = cache.upsert(ElementRecord(
        ...     name="state", table_name="task", sys_id="e1", type="integer"))
        >>> element.type.is_stub
        True
        >>> cache.upsert(FieldTypeRecord(name="integer", sys_id="t1", label="Integer"))
        >>> element.type.is_stub
        False
    """

    def __init__(
        self,
        source: Source | str,
        clock: Callable[[], datetime] = datetime.now,
        ttl_hours: int | None = 24,
    ):
        """
        Initialize cache.

        Args:
            source: Default source instance for lookups and upserts
            clock: Timestamp provider for ``last_updated``
            ttl_hours: Snapshot TTL in hours (None = no expiration)
        """
        self.source = source if isinstance(source, Source) else Source(source)
        self.ttl_hours = ttl_hours
        self._clock = clock

        self._index_lock = threading.RLock()
        self._key_locks: dict[tuple[str, str, str], threading.RLock] = {}
        self._by_name: dict[tuple[str, str, str], Entity] = {}
        self._by_id: dict[tuple[str, str, str], Entity] = {}

    # -------------------------------------------------------------------------
    # Keys and locks
    # -------------------------------------------------------------------------

    def _source_for(self, source: Source | str | None) -> Source:
        if source is None:
            return self.source
        return source if isinstance(source, Source) else Source(source)

    @staticmethod
    def _name_key(kind: EntityKind, source: Source, name: str) -> tuple[str, str, str]:
        return (kind.value, normalize_name(source.fqdn), normalize_name(name))

    @staticmethod
    def _id_key(kind: EntityKind, source: Source, sys_id: str) -> tuple[str, str, str]:
        return (kind.value, normalize_name(source.fqdn), normalize_name(sys_id))

    @staticmethod
    def _element_name(table_name: str, name: str) -> str:
        return f"{normalize_name(table_name)}.{normalize_name(name)}"

    def _key_lock(self, key: tuple[str, str, str]) -> threading.RLock:
        with self._index_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.RLock()
            return lock

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get(self, kind: EntityKind, name: str, source: Source | str | None = None) -> Entity | None:
        """Get a cached entity (stub or resolved) by name, without creating one."""
        key = self._name_key(kind, self._source_for(source), name)
        with self._index_lock:
            entity = self._by_name.get(key)
        return entity.canonical() if entity is not None else None

    def get_by_id(self, kind: EntityKind, sys_id: str, source: Source | str | None = None) -> Entity | None:
        """Get a cached entity by its remote sys_id."""
        key = self._id_key(kind, self._source_for(source), sys_id)
        with self._index_lock:
            entity = self._by_id.get(key)
        return entity.canonical() if entity is not None else None

    def get_table(self, name: str, source: Source | str | None = None) -> Table | None:
        return self.get(EntityKind.TABLE, name, source)  # type: ignore[return-value]

    def get_element(self, table_name: str, name: str, source: Source | str | None = None) -> Element | None:
        return self.get(EntityKind.ELEMENT, self._element_name(table_name, name), source)  # type: ignore[return-value]

    def resolve(self, kind: EntityKind, name: str, source: Source | str | None = None) -> Entity:
        """
        Return the cached entity named ``name`` or register a stub for it.

        Args:
            kind: Entity kind (not ELEMENT, see ``resolve_element``)
            name: Entity name
            source: Source instance (defaults to the cache's source)

        Returns:
            Canonical entity, possibly a stub
        """
        if kind is EntityKind.ELEMENT:
            raise ValueError("Use resolve_element() for elements")
        if not name:
            raise ValueError(f"Cannot resolve {kind.value} without a name")
        source = self._source_for(source)
        key = self._name_key(kind, source, name)
        with self._index_lock:
            entity = self._by_name.get(key)
            if entity is None:
                entity = ENTITY_TYPES[kind](source, name=name)
                self._by_name[key] = entity
            return entity.canonical()

    def resolve_by_id(self, kind: EntityKind, sys_id: str, source: Source | str | None = None) -> Entity:
        """Return the entity with remote identifier ``sys_id`` or register a stub for it."""
        if kind is EntityKind.ELEMENT:
            raise ValueError("Elements are resolved by table and name")
        if not sys_id:
            raise ValueError(f"Cannot resolve {kind.value} without an identifier")
        source = self._source_for(source)
        key = self._id_key(kind, source, sys_id)
        with self._index_lock:
            entity = self._by_id.get(key)
            if entity is None:
                entity = ENTITY_TYPES[kind](source, sys_id=sys_id)
                self._by_id[key] = entity
            return entity.canonical()

    def resolve_table(self, name: str, source: Source | str | None = None) -> Table:
        return self.resolve(EntityKind.TABLE, name, source)  # type: ignore[return-value]

    def resolve_element(self, table_name: str, name: str, source: Source | str | None = None) -> Element:
        """Return the cached element or register a stub attached to its table."""
        if not table_name or not name:
            raise ValueError("Cannot resolve an element without table and name")
        source = self._source_for(source)
        key = self._name_key(EntityKind.ELEMENT, source, self._element_name(table_name, name))
        table = self.resolve_table(table_name, source)
        with self._index_lock:
            element = self._by_name.get(key)
            if element is None:
                element = Element(source, name=name, table_name=table_name)
                element._table.link(table_name, table)
                self._by_name[key] = element
                table.add_element(element)
            return element.canonical()  # type: ignore[return-value]

    # -------------------------------------------------------------------------
    # Upsert
    # -------------------------------------------------------------------------

    def upsert(self, record: SchemaRecord, source: Source | str | None = None) -> Entity:
        """
        Merge a freshly fetched record into the cache.

        Args:
            record: Record fetched from the remote source
            source: Source instance (defaults to the cache's source)

        Returns:
            The canonical entity for the record's natural key

        Raises:
            IncompleteRecord: If the record lacks its identity fields
        """
        record.validate()
        source = self._source_for(source)
        kind = record.kind
        if isinstance(record, ElementRecord):
            natural_name = self._element_name(record.table_name, record.name)
        else:
            natural_name = record.name
        key = self._name_key(kind, source, natural_name)

        with self._key_lock(key):
            with self._index_lock:
                entity = self._find_or_create(kind, source, natural_name, record)

            if isinstance(record, ElementRecord):
                table = self.resolve_table(record.table_name, source)
                links = self._element_links(record, source)
                with entity._lock:
                    self._apply_element(entity, record, table, links)  # type: ignore[arg-type]
                    self._touch(entity)
                table.add_element(entity)  # type: ignore[arg-type]
            elif isinstance(record, TableRecord):
                links = self._table_links(record, source)
                with entity._lock:
                    self._apply_table(entity, record, links)  # type: ignore[arg-type]
                    self._touch(entity)
            elif isinstance(record, FieldTypeRecord):
                package = self._package_link(record.package, source)
                with entity._lock:
                    self._apply_field_type(entity, record, package)  # type: ignore[arg-type]
                    self._touch(entity)
            else:
                with entity._lock:
                    self._apply_package(entity, record)  # type: ignore[arg-type]
                    self._touch(entity)
        return entity

    def _touch(self, entity: Entity) -> None:
        entity.is_stub = False
        entity.last_updated = self._clock()

    def upsert_many(self, records: list[SchemaRecord], source: Source | str | None = None) -> list[Entity]:
        return [self.upsert(record, source) for record in records]

    def _find_or_create(
        self,
        kind: EntityKind,
        source: Source,
        natural_name: str,
        record: SchemaRecord,
    ) -> Entity:
        """Locate the entity for a record, merging stubs. Caller holds the index lock."""
        name_key = self._name_key(kind, source, natural_name)
        id_key = self._id_key(kind, source, record.sys_id)
        by_name = self._by_name.get(name_key)
        by_id = self._by_id.get(id_key)
        by_name = by_name.canonical() if by_name is not None else None
        by_id = by_id.canonical() if by_id is not None else None

        if by_name is not None and by_id is not None and by_name is not by_id:
            # An id-only stub and a name-known entity are the same record
            if by_id.is_stub or not by_name.is_stub:
                survivor, merged = by_name, by_id
            else:
                survivor, merged = by_id, by_name
            self._merge(survivor, merged)
            entity = survivor
        else:
            entity = by_name or by_id

        if entity is None:
            if isinstance(record, ElementRecord):
                entity = Element(source, name=record.name, table_name=record.table_name)
            else:
                entity = ENTITY_TYPES[kind](source, name=record.name)
        elif not _names_match(entity, record):
            # Renamed remotely, or an id stub receiving its name
            old_key = self._name_key(kind, source, _natural_name(entity))
            if self._by_name.get(old_key) is entity and entity.name:
                del self._by_name[old_key]

        entity.name = record.name
        entity.sys_id = record.sys_id
        self._by_name[name_key] = entity
        self._by_id[id_key] = entity
        return entity

    def _merge(self, survivor: Entity, merged: Entity) -> None:
        """Forward ``merged`` to ``survivor``. Caller holds the index lock."""
        with merged._lock:
            if isinstance(survivor, Table) and isinstance(merged, Table):
                for element in merged.elements:
                    survivor.add_element(element)
            merged.forward_to(survivor)
        for index in (self._by_name, self._by_id):
            for key, entity in list(index.items()):
                if entity is merged:
                    index[key] = survivor

    def _table_links(self, record: TableRecord, source: Source) -> dict[str, Entity | None]:
        return {
            "super_class": (
                self.resolve_by_id(EntityKind.TABLE, record.super_class, source)
                if record.super_class else None
            ),
            "package": self._package_link(record.package, source),
            "scope": self._package_link(record.scope, source),
        }

    def _element_links(self, record: ElementRecord, source: Source) -> dict[str, Entity | None]:
        return {
            "type": self.resolve(EntityKind.FIELD_TYPE, record.type, source) if record.type else None,
            "reference": self.resolve(EntityKind.TABLE, record.reference, source) if record.reference else None,
            "package": self._package_link(record.package, source),
        }

    def _package_link(self, identifier: str | None, source: Source) -> Entity | None:
        if not identifier:
            return None
        return self.resolve_by_id(EntityKind.PACKAGE, identifier, source)

    @staticmethod
    def _apply_table(table: Table, record: TableRecord, links: dict[str, Entity | None]) -> None:
        table.label = record.label
        table.is_extendable = record.is_extendable
        table.number_prefix = record.number_prefix
        table._super_class.link(record.super_class, links["super_class"])
        table._package.link(record.package, links["package"])
        table._scope.link(record.scope, links["scope"])

    @staticmethod
    def _apply_element(
        element: Element,
        record: ElementRecord,
        table: Table,
        links: dict[str, Entity | None],
    ) -> None:
        element.label = record.label
        element.is_active = record.is_active
        element.is_array = record.is_array
        element.is_display = record.is_display
        element.is_mandatory = record.is_mandatory
        element.is_primary = record.is_primary
        element.is_read_only = record.is_read_only
        element.is_calculated = record.is_calculated
        element.is_unique = record.is_unique
        element.max_length = record.max_length
        element.size_class = record.size_class
        element.default_value = record.default_value
        element.comments = record.comments
        element._table.link(record.table_name, table)
        element._type.link(record.type, links["type"])
        element._reference.link(record.reference, links["reference"])
        element._package.link(record.package, links["package"])

    @staticmethod
    def _apply_field_type(field_type: FieldType, record: FieldTypeRecord, package: Entity | None) -> None:
        field_type.label = record.label
        field_type.scalar_type = record.scalar_type
        field_type.scalar_length = record.scalar_length
        field_type.class_name = record.class_name
        field_type.use_original_value = record.use_original_value
        field_type.is_visible = record.is_visible
        field_type._package.link(record.package, package)

    @staticmethod
    def _apply_package(package: Package, record: PackageRecord) -> None:
        package.package_kind = record.package_kind
        package.short_description = record.short_description
        package.scope = record.scope
        package.version = record.version
        package.package_id = record.package_id
        package.is_active = record.is_active

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def entities(self, kind: EntityKind, include_stubs: bool = False) -> list[Entity]:
        """Distinct canonical entities of a kind, ordered by natural key."""
        with self._index_lock:
            candidates = list(self._by_name.values()) + list(self._by_id.values())
        seen: set[int] = set()
        result: list[Entity] = []
        for entity in candidates:
            entity = entity.canonical()
            if entity.kind is not kind or id(entity) in seen:
                continue
            if entity.is_stub and not include_stubs:
                continue
            seen.add(id(entity))
            result.append(entity)
        return sorted(result, key=lambda e: (e.key, e.sys_id))

    def tables(self, include_stubs: bool = False) -> list[Table]:
        return self.entities(EntityKind.TABLE, include_stubs)  # type: ignore[return-value]

    def elements_of(self, table: Table | str) -> list[Element]:
        if isinstance(table, str):
            resolved = self.get_table(table)
            return resolved.elements if resolved is not None else []
        return table.elements

    def count(self, kind: EntityKind, include_stubs: bool = False) -> int:
        return len(self.entities(kind, include_stubs))

    def __len__(self) -> int:
        return sum(self.count(kind) for kind in EntityKind)

    def clear(self) -> None:
        with self._index_lock:
            self._by_name.clear()
            self._by_id.clear()
            self._key_locks.clear()

    # -------------------------------------------------------------------------
    # Snapshot persistence
    # -------------------------------------------------------------------------

    def _is_expired(self, metadata: CacheMetadata) -> bool:
        """Check if snapshot is expired."""
        if not metadata.expires_at:
            return False

        try:
            expires = datetime.fromisoformat(metadata.expires_at)
            return self._clock() > expires
        except ValueError:
            return True

    def to_records(self) -> dict[str, list[dict[str, Any]]]:
        """Serialize every resolved entity back to its record form."""
        return {
            kind.value: [_to_record(entity).to_dict() for entity in self.entities(kind)]
            for kind in SNAPSHOT_ORDER
        }

    def save(self, path: str | Path) -> Path:
        """
        Save resolved entities to a JSON snapshot.

        Args:
            path: Snapshot file path

        Returns:
            Path written
        """
        now = self._clock()
        expires = None
        if self.ttl_hours:
            expires = (now + timedelta(hours=self.ttl_hours)).isoformat()

        metadata = CacheMetadata(
            source=self.source.fqdn,
            created_at=now.isoformat(),
            expires_at=expires,
        )
        data = {
            "metadata": metadata.to_dict(),
            "records": self.to_records(),
        }

        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        return output_path

    def load(self, path: str | Path) -> bool:
        """
        Replay a JSON snapshot into the cache if it is valid for this source.

        Args:
            path: Snapshot file path

        Returns:
            True if the snapshot was loaded
        """
        snapshot = Path(path)
        if not snapshot.exists():
            return False

        try:
            with open(snapshot, "r", encoding="utf-8") as f:
                data = json.load(f)
            metadata = CacheMetadata.from_dict(data["metadata"])
        except (json.JSONDecodeError, KeyError):
            return False

        if Source(metadata.source) != self.source:
            return False
        if self._is_expired(metadata):
            return False

        records = data.get("records", {})
        for kind in SNAPSHOT_ORDER:
            record_type = RECORD_TYPES[kind.value]
            for item in records.get(kind.value, []):
                self.upsert(record_type.from_dict(item))
        return True

    def get_snapshot_info(self, path: str | Path) -> dict[str, Any] | None:
        """Get snapshot metadata without loading it."""
        snapshot = Path(path)
        if not snapshot.exists():
            return None

        try:
            with open(snapshot, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data.get("metadata")
        except (json.JSONDecodeError, KeyError):
            return None


def _natural_name(entity: Entity) -> str:
    if isinstance(entity, Element):
        return EntityCache._element_name(entity.table_name, entity.name)
    return entity.name


def _names_match(entity: Entity, record: SchemaRecord) -> bool:
    if isinstance(record, ElementRecord):
        return normalize_name(_natural_name(entity)) == EntityCache._element_name(record.table_name, record.name)
    return normalize_name(entity.name) == normalize_name(record.name)


def _to_record(entity: Entity) -> SchemaRecord:
    """Record form of an entity, with references written as identifiers."""
    with entity._lock:
        if isinstance(entity, Table):
            return TableRecord(
                name=entity.name,
                sys_id=entity.sys_id,
                label=entity.label,
                is_extendable=entity.is_extendable,
                number_prefix=entity.number_prefix,
                super_class=entity._super_class.identifier(),
                package=entity._package.identifier(),
                scope=entity._scope.identifier(),
            )
        if isinstance(entity, Element):
            return ElementRecord(
                name=entity.name,
                table_name=entity.table_name,
                sys_id=entity.sys_id,
                label=entity.label,
                type=entity.type_name,
                reference=entity.reference_name,
                package=entity._package.identifier(),
                is_active=entity.is_active,
                is_array=entity.is_array,
                is_display=entity.is_display,
                is_mandatory=entity.is_mandatory,
                is_primary=entity.is_primary,
                is_read_only=entity.is_read_only,
                is_calculated=entity.is_calculated,
                is_unique=entity.is_unique,
                max_length=entity.max_length,
                size_class=entity.size_class,
                default_value=entity.default_value,
                comments=entity.comments,
            )
        if isinstance(entity, FieldType):
            return FieldTypeRecord(
                name=entity.name,
                sys_id=entity.sys_id,
                label=entity.label,
                scalar_type=entity.scalar_type,
                scalar_length=entity.scalar_length,
                class_name=entity.class_name,
                use_original_value=entity.use_original_value,
                is_visible=entity.is_visible,
                package=entity._package.identifier(),
            )
        if isinstance(entity, Package):
            return PackageRecord(
                name=entity.name,
                sys_id=entity.sys_id,
                package_kind=entity.package_kind,
                short_description=entity.short_description,
                scope=entity.scope,
                version=entity.version,
                package_id=entity.package_id,
                is_active=entity.is_active,
            )
    raise TypeError(f"Unsupported entity: {entity!r}")
