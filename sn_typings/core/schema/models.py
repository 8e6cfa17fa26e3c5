"""
Schema Data Models

Entities mirrored from the remote instance's schema tables, plus the raw
records the remote source hands to the cache.

Cross-references between entities are held in a ``Ref``. A ref is either
unresolved (only the referenced entity's name is known) or resolved (it
points at the entity object). Both views are read and written under the
owning entity's lock so they never disagree.
"""

import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any


def normalize_name(value: str | None) -> str:
    """Shared case-insensitive comparer for names, keys and identifiers."""
    return (value or "").strip().lower()


def names_equal(a: str | None, b: str | None) -> bool:
    return normalize_name(a) == normalize_name(b)


class IncompleteRecord(Exception):
    """Raised when a fetched record lacks its mandatory identity fields."""

    def __init__(self, kind: str, missing: list[str], record: dict[str, Any] | None = None):
        super().__init__(f"{kind} record is missing identity field(s): {', '.join(missing)}")
        self.kind = kind
        self.missing = missing
        self.record = record or {}


# The error taxonomy calls this case "missing identity"
MissingIdentity = IncompleteRecord


class ResolutionInconsistency(Exception):
    """Raised when a resolved entity disagrees with a pending reference name."""
    pass


class EntityKind(Enum):
    """Kinds of entity held by the cache."""

    TABLE = "table"
    ELEMENT = "element"
    FIELD_TYPE = "field_type"
    PACKAGE = "package"


class PackageKind(Enum):
    """Variants of schema ownership unit, by the remote table they came from."""

    PLUGIN = "plugin"
    STORE_APP = "store_app"
    CUSTOM_APP = "custom_app"
    APPLICATION = "application"
    PACKAGE = "package"

    @property
    def is_application(self) -> bool:
        return self in (PackageKind.STORE_APP, PackageKind.CUSTOM_APP, PackageKind.APPLICATION)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Unresolved:
    """Reference known only by name."""

    name: str


@dataclass(frozen=True)
class Resolved:
    """Reference pointing at an entity object."""

    entity: "Entity"


class Ref:
    """
    A cross-reference field with exactly one authoritative representation.

    The state is ``None``, ``Unresolved(name)`` or ``Resolved(entity)``.

    Rules:
        - ``set_name`` keeps a resolved entity whose own name matches the new
          name, otherwise the name replaces it.
        - ``set_target`` makes the entity authoritative.
        - ``bind`` upgrades a pending name to its entity and refuses an
          entity with a different name.

    Example:
        >>> ref = Ref(threading.RLock(), "sys_user")
        >>> ref.name
        'sys_user'
        >>> ref.bind(user_table)
        >>> ref.target is user_table
        True
    """

    __slots__ = ("_lock", "_state")

    def __init__(self, lock: threading.RLock, name: str | None = None):
        self._lock = lock
        self._state: Unresolved | Resolved | None = Unresolved(name) if name else None

    @property
    def state(self) -> Unresolved | Resolved | None:
        with self._lock:
            if isinstance(self._state, Resolved):
                canonical = self._state.entity.canonical()
                if canonical is not self._state.entity:
                    self._state = Resolved(canonical)
            return self._state

    @property
    def name(self) -> str | None:
        state = self.state
        if isinstance(state, Resolved):
            return state.entity.name
        if isinstance(state, Unresolved):
            return state.name
        return None

    @property
    def target(self) -> "Entity | None":
        state = self.state
        return state.entity if isinstance(state, Resolved) else None

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.state, Resolved)

    def set_name(self, value: str | None) -> None:
        with self._lock:
            if not value:
                self._state = None
                return
            current = self.state
            if isinstance(current, Resolved) and names_equal(current.entity.name, value):
                return
            self._state = Unresolved(value)

    def set_target(self, entity: "Entity | None") -> None:
        with self._lock:
            self._state = Resolved(entity.canonical()) if entity is not None else None

    def bind(self, entity: "Entity") -> None:
        """Upgrade the pending name to ``entity``."""
        entity = entity.canonical()
        with self._lock:
            current = self.state
            if isinstance(current, Resolved):
                if current.entity is entity:
                    return
                if not names_equal(current.entity.name, entity.name):
                    raise ResolutionInconsistency(
                        f"Reference already resolved to '{current.entity.name}', "
                        f"cannot bind '{entity.name}'"
                    )
            elif isinstance(current, Unresolved):
                if entity.name and not names_equal(current.name, entity.name) \
                        and not names_equal(current.name, entity.sys_id):
                    raise ResolutionInconsistency(
                        f"Reference names '{current.name}', cannot bind '{entity.name}'"
                    )
            self._state = Resolved(entity)

    def link(self, name: str | None, entity: "Entity | None") -> None:
        """Set the name and bind it to ``entity`` as one transition."""
        with self._lock:
            if not name or entity is None:
                self.set_name(name)
                return
            current = self.state
            if isinstance(current, Resolved) and current.entity is entity.canonical():
                return
            previous = self._state
            self._state = Unresolved(name)
            try:
                self.bind(entity)
            except ResolutionInconsistency:
                self._state = previous
                raise

    def identifier(self) -> str | None:
        """The sys_id of the target when resolved, else the pending name."""
        state = self.state
        if isinstance(state, Resolved):
            return state.entity.sys_id or state.entity.name
        if isinstance(state, Unresolved):
            return state.name
        return None

    def __repr__(self) -> str:
        state = self.state
        if isinstance(state, Resolved):
            return f"Ref(resolved={state.entity.name!r})"
        if isinstance(state, Unresolved):
            return f"Ref(name={state.name!r})"
        return "Ref(None)"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Source:
    """The remote instance an entity was read from."""

    fqdn: str

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Source) and names_equal(self.fqdn, other.fqdn)

    def __hash__(self) -> int:
        return hash(normalize_name(self.fqdn))


class Entity:
    """
    Base class for cached schema entities.

    ``is_stub`` is True while the entity is only known as the target of
    another entity's reference. A stub that turns out to duplicate another
    entity is merged and forwards to it (see ``canonical``).
    """

    kind: EntityKind

    def __init__(self, source: Source, name: str = "", sys_id: str = ""):
        self._lock = threading.RLock()
        self.source = source
        self.name = name
        self.sys_id = sys_id
        self.is_stub = True
        self.last_updated: datetime | None = None
        self._merged_into: "Entity | None" = None

    def canonical(self) -> "Entity":
        entity = self
        while entity._merged_into is not None:
            entity = entity._merged_into
        return entity

    def forward_to(self, other: "Entity") -> None:
        with self._lock:
            self._merged_into = other.canonical()

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.kind.value, normalize_name(self.source.fqdn), normalize_name(self.name))

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, Entity):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        stub = ", stub" if self.is_stub else ""
        return f"{type(self).__name__}({self.name!r}{stub})"


class Package(Entity):
    """A package, plugin or application that owns schema objects."""

    kind = EntityKind.PACKAGE

    def __init__(self, source: Source, name: str = "", sys_id: str = ""):
        super().__init__(source, name, sys_id)
        self.package_kind = PackageKind.PACKAGE
        self.short_description: str | None = None
        self.scope: str | None = None
        self.version: str | None = None
        self.package_id: str | None = None
        self.is_active: bool | None = None

    @property
    def description(self) -> str:
        """Short description and name, as shown in generated docs."""
        if not self.short_description or self.short_description == self.name:
            return self.name
        return f"{self.short_description} ({self.name})"


class FieldType(Entity):
    """A scalar ("glide") type that columns are declared with."""

    kind = EntityKind.FIELD_TYPE

    def __init__(self, source: Source, name: str = "", sys_id: str = ""):
        super().__init__(source, name, sys_id)
        self.label = ""
        self.scalar_type: str | None = None
        self.scalar_length: int | None = None
        self.class_name: str | None = None
        self.use_original_value = False
        self.is_visible = False
        self._package = Ref(self._lock)

    @property
    def package(self) -> Package | None:
        return self._package.target  # type: ignore[return-value]

    @property
    def package_name(self) -> str | None:
        return self._package.name


class Table(Entity):
    """A record type of the remote platform."""

    kind = EntityKind.TABLE

    def __init__(self, source: Source, name: str = "", sys_id: str = ""):
        super().__init__(source, name, sys_id)
        self.label = ""
        self.is_extendable = False
        self.number_prefix: str | None = None
        self._super_class = Ref(self._lock)
        self._package = Ref(self._lock)
        self._scope = Ref(self._lock)
        self._elements: dict[str, "Element"] = {}

    # Paired accessors: the name view and the resolved view of each ref

    @property
    def super_class(self) -> "Table | None":
        return self._super_class.target  # type: ignore[return-value]

    @super_class.setter
    def super_class(self, value: "Table | None") -> None:
        self._super_class.set_target(value)

    @property
    def super_class_name(self) -> str | None:
        return self._super_class.name

    @super_class_name.setter
    def super_class_name(self, value: str | None) -> None:
        self._super_class.set_name(value)

    @property
    def package(self) -> Package | None:
        return self._package.target  # type: ignore[return-value]

    @package.setter
    def package(self, value: Package | None) -> None:
        self._package.set_target(value)

    @property
    def package_name(self) -> str | None:
        return self._package.name

    @property
    def scope(self) -> Package | None:
        return self._scope.target  # type: ignore[return-value]

    @scope.setter
    def scope(self, value: Package | None) -> None:
        self._scope.set_target(value)

    @property
    def scope_name(self) -> str | None:
        return self._scope.name

    @property
    def elements(self) -> list["Element"]:
        with self._lock:
            return sorted(self._elements.values(), key=lambda e: normalize_name(e.name))

    def add_element(self, element: "Element") -> None:
        with self._lock:
            self._elements[normalize_name(element.name)] = element

    def get_element(self, name: str) -> "Element | None":
        with self._lock:
            return self._elements.get(normalize_name(name))

    def super_class_chain(self) -> list["Table"]:
        """Ancestors, nearest first. Stops on a cycle."""
        chain: list[Table] = []
        seen = {id(self)}
        current = self.super_class
        while current is not None and id(current) not in seen:
            chain.append(current)
            seen.add(id(current))
            current = current.super_class
        return chain


class Element(Entity):
    """A column declared on a table."""

    kind = EntityKind.ELEMENT

    def __init__(self, source: Source, name: str = "", table_name: str = "", sys_id: str = ""):
        super().__init__(source, name, sys_id)
        self.label = ""
        self.is_active = True
        self.is_array = False
        self.is_display = False
        self.is_mandatory = False
        self.is_primary = False
        self.is_read_only = False
        self.is_calculated = False
        self.is_unique = False
        self.max_length: int | None = None
        self.size_class: int | None = None
        self.default_value: str | None = None
        self.comments: str | None = None
        self._table = Ref(self._lock, table_name)
        self._type = Ref(self._lock)
        self._reference = Ref(self._lock)
        self._package = Ref(self._lock)

    @property
    def key(self) -> tuple[str, str, str]:
        return (
            self.kind.value,
            normalize_name(self.source.fqdn),
            f"{normalize_name(self.table_name)}.{normalize_name(self.name)}",
        )

    @property
    def table(self) -> Table | None:
        return self._table.target  # type: ignore[return-value]

    @table.setter
    def table(self, value: Table | None) -> None:
        self._table.set_target(value)

    @property
    def table_name(self) -> str:
        return self._table.name or ""

    @table_name.setter
    def table_name(self, value: str) -> None:
        self._table.set_name(value)

    @property
    def type(self) -> FieldType | None:
        return self._type.target  # type: ignore[return-value]

    @type.setter
    def type(self, value: FieldType | None) -> None:
        self._type.set_target(value)

    @property
    def type_name(self) -> str | None:
        return self._type.name

    @type_name.setter
    def type_name(self, value: str | None) -> None:
        self._type.set_name(value)

    @property
    def reference(self) -> Table | None:
        return self._reference.target  # type: ignore[return-value]

    @reference.setter
    def reference(self, value: Table | None) -> None:
        self._reference.set_target(value)

    @property
    def reference_name(self) -> str | None:
        return self._reference.name

    @reference_name.setter
    def reference_name(self, value: str | None) -> None:
        self._reference.set_name(value)

    @property
    def package(self) -> Package | None:
        return self._package.target  # type: ignore[return-value]

    @property
    def package_name(self) -> str | None:
        return self._package.name

    def snapshot(self) -> dict[str, Any]:
        """Consistent view of the element's references."""
        with self._lock:
            return {
                "name": self.name,
                "table": self.table_name,
                "type": self.type_name,
                "reference": self.reference_name,
                "package": self.package_name,
            }

    def __repr__(self) -> str:
        return f"Element({self.table_name}.{self.name}, type={self.type_name})"


# ---------------------------------------------------------------------------
# Records (raw values as fetched from the remote source)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordRef:
    """A reference field value: only ``value`` is used for resolution."""

    value: str
    display_value: str | None = None


def _require(kind: str, values: dict[str, Any], record: dict[str, Any]) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise IncompleteRecord(kind, missing, record)


@dataclass(frozen=True)
class PackageRecord:
    """Package, plugin or application row."""

    name: str
    sys_id: str
    package_kind: PackageKind = PackageKind.PACKAGE
    short_description: str | None = None
    scope: str | None = None
    version: str | None = None
    package_id: str | None = None
    is_active: bool | None = None

    kind = EntityKind.PACKAGE

    def validate(self) -> None:
        _require("package", {"name": self.name, "sys_id": self.sys_id}, self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["package_kind"] = self.package_kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PackageRecord":
        return cls(
            name=data.get("name", ""),
            sys_id=data.get("sys_id", ""),
            package_kind=PackageKind(data.get("package_kind", "package")),
            short_description=data.get("short_description"),
            scope=data.get("scope"),
            version=data.get("version"),
            package_id=data.get("package_id"),
            is_active=data.get("is_active"),
        )


@dataclass(frozen=True)
class FieldTypeRecord:
    """Row of the glide type table."""

    name: str
    sys_id: str
    label: str = ""
    scalar_type: str | None = None
    scalar_length: int | None = None
    class_name: str | None = None
    use_original_value: bool = False
    is_visible: bool = False
    package: str | None = None

    kind = EntityKind.FIELD_TYPE

    def validate(self) -> None:
        _require("field type", {"name": self.name, "sys_id": self.sys_id}, self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldTypeRecord":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class TableRecord:
    """Row of the table catalog; ``super_class`` and packages are sys_ids."""

    name: str
    sys_id: str
    label: str = ""
    is_extendable: bool = False
    number_prefix: str | None = None
    super_class: str | None = None
    package: str | None = None
    scope: str | None = None

    kind = EntityKind.TABLE

    def validate(self) -> None:
        _require("table", {"name": self.name, "sys_id": self.sys_id}, self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableRecord":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class ElementRecord:
    """Row of the dictionary; ``type`` and ``reference`` are names."""

    name: str
    table_name: str
    sys_id: str
    label: str = ""
    type: str | None = None
    reference: str | None = None
    package: str | None = None
    is_active: bool = True
    is_array: bool = False
    is_display: bool = False
    is_mandatory: bool = False
    is_primary: bool = False
    is_read_only: bool = False
    is_calculated: bool = False
    is_unique: bool = False
    max_length: int | None = None
    size_class: int | None = None
    default_value: str | None = None
    comments: str | None = None

    kind = EntityKind.ELEMENT

    def validate(self) -> None:
        _require(
            "element",
            {"name": self.name, "table_name": self.table_name, "sys_id": self.sys_id},
            self.to_dict(),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ElementRecord":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


SchemaRecord = PackageRecord | FieldTypeRecord | TableRecord | ElementRecord

RECORD_TYPES: dict[str, type] = {
    EntityKind.PACKAGE.value: PackageRecord,
    EntityKind.FIELD_TYPE.value: FieldTypeRecord,
    EntityKind.TABLE.value: TableRecord,
    EntityKind.ELEMENT.value: ElementRecord,
}
