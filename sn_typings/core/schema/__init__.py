"""
Schema Mirroring Module

Entity model, cache, type classification and inheritance resolution for the
remote instance's table schema.
"""

from sn_typings.core.schema.models import (
    Element,
    ElementRecord,
    EntityKind,
    FieldType,
    FieldTypeRecord,
    IncompleteRecord,
    MissingIdentity,
    Package,
    PackageKind,
    PackageRecord,
    RecordRef,
    ResolutionInconsistency,
    Source,
    Table,
    TableRecord,
)
from sn_typings.core.schema.cache import EntityCache
from sn_typings.core.schema.classifier import Classification, RenderMode, TypeClassifier, WrapperCategory, classify
from sn_typings.core.schema.inheritance import ElementComparer, InheritanceResolver, Partition
from sn_typings.core.schema.loader import LoadResult, SchemaLoader, TableLoadError

__all__ = [
    "Classification",
    "Element",
    "ElementComparer",
    "ElementRecord",
    "EntityCache",
    "EntityKind",
    "FieldType",
    "FieldTypeRecord",
    "IncompleteRecord",
    "InheritanceResolver",
    "LoadResult",
    "MissingIdentity",
    "Package",
    "PackageKind",
    "PackageRecord",
    "Partition",
    "RecordRef",
    "RenderMode",
    "ResolutionInconsistency",
    "SchemaLoader",
    "Source",
    "Table",
    "TableLoadError",
    "TableRecord",
    "TypeClassifier",
    "WrapperCategory",
    "classify",
]
