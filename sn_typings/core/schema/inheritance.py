"""
Inheritance Resolver

Diffs a table's own columns against its direct superclass so that derived
field interfaces only re-declare what actually changed.
"""

from dataclasses import dataclass, field

from sn_typings.core.schema.classifier import Classification, RenderMode, classify
from sn_typings.core.schema.models import Element, Table, names_equal, normalize_name


# Columns every root table carries; declared by the external IBaseRecord contract
BASE_RECORD_ELEMENTS = (
    "sys_created_by",
    "sys_created_on",
    "sys_id",
    "sys_mod_count",
    "sys_updated_by",
    "sys_updated_on",
)

# Presence of these columns marks a root table as a base record
BASE_RECORD_IDENTITY = ("sys_id", "sys_created_on")

FLAG_ATTRIBUTES = (
    "is_active",
    "is_array",
    "is_display",
    "is_mandatory",
    "is_primary",
    "is_read_only",
    "is_calculated",
    "is_unique",
)


def _sorted(elements: list[Element]) -> list[Element]:
    return sorted(elements, key=lambda e: normalize_name(e.name))


class ElementComparer:
    """
    Equality predicate over the attributes that affect rendered output.

    Compares the wrapper classification, the scalar type name when the
    wrapper documents it explicitly, the referenced table, the label and all
    flags. Comments, max length and default value are only compared when
    ``compare_comments`` is set.
    """

    def __init__(self, mode: RenderMode = RenderMode.GLOBAL, compare_comments: bool = False):
        self.mode = mode
        self.compare_comments = compare_comments

    def classification(self, element: Element) -> Classification:
        return classify(element.type_name, self.mode)

    def equals(self, own: Element, inherited: Element) -> bool:
        own_view = own.snapshot()
        base_view = inherited.snapshot()

        own_class = classify(own_view["type"], self.mode)
        if own_class != classify(base_view["type"], self.mode):
            return False
        if own_class.explicit and not names_equal(own_view["type"], base_view["type"]):
            return False
        if not names_equal(own_view["reference"], base_view["reference"]):
            return False
        if (own.label or "") != (inherited.label or ""):
            return False
        for flag in FLAG_ATTRIBUTES:
            if getattr(own, flag) != getattr(inherited, flag):
                return False
        if self.compare_comments:
            if (own.comments or "") != (inherited.comments or ""):
                return False
            if own.max_length != inherited.max_length:
                return False
            if (own.default_value or "") != (inherited.default_value or ""):
                return False
        return True

    __call__ = equals


@dataclass
class Partition:
    """Own columns of a table split by how they relate to the parent."""

    declared: list[Element] = field(default_factory=list)
    overridden: list[Element] = field(default_factory=list)
    inherited_unchanged: list[Element] = field(default_factory=list)
    extends_base_record: bool = False

    @property
    def rendered(self) -> list[Element]:
        """Columns emitted as full properties, in name order."""
        return _sorted(self.declared + self.overridden)

    @property
    def is_empty(self) -> bool:
        return not (self.declared or self.overridden or self.inherited_unchanged)

    def is_override(self, element: Element) -> bool:
        return any(e is element for e in self.overridden)


def extends_base_record(elements: list[Element]) -> bool:
    """True when the column names include every base record identity column."""
    names = {normalize_name(e.name) for e in elements}
    return all(name in names for name in BASE_RECORD_IDENTITY)


def is_base_record_element(element: Element) -> bool:
    return normalize_name(element.name) in BASE_RECORD_ELEMENTS


class InheritanceResolver:
    """
    Partitions a table's own columns against its superclass chain.

    Only the direct parent is compared; the parent's interface already
    carries its own ancestors through its ``extends`` clause.

    Example:
        >>> resolver = InheritanceResolver()
        >>> result = resolver.partition(problem.elements, problem.super_class_chain())
        >>> [e.name for e in result.overridden]
        ['short_description']
    """

    def __init__(self, comparer: ElementComparer | None = None):
        self.comparer = comparer or ElementComparer()

    def partition(self, own_elements: list[Element], super_class_chain: list[Table]) -> Partition:
        """
        Split ``own_elements`` into declared, overridden and inherited columns.

        Args:
            own_elements: Columns declared on the table being rendered
            super_class_chain: Ancestors, nearest first (empty for root tables)

        Returns:
            Partition with every list sorted by column name
        """
        if not super_class_chain:
            if extends_base_record(own_elements):
                return Partition(
                    declared=_sorted([e for e in own_elements if not is_base_record_element(e)]),
                    extends_base_record=True,
                )
            return Partition(declared=_sorted(list(own_elements)))

        parent = super_class_chain[0]
        result = Partition()
        for element in own_elements:
            inherited = parent.get_element(element.name)
            if inherited is None:
                result.declared.append(element)
            elif self.comparer(element, inherited):
                result.inherited_unchanged.append(element)
            else:
                result.overridden.append(element)

        result.declared = _sorted(result.declared)
        result.overridden = _sorted(result.overridden)
        result.inherited_unchanged = _sorted(result.inherited_unchanged)
        return result

    def partition_table(self, table: Table) -> Partition:
        return self.partition(table.elements, table.super_class_chain())
