"""
Declaration Renderer

Renders grouped tables as TypeScript declaration text. Every namespace block
holds three sub-namespaces:

- ``$$GlideRecord``: record types, composed with the superclass record type
- ``$$element``: reference element types
- ``$$tableFields``: field interfaces, diffed against the superclass
"""

import json
import re

from sn_typings.core.cancellation import CancellationToken, NONE
from sn_typings.core.rendering.grouper import DEFAULT_NAMESPACE, NamespaceGrouper, namespace_of, short_name
from sn_typings.core.schema.classifier import RenderMode, TypeClassifier
from sn_typings.core.schema.inheritance import ElementComparer, InheritanceResolver, Partition
from sn_typings.core.schema.models import Element, FieldType, Package, Table, names_equal


NS_GLIDE_RECORD = "$$GlideRecord"
NS_ELEMENT = "$$element"
NS_TABLE_FIELDS = "$$tableFields"

TS_NAME_GLIDE_RECORD = "GlideRecord"
TS_NAME_BASE_RECORD = "IBaseRecord"
TS_NAME_REFERENCE = "Reference"

INDENT = "    "

IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


def quote(value: str) -> str:
    """JSON-quote a value for use inside a doc comment."""
    return json.dumps(value, ensure_ascii=False).replace("*/", "*\\/")


def display_label(label: str | None, name: str) -> str:
    if not label or not label.strip() or label == name:
        return name
    return quote(label)


def flags_of(element: Element) -> list[str]:
    """Flag descriptions for an element's doc comment."""
    flags: list[str] = []
    if element.is_primary:
        flags.append("Is Primary: true")
    elif element.is_mandatory:
        flags.append("Is Mandatory: true")
    if not element.is_active:
        flags.append("Is Active: false")
    if element.is_array:
        flags.append("Is Array: true")
    if element.is_read_only:
        flags.append("Is Read-only: true")
    if element.is_display:
        flags.append("Is Display: true")
    if element.is_calculated:
        flags.append("Is Calculated: true")
    if element.is_unique:
        flags.append("Is Unique: true")
    return flags


class _Writer:
    """Line buffer with an indentation level."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.indent = 0

    def line(self, text: str = "") -> None:
        self.lines.append(f"{INDENT * self.indent}{text}" if text else "")

    def jsdoc(self, lines: list[str]) -> None:
        self.line("/**")
        for text in lines:
            self.line(f" * {text}" if text else " *")
        self.line(" */")

    def text(self) -> str:
        return "\n".join(self.lines) + "\n"


class Renderer:
    """
    Renders declaration text for grouped tables.

    Output is a pure function of the tables' cached state: the same cache
    contents always produce byte-identical text.

    Example:
        >>> renderer = Renderer(RenderMode.GLOBAL)
        >>> text = renderer.render(NamespaceGrouper().group(tables))
    """

    def __init__(
        self,
        mode: RenderMode = RenderMode.GLOBAL,
        resolver: InheritanceResolver | None = None,
    ):
        self.mode = mode
        self.classifier = TypeClassifier(mode)
        self.resolver = resolver or InheritanceResolver(ElementComparer(mode))
        self._rendered: set[int] = set()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def render(
        self,
        grouped_tables: dict[str, list[Table]],
        cancellation: CancellationToken = NONE,
    ) -> str:
        """
        Render every group.

        Args:
            grouped_tables: Namespace key to tables, as returned by NamespaceGrouper.group
            cancellation: Checked before each table and each element

        Returns:
            Declaration text

        Raises:
            OperationCancelled: If cancellation was requested
        """
        ordered = NamespaceGrouper.ordered(grouped_tables)
        self._rendered = {id(t) for _, tables in ordered for t in tables}

        writer = _Writer()
        for index, (namespace, tables) in enumerate(ordered):
            if index > 0:
                writer.line()
            if namespace == DEFAULT_NAMESPACE:
                self._render_namespace(writer, namespace, tables, "declare namespace", cancellation)
            else:
                writer.line(f"declare namespace {namespace} {{")
                writer.indent += 1
                self._render_namespace(writer, namespace, tables, "export namespace", cancellation)
                writer.indent -= 1
                writer.line("}")
        return writer.text()

    def render_tables(self, tables: list[Table], cancellation: CancellationToken = NONE) -> str:
        return self.render(NamespaceGrouper().group(tables), cancellation)

    # -------------------------------------------------------------------------
    # Type names
    # -------------------------------------------------------------------------

    @staticmethod
    def type_string(table: Table, sub_namespace: str, current: str) -> str:
        """Type name of ``table`` in ``sub_namespace``, qualified when outside ``current``."""
        namespace = namespace_of(table)
        name = f"{sub_namespace}.{short_name(table, namespace)}"
        if namespace == current or namespace == DEFAULT_NAMESPACE:
            return name
        return f"{namespace}.{name}"

    def _element_type(self, element: Element, current: str) -> str:
        reference = element.reference
        if reference is not None and id(reference.canonical()) in self._rendered:
            return self.type_string(reference, NS_ELEMENT, current)
        return self.classifier.type_name_for(element.type_name)

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    def _render_namespace(
        self,
        writer: _Writer,
        namespace: str,
        tables: list[Table],
        declaration: str,
        cancellation: CancellationToken,
    ) -> None:
        writer.line(f"{declaration} {NS_GLIDE_RECORD} {{")
        writer.indent += 1
        for index, table in enumerate(tables):
            cancellation.raise_if_cancelled()
            if index > 0:
                writer.line()
            writer.jsdoc(self._record_doc(table))
            super_class = table.super_class
            base = self.type_string(super_class, NS_GLIDE_RECORD, namespace) if super_class else TS_NAME_GLIDE_RECORD
            writer.line(
                f"export type {short_name(table, namespace)} = "
                f"{self.type_string(table, NS_TABLE_FIELDS, namespace)} & {base};"
            )
        writer.indent -= 1
        writer.line("}")
        writer.line()

        writer.line(f"{declaration} {NS_ELEMENT} {{")
        writer.indent += 1
        for index, table in enumerate(tables):
            cancellation.raise_if_cancelled()
            if index > 0:
                writer.line()
            writer.jsdoc([f"Element that refers to a {display_label(table.label, table.name)} glide record."])
            writer.line(
                f"export type {short_name(table, namespace)} = {TS_NAME_REFERENCE}<"
                f"{self.type_string(table, NS_TABLE_FIELDS, namespace)}, "
                f"{self.type_string(table, NS_GLIDE_RECORD, namespace)}>;"
            )
        writer.indent -= 1
        writer.line("}")
        writer.line()

        writer.line(f"{declaration} {NS_TABLE_FIELDS} {{")
        writer.indent += 1
        for index, table in enumerate(tables):
            cancellation.raise_if_cancelled()
            if index > 0:
                writer.line()
            self._render_fields(writer, namespace, table, cancellation)
        writer.indent -= 1
        writer.line("}")

    def _record_doc(self, table: Table) -> list[str]:
        lines = [f"{display_label(table.label, table.name)} glide record."]
        if table.number_prefix and table.number_prefix.strip():
            lines.append(f"Auto-number Prefix: {table.number_prefix}")
        if table.is_extendable:
            lines.append("IsExtendable: true")
        package = table.package
        if isinstance(package, Package) and not package.is_stub and package.name:
            if not package.short_description or package.short_description == package.name:
                lines.append(f"Package: {quote(package.name)}")
            else:
                lines.append(f"Package: {quote(package.short_description)} ({quote(package.name)})")
        return lines

    def _render_fields(
        self,
        writer: _Writer,
        namespace: str,
        table: Table,
        cancellation: CancellationToken,
    ) -> None:
        name = short_name(table, namespace)
        partition = self.resolver.partition_table(table)
        super_class = table.super_class

        if super_class is not None:
            parent_fields = self.type_string(super_class, NS_TABLE_FIELDS, namespace)
            extends = f" extends {parent_fields}"
        elif partition.extends_base_record:
            parent_fields = None
            extends = f" extends {TS_NAME_BASE_RECORD}"
        else:
            parent_fields = None
            extends = ""

        label = display_label(table.label, table.name)
        title = f"{label} glide record fields." if name == table.name else f"{label} ({table.name}) glide record fields."
        writer.jsdoc([
            title,
            f"@see {{@link {self.type_string(table, NS_GLIDE_RECORD, namespace)}}}",
            f"@see {{@link {self.type_string(table, NS_ELEMENT, namespace)}}}",
        ])

        if partition.is_empty:
            writer.line(f"export interface {name}{extends} {{ }}")
            return

        writer.line(f"export interface {name}{extends} {{")
        writer.indent += 1
        first = True
        for element in partition.inherited_unchanged:
            cancellation.raise_if_cancelled()
            if not first:
                writer.line()
            first = False
            writer.jsdoc(self._stub_doc(element, parent_fields))
        for element in partition.rendered:
            cancellation.raise_if_cancelled()
            if not first:
                writer.line()
            first = False
            self._render_property(writer, namespace, element, partition)
        writer.indent -= 1
        writer.line("}")

    def _stub_doc(self, element: Element, parent_fields: str | None) -> list[str]:
        lines = [f"{display_label(element.label, element.name)} element."]
        if parent_fields:
            lines.append(f"@see {{@link {parent_fields}#{element.name}}}")
        return lines

    def _render_property(self, writer: _Writer, namespace: str, element: Element, partition: Partition) -> None:
        lines = [f"{display_label(element.label, element.name)} element."]

        type_name = element.type_name
        if type_name and self.classifier.is_explicit(type_name):
            field_type = element.type
            if not isinstance(field_type, FieldType) or field_type.is_stub or not field_type.label:
                lines.append(f"Type: {type_name}")
            elif names_equal(field_type.name, field_type.label):
                lines.append(f"Type: {quote(field_type.label)}")
            else:
                lines.append(f"Type: {quote(field_type.label)} ({field_type.name})")

        flags = flags_of(element)
        if flags:
            lines.append("; ".join(flags))
        if element.max_length:
            lines.append(f"Max length: {element.max_length}")
        if element.default_value:
            lines.append(f"Default value: {quote(element.default_value)}")
        if element.comments and element.comments.strip():
            for text in element.comments.strip().splitlines():
                lines.append(text.rstrip().replace("*/", "*\\/"))
        if partition.is_override(element):
            lines.append("@override")

        writer.jsdoc(lines)
        prop = element.name if IDENTIFIER.match(element.name) else quote(element.name)
        writer.line(f"{prop}: {self._element_type(element, namespace)};")
