"""
Namespace Grouper

Partitions tables by owning application scope. Group and table order is
fixed so identical cache contents always render identically.
"""

from sn_typings.core.schema.models import Package, Table, normalize_name


# Reserved key for the global namespace
DEFAULT_NAMESPACE = ""

GLOBAL_SCOPE = "global"


def namespace_of(table: Table) -> str:
    """
    Namespace key of a table: its application scope, or the default key.

    The scope ref wins; an owning package that is itself an application is
    used as a fallback.
    """
    for candidate in (table.scope, table.package):
        if not isinstance(candidate, Package) or candidate.is_stub:
            continue
        if candidate is table.package and not candidate.package_kind.is_application:
            continue
        scope = normalize_name(candidate.scope)
        if scope:
            return DEFAULT_NAMESPACE if scope == GLOBAL_SCOPE else scope
    return DEFAULT_NAMESPACE


def short_name(table: Table, namespace: str | None = None) -> str:
    """Table name without its ``<scope>_`` prefix."""
    namespace = namespace_of(table) if namespace is None else namespace
    if namespace and normalize_name(table.name).startswith(f"{namespace}_"):
        stripped = table.name[len(namespace) + 1:]
        if stripped:
            return stripped
    return table.name


class NamespaceGrouper:
    """
    Groups tables into namespaces.

    Example:
        >>> grouper = NamespaceGrouper()
        >>> groups = grouper.group([incident, widget])
        >>> [key for key, _ in grouper.ordered(groups)]
        ['', 'x_acme_app']
    """

    def group(self, tables: list[Table]) -> dict[str, list[Table]]:
        groups: dict[str, list[Table]] = {}
        seen: set[int] = set()
        for table in tables:
            table = table.canonical()  # type: ignore[assignment]
            if id(table) in seen:
                continue
            seen.add(id(table))
            groups.setdefault(namespace_of(table), []).append(table)
        return groups

    @staticmethod
    def ordered(groups: dict[str, list[Table]]) -> list[tuple[str, list[Table]]]:
        """Default namespace first, then keys ascending; tables by name within each."""
        keys = sorted(groups, key=lambda k: (k != DEFAULT_NAMESPACE, k))
        return [
            (key, sorted(groups[key], key=lambda t: (normalize_name(t.name), t.name)))
            for key in keys
        ]
