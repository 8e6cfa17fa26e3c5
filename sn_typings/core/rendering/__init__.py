"""
Declaration rendering: namespace grouping, text rendering and output.
"""

from sn_typings.core.rendering.grouper import DEFAULT_NAMESPACE, NamespaceGrouper, namespace_of, short_name
from sn_typings.core.rendering.output import OutputDestination, OutputDestinationConflict
from sn_typings.core.rendering.renderer import Renderer

__all__ = [
    "DEFAULT_NAMESPACE",
    "NamespaceGrouper",
    "OutputDestination",
    "OutputDestinationConflict",
    "Renderer",
    "namespace_of",
    "short_name",
]
