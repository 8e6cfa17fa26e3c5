"""
Core schema mirroring and rendering modules.
"""

from sn_typings.core.cancellation import CancellationToken, OperationCancelled
from sn_typings.core.logger import DiagnosticEntry, GenerationLogger, RunSummary

__all__ = [
    "CancellationToken",
    "DiagnosticEntry",
    "GenerationLogger",
    "OperationCancelled",
    "RunSummary",
]
