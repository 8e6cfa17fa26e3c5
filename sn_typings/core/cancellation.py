"""
Cooperative cancellation for long-running generation passes.
"""

import threading


class OperationCancelled(Exception):
    """Raised when a cancellation has been requested."""
    pass


class CancellationToken:
    """
    Cancellation signal shared between the CLI, loader and renderer.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.raise_if_cancelled()
        Traceback (most recent call last):
        ...
        OperationCancelled: Operation cancelled
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled")


# Token that is never cancelled
NONE = CancellationToken()
