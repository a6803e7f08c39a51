"""
Cancellation - One-way, thread-safe stop signal shared by a traversal.
"""

import threading


class CancellationToken:
    """
    Write-once, read-many cancellation flag.

    A new token is created for every indexing operation; there is no
    reset. cancel() may be called any number of times from any thread.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout; returns the flag."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled()})"
