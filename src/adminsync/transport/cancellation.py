"""Cancellation tokens shared between the event loop and transport threads."""

import threading


class CancellationToken:
    """
    One-shot cancellation flag.

    Safe to check from the worker thread running a blocking request while the
    event loop thread cancels it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
