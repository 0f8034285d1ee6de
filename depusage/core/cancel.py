"""Cooperative cancellation for analysis runs."""

from __future__ import annotations

import threading

from depusage.exceptions import AnalysisCancelledError


class CancelToken:
    """Thread-safe flag checked before every directory step and file read."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelledError("analysis cancelled")
