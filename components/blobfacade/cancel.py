
from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import BlobCancelled, ErrorCode


class CancelToken:
    """Caller-supplied abort signal, threaded through every driver call.

    A token is cancelled explicitly with ``cancel()``, by passing its
    deadline, or when its parent is cancelled. Children never cancel their
    parent, so a writer can abort its own session without touching the
    caller's token.
    """

    def __init__(self, parent: Optional["CancelToken"] = None, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._parent = parent
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def child(self, timeout: Optional[float] = None) -> "CancelToken":
        return CancelToken(parent=self, timeout=timeout)

    def cancel(self) -> None:
        self._event.set()

    @property
    def deadline_exceeded(self) -> bool:
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return True
        return self._parent is not None and self._parent.deadline_exceeded

    @property
    def cancelled(self) -> bool:
        if self._event.is_set() or self.deadline_exceeded:
            return True
        return self._parent is not None and self._parent.cancelled

    def raise_if_cancelled(self) -> None:
        if self.deadline_exceeded:
            raise BlobCancelled("deadline exceeded", code=ErrorCode.DEADLINE_EXCEEDED)
        if self.cancelled:
            raise BlobCancelled("operation cancelled")
