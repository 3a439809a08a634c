"""Single-slot snapshot handoff between the watcher thread and the reconcile loop."""

from __future__ import annotations

import threading
from typing import Generic, TypeVar

T = TypeVar("T")

_EMPTY = object()

# Upper bound on a single blocking wait, so a set stop event is noticed promptly
_POLL_SECONDS = 0.5


class MailboxClosed(Exception):
    """The producer side is gone and no snapshot is pending."""


class SnapshotMailbox(Generic[T]):
    """Holds at most one item; ``put`` blocks until the previous item is taken.

    The blocking put throttles the producer to the consumer's pace. Items are
    never coalesced: two puts in quick succession are observed as two gets.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._item: object = _EMPTY
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def put(self, item: T, stop: threading.Event | None = None) -> bool:
        """Deposit ``item``. Returns False if the mailbox closed or ``stop`` was set first."""
        with self._cond:
            while self._item is not _EMPTY:
                if self._closed or (stop is not None and stop.is_set()):
                    return False
                self._cond.wait(_POLL_SECONDS)
            if self._closed or (stop is not None and stop.is_set()):
                return False
            self._item = item
            self._cond.notify_all()
            return True

    def get(self, timeout: float) -> T | None:
        """Take the pending item, waiting up to ``timeout`` seconds.

        Returns None on timeout. Raises MailboxClosed once closed and drained.
        """
        with self._cond:
            if self._item is _EMPTY and not self._closed:
                self._cond.wait(timeout)
            if self._item is _EMPTY:
                if self._closed:
                    raise MailboxClosed()
                return None
            item = self._item
            self._item = _EMPTY
            self._cond.notify_all()
            return item  # type: ignore[return-value]

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
