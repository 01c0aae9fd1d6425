"""Concurrency-safe token cache with lock-free reads.

The cache holds an immutable mapping of slot name to
:class:`~tokenwarden.models.TokenRecord`. A :meth:`TokenCache.store` builds
a new mapping under a writer lock and swaps the reference in a single
assignment; :meth:`TokenCache.load` reads whichever mapping is current
without taking any lock. Readers therefore never wait on a writer, and since
records are frozen they can never observe a half-written token.

Ordering is per slot only: the cache reflects whichever write completed
last ("last writer wins"), with no reconciliation between workers.

See Also:
    :class:`~tokenwarden.refresh.worker.RefreshWorker` -- the only writer
    of refreshed tokens.
"""

from __future__ import annotations

import threading
import time
from types import MappingProxyType
from typing import Any, Mapping, Optional

from tokenwarden.models import TokenRecord

PRIMARY_SLOT = "primary"
"""Slot of the first configured credential."""

MAIL_SLOT = "mail"
"""Default slot of the pass-through secret in a two-secret configuration."""


class TokenCache:
    """Process-wide holder of the current token per slot.

    Absence of a record is a valid state: before the first successful
    refresh :meth:`load` returns ``(None, False)``. Callers can therefore
    distinguish "never issued" from "issued but possibly stale" (see
    :meth:`~tokenwarden.models.TokenRecord.is_stale`).

    Example::

        cache = TokenCache()
        cache.store("primary", TokenRecord(slot="primary", value="Bearer x",
                                           kind=TokenKind.BEARER, expires_in=60))
        record, found = cache.load("primary")
    """

    def __init__(self) -> None:
        self._records: Mapping[str, TokenRecord] = MappingProxyType({})
        self._write_lock = threading.Lock()
        self._published = threading.Condition(self._write_lock)
        self._writes = 0

    def store(self, slot: str, record: TokenRecord) -> None:
        """Atomically replace the record held in *slot*.

        Args:
            slot: Slot name.
            record: The new record. Its ``slot`` must match *slot*.

        Raises:
            ValueError: If ``record.slot`` names a different slot.
        """
        if record.slot != slot:
            raise ValueError(f"Record for slot '{record.slot}' cannot be stored in '{slot}'")
        with self._write_lock:
            updated = dict(self._records)
            updated[slot] = record
            self._records = MappingProxyType(updated)
            self._writes += 1
            self._published.notify_all()

    def load(self, slot: str) -> tuple[Optional[TokenRecord], bool]:
        """Return the most recently stored record for *slot*.

        Never blocks on an in-flight :meth:`store`.

        Returns:
            ``(record, True)`` when a record exists, ``(None, False)``
            otherwise.
        """
        record = self._records.get(slot)
        return record, record is not None

    def get(self, slot: str) -> Optional[TokenRecord]:
        """Return the record for *slot*, or ``None`` if nothing was stored yet."""
        return self._records.get(slot)

    def wait_for(self, slot: str, timeout: Optional[float] = None) -> bool:
        """Block until *slot* holds a record.

        Args:
            slot: Slot name to wait for.
            timeout: Maximum seconds to wait. ``None`` waits forever.

        Returns:
            ``True`` if a record is present, ``False`` on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._published:
            while slot not in self._records:
                if deadline is None:
                    self._published.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._published.wait(remaining)
        return True

    def snapshot(self) -> Mapping[str, TokenRecord]:
        """Return a read-only view of every slot at a single point in time."""
        return self._records

    def slots(self) -> list[str]:
        """Return the names of all populated slots, sorted."""
        return sorted(self._records)

    def clear(self) -> None:
        """Drop every record. Intended for tests and shutdown."""
        with self._write_lock:
            self._records = MappingProxyType({})

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``slots`` (number of populated slots) and
            ``writes`` (total number of completed stores).
        """
        return {"slots": len(self._records), "writes": self._writes}
