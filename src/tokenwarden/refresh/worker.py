"""Refresh worker -- the fetch, exchange, store, sleep loop for one credential.

A :class:`RefreshWorker` runs on its own thread for the lifetime of the
process. Its state machine is::

    FETCHING -> STAGGERING -> EXCHANGING -> STORING -> SLEEPING -> EXCHANGING ...

``FETCHING`` covers the one-time retrieval of secret material
(:func:`fetch_secret`, performed by the engine before any thread starts).
``STAGGERING`` is only entered by workers with a non-zero stagger offset and
only before the first exchange. The loop has no terminal state other than
``STOPPED``, reached when the engine's stop event is set.

The time until the next exchange is taken from the ``expires_in`` value of
the previous response. There is no independent scheduler. An expiry of zero
or less, an empty token, or a failed exchange all fall back to the
configured fallback interval, so a bad endpoint is retried at a bounded
rate instead of in a tight loop.
"""

from __future__ import annotations

import enum
import json
import logging
import math
import threading
from datetime import datetime
from typing import Any, Optional

from tokenwarden.cache import TokenCache
from tokenwarden.exceptions import ExchangeError, SecretFetchError
from tokenwarden.exchange.base import EXCHANGE_HEADERS, Exchanger
from tokenwarden.models import Credential, TokenKind, TokenRecord
from tokenwarden.refresh.clock import Clock, SystemClock
from tokenwarden.sources.base import SecretSource

logger = logging.getLogger(__name__)

# Longest single wait; threading refuses timeouts above TIMEOUT_MAX.
MAX_REFRESH_INTERVAL = min(float(threading.TIMEOUT_MAX), 365.0 * 24 * 3600)


class WorkerState(str, enum.Enum):
    """Lifecycle states of a :class:`RefreshWorker`."""

    FETCHING = "fetching"
    STAGGERING = "staggering"
    EXCHANGING = "exchanging"
    STORING = "storing"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


def fetch_secret(source: SecretSource, credential: Credential) -> bytes:
    """Retrieve the secret material for *credential*.

    This runs once per credential at startup. A failure here is fatal: without the base
    secret no exchange can ever succeed.

    Raises:
        SecretFetchError: If the source fails or returns empty material.
    """
    where = source.describe(credential.secret)
    logger.info("Fetching secret for credential '%s' from %s", credential.id, where)
    material = source.fetch(credential.secret)
    if not material:
        raise SecretFetchError(f"Secret for credential '{credential.id}' ({where}) is empty")
    return material


# --- Response parsing ---


def _resolve_path(document: Any, path: str) -> Any:
    """Walk a dotted *path* through nested dicts and lists."""
    node = document
    for segment in path.split("."):
        if isinstance(node, dict):
            node = node.get(segment)
        elif isinstance(node, list) and segment.isdigit():
            index = int(segment)
            node = node[index] if index < len(node) else None
        else:
            return None
        if node is None:
            return None
    return node


def _to_seconds(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except (ValueError, OverflowError):
            return 0
    return 0


def parse_response(
    body: bytes,
    token_field: str = "access_token",
    expiry_field: str = "expires_in",
) -> tuple[str, int]:
    """Extract the token and its lifetime from a token endpoint response.

    Missing or malformed fields do not raise: a missing token yields ``""``
    and a missing expiry yields ``0``. Callers treat an empty token as "no
    usable token this cycle" and a non-positive expiry as "retry after the
    fallback interval".

    Args:
        body: Raw response body.
        token_field: Dotted path to the token (``"data.token"``, ``"items.0.key"``).
        expiry_field: Dotted path to the lifetime in seconds.

    Returns:
        ``(token, expires_in)``.

    Example::

        >>> parse_response(b'{"access_token":"abc123","expires_in":3600}')
        ('abc123', 3600)
    """
    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return "", 0

    token = _resolve_path(document, token_field)
    if not isinstance(token, str):
        token = ""
    return token, _to_seconds(_resolve_path(document, expiry_field))


# --- Worker ---


class RefreshWorker:
    """Keeps one cache slot fresh by exchanging a credential's secret on a loop.

    Several workers may serve the same credential with different stagger
    offsets. They share the slot and the cache keeps whichever record was
    stored last.

    Args:
        credential: The credential to refresh. Its ``id`` is the cache slot.
        secret: Secret material from :func:`fetch_secret`, sent verbatim as
            the request body on every cycle.
        cache: Cache the tokens are published into.
        exchanger: Network exchange capability.
        clock: Time source. Defaults to :class:`SystemClock`.
        stagger_offset: Seconds to wait before the first exchange.
        fallback_interval: Seconds to wait after a failed or unusable
            exchange, or when the server reports no positive lifetime.
        index: Position among the credential's redundant workers.
    """

    def __init__(
        self,
        credential: Credential,
        secret: bytes,
        cache: TokenCache,
        exchanger: Exchanger,
        clock: Optional[Clock] = None,
        stagger_offset: float = 0.0,
        fallback_interval: float = 30.0,
        index: int = 0,
    ) -> None:
        if credential.token_url is None:
            raise ValueError(f"Credential '{credential.id}' has no token_url to refresh against")
        if fallback_interval <= 0:
            raise ValueError("fallback_interval must be positive")
        self._credential = credential
        self._secret = secret
        self._cache = cache
        self._exchanger = exchanger
        self._clock = clock or SystemClock()
        self._stagger_offset = stagger_offset
        self._fallback_interval = fallback_interval
        self._index = index

        self._state = WorkerState.FETCHING
        self.exchanges = 0
        self.failures = 0
        self.last_error: Optional[str] = None
        self.last_success: Optional[datetime] = None
        self.first_attempt_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        """Identifier used for thread names and log lines."""
        return f"{self._credential.id}-{self._index}"

    @property
    def slot(self) -> str:
        return self._credential.id

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def stagger_offset(self) -> float:
        return self._stagger_offset

    # ------------------------------------------------------------------ #
    # Single steps
    # ------------------------------------------------------------------ #

    def exchange(self) -> bytes:
        """POST the secret material to the token endpoint.

        Raises:
            ExchangeError: When the exchanger's retry budget is exhausted.
        """
        assert self._credential.token_url is not None
        return self._exchanger.post(self._credential.token_url, self._secret, EXCHANGE_HEADERS)

    def parse_response(self, body: bytes) -> tuple[str, int]:
        """Extract ``(token, expires_in)`` using the credential's field paths."""
        return parse_response(body, self._credential.token_field, self._credential.expiry_field)

    def publish(self, token: str, expires_in: int) -> TokenRecord:
        """Build a new record for *token* and store it in the cache."""
        kind = self._credential.token_type
        value = f"Bearer {token}" if kind == TokenKind.BEARER else token
        record = TokenRecord(
            slot=self.slot,
            value=value,
            kind=kind,
            expires_in=expires_in,
            observed_at=self._clock.now(),
        )
        self._cache.store(self.slot, record)
        return record

    def next_delay(self, expires_in: int) -> float:
        """Seconds until the next exchange for a token lasting *expires_in* seconds.

        Lifetimes beyond what a thread can wait on are capped at
        :data:`MAX_REFRESH_INTERVAL`.
        """
        if expires_in <= 0:
            return self._fallback_interval
        return min(float(expires_in), MAX_REFRESH_INTERVAL)

    def wait_for_next_cycle(self, seconds: float, stop: threading.Event) -> bool:
        """Sleep until the next exchange. Returns ``False`` if stopped meanwhile."""
        self._state = WorkerState.SLEEPING
        return self._clock.wait(seconds, stop)

    def run_once(self) -> float:
        """Perform one exchange cycle and return the delay before the next one.

        Never raises for runtime failures; they are logged and turned into the
        fallback delay.
        """
        self._state = WorkerState.EXCHANGING
        if self.first_attempt_at is None:
            self.first_attempt_at = self._clock.now()
        self.exchanges += 1

        try:
            body = self.exchange()
        except ExchangeError as exc:
            return self._transient_failure(str(exc))

        token, expires_in = self.parse_response(body)
        if not token:
            return self._transient_failure(
                f"response has no usable '{self._credential.token_field}' field"
            )

        self._state = WorkerState.STORING
        self.publish(token, expires_in)
        self.last_success = self._clock.now()
        self.last_error = None
        if expires_in <= 0:
            logger.warning(
                "Worker %s: response reported expiry %d, retrying in %.0fs",
                self.name, expires_in, self._fallback_interval,
            )
        else:
            logger.info("Worker %s: token refreshed, valid for %ds", self.name, expires_in)
        return self.next_delay(expires_in)

    # ------------------------------------------------------------------ #
    # Thread body
    # ------------------------------------------------------------------ #

    def run(self, stop: threading.Event) -> None:
        """Run the refresh loop until *stop* is set."""
        try:
            if self._stagger_offset > 0:
                self._state = WorkerState.STAGGERING
                logger.debug("Worker %s: staggering first exchange by %.1fs", self.name, self._stagger_offset)
                if not self._clock.wait(self._stagger_offset, stop):
                    return

            while not stop.is_set():
                try:
                    delay = self.run_once()
                except Exception as exc:
                    logger.exception("Worker %s: unexpected error during refresh", self.name)
                    delay = self._transient_failure(f"unexpected error: {exc}")
                try:
                    keep_going = self.wait_for_next_cycle(delay, stop)
                except (OverflowError, ValueError):
                    logger.exception("Worker %s: cannot wait %ss", self.name, delay)
                    keep_going = self.wait_for_next_cycle(self._fallback_interval, stop)
                if not keep_going:
                    break
        finally:
            self._state = WorkerState.STOPPED
            logger.debug("Worker %s stopped", self.name)

    def _transient_failure(self, reason: str) -> float:
        self.failures += 1
        self.last_error = reason
        logger.warning(
            "Worker %s: %s; retrying in %.0fs", self.name, reason, self._fallback_interval,
        )
        return self._fallback_interval
