"""HTTP token exchange with bounded retry.

This module provides :class:`HttpExchanger`, which wraps a shared
:class:`httpx.Client` and layers on:

- **Retry with backoff** -- connection errors, timeouts, 429 and 5xx
  responses are retried up to ``max_retries`` times. The delay doubles each
  attempt starting from ``wait_min`` and is capped at ``wait_max``.
- **Error mapping** -- any final failure, including a non-retryable 4xx,
  surfaces as :class:`~tokenwarden.exceptions.ExchangeError`.

A single instance is shared by every refresh worker; :class:`httpx.Client`
is thread-safe.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Mapping, Optional

import httpx

from tokenwarden.exceptions import ExchangeError
from tokenwarden.exchange.base import EXCHANGE_HEADERS, Exchanger
from tokenwarden.models import RetryConfig

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class HttpExchanger(Exchanger):
    """Token exchange over HTTP POST.

    Args:
        retry: Retry budget and per-attempt timeout.
        client: Optional pre-built :class:`httpx.Client`. When omitted, one
            is created lazily and closed by :meth:`close`.
        sleep: Function used to wait between attempts (injected in tests).

    Example::

        exchanger = HttpExchanger(RetryConfig(max_retries=2, wait_min=0.01))
        body = exchanger.post("https://auth.example.com/token", b"{...}", {})
    """

    def __init__(
        self,
        retry: Optional[RetryConfig] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._retry = retry or RetryConfig()
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------ #
    # Exchanger
    # ------------------------------------------------------------------ #

    def post(self, url: str, body: bytes, headers: Mapping[str, str] = EXCHANGE_HEADERS) -> bytes:
        """POST *body* to *url*, retrying transient failures.

        Args:
            url: Token endpoint.
            body: Raw request body (the secret material).
            headers: Request headers.

        Returns:
            The raw response body of the first successful (2xx/3xx) attempt.

        Raises:
            ExchangeError: When the final attempt fails at the network level
                or returns an error status, or after :meth:`close`.
        """
        client = self._get_client()
        max_retries = self._retry.max_retries
        attempts = max_retries + 1

        for attempt in range(attempts):
            try:
                response = client.post(url, content=body, headers=dict(headers))
            except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as exc:
                if attempt < max_retries:
                    self._backoff(attempt, f"connection error: {exc}")
                    continue
                raise ExchangeError(
                    f"Token exchange with {url} failed after {attempts} attempts: {exc}",
                    attempts=attempts,
                ) from exc
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise ExchangeError(
                    f"Token exchange with {url} failed: {exc}",
                    attempts=attempt + 1,
                ) from exc

            status = response.status_code
            if status in RETRYABLE_STATUS and attempt < max_retries:
                self._backoff(attempt, f"HTTP {status}")
                continue
            if status >= 400:
                detail = response.text[:200] if response.text else ""
                message = f"Token exchange with {url} returned HTTP {status}"
                if detail:
                    message = f"{message}: {detail}"
                raise ExchangeError(message, status_code=status, attempts=attempt + 1)
            return response.content

        # Every path through the loop returns or raises.
        raise ExchangeError(f"Token exchange with {url} failed", attempts=attempts)  # pragma: no cover

    def close(self) -> None:
        """Close the underlying client if this exchanger created it.

        Later calls to :meth:`post` fail instead of opening a new client.
        """
        with self._lock:
            self._closed = True
            if self._client is not None and self._owns_client:
                self._client.close()
                self._client = None

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _get_client(self) -> httpx.Client:
        with self._lock:
            if self._closed:
                raise ExchangeError("Token exchanger is closed")
            if self._client is None:
                self._client = httpx.Client(
                    timeout=self._retry.timeout,
                    follow_redirects=True,
                )
            return self._client

    def _backoff(self, attempt: int, reason: str) -> None:
        delay = min(self._retry.wait_max, self._retry.wait_min * (2 ** attempt))
        logger.debug(
            "Token exchange %s, retrying in %.3fs (attempt %d/%d)",
            reason, delay, attempt + 1, self._retry.max_retries,
        )
        self._sleep(delay)
