"""Abstract exchange capability."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping

EXCHANGE_HEADERS: Mapping[str, str] = {
    "Content-Type": "application/json",
    "Cache-Control": "no-cache",
}
"""Headers sent with every token exchange request."""


class Exchanger(ABC):
    """POST a request body to a token endpoint and return the raw response body.

    Implementations retry transient failures internally and raise
    :class:`~tokenwarden.exceptions.ExchangeError` once their retry budget
    is exhausted. They must be safe to call from several threads at once.
    """

    @abstractmethod
    def post(self, url: str, body: bytes, headers: Mapping[str, str]) -> bytes:
        """Send *body* to *url* and return the response body.

        Raises:
            ExchangeError: On a final network failure or error status.
        """
        ...

    def close(self) -> None:
        """Release transport resources. The default implementation is a no-op."""
        return None

    def __enter__(self) -> Exchanger:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
