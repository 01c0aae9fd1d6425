"""Abstract base class for secret sources.

To implement a new provider, subclass :class:`SecretSource`, set the
:attr:`~SecretSource.location` property, and implement
:meth:`~SecretSource.fetch`. Optionally override :meth:`~SecretSource.close`
to release client resources.

See Also:
    :func:`tokenwarden.sources.factory.create_secret_source` for provider
    selection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tokenwarden.models import SecretLocation, SecretRef


class SecretSource(ABC):
    """Abstract base class for secret providers.

    Every concrete provider must supply:

    1. A :attr:`location` property naming the
       :class:`~tokenwarden.models.SecretLocation` it serves.
    2. A :meth:`fetch` implementation that resolves a
       :class:`~tokenwarden.models.SecretRef` to raw bytes.

    Implementations differ only in how the reference is resolved; the bytes
    they return are used verbatim as the token exchange request body.
    """

    @property
    @abstractmethod
    def location(self) -> SecretLocation:
        """Return the secret location this source serves."""
        ...

    @abstractmethod
    def fetch(self, ref: SecretRef) -> bytes:
        """Retrieve the secret material identified by *ref*.

        Args:
            ref: Provider-specific identifier and optional version.

        Returns:
            The raw secret bytes.

        Raises:
            SecretFetchError: If the secret cannot be retrieved.
        """
        ...

    def describe(self, ref: SecretRef) -> str:
        """Return a log-safe description of *ref* (never the secret itself)."""
        if ref.version:
            return f"{self.location.value}:{ref.identifier}@{ref.version}"
        return f"{self.location.value}:{ref.identifier}"

    def close(self) -> None:
        """Release any client resources. The default implementation is a no-op."""
        return None

    def __enter__(self) -> SecretSource:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
