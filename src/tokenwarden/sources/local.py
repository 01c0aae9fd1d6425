"""Local secret sources: environment variables and files.

These mirror the ``env:VAR`` and ``file:/path`` credential sources of a
typical CLI configuration and are meant for development, CI, and
container setups where secrets are mounted as files.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from tokenwarden.exceptions import SecretFetchError
from tokenwarden.models import SecretLocation, SecretRef
from tokenwarden.sources.base import SecretSource


class EnvSecretSource(SecretSource):
    """Read secret material from an environment variable.

    The :attr:`~tokenwarden.models.SecretRef.identifier` is the variable
    name; the version is ignored.

    Args:
        environ: Mapping to read from. Defaults to :data:`os.environ`.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ if environ is not None else os.environ

    @property
    def location(self) -> SecretLocation:
        return SecretLocation.ENV

    def fetch(self, ref: SecretRef) -> bytes:
        value = self._environ.get(ref.identifier)
        if value is None:
            raise SecretFetchError(
                f"Environment variable '{ref.identifier}' is not set"
            )
        return value.encode("utf-8", errors="surrogateescape")


class FileSecretSource(SecretSource):
    """Read secret material from a file.

    The :attr:`~tokenwarden.models.SecretRef.identifier` is a path; relative
    paths resolve against *base_dir*. A single trailing newline, as left by
    most editors and ``kubectl create secret``, is removed.

    Args:
        base_dir: Directory relative paths are resolved against. Defaults to
            the current working directory.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = base_dir

    @property
    def location(self) -> SecretLocation:
        return SecretLocation.FILE

    def fetch(self, ref: SecretRef) -> bytes:
        path = Path(ref.identifier).expanduser()
        if not path.is_absolute() and self._base_dir is not None:
            path = self._base_dir / path
        if not path.is_file():
            raise SecretFetchError(f"Secret file not found: {path}")
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise SecretFetchError(f"Cannot read secret file {path}: {exc}") from exc
        if data.endswith(b"\r\n"):
            return data[:-2]
        if data.endswith(b"\n"):
            return data[:-1]
        return data
