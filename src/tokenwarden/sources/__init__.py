"""Secret sources -- where long-lived secret material comes from.

This package provides a small pluggable layer over secret stores:

- :class:`SecretSource` -- abstract base class for every provider.
- :class:`~tokenwarden.sources.gcp.GCPSecretSource` -- Google Cloud Secret
  Manager (project / secret id / version).
- :class:`~tokenwarden.sources.aws.AWSSecretSource` -- AWS Secrets Manager
  (bare secret id).
- :class:`EnvSecretSource` and :class:`FileSecretSource` -- local sources for
  development and tests.
- :func:`create_secret_source` -- factory selecting the provider named by
  :attr:`~tokenwarden.models.EngineConfig.secret_location`.

The cloud providers live in their own modules so that their SDKs are only
imported when selected.

Secret material is fetched exactly once per credential, at engine startup.
A failed fetch raises :class:`~tokenwarden.exceptions.SecretFetchError` and is
fatal.

Typical usage::

    from tokenwarden.sources import create_secret_source

    source = create_secret_source(config)
    material = source.fetch(config.credentials[0].secret)
"""

from tokenwarden.sources.base import SecretSource
from tokenwarden.sources.factory import create_secret_source
from tokenwarden.sources.local import EnvSecretSource, FileSecretSource

__all__ = [
    "EnvSecretSource",
    "FileSecretSource",
    "SecretSource",
    "create_secret_source",
]
