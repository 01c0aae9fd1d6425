"""Secret source selection.

:func:`create_secret_source` maps the configured
:class:`~tokenwarden.models.SecretLocation` to a concrete
:class:`~tokenwarden.sources.base.SecretSource`. Cloud SDK modules are only
imported when their provider is selected.
"""

from __future__ import annotations

from tokenwarden.exceptions import ConfigError
from tokenwarden.models import EngineConfig, SecretLocation
from tokenwarden.sources.base import SecretSource


def create_secret_source(config: EngineConfig) -> SecretSource:
    """Create the secret source named by ``config.secret_location``.

    The following providers are available:

    - ``GCP`` -- Google Cloud Secret Manager, scoped to ``config.project_id``.
    - ``AWS`` -- AWS Secrets Manager, optionally pinned to ``config.aws_region``.
    - ``ENV`` -- process environment variables.
    - ``FILE`` -- files on the local filesystem.

    Returns:
        A ready-to-use :class:`SecretSource`.

    Raises:
        ConfigError: If the location has no provider.
    """
    location = config.secret_location
    if location == SecretLocation.GCP:
        from tokenwarden.sources.gcp import GCPSecretSource

        return GCPSecretSource(project_id=config.project_id or "")
    if location == SecretLocation.AWS:
        from tokenwarden.sources.aws import AWSSecretSource

        return AWSSecretSource(region=config.aws_region)
    if location == SecretLocation.ENV:
        from tokenwarden.sources.local import EnvSecretSource

        return EnvSecretSource()
    if location == SecretLocation.FILE:
        from tokenwarden.sources.local import FileSecretSource

        return FileSecretSource()
    raise ConfigError(f"No secret source available for location '{location}'")
