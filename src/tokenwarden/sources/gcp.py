"""Google Cloud Secret Manager source.

Secrets are addressed as ``projects/<project>/secrets/<id>/versions/<version>``.
The version defaults to ``"1"`` when the reference does not name one.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import secretmanager

from tokenwarden.exceptions import SecretFetchError
from tokenwarden.models import SecretLocation, SecretRef
from tokenwarden.sources.base import SecretSource

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "1"


class GCPSecretSource(SecretSource):
    """Fetch secrets from Google Cloud Secret Manager.

    The client is created lazily on the first :meth:`fetch` using
    application-default credentials.

    Args:
        project_id: GCP project owning the secrets.
        client: Optional pre-built ``SecretManagerServiceClient`` (tests
            inject a mock here).
    """

    def __init__(self, project_id: str, client: Optional[Any] = None) -> None:
        if not project_id:
            raise ValueError("project_id is required for the GCP secret source")
        self._project_id = project_id
        self._client = client
        self._owns_client = client is None

    @property
    def location(self) -> SecretLocation:
        return SecretLocation.GCP

    def secret_name(self, ref: SecretRef) -> str:
        """Return the fully qualified resource name for *ref*."""
        version = ref.version or DEFAULT_VERSION
        return f"projects/{self._project_id}/secrets/{ref.identifier}/versions/{version}"

    def fetch(self, ref: SecretRef) -> bytes:
        name = self.secret_name(ref)
        client = self._get_client()
        logger.debug("Accessing GCP secret %s", name)
        try:
            response = client.access_secret_version(request={"name": name})
        except gcp_exceptions.GoogleAPIError as exc:
            raise SecretFetchError(f"Failed to access secret version {name}: {exc}") from exc
        return bytes(response.payload.data)

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            transport = getattr(self._client, "transport", None)
            if transport is not None:
                transport.close()
            self._client = None

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                self._client = secretmanager.SecretManagerServiceClient()
            except auth_exceptions.GoogleAuthError as exc:
                raise SecretFetchError(f"Failed to set up Secret Manager client: {exc}") from exc
        return self._client
