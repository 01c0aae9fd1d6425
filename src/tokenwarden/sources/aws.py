"""AWS Secrets Manager source.

Secrets are addressed by bare secret id (name or ARN). Without an explicit
version the ``AWSCURRENT`` stage is read; a version starting with ``AWS``
is treated as a staging label, anything else as a version id.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tokenwarden.exceptions import SecretFetchError
from tokenwarden.models import SecretLocation, SecretRef
from tokenwarden.sources.base import SecretSource

logger = logging.getLogger(__name__)

CURRENT_STAGE = "AWSCURRENT"


class AWSSecretSource(SecretSource):
    """Fetch secrets from AWS Secrets Manager.

    Args:
        region: Optional region override; boto3's default resolution
            (``AWS_REGION``, profile, instance metadata) applies otherwise.
        client: Optional pre-built ``secretsmanager`` client (tests inject a
            mock here).
    """

    def __init__(self, region: Optional[str] = None, client: Optional[Any] = None) -> None:
        self._region = region
        self._client = client

    @property
    def location(self) -> SecretLocation:
        return SecretLocation.AWS

    def fetch(self, ref: SecretRef) -> bytes:
        kwargs: dict[str, str] = {"SecretId": ref.identifier}
        version = ref.version or CURRENT_STAGE
        if version.startswith("AWS"):
            kwargs["VersionStage"] = version
        else:
            kwargs["VersionId"] = version

        logger.debug("Fetching AWS secret %s (%s)", ref.identifier, version)
        try:
            response = self._get_client().get_secret_value(**kwargs)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise SecretFetchError(
                f"Error retrieving AWS secret {ref.identifier}: {code}"
            ) from exc
        except BotoCoreError as exc:
            raise SecretFetchError(
                f"Error retrieving AWS secret {ref.identifier}: {exc}"
            ) from exc

        if response.get("SecretString") is not None:
            return response["SecretString"].encode("utf-8")
        if response.get("SecretBinary") is not None:
            return bytes(response["SecretBinary"])
        raise SecretFetchError(f"AWS secret {ref.identifier} has no value")

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("secretsmanager", region_name=self._region)
        return self._client
