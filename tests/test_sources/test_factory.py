"""Tests for create_secret_source."""

from __future__ import annotations

import pytest

from tokenwarden.models import EngineConfig, SecretLocation
from tokenwarden.sources import EnvSecretSource, FileSecretSource, create_secret_source


@pytest.mark.parametrize(
    "location, expected",
    [(SecretLocation.ENV, EnvSecretSource), (SecretLocation.FILE, FileSecretSource)],
)
def test_local_sources(config_factory, location, expected) -> None:
    config = config_factory().model_copy(update={"secret_location": location})
    assert isinstance(create_secret_source(config), expected)


def test_gcp_source_uses_project(credential_factory) -> None:
    from tokenwarden.sources.gcp import GCPSecretSource

    config = EngineConfig(
        secret_location=SecretLocation.GCP,
        project_id="my-project",
        credentials=(credential_factory(),),
    )
    source = create_secret_source(config)
    assert isinstance(source, GCPSecretSource)
    assert source.secret_name(config.credentials[0].secret).startswith("projects/my-project/")


def test_aws_source(credential_factory) -> None:
    from tokenwarden.sources.aws import AWSSecretSource

    config = EngineConfig(
        secret_location=SecretLocation.AWS,
        aws_region="eu-west-1",
        credentials=(credential_factory(),),
    )
    assert isinstance(create_secret_source(config), AWSSecretSource)
