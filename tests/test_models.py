"""Tests for the pydantic models."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from tokenwarden.models import (
    Credential,
    EngineConfig,
    SecretLocation,
    SecretRef,
    TokenKind,
    TokenRecord,
)


class TestTokenKind:
    @pytest.mark.parametrize("raw", ["Bearer", "bearer", "BEARER", " Bearer "])
    def test_bearer_is_case_insensitive(self, raw: str) -> None:
        assert TokenKind(raw) is TokenKind.BEARER

    @pytest.mark.parametrize("raw", ["APIKey", "apikey", "api_key", "API-KEY"])
    def test_api_key_spellings(self, raw: str) -> None:
        assert TokenKind(raw) is TokenKind.API_KEY

    def test_unknown_value_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenKind("Basic")


class TestSecretLocation:
    def test_lowercase_accepted(self) -> None:
        assert SecretLocation("gcp") is SecretLocation.GCP

    def test_unknown_rejected(self) -> None:
        with pytest.raises(ValueError):
            SecretLocation("VAULT")


class TestCredential:
    def test_defaults(self) -> None:
        cred = Credential(
            id="primary",
            secret=SecretRef(identifier="s"),
            token_url="https://auth.example.com/token",
        )
        assert cred.token_field == "access_token"
        assert cred.expiry_field == "expires_in"
        assert cred.token_type is TokenKind.BEARER
        assert cred.stagger_offsets == (0.0, 150.0)
        assert not cred.is_static

    def test_api_key_without_url_is_static(self) -> None:
        cred = Credential(
            id="key", secret=SecretRef(identifier="s"), token_type=TokenKind.API_KEY
        )
        assert cred.is_static

    def test_negative_offset_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Credential(
                id="p", secret=SecretRef(identifier="s"),
                token_url="https://x", stagger_offsets=(0.0, -1.0),
            )

    def test_empty_offsets_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Credential(
                id="p", secret=SecretRef(identifier="s"),
                token_url="https://x", stagger_offsets=(),
            )

    def test_duplicate_offsets_warn(self, caplog: pytest.LogCaptureFixture) -> None:
        Credential(
            id="p", secret=SecretRef(identifier="s"),
            token_url="https://x", stagger_offsets=(5.0, 5.0),
        )
        assert "Duplicate stagger offsets" in caplog.text

    def test_frozen(self, credential_factory) -> None:
        cred = credential_factory()
        with pytest.raises(ValidationError):
            cred.id = "other"


class TestEngineConfig:
    def test_duplicate_ids_rejected(self, credential_factory) -> None:
        with pytest.raises(ValidationError, match="Duplicate credential ids"):
            EngineConfig(
                secret_location=SecretLocation.ENV,
                credentials=(credential_factory(), credential_factory()),
            )

    def test_bearer_requires_token_url(self, credential_factory) -> None:
        with pytest.raises(ValidationError, match="requires 'token_url'"):
            EngineConfig(
                secret_location=SecretLocation.ENV,
                credentials=(credential_factory(token_url=None),),
            )

    def test_passthrough_needs_no_token_url(self, config_factory, credential_factory) -> None:
        config = config_factory(
            credential_factory(),
            credential_factory(id="secret-2", identifier="MAIL_SECRET", token_url=None),
        )
        assert config.passthrough_credential().id == "secret-2"
        assert [c.id for c in config.refreshed_credentials()] == ["primary"]
        assert config.static_credentials() == []

    def test_third_bearer_without_url_rejected(self, credential_factory) -> None:
        with pytest.raises(ValidationError, match="'secret-3' requires 'token_url'"):
            EngineConfig(
                secret_location=SecretLocation.ENV,
                credentials=(
                    credential_factory(),
                    credential_factory(id="secret-2"),
                    credential_factory(id="secret-3", token_url=None),
                ),
            )

    def test_mail_slot_collision_rejected(self, credential_factory) -> None:
        with pytest.raises(ValidationError, match="collides"):
            EngineConfig(
                secret_location=SecretLocation.ENV,
                credentials=(credential_factory(id="mail"),),
            )

    def test_gcp_requires_project(self, credential_factory) -> None:
        with pytest.raises(ValidationError, match="project_id"):
            EngineConfig(
                secret_location=SecretLocation.GCP,
                credentials=(credential_factory(),),
            )

    def test_at_least_one_credential(self) -> None:
        with pytest.raises(ValidationError):
            EngineConfig(secret_location=SecretLocation.ENV, credentials=())

    def test_single_credential_has_no_passthrough(self, config_factory) -> None:
        config = config_factory()
        assert config.passthrough_credential() is None
        assert [c.id for c in config.refreshed_credentials()] == ["primary"]

    def test_two_credentials_second_is_passthrough(self, config_factory, credential_factory) -> None:
        config = config_factory(
            credential_factory(),
            credential_factory(id="secret-2", identifier="MAIL_SECRET"),
        )
        assert config.passthrough_credential().id == "secret-2"
        assert [c.id for c in config.refreshed_credentials()] == ["primary"]
        assert config.static_credentials() == []

    def test_three_credentials_all_refreshed(self, config_factory, credential_factory) -> None:
        config = config_factory(
            credential_factory(),
            credential_factory(id="secret-2"),
            credential_factory(id="secret-3", token_url=None, token_type=TokenKind.API_KEY),
        )
        assert config.passthrough_credential() is None
        assert [c.id for c in config.refreshed_credentials()] == ["primary", "secret-2"]
        assert [c.id for c in config.static_credentials()] == ["secret-3"]

    def test_json_round_trip(self, config_factory) -> None:
        config = config_factory()
        assert EngineConfig.model_validate_json(config.model_dump_json()) == config


class TestTokenRecord:
    def test_expires_at(self) -> None:
        observed = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = TokenRecord(
            slot="primary", value="Bearer x", kind=TokenKind.BEARER,
            expires_in=60, observed_at=observed,
        )
        assert record.expires_at == observed + timedelta(seconds=60)
        assert not record.is_stale(observed + timedelta(seconds=59))
        assert record.is_stale(observed + timedelta(seconds=60))

    def test_static_record_never_stale(self) -> None:
        record = TokenRecord.from_secret("mail", b"secret")
        assert record.expires_at is None
        assert not record.is_stale(datetime(2999, 1, 1, tzinfo=timezone.utc))

    def test_from_secret_preserves_bytes(self) -> None:
        material = b"\x00\xffraw\n bytes"
        record = TokenRecord.from_secret("mail", material)
        assert record.kind is TokenKind.API_KEY
        assert record.as_bytes() == material

    def test_header_is_value(self) -> None:
        record = TokenRecord(slot="p", value="Bearer abc", kind=TokenKind.BEARER)
        assert record.header() == "Bearer abc"
