"""Canonical Pydantic models shared across all tokenwarden modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Configuration models** -- loaded once at startup and immutable afterwards:
    :class:`TokenKind`, :class:`SecretLocation`, :class:`SecretRef`,
    :class:`Credential`, :class:`RetryConfig`, and :class:`EngineConfig`.

**Runtime models** -- produced by refresh workers and read by callers:
    :class:`TokenRecord`.

All models use Pydantic v2. Runtime records are frozen so that a published
token can never be modified in place; a refresh always publishes a new record.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


# --- Enumerations ---


class TokenKind(str, enum.Enum):
    """How a published token is presented to the upstream API.

    Values are matched case-insensitively when loaded from configuration, so
    ``"bearer"``, ``"Bearer"`` and ``"BEARER"`` all resolve to :attr:`BEARER`.
    Any other value is rejected.
    """

    BEARER = "Bearer"
    API_KEY = "APIKey"

    @classmethod
    def _missing_(cls, value: object) -> Optional[TokenKind]:
        if isinstance(value, str):
            folded = value.strip().lower().replace("_", "").replace("-", "")
            for member in cls:
                if member.value.lower() == folded:
                    return member
        return None


class SecretLocation(str, enum.Enum):
    """Which secret store holds the long-lived secret material.

    ``GCP`` and ``AWS`` are the production providers. ``ENV`` and ``FILE``
    read secrets from environment variables or local files and are intended
    for development and tests.
    """

    GCP = "GCP"
    AWS = "AWS"
    ENV = "ENV"
    FILE = "FILE"

    @classmethod
    def _missing_(cls, value: object) -> Optional[SecretLocation]:
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None


# --- Configuration models ---


class SecretRef(BaseModel):
    """Location of one secret inside the configured secret store.

    The provider itself comes from :attr:`EngineConfig.secret_location`; this
    model only carries the provider-specific identifier.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(
        min_length=1,
        description="Secret id (GCP/AWS), variable name (ENV), or path (FILE)",
    )
    version: Optional[str] = Field(
        default=None,
        description="Secret version; GCP defaults to '1', AWS to the AWSCURRENT stage",
    )


class Credential(BaseModel):
    """A configured identity whose secret material and refresh behaviour are managed.

    A ``Bearer`` credential is exchanged at :attr:`token_url` and published
    as ``"Bearer <token>"``. An ``APIKey`` credential with a ``token_url`` is
    exchanged the same way but published raw; without a ``token_url`` its
    secret material is published verbatim and never refreshed.

    :attr:`stagger_offsets` controls redundancy: one refresh worker is started
    per entry, and worker ``k`` waits ``stagger_offsets[k]`` seconds before
    its first exchange.

    Example::

        Credential(
            id="primary",
            secret=SecretRef(identifier="svc-account-key", version="3"),
            token_url="https://auth.example.com/token",
        )
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique id, also the token cache slot")
    secret: SecretRef
    token_url: Optional[str] = Field(
        default=None, description="Token endpoint receiving the secret as POST body"
    )
    token_field: str = Field(
        default="access_token",
        description="Dotted path to the token inside the JSON response",
    )
    expiry_field: str = Field(
        default="expires_in",
        description="Dotted path to the lifetime (seconds) inside the JSON response",
    )
    token_type: TokenKind = TokenKind.BEARER
    stagger_offsets: tuple[float, ...] = Field(
        default=(0.0, 150.0),
        description="Initial delay in seconds for each redundant worker",
    )

    @field_validator("stagger_offsets")
    @classmethod
    def _check_offsets(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        if not value:
            raise ValueError("stagger_offsets must contain at least one entry")
        if any(offset < 0 for offset in value):
            raise ValueError("stagger_offsets must not be negative")
        if len(set(value)) != len(value):
            logger.warning("Duplicate stagger offsets %s: workers will refresh in phase", value)
        return value

    @property
    def is_static(self) -> bool:
        """Whether the secret is published verbatim instead of being exchanged."""
        return self.token_url is None


class RetryConfig(BaseModel):
    """Retry budget for a single token exchange."""

    max_retries: int = Field(default=2, ge=0, description="Retries after the first attempt")
    wait_min: float = Field(default=0.01, ge=0, description="Minimum backoff in seconds")
    wait_max: float = Field(default=30.0, ge=0, description="Maximum backoff in seconds")
    timeout: float = Field(default=30.0, gt=0, description="Per-attempt timeout in seconds")


class EngineConfig(BaseModel):
    """Fully resolved configuration for a :class:`~tokenwarden.refresh.RefreshEngine`.

    Produced by :func:`~tokenwarden.config.resolve_config` from a JSON file
    or from environment variables. Immutable for the lifetime of the process.

    When exactly two credentials are configured, the second one is a
    pass-through secret: its material is published verbatim into
    :attr:`mail_slot` and it is never exchanged, so it needs no
    ``token_url``. Every other Bearer credential must name one.
    """

    model_config = ConfigDict(frozen=True)

    secret_location: SecretLocation
    project_id: Optional[str] = Field(default=None, description="GCP project id")
    aws_region: Optional[str] = Field(default=None, description="AWS region override")
    credentials: tuple[Credential, ...] = Field(min_length=1)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    fallback_interval: float = Field(
        default=30.0,
        gt=0,
        description="Delay before retrying after a failed or unusable exchange",
    )
    mail_slot: str = Field(default="mail", min_length=1)

    @model_validator(mode="after")
    def _check_consistency(self) -> EngineConfig:
        ids = [c.id for c in self.credentials]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate credential ids: {', '.join(duplicates)}")
        if self.mail_slot in ids:
            raise ValueError(f"mail_slot '{self.mail_slot}' collides with a credential id")
        if self.secret_location == SecretLocation.GCP and not self.project_id:
            raise ValueError("secret_location GCP requires 'project_id'")
        passthrough = self.passthrough_credential()
        for credential in self.credentials:
            if credential is passthrough:
                continue
            if credential.token_type == TokenKind.BEARER and not credential.token_url:
                raise ValueError(f"Bearer credential '{credential.id}' requires 'token_url'")
        return self

    def passthrough_credential(self) -> Optional[Credential]:
        """Return the credential published verbatim into the mail slot, if any."""
        if len(self.credentials) == 2:
            return self.credentials[1]
        return None

    def refreshed_credentials(self) -> list[Credential]:
        """Return the credentials that are exchanged by refresh workers."""
        return [c for c in self._own_slot_credentials() if not c.is_static]

    def static_credentials(self) -> list[Credential]:
        """Return the non-pass-through credentials published verbatim under their own id."""
        return [c for c in self._own_slot_credentials() if c.is_static]

    def _own_slot_credentials(self) -> list[Credential]:
        passthrough = self.passthrough_credential()
        if passthrough is None:
            return list(self.credentials)
        return [c for c in self.credentials if c.id != passthrough.id]


# --- Runtime models ---


class TokenRecord(BaseModel):
    """One published token value.

    Records are frozen: a refresh publishes a wholly new record, so a reader
    holding a reference always sees a complete, consistent value.

    Attributes:
        slot: Token cache slot the record was published into.
        value: The value to present upstream (``"Bearer abc"`` or a raw key).
        kind: How the value is presented.
        expires_in: Server-reported lifetime in seconds, or ``None`` when the
            value never expires (static and pass-through secrets).
        observed_at: UTC time at which the value was received.
        material: Original secret bytes of a static record, kept so that
            non-UTF-8 secrets survive unchanged.
    """

    model_config = ConfigDict(frozen=True)

    slot: str
    value: str
    kind: TokenKind
    expires_in: Optional[int] = None
    observed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    material: Optional[bytes] = Field(default=None, repr=False)

    @classmethod
    def from_secret(cls, slot: str, material: bytes, kind: TokenKind = TokenKind.API_KEY) -> TokenRecord:
        """Build a never-expiring record holding *material* byte-for-byte."""
        return cls(
            slot=slot,
            value=material.decode("utf-8", errors="replace"),
            kind=kind,
            expires_in=None,
            material=material,
        )

    @property
    def expires_at(self) -> Optional[datetime]:
        """UTC expiry time, or ``None`` for never-expiring records."""
        if self.expires_in is None:
            return None
        return self.observed_at + timedelta(seconds=self.expires_in)

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """Whether the server-reported lifetime has elapsed.

        A stale record may still be accepted upstream; it only means a
        refresh is overdue.
        """
        expires = self.expires_at
        if expires is None:
            return False
        return (now or datetime.now(timezone.utc)) >= expires

    def header(self) -> str:
        """Return the value to send as the ``Authorization`` header."""
        return self.value

    def as_bytes(self) -> bytes:
        """Return the value as bytes, exactly as received for static secrets."""
        if self.material is not None:
            return self.material
        return self.value.encode("utf-8")
