"""Shared test fixtures for tokenwarden.

Provides deterministic stand-ins for time and the network, isolated config
directories, and output state management. Fixtures are discovered by pytest
automatically.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Mapping, Optional, Union

import pytest

from tokenwarden.exchange.base import Exchanger
from tokenwarden.models import (
    Credential,
    EngineConfig,
    SecretLocation,
    SecretRef,
    TokenKind,
)
from tokenwarden.output import OutputFormat, OutputManager, reset_output, set_output
from tokenwarden.refresh.clock import Clock

TOKEN_URL = "https://auth.example.com/token"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock(Clock):
    """Clock whose waits return immediately and advance virtual time.

    Every requested wait is recorded in :attr:`waits`. After
    ``stop_after`` waits the stop event is set and the wait reports an
    interruption, which ends the worker loop.
    """

    def __init__(self, stop_after: Optional[int] = None) -> None:
        self.current = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.waits: list[float] = []
        self.stop_after = stop_after
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return self.current

    def wait(self, seconds: float, stop: threading.Event) -> bool:
        with self._lock:
            if stop.is_set():
                return False
            self.waits.append(seconds)
            self.current += timedelta(seconds=seconds)
            if self.stop_after is not None and len(self.waits) >= self.stop_after:
                stop.set()
                return False
        return True


Reply = Union[bytes, Exception, Callable[[], bytes]]


class FakeExchanger(Exchanger):
    """Exchanger answering from a per-URL script of replies.

    A reply may be bytes, an exception to raise, or a callable. The last
    reply for a URL repeats once the script is exhausted.
    """

    def __init__(self, replies: Mapping[str, Union[Reply, list[Reply]]]) -> None:
        self._replies = {
            url: list(r) if isinstance(r, list) else [r] for url, r in replies.items()
        }
        self.calls: list[tuple[str, bytes, dict[str, str], float]] = []
        self.closed = False
        self._lock = threading.Lock()

    def post(self, url: str, body: bytes, headers: Mapping[str, str]) -> bytes:
        with self._lock:
            self.calls.append((url, body, dict(headers), time.monotonic()))
            script = self._replies[url]
            reply = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply()
        return reply

    def close(self) -> None:
        self.closed = True


def make_credential(
    id: str = "primary",
    identifier: str = "PRIMARY_SECRET",
    token_url: Optional[str] = TOKEN_URL,
    token_type: TokenKind = TokenKind.BEARER,
    stagger_offsets: tuple[float, ...] = (0.0,),
    **kwargs,
) -> Credential:
    return Credential(
        id=id,
        secret=SecretRef(identifier=identifier),
        token_url=token_url,
        token_type=token_type,
        stagger_offsets=stagger_offsets,
        **kwargs,
    )


def make_config(*credentials: Credential, **kwargs) -> EngineConfig:
    return EngineConfig(
        secret_location=SecretLocation.ENV,
        credentials=credentials or (make_credential(),),
        **kwargs,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def clock_factory() -> Callable[..., FakeClock]:
    """Factory fixture: ``clock_factory(stop_after=3)``."""
    return FakeClock


@pytest.fixture
def fake_exchanger() -> Callable[..., FakeExchanger]:
    """Factory fixture: ``fake_exchanger({url: reply_or_list})``."""
    return FakeExchanger


@pytest.fixture
def credential_factory() -> Callable[..., Credential]:
    return make_credential


@pytest.fixture
def config_factory() -> Callable[..., EngineConfig]:
    return make_config


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The manager caches the stdout/stderr streams that CliRunner swaps out,
    so a stale instance would write to closed files in the next test.
    """
    yield
    reset_output()
    logger = logging.getLogger("tokenwarden")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------

ENV_VARS = [
    "SECRET_STORE",
    "NUM_SECRETS",
    "PROJECT_ID",
    "AWS_REGION",
    "TOKEN_URL",
    "TOKEN_FIELD",
    "FALLBACK_INTERVAL",
    "RETRY_MAX",
    "RETRY_WAIT_MIN",
]


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at *tmp_path*, clears every configuration
    variable and changes into *tmp_path* so that ``./conf.env`` is local.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    for index in range(1, 5):
        for prefix in ("SECRET_ID_", "SECRET_VERSION_", "TOKEN_URL_", "TOKEN_FIELD_",
                       "TOKEN_TYPE_", "STAGGER_OFFSETS_"):
            monkeypatch.delenv(f"{prefix}{index}", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN output manager for the duration of a test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
