"""Tests for the Typer CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tokenwarden import __version__
from tokenwarden.app import app, main
from tokenwarden.config import ENV_TEMPLATE
from tokenwarden.exceptions import ExchangeError
from tokenwarden.exchange.base import Exchanger
from tokenwarden.refresh import RefreshEngine

URL = "https://auth.example.com/token"
GOOD = b'{"access_token":"abc123","expires_in":3600}'


class StaticExchanger(Exchanger):
    def __init__(self, reply) -> None:
        self.reply = reply

    def post(self, url, body, headers) -> bytes:
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture
def env_store(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Configure a single ENV-backed credential through environment variables."""
    for key, value in {
        "SECRET_STORE": "ENV",
        "NUM_SECRETS": "1",
        "SECRET_ID_1": "TW_PRIMARY_SECRET",
        "TOKEN_URL": URL,
        "TOKEN_FIELD": "access_token",
        "STAGGER_OFFSETS_1": "0",
        "TW_PRIMARY_SECRET": '{"client_id":"svc"}',
    }.items():
        monkeypatch.setenv(key, value)
    return isolated_config


@pytest.fixture
def patch_engine(monkeypatch: pytest.MonkeyPatch):
    """Make CLI commands build engines around a canned exchanger reply."""

    def _patch(reply) -> None:
        monkeypatch.setattr(
            "tokenwarden.commands.run.build_engine",
            lambda config: RefreshEngine(config, exchanger=StaticExchanger(reply)),
        )

    return _patch


class TestGlobalOptions:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self, cli_runner) -> None:
        result = cli_runner.invoke(app, [])
        assert "init" in result.output
        assert "token" in result.output


class TestInit:
    def test_writes_template(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["init"])
        assert result.exit_code == 0, result.output
        assert (isolated_config / "conf.env").read_text() == ENV_TEMPLATE

    def test_refuses_to_overwrite(self, cli_runner, isolated_config: Path) -> None:
        (isolated_config / "conf.env").write_text("SECRET_STORE=AWS\n")
        result = cli_runner.invoke(app, ["--no-color", "init"])
        assert result.exit_code == 2
        assert "already exists" in result.output
        assert (isolated_config / "conf.env").read_text() == "SECRET_STORE=AWS\n"

    def test_force(self, cli_runner, isolated_config: Path) -> None:
        (isolated_config / "custom.env").write_text("x")
        result = cli_runner.invoke(app, ["init", "--path", "custom.env", "--force"])
        assert result.exit_code == 0
        assert (isolated_config / "custom.env").read_text() == ENV_TEMPLATE


class TestCheck:
    def test_lists_credentials_as_json(self, cli_runner, env_store: Path) -> None:
        result = cli_runner.invoke(app, ["--json", "--quiet", "check"])
        assert result.exit_code == 0, result.output
        rows = json.loads(result.output)
        assert rows == [{
            "ID": "primary",
            "Slot": "primary",
            "Mode": "refresh",
            "Type": "Bearer",
            "Secret": "TW_PRIMARY_SECRET",
            "Token URL": URL,
            "Offsets": "0",
        }]

    def test_fetch_ok(self, cli_runner, env_store: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "check", "--fetch"])
        assert result.exit_code == 0, result.output
        assert "All secrets fetched" in result.output
        assert "client_id" not in result.output

    def test_fetch_failure(self, cli_runner, env_store: Path, monkeypatch) -> None:
        monkeypatch.delenv("TW_PRIMARY_SECRET")
        result = cli_runner.invoke(app, ["--no-color", "check", "--fetch"])
        assert result.exit_code == 3
        assert "failed" in result.output

    def test_no_configuration(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "check"])
        assert result.exit_code == 2
        assert "template" in result.output
        assert (isolated_config / "conf.env").is_file()


class TestToken:
    def test_prints_bearer_token(self, cli_runner, env_store: Path, patch_engine) -> None:
        patch_engine(GOOD)
        result = cli_runner.invoke(app, ["--quiet", "token", "primary", "--timeout", "5"])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Bearer abc123"

    def test_header_format(self, cli_runner, env_store: Path, patch_engine) -> None:
        patch_engine(GOOD)
        result = cli_runner.invoke(app, ["--quiet", "token", "--header"])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Authorization: Bearer abc123"

    def test_unknown_slot(self, cli_runner, env_store: Path, patch_engine) -> None:
        patch_engine(GOOD)
        result = cli_runner.invoke(app, ["--no-color", "token", "mail"])
        assert result.exit_code == 2
        assert "Available slots: primary" in result.output

    def test_exchange_failure_times_out(self, cli_runner, env_store: Path, patch_engine) -> None:
        patch_engine(ExchangeError("HTTP 401"))
        result = cli_runner.invoke(
            app, ["--no-color", "--quiet", "token", "primary", "--timeout", "0.3"]
        )
        assert result.exit_code == 4
        assert "HTTP 401" in result.output

    def test_secret_fetch_failure(self, cli_runner, env_store: Path, patch_engine, monkeypatch) -> None:
        patch_engine(GOOD)
        monkeypatch.delenv("TW_PRIMARY_SECRET")
        result = cli_runner.invoke(app, ["--no-color", "token"])
        assert result.exit_code == 3


class TestRun:
    def test_runs_until_stopped(self, cli_runner, env_store: Path, patch_engine) -> None:
        patch_engine(GOOD)
        result = cli_runner.invoke(
            app, ["--no-color", "run", "--ready-timeout", "5", "--exit-after", "0.2"]
        )
        assert result.exit_code == 0, result.output
        assert "primary" in result.output
        assert "ready" in result.output
        assert "abc123" not in result.output


class TestMain:
    def test_unexpected_error_writes_crash_log(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def boom() -> None:
            raise RuntimeError("kaboom")

        monkeypatch.setattr("tokenwarden.app.app", boom)
        monkeypatch.setattr("tokenwarden.app._setup_signal_handlers", lambda: None)
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        logs = list((isolated_config / "data" / "tokenwarden" / "logs").glob("crash-*.log"))
        assert len(logs) == 1
        assert "kaboom" in logs[0].read_text()
