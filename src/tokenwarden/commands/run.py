"""Run and token commands -- drive a :class:`~tokenwarden.refresh.RefreshEngine`.

``tokenwarden run`` is the long-running service mode: it starts the engine,
waits for the first tokens, prints a table of populated slots and then
blocks until SIGINT or SIGTERM. ``tokenwarden token`` starts the engine
only long enough to obtain one slot and prints its value to stdout, so it
can be used from shell scripts::

    curl -H "Authorization: $(tokenwarden token primary)" https://api.example.com/
"""

from __future__ import annotations

import signal
import threading
from pathlib import Path
from typing import Any, Optional

import typer

from tokenwarden.cache import TokenCache
from tokenwarden.models import EngineConfig
from tokenwarden.output import info, print_data, print_table, success, warning
from tokenwarden.refresh import RefreshEngine


def build_engine(config: EngineConfig) -> RefreshEngine:
    """Create the engine for *config*. Replaced in tests."""
    return RefreshEngine(config, cache=TokenCache())


def _load(config_path: Optional[Path], env_file: Path) -> EngineConfig:
    from tokenwarden.commands import abort
    from tokenwarden.config import resolve_config
    from tokenwarden.exceptions import ConfigError

    try:
        return resolve_config(config_path=config_path, env_file=env_file)
    except ConfigError as exc:
        abort(exc, "Run 'tokenwarden init' to create a template")


def _start(engine: RefreshEngine) -> None:
    from tokenwarden.commands import abort
    from tokenwarden.exceptions import TokenwardenError

    try:
        engine.start()
    except TokenwardenError as exc:
        abort(exc)


def _slot_rows(engine: RefreshEngine) -> list[list[str]]:
    rows = []
    for slot in engine.expected_slots():
        record = engine.token(slot)
        if record is None:
            rows.append([slot, "-", "pending", "-"])
            continue
        expires = record.expires_at.isoformat() if record.expires_at else "never"
        rows.append([slot, record.kind.value, "ready", expires])
    return rows


def _wait_for_shutdown(exit_after: Optional[float]) -> None:
    """Block until SIGINT/SIGTERM, or for *exit_after* seconds when given."""
    shutdown = threading.Event()

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        shutdown.set()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        shutdown.wait(exit_after)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run_command(
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON config file."
    ),
    env_file: Path = typer.Option(
        Path("conf.env"), "--env-file", help="Environment file to read."
    ),
    ready_timeout: float = typer.Option(
        30.0, "--ready-timeout", help="Seconds to wait for the first tokens."
    ),
    exit_after: Optional[float] = typer.Option(
        None, "--exit-after", hidden=True, help="Stop after this many seconds."
    ),
) -> None:
    """Keep tokens refreshed until interrupted.

    Example::

        tokenwarden run
        tokenwarden run --config ./tokenwarden.json --ready-timeout 60
    """
    config = _load(config_path, env_file)
    engine = build_engine(config)
    _start(engine)
    try:
        if engine.wait_until_ready(ready_timeout):
            success("All slots populated")
        else:
            warning(f"Not every slot was populated within {ready_timeout:g}s; workers keep retrying")
        print_table(["Slot", "Kind", "State", "Expires"], _slot_rows(engine), title="Tokens")
        info("Refreshing tokens; press Ctrl-C to stop")
        _wait_for_shutdown(exit_after)
    finally:
        engine.stop()
    info("Stopped")


def token_command(
    slot: str = typer.Argument("primary", help="Cache slot to print."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON config file."
    ),
    env_file: Path = typer.Option(
        Path("conf.env"), "--env-file", help="Environment file to read."
    ),
    timeout: float = typer.Option(
        30.0, "--timeout", "-t", help="Seconds to wait for the token."
    ),
    header: bool = typer.Option(
        False, "--header", help="Print a full 'Authorization:' header line."
    ),
) -> None:
    """Print the current value of one token slot to stdout.

    Example::

        tokenwarden token
        tokenwarden token mail --timeout 5
    """
    from tokenwarden.commands import abort
    from tokenwarden.exceptions import ConfigError, ExchangeError

    config = _load(config_path, env_file)
    engine = build_engine(config)
    if slot not in engine.expected_slots():
        available = ", ".join(engine.expected_slots())
        abort(ConfigError(f"Unknown slot '{slot}'. Available slots: {available}"))

    _start(engine)
    try:
        if not engine.cache.wait_for(slot, timeout):
            reasons = sorted({
                row["last_error"] for row in engine.status()
                if row["slot"] == slot and row["last_error"]
            })
            detail = f": {'; '.join(reasons)}" if reasons else ""
            abort(ExchangeError(f"No token for slot '{slot}' within {timeout:g}s{detail}"))
        record = engine.token(slot)
        assert record is not None
        print_data(f"Authorization: {record.header()}" if header else record.value)
    finally:
        engine.stop()
