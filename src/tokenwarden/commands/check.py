"""Check command -- validate configuration without starting any worker.

Resolves the configuration exactly as ``tokenwarden run`` would and prints
one row per credential. With ``--fetch`` every secret is retrieved from the
store as well, which verifies credentials and permissions end to end
without contacting any token endpoint. Secret values are never printed.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from tokenwarden.models import EngineConfig
from tokenwarden.output import error, info, print_table, success


def _credential_rows(config: EngineConfig) -> list[list[str]]:
    passthrough = config.passthrough_credential()
    rows = []
    for credential in config.credentials:
        if passthrough is not None and credential.id == passthrough.id:
            mode, slot = "pass-through", config.mail_slot
        elif credential.is_static:
            mode, slot = "static", credential.id
        else:
            mode, slot = "refresh", credential.id
        offsets = ",".join(f"{o:g}" for o in credential.stagger_offsets) if mode == "refresh" else "-"
        rows.append([
            credential.id,
            slot,
            mode,
            credential.token_type.value,
            credential.secret.identifier,
            credential.token_url or "-",
            offsets,
        ])
    return rows


def check_command(
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON config file."
    ),
    env_file: Path = typer.Option(
        Path("conf.env"), "--env-file", help="Environment file to read."
    ),
    fetch: bool = typer.Option(
        False, "--fetch", help="Also fetch every secret from the store."
    ),
) -> None:
    """Validate the configuration and list the configured credentials.

    Example::

        tokenwarden check
        tokenwarden check --config ./tokenwarden.json --fetch
    """
    from tokenwarden.commands import abort
    from tokenwarden.config import resolve_config
    from tokenwarden.exceptions import ConfigError, SecretFetchError, TokenwardenError
    from tokenwarden.exit_codes import EXIT_SECRET_FETCH_FAILURE
    from tokenwarden.refresh.worker import fetch_secret
    from tokenwarden.sources.factory import create_secret_source

    try:
        config = resolve_config(config_path=config_path, env_file=env_file)
    except ConfigError as exc:
        abort(exc, "Run 'tokenwarden init' to create a template")

    info(f"Secret store: {config.secret_location.value}")
    print_table(
        ["ID", "Slot", "Mode", "Type", "Secret", "Token URL", "Offsets"],
        _credential_rows(config),
        title="Credentials",
    )

    if not fetch:
        success("Configuration is valid")
        return

    try:
        source = create_secret_source(config)
    except TokenwardenError as exc:
        abort(exc)

    failed = 0
    results = []
    with source:
        for credential in config.credentials:
            try:
                fetch_secret(source, credential)
                results.append([credential.id, "ok", ""])
            except SecretFetchError as exc:
                failed += 1
                results.append([credential.id, "failed", str(exc)])

    print_table(["ID", "Fetch", "Detail"], results, title="Secrets")
    if failed:
        error(f"{failed} of {len(results)} secret(s) could not be fetched")
        raise typer.Exit(code=EXIT_SECRET_FETCH_FAILURE)
    success("All secrets fetched")
