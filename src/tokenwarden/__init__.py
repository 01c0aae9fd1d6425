"""tokenwarden -- keep short-lived bearer credentials fresh for a long-running process.

The package pulls long-lived secret material from a secret store once at
startup, exchanges it for short-lived tokens at a token endpoint, and keeps
those tokens fresh forever by re-exchanging before they expire. The current
tokens live in a :class:`~tokenwarden.cache.TokenCache` that any thread can
read without contention.

Typical usage::

    from tokenwarden.config import resolve_config
    from tokenwarden.refresh import RefreshEngine

    with RefreshEngine(resolve_config()) as engine:
        engine.wait_until_ready(timeout=30)
        record = engine.token("primary")
        headers = {"Authorization": record.header()}

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG paths, config files, and environment resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting and logging setup.
"""

__version__ = "0.3.0"
