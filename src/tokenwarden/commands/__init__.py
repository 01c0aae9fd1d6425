"""Built-in CLI commands for tokenwarden.

* :mod:`~tokenwarden.commands.init` -- write a blank ``conf.env`` template.
* :mod:`~tokenwarden.commands.check` -- validate the configuration and
  optionally fetch every secret.
* :mod:`~tokenwarden.commands.run` -- run the refresh engine in the
  foreground (``run``) or print one token (``token``).

Each module exports plain callback functions that
:mod:`tokenwarden.app` registers on the root app.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from tokenwarden.exceptions import TokenwardenError
from tokenwarden.output import error, suggest


def abort(exc: TokenwardenError, hint: str | None = None) -> NoReturn:
    """Report *exc* on stderr and exit with its exit code."""
    error(str(exc))
    if hint:
        suggest(hint)
    raise typer.Exit(code=exc.exit_code)
