"""Init command -- write a blank environment template.

``tokenwarden init`` creates the ``conf.env`` file that the environment
configuration scheme reads (see :func:`tokenwarden.config.config_from_env`).
The same template is written automatically when no configuration exists.
"""

from __future__ import annotations

from pathlib import Path

import typer

from tokenwarden.output import success, suggest


def init_command(
    path: Path = typer.Option(
        Path("conf.env"), "--path", help="Where to write the template."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file."
    ),
) -> None:
    """Write a blank conf.env template.

    Example::

        tokenwarden init
        tokenwarden init --path /etc/tokenwarden/conf.env --force
    """
    from tokenwarden.commands import abort
    from tokenwarden.config import write_env_template
    from tokenwarden.exceptions import ConfigError

    try:
        target = write_env_template(path, force=force)
    except ConfigError as exc:
        abort(exc)
    success(f"Wrote template to {target}")
    suggest("Fill in SECRET_STORE, SECRET_ID_1 and TOKEN_URL, then run 'tokenwarden check'")
