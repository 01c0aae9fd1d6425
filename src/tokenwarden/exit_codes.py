"""Numeric process exit codes for the ``tokenwarden`` CLI.

Each constant maps to a specific failure category and is referenced by the
corresponding :class:`~tokenwarden.exceptions.TokenwardenError` subclass.
Supervisors (systemd, Kubernetes, shell wrappers) can inspect the exit code
to tell a bad deployment apart from an unreachable secret store.

Example::

    $ tokenwarden run
    $ echo $?
    3   # EXIT_SECRET_FETCH_FAILURE -- the secret store refused the request
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIG_ERROR = 2
"""Configuration is missing or invalid."""

EXIT_SECRET_FETCH_FAILURE = 3
"""Secret material could not be retrieved at startup."""

EXIT_EXCHANGE_FAILURE = 4
"""A token exchange failed and no token became available."""

EXIT_INTERRUPTED = 130
"""The process was interrupted (SIGINT)."""
