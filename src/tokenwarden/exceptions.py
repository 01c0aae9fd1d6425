"""Exception hierarchy for tokenwarden.

All exceptions inherit from :class:`TokenwardenError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`tokenwarden.exit_codes`.
The CLI entry point in :func:`tokenwarden.app.main` catches
``TokenwardenError`` and exits with the appropriate code.

Only startup failures ever reach a caller. Errors raised while a refresh
worker is running are logged by the worker and never propagate.

Subclass hierarchy::

    TokenwardenError (exit 1)
    +-- ConfigError       (exit 2)
    +-- SecretFetchError  (exit 3)
    +-- ExchangeError     (exit 4)
"""

from tokenwarden.exit_codes import (
    EXIT_CONFIG_ERROR,
    EXIT_EXCHANGE_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_SECRET_FETCH_FAILURE,
)


class TokenwardenError(Exception):
    """Base exception for all tokenwarden errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(TokenwardenError):
    """Raised for missing or invalid configuration (fatal at startup)."""

    exit_code = EXIT_CONFIG_ERROR


class SecretFetchError(TokenwardenError):
    """Raised when a secret store cannot return the requested secret material."""

    exit_code = EXIT_SECRET_FETCH_FAILURE


class ExchangeError(TokenwardenError):
    """Raised when a token exchange fails after the retry budget is exhausted.

    Args:
        message: Human-readable error description.
        status_code: HTTP status of the final attempt, when a response was
            received at all.
        attempts: Number of attempts made before giving up.
    """

    exit_code = EXIT_EXCHANGE_FAILURE

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts
