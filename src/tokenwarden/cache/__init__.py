"""In-memory token cache for tokenwarden.

This package provides :class:`TokenCache`, the process-wide holder of the
latest :class:`~tokenwarden.models.TokenRecord` per slot. Refresh workers
write to it; any thread in the process may read from it at any time.

Slots are keyed by :attr:`~tokenwarden.models.Credential.id`. Two names are
well known: :data:`PRIMARY_SLOT` for the first configured credential and
:data:`MAIL_SLOT` for the pass-through secret of a two-secret configuration.
"""

from tokenwarden.cache.cache import MAIL_SLOT, PRIMARY_SLOT, TokenCache

__all__ = ["MAIL_SLOT", "PRIMARY_SLOT", "TokenCache"]
