"""Token refresh -- workers that keep the token cache populated.

Classes:
    :class:`RefreshEngine` -- fetches secrets, publishes static ones and
    supervises the refresh threads.
    :class:`RefreshWorker` -- one fetch, exchange, store, sleep loop.
    :class:`Clock` / :class:`SystemClock` -- interruptible time source.
"""

from tokenwarden.refresh.clock import Clock, SystemClock
from tokenwarden.refresh.engine import EngineState, RefreshEngine
from tokenwarden.refresh.worker import RefreshWorker, WorkerState, fetch_secret, parse_response

__all__ = [
    "Clock",
    "EngineState",
    "RefreshEngine",
    "RefreshWorker",
    "SystemClock",
    "WorkerState",
    "fetch_secret",
    "parse_response",
]
