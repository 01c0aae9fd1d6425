"""Token exchange -- the network round-trip that turns secret material into a token.

Classes:
    :class:`Exchanger` -- abstract capability used by refresh workers.
    :class:`HttpExchanger` -- :mod:`httpx`-backed implementation with a
    bounded retry budget and exponential backoff.

Example::

    from tokenwarden.exchange import HttpExchanger

    with HttpExchanger() as exchanger:
        body = exchanger.post(url, secret, {"Content-Type": "application/json"})
"""

from tokenwarden.exchange.base import EXCHANGE_HEADERS, Exchanger
from tokenwarden.exchange.http_exchanger import HttpExchanger

__all__ = ["EXCHANGE_HEADERS", "Exchanger", "HttpExchanger"]
