"""Refresh engine -- startup sequencing and worker supervision.

:class:`RefreshEngine` owns the process-wide :class:`~tokenwarden.cache.TokenCache`
and the refresh threads that keep it populated. Startup is ordered:

1. Every credential's secret material is fetched. Any failure aborts the
   start with :class:`~tokenwarden.exceptions.SecretFetchError` before a
   single thread exists.
2. Static secrets are published: the pass-through secret of a two-secret
   configuration goes into the mail slot, and ``APIKey`` credentials
   without a token endpoint go into their own slot.
3. One :class:`~tokenwarden.refresh.worker.RefreshWorker` per stagger
   offset is launched for every remaining credential.

Workers are independent. A failing worker never stops another, and the
engine never restarts a worker, since a worker only exits when stopped.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Any, Optional

from tokenwarden.cache import TokenCache
from tokenwarden.exchange.base import Exchanger
from tokenwarden.models import Credential, EngineConfig, TokenKind, TokenRecord
from tokenwarden.refresh.clock import Clock, SystemClock
from tokenwarden.refresh.worker import RefreshWorker, fetch_secret
from tokenwarden.sources.base import SecretSource

logger = logging.getLogger(__name__)


class EngineState(str, enum.Enum):
    CREATED = "created"
    FETCHING = "fetching"
    RUNNING = "running"
    STOPPED = "stopped"


class RefreshEngine:
    """Starts, tracks and stops the refresh workers for one configuration.

    Collaborators are injectable so that tests can run the engine without
    cloud credentials or network access. Anything not supplied is built from
    *config* and closed again by the engine.

    Args:
        config: Resolved engine configuration.
        cache: Cache to publish into. A new one is created when omitted.
        source: Secret source. Defaults to
            :func:`~tokenwarden.sources.create_secret_source`.
        exchanger: Token exchanger. Defaults to
            :class:`~tokenwarden.exchange.HttpExchanger`.
        clock: Time source shared by all workers.

    Example::

        with RefreshEngine(config) as engine:
            engine.wait_until_ready(timeout=10)
            record = engine.token("primary")
    """

    def __init__(
        self,
        config: EngineConfig,
        cache: Optional[TokenCache] = None,
        source: Optional[SecretSource] = None,
        exchanger: Optional[Exchanger] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config
        self._cache = cache if cache is not None else TokenCache()
        self._source = source
        self._owns_source = source is None
        self._exchanger = exchanger
        self._owns_exchanger = exchanger is None
        self._clock = clock or SystemClock()

        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._state = EngineState.CREATED
        self._workers: list[RefreshWorker] = []
        self._threads: list[threading.Thread] = []

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def cache(self) -> TokenCache:
        return self._cache

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def workers(self) -> list[RefreshWorker]:
        return list(self._workers)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Fetch all secrets, publish static ones and launch the workers.

        Raises:
            SecretFetchError: If any secret cannot be fetched. No worker is
                started in that case.
            RuntimeError: If the engine was already started.
        """
        with self._lock:
            if self._state != EngineState.CREATED:
                raise RuntimeError(f"RefreshEngine cannot be started from state '{self._state.value}'")
            self._state = EngineState.FETCHING

        try:
            secrets = self._fetch_all()
        except BaseException:
            self._state = EngineState.STOPPED
            raise

        try:
            self._publish_static(secrets)
            self._workers = self._build_workers(secrets)
            for worker in self._workers:
                thread = threading.Thread(
                    target=worker.run,
                    args=(self._stop,),
                    name=f"tokenwarden-{worker.name}",
                    daemon=True,
                )
                thread.start()
                self._threads.append(thread)
        except BaseException:
            logger.error("Refresh engine failed to start, stopping started workers")
            self.stop()
            raise

        self._state = EngineState.RUNNING
        logger.info(
            "Started %d refresh worker(s) for %d credential(s)",
            len(self._workers), len(self._config.refreshed_credentials()),
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal every worker to stop and wait for their threads.

        Safe to call more than once and before :meth:`start`.

        Args:
            timeout: Maximum seconds to wait for all threads together.
                ``None`` waits indefinitely.
        """
        self._stop.set()
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
            if thread.is_alive():
                logger.warning("Thread %s did not stop within the timeout", thread.name)
        if self._state != EngineState.STOPPED:
            self._state = EngineState.STOPPED
            self._close_owned()
            logger.info("Refresh engine stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until every configured slot holds a token.

        Returns:
            ``True`` if all slots are populated, ``False`` on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for slot in self.expected_slots():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not self._cache.wait_for(slot, remaining):
                return False
        return True

    def __enter__(self) -> RefreshEngine:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def expected_slots(self) -> list[str]:
        """Return every slot this configuration will eventually populate."""
        slots = [c.id for c in self._config.refreshed_credentials()]
        slots += [c.id for c in self._config.static_credentials()]
        if self._config.passthrough_credential() is not None:
            slots.append(self._config.mail_slot)
        return slots

    def token(self, slot: str) -> Optional[TokenRecord]:
        """Return the current record for *slot*, or ``None`` if not yet issued."""
        return self._cache.get(slot)

    def status(self) -> list[dict[str, Any]]:
        """Return one status row per worker, without any token values."""
        rows = []
        for worker in self._workers:
            record = self._cache.get(worker.slot)
            rows.append({
                "worker": worker.name,
                "slot": worker.slot,
                "state": worker.state.value,
                "stagger_offset": worker.stagger_offset,
                "exchanges": worker.exchanges,
                "failures": worker.failures,
                "last_success": worker.last_success.isoformat() if worker.last_success else None,
                "last_error": worker.last_error,
                "expires_at": (
                    record.expires_at.isoformat() if record and record.expires_at else None
                ),
            })
        return rows

    # ------------------------------------------------------------------ #
    # Startup steps
    # ------------------------------------------------------------------ #

    def _fetch_all(self) -> dict[str, bytes]:
        if self._source is None:
            from tokenwarden.sources.factory import create_secret_source

            self._source = create_secret_source(self._config)
        secrets: dict[str, bytes] = {}
        try:
            for credential in self._config.credentials:
                secrets[credential.id] = fetch_secret(self._source, credential)
        finally:
            # Secrets are only read at startup.
            if self._owns_source:
                self._source.close()
        return secrets

    def _publish_static(self, secrets: dict[str, bytes]) -> None:
        passthrough = self._config.passthrough_credential()
        if passthrough is not None:
            self._cache.store(
                self._config.mail_slot,
                TokenRecord.from_secret(self._config.mail_slot, secrets[passthrough.id]),
            )
            logger.info("Published pass-through secret '%s' to slot '%s'", passthrough.id, self._config.mail_slot)
        for credential in self._config.static_credentials():
            self._cache.store(
                credential.id,
                TokenRecord.from_secret(credential.id, secrets[credential.id], TokenKind.API_KEY),
            )
            logger.info("Published static API key '%s'", credential.id)

    def _build_workers(self, secrets: dict[str, bytes]) -> list[RefreshWorker]:
        refreshed: list[Credential] = self._config.refreshed_credentials()
        if refreshed and self._exchanger is None:
            from tokenwarden.exchange.http_exchanger import HttpExchanger

            self._exchanger = HttpExchanger(retry=self._config.retry)

        workers = []
        for credential in refreshed:
            assert self._exchanger is not None
            for index, offset in enumerate(credential.stagger_offsets):
                workers.append(RefreshWorker(
                    credential=credential,
                    secret=secrets[credential.id],
                    cache=self._cache,
                    exchanger=self._exchanger,
                    clock=self._clock,
                    stagger_offset=offset,
                    fallback_interval=self._config.fallback_interval,
                    index=index,
                ))
        return workers

    def _close_owned(self) -> None:
        if self._owns_exchanger and self._exchanger is not None:
            self._exchanger.close()
