"""Redis client for the shared rate limit store.

Wraps ``redis.asyncio.Redis`` and adds what the limiter relies on:

- bounded retries with capped exponential backoff for transient errors
- ``connect`` / ``error`` / ``close`` lifecycle events, detected from the
  startup handshake and from a periodic ``PING`` health watch
- failed commands raise ``SharedStoreUnavailableError`` and mark the
  connection down without emitting events; the caller reports the failure
- reconnect detection: the health watch emits ``connect`` as soon as a ping
  succeeds again after a failure
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.adapters.rate_limit.shared_store import StoreEvent, StoreListener
from app.core.config import RedisSettings
from app.core.errors import SharedStoreUnavailableError

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 0.1
BACKOFF_CAP_SECONDS = 2.0


class RedisSharedStore:
    """Shared counter store backed by Redis.

    Args:
        host: Redis host.
        port: Redis port.
        password: Optional password (omitted from the connection when None).
        db: Logical database index.
        max_retries: Retries for connection/timeout errors per command.
        socket_timeout: Socket and connect timeout in seconds.
        health_check_interval: Seconds between health-watch pings.
        client: Pre-built ``Redis`` client (tests inject a mock here).
    """

    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = 6379,
        password: str | None = None,
        db: int = 0,
        max_retries: int = 3,
        socket_timeout: float = 2.0,
        health_check_interval: float = 5.0,
        client: Redis | None = None,
    ) -> None:
        if client is None:
            client = Redis(
                host=host,
                port=port,
                password=password,
                db=db,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
                retry=Retry(
                    ExponentialBackoff(cap=BACKOFF_CAP_SECONDS, base=BACKOFF_BASE_SECONDS),
                    max_retries,
                ),
                retry_on_error=[RedisConnectionError, RedisTimeoutError],
            )
        self._redis = client
        self._address = f"{host}:{port}/{db}"
        self._health_check_interval = health_check_interval
        self._listeners: list[StoreListener] = []
        self._connected = False
        self._watch_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, redis_settings: RedisSettings) -> "RedisSharedStore":
        return cls(
            host=redis_settings.host,
            port=redis_settings.port,
            password=redis_settings.password,
            db=redis_settings.db,
            max_retries=redis_settings.max_retries,
            socket_timeout=redis_settings.socket_timeout_seconds,
            health_check_interval=redis_settings.health_check_interval_seconds,
        )

    @property
    def connected(self) -> bool:
        return self._connected

    def add_listener(self, listener: StoreListener) -> None:
        self._listeners.append(listener)

    async def connect(self) -> bool:
        """Ping the server once and start the health watch.

        Returns:
            True if the handshake succeeded.
        """

        try:
            await self._redis.ping()
        except Exception as exc:
            logger.warning(
                "redis.connect_failed",
                extra={
                    "redis_address": self._address,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            self._emit(StoreEvent.ERROR, exc)
            handshake_ok = False
        else:
            self._mark_up()
            handshake_ok = True

        if self._watch_task is None:
            self._watch_task = asyncio.create_task(self._watch())
        return handshake_ok

    async def incr(self, key: str) -> int:
        return int(await self._run("incr", self._redis.incr(key)))

    async def pexpire(self, key: str, milliseconds: int) -> bool:
        return bool(await self._run("pexpire", self._redis.pexpire(key, milliseconds)))

    async def pttl(self, key: str) -> int:
        return int(await self._run("pttl", self._redis.pttl(key)))

    async def close(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watch_task
            self._watch_task = None

        await self._redis.aclose()
        if self._connected:
            self._connected = False
            logger.info("redis.closed", extra={"redis_address": self._address})
            self._emit(StoreEvent.CLOSE, None)

    async def _run(self, command: str, pending: Awaitable[Any]) -> Any:
        try:
            return await pending
        except Exception as exc:
            self._mark_down(exc, notify=False)
            raise SharedStoreUnavailableError(
                code="shared_store_unavailable",
                message=f"Redis {command.upper()} failed: {exc}",
            ) from exc

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self._health_check_interval)
            try:
                await self._redis.ping()
            except Exception as exc:
                self._mark_down(exc)
            else:
                self._mark_up()

    def _mark_up(self) -> None:
        if self._connected:
            return
        self._connected = True
        logger.info("redis.connected", extra={"redis_address": self._address})
        self._emit(StoreEvent.CONNECT, None)

    def _mark_down(self, exc: BaseException, *, notify: bool = True) -> None:
        if not self._connected:
            return
        self._connected = False
        logger.warning(
            "redis.connection_lost",
            extra={
                "redis_address": self._address,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        if notify:
            self._emit(StoreEvent.ERROR, exc)
            self._emit(StoreEvent.CLOSE, exc)

    def _emit(self, event: StoreEvent, error: BaseException | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, error)
            except Exception:
                logger.exception("redis.listener_failed", extra={"store_event": event.value})
