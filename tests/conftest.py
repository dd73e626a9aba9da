"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the environment before any import loads settings, so the app never
tries to reach a real Redis server during tests.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ["REDIS_ENABLED"] = "false"
os.environ.setdefault("MAIL_PROVIDER", "log")
os.environ.setdefault("LOG_LEVEL", "INFO")

import pytest

from app.adapters.rate_limit.shared_store import StoreEvent


class FakeClock:
    """Settable time source (UNIX seconds)."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSharedStore:
    """In-process stand-in for the Redis store.

    Implements INCR/PEXPIRE/PTTL with expiry driven by the fake clock, can be
    told to fail every command, and lets tests fire lifecycle events.
    """

    def __init__(self, clock: FakeClock, *, reachable: bool = True) -> None:
        self.clock = clock
        self.reachable = reachable
        self.failing = False
        self.closed = False
        self.listeners = []
        self.commands: list[tuple] = []
        self._values: dict[str, int] = {}
        self._expires_at_ms: dict[str, float] = {}

    def add_listener(self, listener) -> None:
        self.listeners.append(listener)

    def emit(self, event: StoreEvent, error: BaseException | None = None) -> None:
        for listener in list(self.listeners):
            listener(event, error)

    async def connect(self) -> bool:
        return self.reachable

    async def incr(self, key: str) -> int:
        self._record("incr", key)
        self._purge(key)
        self._values[key] = self._values.get(key, 0) + 1
        return self._values[key]

    async def pexpire(self, key: str, milliseconds: int) -> bool:
        self._record("pexpire", key, milliseconds)
        if key not in self._values:
            return False
        self._expires_at_ms[key] = self._now_ms() + milliseconds
        return True

    async def pttl(self, key: str) -> int:
        self._record("pttl", key)
        self._purge(key)
        if key not in self._values:
            return -2
        expires_at = self._expires_at_ms.get(key)
        if expires_at is None:
            return -1
        return int(expires_at - self._now_ms())

    async def close(self) -> None:
        self.closed = True

    def value(self, key: str) -> int | None:
        return self._values.get(key)

    def drop_expiry(self, key: str) -> None:
        self._expires_at_ms.pop(key, None)

    def _record(self, *command) -> None:
        self.commands.append(command)
        if self.failing:
            raise ConnectionError("shared store unreachable")

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def _purge(self, key: str) -> None:
        expires_at = self._expires_at_ms.get(key)
        if expires_at is not None and expires_at <= self._now_ms():
            self._values.pop(key, None)
            self._expires_at_ms.pop(key, None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def shared_store(clock: FakeClock) -> FakeSharedStore:
    return FakeSharedStore(clock)
