"""Shared pytest fixtures."""

import asyncio
import gc
import logging
import os
import threading
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from hypothesis import HealthCheck, settings

from imobi.config import Settings
from imobi.logging import configure_logging
from imobi.models import (
    FormStatus,
    Property,
    PropertyDraft,
    PropertyStatus,
    PropertyType,
)
from imobi.store import LocalPropertyStore

# Hypothesis settings profiles for different environments
settings.register_profile("fast", max_examples=25)
settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))

# Log to stderr so CLI output on stdout stays assertable
configure_logging(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def _isolate_settings_from_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent the local .env file from leaking into test Settings instances."""
    monkeypatch.setattr(
        Settings,
        "model_config",
        {**Settings.model_config, "env_file": None},
    )


@pytest.fixture(autouse=True)
def _keep_test_logging_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Stop main() from rebinding structlog to a per-test capture stream."""
    monkeypatch.setattr("imobi.main.configure_logging", lambda **kw: None)


@pytest.fixture(autouse=True)
def _cleanup_aiosqlite_threads():
    """Safety net: detect and stop leaked aiosqlite worker threads.

    aiosqlite creates a non-daemon worker thread per connection. If a test
    leaks a connection (doesn't call ``await store.close()``), the thread
    prevents clean process exit.
    """
    yield

    from aiosqlite.core import Connection

    leaked = False
    gc.collect()
    for obj in gc.get_objects():
        if isinstance(obj, Connection) and getattr(obj, "_connection", None) is not None:
            leaked = True
            stop = getattr(obj, "stop", None)
            if stop is not None:
                stop()

    for thread in threading.enumerate():
        if "_connection_worker_thread" in (thread.name or "") and thread.is_alive():
            thread.join(timeout=1.0)

    if leaked:
        import warnings

        warnings.warn(
            "Test leaked aiosqlite connection(s): add 'await store.close()' to fixture teardown",
            ResourceWarning,
            stacklevel=1,
        )


class SnapshotRecorder:
    """Subscriber callback that remembers every snapshot it receives."""

    def __init__(self) -> None:
        self.snapshots: list[list[Property]] = []
        self._changed = asyncio.Event()

    def __call__(self, snapshot: list[Property]) -> None:
        self.snapshots.append(snapshot)
        self._changed.set()

    @property
    def latest(self) -> list[Property]:
        assert self.snapshots, "no snapshot delivered yet"
        return self.snapshots[-1]

    async def wait_for(self, count: int, timeout: float = 2.0) -> list[Property]:
        """Wait until at least ``count`` snapshots arrived; return the latest."""

        async def _wait() -> None:
            while len(self.snapshots) < count:
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout)
        return self.latest


@pytest.fixture
def recorder() -> SnapshotRecorder:
    return SnapshotRecorder()


@pytest.fixture
def make_recorder() -> Callable[[], SnapshotRecorder]:
    """Factory for extra recorders when a test needs several subscribers."""
    return SnapshotRecorder


@pytest.fixture
def make_draft() -> Callable[..., PropertyDraft]:
    """Factory for PropertyDraft instances with auto-incrementing codes."""
    _counter = 0

    def _make(**overrides: Any) -> PropertyDraft:
        nonlocal _counter
        _counter += 1
        defaults: dict[str, Any] = {
            "code": f"C{_counter:03d}",
            "address": f"Rua das Flores, {_counter}",
            "neighborhood": "Centro",
            "property_type": PropertyType.APARTAMENTO,
            "value": 1200.0,
            "description": "Dois quartos, varanda",
        }
        defaults.update(overrides)
        return PropertyDraft(**defaults)

    return _make


@pytest.fixture
def make_property() -> Callable[..., Property]:
    """Factory for stored Property instances with sensible defaults."""
    _counter = 0

    def _make(**overrides: Any) -> Property:
        nonlocal _counter
        _counter += 1
        defaults: dict[str, Any] = {
            "id": f"id-{_counter}",
            "code": f"C{_counter:03d}",
            "address": f"Rua das Flores, {_counter}",
            "neighborhood": "Centro",
            "property_type": PropertyType.APARTAMENTO,
            "value": 1000.0 + _counter,
            "status": PropertyStatus.AVAILABLE,
            "form_status": FormStatus.NO_FORM,
            "collected_by": "Ana",
            "last_updated_at": 1_700_000_000_000 + _counter,
        }
        defaults.update(overrides)
        return Property(**defaults)

    return _make


@pytest_asyncio.fixture
async def store() -> AsyncGenerator[LocalPropertyStore, None]:
    """In-memory local store for one user partition, no simulated latency."""
    store = LocalPropertyStore(":memory:", "data_ana")
    await store.initialize()
    yield store
    await store.close()
