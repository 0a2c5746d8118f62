"""Backend contract, partition keys and the snapshot subscription hub."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Final, Protocol, runtime_checkable

from imobi.logging import get_logger
from imobi.models import Property, PropertyDraft

logger = get_logger(__name__)

SnapshotCallback = Callable[[list[Property]], None]
Unsubscribe = Callable[[], None]

# Restoring defaults starts the partition over with nothing.
DEFAULT_SEED: Final[tuple[Property, ...]] = ()

DEFAULT_PARTITION_PREFIX: Final = "data_"
PUBLIC_PARTITION: Final = "public"


class StoreError(Exception):
    """Base class for property store failures."""


class PropertyNotFoundError(StoreError):
    """Raised when updating a property id that does not exist."""

    def __init__(self, property_id: str) -> None:
        super().__init__(f"Property not found: {property_id}")
        self.property_id = property_id


class BackendNotConfiguredError(StoreError):
    """Raised when a remote backend is used without a client."""


def partition_key(user: str | None, prefix: str = DEFAULT_PARTITION_PREFIX) -> str:
    """Storage key for a user's listings, falling back to the public partition."""
    user = (user or "").strip()
    return f"{prefix}{user}" if user else f"{prefix}{PUBLIC_PARTITION}"


@runtime_checkable
class PropertyBackend(Protocol):
    """Capability interface shared by every storage backend.

    Unknown ids: ``update`` raises PropertyNotFoundError, ``remove`` is a
    no-op. ``clear`` and ``restore_defaults`` are irreversible.
    """

    @property
    def is_configured(self) -> bool: ...

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe: ...

    async def create(self, draft: PropertyDraft) -> str: ...

    async def update(self, property_id: str, fields: Mapping[str, Any]) -> None: ...

    async def remove(self, property_id: str) -> None: ...

    async def clear(self) -> None: ...

    async def restore_defaults(self) -> None: ...

    async def close(self) -> None: ...


def deliver(callback: SnapshotCallback, snapshot: list[Property]) -> None:
    """Invoke one observer with its own copy of the snapshot."""
    try:
        callback(list(snapshot))
    except Exception:
        logger.exception("subscriber_callback_failed", callback=repr(callback))


class _Subscription:
    __slots__ = ("callback", "tasks", "active")

    def __init__(self, callback: SnapshotCallback) -> None:
        self.callback = callback
        self.tasks: set[asyncio.Task[None]] = set()
        self.active = True


class SubscriptionHub:
    """Fan-out of full-list snapshots to registered observers.

    Each subscription gets one delayed initial delivery and, when
    ``poll_interval`` is set, a background task re-reading the source on
    that interval. Owners call ``publish`` after every successful write.
    """

    def __init__(
        self,
        load: Callable[[], Awaitable[list[Property]]],
        *,
        initial_delay: float = 0.0,
        poll_interval: float | None = None,
    ) -> None:
        self._load = load
        self.initial_delay = initial_delay
        self.poll_interval = poll_interval or None
        self._subscriptions: list[_Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        """Register an observer; must be called with a running event loop."""
        loop = asyncio.get_running_loop()
        sub = _Subscription(callback)
        self._subscriptions.append(sub)

        self._spawn(loop, sub, self._initial_delivery(sub))
        if self.poll_interval is not None:
            self._spawn(loop, sub, self._poll(sub, self.poll_interval))

        def unsubscribe() -> None:
            self._cancel(sub)

        return unsubscribe

    async def publish(self, snapshot: list[Property]) -> None:
        """Push a snapshot to every active observer."""
        for sub in list(self._subscriptions):
            if sub.active:
                deliver(sub.callback, snapshot)

    async def close(self) -> None:
        """Cancel every subscription and wait for its tasks to finish."""
        tasks = [task for sub in self._subscriptions for task in sub.tasks]
        for sub in list(self._subscriptions):
            self._cancel(sub)
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _spawn(
        self,
        loop: asyncio.AbstractEventLoop,
        sub: _Subscription,
        coro: Awaitable[None],
    ) -> None:
        task = loop.create_task(coro)  # type: ignore[arg-type]
        sub.tasks.add(task)
        task.add_done_callback(sub.tasks.discard)

    def _cancel(self, sub: _Subscription) -> None:
        if not sub.active:
            return
        sub.active = False
        for task in list(sub.tasks):
            task.cancel()
        with contextlib.suppress(ValueError):
            self._subscriptions.remove(sub)

    async def _initial_delivery(self, sub: _Subscription) -> None:
        await asyncio.sleep(self.initial_delay)
        try:
            snapshot = await self._load()
        except Exception:
            logger.exception("initial_snapshot_failed")
            return
        if sub.active:
            deliver(sub.callback, snapshot)

    async def _poll(self, sub: _Subscription, interval: float) -> None:
        while sub.active:
            await asyncio.sleep(interval)
            try:
                snapshot = await self._load()
            except Exception:
                logger.exception("snapshot_poll_failed")
                continue
            if sub.active:
                deliver(sub.callback, snapshot)


async def first_snapshot(backend: PropertyBackend, timeout: float | None = 10.0) -> list[Property]:
    """Subscribe, wait for the first delivery, then unsubscribe.

    Raises:
        BackendNotConfiguredError: If the backend can never deliver.
        TimeoutError: If nothing arrives within ``timeout`` seconds.
    """
    if not backend.is_configured:
        raise BackendNotConfiguredError("Backend is not configured; no snapshot will arrive")
    loop = asyncio.get_running_loop()
    received: asyncio.Future[list[Property]] = loop.create_future()

    def on_snapshot(snapshot: list[Property]) -> None:
        if not received.done():
            received.set_result(snapshot)

    unsubscribe = backend.subscribe(on_snapshot)
    try:
        return await asyncio.wait_for(received, timeout)
    finally:
        unsubscribe()
