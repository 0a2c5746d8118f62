"""Tests for the snapshot subscription hub."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

import pytest

from imobi.models import Property
from imobi.store.base import SubscriptionHub, deliver

if TYPE_CHECKING:
    from conftest import SnapshotRecorder


class FakeSource:
    """Loader returning whatever list it currently holds."""

    def __init__(self) -> None:
        self.items: list[Property] = []
        self.loads = 0
        self.fail = False

    async def __call__(self) -> list[Property]:
        self.loads += 1
        if self.fail:
            raise RuntimeError("source unavailable")
        return list(self.items)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


class TestDeliver:
    def test_passes_a_copy(self, make_property: Callable[..., Property]) -> None:
        received: list[list[Property]] = []
        snapshot = [make_property()]
        deliver(received.append, snapshot)
        received[0].clear()
        assert len(snapshot) == 1

    def test_callback_error_is_contained(self, make_property: Callable[..., Property]) -> None:
        def broken(snapshot: list[Property]) -> None:
            raise RuntimeError("boom")

        deliver(broken, [make_property()])


class TestSubscriptionHub:
    @pytest.mark.asyncio
    async def test_initial_delivery(
        self,
        source: FakeSource,
        recorder: SnapshotRecorder,
        make_property: Callable[..., Property],
    ) -> None:
        source.items = [make_property(code="A1")]
        hub = SubscriptionHub(source)
        hub.subscribe(recorder)
        snapshot = await recorder.wait_for(1)
        assert [p.code for p in snapshot] == ["A1"]
        await hub.close()

    def test_subscribe_requires_running_loop(self, source: FakeSource) -> None:
        hub = SubscriptionHub(source)
        with pytest.raises(RuntimeError):
            hub.subscribe(lambda snapshot: None)

    @pytest.mark.asyncio
    async def test_publish_reaches_every_subscriber(
        self,
        source: FakeSource,
        make_recorder: Callable[[], SnapshotRecorder],
        make_property: Callable[..., Property],
    ) -> None:
        hub = SubscriptionHub(source)
        first, second = make_recorder(), make_recorder()
        hub.subscribe(first)
        hub.subscribe(second)
        await first.wait_for(1)
        await second.wait_for(1)

        await hub.publish([make_property(code="P1")])

        assert [p.code for p in first.latest] == ["P1"]
        assert [p.code for p in second.latest] == ["P1"]
        assert first.latest is not second.latest
        await hub.close()

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(
        self, source: FakeSource, recorder: SnapshotRecorder
    ) -> None:
        hub = SubscriptionHub(source, initial_delay=0.05)
        unsubscribe = hub.subscribe(recorder)
        assert hub.subscriber_count == 1

        unsubscribe()
        unsubscribe()
        await hub.publish([])
        await asyncio.sleep(0.1)

        assert hub.subscriber_count == 0
        assert recorder.snapshots == []

    @pytest.mark.asyncio
    async def test_other_subscribers_survive_a_failing_one(
        self, source: FakeSource, recorder: SnapshotRecorder
    ) -> None:
        def broken(snapshot: list[Property]) -> None:
            raise RuntimeError("boom")

        hub = SubscriptionHub(source)
        hub.subscribe(broken)
        hub.subscribe(recorder)
        await recorder.wait_for(1)

        await hub.publish([])
        assert len(recorder.snapshots) == 2
        await hub.close()

    @pytest.mark.asyncio
    async def test_failed_initial_load_skips_delivery(
        self, source: FakeSource, recorder: SnapshotRecorder
    ) -> None:
        source.fail = True
        hub = SubscriptionHub(source)
        hub.subscribe(recorder)
        await asyncio.sleep(0.02)
        assert source.loads == 1
        assert recorder.snapshots == []
        await hub.close()

    @pytest.mark.asyncio
    async def test_polling_redelivers(
        self,
        source: FakeSource,
        recorder: SnapshotRecorder,
        make_property: Callable[..., Property],
    ) -> None:
        hub = SubscriptionHub(source, poll_interval=0.01)
        hub.subscribe(recorder)
        await recorder.wait_for(1)

        source.items = [make_property(code="LATE")]
        snapshot = await recorder.wait_for(len(recorder.snapshots) + 1)
        while not snapshot:
            snapshot = await recorder.wait_for(len(recorder.snapshots) + 1)

        assert [p.code for p in snapshot] == ["LATE"]
        await hub.close()

    @pytest.mark.asyncio
    async def test_polling_survives_load_errors(
        self, source: FakeSource, recorder: SnapshotRecorder
    ) -> None:
        hub = SubscriptionHub(source, poll_interval=0.01)
        source.fail = True
        hub.subscribe(recorder)
        await asyncio.sleep(0.05)
        assert recorder.snapshots == []

        source.fail = False
        await recorder.wait_for(1)
        await hub.close()

    @pytest.mark.asyncio
    async def test_zero_poll_interval_disables_polling(
        self, source: FakeSource, recorder: SnapshotRecorder
    ) -> None:
        hub = SubscriptionHub(source, poll_interval=0)
        hub.subscribe(recorder)
        await recorder.wait_for(1)
        await asyncio.sleep(0.03)
        assert source.loads == 1
        await hub.close()

    @pytest.mark.asyncio
    async def test_close_stops_everything(
        self, source: FakeSource, recorder: SnapshotRecorder
    ) -> None:
        hub = SubscriptionHub(source, initial_delay=0.05, poll_interval=0.01)
        hub.subscribe(recorder)

        await hub.close()
        loads = source.loads
        await asyncio.sleep(0.1)

        assert hub.subscriber_count == 0
        assert source.loads == loads
        assert recorder.snapshots == []
