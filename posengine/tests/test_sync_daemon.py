"""Sync daemon: replay of queued sales, reentrancy, connectivity."""

from __future__ import annotations

import asyncio

from posengine.app.services.connectivity import ConnectivityMonitor
from posengine.app.services.sync_daemon import SyncDaemon
from posengine.tests.factories import make_record


def test_drain_syncs_every_pending_record(queue, remote):
    queue.enqueue(make_record("tx-1"))
    queue.enqueue(make_record("tx-2"))
    daemon = SyncDaemon(queue, remote)

    result = asyncio.run(daemon.drain())

    assert (result.synced, result.failed, result.skipped) == (2, 0, False)
    assert set(remote.transactions) == {"tx-1", "tx-2"}
    assert queue.count_unsynced() == 0


def test_second_drain_does_not_resend(queue, remote):
    queue.enqueue(make_record("tx-1"))
    daemon = SyncDaemon(queue, remote)

    asyncio.run(daemon.drain())
    result = asyncio.run(daemon.drain())

    assert result.synced == 0
    assert remote.upsert_calls == 1
    assert len(remote.transactions) == 1


def test_failure_is_marked_and_retried_later(queue, remote):
    queue.enqueue(make_record("tx-1"))
    daemon = SyncDaemon(queue, remote)

    remote.fail_writes = True
    failed = asyncio.run(daemon.drain())
    row = queue.get("tx-1")

    remote.fail_writes = False
    recovered = asyncio.run(daemon.drain())

    assert (failed.synced, failed.failed) == (0, 1)
    assert row.sync_attempts == 1
    assert "remote unreachable" in row.sync_error
    assert recovered.synced == 1
    assert queue.get("tx-1").synced is True


def test_one_failure_does_not_stop_the_drain(queue, remote):
    queue.enqueue(make_record("tx-1", minutes_ago=2))
    queue.enqueue(make_record("tx-2", minutes_ago=1))
    daemon = SyncDaemon(queue, remote)

    original = remote.upsert_transaction

    async def flaky(record, *, from_offline=False):
        if record.id == "tx-1":
            raise RuntimeError("boom")
        await original(record, from_offline=from_offline)

    remote.upsert_transaction = flaky
    result = asyncio.run(daemon.drain())

    assert (result.synced, result.failed) == (1, 1)
    assert [row.id for row in queue.list_unsynced()] == ["tx-1"]


def test_queued_order_is_converted_on_sync(queue, remote):
    queue.enqueue(make_record("tx-1").model_copy(update={"order_id": "order-9"}))
    daemon = SyncDaemon(queue, remote)

    asyncio.run(daemon.drain())

    assert remote.converted_orders == [("order-9", "tx-1", "CASH")]


def test_concurrent_drain_is_skipped(queue, remote):
    queue.enqueue(make_record("tx-1"))
    daemon = SyncDaemon(queue, remote)
    gate = asyncio.Event()
    original = remote.upsert_transaction

    async def slow(record, *, from_offline=False):
        await gate.wait()
        await original(record, from_offline=from_offline)

    remote.upsert_transaction = slow

    async def scenario():
        first = asyncio.create_task(daemon.drain())
        await asyncio.sleep(0.01)
        second = await daemon.drain()
        gate.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert second.skipped
    assert first.synced == 1


def test_offline_drain_is_skipped(queue, remote):
    queue.enqueue(make_record("tx-1"))
    remote.online = False
    monitor = ConnectivityMonitor(remote.ping)
    daemon = SyncDaemon(queue, remote, monitor)

    async def scenario():
        await monitor.probe()
        return await daemon.drain()

    result = asyncio.run(scenario())

    assert result.skipped
    assert remote.upsert_calls == 0


def test_reconnect_triggers_a_drain(queue, remote):
    queue.enqueue(make_record("tx-1"))
    remote.online = False
    monitor = ConnectivityMonitor(remote.ping)
    daemon = SyncDaemon(queue, remote, monitor, interval_seconds=60)

    async def scenario():
        await monitor.probe()
        daemon.start()
        await asyncio.sleep(0.01)
        remote.online = True
        await monitor.probe()
        await daemon.stop()

    asyncio.run(scenario())

    assert "tx-1" in remote.transactions
    assert queue.count_unsynced() == 0


def test_start_drains_immediately_and_stop_cancels(queue, remote):
    queue.enqueue(make_record("tx-1"))
    daemon = SyncDaemon(queue, remote, interval_seconds=60)

    async def scenario():
        daemon.start()
        await asyncio.sleep(0.05)
        await daemon.stop()

    asyncio.run(scenario())

    assert queue.count_unsynced() == 0
