"""Unit tests for watch mode."""

import itertools
from unittest.mock import AsyncMock, MagicMock

import pytest

from cast_interop.config import AddressBook, WaitConfig
from cast_interop.exceptions import RootMismatch, RpcUnavailable, WatchTimeout
from cast_interop.models import LogProof
from cast_interop.status import BundleStatus
from cast_interop.utils.abi import BUNDLE_STATUS_SELECTOR
from cast_interop.watcher import BundleWatcher, WatchTarget

from conftest import SOURCE_CHAIN_ID, SOURCE_TX_HASH

ROOT = "0x" + "77" * 32
ROOT_STORAGE = "0x0000000000000000000000000000000000010008"
LOG_PROOF = LogProof(id=5, proof=("0x" + "11" * 32,), root=ROOT, batch_number=42)


def make_chains(receipt, statuses, root=ROOT):
    statuses = iter(statuses)

    source = MagicMock()
    source.get_transaction_receipt = AsyncMock(return_value=receipt)
    source.get_chain_id = AsyncMock(return_value=SOURCE_CHAIN_ID)
    source.get_finalized_block_number = AsyncMock(return_value=500)
    source.get_log_proof = AsyncMock(return_value=LOG_PROOF)

    async def call(to, data, sender=None):
        if to.lower() == ROOT_STORAGE:
            return bytes.fromhex(root[2:])
        assert data[:4] == BUNDLE_STATUS_SELECTOR
        status = next(statuses)
        if isinstance(status, Exception):
            raise status
        return status.to_bytes(32, "big")

    destination = MagicMock()
    destination.call = AsyncMock(side_effect=call)
    return source, destination


def make_watcher(source, destination, clock=None, waits=None):
    events = []
    sleep = AsyncMock()
    watcher = BundleWatcher(
        source,
        destination,
        AddressBook(),
        waits or WaitConfig(),
        on_event=events.append,
        sleep=sleep,
        clock=clock or MagicMock(return_value=0.0),
    )
    return watcher, events, sleep


class TestBundleWatcher:
    """Test suite for BundleWatcher."""

    @pytest.mark.asyncio
    async def test_until_executed(self, source_receipt):
        source, destination = make_chains(source_receipt, [0, 1, 2])
        watcher, events, sleep = make_watcher(source, destination)

        status = await watcher.watch(SOURCE_TX_HASH, until=WatchTarget.EXECUTED)

        assert status == BundleStatus.FULLY_EXECUTED
        status_events = [e for e in events if e.event == "bundle_status"]
        assert [e.details["status"] for e in status_events] == ["Unreceived", "Verified", "FullyExecuted"]
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_event_order_on_first_tick(self, source_receipt):
        source, destination = make_chains(source_receipt, [1])
        watcher, events, _ = make_watcher(source, destination)

        await watcher.watch(SOURCE_TX_HASH, until=WatchTarget.VERIFIED)

        assert [e.event for e in events] == ["finalized", "log_proof", "root_available", "bundle_status"]
        assert events[0].details == {"block": 500}
        assert events[1].details == {"batch": 42, "id": 5, "root": ROOT}
        assert events[2].details == {"root": ROOT, "batch": 42}

    @pytest.mark.asyncio
    async def test_verified_target_accepts_fully_executed(self, source_receipt):
        source, destination = make_chains(source_receipt, [2])
        watcher, _, sleep = make_watcher(source, destination)

        assert await watcher.watch(SOURCE_TX_HASH, until=WatchTarget.VERIFIED) == BundleStatus.FULLY_EXECUTED
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status_emitted_only_on_change(self, source_receipt):
        source, destination = make_chains(source_receipt, [0, 0, 0, 1])
        watcher, events, _ = make_watcher(source, destination)

        await watcher.watch(SOURCE_TX_HASH, until=WatchTarget.VERIFIED)

        assert len([e for e in events if e.event == "bundle_status"]) == 2
        assert len([e for e in events if e.event == "finalized"]) == 1

    @pytest.mark.asyncio
    async def test_transient_errors_are_swallowed(self, source_receipt):
        source, destination = make_chains(source_receipt, [RpcUnavailable("down"), 2])
        watcher, events, sleep = make_watcher(source, destination)

        await watcher.watch(SOURCE_TX_HASH, until=WatchTarget.EXECUTED)

        assert sleep.await_count == 1
        assert [e.details["status"] for e in events if e.event == "bundle_status"] == ["FullyExecuted"]

    @pytest.mark.asyncio
    async def test_root_mismatch_is_fatal(self, source_receipt):
        source, destination = make_chains(source_receipt, [0], root="0x" + "88" * 32)
        watcher, _, _ = make_watcher(source, destination)

        with pytest.raises(RootMismatch):
            await watcher.watch(SOURCE_TX_HASH, until=WatchTarget.EXECUTED)

    @pytest.mark.asyncio
    async def test_timeout(self, source_receipt):
        source, destination = make_chains(source_receipt, [0] * 10)
        counter = itertools.count()
        watcher, _, sleep = make_watcher(
            source,
            destination,
            clock=lambda: float(next(counter)),
            waits=WaitConfig(timeout_ms=2500),
        )

        with pytest.raises(WatchTimeout) as exc_info:
            await watcher.watch(SOURCE_TX_HASH, until=WatchTarget.EXECUTED)

        assert exc_info.value.stage == "watch"
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_receipt_without_bundle_skips_status(self, source_receipt):
        source_receipt["logs"] = source_receipt["logs"][:1]
        source, destination = make_chains(source_receipt, [])
        counter = itertools.count()
        watcher, events, _ = make_watcher(
            source, destination, clock=lambda: float(next(counter)), waits=WaitConfig(timeout_ms=500)
        )

        with pytest.raises(WatchTimeout):
            await watcher.watch(SOURCE_TX_HASH, until=WatchTarget.VERIFIED)

        assert "bundle_status" not in [e.event for e in events]
