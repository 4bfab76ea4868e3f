"""
Watch mode: follow a sent bundle through every relay stage without submitting.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import AddressBook, WaitConfig
from .event_processor import EventProcessor
from .exceptions import BundleNotFound, RootMismatch, RpcError, WatchTimeout
from .models import LogProof, format_hex, to_bytes_safe
from .status import BundleStatus, StatusReader
from .utils.abi import decode_bytes32, encode_interop_roots_call
from .utils.chain_client import ChainClient

logger = logging.getLogger(__name__)


class WatchTarget(Enum):
    VERIFIED = "verified"
    EXECUTED = "executed"

    def reached(self, status: BundleStatus | None) -> bool:
        match self:
            case WatchTarget.VERIFIED:
                return status in (BundleStatus.VERIFIED, BundleStatus.FULLY_EXECUTED)
            case WatchTarget.EXECUTED:
                return status == BundleStatus.FULLY_EXECUTED


@dataclass(frozen=True, slots=True)
class WatchEvent:
    event: str
    details: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event, "details": self.details}


def _log_event(event: WatchEvent) -> None:
    logger.info(f"{event.event}: {event.details}")


@dataclass
class _WatchState:
    finalized: bool = False
    log_proof: LogProof | None = None
    root_available: bool = False
    bundle_status: BundleStatus | None = None


class BundleWatcher:
    """Polls both chains and reports each relay milestone as it happens."""

    def __init__(
        self,
        source: ChainClient,
        destination: ChainClient,
        addresses: AddressBook | None = None,
        waits: WaitConfig | None = None,
        on_event: Callable[[WatchEvent], None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.destination = destination
        self.addresses = addresses or AddressBook()
        self.waits = waits or WaitConfig()
        self.on_event = on_event or _log_event
        self.sleep = sleep
        self.clock = clock
        self.event_processor = EventProcessor(interop_center=self.addresses.interop_center)
        self.status_reader = StatusReader(destination, self.addresses.interop_handler)

    def _emit(self, event: str, details: dict[str, Any]) -> None:
        self.on_event(WatchEvent(event=event, details=details))

    async def watch(
        self,
        tx_hash: str,
        message_index: int = 0,
        until: WatchTarget | None = None,
    ) -> BundleStatus | None:
        """
        Follow a bundle until it reaches `until` or the deadline passes.

        Each tick checks, in order: source finalization, log proof, destination
        root, bundle status. Transient RPC errors skip the check for that tick.

        Args:
            tx_hash: Source chain transaction that sent the bundle
            message_index: Index of the L2->L1 message within the transaction
            until: Target status; None watches until the deadline

        Returns:
            The last observed bundle status

        Raises:
            RootMismatch: If the destination holds a different non-zero root
            WatchTimeout: If the target is not reached in time
        """
        receipt = await self.source.get_transaction_receipt(tx_hash)
        if receipt is None:
            raise BundleNotFound(f"receipt not found for {tx_hash}")
        block_number = int(receipt['blockNumber'])
        try:
            bundle_hash = self.event_processor.find_bundle_sent(receipt).bundle_hash
        except BundleNotFound:
            logger.warning("No InteropBundleSent in receipt; bundle status will not be polled")
            bundle_hash = None

        state = _WatchState()
        start = self.clock()
        while True:
            await self._tick(state, tx_hash, block_number, message_index, bundle_hash)

            if until is not None and until.reached(state.bundle_status):
                return state.bundle_status

            elapsed_ms = (self.clock() - start) * 1000
            if elapsed_ms > self.waits.timeout_ms:
                raise WatchTimeout("watch target not reached", self.waits.timeout_ms)
            await self.sleep(self.waits.poll_interval_ms / 1000)

    async def _tick(
        self,
        state: _WatchState,
        tx_hash: str,
        block_number: int,
        message_index: int,
        bundle_hash: bytes | None,
    ) -> None:
        if not state.finalized:
            try:
                finalized_block = await self.source.get_finalized_block_number()
                if finalized_block >= block_number:
                    state.finalized = True
                    self._emit("finalized", {"block": finalized_block})
            except RpcError as e:
                logger.debug(f"finalization check failed: {e}")

        if state.log_proof is None:
            try:
                proof = await self.source.get_log_proof(tx_hash, message_index)
                if proof is not None:
                    state.log_proof = proof
                    self._emit("log_proof", {
                        "batch": proof.batch_number,
                        "id": proof.id,
                        "root": proof.root,
                    })
            except RpcError as e:
                logger.debug(f"log proof check failed: {e}")

        if state.log_proof is not None and not state.root_available:
            try:
                if await self._root_available(state.log_proof):
                    state.root_available = True
                    self._emit("root_available", {
                        "root": state.log_proof.root,
                        "batch": state.log_proof.batch_number,
                    })
            except RpcError as e:
                logger.debug(f"root check failed: {e}")

        if bundle_hash is not None:
            try:
                status = await self.status_reader.bundle_status(bundle_hash)
                if status != state.bundle_status:
                    state.bundle_status = status
                    self._emit("bundle_status", {
                        "bundleHash": format_hex(bundle_hash),
                        "status": status.label,
                    })
            except RpcError as e:
                logger.debug(f"bundle status check failed: {e}")

    async def _root_available(self, proof: LogProof) -> bool:
        chain_id = await self.source.get_chain_id()
        data = await self.destination.call(
            self.addresses.interop_root_storage,
            encode_interop_roots_call(chain_id, proof.batch_number),
        )
        root = decode_bytes32(data)
        if root == bytes(32):
            return False
        expected = to_bytes_safe(proof.root)
        if root != expected:
            raise RootMismatch(format_hex(expected), format_hex(root))
        return True
