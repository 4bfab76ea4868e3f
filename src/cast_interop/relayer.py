"""
Interop bundle relayer.

This module drives one bundle from the source chain to the destination chain:
wait for the source block to finalize, obtain the L2->L1 inclusion proof,
wait for the batch root to reach the destination, then verify or execute the
bundle on the interop handler.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from web3.exceptions import ContractLogicError

from .config import AddressBook, RelayConfig, WaitConfig
from .event_processor import EventProcessor
from .exceptions import (
    BlockNotFinalized,
    BundleNotFound,
    ProofNotAvailable,
    RootMismatch,
    RootNotAvailable,
    RpcError,
    SignerRequired,
    StageTimeout,
    SubmissionFailed,
)
from .models import (
    BUNDLE_IDENTIFIER,
    InteropBundle,
    MessageInclusionProof,
    ProofMessage,
    RelaySummary,
    format_hex,
    to_bytes_safe,
)
from .status import BundleStatus, CallStatus, StatusReader, StatusReport
from .utils.abi import (
    decode_bytes32,
    encode_execute_bundle_call,
    encode_interop_roots_call,
    encode_verify_bundle_call,
)
from .utils.bundle_codec import encode_bundle
from .utils.chain_client import ChainClient
from .utils.revert_decoder import revert_reason_from_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")

ZERO_ROOT = bytes(32)


class RelayStage(Enum):
    SENT = "sent"
    FINALIZED = "finalized"
    PROOF_OBTAINED = "proof_obtained"
    ROOT_PROPAGATED = "root_propagated"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    EXECUTED = "executed"
    UNBUNDLED = "unbundled"


class RelayMode(Enum):
    VERIFY = "verify"
    EXECUTE = "execute"


_LINEAR_STAGES = (
    RelayStage.SENT,
    RelayStage.FINALIZED,
    RelayStage.PROOF_OBTAINED,
    RelayStage.ROOT_PROPAGATED,
    RelayStage.SUBMITTED,
)

# Allowed moves once the bundle has been submitted
_TERMINAL_MOVES = {
    RelayStage.SUBMITTED: {RelayStage.VERIFIED, RelayStage.EXECUTED, RelayStage.UNBUNDLED},
    RelayStage.VERIFIED: {RelayStage.EXECUTED, RelayStage.UNBUNDLED},
}

_STATUS_STAGES = {
    BundleStatus.VERIFIED: RelayStage.VERIFIED,
    BundleStatus.FULLY_EXECUTED: RelayStage.EXECUTED,
    BundleStatus.UNBUNDLED: RelayStage.UNBUNDLED,
}


@dataclass(frozen=True, slots=True)
class SimulationResult:
    """Outcome of a dry-run eth_call against the handler."""

    success: bool
    reason: str | None = None
    raw: str | None = None


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    """Outcome of a verify or execute submission."""

    proof: MessageInclusionProof
    simulation: SimulationResult | None = None
    tx_hash: str | None = None


@dataclass
class RelayRun:
    """Mutable record of one bundle relay."""

    source_tx_hash: str
    bundle: InteropBundle
    bundle_hash: bytes
    encoded_bundle: bytes
    block_number: int
    tx_index: int
    source_chain_id: int
    finalized: bool = False
    proof: MessageInclusionProof | None = None
    root_propagated: bool = False
    destination_tx_hash: str | None = None
    simulation: SimulationResult | None = None
    bundle_status: BundleStatus | None = None
    call_statuses: tuple[CallStatus, ...] = ()
    stage: RelayStage = RelayStage.SENT
    transitions: list[tuple[RelayStage, RelayStage]] = field(default_factory=list)

    def advance(self, stage: RelayStage) -> None:
        """Move to the next stage, refusing skips and backward moves."""
        if self.stage in _LINEAR_STAGES and stage in _LINEAR_STAGES:
            allowed = _LINEAR_STAGES.index(stage) == _LINEAR_STAGES.index(self.stage) + 1
        else:
            allowed = stage in _TERMINAL_MOVES.get(self.stage, set())
        if not allowed:
            raise ValueError(f"invalid relay transition {self.stage.value} -> {stage.value}")
        self.transitions.append((self.stage, stage))
        logger.info(f"Bundle {format_hex(self.bundle_hash)}: {self.stage.value} -> {stage.value}")
        self.stage = stage

    def summary(self, destination_chain_id: int) -> RelaySummary:
        if self.proof is None:
            raise ValueError("relay summary requires an inclusion proof")
        return RelaySummary(
            source_chain_id=self.source_chain_id,
            destination_chain_id=destination_chain_id,
            l1_batch_number=self.proof.l1_batch_number,
            l2_message_index=self.proof.l2_message_index,
            bundle_hash=format_hex(self.bundle_hash),
            source_tx_hash=self.source_tx_hash,
            handler_tx_hash=self.destination_tx_hash,
        )


class BundleRelayer:
    """
    Relays interop bundles from a source chain to a destination chain.

    Every wait keeps its own start time from the injected clock and checks the
    deadline after each attempt, so at least one attempt always runs.
    """

    def __init__(
        self,
        source: ChainClient,
        destination: ChainClient,
        addresses: AddressBook | None = None,
        waits: WaitConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the relayer.

        Args:
            source: Client for the chain the bundle was sent from
            destination: Client for the chain holding the interop handler
            addresses: System contract addresses
            waits: Polling cadence and deadlines
            sleep: Awaitable sleep, replaced in tests
            clock: Monotonic clock in seconds, replaced in tests
        """
        self.source = source
        self.destination = destination
        self.addresses = addresses or AddressBook()
        self.waits = waits or WaitConfig()
        self.sleep = sleep
        self.clock = clock
        self.event_processor = EventProcessor(interop_center=self.addresses.interop_center)
        self.status_reader = StatusReader(destination, self.addresses.interop_handler)

    @classmethod
    def from_config(cls, config: RelayConfig) -> "BundleRelayer":
        """Create a relayer with chain clients built from configuration."""
        source = ChainClient(config.source_chain.rpc_url, request_timeout=config.request_timeout)
        destination = ChainClient(
            config.destination_chain.rpc_url,
            private_key=config.private_key,
            request_timeout=config.request_timeout,
        )
        return cls(source, destination, config.addresses, config.waits)

    async def _poll(
        self,
        attempt: Callable[[], Awaitable[T | None]],
        interval_ms: int,
        timeout_error: type[StageTimeout],
        what: str,
    ) -> T:
        start = self.clock()
        while True:
            try:
                result = await attempt()
            except RpcError as e:
                logger.debug(f"{what}: transient RPC error: {e}")
                result = None
            if result is not None:
                return result
            elapsed_ms = (self.clock() - start) * 1000
            if elapsed_ms > self.waits.timeout_ms:
                raise timeout_error(f"{what} not available in time", self.waits.timeout_ms)
            await self.sleep(interval_ms / 1000)

    async def extract(self, tx_hash: str) -> RelayRun:
        """
        Read the source receipt and decode its bundle.

        Args:
            tx_hash: Source chain transaction that sent the bundle

        Returns:
            RelayRun in the SENT stage

        Raises:
            BundleNotFound: If the receipt is missing or carries no bundle
        """
        receipt = await self.source.get_transaction_receipt(tx_hash)
        if receipt is None:
            raise BundleNotFound(f"receipt not found for {tx_hash}")
        event = self.event_processor.find_bundle_sent(receipt)
        source_chain_id = await self.source.get_chain_id()

        return RelayRun(
            source_tx_hash=tx_hash,
            bundle=event.bundle,
            bundle_hash=event.bundle_hash,
            encoded_bundle=encode_bundle(event.bundle),
            block_number=int(receipt['blockNumber']),
            tx_index=int(receipt['transactionIndex']),
            source_chain_id=source_chain_id,
        )

    async def wait_for_finalization(self, run: RelayRun) -> None:
        async def attempt() -> bool | None:
            finalized = await self.source.get_finalized_block_number()
            logger.debug(f"Finalized block {finalized}, waiting for {run.block_number}")
            return True if finalized >= run.block_number else None

        await self._poll(
            attempt,
            self.waits.finalization_poll_ms,
            BlockNotFinalized,
            f"finalization of block {run.block_number}",
        )
        run.finalized = True
        run.advance(RelayStage.FINALIZED)

    async def wait_for_proof(self, run: RelayRun, message_index: int = 0) -> MessageInclusionProof:
        """
        Wait for the L2->L1 log proof and build the inclusion proof from it.

        Args:
            run: Run in the FINALIZED stage
            message_index: Index of the L2->L1 message within the transaction

        Returns:
            MessageInclusionProof carrying the bundle as its message
        """
        async def attempt():
            return await self.source.get_log_proof(run.source_tx_hash, message_index)

        log_proof = await self._poll(
            attempt, self.waits.poll_interval_ms, ProofNotAvailable, "log proof"
        )
        logger.info(
            f"Log proof obtained - batch: {log_proof.batch_number} "
            f"index: {log_proof.id} nodes: {len(log_proof.proof)}"
        )

        run.proof = MessageInclusionProof(
            chain_id=run.source_chain_id,
            l1_batch_number=log_proof.batch_number,
            l2_message_index=log_proof.id,
            root=log_proof.root,
            message=ProofMessage(
                tx_number_in_batch=run.tx_index,
                sender=self.addresses.interop_center,
                data=bytes([BUNDLE_IDENTIFIER]) + run.encoded_bundle,
            ),
            proof=log_proof.proof,
        )
        run.advance(RelayStage.PROOF_OBTAINED)
        return run.proof

    async def wait_for_interop_root(self, chain_id: int, batch_number: int, expected_root: bytes) -> None:
        """
        Wait for a batch root of a source chain to be stored on the destination chain.

        Args:
            chain_id: Source chain id
            batch_number: L1 batch number the root belongs to
            expected_root: Root the destination must store

        Raises:
            RootMismatch: As soon as a non-zero root differs from the expected root
            RootNotAvailable: If the root is still zero at the deadline
        """
        expected = bytes(expected_root)
        calldata = encode_interop_roots_call(chain_id, batch_number)

        async def attempt() -> bool | None:
            data = await self.destination.call(self.addresses.interop_root_storage, calldata)
            root = decode_bytes32(data)
            if root == ZERO_ROOT:
                return None
            if root != expected:
                raise RootMismatch(format_hex(expected), format_hex(root))
            return True

        await self._poll(attempt, self.waits.poll_interval_ms, RootNotAvailable, "interop root")
        logger.info(f"Interop root for chain {chain_id} batch {batch_number} available")

    async def wait_for_root(self, run: RelayRun) -> None:
        """Wait for the root of the run's proof batch, see wait_for_interop_root."""
        if run.proof is None:
            raise ValueError("waiting for the interop root requires an inclusion proof")
        await self.wait_for_interop_root(
            run.proof.chain_id, run.proof.l1_batch_number, to_bytes_safe(run.proof.root)
        )
        run.root_propagated = True
        run.advance(RelayStage.ROOT_PROPAGATED)

    async def submit_bundle(
        self,
        encoded_bundle: bytes,
        proof: MessageInclusionProof,
        mode: RelayMode,
        dry_run: bool = False,
    ) -> SubmissionResult:
        """
        Verify or execute encoded bundle bytes on the interop handler.

        The proof message is always rewritten to come from the interop center
        and to carry these exact bundle bytes.

        Args:
            encoded_bundle: ABI-encoded InteropBundle
            proof: Inclusion proof of the bundle message
            mode: Whether to call verifyBundle or executeBundle
            dry_run: Simulate with eth_call instead of sending a transaction

        Raises:
            SignerRequired: If no signer is configured and this is not a dry run
            SubmissionFailed: If the transaction fails or reverts
        """
        if not dry_run and not self.destination.has_signer:
            raise SignerRequired("a signer is required to submit; use a dry run to simulate")

        center = self.addresses.interop_center
        if proof.message.sender != center:
            logger.warning(
                f"Proof sender {proof.message.sender} differs from interop center {center}, overriding"
            )
        proof = proof.with_bundle(center, encoded_bundle)

        match mode:
            case RelayMode.VERIFY:
                calldata = encode_verify_bundle_call(encoded_bundle, proof)
            case RelayMode.EXECUTE:
                calldata = encode_execute_bundle_call(encoded_bundle, proof)

        handler = self.addresses.interop_handler
        if dry_run:
            try:
                await self.destination.call(handler, calldata)
            except (ContractLogicError, RpcError) as e:
                reason = revert_reason_from_exception(e)
                logger.warning(f"Dry run {mode.value}Bundle failed: {reason or e}")
                return SubmissionResult(proof, SimulationResult(success=False, reason=reason, raw=str(e)))
            logger.info(f"Dry run {mode.value}Bundle succeeded")
            return SubmissionResult(proof, SimulationResult(success=True))

        try:
            tx_hash = await self.destination.send_transaction(handler, calldata)
        except (ContractLogicError, RpcError) as e:
            raise SubmissionFailed(revert_reason_from_exception(e), str(e)) from e
        receipt = await self.destination.wait_for_receipt(tx_hash, self.waits.timeout_ms / 1000)
        if receipt['status'] != 1:
            raise SubmissionFailed(None, f"transaction {tx_hash} reverted")
        logger.info(f"{mode.value}Bundle submitted: {tx_hash}")
        return SubmissionResult(proof, tx_hash=tx_hash)

    async def submit(self, run: RelayRun, mode: RelayMode, dry_run: bool = False) -> None:
        """
        Verify or execute the run's bundle and advance it to SUBMITTED.

        Args:
            run: Run in the ROOT_PROPAGATED stage
            mode: Whether to call verifyBundle or executeBundle
            dry_run: Simulate with eth_call instead of sending a transaction
        """
        if run.proof is None:
            raise ValueError("submission requires an inclusion proof")
        result = await self.submit_bundle(run.encoded_bundle, run.proof, mode, dry_run)
        run.proof = result.proof
        run.simulation = result.simulation
        run.destination_tx_hash = result.tx_hash
        run.advance(RelayStage.SUBMITTED)

    async def refresh_status(self, run: RelayRun, include_calls: bool = False) -> StatusReport:
        """Read the handler status and advance to the matching terminal stage."""
        call_count = len(run.bundle.calls) if include_calls else None
        report = await self.status_reader.report(run.bundle_hash, call_count)
        run.bundle_status = report.bundle_status
        run.call_statuses = report.calls

        stage = _STATUS_STAGES.get(report.bundle_status)
        if stage is not None and stage in _TERMINAL_MOVES.get(run.stage, set()):
            run.advance(stage)
        return report

    async def relay(
        self,
        tx_hash: str,
        mode: RelayMode,
        message_index: int = 0,
        dry_run: bool = False,
    ) -> RelayRun:
        """
        Run the full relay pipeline for one source transaction.

        Args:
            tx_hash: Source chain transaction that sent the bundle
            mode: Verify or execute
            message_index: Index of the L2->L1 message within the transaction
            dry_run: Simulate the final call instead of sending it

        Returns:
            RelayRun in the SUBMITTED stage
        """
        if not dry_run and not self.destination.has_signer:
            raise SignerRequired("a signer is required to submit; use a dry run to simulate")

        run = await self.extract(tx_hash)
        logger.info(
            f"Relaying bundle {format_hex(run.bundle_hash)} from block {run.block_number} "
            f"(source chain {run.source_chain_id})"
        )
        await self.wait_for_finalization(run)
        await self.wait_for_proof(run, message_index)
        await self.wait_for_root(run)
        await self.submit(run, mode, dry_run)
        return run
