"""
Sending bundles and messages through the source chain interop center.

A send either simulates with eth_call, which returns the bundle hash or send
id the center would assign, or signs a transaction and reads the assigned id
back from the center's logs.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from web3.exceptions import ContractLogicError

from .config import AddressBook
from .event_processor import EventProcessor
from .exceptions import RpcError, SignerRequired, SubmissionFailed
from .models import CallStarter, format_hex
from .utils.abi import decode_bytes32, encode_send_bundle_call, encode_send_message_call
from .utils.attributes import UNSET, build_bundle_attributes, build_call_attributes
from .utils.chain_client import ChainClient
from .utils.interop_address import encode_address_only, encode_chain_only, encode_with_address
from .utils.revert_decoder import revert_reason_from_exception

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of a sendBundle or sendMessage."""

    dry_run: bool
    tx_hash: str | None = None
    status: int | None = None
    send_id: bytes | None = None
    bundle_hash: bytes | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.dry_run:
            output: dict[str, Any] = {"dryRun": True}
            if self.bundle_hash is not None:
                output["bundleHash"] = format_hex(self.bundle_hash)
            if self.send_id is not None:
                output["sendId"] = format_hex(self.send_id)
            return output
        return {
            "txHash": self.tx_hash,
            "status": self.status,
            "sendId": format_hex(self.send_id) if self.send_id is not None else None,
            "bundleHash": format_hex(self.bundle_hash) if self.bundle_hash is not None else None,
        }


class InteropSender:
    """Starts bundles and messages on the source chain."""

    def __init__(
        self,
        client: ChainClient,
        addresses: AddressBook | None = None,
        receipt_timeout: float = 300,
    ):
        """
        Initialize the sender.

        Args:
            client: Client for the source chain, with a signer for real sends
            addresses: System contract addresses
            receipt_timeout: Seconds to wait for the send receipt
        """
        self.client = client
        self.addresses = addresses or AddressBook()
        self.receipt_timeout = receipt_timeout
        self.event_processor = EventProcessor(interop_center=self.addresses.interop_center)

    async def send_bundle(
        self,
        destination_chain_id: int,
        calls: Sequence[CallStarter],
        execution_address=UNSET,
        unbundler_address: str | None = None,
        dry_run: bool = False,
    ) -> SendResult:
        """
        Send a bundle of calls to another chain.

        Args:
            destination_chain_id: Chain the calls execute on
            calls: Calls in execution order
            execution_address: Allowed executor, None for permissionless, omitted for no attribute
            unbundler_address: Allowed unbundler (optional)
            dry_run: Simulate and return the bundle hash without sending

        Returns:
            SendResult carrying the bundle hash
        """
        if not calls:
            raise ValueError("a bundle needs at least one call")

        starters = []
        total_value = 0
        for call in calls:
            attributes, value = build_call_attributes(call.interop_value, call.indirect)
            total_value += value
            starters.append((encode_address_only(call.to), call.data, attributes))
        bundle_attributes = build_bundle_attributes(
            destination_chain_id, execution_address, unbundler_address
        )
        calldata = encode_send_bundle_call(
            encode_chain_only(destination_chain_id), starters, bundle_attributes
        )
        logger.info(
            f"sendBundle to chain {destination_chain_id}: {len(starters)} calls, value {total_value}"
        )

        if dry_run:
            bundle_hash = await self._simulate(calldata, total_value)
            return SendResult(dry_run=True, bundle_hash=bundle_hash)
        tx_hash, receipt = await self._send(calldata, total_value)
        bundle_hash = self.event_processor.find_sent_bundle_hash(receipt)
        if bundle_hash is None:
            logger.warning(f"No InteropBundleSent from the interop center in {tx_hash}")
        return SendResult(
            dry_run=False, tx_hash=tx_hash, status=receipt.get('status'), bundle_hash=bundle_hash
        )

    async def send_message(
        self,
        destination_chain_id: int,
        to: str,
        payload: bytes,
        interop_value: int | None = None,
        indirect: int | None = None,
        execution_address=UNSET,
        unbundler_address: str | None = None,
        dry_run: bool = False,
    ) -> SendResult:
        """Send a single message to a recipient on another chain."""
        call_attributes, value = build_call_attributes(interop_value, indirect)
        attributes = call_attributes + build_bundle_attributes(
            destination_chain_id, execution_address, unbundler_address
        )
        calldata = encode_send_message_call(
            encode_with_address(destination_chain_id, to), payload, attributes
        )
        logger.info(f"sendMessage to {to} on chain {destination_chain_id}, value {value}")

        if dry_run:
            send_id = await self._simulate(calldata, value)
            return SendResult(dry_run=True, send_id=send_id)
        tx_hash, receipt = await self._send(calldata, value)
        send_id = self.event_processor.find_send_id(receipt)
        if send_id is None:
            logger.warning(f"No MessageSent from the interop center in {tx_hash}")
        return SendResult(dry_run=False, tx_hash=tx_hash, status=receipt.get('status'), send_id=send_id)

    async def _simulate(self, calldata: bytes, value: int) -> bytes:
        data = await self.client.call(self.addresses.interop_center, calldata, value=value)
        return decode_bytes32(data)

    async def _send(self, calldata: bytes, value: int) -> tuple[str, Mapping[str, Any]]:
        if not self.client.has_signer:
            raise SignerRequired("a signer is required to send; use a dry run to simulate")

        try:
            tx_hash = await self.client.send_transaction(
                self.addresses.interop_center, calldata, value=value
            )
        except (ContractLogicError, RpcError) as e:
            raise SubmissionFailed(revert_reason_from_exception(e), str(e)) from e
        receipt = await self.client.wait_for_receipt(tx_hash, self.receipt_timeout)
        if receipt.get('status') != 1:
            logger.warning(f"Send transaction {tx_hash} finished with status {receipt.get('status')}")
        return tx_hash, receipt
