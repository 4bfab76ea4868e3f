"""
Event processor for interop transaction receipts.

This module decodes the interop logs found in a receipt: the bundle sent by
the interop center on the source chain, the L1 messenger and message events,
and the handler events emitted on the destination chain.
"""

import logging
from collections.abc import Mapping
from typing import Any

from hexbytes import HexBytes
from web3 import Web3

from .config import DEFAULT_INTEROP_CENTER, L1_MESSENGER_ADDRESS
from .exceptions import BundleNotFound, MalformedBundle
from .models import BundleSentEvent, EventView, format_hex, to_bytes_safe
from .utils.abi import (
    BUNDLE_EXECUTED_TOPIC,
    BUNDLE_UNBUNDLED_TOPIC,
    BUNDLE_VERIFIED_TOPIC,
    CALL_PROCESSED_TOPIC,
    INTEROP_BUNDLE_SENT_TOPIC,
    L1_MESSAGE_SENT_TOPIC,
    MESSAGE_SENT_TOPIC,
    decode_interop_bundle_sent,
    decode_message_sent,
)

logger = logging.getLogger(__name__)

_SIMPLE_BUNDLE_EVENTS = {
    BUNDLE_VERIFIED_TOPIC: "BundleVerified",
    BUNDLE_EXECUTED_TOPIC: "BundleExecuted",
    BUNDLE_UNBUNDLED_TOPIC: "BundleUnbundled",
}


def _topics(log: Mapping[str, Any]) -> list[bytes]:
    return [to_bytes_safe(topic) for topic in log.get('topics', [])]


def _same_address(a: str, b: str) -> bool:
    return Web3.to_checksum_address(a) == Web3.to_checksum_address(b)


def _topic_hex(topics: list[bytes], index: int) -> str:
    return format_hex(topics[index]) if len(topics) > index else ""


class EventProcessor:
    """Decodes interop events out of transaction receipts."""

    def __init__(
        self,
        interop_center: str = DEFAULT_INTEROP_CENTER,
        l1_messenger: str = L1_MESSENGER_ADDRESS,
    ) -> None:
        """Initialize the event processor.

        Args:
            interop_center: Address that emits InteropBundleSent
            l1_messenger: Address that emits L1MessageSent
        """
        self.interop_center = Web3.to_checksum_address(interop_center)
        self.l1_messenger = Web3.to_checksum_address(l1_messenger)

    def find_bundle_sent(self, receipt: Mapping[str, Any]) -> BundleSentEvent:
        """
        Decode the first InteropBundleSent log of a receipt.

        Args:
            receipt: Source chain transaction receipt

        Returns:
            BundleSentEvent with the receipt's block number and transaction index

        Raises:
            BundleNotFound: If the receipt has no InteropBundleSent log
        """
        for log in receipt.get('logs', []):
            topics = _topics(log)
            if not topics or topics[0] != INTEROP_BUNDLE_SENT_TOPIC:
                continue
            event = decode_interop_bundle_sent(to_bytes_safe(log['data']))
            logger.info(
                f"InteropBundleSent found - bundle hash: {format_hex(event.bundle_hash)} "
                f"calls: {len(event.bundle.calls)}"
            )
            return BundleSentEvent(
                l2l1_msg_hash=event.l2l1_msg_hash,
                bundle_hash=event.bundle_hash,
                bundle=event.bundle,
                block_number=receipt.get('blockNumber'),
                transaction_index=receipt.get('transactionIndex'),
            )
        raise BundleNotFound("InteropBundleSent not found in receipt")

    def _center_logs(self, receipt: Mapping[str, Any], topic: bytes):
        for log in receipt.get('logs', []):
            topics = _topics(log)
            if topics and topics[0] == topic and _same_address(log['address'], self.interop_center):
                yield log, topics

    def find_send_id(self, receipt: Mapping[str, Any]) -> bytes | None:
        """Return the sendId of the first MessageSent emitted by the interop center."""
        for _, topics in self._center_logs(receipt, MESSAGE_SENT_TOPIC):
            if len(topics) > 1:
                return topics[1]
        return None

    def find_sent_bundle_hash(self, receipt: Mapping[str, Any]) -> bytes | None:
        """Return the hash of the first bundle the interop center sent in a receipt."""
        for log, _ in self._center_logs(receipt, INTEROP_BUNDLE_SENT_TOPIC):
            try:
                return decode_interop_bundle_sent(to_bytes_safe(log['data'])).bundle_hash
            except MalformedBundle as e:
                logger.warning(f"Skipping undecodable InteropBundleSent log: {e}")
        return None

    def transaction_view(self, tx_hash: str, receipt: Mapping[str, Any]) -> dict[str, Any]:
        """
        Summarize the interop side of a transaction.

        Args:
            tx_hash: Hash of the transaction
            receipt: Its receipt

        Returns:
            Dict with the sent bundle (if any), its hashes and every decoded interop event
        """
        events = self.decode_interop_events(receipt)
        sent = next((e for e in events if e.name == "InteropBundleSent"), None)
        return {
            "txHash": tx_hash,
            "bundle": sent.data["bundle"] if sent else None,
            "bundleHash": sent.data["bundleHash"] if sent else None,
            "l2l1MsgHash": sent.data["l2l1MsgHash"] if sent else None,
            "interopEvents": [event.to_dict() for event in events],
        }

    def decode_interop_events(self, receipt: Mapping[str, Any]) -> list[EventView]:
        """Decode every interop log in a receipt, skipping unrelated logs."""
        events = []
        for log in receipt.get('logs', []):
            topics = _topics(log)
            if not topics:
                continue
            view = self._decode_log(log, topics)
            if view is not None:
                events.append(view)
        return events

    def _decode_log(self, log: Mapping[str, Any], topics: list[bytes]) -> EventView | None:
        address = Web3.to_checksum_address(log['address'])
        data = to_bytes_safe(log.get('data', HexBytes(b"")))

        match topics[0]:
            case topic if topic == INTEROP_BUNDLE_SENT_TOPIC and _same_address(address, self.interop_center):
                event = decode_interop_bundle_sent(data)
                return EventView(
                    name="InteropBundleSent",
                    address=address.lower(),
                    data={
                        "bundleHash": format_hex(event.bundle_hash),
                        "l2l1MsgHash": format_hex(event.l2l1_msg_hash),
                        "bundle": event.bundle.to_dict(),
                    },
                )
            case topic if topic == L1_MESSAGE_SENT_TOPIC and _same_address(address, self.l1_messenger):
                sender = "0x" + topics[1][12:].hex() if len(topics) > 1 else ""
                return EventView(
                    name="L1MessageSent",
                    address=sender,
                    data={
                        "sender": sender,
                        "l2l1MsgHash": _topic_hex(topics, 2),
                        "payload": format_hex(data),
                    },
                )
            case topic if topic == MESSAGE_SENT_TOPIC and not _same_address(address, self.interop_center):
                decoded = decode_message_sent(data)
                return EventView(
                    name="MessageSent",
                    address=address.lower(),
                    data={"sendId": _topic_hex(topics, 1), **decoded},
                )
            case topic if topic in _SIMPLE_BUNDLE_EVENTS:
                return EventView(
                    name=_SIMPLE_BUNDLE_EVENTS[topic],
                    address=address.lower(),
                    data={"bundleHash": _topic_hex(topics, 1)},
                )
            case topic if topic == CALL_PROCESSED_TOPIC:
                call_index = int.from_bytes(topics[2], "big") if len(topics) > 2 else None
                return EventView(
                    name="CallProcessed",
                    address=address.lower(),
                    data={
                        "bundleHash": _topic_hex(topics, 1),
                        "callIndex": str(call_index) if call_index is not None else "",
                        "status": int.from_bytes(data[:32], "big") if data else 0,
                    },
                )
            case _:
                return None
