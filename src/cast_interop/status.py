"""
Bundle and call status as tracked by the destination interop handler.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from .exceptions import MalformedResponse
from .models import format_hex
from .utils.abi import encode_bundle_status_call, encode_call_status_call
from .utils.chain_client import ChainClient

logger = logging.getLogger(__name__)


class BundleStatus(IntEnum):
    UNRECEIVED = 0
    VERIFIED = 1
    FULLY_EXECUTED = 2
    UNBUNDLED = 3
    UNKNOWN = -1

    @classmethod
    def from_value(cls, value: int) -> "BundleStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def label(self) -> str:
        return _BUNDLE_LABELS[self]


class CallStatus(IntEnum):
    UNPROCESSED = 0
    EXECUTED = 1
    CANCELLED = 2
    UNKNOWN = -1

    @classmethod
    def from_value(cls, value: int) -> "CallStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def label(self) -> str:
        return _CALL_LABELS[self]


_BUNDLE_LABELS = {
    BundleStatus.UNRECEIVED: "Unreceived",
    BundleStatus.VERIFIED: "Verified",
    BundleStatus.FULLY_EXECUTED: "FullyExecuted",
    BundleStatus.UNBUNDLED: "Unbundled",
    BundleStatus.UNKNOWN: "Unknown",
}

_CALL_LABELS = {
    CallStatus.UNPROCESSED: "Unprocessed",
    CallStatus.EXECUTED: "Executed",
    CallStatus.CANCELLED: "Cancelled",
    CallStatus.UNKNOWN: "Unknown",
}


def _decode_word(data: bytes) -> int:
    if len(data) < 32:
        raise MalformedResponse(f"status return data must be 32 bytes, got {len(data)}")
    return int.from_bytes(data[:32], "big")


def decode_bundle_status(data: bytes) -> BundleStatus:
    """Decode the return word of bundleStatus(bytes32)."""
    return BundleStatus.from_value(_decode_word(data))


def decode_call_status(data: bytes) -> CallStatus:
    """Decode the return word of callStatus(bytes32,uint256)."""
    return CallStatus.from_value(_decode_word(data))


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Status of a bundle and, optionally, of each of its calls."""

    bundle_hash: bytes
    bundle_status: BundleStatus
    calls: tuple[CallStatus, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bundleHash": format_hex(self.bundle_hash),
            "bundleStatus": self.bundle_status.label,
            "calls": [
                {"index": index, "status": status.label}
                for index, status in enumerate(self.calls)
            ],
        }


class StatusReader:
    """Reads bundle and call status from the interop handler."""

    def __init__(self, client: ChainClient, handler: str):
        self.client = client
        self.handler = handler

    async def bundle_status(self, bundle_hash: bytes) -> BundleStatus:
        data = await self.client.call(self.handler, encode_bundle_status_call(bundle_hash))
        status = decode_bundle_status(data)
        logger.debug(f"Bundle {format_hex(bundle_hash)} status: {status.label}")
        return status

    async def call_statuses(self, bundle_hash: bytes, call_count: int) -> tuple[CallStatus, ...]:
        statuses = []
        for index in range(call_count):
            data = await self.client.call(self.handler, encode_call_status_call(bundle_hash, index))
            statuses.append(decode_call_status(data))
        return tuple(statuses)

    async def report(self, bundle_hash: bytes, call_count: int | None = None) -> StatusReport:
        """
        Read the status of a bundle.

        Args:
            bundle_hash: Hash of the bundle on the destination handler
            call_count: Number of calls to query; None skips per-call status

        Returns:
            StatusReport for the bundle
        """
        bundle_status = await self.bundle_status(bundle_hash)
        calls: tuple[CallStatus, ...] = ()
        if call_count:
            calls = await self.call_statuses(bundle_hash, call_count)
        return StatusReport(bundle_hash=bytes(bundle_hash), bundle_status=bundle_status, calls=calls)
