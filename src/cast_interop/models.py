"""
Shared data models for the interop relay.

This module contains immutable data classes for bundles, calls, inclusion
proofs and relay summaries, together with their camelCase JSON mirrors.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from hexbytes import HexBytes
from web3 import Web3

from .exceptions import MalformedProof

UINT256_MAX = 2**256 - 1
BUNDLE_IDENTIFIER = 0x01


def to_bytes_safe(value: HexBytes | bytes | bytearray | str) -> bytes:
    """Convert HexBytes, bytes or a hex string to plain bytes."""
    if isinstance(value, HexBytes):
        return bytes(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return Web3.to_bytes(hexstr=value)


def format_hex(value: bytes) -> str:
    """Render bytes as a 0x-prefixed lowercase hex string."""
    return "0x" + bytes(value).hex()


def _checksum(address: str | bytes, label: str) -> str:
    if isinstance(address, (bytes, bytearray)):
        address = format_hex(address)
    if not Web3.is_address(address):
        raise ValueError(f"Invalid {label} address: {address}")
    return Web3.to_checksum_address(address)


def _check_uint256(value: int, label: str) -> None:
    if not 0 <= value <= UINT256_MAX:
        raise ValueError(f"{label} out of uint256 range: {value}")


def _version_byte(value: bytes | int, label: str) -> bytes:
    if isinstance(value, int):
        value = bytes([value])
    value = to_bytes_safe(value)
    if len(value) != 1:
        raise ValueError(f"{label} must be exactly one byte, got {len(value)}")
    return value


@dataclass(frozen=True, slots=True, kw_only=True)
class InteropCall:
    """One call inside an interop bundle.

    Attributes:
        version: Protocol version tag (one byte)
        shadow_account: Whether the call executes through a shadow account
        to: Destination contract address (checksummed)
        from_: Original sender address on the source chain (checksummed)
        value: Native value forwarded with the call
        data: Call payload
    """

    version: bytes = b"\x01"
    shadow_account: bool = False
    to: str
    from_: str
    value: int = 0
    data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "version", _version_byte(self.version, "call version"))
        object.__setattr__(self, "to", _checksum(self.to, "call target"))
        object.__setattr__(self, "from_", _checksum(self.from_, "call sender"))
        object.__setattr__(self, "data", to_bytes_safe(self.data))
        object.__setattr__(self, "shadow_account", bool(self.shadow_account))
        _check_uint256(self.value, "call value")

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": format_hex(self.version),
            "shadowAccount": self.shadow_account,
            "to": self.to.lower(),
            "from": self.from_.lower(),
            "value": str(self.value),
            "data": format_hex(self.data),
        }


@dataclass(frozen=True, slots=True)
class BundleAttributes:
    """Interoperable-address encoded permissions of a bundle.

    An empty execution address means anyone may verify or execute.
    """

    execution_address: bytes = b""
    unbundler_address: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "execution_address", to_bytes_safe(self.execution_address))
        object.__setattr__(self, "unbundler_address", to_bytes_safe(self.unbundler_address))

    def to_dict(self) -> dict[str, Any]:
        return {
            "executionAddress": format_hex(self.execution_address),
            "unbundlerAddress": format_hex(self.unbundler_address),
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class InteropBundle:
    """A batch of cross-chain calls sent by the interop center.

    The bundle hash is computed on chain and carried alongside the bundle;
    it is never recomputed locally.
    """

    version: bytes = b"\x01"
    source_chain_id: int
    destination_chain_id: int
    interop_bundle_salt: bytes
    calls: tuple[InteropCall, ...] = ()
    bundle_attributes: BundleAttributes = field(default_factory=BundleAttributes)

    def __post_init__(self) -> None:
        object.__setattr__(self, "version", _version_byte(self.version, "bundle version"))
        _check_uint256(self.source_chain_id, "source chain id")
        _check_uint256(self.destination_chain_id, "destination chain id")
        salt = to_bytes_safe(self.interop_bundle_salt)
        if len(salt) != 32:
            raise ValueError(f"interop bundle salt must be 32 bytes, got {len(salt)}")
        object.__setattr__(self, "interop_bundle_salt", salt)
        object.__setattr__(self, "calls", tuple(self.calls))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase bundle view used in JSON output."""
        return {
            "version": format_hex(self.version),
            "sourceChainId": str(self.source_chain_id),
            "destinationChainId": str(self.destination_chain_id),
            "interopBundleSalt": format_hex(self.interop_bundle_salt),
            "calls": [call.to_dict() for call in self.calls],
            "bundleAttributes": self.bundle_attributes.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class BundleSentEvent:
    """Decoded InteropBundleSent log."""

    l2l1_msg_hash: bytes
    bundle_hash: bytes
    bundle: InteropBundle
    block_number: int | None = None
    transaction_index: int | None = None


@dataclass(frozen=True, slots=True)
class LogProof:
    """L2->L1 log proof as returned by the source chain node."""

    id: int
    proof: tuple[str, ...]
    root: str
    batch_number: int

    @classmethod
    def from_rpc(cls, result: dict[str, Any]) -> "LogProof":
        try:
            return cls(
                id=int(result["id"]),
                proof=tuple(result["proof"]),
                root=result["root"],
                batch_number=int(result["batch_number"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedProof(f"invalid log proof response: {e}") from e


@dataclass(frozen=True, slots=True)
class ProofMessage:
    """The L2 message whose inclusion is proven."""

    tx_number_in_batch: int
    sender: str
    data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", _checksum(self.sender, "proof sender"))
        object.__setattr__(self, "data", to_bytes_safe(self.data))


@dataclass(frozen=True, slots=True)
class MessageInclusionProof:
    """Proof that a bundle message was included in a settled batch.

    Attributes:
        chain_id: Source chain id
        l1_batch_number: Batch that includes the message
        l2_message_index: Index of the message inside the batch tree
        root: Batch root the proof resolves to (0x-prefixed)
        message: The proven message
        proof: Merkle siblings (32 bytes each)
    """

    chain_id: int
    l1_batch_number: int
    l2_message_index: int
    root: str
    message: ProofMessage
    proof: tuple[bytes, ...] = ()

    def __post_init__(self) -> None:
        siblings = tuple(to_bytes_safe(node) for node in self.proof)
        for node in siblings:
            if len(node) != 32:
                raise MalformedProof(f"proof node must be 32 bytes, got {len(node)}")
        object.__setattr__(self, "proof", siblings)

    def with_bundle(self, sender: str, encoded_bundle: bytes) -> "MessageInclusionProof":
        """Return a copy whose message carries the bundle payload from `sender`."""
        message = ProofMessage(
            tx_number_in_batch=self.message.tx_number_in_batch,
            sender=sender,
            data=bytes([BUNDLE_IDENTIFIER]) + bytes(encoded_bundle),
        )
        return replace(self, message=message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": str(self.chain_id),
            "l1BatchNumber": self.l1_batch_number,
            "l2MessageIndex": self.l2_message_index,
            "root": self.root,
            "message": {
                "txNumberInBatch": self.message.tx_number_in_batch,
                "sender": self.message.sender.lower(),
                "data": format_hex(self.message.data),
            },
            "proof": [format_hex(node) for node in self.proof],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MessageInclusionProof":
        try:
            message = data["message"]
            return cls(
                chain_id=int(data["chainId"]),
                l1_batch_number=int(data["l1BatchNumber"]),
                l2_message_index=int(data["l2MessageIndex"]),
                root=data["root"],
                message=ProofMessage(
                    tx_number_in_batch=int(message["txNumberInBatch"]),
                    sender=message["sender"],
                    data=message.get("data", "0x"),
                ),
                proof=tuple(data["proof"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedProof(f"invalid proof document: {e}") from e


@dataclass(frozen=True, slots=True)
class RelaySummary:
    """Summary of one relay run, written as relay_summary.json."""

    source_chain_id: int
    destination_chain_id: int
    l1_batch_number: int
    l2_message_index: int
    bundle_hash: str
    source_tx_hash: str
    handler_tx_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceChainId": str(self.source_chain_id),
            "destinationChainId": str(self.destination_chain_id),
            "l1BatchNumber": self.l1_batch_number,
            "l2MessageIndex": self.l2_message_index,
            "bundleHash": self.bundle_hash,
            "sourceTxHash": self.source_tx_hash,
            "handlerTxHash": self.handler_tx_hash,
        }


@dataclass(frozen=True, slots=True)
class EventView:
    """A decoded interop event found in a transaction receipt."""

    name: str
    address: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "address": self.address, "data": self.data}


def parse_uint(value: int | str, label: str) -> int:
    """Parse a uint256 given as an int, a decimal string or a 0x hex string."""
    if isinstance(value, str):
        text = value.strip()
        base = 16 if text.lower().startswith("0x") else 10
        try:
            value = int(text, base)
        except ValueError:
            raise ValueError(f"invalid {label}: {text!r}") from None
    _check_uint256(value, label)
    return value


@dataclass(frozen=True, slots=True, kw_only=True)
class CallStarter:
    """A call requested through sendBundle, before the interop center fills it in."""

    to: str
    data: bytes = b""
    interop_value: int | None = None
    indirect: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'to', _checksum(self.to, "call target"))
        object.__setattr__(self, 'data', to_bytes_safe(self.data))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CallStarter":
        """Build a call from a calls.json entry: {"to", "data", "attributes"}."""
        attributes = data.get("attributes") or {}
        interop_value = attributes.get("interopValue")
        indirect = attributes.get("indirect")
        return cls(
            to=data["to"],
            data=data.get("data", "0x"),
            interop_value=parse_uint(interop_value, "interopValue") if interop_value is not None else None,
            indirect=parse_uint(indirect, "indirect") if indirect is not None else None,
        )
