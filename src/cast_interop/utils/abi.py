"""
Function selectors, event topics and calldata builders for the interop contracts.

Everything here is computed once at import from the canonical Solidity
signatures.
"""

from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from ..exceptions import MalformedBundle, MalformedResponse
from ..models import BundleSentEvent, MessageInclusionProof, format_hex
from .bundle_codec import decode_bundle_tuple

CALL_TUPLE_TYPE = "(bytes1,bool,address,address,uint256,bytes)"
BUNDLE_TUPLE_TYPE = f"(bytes1,uint256,uint256,bytes32,{CALL_TUPLE_TYPE}[],(bytes,bytes))"
PROOF_TUPLE_TYPE = "(uint256,uint256,uint256,(uint16,address,bytes),bytes32[])"
CALL_STARTER_TUPLE_TYPE = "(bytes,bytes,bytes[])"


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256 of a canonical signature."""
    return bytes(Web3.keccak(text=signature)[:4])


def event_topic(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature))


VERIFY_BUNDLE_SIGNATURE = f"verifyBundle(bytes,{PROOF_TUPLE_TYPE})"
EXECUTE_BUNDLE_SIGNATURE = f"executeBundle(bytes,{PROOF_TUPLE_TYPE})"
BUNDLE_STATUS_SIGNATURE = "bundleStatus(bytes32)"
CALL_STATUS_SIGNATURE = "callStatus(bytes32,uint256)"
INTEROP_ROOTS_SIGNATURE = "interopRoots(uint256,uint256)"
SEND_BUNDLE_SIGNATURE = f"sendBundle(bytes,{CALL_STARTER_TUPLE_TYPE}[],bytes[])"
SEND_MESSAGE_SIGNATURE = "sendMessage(bytes,bytes,bytes[])"

VERIFY_BUNDLE_SELECTOR = function_selector(VERIFY_BUNDLE_SIGNATURE)
EXECUTE_BUNDLE_SELECTOR = function_selector(EXECUTE_BUNDLE_SIGNATURE)
BUNDLE_STATUS_SELECTOR = function_selector(BUNDLE_STATUS_SIGNATURE)
CALL_STATUS_SELECTOR = function_selector(CALL_STATUS_SIGNATURE)
INTEROP_ROOTS_SELECTOR = function_selector(INTEROP_ROOTS_SIGNATURE)
SEND_BUNDLE_SELECTOR = function_selector(SEND_BUNDLE_SIGNATURE)
SEND_MESSAGE_SELECTOR = function_selector(SEND_MESSAGE_SIGNATURE)

INTEROP_BUNDLE_SENT_TOPIC = event_topic(f"InteropBundleSent(bytes32,bytes32,{BUNDLE_TUPLE_TYPE})")
MESSAGE_SENT_TOPIC = event_topic("MessageSent(bytes32,bytes,bytes,bytes,uint256,bytes[])")
L1_MESSAGE_SENT_TOPIC = event_topic("L1MessageSent(address,bytes32,bytes)")
BUNDLE_VERIFIED_TOPIC = event_topic("BundleVerified(bytes32)")
BUNDLE_EXECUTED_TOPIC = event_topic("BundleExecuted(bytes32)")
BUNDLE_UNBUNDLED_TOPIC = event_topic("BundleUnbundled(bytes32)")
CALL_PROCESSED_TOPIC = event_topic("CallProcessed(bytes32,uint256,uint8)")


def proof_to_tuple(proof: MessageInclusionProof) -> tuple:
    """Arrange a proof as the ABI tuple the handler expects."""
    return (
        proof.chain_id,
        proof.l1_batch_number,
        proof.l2_message_index,
        (
            proof.message.tx_number_in_batch,
            proof.message.sender,
            proof.message.data,
        ),
        list(proof.proof),
    )


def encode_message_inclusion_proof(proof: MessageInclusionProof) -> bytes:
    return encode([PROOF_TUPLE_TYPE], [proof_to_tuple(proof)])


def encode_verify_bundle_call(bundle_bytes: bytes, proof: MessageInclusionProof) -> bytes:
    return VERIFY_BUNDLE_SELECTOR + encode(
        ["bytes", PROOF_TUPLE_TYPE], [bytes(bundle_bytes), proof_to_tuple(proof)]
    )


def encode_execute_bundle_call(bundle_bytes: bytes, proof: MessageInclusionProof) -> bytes:
    return EXECUTE_BUNDLE_SELECTOR + encode(
        ["bytes", PROOF_TUPLE_TYPE], [bytes(bundle_bytes), proof_to_tuple(proof)]
    )


def encode_bundle_status_call(bundle_hash: bytes) -> bytes:
    return BUNDLE_STATUS_SELECTOR + encode(["bytes32"], [bytes(bundle_hash)])


def encode_call_status_call(bundle_hash: bytes, index: int) -> bytes:
    return CALL_STATUS_SELECTOR + encode(["bytes32", "uint256"], [bytes(bundle_hash), index])


def encode_interop_roots_call(chain_id: int, batch_number: int) -> bytes:
    return INTEROP_ROOTS_SELECTOR + encode(["uint256", "uint256"], [chain_id, batch_number])


def encode_send_bundle_call(
    destination_chain: bytes,
    call_starters: list[tuple[bytes, bytes, list[bytes]]],
    bundle_attributes: list[bytes],
) -> bytes:
    """
    Build sendBundle calldata for the interop center.

    Args:
        destination_chain: Chain-only interoperable address of the destination
        call_starters: (to, data, callAttributes) per call, `to` address-only encoded
        bundle_attributes: Encoded bundle attributes

    Returns:
        Selector followed by the ABI-encoded arguments
    """
    starters = [
        (bytes(to), bytes(data), [bytes(a) for a in attributes])
        for to, data, attributes in call_starters
    ]
    return SEND_BUNDLE_SELECTOR + encode(
        ["bytes", f"{CALL_STARTER_TUPLE_TYPE}[]", "bytes[]"],
        [bytes(destination_chain), starters, [bytes(a) for a in bundle_attributes]],
    )


def encode_send_message_call(recipient: bytes, payload: bytes, attributes: list[bytes]) -> bytes:
    return SEND_MESSAGE_SELECTOR + encode(
        ["bytes", "bytes", "bytes[]"],
        [bytes(recipient), bytes(payload), [bytes(a) for a in attributes]],
    )


def decode_bytes32(data: bytes) -> bytes:
    """Decode a single bytes32 return value."""
    if len(data) < 32:
        raise MalformedResponse(f"expected a 32-byte word, got {len(data)} bytes")
    return bytes(decode(["bytes32"], bytes(data))[0])


def decode_interop_bundle_sent(data: bytes) -> BundleSentEvent:
    """
    Decode the data of an InteropBundleSent log.

    The payload is (bytes32 l2l1MsgHash, bytes32 interopBundleHash, InteropBundle).

    Args:
        data: Log data

    Returns:
        Decoded event without block metadata

    Raises:
        MalformedBundle: If the data is truncated or the bundle is invalid
    """
    data = bytes(data)
    if len(data) < 96:
        raise MalformedBundle(f"InteropBundleSent data too short: {len(data)} bytes")
    bundle_offset = int.from_bytes(data[64:96], "big")
    return BundleSentEvent(
        l2l1_msg_hash=data[0:32],
        bundle_hash=data[32:64],
        bundle=decode_bundle_tuple(data, bundle_offset),
    )


def decode_message_sent(data: bytes) -> dict[str, Any]:
    """Decode MessageSent data as (sender, recipient, payload, value, attributes)."""
    try:
        sender, recipient, payload, value, attributes = decode(
            ["bytes", "bytes", "bytes", "uint256", "bytes[]"], bytes(data)
        )
    except DecodingError as e:
        raise MalformedBundle(f"invalid MessageSent data: {e}") from e
    return {
        "sender": format_hex(sender),
        "recipient": format_hex(recipient),
        "payload": format_hex(payload),
        "value": str(value),
        "attributes": [format_hex(attribute) for attribute in attributes],
    }
