"""Shared fixtures for the interop relay tests."""

import pytest
from eth_abi import encode
from hexbytes import HexBytes

from cast_interop.models import BundleAttributes, InteropBundle, InteropCall
from cast_interop.utils.abi import BUNDLE_TUPLE_TYPE, INTEROP_BUNDLE_SENT_TOPIC
from cast_interop.utils.interop_address import encode_with_address

INTEROP_CENTER = "0x0000000000000000000000000000000000010010"
SIGNER = "0x742D35Cc6634C0532925A3B844bC9e7595f0bEB7"
TARGET = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
SENDER = "0x1111111111111111111111111111111111111111"

SOURCE_CHAIN_ID = 271
DESTINATION_CHAIN_ID = 260
BUNDLE_HASH = bytes.fromhex("ab" * 32)
L2L1_MSG_HASH = bytes.fromhex("cd" * 32)
SOURCE_TX_HASH = "0x" + "12" * 32


def bundle_as_tuple(bundle: InteropBundle) -> tuple:
    """Arrange a bundle the way eth_abi expects the tuple."""
    return (
        bundle.version,
        bundle.source_chain_id,
        bundle.destination_chain_id,
        bundle.interop_bundle_salt,
        [
            (call.version, call.shadow_account, call.to, call.from_, call.value, call.data)
            for call in bundle.calls
        ],
        (
            bundle.bundle_attributes.execution_address,
            bundle.bundle_attributes.unbundler_address,
        ),
    )


def bundle_sent_log(bundle: InteropBundle, bundle_hash: bytes = BUNDLE_HASH) -> dict:
    data = encode(
        ["bytes32", "bytes32", BUNDLE_TUPLE_TYPE],
        [L2L1_MSG_HASH, bundle_hash, bundle_as_tuple(bundle)],
    )
    return {
        "address": INTEROP_CENTER,
        "topics": [HexBytes(INTEROP_BUNDLE_SENT_TOPIC)],
        "data": HexBytes(data),
    }


@pytest.fixture
def sample_bundle():
    """A two-call bundle with an execution address restricted to SIGNER."""
    return InteropBundle(
        source_chain_id=SOURCE_CHAIN_ID,
        destination_chain_id=DESTINATION_CHAIN_ID,
        interop_bundle_salt=bytes.fromhex("5a" * 32),
        calls=(
            InteropCall(to=TARGET, from_=SENDER, value=0, data=bytes.fromhex("deadbeef")),
            InteropCall(
                shadow_account=True,
                to=TARGET,
                from_=SENDER,
                value=10**18,
                data=bytes(range(40)),
            ),
        ),
        bundle_attributes=BundleAttributes(
            execution_address=encode_with_address(DESTINATION_CHAIN_ID, SIGNER),
            unbundler_address=encode_with_address(DESTINATION_CHAIN_ID, SIGNER),
        ),
    )


@pytest.fixture
def source_receipt(sample_bundle):
    """Receipt of a source transaction that sent sample_bundle."""
    return {
        "transactionHash": HexBytes(SOURCE_TX_HASH),
        "blockNumber": 120,
        "transactionIndex": 3,
        "status": 1,
        "logs": [
            {
                "address": "0x000000000000000000000000000000000000800a",
                "topics": [HexBytes("0x" + "00" * 32)],
                "data": HexBytes(b""),
            },
            bundle_sent_log(sample_bundle),
        ],
    }
