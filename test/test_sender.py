"""Unit tests for the InteropSender class."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import decode, encode
from hexbytes import HexBytes

from cast_interop.exceptions import MalformedResponse, RpcError, SignerRequired, SubmissionFailed
from cast_interop.models import CallStarter
from cast_interop.sender import InteropSender
from cast_interop.utils.abi import MESSAGE_SENT_TOPIC, SEND_BUNDLE_SELECTOR, SEND_MESSAGE_SELECTOR
from cast_interop.utils.attributes import (
    encode_execution_address,
    encode_indirect_call,
    encode_interop_call_value,
    encode_unbundler_address,
)
from cast_interop.utils.interop_address import (
    encode_address_only,
    encode_chain_only,
    encode_with_address,
)

from conftest import (
    BUNDLE_HASH,
    DESTINATION_CHAIN_ID,
    INTEROP_CENTER,
    SENDER,
    SIGNER,
    TARGET,
    bundle_sent_log,
)

SEND_ID = bytes.fromhex("5e" * 32)
TX_HASH = "0x" + "99" * 32


def make_client(call_result=BUNDLE_HASH, receipt=None, has_signer=True):
    client = MagicMock()
    client.has_signer = has_signer
    client.call = AsyncMock(return_value=call_result)
    client.send_transaction = AsyncMock(return_value=TX_HASH)
    client.wait_for_receipt = AsyncMock(return_value=receipt or {"status": 1, "logs": []})
    return client


def message_sent_log(address: str, send_id: bytes) -> dict:
    data = encode(
        ["bytes", "bytes", "bytes", "uint256", "bytes[]"],
        [b"\xaa", b"\xbb", b"", 0, []],
    )
    return {
        "address": address,
        "topics": [HexBytes(MESSAGE_SENT_TOPIC), HexBytes(send_id)],
        "data": HexBytes(data),
    }


@pytest.fixture
def calls():
    return [
        CallStarter(to=TARGET, data=b"\xde\xad", interop_value=5),
        CallStarter(to=SENDER, indirect=3),
    ]


class TestSendBundle:
    """Test suite for sendBundle."""

    @pytest.mark.asyncio
    async def test_dry_run_returns_bundle_hash(self, calls):
        """Test that a dry run simulates with the summed call value."""
        client = make_client()
        result = await InteropSender(client).send_bundle(DESTINATION_CHAIN_ID, calls, dry_run=True)

        assert result.bundle_hash == BUNDLE_HASH
        assert result.to_dict() == {"dryRun": True, "bundleHash": "0x" + "ab" * 32}
        client.send_transaction.assert_not_awaited()

        to, calldata = client.call.call_args.args
        assert to == INTEROP_CENTER
        assert client.call.call_args.kwargs["value"] == 8
        assert calldata[:4] == SEND_BUNDLE_SELECTOR

    @pytest.mark.asyncio
    async def test_calldata_layout(self, calls):
        """Test the destination, call starters and bundle attributes."""
        client = make_client()
        await InteropSender(client).send_bundle(
            DESTINATION_CHAIN_ID, calls, execution_address=None, unbundler_address=SIGNER, dry_run=True
        )

        calldata = client.call.call_args.args[1]
        destination, starters, bundle_attributes = decode(
            ["bytes", "(bytes,bytes,bytes[])[]", "bytes[]"], calldata[4:]
        )
        assert destination == encode_chain_only(DESTINATION_CHAIN_ID)
        assert starters[0] == (encode_address_only(TARGET), b"\xde\xad", (encode_interop_call_value(5),))
        assert starters[1] == (encode_address_only(SENDER), b"", (encode_indirect_call(3),))
        assert list(bundle_attributes) == [
            encode_execution_address(b""),
            encode_unbundler_address(encode_with_address(DESTINATION_CHAIN_ID, SIGNER)),
        ]

    @pytest.mark.asyncio
    async def test_send_reads_bundle_hash_from_logs(self, calls, sample_bundle):
        """Test that the bundle hash comes from the center's InteropBundleSent."""
        receipt = {"status": 1, "logs": [bundle_sent_log(sample_bundle)]}
        client = make_client(receipt=receipt)

        result = await InteropSender(client).send_bundle(DESTINATION_CHAIN_ID, calls)

        assert result.to_dict() == {
            "txHash": TX_HASH,
            "status": 1,
            "sendId": None,
            "bundleHash": "0x" + "ab" * 32,
        }
        client.send_transaction.assert_awaited_once()
        assert client.send_transaction.call_args.kwargs["value"] == 8

    @pytest.mark.asyncio
    async def test_bundle_from_other_address_ignored(self, calls, sample_bundle):
        """Test that InteropBundleSent is only trusted from the interop center."""
        log = bundle_sent_log(sample_bundle)
        log["address"] = SENDER
        client = make_client(receipt={"status": 1, "logs": [log]})

        result = await InteropSender(client).send_bundle(DESTINATION_CHAIN_ID, calls)

        assert result.bundle_hash is None

    @pytest.mark.asyncio
    async def test_requires_calls(self):
        """Test that an empty bundle is rejected before any RPC."""
        client = make_client()
        with pytest.raises(ValueError, match="at least one call"):
            await InteropSender(client).send_bundle(DESTINATION_CHAIN_ID, [])
        client.call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signer_required(self, calls):
        """Test that a real send without a signer fails."""
        client = make_client(has_signer=False)
        with pytest.raises(SignerRequired):
            await InteropSender(client).send_bundle(DESTINATION_CHAIN_ID, calls)

    @pytest.mark.asyncio
    async def test_empty_simulation_result(self, calls):
        """Test that an empty eth_call result is reported as a malformed response."""
        client = make_client(call_result=b"")
        with pytest.raises(MalformedResponse):
            await InteropSender(client).send_bundle(DESTINATION_CHAIN_ID, calls, dry_run=True)


class TestSendMessage:
    """Test suite for sendMessage."""

    @pytest.mark.asyncio
    async def test_dry_run_attribute_order(self):
        """Test value, indirect, executionAddress then unbundler."""
        client = make_client(call_result=SEND_ID)
        result = await InteropSender(client).send_message(
            DESTINATION_CHAIN_ID,
            TARGET,
            b"\x01\x02",
            interop_value=5,
            indirect=3,
            execution_address=SIGNER,
            unbundler_address=SIGNER,
            dry_run=True,
        )

        assert result.to_dict() == {"dryRun": True, "sendId": "0x" + "5e" * 32}
        calldata = client.call.call_args.args[1]
        assert calldata[:4] == SEND_MESSAGE_SELECTOR
        recipient, payload, attributes = decode(["bytes", "bytes", "bytes[]"], calldata[4:])
        assert recipient == encode_with_address(DESTINATION_CHAIN_ID, TARGET)
        assert payload == b"\x01\x02"
        assert [a[:4] for a in attributes] == [
            encode_interop_call_value(0)[:4],
            encode_indirect_call(0)[:4],
            encode_execution_address(b"")[:4],
            encode_unbundler_address(b"")[:4],
        ]
        assert client.call.call_args.kwargs["value"] == 8

    @pytest.mark.asyncio
    async def test_send_reads_send_id(self):
        """Test that the sendId is topic 1 of the center's MessageSent."""
        receipt = {"status": 1, "logs": [
            message_sent_log(SENDER, bytes(32)),
            message_sent_log(INTEROP_CENTER, SEND_ID),
        ]}
        client = make_client(receipt=receipt)

        result = await InteropSender(client).send_message(DESTINATION_CHAIN_ID, TARGET, b"")

        assert result.send_id == SEND_ID
        assert result.tx_hash == TX_HASH
        assert client.send_transaction.call_args.kwargs["value"] == 0

    @pytest.mark.asyncio
    async def test_revert_reason(self):
        """Test that a reverting send surfaces the decoded reason."""
        client = make_client()
        client.send_transaction = AsyncMock(
            side_effect=RpcError("execution reverted", "0x08c379a0" + encode(["string"], ["no value"]).hex())
        )
        with pytest.raises(SubmissionFailed) as exc_info:
            await InteropSender(client).send_message(DESTINATION_CHAIN_ID, TARGET, b"")
        assert exc_info.value.reason == "no value"
