"""Tests for the explicit bundle codec."""

import pytest
from eth_abi import decode, encode

from cast_interop.exceptions import MalformedBundle
from cast_interop.models import InteropBundle, InteropCall
from cast_interop.utils.abi import BUNDLE_TUPLE_TYPE, decode_interop_bundle_sent
from cast_interop.utils.bundle_codec import decode_bundle, decode_bundle_tuple, encode_bundle

from conftest import BUNDLE_HASH, L2L1_MSG_HASH, SENDER, TARGET, bundle_as_tuple, bundle_sent_log


def _word(data: bytes, pos: int) -> int:
    return int.from_bytes(data[pos:pos + 32], "big")


def _set_word(data: bytes, pos: int, value: int) -> bytes:
    return data[:pos] + value.to_bytes(32, "big") + data[pos + 32:]


def _calls_position(encoded: bytes) -> int:
    base = _word(encoded, 0)
    return base + _word(encoded, base + 4 * 32)


def _first_call_position(encoded: bytes) -> int:
    elements = _calls_position(encoded) + 32
    return elements + _word(encoded, elements)


@pytest.fixture
def empty_bundle():
    return InteropBundle(
        source_chain_id=1,
        destination_chain_id=2,
        interop_bundle_salt=bytes(32),
    )


class TestEncoding:
    """Encoder output must match the ABI encoding the handler decodes."""

    def test_matches_eth_abi(self, sample_bundle):
        expected = encode([BUNDLE_TUPLE_TYPE], [bundle_as_tuple(sample_bundle)])
        assert encode_bundle(sample_bundle) == expected

    def test_empty_bundle_matches_eth_abi(self, empty_bundle):
        expected = encode([BUNDLE_TUPLE_TYPE], [bundle_as_tuple(empty_bundle)])
        assert encode_bundle(empty_bundle) == expected

    def test_leading_offset_word(self, sample_bundle):
        encoded = encode_bundle(sample_bundle)
        assert _word(encoded, 0) == 0x20
        assert len(encoded) % 32 == 0

    def test_decodes_with_eth_abi(self, sample_bundle):
        (decoded,) = decode([BUNDLE_TUPLE_TYPE], encode_bundle(sample_bundle))
        assert decoded[1] == sample_bundle.source_chain_id
        assert decoded[2] == sample_bundle.destination_chain_id
        assert len(decoded[4]) == 2
        assert decoded[4][1][5] == bytes(range(40))


class TestDecoding:
    """Decoder tests, including strict rejection of malformed input."""

    def test_round_trip(self, sample_bundle):
        assert decode_bundle(encode_bundle(sample_bundle)) == sample_bundle

    def test_round_trip_empty(self, empty_bundle):
        assert decode_bundle(encode_bundle(empty_bundle)) == empty_bundle

    def test_reencoding_is_byte_exact(self, sample_bundle):
        canonical = encode([BUNDLE_TUPLE_TYPE], [bundle_as_tuple(sample_bundle)])
        assert encode_bundle(decode_bundle(canonical)) == canonical

    def test_decoded_fields(self, sample_bundle):
        bundle = decode_bundle(encode_bundle(sample_bundle))
        assert bundle.calls[0].to == TARGET
        assert bundle.calls[0].from_ == SENDER
        assert bundle.calls[0].data == bytes.fromhex("deadbeef")
        assert bundle.calls[1].shadow_account is True
        assert bundle.calls[1].value == 10**18

    def test_tuple_at_offset(self, sample_bundle):
        data = b"\xff" * 64 + encode_bundle(sample_bundle)[32:]
        assert decode_bundle_tuple(data, 64) == sample_bundle

    def test_truncated(self, sample_bundle):
        encoded = encode_bundle(sample_bundle)
        with pytest.raises(MalformedBundle):
            decode_bundle(encoded[:-1])

    def test_truncated_head(self):
        with pytest.raises(MalformedBundle, match="truncated"):
            decode_bundle(b"\x00" * 16)

    def test_offset_outside_buffer(self, sample_bundle):
        encoded = _set_word(encode_bundle(sample_bundle), 0, 2**64)
        with pytest.raises(MalformedBundle, match="outside the buffer"):
            decode_bundle(encoded)

    def test_array_length_exceeds_remaining_bytes(self, sample_bundle):
        encoded = encode_bundle(sample_bundle)
        encoded = _set_word(encoded, _calls_position(encoded), 2**200)
        with pytest.raises(MalformedBundle, match="claims"):
            decode_bundle(encoded)

    def test_invalid_bool(self, sample_bundle):
        encoded = encode_bundle(sample_bundle)
        encoded = _set_word(encoded, _first_call_position(encoded) + 32, 2)
        with pytest.raises(MalformedBundle, match="invalid bool"):
            decode_bundle(encoded)

    def test_nonzero_bytes1_padding(self, sample_bundle):
        encoded = bytearray(encode_bundle(sample_bundle))
        encoded[32 + 5] = 0x01
        with pytest.raises(MalformedBundle, match="padding in bytes1"):
            decode_bundle(bytes(encoded))

    def test_nonzero_address_padding(self, sample_bundle):
        encoded = bytearray(encode_bundle(sample_bundle))
        encoded[_first_call_position(bytes(encoded)) + 2 * 32] = 0x01
        with pytest.raises(MalformedBundle, match="padding in address"):
            decode_bundle(bytes(encoded))

    def test_nonzero_bytes_padding(self):
        bundle = InteropBundle(
            source_chain_id=1,
            destination_chain_id=2,
            interop_bundle_salt=bytes(32),
            calls=(InteropCall(to=TARGET, from_=SENDER, data=b"\x01"),),
        )
        encoded = bytearray(encode_bundle(bundle))
        call = _first_call_position(bytes(encoded))
        data_pos = call + _word(bytes(encoded), call + 5 * 32)
        encoded[data_pos + 32 + 1] = 0xFF
        with pytest.raises(MalformedBundle, match="padding after bytes"):
            decode_bundle(bytes(encoded))


class TestBundleSentEvent:
    """InteropBundleSent payload decoding."""

    def test_decode_event_payload(self, sample_bundle):
        log = bundle_sent_log(sample_bundle)
        event = decode_interop_bundle_sent(bytes(log["data"]))
        assert event.l2l1_msg_hash == L2L1_MSG_HASH
        assert event.bundle_hash == BUNDLE_HASH
        assert event.bundle == sample_bundle

    def test_short_payload(self):
        with pytest.raises(MalformedBundle, match="too short"):
            decode_interop_bundle_sent(b"\x00" * 64)
