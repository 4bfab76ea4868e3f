"""Tests for the interoperable address codec."""

import pytest
from web3 import Web3

from cast_interop.exceptions import MalformedAddress
from cast_interop.utils.interop_address import (
    chain_reference,
    decode_chain_and_address,
    encode_address_only,
    encode_chain_only,
    encode_with_address,
)

ADDRESS = "0x742D35Cc6634C0532925A3B844bC9e7595f0bEB7"
ADDRESS_BYTES = bytes.fromhex("742d35cc6634c0532925a3b844bc9e7595f0beb7")


def test_fixture_address_is_checksummed():
    assert Web3.is_checksum_address(ADDRESS)
    assert Web3.to_checksum_address(ADDRESS_BYTES) == ADDRESS


class TestChainReference:
    """Tests for minimal big-endian chain references."""

    @pytest.mark.parametrize("chain_id,expected", [
        (0, "00"),
        (1, "01"),
        (255, "ff"),
        (256, "0100"),
        (324, "0144"),
        (11155111, "aa36a7"),
    ])
    def test_minimal_encoding(self, chain_id, expected):
        assert chain_reference(chain_id) == bytes.fromhex(expected)

    def test_negative_chain_id_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            chain_reference(-1)


class TestEncoding:
    """Tests for the three encoding forms."""

    def test_address_only(self):
        encoded = encode_address_only(ADDRESS)
        assert encoded == bytes.fromhex("0001000000") + b"\x14" + ADDRESS_BYTES

    def test_chain_only(self):
        assert encode_chain_only(324) == bytes.fromhex("00010000" "02" "0144" "00")

    def test_chain_only_zero(self):
        assert encode_chain_only(0) == bytes.fromhex("00010000" "01" "00" "00")

    def test_with_address(self):
        encoded = encode_with_address(1, ADDRESS)
        assert encoded == bytes.fromhex("00010000" "01" "01" "14") + ADDRESS_BYTES

    def test_address_accepts_lowercase_and_bytes(self):
        assert encode_with_address(5, ADDRESS.lower()) == encode_with_address(5, ADDRESS_BYTES)

    def test_invalid_address_rejected(self):
        with pytest.raises(ValueError, match="Invalid EVM address"):
            encode_address_only("not-an-address")


class TestDecoding:
    """Tests for decode_chain_and_address."""

    def test_with_address(self):
        assert decode_chain_and_address(encode_with_address(11155111, ADDRESS)) == (11155111, ADDRESS)

    def test_chain_only(self):
        assert decode_chain_and_address(encode_chain_only(260)) == (260, None)

    def test_address_only_decodes_chain_zero(self):
        assert decode_chain_and_address(encode_address_only(ADDRESS)) == (0, ADDRESS)

    def test_returns_checksummed_address(self):
        _, address = decode_chain_and_address(encode_with_address(1, ADDRESS.lower()))
        assert address == ADDRESS

    def test_too_short(self):
        with pytest.raises(MalformedAddress, match="too short"):
            decode_chain_and_address(bytes.fromhex("0001000000"))

    def test_wrong_header(self):
        data = bytes.fromhex("00020000" "01" "01" "00")
        with pytest.raises(MalformedAddress, match="header"):
            decode_chain_and_address(data)

    def test_chain_length_past_end(self):
        data = bytes.fromhex("00010000" "05" "01")
        with pytest.raises(MalformedAddress):
            decode_chain_and_address(data)

    def test_truncated_address(self):
        data = bytes.fromhex("00010000" "01" "01" "14") + ADDRESS_BYTES[:10]
        with pytest.raises(MalformedAddress, match="truncated"):
            decode_chain_and_address(data)

    def test_unsupported_address_length(self):
        data = bytes.fromhex("00010000" "01" "01" "04" "deadbeef")
        with pytest.raises(MalformedAddress, match="unsupported address length 4"):
            decode_chain_and_address(data)
