"""
Interoperable address codec (ERC-7930, EVM v1 profile).

Binary layout:
  Version (2B) | ChainType (2B) | ChainRefLen (1B) | ChainRef (var) | AddrLen (1B) | Address (var)
  0x0001       | 0x0000         | N                | BE(chainId)    | 0x14 / 0x00  | 20 raw bytes

The address-only form folds a zero chain-reference length into its header.
"""

import logging

from web3 import Web3

from ..exceptions import MalformedAddress

logger = logging.getLogger(__name__)

EVM_V1_HEADER = bytes([0x00, 0x01, 0x00, 0x00])
EVM_V1_ADDRESS_ONLY_HEADER = bytes([0x00, 0x01, 0x00, 0x00, 0x00])
EVM_ADDRESS_LENGTH = 20

MIN_ENCODED_LENGTH = 6


def _address_bytes(address: str | bytes) -> bytes:
    """Return the raw 20 bytes of an EVM address given as hex or bytes."""
    if isinstance(address, (bytes, bytearray)):
        raw = bytes(address)
    else:
        if not Web3.is_address(address):
            raise ValueError(f"Invalid EVM address: {address}")
        raw = Web3.to_bytes(hexstr=address)
    if len(raw) != EVM_ADDRESS_LENGTH:
        raise ValueError(f"EVM address must be {EVM_ADDRESS_LENGTH} bytes, got {len(raw)}")
    return raw


def chain_reference(chain_id: int) -> bytes:
    """Encode a chain id as minimal big-endian bytes.

    Chain id 0 encodes as a single zero byte, never as an empty string.

    Examples:
        0        -> 0x00
        1        -> 0x01
        324      -> 0x0144
        11155111 -> 0xaa36a7
    """
    if chain_id < 0:
        raise ValueError(f"chain_id must be non-negative, got {chain_id}")
    if chain_id == 0:
        return b"\x00"
    length = (chain_id.bit_length() + 7) // 8
    if length > 0xFF:
        raise ValueError(f"chain_id too large for a chain reference: {chain_id}")
    return chain_id.to_bytes(length, "big")


def encode_address_only(address: str | bytes) -> bytes:
    """Encode an address with no chain reference."""
    return EVM_V1_ADDRESS_ONLY_HEADER + bytes([EVM_ADDRESS_LENGTH]) + _address_bytes(address)


def encode_chain_only(chain_id: int) -> bytes:
    """Encode a chain reference with an empty address."""
    ref = chain_reference(chain_id)
    return EVM_V1_HEADER + bytes([len(ref)]) + ref + b"\x00"


def encode_with_address(chain_id: int, address: str | bytes) -> bytes:
    """Encode a (chain, address) pair."""
    ref = chain_reference(chain_id)
    return (
        EVM_V1_HEADER
        + bytes([len(ref)])
        + ref
        + bytes([EVM_ADDRESS_LENGTH])
        + _address_bytes(address)
    )


def decode_chain_and_address(data: bytes) -> tuple[int, str | None]:
    """
    Decode an interoperable address into its chain id and optional address.

    Args:
        data: Encoded interoperable address

    Returns:
        Tuple of (chain_id, checksummed address or None)

    Raises:
        MalformedAddress: If the buffer is short, has the wrong header, declares
            lengths past its end, or carries an address that is not 0 or 20 bytes
    """
    data = bytes(data)
    if len(data) < MIN_ENCODED_LENGTH:
        raise MalformedAddress(f"interoperable address too short: {len(data)} bytes")
    if data[:4] != EVM_V1_HEADER:
        raise MalformedAddress(f"unsupported interoperable address header 0x{data[:4].hex()}")

    chain_len = data[4]
    chain_end = 5 + chain_len
    if len(data) < chain_end + 1:
        raise MalformedAddress("interoperable address missing address length")

    chain_ref = data[5:chain_end]
    addr_len = data[chain_end]
    addr_start = chain_end + 1
    addr_end = addr_start + addr_len
    if len(data) < addr_end:
        raise MalformedAddress("interoperable address truncated")

    chain_id = int.from_bytes(chain_ref, "big") if chain_len else 0

    match addr_len:
        case 0:
            address = None
        case 20:
            address = Web3.to_checksum_address("0x" + data[addr_start:addr_end].hex())
        case _:
            raise MalformedAddress(f"unsupported address length {addr_len}")

    return chain_id, address
