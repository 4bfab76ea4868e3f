"""
Explicit ABI codec for interop bundles.

The canonical bundle bytes are the ABI encoding of

    (bytes1,uint256,uint256,bytes32,(bytes1,bool,address,address,uint256,bytes)[],(bytes,bytes))

passed as a single dynamic argument, so they start with a 0x20 offset word.
Dynamic members are laid out head/tail: the head holds static words and
offsets (relative to the start of the enclosing tuple), the tail holds the
dynamic payloads in member order.
"""

from web3 import Web3

from ..exceptions import MalformedBundle
from ..models import BundleAttributes, InteropBundle, InteropCall, UINT256_MAX

WORD = 32


def _uint_word(value: int) -> bytes:
    if not 0 <= value <= UINT256_MAX:
        raise ValueError(f"value out of uint256 range: {value}")
    return value.to_bytes(WORD, "big")


def _bytes1_word(value: bytes) -> bytes:
    return bytes(value).ljust(WORD, b"\x00")


def _bool_word(value: bool) -> bytes:
    return _uint_word(1 if value else 0)


def _address_word(address: str) -> bytes:
    return Web3.to_bytes(hexstr=address).rjust(WORD, b"\x00")


def _dynamic_bytes(data: bytes) -> bytes:
    padded_length = -(-len(data) // WORD) * WORD
    return _uint_word(len(data)) + bytes(data).ljust(padded_length, b"\x00")


def _encode_tuple(parts: list[tuple[bool, bytes]]) -> bytes:
    """
    Lay out tuple members head/tail.

    Args:
        parts: (is_dynamic, encoding) for each member in order. Static
            encodings must be exactly one word.

    Returns:
        Head followed by tail
    """
    head_size = WORD * len(parts)
    head = b""
    tail = b""
    for is_dynamic, encoding in parts:
        if is_dynamic:
            head += _uint_word(head_size + len(tail))
            tail += encoding
        else:
            head += encoding
    return head + tail


class _Reader:
    """Bounds-checked word reader over an encoded buffer."""

    def __init__(self, data: bytes):
        self.data = bytes(data)

    def word(self, pos: int) -> bytes:
        if pos < 0 or pos + WORD > len(self.data):
            raise MalformedBundle(f"truncated input: word at offset {pos} past end ({len(self.data)} bytes)")
        return self.data[pos:pos + WORD]

    def uint(self, pos: int) -> int:
        return int.from_bytes(self.word(pos), "big")

    def offset(self, base: int, pos: int) -> int:
        """Resolve the offset stored at `pos` relative to `base`."""
        target = base + self.uint(pos)
        if target + WORD > len(self.data):
            raise MalformedBundle(f"offset {target} at position {pos} points outside the buffer")
        return target

    def bytes1(self, pos: int) -> bytes:
        word = self.word(pos)
        if any(word[1:]):
            raise MalformedBundle(f"non-zero padding in bytes1 at offset {pos}")
        return word[:1]

    def boolean(self, pos: int) -> bool:
        value = self.uint(pos)
        if value not in (0, 1):
            raise MalformedBundle(f"invalid bool word {value} at offset {pos}")
        return value == 1

    def address(self, pos: int) -> str:
        word = self.word(pos)
        if any(word[:12]):
            raise MalformedBundle(f"non-zero padding in address at offset {pos}")
        return Web3.to_checksum_address("0x" + word[12:].hex())

    def dynamic_bytes(self, pos: int) -> bytes:
        length = self.uint(pos)
        start = pos + WORD
        padded_length = -(-length // WORD) * WORD
        if start + padded_length > len(self.data):
            raise MalformedBundle(f"bytes of length {length} at offset {pos} run past the buffer")
        padding = self.data[start + length:start + padded_length]
        if any(padding):
            raise MalformedBundle(f"non-zero padding after bytes at offset {pos}")
        return self.data[start:start + length]

    def array_length(self, pos: int, element_words: int = 1) -> int:
        count = self.uint(pos)
        remaining = len(self.data) - (pos + WORD)
        if count * element_words * WORD > remaining:
            raise MalformedBundle(f"array at offset {pos} claims {count} elements, only {remaining} bytes remain")
        return count


class BundleCodec:
    """Encode and decode interop bundles in their canonical ABI form."""

    @staticmethod
    def encode_call(call: InteropCall) -> bytes:
        return _encode_tuple([
            (False, _bytes1_word(call.version)),
            (False, _bool_word(call.shadow_account)),
            (False, _address_word(call.to)),
            (False, _address_word(call.from_)),
            (False, _uint_word(call.value)),
            (True, _dynamic_bytes(call.data)),
        ])

    @staticmethod
    def encode_attributes(attributes: BundleAttributes) -> bytes:
        return _encode_tuple([
            (True, _dynamic_bytes(attributes.execution_address)),
            (True, _dynamic_bytes(attributes.unbundler_address)),
        ])

    @staticmethod
    def encode_tuple(bundle: InteropBundle) -> bytes:
        """Encode the bundle tuple without the outer offset word."""
        calls = [(True, BundleCodec.encode_call(call)) for call in bundle.calls]
        calls_encoding = _uint_word(len(calls)) + _encode_tuple(calls)
        return _encode_tuple([
            (False, _bytes1_word(bundle.version)),
            (False, _uint_word(bundle.source_chain_id)),
            (False, _uint_word(bundle.destination_chain_id)),
            (False, bytes(bundle.interop_bundle_salt)),
            (True, calls_encoding),
            (True, BundleCodec.encode_attributes(bundle.bundle_attributes)),
        ])

    @staticmethod
    def encode(bundle: InteropBundle) -> bytes:
        """Encode a bundle as the destination contract's `abi.decode` expects it."""
        return _uint_word(WORD) + BundleCodec.encode_tuple(bundle)

    @staticmethod
    def _decode_call(reader: _Reader, base: int) -> InteropCall:
        return InteropCall(
            version=reader.bytes1(base),
            shadow_account=reader.boolean(base + WORD),
            to=reader.address(base + 2 * WORD),
            from_=reader.address(base + 3 * WORD),
            value=reader.uint(base + 4 * WORD),
            data=reader.dynamic_bytes(reader.offset(base, base + 5 * WORD)),
        )

    @staticmethod
    def _decode_tuple(reader: _Reader, base: int) -> InteropBundle:
        version = reader.bytes1(base)
        source_chain_id = reader.uint(base + WORD)
        destination_chain_id = reader.uint(base + 2 * WORD)
        salt = reader.word(base + 3 * WORD)

        calls_pos = reader.offset(base, base + 4 * WORD)
        count = reader.array_length(calls_pos)
        elements_base = calls_pos + WORD
        calls = tuple(
            BundleCodec._decode_call(reader, reader.offset(elements_base, elements_base + i * WORD))
            for i in range(count)
        )

        attributes_pos = reader.offset(base, base + 5 * WORD)
        attributes = BundleAttributes(
            execution_address=reader.dynamic_bytes(reader.offset(attributes_pos, attributes_pos)),
            unbundler_address=reader.dynamic_bytes(reader.offset(attributes_pos, attributes_pos + WORD)),
        )

        return InteropBundle(
            version=version,
            source_chain_id=source_chain_id,
            destination_chain_id=destination_chain_id,
            interop_bundle_salt=salt,
            calls=calls,
            bundle_attributes=attributes,
        )

    @staticmethod
    def decode_tuple(data: bytes, base: int = 0) -> InteropBundle:
        """
        Decode a bundle tuple starting at an arbitrary offset.

        Args:
            data: Buffer containing the tuple
            base: Offset of the tuple head inside `data`

        Returns:
            Decoded bundle

        Raises:
            MalformedBundle: On truncation, out-of-range offsets or invalid words
        """
        return BundleCodec._decode_tuple(_Reader(data), base)

    @staticmethod
    def decode(data: bytes) -> InteropBundle:
        """Decode canonical bundle bytes (with the leading offset word)."""
        reader = _Reader(data)
        base = reader.offset(0, 0)
        return BundleCodec._decode_tuple(reader, base)


def encode_bundle(bundle: InteropBundle) -> bytes:
    return BundleCodec.encode(bundle)


def decode_bundle(data: bytes) -> InteropBundle:
    return BundleCodec.decode(data)


def decode_bundle_tuple(data: bytes, base: int = 0) -> InteropBundle:
    return BundleCodec.decode_tuple(data, base)
