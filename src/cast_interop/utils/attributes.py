"""
Attribute encoding for interop calls and bundles.

An attribute is the calldata of a marker function: a four-byte selector
followed by the ABI-encoded argument. Attributes keep the order they were
added in and duplicates are passed through untouched; the interop center
rejects duplicates on chain.

Asset ids of bridged tokens are derived here too, from the origin chain, the
native token vault and the token address.
"""

from eth_abi import encode
from web3 import Web3

from .abi import function_selector
from .interop_address import encode_with_address

INTEROP_CALL_VALUE_SELECTOR = function_selector("interopCallValue(uint256)")
INDIRECT_CALL_SELECTOR = function_selector("indirectCall(uint256)")
EXECUTION_ADDRESS_SELECTOR = function_selector("executionAddress(bytes)")
UNBUNDLER_ADDRESS_SELECTOR = function_selector("unbundlerAddress(bytes)")

DEFAULT_NATIVE_TOKEN_VAULT = "0x0000000000000000000000000000000000010004"

# Marks an attribute that was not requested at all, as opposed to None
UNSET = object()


def encode_interop_call_value(value: int) -> bytes:
    return INTEROP_CALL_VALUE_SELECTOR + encode(["uint256"], [value])


def encode_indirect_call(value: int) -> bytes:
    return INDIRECT_CALL_SELECTOR + encode(["uint256"], [value])


def encode_execution_address(value: bytes) -> bytes:
    return EXECUTION_ADDRESS_SELECTOR + encode(["bytes"], [bytes(value)])


def encode_unbundler_address(value: bytes) -> bytes:
    return UNBUNDLER_ADDRESS_SELECTOR + encode(["bytes"], [bytes(value)])


def execution_address_attribute(chain_id: int, address: str | None) -> bytes:
    """
    Build an executionAddress attribute.

    Args:
        chain_id: Destination chain id
        address: Allowed executor, or None for permissionless execution

    Returns:
        Encoded attribute
    """
    if address is None:
        return encode_execution_address(b"")
    return encode_execution_address(encode_with_address(chain_id, address))


def unbundler_address_attribute(chain_id: int, address: str | None) -> bytes:
    """Build an unbundlerAddress attribute. Unbundling is never permissionless."""
    if address is None:
        raise ValueError("unbundler cannot be permissionless")
    return encode_unbundler_address(encode_with_address(chain_id, address))


def build_call_attributes(
    interop_value: int | None = None,
    indirect: int | None = None,
) -> tuple[list[bytes], int]:
    """
    Build the attributes of a single call and the value it needs.

    Args:
        interop_value: Value delivered to the call on the destination chain
        indirect: Message value for an indirect call

    Returns:
        Tuple of (attributes, total value to attach)
    """
    attributes = []
    total = 0
    if interop_value is not None:
        total += interop_value
        attributes.append(encode_interop_call_value(interop_value))
    if indirect is not None:
        total += indirect
        attributes.append(encode_indirect_call(indirect))
    return attributes, total


def build_bundle_attributes(
    chain_id: int,
    execution_address=UNSET,
    unbundler_address: str | None = None,
) -> list[bytes]:
    """
    Build bundle-level attributes.

    Omitting `execution_address` adds no attribute; passing None makes the
    bundle permissionless.
    """
    attributes = []
    if execution_address is not UNSET:
        attributes.append(execution_address_attribute(chain_id, execution_address))
    if unbundler_address is not None:
        attributes.append(unbundler_address_attribute(chain_id, unbundler_address))
    return attributes


def encode_asset_id(
    chain_id: int,
    token: str,
    native_token_vault: str = DEFAULT_NATIVE_TOKEN_VAULT,
) -> bytes:
    """
    Derive the asset id of a token registered in the native token vault.

    Args:
        chain_id: Chain the token originates from
        token: Token address on that chain
        native_token_vault: Vault the token is registered with

    Returns:
        keccak256(abi.encode(chainId, vault, token))
    """
    for label, address in (("token", token), ("native token vault", native_token_vault)):
        if not Web3.is_address(address):
            raise ValueError(f"Invalid {label} address: {address}")
    return bytes(Web3.keccak(encode(
        ["uint256", "address", "address"],
        [chain_id, Web3.to_checksum_address(native_token_vault), Web3.to_checksum_address(token)],
    )))
