"""
Revert reason decoding for interop handler calls.

Transport errors carry the revert data somewhere inside a free-form message.
The decoder pulls out the first hex run and maps it to a readable reason:
Error(string), Panic(uint256), or one of the handler's custom errors.
"""

import logging
import re
from dataclasses import dataclass
from types import MappingProxyType

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

logger = logging.getLogger(__name__)

ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")
PANIC_SELECTOR = bytes.fromhex("4e487b71")

_HEX_RUN = re.compile(r"0x([0-9a-fA-F]*)")


@dataclass(frozen=True, slots=True)
class CustomError:
    """A custom error the destination handler can revert with."""

    selector: bytes
    name: str
    signature: str


CUSTOM_ERROR_SIGNATURES = (
    "AttributeAlreadySet(bytes4)",
    "AttributeViolatesRestriction(bytes4,uint256)",
    "BundleAlreadyProcessed(bytes32)",
    "BundleVerifiedAlready(bytes32)",
    "CallAlreadyExecuted(bytes32,uint256)",
    "CallNotExecutable(bytes32,uint256)",
    "CanNotUnbundle(bytes32)",
    "ExecutingNotAllowed(bytes32,bytes,bytes)",
    "IndirectCallValueMismatch(uint256,uint256)",
    "InteroperableAddressChainReferenceNotEmpty(bytes)",
    "InteroperableAddressNotEmpty(bytes)",
    "InvalidInteropBundleVersion()",
    "InvalidInteropCallVersion()",
    "MessageNotIncluded()",
    "UnauthorizedMessageSender(address,address)",
    "UnbundlingNotAllowed(bytes32,bytes,bytes)",
    "WrongCallStatusLength(uint256,uint256)",
    "WrongDestinationChainId(bytes32,uint256,uint256)",
    "WrongSourceChainId(bytes32,uint256,uint256)",
)

CUSTOM_ERRORS = tuple(
    CustomError(
        selector=bytes(Web3.keccak(text=signature)[:4]),
        name=signature.split("(", 1)[0],
        signature=signature,
    )
    for signature in CUSTOM_ERROR_SIGNATURES
)

ERROR_SELECTORS = MappingProxyType({error.selector: error for error in CUSTOM_ERRORS})


def extract_revert_data(message: str) -> bytes | None:
    """
    Find the first 0x-prefixed hex run in an error message.

    Args:
        message: Error text from the transport

    Returns:
        The decoded bytes, or None if there is no run or it has odd length
    """
    match = _HEX_RUN.search(message)
    if match is None:
        return None
    digits = match.group(1)
    if len(digits) % 2:
        return None
    return bytes.fromhex(digits)


def decode_revert_data(data: bytes) -> str | None:
    """Decode raw revert data into a readable reason."""
    if len(data) < 4:
        logger.debug(f"revert data too short, len={len(data)}")
        return None

    selector = bytes(data[:4])
    if selector == ERROR_STRING_SELECTOR:
        try:
            return decode(["string"], bytes(data[4:]))[0]
        except (DecodingError, UnicodeDecodeError) as e:
            logger.debug(f"could not decode Error(string) payload: {e}")
    elif selector == PANIC_SELECTOR:
        if len(data) < 36:
            logger.debug(f"Panic payload too short, len={len(data)}")
            return None
        code = int.from_bytes(data[4:36], "big")
        return f"panic({code})"

    error = ERROR_SELECTORS.get(selector)
    if error is None:
        logger.warning(f"unknown revert selector 0x{selector.hex()}")
        return None
    return f"revert: {error.name}"


def decode_revert_reason(message: str) -> str | None:
    """Decode the revert reason embedded in a transport error message."""
    data = extract_revert_data(message)
    if data is None:
        return None
    return decode_revert_data(data)


def revert_reason_from_exception(exc: Exception) -> str | None:
    """
    Decode the revert reason of a failed call or transaction.

    web3's ContractCustomError and ContractLogicError carry the raw revert
    data in `data`; other transport errors only have their message.
    """
    data = getattr(exc, "data", None)
    if isinstance(data, str):
        return decode_revert_reason(data)
    return decode_revert_reason(str(exc))
