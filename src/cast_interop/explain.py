"""
Pre-flight checks for a bundle and proof pair.

Explains why verifying or executing a bundle on the current chain would
succeed or fail, before any transaction is sent.
"""

import logging
from dataclasses import dataclass

from web3 import Web3

from .exceptions import MalformedAddress
from .models import BUNDLE_IDENTIFIER, InteropBundle, MessageInclusionProof
from .utils.interop_address import decode_chain_and_address

logger = logging.getLogger(__name__)

OK = "ok"
WARN = "warn"
FAIL = "fail"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True, slots=True)
class ExplainItem:
    check: str
    status: str
    details: str

    def to_dict(self) -> dict[str, str]:
        return {"check": self.check, "status": self.status, "details": self.details}


def check_sender(proof: MessageInclusionProof, interop_center: str) -> ExplainItem:
    expected = interop_center.lower()
    actual = proof.message.sender.lower()
    if actual == expected:
        return ExplainItem("proof.sender", OK, "proof sender matches interop center")
    return ExplainItem("proof.sender", FAIL, f"proof sender {actual} does not match center {expected}")


def check_message_prefix(proof: MessageInclusionProof) -> ExplainItem:
    if proof.message.data[:1] == bytes([BUNDLE_IDENTIFIER]):
        return ExplainItem("proof.message.data", OK, "message data has bundle prefix 0x01")
    return ExplainItem("proof.message.data", FAIL, "message data missing 0x01 bundle prefix")


def check_destination_chain(bundle: InteropBundle, chain_id: int) -> ExplainItem:
    if bundle.destination_chain_id == chain_id:
        return ExplainItem("bundle.destinationChainId", OK, "bundle destination matches current chain")
    return ExplainItem(
        "bundle.destinationChainId",
        FAIL,
        f"bundle destination {bundle.destination_chain_id} does not match current chain {chain_id}",
    )


def check_source_chain(bundle: InteropBundle, proof: MessageInclusionProof) -> ExplainItem:
    if bundle.source_chain_id == proof.chain_id:
        return ExplainItem("bundle.sourceChainId", OK, "bundle source matches proof chainId")
    return ExplainItem(
        "bundle.sourceChainId",
        FAIL,
        f"bundle source {bundle.source_chain_id} does not match proof chainId {proof.chain_id}",
    )


def check_permission(encoded: bytes, label: str, signer: str, chain_id: int) -> ExplainItem:
    """
    Check whether an execution or unbundler attribute admits the signer.

    An empty attribute is permissionless. Otherwise the interoperable address
    must name chain 0 or the current chain, and the signer's address.
    """
    if not encoded:
        return ExplainItem(label, OK, f"{label} is permissionless")
    try:
        address_chain_id, address = decode_chain_and_address(encoded)
    except MalformedAddress as e:
        return ExplainItem(label, WARN, f"failed to decode {label}: {e}")

    address = address or ZERO_ADDRESS
    valid_chain = address_chain_id in (0, chain_id)
    if valid_chain and Web3.to_checksum_address(address) == Web3.to_checksum_address(signer):
        return ExplainItem(label, OK, f"{label} allows signer {signer.lower()}")
    return ExplainItem(
        label,
        FAIL,
        f"{label} does not allow signer {signer.lower()} "
        f"(chainId {address_chain_id}, addr {address.lower()})",
    )


def explain(
    bundle: InteropBundle,
    proof: MessageInclusionProof,
    chain_id: int,
    interop_center: str,
    signer: str | None = None,
) -> list[ExplainItem]:
    """
    Run every pre-flight check.

    Args:
        bundle: Decoded bundle
        proof: Inclusion proof that will be submitted with it
        chain_id: Id of the chain the bundle would be submitted to
        interop_center: Expected proof sender
        signer: Address that would submit; None skips permission checks

    Returns:
        One ExplainItem per check, in a fixed order
    """
    checks = [
        check_sender(proof, interop_center),
        check_message_prefix(proof),
        check_destination_chain(bundle, chain_id),
        check_source_chain(bundle, proof),
    ]
    attributes = bundle.bundle_attributes
    if signer is not None:
        checks.append(check_permission(attributes.execution_address, "executionAddress", signer, chain_id))
        checks.append(check_permission(attributes.unbundler_address, "unbundlerAddress", signer, chain_id))
    else:
        checks.append(ExplainItem("permissions", WARN, "signer not provided; skipping permission checks"))

    for item in checks:
        logger.debug(f"{item.check}: {item.status} ({item.details})")
    return checks
