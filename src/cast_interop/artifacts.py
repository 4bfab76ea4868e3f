"""
Relay artifacts on disk: the encoded bundle, its proof and the run summary,
plus the calls file read by sendBundle.
"""

import json
import logging
from pathlib import Path

from .exceptions import MalformedBundle, MalformedCallFile, MalformedProof
from .models import CallStarter, MessageInclusionProof, RelaySummary, format_hex

logger = logging.getLogger(__name__)

BUNDLE_FILE = "bundle.hex"
PROOF_FILE = "proof.json"
SUMMARY_FILE = "relay_summary.json"


def write_relay_outputs(
    out_dir: str | Path,
    bundle_bytes: bytes,
    proof: MessageInclusionProof,
    summary: RelaySummary,
) -> Path:
    """
    Write bundle.hex, proof.json and relay_summary.json.

    Args:
        out_dir: Target directory, created if missing
        bundle_bytes: Canonical bundle encoding
        proof: Inclusion proof submitted with the bundle
        summary: Relay summary

    Returns:
        The output directory
    """
    path = Path(out_dir)
    path.mkdir(parents=True, exist_ok=True)
    (path / BUNDLE_FILE).write_text(format_hex(bundle_bytes))
    (path / PROOF_FILE).write_text(json.dumps(proof.to_dict(), indent=2))
    (path / SUMMARY_FILE).write_text(json.dumps(summary.to_dict(), indent=2))
    logger.info(f"Relay outputs written to {path}")
    return path


def decode_hex(value: str) -> bytes:
    """Decode a hex string, with or without a 0x prefix."""
    raw = value.strip().removeprefix("0x")
    try:
        return bytes.fromhex(raw)
    except ValueError as e:
        raise MalformedBundle(f"invalid hex {value!r}: {e}") from e


def _is_file(value: str) -> bool:
    # long inline values overflow the file name limit
    try:
        return Path(value).is_file()
    except OSError:
        return False


def load_hex_or_path(value: str) -> bytes:
    """Load hex bytes given inline or as a path to a file holding them."""
    if _is_file(value):
        return decode_hex(Path(value).read_text())
    return decode_hex(value)


def load_proof(value: str) -> MessageInclusionProof:
    """Load a proof given as a path to proof.json or as inline JSON."""
    if value.lstrip().startswith("{"):
        text = value
    elif _is_file(value):
        text = Path(value).read_text()
    else:
        raise MalformedProof("proof must be a JSON string or path")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedProof(f"invalid proof json: {e}") from e
    return MessageInclusionProof.from_dict(data)


def load_calls(path: str | Path) -> list[CallStarter]:
    """
    Load the calls of a sendBundle from a calls.json file.

    Args:
        path: File of the form {"calls": [{"to", "data", "attributes"}]}

    Returns:
        The calls in file order

    Raises:
        MalformedCallFile: If the file is unreadable, invalid or has no calls
    """
    try:
        document = json.loads(Path(path).read_text())
    except OSError as e:
        raise MalformedCallFile(f"failed to read calls file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise MalformedCallFile(f"invalid calls json: {e}") from e

    entries = document.get("calls") if isinstance(document, dict) else None
    if not entries:
        raise MalformedCallFile("calls file must include at least one call")
    try:
        return [CallStarter.from_dict(entry) for entry in entries]
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedCallFile(f"invalid call entry: {e}") from e
