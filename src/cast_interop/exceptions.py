"""
Exceptions for the interop relay.

Encoding errors are raised for malformed input bytes and are never retried.
Stage timeouts tell the caller which leg of the relay stalled. A root mismatch
is a consistency error and is raised on first sight.
"""


class InteropError(Exception):
    """Base exception for all interop relay errors."""
    pass


class MalformedAddress(InteropError, ValueError):
    """Raised when interoperable address bytes cannot be decoded."""
    pass


class MalformedBundle(InteropError, ValueError):
    """Raised when bundle bytes are truncated or structurally invalid."""
    pass


class MalformedProof(InteropError, ValueError):
    """Raised when a message inclusion proof document is invalid."""
    pass


class MalformedResponse(InteropError, ValueError):
    """Raised when an eth_call returns fewer bytes than the expected return word."""
    pass


class StageTimeout(InteropError):
    """Raised when a relay wait stage exceeds its deadline."""

    stage = "unknown"

    def __init__(self, message: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"{message} (stage={self.stage}, timeout={timeout_ms}ms)")


class BlockNotFinalized(StageTimeout):
    """The source block was not finalized in time."""
    stage = "finalization"


class ProofNotAvailable(StageTimeout):
    """The L2->L1 log proof was not available in time."""
    stage = "proof"


class RootNotAvailable(StageTimeout):
    """The interop root did not reach the destination chain in time."""
    stage = "root"


class WatchTimeout(StageTimeout):
    """The watched bundle did not reach its target status in time."""
    stage = "watch"


class RootMismatch(InteropError):
    """Raised when the destination root differs from the proof root."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"interop root mismatch: expected {expected}, got {actual}")


class MalformedCallFile(InteropError, ValueError):
    """Raised when a calls.json document is invalid or empty."""
    pass


class RpcError(InteropError):
    """Raised when an RPC request fails or returns an error object."""

    def __init__(self, message: str, data: str | None = None):
        self.data = data
        super().__init__(message)


class RpcUnavailable(RpcError):
    """Raised when the RPC endpoint cannot be reached or times out."""
    pass


class BundleNotFound(InteropError):
    """Raised when a receipt carries no InteropBundleSent log."""
    pass


class SignerRequired(InteropError):
    """Raised when a state-changing operation has no signer and is not a dry run."""
    pass


class SubmissionFailed(InteropError):
    """Raised when a verify/execute transaction fails to submit or reverts."""

    def __init__(self, reason: str | None, raw: str):
        self.reason = reason
        self.raw = raw
        if reason:
            message = f"transaction submission reverted: {reason}"
        else:
            message = f"transaction submission failed: {raw}"
        super().__init__(message)
