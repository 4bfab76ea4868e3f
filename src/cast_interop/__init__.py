"""
cast-interop package.

Relays interop bundles from a source chain to a destination chain through an
L2->L1 inclusion proof and interop root propagation.
"""

from .config import AddressBook, ChainConfig, RelayConfig, WaitConfig
from .event_processor import EventProcessor
from .models import InteropBundle, InteropCall, MessageInclusionProof
from .relayer import BundleRelayer, RelayMode, RelayRun, RelayStage
from .status import BundleStatus, CallStatus, StatusReader
from .watcher import BundleWatcher, WatchTarget

__all__ = [
    "AddressBook",
    "BundleRelayer",
    "BundleStatus",
    "BundleWatcher",
    "CallStatus",
    "ChainConfig",
    "EventProcessor",
    "InteropBundle",
    "InteropCall",
    "MessageInclusionProof",
    "RelayConfig",
    "RelayMode",
    "RelayRun",
    "RelayStage",
    "StatusReader",
    "WaitConfig",
    "WatchTarget",
]
__version__ = "0.1.0"
