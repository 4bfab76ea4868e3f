"""Configuration management for the interop relay.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with defaults matching the
system contract addresses of the interop deployment.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

logger = logging.getLogger(__name__)

DEFAULT_INTEROP_CENTER = "0x0000000000000000000000000000000000010010"
DEFAULT_INTEROP_HANDLER = "0x000000000000000000000000000000000001000d"
DEFAULT_INTEROP_ROOT_STORAGE = "0x0000000000000000000000000000000000010008"
L1_MESSENGER_ADDRESS = "0x0000000000000000000000000000000000008008"


def _checksum(value: str, label: str, env_var: str) -> str:
    if not value:
        raise ValueError(f"{label} address is required ({env_var})")
    if not Web3.is_address(value):
        raise ValueError(f"Invalid {label} address: {value}")
    return Web3.to_checksum_address(value)


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Connection settings for one chain.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint
    """

    rpc_url: str

    def __post_init__(self) -> None:
        if not self.rpc_url:
            raise ValueError("RPC URL is required")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http or https"
            )


@dataclass(frozen=True, slots=True)
class AddressBook:
    """System contract addresses used by the relay.

    Attributes:
        interop_center: Emits InteropBundleSent on the source chain
        interop_handler: Verifies and executes bundles on the destination chain
        interop_root_storage: Stores propagated interop roots on the destination chain
    """

    interop_center: str = DEFAULT_INTEROP_CENTER
    interop_handler: str = DEFAULT_INTEROP_HANDLER
    interop_root_storage: str = DEFAULT_INTEROP_ROOT_STORAGE

    def __post_init__(self) -> None:
        object.__setattr__(self, 'interop_center', _checksum(
            self.interop_center, "Interop center", "INTEROP_CENTER_ADDRESS"))
        object.__setattr__(self, 'interop_handler', _checksum(
            self.interop_handler, "Interop handler", "INTEROP_HANDLER_ADDRESS"))
        object.__setattr__(self, 'interop_root_storage', _checksum(
            self.interop_root_storage, "Interop root storage", "INTEROP_ROOT_STORAGE_ADDRESS"))


@dataclass(frozen=True, slots=True)
class WaitConfig:
    """Polling cadence and deadlines of the relay waits (milliseconds)."""
    poll_interval_ms: int = 1000
    timeout_ms: int = 300_000
    finalization_poll_ms: int = 100

    def __post_init__(self) -> None:
        if self.poll_interval_ms <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval_ms}")
        if self.timeout_ms <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout_ms}")
        if self.finalization_poll_ms <= 0:
            raise ValueError(
                f"Finalization poll interval must be positive, got {self.finalization_poll_ms}"
            )


@dataclass(frozen=True, slots=True)
class RelayConfig:
    """Main configuration for the relay.

    Attributes:
        source_chain: Chain the bundle was sent from
        destination_chain: Chain the bundle is verified and executed on
        addresses: System contract addresses
        waits: Polling cadence and deadlines
        private_key: Signer key for destination transactions (optional)
        request_timeout: HTTP request timeout in seconds
    """

    source_chain: ChainConfig
    destination_chain: ChainConfig
    addresses: AddressBook = field(default_factory=AddressBook)
    waits: WaitConfig = field(default_factory=WaitConfig)
    private_key: str | None = None
    request_timeout: int = 30

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.private_key:
            key = self.private_key
            if key.startswith('0x'):
                key = key[2:]

            if len(key) != 64:
                raise ValueError(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )

            try:
                int(key, 16)
            except ValueError:
                raise ValueError(
                    "Invalid private key format. Must be hexadecimal"
                ) from None

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from environment variables.

        Returns:
            RelayConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        source_rpc_url = os.environ.get("SOURCE_RPC_URL", "")
        if not source_rpc_url:
            raise ValueError("SOURCE_RPC_URL environment variable is required")

        destination_rpc_url = os.environ.get("DESTINATION_RPC_URL", "")
        if not destination_rpc_url:
            raise ValueError("DESTINATION_RPC_URL environment variable is required")

        addresses = AddressBook(
            interop_center=os.environ.get("INTEROP_CENTER_ADDRESS", DEFAULT_INTEROP_CENTER),
            interop_handler=os.environ.get("INTEROP_HANDLER_ADDRESS", DEFAULT_INTEROP_HANDLER),
            interop_root_storage=os.environ.get(
                "INTEROP_ROOT_STORAGE_ADDRESS", DEFAULT_INTEROP_ROOT_STORAGE
            ),
        )

        waits = WaitConfig(
            poll_interval_ms=int(os.environ.get("POLL_INTERVAL_MS", "1000")),
            timeout_ms=int(os.environ.get("TIMEOUT_MS", "300000")),
            finalization_poll_ms=int(os.environ.get("FINALIZATION_POLL_MS", "100")),
        )

        key_env = os.environ.get("PRIVATE_KEY_ENV", "PRIVATE_KEY")
        private_key = os.environ.get(key_env) or None

        return cls(
            source_chain=ChainConfig(rpc_url=source_rpc_url),
            destination_chain=ChainConfig(rpc_url=destination_rpc_url),
            addresses=addresses,
            waits=waits,
            private_key=private_key,
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Interop Relay Configuration")
        logger.info("=" * 60)

        logger.info(f"Source RPC: {self.source_chain.rpc_url}")
        logger.info(f"Destination RPC: {self.destination_chain.rpc_url}")

        logger.info("Contracts:")
        logger.info(f"  Interop Center: {self.addresses.interop_center}")
        logger.info(f"  Interop Handler: {self.addresses.interop_handler}")
        logger.info(f"  Interop Root Storage: {self.addresses.interop_root_storage}")

        logger.info("Waits:")
        logger.info(f"  Poll Interval: {self.waits.poll_interval_ms} ms")
        logger.info(f"  Timeout: {self.waits.timeout_ms} ms")
        logger.info(f"  Finalization Poll: {self.waits.finalization_poll_ms} ms")
        logger.info(f"  Request Timeout: {self.request_timeout} seconds")

        logger.info(f"Signer: {'[CONFIGURED]' if self.private_key else '[NONE]'}")
        logger.info("=" * 60)
