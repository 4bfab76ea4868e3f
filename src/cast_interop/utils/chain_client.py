"""
RPC access to one chain.

Standard calls go through a synchronous Web3 HTTPProvider. The chain-specific
log proof method is posted as raw JSON-RPC with httpx. Network failures from
either transport surface as RpcUnavailable.
"""

import functools
import logging
from typing import Any

import httpx
import requests
from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import (
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3RPCError,
)
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import TxReceipt

from ..exceptions import RpcError, RpcUnavailable
from ..models import LogProof

logger = logging.getLogger(__name__)

LOG_PROOF_METHODS = ("zks_getLogProof", "getLogProof")


def translate_rpc_errors(func):
    """Map transport failures of an async RPC method to the relay error types."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except requests.exceptions.HTTPError as e:
            code = e.response.status_code if e.response is not None else "error"
            raise RpcUnavailable(f"{func.__name__}: HTTP {code}: {e}") from e
        except (requests.exceptions.RequestException, httpx.TransportError) as e:
            raise RpcUnavailable(f"{func.__name__}: endpoint unreachable: {e}") from e
        except httpx.HTTPStatusError as e:
            raise RpcError(f"{func.__name__}: HTTP {e.response.status_code}") from e
        except ContractLogicError as e:
            # revert data is a hex string for custom errors
            data = getattr(e, "data", None)
            raise RpcError(f"{func.__name__}: {e}", data if isinstance(data, str) else None) from e
        except Web3RPCError as e:
            data = getattr(e, "data", None)
            raise RpcError(f"{func.__name__}: {e}", data if isinstance(data, str) else None) from e

    return wrapper


class ChainClient:
    """
    RPC collaborator for a source or destination chain.

    Can be used in two modes:
    1. Read-only: no private key, calls and simulations only
    2. Signing: a private key adds the signing middleware for transactions
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str | None = None,
        request_timeout: int = 30,
        w3: Web3 | None = None,
    ):
        """
        Initialize the ChainClient.

        Args:
            rpc_url: HTTP(S) RPC endpoint
            private_key: Signer key for transactions (optional)
            request_timeout: Per-request timeout in seconds
            w3: Pre-built Web3 instance (used by tests)
        """
        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self.account: LocalAccount | None = Account.from_key(private_key) if private_key else None
        self.w3 = w3 if w3 is not None else self.setup_web3()

    def setup_web3(self) -> Web3:
        provider = Web3.HTTPProvider(
            self.rpc_url, request_kwargs={"timeout": self.request_timeout}
        )
        w3 = Web3(provider)
        if self.account is not None:
            w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(self.account))
            w3.eth.default_account = self.account.address
        return w3

    @property
    def has_signer(self) -> bool:
        return self.account is not None

    @property
    def address(self) -> str | None:
        return self.account.address if self.account is not None else None

    @translate_rpc_errors
    async def get_chain_id(self) -> int:
        return int(self.w3.eth.chain_id)

    @translate_rpc_errors
    async def get_transaction_receipt(self, tx_hash: str) -> TxReceipt | None:
        try:
            return self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    @translate_rpc_errors
    async def get_finalized_block_number(self) -> int:
        block = self.w3.eth.get_block("finalized")
        return int(block["number"])

    @translate_rpc_errors
    async def call(self, to: str, data: bytes, sender: str | None = None, value: int = 0) -> bytes:
        """Run an eth_call against the latest block."""
        tx: dict[str, Any] = {"to": Web3.to_checksum_address(to), "data": HexBytes(data)}
        if sender is not None:
            tx["from"] = Web3.to_checksum_address(sender)
        elif self.account is not None:
            tx["from"] = self.account.address
        if value:
            tx["value"] = value
        return bytes(self.w3.eth.call(tx))

    @translate_rpc_errors
    async def send_transaction(self, to: str, data: bytes, value: int = 0) -> str:
        """Sign and send a transaction through the signing middleware."""
        if self.account is None:
            raise RpcError("send_transaction requires a signer")
        tx: dict[str, Any] = {
            "from": self.account.address,
            "to": Web3.to_checksum_address(to),
            "data": HexBytes(data),
        }
        if value:
            tx["value"] = value
        tx_hash = self.w3.eth.send_transaction(tx)
        logger.info(f"Transaction sent: {Web3.to_hex(tx_hash)}")
        return Web3.to_hex(tx_hash)

    @translate_rpc_errors
    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> TxReceipt:
        try:
            return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise RpcError(f"receipt for {tx_hash} not available after {timeout}s") from e

    async def _rpc_post(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        async with httpx.AsyncClient() as client:
            logger.debug(f"Posting {method} to {self.rpc_url}")
            response = await client.post(self.rpc_url, json=payload, timeout=self.request_timeout)
            response.raise_for_status()
            body = response.json()
        if body.get("error") is not None:
            raise RpcError(f"{method} failed: {body['error']}")
        return body.get("result")

    @translate_rpc_errors
    async def get_log_proof(self, tx_hash: str, message_index: int) -> LogProof | None:
        """
        Fetch the L2->L1 log proof of a transaction.

        Args:
            tx_hash: Source transaction hash
            message_index: Index of the L2->L1 message within the transaction

        Returns:
            The proof, or None while the batch is not yet provable
        """
        params = [tx_hash, message_index]
        primary, fallback = LOG_PROOF_METHODS
        try:
            result = await self._rpc_post(primary, params)
        except (RpcError, httpx.HTTPStatusError) as e:
            logger.debug(f"{primary} failed ({e}), trying {fallback}")
            result = await self._rpc_post(fallback, params)
        if result is None:
            return None
        return LogProof.from_rpc(result)
