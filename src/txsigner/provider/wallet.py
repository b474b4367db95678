"""
Web3 wallet adapter.

Signs and sends transactions through a JSON-RPC wallet endpoint
(an unlocked node account or a wallet exposing eth_sendTransaction).
"""

import asyncio
from typing import Any, Dict, Optional

import structlog
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3Exception

from txsigner.config import SignerConfig, get_config
from txsigner.core.types import Receipt, Transaction
from txsigner.provider.interface import (
    AccountQuery,
    AdvisoryLookupFailure,
    ProviderConnectionError,
    ProviderRejection,
    ReceiptTimeoutError,
    SigningProvider,
)

logger = structlog.get_logger(__name__)


def _rejection_from(error: Exception) -> ProviderRejection:
    """Build a ProviderRejection from a web3 or JSON-RPC error."""
    message = str(error)
    code = None

    # JSON-RPC error payloads arrive as dicts, either as the exception
    # argument or as the rpc_response of newer web3 errors.
    payload = getattr(error, "rpc_response", None)
    if payload is None and error.args and isinstance(error.args[0], dict):
        payload = error.args[0]
    if isinstance(payload, dict):
        payload = payload.get("error", payload)
        message = payload.get("message", message)
        code = payload.get("code")

    return ProviderRejection(message, code=code)


class Web3SigningProvider(SigningProvider, AccountQuery):
    """
    Web3 wallet adapter.

    Implements the SigningProvider using web3's AsyncWeb3, and answers
    account queries against the same endpoint.
    """

    def __init__(
        self,
        config: Optional[SignerConfig] = None,
        w3: Optional[AsyncWeb3] = None,
    ):
        """
        Initialize the wallet adapter.

        Args:
            config: Signer configuration. Uses global config if not provided.
            w3: Preconfigured AsyncWeb3 instance (created on connect if not provided)
        """
        self.config = config or get_config()
        self.rpc_url = self.config.wallet_rpc_url
        self._w3 = w3

    async def connect(self) -> None:
        """Create the web3 client and check the endpoint answers."""
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.rpc_url))

        if not await self._w3.is_connected():
            self._w3 = None
            raise ProviderConnectionError(f"Wallet endpoint not reachable: {self.rpc_url}")

        logger.info("wallet_connected", rpc_url=self.rpc_url)

    async def disconnect(self) -> None:
        """Drop the web3 client."""
        if self._w3 is not None:
            self._w3 = None
            logger.info("wallet_disconnected")

    async def _client(self) -> AsyncWeb3:
        if self._w3 is None:
            await self.connect()
        return self._w3

    def _build_params(self, transaction: Transaction) -> Dict[str, Any]:
        """Build eth_sendTransaction parameters."""
        params = transaction.to_params()
        params["from"] = AsyncWeb3.to_checksum_address(transaction.from_address)
        params["to"] = AsyncWeb3.to_checksum_address(transaction.to)
        if self.config.chain_id is not None and "chainId" not in params:
            params["chainId"] = self.config.chain_id
        return params

    async def send_transaction(self, transaction: Transaction) -> str:
        """Sign and send a transaction through the wallet."""
        w3 = await self._client()
        params = self._build_params(transaction)

        try:
            tx_hash = await w3.eth.send_transaction(params)
        except (Web3Exception, ValueError) as e:
            rejection = _rejection_from(e)
            logger.warning(
                "wallet_rejected_transaction",
                to=transaction.to,
                error=str(rejection),
                code=rejection.code,
            )
            raise rejection from e

        transaction_hash = AsyncWeb3.to_hex(tx_hash)
        logger.debug("wallet_sent_transaction", transaction_hash=transaction_hash)
        return transaction_hash

    async def _poll_receipt(self, transaction_hash: str) -> Receipt:
        w3 = await self._client()

        while True:
            try:
                receipt = await w3.eth.get_transaction_receipt(transaction_hash)
            except TransactionNotFound:
                receipt = None

            if receipt is not None:
                data = dict(receipt)
                data["transactionHash"] = AsyncWeb3.to_hex(data["transactionHash"])
                return Receipt.from_dict(data)

            await asyncio.sleep(self.config.receipt_poll_interval_seconds)

    async def wait_for_receipt(
        self,
        transaction_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> Receipt:
        """Poll for a receipt until mined or the timeout expires."""
        if timeout_seconds is None:
            return await self._poll_receipt(transaction_hash)

        try:
            return await asyncio.wait_for(
                self._poll_receipt(transaction_hash),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("receipt_timeout", transaction_hash=transaction_hash)
            raise ReceiptTimeoutError(transaction_hash, timeout_seconds)

    async def get_transaction_nonce(self, transaction_hash: str) -> int:
        """Get the nonce of a sent transaction."""
        w3 = await self._client()
        try:
            tx = await w3.eth.get_transaction(transaction_hash)
        except (TransactionNotFound, Web3Exception, ValueError) as e:
            raise AdvisoryLookupFailure(f"Transaction lookup failed: {e}") from e
        return int(tx["nonce"])

    async def get_transaction_count(self, address: str) -> int:
        """Get the pending transaction count of an account."""
        w3 = await self._client()
        try:
            return await w3.eth.get_transaction_count(
                AsyncWeb3.to_checksum_address(address),
                "pending",
            )
        except (Web3Exception, ValueError) as e:
            raise AdvisoryLookupFailure(f"Transaction count lookup failed: {e}") from e
