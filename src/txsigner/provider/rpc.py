"""
JSON-RPC account query adapter.

Provides read-only account lookups against an Ethereum JSON-RPC node,
independent of the wallet that signs transactions.
"""

import itertools
from typing import Any, List, Optional

import httpx
import structlog

from txsigner.config import SignerConfig, get_config
from txsigner.core.types import parse_quantity
from txsigner.provider.interface import (
    AccountQuery,
    AdvisoryLookupFailure,
    ProviderConnectionError,
)

logger = structlog.get_logger(__name__)


class JsonRpcAccountQuery(AccountQuery):
    """
    JSON-RPC account query adapter.

    Implements the AccountQuery using raw JSON-RPC calls over HTTP.
    """

    def __init__(
        self,
        config: Optional[SignerConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: Signer configuration. Uses global config if not provided.
            transport: Custom httpx transport (for testing)
        """
        self.config = config or get_config()
        self.rpc_url = self.config.query_rpc_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Establish connection (create HTTP client)."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self.rpc_url,
            headers={"Content-Type": "application/json"},
            timeout=30.0,
            transport=self._transport,
        )

        # Test connection
        try:
            chain_id = await self._call("eth_chainId", [])
        except AdvisoryLookupFailure as e:
            await self.disconnect()
            raise ProviderConnectionError(f"Failed to connect to {self.rpc_url}: {e}")

        logger.info("rpc_connected", rpc_url=self.rpc_url, chain_id=parse_quantity(chain_id))

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("rpc_disconnected")

    async def _call(self, method: str, params: List[Any]) -> Any:
        """Make a JSON-RPC call and return its result."""
        if not self._client:
            await self.connect()

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        try:
            response = await self._client.post("", json=payload)
        except httpx.RequestError as e:
            logger.error("rpc_request_error", method=method, error=str(e))
            raise AdvisoryLookupFailure(f"JSON-RPC request failed: {e}")

        if response.status_code != 200:
            logger.error(
                "rpc_request_failed",
                method=method,
                status=response.status_code,
                error=response.text,
            )
            raise AdvisoryLookupFailure(f"JSON-RPC HTTP error {response.status_code}")

        body = response.json()
        if body.get("error"):
            raise AdvisoryLookupFailure(f"JSON-RPC error: {body['error'].get('message')}")

        return body.get("result")

    async def get_transaction_nonce(self, transaction_hash: str) -> int:
        """Get the nonce of a sent transaction."""
        tx = await self._call("eth_getTransactionByHash", [transaction_hash])
        if not tx:
            raise AdvisoryLookupFailure(f"Transaction not found: {transaction_hash}")
        return parse_quantity(tx["nonce"])

    async def get_transaction_count(self, address: str) -> int:
        """Get the pending transaction count of an account."""
        count = await self._call("eth_getTransactionCount", [address, "pending"])
        return parse_quantity(count)
