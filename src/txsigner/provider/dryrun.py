"""Dry-run signing provider for demos and testing (no real chain)."""

import asyncio
import hashlib
import json
from typing import Dict, Iterable, List, Optional, Set

import structlog

from txsigner.core.types import Receipt, Transaction, addresses_equal
from txsigner.provider.interface import (
    AccountQuery,
    AdvisoryLookupFailure,
    ProviderRejection,
    ReceiptTimeoutError,
    SigningProvider,
)

logger = structlog.get_logger(__name__)


class DryRunSigningProvider(SigningProvider, AccountQuery):
    """
    Simulated provider that hashes and mines transactions in memory.

    Hashes are deterministic: they depend on the transaction contents and
    the sender's nonce. Transactions to addresses listed in ``reject`` are
    declined, those to ``revert`` are mined with a failed status, and
    those to ``drop`` never get a receipt.
    """

    def __init__(
        self,
        reject: Iterable[str] = (),
        revert: Iterable[str] = (),
        drop: Iterable[str] = (),
        mine_delay_seconds: float = 0.0,
    ):
        self.reject = list(reject)
        self.revert = list(revert)
        self.drop = list(drop)
        self.mine_delay_seconds = mine_delay_seconds

        self.sent: List[Transaction] = []
        self._pending: Dict[str, Transaction] = {}
        self._nonces: Dict[str, int] = {}
        self._tx_nonces: Dict[str, int] = {}
        self._dropped: Set[str] = set()
        self._block_number = 0

    @property
    def name(self) -> str:
        return "dryrun"

    async def connect(self) -> None:
        logger.info("dryrun_provider_connected")

    async def disconnect(self) -> None:
        pass

    @staticmethod
    def _matches(address: str, addresses: List[str]) -> bool:
        return any(addresses_equal(address, candidate) for candidate in addresses)

    async def send_transaction(self, transaction: Transaction) -> str:
        """Assign a deterministic hash, or decline the transaction."""
        if self._matches(transaction.to, self.reject):
            logger.info("dryrun_rejected", to=transaction.to)
            raise ProviderRejection("User denied transaction signature", code=4001)

        sender = transaction.from_address.lower()
        nonce = self._nonces.get(sender, 0)
        self._nonces[sender] = nonce + 1

        encoded = json.dumps(transaction.to_params(), sort_keys=True, default=str)
        digest = hashlib.sha256(f"{encoded}:{nonce}".encode()).hexdigest()
        transaction_hash = f"0x{digest}"

        self.sent.append(transaction)
        self._pending[transaction_hash] = transaction
        self._tx_nonces[transaction_hash] = nonce
        if self._matches(transaction.to, self.drop):
            self._dropped.add(transaction_hash)

        return transaction_hash

    async def _mine(self, transaction_hash: str) -> Receipt:
        if transaction_hash in self._dropped:
            # Dropped transactions are never mined
            await asyncio.Event().wait()

        await asyncio.sleep(self.mine_delay_seconds)

        transaction = self._pending[transaction_hash]
        self._block_number += 1
        status = 0 if self._matches(transaction.to, self.revert) else 1
        return Receipt(
            transaction_hash=transaction_hash,
            status=status,
            block_number=self._block_number,
            gas_used=21000,
        )

    async def wait_for_receipt(
        self,
        transaction_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> Receipt:
        """Mine a previously sent transaction."""
        if transaction_hash not in self._pending:
            raise ValueError(f"Unknown transaction: {transaction_hash}")

        if timeout_seconds is None:
            return await self._mine(transaction_hash)

        try:
            return await asyncio.wait_for(self._mine(transaction_hash), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            raise ReceiptTimeoutError(transaction_hash, timeout_seconds)

    async def get_transaction_nonce(self, transaction_hash: str) -> int:
        if transaction_hash not in self._tx_nonces:
            raise AdvisoryLookupFailure(f"Transaction not found: {transaction_hash}")
        return self._tx_nonces[transaction_hash]

    async def get_transaction_count(self, address: str) -> int:
        return self._nonces.get(address.lower(), 0)
