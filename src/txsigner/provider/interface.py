"""
Abstract interfaces for signing providers and account queries.

Defines the contract that all wallet and node adapters must implement.
"""

from abc import ABC, abstractmethod
from typing import Optional

from txsigner.core.types import Receipt, Transaction


class SigningProvider(ABC):
    """
    Abstract interface for a signing provider (wallet).

    The provider signs and broadcasts a transaction and reports its hash
    as soon as the transaction enters the pending pool. Receipts are
    retrieved separately, since they may arrive much later or never.
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the provider.

        Raises:
            ProviderConnectionError: If connection cannot be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the provider."""
        pass

    @abstractmethod
    async def send_transaction(self, transaction: Transaction) -> str:
        """
        Sign and broadcast a transaction.

        Args:
            transaction: Transaction to send

        Returns:
            Transaction hash

        Raises:
            ProviderRejection: If the provider declines the transaction
        """
        pass

    @abstractmethod
    async def wait_for_receipt(
        self,
        transaction_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> Receipt:
        """
        Wait for a transaction to be mined.

        Args:
            transaction_hash: Hash of the transaction to monitor
            timeout_seconds: Maximum time to wait, unbounded if None

        Returns:
            Receipt of the mined transaction

        Raises:
            ReceiptTimeoutError: If the timeout expires first
        """
        pass


class AccountQuery(ABC):
    """Read-only account queries used for advisory annotations."""

    @abstractmethod
    async def get_transaction_nonce(self, transaction_hash: str) -> int:
        """
        Get the account nonce a sent transaction was assigned.

        Raises:
            AdvisoryLookupFailure: If the transaction cannot be found
        """
        pass

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        """
        Get the current transaction count of an account, pending included.

        Raises:
            AdvisoryLookupFailure: If the lookup fails
        """
        pass


class ProviderConnectionError(Exception):
    """Raised when connection to a provider fails."""
    pass


class ProviderRejection(Exception):
    """Raised when the provider declines a transaction before hashing it."""

    def __init__(
        self,
        message: str,
        transaction_hash: Optional[str] = None,
        code: Optional[int] = None,
    ):
        super().__init__(message)
        self.transaction_hash = transaction_hash
        self.code = code


class ExecutionFailure(Exception):
    """A transaction was mined but its execution reverted."""

    def __init__(self, transaction_hash: str, receipt: Optional[Receipt] = None):
        super().__init__(f"Transaction {transaction_hash} reverted")
        self.transaction_hash = transaction_hash
        self.receipt = receipt


class ReceiptTimeoutError(Exception):
    """Raised when a receipt does not arrive within the configured wait."""

    def __init__(self, transaction_hash: str, timeout_seconds: float):
        super().__init__(f"No receipt for {transaction_hash} after {timeout_seconds}s")
        self.transaction_hash = transaction_hash
        self.timeout_seconds = timeout_seconds


class AdvisoryLookupFailure(Exception):
    """Raised when an advisory account query fails."""
    pass
