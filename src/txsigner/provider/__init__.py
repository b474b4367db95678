"""
Provider Integration Layer.

Provides abstracted access to the wallet that signs transactions and to
read-only account queries. Supports a web3 wallet endpoint, a raw JSON-RPC
node and a dry-run simulator.
"""

from txsigner.provider.interface import (
    AccountQuery,
    AdvisoryLookupFailure,
    ExecutionFailure,
    ProviderConnectionError,
    ProviderRejection,
    ReceiptTimeoutError,
    SigningProvider,
)
from txsigner.provider.dryrun import DryRunSigningProvider
from txsigner.provider.rpc import JsonRpcAccountQuery
from txsigner.provider.wallet import Web3SigningProvider

__all__ = [
    "AccountQuery",
    "AdvisoryLookupFailure",
    "DryRunSigningProvider",
    "ExecutionFailure",
    "JsonRpcAccountQuery",
    "ProviderConnectionError",
    "ProviderRejection",
    "ReceiptTimeoutError",
    "SigningProvider",
    "Web3SigningProvider",
]
