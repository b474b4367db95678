"""
Intent Resolver - describes what a submission request will do.

Turns a forwarding path and a transaction into the intent shown to the
user and reported to the activity ledger.
"""

from typing import Optional, Sequence

from txsigner.core.apps import ApplicationRegistry
from txsigner.core.types import Intent, PathNode, Transaction


def pretransaction_description(intent: Intent) -> str:
    """
    Describe the pretransaction that authorizes an intent.

    "Vote yes" for app "Voting" becomes "Allow Voting to vote yes".
    """
    description = intent.description or ""
    return f"Allow {intent.name} to {description[:1].lower()}{description[1:]}"


class IntentResolver:
    """
    Resolves intents from submission paths.

    A path with forwarders describes the intent by its last node, the one
    closest to execution. A direct path is described by the transaction
    itself, named after the registered app at its target address.
    """

    def __init__(self, registry: Optional[ApplicationRegistry] = None):
        self.registry = registry or ApplicationRegistry()

    def resolve(self, path: Sequence[PathNode], transaction: Transaction) -> Intent:
        """
        Resolve the intent of a transaction.

        Args:
            path: Forwarding path, at least one node long
            transaction: Transaction the path leads to

        Returns:
            Resolved intent

        Raises:
            ValueError: If the path is empty
        """
        if not path:
            raise ValueError("Submission path must contain at least one node")

        if len(path) > 1:
            last_node = path[-1]
            return Intent(
                name=last_node.name,
                to=last_node.to,
                description=last_node.description,
                annotated_description=last_node.annotated_description,
                transaction=transaction,
            )

        app = self.registry.lookup(transaction.to)
        return Intent(
            name=app.name if app else "",
            to=transaction.to,
            description=transaction.description,
            annotated_description=transaction.annotated_description,
            transaction=transaction,
        )

    @staticmethod
    def is_direct_path(path: Sequence[PathNode]) -> bool:
        """Check if a path goes straight to its target."""
        return len(path) == 1
