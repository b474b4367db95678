"""
Activity Ledger - tracks reported transaction activity.

Receives an activity record for every hashed transaction and follows it
until it is confirmed or failed.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import structlog

from txsigner.core.types import ActivityRecord, ActivityStatus

logger = structlog.get_logger(__name__)


class ActivityLedger(ABC):
    """
    Abstract interface for the activity ledger.

    Status updates only apply to pending activities: an activity that is
    already confirmed or failed keeps its outcome.
    """

    @abstractmethod
    async def add_transaction_activity(self, record: ActivityRecord) -> bool:
        """
        Add a new activity.

        Returns:
            True if added, False if an activity with the same hash exists
        """
        pass

    @abstractmethod
    async def set_activity_confirmed(self, transaction_hash: str) -> bool:
        """Mark an activity as confirmed. Returns False if not updated."""
        pass

    @abstractmethod
    async def set_activity_failed(self, transaction_hash: str) -> bool:
        """Mark an activity as failed. Returns False if not updated."""
        pass

    @abstractmethod
    async def set_activity_nonce(self, transaction_hash: str, nonce: int) -> bool:
        """Attach the account nonce to an activity. Returns False if unknown."""
        pass

    @abstractmethod
    async def get_activity(self, transaction_hash: str) -> Optional[ActivityRecord]:
        """Get an activity by transaction hash."""
        pass

    @abstractmethod
    async def list_activities(self) -> List[ActivityRecord]:
        """Get all activities, oldest first."""
        pass


class InMemoryActivityLedger(ActivityLedger):
    """
    Activity ledger held in process memory.

    Keeps activities in insertion order and is safe for concurrent access
    from multiple tasks.
    """

    def __init__(self):
        self._activities: Dict[str, ActivityRecord] = {}
        self._lock = asyncio.Lock()

        # Statistics
        self._stats = {
            "total_added": 0,
            "total_confirmed": 0,
            "total_failed": 0,
        }

    async def add_transaction_activity(self, record: ActivityRecord) -> bool:
        async with self._lock:
            if record.transaction_hash in self._activities:
                logger.debug("activity_already_exists", transaction_hash=record.transaction_hash)
                return False

            self._activities[record.transaction_hash] = record
            self._stats["total_added"] += 1

            logger.info(
                "activity_added",
                transaction_hash=record.transaction_hash,
                target_app=record.target_app_name,
                description=record.description,
            )
            return True

    async def _set_status(self, transaction_hash: str, status: ActivityStatus) -> bool:
        async with self._lock:
            record = self._activities.get(transaction_hash)
            if not record:
                logger.debug("activity_not_found", transaction_hash=transaction_hash)
                return False

            if record.status != ActivityStatus.PENDING:
                logger.debug(
                    "activity_already_settled",
                    transaction_hash=transaction_hash,
                    status=record.status.value,
                )
                return False

            if status == ActivityStatus.CONFIRMED:
                record.mark_confirmed()
                self._stats["total_confirmed"] += 1
            else:
                record.mark_failed()
                self._stats["total_failed"] += 1

            logger.info(
                "activity_status_updated",
                transaction_hash=transaction_hash,
                status=status.value,
            )
            return True

    async def set_activity_confirmed(self, transaction_hash: str) -> bool:
        return await self._set_status(transaction_hash, ActivityStatus.CONFIRMED)

    async def set_activity_failed(self, transaction_hash: str) -> bool:
        return await self._set_status(transaction_hash, ActivityStatus.FAILED)

    async def set_activity_nonce(self, transaction_hash: str, nonce: int) -> bool:
        async with self._lock:
            record = self._activities.get(transaction_hash)
            if not record:
                return False
            record.set_nonce(nonce)
            logger.debug("activity_nonce_set", transaction_hash=transaction_hash, nonce=nonce)
            return True

    async def get_activity(self, transaction_hash: str) -> Optional[ActivityRecord]:
        async with self._lock:
            return self._activities.get(transaction_hash)

    async def list_activities(self) -> List[ActivityRecord]:
        async with self._lock:
            return list(self._activities.values())

    async def get_stats(self) -> dict:
        """Get ledger statistics."""
        async with self._lock:
            by_status = {status.value: 0 for status in ActivityStatus}
            for record in self._activities.values():
                by_status[record.status.value] += 1
            return {
                "total_activities": len(self._activities),
                **by_status,
                **self._stats,
            }
