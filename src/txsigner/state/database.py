"""
Database-backed activity ledger.

Uses SQLAlchemy for async database operations with SQLite by default.
"""

from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import Column, DateTime, Integer, String, Text, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from txsigner.config import SignerConfig, get_config
from txsigner.core.types import ActivityRecord, ActivityStatus
from txsigner.state.ledger import ActivityLedger

logger = structlog.get_logger(__name__)

Base = declarative_base()


class ActivityRow(Base):
    """Database model for transaction activities."""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_hash = Column(String(66), unique=True, index=True, nullable=False)
    from_address = Column(String(42), nullable=False)

    target_app_name = Column(String(100), nullable=False, default="")
    target_app_address = Column(String(42), nullable=False)
    forwarder_address = Column(String(42), nullable=False, default="")
    description = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    nonce = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DatabaseActivityLedger(ActivityLedger):
    """
    Activity ledger persisted through SQLAlchemy.

    Must be connected before use.
    """

    def __init__(self, config: Optional[SignerConfig] = None, database_url: Optional[str] = None):
        """
        Initialize the ledger.

        Args:
            config: Signer configuration
            database_url: Overrides the configured database URL
        """
        self.config = config or get_config()
        self.database_url = database_url or self.config.database_url
        self._engine = None
        self._session_factory = None

    async def connect(self) -> None:
        """Initialize database connection and create tables."""
        self._engine = create_async_engine(
            self.database_url,
            echo=False,
        )

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        # Create tables
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("database_connected", url=self.database_url.split("///")[0])

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("database_disconnected")

    def _get_session(self) -> AsyncSession:
        """Get a new database session."""
        if not self._session_factory:
            raise RuntimeError("Database not connected")
        return self._session_factory()

    async def _get_row(self, session: AsyncSession, transaction_hash: str) -> Optional[ActivityRow]:
        result = await session.execute(
            select(ActivityRow).where(ActivityRow.transaction_hash == transaction_hash)
        )
        return result.scalar_one_or_none()

    async def add_transaction_activity(self, record: ActivityRecord) -> bool:
        async with self._get_session() as session:
            existing = await self._get_row(session, record.transaction_hash)
            if existing:
                logger.debug("activity_already_exists", transaction_hash=record.transaction_hash)
                return False

            session.add(ActivityRow(
                transaction_hash=record.transaction_hash,
                from_address=record.from_address,
                target_app_name=record.target_app_name,
                target_app_address=record.target_app_address,
                forwarder_address=record.forwarder_address,
                description=record.description,
                status=record.status.value,
                nonce=record.nonce,
                created_at=record.created_at,
                updated_at=record.updated_at,
            ))
            await session.commit()

        logger.info("activity_saved", transaction_hash=record.transaction_hash)
        return True

    async def _set_status(self, transaction_hash: str, status: ActivityStatus) -> bool:
        async with self._get_session() as session:
            row = await self._get_row(session, transaction_hash)
            if not row or row.status != ActivityStatus.PENDING.value:
                return False

            row.status = status.value
            row.updated_at = datetime.utcnow()
            await session.commit()

        logger.info("activity_status_saved", transaction_hash=transaction_hash, status=status.value)
        return True

    async def set_activity_confirmed(self, transaction_hash: str) -> bool:
        return await self._set_status(transaction_hash, ActivityStatus.CONFIRMED)

    async def set_activity_failed(self, transaction_hash: str) -> bool:
        return await self._set_status(transaction_hash, ActivityStatus.FAILED)

    async def set_activity_nonce(self, transaction_hash: str, nonce: int) -> bool:
        async with self._get_session() as session:
            row = await self._get_row(session, transaction_hash)
            if not row:
                return False

            row.nonce = nonce
            row.updated_at = datetime.utcnow()
            await session.commit()
            return True

    async def get_activity(self, transaction_hash: str) -> Optional[ActivityRecord]:
        async with self._get_session() as session:
            row = await self._get_row(session, transaction_hash)
            if not row:
                return None
            return self._row_to_record(row)

    async def list_activities(self) -> List[ActivityRecord]:
        async with self._get_session() as session:
            result = await session.execute(
                select(ActivityRow).order_by(ActivityRow.created_at, ActivityRow.id)
            )
            return [self._row_to_record(row) for row in result.scalars().all()]

    def _row_to_record(self, row: ActivityRow) -> ActivityRecord:
        """Convert database row to ActivityRecord."""
        return ActivityRecord(
            transaction_hash=row.transaction_hash,
            from_address=row.from_address,
            target_app_name=row.target_app_name,
            target_app_address=row.target_app_address,
            forwarder_address=row.forwarder_address,
            description=row.description or "",
            status=ActivityStatus(row.status),
            nonce=row.nonce,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


async def init_ledger(
    config: Optional[SignerConfig] = None,
    database_url: Optional[str] = None,
) -> DatabaseActivityLedger:
    """
    Initialize and connect a database ledger.

    Args:
        config: Signer configuration
        database_url: Overrides the configured database URL

    Returns:
        Connected DatabaseActivityLedger instance
    """
    ledger = DatabaseActivityLedger(config, database_url=database_url)
    await ledger.connect()
    return ledger
