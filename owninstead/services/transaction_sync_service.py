"""
SERVICE — TRANSACTION SYNC

Pulls posted transactions from the bank aggregator into local storage.

• Pending provider transactions are skipped
• Amounts are stored as positive magnitudes
• Upsert on the provider transaction id (re-sync is harmless)
• A connection's last_synced_at moves only after its own successful sync
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from owninstead.domain.models import BankConnection
from owninstead.infrastructure.banking.types import BankAggregator
from owninstead.infrastructure.db.repositories.bank_connection_repository import (
    BankConnectionRepository,
)
from owninstead.infrastructure.db.repositories.transaction_repository import (
    TransactionRepository,
)
from owninstead.utils.time import now_utc_naive

logger = logging.getLogger(__name__)


@dataclass
class UserSyncResult:
    user_id: str
    connections: int = 0
    synced_connections: int = 0
    failed_connections: int = 0
    inserted: int = 0
    updated: int = 0


class TransactionSyncService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: BankAggregator,
        lookback_days: int = 30,
    ):
        self.session_factory = session_factory
        self.aggregator = aggregator
        self.lookback_days = lookback_days

    async def sync_user(self, user_id: str, today: Optional[date] = None) -> UserSyncResult:
        """
        Sync every bank connection of a user

        Each connection runs in its own session; one failing connection is
        logged and counted without affecting the others.
        """
        today = today or now_utc_naive().date()
        start = today - timedelta(days=self.lookback_days)
        result = UserSyncResult(user_id=user_id)

        async with self.session_factory() as session:
            connections = await BankConnectionRepository(session).list_for_user(user_id)

        if not connections:
            logger.warning("No bank connections found | user=%s", user_id)
            return result

        result.connections = len(connections)
        for connection in connections:
            try:
                inserted, updated = await self._sync_connection(connection, start, today)
            except Exception as exc:
                result.failed_connections += 1
                logger.warning(
                    "Bank sync failed | user=%s | connection=%s | %s",
                    user_id,
                    connection.id,
                    exc,
                )
                continue

            result.synced_connections += 1
            result.inserted += inserted
            result.updated += updated

        logger.info(
            "Bank sync | user=%s | connections=%d/%d | new=%d | updated=%d",
            user_id,
            result.synced_connections,
            result.connections,
            result.inserted,
            result.updated,
        )
        return result

    async def _sync_connection(self, connection: BankConnection, start: date, end: date):
        provider_transactions = await self.aggregator.fetch_transactions(
            connection.access_token, start, end
        )

        inserted = updated = 0
        async with self.session_factory() as session:
            transactions = TransactionRepository(session)
            for tx in provider_transactions:
                if tx.pending:
                    continue
                created = await transactions.upsert_from_provider(
                    user_id=connection.user_id,
                    provider_transaction_id=tx.transaction_id,
                    amount=abs(tx.amount),
                    merchant_name=tx.merchant_name or tx.name,
                    category=tx.category,
                    txn_date=tx.date,
                )
                if created:
                    inserted += 1
                else:
                    updated += 1

            await BankConnectionRepository(session).mark_synced(connection.id, now_utc_naive())
            await session.commit()

        return inserted, updated
