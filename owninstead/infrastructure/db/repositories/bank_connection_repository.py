"""
Bank Connection Repository
Linked aggregator items, ordered for fair sync scheduling
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.domain.models import BankConnection
from owninstead.infrastructure.db.models import BankConnectionModel


class BankConnectionRepository:
    """Repository for BankConnection"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def list_user_ids_by_staleness(self) -> List[str]:
        """
        Users with at least one connection, least recently synced first

        Never-synced connections sort before everything else.
        """
        result = await self.session.execute(
            select(BankConnectionModel.user_id, BankConnectionModel.last_synced_at)
            .order_by(
                BankConnectionModel.last_synced_at.is_(None).desc(),
                BankConnectionModel.last_synced_at.asc(),
            )
        )
        seen = []
        for user_id, _ in result.all():
            if user_id not in seen:
                seen.append(user_id)
        return seen

    async def list_for_user(self, user_id: str) -> List[BankConnection]:
        result = await self.session.execute(
            select(BankConnectionModel)
            .where(BankConnectionModel.user_id == user_id)
            .order_by(BankConnectionModel.created_at)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def mark_synced(self, connection_id: str, synced_at: datetime) -> None:
        await self.session.execute(
            update(BankConnectionModel)
            .where(BankConnectionModel.id == connection_id)
            .values(last_synced_at=synced_at)
        )

    @staticmethod
    def _to_domain(model: Optional[BankConnectionModel]) -> Optional[BankConnection]:
        """Convert database model to domain entity"""
        if model is None:
            return None
        return BankConnection(
            id=model.id,
            user_id=model.user_id,
            access_token=model.access_token,
            institution_name=model.institution_name,
            last_synced_at=model.last_synced_at,
        )
