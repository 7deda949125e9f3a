"""
Transaction Repository
Read access for evaluation, upsert for the bank sync job
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.domain.models import Transaction
from owninstead.infrastructure.db.models import TransactionModel


class TransactionRepository:
    """Repository for Transaction"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def list_for_user(
        self,
        user_id: str,
        start: date,
        end: date,
        include_excluded: bool = True,
    ) -> List[Transaction]:
        """
        Transactions dated within [start, end] inclusive

        Excluded rows are returned by default; the classifier ignores them.
        """
        stmt = select(TransactionModel).where(
            TransactionModel.user_id == user_id,
            TransactionModel.date >= start,
            TransactionModel.date <= end,
        )
        if not include_excluded:
            stmt = stmt.where(TransactionModel.excluded.is_(False))

        result = await self.session.execute(
            stmt.order_by(TransactionModel.date, TransactionModel.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_for_user(self, transaction_id: str, user_id: str) -> Optional[Transaction]:
        result = await self.session.execute(
            select(TransactionModel).where(
                TransactionModel.id == transaction_id,
                TransactionModel.user_id == user_id,
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def set_excluded(
        self,
        transaction_ids: Iterable[str],
        user_id: str,
        excluded: bool = True,
    ) -> int:
        """
        Flag transactions as excluded from evaluation

        Returns:
            Number of rows changed
        """
        ids = list(transaction_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            update(TransactionModel)
            .where(
                TransactionModel.id.in_(ids),
                TransactionModel.user_id == user_id,
            )
            .values(excluded=excluded)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def upsert_from_provider(
        self,
        user_id: str,
        provider_transaction_id: str,
        amount: Decimal,
        merchant_name: Optional[str],
        category: Optional[Sequence[str]],
        txn_date: date,
    ) -> bool:
        """
        Insert or refresh a provider transaction

        The user's ``excluded`` choice survives re-syncs.

        Returns:
            True if a new row was inserted
        """
        result = await self.session.execute(
            select(TransactionModel).where(
                TransactionModel.provider_transaction_id == provider_transaction_id
            )
        )
        model = result.scalar_one_or_none()

        if model is None:
            self.session.add(
                TransactionModel(
                    user_id=user_id,
                    provider_transaction_id=provider_transaction_id,
                    amount=amount,
                    merchant_name=merchant_name,
                    category=list(category) if category else None,
                    date=txn_date,
                )
            )
            await self.session.flush()
            return True

        model.amount = amount
        model.merchant_name = merchant_name
        model.category = list(category) if category else None
        model.date = txn_date
        await self.session.flush()
        return False

    @staticmethod
    def _to_domain(model: TransactionModel) -> Transaction:
        """Convert database model to domain entity"""
        return Transaction(
            id=model.id,
            user_id=model.user_id,
            amount=Decimal(str(model.amount)),
            merchant_name=model.merchant_name,
            category_labels=tuple(model.category or ()),
            date=model.date,
            excluded=bool(model.excluded),
        )
