"""
Order Repository
Brokerage order attempts (audit records - NO DELETES)
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.domain.models import EvaluationStatus, Order, OrderStatus
from owninstead.infrastructure.db.models import EvaluationModel, OrderModel
from owninstead.utils.time import month_bounds

logger = logging.getLogger(__name__)


class OrderRepository:
    """Repository for Order"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def create_pending(
        self,
        user_id: str,
        evaluation_id: str,
        symbol: str,
        amount_dollars: Decimal,
    ) -> Optional[Order]:
        """
        Record an order attempt before talking to the brokerage

        The partial unique index on (evaluation_id) WHERE status <> 'failed'
        rejects a second in-flight attempt. The caller must have committed any
        earlier work on this session.

        Returns:
            Created Order, or None when another attempt already holds the slot
        """
        model = OrderModel(
            user_id=user_id,
            evaluation_id=evaluation_id,
            symbol=symbol,
            amount_dollars=amount_dollars,
            order_type="market",
            status=OrderStatus.PENDING,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.info("Order already in flight | evaluation=%s", evaluation_id)
            return None

        return self._to_domain(model)

    async def get(self, order_id: str) -> Optional[Order]:
        model = await self.session.get(OrderModel, order_id, populate_existing=True)
        return self._to_domain(model)

    async def get_for_user(self, order_id: str, user_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(
                OrderModel.id == order_id,
                OrderModel.user_id == user_id,
            )
        )
        return self._to_domain(result.scalar_one_or_none())

    async def get_active_for_evaluation(self, evaluation_id: str) -> Optional[Order]:
        """Non-failed order for an evaluation, if any"""
        result = await self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.evaluation_id == evaluation_id,
                OrderModel.status != OrderStatus.FAILED,
            )
            .limit(1)
        )
        return self._to_domain(result.scalar_one_or_none())

    async def mark_submitted(
        self,
        order_id: str,
        brokerage_order_id: str,
        shares: Decimal,
        submitted_at: datetime,
    ) -> bool:
        return await self._move(
            order_id,
            OrderStatus.PENDING,
            OrderStatus.SUBMITTED,
            brokerage_order_id=brokerage_order_id,
            shares=shares,
            submitted_at=submitted_at,
        )

    async def mark_failed(
        self,
        order_id: str,
        error_message: str,
        from_status: OrderStatus = OrderStatus.PENDING,
    ) -> bool:
        return await self._move(
            order_id,
            from_status,
            OrderStatus.FAILED,
            error_message=error_message[:1000],
        )

    async def mark_filled(
        self,
        order_id: str,
        filled_at: datetime,
        filled_price: Optional[Decimal],
        shares: Optional[Decimal] = None,
    ) -> bool:
        values = dict(filled_at=filled_at, filled_price=filled_price)
        if shares is not None:
            values["shares"] = shares
        return await self._move(order_id, OrderStatus.SUBMITTED, OrderStatus.FILLED, **values)

    async def _move(
        self,
        order_id: str,
        from_status: OrderStatus,
        to_status: OrderStatus,
        **values,
    ) -> bool:
        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == from_status)
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_submitted(self) -> List[Order]:
        """Orders awaiting a fill report, oldest first"""
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.status == OrderStatus.SUBMITTED)
            .order_by(OrderModel.submitted_at)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_committed_this_month(
        self,
        user_id: str,
        today: date,
        exclude_evaluation_id: Optional[str] = None,
    ) -> Decimal:
        """
        Amount counted against the monthly cap

        Filled orders count by fill date; pending and submitted orders count
        by creation date so money in flight cannot be spent twice. Pending
        and confirmed evaluations without a live order count in full: when
        executed they fill in the current month or a later one.

        Args:
            user_id: Order owner
            today: Any day in the month of interest
            exclude_evaluation_id: Evaluation being recomputed, left out of
                the outstanding total

        Returns:
            Total committed amount
        """
        start, end = month_bounds(today)
        ordered = await self.session.scalar(
            select(func.coalesce(func.sum(OrderModel.amount_dollars), 0)).where(
                OrderModel.user_id == user_id,
                or_(
                    and_(
                        OrderModel.status == OrderStatus.FILLED,
                        OrderModel.filled_at >= start,
                        OrderModel.filled_at < end,
                    ),
                    and_(
                        OrderModel.status.in_([OrderStatus.PENDING, OrderStatus.SUBMITTED]),
                        OrderModel.created_at >= start,
                        OrderModel.created_at < end,
                    ),
                ),
            )
        )

        live_order = select(OrderModel.id).where(
            OrderModel.evaluation_id == EvaluationModel.id,
            OrderModel.status != OrderStatus.FAILED,
        )
        filters = [
            EvaluationModel.user_id == user_id,
            EvaluationModel.status.in_([EvaluationStatus.PENDING, EvaluationStatus.CONFIRMED]),
            EvaluationModel.final_invest > 0,
            ~live_order.exists(),
        ]
        if exclude_evaluation_id is not None:
            filters.append(EvaluationModel.id != exclude_evaluation_id)
        outstanding = await self.session.scalar(
            select(func.coalesce(func.sum(EvaluationModel.final_invest), 0)).where(*filters)
        )

        return _decimal(ordered) + _decimal(outstanding)

    async def count_successful(self, user_id: str) -> int:
        """Submitted or filled orders for a user"""
        total = await self.session.scalar(
            select(func.count())
            .select_from(OrderModel)
            .where(
                OrderModel.user_id == user_id,
                OrderModel.status.in_([OrderStatus.SUBMITTED, OrderStatus.FILLED]),
            )
        )
        return int(total or 0)

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[OrderStatus] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        filters = [OrderModel.user_id == user_id]
        if status is not None:
            filters.append(OrderModel.status == status)

        total = await self.session.scalar(
            select(func.count()).select_from(OrderModel).where(*filters)
        )
        result = await self.session.execute(
            select(OrderModel)
            .where(*filters)
            .order_by(OrderModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return [self._to_domain(m) for m in result.scalars().all()], int(total or 0)

    @staticmethod
    def _to_domain(model: Optional[OrderModel]) -> Optional[Order]:
        """Convert database model to domain entity"""
        if model is None:
            return None

        return Order(
            id=model.id,
            user_id=model.user_id,
            evaluation_id=model.evaluation_id,
            symbol=model.symbol,
            amount_dollars=Decimal(str(model.amount_dollars)),
            status=OrderStatus(model.status),
            shares=Decimal(str(model.shares)) if model.shares is not None else None,
            brokerage_order_id=model.brokerage_order_id,
            order_type=model.order_type,
            submitted_at=model.submitted_at,
            filled_at=model.filled_at,
            filled_price=(
                Decimal(str(model.filled_price)) if model.filled_price is not None else None
            ),
            error_message=model.error_message,
            created_at=model.created_at,
        )


def _decimal(value) -> Decimal:
    return Decimal(str(value)) if value else Decimal("0")
