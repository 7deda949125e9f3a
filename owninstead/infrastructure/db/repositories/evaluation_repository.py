"""
Evaluation Repository
Owns the evaluation state machine and the one-evaluation-per-rule-per-period
invariant. Every status change is a conditional UPDATE, never read-then-write.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.domain.models import Evaluation, EvaluationResult, EvaluationStatus
from owninstead.infrastructure.db.models import EvaluationModel
from owninstead.utils.time import now_utc_naive

logger = logging.getLogger(__name__)

# Legal transitions: target status -> required current status
ALLOWED_TRANSITIONS = {
    EvaluationStatus.CONFIRMED: EvaluationStatus.PENDING,
    EvaluationStatus.SKIPPED: EvaluationStatus.PENDING,
    EvaluationStatus.EXECUTED: EvaluationStatus.CONFIRMED,
}


class EvaluationRepository:
    """Repository for Evaluation"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def get(self, evaluation_id: str) -> Optional[Evaluation]:
        model = await self.session.get(EvaluationModel, evaluation_id, populate_existing=True)
        return self._to_domain(model)

    async def get_for_user(self, evaluation_id: str, user_id: str) -> Optional[Evaluation]:
        result = await self.session.execute(
            select(EvaluationModel)
            .where(
                EvaluationModel.id == evaluation_id,
                EvaluationModel.user_id == user_id,
            )
            .execution_options(populate_existing=True)
        )
        return self._to_domain(result.scalar_one_or_none())

    async def find_for_period(self, rule_id: str, period_start: date) -> Optional[Evaluation]:
        result = await self.session.execute(
            select(EvaluationModel).where(
                EvaluationModel.rule_id == rule_id,
                EvaluationModel.period_start == period_start,
            )
        )
        return self._to_domain(result.scalar_one_or_none())

    async def create_if_absent(self, result: EvaluationResult) -> Optional[Evaluation]:
        """
        Persist an evaluation unless one already exists for (rule, period_start)

        Status is ``pending`` when there is something to invest, otherwise
        ``skipped``. The unique constraint is the final arbiter: a concurrent
        duplicate insert is rolled back and reported as "already evaluated".
        The caller must have committed any earlier work on this session.

        Args:
            result: EvaluationResult with period bounds set

        Returns:
            Created Evaluation, or None if the period was already evaluated
        """
        if result.period_start is None or result.period_end is None:
            raise ValueError("EvaluationResult must carry period bounds to be persisted")

        existing = await self.find_for_period(result.rule_id, result.period_start)
        if existing is not None:
            logger.debug(
                "Evaluation already exists | rule=%s | period=%s",
                result.rule_id,
                result.period_start,
            )
            return None

        status = (
            EvaluationStatus.PENDING
            if result.final_invest > Decimal("0")
            else EvaluationStatus.SKIPPED
        )
        model = EvaluationModel(
            user_id=result.user_id,
            rule_id=result.rule_id,
            period_start=result.period_start,
            period_end=result.period_end,
            actual_spend=result.actual_spend,
            target_spend=result.target_spend,
            calculated_invest=result.calculated_invest,
            final_invest=result.final_invest,
            streak_count=result.streak_count,
            status=status,
            matching_transaction_ids=list(result.matching_transaction_ids),
        )

        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.debug(
                "Duplicate evaluation insert rejected | rule=%s | period=%s",
                result.rule_id,
                result.period_start,
            )
            return None

        return self._to_domain(model)

    async def transition(
        self,
        evaluation_id: str,
        to_status: EvaluationStatus,
        user_id: Optional[str] = None,
        **values,
    ) -> bool:
        """
        Compare-and-swap status change

        Args:
            evaluation_id: Evaluation to move
            to_status: Target status (must be a legal transition)
            user_id: Restrict to the owner when set
            values: Extra columns to write in the same statement

        Returns:
            True if exactly this call performed the transition
        """
        from_status = ALLOWED_TRANSITIONS.get(to_status)
        if from_status is None:
            raise ValueError(f"No transition leads to status {to_status.value}")

        stmt = update(EvaluationModel).where(
            EvaluationModel.id == evaluation_id,
            EvaluationModel.status == from_status,
        )
        if user_id is not None:
            stmt = stmt.where(EvaluationModel.user_id == user_id)

        stmt = stmt.values(
            status=to_status,
            updated_at=now_utc_naive(),
            **values,
        ).execution_options(synchronize_session=False)

        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_prior_streak(self, rule_id: str, period_start: date) -> int:
        """
        Streak carried into ``period_start``

        Only the evaluation of the immediately preceding week counts; a gap
        (rule inactive, user paused) breaks the streak.
        """
        result = await self.session.execute(
            select(EvaluationModel.streak_count, EvaluationModel.period_end)
            .where(
                EvaluationModel.rule_id == rule_id,
                EvaluationModel.period_start < period_start,
            )
            .order_by(EvaluationModel.period_end.desc())
            .limit(1)
        )
        row = result.first()
        if row is None:
            return 0
        if row.period_end != period_start - timedelta(days=1):
            return 0
        return row.streak_count or 0

    async def list_ids_ready_for_execution(self) -> List[str]:
        """Confirmed evaluations with something to invest, oldest first"""
        result = await self.session.execute(
            select(EvaluationModel.id)
            .where(
                EvaluationModel.status == EvaluationStatus.CONFIRMED,
                EvaluationModel.final_invest > 0,
            )
            .order_by(EvaluationModel.created_at)
        )
        return list(result.scalars().all())

    async def get_current_pending(self, user_id: str) -> Optional[Evaluation]:
        result = await self.session.execute(
            select(EvaluationModel)
            .where(
                EvaluationModel.user_id == user_id,
                EvaluationModel.status == EvaluationStatus.PENDING,
            )
            .order_by(EvaluationModel.created_at.desc())
            .limit(1)
        )
        return self._to_domain(result.scalar_one_or_none())

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[EvaluationStatus] = None,
        rule_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Evaluation], int]:
        """
        Page through a user's evaluations, newest first

        Returns:
            Tuple of (evaluations, total count)
        """
        filters = [EvaluationModel.user_id == user_id]
        if status is not None:
            filters.append(EvaluationModel.status == status)
        if rule_id is not None:
            filters.append(EvaluationModel.rule_id == rule_id)

        total = await self.session.scalar(
            select(func.count()).select_from(EvaluationModel).where(*filters)
        )
        result = await self.session.execute(
            select(EvaluationModel)
            .where(*filters)
            .order_by(EvaluationModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        models = result.scalars().all()
        return [self._to_domain(m) for m in models], int(total or 0)

    @staticmethod
    def _to_domain(model: Optional[EvaluationModel]) -> Optional[Evaluation]:
        """Convert database model to domain entity"""
        if model is None:
            return None

        return Evaluation(
            id=model.id,
            user_id=model.user_id,
            rule_id=model.rule_id,
            period_start=model.period_start,
            period_end=model.period_end,
            actual_spend=Decimal(str(model.actual_spend)),
            target_spend=Decimal(str(model.target_spend)),
            calculated_invest=Decimal(str(model.calculated_invest)),
            final_invest=Decimal(str(model.final_invest)),
            streak_count=model.streak_count,
            status=EvaluationStatus(model.status),
            matching_transaction_ids=tuple(model.matching_transaction_ids or ()),
            created_at=model.created_at,
        )


def total_final_invest(evaluations: Sequence[Evaluation]) -> Decimal:
    return sum((e.final_invest for e in evaluations), Decimal("0"))
