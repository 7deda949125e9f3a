"""
Rule Repository
CRUD for user spending-target rules
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.domain.models import InvestType, Rule, RuleCategory, RulePeriod
from owninstead.infrastructure.db.models import RuleModel

logger = logging.getLogger(__name__)

_UPDATABLE = {
    "category",
    "merchant_pattern",
    "target_spend",
    "invest_type",
    "invest_amount",
    "streak_enabled",
    "active",
}


class RuleRepository:
    """Repository for Rule"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def create(self, rule: Rule) -> Rule:
        """
        Persist a validated Rule

        Args:
            rule: Domain rule (id may be empty; one is generated)

        Returns:
            Stored Rule with id and created_at
        """
        model = RuleModel(
            user_id=rule.user_id,
            category=rule.category,
            merchant_pattern=rule.merchant_pattern,
            period=rule.period,
            target_spend=rule.target_spend,
            invest_type=rule.invest_type,
            invest_amount=rule.invest_amount,
            streak_enabled=rule.streak_enabled,
            active=rule.active,
        )
        if rule.id:
            model.id = rule.id

        self.session.add(model)
        await self.session.flush()
        return self._to_domain(model)

    async def get_for_user(self, rule_id: str, user_id: str) -> Optional[Rule]:
        model = await self._get_model(rule_id, user_id)
        return self._to_domain(model) if model else None

    async def list_for_user(self, user_id: str, active_only: bool = False) -> List[Rule]:
        stmt = select(RuleModel).where(RuleModel.user_id == user_id)
        if active_only:
            stmt = stmt.where(RuleModel.active.is_(True))
        result = await self.session.execute(stmt.order_by(RuleModel.created_at))

        rules = []
        for model in result.scalars().all():
            try:
                rules.append(self._to_domain(model))
            except ValueError as e:
                # Rows written before validation existed are not evaluable
                logger.warning("Skipping invalid rule %s: %s", model.id, e)
        return rules

    async def list_active_for_user(self, user_id: str) -> List[Rule]:
        return await self.list_for_user(user_id, active_only=True)

    async def update(self, rule_id: str, user_id: str, **changes) -> Optional[Rule]:
        """
        Apply partial changes and re-validate

        Raises:
            ValueError: If the resulting rule violates an invariant
        """
        model = await self._get_model(rule_id, user_id)
        if model is None:
            return None

        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        for key, value in changes.items():
            setattr(model, key, value)

        # Validate before flushing so a bad combination never reaches the DB
        rule = self._to_domain(model)
        await self.session.flush()
        return rule

    async def deactivate(self, rule_id: str, user_id: str) -> bool:
        """Soft delete: evaluations keep referencing the rule"""
        model = await self._get_model(rule_id, user_id)
        if model is None:
            return False
        model.active = False
        await self.session.flush()
        return True

    async def _get_model(self, rule_id: str, user_id: str) -> Optional[RuleModel]:
        result = await self.session.execute(
            select(RuleModel).where(RuleModel.id == rule_id, RuleModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: RuleModel) -> Rule:
        """Convert database model to domain entity"""
        return Rule(
            id=model.id,
            user_id=model.user_id,
            category=RuleCategory(model.category),
            target_spend=Decimal(str(model.target_spend)),
            invest_type=InvestType(model.invest_type),
            invest_amount=(
                Decimal(str(model.invest_amount)) if model.invest_amount is not None else None
            ),
            merchant_pattern=model.merchant_pattern,
            period=RulePeriod(model.period or RulePeriod.WEEKLY),
            streak_enabled=bool(model.streak_enabled),
            active=bool(model.active),
            created_at=model.created_at,
        )
