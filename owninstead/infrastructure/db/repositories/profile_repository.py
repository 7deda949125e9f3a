"""
Profile Repository
User safety limits, investing preferences, push token
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.domain.models import Profile
from owninstead.infrastructure.db.models import ProfileModel
from owninstead.utils.time import now_utc_naive


class ProfileRepository:
    """Repository for Profile"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def get(self, user_id: str) -> Optional[Profile]:
        model = await self.session.get(ProfileModel, user_id)
        return self._to_domain(model) if model else None

    async def list_evaluable_user_ids(self) -> List[str]:
        """Users who finished onboarding and have not paused investing"""
        result = await self.session.execute(
            select(ProfileModel.id)
            .where(
                ProfileModel.onboarding_completed.is_(True),
                ProfileModel.investing_paused.is_(False),
            )
            .order_by(ProfileModel.created_at)
        )
        return list(result.scalars().all())

    async def clear_push_token(self, user_id: str) -> None:
        """Forget a device token the push service reported as unregistered"""
        await self.session.execute(
            update(ProfileModel)
            .where(ProfileModel.id == user_id)
            .values(push_token=None, push_token_updated_at=now_utc_naive())
        )

    @staticmethod
    def _to_domain(model: ProfileModel) -> Profile:
        """Convert database model to domain entity"""
        return Profile(
            id=model.id,
            max_per_trade=Decimal(str(model.max_per_trade)),
            max_per_month=Decimal(str(model.max_per_month)),
            investing_paused=bool(model.investing_paused),
            onboarding_completed=bool(model.onboarding_completed),
            selected_asset=model.selected_asset,
            brokerage_account_id=model.brokerage_account_id,
            push_token=model.push_token,
        )
