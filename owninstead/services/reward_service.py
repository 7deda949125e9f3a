"""
Reward hooks fired by the evaluation and execution pipeline.

Point values and achievements live with whoever implements RewardRecorder;
the pipeline only reports the events.
"""

import logging
from decimal import Decimal
from typing import Protocol

logger = logging.getLogger(__name__)


class RewardRecorder(Protocol):
    async def on_target_beaten(self, user_id: str, saved_amount: Decimal, streak_count: int) -> None:
        ...

    async def on_investment_filled(self, user_id: str, amount: Decimal, is_first: bool) -> None:
        ...


class LoggingRewardRecorder:
    async def on_target_beaten(self, user_id: str, saved_amount: Decimal, streak_count: int) -> None:
        logger.info(
            "Reward | target beaten | user=%s | saved=%s | streak=%s",
            user_id,
            saved_amount,
            streak_count,
        )

    async def on_investment_filled(self, user_id: str, amount: Decimal, is_first: bool) -> None:
        logger.info(
            "Reward | investment | user=%s | amount=%s | first=%s",
            user_id,
            amount,
            is_first,
        )
