"""
SERVICE — WEEKLY EVALUATION & REVIEW

• Evaluates a user's active rules over the previous Sunday–Saturday week
• Persists one evaluation per rule per period (idempotent)
• Confirm / skip pending evaluations (user-scoped, compare-and-swap)
• Live preview of the current week (nothing persisted)
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from owninstead.domain.constants import STREAK_MILESTONES
from owninstead.domain.errors import EvaluationNotFoundError, EvaluationTransitionError
from owninstead.domain.models import (
    Evaluation,
    EvaluationStatus,
    Rule,
    WeekPreview,
)
from owninstead.domain.services.rule_evaluator import RuleEvaluator
from owninstead.infrastructure.db.repositories.evaluation_repository import (
    EvaluationRepository,
    total_final_invest,
)
from owninstead.infrastructure.db.repositories.order_repository import OrderRepository
from owninstead.infrastructure.db.repositories.profile_repository import ProfileRepository
from owninstead.infrastructure.db.repositories.rule_repository import RuleRepository
from owninstead.infrastructure.db.repositories.transaction_repository import (
    TransactionRepository,
)
from owninstead.services import notification_service as notifications
from owninstead.services.notification_service import Notifier
from owninstead.services.reward_service import RewardRecorder
from owninstead.utils.time import current_week_range, previous_week_range

logger = logging.getLogger(__name__)


@dataclass
class UserEvaluationSummary:
    user_id: str
    skipped_reason: Optional[str] = None
    created: List[Evaluation] = field(default_factory=list)
    already_evaluated: int = 0

    @property
    def pending(self) -> List[Evaluation]:
        return [e for e in self.created if e.status == EvaluationStatus.PENDING]

    @property
    def total_pending_savings(self) -> Decimal:
        return total_final_invest(self.pending)


class EvaluationService:
    """
    Evaluation lifecycle on one database session

    ``evaluate_user`` commits after every created evaluation so a duplicate
    insert rejected by the unique constraint only rolls back itself.
    The review actions (confirm, skip) leave committing to the caller.
    """

    def __init__(
        self,
        session: AsyncSession,
        evaluator: Optional[RuleEvaluator] = None,
        notifier: Optional[Notifier] = None,
        rewards: Optional[RewardRecorder] = None,
    ):
        self.session = session
        self.evaluator = evaluator or RuleEvaluator()
        self.notifier = notifier
        self.rewards = rewards

        self.evaluations = EvaluationRepository(session)
        self.orders = OrderRepository(session)
        self.profiles = ProfileRepository(session)
        self.rules = RuleRepository(session)
        self.transactions = TransactionRepository(session)

    # ------------------------------------------------------------------
    # WEEKLY EVALUATION
    # ------------------------------------------------------------------

    async def evaluate_user(self, user_id: str, today: date) -> UserEvaluationSummary:
        """
        Evaluate every active rule of a user for the week before ``today``

        Args:
            user_id: User to evaluate
            today: Evaluation date in the business timezone

        Returns:
            UserEvaluationSummary with the evaluations this call created
        """
        summary = UserEvaluationSummary(user_id=user_id)

        profile = await self.profiles.get(user_id)
        if profile is None:
            summary.skipped_reason = "profile not found"
            return summary
        if not profile.onboarding_completed:
            summary.skipped_reason = "onboarding incomplete"
            return summary
        if profile.investing_paused:
            summary.skipped_reason = "investing paused"
            return summary

        period_start, period_end = previous_week_range(today)
        rules = await self.rules.list_active_for_user(user_id)
        if not rules:
            summary.skipped_reason = "no active rules"
            return summary

        transactions = await self.transactions.list_for_user(user_id, period_start, period_end)
        invested = await self.orders.get_committed_this_month(user_id, today)

        # Earlier rules of this run reserve monthly budget before any order exists
        earmarked = Decimal("0")

        for rule in rules:
            prior_streak = await self.evaluations.get_prior_streak(rule.id, period_start)
            result = self.evaluator.evaluate(
                rule,
                transactions,
                profile,
                prior_streak=prior_streak,
                invested_this_month=invested + earmarked,
            )
            result = replace(result, period_start=period_start, period_end=period_end)

            created = await self.evaluations.create_if_absent(result)
            if created is None:
                summary.already_evaluated += 1
                continue

            await self.session.commit()
            summary.created.append(created)
            if created.status == EvaluationStatus.PENDING:
                earmarked += created.final_invest

            logger.info(
                "Evaluation created | user=%s | rule=%s | spend=%s/%s | invest=%s | streak=%s | %s",
                user_id,
                rule.id,
                created.actual_spend,
                created.target_spend,
                created.final_invest,
                created.streak_count,
                created.status.value,
            )

            if result.target_beaten:
                await self._reward_target_beaten(user_id, result.saved_amount, result.streak_count)

        await self._notify_cycle(summary, rules)
        return summary

    async def _reward_target_beaten(self, user_id: str, saved: Decimal, streak: int) -> None:
        if self.rewards is None:
            return
        try:
            await self.rewards.on_target_beaten(user_id, saved, streak)
        except Exception as exc:
            logger.error("Reward hook failed | user=%s | %s", user_id, exc)

    async def _notify_cycle(self, summary: UserEvaluationSummary, rules: Iterable[Rule]) -> None:
        if self.notifier is None or not summary.created:
            return

        streak_rules = {r.id for r in rules if r.streak_enabled}
        for evaluation in summary.pending:
            if evaluation.rule_id in streak_rules and evaluation.streak_count in STREAK_MILESTONES:
                await self._notify(
                    summary.user_id,
                    notifications.STREAK_BONUS,
                    {
                        "weeks": evaluation.streak_count,
                        "bonus_percent": evaluation.streak_count * 10,
                    },
                )
                # One streak notification per cycle
                break

        total = summary.total_pending_savings
        if total > 0:
            await self._notify(
                summary.user_id,
                notifications.WEEKLY_REVIEW,
                {"total_savings": total},
            )

    async def _notify(self, user_id: str, kind: str, params: dict) -> None:
        try:
            await self.notifier.notify(user_id, kind, params)
        except Exception as exc:
            logger.error("Notification failed | user=%s | %s | %s", user_id, kind, exc)

    # ------------------------------------------------------------------
    # REVIEW ACTIONS
    # ------------------------------------------------------------------

    async def confirm(
        self,
        evaluation_id: str,
        user_id: str,
        today: date,
        excluded_transaction_ids: Optional[Iterable[str]] = None,
    ) -> Evaluation:
        """
        Approve a pending evaluation for execution

        Excluded transactions must belong to the evaluation's matching set.
        They are flagged and the amounts recomputed before the status moves;
        if nothing remains to invest the evaluation is skipped instead.

        Raises:
            EvaluationNotFoundError: Unknown id or another user's evaluation
            EvaluationTransitionError: Evaluation is not pending
            ValueError: Excluded id outside the evaluation's matching set
        """
        evaluation = await self._get_pending(evaluation_id, user_id, "confirm")

        excluded = list(dict.fromkeys(excluded_transaction_ids or ()))
        if not excluded:
            moved = await self.evaluations.transition(
                evaluation_id, EvaluationStatus.CONFIRMED, user_id=user_id
            )
            if not moved:
                await self._raise_rejected(evaluation_id, user_id, "confirm")
            logger.info("Evaluation confirmed | id=%s | user=%s", evaluation_id, user_id)
            return await self.evaluations.get(evaluation_id)

        unknown = set(excluded) - set(evaluation.matching_transaction_ids)
        if unknown:
            raise ValueError(
                "Excluded transactions are not part of this evaluation: "
                + ", ".join(sorted(unknown))
            )

        await self.transactions.set_excluded(excluded, user_id)

        rule = await self.rules.get_for_user(evaluation.rule_id, user_id)
        profile = await self.profiles.get(user_id)
        if rule is None or profile is None:
            raise EvaluationNotFoundError(evaluation_id)
        # Recompute against the target the evaluation was made with
        rule = replace(rule, target_spend=evaluation.target_spend)

        transactions = await self.transactions.list_for_user(
            user_id, evaluation.period_start, evaluation.period_end
        )
        invested = await self.orders.get_committed_this_month(
            user_id, today, exclude_evaluation_id=evaluation_id
        )
        result = self.evaluator.evaluate(
            rule,
            transactions,
            profile,
            prior_streak=evaluation.prior_streak,
            invested_this_month=invested,
        )

        target = (
            EvaluationStatus.CONFIRMED
            if result.final_invest > 0
            else EvaluationStatus.SKIPPED
        )
        moved = await self.evaluations.transition(
            evaluation_id,
            target,
            user_id=user_id,
            actual_spend=result.actual_spend,
            calculated_invest=result.calculated_invest,
            final_invest=result.final_invest,
            streak_count=result.streak_count,
            matching_transaction_ids=list(result.matching_transaction_ids),
        )
        if not moved:
            await self._raise_rejected(evaluation_id, user_id, "confirm")

        logger.info(
            "Evaluation %s after exclusions | id=%s | excluded=%d | invest %s -> %s",
            target.value,
            evaluation_id,
            len(excluded),
            evaluation.final_invest,
            result.final_invest,
        )
        return await self.evaluations.get(evaluation_id)

    async def skip(self, evaluation_id: str, user_id: str) -> Evaluation:
        """Decline a pending evaluation; it will never be executed"""
        await self._get_pending(evaluation_id, user_id, "skip")
        moved = await self.evaluations.transition(
            evaluation_id, EvaluationStatus.SKIPPED, user_id=user_id
        )
        if not moved:
            await self._raise_rejected(evaluation_id, user_id, "skip")

        logger.info("Evaluation skipped | id=%s | user=%s", evaluation_id, user_id)
        return await self.evaluations.get(evaluation_id)

    async def _get_pending(self, evaluation_id: str, user_id: str, action: str) -> Evaluation:
        evaluation = await self.evaluations.get_for_user(evaluation_id, user_id)
        if evaluation is None:
            raise EvaluationNotFoundError(evaluation_id)
        if evaluation.status != EvaluationStatus.PENDING:
            raise EvaluationTransitionError(
                evaluation_id, action, f"already {evaluation.status.value}"
            )
        return evaluation

    async def _raise_rejected(self, evaluation_id: str, user_id: str, action: str) -> None:
        # Lost a race: report the status the winner left behind
        current = await self.evaluations.get_for_user(evaluation_id, user_id)
        if current is None:
            raise EvaluationNotFoundError(evaluation_id)
        raise EvaluationTransitionError(evaluation_id, action, f"already {current.status.value}")

    # ------------------------------------------------------------------
    # PREVIEW
    # ------------------------------------------------------------------

    async def preview_current_week(self, user_id: str, today: date) -> WeekPreview:
        """Spend so far this week against each active rule, without caps"""
        period_start, period_end = current_week_range(today)
        rules = await self.rules.list_active_for_user(user_id)
        transactions = await self.transactions.list_for_user(user_id, period_start, period_end)

        previews = []
        for rule in rules:
            prior_streak = await self.evaluations.get_prior_streak(rule.id, period_start)
            previews.append(self.evaluator.preview(rule, transactions, prior_streak=prior_streak))

        return WeekPreview(
            period_start=period_start,
            period_end=period_end,
            rules=tuple(previews),
        )
