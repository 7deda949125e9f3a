"""
RULE EVALUATOR

Turns one rule + one period's transactions into an investable amount.

RESPONSIBILITIES:
- Sum spend of matching, non-excluded transactions
- Compute raw invest (fixed or difference-from-target)
- Apply linear streak bonus (10% per prior consecutive period)
- Apply safety caps: per-trade, then remaining monthly budget
- Round to cents (half-up)

RULES:
❌ No persistence, no clock, no I/O
❌ No validation of negative amounts (schema layer owns that)
✅ Caps applied after streak bonus, per-trade before monthly
✅ Exhausted monthly budget forces zero
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from owninstead.domain.constants import STREAK_BONUS_RATE
from owninstead.domain.models import (
    EvaluationResult,
    InvestType,
    Profile,
    Rule,
    RulePreview,
    Transaction,
)
from owninstead.domain.services.classifier import TransactionClassifier, default_classifier


_CENT = Decimal("0.01")
_ZERO = Decimal("0")


def round_cents(amount: Decimal) -> Decimal:
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


class RuleEvaluator:
    """
    Pure rule evaluation
    Same inputs always produce the same EvaluationResult
    """

    def __init__(self, classifier: Optional[TransactionClassifier] = None):
        self.classifier = classifier or default_classifier

    def evaluate(
        self,
        rule: Rule,
        transactions: Sequence[Transaction],
        profile: Profile,
        prior_streak: int,
        invested_this_month: Decimal = _ZERO,
    ) -> EvaluationResult:
        """
        Evaluate a rule over the transactions of one period

        Args:
            rule: Rule to evaluate
            transactions: Transactions already limited to the period
            profile: Safety limits of the rule's owner
            prior_streak: Streak count of the rule's previous evaluation
            invested_this_month: Amount already committed this calendar month

        Returns:
            EvaluationResult (period bounds are attached by the caller)
        """
        matching = self.classifier.filter_matching(transactions, rule)
        actual_spend = sum((tx.amount for tx in matching), _ZERO)

        calculated, streak = self._calculate_invest(rule, actual_spend, prior_streak)
        final = self.apply_caps(calculated, profile, invested_this_month)

        return EvaluationResult(
            rule_id=rule.id,
            user_id=rule.user_id,
            actual_spend=actual_spend,
            target_spend=rule.target_spend,
            calculated_invest=round_cents(calculated),
            final_invest=final,
            streak_count=streak,
            matching_transaction_ids=tuple(tx.id for tx in matching),
        )

    def preview(
        self,
        rule: Rule,
        transactions: Sequence[Transaction],
        prior_streak: int = 0,
    ) -> RulePreview:
        """
        Live view of a partial period: steps 1-4 only, no caps
        """
        matching = self.classifier.filter_matching(transactions, rule)
        current_spend = sum((tx.amount for tx in matching), _ZERO)
        projected, _ = self._calculate_invest(rule, current_spend, prior_streak)

        return RulePreview(
            rule_id=rule.id,
            category=rule.category,
            target_spend=rule.target_spend,
            current_spend=current_spend,
            projected_invest=round_cents(projected),
            on_track=current_spend < rule.target_spend,
        )

    @staticmethod
    def _calculate_invest(
        rule: Rule,
        actual_spend: Decimal,
        prior_streak: int,
    ) -> tuple[Decimal, int]:
        if actual_spend >= rule.target_spend:
            return _ZERO, 0

        if rule.invest_type == InvestType.DIFFERENCE:
            calculated = rule.target_spend - actual_spend
        else:
            calculated = rule.invest_amount

        if rule.streak_enabled and prior_streak > 0:
            calculated += calculated * (STREAK_BONUS_RATE * prior_streak)

        return calculated, prior_streak + 1

    @staticmethod
    def apply_caps(
        amount: Decimal,
        profile: Profile,
        invested_this_month: Decimal = _ZERO,
    ) -> Decimal:
        """
        Per-trade cap, then remaining monthly budget, then cents
        """
        if amount <= _ZERO:
            return _ZERO

        capped = min(amount, profile.max_per_trade)

        remaining_monthly = profile.max_per_month - invested_this_month
        if remaining_monthly <= _ZERO:
            return _ZERO

        capped = min(capped, remaining_monthly)
        return round_cents(capped)
