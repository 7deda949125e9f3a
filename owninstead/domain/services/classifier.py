"""
TRANSACTION CLASSIFIER

Maps transactions to spending categories and decides whether a
transaction counts toward a rule.

PRIORITY (first hit wins):
1. Custom merchant pattern on the rule (bypasses categories entirely)
2. Curated merchant table
3. Provider category labels joined with " > "

Excluded transactions never classify and never match.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from owninstead.domain.constants import CATEGORY_MERCHANTS, PROVIDER_CATEGORY_MAPPING
from owninstead.domain.models import Rule, RuleCategory, Transaction


class TransactionClassifier:
    """Deterministic, side-effect free category classifier"""

    def __init__(
        self,
        merchant_table: Sequence[Tuple[str, Sequence[str]]] = CATEGORY_MERCHANTS,
        provider_mapping: Sequence[Tuple[str, str]] = PROVIDER_CATEGORY_MAPPING,
    ):
        self._merchants = [
            (RuleCategory(category), [m.lower() for m in merchants])
            for category, merchants in merchant_table
        ]
        self._provider_mapping = [
            (label.lower(), RuleCategory(category))
            for label, category in provider_mapping
        ]

    def classify(self, transaction: Transaction) -> Optional[RuleCategory]:
        if transaction.excluded:
            return None

        merchant_name = (transaction.merchant_name or "").lower()
        if merchant_name:
            for category, merchants in self._merchants:
                for merchant in merchants:
                    if merchant in merchant_name:
                        return category

        if transaction.category_labels:
            provider_label = " > ".join(transaction.category_labels).lower()
            for label, category in self._provider_mapping:
                if label in provider_label:
                    return category

        return None

    def matches(self, transaction: Transaction, rule: Rule) -> bool:
        if transaction.excluded:
            return False

        if rule.merchant_pattern:
            merchant_name = (transaction.merchant_name or "").lower()
            return rule.merchant_pattern.lower() in merchant_name

        return self.classify(transaction) == rule.category

    def filter_matching(
        self,
        transactions: Iterable[Transaction],
        rule: Rule,
    ) -> List[Transaction]:
        return [tx for tx in transactions if self.matches(tx, rule)]

    def group_by_category(
        self,
        transactions: Iterable[Transaction],
    ) -> Dict[RuleCategory, List[Transaction]]:
        grouped: Dict[RuleCategory, List[Transaction]] = defaultdict(list)
        for tx in transactions:
            category = self.classify(tx)
            if category is not None:
                grouped[category].append(tx)
        return dict(grouped)

    def category_spend(
        self,
        transactions: Iterable[Transaction],
        category: RuleCategory,
    ) -> Decimal:
        return sum(
            (tx.amount for tx in transactions if self.classify(tx) == category),
            Decimal("0"),
        )


default_classifier = TransactionClassifier()
