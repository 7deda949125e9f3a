"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    EvaluationStatus,
    InvestType,
    OrderStatus,
    RuleCategory,
    RulePeriod,

    # Entities
    BankConnection,
    Evaluation,
    EvaluationResult,
    Order,
    Profile,
    Rule,
    RulePreview,
    Transaction,
    WeekPreview,
)

__all__ = [
    # Enums
    "EvaluationStatus",
    "InvestType",
    "OrderStatus",
    "RuleCategory",
    "RulePeriod",

    # Entities
    "BankConnection",
    "Evaluation",
    "EvaluationResult",
    "Order",
    "Profile",
    "Rule",
    "RulePreview",
    "Transaction",
    "WeekPreview",
]
