"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class RuleCategory(str, Enum):
    """Spending category a rule tracks"""
    DELIVERY = "delivery"
    COFFEE = "coffee"
    RIDESHARE = "rideshare"
    RESTAURANTS = "restaurants"
    BARS = "bars"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    SUBSCRIPTIONS = "subscriptions"
    CUSTOM = "custom"


class InvestType(str, Enum):
    """How a beaten target turns into an investment"""
    FIXED = "fixed"
    DIFFERENCE = "difference"


class RulePeriod(str, Enum):
    WEEKLY = "weekly"


class EvaluationStatus(str, Enum):
    """Evaluation lifecycle: pending -> confirmed -> executed, pending -> skipped"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SKIPPED = "skipped"
    EXECUTED = "executed"


class OrderStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    FILLED = "filled"
    FAILED = "failed"


@dataclass(frozen=True)
class Rule:
    """Standing spending-target instruction - Immutable"""
    id: str
    user_id: str
    category: RuleCategory
    target_spend: Decimal
    invest_type: InvestType
    invest_amount: Optional[Decimal] = None
    merchant_pattern: Optional[str] = None
    period: RulePeriod = RulePeriod.WEEKLY
    streak_enabled: bool = False
    active: bool = True
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.invest_type == InvestType.FIXED and not self.invest_amount:
            raise ValueError("invest_amount is required when invest_type is 'fixed'")
        if self.period != RulePeriod.WEEKLY:
            raise ValueError(f"Unsupported rule period: {self.period}")


@dataclass(frozen=True)
class Transaction:
    """Synced bank transaction; amount is a positive magnitude"""
    id: str
    amount: Decimal
    merchant_name: Optional[str]
    category_labels: Tuple[str, ...]
    date: date
    excluded: bool = False
    user_id: Optional[str] = None


@dataclass(frozen=True)
class Profile:
    """Per-user safety limits and investing preferences"""
    id: str
    max_per_trade: Decimal
    max_per_month: Decimal
    investing_paused: bool = False
    onboarding_completed: bool = True
    selected_asset: Optional[str] = None
    brokerage_account_id: Optional[str] = None
    push_token: Optional[str] = None


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one rule over one period - Immutable"""
    rule_id: str
    user_id: str
    actual_spend: Decimal
    target_spend: Decimal
    calculated_invest: Decimal
    final_invest: Decimal
    streak_count: int
    matching_transaction_ids: Tuple[str, ...] = ()
    period_start: Optional[date] = None
    period_end: Optional[date] = None

    @property
    def target_beaten(self) -> bool:
        return self.actual_spend < self.target_spend

    @property
    def saved_amount(self) -> Decimal:
        """Spend avoided relative to target (zero when over budget)"""
        return max(self.target_spend - self.actual_spend, Decimal("0"))


@dataclass(frozen=True)
class RulePreview:
    """Live, non-persisted view of the current week for one rule"""
    rule_id: str
    category: RuleCategory
    target_spend: Decimal
    current_spend: Decimal
    projected_invest: Decimal
    on_track: bool


@dataclass(frozen=True)
class WeekPreview:
    """Current-week previews for all of a user's active rules"""
    period_start: date
    period_end: date
    rules: Tuple[RulePreview, ...] = ()

    @property
    def total_projected(self) -> Decimal:
        return sum((r.projected_invest for r in self.rules), Decimal("0"))


@dataclass
class Evaluation:
    """Persisted evaluation of a rule for a period"""
    id: str
    user_id: str
    rule_id: str
    period_start: date
    period_end: date
    actual_spend: Decimal
    target_spend: Decimal
    calculated_invest: Decimal
    final_invest: Decimal
    streak_count: int
    status: EvaluationStatus
    matching_transaction_ids: Tuple[str, ...] = ()
    created_at: Optional[datetime] = None

    @property
    def prior_streak(self) -> int:
        """Streak carried into this period (pending evaluations always beat target)"""
        if self.actual_spend < self.target_spend:
            return max(self.streak_count - 1, 0)
        return 0


@dataclass
class Order:
    """One brokerage purchase attempt for an evaluation"""
    id: str
    user_id: str
    evaluation_id: Optional[str]
    symbol: str
    amount_dollars: Decimal
    status: OrderStatus
    shares: Optional[Decimal] = None
    brokerage_order_id: Optional[str] = None
    order_type: str = "market"
    submitted_at: Optional[datetime] = None
    filled_at: Optional[datetime] = None
    filled_price: Optional[Decimal] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class BankConnection:
    id: str
    user_id: str
    access_token: str = field(repr=False)
    institution_name: Optional[str] = None
    last_synced_at: Optional[datetime] = None
