"""
Database Models (SQLAlchemy ORM)
Evaluations and orders are audit rows - NO DELETES
"""

import uuid

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime,
    Boolean, ForeignKey, Text, Enum as SQLEnum, Index, JSON,
    UniqueConstraint, text,
)
from sqlalchemy.orm import relationship

from owninstead.domain.models import (
    EvaluationStatus,
    InvestType,
    OrderStatus,
    RuleCategory,
    RulePeriod,
)
from owninstead.domain.constants import DEFAULT_MAX_PER_MONTH, DEFAULT_MAX_PER_TRADE
from owninstead.infrastructure.db.database import Base
from owninstead.utils.time import now_utc_naive


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum(enum_cls, name: str) -> SQLEnum:
    # Persist enum values ("pending"), not member names ("PENDING")
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
    )


class ProfileModel(Base):
    """User profile with safety limits"""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    investing_paused = Column(Boolean, nullable=False, default=False)
    max_per_trade = Column(Numeric(12, 2), nullable=False, default=DEFAULT_MAX_PER_TRADE)
    max_per_month = Column(Numeric(12, 2), nullable=False, default=DEFAULT_MAX_PER_MONTH)
    selected_asset = Column(String(10), nullable=True)
    brokerage_account_id = Column(String(64), nullable=True)
    push_token = Column(String(255), nullable=True)
    push_token_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)


class RuleModel(Base):
    """Spending-target rule"""
    __tablename__ = "rules"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    category = Column(_enum(RuleCategory, "rule_category"), nullable=False)
    merchant_pattern = Column(String(100), nullable=True)
    period = Column(_enum(RulePeriod, "rule_period"), nullable=False, default=RulePeriod.WEEKLY)
    target_spend = Column(Numeric(12, 2), nullable=False)
    invest_type = Column(_enum(InvestType, "invest_type"), nullable=False)
    invest_amount = Column(Numeric(12, 2), nullable=True)
    streak_enabled = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    evaluations = relationship("EvaluationModel", back_populates="rule")


class TransactionModel(Base):
    """Bank transaction synced from the aggregator"""
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    provider_transaction_id = Column(String(128), nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    merchant_name = Column(String(255), nullable=True)
    category = Column(JSON, nullable=True)
    date = Column(Date, nullable=False)
    excluded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
    )


class EvaluationModel(Base):
    """Outcome of one rule for one weekly period"""
    __tablename__ = "evaluations"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    rule_id = Column(String(36), ForeignKey("rules.id"), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)

    actual_spend = Column(Numeric(12, 2), nullable=False)
    target_spend = Column(Numeric(12, 2), nullable=False)
    calculated_invest = Column(Numeric(12, 2), nullable=False)
    final_invest = Column(Numeric(12, 2), nullable=False)
    streak_count = Column(Integer, nullable=False, default=0)

    status = Column(_enum(EvaluationStatus, "evaluation_status"), nullable=False)
    matching_transaction_ids = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=now_utc_naive)
    updated_at = Column(DateTime, nullable=False, default=now_utc_naive)

    rule = relationship("RuleModel", back_populates="evaluations")
    orders = relationship("OrderModel", back_populates="evaluation")

    __table_args__ = (
        UniqueConstraint("rule_id", "period_start", name="uq_evaluation_rule_period"),
        Index("ix_evaluations_status", "status"),
    )


class OrderModel(Base):
    """Brokerage order attempt - AUDIT RECORD"""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    evaluation_id = Column(String(36), ForeignKey("evaluations.id"), nullable=True)
    brokerage_order_id = Column(String(128), nullable=True)

    symbol = Column(String(10), nullable=False)
    amount_dollars = Column(Numeric(12, 2), nullable=False)
    shares = Column(Numeric(18, 6), nullable=True)
    order_type = Column(String(20), nullable=False, default="market")
    status = Column(_enum(OrderStatus, "order_status"), nullable=False)

    submitted_at = Column(DateTime, nullable=True)
    filled_at = Column(DateTime, nullable=True)
    filled_price = Column(Numeric(12, 4), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    evaluation = relationship("EvaluationModel", back_populates="orders")

    __table_args__ = (
        # At most one in-flight or completed order per evaluation
        Index(
            "ux_orders_active_evaluation",
            "evaluation_id",
            unique=True,
            postgresql_where=text("status <> 'failed'"),
            sqlite_where=text("status <> 'failed'"),
        ),
        Index("ix_orders_user_filled", "user_id", "status", "filled_at"),
    )


class BankConnectionModel(Base):
    """Linked bank item at the aggregator"""
    __tablename__ = "bank_connections"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    access_token = Column(String(255), nullable=False)
    item_id = Column(String(128), nullable=True)
    institution_name = Column(String(255), nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)


class JobRunModel(Base):
    """Batch job run with per-item counters"""
    __tablename__ = "job_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_name = Column(String(50), nullable=False)
    target = Column(String(64), nullable=True)
    started_at = Column(DateTime, nullable=False, default=now_utc_naive)
    finished_at = Column(DateTime, nullable=True)
    succeeded = Column(Integer, nullable=False, default=0)
    skipped = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_job_runs_name_finished", "job_name", "finished_at"),
    )
