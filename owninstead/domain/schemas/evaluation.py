from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from owninstead.domain.models import EvaluationStatus, RuleCategory


class EvaluationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    rule_id: str
    period_start: date
    period_end: date
    actual_spend: Decimal
    target_spend: Decimal
    calculated_invest: Decimal
    final_invest: Decimal
    streak_count: int
    status: EvaluationStatus
    matching_transaction_ids: List[str]
    created_at: Optional[datetime]


class EvaluationListResponse(BaseModel):
    items: List[EvaluationResponse]
    total: int
    offset: int
    limit: int


class ConfirmRequest(BaseModel):
    excluded_transaction_ids: List[str] = Field(default_factory=list)


class RulePreviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: str
    category: RuleCategory
    target_spend: Decimal
    current_spend: Decimal
    projected_invest: Decimal
    on_track: bool


class WeekPreviewResponse(BaseModel):
    period_start: date
    period_end: date
    total_projected: Decimal
    rules: List[RulePreviewResponse]
