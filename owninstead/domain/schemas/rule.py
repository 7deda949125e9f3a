from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from owninstead.domain.models import InvestType, RuleCategory, RulePeriod


class RuleCreateRequest(BaseModel):
    category: RuleCategory
    merchant_pattern: Optional[str] = Field(None, min_length=1, max_length=100)
    target_spend: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    invest_type: InvestType
    invest_amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    streak_enabled: bool = False
    active: bool = True

    @model_validator(mode="after")
    def _fixed_requires_amount(self):
        if self.invest_type == InvestType.FIXED and self.invest_amount is None:
            raise ValueError("invest_amount is required when invest_type is 'fixed'")
        return self


class RuleUpdateRequest(BaseModel):
    category: Optional[RuleCategory] = None
    merchant_pattern: Optional[str] = Field(None, min_length=1, max_length=100)
    target_spend: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    invest_type: Optional[InvestType] = None
    invest_amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    streak_enabled: Optional[bool] = None
    active: Optional[bool] = None


class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    category: RuleCategory
    merchant_pattern: Optional[str]
    period: RulePeriod
    target_spend: Decimal
    invest_type: InvestType
    invest_amount: Optional[Decimal]
    streak_enabled: bool
    active: bool
    created_at: Optional[datetime]
