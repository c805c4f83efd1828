from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Any, Optional
from decimal import Decimal
from datetime import date, datetime

from tailfire.services.schedule_types import DepositType, ExpectedPaymentStatus, ScheduleType


# pure calculations
class CalculateIn(BaseModel):
    total_amount_cents: int = Field(gt=0)
    schedule_type: ScheduleType
    deposit_type: Optional[DepositType] = None
    deposit_percentage: Optional[Decimal] = Field(default=None, gt=0, le=100)
    deposit_amount_cents: Optional[int] = Field(default=None, ge=0)
    installment_count: Optional[int] = Field(default=None, ge=1)


class CalculatedItemOut(BaseModel):
    payment_name: str
    amount_cents: int
    sequence_order: int


class ValidateItemIn(BaseModel):
    payment_name: str
    expected_amount_cents: int
    due_date: date
    sequence_order: int


class ValidateIn(BaseModel):
    total_amount_cents: int
    departure_date: date
    items: list[ValidateItemIn]


class ValidationIssueOut(BaseModel):
    model_config = ConfigDict(extra="allow")
    code: str
    message: str


class ValidationOut(BaseModel):
    is_valid: bool
    errors: list[ValidationIssueOut]
    warnings: list[ValidationIssueOut]


# configs
class ExpectedItemIn(BaseModel):
    payment_name: str = Field(min_length=1, max_length=120)
    expected_amount_cents: int = Field(ge=0)
    due_date: Optional[date] = None
    sequence_order: int = Field(ge=0)


class ExpectedItemUpdate(BaseModel):
    payment_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    expected_amount_cents: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[date] = None
    sequence_order: Optional[int] = Field(default=None, ge=0)
    status: Optional[ExpectedPaymentStatus] = None


class ExpectedItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    payment_schedule_config_id: int
    payment_name: str
    expected_amount_cents: int
    due_date: Optional[date]
    sequence_order: int
    status: ExpectedPaymentStatus
    paid_amount_cents: int
    is_locked: bool
    locked_at: Optional[datetime]
    locked_by: Optional[str]


class GuaranteeIn(BaseModel):
    card_holder_name: str = Field(min_length=1, max_length=140)
    card_last4: str = Field(pattern=r"^\d{4}$")
    authorization_code: str = Field(min_length=1, max_length=64)
    authorization_date: datetime
    authorization_amount_cents: int = Field(ge=0)


class GuaranteeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    card_holder_name: str
    card_last4: str
    authorization_code: str
    authorization_date: datetime
    authorization_amount_cents: int


class ScheduleConfigCreate(BaseModel):
    schedule_type: ScheduleType
    allow_partial_payments: bool = False
    deposit_type: Optional[DepositType] = None
    deposit_percentage: Optional[Decimal] = Field(default=None, gt=0, le=100)
    deposit_amount_cents: Optional[int] = Field(default=None, ge=0)
    installment_count: Optional[int] = Field(default=None, ge=1)
    expected_payment_items: Optional[list[ExpectedItemIn]] = None
    credit_card_guarantee: Optional[GuaranteeIn] = None


class ScheduleConfigUpdate(BaseModel):
    schedule_type: Optional[ScheduleType] = None
    allow_partial_payments: Optional[bool] = None
    deposit_type: Optional[DepositType] = None
    deposit_percentage: Optional[Decimal] = Field(default=None, gt=0, le=100)
    deposit_amount_cents: Optional[int] = Field(default=None, ge=0)
    installment_count: Optional[int] = Field(default=None, ge=1)
    expected_payment_items: Optional[list[ExpectedItemIn]] = None
    credit_card_guarantee: Optional[GuaranteeIn] = None


class ScheduleConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    activity_pricing_id: int
    schedule_type: ScheduleType
    allow_partial_payments: bool
    deposit_type: Optional[DepositType]
    deposit_percentage: Optional[Decimal]
    deposit_amount_cents: Optional[int]
    template_id: Optional[int]
    template_version: Optional[int]
    created_at: datetime
    updated_at: datetime
    items: list[ExpectedItemOut]
    guarantee: Optional[GuaranteeOut] = None


# templates
class ApplyTemplateIn(BaseModel):
    template_id: int
    total_amount_cents: int = Field(gt=0)
    departure_date: date
    booking_date: Optional[date] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class ApplyTemplateOut(BaseModel):
    config: ScheduleConfigOut
    items: list[ExpectedItemOut]
    template_id: int
    template_version: int
    validation: ValidationOut


class ApplyTemplateFailure(BaseModel):
    code: str = "TICO_VALIDATION_FAILED"
    message: str
    errors: list[dict[str, Any]]
    warnings: list[dict[str, Any]]


# locking
class UnlockIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)

    @model_validator(mode="after")
    def _strip(self) -> "UnlockIn":
        self.reason = self.reason.strip()
        return self
