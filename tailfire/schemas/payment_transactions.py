from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime

from tailfire.infra.models import PaymentMethod, TransactionType


class TransactionCreate(BaseModel):
    expected_payment_item_id: int
    transaction_type: TransactionType
    amount_cents: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    payment_method: Optional[PaymentMethod] = None
    reference_number: Optional[str] = Field(default=None, max_length=120)
    transaction_date: Optional[datetime] = None
    notes: Optional[str] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    expected_payment_item_id: int
    transaction_type: TransactionType
    amount_cents: int
    currency: str
    payment_method: Optional[PaymentMethod]
    reference_number: Optional[str]
    transaction_date: datetime
    notes: Optional[str]
    created_by: Optional[str]
    created_at: datetime
