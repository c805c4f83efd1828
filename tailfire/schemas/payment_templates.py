from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from decimal import Decimal
from datetime import datetime

from tailfire.services.schedule_types import ScheduleType


class TemplateItemIn(BaseModel):
    sequence_order: int = Field(ge=0)
    payment_name: str = Field(min_length=1, max_length=120)
    percentage: Optional[Decimal] = Field(default=None, gt=0, le=100)
    fixed_amount_cents: Optional[int] = Field(default=None, gt=0)
    days_from_booking: Optional[int] = Field(default=None, ge=0)
    days_before_departure: Optional[int] = Field(default=None, ge=0)


class TemplateItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    sequence_order: int
    payment_name: str
    percentage: Optional[Decimal]
    fixed_amount_cents: Optional[int]
    days_from_booking: Optional[int]
    days_before_departure: Optional[int]


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    schedule_type: ScheduleType
    is_default: bool = False
    items: list[TemplateItemIn] = Field(min_length=1)


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    schedule_type: Optional[ScheduleType] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None
    items: Optional[list[TemplateItemIn]] = Field(default=None, min_length=1)


class TemplateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    agency_id: str
    name: str
    description: Optional[str]
    schedule_type: ScheduleType
    is_default: bool
    is_active: bool
    version: int
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    items: list[TemplateItemOut]
