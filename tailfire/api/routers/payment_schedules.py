from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tailfire.api.auth_deps import ADMIN, CurrentUser, get_current_user, require_roles
from tailfire.api.deps import DBSession, Rules, http_error
from tailfire.schemas.payment_schedules import (
    ApplyTemplateFailure,
    ApplyTemplateIn,
    ApplyTemplateOut,
    CalculateIn,
    CalculatedItemOut,
    ExpectedItemOut,
    ExpectedItemUpdate,
    ScheduleConfigCreate,
    ScheduleConfigOut,
    ScheduleConfigUpdate,
    UnlockIn,
    ValidateIn,
    ValidationOut,
)
from tailfire.services import payment_schedules_service as schedules
from tailfire.services.schedule_calculator import calculate_schedule
from tailfire.services.schedule_types import (
    ApplyTemplateRequest,
    DepositType,
    FixedAmount,
    Percentage,
    ResolvedItem,
    TicoRules,
)
from tailfire.services.tico_validator import validate_schedule

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_current_user)])


def _config_payload(payload) -> dict:
    data = payload.model_dump(exclude_unset=True)
    if "expected_payment_items" in data and data["expected_payment_items"] is None:
        data.pop("expected_payment_items")
    return data


# calculations (no persistence)
@router.post("/calculate", response_model=list[CalculatedItemOut])
def calculate(payload: CalculateIn, rules: TicoRules = Rules):
    deposit = None
    if payload.deposit_type == DepositType.PERCENTAGE and payload.deposit_percentage is not None:
        deposit = Percentage(payload.deposit_percentage)
    elif payload.deposit_type == DepositType.FIXED_AMOUNT and payload.deposit_amount_cents is not None:
        deposit = FixedAmount(payload.deposit_amount_cents)

    try:
        items = calculate_schedule(
            payload.total_amount_cents,
            payload.schedule_type,
            deposit=deposit,
            installment_count=payload.installment_count,
            rules=rules,
        )
    except ValueError as e:
        raise http_error(e)
    return [
        CalculatedItemOut(payment_name=i.payment_name, amount_cents=i.amount_cents, sequence_order=i.sequence_order)
        for i in items
    ]


@router.post("/validate", response_model=ValidationOut)
def validate(payload: ValidateIn, rules: TicoRules = Rules):
    items = [
        ResolvedItem(
            payment_name=i.payment_name,
            expected_amount_cents=i.expected_amount_cents,
            due_date=i.due_date,
            sequence_order=i.sequence_order,
        )
        for i in payload.items
    ]
    try:
        result = validate_schedule(items, payload.total_amount_cents, payload.departure_date, rules=rules)
    except ValueError as e:
        raise http_error(e)
    return result.to_dict()


# config per activity pricing
@router.get("/pricing/{pricing_id}", response_model=ScheduleConfigOut)
def get_config(pricing_id: int, db: Session = DBSession, user: CurrentUser = Depends(get_current_user)):
    try:
        return schedules.get_config_or_raise(db, pricing_id, user.agency_id)
    except ValueError as e:
        raise http_error(e)


@router.post("/pricing/{pricing_id}", response_model=ScheduleConfigOut, status_code=201)
def create_config(
    pricing_id: int,
    payload: ScheduleConfigCreate,
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
    rules: TicoRules = Rules,
):
    data = payload.model_dump()
    try:
        return schedules.create_config(
            db,
            pricing_id,
            agency_id=user.agency_id,
            user_id=user.id,
            rules=rules,
            **data,
        )
    except ValueError as e:
        raise http_error(e)


@router.patch("/pricing/{pricing_id}", response_model=ScheduleConfigOut)
def update_config(
    pricing_id: int,
    payload: ScheduleConfigUpdate,
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
    rules: TicoRules = Rules,
):
    try:
        return schedules.update_config(
            db,
            pricing_id,
            agency_id=user.agency_id,
            user_id=user.id,
            changes=_config_payload(payload),
            rules=rules,
        )
    except ValueError as e:
        raise http_error(e)


@router.delete("/pricing/{pricing_id}", status_code=204)
def delete_config(pricing_id: int, db: Session = DBSession, user: CurrentUser = Depends(get_current_user)):
    try:
        schedules.delete_config(db, pricing_id, agency_id=user.agency_id, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
    return None


@router.post(
    "/pricing/{pricing_id}/apply-template",
    response_model=ApplyTemplateOut,
    responses={422: {"model": ApplyTemplateFailure}},
)
def apply_template(
    pricing_id: int,
    payload: ApplyTemplateIn,
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
    rules: TicoRules = Rules,
):
    request = ApplyTemplateRequest(
        total_amount_cents=payload.total_amount_cents,
        departure_date=payload.departure_date,
        booking_date=payload.booking_date,
        currency=payload.currency,
    )
    try:
        outcome = schedules.apply_template(
            db,
            pricing_id,
            agency_id=user.agency_id,
            user_id=user.id,
            template_id=payload.template_id,
            request=request,
            rules=rules,
        )
    except ValueError as e:
        raise http_error(e)

    validation = outcome.validation.to_dict()
    if not outcome.validation.is_valid:
        failure = ApplyTemplateFailure(
            message="Payment schedule does not comply with TICO regulations",
            errors=validation["errors"],
            warnings=validation["warnings"],
        )
        return JSONResponse(status_code=422, content=failure.model_dump())

    config = ScheduleConfigOut.model_validate(outcome.persisted)
    return ApplyTemplateOut(
        config=config,
        items=config.items,
        template_id=outcome.template_id,
        template_version=outcome.template_version,
        validation=ValidationOut.model_validate(validation),
    )


# items
@router.patch("/items/{item_id}", response_model=ExpectedItemOut)
def update_item(
    item_id: int,
    payload: ExpectedItemUpdate,
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
):
    try:
        return schedules.update_item(
            db,
            item_id,
            agency_id=user.agency_id,
            user_id=user.id,
            changes=payload.model_dump(exclude_unset=True),
        )
    except ValueError as e:
        raise http_error(e)


@router.post("/items/{item_id}/lock", response_model=ExpectedItemOut)
def lock_item(item_id: int, db: Session = DBSession, user: CurrentUser = Depends(get_current_user)):
    try:
        item = schedules.get_item_or_raise(db, item_id, user.agency_id)
        return schedules.lock_item(db, item, user_id=user.id)
    except ValueError as e:
        raise http_error(e)


@router.post("/items/{item_id}/unlock", response_model=ExpectedItemOut)
def unlock_item(
    item_id: int,
    payload: UnlockIn,
    db: Session = DBSession,
    user: CurrentUser = Depends(require_roles(ADMIN)),
):
    try:
        return schedules.unlock_item(
            db, item_id, agency_id=user.agency_id, user_id=user.id, reason=payload.reason
        )
    except ValueError as e:
        raise http_error(e)
