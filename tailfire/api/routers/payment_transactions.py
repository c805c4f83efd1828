from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tailfire.api.auth_deps import CurrentUser, get_current_user
from tailfire.api.deps import DBSession, http_error
from tailfire.schemas.payment_transactions import TransactionCreate, TransactionOut
from tailfire.services import payment_transactions_service as transactions

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.post("", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
):
    try:
        return transactions.create_transaction(
            db,
            agency_id=user.agency_id,
            user_id=user.id,
            item_id=payload.expected_payment_item_id,
            transaction_type=payload.transaction_type,
            amount_cents=payload.amount_cents,
            currency=payload.currency,
            payment_method=payload.payment_method,
            reference_number=payload.reference_number,
            transaction_date=payload.transaction_date,
            notes=payload.notes,
        )
    except ValueError as e:
        raise http_error(e)


@router.get("", response_model=list[TransactionOut])
def list_transactions(
    item_id: int = Query(...),
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
):
    try:
        return transactions.list_transactions(db, agency_id=user.agency_id, item_id=item_id)
    except ValueError as e:
        raise http_error(e)


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
):
    try:
        transactions.delete_transaction(db, transaction_id, agency_id=user.agency_id, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
    return None
