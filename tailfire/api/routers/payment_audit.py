from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tailfire.api.auth_deps import CurrentUser, get_current_user
from tailfire.api.deps import DBSession
from tailfire.infra.models import AuditAction, AuditEntityType
from tailfire.schemas.audit import AuditEntryOut
from tailfire.services import payment_audit_service as audit

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("", response_model=list[AuditEntryOut])
def list_audit_entries(
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
    entity_type: Optional[AuditEntityType] = Query(default=None),
    entity_id: Optional[int] = Query(default=None),
    action: Optional[AuditAction] = Query(default=None),
    date_from: Optional[datetime] = Query(default=None),
    date_to: Optional[datetime] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    return audit.list_entries(
        db,
        agency_id=user.agency_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
