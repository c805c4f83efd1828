from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tailfire.api.auth_deps import CurrentUser, get_current_user
from tailfire.api.deps import DBSession, http_error
from tailfire.schemas.payment_templates import TemplateCreate, TemplateOut, TemplateUpdate
from tailfire.services import payment_templates_service as templates

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("", response_model=list[TemplateOut])
def list_templates(
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
    include_inactive: bool = Query(default=False),
):
    return templates.list_templates(db, user.agency_id, include_inactive=include_inactive)


@router.get("/default", response_model=TemplateOut)
def get_default_template(db: Session = DBSession, user: CurrentUser = Depends(get_current_user)):
    template = templates.get_default_template(db, user.agency_id)
    if not template:
        raise HTTPException(status_code=404, detail="No default template for this agency.")
    return template


@router.get("/{template_id}", response_model=TemplateOut)
def get_template(template_id: int, db: Session = DBSession, user: CurrentUser = Depends(get_current_user)):
    try:
        return templates.get_template_or_raise(db, template_id, user.agency_id)
    except ValueError as e:
        raise http_error(e)


@router.post("", response_model=TemplateOut, status_code=201)
def create_template(
    payload: TemplateCreate,
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
):
    try:
        return templates.create_template(
            db,
            agency_id=user.agency_id,
            user_id=user.id,
            name=payload.name.strip(),
            description=payload.description,
            schedule_type=payload.schedule_type,
            is_default=payload.is_default,
            items=[i.model_dump() for i in payload.items],
        )
    except ValueError as e:
        raise http_error(e)


@router.patch("/{template_id}", response_model=TemplateOut)
def update_template(
    template_id: int,
    payload: TemplateUpdate,
    db: Session = DBSession,
    user: CurrentUser = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        return templates.update_template(
            db, template_id, agency_id=user.agency_id, user_id=user.id, changes=changes
        )
    except ValueError as e:
        raise http_error(e)


@router.delete("/{template_id}", status_code=204)
def delete_template(template_id: int, db: Session = DBSession, user: CurrentUser = Depends(get_current_user)):
    try:
        templates.delete_template(db, template_id, agency_id=user.agency_id, user_id=user.id)
    except ValueError as e:
        raise http_error(e)
    return None
