from fastapi import Depends, HTTPException

from tailfire.config import settings
from tailfire.infra.db import get_db
from tailfire.services.errors import ItemLockedError, NotFoundError
from tailfire.services.schedule_types import TicoRules

DBSession = Depends(get_db)


def get_tico_rules() -> TicoRules:
    return settings.tico_rules()


Rules = Depends(get_tico_rules)


def http_error(e: ValueError) -> HTTPException:
    """Map a service error to the HTTP status the API exposes."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ItemLockedError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))
