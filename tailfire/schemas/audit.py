from __future__ import annotations
from pydantic import BaseModel, ConfigDict
from typing import Any, Optional
from datetime import datetime

from tailfire.infra.models import AuditAction, AuditEntityType


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    entity_type: AuditEntityType
    entity_id: int
    action: AuditAction
    old_values: Optional[dict[str, Any]]
    new_values: Optional[dict[str, Any]]
    performed_by: str
    performed_at: datetime
    ip_address: Optional[str]
    user_agent: Optional[str]
