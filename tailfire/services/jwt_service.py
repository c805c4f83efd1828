from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt

from tailfire.config import settings


def create_access_token(*, sub: str, agency_id: str, role: str, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_EXPIRES_MINUTES
    payload = {
        "sub": sub,               # user id (string)
        "agency_id": agency_id,
        "role": role,             # admin/agent
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
