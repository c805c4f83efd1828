from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError

from tailfire.config import settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

ADMIN = "admin"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    agency_id: str
    role: str


def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    cred_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise cred_exc

    sub = payload.get("sub")
    agency_id = payload.get("agency_id")
    if not sub or not agency_id:
        raise cred_exc

    return CurrentUser(id=str(sub), agency_id=str(agency_id), role=str(payload.get("role") or "agent"))


def require_roles(*allowed: str) -> Callable:
    allowed_set = set(allowed)

    def dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed_set:
            raise HTTPException(status_code=403, detail="Insufficient permissions.")
        return user

    return dep
