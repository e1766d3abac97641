"""
Identity provider adapter.

Tokens are issued by the external auth service as HS256 JWTs whose `sub` is
the user id. Requests resolve the token to the stored user record; routes
guard on role with require_roles.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr

from config import settings
from database import DocumentStore, get_store
from exceptions import AuthenticationError, AuthorizationError
from logging_config import set_user_id

security = HTTPBearer(auto_error=False)


class AuthUser(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: str


def issue_token(user: Dict[str, Any]) -> str:
    payload = {
        "sub": str(user["id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role", "student"),
        "exp": datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRES_MIN)
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(security),
    store: DocumentStore = Depends(get_store),
) -> AuthUser:
    if creds is None:
        raise AuthenticationError("Not authenticated")
    try:
        payload = jwt.decode(creds.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    user = store.get("user", payload.get("sub", ""))
    if not user:
        raise AuthenticationError("User not found")

    set_user_id(user["id"])
    return AuthUser(id=user["id"], name=user.get("name"), email=user.get("email"), role=user.get("role", "student"))


def require_roles(roles: List[str]):
    def checker(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if user.role not in roles:
            raise AuthorizationError()
        return user
    return checker


require_admin = require_roles(["admin"])
