"""Identity: password hashing, signed session tokens and the owner role gate."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict

from canteen.config import settings
from canteen.errors import Forbidden, Unauthorized
from canteen.models import User, utcnow

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

_bearer = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject_id: int
    role: str

    @property
    def is_owner(self) -> bool:
        return self.role == "owner"


def require_owner(principal: Principal) -> None:
    if not principal.is_owner:
        logger.warning("owner-only operation refused for user %s", principal.subject_id)
        raise Forbidden()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def issue_token(user: User) -> str:
    issued_at = utcnow()
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.jwt_expiry_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Principal:
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
        return Principal(subject_id=int(claims["sub"]), role=claims["role"])
    except (jwt.PyJWTError, KeyError, ValueError) as exc:
        raise Unauthorized() from exc


def current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No token, authorization denied")
    return decode_token(credentials.credentials)


def owner_principal(principal: Principal = Depends(current_principal)) -> Principal:
    require_owner(principal)
    return principal
