"""
Access gate.

The identity provider is external: it issues bearer tokens carrying the
caller's subject (`sub`) and `role`. Each request resolves the caller exactly
once here and hands an explicit `Caller` to the services; nothing downstream
reads identity from ambient state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import JWT_SECRET, JWT_ALGO
from app.core.exceptions import AuthError, ForbiddenError
from app.models.retailer_model import Retailer
from app.utils.database import get_db

logger = logging.getLogger(__name__)

ROLE_SUPER_ADMIN = "super_admin"
ROLE_RETAILER = "retailer"
ROLES = (ROLE_SUPER_ADMIN, ROLE_RETAILER)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    caller_id: str
    role: str
    retailer_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    @property
    def is_retailer(self) -> bool:
        return self.role == ROLE_RETAILER


def create_access_token(sub: str, role: str, expires_minutes: int = 12 * 60) -> str:
    """Issue a token the way the identity provider does (local tooling / tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(sub),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGO)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.PyJWTError as e:
        logger.warning("Rejected bearer token: %s", e)
        raise AuthError("Not authenticated")


def get_current_caller(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: Session = Depends(get_db),
) -> Caller:
    if credentials is None or not credentials.credentials:
        raise AuthError("Not authenticated")

    claims = decode_access_token(credentials.credentials)
    sub = claims.get("sub")
    role = claims.get("role")
    if not sub:
        raise AuthError("Not authenticated")
    if role not in ROLES:
        raise ForbiddenError("Forbidden")

    if role == ROLE_RETAILER:
        retailer = db.query(Retailer).filter(Retailer.auth_user_id == sub).first()
        if not retailer:
            raise ForbiddenError("Retailer profile not found")
        return Caller(caller_id=sub, role=role, retailer_id=retailer.retailer_id)

    return Caller(caller_id=sub, role=role)


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_admin:
        raise ForbiddenError("Forbidden")
    return caller


def require_retailer(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_retailer:
        raise ForbiddenError("Only retailers can submit payment requests")
    return caller


def ensure_customer_access(caller: Caller, customer) -> None:
    """Admin sees every customer; a retailer only those assigned to them."""
    if caller.is_admin:
        return
    if caller.is_retailer and customer.retailer_id == caller.retailer_id:
        return
    raise ForbiddenError("Customer is not assigned to this retailer")
