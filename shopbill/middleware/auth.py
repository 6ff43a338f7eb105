# shopbill/middleware/auth.py
"""
Авторизация API: Bearer-токен Supabase -> пользователь -> магазин.
tenant_id берётся только из таблицы users, никогда от клиента.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from shopbill import config
from shopbill.db import get_db
from shopbill.models import User
from shopbill.services import auth_provider

logger = logging.getLogger(__name__)

NOT_ONBOARDED = "User not onboarded. Complete signup first."


@dataclass
class Identity:
    auth_id: str
    email: str = ""


@dataclass
class CurrentUser:
    auth_id: str
    tenant_id: int
    user_id: int
    role: str


def get_bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header or not header.startswith("Bearer "):
        return None
    return header[7:].strip() or None


def _decode_local(token: str) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            config.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except JWTError:
        return None


def verify_token(token: str) -> Identity:
    payload = _decode_local(token) if config.SUPABASE_JWT_SECRET else None

    # нет секрета или подпись не сошлась -> спрашиваем провайдера
    if payload is None:
        try:
            user = auth_provider.fetch_user(token)
        except auth_provider.AuthProviderError:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        if not user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        payload = {"sub": user["id"], "email": user.get("email")}

    auth_id = payload.get("sub")
    if not auth_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return Identity(auth_id=str(auth_id), email=payload.get("email") or "")


def get_identity(request: Request) -> Identity:
    """Только токен, без проверки users (нужно для регистрации)."""
    token = get_bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    return verify_token(token)


def get_current_user(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> CurrentUser:
    row = db.query(User).filter(User.auth_id == identity.auth_id).first()
    if not row:
        raise HTTPException(status_code=403, detail=NOT_ONBOARDED)
    return CurrentUser(
        auth_id=identity.auth_id,
        tenant_id=row.tenant_id,
        user_id=row.id,
        role=row.role,
    )
