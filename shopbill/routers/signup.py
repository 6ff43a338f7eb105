# shopbill/routers/signup.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shopbill.db import get_db
from shopbill.middleware.auth import Identity, get_identity
from shopbill.schemas import SignupComplete
from shopbill.services import tenants

router = APIRouter(prefix="/api/signup", tags=["signup"])


# 🆕 первый вход: магазин + владелец
@router.post("/complete", status_code=201)
def signup_complete(body: SignupComplete, db: Session = Depends(get_db),
                    identity: Identity = Depends(get_identity)):
    return tenants.complete_signup(db, identity.auth_id, identity.email, body)
