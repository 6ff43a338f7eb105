# shopbill/routers/me.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shopbill.db import get_db
from shopbill.middleware.auth import CurrentUser, get_current_user
from shopbill.schemas import SettingsUpdate
from shopbill.services import tenants

router = APIRouter(prefix="/api/me", tags=["me"])


@router.get("")
def me(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return tenants.profile(db, user.user_id, user.tenant_id)


# ⚙️ настройки магазина
@router.patch("")
def me_update(body: SettingsUpdate, db: Session = Depends(get_db),
              user: CurrentUser = Depends(get_current_user)):
    return {"tenant": tenants.update_settings(db, user.tenant_id, body)}
