# shopbill/services/tenants.py
import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from shopbill.models import Tenant, User
from shopbill.schemas import SettingsUpdate, SignupComplete
from shopbill.utils.enums import UserRole
from shopbill.utils.serializers import row_to_dict
from shopbill.utils.text import slugify, unique_slug

logger = logging.getLogger(__name__)

TENANT_FIELDS = (
    "id", "name", "slug", "currency", "currency_symbol", "gstin", "tax_percent",
    "invoice_prefix", "invoice_next_number", "purchase_bill_prefix", "purchase_bill_next_number",
    "invoice_header_note", "invoice_footer_note", "invoice_page_size",
)


def complete_signup(db: Session, auth_id: str, token_email: str, data: SignupComplete) -> dict:
    """Первый вход после регистрации: создаёт магазин и пользователя-владельца."""
    email = (token_email or "").strip() or data.email
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")
    if not data.shop_name:
        raise HTTPException(status_code=400, detail="shopName is required")
    if len(data.shop_name) > 200:
        raise HTTPException(status_code=400, detail="shopName too long")

    if db.query(User.id).filter(User.auth_id == auth_id).first():
        raise HTTPException(status_code=400, detail="Already onboarded. Use login.")

    slug = slugify(data.shop_name)
    if db.query(Tenant.id).filter(Tenant.slug == slug).first():
        slug = unique_slug(slug)

    try:
        tenant = Tenant(name=data.shop_name, slug=slug)
        db.add(tenant)
        db.flush()
        user = User(auth_id=auth_id, tenant_id=tenant.id, email=email, role=UserRole.OWNER.value)
        db.add(user)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Новый магазин %s (slug=%s), владелец %s", tenant.id, tenant.slug, email)
    return {
        "tenant": {"id": tenant.id, "name": tenant.name, "slug": tenant.slug},
        "user": {"id": user.id, "email": user.email},
    }


def profile(db: Session, user_id: int, tenant_id: int) -> dict:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    tenant = db.get(Tenant, tenant_id)
    return {
        "user": {"id": user.id, "email": user.email},
        "tenant": row_to_dict(tenant, only=TENANT_FIELDS) if tenant else None,
    }


def update_settings(db: Session, tenant_id: int, data: SettingsUpdate) -> dict:
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    for field in ("tax_percent", "invoice_next_number", "purchase_bill_next_number"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be empty")

    tenant = db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    for field, value in changes.items():
        setattr(tenant, field, value)
    db.commit()
    db.refresh(tenant)
    logger.info("Настройки магазина %s обновлены: %s", tenant_id, ", ".join(sorted(changes)))
    return row_to_dict(tenant, only=TENANT_FIELDS)
