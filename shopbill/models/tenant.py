# shopbill/models/tenant.py
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopbill.db import Base
from shopbill.utils.enums import UserRole, PageSize


class Tenant(Base):
    """Магазин (аккаунт). Все бизнес-строки ссылаются на него через tenant_id."""
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(500))
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)

    currency: Mapped[str] = mapped_column(String(10), default="INR")
    currency_symbol: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    gstin: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    tax_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)

    # Нумерация документов
    invoice_prefix: Mapped[str] = mapped_column(String(20), default="INV-")
    invoice_next_number: Mapped[int] = mapped_column(Integer, default=1)
    purchase_bill_prefix: Mapped[str] = mapped_column(String(20), default="PB-")
    purchase_bill_next_number: Mapped[int] = mapped_column(Integer, default=1)

    invoice_header_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invoice_footer_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invoice_page_size: Mapped[str] = mapped_column(String(10), default=PageSize.A4.value)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    users: Mapped[List["User"]] = relationship("User", back_populates="tenant")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    # id пользователя у провайдера авторизации (claim "sub")
    auth_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    email: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default=UserRole.OWNER.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="users")
