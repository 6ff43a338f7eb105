# shopbill/models/purchase.py
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopbill.db import Base
from shopbill.utils.enums import PurchaseBillStatus
from shopbill.utils.money import round2


class PurchaseBill(Base):
    """Приходная накладная поставщика. При оприходовании увеличивает остатки."""
    __tablename__ = "purchase_bills"
    __table_args__ = (
        UniqueConstraint("tenant_id", "bill_number", name="uq_purchase_bills_tenant_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), index=True)

    bill_number: Mapped[str] = mapped_column(String(60))
    bill_date: Mapped[date] = mapped_column(Date, index=True)
    # draft | recorded
    status: Mapped[str] = mapped_column(String(16), default=PurchaseBillStatus.DRAFT.value, index=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = relationship("Supplier")
    items: Mapped[List["PurchaseBillItem"]] = relationship(
        "PurchaseBillItem", back_populates="bill", cascade="all, delete-orphan",
        order_by="PurchaseBillItem.id",
    )
    payments: Mapped[List["PurchasePayment"]] = relationship(
        "PurchasePayment", back_populates="bill", cascade="all, delete-orphan",
        order_by="[PurchasePayment.paid_at, PurchasePayment.id]",
    )

    @property
    def balance(self) -> Decimal:
        return round2((self.total or 0) - (self.amount_paid or 0))


class PurchaseBillItem(Base):
    __tablename__ = "purchase_bill_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    purchase_bill_id: Mapped[int] = mapped_column(ForeignKey("purchase_bills.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    bill: Mapped["PurchaseBill"] = relationship("PurchaseBill", back_populates="items")
    product = relationship("Product")


class PurchasePayment(Base):
    """Оплата поставщику."""
    __tablename__ = "purchase_payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    purchase_bill_id: Mapped[int] = mapped_column(ForeignKey("purchase_bills.id", ondelete="CASCADE"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    payment_method: Mapped[str] = mapped_column(String(20))
    reference: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    paid_at: Mapped[date] = mapped_column(Date, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    bill: Mapped["PurchaseBill"] = relationship("PurchaseBill", back_populates="payments")
