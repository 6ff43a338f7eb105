# shopbill/models/invoice.py
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopbill.db import Base
from shopbill.utils.enums import InvoiceStatus, GstType
from shopbill.utils.money import round2, sum2


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        # номер накладной уникален в пределах магазина
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), index=True)

    invoice_number: Mapped[str] = mapped_column(String(40))
    invoice_date: Mapped[date] = mapped_column(Date, index=True)
    # draft | sent | paid
    status: Mapped[str] = mapped_column(String(16), default=InvoiceStatus.DRAFT.value, index=True)
    gst_type: Mapped[str] = mapped_column(String(8), default=GstType.INTRA.value)
    rough_bill_ref: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    tax_percent: Mapped[Decimal] = mapped_column(Numeric(7, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")
    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem", back_populates="invoice", cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payments: Mapped[List["Payment"]] = relationship(
        "Payment", back_populates="invoice", cascade="all, delete-orphan",
        order_by="[Payment.paid_at, Payment.id]",
    )

    @property
    def balance(self) -> Decimal:
        return round2((self.total or 0) - (self.amount_paid or 0))

    # Хелпер: пересчитать итоги по строкам
    def recompute_totals(self, tenant_tax_percent: Decimal = Decimal("0")):
        self.subtotal = sum2(x.amount for x in self.items)
        self.discount_total = sum2(x.discount_amount for x in self.items)
        self.tax_amount = sum2(x.cgst_amount + x.sgst_amount + x.igst_amount for x in self.items)
        self.total = round2(self.subtotal + self.tax_amount)
        if self.subtotal > 0:
            self.tax_percent = round2(self.tax_amount / self.subtotal * 100)
        else:
            self.tax_percent = round2(tenant_tax_percent)


# Строки накладной
class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[Optional[int]] = mapped_column(ForeignKey("products.id"), nullable=True, index=True)

    description: Mapped[str] = mapped_column(String(500))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    # скидка по строке: flat | percent | NULL
    discount_type: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    # себестоимость на момент продажи
    cost_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    cost_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    tax_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    gst_type: Mapped[str] = mapped_column(String(8), default=GstType.INTRA.value)
    cgst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    sgst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    igst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    hsn_sac_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # снимок атрибутов товара (только чтение в накладной)
    company: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    ram_storage: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    imei: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")
    product = relationship("Product")


class Payment(Base):
    """Оплата от покупателя по накладной."""
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    payment_method: Mapped[str] = mapped_column(String(20))
    reference: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    paid_at: Mapped[date] = mapped_column(Date, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="payments")


Index("ix_invoices_tenant_status_date", Invoice.tenant_id, Invoice.status, Invoice.invoice_date)
