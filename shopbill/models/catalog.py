# shopbill/models/catalog.py
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopbill.db import Base
from shopbill.utils.enums import TrackingType, SerialStatus


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="idx_products_tenant_sku"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(500))
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    purchase_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    # цена последней оприходованной закупки, себестоимость для строк накладных
    last_purchase_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    stock: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    # quantity | serial | batch
    tracking_type: Mapped[str] = mapped_column(String(16), default=TrackingType.QUANTITY.value)
    hsn_sac_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    tax_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    # атрибуты для магазинов электроники
    company: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    ram_storage: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    imei: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    serials: Mapped[List["ProductSerial"]] = relationship(
        "ProductSerial", back_populates="product", cascade="all, delete-orphan"
    )
    batches: Mapped[List["ProductBatch"]] = relationship(
        "ProductBatch", back_populates="product", cascade="all, delete-orphan"
    )


class ProductSerial(Base):
    """Единица товара с серийным номером (IMEI и т.п.)."""
    __tablename__ = "product_serials"
    __table_args__ = (
        UniqueConstraint("tenant_id", "serial_number", name="uq_product_serials_tenant_serial"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    serial_number: Mapped[str] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(16), default=SerialStatus.AVAILABLE.value, index=True)

    purchase_bill_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("purchase_bill_items.id", ondelete="SET NULL"), nullable=True
    )
    invoice_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("invoice_items.id", ondelete="SET NULL"), nullable=True, index=True
    )
    cost_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    product: Mapped["Product"] = relationship("Product", back_populates="serials")


class ProductBatch(Base):
    """Партия товара со сроком годности (списание FEFO)."""
    __tablename__ = "product_batches"
    __table_args__ = (
        UniqueConstraint("tenant_id", "product_id", "batch_number", name="uq_product_batches_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    batch_number: Mapped[str] = mapped_column(String(100))
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    cost_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    purchase_bill_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("purchase_bill_items.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    product: Mapped["Product"] = relationship("Product", back_populates="batches")
