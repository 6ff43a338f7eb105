# shopbill/schemas.py
"""Тела запросов API.

SPA присылает поля то в snake_case, то в camelCase, поэтому у полей есть
альтернативные имена (AliasChoices). Необязательные текстовые поля не
валидируются по длине, а обрезаются, пустая строка превращается в None.
"""
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from shopbill.utils.dates import parse_date
from shopbill.utils.enums import (
    DiscountType, GstType, InvoiceStatus, PageSize, PaymentMethod, TrackingType,
)
from shopbill.utils.money import to_decimal
from shopbill.utils.text import clean_str


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _required_name(v) -> str:
    name = (str(v) if v is not None else "").strip()
    if not name:
        raise ValueError("name is required")
    if len(name) > 500:
        raise ValueError("name too long")
    return name


def _required_date(v) -> date:
    d = parse_date(v)
    if d is None:
        raise ValueError("must be a valid date")
    return d


def _lenient_percent(v) -> Optional[Decimal]:
    """Процент налога 0..100; всё остальное -> None (берётся ставка магазина)."""
    p = to_decimal(v)
    if p is None or p < 0 or p > 100:
        return None
    return p


def _tracking_type(v) -> str:
    tt = str(v).lower()
    if tt not in {t.value for t in TrackingType}:
        raise ValueError("tracking_type must be quantity, serial, or batch")
    return tt


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------- Покупатели / поставщики ----------

class PartyCreate(_Body):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, v):
        return _required_name(v)

    @field_validator("email", "phone", "address", mode="before")
    @classmethod
    def clean_trim(cls, v, info):
        limits = {"email": 255, "phone": 50, "address": 1000}
        return clean_str(v, limits[info.field_name])


class PartyUpdate(PartyCreate):
    name: Optional[str] = None


# ---------- Товары ----------

class ProductCreate(_Body):
    name: str
    price: Decimal = Field(ge=0)
    purchase_price: Optional[Decimal] = Field(default=None, ge=0)
    unit: Optional[str] = None
    sku: Optional[str] = None
    tracking_type: str = TrackingType.QUANTITY.value
    hsn_sac_code: Optional[str] = Field(default=None, validation_alias=_alias("hsn_sac_code", "hsnSacCode"))
    tax_percent: Optional[Decimal] = None
    company: Optional[str] = None
    ram_storage: Optional[str] = None
    imei: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, v):
        return _required_name(v)

    @field_validator("tax_percent", mode="before")
    @classmethod
    def clean_tax(cls, v):
        return _lenient_percent(v)

    @field_validator("purchase_price", mode="before")
    @classmethod
    def clean_empty_price(cls, v):
        return None if v == "" else v

    @field_validator("tracking_type", mode="before")
    @classmethod
    def clean_tracking(cls, v):
        return _tracking_type(v if v is not None else TrackingType.QUANTITY.value)

    @field_validator("unit", "sku", "hsn_sac_code", "company", "ram_storage", "imei", "color", mode="before")
    @classmethod
    def clean_trim(cls, v, info):
        limits = {"unit": 50, "sku": 100, "hsn_sac_code": 20, "company": 200,
                  "ram_storage": 100, "imei": 50, "color": 100}
        return clean_str(v, limits[info.field_name])


class ProductUpdate(ProductCreate):
    name: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    tracking_type: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("tracking_type", mode="before")
    @classmethod
    def clean_tracking(cls, v):
        # null в PATCH значит "не менять"
        return None if v is None else _tracking_type(v)


# ---------- Накладные ----------

class InvoiceItemIn(_Body):
    product_id: Optional[int] = Field(default=None, validation_alias=_alias("product_id", "productId"))
    description: str = ""
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0, validation_alias=_alias("unit_price", "unitPrice"))
    discount_type: str = Field(default=DiscountType.NONE.value,
                               validation_alias=_alias("discount_type", "discountType"))
    discount_value: Decimal = Field(default=Decimal("0"),
                                    validation_alias=_alias("discount_value", "discountValue"))

    @field_validator("product_id", mode="before")
    @classmethod
    def clean_empty_product(cls, v):
        return None if v == "" else v

    @field_validator("description", mode="before")
    @classmethod
    def clean_desc(cls, v):
        return (str(v) if v is not None else "").strip()[:500]

    @field_validator("discount_type", mode="before")
    @classmethod
    def clean_discount_type(cls, v):
        dt = str(v or DiscountType.NONE.value).lower()
        return dt if dt in {d.value for d in DiscountType} else DiscountType.NONE.value

    @field_validator("discount_value", mode="before")
    @classmethod
    def clean_discount_value(cls, v):
        d = to_decimal(v)
        return d if d is not None and d >= 0 else Decimal("0")


class _InvoiceHeader(_Body):
    customer_id: int = Field(validation_alias=_alias("customer_id", "customerId"))
    invoice_date: date = Field(validation_alias=_alias("invoice_date", "invoiceDate"))
    gst_type: str = Field(default=GstType.INTRA.value, validation_alias=_alias("gst_type", "gstType"))
    serial_ids: Dict[int, List[int]] = Field(default_factory=dict,
                                             validation_alias=_alias("serial_ids", "serialIds"))

    @field_validator("invoice_date", mode="before")
    @classmethod
    def clean_date(cls, v):
        return _required_date(v)

    @field_validator("gst_type", mode="before")
    @classmethod
    def clean_gst(cls, v):
        return GstType.INTER.value if str(v or "").lower() == GstType.INTER.value else GstType.INTRA.value


class InvoiceCreate(_InvoiceHeader):
    status: str = InvoiceStatus.DRAFT.value
    rough_bill_ref: Optional[str] = Field(default=None, validation_alias=_alias("rough_bill_ref", "roughBillRef"))
    items: List[InvoiceItemIn] = Field(min_length=1)

    @field_validator("status", mode="before")
    @classmethod
    def clean_status(cls, v):
        st = str(v or InvoiceStatus.DRAFT.value).lower()
        if st not in {s.value for s in InvoiceStatus}:
            raise ValueError("status must be draft, sent, or paid")
        return st

    @field_validator("rough_bill_ref", mode="before")
    @classmethod
    def clean_ref(cls, v):
        return clean_str(v, 100)


class InvoiceDraftUpdate(_InvoiceHeader):
    """Полная перезапись строк черновика (PATCH с items)."""
    status: str = InvoiceStatus.DRAFT.value
    items: List[InvoiceItemIn] = Field(min_length=1)

    @field_validator("status", mode="before")
    @classmethod
    def clean_status(cls, v):
        st = str(v or InvoiceStatus.DRAFT.value).lower()
        if st not in (InvoiceStatus.DRAFT.value, InvoiceStatus.SENT.value):
            raise ValueError("status must be draft or sent when updating items")
        return st


class InvoiceStatusUpdate(_Body):
    status: str
    serial_ids: Dict[int, List[int]] = Field(default_factory=dict,
                                             validation_alias=_alias("serial_ids", "serialIds"))

    @field_validator("status", mode="before")
    @classmethod
    def clean_status(cls, v):
        st = str(v or "").lower()
        if st not in (InvoiceStatus.SENT.value, InvoiceStatus.PAID.value):
            raise ValueError("status must be sent or paid")
        return st


class CleanupDrafts(_Body):
    days: Optional[int] = None

    @field_validator("days", mode="before")
    @classmethod
    def clean_days(cls, v):
        try:
            return int(v) if v not in (None, "") else None
        except (TypeError, ValueError):
            return None


# ---------- Оплаты ----------

class PaymentIn(_Body):
    amount: Decimal = Field(gt=0)
    payment_method: str = Field(validation_alias=_alias("payment_method", "paymentMethod"))
    reference: Optional[str] = None
    paid_at: Optional[date] = Field(default=None, validation_alias=_alias("paid_at", "paidAt"))

    @field_validator("payment_method", mode="before")
    @classmethod
    def clean_method(cls, v):
        m = str(v or "").lower()
        if m not in {p.value for p in PaymentMethod}:
            raise ValueError("payment_method must be cash, upi, or bank_transfer")
        return m

    @field_validator("reference", mode="before")
    @classmethod
    def clean_ref(cls, v):
        return clean_str(v, 200)

    @field_validator("paid_at", mode="before")
    @classmethod
    def clean_paid_at(cls, v):
        # кривая дата -> сегодня (решается в сервисе)
        return parse_date(v)


# ---------- Закупки ----------

class PurchaseItemIn(_Body):
    product_id: int = Field(validation_alias=_alias("product_id", "productId"))
    quantity: Decimal = Field(gt=0)
    purchase_price: Decimal = Field(ge=0, validation_alias=_alias("purchase_price", "purchasePrice"))


class PurchaseBillCreate(_Body):
    supplier_id: int = Field(validation_alias=_alias("supplier_id", "supplierId"))
    bill_number: Optional[str] = Field(default=None, validation_alias=_alias("bill_number", "billNumber"))
    bill_date: date = Field(validation_alias=_alias("bill_date", "billDate"))
    items: List[PurchaseItemIn] = Field(min_length=1)

    @field_validator("bill_date", mode="before")
    @classmethod
    def clean_date(cls, v):
        return _required_date(v)

    @field_validator("bill_number", mode="before")
    @classmethod
    def clean_number(cls, v):
        return clean_str(v, 60)


class PurchaseBillUpdate(PurchaseBillCreate):
    bill_number: str = Field(validation_alias=_alias("bill_number", "billNumber"))

    @field_validator("bill_number", mode="before")
    @classmethod
    def clean_number(cls, v):
        num = clean_str(v, 60)
        if not num:
            raise ValueError("bill_number is required")
        return num


class BatchIn(_Body):
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None

    @field_validator("batch_number", mode="before")
    @classmethod
    def clean_number(cls, v):
        return clean_str(v, 100)

    @field_validator("expiry_date", mode="before")
    @classmethod
    def clean_expiry(cls, v):
        return parse_date(v)


class RecordBill(_Body):
    serials: Dict[int, List[str]] = Field(default_factory=dict)
    batches: Dict[int, BatchIn] = Field(default_factory=dict)


# ---------- Магазин / регистрация ----------

class SettingsUpdate(_Body):
    name: Optional[str] = None
    currency: Optional[str] = None
    currency_symbol: Optional[str] = None
    gstin: Optional[str] = None
    tax_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    invoice_prefix: Optional[str] = None
    invoice_next_number: Optional[int] = Field(default=None, ge=1)
    purchase_bill_prefix: Optional[str] = None
    purchase_bill_next_number: Optional[int] = Field(default=None, ge=1)
    invoice_header_note: Optional[str] = None
    invoice_footer_note: Optional[str] = None
    invoice_page_size: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, v):
        return _required_name(v)

    @field_validator("invoice_page_size", mode="before")
    @classmethod
    def clean_page_size(cls, v):
        sz = str(v or PageSize.A4.value).strip()
        if sz not in {p.value for p in PageSize}:
            raise ValueError("invoice_page_size must be A4 or Letter")
        return sz

    @field_validator("currency_symbol", "gstin", "invoice_header_note", "invoice_footer_note", mode="before")
    @classmethod
    def clean_trim(cls, v, info):
        limits = {"currency_symbol": 10, "gstin": 50,
                  "invoice_header_note": 2000, "invoice_footer_note": 2000}
        return clean_str(v, limits[info.field_name])

    @field_validator("currency", mode="before")
    @classmethod
    def clean_currency(cls, v):
        return clean_str(v, 10) or "INR"

    @field_validator("invoice_prefix", mode="before")
    @classmethod
    def clean_inv_prefix(cls, v):
        return clean_str(v, 20) or "INV-"

    @field_validator("purchase_bill_prefix", mode="before")
    @classmethod
    def clean_pb_prefix(cls, v):
        return clean_str(v, 20) or "PB-"


class SignupComplete(_Body):
    shop_name: str = Field(default="", validation_alias=_alias("shop_name", "shopName"))
    email: Optional[str] = None

    @field_validator("shop_name", mode="before")
    @classmethod
    def clean_shop(cls, v):
        return (str(v) if v is not None else "").strip()

    @field_validator("email", mode="before")
    @classmethod
    def clean_email(cls, v):
        return clean_str(v, 255)
