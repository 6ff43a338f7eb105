from enum import Enum


class UserRole(str, Enum):
    OWNER = "owner"
    STAFF = "staff"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"


# Разрешённые переходы статуса накладной
INVOICE_NEXT_STATUS = {
    InvoiceStatus.DRAFT.value: {InvoiceStatus.SENT.value},
    InvoiceStatus.SENT.value: {InvoiceStatus.PAID.value},
    InvoiceStatus.PAID.value: set(),
}


class PurchaseBillStatus(str, Enum):
    DRAFT = "draft"
    RECORDED = "recorded"


class TrackingType(str, Enum):
    QUANTITY = "quantity"
    SERIAL = "serial"
    BATCH = "batch"


class SerialStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"


class PaymentMethod(str, Enum):
    CASH = "cash"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"


class GstType(str, Enum):
    INTRA = "intra"   # CGST + SGST
    INTER = "inter"   # IGST


class DiscountType(str, Enum):
    NONE = "none"
    FLAT = "flat"
    PERCENT = "percent"


class MovementType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"


class PageSize(str, Enum):
    A4 = "A4"
    LETTER = "Letter"
