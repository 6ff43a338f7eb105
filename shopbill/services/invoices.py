# shopbill/services/invoices.py
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from shopbill import config
from shopbill.models import Customer, Invoice, InvoiceItem, Payment, Product, ProductSerial, Tenant
from shopbill.schemas import (
    InvoiceCreate, InvoiceDraftUpdate, InvoiceItemIn, InvoiceStatusUpdate, PaymentIn,
)
from shopbill.services.numbering import lock_tenant, next_invoice_number, run_numbered
from shopbill.services.stock import deduct_stock
from shopbill.utils.dates import days_ago
from shopbill.utils.enums import INVOICE_NEXT_STATUS, DiscountType, GstType, InvoiceStatus
from shopbill.utils.money import ZERO, round2

logger = logging.getLogger(__name__)

STOCK_OUT_STATUSES = (InvoiceStatus.SENT.value, InvoiceStatus.PAID.value)


def compute_line(item: InvoiceItemIn, index: int, product: Optional[Product],
                 tenant_tax_percent, gst_type: str) -> dict:
    """Считает строку накладной: скидка, налог (CGST/SGST или IGST), себестоимость."""
    description = item.description or (product.name if product else "")
    if not description:
        raise HTTPException(status_code=400, detail=f"items[{index}].description is required")

    qty = Decimal(item.quantity)
    unit_price = Decimal(item.unit_price)
    base = round2(qty * unit_price)

    discount_type = item.discount_type
    discount_value = Decimal(item.discount_value or 0)
    if discount_type == DiscountType.FLAT.value:
        discount = min(base, round2(discount_value))
    elif discount_type == DiscountType.PERCENT.value:
        discount = min(base, round2(base * discount_value / 100))
    else:
        discount_type, discount_value, discount = None, ZERO, ZERO
    amount = round2(base - discount)

    if product is not None and product.tax_percent is not None:
        tax_percent = Decimal(product.tax_percent)
    else:
        tax_percent = Decimal(tenant_tax_percent or 0)
    tax = round2(amount * tax_percent / 100)
    if gst_type == GstType.INTER.value:
        cgst, sgst, igst = ZERO, ZERO, tax
    else:
        cgst = round2(tax / 2)
        sgst = round2(tax - cgst)
        igst = ZERO

    cost_price = round2(product.last_purchase_price) if product is not None and product.last_purchase_price else ZERO

    return dict(
        product_id=product.id if product is not None else None,
        description=description[:500],
        quantity=round2(qty),
        unit_price=round2(unit_price),
        amount=amount,
        discount_type=discount_type,
        discount_value=round2(discount_value),
        discount_amount=discount,
        cost_price=cost_price,
        cost_amount=round2(qty * cost_price),
        tax_percent=round2(tax_percent),
        gst_type=gst_type,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        # снимок атрибутов товара
        hsn_sac_code=(product.hsn_sac_code or None) if product is not None else None,
        company=(product.company or None) if product is not None else None,
        ram_storage=(product.ram_storage or None) if product is not None else None,
        imei=(product.imei or None) if product is not None else None,
        color=(product.color or None) if product is not None else None,
    )


def build_items(db: Session, tenant: Tenant, items: List[InvoiceItemIn], gst_type: str) -> List[InvoiceItem]:
    product_ids = {it.product_id for it in items if it.product_id}
    products: Dict[int, Product] = {}
    if product_ids:
        rows = db.query(Product).filter(Product.tenant_id == tenant.id, Product.id.in_(product_ids)).all()
        products = {p.id: p for p in rows}

    result = []
    for i, it in enumerate(items):
        product = None
        if it.product_id:
            product = products.get(it.product_id)
            if product is None:
                raise HTTPException(status_code=400, detail=f"items[{i}].productId not found")
        result.append(InvoiceItem(**compute_line(it, i, product, tenant.tax_percent, gst_type)))
    return result


def _tenant_customer(db: Session, tenant_id: int, customer_id: int) -> Customer:
    customer = (
        db.query(Customer)
        .filter(Customer.id == customer_id, Customer.tenant_id == tenant_id)
        .first()
    )
    if not customer:
        raise HTTPException(status_code=400, detail="Customer not found or does not belong to your shop")
    return customer


def get_invoice(db: Session, tenant_id: int, invoice_id: int) -> Invoice:
    inv = db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id).first()
    if not inv:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return inv


def serials_by_item(db: Session, tenant_id: int, inv: Invoice) -> Dict[int, list]:
    item_ids = [it.id for it in inv.items]
    if not item_ids:
        return {}
    rows = (
        db.query(ProductSerial)
        .filter(ProductSerial.tenant_id == tenant_id, ProductSerial.invoice_item_id.in_(item_ids))
        .order_by(ProductSerial.created_at, ProductSerial.id)
        .all()
    )
    out: Dict[int, list] = {}
    for s in rows:
        out.setdefault(s.invoice_item_id, []).append({"id": s.id, "serial_number": s.serial_number})
    return out


def list_invoices(db: Session, tenant_id: int, status: Optional[str] = None,
                  customer_id: Optional[int] = None, limit: int = 50, offset: int = 0):
    q = db.query(Invoice).filter(Invoice.tenant_id == tenant_id)
    if status:
        q = q.filter(Invoice.status == status)
    if customer_id:
        q = q.filter(Invoice.customer_id == customer_id)
    total = q.count()
    rows = q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def create_invoice(db: Session, tenant_id: int, data: InvoiceCreate) -> Invoice:
    """Накладная + строки + счётчик номеров (+ списание остатков для sent/paid) одной транзакцией."""
    _tenant_customer(db, tenant_id, data.customer_id)

    def attempt() -> int:
        tenant = lock_tenant(db, tenant_id)
        number, n = next_invoice_number(db, tenant)
        inv = Invoice(
            tenant_id=tenant_id,
            customer_id=data.customer_id,
            invoice_number=number,
            invoice_date=data.invoice_date,
            status=data.status,
            gst_type=data.gst_type,
            rough_bill_ref=data.rough_bill_ref,
            amount_paid=ZERO,
        )
        inv.items = build_items(db, tenant, data.items, data.gst_type)
        inv.recompute_totals(tenant.tax_percent)
        db.add(inv)
        db.flush()
        tenant.invoice_next_number = n + 1
        if inv.status in STOCK_OUT_STATUSES:
            deduct_stock(db, tenant_id, inv, data.serial_ids)
        return inv.id

    invoice_id = run_numbered(db, attempt, "invoice_number", "uq_invoices_tenant_number")
    inv = get_invoice(db, tenant_id, invoice_id)
    logger.info("Создана накладная %s (tenant=%s, status=%s, total=%s)",
                inv.invoice_number, tenant_id, inv.status, inv.total)
    return inv


def update_invoice_items(db: Session, tenant_id: int, invoice_id: int, data: InvoiceDraftUpdate) -> Invoice:
    """Полная перезапись строк неоплаченной накладной; переход в sent списывает остатки."""
    inv = get_invoice(db, tenant_id, invoice_id)
    if inv.status == InvoiceStatus.PAID.value:
        raise HTTPException(status_code=400, detail="Paid invoices cannot be edited")
    _tenant_customer(db, tenant_id, data.customer_id)
    tenant = db.get(Tenant, tenant_id)

    try:
        previous = inv.status
        inv.items = build_items(db, tenant, data.items, data.gst_type)
        inv.customer_id = data.customer_id
        inv.invoice_date = data.invoice_date
        inv.gst_type = data.gst_type
        inv.status = data.status
        inv.recompute_totals(tenant.tax_percent)
        db.flush()
        if previous == InvoiceStatus.DRAFT.value and inv.status == InvoiceStatus.SENT.value:
            deduct_stock(db, tenant_id, inv, data.serial_ids)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(inv)
    return inv


def change_status(db: Session, tenant_id: int, invoice_id: int, data: InvoiceStatusUpdate) -> Invoice:
    inv = get_invoice(db, tenant_id, invoice_id)
    allowed = INVOICE_NEXT_STATUS.get(inv.status, set())
    if data.status not in allowed:
        raise HTTPException(status_code=400, detail=f"Cannot change status from {inv.status} to {data.status}")

    try:
        previous = inv.status
        inv.status = data.status
        if previous == InvoiceStatus.DRAFT.value:
            deduct_stock(db, tenant_id, inv, data.serial_ids)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(inv)
    logger.info("Накладная %s: %s -> %s", inv.invoice_number, previous, inv.status)
    return inv


def delete_invoice(db: Session, tenant_id: int, invoice_id: int):
    inv = get_invoice(db, tenant_id, invoice_id)
    if inv.status == InvoiceStatus.PAID.value:
        raise HTTPException(status_code=400, detail="Paid invoices cannot be deleted")
    db.delete(inv)
    db.commit()


def cleanup_drafts(db: Session, tenant_id: int, days: Optional[int] = None) -> int:
    """Удаляет черновики старше N дней (по умолчанию DRAFT_RETENTION_DAYS, минимум 1)."""
    days = max(1, days or config.DRAFT_RETENTION_DAYS)
    cutoff = days_ago(days)
    drafts = (
        db.query(Invoice)
        .filter(
            Invoice.tenant_id == tenant_id,
            Invoice.status == InvoiceStatus.DRAFT.value,
            Invoice.created_at < cutoff,
        )
        .all()
    )
    for inv in drafts:
        db.delete(inv)
    db.commit()
    if drafts:
        logger.info("Удалено черновиков: %s (tenant=%s, старше %s дн.)", len(drafts), tenant_id, days)
    return len(drafts)


# ---------- Оплаты ----------

def recompute_amount_paid(db: Session, inv: Invoice):
    """amount_paid = сумма оплат; статус paid, если оплачено не меньше итога, иначе sent."""
    paid = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(Payment.invoice_id == inv.id).scalar()
    inv.amount_paid = round2(paid)
    inv.status = InvoiceStatus.PAID.value if inv.amount_paid >= round2(inv.total) else InvoiceStatus.SENT.value


def add_payment(db: Session, tenant_id: int, invoice_id: int, data: PaymentIn) -> Payment:
    inv = get_invoice(db, tenant_id, invoice_id)
    if inv.status == InvoiceStatus.DRAFT.value:
        raise HTTPException(status_code=400, detail="Cannot record payment on a draft invoice")
    amount = round2(data.amount)
    balance = inv.balance
    if amount > balance:
        raise HTTPException(status_code=400, detail=f"Amount exceeds balance due ({balance})")

    try:
        payment = Payment(
            tenant_id=tenant_id,
            invoice_id=inv.id,
            amount=amount,
            payment_method=data.payment_method,
            reference=data.reference,
            paid_at=data.paid_at or date.today(),
        )
        db.add(payment)
        db.flush()
        recompute_amount_paid(db, inv)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(payment)
    logger.info("Оплата %s по накладной %s (%s)", amount, inv.invoice_number, data.payment_method)
    return payment


def delete_payment(db: Session, tenant_id: int, invoice_id: int, payment_id: int):
    payment = (
        db.query(Payment)
        .filter(Payment.id == payment_id, Payment.invoice_id == invoice_id, Payment.tenant_id == tenant_id)
        .first()
    )
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    inv = get_invoice(db, tenant_id, invoice_id)
    try:
        db.delete(payment)
        db.flush()
        recompute_amount_paid(db, inv)
        db.commit()
    except Exception:
        db.rollback()
        raise

