# shopbill/services/purchase_bills.py
"""
Закупки: черновик приходной накладной -> оприходование (recorded).
Оприходование увеличивает остатки, заводит серийники/партии, пишет движения
и подтягивает себестоимость в строки накладных, где она была нулевой.
Всё это одна транзакция: ошибка на любом товаре откатывает весь приход.
"""
import logging
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopbill.models import (
    Invoice, InvoiceItem, Product, ProductBatch, ProductSerial,
    PurchaseBill, PurchaseBillItem, PurchasePayment, Supplier,
)
from shopbill.schemas import PaymentIn, PurchaseBillCreate, PurchaseBillUpdate, PurchaseItemIn, RecordBill
from shopbill.services.numbering import is_number_conflict, lock_tenant, next_bill_number, run_numbered
from shopbill.services.stock import REF_PURCHASE_BILL, add_movement
from shopbill.utils.enums import MovementType, PurchaseBillStatus, SerialStatus, TrackingType
from shopbill.utils.money import ZERO, round2, sum2

logger = logging.getLogger(__name__)

DUPLICATE_NUMBER = "Bill number already exists for this tenant"
NUMBER_MARKERS = ("bill_number", "uq_purchase_bills_tenant_number")


def get_bill(db: Session, tenant_id: int, bill_id: int) -> PurchaseBill:
    bill = db.query(PurchaseBill).filter(PurchaseBill.id == bill_id, PurchaseBill.tenant_id == tenant_id).first()
    if not bill:
        raise HTTPException(status_code=404, detail="Purchase bill not found")
    return bill


def _check_supplier(db: Session, tenant_id: int, supplier_id: int):
    exists = db.query(Supplier.id).filter(Supplier.id == supplier_id, Supplier.tenant_id == tenant_id).first()
    if not exists:
        raise HTTPException(status_code=400, detail="Supplier not found or does not belong to your shop")


def _build_items(db: Session, tenant_id: int, items: List[PurchaseItemIn]) -> List[PurchaseBillItem]:
    product_ids = {it.product_id for it in items}
    found = {
        pid for (pid,) in db.query(Product.id)
        .filter(Product.tenant_id == tenant_id, Product.id.in_(product_ids))
        .all()
    }
    if found != product_ids:
        raise HTTPException(status_code=400, detail="All products must belong to your shop")
    return [
        PurchaseBillItem(
            product_id=it.product_id,
            quantity=round2(it.quantity),
            purchase_price=round2(it.purchase_price),
            amount=round2(Decimal(it.quantity) * Decimal(it.purchase_price)),
        )
        for it in items
    ]


def _number_taken(db: Session, tenant_id: int, number: str, exclude_id: Optional[int] = None) -> bool:
    q = db.query(PurchaseBill.id).filter(PurchaseBill.tenant_id == tenant_id, PurchaseBill.bill_number == number)
    if exclude_id:
        q = q.filter(PurchaseBill.id != exclude_id)
    return q.first() is not None


def _save_with_manual_number(db: Session, work):
    """Номер задан вручную: повторять бессмысленно, конфликт -> 400."""
    try:
        result = work()
        db.commit()
        return result
    except IntegrityError as e:
        db.rollback()
        if is_number_conflict(e, *NUMBER_MARKERS):
            raise HTTPException(status_code=400, detail=DUPLICATE_NUMBER)
        raise
    except Exception:
        db.rollback()
        raise


def list_bills(db: Session, tenant_id: int, supplier_id: Optional[int] = None,
               status: Optional[str] = None, limit: int = 50, offset: int = 0):
    q = db.query(PurchaseBill).filter(PurchaseBill.tenant_id == tenant_id)
    if supplier_id:
        q = q.filter(PurchaseBill.supplier_id == supplier_id)
    if status:
        q = q.filter(PurchaseBill.status == status)
    total = q.count()
    rows = q.order_by(PurchaseBill.bill_date.desc(), PurchaseBill.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def create_bill(db: Session, tenant_id: int, data: PurchaseBillCreate) -> PurchaseBill:
    _check_supplier(db, tenant_id, data.supplier_id)
    manual = data.bill_number
    if manual and _number_taken(db, tenant_id, manual):
        raise HTTPException(status_code=400, detail=DUPLICATE_NUMBER)

    def attempt() -> int:
        tenant = lock_tenant(db, tenant_id)
        n = None
        number = manual
        if not number:
            number, n = next_bill_number(db, tenant)
        bill = PurchaseBill(
            tenant_id=tenant_id,
            supplier_id=data.supplier_id,
            bill_number=number,
            bill_date=data.bill_date,
            status=PurchaseBillStatus.DRAFT.value,
            amount_paid=ZERO,
        )
        bill.items = _build_items(db, tenant_id, data.items)
        bill.subtotal = sum2(it.amount for it in bill.items)
        bill.total = bill.subtotal
        db.add(bill)
        db.flush()
        if n is not None:
            tenant.purchase_bill_next_number = n + 1
        return bill.id

    if manual:
        bill_id = _save_with_manual_number(db, attempt)
    else:
        bill_id = run_numbered(db, attempt, *NUMBER_MARKERS)

    bill = get_bill(db, tenant_id, bill_id)
    logger.info("Создан черновик закупки %s (tenant=%s, total=%s)", bill.bill_number, tenant_id, bill.total)
    return bill


def update_bill(db: Session, tenant_id: int, bill_id: int, data: PurchaseBillUpdate) -> PurchaseBill:
    bill = get_bill(db, tenant_id, bill_id)
    if bill.status != PurchaseBillStatus.DRAFT.value:
        raise HTTPException(status_code=400, detail="Only draft purchase bills can be edited")
    _check_supplier(db, tenant_id, data.supplier_id)
    if _number_taken(db, tenant_id, data.bill_number, exclude_id=bill.id):
        raise HTTPException(status_code=400, detail=DUPLICATE_NUMBER)

    def work():
        bill.supplier_id = data.supplier_id
        bill.bill_number = data.bill_number
        bill.bill_date = data.bill_date
        bill.items = _build_items(db, tenant_id, data.items)
        bill.subtotal = sum2(it.amount for it in bill.items)
        bill.total = bill.subtotal
        db.flush()

    _save_with_manual_number(db, work)
    db.refresh(bill)
    return bill


def delete_bill(db: Session, tenant_id: int, bill_id: int):
    bill = get_bill(db, tenant_id, bill_id)
    if bill.status != PurchaseBillStatus.DRAFT.value:
        raise HTTPException(status_code=400, detail="Only draft purchase bills can be deleted")
    db.delete(bill)
    db.commit()


def bill_extras(db: Session, tenant_id: int, bill: PurchaseBill) -> Dict[str, Dict[int, list]]:
    """Серийники и партии, заведённые по строкам накладной."""
    item_ids = [it.id for it in bill.items]
    serials: Dict[int, list] = {}
    batches: Dict[int, list] = {}
    if not item_ids:
        return {"serials": serials, "batches": batches}
    for s in (
        db.query(ProductSerial)
        .filter(ProductSerial.tenant_id == tenant_id, ProductSerial.purchase_bill_item_id.in_(item_ids))
        .order_by(ProductSerial.created_at, ProductSerial.id)
    ):
        serials.setdefault(s.purchase_bill_item_id, []).append({"id": s.id, "serial_number": s.serial_number})
    for b in (
        db.query(ProductBatch)
        .filter(ProductBatch.tenant_id == tenant_id, ProductBatch.purchase_bill_item_id.in_(item_ids))
        .order_by(ProductBatch.created_at, ProductBatch.id)
    ):
        batches.setdefault(b.purchase_bill_item_id, []).append({
            "id": b.id,
            "batch_number": b.batch_number,
            "expiry_date": b.expiry_date.isoformat() if b.expiry_date else None,
            "quantity": float(b.quantity or 0),
        })
    return {"serials": serials, "batches": batches}


# ---------- Оприходование ----------

def aggregate_items(items) -> "OrderedDict[int, dict]":
    """По товару: суммарное количество, цена последней строки, строки-источники."""
    by_product: "OrderedDict[int, dict]" = OrderedDict()
    for it in items:
        agg = by_product.setdefault(it.product_id, {"quantity": ZERO, "purchase_price": ZERO, "items": []})
        agg["quantity"] += Decimal(it.quantity)
        agg["purchase_price"] = Decimal(it.purchase_price)
        agg["items"].append(it)
    return by_product


def _receive_serials(db: Session, tenant_id: int, bill: PurchaseBill, product: Product, agg: dict, raw: List[str]):
    qty = agg["quantity"]
    if Decimal(len(raw)) != qty:
        raise HTTPException(
            status_code=400,
            detail=f"Product requires {qty.normalize():f} serial number(s) but got {len(raw)}",
        )
    numbers = [(s or "").strip() for s in raw]
    if any(not n for n in numbers):
        raise HTTPException(status_code=400, detail="Serial number cannot be empty")
    if len({n.upper() for n in numbers}) != len(numbers):
        raise HTTPException(status_code=400, detail="Duplicate serial numbers in the same purchase")

    taken = (
        db.query(ProductSerial.serial_number)
        .filter(ProductSerial.tenant_id == tenant_id, ProductSerial.serial_number.in_(numbers))
        .first()
    )
    if taken:
        raise HTTPException(status_code=409, detail=f'Serial number "{taken[0]}" already exists')

    source_item_id = agg["items"][0].id
    for number in numbers:
        serial = ProductSerial(
            tenant_id=tenant_id,
            product_id=product.id,
            serial_number=number,
            status=SerialStatus.AVAILABLE.value,
            purchase_bill_item_id=source_item_id,
            cost_price=round2(agg["purchase_price"]),
        )
        db.add(serial)
        db.flush()
        add_movement(db, tenant_id, product.id, MovementType.PURCHASE.value, "in", 1,
                     REF_PURCHASE_BILL, bill.id, cost_price=agg["purchase_price"], serial_id=serial.id)


def _receive_batch(db: Session, tenant_id: int, bill: PurchaseBill, product: Product, agg: dict, info):
    batch_number = info.batch_number if info is not None else None
    if not batch_number:
        raise HTTPException(status_code=400, detail=f'Batch number is required for product "{product.id}"')

    batch = (
        db.query(ProductBatch)
        .filter(
            ProductBatch.tenant_id == tenant_id,
            ProductBatch.product_id == product.id,
            ProductBatch.batch_number == batch_number,
        )
        .first()
    )
    if batch:
        # партия уже есть: доливаем
        batch.quantity = round2(Decimal(batch.quantity or 0) + agg["quantity"])
        batch.cost_price = round2(agg["purchase_price"])
    else:
        batch = ProductBatch(
            tenant_id=tenant_id,
            product_id=product.id,
            batch_number=batch_number,
            expiry_date=info.expiry_date,
            quantity=round2(agg["quantity"]),
            cost_price=round2(agg["purchase_price"]),
            purchase_bill_item_id=agg["items"][0].id,
        )
        db.add(batch)
    db.flush()
    add_movement(db, tenant_id, product.id, MovementType.PURCHASE.value, "in", agg["quantity"],
                 REF_PURCHASE_BILL, bill.id, cost_price=agg["purchase_price"], batch_id=batch.id)


def backfill_costs(db: Session, tenant_id: int, product_id: int, cost_price) -> int:
    """Строки накладных магазина с нулевой себестоимостью получают новую цену закупки."""
    cost = round2(cost_price)
    if cost <= 0:
        return 0
    items = (
        db.query(InvoiceItem)
        .join(Invoice, Invoice.id == InvoiceItem.invoice_id)
        .filter(
            Invoice.tenant_id == tenant_id,
            InvoiceItem.product_id == product_id,
            InvoiceItem.cost_price == 0,
        )
        .all()
    )
    for it in items:
        it.cost_price = cost
        it.cost_amount = round2(Decimal(it.quantity) * cost)
    return len(items)


def record_bill(db: Session, tenant_id: int, bill_id: int, data: RecordBill) -> PurchaseBill:
    bill = get_bill(db, tenant_id, bill_id)
    if bill.status != PurchaseBillStatus.DRAFT.value:
        raise HTTPException(status_code=400, detail="Only draft bills can be recorded")
    if not bill.items:
        raise HTTPException(status_code=400, detail="Purchase bill has no items")

    try:
        backfilled = 0
        for product_id, agg in aggregate_items(bill.items).items():
            product = (
                db.query(Product)
                .filter(Product.id == product_id, Product.tenant_id == tenant_id)
                .with_for_update()
                .first()
            )
            if not product:
                continue

            tracking = product.tracking_type or TrackingType.QUANTITY.value
            if tracking == TrackingType.SERIAL.value:
                _receive_serials(db, tenant_id, bill, product, agg, data.serials.get(product_id, []))
            elif tracking == TrackingType.BATCH.value:
                _receive_batch(db, tenant_id, bill, product, agg, data.batches.get(product_id))
            else:
                add_movement(db, tenant_id, product.id, MovementType.PURCHASE.value, "in", agg["quantity"],
                             REF_PURCHASE_BILL, bill.id, cost_price=agg["purchase_price"])

            product.stock = round2(Decimal(product.stock or 0) + agg["quantity"])
            product.last_purchase_price = round2(agg["purchase_price"])
            backfilled += backfill_costs(db, tenant_id, product.id, agg["purchase_price"])

        bill.status = PurchaseBillStatus.RECORDED.value
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(bill)
    logger.info("Оприходована закупка %s (tenant=%s, товаров=%s, себестоимость обновлена в %s строках)",
                bill.bill_number, tenant_id, len(bill.items), backfilled)
    return bill


# ---------- Оплаты поставщику ----------

def recompute_amount_paid(db: Session, bill: PurchaseBill):
    paid = (
        db.query(func.coalesce(func.sum(PurchasePayment.amount), 0))
        .filter(PurchasePayment.purchase_bill_id == bill.id)
        .scalar()
    )
    bill.amount_paid = round2(paid)


def add_payment(db: Session, tenant_id: int, bill_id: int, data: PaymentIn) -> PurchasePayment:
    bill = get_bill(db, tenant_id, bill_id)
    amount = round2(data.amount)
    balance = bill.balance
    if amount > balance:
        raise HTTPException(status_code=400, detail=f"Amount exceeds balance due ({balance})")
    try:
        payment = PurchasePayment(
            tenant_id=tenant_id,
            purchase_bill_id=bill.id,
            amount=amount,
            payment_method=data.payment_method,
            reference=data.reference,
            paid_at=data.paid_at or date.today(),
        )
        db.add(payment)
        db.flush()
        recompute_amount_paid(db, bill)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(payment)
    return payment


def delete_payment(db: Session, tenant_id: int, bill_id: int, payment_id: int):
    payment = (
        db.query(PurchasePayment)
        .filter(
            PurchasePayment.id == payment_id,
            PurchasePayment.purchase_bill_id == bill_id,
            PurchasePayment.tenant_id == tenant_id,
        )
        .first()
    )
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    bill = get_bill(db, tenant_id, bill_id)
    try:
        db.delete(payment)
        db.flush()
        recompute_amount_paid(db, bill)
        db.commit()
    except Exception:
        db.rollback()
        raise


def supplier_ledger(db: Session, tenant_id: int, supplier_id: int) -> dict:
    """Сверка с поставщиком по оприходованным накладным."""
    bills = (
        db.query(PurchaseBill)
        .filter(
            PurchaseBill.tenant_id == tenant_id,
            PurchaseBill.supplier_id == supplier_id,
            PurchaseBill.status == PurchaseBillStatus.RECORDED.value,
        )
        .order_by(PurchaseBill.bill_date.desc(), PurchaseBill.id.desc())
        .all()
    )
    total = sum2(b.total for b in bills)
    paid = sum2(b.amount_paid for b in bills)
    return {
        "bills": bills,
        "totalPurchases": total,
        "totalPaid": paid,
        "balancePayable": round2(total - paid),
    }
