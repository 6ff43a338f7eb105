# shopbill/services/stock.py
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import nulls_last
from sqlalchemy.orm import Session

from shopbill.models import Invoice, Product, ProductBatch, ProductSerial, StockMovement
from shopbill.utils.enums import MovementType, SerialStatus, TrackingType
from shopbill.utils.money import ZERO, round2

logger = logging.getLogger(__name__)

REF_INVOICE = "invoice"
REF_PURCHASE_BILL = "purchase_bill"


def add_movement(
    db: Session,
    tenant_id: int,
    product_id: int,
    movement_type: str,
    direction: str,
    quantity,
    reference_type: str,
    reference_id: int,
    cost_price=ZERO,
    serial_id: Optional[int] = None,
    batch_id: Optional[int] = None,
) -> StockMovement:
    mv = StockMovement(
        tenant_id=tenant_id,
        product_id=product_id,
        movement_type=movement_type,
        direction=direction,
        quantity=round2(quantity),
        reference_type=reference_type,
        reference_id=reference_id,
        serial_id=serial_id,
        batch_id=batch_id,
        cost_price=round2(cost_price or 0),
    )
    db.add(mv)
    return mv


def _sell_serials(db: Session, tenant_id: int, invoice: Invoice, item, qty: Decimal,
                  chosen: List[int], consumed: Dict[int, int]):
    """Серийный товар: сначала выбранные серийники, остаток добирается самыми старыми свободными."""
    need = int(qty)
    start = consumed.get(item.product_id, 0)
    picked = chosen[start:start + need]
    consumed[item.product_id] = start + len(picked)

    serials = []
    if picked:
        rows = (
            db.query(ProductSerial)
            .filter(
                ProductSerial.tenant_id == tenant_id,
                ProductSerial.product_id == item.product_id,
                ProductSerial.id.in_(picked),
                ProductSerial.status == SerialStatus.AVAILABLE.value,
            )
            .all()
        )
        by_id = {s.id: s for s in rows}
        serials = [by_id[sid] for sid in picked if sid in by_id]

    if len(serials) < need:
        taken = [s.id for s in serials]
        q = db.query(ProductSerial).filter(
            ProductSerial.tenant_id == tenant_id,
            ProductSerial.product_id == item.product_id,
            ProductSerial.status == SerialStatus.AVAILABLE.value,
        )
        if taken:
            q = q.filter(ProductSerial.id.notin_(taken))
        serials += q.order_by(ProductSerial.created_at, ProductSerial.id).limit(need - len(serials)).all()

    for s in serials:
        s.status = SerialStatus.SOLD.value
        s.invoice_item_id = item.id
        add_movement(db, tenant_id, item.product_id, MovementType.SALE.value, "out", 1,
                     REF_INVOICE, invoice.id, cost_price=item.cost_price, serial_id=s.id)

    if len(serials) < need:
        logger.warning("Накладная %s: не хватает серийников товара %s (%s из %s)",
                       invoice.invoice_number, item.product_id, len(serials), need)


def _sell_batches(db: Session, tenant_id: int, invoice: Invoice, item, qty: Decimal):
    """Партионный товар: FEFO, партии без срока годности в конце."""
    remaining = qty
    batches = (
        db.query(ProductBatch)
        .filter(
            ProductBatch.tenant_id == tenant_id,
            ProductBatch.product_id == item.product_id,
            ProductBatch.quantity > 0,
        )
        .order_by(nulls_last(ProductBatch.expiry_date.asc()), ProductBatch.id)
        .all()
    )
    for batch in batches:
        if remaining <= 0:
            break
        take = min(remaining, Decimal(batch.quantity))
        if take <= 0:
            continue
        batch.quantity = round2(Decimal(batch.quantity) - take)
        remaining -= take
        add_movement(db, tenant_id, item.product_id, MovementType.SALE.value, "out", take,
                     REF_INVOICE, invoice.id, cost_price=batch.cost_price or item.cost_price, batch_id=batch.id)

    if remaining > 0:
        logger.warning("Накладная %s: партий товара %s не хватило на %s ед.",
                       invoice.invoice_number, item.product_id, remaining)


def deduct_stock(db: Session, tenant_id: int, invoice: Invoice,
                 serial_ids: Optional[Dict[int, List[int]]] = None):
    """
    Списание остатков по строкам накладной (при переходе в sent/paid).
    Остаток товара не уходит ниже нуля. Коммит делает вызывающий код.
    """
    serial_ids = serial_ids or {}
    consumed: Dict[int, int] = {}

    for item in invoice.items:
        if not item.product_id:
            continue
        qty = Decimal(item.quantity or 0)
        if qty <= 0:
            continue
        product = (
            db.query(Product)
            .filter(Product.id == item.product_id, Product.tenant_id == tenant_id)
            .first()
        )
        if not product:
            continue

        tracking = product.tracking_type or TrackingType.QUANTITY.value
        if tracking == TrackingType.SERIAL.value:
            _sell_serials(db, tenant_id, invoice, item, qty, serial_ids.get(item.product_id, []), consumed)
        elif tracking == TrackingType.BATCH.value:
            _sell_batches(db, tenant_id, invoice, item, qty)
        else:
            add_movement(db, tenant_id, item.product_id, MovementType.SALE.value, "out", qty,
                         REF_INVOICE, invoice.id, cost_price=item.cost_price)

        product.stock = max(ZERO, round2(Decimal(product.stock or 0) - qty))
        # autoflush выключен: следующая строка того же товара должна видеть проданные серийники и партии
        db.flush()
