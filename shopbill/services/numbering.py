# shopbill/services/numbering.py
"""
Порядковые номера документов магазина: INV-0001, INV-0002, ... и PB-0001, ...

Счётчик хранится в строке магазина. Перед выдачей номера строка блокируется
(SELECT ... FOR UPDATE), а номер никогда не бывает меньше уже занятых
с тем же префиксом (счётчик могли сбросить в настройках). Последний рубеж
это уникальный индекс (tenant_id, номер): при конфликте вся попытка
откатывается и повторяется.
"""
import logging
import re
from typing import Callable, Tuple, TypeVar

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopbill import config
from shopbill.models import Invoice, PurchaseBill, Tenant

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INVOICE_PREFIX = "INV-"
DEFAULT_BILL_PREFIX = "PB-"


def format_number(prefix: str, n: int) -> str:
    return f"{prefix}{str(n).zfill(4)}"


def lock_tenant(db: Session, tenant_id: int) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).with_for_update().first()
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


def _max_used(db: Session, column, tenant_column, tenant_id: int, prefix: str) -> int:
    """Наибольший числовой хвост среди номеров с этим префиксом."""
    pattern = re.compile(r"^" + re.escape(prefix) + r"(\d+)$")
    rows = db.query(column).filter(tenant_column == tenant_id, column.like(f"{prefix}%")).all()
    best = 0
    for (number,) in rows:
        m = pattern.match(number or "")
        if m:
            best = max(best, int(m.group(1)))
    return best


def next_invoice_number(db: Session, tenant: Tenant) -> Tuple[str, int]:
    prefix = (tenant.invoice_prefix or "").strip() or DEFAULT_INVOICE_PREFIX
    n = max(1, tenant.invoice_next_number or 1)
    used = _max_used(db, Invoice.invoice_number, Invoice.tenant_id, tenant.id, prefix)
    if n <= used:
        n = used + 1
    return format_number(prefix, n), n


def next_bill_number(db: Session, tenant: Tenant) -> Tuple[str, int]:
    prefix = (tenant.purchase_bill_prefix or "").strip() or DEFAULT_BILL_PREFIX
    n = max(1, tenant.purchase_bill_next_number or 1)
    used = _max_used(db, PurchaseBill.bill_number, PurchaseBill.tenant_id, tenant.id, prefix)
    if n <= used:
        n = used + 1
    return format_number(prefix, n), n


def is_number_conflict(exc: IntegrityError, *markers: str) -> bool:
    """Конфликт именно по номеру документа (а не по другому ограничению)."""
    message = str(getattr(exc, "orig", exc))
    return any(m in message for m in markers)


def run_numbered(db: Session, attempt: Callable[[], T], *markers: str) -> T:
    """
    Выполняет attempt() и коммитит. При конфликте уникального номера
    откатывает транзакцию и пробует заново (номер берётся свежий).
    Любая другая ошибка откатывается и пробрасывается.
    """
    for n in range(1, config.NUMBERING_ATTEMPTS + 1):
        try:
            result = attempt()
            db.commit()
            return result
        except IntegrityError as e:
            db.rollback()
            if not is_number_conflict(e, *markers):
                raise
            logger.warning("Номер документа занят, попытка %s/%s", n, config.NUMBERING_ATTEMPTS)
        except Exception:
            db.rollback()
            raise
    raise HTTPException(status_code=409, detail="Could not allocate a document number. Please retry.")
