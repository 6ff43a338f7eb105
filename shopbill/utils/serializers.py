from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import inspect


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def row_to_dict(obj, only: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Колонки ORM-объекта -> словарь для JSON (Decimal -> float, даты -> ISO)."""
    if obj is None:
        return None
    columns = [c.key for c in inspect(obj).mapper.column_attrs]
    if only is not None:
        wanted = set(only)
        columns = [c for c in columns if c in wanted]
    return {key: _plain(getattr(obj, key)) for key in columns}


def party_brief(obj, *extra: str) -> Optional[Dict[str, Any]]:
    """Короткая карточка покупателя/поставщика: id, name (+ доп. поля)."""
    if obj is None:
        return None
    return row_to_dict(obj, only=("id", "name") + extra)


def invoice_to_dict(inv, with_items: bool = True) -> Dict[str, Any]:
    data = row_to_dict(inv)
    if with_items:
        data["invoice_items"] = [row_to_dict(it) for it in inv.items]
    return data


def invoice_detail(inv, serials_by_item: Dict[int, list]) -> Dict[str, Any]:
    """Полная карточка накладной: покупатель, строки с серийниками, оплаты, остаток."""
    data = row_to_dict(inv)
    data["balance"] = _plain(inv.balance)
    data["customer"] = party_brief(inv.customer, "email", "phone", "address")
    items = []
    for it in inv.items:
        row = row_to_dict(it)
        row["serials"] = serials_by_item.get(it.id, [])
        row["product"] = row_to_dict(it.product, only=("id", "name", "tracking_type")) if it.product else None
        items.append(row)
    data["invoice_items"] = items
    data["payments"] = [row_to_dict(p) for p in inv.payments]
    return data


def bill_to_dict(bill) -> Dict[str, Any]:
    data = row_to_dict(bill)
    data["supplier"] = party_brief(bill.supplier)
    data["items"] = [row_to_dict(it) for it in bill.items]
    return data
