# shopbill/services/reports.py
"""Отчёты по магазину. Суммы считаются в Decimal и округляются до 2 знаков."""
import re
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

from fastapi import HTTPException
from sqlalchemy.orm import Session

from shopbill.models import (
    Customer, Invoice, InvoiceItem, Payment, Product, PurchaseBill, PurchasePayment,
)
from shopbill.utils.dates import default_month, month_bounds, month_key, parse_date, shift_month
from shopbill.utils.enums import InvoiceStatus, PurchaseBillStatus
from shopbill.utils.money import ZERO, as_float, round2, sum2

ACCRUAL_STATUSES = (InvoiceStatus.SENT.value, InvoiceStatus.PAID.value)

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_FY_RE = re.compile(r"^(\d{4})-(\d{4})$")


def _parse_bound(value: Optional[str], name: str) -> Optional[date]:
    if value is None or not str(value).strip():
        return None
    d = parse_date(value)
    if d is None:
        raise HTTPException(status_code=400, detail=f"{name} must be a valid date")
    return d


def resolve_range(from_: Optional[str], to: Optional[str], today: Optional[date] = None) -> Tuple[date, date]:
    """Период отчёта; пустые границы -> текущий месяц. from <= to."""
    start = _parse_bound(from_, "from")
    end = _parse_bound(to, "to")
    if start is None or end is None:
        month_start, month_end = default_month(today)
        start = start or month_start
        end = end or month_end
    if start > end:
        raise HTTPException(status_code=400, detail="from must be before or equal to to")
    return start, end


def resolve_pnl_range(from_: Optional[str], to: Optional[str], month: Optional[str] = None,
                      fy: Optional[str] = None, today: Optional[date] = None) -> Tuple[date, date]:
    """month=YYYY-MM или fy=YYYY-YYYY (апрель-март) важнее from/to."""
    m = _MONTH_RE.match((month or "").strip())
    if m and 1 <= int(m.group(2)) <= 12:
        return month_bounds(int(m.group(1)), int(m.group(2)))
    f = _FY_RE.match((fy or "").strip())
    if f:
        start_year = int(f.group(1))
        return date(start_year, 4, 1), date(start_year + 1, 3, 31)
    return resolve_range(from_, to, today)


def _optional_range(from_: Optional[str], to: Optional[str]) -> Tuple[Optional[date], Optional[date]]:
    return _parse_bound(from_, "from"), _parse_bound(to, "to")


def _invoices(db: Session, tenant_id: int, statuses, start: Optional[date] = None, end: Optional[date] = None):
    q = db.query(Invoice).filter(Invoice.tenant_id == tenant_id, Invoice.status.in_(statuses))
    if start:
        q = q.filter(Invoice.invoice_date >= start)
    if end:
        q = q.filter(Invoice.invoice_date <= end)
    return q


def _items_of(db: Session, invoice_ids):
    if not invoice_ids:
        return []
    return (
        db.query(InvoiceItem)
        .filter(InvoiceItem.invoice_id.in_(invoice_ids))
        .order_by(InvoiceItem.id)
        .all()
    )


def _product_names(db: Session, tenant_id: int, product_ids) -> dict:
    if not product_ids:
        return {}
    rows = db.query(Product.id, Product.name).filter(Product.tenant_id == tenant_id, Product.id.in_(product_ids)).all()
    return dict(rows)


def _group_key(item: InvoiceItem):
    # разовые строки без товара группируются по описанию
    return item.product_id or f"adhoc:{(item.description or '')[:50]}"


def _iso(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def sales_summary(db: Session, tenant_id: int, from_: Optional[str], to: Optional[str]) -> dict:
    start, end = resolve_range(from_, to)
    rows = _invoices(db, tenant_id, (InvoiceStatus.PAID.value,), start, end).all()
    return {
        "totalRevenue": as_float(sum2(i.total for i in rows)),
        "invoiceCount": len(rows),
        "from": start.isoformat(),
        "to": end.isoformat(),
    }


def invoice_summary(db: Session, tenant_id: int) -> dict:
    out = {s.value: {"count": 0, "total": ZERO} for s in InvoiceStatus}
    for status, total in db.query(Invoice.status, Invoice.total).filter(Invoice.tenant_id == tenant_id):
        if status in out:
            out[status]["count"] += 1
            out[status]["total"] += Decimal(total or 0)
    return {k: {"count": v["count"], "total": as_float(v["total"])} for k, v in out.items()}


def outstanding(db: Session, tenant_id: int) -> dict:
    """Отправленные, но не оплаченные накладные; долг считается по остатку."""
    rows = (
        _invoices(db, tenant_id, (InvoiceStatus.SENT.value,))
        .order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        .all()
    )
    customer_ids = {i.customer_id for i in rows if i.customer_id}
    names = {}
    if customer_ids:
        names = dict(
            db.query(Customer.id, Customer.name)
            .filter(Customer.tenant_id == tenant_id, Customer.id.in_(customer_ids))
            .all()
        )
    return {
        "totalDue": as_float(sum2(i.balance for i in rows)),
        "invoices": [
            {
                "id": i.id,
                "invoice_number": i.invoice_number,
                "invoice_date": _iso(i.invoice_date),
                "customer_name": names.get(i.customer_id, "-"),
                "total": as_float(i.total),
                "amount_paid": as_float(i.amount_paid),
                "balance": as_float(i.balance),
            }
            for i in rows
        ],
    }


def top_products(db: Session, tenant_id: int, from_: Optional[str], to: Optional[str]) -> dict:
    start, end = _optional_range(from_, to)
    ids = [i.id for i in _invoices(db, tenant_id, (InvoiceStatus.PAID.value,), start, end)]
    groups = OrderedDict()
    for it in _items_of(db, ids):
        g = groups.setdefault(_group_key(it), {
            "productId": it.product_id, "description": it.description or "-",
            "quantity": ZERO, "revenue": ZERO,
        })
        g["quantity"] += Decimal(it.quantity or 0)
        g["revenue"] += Decimal(it.amount or 0)

    names = _product_names(db, tenant_id, {g["productId"] for g in groups.values() if g["productId"]})
    data = [
        {
            "productId": g["productId"],
            "productName": names.get(g["productId"], g["description"]) if g["productId"] else (g["description"] or "Ad-hoc"),
            "quantity": as_float(g["quantity"]),
            "revenue": as_float(g["revenue"]),
        }
        for g in groups.values()
    ]
    data.sort(key=lambda r: r["revenue"], reverse=True)
    return {"data": data, "from": _iso(start), "to": _iso(end)}


def top_customers(db: Session, tenant_id: int, from_: Optional[str], to: Optional[str]) -> dict:
    start, end = _optional_range(from_, to)
    groups = OrderedDict()
    for inv in _invoices(db, tenant_id, (InvoiceStatus.PAID.value,), start, end):
        if not inv.customer_id:
            continue
        g = groups.setdefault(inv.customer_id, {"invoiceCount": 0, "totalPaid": ZERO})
        g["invoiceCount"] += 1
        g["totalPaid"] += Decimal(inv.total or 0)

    names = {}
    if groups:
        names = dict(
            db.query(Customer.id, Customer.name)
            .filter(Customer.tenant_id == tenant_id, Customer.id.in_(list(groups)))
            .all()
        )
    data = [
        {
            "customerId": cid,
            "customerName": names.get(cid, "-"),
            "invoiceCount": g["invoiceCount"],
            "totalPaid": as_float(g["totalPaid"]),
        }
        for cid, g in groups.items()
    ]
    data.sort(key=lambda r: r["totalPaid"], reverse=True)
    return {"data": data, "from": _iso(start), "to": _iso(end)}


def tax_summary(db: Session, tenant_id: int, from_: Optional[str], to: Optional[str]) -> dict:
    start, end = resolve_range(from_, to)
    invoices = _invoices(db, tenant_id, ACCRUAL_STATUSES, start, end).all()
    dates = {i.id: i.invoice_date for i in invoices}

    months = {}
    totals = {"cgst": ZERO, "sgst": ZERO, "igst": ZERO}
    for it in _items_of(db, list(dates)):
        key = month_key(dates[it.invoice_id])
        m = months.setdefault(key, {"cgst": ZERO, "sgst": ZERO, "igst": ZERO})
        for tax in ("cgst", "sgst", "igst"):
            value = Decimal(getattr(it, f"{tax}_amount") or 0)
            m[tax] += value
            totals[tax] += value

    def _row(values: dict) -> dict:
        return {
            "cgst": as_float(values["cgst"]),
            "sgst": as_float(values["sgst"]),
            "igst": as_float(values["igst"]),
            "totalTax": as_float(values["cgst"] + values["sgst"] + values["igst"]),
        }

    return {
        "period": {"from": start.isoformat(), "to": end.isoformat()},
        "byMonth": [dict(month=k, **_row(v)) for k, v in sorted(months.items())],
        "totals": _row(totals),
        "invoiceCount": len(invoices),
    }


def product_profit(db: Session, tenant_id: int, from_: Optional[str], to: Optional[str]) -> dict:
    start, end = _optional_range(from_, to)
    ids = [i.id for i in _invoices(db, tenant_id, ACCRUAL_STATUSES, start, end)]
    groups = OrderedDict()
    for it in _items_of(db, ids):
        g = groups.setdefault(_group_key(it), {
            "product_id": it.product_id, "description": it.description or "-",
            "quantity": ZERO, "sales": ZERO, "cost": ZERO,
        })
        g["quantity"] += Decimal(it.quantity or 0)
        g["sales"] += Decimal(it.amount or 0)
        g["cost"] += Decimal(it.cost_amount or 0)

    names = _product_names(db, tenant_id, {g["product_id"] for g in groups.values() if g["product_id"]})
    data = []
    for g in groups.values():
        sales, cost = round2(g["sales"]), round2(g["cost"])
        data.append({
            "product_id": g["product_id"],
            "product_name": names.get(g["product_id"], g["description"]) if g["product_id"] else (g["description"] or "Ad-hoc"),
            "quantity_sold": as_float(g["quantity"]),
            "sales": as_float(sales),
            "cost": as_float(cost),
            "profit": as_float(sales - cost),
        })
    data.sort(key=lambda r: r["profit"], reverse=True)
    return {"data": data, "from": _iso(start), "to": _iso(end)}


def _profit_percent(profit: Decimal, revenue: Decimal) -> float:
    if revenue <= 0:
        return 0.0
    return as_float(profit / revenue * 100)


def pnl(db: Session, tenant_id: int, from_=None, to=None, month=None, fy=None) -> dict:
    """Прибыль по начислению: выручка без налога минус себестоимость проданного."""
    start, end = resolve_pnl_range(from_, to, month, fy)
    invoices = _invoices(db, tenant_id, ACCRUAL_STATUSES, start, end).all()
    sales = sum2(i.subtotal for i in invoices)
    sales_incl_tax = sum2(i.total for i in invoices)
    cost = sum2(it.cost_amount for it in _items_of(db, [i.id for i in invoices]))

    purchases = sum2(
        t for (t,) in db.query(PurchaseBill.total).filter(
            PurchaseBill.tenant_id == tenant_id,
            PurchaseBill.status == PurchaseBillStatus.RECORDED.value,
            PurchaseBill.bill_date >= start,
            PurchaseBill.bill_date <= end,
        )
    )
    gross = round2(sales - cost)
    return {
        "from": start.isoformat(),
        "to": end.isoformat(),
        "totalSales": as_float(sales),
        "totalSalesInclTax": as_float(sales_incl_tax),
        "totalPurchases": as_float(purchases),
        "totalCost": as_float(cost),
        "grossProfit": as_float(gross),
        "profitPercent": _profit_percent(gross, sales),
    }


def pnl_cash(db: Session, tenant_id: int, from_=None, to=None, month=None, fy=None) -> dict:
    """Кассовый метод: деньги от покупателей против оплат поставщикам за период."""
    start, end = resolve_pnl_range(from_, to, month, fy)
    received = (
        db.query(Payment.amount, Payment.invoice_id)
        .filter(Payment.tenant_id == tenant_id, Payment.paid_at >= start, Payment.paid_at <= end)
        .all()
    )
    cash_in = sum2(a for a, _ in received)
    cash_out = sum2(
        a for (a,) in db.query(PurchasePayment.amount).filter(
            PurchasePayment.tenant_id == tenant_id,
            PurchasePayment.paid_at >= start,
            PurchasePayment.paid_at <= end,
        )
    )

    invoice_ids = sorted({iid for _, iid in received if iid})
    revenue, cost = ZERO, ZERO
    if invoice_ids:
        revenue = sum2(
            s for (s,) in db.query(Invoice.subtotal).filter(Invoice.tenant_id == tenant_id, Invoice.id.in_(invoice_ids))
        )
        cost = sum2(it.cost_amount for it in _items_of(db, invoice_ids))

    gross = round2(revenue - cost)
    return {
        "from": start.isoformat(),
        "to": end.isoformat(),
        "cashIn": as_float(cash_in),
        "cashOut": as_float(cash_out),
        "revenue": as_float(revenue),
        "totalCost": as_float(cost),
        "netCashFlow": as_float(cash_in - cash_out),
        "grossProfit": as_float(gross),
        "profitPercent": _profit_percent(gross, revenue),
    }


def clamp_months(raw) -> int:
    try:
        months = int(raw)
    except (TypeError, ValueError):
        months = 0
    if months == 0:
        months = 6
    return min(24, max(1, months))


def revenue_trend(db: Session, tenant_id: int, months_raw=None, today: Optional[date] = None) -> dict:
    months = clamp_months(months_raw)
    today = today or date.today()
    buckets = OrderedDict()
    for back in range(months - 1, -1, -1):
        y, m = shift_month(today, back)
        buckets[f"{y}-{m:02d}"] = ZERO

    first_year, first_month = shift_month(today, months - 1)
    q = _invoices(db, tenant_id, (InvoiceStatus.PAID.value,), start=date(first_year, first_month, 1))
    for inv in q:
        key = month_key(inv.invoice_date)
        if key in buckets:
            buckets[key] += Decimal(inv.total or 0)

    return {"data": [{"month": k, "revenue": as_float(v)} for k, v in buckets.items()], "months": months}


def recalculate_costs(db: Session, tenant_id: int) -> dict:
    """Нулевая себестоимость в строках накладных -> текущая цена последней закупки."""
    items = (
        db.query(InvoiceItem)
        .join(Invoice, Invoice.id == InvoiceItem.invoice_id)
        .filter(
            Invoice.tenant_id == tenant_id,
            InvoiceItem.cost_price == 0,
            InvoiceItem.product_id.isnot(None),
        )
        .all()
    )
    prices = {}
    product_ids = {it.product_id for it in items}
    if product_ids:
        prices = {
            pid: round2(price)
            for pid, price in db.query(Product.id, Product.last_purchase_price).filter(
                Product.tenant_id == tenant_id, Product.id.in_(product_ids)
            )
            if price is not None and price > 0
        }

    updated = 0
    for it in items:
        cost = prices.get(it.product_id)
        if not cost:
            continue
        it.cost_price = cost
        it.cost_amount = round2(Decimal(it.quantity) * cost)
        updated += 1
    db.commit()
    return {"updated": updated, "message": f"Updated cost on {updated} invoice items"}
