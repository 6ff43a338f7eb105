# shopbill/routers/reports.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from shopbill.db import get_db
from shopbill.middleware.auth import CurrentUser, get_current_user
from shopbill.services import reports

router = APIRouter(prefix="/api/reports", tags=["reports"])

# "from" в query зарезервировано в python, поэтому date_from + alias


@router.get("/sales-summary")
def sales_summary(date_from: Optional[str] = Query(None, alias="from"), to: Optional[str] = None,
                  db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reports.sales_summary(db, user.tenant_id, date_from, to)


@router.get("/invoice-summary")
def invoice_summary(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reports.invoice_summary(db, user.tenant_id)


@router.get("/outstanding")
def outstanding(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reports.outstanding(db, user.tenant_id)


@router.get("/top-products")
def top_products(date_from: Optional[str] = Query(None, alias="from"), to: Optional[str] = None,
                 db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reports.top_products(db, user.tenant_id, date_from, to)


@router.get("/top-customers")
def top_customers(date_from: Optional[str] = Query(None, alias="from"), to: Optional[str] = None,
                  db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reports.top_customers(db, user.tenant_id, date_from, to)


@router.get("/tax-summary")
def tax_summary(date_from: Optional[str] = Query(None, alias="from"), to: Optional[str] = None,
                db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reports.tax_summary(db, user.tenant_id, date_from, to)


@router.get("/product-profit")
def product_profit(date_from: Optional[str] = Query(None, alias="from"), to: Optional[str] = None,
                   db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reports.product_profit(db, user.tenant_id, date_from, to)


@router.get("/pnl")
def pnl(date_from: Optional[str] = Query(None, alias="from"), to: Optional[str] = None, month: Optional[str] = None,
        fy: Optional[str] = None, db: Session = Depends(get_db),
        user: CurrentUser = Depends(get_current_user)):
    return reports.pnl(db, user.tenant_id, date_from, to, month, fy)


@router.get("/pnl-cash")
def pnl_cash(date_from: Optional[str] = Query(None, alias="from"), to: Optional[str] = None, month: Optional[str] = None,
             fy: Optional[str] = None, db: Session = Depends(get_db),
             user: CurrentUser = Depends(get_current_user)):
    return reports.pnl_cash(db, user.tenant_id, date_from, to, month, fy)


@router.get("/revenue-trend")
def revenue_trend(months: Optional[str] = None, db: Session = Depends(get_db),
                  user: CurrentUser = Depends(get_current_user)):
    return reports.revenue_trend(db, user.tenant_id, months)


# 🔁 пересчёт себестоимости
@router.post("/recalculate-costs")
def recalculate_costs(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return reports.recalculate_costs(db, user.tenant_id)
