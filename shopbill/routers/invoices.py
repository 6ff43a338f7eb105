# shopbill/routers/invoices.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Response
from sqlalchemy.orm import Session

from shopbill.db import get_db
from shopbill.middleware.auth import CurrentUser, get_current_user
from shopbill.schemas import (
    CleanupDrafts, InvoiceCreate, InvoiceDraftUpdate, InvoiceStatusUpdate, PaymentIn,
)
from shopbill.services import invoices as svc
from shopbill.utils.paging import clamp_limit, clamp_offset
from shopbill.utils.serializers import invoice_detail, invoice_to_dict, row_to_dict

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


# 🧾 создание накладной
@router.post("", status_code=201)
def invoice_create(body: InvoiceCreate, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    inv = svc.create_invoice(db, user.tenant_id, body)
    return invoice_to_dict(inv)


@router.get("")
def invoices_index(
    status: str = "",
    customer_id: Optional[int] = None,
    customerId: Optional[int] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    rows, total = svc.list_invoices(
        db, user.tenant_id,
        status=status.strip() or None,
        customer_id=customer_id or customerId,
        limit=clamp_limit(limit, 50, 100),
        offset=clamp_offset(offset),
    )
    return {"data": [invoice_to_dict(r, with_items=False) for r in rows], "total": total}


# 🧹 удаление старых черновиков
@router.post("/cleanup-drafts")
def invoices_cleanup(body: Optional[CleanupDrafts] = Body(default=None), db: Session = Depends(get_db),
                     user: CurrentUser = Depends(get_current_user)):
    deleted = svc.cleanup_drafts(db, user.tenant_id, body.days if body else None)
    return {"deleted": deleted}


@router.get("/{invoice_id}")
def invoice_show(invoice_id: int, db: Session = Depends(get_db),
                 user: CurrentUser = Depends(get_current_user)):
    inv = svc.get_invoice(db, user.tenant_id, invoice_id)
    return invoice_detail(inv, svc.serials_by_item(db, user.tenant_id, inv))


# ✏️ правка: с items -> перезапись черновика, без items -> смена статуса
@router.patch("/{invoice_id}")
def invoice_update(invoice_id: int, body: dict = Body(...), db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    if isinstance(body.get("items"), list):
        inv = svc.update_invoice_items(db, user.tenant_id, invoice_id, InvoiceDraftUpdate.model_validate(body))
        return invoice_to_dict(inv)
    inv = svc.change_status(db, user.tenant_id, invoice_id, InvoiceStatusUpdate.model_validate(body))
    return invoice_to_dict(inv, with_items=False)


@router.delete("/{invoice_id}", status_code=204)
def invoice_delete(invoice_id: int, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    svc.delete_invoice(db, user.tenant_id, invoice_id)
    return Response(status_code=204)


# 💰 оплаты
@router.post("/{invoice_id}/payments", status_code=201)
def payment_create(invoice_id: int, body: PaymentIn, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(svc.add_payment(db, user.tenant_id, invoice_id, body))


@router.delete("/{invoice_id}/payments/{payment_id}", status_code=204)
def payment_delete(invoice_id: int, payment_id: int, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    svc.delete_payment(db, user.tenant_id, invoice_id, payment_id)
    return Response(status_code=204)
