# shopbill/routers/purchase_bills.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, Response
from sqlalchemy.orm import Session

from shopbill.db import get_db
from shopbill.middleware.auth import CurrentUser, get_current_user
from shopbill.schemas import PaymentIn, PurchaseBillCreate, PurchaseBillUpdate, RecordBill
from shopbill.services import purchase_bills as svc
from shopbill.utils.money import as_float
from shopbill.utils.paging import clamp_limit, clamp_offset
from shopbill.utils.serializers import bill_to_dict, party_brief, row_to_dict

router = APIRouter(prefix="/api/purchase-bills", tags=["purchase-bills"])


def _bill_detail(db: Session, tenant_id: int, bill) -> dict:
    extras = svc.bill_extras(db, tenant_id, bill)
    data = row_to_dict(bill)
    data["balance"] = as_float(bill.balance)
    data["supplier"] = party_brief(bill.supplier, "email", "phone", "address")
    items = []
    for it in bill.items:
        row = row_to_dict(it)
        row["product"] = row_to_dict(it.product, only=("id", "name", "tracking_type")) if it.product else None
        row["serials"] = extras["serials"].get(it.id, [])
        row["batches"] = extras["batches"].get(it.id, [])
        items.append(row)
    data["items"] = items
    data["payments"] = [row_to_dict(p) for p in bill.payments]
    return data


# 📥 черновик закупки
@router.post("", status_code=201)
def bill_create(body: PurchaseBillCreate, db: Session = Depends(get_db),
                user: CurrentUser = Depends(get_current_user)):
    return bill_to_dict(svc.create_bill(db, user.tenant_id, body))


@router.get("")
def bills_index(
    supplier_id: Optional[int] = None,
    supplierId: Optional[int] = None,
    status: str = "",
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    rows, total = svc.list_bills(
        db, user.tenant_id,
        supplier_id=supplier_id or supplierId,
        status=status.strip() or None,
        limit=clamp_limit(limit, 50, 100),
        offset=clamp_offset(offset),
    )
    data = []
    for bill in rows:
        row = row_to_dict(bill)
        row["supplier"] = party_brief(bill.supplier)
        data.append(row)
    return {"data": data, "total": total}


@router.get("/{bill_id}")
def bill_show(bill_id: int, db: Session = Depends(get_db),
              user: CurrentUser = Depends(get_current_user)):
    return _bill_detail(db, user.tenant_id, svc.get_bill(db, user.tenant_id, bill_id))


@router.patch("/{bill_id}")
def bill_update(bill_id: int, body: PurchaseBillUpdate, db: Session = Depends(get_db),
                user: CurrentUser = Depends(get_current_user)):
    return bill_to_dict(svc.update_bill(db, user.tenant_id, bill_id, body))


@router.delete("/{bill_id}", status_code=204)
def bill_delete(bill_id: int, db: Session = Depends(get_db),
                user: CurrentUser = Depends(get_current_user)):
    svc.delete_bill(db, user.tenant_id, bill_id)
    return Response(status_code=204)


# ✅ оприходование
@router.post("/{bill_id}/record")
def bill_record(bill_id: int, body: Optional[RecordBill] = Body(default=None), db: Session = Depends(get_db),
                user: CurrentUser = Depends(get_current_user)):
    bill = svc.record_bill(db, user.tenant_id, bill_id, body or RecordBill())
    return bill_to_dict(bill)


# 💸 оплаты поставщику
@router.post("/{bill_id}/payments", status_code=201)
def bill_payment_create(bill_id: int, body: PaymentIn, db: Session = Depends(get_db),
                        user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(svc.add_payment(db, user.tenant_id, bill_id, body))


@router.delete("/{bill_id}/payments/{payment_id}", status_code=204)
def bill_payment_delete(bill_id: int, payment_id: int, db: Session = Depends(get_db),
                        user: CurrentUser = Depends(get_current_user)):
    svc.delete_payment(db, user.tenant_id, bill_id, payment_id)
    return Response(status_code=204)
