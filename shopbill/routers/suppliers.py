# shopbill/routers/suppliers.py
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from shopbill.db import get_db
from shopbill.middleware.auth import CurrentUser, get_current_user
from shopbill.models import PurchaseBill, Supplier
from shopbill.schemas import PartyCreate, PartyUpdate
from shopbill.services import parties, purchase_bills
from shopbill.utils.money import as_float
from shopbill.utils.paging import clamp_limit, clamp_offset, page
from shopbill.utils.serializers import row_to_dict

router = APIRouter(prefix="/api/suppliers", tags=["suppliers"])


@router.post("", status_code=201)
def supplier_create(body: PartyCreate, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(parties.create_party(db, Supplier, user.tenant_id, body))


@router.get("")
def suppliers_index(q: str = "", limit: Optional[str] = None, offset: Optional[str] = None,
                    db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    rows, total = parties.list_parties(
        db, Supplier, user.tenant_id, q,
        limit=clamp_limit(limit, 50, 100), offset=clamp_offset(offset),
    )
    return page(rows, total, row_to_dict)


@router.get("/{supplier_id}")
def supplier_detail(supplier_id: int, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(parties.get_party(db, Supplier, user.tenant_id, supplier_id, "Supplier"))


@router.patch("/{supplier_id}")
def supplier_update(supplier_id: int, body: PartyUpdate, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(parties.update_party(db, Supplier, user.tenant_id, supplier_id, body, "Supplier"))


@router.delete("/{supplier_id}", status_code=204)
def supplier_delete(supplier_id: int, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    has_bills = (
        db.query(PurchaseBill.id)
        .filter(PurchaseBill.supplier_id == supplier_id, PurchaseBill.tenant_id == user.tenant_id)
        .first()
    )
    parties.delete_party(
        db, Supplier, user.tenant_id, supplier_id, "Supplier",
        in_use="Cannot delete: supplier has purchase bills" if has_bills else None,
    )
    return Response(status_code=204)


# 📒 сверка с поставщиком
@router.get("/{supplier_id}/ledger")
def supplier_ledger(supplier_id: int, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    supplier = parties.get_party(db, Supplier, user.tenant_id, supplier_id, "Supplier")
    ledger = purchase_bills.supplier_ledger(db, user.tenant_id, supplier.id)
    bills = []
    for bill in ledger["bills"]:
        row = row_to_dict(bill)
        row["balance"] = as_float(bill.balance)
        bills.append(row)
    return {
        "supplier": row_to_dict(supplier, only=("id", "name", "email", "phone", "address")),
        "bills": bills,
        "totalPurchases": as_float(ledger["totalPurchases"]),
        "totalPaid": as_float(ledger["totalPaid"]),
        "balancePayable": as_float(ledger["balancePayable"]),
    }
