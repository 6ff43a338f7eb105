# shopbill/routers/customers.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shopbill.db import get_db
from shopbill.middleware.auth import CurrentUser, get_current_user
from shopbill.models import Customer
from shopbill.schemas import PartyCreate, PartyUpdate
from shopbill.services import parties
from shopbill.utils.paging import clamp_limit, clamp_offset, page
from shopbill.utils.serializers import row_to_dict

router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.post("", status_code=201)
def customer_create(body: PartyCreate, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(parties.create_party(db, Customer, user.tenant_id, body))


@router.get("")
def customers_index(q: str = "", limit: Optional[str] = None, offset: Optional[str] = None,
                    db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    rows, total = parties.list_parties(
        db, Customer, user.tenant_id, q,
        limit=clamp_limit(limit, 50, 100), offset=clamp_offset(offset),
    )
    return page(rows, total, row_to_dict)


@router.get("/{customer_id}")
def customer_detail(customer_id: int, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(parties.get_party(db, Customer, user.tenant_id, customer_id, "Customer"))


@router.patch("/{customer_id}")
def customer_update(customer_id: int, body: PartyUpdate, db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(parties.update_party(db, Customer, user.tenant_id, customer_id, body, "Customer"))
