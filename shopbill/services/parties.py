# shopbill/services/parties.py
"""Покупатели и поставщики: одинаковые карточки, общий CRUD."""
from typing import Optional, Type

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from shopbill.schemas import PartyCreate, PartyUpdate


def get_party(db: Session, model: Type, tenant_id: int, party_id: int, label: str):
    row = db.query(model).filter(model.id == party_id, model.tenant_id == tenant_id).first()
    if not row:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return row


def list_parties(db: Session, model: Type, tenant_id: int, q: str = "",
                 limit: int = 50, offset: int = 0):
    query = db.query(model).filter(model.tenant_id == tenant_id)
    search = (q or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(model.name.ilike(like), model.email.ilike(like)))
    total = query.count()
    rows = query.order_by(model.name, model.id).offset(offset).limit(limit).all()
    return rows, total


def create_party(db: Session, model: Type, tenant_id: int, data: PartyCreate):
    row = model(tenant_id=tenant_id, **data.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_party(db: Session, model: Type, tenant_id: int, party_id: int, data: PartyUpdate, label: str):
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    row = get_party(db, model, tenant_id, party_id, label)
    for field, value in changes.items():
        setattr(row, field, value)
    db.commit()
    db.refresh(row)
    return row


def delete_party(db: Session, model: Type, tenant_id: int, party_id: int, label: str,
                 in_use: Optional[str] = None):
    row = get_party(db, model, tenant_id, party_id, label)
    if in_use:
        raise HTTPException(status_code=409, detail=in_use)
    db.delete(row)
    db.commit()
