# shopbill/routers/products.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopbill.db import get_db
from shopbill.middleware.auth import CurrentUser, get_current_user
from shopbill.models import InvoiceItem, Product, ProductBatch, ProductSerial, StockMovement
from shopbill.schemas import ProductCreate, ProductUpdate
from shopbill.utils.enums import TrackingType
from shopbill.utils.paging import clamp_limit, clamp_offset, page
from shopbill.utils.serializers import row_to_dict

router = APIRouter(prefix="/api/products", tags=["products"])

DUPLICATE_SKU = "A product with this SKU already exists"


def _get_product(db: Session, tenant_id: int, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id, Product.tenant_id == tenant_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _commit_sku(db: Session):
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if "idx_products_tenant_sku" in str(e.orig) or "products.sku" in str(e.orig):
            raise HTTPException(status_code=409, detail=DUPLICATE_SKU)
        raise


# 🆕 создание
@router.post("", status_code=201)
def product_create(body: ProductCreate, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    product = Product(tenant_id=user.tenant_id, stock=0, is_active=True, **body.model_dump())
    db.add(product)
    _commit_sku(db)
    db.refresh(product)
    return row_to_dict(product)


# 📦 список
@router.get("")
def products_index(
    q: str = "",
    include_inactive: str = "",
    tracking_type: str = "",
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    query = db.query(Product).filter(Product.tenant_id == user.tenant_id)
    if include_inactive != "true":
        query = query.filter(Product.is_active.is_(True))
    search = q.strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.company.ilike(like),
            Product.imei.ilike(like),
            Product.sku.ilike(like),
        ))
    if tracking_type in {t.value for t in TrackingType}:
        query = query.filter(Product.tracking_type == tracking_type)

    total = query.count()
    rows = (
        query.order_by(Product.name, Product.id)
        .offset(clamp_offset(offset))
        .limit(clamp_limit(limit, 50, 500))
        .all()
    )
    return page(rows, total, row_to_dict)


@router.get("/{product_id}")
def product_detail(product_id: int, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    return row_to_dict(_get_product(db, user.tenant_id, product_id))


# ✏️ редактирование
@router.patch("/{product_id}")
def product_update(product_id: int, body: ProductUpdate, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    for field in ("name", "price"):
        if field in changes and changes[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} is required")

    product = _get_product(db, user.tenant_id, product_id)
    new_tracking = changes.get("tracking_type")
    if new_tracking is not None and new_tracking != product.tracking_type and (product.stock or 0) > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot change tracking type when stock > 0. Sell or adjust all stock first.",
        )
    if "tracking_type" in changes and new_tracking is None:
        changes.pop("tracking_type")
    if "is_active" in changes and changes["is_active"] is None:
        changes.pop("is_active")

    for field, value in changes.items():
        setattr(product, field, value)
    _commit_sku(db)
    db.refresh(product)
    return row_to_dict(product)


# 🗑 удаление
@router.delete("/{product_id}", status_code=204)
def product_delete(product_id: int, db: Session = Depends(get_db),
                   user: CurrentUser = Depends(get_current_user)):
    product = _get_product(db, user.tenant_id, product_id)
    used = db.query(InvoiceItem.id).filter(InvoiceItem.product_id == product.id).first()
    if used:
        raise HTTPException(status_code=409, detail="Cannot delete: product is used in invoices")
    db.delete(product)
    db.commit()
    return Response(status_code=204)


# ---- серийники / партии / движения ----

@router.get("/{product_id}/serials")
def product_serials(product_id: int, status: str = "", limit: Optional[str] = None,
                    db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    query = db.query(ProductSerial).filter(
        ProductSerial.product_id == product_id,
        ProductSerial.tenant_id == user.tenant_id,
    )
    if status.strip():
        query = query.filter(ProductSerial.status == status.strip())
    rows = (
        query.order_by(ProductSerial.created_at.desc(), ProductSerial.id.desc())
        .limit(clamp_limit(limit, 100, 500))
        .all()
    )
    return [row_to_dict(s) for s in rows]


@router.get("/{product_id}/batches")
def product_batches(product_id: int, active: str = "", db: Session = Depends(get_db),
                    user: CurrentUser = Depends(get_current_user)):
    query = db.query(ProductBatch).filter(
        ProductBatch.product_id == product_id,
        ProductBatch.tenant_id == user.tenant_id,
    )
    if active == "true":
        query = query.filter(ProductBatch.quantity > 0)
    rows = query.order_by(ProductBatch.expiry_date.asc().nulls_last(), ProductBatch.id).all()
    return [row_to_dict(b) for b in rows]


@router.get("/{product_id}/stock-movements")
def product_movements(product_id: int, limit: Optional[str] = None, db: Session = Depends(get_db),
                      user: CurrentUser = Depends(get_current_user)):
    rows = (
        db.query(StockMovement)
        .filter(StockMovement.product_id == product_id, StockMovement.tenant_id == user.tenant_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(clamp_limit(limit, 50, 200))
        .all()
    )
    return [row_to_dict(m) for m in rows]
