# seed.py: сброс схемы и демо-магазин
import os
import sys
from decimal import Decimal

from sqlalchemy.orm import configure_mappers

import shopbill.models  # noqa: F401  подтягиваем все модели
from shopbill.db import Base, SessionLocal, engine
from shopbill.models import Customer, Product, Supplier, Tenant, User
from shopbill.utils.enums import TrackingType, UserRole


def run_seed(auth_id: str):
    # === RESET ===
    Base.metadata.drop_all(bind=engine)
    print("🗑 Все таблицы удалены")

    configure_mappers()
    Base.metadata.create_all(bind=engine)
    print("✅ Все таблицы пересозданы")

    db = SessionLocal()
    try:
        # --- Магазин и владелец ---
        tenant = Tenant(
            name="Demo Mobile Store",
            slug="demo-mobile-store",
            gstin="27AAPFU0939F1ZV",
            tax_percent=Decimal("18"),
            currency_symbol="₹",
        )
        db.add(tenant)
        db.flush()
        db.add(User(auth_id=auth_id, tenant_id=tenant.id, email="owner@demo.local", role=UserRole.OWNER.value))
        db.commit()
        print(f"✅ Магазин создан: {tenant.name} (владелец auth_id={auth_id})")

        # --- Покупатели ---
        for name, phone in (("Walk-in Customer", None), ("Ravi Kumar", "98450 12345"), ("Sunita Traders", "90040 55555")):
            db.add(Customer(tenant_id=tenant.id, name=name, phone=phone))
            print(f"✅ Покупатель: {name}")

        # --- Поставщик ---
        db.add(Supplier(tenant_id=tenant.id, name="Metro Distributors", phone="022 4000 1234"))
        print("✅ Поставщик: Metro Distributors")

        # --- Товары: по одному на каждый способ учёта ---
        products = [
            ("USB-C Cable 1m", "CBL-001", Decimal("299"), TrackingType.QUANTITY.value, "8544"),
            ("Redmi 13 5G 6/128", "RDM-13-128", Decimal("13999"), TrackingType.SERIAL.value, "8517"),
            ("Screen Cleaner 100ml", "CLN-100", Decimal("149"), TrackingType.BATCH.value, "3402"),
        ]
        for name, sku, price, tracking, hsn in products:
            db.add(Product(
                tenant_id=tenant.id,
                name=name,
                sku=sku,
                unit="pcs",
                price=price,
                stock=0,
                tracking_type=tracking,
                hsn_sac_code=hsn,
                is_active=True,
            ))
            print(f"✅ Товар создан: {name} ({tracking})")

        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    seed_auth_id = sys.argv[1] if len(sys.argv) > 1 else os.getenv("SEED_AUTH_ID", "")
    if not seed_auth_id:
        sys.exit("Укажите auth id владельца: python seed.py <auth_id> (или SEED_AUTH_ID)")
    run_seed(seed_auth_id)
