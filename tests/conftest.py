import os

# до импорта пакета: база в памяти и известный JWT-секрет
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-secret"
os.environ["SUPABASE_URL"] = ""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shopbill.db import get_db, init_db
from shopbill.main import app
from shopbill.middleware.auth import CurrentUser, get_current_user
from shopbill.models import Product, Tenant, User


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def tenant(db):
    t = Tenant(name="Demo Shop", slug="demo-shop", tax_percent=Decimal("18"))
    db.add(t)
    db.commit()
    return t


@pytest.fixture
def owner(db, tenant):
    u = User(auth_id="auth-owner", tenant_id=tenant.id, email="owner@example.com", role="owner")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def override_db(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client(override_db, tenant, owner):
    current = CurrentUser(auth_id=owner.auth_id, tenant_id=tenant.id, user_id=owner.id, role=owner.role)
    app.dependency_overrides[get_current_user] = lambda: current
    return TestClient(app)


@pytest.fixture
def anon_client(override_db):
    """Клиент без подмены авторизации: токен проверяется по-настоящему."""
    return TestClient(app)


# ---- фабрики через API ----

@pytest.fixture
def make_customer(client):
    def _make(name="Ravi Kumar", **extra):
        resp = client.post("/api/customers", json={"name": name, **extra})
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _make


@pytest.fixture
def make_supplier(client):
    def _make(name="Metro Distributors", **extra):
        resp = client.post("/api/suppliers", json={"name": name, **extra})
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _make


@pytest.fixture
def make_product(client):
    def _make(name="USB Cable", price=100, **extra):
        resp = client.post("/api/products", json={"name": name, "price": price, **extra})
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _make


@pytest.fixture
def make_invoice(client):
    def _make(customer_id, items, status="draft", invoice_date="2024-05-10", **extra):
        body = {
            "customerId": customer_id,
            "invoiceDate": invoice_date,
            "status": status,
            "items": items,
            **extra,
        }
        resp = client.post("/api/invoices", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _make


@pytest.fixture
def receive(client):
    """Черновик закупки + оприходование; возвращает оприходованную накладную."""
    def _receive(supplier_id, items, bill_date="2024-05-01", serials=None, batches=None, bill_number=None):
        body = {"supplierId": supplier_id, "billDate": bill_date, "items": items}
        if bill_number:
            body["billNumber"] = bill_number
        resp = client.post("/api/purchase-bills", json=body)
        assert resp.status_code == 201, resp.text
        bill = resp.json()
        resp = client.post(
            f"/api/purchase-bills/{bill['id']}/record",
            json={"serials": serials or {}, "batches": batches or {}},
        )
        assert resp.status_code == 200, resp.text
        return resp.json()
    return _receive


@pytest.fixture
def set_stock(db):
    def _set(product_id, qty):
        product = db.get(Product, product_id)
        product.stock = Decimal(str(qty))
        db.commit()
    return _set


@pytest.fixture
def stock_of(db):
    def _stock(product_id):
        db.expire_all()
        return db.get(Product, product_id).stock
    return _stock
