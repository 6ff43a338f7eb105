from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from shopbill.main import app
from shopbill.models import Invoice, Product, Tenant
from shopbill.schemas import InvoiceItemIn
from shopbill.services.invoices import compute_line


def _item(**kw):
    kw.setdefault("description", "Item")
    kw.setdefault("quantity", 1)
    kw.setdefault("unit_price", 0)
    return InvoiceItemIn(**kw)


# ---------- расчёт строки ----------

def test_compute_line_intra_state_split():
    line = compute_line(_item(quantity=2, unit_price=100), 0, None, Decimal("18"), "intra")
    assert line["amount"] == Decimal("200.00")
    assert line["cgst_amount"] == Decimal("18.00")
    assert line["sgst_amount"] == Decimal("18.00")
    assert line["igst_amount"] == Decimal("0")
    assert line["tax_percent"] == Decimal("18.00")


def test_compute_line_odd_tax_goes_half_up_to_cgst():
    line = compute_line(_item(quantity=1, unit_price=1), 0, None, Decimal("5"), "intra")
    assert line["cgst_amount"] == Decimal("0.03")
    assert line["sgst_amount"] == Decimal("0.02")


def test_compute_line_inter_state_is_igst_only():
    line = compute_line(_item(quantity=1, unit_price=100), 0, None, Decimal("12"), "inter")
    assert line["igst_amount"] == Decimal("12.00")
    assert line["cgst_amount"] == 0 and line["sgst_amount"] == 0


def test_compute_line_percent_discount():
    line = compute_line(_item(unit_price="99.99", discount_type="percent", discount_value=10),
                        0, None, Decimal("18"), "intra")
    assert line["discount_amount"] == Decimal("10.00")
    assert line["amount"] == Decimal("89.99")
    assert line["cgst_amount"] + line["sgst_amount"] == Decimal("16.20")


def test_compute_line_flat_discount_capped_at_base():
    line = compute_line(_item(quantity=1, unit_price=30, discount_type="flat", discount_value=50),
                        0, None, Decimal("0"), "intra")
    assert line["discount_amount"] == Decimal("30.00")
    assert line["amount"] == Decimal("0.00")


def test_compute_line_unknown_discount_type_is_ignored():
    line = compute_line(_item(unit_price=10, discount_type="bogus", discount_value=5),
                        0, None, Decimal("0"), "intra")
    assert line["discount_type"] is None
    assert line["discount_amount"] == 0
    assert line["amount"] == Decimal("10.00")


def test_compute_line_product_rate_and_snapshot():
    product = Product(id=7, name="Galaxy A15", tax_percent=Decimal("12"), last_purchase_price=Decimal("80"),
                      company="Samsung", color="Black", hsn_sac_code="8517")
    line = compute_line(_item(description="", quantity=2, unit_price=100), 0, product, Decimal("18"), "intra")
    assert line["description"] == "Galaxy A15"
    assert line["tax_percent"] == Decimal("12.00")
    assert line["cost_price"] == Decimal("80.00")
    assert line["cost_amount"] == Decimal("160.00")
    assert line["company"] == "Samsung"
    assert line["hsn_sac_code"] == "8517"


def test_compute_line_requires_description():
    with pytest.raises(HTTPException) as err:
        compute_line(_item(description=""), 3, None, Decimal("0"), "intra")
    assert err.value.status_code == 400
    assert err.value.detail == "items[3].description is required"


# ---------- API ----------

def test_create_invoice_totals(client, make_customer, make_product, make_invoice):
    customer = make_customer()
    product = make_product(price=100)
    inv = make_invoice(customer["id"], [
        {"productId": product["id"], "quantity": 2, "unitPrice": 100},
        {"description": "Screen guard", "quantity": 1, "unitPrice": 50, "discountType": "flat",
         "discountValue": 10},
    ])
    assert inv["status"] == "draft"
    assert inv["subtotal"] == 240.0
    assert inv["discount_total"] == 10.0
    assert inv["tax_amount"] == 43.2
    assert inv["total"] == 283.2
    assert inv["tax_percent"] == 18.0
    assert len(inv["invoice_items"]) == 2
    assert inv["invoice_items"][0]["description"] == "USB Cable"


def test_create_invoice_validation(client, make_customer):
    customer = make_customer()
    resp = client.post("/api/invoices", json={"customerId": customer["id"], "invoiceDate": "2024-05-10",
                                              "items": []})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("items")

    resp = client.post("/api/invoices", json={"customerId": customer["id"], "invoiceDate": "garbage",
                                              "items": [{"description": "x", "quantity": 1, "unitPrice": 1}]})
    assert resp.status_code == 400
    assert resp.json()["error"].endswith("must be a valid date")


def test_create_invoice_rejects_foreign_customer_and_product(client, make_customer):
    resp = client.post("/api/invoices", json={"customerId": 999, "invoiceDate": "2024-05-10",
                                              "items": [{"description": "x", "quantity": 1, "unitPrice": 1}]})
    assert resp.status_code == 400

    customer = make_customer()
    resp = client.post("/api/invoices", json={"customerId": customer["id"], "invoiceDate": "2024-05-10",
                                              "items": [{"productId": 999, "quantity": 1, "unitPrice": 1}]})
    assert resp.status_code == 400
    assert resp.json()["error"] == "items[0].productId not found"


def test_sent_invoice_deducts_stock(client, make_customer, make_product, make_invoice, set_stock, stock_of):
    customer = make_customer()
    product = make_product()
    set_stock(product["id"], 10)

    make_invoice(customer["id"], [{"productId": product["id"], "quantity": 3, "unitPrice": 100}], status="sent")
    assert stock_of(product["id"]) == Decimal("7")

    moves = client.get(f"/api/products/{product['id']}/stock-movements").json()
    assert len(moves) == 1
    assert moves[0]["movement_type"] == "sale"
    assert moves[0]["direction"] == "out"
    assert moves[0]["quantity"] == 3.0


def test_draft_does_not_deduct_until_sent(client, make_customer, make_product, make_invoice, set_stock, stock_of):
    customer = make_customer()
    product = make_product()
    set_stock(product["id"], 5)
    inv = make_invoice(customer["id"], [{"productId": product["id"], "quantity": 2, "unitPrice": 100}])
    assert stock_of(product["id"]) == Decimal("5")

    resp = client.patch(f"/api/invoices/{inv['id']}", json={"status": "sent"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "sent"
    assert stock_of(product["id"]) == Decimal("3")

    # sent -> paid: второй раз не списывается
    resp = client.patch(f"/api/invoices/{inv['id']}", json={"status": "paid"})
    assert resp.status_code == 200
    assert stock_of(product["id"]) == Decimal("3")


def test_stock_never_goes_negative(client, make_customer, make_product, make_invoice, set_stock, stock_of):
    customer = make_customer()
    product = make_product()
    set_stock(product["id"], 1)
    make_invoice(customer["id"], [{"productId": product["id"], "quantity": 3, "unitPrice": 100}], status="paid")
    assert stock_of(product["id"]) == Decimal("0")


def test_failed_stock_deduction_rolls_back_invoice(client, db, tenant, monkeypatch, make_customer, make_product,
                                                   set_stock, stock_of):
    customer = make_customer()
    product = make_product()
    set_stock(product["id"], 5)
    db.refresh(tenant)
    next_number = tenant.invoice_next_number

    def broken(*args, **kwargs):
        raise RuntimeError("stock write failed")

    monkeypatch.setattr("shopbill.services.invoices.deduct_stock", broken)
    failing = TestClient(app, raise_server_exceptions=False)
    resp = failing.post("/api/invoices", json={
        "customerId": customer["id"],
        "invoiceDate": "2024-05-10",
        "status": "sent",
        "items": [{"productId": product["id"], "quantity": 2, "unitPrice": 100}],
    })
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}

    assert client.get("/api/invoices").json()["total"] == 0
    db.expire_all()
    assert db.get(Tenant, tenant.id).invoice_next_number == next_number
    assert stock_of(product["id"]) == Decimal("5")


def test_illegal_status_transitions(client, make_customer, make_invoice):
    customer = make_customer()
    inv = make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}], status="sent")

    resp = client.patch(f"/api/invoices/{inv['id']}", json={"status": "draft"})
    assert resp.status_code == 400

    draft = make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}])
    resp = client.patch(f"/api/invoices/{draft['id']}", json={"status": "paid"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cannot change status from draft to paid"


def test_update_draft_items(client, make_customer, make_product, make_invoice, set_stock, stock_of):
    customer = make_customer()
    product = make_product()
    set_stock(product["id"], 10)
    inv = make_invoice(customer["id"], [{"description": "Old line", "quantity": 1, "unitPrice": 10}])

    resp = client.patch(f"/api/invoices/{inv['id']}", json={
        "customerId": customer["id"],
        "invoiceDate": "2024-05-12",
        "gstType": "inter",
        "status": "sent",
        "items": [{"productId": product["id"], "quantity": 4, "unitPrice": 100}],
    })
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "sent"
    assert data["gst_type"] == "inter"
    assert data["invoice_date"] == "2024-05-12"
    assert [it["quantity"] for it in data["invoice_items"]] == [4.0]
    assert data["invoice_items"][0]["igst_amount"] == 72.0
    assert data["total"] == 472.0
    assert stock_of(product["id"]) == Decimal("6")


def test_paid_invoice_is_locked(client, make_customer, make_invoice):
    customer = make_customer()
    inv = make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}], status="paid")

    resp = client.patch(f"/api/invoices/{inv['id']}", json={
        "customerId": customer["id"], "invoiceDate": "2024-05-12",
        "items": [{"description": "y", "quantity": 1, "unitPrice": 1}],
    })
    assert resp.status_code == 400
    assert client.delete(f"/api/invoices/{inv['id']}").status_code == 400


def test_delete_draft_invoice(client, make_customer, make_invoice):
    customer = make_customer()
    inv = make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}])
    assert client.delete(f"/api/invoices/{inv['id']}").status_code == 204
    assert client.get(f"/api/invoices/{inv['id']}").status_code == 404


def test_list_and_detail(client, make_customer, make_invoice):
    a = make_customer("Anil")
    b = make_customer("Bina")
    make_invoice(a["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}])
    inv = make_invoice(b["id"], [{"description": "y", "quantity": 1, "unitPrice": 20}], status="sent")

    listing = client.get("/api/invoices", params={"status": "sent"}).json()
    assert listing["total"] == 1
    assert listing["data"][0]["id"] == inv["id"]
    assert "invoice_items" not in listing["data"][0]

    by_customer = client.get("/api/invoices", params={"customerId": a["id"]}).json()
    assert by_customer["total"] == 1

    detail = client.get(f"/api/invoices/{inv['id']}").json()
    assert detail["customer"]["name"] == "Bina"
    assert detail["balance"] == 23.6
    assert detail["payments"] == []
    assert detail["invoice_items"][0]["serials"] == []


def test_cleanup_old_drafts(client, db, make_customer, make_invoice):
    customer = make_customer()
    old = make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}])
    fresh = make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}])
    sent = make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}], status="sent")
    for inv_id in (old["id"], sent["id"]):
        db.get(Invoice, inv_id).created_at = datetime.utcnow() - timedelta(days=45)
    db.commit()

    resp = client.post("/api/invoices/cleanup-drafts", json={"days": 30})
    assert resp.status_code == 200
    assert resp.json() == {"deleted": 1}
    assert client.get(f"/api/invoices/{old['id']}").status_code == 404
    assert client.get(f"/api/invoices/{fresh['id']}").status_code == 200
    assert client.get(f"/api/invoices/{sent['id']}").status_code == 200


def test_cleanup_without_body_uses_default(client, make_customer, make_invoice):
    customer = make_customer()
    make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}])
    resp = client.post("/api/invoices/cleanup-drafts")
    assert resp.json() == {"deleted": 0}


# ---------- серийники и партии при продаже ----------

def test_sale_uses_chosen_serials_first(client, make_customer, make_supplier, make_product, receive, make_invoice,
                                        stock_of):
    supplier = make_supplier()
    phone = make_product("Redmi 13", price=12000, tracking_type="serial")
    receive(supplier["id"], [{"productId": phone["id"], "quantity": 2, "purchasePrice": 10000}],
            serials={str(phone["id"]): ["IMEI-A", "IMEI-B"]})
    serials = client.get(f"/api/products/{phone['id']}/serials").json()
    by_number = {s["serial_number"]: s["id"] for s in serials}

    customer = make_customer()
    inv = make_invoice(customer["id"], [{"productId": phone["id"], "quantity": 1, "unitPrice": 12000}],
                       status="sent", serialIds={str(phone["id"]): [by_number["IMEI-B"]]})

    sold = client.get(f"/api/products/{phone['id']}/serials", params={"status": "sold"}).json()
    assert [s["serial_number"] for s in sold] == ["IMEI-B"]
    assert stock_of(phone["id"]) == Decimal("1")

    detail = client.get(f"/api/invoices/{inv['id']}").json()
    assert detail["invoice_items"][0]["serials"][0]["serial_number"] == "IMEI-B"
    assert detail["invoice_items"][0]["cost_price"] == 10000.0


def test_sale_falls_back_to_oldest_serials(client, make_customer, make_supplier, make_product, receive,
                                           make_invoice):
    supplier = make_supplier()
    phone = make_product("Redmi 13", price=12000, tracking_type="serial")
    receive(supplier["id"], [{"productId": phone["id"], "quantity": 3, "purchasePrice": 10000}],
            serials={str(phone["id"]): ["S1", "S2", "S3"]})

    customer = make_customer()
    make_invoice(customer["id"], [{"productId": phone["id"], "quantity": 2, "unitPrice": 12000}], status="sent")

    sold = client.get(f"/api/products/{phone['id']}/serials", params={"status": "sold"}).json()
    assert sorted(s["serial_number"] for s in sold) == ["S1", "S2"]


def test_sale_consumes_batches_fefo(client, db, make_customer, make_supplier, make_product, receive, make_invoice):
    supplier = make_supplier()
    syrup = make_product("Cough Syrup", price=90, tracking_type="batch")
    receive(supplier["id"], [{"productId": syrup["id"], "quantity": 5, "purchasePrice": 50}],
            batches={str(syrup["id"]): {"batch_number": "LATE", "expiry_date": "2025-01-01"}})
    receive(supplier["id"], [{"productId": syrup["id"], "quantity": 5, "purchasePrice": 55}],
            batches={str(syrup["id"]): {"batch_number": "EARLY", "expiry_date": "2024-06-01"}})
    receive(supplier["id"], [{"productId": syrup["id"], "quantity": 5, "purchasePrice": 60}],
            batches={str(syrup["id"]): {"batch_number": "NOEXP"}})

    customer = make_customer()
    make_invoice(customer["id"], [{"productId": syrup["id"], "quantity": 7, "unitPrice": 90}], status="sent")

    batches = {b["batch_number"]: b["quantity"]
               for b in client.get(f"/api/products/{syrup['id']}/batches").json()}
    assert batches == {"EARLY": 0.0, "LATE": 3.0, "NOEXP": 5.0}

    active = client.get(f"/api/products/{syrup['id']}/batches", params={"active": "true"}).json()
    assert [b["batch_number"] for b in active] == ["LATE", "NOEXP"]


def test_two_lines_of_same_serial_product_sell_distinct_serials(client, make_customer, make_supplier, make_product,
                                                                receive, make_invoice, stock_of):
    supplier = make_supplier()
    phone = make_product("Redmi 13", price=12000, tracking_type="serial")
    receive(supplier["id"], [{"productId": phone["id"], "quantity": 2, "purchasePrice": 10000}],
            serials={str(phone["id"]): ["IMEI-A", "IMEI-B"]})

    customer = make_customer()
    make_invoice(customer["id"], [
        {"productId": phone["id"], "quantity": 1, "unitPrice": 12000},
        {"productId": phone["id"], "quantity": 1, "unitPrice": 12000},
    ], status="sent")

    serials = client.get(f"/api/products/{phone['id']}/serials").json()
    assert {s["serial_number"]: s["status"] for s in serials} == {"IMEI-A": "sold", "IMEI-B": "sold"}
    assert stock_of(phone["id"]) == Decimal("0")

    out = [m for m in client.get(f"/api/products/{phone['id']}/stock-movements").json() if m["direction"] == "out"]
    assert len(out) == 2
    assert len({m["serial_id"] for m in out}) == 2


def test_two_lines_of_same_batch_product_continue_fefo(client, make_customer, make_supplier, make_product, receive,
                                                       make_invoice, stock_of):
    supplier = make_supplier()
    syrup = make_product("Cough Syrup", price=90, tracking_type="batch")
    receive(supplier["id"], [{"productId": syrup["id"], "quantity": 2, "purchasePrice": 50}],
            batches={str(syrup["id"]): {"batch_number": "B1", "expiry_date": "2024-06-01"}})
    receive(supplier["id"], [{"productId": syrup["id"], "quantity": 3, "purchasePrice": 55}],
            batches={str(syrup["id"]): {"batch_number": "B2", "expiry_date": "2025-01-01"}})

    customer = make_customer()
    make_invoice(customer["id"], [
        {"productId": syrup["id"], "quantity": 2, "unitPrice": 90},
        {"productId": syrup["id"], "quantity": 1, "unitPrice": 90},
    ], status="sent")

    batches = client.get(f"/api/products/{syrup['id']}/batches").json()
    assert {b["batch_number"]: b["quantity"] for b in batches} == {"B1": 0.0, "B2": 2.0}
    ids = {b["id"]: b["batch_number"] for b in batches}
    assert stock_of(syrup["id"]) == Decimal("2")

    out = [m for m in client.get(f"/api/products/{syrup['id']}/stock-movements").json() if m["direction"] == "out"]
    assert sorted((ids[m["batch_id"]], m["quantity"]) for m in out) == [("B1", 2.0), ("B2", 1.0)]


# ---------- оплаты ----------

def test_payments_drive_status(client, make_customer, make_invoice):
    customer = make_customer()
    inv = make_invoice(customer["id"], [{"description": "Service", "quantity": 2, "unitPrice": 100}],
                       status="sent")
    url = f"/api/invoices/{inv['id']}/payments"

    resp = client.post(url, json={"amount": 100, "paymentMethod": "upi", "reference": "UTR123"})
    assert resp.status_code == 201
    first = resp.json()
    assert first["payment_method"] == "upi"

    detail = client.get(f"/api/invoices/{inv['id']}").json()
    assert detail["amount_paid"] == 100.0
    assert detail["status"] == "sent"

    resp = client.post(url, json={"amount": 200, "paymentMethod": "cash"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Amount exceeds balance due (136.00)"

    resp = client.post(url, json={"amount": 136, "paymentMethod": "cash", "paidAt": "2024-05-20"})
    assert resp.status_code == 201
    detail = client.get(f"/api/invoices/{inv['id']}").json()
    assert detail["status"] == "paid"
    assert detail["balance"] == 0.0

    assert client.delete(f"{url}/{first['id']}").status_code == 204
    detail = client.get(f"/api/invoices/{inv['id']}").json()
    assert detail["amount_paid"] == 136.0
    assert detail["status"] == "sent"


def test_payment_validation(client, make_customer, make_invoice):
    customer = make_customer()
    draft = make_invoice(customer["id"], [{"description": "x", "quantity": 1, "unitPrice": 10}])
    url = f"/api/invoices/{draft['id']}/payments"

    resp = client.post(url, json={"amount": 5, "paymentMethod": "cash"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cannot record payment on a draft invoice"

    resp = client.post(url, json={"amount": 5, "paymentMethod": "cheque"})
    assert resp.status_code == 400
    assert resp.json()["error"].endswith("payment_method must be cash, upi, or bank_transfer")

    resp = client.post(url, json={"amount": 0, "paymentMethod": "cash"})
    assert resp.status_code == 400

    assert client.delete(f"{url}/999").status_code == 404
