from shopbill.models import Customer, Tenant


# ---------- товары ----------

def test_product_create_and_defaults(client, make_product):
    product = make_product("iPhone 15", price=79900, sku=" IP15-128 ", hsnSacCode="8517", tax_percent="abc",
                           company="Apple", color="Blue")
    assert product["sku"] == "IP15-128"
    assert product["hsn_sac_code"] == "8517"
    assert product["tax_percent"] is None
    assert product["tracking_type"] == "quantity"
    assert product["stock"] == 0.0
    assert product["is_active"] is True


def test_product_validation(client):
    resp = client.post("/api/products", json={"name": " ", "price": 10})
    assert resp.status_code == 400
    assert resp.json()["error"] == "name: name is required"

    resp = client.post("/api/products", json={"name": "X", "price": -1})
    assert resp.status_code == 400

    resp = client.post("/api/products", json={"name": "X", "price": 1, "tracking_type": "weight"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "tracking_type: tracking_type must be quantity, serial, or batch"


def test_duplicate_sku_is_conflict(client, make_product):
    make_product("A", sku="SKU-1")
    resp = client.post("/api/products", json={"name": "B", "price": 1, "sku": "SKU-1"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "A product with this SKU already exists"

    other = make_product("C", sku="SKU-2")
    resp = client.patch(f"/api/products/{other['id']}", json={"sku": "SKU-1"})
    assert resp.status_code == 409


def test_product_search_and_inactive(client, make_product):
    make_product("Charger 20W", company="Samsung")
    hidden = make_product("Old Charger")
    make_product("Earbuds", tracking_type="serial")
    client.patch(f"/api/products/{hidden['id']}", json={"is_active": False})

    found = client.get("/api/products", params={"q": "charger"}).json()
    assert [p["name"] for p in found["data"]] == ["Charger 20W"]

    found = client.get("/api/products", params={"q": "samsung"}).json()
    assert found["total"] == 1

    everything = client.get("/api/products", params={"include_inactive": "true"}).json()
    assert everything["total"] == 3

    serial = client.get("/api/products", params={"tracking_type": "serial"}).json()
    assert [p["name"] for p in serial["data"]] == ["Earbuds"]

    paged = client.get("/api/products", params={"limit": 1, "offset": 1}).json()
    assert paged["total"] == 2
    assert len(paged["data"]) == 1


def test_product_update(client, make_product, set_stock):
    product = make_product()
    resp = client.patch(f"/api/products/{product['id']}", json={"price": 120, "color": ""})
    assert resp.status_code == 200
    assert resp.json()["price"] == 120.0
    assert resp.json()["color"] is None

    assert client.patch(f"/api/products/{product['id']}", json={}).status_code == 400
    assert client.patch(f"/api/products/{product['id']}", json={"name": None}).status_code == 400

    set_stock(product["id"], 2)
    resp = client.patch(f"/api/products/{product['id']}", json={"tracking_type": "serial"})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Cannot change tracking type")

    set_stock(product["id"], 0)
    resp = client.patch(f"/api/products/{product['id']}", json={"tracking_type": "batch"})
    assert resp.json()["tracking_type"] == "batch"

    # null не сбрасывает тип учёта
    resp = client.patch(f"/api/products/{product['id']}", json={"tracking_type": None, "price": 130})
    assert resp.status_code == 200
    assert resp.json()["tracking_type"] == "batch"
    assert resp.json()["price"] == 130.0


def test_product_delete(client, make_product, make_customer, make_invoice):
    unused = make_product("Unused")
    assert client.delete(f"/api/products/{unused['id']}").status_code == 204
    assert client.get(f"/api/products/{unused['id']}").status_code == 404

    sold = make_product("Sold")
    customer = make_customer()
    make_invoice(customer["id"], [{"productId": sold["id"], "quantity": 1, "unitPrice": 10}])
    resp = client.delete(f"/api/products/{sold['id']}")
    assert resp.status_code == 409
    assert resp.json()["error"] == "Cannot delete: product is used in invoices"


# ---------- покупатели / поставщики ----------

def test_customer_crud(client, make_customer):
    ravi = make_customer("Ravi Kumar", email="ravi@example.com", phone=" 98450 12345 ")
    make_customer("Sunita")
    assert ravi["phone"] == "98450 12345"

    found = client.get("/api/customers", params={"q": "RAVI@"}).json()
    assert found["total"] == 1

    resp = client.patch(f"/api/customers/{ravi['id']}", json={"address": "MG Road, Pune"})
    assert resp.json()["address"] == "MG Road, Pune"
    assert resp.json()["name"] == "Ravi Kumar"

    assert client.patch(f"/api/customers/{ravi['id']}", json={}).status_code == 400
    assert client.post("/api/customers", json={"name": ""}).status_code == 400


def test_other_tenant_rows_are_invisible(client, db):
    other = Tenant(name="Other", slug="other")
    db.add(other)
    db.flush()
    stranger = Customer(tenant_id=other.id, name="Stranger")
    db.add(stranger)
    db.commit()

    assert client.get(f"/api/customers/{stranger.id}").status_code == 404
    assert client.get("/api/customers").json()["total"] == 0
    resp = client.post("/api/invoices", json={
        "customerId": stranger.id, "invoiceDate": "2024-05-10",
        "items": [{"description": "x", "quantity": 1, "unitPrice": 1}],
    })
    assert resp.status_code == 400


def test_supplier_delete_rules(client, make_supplier, make_product):
    idle = make_supplier("Idle Traders")
    assert client.delete(f"/api/suppliers/{idle['id']}").status_code == 204
    assert client.get(f"/api/suppliers/{idle['id']}").status_code == 404

    busy = make_supplier("Busy Traders")
    product = make_product()
    client.post("/api/purchase-bills", json={
        "supplierId": busy["id"], "billDate": "2024-05-01",
        "items": [{"productId": product["id"], "quantity": 1, "purchasePrice": 5}],
    })
    resp = client.delete(f"/api/suppliers/{busy['id']}")
    assert resp.status_code == 409
    assert resp.json()["error"] == "Cannot delete: supplier has purchase bills"


def test_health_and_unknown_route(client):
    assert client.get("/health").json() == {"status": "ok"}
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not found"}
