import re

PO_URL = "/api/purchase/purchase-orders"


def po_payload(**overrides):
    payload = {
        "supplier_info": {
            "supplier_id": "SUP-1",
            "supplier_name": "Coastal Traders",
            "supplier_email": "sales@coastal.example",
        },
        "warehouse_id": "WH-1",
        "po_date": "2025-02-10T00:00:00",
        "items": [
            {"product_name": "Seer fish", "quantity": 10, "uom": "kg", "price": 400, "gst_percentage": 5,
             "total_price": 4200},
        ],
        "sub_total": 4000,
        "total_gst": 200,
        "total_quantity": 10,
        "grand_total": 4200,
    }
    payload.update(overrides)
    return payload


def test_draft_then_complete(client, mailer, notifier, admin):
    assert client.get(f"{PO_URL}/next-number").json()["data"]["po_id"].endswith("-001")

    resp = client.post(PO_URL, json=po_payload())
    assert resp.status_code == 201
    draft = resp.json()
    assert draft["message"] == "Purchase order saved as draft"
    assert re.fullmatch(r"PO-\d{4}-001", draft["data"]["po_id"])
    assert mailer.outbox == []
    assert "Purchase Order Draft" in notifier.titles()

    assert client.get(f"{PO_URL}/next-number").json()["data"]["po_id"].endswith("-002")

    url = f"{PO_URL}/{draft['data']['id']}"
    updated = client.put(url, json=po_payload(po_status="completed"))
    assert updated.json()["message"] == "Purchase order completed and sent to supplier via email"
    assert updated.json()["data"]["po_id"] == draft["data"]["po_id"]
    assert mailer.outbox[0]["to"] == ["sales@coastal.example"]
    assert "Purchase Order Completed" in notifier.titles()

    resp = client.put(url, json=po_payload(po_status="draft"))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Purchase order is completed and cannot be modified"


def test_create_completed_sends_email(client, mailer):
    client.post("/api/web/company", json={"company_name": "Sea Mart", "email": "hi@seamart.example", "phone": "123"})
    resp = client.post(PO_URL, json=po_payload(po_status="completed"))
    assert resp.json()["message"] == "Purchase order created and sent to supplier via email"
    assert mailer.outbox[0]["subject"].endswith("from Sea Mart")


def test_completed_without_supplier_email(client, mailer):
    payload = po_payload(po_status="completed")
    payload["supplier_info"].pop("supplier_email")
    resp = client.post(PO_URL, json=payload)
    assert resp.json()["message"] == "Purchase order created and marked as completed"
    assert mailer.outbox == []


def test_po_ids_are_sequential(client):
    ids = [client.post(PO_URL, json=po_payload()).json()["data"]["po_id"] for _ in range(3)]
    assert [i.rsplit("-", 1)[1] for i in ids] == ["001", "002", "003"]


def test_validation(client):
    assert client.post(PO_URL, json=po_payload(items=[])).status_code == 422
    payload = po_payload()
    payload["supplier_info"]["supplier_id"] = ""
    assert client.post(PO_URL, json=payload).status_code == 422


def test_delete_is_forbidden(client):
    created = client.post(PO_URL, json=po_payload()).json()["data"]
    resp = client.delete(f"{PO_URL}/{created['id']}")
    assert resp.status_code == 403
    assert resp.json()["message"].startswith("Purchase orders cannot be deleted")
    assert client.get(f"{PO_URL}/{created['id']}").status_code == 200


def test_list_filters_and_stats(client):
    client.post(PO_URL, json=po_payload())
    client.post(PO_URL, json=po_payload(warehouse_id="WH-2", po_date="2025-03-15T00:00:00", po_status="completed",
                                        grand_total=1000))
    other = po_payload()
    other["supplier_info"]["supplier_id"] = "SUP-2"
    client.post(PO_URL, json=other)

    assert client.get(PO_URL).json()["count"] == 3
    assert client.get(f"{PO_URL}?warehouse_id=WH-2").json()["count"] == 1
    assert client.get(f"{PO_URL}?supplier_id=SUP-2").json()["count"] == 1
    assert client.get(f"{PO_URL}?status=draft").json()["count"] == 2
    assert client.get(f"{PO_URL}?start_date=2025-03-01T00:00:00").json()["count"] == 1
    assert client.get(f"{PO_URL}?end_date=2025-03-01T00:00:00").json()["count"] == 2

    stats = client.get(f"{PO_URL}/stats").json()["data"]
    assert (stats["total"], stats["draft"], stats["completed"]) == (3, 2, 1)
    assert stats["total_value"] == 9400
    assert len(stats["recent"]) == 3


# Company settings


def test_company_defaults_then_save(client):
    defaults = client.get("/api/web/company").json()["data"]
    assert defaults["company_name"] == ""
    assert defaults["social_media"]["instagram"] == ""

    saved = client.post("/api/web/company", json={
        "company_name": " Sea Mart ", "email": "hi@seamart.example", "phone": "080-1234",
        "social_media": {"instagram": "https://instagram.com/seamart"},
    }).json()
    assert saved["message"] == "Company settings saved successfully"
    assert saved["data"]["company_name"] == "Sea Mart"

    client.post("/api/web/company", json={"company_name": "Sea Mart Ltd", "email": "hi@seamart.example", "phone": "1"})
    data = client.get("/api/web/company").json()["data"]
    assert data["company_name"] == "Sea Mart Ltd"
    assert data["social_media"]["instagram"] == ""


def test_company_validation(client):
    base = {"company_name": "Sea Mart", "email": "hi@seamart.example", "phone": "1"}
    assert client.post("/api/web/company", json={**base, "company_name": "  "}).json()["message"] == "Company name is required"
    assert client.post("/api/web/company", json={**base, "phone": ""}).json()["message"] == "Phone is required"
    resp = client.post("/api/web/company", json={**base, "email": "not-an-email"})
    assert resp.status_code == 422
    assert resp.json()["message"].startswith("email:")
    assert client.post("/api/web/company", json={**base, "email": ""}).status_code == 422
    assert client.get("/api/web/company").json()["data"]["company_name"] == ""


# Suppliers

SUPPLIER_URL = "/api/purchase/suppliers"


def test_supplier_crud(client):
    resp = client.post(SUPPLIER_URL, json={
        "name": "Coastal Traders", "phone": "080-555", "email": "Sales@Coastal.example",
        "contact_person_name": "Meera", "city": "Mangaluru",
    })
    assert resp.status_code == 201
    supplier = resp.json()["data"]
    assert supplier["email"] == "sales@coastal.example"
    assert supplier["status"] == "active"

    assert client.get(SUPPLIER_URL).json()["count"] == 1
    assert client.get(f"{SUPPLIER_URL}?search=meera").json()["count"] == 1
    assert client.get(f"{SUPPLIER_URL}?status=inactive").json()["count"] == 0

    url = f"{SUPPLIER_URL}/{supplier['id']}"
    updated = client.put(url, json={"status": "inactive", "remarks": "Paused for monsoon"}).json()["data"]
    assert (updated["status"], updated["name"]) == ("inactive", "Coastal Traders")
    resp = client.put(url, json={"name": None})
    assert resp.status_code == 400
    assert resp.json()["message"] == "name cannot be null"

    assert client.delete(url).json()["message"] == "Supplier deleted successfully"
    assert client.get(url).status_code == 404
    assert client.delete(url).status_code == 404


def test_supplier_requires_contact_details(client):
    assert client.post(SUPPLIER_URL, json={"name": "No Mail", "phone": "1"}).status_code == 422
    assert client.post(SUPPLIER_URL, json={"name": "Bad", "phone": "1", "email": "nope"}).status_code == 422
