ADDRESS = {
    "name": "Asha Rao",
    "phone": "9876543210",
    "address_line1": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


def add(client, user, **overrides):
    return client.post(f"/api/online/addresses?user_id={user['id']}", json={**ADDRESS, **overrides})


def listing(client, user):
    return client.get(f"/api/online/addresses?user_id={user['id']}").json()["data"]


def test_first_address_becomes_default(client, user, address):
    assert address["is_default"] is True
    second = add(client, user, address_type="work").json()["data"]
    assert second["is_default"] is False


def test_single_default_invariant(client, user, address):
    second = add(client, user, is_default=True).json()["data"]
    rows = listing(client, user)
    defaults = [r["id"] for r in rows if r["is_default"]]
    assert defaults == [second["id"]]

    client.patch(f"/api/online/addresses/{address['id']}/default?user_id={user['id']}")
    defaults = [r["id"] for r in listing(client, user) if r["is_default"]]
    assert defaults == [address["id"]]


def test_address_limit(client, user):
    for i in range(5):
        assert add(client, user, address_line1=f"{i} Street").status_code == 201
    resp = add(client, user)
    assert resp.status_code == 400
    assert resp.json()["code"] == "ADDRESS_LIMIT_REACHED"


def test_delete_frees_slot_and_promotes_default(client, user, address):
    second = add(client, user).json()["data"]
    for i in range(3):
        add(client, user, address_line1=f"{i} Street")
    assert client.delete(f"/api/online/addresses/{address['id']}?user_id={user['id']}").status_code == 200

    rows = listing(client, user)
    assert len(rows) == 4
    assert [r["id"] for r in rows if r["is_default"]] == [second["id"]]
    assert add(client, user).status_code == 201


def test_update_address(client, user, address):
    resp = client.put(f"/api/online/addresses/{address['id']}?user_id={user['id']}", json={"city": "Mysuru"})
    assert resp.json()["data"]["city"] == "Mysuru"
    resp = client.put(f"/api/online/addresses/{address['id']}?user_id={user['id']}", json={"is_default": False})
    assert resp.status_code == 400


def test_update_rejects_nulls_on_required_fields(client, user, address):
    url = f"/api/online/addresses/{address['id']}?user_id={user['id']}"
    resp = client.put(url, json={"name": None, "city": None})
    assert resp.status_code == 400
    assert resp.json()["message"] == "name, city cannot be null"
    assert client.put(url, json={"city": ""}).status_code == 422

    stored = client.get(url).json()["data"]
    assert (stored["name"], stored["city"]) == ("Asha Rao", "Bengaluru")
    assert client.put(url, json={"landmark": None}).json()["data"]["landmark"] is None


def test_rejected_default_change_writes_nothing(client, user, address):
    url = f"/api/online/addresses/{address['id']}?user_id={user['id']}"
    assert client.put(url, json={"city": "Mysuru", "is_default": False}).status_code == 400
    assert client.get(url).json()["data"]["city"] == "Bengaluru"


def test_addresses_are_private(client, user, address):
    other = client.post("/api/users", json={"name": "Other", "email": "other@example.com", "password": "secret123"}).json()["data"]
    resp = client.get(f"/api/online/addresses/{address['id']}?user_id={other['id']}")
    assert resp.status_code == 404


def test_unknown_customer(client, db):
    resp = client.get("/api/online/addresses?user_id=nobody")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Customer not found. Please ensure user is registered."
