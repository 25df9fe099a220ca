import asyncio

import pytest
from bson import ObjectId

from storefront.errors import ApiError, StockExceeded
from storefront.routers.cart import _store_quantity


def inv(product, index=0):
    return product["variants"][index]["inventory_product_id"]


def add(client, user, inventory_product_id, quantity=1, style=None):
    body = {"user_id": user["id"], "inventory_product_id": inventory_product_id, "quantity": quantity}
    if style is not None:
        body["selected_cutting_style"] = style
    return client.post("/api/online/cart", json=body)


def test_add_snapshot_and_totals(client, user, product):
    resp = add(client, user, inv(product), 2)
    assert resp.status_code == 200
    body = resp.json()
    row = body["data"][0]
    assert row["display_name"] == "500g"
    assert row["variant_image"] == "https://cdn.test/products/seer-500.jpg?signed=1"
    assert body["total_items"] == 2
    assert body["total_price"] == 1000
    assert body["total_savings"] == 200


def test_adding_again_merges_rows(client, user, product):
    add(client, user, inv(product), 2)
    body = add(client, user, inv(product), 3).json()
    assert len(body["data"]) == 1
    assert body["data"][0]["quantity"] == 5


def test_stock_is_shared_across_cutting_styles(client, user, product):
    one_kg = inv(product, 1)
    assert add(client, user, one_kg, 2, "Curry cut").status_code == 200
    resp = add(client, user, one_kg, 2, "Fillet")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Only 3 items available in stock"
    assert add(client, user, one_kg, 1, "Fillet").status_code == 200

    rows = client.get(f"/api/online/cart?user_id={user['id']}").json()["data"]
    assert sorted((r["selected_cutting_style"], r["quantity"]) for r in rows) == [("Curry cut", 2), ("Fillet", 1)]


def test_out_of_stock_and_unknown_items(client, user, product, db):
    asyncio.run(db["online_product"].update_one(
        {"_id": ObjectId(product["id"])}, {"$set": {"variants.1.stock_quantity": 0}}
    ))
    resp = add(client, user, inv(product, 1))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Item is out of stock"
    assert add(client, user, "no-such-item").status_code == 404


def test_update_quantity(client, user, product):
    add(client, user, inv(product, 1), 1, "Fillet")
    url = f"/api/online/cart/{inv(product, 1)}"
    body = client.put(url, json={"user_id": user["id"], "quantity": 3, "selected_cutting_style": "Fillet"}).json()
    assert body["data"][0]["quantity"] == 3
    assert client.put(url, json={"user_id": user["id"], "quantity": 4, "selected_cutting_style": "Fillet"}).status_code == 400
    assert client.put(url, json={"user_id": user["id"], "quantity": 1}).status_code == 404

    body = client.put(url, json={"user_id": user["id"], "quantity": 0, "selected_cutting_style": "Fillet"}).json()
    assert body["data"] == []
    assert body["message"] == "Item removed from cart"


def test_remove_by_style_and_clear(client, user, product):
    one_kg = inv(product, 1)
    add(client, user, one_kg, 1, "Curry cut")
    add(client, user, one_kg, 1, "Fillet")
    add(client, user, inv(product), 1)

    body = client.delete(f"/api/online/cart/{one_kg}?user_id={user['id']}&selected_cutting_style=Fillet").json()
    assert len(body["data"]) == 2
    body = client.delete(f"/api/online/cart/{one_kg}?user_id={user['id']}").json()
    assert len(body["data"]) == 1
    assert client.delete(f"/api/online/cart/{one_kg}?user_id={user['id']}").status_code == 404

    assert client.delete(f"/api/online/cart?user_id={user['id']}").json()["removed"] == 1


def test_sync_merges_and_clamps(client, user, product):
    add(client, user, inv(product), 4)
    body = client.post("/api/online/cart/sync", json={
        "user_id": user["id"],
        "items": [
            {"inventory_product_id": inv(product), "quantity": 2},
            {"inventory_product_id": inv(product, 1), "quantity": 10, "selected_cutting_style": "Fillet"},
            {"inventory_product_id": "gone", "quantity": 1},
        ],
    }).json()
    quantities = {(r["display_name"], r["selected_cutting_style"]): r["quantity"] for r in body["data"]}
    assert quantities == {("500g", None): 4, ("1kg", "Fillet"): 3}
    assert body["message"] == "Cart synced successfully"


def stored_docs(db, user, product):
    customer = asyncio.run(db["customer"].find_one({"user_id": user["id"]}))
    stored = asyncio.run(db["online_product"].find_one({"_id": ObjectId(product["id"])}))
    return customer, stored


def cart_row(db, customer, style):
    return asyncio.run(db["cart"].find_one({"customer_id": customer["_id"], "selected_cutting_style": style}))


def test_write_on_a_changed_row_is_a_conflict(client, db, user, product):
    add(client, user, inv(product, 1), 1, "Fillet")
    customer, stored = stored_docs(db, user, product)
    seen = cart_row(db, customer, "Fillet")
    add(client, user, inv(product, 1), 1, "Fillet")

    with pytest.raises(ApiError) as exc:
        asyncio.run(_store_quantity(db, customer, stored, 1, "Fillet", seen, 3))
    assert exc.value.status_code == 409
    assert cart_row(db, customer, "Fillet")["quantity"] == 2


def test_new_row_over_shared_stock_is_removed(client, db, user, product):
    add(client, user, inv(product, 1), 2, "Curry cut")
    customer, stored = stored_docs(db, user, product)

    with pytest.raises(StockExceeded):
        asyncio.run(_store_quantity(db, customer, stored, 1, "Fillet", None, 2))
    assert cart_row(db, customer, "Fillet") is None
    assert cart_row(db, customer, "Curry cut")["quantity"] == 2


def test_existing_row_over_shared_stock_is_reverted(client, db, user, product):
    add(client, user, inv(product, 1), 2, "Curry cut")
    add(client, user, inv(product, 1), 1, "Fillet")
    customer, stored = stored_docs(db, user, product)
    seen = cart_row(db, customer, "Fillet")

    with pytest.raises(StockExceeded):
        asyncio.run(_store_quantity(db, customer, stored, 1, "Fillet", seen, 2))
    assert cart_row(db, customer, "Fillet")["quantity"] == 1


# Wishlist


def test_wishlist(client, user, product):
    body = {"user_id": user["id"], "product_id": product["id"], "product_data": {"brand": "Ocean Fresh"}}
    first = client.post("/api/online/wishlist", json=body)
    assert first.status_code == 201
    assert first.json()["data"]["brand"] == "Ocean Fresh"

    again = client.post("/api/online/wishlist", json=body)
    assert again.status_code == 409
    assert again.json()["data"]["product_id"] == product["id"]

    check = client.get(f"/api/online/wishlist/check/{product['id']}?user_id={user['id']}").json()["data"]
    assert check["in_wishlist"] is True
    assert client.get(f"/api/online/wishlist?user_id={user['id']}").json()["count"] == 1

    assert client.delete(f"/api/online/wishlist/{product['id']}?user_id={user['id']}").status_code == 200
    assert client.delete(f"/api/online/wishlist/{product['id']}?user_id={user['id']}").status_code == 404
    assert client.delete(f"/api/online/wishlist?user_id={user['id']}").json()["removed"] == 0
