import asyncio

import pytest

from conftest import coupon_payload
from storefront.errors import ApiError, CouponRejected
from storefront.services.coupons import MAX_REDEEM_ATTEMPTS, redeem_coupon


def create(client, **overrides):
    resp = client.post("/api/online/coupons", json=coupon_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def validate(client, user, code="SAVE10", order_value=1000, **extra):
    return client.post("/api/online/coupons/validate",
                       json={"code": code, "user_id": user["id"], "order_value": order_value, **extra})


def apply(client, user, coupon, order_id="order-1"):
    return client.post("/api/online/coupons/apply", json={
        "coupon_id": coupon["id"], "user_id": user["id"], "order_id": order_id,
        "discount_amount": 100, "order_value": 1000,
    })


def test_create_normalises_code(client):
    coupon = create(client, code=" save10 ")
    assert coupon["code"] == "SAVE10"
    assert coupon["current_usage_count"] == 0
    assert "usage_by_user" not in coupon
    assert client.post("/api/online/coupons", json=coupon_payload(code="Save10")).status_code == 400


def test_create_rejects_bad_window(client):
    payload = coupon_payload()
    payload["valid_until"], payload["valid_from"] = payload["valid_from"], payload["valid_until"]
    assert client.post("/api/online/coupons", json=payload).status_code == 422
    assert client.post("/api/online/coupons", json=coupon_payload(discount_value=150)).status_code == 422


def test_validate(client, user):
    create(client, max_discount_amount=50)
    data = validate(client, user, code="save10").json()["data"]
    assert data["discount_amount"] == 50
    assert data["final_amount"] == 950

    resp = validate(client, user, code="NOPE")
    assert resp.status_code == 404
    assert resp.json()["message"] == "Invalid coupon code"


def test_validate_rule_failure_is_400(client, user):
    create(client, min_order_value=2000)
    resp = validate(client, user)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Minimum order value of 2000 required to use this coupon"


def test_category_rule_falls_back_to_cart(client, user, product):
    create(client, applicable_categories=["Seafood"])
    assert validate(client, user).status_code == 400
    client.post("/api/online/cart", json={"user_id": user["id"], "inventory_product_id": product["variants"][0]["inventory_product_id"]})
    assert validate(client, user).status_code == 200
    assert validate(client, user, categories=["Dairy"]).status_code == 400


def test_single_use_per_user(client, user):
    coupon = create(client, usage_type="single-use")
    assert apply(client, user, coupon).status_code == 200
    resp = apply(client, user, coupon, order_id="order-2")
    assert resp.status_code == 400
    assert resp.json()["message"] == "You have already used this coupon the maximum number of times"
    assert validate(client, user).status_code == 400

    other = client.post("/api/users", json={"name": "Other", "email": "o@example.com", "password": "secret123"}).json()["data"]
    assert apply(client, other, coupon).status_code == 200


def test_global_cap(client, user):
    coupon = create(client, max_usage_count=2)
    assert apply(client, user, coupon).status_code == 200
    assert apply(client, user, coupon).status_code == 200
    resp = apply(client, user, coupon)
    assert resp.status_code == 400
    assert resp.json()["message"] == "This coupon has reached its maximum usage limit"
    assert client.get(f"/api/online/coupons/{coupon['id']}").json()["data"]["current_usage_count"] == 2


def test_stats(client, user):
    coupon = create(client)
    apply(client, user, coupon)
    apply(client, user, coupon, order_id="order-2")
    stats = client.get(f"/api/online/coupons/{coupon['id']}/stats").json()["data"]["stats"]
    assert stats == {"total_usage": 2, "total_discount": 200, "total_order_value": 2000, "average_discount": 100}


def test_available_and_promotional(client, user):
    create(client, code="BIG20", discount_value=20)
    create(client, code="FLAT50", discount_type="flat", discount_value=50, min_order_value=5000)
    create(client, code="OFF", is_active=False)
    create(client, code="NEWBIE", usage_type="first-time-user-only", discount_value=5)

    data = client.get(f"/api/online/coupons/available?user_id={user['id']}&order_value=1000").json()["data"]
    assert data["is_first_time_user"] is True
    assert [c["code"] for c in data["coupons"]] == ["BIG20", "NEWBIE"]
    assert data["coupons"][0]["estimated_discount"] == 200

    promo = client.get("/api/online/coupons/promotional").json()["data"]
    assert [c["code"] for c in promo] == ["FLAT50", "BIG20", "NEWBIE"]


def test_list_update_delete(client):
    coupon = create(client)
    create(client, code="OTHER", is_active=False)
    assert client.get("/api/online/coupons?is_active=true").json()["count"] == 1
    assert client.get("/api/online/coupons?search=oth").json()["count"] == 1

    updated = client.put(f"/api/online/coupons/{coupon['id']}", json={"code": "fresh", "discount_value": 15}).json()["data"]
    assert (updated["code"], updated["discount_value"]) == ("FRESH", 15)
    assert client.put(f"/api/online/coupons/{coupon['id']}", json={"code": "other"}).status_code == 400
    assert client.put(f"/api/online/coupons/{coupon['id']}", json={"discount_value": 101}).status_code == 400

    assert client.delete(f"/api/online/coupons/{coupon['id']}").status_code == 200
    assert client.get(f"/api/online/coupons/{coupon['id']}").status_code == 404


def test_update_rejects_nulls_on_required_fields(client):
    coupon = create(client)
    url = f"/api/online/coupons/{coupon['id']}"
    for field in ("valid_from", "discount_value", "is_active", "usage_type"):
        resp = client.put(url, json={field: None})
        assert resp.status_code == 400
        assert resp.json()["message"] == f"{field} cannot be null"

    cleared = client.put(url, json={"max_discount_amount": None, "description": None}).json()["data"]
    assert cleared["max_discount_amount"] is None
    assert (cleared["is_active"], cleared["usage_type"], cleared["discount_value"]) == (True, "multi-use", 10)


# Concurrent redemption


class RacingCoupons:
    """Coupon collection where another redemption lands right after each read."""

    def __init__(self, collection, races):
        self._collection = collection
        self.races = races

    def __getattr__(self, name):
        return getattr(self._collection, name)

    async def find_one(self, *args, **kwargs):
        doc = await self._collection.find_one(*args, **kwargs)
        if doc and self.races:
            self.races -= 1
            await self._collection.update_one({"_id": doc["_id"]}, {"$inc": {"current_usage_count": 1}})
        return doc


class RacingDb:
    def __init__(self, db, races):
        self._db = db
        self.coupons = RacingCoupons(db["coupon"], races)

    def __getitem__(self, name):
        return self.coupons if name == "coupon" else self._db[name]


def redeem(db, coupon, user, order_id="order-1"):
    return redeem_coupon(db, coupon["id"], user["id"], order_id=order_id, discount_amount=50, order_value=500)


def test_concurrent_redemptions_share_the_last_slot(client, db, user):
    coupon = create(client, max_usage_count=1)

    async def both():
        return await asyncio.gather(
            redeem(db, coupon, user, "order-1"), redeem(db, coupon, user, "order-2"), return_exceptions=True
        )

    results = asyncio.run(both())
    assert sum(isinstance(r, CouponRejected) for r in results) == 1
    assert asyncio.run(db["coupon_usage"].count_documents({"coupon_id": coupon["id"]})) == 1
    assert client.get(f"/api/online/coupons/{coupon['id']}").json()["data"]["current_usage_count"] == 1


def test_redemption_retries_after_a_lost_race(client, db, user):
    coupon = create(client)
    usage = asyncio.run(redeem(RacingDb(db, races=1), coupon, user))
    assert usage["coupon_code"] == "SAVE10"
    assert client.get(f"/api/online/coupons/{coupon['id']}").json()["data"]["current_usage_count"] == 2


def test_lost_race_for_the_last_slot_is_rejected(client, db, user):
    coupon = create(client, max_usage_count=1)
    with pytest.raises(CouponRejected):
        asyncio.run(redeem(RacingDb(db, races=1), coupon, user))
    assert asyncio.run(db["coupon_usage"].count_documents({})) == 0


def test_redemption_gives_up_when_always_contended(client, db, user):
    coupon = create(client)
    with pytest.raises(ApiError) as exc:
        asyncio.run(redeem(RacingDb(db, races=MAX_REDEEM_ATTEMPTS), coupon, user))
    assert exc.value.status_code == 409
    assert asyncio.run(db["coupon_usage"].count_documents({})) == 0
