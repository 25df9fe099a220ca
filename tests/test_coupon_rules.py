from datetime import datetime, timedelta

import pytest

from storefront.errors import CouponRejected
from storefront.services.coupons import check_coupon, compute_discount, is_exhausted, per_user_limit

NOW = datetime(2025, 6, 1, 12, 0)


def make_coupon(**overrides):
    coupon = {
        "code": "SAVE10",
        "discount_type": "percentage",
        "discount_value": 10,
        "usage_type": "multi-use",
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=1),
        "is_active": True,
        "current_usage_count": 0,
    }
    coupon.update(overrides)
    return coupon


def check(coupon, **kwargs):
    args = {"now": NOW, "order_value": 1000, "user_usage_count": 0, "user_order_count": 0, "categories": None}
    args.update(kwargs)
    return check_coupon(coupon, **args)


def test_percentage_discount():
    assert check(make_coupon()) == 100


def test_percentage_discount_is_capped():
    assert compute_discount(make_coupon(max_discount_amount=50), 1000) == 50


def test_flat_discount_never_exceeds_order_value():
    assert compute_discount(make_coupon(discount_type="flat", discount_value=300), 200) == 200


def test_flat_discount_ignores_max_cap():
    assert compute_discount(make_coupon(discount_type="flat", discount_value=300, max_discount_amount=100), 1000) == 300


@pytest.mark.parametrize(
    "overrides, kwargs, message",
    [
        ({"is_active": False}, {}, "no longer active"),
        ({"valid_from": NOW + timedelta(hours=1)}, {}, "not yet valid"),
        ({"valid_until": NOW - timedelta(hours=1)}, {}, "expired"),
        ({"max_usage_count": 5, "current_usage_count": 5}, {}, "maximum usage limit"),
        ({"usage_type": "single-use"}, {"user_usage_count": 1}, "maximum number of times"),
        ({"max_usage_per_user": 2}, {"user_usage_count": 2}, "maximum number of times"),
        ({"usage_type": "first-time-user-only"}, {"user_order_count": 1}, "first-time users"),
        ({"min_order_value": 1500}, {}, "Minimum order value of 1500"),
        ({"applicable_categories": ["Meat"]}, {"categories": ["Seafood"]}, "not applicable"),
        ({"applicable_categories": ["Meat"]}, {"categories": []}, "not applicable"),
    ],
)
def test_rejections(overrides, kwargs, message):
    with pytest.raises(CouponRejected) as exc:
        check(make_coupon(**overrides), **kwargs)
    assert message in exc.value.message


def test_inactive_is_reported_before_expiry():
    coupon = make_coupon(is_active=False, valid_until=NOW - timedelta(days=3))
    with pytest.raises(CouponRejected, match="no longer active"):
        check(coupon)


def test_matching_category_passes():
    assert check(make_coupon(applicable_categories=["Seafood", "Meat"]), categories=["Seafood"]) == 100


def test_per_user_limit():
    assert per_user_limit(make_coupon()) is None
    assert per_user_limit(make_coupon(usage_type="single-use")) == 1
    assert per_user_limit(make_coupon(usage_type="single-use", max_usage_per_user=3)) == 3


def test_is_exhausted():
    assert not is_exhausted(make_coupon())
    assert not is_exhausted(make_coupon(max_usage_count=2, current_usage_count=1))
    assert is_exhausted(make_coupon(max_usage_count=2, current_usage_count=2))
