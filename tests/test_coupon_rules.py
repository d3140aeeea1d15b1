from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from carrental.core.errors import CouponIneligible
from carrental.services.coupon_rules import (
    can_user_redeem,
    check_eligibility,
    compute_discount,
    is_currently_valid,
    normalize_code,
)

NOW = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)


def coupon(**kw):
    data = dict(
        code="SAVE10",
        discount_type="percentage",
        discount_value=10,
        min_rental_amount_cents=0,
        max_discount_cents=None,
        valid_from=NOW - timedelta(days=1),
        valid_until=NOW + timedelta(days=1),
        usage_limit=None,
        usage_count=0,
        user_limit=1,
        applicable_vehicle_types=["all"],
        is_active=True,
        redemptions=[],
    )
    data.update(kw)
    return SimpleNamespace(**data)


def reason_of(exc_info) -> str:
    return exc_info.value.code


# -------------------------
# is_currently_valid
# -------------------------
def test_valid_inside_window():
    assert is_currently_valid(coupon(), NOW) is True


def test_window_bounds_are_inclusive():
    c = coupon(valid_from=NOW, valid_until=NOW)
    assert is_currently_valid(c, NOW) is True


def test_invalid_when_inactive_expired_or_exhausted():
    assert is_currently_valid(coupon(is_active=False), NOW) is False
    assert is_currently_valid(coupon(valid_until=NOW - timedelta(seconds=1)), NOW) is False
    assert is_currently_valid(coupon(valid_from=NOW + timedelta(seconds=1)), NOW) is False
    assert is_currently_valid(coupon(usage_limit=5, usage_count=5), NOW) is False
    assert is_currently_valid(coupon(usage_limit=5, usage_count=4), NOW) is True


# -------------------------
# compute_discount
# -------------------------
def test_percentage_clamped_to_max_discount():
    c = coupon(discount_value=20, max_discount_cents=500)
    assert compute_discount(c, 5000) == 500


def test_percentage_without_cap():
    assert compute_discount(coupon(discount_value=10), 2000) == 200


def test_percentage_rounds_down_to_the_cent():
    assert compute_discount(coupon(discount_value=15), 999) == 149


def test_fixed_discount_never_exceeds_amount():
    c = coupon(discount_type="fixed", discount_value=300)
    assert compute_discount(c, 200) == 200
    assert compute_discount(c, 1000) == 300


def test_below_minimum_gives_zero():
    c = coupon(min_rental_amount_cents=1000)
    assert compute_discount(c, 999) == 0
    assert compute_discount(c, 1000) == 100


def test_full_percentage_equals_amount():
    assert compute_discount(coupon(discount_value=100), 4321) == 4321


# -------------------------
# can_user_redeem
# -------------------------
def test_user_limit_counts_only_that_users_redemptions():
    c = coupon(user_limit=2, redemptions=[SimpleNamespace(user_id=1), SimpleNamespace(user_id=2)])
    assert can_user_redeem(c, 1) is True

    c.redemptions.append(SimpleNamespace(user_id=1))
    assert can_user_redeem(c, 1) is False
    assert can_user_redeem(c, 2) is True


# -------------------------
# ordered pipeline
# -------------------------
def test_unknown_code():
    with pytest.raises(CouponIneligible) as e:
        check_eligibility(None, rental_amount_cents=1000, now=NOW)
    assert reason_of(e) == "unknown_code"
    assert e.value.reason == "Invalid coupon code"


def test_inactive_wins_over_expired():
    c = coupon(is_active=False, valid_until=NOW - timedelta(days=1))
    with pytest.raises(CouponIneligible) as e:
        check_eligibility(c, rental_amount_cents=1000, now=NOW)
    assert e.value.reason == "This coupon is no longer active"


def test_not_yet_valid_names_the_start_date():
    c = coupon(valid_from=NOW + timedelta(days=2), valid_until=NOW + timedelta(days=5))
    with pytest.raises(CouponIneligible) as e:
        check_eligibility(c, rental_amount_cents=1000, now=NOW)
    assert reason_of(e) == "not_yet_valid"
    assert e.value.reason.startswith("This coupon is valid from ")


def test_expired():
    c = coupon(valid_until=NOW - timedelta(minutes=1))
    with pytest.raises(CouponIneligible) as e:
        check_eligibility(c, rental_amount_cents=1000, now=NOW)
    assert e.value.reason == "This coupon has expired"


def test_global_limit_before_minimum_amount():
    c = coupon(usage_limit=1, usage_count=1, min_rental_amount_cents=10_000)
    with pytest.raises(CouponIneligible) as e:
        check_eligibility(c, rental_amount_cents=1000, now=NOW)
    assert reason_of(e) == "usage_limit_reached"


def test_below_minimum_amount():
    c = coupon(min_rental_amount_cents=150_000)
    with pytest.raises(CouponIneligible) as e:
        check_eligibility(c, rental_amount_cents=1000, now=NOW)
    assert reason_of(e) == "below_minimum"
    assert e.value.reason == "Minimum rental amount for this coupon is INR 1,500.00"


def test_vehicle_type_not_applicable():
    c = coupon(applicable_vehicle_types=["suv", "luxury"])
    with pytest.raises(CouponIneligible) as e:
        check_eligibility(c, rental_amount_cents=1000, now=NOW, vehicle_type="economy")
    assert e.value.reason == "This coupon is not applicable for the selected vehicle type"

    quote = check_eligibility(c, rental_amount_cents=1000, now=NOW, vehicle_type="suv")
    assert quote.discount_cents == 100


def test_all_matches_every_vehicle_type():
    quote = check_eligibility(coupon(), rental_amount_cents=1000, now=NOW, vehicle_type="van")
    assert quote.final_amount_cents == 900


def test_user_limit_is_last_and_only_with_a_user():
    c = coupon(redemptions=[SimpleNamespace(user_id=7)])

    with pytest.raises(CouponIneligible) as e:
        check_eligibility(c, rental_amount_cents=1000, now=NOW, user_id=7)
    assert e.value.reason == "You have already used this coupon the maximum number of times"

    # anonymous preview skips the per-user check
    quote = check_eligibility(c, rental_amount_cents=1000, now=NOW)
    assert quote.discount_cents == 100


def test_success_returns_discount_and_final_amount():
    quote = check_eligibility(coupon(), rental_amount_cents=2000, now=NOW, user_id=1)
    assert (quote.original_amount_cents, quote.discount_cents, quote.final_amount_cents) == (2000, 200, 1800)


def test_codes_are_case_insensitive():
    assert normalize_code("  save10 ") == "SAVE10"
