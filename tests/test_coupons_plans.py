from datetime import date, timedelta

import pytest

from mockmatch.domain.coupons import (
    calculate_discount,
    days_until_expiry,
    find_coupon,
    format_discount_text,
    get_active_coupons,
    is_coupon_usable,
    quote_as_dict,
    quote_price,
)
from mockmatch.domain.models import Coupon, CouponStatus, DiscountType
from mockmatch.domain.plans import (
    AddOn,
    AddOnSelection,
    add_ons_for_plan,
    merge_selections,
    plan_duration,
    plan_price,
    selection_from_flags,
    validate_add_on_selection,
)

TODAY = date(2025, 8, 18)


def _coupon(code="SAVE10", discount_type=DiscountType.PERCENTAGE, value=10.0, **fields) -> Coupon:
    defaults = {
        "status": CouponStatus.ACTIVE,
        "plan_type": "all",
        "usage_count": 0,
        "is_visible": True,
    }
    defaults.update(fields)
    return Coupon(code=code, discount_type=discount_type, discount_value=value, **defaults)


def test_plan_catalogue_and_fallbacks():
    assert plan_price("essential") == 499
    assert plan_price("Professional") == 999
    assert plan_price("executive") == 1299
    assert plan_price("platinum") == 999
    assert plan_price(None) == 999
    assert plan_duration("essential") == 30
    assert plan_duration("executive") == 60
    assert plan_duration("unknown") == 60


def test_percentage_discount_rounds_half_up():
    calc = calculate_discount(999, DiscountType.PERCENTAGE, 15)
    assert calc.discount_amount == 150
    assert calc.final_price == 849


def test_half_rupee_discount_keeps_parts_summing_to_price():
    calc = calculate_discount(999, DiscountType.PERCENTAGE, 50)
    assert calc.discount_amount == 500
    assert calc.final_price == 499
    assert calc.discount_amount + calc.final_price == 999


def test_fixed_discount_never_goes_negative():
    calc = calculate_discount(499, DiscountType.FIXED, 600)
    assert calc.discount_amount == 499
    assert calc.final_price == 0


def test_unknown_discount_type_is_ignored():
    calc = calculate_discount(499, "bogus", 50)
    assert calc.discount_amount == 0
    assert calc.final_price == 499


def test_coupon_code_is_normalised():
    assert _coupon(code="  save10 ").code == "SAVE10"
    with pytest.raises(ValueError):
        _coupon(code="   ")


def test_coupon_usability_rules():
    assert is_coupon_usable(_coupon(), TODAY)
    assert not is_coupon_usable(_coupon(status=CouponStatus.STOPPED), TODAY)
    assert not is_coupon_usable(_coupon(expiring_on=TODAY - timedelta(days=1)), TODAY)
    assert is_coupon_usable(_coupon(expiring_on=TODAY), TODAY)
    assert not is_coupon_usable(_coupon(usage_limit=5, usage_count=5), TODAY)


def test_discount_text_and_expiry_days():
    assert format_discount_text(_coupon(value=15)) == "15% OFF"
    assert format_discount_text(_coupon(discount_type=DiscountType.FIXED, value=200)) == "₹200 OFF"
    assert days_until_expiry(TODAY + timedelta(days=3), TODAY) == 3
    assert days_until_expiry(TODAY - timedelta(days=3), TODAY) == 0
    assert days_until_expiry(None, TODAY) is None


def test_add_on_catalogue_depends_on_plan():
    assert [a.key for a in add_ons_for_plan("essential")] == ["resume_review", "meeting_recording"]
    assert len(add_ons_for_plan("professional")) == 4


def test_add_on_validation_first_problem_wins():
    result = validate_add_on_selection([AddOnSelection("priority_support")], "essential")
    assert not result.is_valid
    assert result.error_message == "Priority Support requires professional plan"

    result = validate_add_on_selection([AddOnSelection("gift_wrap")], "essential")
    assert result.error_message == "Add-on not found: gift_wrap"

    result = validate_add_on_selection([AddOnSelection("resume_review", quantity=2)], "essential")
    assert result.error_message == "Quantity exceeds maximum for Resume Review"

    result = validate_add_on_selection(
        [AddOnSelection("resume_review"), AddOnSelection("meeting_recording")], "essential"
    )
    assert result.is_valid
    assert result.total_price == 298


def test_selection_from_checkout_flags():
    selections = selection_from_flags({"resumeReview": True, "meetingRecording": False, "confetti": True})
    assert [s.key for s in selections] == ["resume_review"]


def test_repeated_add_on_keys_are_merged_before_validation():
    assert merge_selections(
        [AddOnSelection(key="resume_review"), AddOnSelection(key="meeting_recording"), AddOnSelection(key="resume_review", quantity=2)]
    ) == [AddOnSelection(key="resume_review", quantity=3), AddOnSelection(key="meeting_recording")]

    doubled = [AddOnSelection(key="resume_review")] + selection_from_flags({"resumeReview": True})
    result = validate_add_on_selection(doubled, "professional")
    assert not result.is_valid
    assert result.error_message == "Quantity exceeds maximum for Resume Review"
    with pytest.raises(ValueError):
        quote_price("professional", None, doubled)

    mentoring = AddOn(key="mentoring", name="Mentoring Call", price=250.0, category="service", max_quantity=3)
    merged = validate_add_on_selection(
        [AddOnSelection(key="mentoring"), AddOnSelection(key="mentoring", quantity=2)], "essential", [mentoring]
    )
    assert merged.is_valid
    assert [(s.key, s.quantity) for s in merged.selections] == [("mentoring", 3)]
    assert merged.total_price == 750


def test_quote_applies_discount_before_add_ons():
    quote = quote_price("professional", _coupon(value=10), [AddOnSelection("priority_support")])
    assert quote.base_price == 999
    assert quote.discount.final_price == 899
    assert quote.add_on_total == 149
    assert quote.final_price == 1048
    assert quote.coupon_code == "SAVE10"

    body = quote_as_dict(quote)
    assert body["discount"]["discount_amount"] == 100
    assert body["add_ons"] == ["priority_support"]


def test_quote_rejects_invalid_add_ons():
    with pytest.raises(ValueError, match="requires professional plan"):
        quote_price("essential", None, [AddOnSelection("priority_support")])


def test_quote_without_coupon_uses_plan_price():
    quote = quote_price("essential")
    assert quote.discount is None
    assert quote.final_price == 499


@pytest.mark.asyncio
async def test_find_coupon_checks_plan_and_state(session):
    session.add_all(
        [
            _coupon(code="SAVE10"),
            _coupon(code="PRO20", value=20, plan_type="professional"),
            _coupon(code="OLD5", value=5, expiring_on=TODAY - timedelta(days=1)),
            _coupon(code="USEDUP", usage_limit=1, usage_count=1),
        ]
    )
    await session.commit()

    found = await find_coupon(session, "save10", "essential", today=TODAY)
    assert found is not None and found.code == "SAVE10"

    assert await find_coupon(session, "PRO20", "essential", today=TODAY) is None
    assert (await find_coupon(session, "pro20", "professional", today=TODAY)).discount_value == 20
    assert await find_coupon(session, "OLD5", "essential", today=TODAY) is None
    assert await find_coupon(session, "USEDUP", "essential", today=TODAY) is None
    assert await find_coupon(session, "NOPE", "essential", today=TODAY) is None
    assert await find_coupon(session, "", "essential", today=TODAY) is None


@pytest.mark.asyncio
async def test_active_coupons_hide_invisible_and_other_plans(session):
    session.add_all(
        [
            _coupon(code="SAVE10"),
            _coupon(code="HIDDEN", is_visible=False),
            _coupon(code="PRO20", value=20, plan_type="professional"),
        ]
    )
    await session.commit()

    codes = {c.code for c in await get_active_coupons(session, "essential", today=TODAY)}
    assert codes == {"SAVE10"}

    codes = {c.code for c in await get_active_coupons(session, today=TODAY)}
    assert codes == {"SAVE10", "PRO20"}
