from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.result import Failure
from mockmatch.core.time_utils import utcnow
from mockmatch.domain.models import Coupon, CouponStatus, DiscountType
from mockmatch.domain.plans import (
    AddOnSelection,
    get_plan,
    plan_price,
    validate_add_on_selection,
)
from mockmatch.domain.schemas import DiscountCalculation, PriceQuote

logger = logging.getLogger(__name__)


def _round_money(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_discount(original_price: float, discount_type: str, discount_value: float) -> DiscountCalculation:
    """
    Apply a percentage or fixed discount.

    The discount is rounded half-up to whole rupees and clamped to
    ``[0, original_price]``; the final price is the original minus that
    rounded discount.
    """
    if discount_type == DiscountType.PERCENTAGE:
        discount = original_price * discount_value / 100
    elif discount_type == DiscountType.FIXED:
        discount = discount_value
    else:
        discount = 0.0
    discount_amount = min(_round_money(min(max(discount, 0.0), original_price)), original_price)
    return DiscountCalculation(
        original_price=original_price,
        discount_amount=discount_amount,
        final_price=max(original_price - discount_amount, 0.0),
        discount_type=discount_type,
        discount_value=discount_value,
    )


def is_coupon_applicable(coupon: Coupon, plan_id: Optional[str]) -> bool:
    return coupon.plan_type == "all" or (plan_id is not None and coupon.plan_type == plan_id)


def is_coupon_usable(coupon: Coupon, today: Optional[date] = None) -> bool:
    today = today or utcnow().date()
    if coupon.status != CouponStatus.ACTIVE:
        return False
    if coupon.expiring_on is not None and coupon.expiring_on < today:
        return False
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return False
    return True


def format_discount_text(coupon: Coupon) -> str:
    value = f"{coupon.discount_value:g}"
    if coupon.discount_type == DiscountType.PERCENTAGE:
        return f"{value}% OFF"
    return f"₹{value} OFF"


def days_until_expiry(expiring_on: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if expiring_on is None:
        return None
    today = today or utcnow().date()
    return max(0, (expiring_on - today).days)


async def get_active_coupons(
    session: AsyncSession,
    plan_id: Optional[str] = None,
    *,
    today: Optional[date] = None,
) -> list[Coupon]:
    """Visible coupons a customer can use right now, newest first."""
    from mockmatch.repositories.coupon import CouponRepository

    result = await CouponRepository(session).list_visible_active(today or utcnow().date())
    if isinstance(result, Failure):
        logger.error("Could not load active coupons: %s", result.error)
        return []
    coupons = [c for c in result.unwrap() if is_coupon_usable(c, today)]
    if plan_id is not None:
        coupons = [c for c in coupons if is_coupon_applicable(c, plan_id)]
    return coupons


async def find_coupon(
    session: AsyncSession,
    code: Optional[str],
    plan_id: Optional[str],
    *,
    today: Optional[date] = None,
) -> Optional[Coupon]:
    """The coupon behind ``code`` if it can be applied to ``plan_id``; otherwise ``None``."""
    from mockmatch.repositories.coupon import CouponRepository

    if not code or not code.strip():
        return None
    result = await CouponRepository(session).get_by_code(code)
    if isinstance(result, Failure):
        logger.info("Coupon %r not applied: %s", code, result.error)
        return None
    coupon = result.unwrap()
    if not is_coupon_usable(coupon, today) or not is_coupon_applicable(coupon, plan_id):
        logger.info("Coupon %r is not usable for plan %s", code, plan_id)
        return None
    return coupon


def quote_price(
    plan_id: str,
    coupon: Optional[Coupon] = None,
    add_ons: Sequence[AddOnSelection] = (),
    *,
    base_price: Optional[float] = None,
) -> PriceQuote:
    """Price a checkout: discount the plan price, then add validated add-ons."""
    base = plan_price(plan_id) if base_price is None else base_price
    discount = None
    subtotal = base
    if coupon is not None:
        discount = calculate_discount(base, coupon.discount_type, coupon.discount_value)
        subtotal = discount.final_price

    add_on_total = 0.0
    add_on_keys: tuple[str, ...] = ()
    if add_ons:
        plan = get_plan(plan_id)
        validation = validate_add_on_selection(add_ons, plan.id if plan else plan_id)
        if not validation.is_valid:
            raise ValueError(validation.error_message)
        add_on_total = validation.total_price
        add_on_keys = tuple(s.key for s in validation.selections)

    return PriceQuote(
        plan_id=plan_id,
        base_price=base,
        discount=discount,
        add_on_total=add_on_total,
        final_price=max(subtotal + add_on_total, 0.0),
        coupon_code=coupon.code if coupon is not None else None,
        add_ons=add_on_keys,
    )


def quote_as_dict(quote: PriceQuote) -> dict[str, Any]:
    discount = quote.discount
    return {
        "plan_id": quote.plan_id,
        "base_price": quote.base_price,
        "coupon_code": quote.coupon_code,
        "discount": None
        if discount is None
        else {
            "discount_type": discount.discount_type,
            "discount_value": discount.discount_value,
            "discount_amount": discount.discount_amount,
            "price_after_discount": discount.final_price,
        },
        "add_ons": list(quote.add_ons),
        "add_on_total": quote.add_on_total,
        "final_price": quote.final_price,
    }
