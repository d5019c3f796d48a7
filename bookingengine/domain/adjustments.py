"""
Discount codes and gift cards.

Validation resolves a code into a flat amount; the pricing engine then
applies it after the uplifts.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

import pendulum
from pendulum import DateTime

from .models import ZERO, quantize_money, to_decimal


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


@dataclass(frozen=True)
class DiscountCode:
    code: str
    discount_type: DiscountType
    value: Decimal
    valid_from: DateTime
    minimum_order_amount: Decimal = ZERO
    maximum_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    valid_until: Optional[DateTime] = None
    is_active: bool = True


@dataclass(frozen=True)
class GiftCard:
    code: str
    current_balance: Decimal
    expires_at: Optional[DateTime] = None
    is_active: bool = True


@dataclass(frozen=True)
class AdjustmentCheck:
    is_valid: bool
    message: str
    amount: Decimal = ZERO


def discount_amount_for(discount: DiscountCode, order_amount) -> Decimal:
    """
    Resolve a discount code to a flat amount for an order.

    Capped at the code's maximum discount and at the order amount.
    """
    order = max(ZERO, to_decimal(order_amount))
    value = to_decimal(discount.value)
    if DiscountType(discount.discount_type) is DiscountType.PERCENTAGE:
        amount = order * value / Decimal("100")
    else:
        amount = value

    if discount.maximum_discount_amount:
        amount = min(amount, to_decimal(discount.maximum_discount_amount))
    return quantize_money(max(ZERO, min(amount, order)))


def validate_discount_code(
    discount: Optional[DiscountCode],
    order_amount,
    now: Optional[DateTime] = None,
) -> AdjustmentCheck:
    if discount is None:
        return AdjustmentCheck(False, "Invalid discount code")
    if not discount.is_active:
        return AdjustmentCheck(False, "Discount code is not active")

    now = now or pendulum.now()
    if discount.valid_from > now:
        return AdjustmentCheck(False, "Discount code not yet valid")
    if discount.valid_until is not None and discount.valid_until < now:
        return AdjustmentCheck(False, "Discount code has expired")

    if discount.usage_limit and discount.usage_count >= discount.usage_limit:
        return AdjustmentCheck(False, "Discount code usage limit reached")

    minimum = to_decimal(discount.minimum_order_amount)
    if to_decimal(order_amount) < minimum:
        return AdjustmentCheck(
            False, f"Order must be at least ${quantize_money(minimum)} to use this code"
        )

    return AdjustmentCheck(True, "Discount code valid", discount_amount_for(discount, order_amount))


def validate_gift_card(card: Optional[GiftCard], now: Optional[DateTime] = None) -> AdjustmentCheck:
    """The amount of a valid card is its full balance; the pricing engine caps it."""
    if card is None:
        return AdjustmentCheck(False, "Invalid gift card code")
    if not card.is_active:
        return AdjustmentCheck(False, "Gift card is not active")

    now = now or pendulum.now()
    if card.expires_at is not None and card.expires_at < now:
        return AdjustmentCheck(False, "Gift card has expired")

    balance = to_decimal(card.current_balance)
    if balance <= 0:
        return AdjustmentCheck(False, "Gift card has no remaining balance")

    return AdjustmentCheck(True, "Gift card valid", quantize_money(balance))
