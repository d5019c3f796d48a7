"""
Tests for discount code and gift card validation.
"""

import pendulum
from decimal import Decimal

from bookingengine.domain.adjustments import (
    DiscountCode,
    DiscountType,
    GiftCard,
    discount_amount_for,
    validate_discount_code,
    validate_gift_card,
)

TZ = "Australia/Sydney"
NOW = pendulum.parse("2026-11-16 10:00", tz=TZ)


def _code(**overrides) -> DiscountCode:
    values = {
        "code": "WELCOME10",
        "discount_type": DiscountType.PERCENTAGE,
        "value": Decimal("10"),
        "valid_from": pendulum.parse("2026-01-01 00:00", tz=TZ),
    }
    values.update(overrides)
    return DiscountCode(**values)


class TestDiscountAmount:
    """Tests for working out a discount code's amount."""

    def test_percentage(self):
        assert discount_amount_for(_code(), Decimal("150")) == Decimal("15.00")

    def test_fixed_amount(self):
        code = _code(discount_type=DiscountType.FIXED_AMOUNT, value=Decimal("25"))

        assert discount_amount_for(code, Decimal("150")) == Decimal("25.00")

    def test_capped_at_maximum(self):
        code = _code(value=Decimal("50"), maximum_discount_amount=Decimal("30"))

        assert discount_amount_for(code, Decimal("200")) == Decimal("30.00")

    def test_cannot_exceed_order(self):
        code = _code(discount_type=DiscountType.FIXED_AMOUNT, value=Decimal("80"))

        assert discount_amount_for(code, Decimal("60")) == Decimal("60.00")


class TestValidateDiscountCode:
    """Tests for discount code validation messages."""

    def test_valid_code(self):
        check = validate_discount_code(_code(), Decimal("120"), now=NOW)

        assert check.is_valid
        assert check.amount == Decimal("12.00")
        assert check.message == "Discount code valid"

    def test_unknown_code(self):
        check = validate_discount_code(None, Decimal("120"), now=NOW)

        assert not check.is_valid
        assert check.message == "Invalid discount code"

    def test_inactive(self):
        check = validate_discount_code(_code(is_active=False), Decimal("120"), now=NOW)

        assert check.message == "Discount code is not active"

    def test_not_yet_valid(self):
        code = _code(valid_from=pendulum.parse("2026-12-01 00:00", tz=TZ))

        assert validate_discount_code(code, Decimal("120"), now=NOW).message == "Discount code not yet valid"

    def test_expired(self):
        code = _code(valid_until=pendulum.parse("2026-10-31 23:59", tz=TZ))

        assert validate_discount_code(code, Decimal("120"), now=NOW).message == "Discount code has expired"

    def test_usage_limit(self):
        code = _code(usage_limit=5, usage_count=5)

        check = validate_discount_code(code, Decimal("120"), now=NOW)

        assert not check.is_valid
        assert check.message == "Discount code usage limit reached"

    def test_minimum_order(self):
        code = _code(minimum_order_amount=Decimal("150"))

        check = validate_discount_code(code, Decimal("120"), now=NOW)

        assert not check.is_valid
        assert check.message == "Order must be at least $150.00 to use this code"
        assert check.amount == Decimal("0")


class TestValidateGiftCard:
    """Tests for gift card validation."""

    def test_valid_card_returns_balance(self):
        check = validate_gift_card(GiftCard("GC-1", Decimal("80")), now=NOW)

        assert check.is_valid
        assert check.amount == Decimal("80.00")

    def test_unknown_card(self):
        assert validate_gift_card(None, now=NOW).message == "Invalid gift card code"

    def test_inactive_card(self):
        card = GiftCard("GC-1", Decimal("80"), is_active=False)

        assert validate_gift_card(card, now=NOW).message == "Gift card is not active"

    def test_expired_card(self):
        card = GiftCard("GC-1", Decimal("80"), expires_at=pendulum.parse("2026-11-01 00:00", tz=TZ))

        assert validate_gift_card(card, now=NOW).message == "Gift card has expired"

    def test_empty_card(self):
        check = validate_gift_card(GiftCard("GC-1", Decimal("0")), now=NOW)

        assert not check.is_valid
        assert check.message == "Gift card has no remaining balance"
