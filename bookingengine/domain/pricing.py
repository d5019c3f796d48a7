"""
Customer pricing: duration and time-of-day uplifts, discounts, gift cards
and multi-day quote estimates.
"""

import logging
from datetime import time
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Tuple

from pendulum import DateTime

from .exceptions import OverlappingRulesError, QuoteValidationError
from .models import (
    ZERO,
    DurationRule,
    PriceResult,
    PricingRule,
    QuoteBreakdown,
    QuoteDay,
    QuoteDayAmount,
    QuoteEstimate,
    ReschedulePrice,
    is_weekend,
    quantize_money,
    store_weekday,
    to_decimal,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
ONE = Decimal("1")
GST_DIVISOR = Decimal("11")
LOW_BAND = Decimal("0.9")
HIGH_BAND = Decimal("1.1")
MINUTES_PER_HOUR = Decimal("60")


def _round_dollars(value: Decimal) -> Decimal:
    return value.quantize(ONE, rounding=ROUND_HALF_UP)


def find_overlapping_rules(rules: Sequence[PricingRule]) -> List[Tuple[PricingRule, PricingRule]]:
    """Return every pair of rules whose windows overlap on the same weekday."""
    overlaps: List[Tuple[PricingRule, PricingRule]] = []
    for i, first in enumerate(rules):
        for second in rules[i + 1:]:
            if first.overlaps(second):
                overlaps.append((first, second))
    return overlaps


def ensure_rule_table_consistent(
    pricing_rules: Sequence[PricingRule],
    duration_rules: Sequence[DurationRule] = (),
) -> None:
    """
    Reject rule tables the engine could not price unambiguously.

    Raises:
        OverlappingRulesError: On empty or reversed windows, overlapping
            windows, or two duration rules for the same duration
    """
    for rule in pricing_rules:
        if not 0 <= rule.day_of_week <= 6:
            raise OverlappingRulesError(f"Invalid weekday {rule.day_of_week} in pricing rule")
        if rule.start_time >= rule.end_time:
            raise OverlappingRulesError(
                f"Pricing rule {rule.describe()} must start before it ends"
            )

    overlaps = find_overlapping_rules(pricing_rules)
    if overlaps:
        details = "; ".join(f"{a.describe()} and {b.describe()}" for a, b in overlaps)
        raise OverlappingRulesError(f"Overlapping pricing rules: {details}")

    seen: set[int] = set()
    for rule in duration_rules:
        if rule.duration_minutes in seen:
            raise OverlappingRulesError(
                f"Duplicate duration rule for {rule.duration_minutes} minutes"
            )
        seen.add(rule.duration_minutes)


class PricingRuleEngine:
    """
    Applies the rule tables to produce customer prices.

    Uplifts compound: the duration uplift is applied to the base price, the
    time-of-day uplift to the already uplifted price. The first matching rule
    in table order wins.
    """

    def __init__(
        self,
        pricing_rules: Sequence[PricingRule] = (),
        duration_rules: Sequence[DurationRule] = (),
        timezone: str = "Australia/Sydney",
        max_gift_card_redemption: Optional[Decimal] = None,
        weekend_rule_start: time = time(8, 0),
        weekend_rule_end: time = time(18, 0),
        minimum_quote_minutes: int = 120,
    ):
        self.pricing_rules = list(pricing_rules)
        self.duration_rules = list(duration_rules)
        self.timezone = timezone
        self.max_gift_card_redemption = (
            to_decimal(max_gift_card_redemption) if max_gift_card_redemption is not None else None
        )
        self.weekend_rule_start = weekend_rule_start
        self.weekend_rule_end = weekend_rule_end
        self.minimum_quote_minutes = minimum_quote_minutes

    def find_duration_rule(self, duration_minutes: int) -> Optional[DurationRule]:
        for rule in self.duration_rules:
            if rule.duration_minutes == duration_minutes:
                return rule
        return None

    def find_pricing_rule(self, timestamp: DateTime) -> Optional[PricingRule]:
        local = timestamp.in_timezone(self.timezone)
        day_of_week = store_weekday(local.date())
        t = time(local.hour, local.minute, local.second)
        for rule in self.pricing_rules:
            if rule.matches(day_of_week, t):
                return rule
        return None

    def price(
        self,
        base_price,
        duration_minutes: int,
        timestamp: DateTime,
        discount_amount=ZERO,
        gift_card_amount=ZERO,
    ) -> PriceResult:
        """
        Price a single booking.

        Args:
            base_price: Service price before uplifts
            duration_minutes: Booked duration, matched exactly against duration rules
            timestamp: Booking start, matched against time-of-day rules
            discount_amount: Flat discount already resolved from a code
            gift_card_amount: Gift card amount the customer wants to redeem

        Returns:
            PriceResult with every intermediate amount; final price never negative
        """
        base = max(ZERO, quantize_money(to_decimal(base_price)))

        duration_rule = self.find_duration_rule(duration_minutes)
        duration_uplift = ZERO
        if duration_rule is not None:
            duration_uplift = quantize_money(base * to_decimal(duration_rule.uplift_percentage) / HUNDRED)
        uplifted = max(ZERO, base + duration_uplift)

        pricing_rule = self.find_pricing_rule(timestamp)
        time_uplift = ZERO
        if pricing_rule is not None:
            time_uplift = quantize_money(uplifted * to_decimal(pricing_rule.uplift_percentage) / HUNDRED)
        gross = max(ZERO, uplifted + time_uplift)

        discount = min(max(ZERO, quantize_money(to_decimal(discount_amount))), gross)
        after_discount = gross - discount

        gift_card = max(ZERO, quantize_money(to_decimal(gift_card_amount)))
        if self.max_gift_card_redemption is not None:
            gift_card = min(gift_card, self.max_gift_card_redemption)
        gift_card = min(gift_card, after_discount)

        final_price = max(ZERO, after_discount - gift_card)
        gst = quantize_money(final_price / GST_DIVISOR)

        return PriceResult(
            base_price=base,
            duration_uplift_amount=duration_uplift,
            time_uplift_amount=time_uplift,
            discount_amount=discount,
            gift_card_amount=gift_card,
            final_price=final_price,
            gst_component=gst,
            duration_rule=duration_rule,
            pricing_rule=pricing_rule,
        )

    def _time_uplift_percentage(self, timestamp: DateTime) -> Tuple[Decimal, Optional[PricingRule]]:
        rule = self.find_pricing_rule(timestamp)
        if rule is None:
            return ZERO, None
        return to_decimal(rule.uplift_percentage), rule

    def reschedule_price(
        self,
        original_price,
        original_timestamp: DateTime,
        new_timestamp: DateTime,
    ) -> ReschedulePrice:
        """
        Price a booking moved from one start time to another.

        The price already paid keeps everything except its time-of-day
        uplift. When the new time carries a higher uplift, that uplift
        replaces the original one and the customer pays the difference.
        A lower or equal uplift leaves the price unchanged; there is no refund.
        """
        paid = max(ZERO, to_decimal(original_price))
        original_pct, _ = self._time_uplift_percentage(original_timestamp)
        new_pct, new_rule = self._time_uplift_percentage(new_timestamp)

        new_price = paid
        if new_pct > original_pct:
            without_uplift = paid / (ONE + original_pct / HUNDRED)
            new_price = without_uplift * (ONE + new_pct / HUNDRED)

        new_price = quantize_money(new_price)
        difference = quantize_money(new_price - paid)
        logger.debug(
            "Reschedule uplift %s%% -> %s%%, price %s -> %s", original_pct, new_pct, paid, new_price
        )

        return ReschedulePrice(
            original_price=paid,
            original_uplift_percentage=original_pct,
            new_uplift_percentage=new_pct,
            new_price=new_price,
            difference=difference,
            pricing_rule=new_rule,
        )

    def weekend_multiplier(self, day: QuoteDay) -> Decimal:
        """
        Multiplier for one quote day.

        Only Saturday and Sunday are uplifted, and only by a rule for that
        weekday covering exactly the standard daytime window.
        """
        if not is_weekend(day.date):
            return ONE
        day_of_week = store_weekday(day.date)
        for rule in self.pricing_rules:
            if (
                rule.day_of_week == day_of_week
                and rule.start_time == self.weekend_rule_start
                and rule.end_time == self.weekend_rule_end
            ):
                return ONE + to_decimal(rule.uplift_percentage) / HUNDRED
        return ONE

    def _hours_amount(self, base_price: Decimal, minutes: int) -> Decimal:
        return quantize_money(Decimal(max(0, minutes)) / MINUTES_PER_HOUR * base_price)

    def quote_estimate(
        self,
        base_price,
        total_duration_minutes: int,
        quote_days: Sequence[QuoteDay],
    ) -> QuoteEstimate:
        """
        Estimate a multi-day quote with an averaged weekend multiplier.

        Raises:
            QuoteValidationError: If the total duration is below the minimum
        """
        if total_duration_minutes < self.minimum_quote_minutes:
            raise QuoteValidationError(
                f"Quote requires at least {self.minimum_quote_minutes} minutes, "
                f"got {total_duration_minutes}"
            )

        base = max(ZERO, to_decimal(base_price))
        base_amount = self._hours_amount(base, total_duration_minutes)

        if quote_days:
            multipliers = [self.weekend_multiplier(day) for day in quote_days]
            average = sum(multipliers, ZERO) / Decimal(len(multipliers))
        else:
            average = ONE

        actual = quantize_money(base_amount * average)
        logger.debug("Quote estimate base=%s multiplier=%s actual=%s", base_amount, average, actual)

        return QuoteEstimate(
            base_amount=base_amount,
            average_multiplier=average,
            actual=actual,
            low=_round_dollars(actual * LOW_BAND),
            high=_round_dollars(actual * HIGH_BAND),
        )

    def itemised_quote(self, base_price, quote_days: Sequence[QuoteDay]) -> QuoteBreakdown:
        """Price each quote day on its own minutes with its own weekend multiplier."""
        base = max(ZERO, to_decimal(base_price))
        amounts = []
        for day in quote_days:
            minutes = day.duration_minutes
            day_base = self._hours_amount(base, minutes)
            multiplier = self.weekend_multiplier(day)
            amounts.append(
                QuoteDayAmount(
                    day=day,
                    minutes=minutes,
                    multiplier=multiplier,
                    base_amount=day_base,
                    amount=quantize_money(day_base * multiplier),
                )
            )
        return QuoteBreakdown(days=tuple(amounts))
