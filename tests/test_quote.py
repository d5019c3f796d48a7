"""
Tests for quote validation and the quote lifecycle.
"""

import pytest
from datetime import date, time
from decimal import Decimal

from bookingengine.domain.exceptions import InvalidQuoteTransitionError
from bookingengine.domain.models import PricingRule, QuoteDay
from bookingengine.domain.pricing import PricingRuleEngine
from bookingengine.domain.quote import Quote, QuoteStatus, QuoteTimeValidator

TODAY = date(2026, 11, 1)


def _days():
    return [
        QuoteDay(1, date(2026, 11, 16), time(10, 0), time(12, 0)),
        QuoteDay(2, date(2026, 11, 17), time(10, 0), time(12, 0)),
    ]


class TestQuoteTimeValidator:
    """Tests for QuoteTimeValidator."""

    def test_matching_schedule_is_ok(self):
        result = QuoteTimeValidator().validate(_days(), 4, 60, today=TODAY)

        assert result.ok
        assert result.schedule_minutes == 240
        assert result.requirement_minutes == 240
        assert result.average_session_minutes == 60
        assert result.errors == []

    def test_requirement_is_independent_of_schedule(self):
        """Test a schedule that doesn't add up to sessions x length fails."""
        result = QuoteTimeValidator().validate(_days(), 3, 60, today=TODAY)

        assert not result.ok
        assert result.requirement_minutes == 180
        assert any("does not match" in e for e in result.errors)

    def test_average_session_rounds_half_up(self):
        days = [QuoteDay(1, date(2026, 11, 16), time(10, 0), time(12, 30))]

        result = QuoteTimeValidator().validate(days, 4, 60, today=TODAY)

        # 150 / 4 = 37.5
        assert result.average_session_minutes == 38

    def test_dates_must_increase(self):
        days = [
            QuoteDay(1, date(2026, 11, 17), time(10, 0), time(12, 0)),
            QuoteDay(2, date(2026, 11, 17), time(13, 0), time(15, 0)),
        ]

        result = QuoteTimeValidator().validate(days, 4, 60, today=TODAY)

        assert "Day 2 date must be after Day 1 date" in result.errors

    def test_finish_must_follow_start(self):
        days = [
            QuoteDay(1, date(2026, 11, 16), time(10, 0), time(14, 0)),
            QuoteDay(2, date(2026, 11, 17), time(12, 0), time(10, 0)),
        ]

        result = QuoteTimeValidator().validate(days, 4, 60, today=TODAY)

        assert result.schedule_minutes == 240
        assert "Day 2 finish time must be after start time" in result.errors

    def test_past_dates_are_rejected(self):
        result = QuoteTimeValidator().validate(_days(), 4, 60, today=date(2026, 11, 17))

        assert "Day 1 date cannot be in the past" in result.errors
        assert not any("Day 2" in e for e in result.errors)

    def test_minimum_total(self):
        days = [QuoteDay(1, date(2026, 11, 16), time(10, 0), time(11, 30))]

        result = QuoteTimeValidator().validate(days, 1, 90, today=TODAY)

        assert not result.ok
        assert "Quote requires at least 120 minutes in total" in result.errors

    def test_zero_sessions(self):
        result = QuoteTimeValidator().validate(_days(), 0, 60, today=TODAY)

        assert not result.ok
        assert result.average_session_minutes == 0

    def test_empty_quote(self):
        result = QuoteTimeValidator().validate([], 2, 60)

        assert "Quote must contain at least one day" in result.errors


class TestQuoteLifecycle:
    """Tests for Quote status transitions."""

    def _engine(self):
        return PricingRuleEngine([PricingRule(6, time(8, 0), time(18, 0), Decimal("20"))])

    def test_happy_path(self):
        quote = Quote(days=_days(), number_of_sessions=4, session_duration_minutes=60)

        assert quote.status is QuoteStatus.DRAFT
        quote.validate(QuoteTimeValidator(), today=TODAY)
        assert quote.status is QuoteStatus.VALIDATED

        estimate = quote.price(self._engine(), Decimal("100"))
        assert quote.status is QuoteStatus.PRICED
        assert estimate.actual == Decimal("400.00")
        assert quote.estimate == estimate

        quote.submit()
        assert quote.status is QuoteStatus.SUBMITTED

    def test_failed_validation_stays_draft(self):
        quote = Quote(days=_days(), number_of_sessions=3, session_duration_minutes=60)

        result = quote.validate(QuoteTimeValidator(), today=TODAY)

        assert not result.ok
        assert quote.status is QuoteStatus.DRAFT

    def test_editing_resets_to_draft(self):
        quote = Quote(days=_days(), number_of_sessions=4, session_duration_minutes=60)
        quote.validate(QuoteTimeValidator(), today=TODAY)
        quote.price(self._engine(), 100)

        updated = quote.update_day(2, finish_time=time(13, 0))

        assert updated.duration_minutes == 180
        assert quote.status is QuoteStatus.DRAFT
        assert quote.estimate is None
        assert quote.validation is None

    def test_changing_requirement_resets_to_draft(self):
        quote = Quote(days=_days(), number_of_sessions=4, session_duration_minutes=60)
        quote.validate(QuoteTimeValidator(), today=TODAY)

        quote.set_requirement(2, 120)

        assert quote.status is QuoteStatus.DRAFT
        assert quote.requirement_minutes == 240

    def test_unknown_day_raises(self):
        quote = Quote(days=_days(), number_of_sessions=4, session_duration_minutes=60)

        with pytest.raises(KeyError):
            quote.update_day(5, start_time=time(9, 0))

    def test_cannot_price_a_draft(self):
        quote = Quote(days=_days(), number_of_sessions=4, session_duration_minutes=60)

        with pytest.raises(InvalidQuoteTransitionError):
            quote.price(self._engine(), 100)

    def test_cannot_submit_before_pricing(self):
        quote = Quote(days=_days(), number_of_sessions=4, session_duration_minutes=60)
        quote.validate(QuoteTimeValidator(), today=TODAY)

        with pytest.raises(InvalidQuoteTransitionError):
            quote.submit()

    def test_submitted_quote_is_frozen(self):
        quote = Quote(days=_days(), number_of_sessions=4, session_duration_minutes=60)
        quote.validate(QuoteTimeValidator(), today=TODAY)
        quote.price(self._engine(), 100)
        quote.submit()

        with pytest.raises(InvalidQuoteTransitionError):
            quote.update_day(1, start_time=time(9, 0))
        with pytest.raises(InvalidQuoteTransitionError):
            quote.validate(QuoteTimeValidator(), today=TODAY)
