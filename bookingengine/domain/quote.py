"""
Multi-day quote validation and lifecycle.
"""

from dataclasses import dataclass, field, replace
from datetime import date, time
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

from .exceptions import InvalidQuoteTransitionError
from .models import QuoteDay, QuoteEstimate

MINIMUM_QUOTE_MINUTES = 120


@dataclass(frozen=True)
class QuoteValidation:
    ok: bool
    schedule_minutes: int
    requirement_minutes: int
    average_session_minutes: int
    errors: List[str] = field(default_factory=list)


class QuoteTimeValidator:
    """
    Checks that a quote's day-by-day schedule matches what was requested.

    The requirement (sessions x session length) is an independent input;
    the schedule must add up to it exactly.
    """

    def __init__(self, minimum_minutes: int = MINIMUM_QUOTE_MINUTES):
        self.minimum_minutes = minimum_minutes

    def validate(
        self,
        quote_days: Sequence[QuoteDay],
        number_of_sessions: int,
        session_duration_minutes: int,
        today: Optional[date] = None,
    ) -> QuoteValidation:
        errors: List[str] = []

        schedule_minutes = sum(day.duration_minutes for day in quote_days)
        requirement_minutes = max(0, number_of_sessions) * max(0, session_duration_minutes)

        if number_of_sessions <= 0:
            errors.append("Number of sessions must be at least 1")
            average = 0
        else:
            average = int(
                (Decimal(schedule_minutes) / Decimal(number_of_sessions)).quantize(
                    Decimal("1"), rounding=ROUND_HALF_UP
                )
            )

        if not quote_days:
            errors.append("Quote must contain at least one day")

        previous: Optional[QuoteDay] = None
        for day in quote_days:
            if today is not None and day.date < today:
                errors.append(f"Day {day.day_number} date cannot be in the past")
            if previous is not None and day.date <= previous.date:
                errors.append(
                    f"Day {day.day_number} date must be after Day {previous.day_number} date"
                )
            if day.finish_time <= day.start_time:
                errors.append(f"Day {day.day_number} finish time must be after start time")
            previous = day

        if schedule_minutes != requirement_minutes:
            errors.append(
                f"Scheduled time ({schedule_minutes} minutes) does not match the "
                f"requested time ({requirement_minutes} minutes)"
            )
        if schedule_minutes < self.minimum_minutes:
            errors.append(f"Quote requires at least {self.minimum_minutes} minutes in total")

        return QuoteValidation(
            ok=not errors,
            schedule_minutes=schedule_minutes,
            requirement_minutes=requirement_minutes,
            average_session_minutes=average,
            errors=errors,
        )


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    PRICED = "priced"
    SUBMITTED = "submitted"


_TRANSITIONS: Dict[QuoteStatus, Set[QuoteStatus]] = {
    QuoteStatus.DRAFT: {QuoteStatus.DRAFT, QuoteStatus.VALIDATED},
    QuoteStatus.VALIDATED: {QuoteStatus.DRAFT, QuoteStatus.VALIDATED, QuoteStatus.PRICED},
    QuoteStatus.PRICED: {QuoteStatus.DRAFT, QuoteStatus.VALIDATED, QuoteStatus.PRICED, QuoteStatus.SUBMITTED},
    QuoteStatus.SUBMITTED: set(),
}


@dataclass
class Quote:
    """
    A multi-day quote moving through draft -> validated -> priced -> submitted.

    Any change to dates or times sends it back to draft and drops the estimate.
    """
    days: List[QuoteDay]
    number_of_sessions: int
    session_duration_minutes: int
    id: Optional[str] = None
    status: QuoteStatus = QuoteStatus.DRAFT
    validation: Optional[QuoteValidation] = None
    estimate: Optional[QuoteEstimate] = None

    @property
    def requirement_minutes(self) -> int:
        return max(0, self.number_of_sessions) * max(0, self.session_duration_minutes)

    @property
    def schedule_minutes(self) -> int:
        return sum(day.duration_minutes for day in self.days)

    def _transition(self, target: QuoteStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidQuoteTransitionError(
                f"Cannot move quote from {self.status.value} to {target.value}"
            )
        self.status = target

    def _reset(self) -> None:
        self._transition(QuoteStatus.DRAFT)
        self.validation = None
        self.estimate = None

    def update_day(
        self,
        day_number: int,
        on_date: Optional[date] = None,
        start_time: Optional[time] = None,
        finish_time: Optional[time] = None,
    ) -> QuoteDay:
        """Edit one day of the schedule."""
        for index, day in enumerate(self.days):
            if day.day_number == day_number:
                break
        else:
            raise KeyError(f"Quote has no day {day_number}")

        self._reset()
        changes = {}
        if on_date is not None:
            changes["date"] = on_date
        if start_time is not None:
            changes["start_time"] = start_time
        if finish_time is not None:
            changes["finish_time"] = finish_time
        updated = replace(day, **changes)
        self.days[index] = updated
        return updated

    def set_days(self, days: Sequence[QuoteDay]) -> None:
        self._reset()
        self.days = list(days)

    def set_requirement(self, number_of_sessions: int, session_duration_minutes: int) -> None:
        self._reset()
        self.number_of_sessions = number_of_sessions
        self.session_duration_minutes = session_duration_minutes

    def validate(self, validator: QuoteTimeValidator, today: Optional[date] = None) -> QuoteValidation:
        """
        Run the validator. A passing quote becomes validated, a failing one
        stays in (or returns to) draft.
        """
        if self.status is QuoteStatus.SUBMITTED:
            raise InvalidQuoteTransitionError("A submitted quote cannot be revalidated")

        result = validator.validate(
            self.days, self.number_of_sessions, self.session_duration_minutes, today=today
        )
        self.validation = result
        self.estimate = None
        self._transition(QuoteStatus.VALIDATED if result.ok else QuoteStatus.DRAFT)
        return result

    def apply_estimate(self, estimate: QuoteEstimate) -> None:
        if self.status not in (QuoteStatus.VALIDATED, QuoteStatus.PRICED):
            raise InvalidQuoteTransitionError(
                f"Quote must be validated before pricing (status: {self.status.value})"
            )
        self._transition(QuoteStatus.PRICED)
        self.estimate = estimate

    def price(self, engine, base_price) -> QuoteEstimate:
        """Price a validated quote with a PricingRuleEngine."""
        if self.status not in (QuoteStatus.VALIDATED, QuoteStatus.PRICED):
            raise InvalidQuoteTransitionError(
                f"Quote must be validated before pricing (status: {self.status.value})"
            )
        estimate = engine.quote_estimate(base_price, self.requirement_minutes, self.days)
        self.apply_estimate(estimate)
        return estimate

    def submit(self) -> None:
        if self.status is not QuoteStatus.PRICED:
            raise InvalidQuoteTransitionError(
                f"Only a priced quote can be submitted (status: {self.status.value})"
            )
        self._transition(QuoteStatus.SUBMITTED)
