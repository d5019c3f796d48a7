"""
Bookable start times for a single provider on a single day.

Pure domain logic: the caller supplies the working window and the
provider's commitments, this module only does the time arithmetic.
"""

import logging
from datetime import date, time
from typing import Iterable, List, Optional

import pendulum
from pendulum import DateTime

from .exceptions import ConfigMissingError
from .models import BusinessRules, Commitment, TimeRange, WorkingWindow

logger = logging.getLogger(__name__)


class SlotGenerator:
    """
    Generates candidate start times on whole hours and filters them.

    Algorithm:
    1. Candidates run from opening_hour to closing_hour inclusive
    2. Drop candidates outside the provider's working window, or that
       would run past its end
    3. Drop candidates whose span (plus the default after-buffer) touches a
       commitment's buffered span or an unavailable span such as partial leave
    4. For today, drop candidates earlier than now + min_advance_hours,
       rounded up to the next whole hour
    """

    def __init__(self, rules: Optional[BusinessRules], timezone: str = "Australia/Sydney"):
        self.rules = rules
        self.timezone = timezone

    def _require_rules(self) -> BusinessRules:
        if self.rules is None:
            raise ConfigMissingError("Business rules are not configured; cannot generate slots")
        return self.rules

    def _at(self, on_date: date, t: time) -> DateTime:
        return pendulum.datetime(
            on_date.year, on_date.month, on_date.day, t.hour, t.minute, tz=self.timezone
        )

    def earliest_start(self, now: DateTime) -> DateTime:
        """
        Earliest bookable moment given the minimum advance notice.

        Anything past the top of the hour rounds up to the next hour.
        """
        rules = self._require_rules()
        advance_minutes = int(round(rules.min_advance_hours * 60))
        earliest = now.in_timezone(self.timezone).add(minutes=advance_minutes)
        if earliest.minute or earliest.second or earliest.microsecond:
            earliest = earliest.start_of("hour").add(hours=1)
        return earliest

    def _blocked_ranges(
        self,
        commitments: Iterable[Commitment],
        unavailable: Iterable[TimeRange] = (),
    ) -> List[TimeRange]:
        rules = self._require_rules()
        blocked = [
            c.blocked_range(rules.default_buffer_before_minutes, rules.default_buffer_after_minutes)
            for c in commitments
        ]
        # partial leave blocks exactly its own span, no buffers
        blocked.extend(unavailable)
        return blocked

    def _fits(
        self,
        on_date: date,
        start_time: time,
        duration_minutes: int,
        working_window: WorkingWindow,
        blocked: List[TimeRange],
        earliest: Optional[DateTime],
    ) -> bool:
        rules = self._require_rules()
        if not working_window.contains(start_time):
            return False

        duration = max(0, duration_minutes)
        slot_start = self._at(on_date, start_time)
        if slot_start.add(minutes=duration) > self._at(on_date, working_window.end):
            return False
        if earliest is not None and slot_start < earliest:
            return False

        slot_range = TimeRange(
            start=slot_start,
            end=slot_start.add(minutes=duration + rules.default_buffer_after_minutes),
        )
        for booking in blocked:
            if slot_range.overlaps(booking):
                logger.debug("Slot %s conflicts with booking %s", slot_range, booking)
                return False
        return True

    def _earliest_for(self, on_date: date, now: Optional[DateTime]) -> tuple:
        """Return (is_past_day, earliest start or None)."""
        now = now or pendulum.now(self.timezone)
        today = now.in_timezone(self.timezone).date()
        if on_date < today:
            return True, None
        return False, self.earliest_start(now) if on_date == today else None

    def available_slots(
        self,
        on_date: date,
        duration_minutes: int,
        working_window: Optional[WorkingWindow],
        commitments: Iterable[Commitment],
        now: Optional[DateTime] = None,
        unavailable: Iterable[TimeRange] = (),
    ) -> List[time]:
        """
        Find the start times a provider can take a booking on a date.

        Args:
            on_date: Day to generate slots for
            duration_minutes: Length of the requested booking
            working_window: Provider's hours for that weekday, None if not working
            commitments: Provider's existing bookings around that date
            now: Current moment, defaults to pendulum.now() in the business timezone
            unavailable: Extra blocked spans such as partial-day leave

        Returns:
            Sorted list of start times
        """
        rules = self._require_rules()
        if working_window is None:
            return []

        is_past, earliest = self._earliest_for(on_date, now)
        if is_past:
            return []

        blocked = self._blocked_ranges(commitments, unavailable)
        slots = [
            time(hour=hour)
            for hour in range(rules.opening_hour, min(rules.closing_hour, 23) + 1)
            if self._fits(on_date, time(hour=hour), duration_minutes, working_window, blocked, earliest)
        ]
        return sorted(set(slots))

    def is_free(
        self,
        on_date: date,
        start_time: time,
        duration_minutes: int,
        working_window: Optional[WorkingWindow],
        commitments: Iterable[Commitment],
        now: Optional[DateTime] = None,
        unavailable: Iterable[TimeRange] = (),
    ) -> bool:
        """
        Check one exact start time with the same rules as available_slots,
        without restricting it to the hourly grid.
        """
        self._require_rules()
        if working_window is None:
            return False

        is_past, earliest = self._earliest_for(on_date, now)
        if is_past:
            return False

        return self._fits(
            on_date, start_time, duration_minutes, working_window,
            self._blocked_ranges(commitments, unavailable), earliest,
        )
