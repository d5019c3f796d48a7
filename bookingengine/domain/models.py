"""
Domain models for providers, commitments, rule tables and engine results.
"""

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, FrozenSet, List, Optional, Tuple

import pendulum
from pendulum import DateTime

CENTS = Decimal("0.01")
ZERO = Decimal("0")

WEEKDAY_NAMES = {
    0: "Sunday",
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}


def to_decimal(value: Any) -> Decimal:
    """Convert an int, float or string amount to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    """Round an amount to cents."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def store_weekday(day: date) -> int:
    """
    Return the record store's weekday number for a date.

    Stored rules and working hours use 0=Sunday ... 6=Saturday, while
    ``date.weekday()`` uses 0=Monday.
    """
    return (day.weekday() + 1) % 7


def is_weekend(day: date) -> bool:
    """Check if a date falls on Saturday or Sunday."""
    return day.weekday() in (5, 6)


def minutes_of_day(t: time) -> int:
    return t.hour * 60 + t.minute


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must not be after end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Start time {self.start} must not be after end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class ServiceArea:
    """
    Where a provider is willing to travel.

    A polygon of three or more vertices takes precedence; the radius around
    ``center`` is used when no polygon is defined or the point falls outside it.
    """
    center: Optional[GeoPoint] = None
    radius_km: Optional[float] = None
    polygon: Tuple[GeoPoint, ...] = ()

    def has_polygon(self) -> bool:
        return len(self.polygon) >= 3


@dataclass(frozen=True)
class Provider:
    """A therapist who can be matched to bookings."""
    id: str
    name: str = ""
    is_active: bool = True
    gender: Optional[str] = None
    service_ids: FrozenSet[str] = frozenset()
    service_area: Optional[ServiceArea] = None

    def offers(self, service_id: Optional[str]) -> bool:
        """Check if the provider offers a service (no service means any)."""
        return service_id is None or service_id in self.service_ids


@dataclass(frozen=True)
class Commitment:
    """
    An existing booking occupying a provider's time.

    Buffer overrides take precedence over the business defaults for this
    commitment only.
    """
    provider_id: str
    start: DateTime
    duration_minutes: int
    service_id: Optional[str] = None
    buffer_before_minutes: Optional[int] = None
    buffer_after_minutes: Optional[int] = None

    @property
    def end(self) -> DateTime:
        return self.start.add(minutes=max(0, self.duration_minutes))

    def blocked_range(self, default_before: int, default_after: int) -> TimeRange:
        """Return the window this commitment blocks, including its buffers."""
        before = self.buffer_before_minutes if self.buffer_before_minutes is not None else default_before
        after = self.buffer_after_minutes if self.buffer_after_minutes is not None else default_after
        return TimeRange(
            start=self.start.subtract(minutes=before),
            end=self.end.add(minutes=after),
        )


@dataclass(frozen=True)
class WorkingWindow:
    """A provider's working hours for one weekday, half-open ``[start, end)``."""
    day_of_week: int  # 0=Sunday, 6=Saturday
    start: time
    end: time

    def contains(self, t: time) -> bool:
        return self.start <= t < self.end


@dataclass(frozen=True)
class TimeOff:
    """
    A provider's leave, inclusive of both dates.

    Without times the provider is away all day. With ``start_time`` and
    ``end_time`` only that part of each covered day is blocked.
    """
    provider_id: str
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def is_all_day(self) -> bool:
        return self.start_time is None and self.end_time is None

    def blocked_range(self, day: date, timezone: str) -> Optional[TimeRange]:
        """Return the part of a covered day this leave blocks, None if all day or not covered."""
        if self.start_time is None or self.end_time is None or not self.covers(day):
            return None
        return TimeRange(
            start=pendulum.datetime(
                day.year, day.month, day.day, self.start_time.hour, self.start_time.minute, tz=timezone
            ),
            end=pendulum.datetime(
                day.year, day.month, day.day, self.end_time.hour, self.end_time.minute, tz=timezone
            ),
        )


@dataclass(frozen=True)
class BusinessRules:
    """
    Process-wide settings snapshot passed into each engine call.
    """
    opening_hour: int
    closing_hour: int
    default_buffer_before_minutes: int = 0
    default_buffer_after_minutes: int = 0
    min_advance_hours: float = 0
    daytime_hourly_rate: Decimal = ZERO
    afterhours_hourly_rate: Decimal = ZERO
    weekend_hourly_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class PricingRule:
    """A time-of-day uplift for one weekday, half-open ``[start_time, end_time)``."""
    day_of_week: int  # 0=Sunday, 6=Saturday
    start_time: time
    end_time: time
    uplift_percentage: Decimal
    label: str = ""

    def matches(self, day_of_week: int, t: time) -> bool:
        return self.day_of_week == day_of_week and self.start_time <= t < self.end_time

    def overlaps(self, other: "PricingRule") -> bool:
        return (
            self.day_of_week == other.day_of_week
            and self.start_time < other.end_time
            and self.end_time > other.start_time
        )

    def describe(self) -> str:
        return (
            f"{WEEKDAY_NAMES.get(self.day_of_week, self.day_of_week)} "
            f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"
        )


@dataclass(frozen=True)
class DurationRule:
    """An uplift applied when the booked duration equals ``duration_minutes``."""
    duration_minutes: int
    uplift_percentage: Decimal


@dataclass(frozen=True)
class QuoteDay:
    """One day of a multi-day quote."""
    day_number: int
    date: date
    start_time: time
    finish_time: time

    @property
    def duration_minutes(self) -> int:
        """Minutes between start and finish; a finish before the start counts as zero."""
        return max(0, minutes_of_day(self.finish_time) - minutes_of_day(self.start_time))


class RateType(str, Enum):
    DAYTIME = "daytime"
    AFTERHOURS = "afterhours"
    WEEKEND = "weekend"


class ServiceArrangement(str, Enum):
    """Whether providers on one job divide the workload or each work all of it."""
    SPLIT = "split"
    MULTIPLY = "multiply"


@dataclass(frozen=True)
class PriceResult:
    """Customer price for a single booking, with every intermediate amount."""
    base_price: Decimal
    duration_uplift_amount: Decimal
    time_uplift_amount: Decimal
    discount_amount: Decimal
    gift_card_amount: Decimal
    final_price: Decimal
    gst_component: Decimal
    duration_rule: Optional[DurationRule] = None
    pricing_rule: Optional[PricingRule] = None

    @property
    def gross_price(self) -> Decimal:
        """Price after uplifts, before discount and gift card."""
        return self.base_price + self.duration_uplift_amount + self.time_uplift_amount

    def summary_lines(self) -> List[str]:
        """Format the breakdown the way it is shown to customers."""
        lines = [f"Hourly Rate: ${self.base_price:.2f}"]
        if self.duration_rule is not None and self.duration_uplift_amount:
            lines.append(
                f"Time Uplift ({self.duration_rule.uplift_percentage}%): "
                f"+${self.duration_uplift_amount:.2f}"
            )
        if self.pricing_rule is not None and self.time_uplift_amount:
            lines.append(
                f"Weekend/Afterhours Uplift ({self.pricing_rule.uplift_percentage}%): "
                f"+${self.time_uplift_amount:.2f}"
            )
        if self.discount_amount:
            lines.append(f"Discount: -${self.discount_amount:.2f}")
        if self.gift_card_amount:
            lines.append(f"Gift Card: -${self.gift_card_amount:.2f}")
        lines.append(f"GST (10%): ${self.gst_component:.2f}")
        lines.append(f"Total: ${self.final_price:.2f}")
        return lines


@dataclass(frozen=True)
class ReschedulePrice:
    """
    Price of moving an already priced booking to a new time.

    ``difference`` is what the customer pays on top; it is never negative.
    """
    original_price: Decimal
    original_uplift_percentage: Decimal
    new_uplift_percentage: Decimal
    new_price: Decimal
    difference: Decimal
    pricing_rule: Optional[PricingRule] = None

    @property
    def has_extra_charge(self) -> bool:
        return self.difference > ZERO


@dataclass(frozen=True)
class FeeResult:
    """Provider payout for a job."""
    hourly_rate: Decimal
    hours_worked: Decimal
    rate_type: RateType
    fee: Decimal


@dataclass(frozen=True)
class QuoteEstimate:
    """
    Multi-day quote price. ``actual`` is what gets persisted; customers see
    the ``low``-``high`` band.
    """
    base_amount: Decimal
    average_multiplier: Decimal
    actual: Decimal
    low: Decimal
    high: Decimal

    def display(self) -> str:
        return f"${self.low} - ${self.high}"


@dataclass(frozen=True)
class QuoteDayAmount:
    day: QuoteDay
    minutes: int
    multiplier: Decimal
    base_amount: Decimal
    amount: Decimal

    @property
    def uplift_amount(self) -> Decimal:
        return self.amount - self.base_amount


@dataclass(frozen=True)
class QuoteBreakdown:
    """Itemised quote where each day carries its own weekend uplift."""
    days: Tuple[QuoteDayAmount, ...] = field(default_factory=tuple)

    @property
    def base_amount(self) -> Decimal:
        return quantize_money(sum((d.base_amount for d in self.days), ZERO))

    @property
    def weekend_uplift_amount(self) -> Decimal:
        return quantize_money(sum((d.uplift_amount for d in self.days), ZERO))

    @property
    def total_amount(self) -> Decimal:
        return quantize_money(sum((d.amount for d in self.days), ZERO))

    @property
    def has_weekend_days(self) -> bool:
        return self.weekend_uplift_amount > 0

    @property
    def uplift_percentage(self) -> Decimal:
        """Overall uplift as a percentage of the base amount."""
        base = sum((d.base_amount for d in self.days), ZERO)
        if base <= 0:
            return ZERO
        uplift = sum((d.uplift_amount for d in self.days), ZERO)
        return quantize_money(uplift / base * 100)
