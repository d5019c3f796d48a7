"""
Application service answering "who can come, when, and for how much".

The service fetches records through a store adapter and delegates all
matching, slot and price arithmetic to the domain layer. The store
dependency is a protocol so tests can plug in a stub and the CLI can use
the in-memory YAML store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..adapters.settings_cache import SettingsCache
from ..domain.exceptions import ConfigMissingError
from ..domain.fees import FeeCalculator
from ..domain.geo_matcher import filter_providers
from ..domain.models import (
    ZERO,
    BusinessRules,
    Commitment,
    DurationRule,
    FeeResult,
    GeoPoint,
    PriceResult,
    PricingRule,
    Provider,
    QuoteDay,
    ReschedulePrice,
    ServiceArrangement,
    TimeOff,
    TimeRange,
    WorkingWindow,
    store_weekday,
)
from ..domain.pricing import PricingRuleEngine
from ..domain.slot_generator import SlotGenerator

logger = logging.getLogger(__name__)

WORKLOAD_HOURS_FOR_SECOND_PROVIDER = 4


class RecordStoreProtocol(Protocol):
    """Protocol describing the record store behaviour needed by the service."""

    async def get_business_rules(self) -> Optional[BusinessRules]:
        """Return the current business rules, None if not configured."""

    async def list_providers(self) -> List[Provider]:
        """Return all providers, active or not."""

    async def get_working_window(self, provider_id: str, day_of_week: int) -> Optional[WorkingWindow]:
        """Return the provider's hours for a weekday (0=Sunday), None if off."""

    async def list_commitments(self, provider_id: str, on_date: date) -> List[Commitment]:
        """Return bookings that may block the provider on a date."""

    async def list_time_off(self, provider_id: str, on_date: date) -> List[TimeOff]:
        """Return the provider's leave covering a date."""

    async def list_pricing_rules(self) -> List[PricingRule]:
        """Return time-of-day rules in table order."""

    async def list_duration_rules(self) -> List[DurationRule]:
        """Return duration uplift rules in table order."""

    async def get_service_buffer(self, service_id: str) -> Optional[int]:
        """Return a service's custom after-buffer in minutes, if it has one."""

    async def reserve_slot(
        self,
        commitment: Commitment,
        default_buffer_before_minutes: int,
        default_buffer_after_minutes: int,
    ) -> Commitment:
        """Atomically re-check and store a booking; raise SlotConflictError on overlap."""


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class BookingQuote:
    """Customer price and provider fee for the same booking."""
    price: PriceResult
    fee: FeeResult


@dataclass
class DayAvailability:
    day: QuoteDay
    providers_required: int
    providers: List[Provider]
    status: AvailabilityStatus
    alternatives: List[date] = field(default_factory=list)

    @property
    def can_fulfill(self) -> bool:
        return self.status is AvailabilityStatus.AVAILABLE


@dataclass
class QuoteAvailability:
    days: List[DayAvailability]

    @property
    def can_fulfill_completely(self) -> bool:
        return all(day.can_fulfill for day in self.days)

    @property
    def overall_status(self) -> AvailabilityStatus:
        if self.days and self.can_fulfill_completely:
            return AvailabilityStatus.AVAILABLE
        if any(day.can_fulfill for day in self.days):
            return AvailabilityStatus.PARTIAL
        return AvailabilityStatus.UNAVAILABLE

    def count(self, status: AvailabilityStatus) -> int:
        return sum(1 for day in self.days if day.status is status)


def providers_needed_for(total_minutes: int) -> int:
    """Two providers once the workload exceeds four hours, otherwise one."""
    return 2 if total_minutes / 60 > WORKLOAD_HOURS_FOR_SECOND_PROVIDER else 1


class AvailabilityService:
    """
    Orchestrates record retrieval and the availability and pricing engine.

    Args:
        store: Record store adapter
        timezone: Business timezone used for "today" and rule matching
        settings_cache: Optional cache wrapping the store's business rules
        max_gift_card_redemption: Cap applied to gift card amounts
        weekend_rule_start: Start of the standard daytime window for quote uplifts
        weekend_rule_end: End of the standard daytime window for quote uplifts
        minimum_quote_minutes: Smallest total a multi-day quote may have
    """

    def __init__(
        self,
        store: RecordStoreProtocol,
        timezone: str = "Australia/Sydney",
        settings_cache: Optional[SettingsCache] = None,
        max_gift_card_redemption: Optional[Decimal] = None,
        weekend_rule_start: time = time(8, 0),
        weekend_rule_end: time = time(18, 0),
        minimum_quote_minutes: int = 120,
    ) -> None:
        self._store = store
        self._timezone = timezone
        self._settings_cache = settings_cache
        self._max_gift_card_redemption = max_gift_card_redemption
        self._weekend_rule_start = weekend_rule_start
        self._weekend_rule_end = weekend_rule_end
        self._minimum_quote_minutes = minimum_quote_minutes

    async def business_rules(self) -> BusinessRules:
        """
        Load the rules snapshot, through the cache when one is configured.

        Raises:
            ConfigMissingError: If the store has no business rules
        """
        if self._settings_cache is not None:
            rules = await self._settings_cache.get()
        else:
            rules = await self._store.get_business_rules()
        if rules is None:
            raise ConfigMissingError("Business rules are not configured in the record store")
        return rules

    async def pricing_engine(self) -> PricingRuleEngine:
        return PricingRuleEngine(
            pricing_rules=await self._store.list_pricing_rules(),
            duration_rules=await self._store.list_duration_rules(),
            timezone=self._timezone,
            max_gift_card_redemption=self._max_gift_card_redemption,
            weekend_rule_start=self._weekend_rule_start,
            weekend_rule_end=self._weekend_rule_end,
            minimum_quote_minutes=self._minimum_quote_minutes,
        )

    async def eligible_providers(
        self,
        location: Optional[GeoPoint],
        service_id: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> List[Provider]:
        """Providers who are active, offer the service and serve the location."""
        providers = await self._store.list_providers()
        return filter_providers(providers, location, service_id=service_id, gender=gender)

    async def _commitments_for(self, provider_id: str, on_date: date) -> List[Commitment]:
        """Fetch commitments with per-service after-buffers folded in."""
        commitments = await self._store.list_commitments(provider_id, on_date)
        service_buffers: Dict[str, Optional[int]] = {}
        result: List[Commitment] = []
        for commitment in commitments:
            if commitment.service_id and commitment.buffer_after_minutes is None:
                if commitment.service_id not in service_buffers:
                    service_buffers[commitment.service_id] = await self._store.get_service_buffer(
                        commitment.service_id
                    )
                buffer = service_buffers[commitment.service_id]
                if buffer is not None:
                    commitment = replace(commitment, buffer_after_minutes=buffer)
            result.append(commitment)
        return result

    async def _leave_for(self, provider_id: str, on_date: date) -> Tuple[bool, List[TimeRange]]:
        """Return (away all day, partial leave spans) for a provider on a date."""
        partial: List[TimeRange] = []
        for entry in await self._store.list_time_off(provider_id, on_date):
            if not entry.covers(on_date):
                continue
            if entry.is_all_day:
                return True, []
            span = entry.blocked_range(on_date, self._timezone)
            if span is not None:
                partial.append(span)
        return False, partial

    async def provider_slots(
        self,
        provider: Provider,
        on_date: date,
        duration_minutes: int,
        rules: Optional[BusinessRules] = None,
        now: Optional[DateTime] = None,
    ) -> List[time]:
        """Start times one provider can take on a date."""
        rules = rules or await self.business_rules()
        away, partial_leave = await self._leave_for(provider.id, on_date)
        if away:
            logger.debug("Provider %s is on leave on %s", provider.id, on_date)
            return []

        window = await self._store.get_working_window(provider.id, store_weekday(on_date))
        commitments = await self._commitments_for(provider.id, on_date)
        return SlotGenerator(rules, self._timezone).available_slots(
            on_date, duration_minutes, window, commitments, now=now, unavailable=partial_leave
        )

    async def slots_by_provider(
        self,
        location: Optional[GeoPoint],
        on_date: date,
        duration_minutes: int,
        service_id: Optional[str] = None,
        gender: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> Dict[str, List[time]]:
        """Per-provider start times, only for providers with at least one slot."""
        rules = await self.business_rules()
        result: Dict[str, List[time]] = {}
        for provider in await self.eligible_providers(location, service_id, gender):
            slots = await self.provider_slots(provider, on_date, duration_minutes, rules, now)
            if slots:
                result[provider.id] = slots
        return result

    async def available_slots(
        self,
        location: Optional[GeoPoint],
        on_date: date,
        duration_minutes: int,
        service_id: Optional[str] = None,
        gender: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> List[time]:
        """Start times at which at least one eligible provider is free."""
        by_provider = await self.slots_by_provider(
            location, on_date, duration_minutes, service_id, gender, now
        )
        return sorted({slot for slots in by_provider.values() for slot in slots})

    async def providers_for_slot(
        self,
        location: Optional[GeoPoint],
        on_date: date,
        start_time: time,
        duration_minutes: int,
        service_id: Optional[str] = None,
        gender: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> List[Provider]:
        """Eligible providers free at one exact start time, nearest first."""
        rules = await self.business_rules()
        generator = SlotGenerator(rules, self._timezone)
        free: List[Provider] = []
        for provider in await self.eligible_providers(location, service_id, gender):
            away, partial_leave = await self._leave_for(provider.id, on_date)
            if away:
                continue
            window = await self._store.get_working_window(provider.id, store_weekday(on_date))
            commitments = await self._commitments_for(provider.id, on_date)
            if generator.is_free(
                on_date, start_time, duration_minutes, window, commitments,
                now=now, unavailable=partial_leave,
            ):
                free.append(provider)
        return free

    async def quote_booking(
        self,
        base_price,
        duration_minutes: int,
        start: DateTime,
        discount_amount=ZERO,
        gift_card_amount=ZERO,
        provider_count: int = 1,
        arrangement: ServiceArrangement = ServiceArrangement.SPLIT,
    ) -> BookingQuote:
        """Customer price and provider fee for one booking."""
        rules = await self.business_rules()
        engine = await self.pricing_engine()
        local = start.in_timezone(self._timezone)

        price = engine.price(
            base_price,
            duration_minutes,
            local,
            discount_amount=discount_amount,
            gift_card_amount=gift_card_amount,
        )
        fee = FeeCalculator(rules).therapist_fee(
            local.date(),
            time(local.hour, local.minute),
            duration_minutes,
            provider_count=provider_count,
            arrangement=arrangement,
        )
        return BookingQuote(price=price, fee=fee)

    async def reschedule_price(
        self,
        original_price,
        original_start: DateTime,
        new_start: DateTime,
    ) -> ReschedulePrice:
        """Price moving a booking; only a higher time-of-day uplift costs extra."""
        engine = await self.pricing_engine()
        return engine.reschedule_price(original_price, original_start, new_start)

    async def suggest_alternatives(
        self,
        location: Optional[GeoPoint],
        on_date: date,
        start_time: time,
        duration_minutes: int,
        providers_needed: int = 1,
        days_to_check: int = 7,
        limit: int = 3,
        service_id: Optional[str] = None,
        gender: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> List[date]:
        """The first ``limit`` of the next ``days_to_check`` days that can be fulfilled at the same time."""
        alternatives: List[date] = []
        start = pendulum.date(on_date.year, on_date.month, on_date.day)
        for offset in range(1, days_to_check + 1):
            candidate = start.add(days=offset)
            free = await self.providers_for_slot(
                location, candidate, start_time, duration_minutes, service_id, gender, now
            )
            if len(free) >= providers_needed:
                alternatives.append(candidate)
                if len(alternatives) >= limit:
                    break
        return alternatives

    async def check_quote_availability(
        self,
        quote_days: Sequence[QuoteDay],
        location: Optional[GeoPoint],
        total_minutes: Optional[int] = None,
        providers_needed: Optional[int] = None,
        service_id: Optional[str] = None,
        gender: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> QuoteAvailability:
        """
        Check each quote day against provider availability.

        A day is available when enough providers are free for its whole
        span, partial when some are, unavailable when none are. Days that
        are not available come with alternative dates.
        """
        if total_minutes is None:
            total_minutes = sum(day.duration_minutes for day in quote_days)
        required = providers_needed or providers_needed_for(total_minutes)

        days: List[DayAvailability] = []
        for day in quote_days:
            free = await self.providers_for_slot(
                location, day.date, day.start_time, day.duration_minutes, service_id, gender, now
            )
            if len(free) >= required:
                status = AvailabilityStatus.AVAILABLE
            elif free:
                status = AvailabilityStatus.PARTIAL
            else:
                status = AvailabilityStatus.UNAVAILABLE

            alternatives: List[date] = []
            if status is not AvailabilityStatus.AVAILABLE:
                alternatives = await self.suggest_alternatives(
                    location,
                    day.date,
                    day.start_time,
                    day.duration_minutes,
                    providers_needed=required,
                    service_id=service_id,
                    gender=gender,
                    now=now,
                )

            days.append(
                DayAvailability(
                    day=day,
                    providers_required=required,
                    providers=free,
                    status=status,
                    alternatives=alternatives,
                )
            )
        return QuoteAvailability(days=days)

    async def reserve_slot(
        self,
        provider_id: str,
        start: DateTime,
        duration_minutes: int,
        service_id: Optional[str] = None,
    ) -> Commitment:
        """
        Book a provider. The store re-checks for overlaps atomically.

        Raises:
            SlotConflictError: If the slot was taken since it was offered
        """
        rules = await self.business_rules()
        buffer_after = await self._store.get_service_buffer(service_id) if service_id else None
        commitment = Commitment(
            provider_id=provider_id,
            start=start,
            duration_minutes=duration_minutes,
            service_id=service_id,
            buffer_after_minutes=buffer_after,
        )
        reserved = await self._store.reserve_slot(
            commitment,
            rules.default_buffer_before_minutes,
            rules.default_buffer_after_minutes,
        )
        logger.info("Reserved %s for provider %s", start, provider_id)
        return reserved
