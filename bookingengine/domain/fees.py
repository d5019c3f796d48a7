"""
Provider payout calculation.
"""

from datetime import date, time
from decimal import Decimal
from typing import Optional

from .exceptions import ConfigMissingError
from .models import (
    ZERO,
    BusinessRules,
    FeeResult,
    RateType,
    ServiceArrangement,
    is_weekend,
    quantize_money,
    to_decimal,
)

MINUTES_PER_HOUR = Decimal("60")


class FeeCalculator:
    """
    Computes what a provider is paid for a job.

    Stateless: the business rules snapshot is handed in by the caller.
    """

    def __init__(self, rules: Optional[BusinessRules]):
        self.rules = rules

    def _require_rules(self) -> BusinessRules:
        if self.rules is None:
            raise ConfigMissingError("Business rules are not configured; cannot calculate fees")
        return self.rules

    def classify(self, on_date: date, start_time: time) -> RateType:
        """Weekend beats after-hours; otherwise the start hour decides."""
        rules = self._require_rules()
        if is_weekend(on_date):
            return RateType.WEEKEND
        if start_time.hour < rules.opening_hour or start_time.hour >= rules.closing_hour:
            return RateType.AFTERHOURS
        return RateType.DAYTIME

    def hourly_rate(self, rate_type: RateType) -> Decimal:
        rules = self._require_rules()
        if rate_type is RateType.WEEKEND:
            if rules.weekend_hourly_rate is not None:
                return to_decimal(rules.weekend_hourly_rate)
            return to_decimal(rules.afterhours_hourly_rate)
        if rate_type is RateType.AFTERHOURS:
            return to_decimal(rules.afterhours_hourly_rate)
        return to_decimal(rules.daytime_hourly_rate)

    def therapist_fee(
        self,
        on_date: date,
        start_time: time,
        total_duration_minutes: int,
        provider_count: int = 1,
        arrangement: ServiceArrangement = ServiceArrangement.SPLIT,
    ) -> FeeResult:
        """
        Calculate one provider's fee for a job.

        With a split arrangement the providers share the total duration;
        with multiply each of them works all of it.
        """
        rate_type = self.classify(on_date, start_time)
        rate = max(ZERO, self.hourly_rate(rate_type))

        minutes = Decimal(max(0, total_duration_minutes))
        if ServiceArrangement(arrangement) is ServiceArrangement.SPLIT:
            minutes = minutes / Decimal(max(1, provider_count))
        # fee == hours_worked * rate
        hours_worked = quantize_money(minutes / MINUTES_PER_HOUR)

        return FeeResult(
            hourly_rate=rate,
            hours_worked=hours_worked,
            rate_type=rate_type,
            fee=quantize_money(rate * hours_worked),
        )
