"""
In-memory record store loaded from a YAML data file.

Used by the CLI and the tests in place of the production database. It
implements the service layer's RecordStoreProtocol, including the atomic
reserve step.
"""

import logging
import threading
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
import yaml
from pendulum import DateTime

from ..domain.exceptions import RecordStoreError, SlotConflictError
from ..domain.models import (
    BusinessRules,
    Commitment,
    DurationRule,
    GeoPoint,
    PricingRule,
    Provider,
    ServiceArea,
    TimeOff,
    TimeRange,
    WorkingWindow,
    to_decimal,
)
from ..domain.pricing import ensure_rule_table_consistent

logger = logging.getLogger(__name__)


def parse_time(value: Any) -> time:
    """
    Parse "HH:MM" (or "HH:MM:SS") into a time.

    Unquoted YAML values like 17:00 arrive as base-60 integers (1020).
    """
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        hours, minutes = divmod(value, 60)
        return time(hour=hours, minute=minutes)
    parts = [int(part) for part in str(value).strip().split(":")]
    return time(*parts)


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pendulum.parse(str(value)).date()


def parse_datetime(value: Any, timezone: str) -> DateTime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pendulum.instance(value, tz=timezone)
        return pendulum.instance(value)
    return pendulum.parse(str(value), tz=timezone)


def _parse_point(data: Optional[Dict[str, Any]]) -> Optional[GeoPoint]:
    if not data or data.get("lat") is None or data.get("lng") is None:
        return None
    return GeoPoint(lat=float(data["lat"]), lng=float(data["lng"]))


def _parse_service_area(data: Optional[Dict[str, Any]]) -> Optional[ServiceArea]:
    if not data:
        return None
    radius = data.get("radius_km")
    polygon = tuple(p for p in (_parse_point(v) for v in data.get("polygon") or []) if p is not None)
    return ServiceArea(
        center=_parse_point(data.get("center")),
        radius_km=float(radius) if radius is not None else None,
        polygon=polygon,
    )


class InMemoryRecordStore:
    """
    Holds providers, their hours, leave and commitments, plus the rule tables.

    Rule tables are validated whenever they change, so overlapping pricing
    rules never reach the engine from this store.
    """

    def __init__(
        self,
        business_rules: Optional[BusinessRules] = None,
        timezone: str = "Australia/Sydney",
    ) -> None:
        self.timezone = timezone
        self._business_rules = business_rules
        self._providers: Dict[str, Provider] = {}
        self._working_windows: Dict[str, Dict[int, WorkingWindow]] = {}
        self._time_off: List[TimeOff] = []
        self._commitments: List[Commitment] = []
        self._pricing_rules: List[PricingRule] = []
        self._duration_rules: List[DurationRule] = []
        self._service_buffers: Dict[str, Optional[int]] = {}
        self._lock = threading.Lock()

    # -- population -------------------------------------------------------

    def set_business_rules(self, rules: Optional[BusinessRules]) -> None:
        self._business_rules = rules

    def add_provider(self, provider: Provider) -> None:
        self._providers[provider.id] = provider

    def set_working_window(self, provider_id: str, window: WorkingWindow) -> None:
        if not 0 <= window.day_of_week <= 6:
            raise RecordStoreError(f"Invalid weekday {window.day_of_week} for provider {provider_id}")
        if window.start >= window.end:
            raise RecordStoreError(f"Working hours for provider {provider_id} must start before they end")
        self._working_windows.setdefault(provider_id, {})[window.day_of_week] = window

    def add_time_off(self, time_off: TimeOff) -> None:
        if time_off.end_date < time_off.start_date:
            raise RecordStoreError(f"Time off for provider {time_off.provider_id} ends before it starts")
        if (time_off.start_time is None) != (time_off.end_time is None):
            raise RecordStoreError(
                f"Time off for provider {time_off.provider_id} needs both a start and an end time, or neither"
            )
        if not time_off.is_all_day and time_off.start_time >= time_off.end_time:
            raise RecordStoreError(f"Time off for provider {time_off.provider_id} must start before it ends")
        self._time_off.append(time_off)

    def add_commitment(self, commitment: Commitment) -> None:
        self._commitments.append(commitment)

    def set_service_buffer(self, service_id: str, buffer_minutes: Optional[int]) -> None:
        self._service_buffers[service_id] = buffer_minutes

    def add_pricing_rule(self, rule: PricingRule) -> None:
        """Append a rule; rejected with OverlappingRulesError if it clashes."""
        ensure_rule_table_consistent(self._pricing_rules + [rule])
        self._pricing_rules.append(rule)

    def add_duration_rule(self, rule: DurationRule) -> None:
        ensure_rule_table_consistent([], self._duration_rules + [rule])
        self._duration_rules.append(rule)

    # -- RecordStoreProtocol ----------------------------------------------

    async def get_business_rules(self) -> Optional[BusinessRules]:
        return self._business_rules

    async def list_providers(self) -> List[Provider]:
        return list(self._providers.values())

    async def get_working_window(self, provider_id: str, day_of_week: int) -> Optional[WorkingWindow]:
        return self._working_windows.get(provider_id, {}).get(day_of_week)

    async def list_commitments(self, provider_id: str, on_date: date) -> List[Commitment]:
        """Commitments starting the day before, on, or the day after a date."""
        with self._lock:
            commitments = list(self._commitments)
        result = []
        for commitment in commitments:
            if commitment.provider_id != provider_id:
                continue
            start_date = commitment.start.in_timezone(self.timezone).date()
            if abs(start_date.toordinal() - on_date.toordinal()) <= 1:
                result.append(commitment)
        return result

    async def list_time_off(self, provider_id: str, on_date: date) -> List[TimeOff]:
        return [t for t in self._time_off if t.provider_id == provider_id and t.covers(on_date)]

    async def list_pricing_rules(self) -> List[PricingRule]:
        return list(self._pricing_rules)

    async def list_duration_rules(self) -> List[DurationRule]:
        return list(self._duration_rules)

    async def get_service_buffer(self, service_id: str) -> Optional[int]:
        return self._service_buffers.get(service_id)

    async def reserve_slot(
        self,
        commitment: Commitment,
        default_buffer_before_minutes: int,
        default_buffer_after_minutes: int,
    ) -> Commitment:
        """
        Store a commitment unless it overlaps an existing one for the provider.

        The check and the insert happen under one lock, so two concurrent
        reservations for the same slot cannot both succeed.
        """
        after = (
            commitment.buffer_after_minutes
            if commitment.buffer_after_minutes is not None
            else default_buffer_after_minutes
        )
        requested = TimeRange(
            start=commitment.start,
            end=commitment.end.add(minutes=after),
        )

        with self._lock:
            for existing in self._commitments:
                if existing.provider_id != commitment.provider_id:
                    continue
                existing_after = default_buffer_after_minutes
                if existing.service_id and self._service_buffers.get(existing.service_id) is not None:
                    existing_after = self._service_buffers[existing.service_id]
                blocked = existing.blocked_range(default_buffer_before_minutes, existing_after)
                if requested.overlaps(blocked):
                    raise SlotConflictError(
                        f"Provider {commitment.provider_id} is already booked for {blocked}"
                    )
            self._commitments.append(commitment)
        return commitment

    # -- loading ----------------------------------------------------------

    @classmethod
    def from_yaml(
        cls,
        data_path: Path,
        timezone: str = "Australia/Sydney",
        business_rules: Optional[BusinessRules] = None,
    ) -> "InMemoryRecordStore":
        """
        Load a store from a YAML data file.

        Args:
            data_path: Path to the YAML data file
            timezone: Timezone for naive commitment times
            business_rules: Rules snapshot, usually taken from the engine config

        Returns:
            Populated InMemoryRecordStore

        Raises:
            FileNotFoundError: If the data file doesn't exist
            ValueError: If the file is not valid YAML
            RecordStoreError: If the file is not a mapping
            OverlappingRulesError: If the rule tables are inconsistent
        """
        if not data_path.exists():
            raise FileNotFoundError(
                f"Data file not found: {data_path}\n"
                f"See data.example.yaml for reference."
            )

        try:
            with open(data_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {data_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise RecordStoreError("Data file must contain a mapping at the root level.")

        store = cls(business_rules=business_rules, timezone=timezone)
        store._load_services(data.get("services") or [])
        store._load_providers(data.get("providers") or [])
        store._load_commitments(data.get("commitments") or [])

        pricing_rules = [store._parse_pricing_rule(r) for r in data.get("pricing_rules") or []]
        duration_rules = [
            DurationRule(
                duration_minutes=int(r["duration_minutes"]),
                uplift_percentage=to_decimal(r["uplift_percentage"]),
            )
            for r in data.get("duration_rules") or []
        ]
        ensure_rule_table_consistent(pricing_rules, duration_rules)
        store._pricing_rules = pricing_rules
        store._duration_rules = duration_rules

        logger.debug(
            "Loaded %d providers and %d commitments from %s",
            len(store._providers), len(store._commitments), data_path,
        )
        return store

    @staticmethod
    def _parse_pricing_rule(data: Dict[str, Any]) -> PricingRule:
        return PricingRule(
            day_of_week=int(data["day_of_week"]),
            start_time=parse_time(data["start_time"]),
            end_time=parse_time(data["end_time"]),
            uplift_percentage=to_decimal(data["uplift_percentage"]),
            label=str(data.get("label", "")),
        )

    def _load_services(self, services: List[Dict[str, Any]]) -> None:
        for entry in services:
            try:
                buffer = entry.get("buffer_time")
                self.set_service_buffer(str(entry["id"]), int(buffer) if buffer is not None else None)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed service %r: %s", entry, exc)

    def _load_providers(self, providers: List[Dict[str, Any]]) -> None:
        for entry in providers:
            try:
                provider_id = str(entry["id"])
                provider = Provider(
                    id=provider_id,
                    name=str(entry.get("name", provider_id)),
                    is_active=bool(entry.get("is_active", True)),
                    gender=entry.get("gender"),
                    service_ids=frozenset(str(s) for s in entry.get("services") or []),
                    service_area=_parse_service_area(entry.get("service_area")),
                )
                windows = [
                    WorkingWindow(
                        day_of_week=int(w["day_of_week"]),
                        start=parse_time(w["start"]),
                        end=parse_time(w["end"]),
                    )
                    for w in entry.get("working_hours") or []
                ]
                leave = [
                    TimeOff(
                        provider_id=provider_id,
                        start_date=parse_date(t["start_date"]),
                        end_date=parse_date(t["end_date"]),
                        start_time=parse_time(t["start_time"]) if t.get("start_time") is not None else None,
                        end_time=parse_time(t["end_time"]) if t.get("end_time") is not None else None,
                    )
                    for t in entry.get("time_off") or []
                ]
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed provider %r: %s", entry.get("id"), exc)
                continue

            self.add_provider(provider)
            for window in windows:
                if window.day_of_week in self._working_windows.get(provider_id, {}):
                    logger.warning(
                        "Provider %s has more than one window on weekday %d; keeping the last",
                        provider_id, window.day_of_week,
                    )
                self.set_working_window(provider_id, window)
            for entry_off in leave:
                self.add_time_off(entry_off)

    def _load_commitments(self, commitments: List[Dict[str, Any]]) -> None:
        for entry in commitments:
            try:
                before = entry.get("buffer_before_minutes")
                after = entry.get("buffer_after_minutes")
                commitment = Commitment(
                    provider_id=str(entry["provider_id"]),
                    start=parse_datetime(entry["start"], self.timezone),
                    duration_minutes=int(entry["duration_minutes"]),
                    service_id=str(entry["service_id"]) if entry.get("service_id") else None,
                    buffer_before_minutes=int(before) if before is not None else None,
                    buffer_after_minutes=int(after) if after is not None else None,
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed commitment %r: %s", entry, exc)
                continue
            self.add_commitment(commitment)
