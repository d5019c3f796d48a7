"""
Tests for the YAML-backed in-memory record store.
"""

import asyncio
import logging
import threading
from datetime import date, time
from decimal import Decimal

import pendulum
import pytest

from bookingengine.adapters.memory_store import InMemoryRecordStore, parse_time
from bookingengine.domain.exceptions import OverlappingRulesError, RecordStoreError, SlotConflictError
from bookingengine.domain.models import Commitment, DurationRule, PricingRule, TimeOff

TZ = "Australia/Sydney"

DATA = """
services:
  - id: swedish
  - id: remedial
    buffer_time: 30

providers:
  - id: t1
    name: Alice
    gender: female
    services: [swedish, remedial]
    service_area:
      center: {lat: -33.8688, lng: 151.2093}
      radius_km: 15
    working_hours:
      - day_of_week: 1
        start: "09:00"
        end: 17:00
    time_off:
      - {start_date: 2026-12-24, end_date: "2027-01-02"}
      - {start_date: 2026-11-17, end_date: 2026-11-17, start_time: "12:00", end_time: "14:00"}
  - name: missing id

commitments:
  - provider_id: t1
    start: "2026-11-16T11:00:00"
    duration_minutes: 60
    service_id: remedial
  - provider_id: t1
    start: "not a date"
    duration_minutes: 60

pricing_rules:
  - {day_of_week: 6, start_time: "08:00", end_time: "18:00", uplift_percentage: 20}

duration_rules:
  - {duration_minutes: 90, uplift_percentage: 25}
"""


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "data.yaml"
    path.write_text(DATA, encoding="utf-8")
    return path


def _commitment(start: str, duration: int = 60, provider_id: str = "t1") -> Commitment:
    return Commitment(
        provider_id=provider_id,
        start=pendulum.parse(start, tz=TZ),
        duration_minutes=duration,
    )


class TestParseTime:
    """Tests for time parsing from YAML values."""

    def test_string(self):
        assert parse_time("09:30") == time(9, 30)

    def test_yaml_base_sixty_integer(self):
        assert parse_time(1020) == time(17, 0)


class TestLoading:
    """Tests for loading the YAML data file."""

    def test_loads_records(self, data_file):
        store = InMemoryRecordStore.from_yaml(data_file, timezone=TZ)

        providers = asyncio.run(store.list_providers())
        assert [p.id for p in providers] == ["t1"]
        assert providers[0].service_ids == frozenset({"swedish", "remedial"})

        window = asyncio.run(store.get_working_window("t1", 1))
        assert window.start == time(9, 0)
        assert window.end == time(17, 0)
        assert asyncio.run(store.get_working_window("t1", 2)) is None

        assert asyncio.run(store.get_service_buffer("remedial")) == 30
        assert asyncio.run(store.get_service_buffer("swedish")) is None
        assert len(asyncio.run(store.list_pricing_rules())) == 1
        assert len(asyncio.run(store.list_duration_rules())) == 1

    def test_malformed_records_are_skipped_with_warning(self, data_file, caplog):
        with caplog.at_level(logging.WARNING, logger="bookingengine.adapters.memory_store"):
            store = InMemoryRecordStore.from_yaml(data_file, timezone=TZ)

        assert "Skipping malformed provider" in caplog.text
        assert "Skipping malformed commitment" in caplog.text
        assert len(asyncio.run(store.list_commitments("t1", date(2026, 11, 16)))) == 1

    def test_time_off(self, data_file):
        store = InMemoryRecordStore.from_yaml(data_file, timezone=TZ)

        assert asyncio.run(store.list_time_off("t1", date(2026, 12, 25)))
        assert not asyncio.run(store.list_time_off("t1", date(2027, 1, 3)))

    def test_partial_time_off_keeps_its_hours(self, data_file):
        store = InMemoryRecordStore.from_yaml(data_file, timezone=TZ)

        (leave,) = asyncio.run(store.list_time_off("t1", date(2026, 11, 17)))

        assert leave.start_time == time(12, 0)
        assert leave.end_time == time(14, 0)
        assert not leave.is_all_day

    def test_time_off_needs_both_times_or_neither(self):
        store = InMemoryRecordStore(timezone=TZ)

        with pytest.raises(RecordStoreError, match="both a start and an end time"):
            store.add_time_off(TimeOff("t1", date(2026, 11, 16), date(2026, 11, 16), start_time=time(12, 0)))
        with pytest.raises(RecordStoreError, match="must start before it ends"):
            store.add_time_off(TimeOff("t1", date(2026, 11, 16), date(2026, 11, 16), time(14, 0), time(12, 0)))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            InMemoryRecordStore.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "data.yaml"
        path.write_text("providers: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            InMemoryRecordStore.from_yaml(path)

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "data.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(RecordStoreError):
            InMemoryRecordStore.from_yaml(path)

    def test_overlapping_rules_in_file_are_rejected(self, tmp_path):
        path = tmp_path / "data.yaml"
        path.write_text(
            "pricing_rules:\n"
            "  - {day_of_week: 5, start_time: '18:00', end_time: '23:00', uplift_percentage: 10}\n"
            "  - {day_of_week: 5, start_time: '20:00', end_time: '22:00', uplift_percentage: 15}\n",
            encoding="utf-8",
        )

        with pytest.raises(OverlappingRulesError):
            InMemoryRecordStore.from_yaml(path)


class TestRuleEntry:
    """Tests for adding rules to the store."""

    def test_add_overlapping_pricing_rule_is_rejected(self):
        store = InMemoryRecordStore()
        store.add_pricing_rule(PricingRule(5, time(18, 0), time(23, 0), Decimal("10")))

        with pytest.raises(OverlappingRulesError):
            store.add_pricing_rule(PricingRule(5, time(22, 0), time(23, 30), Decimal("15")))

        assert len(asyncio.run(store.list_pricing_rules())) == 1

    def test_add_duplicate_duration_rule_is_rejected(self):
        store = InMemoryRecordStore()
        store.add_duration_rule(DurationRule(90, Decimal("25")))

        with pytest.raises(OverlappingRulesError):
            store.add_duration_rule(DurationRule(90, Decimal("30")))


class TestCommitments:
    """Tests for commitments and reservations."""

    def test_list_commitments_covers_neighbouring_days(self):
        store = InMemoryRecordStore(timezone=TZ)
        store.add_commitment(_commitment("2026-11-15 23:00"))
        store.add_commitment(_commitment("2026-11-16 10:00"))
        store.add_commitment(_commitment("2026-11-20 10:00"))
        store.add_commitment(_commitment("2026-11-16 10:00", provider_id="t2"))

        commitments = asyncio.run(store.list_commitments("t1", date(2026, 11, 16)))

        assert len(commitments) == 2


class TestReserveSlot:
    """Tests for the atomic reserve step."""

    def test_double_booking_is_rejected(self):
        store = InMemoryRecordStore(timezone=TZ)
        asyncio.run(store.reserve_slot(_commitment("2026-11-16 10:00"), 0, 15))

        with pytest.raises(SlotConflictError):
            asyncio.run(store.reserve_slot(_commitment("2026-11-16 10:30"), 0, 15))

    def test_buffer_blocks_back_to_back_booking(self):
        store = InMemoryRecordStore(timezone=TZ)
        asyncio.run(store.reserve_slot(_commitment("2026-11-16 10:00"), 0, 15))

        with pytest.raises(SlotConflictError):
            asyncio.run(store.reserve_slot(_commitment("2026-11-16 11:00"), 0, 15))

        asyncio.run(store.reserve_slot(_commitment("2026-11-16 11:15"), 0, 15))

    def test_other_provider_is_unaffected(self):
        store = InMemoryRecordStore(timezone=TZ)
        asyncio.run(store.reserve_slot(_commitment("2026-11-16 10:00"), 0, 15))

        reserved = asyncio.run(
            store.reserve_slot(_commitment("2026-11-16 10:00", provider_id="t2"), 0, 15)
        )

        assert reserved.provider_id == "t2"

    def test_concurrent_reservations_only_one_wins(self):
        store = InMemoryRecordStore(timezone=TZ)
        outcomes = []

        def reserve():
            try:
                asyncio.run(store.reserve_slot(_commitment("2026-11-16 10:00"), 0, 15))
                outcomes.append("ok")
            except SlotConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=reserve) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("conflict") == 7
