"""
Tests for the business rules TTL cache.
"""

import asyncio

from bookingengine.adapters.settings_cache import SettingsCache
from bookingengine.domain.models import BusinessRules


class FakeClock:

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingLoader:

    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return BusinessRules(opening_hour=9, closing_hour=17 + self.calls % 2)


def test_snapshot_is_reused_within_ttl():
    clock, loader = FakeClock(), CountingLoader()
    cache = SettingsCache(loader, ttl_seconds=300, clock=clock)

    first = asyncio.run(cache.get())
    clock.now += 299
    second = asyncio.run(cache.get())

    assert loader.calls == 1
    assert first is second


def test_snapshot_reloads_after_ttl():
    clock, loader = FakeClock(), CountingLoader()
    cache = SettingsCache(loader, ttl_seconds=300, clock=clock)

    asyncio.run(cache.get())
    clock.now += 300
    asyncio.run(cache.get())

    assert loader.calls == 2


def test_invalidate_forces_reload():
    clock, loader = FakeClock(), CountingLoader()
    cache = SettingsCache(loader, ttl_seconds=300, clock=clock)

    asyncio.run(cache.get())
    cache.invalidate()

    assert not cache.is_fresh()
    asyncio.run(cache.get())
    assert loader.calls == 2
