"""
Unit Tests - Report Cache
"""
from datetime import datetime

import pytest

from stockpulse.config import Settings
from stockpulse.serving.cache import ReportCache, build_cache_key


class TestReportCache:
    """Tests for ReportCache"""

    def test_set_and_get(self, fake_clock):
        cache = ReportCache(clock=fake_clock)

        cache.set("k", {"rows": []}, ttl=60)

        assert cache.get("k") == {"rows": []}
        assert "k" in cache
        assert len(cache) == 1

    def test_miss(self, fake_clock):
        cache = ReportCache(clock=fake_clock)

        assert cache.get("missing") is None
        assert cache.misses == 1

    def test_entry_expires(self, fake_clock):
        cache = ReportCache(clock=fake_clock)
        cache.set("k", 1, ttl=60)

        fake_clock.advance(60)
        assert cache.get("k") == 1

        fake_clock.advance(1)
        assert cache.get("k") is None
        assert "k" not in cache

    def test_age(self, fake_clock):
        cache = ReportCache(clock=fake_clock)
        cache.set("k", 1, ttl=60)

        fake_clock.advance(12.5)

        assert cache.age("k") == pytest.approx(12.5)
        assert cache.age("other") is None

    def test_evicts_first_inserted_at_capacity(self, fake_clock):
        cache = ReportCache(max_entries=3, clock=fake_clock)
        for key in ["a", "b", "c"]:
            cache.set(key, key, ttl=60)

        cache.set("d", "d", ttl=60)

        assert len(cache) == 3
        assert "a" not in cache
        assert cache.evictions == 1

    def test_reads_do_not_change_eviction_order(self, fake_clock):
        cache = ReportCache(max_entries=2, clock=fake_clock)
        cache.set("a", 1, ttl=60)
        cache.set("b", 2, ttl=60)

        cache.get("a")
        cache.set("c", 3, ttl=60)

        assert "a" not in cache
        assert "b" in cache

    def test_reset_counts_as_new_insertion(self, fake_clock):
        cache = ReportCache(max_entries=2, clock=fake_clock)
        cache.set("a", 1, ttl=60)
        cache.set("b", 2, ttl=60)

        cache.set("a", 10, ttl=60)
        cache.set("c", 3, ttl=60)

        assert "b" not in cache
        assert cache.get("a") == 10
        assert cache.evictions == 1

    def test_reset_refreshes_timestamp(self, fake_clock):
        cache = ReportCache(clock=fake_clock)
        cache.set("a", 1, ttl=60)
        fake_clock.advance(50)

        cache.set("a", 2, ttl=60)
        fake_clock.advance(50)

        assert cache.get("a") == 2

    def test_rejects_empty_capacity(self):
        with pytest.raises(ValueError):
            ReportCache(max_entries=0)

    def test_ttl_classes(self):
        cache = ReportCache()

        assert cache.ttl_for("daily", is_today=True) == 180
        assert cache.ttl_for("weekly", is_today=True) == 180
        assert cache.ttl_for("daily") == 600
        assert cache.ttl_for("weekly") == 7200
        assert cache.ttl_for("monthly") == 14400

    def test_ttl_overrides(self):
        cache = ReportCache(ttls={"daily": 5})

        assert cache.ttl_for("daily") == 5
        assert cache.ttl_for("weekly") == 7200

    def test_from_settings(self):
        settings = Settings()

        cache = ReportCache.from_settings(settings)

        assert cache.max_entries == settings.cache.max_entries
        assert cache.ttl_for("monthly") == settings.cache.ttl_monthly_seconds

    def test_stats_and_clear(self, fake_clock):
        cache = ReportCache(clock=fake_clock)
        cache.set("a", 1, ttl=60)
        cache.set("b", 2, ttl=60)
        cache.get("a")
        cache.get("zzz")

        stats = cache.stats()

        assert stats["size"] == 2
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["keys"] == ["a", "b"]
        assert cache.clear() == 2
        assert len(cache) == 0

    def test_delete(self, fake_clock):
        cache = ReportCache(clock=fake_clock)
        cache.set("a", 1, ttl=60)

        assert cache.delete("a") is True
        assert cache.delete("a") is False


class TestBuildCacheKey:
    """Tests for cache key construction"""

    def test_closed_period_key(self):
        key = build_cache_key("daily", False, datetime(2025, 3, 9, 6, 0))
        assert key == "daily-closed-2025-03-09"

    def test_today_key_bucketed_by_hour(self):
        early = build_cache_key("daily", True, datetime(2025, 3, 10, 9, 5))
        late = build_cache_key("daily", True, datetime(2025, 3, 10, 9, 55))
        next_hour = build_cache_key("daily", True, datetime(2025, 3, 10, 10, 1))

        assert early == late == "daily-today-2025-03-10-09"
        assert next_hour != early

    def test_location_scope_in_key(self):
        key = build_cache_key("weekly", False, datetime(2025, 3, 3), include_all_locations=True)
        assert key == "weekly-closed-2025-03-03-all"
