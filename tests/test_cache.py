"""Tests for cache module."""

import pytest
from datetime import datetime, timedelta, timezone

from newsclipper.cache import ContentCache
from newsclipper.errors import CacheCorruptionError
from newsclipper.models import CacheStatus, UpdateTimeSpec
from newsclipper.schedule import parse_update_times

PST = timezone(timedelta(hours=-8))
DAY = datetime(2024, 3, 6, 18, 0, tzinfo=PST)
URL = "http://example.com/news"


@pytest.fixture
def cache(tmp_path):
    return ContentCache(tmp_path / "cache", max_size=100)


class TestLookup:
    """Tests for ContentCache.lookup."""

    def test_not_found(self, cache):
        """Test lookup of an uncached URL."""
        data, status = cache.lookup(URL, parse_update_times(["20"]), now=DAY)
        assert data is None
        assert status == CacheStatus.NOT_FOUND

    def test_valid_after_due_instant(self, cache):
        """Test data fetched after the last due instant is valid."""
        cache.store(URL, b"news", now=DAY - timedelta(hours=21))  # D-1 21:00
        data, status = cache.lookup(URL, parse_update_times(["20"]), now=DAY)
        assert data == b"news"
        assert status == CacheStatus.VALID

    def test_stale_after_next_due_instant(self, cache):
        """Test advancing past the next due instant makes data stale."""
        cache.store(URL, b"news", now=DAY - timedelta(hours=21))
        data, status = cache.lookup(
            URL, parse_update_times(["20"]), now=DAY + timedelta(hours=2, minutes=30)
        )
        assert data == b"news"
        assert status == CacheStatus.STALE

    def test_always_is_stale(self, cache):
        """Test 'always' never trusts cached data but still returns it."""
        cache.store(URL, b"news", now=DAY)
        data, status = cache.lookup(URL, UpdateTimeSpec.always_refresh(), now=DAY)
        assert data == b"news"
        assert status == CacheStatus.STALE

    def test_missing_data_file(self, cache):
        """Test a registry line without its data file is corruption."""
        entry = cache.store(URL, b"news", now=DAY)
        (cache.cache_dir / entry.storage_key).unlink()
        with pytest.raises(CacheCorruptionError):
            cache.lookup(URL, parse_update_times(["20"]), now=DAY)

    def test_bad_registry_line_is_corruption(self, cache):
        """Test a malformed registry line fails lookups instead of being ignored."""
        cache.store(URL, b"news", now=DAY)
        with open(cache.registry_path, "a") as f:
            f.write("garbage\n")

        with pytest.raises(CacheCorruptionError):
            cache.lookup(URL, parse_update_times(["20"]), now=DAY)
        with pytest.raises(CacheCorruptionError):
            cache.entries()

    def test_url_with_space(self, cache):
        """Test URLs with spaces can be cached."""
        cache.store("http://example.com/a b", b"x", now=DAY)
        data, status = cache.lookup("http://example.com/a b", parse_update_times(["20"]), now=DAY)
        assert data == b"x"
        assert status == CacheStatus.VALID


class TestStore:
    """Tests for ContentCache.store."""

    def test_size_matches_data(self, cache):
        """Test the recorded size is the data length."""
        entry = cache.store(URL, b"12345", now=DAY)
        assert entry.byte_size == 5
        assert (cache.cache_dir / entry.storage_key).stat().st_size == 5

    def test_replace(self, cache):
        """Test storing a URL again replaces the old entry and file."""
        old = cache.store(URL, b"old", now=DAY - timedelta(hours=1))
        new = cache.store(URL, b"newer", now=DAY)

        entries = cache.entries()
        assert len(entries) == 1
        assert entries[0].byte_size == 5
        assert (cache.cache_dir / new.storage_key).read_bytes() == b"newer"
        if old.storage_key != new.storage_key:
            assert not (cache.cache_dir / old.storage_key).exists()

    def test_evicts_oldest_first(self, cache):
        """Test eviction removes the oldest entries until the data fits."""
        cache.store("http://a", b"a" * 40, now=DAY - timedelta(hours=3))
        cache.store("http://b", b"b" * 40, now=DAY - timedelta(hours=2))
        cache.store("http://c", b"c" * 40, now=DAY - timedelta(hours=1))

        urls = {entry.source_url for entry in cache.entries()}
        assert urls == {"http://b", "http://c"}
        assert cache.total_size() <= cache.max_size

    def test_evicted_files_removed(self, cache):
        """Test evicted entries' data files are deleted."""
        first = cache.store("http://a", b"a" * 60, now=DAY - timedelta(hours=2))
        cache.store("http://b", b"b" * 60, now=DAY)
        assert not (cache.cache_dir / first.storage_key).exists()

    def test_oversized_entry_still_stored(self, cache):
        """Test the cap is a soft target for a single large entry."""
        cache.store("http://a", b"a" * 30, now=DAY - timedelta(hours=1))
        cache.store("http://big", b"x" * 150, now=DAY)

        entries = cache.entries()
        assert [entry.source_url for entry in entries] == ["http://big"]
        assert entries[0].byte_size == 150

    def test_distinct_storage_keys(self, cache):
        """Test each URL gets its own data file."""
        a = cache.store("http://a", b"a", now=DAY)
        b = cache.store("http://b", b"b", now=DAY)
        assert a.storage_key != b.storage_key


class TestMaintenance:
    """Tests for remove and clear."""

    def test_remove(self, cache):
        """Test removing one URL."""
        entry = cache.store(URL, b"news", now=DAY)
        assert cache.remove(URL) is True
        assert cache.get_entry(URL) is None
        assert not (cache.cache_dir / entry.storage_key).exists()
        assert cache.remove(URL) is False

    def test_clear(self, cache):
        """Test clearing the cache."""
        cache.store("http://a", b"a", now=DAY)
        cache.store("http://b", b"b", now=DAY)
        assert cache.clear() == 2
        assert cache.entries() == []
        assert cache.total_size() == 0

    def test_clear_empty(self, tmp_path):
        """Test clearing a cache directory that was never created."""
        assert ContentCache(tmp_path / "missing", max_size=100).clear() == 0


class TestCorruptRegistry:
    """Tests for a registry with a line that can't be parsed."""

    @pytest.fixture
    def corrupt(self, cache):
        """A cache whose only registry line has lost a field."""
        entry = cache.store("http://a", b"a" * 60, now=DAY - timedelta(hours=1))
        line = cache.registry_path.read_text().rstrip("\n")
        cache.registry_path.write_text(" ".join(line.split(" ")[:3]) + "\n")
        return entry

    def _bytes_on_disk(self, cache):
        return sum(
            path.stat().st_size
            for path in cache.cache_dir.iterdir()
            if path.name != "registry.txt"
        )

    def test_store_refuses(self, cache, corrupt):
        """Test storing fails so an unlisted data file can't push the cache past its cap."""
        with pytest.raises(CacheCorruptionError):
            cache.store("http://b", b"b" * 60, now=DAY)

        assert self._bytes_on_disk(cache) <= cache.max_size
        assert (cache.cache_dir / corrupt.storage_key).exists()

    def test_clear_recovers(self, cache, corrupt):
        """Test clearing removes unlisted data files and the bad registry."""
        assert cache.clear() == 1
        assert not (cache.cache_dir / corrupt.storage_key).exists()
        assert not cache.registry_path.exists()

        cache.store("http://b", b"b" * 60, now=DAY)
        assert [entry.source_url for entry in cache.entries()] == ["http://b"]
        assert self._bytes_on_disk(cache) <= cache.max_size
