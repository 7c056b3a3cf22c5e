"""
Content cache for data fetched by acquisition handlers.

Each cached URL has one data file in the cache directory and one line in
registry.txt::

    <url> <filename> <size> <fetched-at epoch seconds>

The registry is always read and written as a whole. Data files are
written before the registry line that references them, and registry lines
are removed before their data files, so the registry never points at a
file that was not completely written. A registry line that can't be
parsed is corruption: its data file can no longer be accounted for, so
every operation except clear() refuses to run until the cache is cleared.
"""

import hashlib
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from newsclipper.common import atomic_write, logger
from newsclipper.errors import CacheCorruptionError
from newsclipper.models import CacheEntry, CacheStatus, UpdateTimeSpec
from newsclipper.schedule import due_instant

REGISTRY_FILE = "registry.txt"


def _normalize_url(url: str) -> str:
    # Registry lines are space separated
    return url.strip().replace(" ", "%20")


def _to_epoch(now: Optional[datetime]) -> float:
    if now is None:
        return time.time()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.timestamp()


class ContentCache:
    """URL-keyed byte cache with schedule-based freshness and a size cap."""

    def __init__(self, cache_dir: Path, max_size: int):
        self.cache_dir = cache_dir
        self.max_size = max_size

    @property
    def registry_path(self) -> Path:
        return self.cache_dir / REGISTRY_FILE

    # Registry I/O

    def _read_registry(self) -> List[CacheEntry]:
        if not self.registry_path.exists():
            return []

        entries = []
        with open(self.registry_path, encoding="utf-8") as f:
            for line in f:
                line = line.rstrip("\n")
                if not line.strip():
                    continue
                try:
                    entries.append(CacheEntry.from_line(line))
                except ValueError as e:
                    raise CacheCorruptionError(
                        f"Can't read cache registry {self.registry_path}: {e}. "
                        f"Clear the cache to recover."
                    )
        return entries

    def _write_registry(self, entries: List[CacheEntry]) -> None:
        content = "".join(entry.to_line() + "\n" for entry in entries)
        atomic_write(self.registry_path, content)

    def _find(self, entries: List[CacheEntry], url: str) -> Optional[CacheEntry]:
        for entry in entries:
            if entry.source_url == url:
                return entry
        return None

    def _read_data(self, entry: CacheEntry) -> bytes:
        path = self.cache_dir / entry.storage_key
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise CacheCorruptionError(
                f"Can't locate file {entry.storage_key} in the cache, even though it's "
                f"listed in the registry for {entry.source_url}"
            )

    def _new_storage_key(self, url: str, entries: List[CacheEntry]) -> str:
        in_use = {entry.storage_key for entry in entries}
        key = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16] + ".html"
        while key in in_use:
            key = f"{hashlib.sha256(url.encode('utf-8')).hexdigest()[:16]}-{secrets.token_hex(4)}.html"
        return key

    def _delete_entries(self, entries: List[CacheEntry], doomed: List[CacheEntry]) -> List[CacheEntry]:
        doomed_urls = {entry.source_url for entry in doomed}
        remaining = [entry for entry in entries if entry.source_url not in doomed_urls]
        self._write_registry(remaining)
        for entry in doomed:
            path = self.cache_dir / entry.storage_key
            try:
                path.unlink()
            except FileNotFoundError:
                pass
        return remaining

    # Public operations

    def entries(self) -> List[CacheEntry]:
        """Get all cache entries."""
        return self._read_registry()

    def total_size(self) -> int:
        """Get the total size of cached data in bytes."""
        return sum(entry.byte_size for entry in self._read_registry())

    def get_entry(self, url: str) -> Optional[CacheEntry]:
        """Get the registry entry for a URL."""
        return self._find(self._read_registry(), _normalize_url(url))

    def lookup(
        self,
        url: str,
        spec: UpdateTimeSpec,
        now: Optional[datetime] = None,
    ) -> Tuple[Optional[bytes], CacheStatus]:
        """
        Get cached data for a URL along with its freshness.

        Args:
            url: Source URL
            spec: Update times for the data
            now: Current time (defaults to the wall clock)

        Returns:
            (data, VALID) if cached and fresh, (data, STALE) if cached but
            older than the last due instant or the update times are "always",
            (None, NOT_FOUND) if not cached

        Raises:
            CacheCorruptionError: If the registry is malformed or lists a
                missing data file
        """
        url = _normalize_url(url)
        logger.debug(f"Checking cache for data for URL: {url}")

        entry = self._find(self._read_registry(), url)
        if entry is None:
            logger.debug("Couldn't find cached data")
            return None, CacheStatus.NOT_FOUND

        data = self._read_data(entry)

        if spec.always:
            logger.debug("'always' specified, treating cached data as stale")
            return data, CacheStatus.STALE

        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        due = due_instant(spec, now)
        if due is not None and entry.fetched_at < due.timestamp():
            logger.debug(f"Data is stale (fetched {entry.fetched_at}, due {due.isoformat()})")
            return data, CacheStatus.STALE

        logger.debug("Reusing cached data")
        return data, CacheStatus.VALID

    def remove(self, url: str) -> bool:
        """Remove a URL's data from the cache, if there is any."""
        url = _normalize_url(url)
        entries = self._read_registry()
        entry = self._find(entries, url)
        if entry is None:
            return False
        logger.debug(f"Removing cached data for URL: {url}")
        self._delete_entries(entries, [entry])
        return True

    def store(self, url: str, data: bytes, now: Optional[datetime] = None) -> CacheEntry:
        """
        Store data for a URL, replacing any previous data.

        Oldest entries are evicted until the new data fits under the size
        cap. The new entry itself is never evicted, so data larger than
        the cap is still stored.

        Returns:
            The new cache entry

        Raises:
            CacheCorruptionError: If the registry is malformed
        """
        url = _normalize_url(url)
        logger.debug(f"Storing data in cache for URL: {url}")
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        entries = self._read_registry()

        previous = self._find(entries, url)
        if previous is not None:
            entries = self._delete_entries(entries, [previous])

        cache_size = sum(entry.byte_size for entry in entries)
        if cache_size + len(data) > self.max_size:
            doomed = []
            for entry in sorted(entries, key=lambda e: e.fetched_at):
                if cache_size + len(data) <= self.max_size:
                    break
                doomed.append(entry)
                cache_size -= entry.byte_size
            logger.debug(f"Evicting {len(doomed)} cache entries to fit {len(data)} bytes")
            entries = self._delete_entries(entries, doomed)

        entry = CacheEntry(
            source_url=url,
            storage_key=self._new_storage_key(url, entries),
            byte_size=len(data),
            fetched_at=_to_epoch(now),
        )

        # Data first, then the registry line that points at it
        atomic_write(self.cache_dir / entry.storage_key, data)
        self._write_registry(entries + [entry])
        return entry

    def clear(self) -> int:
        """
        Remove everything from the cache, including files a damaged
        registry no longer lists.

        Returns:
            The number of data files removed
        """
        if not self.cache_dir.exists():
            return 0

        # Registry first, so it never lists a deleted file
        if self.registry_path.exists():
            self.registry_path.unlink()

        removed = 0
        for path in self.cache_dir.iterdir():
            if not path.is_file():
                continue
            path.unlink()
            if not path.name.startswith("."):
                removed += 1
        logger.debug(f"Removed {removed} files from cache {self.cache_dir}")
        return removed
