from __future__ import annotations

import contextvars
import json
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from wayfinder.core.storage import Storage
from wayfinder.domain.models import Position

"""
Result cache for expensive location work.

Two regions share one TTL envelope (`CacheEntry`):
- a "current position" slot per device (default TTL 5 minutes); the local device
  (`device_id=None`) is persisted, named devices are kept in memory only,
- a bounded map of reverse-geocode results keyed by coordinates rounded to 4 decimals
  (~11 m cells, so nearby lookups collapse onto the same key; default TTL 30 minutes,
  at most 100 entries, oldest evicted first).

TTL is enforced on read and expired entries are dropped lazily. Both regions are
mirrored to a `Storage` port so they survive restarts. Persistence is best-effort:
storage failures are logged and swallowed.
"""

logger = logging.getLogger(__name__)

T = TypeVar("T")

POSITION_KEY = "wayfinder:current_position"
GEOCODE_KEY = "wayfinder:geocode_results"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Value plus the envelope used for TTL checks and eviction order."""

    value: T
    stored_at: float
    ttl_seconds: float

    def expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl_seconds

    def as_dict(self, value: Any) -> dict[str, Any]:
        return {"stored_at": self.stored_at, "ttl_seconds": self.ttl_seconds, "value": value}


@dataclass
class CacheStats:
    """Per-context cache usage stats (best-effort)."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    sets: int = 0
    evictions: int = 0
    persist_errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "hits": int(self.hits),
            "misses": int(self.misses),
            "expired": int(self.expired),
            "sets": int(self.sets),
            "evictions": int(self.evictions),
            "persist_errors": int(self.persist_errors),
        }


_cache_stats_var: contextvars.ContextVar[CacheStats | None] = contextvars.ContextVar(
    "wayfinder_cache_stats", default=None
)


def _stats() -> CacheStats | None:
    return _cache_stats_var.get()


@contextmanager
def record_cache_stats() -> CacheStats:
    """Capture cache stats within the current context (thread/task-safe)."""

    stats = CacheStats()
    token = _cache_stats_var.set(stats)
    try:
        yield stats
    finally:
        _cache_stats_var.reset(token)


def coordinate_key(lat: float, lon: float, precision: int = 4) -> str:
    """Grid-cell key for a coordinate; `-0.0` and `0.0` share a cell."""
    lat_r = round(float(lat), precision) + 0.0
    lon_r = round(float(lon), precision) + 0.0
    return f"{lat_r:.{precision}f},{lon_r:.{precision}f}"


class ResultCache:
    """TTL-bounded position + geocode cache persisted through a storage port."""

    def __init__(
        self,
        storage: Storage,
        *,
        enabled: bool = True,
        position_ttl_seconds: float = 300,
        geocode_ttl_seconds: float = 1800,
        max_geocode_entries: int = 100,
        precision: int = 4,
    ):
        if int(max_geocode_entries) < 1:
            raise ValueError("max_geocode_entries must be >= 1")
        self._storage = storage
        self._enabled = enabled
        self._position_ttl = float(position_ttl_seconds)
        self._geocode_ttl = float(geocode_ttl_seconds)
        self._max_entries = int(max_geocode_entries)
        self._precision = int(precision)
        self._lock = threading.Lock()
        self._position: CacheEntry[Position] | None = None
        self._device_positions: dict[str, CacheEntry[Position]] = {}
        self._geocode: dict[str, CacheEntry[str]] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def max_geocode_entries(self) -> int:
        return self._max_entries

    # ---- persistence -------------------------------------------------------

    def load(self) -> None:
        """Restore both regions from storage; unreadable payloads are ignored."""
        if not self._enabled:
            return
        position_raw = self._read(POSITION_KEY)
        if isinstance(position_raw, dict):
            try:
                self._position = CacheEntry(
                    value=Position.model_validate(position_raw["value"]),
                    stored_at=float(position_raw["stored_at"]),
                    ttl_seconds=float(position_raw.get("ttl_seconds", self._position_ttl)),
                )
            except (KeyError, TypeError, ValueError, ValidationError):
                logger.warning("Discarding unreadable cached position")

        geocode_raw = self._read(GEOCODE_KEY)
        if isinstance(geocode_raw, dict):
            entries: list[tuple[str, CacheEntry[str]]] = []
            for key, raw in geocode_raw.items():
                try:
                    entries.append(
                        (
                            str(key),
                            CacheEntry(
                                value=str(raw["value"]),
                                stored_at=float(raw["stored_at"]),
                                ttl_seconds=float(raw.get("ttl_seconds", self._geocode_ttl)),
                            ),
                        )
                    )
                except (KeyError, TypeError, ValueError):
                    continue
            entries.sort(key=lambda kv: kv[1].stored_at)
            with self._lock:
                self._geocode = dict(entries)
                self._evict_overflow_locked()

    def _read(self, key: str) -> Any | None:
        try:
            raw = self._storage.get(key)
            if raw is None:
                return None
            return json.loads(raw.decode("utf-8"))
        except Exception as exc:
            logger.warning("Cache storage read failed for %s: %s", key, exc)
            return None

    def _write(self, key: str, payload: Any | None) -> None:
        # Best-effort: quota/permission errors must never reach the caller.
        try:
            if payload is None:
                self._storage.remove(key)
            else:
                self._storage.set(key, json.dumps(payload, ensure_ascii=False).encode("utf-8"))
        except Exception as exc:
            st = _stats()
            if st:
                st.persist_errors += 1
            logger.warning("Cache storage write failed for %s: %s", key, exc)

    def _persist_position(self) -> None:
        entry = self._position
        if entry is None:
            self._write(POSITION_KEY, None)
            return
        self._write(POSITION_KEY, entry.as_dict(entry.value.model_dump(mode="json")))

    def _persist_geocode_locked(self) -> None:
        snapshot = {key: entry.as_dict(entry.value) for key, entry in self._geocode.items()}
        self._write(GEOCODE_KEY, snapshot)

    # ---- current position slot ----------------------------------------------

    def set_current_position(self, position: Position, device_id: str | None = None) -> None:
        """Overwrite a device's current-position slot (stored_at = now).

        `device_id=None` is the local device and is persisted; named devices (API clients)
        get in-memory slots of their own.
        """
        if not self._enabled:
            return
        entry = CacheEntry(value=position, stored_at=time.time(), ttl_seconds=self._position_ttl)
        st = _stats()
        if st:
            st.sets += 1
        if device_id is not None:
            with self._lock:
                self._device_positions[device_id] = entry
            return
        self._position = entry
        self._persist_position()

    def get_current_position(self, device_id: str | None = None) -> Position | None:
        """Return a device's cached position if still fresh; evict it otherwise."""
        if not self._enabled:
            return None
        st = _stats()
        if device_id is None:
            entry = self._position
        else:
            with self._lock:
                entry = self._device_positions.get(device_id)
        if entry is None:
            if st:
                st.misses += 1
            return None
        if entry.expired(time.time()):
            if device_id is None:
                self._position = None
                self._persist_position()
            else:
                with self._lock:
                    self._device_positions.pop(device_id, None)
            if st:
                st.misses += 1
                st.expired += 1
            return None
        if st:
            st.hits += 1
        return entry.value

    # ---- geocode region -------------------------------------------------------

    def _evict_overflow_locked(self) -> int:
        overflow = len(self._geocode) - self._max_entries
        if overflow <= 0:
            return 0
        # Stable sort: equal timestamps keep insertion order, so older writes go first.
        oldest = sorted(self._geocode.items(), key=lambda kv: kv[1].stored_at)[:overflow]
        for key, _ in oldest:
            del self._geocode[key]
        return overflow

    def set_geocode_result(self, lat: float, lon: float, address: str) -> None:
        """Store a reverse-geocode result for the coordinate's grid cell."""
        if not self._enabled:
            return
        key = coordinate_key(lat, lon, self._precision)
        entry = CacheEntry(value=str(address), stored_at=time.time(), ttl_seconds=self._geocode_ttl)
        with self._lock:
            # Re-setting a key overwrites it and moves it to the newest position.
            self._geocode.pop(key, None)
            self._geocode[key] = entry
            evicted = self._evict_overflow_locked()
            self._persist_geocode_locked()
        st = _stats()
        if st:
            st.sets += 1
            st.evictions += evicted

    def get_geocode_result(self, lat: float, lon: float) -> str | None:
        """Return a fresh cached address for the coordinate's grid cell, if any."""
        if not self._enabled:
            return None
        key = coordinate_key(lat, lon, self._precision)
        st = _stats()
        with self._lock:
            entry = self._geocode.get(key)
            if entry is None:
                if st:
                    st.misses += 1
                return None
            if entry.expired(time.time()):
                del self._geocode[key]
                self._persist_geocode_locked()
                if st:
                    st.misses += 1
                    st.expired += 1
                return None
        if st:
            st.hits += 1
        return entry.value

    def geocode_size(self) -> int:
        with self._lock:
            return len(self._geocode)

    def geocode_keys(self) -> list[str]:
        with self._lock:
            return list(self._geocode)

    def clear_all(self) -> None:
        """Wipe both regions, in memory and in storage."""
        with self._lock:
            self._geocode = {}
            self._position = None
            self._device_positions = {}
            self._write(GEOCODE_KEY, None)
            self._write(POSITION_KEY, None)
        logger.info("Result cache cleared")
