from __future__ import annotations

from typing import Any

import pytest

from wayfinder.config.settings import Settings
from wayfinder.core.cache import ResultCache
from wayfinder.core.storage import MemoryStorage


def _merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


@pytest.fixture
def make_settings():
    """Offline-friendly settings: in-memory cache, no debounce wait, no IP lookups."""

    def _make(**sections: Any) -> Settings:
        data: dict[str, Any] = {
            "cache": {"storage": "memory"},
            "search": {"debounce_ms": 0},
            "resolver": {"fallback_to_network": False},
        }
        return Settings.model_validate(_merge(data, sections))

    return _make


@pytest.fixture
def memory_cache() -> ResultCache:
    return ResultCache(MemoryStorage())
