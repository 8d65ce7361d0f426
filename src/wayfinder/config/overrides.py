"""
Per-request settings overrides (safe subset).

API and CLI callers can send `settings_overrides` to tune ranking or sensor knobs for a
single call. Only whitelisted paths are accepted; the merged result is re-validated by
Pydantic so ranges still hold.

Provider URLs, API keys, the cache directory and the debounce window are never
overridable per request.
"""

from __future__ import annotations

from typing import Any, Mapping

from wayfinder.config.settings import Settings

# True allows the whole subtree; a nested dict restricts it recursively.
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    "search": {
        "scoring": True,
        "dedup_radius_m": True,
        "min_query_length": True,
        "max_results_default": True,
        "geocoder_max_results": True,
        "min_hierarchy_level": True,
    },
    "resolver": {
        "sensor": True,
        "fallback_to_network": True,
        "fallback_to_stored_default": True,
        "fallback_to_static": True,
    },
}


def _dotted(path: tuple[str, ...]) -> str:
    return ".".join(path)


def _merged(base: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in patch.items():
        current = out.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            out[key] = _merged(current, value)
        else:
            out[key] = value
    return out


def _whitelisted(
    overrides: Mapping[str, Any],
    allowed_tree: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    kept: dict[str, Any] = {}
    for key, value in overrides.items():
        here = (*path, key)
        rule = allowed_tree.get(key)
        if rule is None:
            raise ValueError(f"settings_overrides contains a disallowed key: '{_dotted(here)}'")
        if rule is True:
            kept[key] = value
        elif isinstance(value, Mapping):
            kept[key] = _whitelisted(value, rule, here)
        else:
            raise ValueError(f"settings_overrides key '{_dotted(here)}' must be a mapping")
    return kept


def apply_settings_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    """Return a new validated Settings with the safe subset of `overrides` applied.

    Raises ValueError for disallowed keys, wrong shapes, or values that fail validation
    (pydantic's ValidationError is a ValueError subclass).
    """
    if not overrides:
        return settings
    if not isinstance(overrides, Mapping):
        raise ValueError("settings_overrides must be a mapping")
    safe = _whitelisted(overrides, ALLOWED_SETTINGS_OVERRIDES_TREE)
    return Settings.model_validate(_merged(settings.model_dump(mode="python"), safe))
