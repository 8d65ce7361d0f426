"""
Wayfinder CLI entrypoint.

This CLI is intended for quick local demos and debugging without the API server.
It delegates to `wayfinder.resolver` and `wayfinder.search` through `wayfinder.service`.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from wayfinder.config.settings import get_settings
from wayfinder.core.geo import format_distance
from wayfinder.core.logging import configure_logging
from wayfinder.domain.errors import AddressNotFound, LocationError, SensorError
from wayfinder.domain.models import SearchContext, SearchResult, SensorReading
from wayfinder.providers.sensor import FixedSensor, SensorApi, UnavailableSensor
from wayfinder.service import build_service


def _parse_override_pairs(pairs: list[str]) -> dict[str, Any]:
    """Parse `dotted.key=VALUE` arguments into a nested overrides mapping (VALUE is JSON)."""
    out: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid --set '{pair}', expected KEY=VALUE")
        dotted, raw = pair.split("=", 1)
        try:
            value: Any = json.loads(raw)
        except json.JSONDecodeError:
            value = raw
        node = out
        parts = [p for p in dotted.strip().split(".") if p]
        if not parts:
            raise ValueError(f"Invalid --set '{pair}', empty key")
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
    return out


def _sensor_from_args(args: argparse.Namespace) -> SensorApi:
    if args.sensor_error:
        return FixedSensor([SensorError(args.sensor_error)])
    if args.lat is not None and args.lng is not None:
        return FixedSensor([SensorReading(latitude=args.lat, longitude=args.lng, accuracy=args.accuracy)])
    return UnavailableSensor()


def _print_results(results: list[SearchResult], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps([r.model_dump(mode="json") for r in results], ensure_ascii=False, indent=2))
        return
    for i, r in enumerate(results, start=1):
        extras = [r.source_type.value, f"score={r.relevance_score:g}"]
        if r.distance_meters is not None:
            extras.append(format_distance(r.distance_meters))
        if r.badge:
            extras.append(r.badge)
        print(f"{i:>2}. {r.title}  ({', '.join(extras)})")
        if r.subtitle:
            print(f"    {r.subtitle}")


def _cmd_locate(args: argparse.Namespace) -> int:
    """Handle the `locate` subcommand."""
    service = build_service(get_settings())
    try:
        overrides: dict[str, Any] = _parse_override_pairs(args.set or [])
    except ValueError as e:
        print(f"error: {e}")
        return 2
    for flag, key in (
        ("no_network", "fallback_to_network"),
        ("no_stored_default", "fallback_to_stored_default"),
        ("no_static", "fallback_to_static"),
    ):
        if getattr(args, flag):
            overrides.setdefault("resolver", {})[key] = False

    resolver = service.resolver(_sensor_from_args(args))
    try:
        if args.address:
            position = asyncio.run(resolver.locate_address(args.address, args.region))
        else:
            position = asyncio.run(
                resolver.resolve(city=args.city, use_cache=not args.fresh, settings_overrides=overrides or None)
            )
    except (LocationError, AddressNotFound, ValueError) as e:
        print(f"error: {e}")
        return 2

    if args.json:
        print(json.dumps(position.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return 0
    print(f"{position.address}")
    print(f"  lat={position.latitude:.5f} lng={position.longitude:.5f}")
    print(f"  source={position.source.value} address_source={position.address_source.value}")
    if position.accuracy_meters is not None:
        print(f"  accuracy={format_distance(position.accuracy_meters)}")
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    """Handle the `search` subcommand."""
    settings = get_settings()
    service = build_service(settings)
    context = SearchContext(
        city=args.city or settings.app.home_city,
        country_code=args.country,
        user_lat=args.lat,
        user_lng=args.lng,
        max_results=int(args.max_results or settings.search.max_results_default),
    )
    try:
        overrides = _parse_override_pairs(args.set or []) or None
        results = asyncio.run(service.search.search(args.query, context, settings_overrides=overrides))
    except ValueError as e:
        print(f"error: {e}")
        return 2
    _print_results(results, as_json=args.json)
    return 0


def _cmd_popular(args: argparse.Namespace) -> int:
    settings = get_settings()
    service = build_service(settings)
    results = service.search.popular_places(args.city or settings.app.home_city, args.max_results)
    _print_results(results, as_json=args.json)
    return 0


def _cmd_nearby(args: argparse.Namespace) -> int:
    service = build_service(get_settings())
    try:
        results = service.search.nearby_places(args.lat, args.lng, args.radius_km, args.max_results)
    except ValueError as e:
        print(f"error: {e}")
        return 2
    _print_results(results, as_json=args.json)
    return 0


def _cmd_clear_cache(_: argparse.Namespace) -> int:
    service = build_service(get_settings())
    service.clear_caches()
    print("Cache cleared.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the Wayfinder CLI."""
    parser = argparse.ArgumentParser(prog="wayfinder")
    sub = parser.add_subparsers(dest="command", required=True)

    loc = sub.add_parser("locate", help="Resolve the current position (or geocode --address).")
    loc.add_argument("--lat", type=float, default=None, help="Device fix latitude (acts as the sensor).")
    loc.add_argument("--lng", type=float, default=None, help="Device fix longitude (acts as the sensor).")
    loc.add_argument("--accuracy", type=float, default=None, help="Device fix accuracy in meters.")
    loc.add_argument(
        "--sensor-error",
        default=None,
        choices=["permission_denied", "position_unavailable", "timeout", "unsupported", "unknown"],
        help="Simulate a sensor failure code.",
    )
    loc.add_argument("--city", default=None, help="Preferred city for the stored-default tier.")
    loc.add_argument("--address", default=None, help="Forward-geocode this address instead.")
    loc.add_argument("--region", default=None, help="Country code hint for --address (e.g. CD).")
    loc.add_argument("--fresh", action="store_true", help="Ignore the cached position.")
    loc.add_argument("--no-network", action="store_true", help="Disable the IP estimate tier.")
    loc.add_argument("--no-stored-default", action="store_true", help="Disable the known-cities tier.")
    loc.add_argument("--no-static", action="store_true", help="Disable the static fallback tier.")
    loc.add_argument("--set", action="append", default=[], help="Settings override: dotted.key=JSON")
    loc.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    loc.set_defaults(func=_cmd_locate)

    se = sub.add_parser("search", help="Ranked address search.")
    se.add_argument("query")
    se.add_argument("--city", default=None)
    se.add_argument("--country", default=None)
    se.add_argument("--lat", type=float, default=None)
    se.add_argument("--lng", type=float, default=None)
    se.add_argument("--max-results", type=int, default=None)
    se.add_argument("--set", action="append", default=[], help="Settings override: dotted.key=JSON")
    se.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    se.set_defaults(func=_cmd_search)

    pop = sub.add_parser("popular", help="Popular places for a city.")
    pop.add_argument("--city", default=None)
    pop.add_argument("--max-results", type=int, default=10)
    pop.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    pop.set_defaults(func=_cmd_popular)

    near = sub.add_parser("nearby", help="Curated places near a coordinate.")
    near.add_argument("--lat", required=True, type=float)
    near.add_argument("--lng", required=True, type=float)
    near.add_argument("--radius-km", type=float, default=None)
    near.add_argument("--max-results", type=int, default=10)
    near.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    near.set_defaults(func=_cmd_nearby)

    clr = sub.add_parser("clear-cache", help="Wipe cached positions, geocode results and memoized searches.")
    clr.set_defaults(func=_cmd_clear_cache)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m wayfinder.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
