"""
Error taxonomy.

`LocationError` subclasses are the only errors the resolver ever lets reach a caller,
and only when configuration leaves no fallback tier able to answer. Everything else is
internal: `InvalidCoordinates` drives sensor retries, `RemoteSourceFailure` is swallowed
per tier/source, and `TierFailed` tells the resolver to move on.
"""

from __future__ import annotations


class LocationError(Exception):
    """Base class for errors surfaced by position resolution."""

    code = "unknown"


class PermissionDenied(LocationError):
    code = "permission_denied"


class PositionUnavailable(LocationError):
    code = "position_unavailable"


class LocationTimeout(LocationError):
    code = "timeout"


class UnsupportedEnvironment(LocationError):
    code = "unsupported"


class UnknownLocationError(LocationError):
    code = "unknown"


_BY_CODE: dict[str, type[LocationError]] = {
    cls.code: cls
    for cls in (PermissionDenied, PositionUnavailable, LocationTimeout, UnsupportedEnvironment)
}


def location_error_for(code: str, message: str | None = None) -> LocationError:
    """Map a sensor error code onto the public taxonomy."""
    cls = _BY_CODE.get(code, UnknownLocationError)
    return cls(message or code)


class SensorError(Exception):
    """Raised by sensor implementations; `code` is one of the `LocationError` codes."""

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code


class InvalidCoordinates(ValueError):
    """A fix outside WGS84 ranges (or NaN); never surfaced, triggers a retry."""

    def __init__(self, lat: float, lon: float):
        super().__init__(f"invalid coordinates lat={lat!r} lon={lon!r}")
        self.lat = lat
        self.lon = lon


class RemoteSourceFailure(RuntimeError):
    """A collaborator (geocoder, places store, IP service) failed or returned garbage."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class AddressNotFound(LookupError):
    """Forward geocoding produced no usable match for a free-text address."""


class TierFailed(RuntimeError):
    """A resolution tier could not produce a position; the resolver moves on."""

    def __init__(self, tier: str, reason: str, *, error: LocationError | None = None):
        super().__init__(f"{tier}: {reason}")
        self.tier = tier
        self.reason = reason
        self.error = error
