"""
Device location sensor collaborators.

The resolver only needs `get_current_position(options) -> SensorReading`, raising
`SensorError(code)` on failure. A server process has no GPS of its own, so the
implementations here are:
- `UnavailableSensor`: always reports `unsupported` (the API and CLI default),
- `FixedSensor`: replays a fix supplied by the client (CLI `--lat/--lng`, the API's
  reported-fix parameters, tests).
"""

from __future__ import annotations

from typing import Protocol, Sequence

from wayfinder.domain.errors import SensorError
from wayfinder.domain.models import SensorOptions, SensorReading


class SensorApi(Protocol):
    async def get_current_position(self, options: SensorOptions) -> SensorReading: ...


class UnavailableSensor:
    """No location hardware available in this environment."""

    async def get_current_position(self, options: SensorOptions) -> SensorReading:
        raise SensorError("unsupported", "no location sensor available")


class FixedSensor:
    """Returns pre-recorded readings in order; the last one repeats.

    Each item is either a `SensorReading` or a `SensorError` to raise.
    """

    def __init__(self, readings: Sequence[SensorReading | SensorError]):
        if not readings:
            raise ValueError("FixedSensor needs at least one reading")
        self._readings = list(readings)
        self._index = 0
        self.calls: list[SensorOptions] = []

    @classmethod
    def at(cls, lat: float, lon: float, accuracy: float | None = None) -> "FixedSensor":
        return cls([SensorReading(latitude=lat, longitude=lon, accuracy=accuracy)])

    async def get_current_position(self, options: SensorOptions) -> SensorReading:
        self.calls.append(options)
        item = self._readings[min(self._index, len(self._readings) - 1)]
        self._index += 1
        if isinstance(item, SensorError):
            raise item
        return item
