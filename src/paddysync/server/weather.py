"""Current weather snapshot for a survey location (Open-Meteo)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.open-meteo.com/v1/forecast"
CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,precipitation"


@dataclass(frozen=True)
class WeatherSnapshot:
    """Weather at the time of a visit."""

    temperature: float | None
    humidity: float | None
    precipitation: float | None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WeatherSnapshot:
        current = data.get("current") or {}
        return cls(
            temperature=current.get("temperature_2m"),
            humidity=current.get("relative_humidity_2m"),
            precipitation=current.get("precipitation"),
        )


class WeatherClient:
    """Fetch current conditions. Failures never propagate, they return None."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def current(self, latitude: float, longitude: float) -> WeatherSnapshot | None:
        """Return current weather at a coordinate, or None if unavailable."""
        params: dict[str, str | float] = {
            "latitude": latitude,
            "longitude": longitude,
            "current": CURRENT_FIELDS,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(self._base_url, params=params)
                response.raise_for_status()
                return WeatherSnapshot.from_dict(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Weather lookup failed for (%s, %s): %s", latitude, longitude, e)
            return None
