"""
OpenWeather client and response formatting for the get_current_weather tool.

fetch_weather_data() performs a single GET against the OpenWeather
"current weather" API and translates HTTP failures into WeatherError with a
message fit for showing to the MCP client. format_weather_data() reduces the
raw API payload to the fields the tool returns.
"""

import datetime
import json
import logging
from typing import Any

import httpx

from src.config import settings

logger = logging.getLogger("weather-mcp.weather")


class WeatherError(Exception):
    """Raised when weather data can't be fetched for a location."""


# OpenWeather status codes with a dedicated message.
_STATUS_MESSAGES = {
    401: "Invalid OpenWeather API key",
    429: "OpenWeather API rate limit exceeded",
}


async def fetch_weather_data(
    location: str,
    api_key: str,
    *,
    base_url: str | None = None,
    timeout: float | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """
    Fetch the current weather for a location.

    Args:
        location: City name with optional state/country, e.g. "London, UK"
        api_key: OpenWeather API key
        base_url: OpenWeather API root (defaults to MCP_OPENWEATHER_BASE_URL)
        timeout: Request timeout in seconds (defaults to MCP_WEATHER_TIMEOUT)
        client: Optional HTTP client (tests pass one with a mock transport)

    Returns:
        The decoded OpenWeather JSON payload

    Raises:
        WeatherError: For a missing key, transport failures and non-2xx statuses
    """
    if not api_key:
        raise WeatherError("OpenWeather API key is not configured")

    base_url = base_url or settings.openweather_base_url
    url = f"{base_url.rstrip('/')}/weather"
    params = {"q": location, "appid": api_key, "units": "metric"}

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.weather_timeout
        )

    try:
        response = await client.get(url, params=params, headers={"Accept": "application/json"})
    except httpx.HTTPError as e:
        logger.error("Weather request failed: %s", e)
        raise WeatherError(f"OpenWeather API request failed: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code == 404:
        raise WeatherError(f'Location "{location}" not found')
    if response.status_code in _STATUS_MESSAGES:
        raise WeatherError(_STATUS_MESSAGES[response.status_code])
    if not response.is_success:
        raise WeatherError(f"OpenWeather API error: {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        raise WeatherError("OpenWeather API returned invalid JSON") from e


def format_weather_data(data: dict[str, Any]) -> str:
    """Render the OpenWeather payload as the pretty-printed JSON the tool returns."""
    weather = data["weather"][0]
    main = data["main"]
    wind = data.get("wind", {})
    observed = datetime.datetime.fromtimestamp(data["dt"], tz=datetime.timezone.utc)

    return json.dumps(
        {
            "location": {
                "name": data["name"],
                "country": data.get("sys", {}).get("country"),
                "coordinates": {
                    "latitude": data["coord"]["lat"],
                    "longitude": data["coord"]["lon"],
                },
            },
            "current": {
                "temperature": {
                    "current": round(main["temp"]),
                    "feels_like": round(main["feels_like"]),
                    "min": round(main["temp_min"]),
                    "max": round(main["temp_max"]),
                    "unit": "°C",
                },
                "conditions": {
                    "main": weather["main"],
                    "description": weather["description"],
                },
                "humidity": main["humidity"],
                "wind": {
                    "speed": wind.get("speed"),
                    "direction": wind.get("deg"),
                    "unit": "m/s",
                },
                "pressure": main["pressure"],
                "visibility": data.get("visibility"),
                "timestamp": observed.isoformat().replace("+00:00", "Z"),
            },
        },
        indent=2,
        ensure_ascii=False,
    )
