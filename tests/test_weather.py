"""
Tests for the OpenWeather client (src/weather.py).

The HTTP layer is replaced with httpx.MockTransport, so these tests check
the request we send and how each response status is translated.
"""

import json

import httpx
import pytest

from src.weather import WeatherError, fetch_weather_data, format_weather_data


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestFetchWeatherData:
    async def test_sends_location_key_and_metric_units(self, weather_payload):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=weather_payload)

        async with mock_client(handler) as client:
            data = await fetch_weather_data("London, UK", "secret-key", client=client)

        assert data == weather_payload
        params = seen[0].url.params
        assert seen[0].url.path.endswith("/weather")
        assert params["q"] == "London, UK"
        assert params["appid"] == "secret-key"
        assert params["units"] == "metric"

    @pytest.mark.parametrize(
        "status, message",
        [
            (404, 'Location "Nowhere" not found'),
            (401, "Invalid OpenWeather API key"),
            (429, "OpenWeather API rate limit exceeded"),
            (500, "OpenWeather API error: 500"),
            (503, "OpenWeather API error: 503"),
        ],
    )
    async def test_status_codes_are_translated(self, status, message):
        async with mock_client(lambda request: httpx.Response(status)) as client:
            with pytest.raises(WeatherError) as exc_info:
                await fetch_weather_data("Nowhere", "key", client=client)

        assert str(exc_info.value) == message

    async def test_missing_api_key_fails_without_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        async with mock_client(handler) as client:
            with pytest.raises(WeatherError, match="not configured"):
                await fetch_weather_data("London", "", client=client)

    async def test_transport_failure_is_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(WeatherError, match="request failed"):
                await fetch_weather_data("London", "key", client=client)

    async def test_invalid_json_is_reported(self):
        async with mock_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(WeatherError, match="invalid JSON"):
                await fetch_weather_data("London", "key", client=client)

    async def test_base_url_argument_overrides_default(self, weather_payload):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=weather_payload)

        async with mock_client(handler) as client:
            await fetch_weather_data(
                "London", "key", base_url="https://weather.internal/v9/", client=client
            )

        assert seen[0].url.host == "weather.internal"
        assert seen[0].url.path == "/v9/weather"


class TestFormatWeatherData:
    def test_formats_location_and_current_conditions(self, weather_payload):
        result = json.loads(format_weather_data(weather_payload))

        assert result["location"] == {
            "name": "London",
            "country": "GB",
            "coordinates": {"latitude": 51.5085, "longitude": -0.1257},
        }
        current = result["current"]
        assert current["temperature"] == {
            "current": 12,
            "feels_like": 11,
            "min": 11,
            "max": 14,
            "unit": "°C",
        }
        assert current["conditions"] == {"main": "Clouds", "description": "broken clouds"}
        assert current["humidity"] == 81
        assert current["pressure"] == 1012
        assert current["wind"] == {"speed": 4.1, "direction": 240, "unit": "m/s"}
        assert current["visibility"] == 10000
        assert current["timestamp"] == "2023-11-14T22:13:20Z"

    def test_output_is_pretty_printed(self, weather_payload):
        assert format_weather_data(weather_payload).startswith('{\n  "location"')
