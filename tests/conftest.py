"""
Shared test fixtures for the weather MCP server test suite.

Key fixtures:
- make_token / make_auth_header: factories for signed session tokens
- identity_provider: an in-memory IdentityProvider whose sessions and
  callback response each test controls
- app / client: the full ASGI app wired to that provider, and an
  httpx.AsyncClient talking to it in-memory (no network, no lifespan)

Testing approach:
- test_auth.py: JWTSessionProvider and validate_token() in isolation
- test_gate.py / test_challenge.py: the session gate and its 401 challenge
- test_callback.py: the OAuth callback redirect repair
- test_metadata.py: discovery documents and plain HTTP routes
- test_weather.py: the OpenWeather client against httpx.MockTransport
- test_tools.py: full MCP protocol round trips through the gate
"""

import datetime
from typing import Any, Mapping

import httpx
import jwt
import pytest
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from src.auth import Session
from src.config import Settings, settings

TEST_SECRET = settings.jwt_secret_key
TEST_ALGORITHM = settings.jwt_algorithm


# ---------------------------------------------------------------------------
# Token factory fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to generate session tokens.

    Usage in tests:
        def test_something(make_token):
            token = make_token(sub="alice")
            # token is a raw JWT string (not "Bearer ..." prefixed)
    """

    def _make_token(
        sub: str = "test-user",
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_hours: float = 1.0,
        extra_claims: dict | None = None,
        include_exp: bool = True,
        include_sub: bool = True,
    ) -> str:
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {"iat": now}

        if include_sub:
            payload["sub"] = sub
        if include_exp:
            payload["exp"] = now + datetime.timedelta(hours=exp_hours)
        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


@pytest.fixture
def make_auth_header(make_token):
    """Convenience fixture that returns a full "Bearer <token>" string."""

    def _make_auth_header(**kwargs) -> str:
        return f"Bearer {make_token(**kwargs)}"

    return _make_auth_header


# ---------------------------------------------------------------------------
# In-memory identity provider
# ---------------------------------------------------------------------------
class StaticIdentityProvider:
    """
    IdentityProvider double.

    Bearer tokens listed in `sessions` resolve to their Session; anything else
    resolves to None. `callback_response` is what the provider's OAuth
    callback route returns. Every lookup is recorded in `lookups`.
    """

    def __init__(self):
        self.sessions: dict[str, Session] = {}
        self.callback_response: Response = JSONResponse({"redirect": False})
        self.lookups: list[str | None] = []

    async def get_session(self, headers: Mapping[str, str]) -> Session | None:
        header = headers.get("authorization")
        self.lookups.append(header)
        if not header or not header.lower().startswith("bearer "):
            return None
        return self.sessions.get(header[7:])

    async def handle(self, request: Request) -> Response:
        if request.path_params["path"].startswith("oauth2/callback/"):
            return self.callback_response
        return JSONResponse({"error": "not_found"}, status_code=404)

    def discovery_metadata(self, origin: str) -> dict[str, Any]:
        return {
            "issuer": origin,
            "authorization_endpoint": f"{origin}/api/auth/mcp/authorize",
            "token_endpoint": f"{origin}/api/auth/mcp/token",
        }


@pytest.fixture
def identity_provider():
    provider = StaticIdentityProvider()
    provider.sessions["valid-token"] = Session(subject="alice")
    return provider


@pytest.fixture
def test_settings():
    return Settings(openweather_api_key="test-key", cors_environment="local")


@pytest.fixture
def app(identity_provider, test_settings):
    from src.server import create_app

    return create_app(provider=identity_provider, config=test_settings)


@pytest.fixture
async def client(app):
    """httpx client bound to the ASGI app; requests look like they hit https://example.com."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://example.com") as c:
        yield c


# ---------------------------------------------------------------------------
# OpenWeather payload
# ---------------------------------------------------------------------------
@pytest.fixture
def weather_payload():
    """A trimmed OpenWeather /weather response for London."""
    return {
        "coord": {"lon": -0.1257, "lat": 51.5085},
        "weather": [{"id": 803, "main": "Clouds", "description": "broken clouds"}],
        "main": {
            "temp": 12.3,
            "feels_like": 11.2,
            "temp_min": 10.8,
            "temp_max": 13.9,
            "pressure": 1012,
            "humidity": 81,
        },
        "visibility": 10000,
        "wind": {"speed": 4.1, "deg": 240},
        "dt": 1700000000,
        "sys": {"country": "GB"},
        "name": "London",
    }
