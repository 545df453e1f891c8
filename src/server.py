"""
Weather MCP server: FastMCP v2 behind a session gate.

This module creates and runs the MCP server with:
- One tool: get_current_weather (OpenWeather current conditions)
- A session gate in front of /mcp: requests without a session resolved by
  the identity provider get a 401 with a Bearer challenge
- OAuth discovery documents (RFC 8414 and RFC 9728) for MCP clients
- The identity provider's routes under /api/auth, with the OAuth callback
  response repaired into a real redirect
- Health, readiness and a debug weather endpoint
- Structured JSON logging
- Streamable HTTP transport

Architecture:
    client -> CORS -> SessionGateMiddleware -> FastMCP (/mcp)
                                              -> SessionAuditMiddleware -> tool
    client -> /api/auth/oauth2/callback/<id> -> provider.handle()
                                              -> normalize_callback_response()

Running the server:
    uv run python -m src.server

    This starts the server on http://0.0.0.0:8080 with:
    - MCP endpoint at /mcp (Streamable HTTP)
    - Protected resource metadata at /.well-known/oauth-protected-resource
    - Authorization server metadata at /.well-known/oauth-authorization-server
    - Health check at /health, readiness at /ready
"""

import datetime
import json
import logging
import uuid
from typing import Annotated, Sequence

import uvicorn
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest
from pydantic import Field
from starlette.middleware import Middleware as ASGIMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from src.auth import IdentityProvider, JWTSessionProvider, Session
from src.callback import is_callback_path, normalize_callback_response
from src.challenge import request_origin
from src.config import Settings, settings
from src.gate import SessionGateMiddleware
from src.log import configure_logging
from src.weather import WeatherError, fetch_weather_data, format_weather_data

SERVICE_NAME = "weather-mcp-server"
SERVICE_VERSION = "1.0.0"
RESOURCE_NAME = "Weather MCP Server"
MCP_PATH = "/mcp"

configure_logging(settings.log_level)
logger = logging.getLogger("weather-mcp")


# ---------------------------------------------------------------------------
# MCP-level session audit
# ---------------------------------------------------------------------------
# The HTTP gate has already rejected requests without a session. This
# middleware re-resolves the caller through the same provider for each MCP
# operation, so tool calls are logged with the subject that made them.


class SessionAuditMiddleware(Middleware):
    """Resolve the caller for tools/list and tools/call and log the decision."""

    def __init__(self, provider: IdentityProvider):
        self.provider = provider

    async def _resolve(self, request_id: str) -> Session:
        try:
            request = get_http_request()
        except RuntimeError:
            request = None

        session = await self.provider.get_session(request.headers) if request else None
        if session is None:
            logger.warning(
                "MCP request without session",
                extra={"auth_data": {"request_id": request_id, "decision": "denied"}},
            )
            raise PermissionError("Unauthorized: Authentication required")
        return session

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        request_id = str(uuid.uuid4())[:8]
        session = await self._resolve(request_id)

        tools = await call_next(context)
        logger.info(
            "Tool list served",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "subject": session.subject,
                    "tools": [t.name for t in tools],
                }
            },
        )
        return tools

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        request_id = str(uuid.uuid4())[:8]
        session = await self._resolve(request_id)

        logger.info(
            "Tool call authorized",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "subject": session.subject,
                    "tool": context.message.name,
                    "decision": "allowed",
                }
            },
        )
        return await call_next(context)


# ---------------------------------------------------------------------------
# Server construction
# ---------------------------------------------------------------------------


def create_mcp_server(provider: IdentityProvider, config: Settings = settings) -> FastMCP:
    """Build the FastMCP server with its tool and plain HTTP routes."""
    mcp = FastMCP(
        name=SERVICE_NAME,
        instructions="MCP server providing current weather data for any location.",
        middleware=[SessionAuditMiddleware(provider)],
    )

    @mcp.tool(description="Get the current weather for a location.")
    async def get_current_weather(
        location: Annotated[
            str,
            Field(
                min_length=1,
                description="City name, state/country (e.g., 'London, UK' or 'New York, NY')",
            ),
        ],
    ) -> str:
        try:
            data = await fetch_weather_data(
                location,
                config.openweather_api_key,
                base_url=config.openweather_base_url,
                timeout=config.weather_timeout,
            )
        except WeatherError as e:
            raise ToolError(f"Error fetching weather data: {e}")
        return format_weather_data(data)

    # --- Plain HTTP routes (not MCP protocol, not gated) ---

    @mcp.custom_route("/", methods=["GET"])
    async def index(request: Request) -> Response:
        return PlainTextResponse(
            "Weather MCP Server - Use /mcp endpoint for MCP protocol communication"
        )

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness probe."""
        return JSONResponse(
            {
                "status": "healthy",
                "service": SERVICE_NAME,
                "version": SERVICE_VERSION,
                "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            }
        )

    @mcp.custom_route("/ready", methods=["GET"])
    async def readiness_check(request: Request) -> Response:
        """Readiness probe: the weather tool can't work without an API key."""
        if not config.openweather_api_key:
            return JSONResponse(
                {"status": "not_ready", "reason": "OpenWeather API key missing"},
                status_code=503,
            )
        return JSONResponse({"status": "ready"})

    # OAuth 2.0 Protected Resource Metadata (RFC 9728). Built from the
    # request origin, like the gate's challenge header.
    @mcp.custom_route("/.well-known/oauth-protected-resource", methods=["GET"])
    async def protected_resource_metadata(request: Request) -> Response:
        origin = request_origin(request)
        return JSONResponse(
            {
                "resource": origin,
                "authorization_servers": [origin],
                "scopes_supported": ["openid", "profile", "email"],
                "bearer_methods_supported": ["header"],
                "resource_name": RESOURCE_NAME,
                "resource_documentation": f"{origin}/fp",
                "resource_policy_uri": f"{origin}/fp",
                "resource_tos_uri": f"{origin}/fp",
            }
        )

    @mcp.custom_route("/.well-known/oauth-authorization-server", methods=["GET"])
    async def authorization_server_metadata(request: Request) -> Response:
        return JSONResponse(provider.discovery_metadata(request_origin(request)))

    # Everything under /api/auth belongs to the identity provider. The only
    # thing added here is the redirect repair on its OAuth callback.
    @mcp.custom_route("/api/auth/{path:path}", methods=["GET", "POST"])
    async def identity_routes(request: Request) -> Response:
        response = await provider.handle(request)
        if is_callback_path(request.path_params["path"]):
            response = normalize_callback_response(response)
        return response

    # Direct weather access for debugging the OpenWeather integration.
    @mcp.custom_route("/api/weather/{location}", methods=["GET"])
    async def weather_debug(request: Request) -> Response:
        location = request.path_params["location"].strip()
        if not location:
            return JSONResponse({"error": "Location parameter is required"}, status_code=400)

        try:
            data = await fetch_weather_data(
                location,
                config.openweather_api_key,
                base_url=config.openweather_base_url,
                timeout=config.weather_timeout,
            )
        except WeatherError as e:
            return JSONResponse({"error": str(e), "location": location}, status_code=400)

        return JSONResponse({"location": location, "data": json.loads(format_weather_data(data))})

    return mcp


def build_middleware(provider: IdentityProvider, config: Settings = settings) -> list[ASGIMiddleware]:
    """
    HTTP middleware stack, outermost first.

    CORS wraps the gate so that 401 responses still carry CORS headers and
    preflight requests are answered before the gate sees them.
    """
    middleware = []
    if config.cors_environment == "local":
        middleware.append(
            ASGIMiddleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_headers=["Content-Type", "Authorization"],
                allow_methods=["GET", "POST", "OPTIONS"],
                expose_headers=["Content-Length", "WWW-Authenticate"],
                max_age=600,
                allow_credentials=False,
            )
        )
    middleware.append(
        ASGIMiddleware(SessionGateMiddleware, provider=provider, protected_path=MCP_PATH)
    )
    return middleware


def create_app(provider: IdentityProvider | None = None, config: Settings = settings):
    """Create the ASGI app serving /mcp and the auth/discovery routes."""
    provider = provider or JWTSessionProvider(config)
    mcp = create_mcp_server(provider, config)
    return mcp.http_app(
        path=MCP_PATH,
        transport="streamable-http",
        middleware=build_middleware(provider, config),
    )


def main() -> None:
    logger.info(
        "Starting MCP server on %s:%d (transport=streamable-http, auth=session-gate)",
        settings.host,
        settings.port,
    )
    uvicorn.run(
        create_app(),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
