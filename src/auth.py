"""
Session resolution through the identity provider.

The MCP server never decides on its own who a caller is. It hands the
request headers to an IdentityProvider and gets back a Session or nothing.
Everything behind that call (token formats, revocation, caching) belongs to
the provider.

This module defines:
- Session: the resolved caller, treated as present-or-absent
- IdentityProvider: the protocol any provider implementation satisfies
- JWTSessionProvider: the bundled provider, whose sessions are self-contained
  signed tokens verified with PyJWT

Session token structure (JWT payload):
    {
        "sub": "github|12345",      # Who the session belongs to
        "exp": 1738800000            # When the session expires (Unix timestamp)
    }

All failure kinds (missing header, wrong scheme, bad signature, expired
token, missing claims) collapse into a single "no session" outcome for the
caller. The specific reason is only logged server-side.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import jwt
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from src.challenge import request_origin
from src.config import Settings, settings as default_settings

logger = logging.getLogger("weather-mcp.identity")


class AuthError(Exception):
    """
    Raised when session token validation fails for any reason.

    There is one exception type for every failure so that callers can't
    accidentally branch on (and leak) the specific reason.

    Attributes:
        message: Human-readable error description (logged server-side)
        status_code: HTTP status code to return (401 for auth failures)
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class Session:
    """
    A caller's session as resolved by the identity provider.

    Attributes:
        subject: Opaque user/account identifier
        expires_at: When the provider considers the session over, if known
    """

    subject: str
    expires_at: datetime.datetime | None = None


class IdentityProvider(Protocol):
    """The capabilities the server consumes from an identity provider."""

    async def get_session(self, headers: Mapping[str, str]) -> Session | None:
        """Resolve request headers to a session, or None if there isn't one."""
        ...

    async def handle(self, request: Request) -> Response:
        """Serve a request for one of the provider's own routes under /api/auth."""
        ...

    def discovery_metadata(self, origin: str) -> dict[str, Any]:
        """Return the RFC 8414 authorization server metadata."""
        ...


def validate_token(
    authorization_header: str | None,
    secret: str,
    algorithm: str = "HS256",
) -> Session:
    """
    Validate a Bearer session token from the Authorization header.

    Args:
        authorization_header: The raw Authorization header value,
                              expected format: "Bearer <jwt-token>"
        secret: Key the token must be signed with
        algorithm: Accepted signing algorithm

    Returns:
        The Session the token describes

    Raises:
        AuthError: If any validation step fails
    """
    if not authorization_header:
        raise AuthError("Missing Authorization header")

    # RFC 6750: the scheme is case-insensitive.
    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")

    token = parts[1].strip()

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}")

    subject = payload["sub"]
    if not isinstance(subject, str) or not subject:
        raise AuthError("Invalid subject claim")

    expires_at = datetime.datetime.fromtimestamp(payload["exp"], tz=datetime.timezone.utc)
    return Session(subject=subject, expires_at=expires_at)


class JWTSessionProvider:
    """
    Identity provider backed by signed session tokens.

    Sessions are verified, never issued: tokens come from whatever signs in
    the user (or from scripts/generate_token.py during development).
    """

    # Paths (relative to /api/auth) this provider serves itself.
    DISCOVERY_ROUTE = "/.well-known/oauth-authorization-server"

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    async def get_session(self, headers: Mapping[str, str]) -> Session | None:
        try:
            return validate_token(
                headers.get("authorization"),
                self.config.jwt_secret_key,
                self.config.jwt_algorithm,
            )
        except AuthError as e:
            logger.debug(
                "Session lookup failed",
                extra={"auth_data": {"reason": e.message}},
            )
            return None

    async def handle(self, request: Request) -> Response:
        path = "/" + request.path_params.get("path", "").lstrip("/")
        if path == self.DISCOVERY_ROUTE and request.method == "GET":
            return JSONResponse(self.discovery_metadata(request_origin(request)))

        return JSONResponse({"error": "not_found", "path": path}, status_code=404)

    def discovery_metadata(self, origin: str) -> dict[str, Any]:
        issuer = (self.config.auth_base_url or origin).rstrip("/")
        base = f"{issuer}/api/auth"
        return {
            "issuer": issuer,
            "authorization_endpoint": f"{base}/mcp/authorize",
            "token_endpoint": f"{base}/mcp/token",
            "userinfo_endpoint": f"{base}/mcp/userinfo",
            "jwks_uri": f"{base}/mcp/jwks",
            "registration_endpoint": f"{base}/mcp/register",
            "scopes_supported": ["openid", "profile", "email", "offline_access"],
            "response_types_supported": ["code"],
            "response_modes_supported": ["query"],
            "grant_types_supported": ["authorization_code", "refresh_token"],
            "subject_types_supported": ["public"],
            "token_endpoint_auth_methods_supported": [
                "client_secret_basic",
                "client_secret_post",
                "none",
            ],
            "code_challenge_methods_supported": ["S256"],
        }
