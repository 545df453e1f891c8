"""
Bearer challenge construction for the protected MCP endpoint.

When a request to /mcp carries no usable session, the client has to learn
where to authenticate. RFC 9728 does this with the WWW-Authenticate header:

    WWW-Authenticate: Bearer resource_metadata=https://host/api/auth/.well-known/oauth-authorization-server

The URL is always built from the scheme and host the client actually
connected to. A configured origin would point clients behind a tunnel or
proxy at the wrong server.
"""

from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse

# Where the identity provider publishes its RFC 8414 discovery document.
DISCOVERY_PATH = "/api/auth/.well-known/oauth-authorization-server"

# JSON-RPC "server error" code used for the unauthenticated response.
UNAUTHORIZED_CODE = -32000
UNAUTHORIZED_MESSAGE = "Unauthorized: Authentication required"


def request_origin(request: HTTPConnection) -> str:
    """Return "<scheme>://<host[:port]>" for the current request."""
    url = request.url
    return f"{url.scheme}://{url.netloc}"


def build_challenge(request: HTTPConnection) -> str:
    """Build the WWW-Authenticate value for this request's origin."""
    return f"Bearer resource_metadata={request_origin(request)}{DISCOVERY_PATH}"


def unauthorized_response(request: HTTPConnection) -> JSONResponse:
    """
    Build the 401 returned for any request without a valid session.

    The body is shaped as a JSON-RPC error so MCP clients can surface it,
    and repeats the challenge for clients that can't read response headers
    (browsers without the header exposed via CORS).
    """
    challenge = build_challenge(request)
    return JSONResponse(
        {
            "jsonrpc": "2.0",
            "error": {
                "code": UNAUTHORIZED_CODE,
                "message": UNAUTHORIZED_MESSAGE,
                "www-authenticate": challenge,
            },
            "id": None,
        },
        status_code=401,
        headers={"WWW-Authenticate": challenge},
    )
