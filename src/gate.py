"""
Session gate for the MCP endpoint.

An ASGI middleware that sits in front of /mcp. For every request it asks
the identity provider for the caller's session:

    session found  -> log the subject, pass the request through untouched
    no session     -> 401 with a JSON-RPC error body and a Bearer challenge

The gate does not attach the session to the request. Anything downstream
that needs the caller resolves it again through the same provider.

A failed lookup is final for the request: there are no retries here, and
any caching or revocation checks are the provider's business.
"""

import logging
import uuid

from starlette.requests import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from src.auth import IdentityProvider
from src.challenge import unauthorized_response

logger = logging.getLogger("weather-mcp.gate")


class SessionGateMiddleware:
    """
    Reject requests to the protected path that carry no valid session.

    Args:
        app: The downstream ASGI app (the MCP transport and other routes)
        provider: Identity provider used to resolve sessions
        protected_path: Path prefix the gate applies to
    """

    def __init__(self, app: ASGIApp, provider: IdentityProvider, protected_path: str = "/mcp"):
        self.app = app
        self.provider = provider
        self.protected_path = protected_path.rstrip("/")

    def _is_protected(self, scope: Scope) -> bool:
        if scope["type"] != "http":
            return False
        # CORS preflight carries no credentials; let the CORS layer answer it.
        if scope["method"] == "OPTIONS":
            return False
        path = scope["path"].rstrip("/")
        return path == self.protected_path or path.startswith(self.protected_path + "/")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self._is_protected(scope):
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        request_id = str(uuid.uuid4())[:8]

        session = await self.provider.get_session(request.headers)

        if session is None:
            logger.warning(
                "Authentication failed",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "path": scope["path"],
                        "decision": "rejected",
                        "reason": "no_session",
                    }
                },
            )
            response = unauthorized_response(request)
            await response(scope, receive, send)
            return

        logger.info(
            "Session resolved",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "path": scope["path"],
                    "subject": session.subject,
                    "decision": "authenticated",
                }
            },
        )
        await self.app(scope, receive, send)
