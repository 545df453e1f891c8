"""
Redirect repair for the identity provider's OAuth callback.

After the provider finishes the authorization-code exchange on
/api/auth/oauth2/callback/<provider_id>, it is supposed to send the browser
on to the app. Instead it answers with a JSON description of the redirect:

    HTTP/1.1 200 OK
    Location: https://app.example.com/after-login
    Content-Type: application/json

    {"redirect": true, "url": "https://app.example.com/after-login"}

Browsers don't follow a Location header on a 200, so the login stalls.
normalize_callback_response() turns that into a real 302, but only when the
body's url is exactly the Location the provider already set. It never
introduces a redirect target of its own; anything unexpected passes through
as the provider produced it.
"""

import json
import logging
import re

from starlette.responses import Response

logger = logging.getLogger("weather-mcp.callback")

# Route of the provider callback, relative to the /api/auth mount.
CALLBACK_ROUTE = "/oauth2/callback/{provider_id}"

_CALLBACK_PATH_RE = re.compile(r"^/oauth2/callback/[^/]+/?$")

# Headers that describe the JSON body being dropped.
_DROPPED_HEADERS = {b"content-type", b"content-length"}


def is_callback_path(path: str) -> bool:
    """Return True if `path` (relative to /api/auth) is the provider callback."""
    return bool(_CALLBACK_PATH_RE.match("/" + path.lstrip("/")))


def _redirect_target(response: Response) -> str | None:
    """Return the redirect URL declared in the JSON body, if there is one."""
    body = getattr(response, "body", None)
    if not body:
        return None

    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict) or payload.get("redirect") is not True:
        return None

    url = payload.get("url")
    return url if isinstance(url, str) else None


def normalize_callback_response(response: Response) -> Response:
    """
    Turn a JSON-described redirect into an actual redirect.

    Args:
        response: The response produced by the provider's callback handler

    Returns:
        A 302 response to the declared URL when the body says
        {"redirect": true, "url": X} and X equals the Location header;
        otherwise the original response, unmodified.
    """
    location = response.headers.get("location")
    if not location:
        return response

    url = _redirect_target(response)
    if url is None:
        logger.debug(
            "Callback response has no redirect descriptor",
            extra={"auth_data": {"status_code": response.status_code}},
        )
        return response

    if url != location:
        logger.warning(
            "Callback redirect URL does not match Location header",
            extra={"auth_data": {"status_code": response.status_code, "decision": "passthrough"}},
        )
        return response

    # Location is copied as the provider wrote it, without re-quoting.
    # Set-Cookie and the rest of the provider headers are kept too.
    redirect = Response(status_code=302)
    for name, value in response.raw_headers:
        if name.lower() not in _DROPPED_HEADERS:
            redirect.raw_headers.append((name, value))

    logger.info(
        "Callback response converted to redirect",
        extra={"auth_data": {"original_status": response.status_code, "decision": "redirected"}},
    )
    return redirect
