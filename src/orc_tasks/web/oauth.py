"""Development OAuth endpoints so generic MCP clients can complete a handshake.

Every credential issued here is random and unverified. The gateway accepts
any non-empty bearer token, so these exist only to satisfy client discovery.
"""

import secrets
import uuid
from urllib.parse import urlencode

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse
from starlette.routing import Route

GRANT_TYPES = ["client_credentials", "authorization_code", "refresh_token"]
_LIST_PARAMS = {"redirect_uris", "grant_types", "response_types"}


async def authorization_server(request: Request):
    base = request.app.state.config.public_url
    return JSONResponse({
        "issuer": base,
        "authorization_endpoint": f"{base}/oauth/authorize",
        "token_endpoint": f"{base}/oauth/token",
        "registration_endpoint": f"{base}/register",
        "grant_types_supported": GRANT_TYPES,
        "token_endpoint_auth_methods_supported": ["none", "client_secret_basic"],
        "response_types_supported": ["code", "token"],
        "scopes_supported": ["mcp"],
        "code_challenge_methods_supported": ["S256"],
    })


async def protected_resource(request: Request):
    config = request.app.state.config
    return JSONResponse({
        "resource": f"{config.public_url}{config.mcp_prefix}",
        "authorization_servers": [config.public_url],
        "scopes_supported": ["mcp"],
        "bearer_methods_supported": ["header"],
    })


async def register_client(request: Request):
    params = await _params(request)
    return JSONResponse({
        "client_id": str(uuid.uuid4()),
        "client_secret": secrets.token_hex(32),
        "redirect_uris": params.get("redirect_uris") or [],
        "grant_types": params.get("grant_types") or ["client_credentials"],
        "response_types": params.get("response_types") or ["token"],
        "token_endpoint_auth_method": "none",
        "scope": "mcp",
    })


async def authorize(request: Request):
    """Auto-approve and redirect back with a fresh code."""
    redirect_uri = request.query_params.get("redirect_uri", "http://localhost:3000/callback")
    query = urlencode({"code": secrets.token_hex(16), "state": request.query_params.get("state", "")})
    separator = "&" if "?" in redirect_uri else "?"
    return RedirectResponse(f"{redirect_uri}{separator}{query}", status_code=302)


async def token(request: Request):
    params = await _params(request)
    grant_type = params.get("grant_type")
    expires_in = request.app.state.config.token_expires_in

    if grant_type == "client_credentials":
        return JSONResponse({
            "access_token": secrets.token_hex(32),
            "token_type": "Bearer",
            "expires_in": expires_in,
            "scope": "mcp",
        })
    if grant_type == "authorization_code":
        return JSONResponse({
            "access_token": secrets.token_hex(32),
            "token_type": "Bearer",
            "expires_in": expires_in,
            "scope": "mcp",
            "refresh_token": secrets.token_hex(32),
        })
    return JSONResponse(
        {
            "error": "unsupported_grant_type",
            "error_description": f"Grant type {grant_type} is not supported",
        },
        status_code=400,
    )


async def _params(request: Request) -> dict:
    """Request parameters from a JSON or form-encoded body."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return {key: form.getlist(key) if key in _LIST_PARAMS else form.get(key) for key in form}


routes = [
    Route("/.well-known/oauth-authorization-server", authorization_server),
    Route("/.well-known/oauth-authorization-server/mcp", authorization_server),
    Route("/.well-known/oauth-protected-resource", protected_resource),
    Route("/register", register_client, methods=["POST"]),
    Route("/oauth/authorize", authorize),
    Route("/oauth/token", token, methods=["POST"]),
]
