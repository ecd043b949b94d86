"""
aiohttp glue: credential extraction and error mapping.

Routes are left to the application. This module only resolves the bearer
credential once per request and turns vault errors into JSON responses
that carry no internal detail.
"""
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Optional

import orjson
from aiohttp import web

from .exceptions import VaultError
from .service import KeyVault

logger = logging.getLogger("apikey_vault")

API_KEY_HEADER = "X-API-Key"
IDENTITY_KEY = "identity_id"
DEFAULT_PUBLIC_PATHS = frozenset({"/api/users/register", "/health"})

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def json_dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def json_response(data: Any, status: int = 200) -> web.Response:
    """JSON response serialized with orjson (handles datetimes and enums)."""
    return web.json_response(data, status=status, dumps=json_dumps)


def extract_credential(request: web.Request) -> Optional[str]:
    """Return the bearer credential carried by ``request``, if any.

    ``X-API-Key`` is checked first, then ``Authorization: Bearer <token>``.
    """
    credential = request.headers.get(API_KEY_HEADER)
    if credential:
        return credential
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def error_response(err: VaultError) -> web.Response:
    """Map a vault error to its status and public message."""
    if err.status >= 500:
        logger.error("Vault request failed: %s", type(err).__name__)
    return json_response({"error": err.public_message}, status=err.status)


def vault_middleware(
    vault: KeyVault,
    public_paths: Iterable[str] = DEFAULT_PUBLIC_PATHS,
) -> Callable:
    """Build a middleware that authenticates every non-public request.

    The resolved identity id is stored under ``request["identity_id"]``.
    """
    public = frozenset(public_paths)

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        try:
            if request.path not in public:
                request[IDENTITY_KEY] = await vault.authenticate(
                    extract_credential(request)
                )
            return await handler(request)
        except VaultError as err:
            return error_response(err)

    return middleware


def identity_of(request: web.Request) -> str:
    """Identity id resolved for this request by :func:`vault_middleware`."""
    try:
        return request[IDENTITY_KEY]
    except KeyError:
        raise web.HTTPUnauthorized(
            text=json_dumps({"error": "Authentication failed"}),
            content_type="application/json",
        ) from None
