"""Resolve the caller's identity from a Supabase Auth session.

The browser signs in with GitHub through Supabase and sends two tokens:
the Supabase access token (``Authorization: Bearer`` or the
``sb-auth-token`` cookie) and the GitHub provider token (``X-GitHub-Token``
or the ``sb-provider-token`` cookie). Supabase is asked who owns the access
token; the provider token is passed through untouched.
"""

import logging
import os

import httpx
from fastapi import Request

from errors import AuthError, InternalError, UpstreamError
from models import Identity

logger = logging.getLogger("prinsights.auth")

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")

ACCESS_TOKEN_COOKIE = "sb-auth-token"
PROVIDER_TOKEN_COOKIE = "sb-provider-token"
PROVIDER_TOKEN_HEADER = "X-GitHub-Token"


def _bearer(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(ACCESS_TOKEN_COOKIE, "")


def _provider_token(request: Request) -> str:
    return (request.headers.get(PROVIDER_TOKEN_HEADER)
            or request.cookies.get(PROVIDER_TOKEN_COOKIE, ""))


def identity_from_user(user: dict, provider_token: str) -> Identity:
    """Build an Identity from a Supabase ``/auth/v1/user`` payload."""
    meta = user.get("user_metadata") or {}
    return Identity(
        user_id=str(user.get("id", "")),
        token=provider_token,
        username=meta.get("user_name") or meta.get("preferred_username") or "",
    )


async def fetch_user(access_token: str, base_url: str = "", api_key: str = "",
                     transport: httpx.AsyncBaseTransport | None = None) -> dict:
    base_url = base_url or SUPABASE_URL
    if not base_url:
        raise InternalError("Identity provider not configured")

    headers = {"Authorization": f"Bearer {access_token}"}
    if api_key or SUPABASE_ANON_KEY:
        headers["apikey"] = api_key or SUPABASE_ANON_KEY

    try:
        async with httpx.AsyncClient(timeout=10, transport=transport) as client:
            resp = await client.get(f"{base_url.rstrip('/')}/auth/v1/user", headers=headers)
    except httpx.HTTPError as e:
        raise UpstreamError(502, f"Identity provider unreachable: {e}") from e

    if resp.status_code in (401, 403):
        raise AuthError("Not authenticated")
    if not resp.is_success:
        raise UpstreamError(resp.status_code, f"Identity provider error: {resp.text}")
    return resp.json()


async def get_identity(request: Request) -> Identity:
    """FastAPI dependency: the authenticated caller, or AuthError."""
    access_token = _bearer(request)
    if not access_token:
        raise AuthError("Not authenticated")

    user = await fetch_user(access_token)
    if not user.get("id"):
        raise AuthError("Not authenticated")

    identity = identity_from_user(user, _provider_token(request))
    logger.debug("session resolved user=%s username=%s", identity.user_id, identity.username or "-")
    return identity
