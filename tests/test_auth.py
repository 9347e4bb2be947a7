import asyncio

import httpx
import pytest

import auth
from errors import AuthError, InternalError, UpstreamError

SUPABASE = "https://project.supabase.test"


def fetch(handler, token="access-token"):
    return asyncio.run(auth.fetch_user(token, base_url=SUPABASE, api_key="anon",
                                       transport=httpx.MockTransport(handler)))


def test_fetch_user_sends_session_and_api_key():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen.update(request.headers)
        return httpx.Response(200, json={"id": "user-1", "user_metadata": {"user_name": "alice"}})

    user = fetch(handler)
    assert user["id"] == "user-1"
    assert seen["url"] == f"{SUPABASE}/auth/v1/user"
    assert seen["authorization"] == "Bearer access-token"
    assert seen["apikey"] == "anon"


@pytest.mark.parametrize("status", [401, 403])
def test_rejected_session_is_auth_error(status):
    with pytest.raises(AuthError):
        fetch(lambda request: httpx.Response(status, json={"msg": "invalid JWT"}))


def test_provider_outage_is_upstream_error():
    with pytest.raises(UpstreamError) as exc_info:
        fetch(lambda request: httpx.Response(503, text="unavailable"))
    assert exc_info.value.status == 503


def test_unconfigured_provider(monkeypatch):
    monkeypatch.setattr(auth, "SUPABASE_URL", "")
    with pytest.raises(InternalError):
        asyncio.run(auth.fetch_user("token"))


def test_identity_prefers_user_name_then_preferred_username():
    ident = auth.identity_from_user(
        {"id": "u1", "user_metadata": {"user_name": "alice", "preferred_username": "al"}}, "gho_x")
    assert (ident.user_id, ident.username, ident.token) == ("u1", "alice", "gho_x")

    ident = auth.identity_from_user({"id": "u2", "user_metadata": {"preferred_username": "bob"}}, "")
    assert ident.username == "bob"
    assert ident.token == ""

    assert auth.identity_from_user({"id": "u3"}, "t").username == ""
