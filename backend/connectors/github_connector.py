"""GitHub REST API connector for pull-request listings, details and quota."""

import os

import httpx

from errors import UpstreamError
from models import PullRequest, RateStatus

GH_API = os.environ.get("GITHUB_API_URL", "https://api.github.com")
PAGE_SIZE = 100


class GitHubClient:
    """Async client bound to one user's GitHub token.

    Use as ``async with GitHubClient(token) as gh: ...``. Pass ``transport``
    to swap the network layer (tests use ``httpx.MockTransport``).
    """

    def __init__(self, token: str, base_url: str = GH_API, timeout: float = 30,
                 transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _get(self, path: str, params: dict | None = None):
        try:
            resp = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(502, f"GitHub API unreachable: {e}") from e
        if not resp.is_success:
            raise UpstreamError(resp.status_code, f"GitHub API error: {resp.text}")
        return resp.json()

    async def get_rate_status(self) -> RateStatus:
        """Remaining core-API quota for this token."""
        data = await self._get("/rate_limit")
        core = (data.get("resources") or {}).get("core") or data.get("rate") or {}
        return RateStatus(
            remaining=core.get("remaining", 0),
            limit=core.get("limit", 0),
            reset=core.get("reset", 0),
        )

    async def list_pull_requests(self, owner: str, repo: str, page: int = 1,
                                 per_page: int = PAGE_SIZE, state: str = "all") -> list[PullRequest]:
        """One page of PR summaries; an empty list means there are no more pages."""
        items = await self._get(
            f"/repos/{owner}/{repo}/pulls",
            params={"state": state, "per_page": per_page, "page": page},
        )
        return [PullRequest.model_validate(item) for item in items]

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequest:
        """Full PR record, including additions/deletions/changed_files."""
        data = await self._get(f"/repos/{owner}/{repo}/pulls/{number}")
        return PullRequest.model_validate(data)
