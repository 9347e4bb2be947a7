"""Shared pytest fixtures for PR Insights tests.

This module provides:
- A fake GitHub REST API served through httpx.MockTransport
- A controllable clock for TTL tests
- A temporary SQLite database
"""

import re

import httpx
import pytest

import database
from cache import ResultCache
from connectors import GitHubClient
from metrics import MetricsAggregator
from models import Identity

PULLS_RE = re.compile(r"^/repos/([^/]+)/([^/]+)/pulls$")
PULL_RE = re.compile(r"^/repos/([^/]+)/([^/]+)/pulls/(\d+)$")


def make_pr(number, login="alice", state="closed", merged=False, pr_id=None, **extra):
    """Summary record shaped like GitHub's list-pulls response."""
    pr = {
        "id": pr_id if pr_id is not None else 1000 + number,
        "number": number,
        "title": f"PR #{number}",
        "state": state,
        "user": {"login": login, "id": 1},
        "created_at": "2025-01-01T00:00:00Z",
        "updated_at": "2025-01-02T00:00:00Z",
        "closed_at": None if state == "open" else "2025-01-03T00:00:00Z",
        "merged_at": "2025-01-03T00:00:00Z" if merged else None,
        "html_url": f"https://github.com/acme/widgets/pull/{number}",
    }
    pr.update(extra)
    return pr


class FakeGitHub:
    """In-memory GitHub: pages of summaries, per-PR stats, a core quota.

    ``stats`` maps PR number to (additions, deletions); a number missing from
    it gets a detail record without statistics. Every request is recorded in
    ``calls`` as (path, params).
    """

    def __init__(self, pages, stats=None, remaining=5000):
        self.pages = pages
        self.stats = stats or {}
        self.remaining = remaining
        self.page_errors = {}
        self.detail_errors = {}
        self.calls = []

    @property
    def summaries(self):
        return {pr["number"]: pr for page in self.pages for pr in page}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = dict(request.url.params)
        self.calls.append((path, params))

        if path == "/rate_limit":
            return httpx.Response(200, json={
                "resources": {"core": {"limit": 5000, "remaining": self.remaining, "reset": 1700000000}},
            })

        if PULLS_RE.match(path):
            page = int(params.get("page", "1"))
            if page in self.page_errors:
                return httpx.Response(self.page_errors[page], text='{"message": "Server Error"}')
            items = self.pages[page - 1] if page <= len(self.pages) else []
            return httpx.Response(200, json=items)

        m = PULL_RE.match(path)
        if m:
            number = int(m.group(3))
            if number in self.detail_errors:
                return httpx.Response(self.detail_errors[number], text='{"message": "Not Found"}')
            detail = dict(self.summaries[number])
            if number in self.stats:
                detail["additions"], detail["deletions"] = self.stats[number]
                detail["changed_files"] = 1
            return httpx.Response(200, json=detail)

        return httpx.Response(404, text='{"message": "Not Found"}')

    def client(self, token: str) -> GitHubClient:
        return GitHubClient(token, base_url="https://api.github.test",
                            transport=httpx.MockTransport(self.handler))

    def count(self, kind: str) -> int:
        """Number of recorded calls of one kind: rate, list or detail."""
        matchers = {
            "rate": lambda p: p == "/rate_limit",
            "list": lambda p: bool(PULLS_RE.match(p)),
            "detail": lambda p: bool(PULL_RE.match(p)),
        }
        return sum(1 for path, _ in self.calls if matchers[kind](path))


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def identity():
    return Identity(user_id="user-1", token="gho_test", username="Alice")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_github():
    return FakeGitHub(
        pages=[
            [make_pr(1, "alice", merged=True), make_pr(2, "bob"), make_pr(3, "alice", state="open")],
            [make_pr(4, "ALICE"), make_pr(5, "carol", merged=True)],
        ],
        stats={1: (10, 2), 2: (7, 7), 3: (5, 1), 4: (3, 0), 5: (100, 50)},
    )


@pytest.fixture
def make_aggregator(clock):
    """Build a MetricsAggregator wired to a FakeGitHub, no persistence by default."""

    def _make(github, **kwargs):
        kwargs.setdefault("result_cache", ResultCache())
        kwargs.setdefault("persist", False)
        kwargs.setdefault("timeout", None)
        kwargs.setdefault("ttl", 300)
        return MetricsAggregator(client_factory=github.client, clock=clock, **kwargs)

    return _make


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point DB_PATH at a fresh SQLite file for the duration of a test."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "prinsights.db"))
    database.close_db()
    database.init_db()
    yield tmp_path / "prinsights.db"
    database.close_db()
