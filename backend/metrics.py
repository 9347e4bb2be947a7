"""PR metrics aggregation: rate gate, pagination, detail enrichment, reduction.

The aggregator owns the result cache and the optional persistence tier.
A record reaches either of them only after the whole fetch chain has
succeeded, so a failed or timed-out run leaves previous entries untouched.
"""

import asyncio
import logging
import os
import time
from typing import Callable

import cache
import metrics_store
from connectors import GitHubClient
from errors import AuthError, ClientError, RateLimitError, UpstreamError
from models import Identity, PullRequest, RepoMetrics, UserMetrics

logger = logging.getLogger("prinsights.metrics")

RATE_LIMIT_THRESHOLD = 10
USER_METRICS_KIND = "my-prs"
REPO_METRICS_KIND = "repo"

STRICT_DETAILS = os.environ.get("PR_DETAIL_STRICT", "true").lower() not in ("0", "false", "no")
TIMEOUT_SECONDS = float(os.environ.get("METRICS_TIMEOUT_SECONDS", "120"))


# ---------------------------------------------------------------------------
# Reduction
# ---------------------------------------------------------------------------

def _distinct(prs: list[PullRequest]) -> list[PullRequest]:
    """Drop repeated PR ids (a PR can shift onto the next page mid-pagination)."""
    seen = set()
    out = []
    for pr in prs:
        if pr.id in seen:
            continue
        seen.add(pr.id)
        out.append(pr)
    return out


def summarize_prs(prs: list[PullRequest]) -> RepoMetrics:
    prs = _distinct(prs)
    return RepoMetrics(
        pr_count=len(prs),
        total_additions=sum(pr.additions or 0 for pr in prs),
        total_deletions=sum(pr.deletions or 0 for pr in prs),
    )


def summarize_user_prs(prs: list[PullRequest]) -> UserMetrics:
    """Reduce one author's PRs.

    Merged, open and closed-unmerged partition the set: a PR with
    ``merged_at`` counts as merged whatever its state.
    """
    prs = _distinct(prs)
    merged = sum(1 for pr in prs if pr.merged_at)
    open_ = sum(1 for pr in prs if not pr.merged_at and pr.state == "open")
    return UserMetrics(
        my_pr_count=len(prs),
        my_additions=sum(pr.additions or 0 for pr in prs),
        my_deletions=sum(pr.deletions or 0 for pr in prs),
        my_merged_count=merged,
        my_open_count=open_,
        my_closed_count=len(prs) - merged - open_,
    )


def filter_by_author(prs: list[PullRequest], username: str) -> list[PullRequest]:
    wanted = username.lower()
    return [pr for pr in prs if pr.author.lower() == wanted]


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class MetricsAggregator:
    """Computes and caches repository-wide and per-user PR metrics.

    ``client_factory`` builds a GitHub client for a token; ``persist``
    toggles the SQLite tier; ``clock`` returns epoch seconds.
    """

    def __init__(
        self,
        result_cache: cache.ResultCache | None = None,
        client_factory: Callable[[str], GitHubClient] = GitHubClient,
        ttl: float = cache.DEFAULT_TTL,
        strict_details: bool = STRICT_DETAILS,
        timeout: float | None = TIMEOUT_SECONDS,
        persist: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = result_cache if result_cache is not None else cache.ResultCache()
        self.client_factory = client_factory
        self.ttl = ttl
        self.strict_details = strict_details
        self.timeout = timeout
        self.persist = persist
        self.clock = clock

    async def compute_repo_metrics(self, owner: str, repo: str, identity: Identity,
                                   force_refresh: bool = False) -> RepoMetrics:
        self._validate(owner, repo, identity)
        return await self._compute(owner, repo, identity, REPO_METRICS_KIND, force_refresh)

    async def compute_user_metrics(self, owner: str, repo: str, identity: Identity,
                                   force_refresh: bool = False) -> UserMetrics:
        self._validate(owner, repo, identity)
        if not identity.username:
            raise ClientError("Unable to determine GitHub username")
        return await self._compute(owner, repo, identity, USER_METRICS_KIND, force_refresh)

    @staticmethod
    def _validate(owner: str, repo: str, identity: Identity):
        if not owner or not repo:
            raise ClientError("Missing owner or repo parameters")
        if not identity.token:
            raise AuthError("No GitHub token available")

    async def _compute(self, owner, repo, identity, kind, force_refresh):
        model = UserMetrics if kind == USER_METRICS_KIND else RepoMetrics
        key = cache.make_key(identity.user_id, owner, repo,
                             kind if kind == USER_METRICS_KIND else "")
        repo_full = f"{owner}/{repo}"

        if not force_refresh:
            cached = self._cached(key, identity.user_id, repo_full, kind, model)
            if cached is not None:
                return cached

        fetch = self._fetch(owner, repo, identity, kind)
        if self.timeout:
            record = await asyncio.wait_for(fetch, timeout=self.timeout)
        else:
            record = await fetch

        now = self.clock()
        self.cache.put(key, record, now)
        if self.persist:
            self._store(identity.user_id, repo_full, kind, record, now)
        logger.info("metrics computed key=%s %s", key, record.model_dump())
        return record

    def _cached(self, key, user_id, repo_full, kind, model):
        now = self.clock()
        record = self.cache.get_fresh(key, self.ttl, now)
        if record is not None:
            logger.info("metrics cache hit key=%s", key)
            return record
        if not self.persist:
            return None

        try:
            stored = metrics_store.get_metrics(user_id, repo_full, kind)
            if stored is None:
                return None
            data, computed_at = stored
            if now - computed_at >= self.ttl:
                return None
            record = model.model_validate(data)
        except Exception:
            logger.warning("metrics store read failed key=%s", key, exc_info=True)
            return None
        self.cache.put(key, record, computed_at)
        logger.info("metrics store hit key=%s", key)
        return record

    def _store(self, user_id, repo_full, kind, record, computed_at) -> bool:
        """Best-effort upsert; the in-memory result stays authoritative."""
        try:
            metrics_store.upsert_metrics(user_id, repo_full, kind, record.model_dump(), computed_at)
        except Exception:
            logger.warning("metrics store write failed user=%s repo=%s kind=%s",
                           user_id, repo_full, kind, exc_info=True)
            return False
        return True

    async def _fetch(self, owner, repo, identity, kind):
        async with self.client_factory(identity.token) as gh:
            rate = await gh.get_rate_status()
            if rate.remaining < RATE_LIMIT_THRESHOLD:
                logger.warning("rate gate closed remaining=%d repo=%s/%s", rate.remaining, owner, repo)
                raise RateLimitError(
                    f"GitHub API rate limit nearly exhausted ({rate.remaining} calls left). Try again later.",
                    remaining=rate.remaining,
                )

            prs = await self._list_all(gh, owner, repo)
            if kind == USER_METRICS_KIND:
                prs = filter_by_author(prs, identity.username)
            prs = await self._enrich(gh, owner, repo, prs)

        if kind == USER_METRICS_KIND:
            return summarize_user_prs(prs)
        return summarize_prs(prs)

    async def _list_all(self, gh, owner, repo) -> list[PullRequest]:
        prs = []
        page = 1
        while True:
            batch = await gh.list_pull_requests(owner, repo, page=page)
            if not batch:
                break
            prs.extend(batch)
            page += 1
        return prs

    async def _enrich(self, gh, owner, repo, prs) -> list[PullRequest]:
        enriched = []
        for pr in prs:
            if pr.has_stats:
                enriched.append(pr)
                continue
            try:
                detail = await gh.get_pull_request(owner, repo, pr.number)
            except UpstreamError as e:
                if self.strict_details:
                    raise
                logger.warning("skipping detail for %s/%s#%d: status=%d", owner, repo, pr.number, e.status)
                enriched.append(pr)
                continue
            enriched.append(pr.merge(detail))
        return enriched
