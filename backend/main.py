import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import database
import metrics_store
from auth import get_identity
from errors import ClientError, MetricsError
from metrics import MetricsAggregator
from models import ErrorResponse, Identity, RepoMetrics, UserMetrics

logger = logging.getLogger("prinsights")
logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.init_db()
    # Attach to uvicorn's handler (available now that uvicorn is running)
    uvicorn_logger = logging.getLogger("uvicorn")
    for h in uvicorn_logger.handlers:
        logger.addHandler(h)
    logger.info("PR Insights ready: cache ttl=%ss strict_details=%s",
                aggregator.ttl, aggregator.strict_details)
    yield
    database.close_db()


# Disable docs in production
docs_url = "/docs" if os.environ.get("ENV") == "dev" else None
redoc_url = "/redoc" if os.environ.get("ENV") == "dev" else None

app = FastAPI(
    title="PR Insights API", version="0.1.0",
    docs_url=docs_url, redoc_url=redoc_url, lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_methods=["GET"],
    allow_headers=["Authorization", "Content-Type", "X-GitHub-Token"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# One aggregator (and so one result cache) per process.
aggregator = MetricsAggregator()


def get_aggregator() -> MetricsAggregator:
    return aggregator


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

@app.exception_handler(MetricsError)
async def metrics_error_handler(request: Request, exc: MetricsError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(asyncio.TimeoutError)
async def timeout_handler(request: Request, exc: asyncio.TimeoutError):
    logger.error("%s %s TIMEOUT", request.method, request.url.path)
    return JSONResponse(status_code=504, content={"error": "Fetching PR data timed out"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("%s %s PIPELINE_ERROR", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Failed to fetch or process PR data"})


MAX_NAME_LENGTH = 100

_ERRORS = {code: {"model": ErrorResponse} for code in (400, 401, 429, 502, 504)}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/test")
def api_test(test: str | None = None):
    """Liveness probe that echoes its parameter."""
    return {
        "message": "API test route is working",
        "receivedParam": test,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def repo_params(
    owner: str = Query(default=""),
    repo: str = Query(default=""),
    refresh: str = Query(default="false"),
) -> tuple[str, str, bool]:
    """Validated (owner, repo, force_refresh); checked before the session is."""
    owner, repo = owner.strip(), repo.strip()
    if not owner or not repo:
        raise ClientError("Missing owner or repo parameters")
    if len(owner) > MAX_NAME_LENGTH or len(repo) > MAX_NAME_LENGTH:
        raise ClientError("Invalid owner or repo parameters")
    return owner, repo, refresh == "true"


@app.get("/metrics", response_model=RepoMetrics, responses=_ERRORS)
@app.get("/api/prs", response_model=RepoMetrics, responses=_ERRORS, include_in_schema=False)
async def repo_metrics(
    params: tuple[str, str, bool] = Depends(repo_params),
    identity: Identity = Depends(get_identity),
    agg: MetricsAggregator = Depends(get_aggregator),
):
    """PR count and line totals for every PR in owner/repo."""
    owner, repo, force = params
    logger.info("metrics user=%s repo=%s/%s refresh=%s", identity.user_id, owner, repo, force)
    return await agg.compute_repo_metrics(owner, repo, identity, force_refresh=force)


@app.get("/my-metrics", response_model=UserMetrics, responses=_ERRORS)
@app.get("/api/my-prs", response_model=UserMetrics, responses=_ERRORS, include_in_schema=False)
async def my_metrics(
    params: tuple[str, str, bool] = Depends(repo_params),
    identity: Identity = Depends(get_identity),
    agg: MetricsAggregator = Depends(get_aggregator),
):
    """Counts, line totals and merged/open/closed split for the caller's own PRs."""
    owner, repo, force = params
    logger.info("my-metrics user=%s repo=%s/%s refresh=%s", identity.user_id, owner, repo, force)
    return await agg.compute_user_metrics(owner, repo, identity, force_refresh=force)


@app.get("/api/recent-repos")
async def recent_repos(identity: Identity = Depends(get_identity)):
    """Repositories the caller has computed metrics for, newest first."""
    return {"repositories": metrics_store.list_repositories(identity.user_id)}
