"""Pydantic models for GitHub pull requests and computed metrics."""

from pydantic import BaseModel, ConfigDict, Field


class PullRequestUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    login: str = ""
    id: int | None = None


class PullRequest(BaseModel):
    """A PR as returned by GitHub.

    Listing (summary) records usually lack additions/deletions; the
    single-PR endpoint (detail) always has them. Unknown fields are kept so
    a detail record can be merged over a summary without losing anything.
    """

    model_config = ConfigDict(extra="allow")

    id: int
    number: int
    title: str = ""
    state: str = "open"
    user: PullRequestUser | None = None
    created_at: str | None = None
    updated_at: str | None = None
    closed_at: str | None = None
    merged_at: str | None = None
    html_url: str = ""
    additions: int | None = None
    deletions: int | None = None
    changed_files: int | None = None

    @property
    def has_stats(self) -> bool:
        return self.additions is not None and self.deletions is not None

    @property
    def author(self) -> str:
        return self.user.login if self.user else ""

    def merge(self, detail: "PullRequest") -> "PullRequest":
        """Return a copy with ``detail`` laid over this summary (detail wins)."""
        data = self.model_dump()
        data.update(detail.model_dump(exclude_unset=True))
        return PullRequest.model_validate(data)


class RateStatus(BaseModel):
    remaining: int
    limit: int = 0
    reset: int = 0


class RepoMetrics(BaseModel):
    pr_count: int = Field(default=0, ge=0)
    total_additions: int = Field(default=0, ge=0)
    total_deletions: int = Field(default=0, ge=0)


class UserMetrics(BaseModel):
    my_pr_count: int = Field(default=0, ge=0)
    my_additions: int = Field(default=0, ge=0)
    my_deletions: int = Field(default=0, ge=0)
    my_merged_count: int = Field(default=0, ge=0)
    my_open_count: int = Field(default=0, ge=0)
    my_closed_count: int = Field(default=0, ge=0)


class Identity(BaseModel):
    """Who is asking, as resolved from the identity provider session."""

    user_id: str
    token: str = ""
    username: str = ""


class ErrorResponse(BaseModel):
    error: str
