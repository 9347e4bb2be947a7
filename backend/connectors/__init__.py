"""Data connectors for external APIs."""

from .github_connector import GitHubClient, PAGE_SIZE

__all__ = ["GitHubClient", "PAGE_SIZE"]
