"""GitHub service."""

from hookbridge.services.github.service import GitHubService, GitHubServiceConfig

__all__ = ["GitHubService", "GitHubServiceConfig"]
