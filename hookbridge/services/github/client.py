"""GitHub issues API lookups for reference expansion."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

import httpx

from hookbridge.services.github.references import Reference
from hookbridge.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"


class ResolveStatus(str, Enum):
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class Summary:
    url: str
    title: str


@dataclass(frozen=True)
class Resolution:
    status: ResolveStatus
    summary: Summary | None = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ResolveStatus.RESOLVED


class GitHubClient:
    """Fetches issue summaries.

    Without a token requests are anonymous, which GitHub limits to 60 an hour
    per IP, so configure one wherever possible.
    """

    def __init__(
        self,
        token: str = "",
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "hookbridge",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._authenticated = bool(token)
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    async def close(self) -> None:
        await self._client.aclose()

    async def resolve(self, ref: Reference) -> Resolution:
        """Look up one issue or pull request. Never raises for API failures."""
        path = f"/repos/{quote(ref.owner, safe='')}/{quote(ref.repo, safe='')}/issues/{ref.number}"
        log.debug("issue_lookup", reference=str(ref), authenticated=self._authenticated)
        try:
            resp = await self._client.get(path)
        except httpx.HTTPError as e:
            return Resolution(ResolveStatus.FAILED, reason=f"request failed: {e!r}")

        if resp.status_code == 404:
            return Resolution(ResolveStatus.NOT_FOUND, reason="not found")
        if resp.status_code == 429 or (
            resp.status_code == 403 and resp.headers.get("X-RateLimit-Remaining") == "0"
        ):
            return Resolution(ResolveStatus.FAILED, reason="rate limited")
        if resp.status_code in (401, 403):
            return Resolution(ResolveStatus.FAILED, reason=f"unauthorized ({resp.status_code})")
        if resp.status_code != 200:
            return Resolution(ResolveStatus.FAILED, reason=f"HTTP {resp.status_code}")

        try:
            data = resp.json()
            url = data["html_url"]
            title = data["title"]
        except (ValueError, KeyError, TypeError) as e:
            return Resolution(ResolveStatus.FAILED, reason=f"malformed response: {e!r}")
        if not isinstance(url, str) or not isinstance(title, str):
            return Resolution(ResolveStatus.FAILED, reason="malformed response: non-string fields")

        return Resolution(ResolveStatus.RESOLVED, summary=Summary(url=url, title=title))
