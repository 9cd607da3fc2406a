"""Tests for GitHub issue lookups."""

import httpx
import pytest

from hookbridge.services.github.client import GitHubClient, ResolveStatus, Summary
from hookbridge.services.github.references import Reference

REF = Reference("octocat", "Hello-World", 1)


def _client(handler, token=""):
    return GitHubClient(
        token=token,
        api_url="https://api.example.test",
        transport=httpx.MockTransport(handler),
    )


class TestResolve:
    async def test_resolved(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={
                "html_url": "https://github.com/octocat/Hello-World/issues/1",
                "title": "Fix bug",
            })

        client = _client(handler)
        res = await client.resolve(REF)
        await client.close()

        assert res.ok
        assert res.status is ResolveStatus.RESOLVED
        assert res.summary == Summary(
            url="https://github.com/octocat/Hello-World/issues/1", title="Fix bug"
        )
        assert seen[0].url.path == "/repos/octocat/Hello-World/issues/1"
        assert seen[0].method == "GET"

    async def test_unauthenticated_sends_no_auth_header(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"html_url": "u", "title": "t"})

        client = _client(handler)
        await client.resolve(REF)
        await client.close()

        assert client.authenticated is False
        assert "Authorization" not in seen[0].headers

    async def test_token_sent_as_bearer(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"html_url": "u", "title": "t"})

        client = _client(handler, token="abc123")
        await client.resolve(REF)
        await client.close()

        assert client.authenticated is True
        assert seen[0].headers["Authorization"] == "Bearer abc123"

    async def test_not_found(self):
        client = _client(lambda r: httpx.Response(404, json={"message": "Not Found"}))
        res = await client.resolve(REF)
        await client.close()
        assert res.status is ResolveStatus.NOT_FOUND
        assert res.summary is None
        assert not res.ok

    async def test_rate_limited(self):
        client = _client(lambda r: httpx.Response(
            403, headers={"X-RateLimit-Remaining": "0"}, json={"message": "rate limit"}
        ))
        res = await client.resolve(REF)
        await client.close()
        assert res.status is ResolveStatus.FAILED
        assert res.reason == "rate limited"

    async def test_unauthorized(self):
        client = _client(lambda r: httpx.Response(401, json={"message": "Bad credentials"}))
        res = await client.resolve(REF)
        await client.close()
        assert res.status is ResolveStatus.FAILED
        assert "401" in res.reason

    async def test_server_error(self):
        client = _client(lambda r: httpx.Response(502))
        res = await client.resolve(REF)
        await client.close()
        assert res.status is ResolveStatus.FAILED
        assert res.reason == "HTTP 502"

    async def test_network_error_does_not_raise(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        res = await client.resolve(REF)
        await client.close()
        assert res.status is ResolveStatus.FAILED
        assert "ConnectError" in res.reason

    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"title": "no url"}'])
    async def test_malformed_body(self, body):
        client = _client(lambda r: httpx.Response(200, content=body))
        res = await client.resolve(REF)
        await client.close()
        assert res.status is ResolveStatus.FAILED
        assert res.reason.startswith("malformed response")
