"""Tests for the github service: routing, expansions and the subscription table."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from hookbridge.chat.base import ChatError
from hookbridge.models import TextMessage, WebhookEvent
from hookbridge.plugin import run_expansions
from hookbridge.services.github.client import Resolution, ResolveStatus, Summary
from hookbridge.services.github.references import Reference
from hookbridge.services.github.service import GitHubService, GitHubServiceConfig


def _event(event_type: str) -> WebhookEvent:
    return WebhookEvent(
        event_type=event_type,
        repo="octocat/Hello-World",
        message=TextMessage(msgtype="m.notice", body=f"{event_type} happened"),
    )


@pytest.fixture
def gh_client():
    client = MagicMock()
    client.resolve = AsyncMock(return_value=Resolution(
        ResolveStatus.RESOLVED, summary=Summary(url="http://x/1", title="Fix bug")
    ))
    client.close = AsyncMock()
    return client


@pytest.fixture
def chat():
    c = MagicMock()
    c.user_id = "@bot:hs"
    c.send_message_event = AsyncMock(return_value="$event")
    return c


@pytest.fixture
def service(gh_client):
    config = GitHubServiceConfig(rooms={
        "!roomA": ["issue"],
        "!roomB": ["push"],
    })
    return GitHubService("gh1", "@bot:hs", config, client=gh_client)


def _sent_rooms(chat) -> list[str]:
    return [c.args[0] for c in chat.send_message_event.await_args_list]


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

class TestRoute:
    async def test_issue_goes_only_to_subscribed_room(self, service, chat):
        results = await service.route(_event("issue"), chat)
        assert _sent_rooms(chat) == ["!roomA"]
        assert [r.room_id for r in results] == ["!roomA"]
        assert results[0].ok
        assert results[0].event_id == "$event"

    async def test_unsubscribed_type_delivers_nowhere(self, service, chat):
        results = await service.route(_event("pull_request"), chat)
        chat.send_message_event.assert_not_awaited()
        assert results == []

    async def test_sends_rendered_message_content(self, service, chat):
        await service.route(_event("push"), chat)
        room_id, event_type, content = chat.send_message_event.await_args.args
        assert room_id == "!roomB"
        assert event_type == "m.room.message"
        assert content == {"msgtype": "m.notice", "body": "push happened"}

    async def test_partition_over_subscription_table(self, gh_client, chat):
        rooms = {
            "!a": ["push", "issue"],
            "!b": ["issue"],
            "!c": ["pull_request"],
            "!d": [],
        }
        service = GitHubService("gh", "@bot:hs", GitHubServiceConfig(rooms=rooms), client=gh_client)
        for event_type in ("push", "issue", "pull_request", "release"):
            chat.send_message_event.reset_mock()
            await service.route(_event(event_type), chat)
            expected = {room for room, types in rooms.items() if event_type in types}
            assert set(_sent_rooms(chat)) == expected

    async def test_failed_room_does_not_stop_others(self, gh_client, chat):
        config = GitHubServiceConfig(rooms={
            "!r1": ["push"],
            "!r2": ["push"],
            "!r3": ["push"],
        })
        service = GitHubService("gh", "@bot:hs", config, client=gh_client)

        async def send(room_id, event_type, content):
            if room_id == "!r1":
                raise ChatError("forbidden", status=403)
            return f"$ev-{room_id}"

        chat.send_message_event = AsyncMock(side_effect=send)
        results = await service.route(_event("push"), chat)

        assert sorted(_sent_rooms(chat)) == ["!r1", "!r2", "!r3"]
        by_room = {r.room_id: r for r in results}
        assert by_room["!r1"].ok is False
        assert "forbidden" in by_room["!r1"].error
        assert by_room["!r2"].ok and by_room["!r3"].ok

    async def test_unexpected_transport_error_is_isolated(self, gh_client, chat):
        config = GitHubServiceConfig(rooms={"!r1": ["push"], "!r2": ["push"]})
        service = GitHubService("gh", "@bot:hs", config, client=gh_client)
        chat.send_message_event = AsyncMock(side_effect=[RuntimeError("boom"), "$ok"])

        results = await service.route(_event("push"), chat)
        assert [r.ok for r in results].count(True) == 1
        assert len(results) == 2


# ---------------------------------------------------------------------------
# Webhook entry point
# ---------------------------------------------------------------------------

@pytest.fixture
async def webhook_client(service, chat):
    async def handler(request):
        return await service.on_receive_webhook(request, chat)

    app = web.Application()
    app.router.add_post("/hook", handler)
    async with TestClient(TestServer(app)) as c:
        yield c


class TestOnReceiveWebhook:
    async def test_routes_and_returns_200(self, webhook_client, chat):
        payload = {
            "action": "opened",
            "issue": {"number": 3, "title": "Broken"},
            "repository": {"full_name": "octocat/Hello-World"},
            "sender": {"login": "alice"},
        }
        resp = await webhook_client.post(
            "/hook",
            data=json.dumps(payload).encode(),
            headers={"X-GitHub-Event": "issues"},
        )
        assert resp.status == 200
        assert _sent_rooms(chat) == ["!roomA"]

    async def test_returns_200_when_delivery_fails(self, webhook_client, chat):
        chat.send_message_event = AsyncMock(side_effect=ChatError("down"))
        resp = await webhook_client.post(
            "/hook",
            data=json.dumps({"repository": {"full_name": "o/r"}}).encode(),
            headers={"X-GitHub-Event": "push"},
        )
        assert resp.status == 200

    async def test_decode_error_status_passed_through(self, webhook_client, chat):
        resp = await webhook_client.post(
            "/hook", data=b"not json", headers={"X-GitHub-Event": "push"}
        )
        assert resp.status == 400
        chat.send_message_event.assert_not_awaited()

    async def test_missing_event_header(self, webhook_client, chat):
        resp = await webhook_client.post("/hook", data=b"{}")
        assert resp.status == 400
        chat.send_message_event.assert_not_awaited()

    async def test_bad_signature_rejected(self, gh_client, chat):
        config = GitHubServiceConfig(rooms={"!r": ["push"]}, webhook_secret="s3cret")
        service = GitHubService("gh", "@bot:hs", config, client=gh_client)

        async def handler(request):
            return await service.on_receive_webhook(request, chat)

        app = web.Application()
        app.router.add_post("/hook", handler)
        async with TestClient(TestServer(app)) as client:
            resp = await client.post(
                "/hook",
                data=b"{}",
                headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": "sha256=bad"},
            )
            assert resp.status == 401
        chat.send_message_event.assert_not_awaited()


# ---------------------------------------------------------------------------
# Expansions
# ---------------------------------------------------------------------------

class TestExpandIssue:
    async def test_expands_to_url_and_title(self, service, gh_client):
        msg = await service.expand_issue("!roomA", "see octocat/Hello-World#1 for details")
        assert msg is not None
        assert msg.body == "http://x/1 : Fix bug"
        assert msg.msgtype == "m.notice"
        gh_client.resolve.assert_awaited_once_with(Reference("octocat", "Hello-World", 1))

    async def test_only_first_reference_is_expanded(self, service, gh_client):
        await service.expand_issue("!roomA", "a/b#1 and c/d#2")
        gh_client.resolve.assert_awaited_once_with(Reference("a", "b", 1))

    @pytest.mark.parametrize("status", [ResolveStatus.NOT_FOUND, ResolveStatus.FAILED])
    async def test_failed_lookup_returns_none(self, service, gh_client, status):
        gh_client.resolve.return_value = Resolution(status, reason="nope")
        assert await service.expand_issue("!roomA", "a/b#1") is None

    async def test_unparseable_text_returns_none(self, service, gh_client):
        assert await service.expand_issue("!roomA", "a/b#" + "9" * 30) is None
        gh_client.resolve.assert_not_awaited()

    async def test_plugin_registers_expansion(self, service):
        plugin = service.plugin("!roomA")
        assert len(plugin.expansions) == 1
        assert plugin.expansions[0].regexp.search("x/y#2")

    async def test_run_expansions_end_to_end(self, service):
        out = await run_expansions(
            [service.plugin("!roomA")], "!roomA", "see octocat/Hello-World#1 for details"
        )
        assert [m.body for m in out] == ["http://x/1 : Fix bug"]

    async def test_run_expansions_without_match(self, service, gh_client):
        out = await run_expansions([service.plugin("!roomA")], "!roomA", "nothing here")
        assert out == []
        gh_client.resolve.assert_not_awaited()

    async def test_run_expansions_failed_lookup_emits_nothing(self, service, gh_client):
        gh_client.resolve.return_value = Resolution(ResolveStatus.FAILED, reason="rate limited")
        out = await run_expansions([service.plugin("!roomA")], "!roomA", "a/b#1")
        assert out == []


# ---------------------------------------------------------------------------
# Subscription table
# ---------------------------------------------------------------------------

class TestSubscriptionTable:
    def test_room_ids(self, service):
        assert sorted(service.room_ids()) == ["!roomA", "!roomB"]

    def test_duplicate_types_collapse(self, gh_client):
        config = GitHubServiceConfig(rooms={"!r": ["push", "push", "issue"]})
        service = GitHubService("gh", "@bot:hs", config, client=gh_client)
        assert service.event_types("!r") == frozenset({"push", "issue"})

    def test_absent_room_has_no_types(self, service):
        assert service.event_types("!nowhere") == frozenset()

    def test_table_is_read_only(self, service):
        with pytest.raises(TypeError):
            service.rooms["!new"] = frozenset({"push"})

    def test_mutation_replaces_whole_table(self, service):
        before = service.rooms
        service.add_room("!roomC", ["pull_request"])
        assert "!roomC" not in before
        assert service.event_types("!roomC") == frozenset({"pull_request"})

    def test_subscribe_and_unsubscribe(self, service):
        service.subscribe("!roomA", "push")
        assert service.event_types("!roomA") == frozenset({"issue", "push"})
        service.unsubscribe("!roomA", "issue")
        assert service.event_types("!roomA") == frozenset({"push"})

    def test_unsubscribe_unknown_room_is_noop(self, service):
        service.unsubscribe("!nowhere", "push")
        assert "!nowhere" not in service.room_ids()

    def test_remove_room(self, service):
        service.remove_room("!roomB")
        assert service.room_ids() == ["!roomA"]

    def test_set_rooms(self, service):
        service.set_rooms({"!x": {"push"}})
        assert service.room_ids() == ["!x"]

    async def test_route_uses_snapshot_taken_at_start(self, service, chat):
        async def send(room_id, event_type, content):
            # Mutating mid-pass must not affect the pass in progress
            service.set_rooms({})
            return "$ok"

        service.set_rooms({"!r1": ["push"], "!r2": ["push"]})
        chat.send_message_event = AsyncMock(side_effect=send)
        await service.route(_event("push"), chat)
        assert sorted(_sent_rooms(chat)) == ["!r1", "!r2"]
