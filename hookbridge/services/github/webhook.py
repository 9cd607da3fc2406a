"""GitHub webhook signature validation, decoding and message rendering."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Mapping

from hookbridge.models import TextMessage, WebhookEvent


class WebhookDecodeError(Exception):
    """The request could not be turned into a WebhookEvent."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


# GitHub header value -> subscription event type
_EVENT_ALIASES = {
    "issues": "issue",
}


def _obj(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


# ---------------------------------------------------------------------------
# Signature validation
# ---------------------------------------------------------------------------

def validate_github_signature(body: bytes, signature: str, secret: str) -> bool:
    """Validate GitHub webhook HMAC-SHA256 signature."""
    if not secret or not signature:
        return False
    expected = "sha256=" + hmac.new(
        secret.encode(), body, hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected.encode(), signature.encode("utf-8", "surrogateescape"))


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_request(
    headers: Mapping[str, str], body: bytes, secret: str = ""
) -> WebhookEvent:
    """Decode a webhook request into an event, or raise WebhookDecodeError.

    The signature is only checked when ``secret`` is set.
    """
    if secret:
        signature = headers.get("X-Hub-Signature-256", "")
        if not validate_github_signature(body, signature, secret):
            raise WebhookDecodeError(401, "Invalid signature")

    gh_event = headers.get("X-GitHub-Event", "")
    if not gh_event:
        raise WebhookDecodeError(400, "Missing X-GitHub-Event header")

    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        raise WebhookDecodeError(400, "Invalid JSON") from None
    if not isinstance(payload, dict):
        raise WebhookDecodeError(400, "Payload must be a JSON object")

    event_type = _EVENT_ALIASES.get(gh_event, gh_event)
    repo = _str(_obj(payload.get("repository")).get("full_name"), "unknown")
    return WebhookEvent(
        event_type=event_type,
        repo=repo,
        message=render_message(event_type, payload),
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def render_message(event_type: str, payload: dict[str, Any]) -> TextMessage:
    """Render a one-line notice describing the event.

    Fields of the wrong JSON type are treated as missing.
    """
    repo = _str(_obj(payload.get("repository")).get("full_name"), "unknown")
    sender = _str(_obj(payload.get("sender")).get("login"), "unknown")

    if event_type == "push":
        commits = payload.get("commits")
        if not isinstance(commits, list):
            commits = []
        branch = _str(payload.get("ref")).removeprefix("refs/heads/")
        pusher = _str(_obj(payload.get("pusher")).get("name"), sender)
        text = f"[{repo}] {pusher} pushed {len(commits)} commit(s) to {branch}"
        if commits:
            head = _str(_obj(commits[-1]).get("message")).splitlines()
            if head:
                text += f": {head[0]}"
        compare = _str(payload.get("compare"))
        if compare:
            text += f" {compare}"

    elif event_type == "pull_request":
        action = _str(payload.get("action"))
        pr = _obj(payload.get("pull_request"))
        if action == "closed" and pr.get("merged") is True:
            action = "merged"
        number = pr.get("number", "?")
        title = _str(pr.get("title"))
        user = _str(_obj(pr.get("user")).get("login"), sender)
        text = f"[{repo}] {user} {action} pull request #{number}: {title}"
        if _str(pr.get("html_url")):
            text += f" - {pr['html_url']}"

    elif event_type == "issue":
        action = _str(payload.get("action"))
        issue = _obj(payload.get("issue"))
        number = issue.get("number", "?")
        title = _str(issue.get("title"))
        text = f"[{repo}] {sender} {action} issue #{number}: {title}"
        if _str(issue.get("html_url")):
            text += f" - {issue['html_url']}"

    elif event_type in ("issue_comment", "pull_request_review_comment"):
        comment = _obj(payload.get("comment"))
        target = _obj(payload.get("issue")) or _obj(payload.get("pull_request"))
        number = target.get("number", "?")
        title = _str(target.get("title"))
        user = _str(_obj(comment.get("user")).get("login"), sender)
        text = f"[{repo}] {user} commented on #{number} ({title})"
        if _str(comment.get("html_url")):
            text += f" - {comment['html_url']}"

    else:
        text = f"[{repo}] GitHub {event_type} event from {sender}"

    return TextMessage(msgtype="m.notice", body=text)
