"""Plugin capabilities a service exposes to the host: text expansions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

from hookbridge.models import TextMessage
from hookbridge.utils.logging import get_logger

log = get_logger(__name__)

# expand(room_id, matching_text) -> message or None
ExpandFn = Callable[[str, str], Coroutine[Any, Any, "TextMessage | None"]]


@dataclass(frozen=True)
class Expansion:
    regexp: re.Pattern[str]
    expand: ExpandFn


@dataclass(frozen=True)
class Plugin:
    expansions: list[Expansion] = field(default_factory=list)


async def run_expansions(
    plugins: list[Plugin], room_id: str, text: str
) -> list[TextMessage]:
    """Run every expansion whose pattern occurs in ``text``.

    Each expansion is invoked at most once per text, with the first matching
    span. A failing expansion is logged and skipped.
    """
    results: list[TextMessage] = []
    for plugin in plugins:
        for expansion in plugin.expansions:
            match = expansion.regexp.search(text)
            if match is None:
                continue
            try:
                message = await expansion.expand(room_id, match.group(0))
            except Exception:
                log.exception(
                    "expansion_error",
                    room_id=room_id,
                    pattern=expansion.regexp.pattern,
                )
                continue
            if message is not None:
                results.append(message)
    return results
