"""structlog configuration and secret redaction.

hookbridge handles three kinds of credential: GitHub API tokens, Matrix
access tokens and webhook HMAC secrets. They can reach a log line as a
keyword field, inside an exception message, or inside a URL that httpx
echoes back, so redaction works on keys and on string values alike.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

REDACTED = "***REDACTED***"

# Keyword fields whose values are always secret
_SECRET_FIELDS = frozenset({
    "access_token", "token", "secret", "webhook_secret", "authorization",
})

_INLINE_SECRETS = [
    # key=value / "key": "value" forms, including ?access_token= in URLs
    (re.compile(
        r"((?:access_)?token|secret|password|authorization)([\"']?\s*[:=]\s*[\"']?)(?:Bearer\s+)?[\w\-.]+",
        re.IGNORECASE,
    ), rf"\1\2{REDACTED}"),
    (re.compile(r"\bBearer\s+[\w\-.]+", re.IGNORECASE), f"Bearer {REDACTED}"),
    # GitHub personal/app tokens and Matrix (Synapse) access tokens
    (re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_\w{20,}|syt_[\w\-]+)"), REDACTED),
    # X-Hub-Signature-256 values
    (re.compile(r"sha256=[0-9a-fA-F]{16,}"), f"sha256={REDACTED}"),
]


def redact(value: str) -> str:
    for pattern, replacement in _INLINE_SECRETS:
        value = pattern.sub(replacement, value)
    return value


def _filter_sensitive(
    _logger: Any,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_FIELDS:
            if value:
                event_dict[key] = REDACTED
        elif isinstance(value, str):
            event_dict[key] = redact(value)
    return event_dict


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Route structlog and stdlib logging through one stderr handler."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        # Tracebacks become a string field, so they pass through redaction too
        shared_processors.append(structlog.processors.format_exc_info)
    shared_processors.append(_filter_sensitive)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        # Records from aiohttp/httpx loggers get the same timestamps and redaction
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # Per-request access lines and connection chatter
    for name in ("httpx", "httpcore", "aiohttp.access"):
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
