"""Finding ``owner/repo#123`` issue references in free text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

# owner/repo#number, each part captured
OWNER_REPO_ISSUE_RE = re.compile(r"([A-Za-z0-9_-]+)/([A-Za-z0-9_-]+)#([0-9]+)")

# Issue numbers must fit a signed 64-bit integer
MAX_ISSUE_NUMBER = 2**63 - 1


@dataclass(frozen=True)
class Reference:
    owner: str
    repo: str
    number: int

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


def _from_match(match: re.Match[str]) -> Reference | None:
    owner, repo, digits = match.groups()
    try:
        number = int(digits)
    except ValueError:
        # Past the interpreter's int conversion digit limit
        return None
    if number > MAX_ISSUE_NUMBER:
        return None
    return Reference(owner=owner, repo=repo, number=number)


def find_references(text: str) -> Iterator[Reference]:
    """Yield each reference in ``text``, left to right, skipping bad numbers."""
    for match in OWNER_REPO_ISSUE_RE.finditer(text):
        ref = _from_match(match)
        if ref is not None:
            yield ref


def parse_reference(text: str) -> Reference | None:
    """Return the first reference in ``text``, or None."""
    return next(find_references(text), None)
