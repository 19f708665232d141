"""Parser for article responses with sentinel-delimited JSON sidecars.

An article response is a Markdown body followed by JSON blocks wrapped in
``---NAME_START---`` / ``---NAME_END---`` markers. Each sidecar is parsed on
its own: a malformed block only affects that sidecar, never the body or its
siblings.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from aiwriter.core.models import IMAGE_POSITIONS, FaqItem

logger = logging.getLogger(__name__)

FAQ = "faq"
IMAGE_KEYWORDS = "image_keywords"
TAGS = "tags"
DESCRIPTION = "description"

SENTINELS: dict[str, str] = {
    FAQ: "FAQ",
    IMAGE_KEYWORDS: "IMAGE_KEYWORDS",
    TAGS: "TAGS",
    DESCRIPTION: "DESCRIPTION",
}


class SidecarStatus(str, Enum):
    OK = "ok"
    MISSING = "missing"
    INVALID = "invalid"


class SidecarError(ValueError):
    """Sidecar content has the wrong JSON shape."""


@dataclass
class SidecarResult:
    """Outcome of extracting one sidecar."""

    status: SidecarStatus
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SidecarStatus.OK


@dataclass
class ParsedResponse:
    body: str
    sidecars: dict[str, SidecarResult] = field(default_factory=dict)

    def value(self, name: str) -> Any:
        """Sidecar value, or the empty default when missing or invalid."""
        result = self.sidecars.get(name)
        if result is not None and result.ok:
            return result.value
        return _EMPTY_DEFAULTS[name]()

    @property
    def faq(self) -> list[FaqItem]:
        return self.value(FAQ)

    @property
    def image_keywords(self) -> dict[str, str]:
        return self.value(IMAGE_KEYWORDS)

    @property
    def tags(self) -> list[str]:
        return self.value(TAGS)

    @property
    def description(self) -> str:
        return self.value(DESCRIPTION)


def _markers(name: str) -> tuple[str, str]:
    tag = SENTINELS[name]
    return f"---{tag}_START---", f"---{tag}_END---"


def _strip_fences(text: str) -> str:
    text = text.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text)
    text = re.sub(r"\s*```$", "", text)
    return text.strip()


def _validate_faq(data: Any) -> list[FaqItem]:
    if not isinstance(data, list):
        raise SidecarError("FAQ must be a JSON array")
    items = []
    for entry in data:
        if not isinstance(entry, dict):
            raise SidecarError("FAQ entries must be objects")
        q, a = entry.get("q"), entry.get("a")
        if not isinstance(q, str) or not isinstance(a, str):
            raise SidecarError("FAQ entries need string 'q' and 'a'")
        items.append(FaqItem(q=q.strip(), a=a.strip()))
    return items


def _validate_image_keywords(data: Any) -> dict[str, str]:
    if not isinstance(data, dict):
        raise SidecarError("image keywords must be a JSON object")
    keywords = {}
    for position in IMAGE_POSITIONS:
        query = data.get(position)
        if query is None:
            continue
        if not isinstance(query, str):
            raise SidecarError(f"image keyword for {position} must be a string")
        if query.strip():
            keywords[position] = query.strip()
    return keywords


def _validate_tags(data: Any) -> list[str]:
    if not isinstance(data, list) or not all(isinstance(t, str) for t in data):
        raise SidecarError("tags must be a JSON array of strings")
    return [t.strip() for t in data if t.strip()]


def _parse_description(raw: str) -> str:
    # Plain text is accepted as well as a JSON string
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return raw.strip()
    if not isinstance(data, str):
        raise SidecarError("description must be a string")
    return data.strip()


_VALIDATORS: dict[str, Callable[[Any], Any]] = {
    FAQ: _validate_faq,
    IMAGE_KEYWORDS: _validate_image_keywords,
    TAGS: _validate_tags,
}

_EMPTY_DEFAULTS: dict[str, Callable[[], Any]] = {
    FAQ: list,
    IMAGE_KEYWORDS: dict,
    TAGS: list,
    DESCRIPTION: str,
}


def _decode(name: str, raw: str) -> Any:
    if name == DESCRIPTION:
        return _parse_description(raw)
    return _VALIDATORS[name](json.loads(raw))


def parse_article_response(raw: str | None) -> ParsedResponse:
    """Split a raw article response into body and sidecars.

    Each sidecar is the first match of its marker pair. A start marker with
    no end marker (truncated output) makes the sidecar invalid and cuts the
    dangling tail from the body.
    """
    text = raw or ""
    spans: list[tuple[int, int]] = []
    sidecars: dict[str, SidecarResult] = {}

    for name in SENTINELS:
        start_marker, end_marker = _markers(name)
        start = text.find(start_marker)
        if start == -1:
            sidecars[name] = SidecarResult(status=SidecarStatus.MISSING)
            continue

        content_start = start + len(start_marker)
        end = text.find(end_marker, content_start)
        if end == -1:
            spans.append((start, _next_marker(text, content_start)))
            sidecars[name] = SidecarResult(
                status=SidecarStatus.INVALID,
                error=f"{start_marker} without {end_marker}",
            )
            logger.warning(f"Sidecar {name} truncated: missing end marker")
            continue

        spans.append((start, end + len(end_marker)))
        block = _strip_fences(text[content_start:end])
        try:
            sidecars[name] = SidecarResult(status=SidecarStatus.OK, value=_decode(name, block))
        except (json.JSONDecodeError, SidecarError) as e:
            logger.warning(f"Sidecar {name} invalid: {e}")
            sidecars[name] = SidecarResult(status=SidecarStatus.INVALID, error=str(e))

    return ParsedResponse(body=_remove_spans(text, spans), sidecars=sidecars)


def _next_marker(text: str, pos: int) -> int:
    """Position of the next start marker after pos, or the end of text."""
    found = [
        idx
        for idx in (text.find(_markers(name)[0], pos) for name in SENTINELS)
        if idx != -1
    ]
    return min(found) if found else len(text)


def _remove_spans(text: str, spans: list[tuple[int, int]]) -> str:
    if not spans:
        return text.strip()

    pieces = []
    cursor = 0
    for start, end in sorted(spans):
        if start < cursor:
            # Overlapping span (one sidecar inside a truncated one)
            cursor = max(cursor, end)
            continue
        pieces.append(text[cursor:start])
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces).strip()
