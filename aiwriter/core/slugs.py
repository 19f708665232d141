"""URL slugs for generated articles.

A slug is the cleaned title plus a base-36 millisecond timestamp. The factory
remembers the last timestamp it issued and bumps it when two slugs are
requested within the same millisecond, so slugs never collide in one process.
"""

from __future__ import annotations

import re
import threading
import time
from typing import Callable

MAX_BASE_LENGTH = 50

_STRIP_RE = re.compile(r"[^\w\s\u4e00-\u9fff-]")
_SPACE_RE = re.compile(r"\s+")
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 only supports non-negative integers")
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_DIGITS[rem])
    return "".join(reversed(out))


def slug_base(title: str) -> str:
    """Lower-case the title and keep word characters, CJK and hyphens."""
    text = _STRIP_RE.sub("", title.lower())
    text = _SPACE_RE.sub("-", text.strip())
    return text[:MAX_BASE_LENGTH]


class SlugFactory:
    """Issues slugs with a strictly increasing millisecond suffix. Thread-safe."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last_ms = 0
        self._lock = threading.Lock()

    def _next_stamp(self) -> int:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms <= self._last_ms:
                now_ms = self._last_ms + 1
            self._last_ms = now_ms
            return now_ms

    def make(self, title: str) -> str:
        base = slug_base(title)
        suffix = to_base36(self._next_stamp())
        return f"{base}-{suffix}" if base else suffix


_factory = SlugFactory()


def generate_slug(title: str) -> str:
    return _factory.make(title)
