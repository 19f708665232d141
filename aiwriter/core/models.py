"""Domain records for the content pipeline.

Keyword and Title live only within one generation session until a batch run
turns them into Articles. ImageCandidate is an immutable search hit; an
ImageSlot holds the current pick for one image position plus every candidate
so the user can swap images later without searching again.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

IMAGE_POSITIONS = ("cover", "image1", "image2", "image3")
SECTION_IMAGE_POSITIONS = ("image1", "image2", "image3")

MANUAL_KEYWORD = "manual"

LENGTH_PRESETS: dict[str, str] = {
    "medium": "2000-2500字",
    "long": "2500-3000字",
    "extra": "3000字以上，內容要非常充實",
}
DEFAULT_LENGTH = "medium"


def length_guide(length: str | None) -> str:
    """Map a length preset key to the descriptive string used in prompts."""
    if not length:
        return LENGTH_PRESETS[DEFAULT_LENGTH]
    return LENGTH_PRESETS.get(length, length)


class Difficulty(str, Enum):
    """Search-intent difficulty of a keyword."""

    EASY = "easy"
    MEDIUM = "medium"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        labels = {
            "簡單": cls.EASY,
            "中等": cls.MEDIUM,
            "進階": cls.ADVANCED,
        }
        if isinstance(value, str):
            value = value.strip()
            if value in labels:
                return labels[value]
            try:
                return cls(value.lower())
            except ValueError:
                pass
        return cls.MEDIUM

    @property
    def label(self) -> str:
        return {"easy": "簡單", "medium": "中等", "advanced": "進階"}[self.value]


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class BatchMode(str, Enum):
    SINGLE = "single"
    BATCH = "batch"


class BatchStatus(str, Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class Keyword:
    text: str
    difficulty: Difficulty = Difficulty.MEDIUM
    site_id: str | None = None
    site_slug: str | None = None
    checked: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.text,
            "difficulty": self.difficulty.value,
            "siteId": self.site_id,
            "siteSlug": self.site_slug,
            "checked": self.checked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Keyword:
        return cls(
            text=str(data.get("keyword") or data.get("text") or "").strip(),
            difficulty=Difficulty.parse(data.get("difficulty")),
            site_id=data.get("siteId") or data.get("site_id"),
            site_slug=data.get("siteSlug") or data.get("site_slug"),
            checked=bool(data.get("checked", True)),
        )


@dataclass
class Title:
    keyword: str
    title: str
    site_id: str | None = None
    site_slug: str | None = None
    site_name: str | None = None
    category: str = ""
    checked: bool = True

    @property
    def is_manual(self) -> bool:
        return self.keyword == MANUAL_KEYWORD

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "title": self.title,
            "siteId": self.site_id,
            "siteSlug": self.site_slug,
            "siteName": self.site_name,
            "category": self.category,
            "checked": self.checked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Title:
        return cls(
            keyword=str(data.get("keyword") or MANUAL_KEYWORD),
            title=str(data.get("title") or "").strip(),
            site_id=data.get("siteId") or data.get("site_id"),
            site_slug=data.get("siteSlug") or data.get("site_slug"),
            site_name=data.get("siteName") or data.get("site_name"),
            category=data.get("category") or "",
            checked=bool(data.get("checked", True)),
        )

    @classmethod
    def manual(cls, title: str, **kwargs: Any) -> Title:
        return cls(keyword=MANUAL_KEYWORD, title=title.strip(), **kwargs)


@dataclass(frozen=True)
class ImageCandidate:
    url: str
    thumbnail: str
    alt: str
    photographer: str

    def to_dict(self) -> dict[str, str]:
        return {
            "url": self.url,
            "thumbnail": self.thumbnail,
            "alt": self.alt,
            "photographer": self.photographer,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageCandidate:
        return cls(
            url=data.get("url") or "",
            thumbnail=data.get("thumbnail") or "",
            alt=data.get("alt") or "",
            photographer=data.get("photographer") or "",
        )


NO_SOURCE = "none"


@dataclass
class ImageSlot:
    """Selected image plus all candidates for one image position."""

    selected: ImageCandidate | None = None
    candidates: list[ImageCandidate] = field(default_factory=list)
    source: str = NO_SOURCE

    @classmethod
    def empty(cls) -> ImageSlot:
        """The explicit "no image" outcome. Not an error."""
        return cls(selected=None, candidates=[], source=NO_SOURCE)

    @property
    def is_empty(self) -> bool:
        return self.selected is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected": self.selected.to_dict() if self.selected else None,
            "candidates": [c.to_dict() for c in self.candidates],
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ImageSlot:
        if not data:
            return cls.empty()
        selected = data.get("selected")
        # Older records store an all-blank candidate instead of null
        if selected and not selected.get("url"):
            selected = None
        return cls(
            selected=ImageCandidate.from_dict(selected) if selected else None,
            candidates=[ImageCandidate.from_dict(c) for c in data.get("candidates") or []],
            source=data.get("source") or NO_SOURCE,
        )


@dataclass
class FaqItem:
    q: str
    a: str

    def to_dict(self) -> dict[str, str]:
        return {"q": self.q, "a": self.a}


@dataclass
class Article:
    """Generated article, the aggregate the review UI edits and publishes."""

    title: str
    slug: str
    content: str
    category: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    scheduled_date: str | None = None
    faq: list[FaqItem] = field(default_factory=list)
    image_keywords: dict[str, str] = field(default_factory=dict)
    images: dict[str, ImageSlot] = field(default_factory=dict)
    site_id: str | None = None
    site_slug: str | None = None
    site_name: str | None = None
    github_pushed: bool = False
    status: ArticleStatus = ArticleStatus.DRAFT
    db_id: int | None = None
    batch_id: int | None = None

    @property
    def is_pushed(self) -> bool:
        return self.github_pushed

    def mark_pushed(self) -> None:
        self.github_pushed = True
        self.status = ArticleStatus.PUBLISHED

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "slug": self.slug,
            "content": self.content,
            "category": self.category,
            "description": self.description,
            "tags": list(self.tags),
            "scheduledDate": self.scheduled_date,
            "faq": [f.to_dict() for f in self.faq],
            "imageKeywords": dict(self.image_keywords),
            "images": {pos: slot.to_dict() for pos, slot in self.images.items()},
            "siteId": self.site_id,
            "siteSlug": self.site_slug,
            "siteName": self.site_name,
            "githubPushed": self.github_pushed,
            "status": self.status.value,
            "dbId": self.db_id,
            "batchId": self.batch_id,
        }

    @classmethod
    def from_row(cls, row: Any) -> Article:
        """Create an Article from an `articles` table row."""

        def _load(value: str | None, default: Any) -> Any:
            if not value:
                return default
            return json.loads(value)

        return cls(
            title=row["title"],
            slug=row["slug"],
            content=row["content"] or "",
            category=row["category"] or "",
            description=row["description"] or "",
            tags=_load(row["tags"], []),
            scheduled_date=row["scheduled_date"],
            faq=[FaqItem(q=f["q"], a=f["a"]) for f in _load(row["faq"], [])],
            image_keywords=_load(row["image_keywords"], {}),
            images={
                pos: ImageSlot.from_dict(slot)
                for pos, slot in _load(row["images"], {}).items()
            },
            site_id=row["site_id"],
            site_slug=row["site_slug"],
            site_name=row["site_name"],
            github_pushed=bool(row["github_pushed"]),
            status=ArticleStatus(row["status"] or ArticleStatus.DRAFT.value),
            db_id=row["id"],
            batch_id=row["batch_id"],
        )


@dataclass
class Batch:
    id: int | None
    mode: BatchMode
    status: BatchStatus = BatchStatus.DRAFT
    article_length: str = DEFAULT_LENGTH
    schedule_start: str | None = None
    schedule_interval: int = 2
    site_ids: list[str] = field(default_factory=list)
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mode": self.mode.value,
            "status": self.status.value,
            "articleLength": self.article_length,
            "scheduleStart": self.schedule_start,
            "scheduleInterval": self.schedule_interval,
            "siteIds": list(self.site_ids),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Any) -> Batch:
        return cls(
            id=row["id"],
            mode=BatchMode(row["mode"]),
            status=BatchStatus(row["status"]),
            article_length=row["article_length"] or DEFAULT_LENGTH,
            schedule_start=row["schedule_start"],
            schedule_interval=row["schedule_interval"] or 2,
            site_ids=json.loads(row["site_ids"] or "[]"),
            created_at=row["created_at"],
        )
