"""Keyword, title and article generators.

Each generator renders one prompt from the registry, makes a single
completion call and parses the constrained-format answer. Keyword and title
parse failures raise ParseError and are not caught here; article sidecar
failures fall back to empty values inside the parsed result.
"""

from __future__ import annotations

import json
import logging
import random
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from aiwriter.core.models import Difficulty, FaqItem, length_guide
from aiwriter.core.prompts import PromptTemplate, get_prompt
from aiwriter.core.sidecars import SidecarResult, parse_article_response
from aiwriter.core.sites import get_site_profile, is_devotional

if TYPE_CHECKING:
    from aiwriter.core.llm_providers import LLMProvider
    from aiwriter.core.storage import DB

logger = logging.getLogger(__name__)

# Common Taiwanese given names, one is picked per article
TW_NAMES = [
    "志豪", "怡君", "建宏", "淑芬", "俊傑", "雅琪", "宗翰", "佳穎",
    "柏翰", "詩涵", "冠廷", "欣怡", "家豪", "雅雯", "承恩", "筱婷",
    "宏仁", "美玲", "彥廷", "思妤", "育誠", "佩珊", "哲瑋", "曉萱",
    "信宏", "惠婷", "威廷", "雅芳", "嘉豪", "靜宜",
]

MAX_INTERNAL_LINKS = 20
MAX_SOURCE_URLS = 10

_FENCE_RE = re.compile(r"```(?:json)?\n?")


class ParseError(ValueError):
    """Completion response could not be parsed into the expected shape."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def parse_json_array(raw: str) -> list[Any]:
    """Parse a JSON array out of a completion, tolerating code fences."""
    content = strip_code_fences(raw) or "[]"
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"Response is not valid JSON: {e}", raw=raw) from e
    if not isinstance(data, list):
        raise ParseError("Response is not a JSON array", raw=raw)
    return data


def _template(key: str, store: DB | None) -> PromptTemplate:
    prompt = get_prompt(key, store)
    if prompt is None:
        raise KeyError(f"Unknown prompt: {key}")
    return prompt


class KeywordGenerator:
    def __init__(self, llm: LLMProvider, store: DB | None = None) -> None:
        self._llm = llm
        self._store = store

    def build_prompt(self, category: str, count: int, site_slug: str | None) -> tuple[str, PromptTemplate]:
        profile = get_site_profile(site_slug)
        prompt = _template("keywords", self._store)
        text = prompt.render(
            category=category,
            count=count,
            audience=profile.audience,
            examples=profile.keyword_examples,
        )
        return text, prompt

    async def generate(self, category: str, count: int, site_slug: str | None = None) -> list[dict[str, str]]:
        """Generate about `count` keywords for a category.

        Raises:
            ParseError: If the response is not a JSON array.
            LLMError: If the completion call fails.
        """
        text, prompt = self.build_prompt(category, count, site_slug)
        raw = await self._llm.complete(None, text, prompt.temperature, prompt.max_tokens)

        keywords = []
        for item in parse_json_array(raw):
            if isinstance(item, str):
                item = {"keyword": item}
            if not isinstance(item, dict) or not item.get("keyword"):
                continue
            keywords.append({
                "keyword": str(item["keyword"]).strip(),
                "difficulty": Difficulty.parse(item.get("difficulty")).value,
            })

        logger.info(f"Generated {len(keywords)}/{count} keywords for '{category}' ({site_slug or 'default'})")
        return keywords


class TitleGenerator:
    def __init__(self, llm: LLMProvider, store: DB | None = None) -> None:
        self._llm = llm
        self._store = store

    def build_prompt(self, keywords: list[str], existing_titles: list[str] | None = None) -> tuple[str, PromptTemplate]:
        prompt = _template("titles", self._store)
        keyword_lines = "\n".join(f"{i + 1}. {k}" for i, k in enumerate(keywords))

        exclusion = ""
        if existing_titles:
            listed = "\n".join(f"- {t}" for t in existing_titles)
            exclusion = f"5. 不要產生與以下既有標題相同或相似的標題：\n{listed}\n"

        return prompt.render(keyword_lines=keyword_lines, exclusion=exclusion), prompt

    async def generate(
        self,
        keywords: list[str],
        existing_titles: list[str] | None = None,
    ) -> list[dict[str, str]]:
        """Turn keywords into titles. Count mismatches are passed through.

        Raises:
            ParseError: If the response is not a JSON array.
        """
        if not keywords:
            return []

        text, prompt = self.build_prompt(keywords, existing_titles)
        raw = await self._llm.complete(None, text, prompt.temperature, prompt.max_tokens)

        titles = []
        for item in parse_json_array(raw):
            if not isinstance(item, dict) or not item.get("title"):
                continue
            titles.append({
                "keyword": str(item.get("keyword") or "").strip(),
                "title": str(item["title"]).strip(),
            })

        if len(titles) != len(keywords):
            logger.info(f"Title count mismatch: {len(titles)} titles for {len(keywords)} keywords")
        return titles


@dataclass
class ArticleRequest:
    title: str
    category: str = ""
    length: str = ""
    site_slug: str | None = None
    existing_articles: list[dict[str, str]] = field(default_factory=list)
    source_urls: list[str] = field(default_factory=list)


@dataclass
class GeneratedArticle:
    content: str
    faq: list[FaqItem]
    image_keywords: dict[str, str]
    tags: list[str]
    description: str
    protagonist: str
    sidecars: dict[str, SidecarResult] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "faq": [f.to_dict() for f in self.faq],
            "imageKeywords": dict(self.image_keywords),
            "tags": list(self.tags),
            "description": self.description,
            "sidecars": {name: r.status.value for name, r in self.sidecars.items()},
        }


class ArticleGenerator:
    def __init__(
        self,
        llm: LLMProvider,
        store: DB | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._llm = llm
        self._store = store
        self._rng = rng or random.Random()

    def pick_name(self) -> str:
        return self._rng.choice(TW_NAMES)

    def build_prompts(self, request: ArticleRequest, protagonist: str) -> tuple[str, str, PromptTemplate]:
        """Return (system prompt, user prompt, user template)."""
        profile = get_site_profile(request.site_slug)
        devotional = is_devotional(request.site_slug, request.category)

        if devotional:
            system = _template("article_system_devotional", self._store).render(protagonist=protagonist)
            closing = "5. 「## 相關經文」區塊\n6. 「## 實際應用」區塊"
        else:
            system = _template("article_system_general", self._store).render(
                audience=profile.audience, protagonist=protagonist
            )
            closing = "5. 結尾行動呼籲"

        if profile.image_qualifier == "christian" or devotional:
            image_rule = "- 每組關鍵字都要包含 christian，避免出現其他宗教的圖片\n"
        elif profile.image_qualifier:
            image_rule = f"- 有人物的畫面請使用 {profile.image_qualifier} 人物\n"
        else:
            image_rule = ""

        user_prompt = _template("article_user", self._store)
        user = user_prompt.render(
            title=request.title,
            category=request.category,
            length=length_guide(request.length),
            protagonist=protagonist,
            closing_sections=closing,
            internal_links=_internal_links_block(request.existing_articles),
            sources=_sources_block(request.source_urls),
            image_rule=image_rule,
        )
        return system, user, user_prompt

    async def generate(self, request: ArticleRequest) -> GeneratedArticle:
        protagonist = self.pick_name()
        system, user, prompt = self.build_prompts(request, protagonist)

        raw = await self._llm.complete(system, user, prompt.temperature, prompt.max_tokens)
        if not raw:
            logger.warning(f"Empty completion for article '{request.title}'")

        parsed = parse_article_response(raw)
        return GeneratedArticle(
            content=parsed.body,
            faq=parsed.faq,
            image_keywords=parsed.image_keywords,
            tags=parsed.tags,
            description=parsed.description,
            protagonist=protagonist,
            sidecars=parsed.sidecars,
        )


def _internal_links_block(articles: list[dict[str, str]]) -> str:
    if not articles:
        return ""
    lines = [
        f"- [{a['title']}]({a.get('url') or '/posts/' + a['slug']})"
        for a in articles[:MAX_INTERNAL_LINKS]
        if a.get("title") and (a.get("url") or a.get("slug"))
    ]
    if not lines:
        return ""
    return (
        "\n站內相關文章（適合時在內文自然加入 1-3 個 Markdown 內部連結，不要硬塞）：\n"
        + "\n".join(lines)
        + "\n"
    )


def _sources_block(urls: list[str]) -> str:
    if not urls:
        return ""
    lines = [f"- {u}" for u in urls[:MAX_SOURCE_URLS]]
    return (
        "\n可引用的外部參考來源（引用時用 Markdown 連結標註出處，不要捏造其他來源）：\n"
        + "\n".join(lines)
        + "\n"
    )
