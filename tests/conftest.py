"""Shared fixtures: in-memory database and scripted fakes for the LLM and photo providers."""

import asyncio
import json

import pytest

from aiwriter.core.llm_providers import ChatResponse, HealthCheckResult, LLMProvider
from aiwriter.core.models import ImageCandidate
from aiwriter.core.settings import Settings
from aiwriter.core.storage import DB, connect
from aiwriter.providers.photos import PhotoProvider, ProviderError


class FakeLLM(LLMProvider):
    """Returns scripted responses. A callable script receives the user prompt."""

    def __init__(self, script=""):
        self.script = script
        self.calls = []

    @property
    def name(self):
        return "Fake"

    @property
    def model_id(self):
        return "fake-model"

    async def chat(self, messages, temperature=0.7, max_tokens=None):
        self.calls.append(messages)
        user = messages[-1]["content"]
        content = self.script(user) if callable(self.script) else self.script
        if asyncio.iscoroutine(content):
            content = await content
        if isinstance(content, Exception):
            raise content
        return ChatResponse(
            content=content,
            model=self.model_id,
            tokens_input=0,
            tokens_output=0,
            finish_reason="stop",
            latency_ms=0,
        )

    async def health_check(self):
        return HealthCheckResult(healthy=True, provider=self.name, model=self.model_id, message="ok")


class FakePhotos(PhotoProvider):
    """Photo provider answering from a query -> results map.

    A value may be a list of urls or an exception to raise. Unknown queries
    return no candidates.
    """

    def __init__(self, name, results=None):
        super().__init__(api_key="test-key")
        self.name = name
        self.results = results or {}
        self.queries = []

    async def search(self, query, page_size=20):
        self.queries.append(query)
        value = self.results.get(query, [])
        if isinstance(value, Exception):
            raise value
        return [
            ImageCandidate(url=url, thumbnail=f"{url}?thumb", alt=query, photographer="p")
            for url in value
        ]

    async def _request(self, client, query, page_size):
        raise NotImplementedError

    def _adapt(self, payload, query):
        raise NotImplementedError


def provider_error(name="pexels"):
    return ProviderError("boom", provider=name)


@pytest.fixture
def db():
    """In-memory database with the full schema."""
    conn = connect(":memory:")
    store = DB(conn=conn)
    store.init()
    yield store
    conn.close()


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def fake_photos():
    return FakePhotos


def _article_response(
    body="## 一、挑選原則\n\n### 1. 看圖畫\n\n內容。\n\n## 二、推薦書單\n\n內容。\n\n## 三、共讀技巧\n\n內容。",
    faq=None,
    image_keywords=None,
    tags=None,
    description="挑選繪本的實用指南",
):
    faq = faq if faq is not None else [
        {"q": "兩歲適合什麼繪本？", "a": "以厚紙板書為主。"},
        {"q": "一天要讀多久？", "a": "十到十五分鐘即可。"},
        {"q": "孩子不專心怎麼辦？", "a": "讓孩子參與翻頁。"},
    ]
    image_keywords = image_keywords if image_keywords is not None else {
        "cover": "toddler picture book",
        "image1": "colorful board books",
        "image2": "bookshelf children",
        "image3": "parent reading child",
    }
    tags = tags if tags is not None else ["繪本", "育兒"]
    return (
        f"{body}\n\n"
        f"---FAQ_START---\n{json.dumps(faq, ensure_ascii=False)}\n---FAQ_END---\n"
        f"---IMAGE_KEYWORDS_START---\n{json.dumps(image_keywords)}\n---IMAGE_KEYWORDS_END---\n"
        f"---TAGS_START---\n{json.dumps(tags, ensure_ascii=False)}\n---TAGS_END---\n"
        f"---DESCRIPTION_START---\n{json.dumps(description, ensure_ascii=False)}\n---DESCRIPTION_END---\n"
    )


@pytest.fixture
def article_response():
    """Builder for a well-formed article completion."""
    return _article_response


def _make_settings(**overrides):
    values = dict(
        app_env="test",
        db_path=":memory:",
        log_level="INFO",
        llm_provider="openai",
        openai_api_key="",
        openai_model="gpt-4o-mini",
        pexels_api_key="",
        unsplash_access_key="",
        github_token="",
        batch_concurrency=3,
        batch_pause_seconds=5,
        single_delay_seconds=30,
        request_timeout=120,
        item_timeout=300,
        image_page_size=20,
        random_image_pick=True,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def make_settings():
    """Settings factory that ignores the environment."""
    return _make_settings
