"""LLM provider abstraction for chat completions (OpenAI gpt-4o-mini etc.)."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from aiwriter.core.settings import Settings

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

# Retry settings for rate limits
MAX_RETRIES = 5
INITIAL_DELAY = 2.0  # seconds
MAX_DELAY = 60.0  # seconds

DEFAULT_TIMEOUT = 120.0


@dataclass(frozen=True)
class ChatModelInfo:
    """Information about a chat/completion model."""

    model_id: str
    cost_per_1m_input: float  # USD per 1M input tokens
    cost_per_1m_output: float  # USD per 1M output tokens
    max_context: int
    description: str


OPENAI_CHAT_MODELS: dict[str, ChatModelInfo] = {
    "gpt-4o-mini": ChatModelInfo(
        model_id="gpt-4o-mini",
        cost_per_1m_input=0.15,
        cost_per_1m_output=0.60,
        max_context=128000,
        description="便宜快速，適合大量產生關鍵字、標題與文章。",
    ),
    "gpt-4.1-mini": ChatModelInfo(
        model_id="gpt-4.1-mini",
        cost_per_1m_input=0.40,
        cost_per_1m_output=1.60,
        max_context=1047576,
        description="品質與成本的平衡，長文表現較穩定。",
    ),
    "gpt-4o": ChatModelInfo(
        model_id="gpt-4o",
        cost_per_1m_input=2.50,
        cost_per_1m_output=10.00,
        max_context=128000,
        description="最高品質，成本也最高。",
    ),
}

DEFAULT_CHAT_MODEL = "gpt-4o-mini"


@dataclass
class ChatResponse:
    """Response from a chat completion."""

    content: str
    model: str
    tokens_input: int
    tokens_output: int
    finish_reason: str
    latency_ms: int


@dataclass
class HealthCheckResult:
    """Result of a provider health check."""

    healthy: bool
    provider: str
    model: str
    message: str
    latency_ms: int | None = None
    details: dict[str, Any] | None = None


class LLMError(Exception):
    """Error during LLM API call."""

    def __init__(self, message: str, provider: str, retriable: bool = False):
        super().__init__(message)
        self.provider = provider
        self.retriable = retriable


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def model_id(self) -> str:
        ...

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
            temperature: Sampling temperature (0-2).
            max_tokens: Max tokens to generate (None = model default).

        Raises:
            LLMError: If the API call fails.
        """
        ...

    @abstractmethod
    async def health_check(self) -> HealthCheckResult:
        ...

    async def complete(
        self,
        system_prompt: str | None,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        """Single request/response completion.

        A missing or empty response is returned as "" rather than raised.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        response = await self.chat(messages, temperature=temperature, max_tokens=max_tokens)
        return response.content or ""


class OpenAIChatProvider(LLMProvider):
    """OpenAI Chat Completions over httpx."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_CHAT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if model not in OPENAI_CHAT_MODELS:
            raise ValueError(
                f"Unknown OpenAI model: {model}. Available: {list(OPENAI_CHAT_MODELS.keys())}"
            )

        self._model = model
        self._model_info = OPENAI_CHAT_MODELS[model]
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "OpenAI"

    @property
    def model_id(self) -> str:
        return self._model

    def estimate_cost(self, tokens_input: int, tokens_output: int) -> float:
        """Estimate cost in USD for given token counts."""
        input_cost = (tokens_input / 1_000_000) * self._model_info.cost_per_1m_input
        output_cost = (tokens_output / 1_000_000) * self._model_info.cost_per_1m_output
        return input_cost + output_cost

    def _status_error(self, e: httpx.HTTPStatusError) -> LLMError:
        """Map a non-429 HTTP status to an LLMError with a message for the UI."""
        code = e.response.status_code
        if code == 401:
            return LLMError("OpenAI API Key 無效，請檢查 .env。", provider=self.name)
        if code == 404:
            return LLMError(f"模型 '{self._model}' 無法使用，請改選其他模型。", provider=self.name)
        return LLMError(
            f"OpenAI API 錯誤: {code} - {e.response.text}",
            provider=self.name,
            retriable=code >= 500,
        )

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        if not self._api_key:
            raise LLMError("OPENAI_API_KEY 未設定，請在 .env 中設定。", provider=self.name)

        body: dict[str, Any] = {"model": self._model, "messages": messages, "temperature": temperature}
        if max_tokens:
            body["max_tokens"] = max_tokens
        headers = {"Authorization": f"Bearer {self._api_key}"}

        delay = INITIAL_DELAY
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for attempt in range(MAX_RETRIES):
                started = time.monotonic()
                try:
                    response = await client.post(OPENAI_CHAT_URL, headers=headers, json=body)
                    response.raise_for_status()
                except httpx.TimeoutException as e:
                    raise LLMError(
                        f"OpenAI 請求逾時（{self._timeout:.0f} 秒）", provider=self.name, retriable=True
                    ) from e
                except httpx.HTTPStatusError as e:
                    if e.response.status_code != 429:
                        raise self._status_error(e) from e
                    # an exhausted quota will not recover by waiting
                    if "quota" in e.response.text.lower():
                        raise LLMError("OpenAI 額度已用完，請至 platform.openai.com 儲值。", provider=self.name) from e
                    logger.warning(f"Rate limited by OpenAI ({attempt + 1}/{MAX_RETRIES}), retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, MAX_DELAY)
                    continue
                except httpx.HTTPError as e:
                    raise LLMError(f"無法連線到 OpenAI：{e}", provider=self.name, retriable=True) from e

                try:
                    data = response.json()
                except ValueError as e:
                    raise LLMError("OpenAI 回應不是有效的 JSON", provider=self.name, retriable=True) from e
                if not isinstance(data, dict):
                    raise LLMError("OpenAI 回應格式不正確", provider=self.name)

                choice = (data.get("choices") or [{}])[0]
                usage = data.get("usage") or {}
                return ChatResponse(
                    content=(choice.get("message") or {}).get("content") or "",
                    model=data.get("model", self._model),
                    tokens_input=usage.get("prompt_tokens", 0),
                    tokens_output=usage.get("completion_tokens", 0),
                    finish_reason=choice.get("finish_reason") or "",
                    latency_ms=int((time.monotonic() - started) * 1000),
                )

        raise LLMError(f"重試 {MAX_RETRIES} 次後仍然遇到速率限制。", provider=self.name, retriable=True)

    async def health_check(self) -> HealthCheckResult:
        """One tiny completion; never raises."""
        if not self._api_key:
            return HealthCheckResult(healthy=False, provider=self.name, model=self._model, message="API Key 未設定")

        started = time.monotonic()
        try:
            await self.chat([{"role": "user", "content": "Say 'OK'"}], temperature=0, max_tokens=5)
        except LLMError as e:
            return HealthCheckResult(
                healthy=False,
                provider=self.name,
                model=self._model,
                message=str(e),
                details={"retriable": e.retriable},
            )

        return HealthCheckResult(
            healthy=True,
            provider=self.name,
            model=self._model,
            message="已連線",
            latency_ms=int((time.monotonic() - started) * 1000),
            details={"max_context": self._model_info.max_context},
        )


def get_chat_provider(settings: Settings, model: str | None = None) -> LLMProvider:
    """Factory for the configured LLM provider.

    Raises:
        ValueError: If provider or model is unknown.
    """
    provider_name = settings.llm_provider.lower()

    if provider_name == "openai":
        return OpenAIChatProvider(
            api_key=settings.openai_api_key,
            model=model or settings.openai_model or DEFAULT_CHAT_MODEL,
            timeout=settings.request_timeout,
        )

    raise ValueError(f"Unknown provider: {provider_name}. Available: openai")
