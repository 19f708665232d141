"""Stock-photo search providers (Pexels, Unsplash).

Each provider validates its raw JSON against a pydantic schema and maps the
items to ImageCandidate. Shape problems raise ProviderResponseError, HTTP
problems surface as httpx errors. The image resolver absorbs both.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx
from pydantic import BaseModel, ValidationError

from aiwriter.core.models import ImageCandidate

logger = logging.getLogger(__name__)

PEXELS_SEARCH_URL = "https://api.pexels.com/v1/search"
UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"

MIN_PAGE_SIZE = 15
MAX_PAGE_SIZE = 20
SEARCH_TIMEOUT = 20.0


class ProviderError(Exception):
    """Base error for photo providers."""

    def __init__(self, message: str, provider: str):
        super().__init__(message)
        self.provider = provider


class ProviderConfigError(ProviderError):
    """Provider is missing its API key."""


class ProviderResponseError(ProviderError):
    """Provider answered with an unexpected JSON shape."""


def clamp_page_size(page_size: int) -> int:
    return max(MIN_PAGE_SIZE, min(MAX_PAGE_SIZE, page_size))


# ---- Pexels response schema ----


class PexelsSrc(BaseModel):
    large2x: str
    medium: str


class PexelsPhoto(BaseModel):
    src: PexelsSrc
    alt: str | None = None
    photographer: str | None = None


class PexelsSearchResponse(BaseModel):
    photos: list[PexelsPhoto] = []


# ---- Unsplash response schema ----


class UnsplashUrls(BaseModel):
    regular: str
    small: str


class UnsplashUser(BaseModel):
    name: str | None = None


class UnsplashPhoto(BaseModel):
    urls: UnsplashUrls
    alt_description: str | None = None
    description: str | None = None
    user: UnsplashUser | None = None


class UnsplashSearchResponse(BaseModel):
    results: list[UnsplashPhoto] = []


def adapt_pexels(data: PexelsSearchResponse, query: str) -> list[ImageCandidate]:
    return [
        ImageCandidate(
            url=photo.src.large2x,
            thumbnail=photo.src.medium,
            alt=photo.alt or query,
            photographer=photo.photographer or "",
        )
        for photo in data.photos
    ]


def adapt_unsplash(data: UnsplashSearchResponse, query: str) -> list[ImageCandidate]:
    return [
        ImageCandidate(
            url=photo.urls.regular,
            thumbnail=photo.urls.small,
            alt=photo.alt_description or photo.description or query,
            photographer=(photo.user.name if photo.user else None) or "",
        )
        for photo in data.results
    ]


class PhotoProvider(ABC):
    """Search interface shared by all stock-photo providers."""

    name: str = ""

    def __init__(
        self,
        api_key: str,
        timeout: float = SEARCH_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def search(self, query: str, page_size: int = MAX_PAGE_SIZE) -> list[ImageCandidate]:
        """Return up to page_size candidates for query.

        Raises:
            ProviderConfigError: If no API key is configured.
            ProviderResponseError: If the response JSON has the wrong shape.
            httpx.HTTPError: On transport or status errors.
        """
        if not self.configured:
            raise ProviderConfigError(f"{self.name} API key not set", provider=self.name)

        client = await self._get_client()
        response = await self._request(client, query, clamp_page_size(page_size))
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"{self.name} returned non-JSON body", provider=self.name) from e

        try:
            return self._adapt(payload, query)
        except ValidationError as e:
            raise ProviderResponseError(
                f"{self.name} response shape invalid: {e.error_count()} errors",
                provider=self.name,
            ) from e

    @abstractmethod
    async def _request(self, client: httpx.AsyncClient, query: str, page_size: int) -> httpx.Response:
        ...

    @abstractmethod
    def _adapt(self, payload: object, query: str) -> list[ImageCandidate]:
        ...


class PexelsProvider(PhotoProvider):
    name = "pexels"

    async def _request(self, client: httpx.AsyncClient, query: str, page_size: int) -> httpx.Response:
        return await client.get(
            PEXELS_SEARCH_URL,
            params={"query": query, "per_page": page_size},
            headers={"Authorization": self._api_key},
        )

    def _adapt(self, payload: object, query: str) -> list[ImageCandidate]:
        return adapt_pexels(PexelsSearchResponse.model_validate(payload), query)


class UnsplashProvider(PhotoProvider):
    name = "unsplash"

    async def _request(self, client: httpx.AsyncClient, query: str, page_size: int) -> httpx.Response:
        return await client.get(
            UNSPLASH_SEARCH_URL,
            params={"query": query, "per_page": page_size},
            headers={
                "Authorization": f"Client-ID {self._api_key}",
                "Accept-Version": "v1",
            },
        )

    def _adapt(self, payload: object, query: str) -> list[ImageCandidate]:
        return adapt_unsplash(UnsplashSearchResponse.model_validate(payload), query)
