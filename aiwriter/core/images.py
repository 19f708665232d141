"""Image resolver with an ordered provider fallback chain.

The chain is a list of SearchAttempt descriptors built from the site profile
and evaluated in order, stopping at the first attempt that yields candidates.
Provider failures count as zero candidates. When every attempt comes back
empty the resolver returns the empty slot instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from aiwriter.core.models import IMAGE_POSITIONS, ImageSlot
from aiwriter.core.sites import SiteProfile, get_site_profile
from aiwriter.providers.photos import (
    MAX_PAGE_SIZE,
    PexelsProvider,
    PhotoProvider,
    ProviderError,
    UnsplashProvider,
)

if TYPE_CHECKING:
    from aiwriter.core.settings import Settings

logger = logging.getLogger(__name__)

PICK_RANDOM = "random"
PICK_FIRST = "first"


@dataclass(frozen=True)
class SearchAttempt:
    provider: PhotoProvider
    query: str
    qualified: bool = False


def qualify_query(query: str, qualifier: str | None) -> str:
    """Prefix the site's qualifier unless the query already carries it."""
    query = query.strip()
    if not qualifier or qualifier.lower() in query.lower().split():
        return query
    return f"{qualifier} {query}"


def build_attempts(
    profile: SiteProfile,
    query: str,
    primary: PhotoProvider,
    secondary: PhotoProvider | None = None,
) -> list[SearchAttempt]:
    """Ordered attempts: qualified primary, secondary, unqualified primary."""
    query = query.strip()
    qualified = qualify_query(query, profile.image_qualifier)
    attempts = [SearchAttempt(primary, qualified, qualified=qualified != query)]

    if profile.needs_alternate_imagery and secondary is not None:
        attempts.append(SearchAttempt(secondary, query))

    if qualified != query:
        attempts.append(SearchAttempt(primary, query))

    return attempts


class ImageResolver:
    """Resolves image keywords into ImageSlots."""

    def __init__(
        self,
        primary: PhotoProvider,
        secondary: PhotoProvider | None = None,
        page_size: int = MAX_PAGE_SIZE,
        rng: random.Random | None = None,
        default_pick: str = PICK_RANDOM,
    ) -> None:
        self._primary = primary
        self._default_pick = default_pick
        self._secondary = secondary
        self._page_size = page_size
        self._rng = rng or random.Random()

    async def _try(self, attempt: SearchAttempt):
        try:
            return await attempt.provider.search(attempt.query, self._page_size)
        except (ProviderError, httpx.HTTPError) as e:
            logger.warning(f"Image search via {attempt.provider.name} failed for '{attempt.query}': {e}")
            return []

    async def resolve(self, query: str, site_slug: str | None = None, pick: str | None = None) -> ImageSlot:
        """Search for query and pick one candidate. Never raises for provider errors."""
        if not query or not query.strip():
            return ImageSlot.empty()

        profile = get_site_profile(site_slug)
        for attempt in build_attempts(profile, query, self._primary, self._secondary):
            candidates = await self._try(attempt)
            if not candidates:
                logger.debug(f"No candidates from {attempt.provider.name} for '{attempt.query}'")
                continue

            if (pick or self._default_pick) == PICK_FIRST:
                selected = candidates[0]
            else:
                selected = self._rng.choice(candidates)
            return ImageSlot(selected=selected, candidates=list(candidates), source=attempt.provider.name)

        logger.info(f"No image found for '{query}' ({profile.slug})")
        return ImageSlot.empty()

    async def resolve_positions(
        self,
        image_keywords: dict[str, str],
        site_slug: str | None = None,
    ) -> dict[str, ImageSlot]:
        """Resolve every declared image position concurrently."""
        positions = [p for p in IMAGE_POSITIONS if (image_keywords.get(p) or "").strip()]
        slots = await asyncio.gather(
            *(self.resolve(image_keywords[p], site_slug) for p in positions)
        )
        return dict(zip(positions, slots))

    async def research(self, query: str, site_slug: str | None = None) -> ImageSlot:
        """Re-search with a replacement keyword; the first hit becomes selected."""
        return await self.resolve(query, site_slug, pick=PICK_FIRST)

    def reshuffle(self, slot: ImageSlot) -> ImageSlot:
        """Pick a different random candidate, keeping the candidate list."""
        others = [c for c in slot.candidates if c != slot.selected]
        if not others:
            return slot
        return ImageSlot(selected=self._rng.choice(others), candidates=slot.candidates, source=slot.source)

    def select(self, slot: ImageSlot, url: str) -> ImageSlot:
        """Manually pick the candidate with the given URL.

        Raises:
            ValueError: If no candidate has that URL.
        """
        for candidate in slot.candidates:
            if candidate.url == url:
                return ImageSlot(selected=candidate, candidates=slot.candidates, source=slot.source)
        raise ValueError(f"Image {url} is not among the candidates")

    async def close(self) -> None:
        await self._primary.close()
        if self._secondary is not None:
            await self._secondary.close()


def get_image_resolver(settings: Settings) -> ImageResolver:
    primary = PexelsProvider(settings.pexels_api_key)
    secondary = UnsplashProvider(settings.unsplash_access_key) if settings.unsplash_access_key else None
    return ImageResolver(
        primary,
        secondary,
        page_size=settings.image_page_size,
        default_pick=PICK_RANDOM if settings.random_image_pick else PICK_FIRST,
    )
