"""Push finished articles to a site's GitHub repository."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from aiwriter.core.export import compose_markdown
from aiwriter.core.sites import DEFAULT_GITHUB_PATH
from aiwriter.providers.github import GitHubClient, PutResult

if TYPE_CHECKING:
    from aiwriter.core.models import Article
    from aiwriter.core.storage import DB

logger = logging.getLogger(__name__)

# Pause between pushes in a bulk push
PUSH_DELAY_SECONDS = 1.0


def article_path(article: Article, site: dict[str, Any]) -> str:
    base = site.get("github_path") or DEFAULT_GITHUB_PATH
    if not base.endswith("/"):
        base += "/"
    return f"{base}{article.slug}.md"


async def push_article(
    article: Article,
    site: dict[str, Any],
    db: DB | None = None,
    fallback_token: str = "",
    client: GitHubClient | None = None,
) -> PutResult:
    """Upload the article Markdown and mark it published on success."""
    repo = site.get("github_repo")
    token = site.get("github_token") or fallback_token
    if not repo or (client is None and not token):
        return PutResult(success=False, error="此網站尚未設定 GitHub")

    filename = f"{article.slug}.md"
    own_client = client is None
    if own_client:
        client = GitHubClient(token)

    try:
        result = await client.publish_markdown(
            repo,
            article_path(article, site),
            compose_markdown(article),
            message=f"Add article: {filename}",
        )
    finally:
        if own_client:
            await client.close()

    if result.success:
        article.mark_pushed()
        if db is not None and article.db_id is not None:
            db.mark_article_pushed(article.db_id)
        logger.info(f"Pushed {filename} to {repo}")
    return result


async def push_batch(
    articles: list[Article],
    db: DB,
    fallback_token: str = "",
    client: GitHubClient | None = None,
    delay: float | None = None,
) -> list[tuple[Article, PutResult]]:
    """Push every not yet pushed article in order, one at a time.

    Failures are returned per article and do not stop the rest.
    """
    delay = PUSH_DELAY_SECONDS if delay is None else delay
    results = []
    for article in articles:
        if article.is_pushed:
            continue
        if results and delay > 0:
            await asyncio.sleep(delay)
        site = (db.get_site(article.site_id) if article.site_id else None) or {}
        result = await push_article(article, site, db=db, fallback_token=fallback_token, client=client)
        if not result.success:
            logger.warning(f"Pushing {article.slug}.md failed: {result.error}")
        results.append((article, result))
    return results
