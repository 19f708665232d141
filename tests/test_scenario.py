"""End-to-end article generation for a parenting site, with fakes at the network edge."""

import pytest

from aiwriter.core.batch_job import GenerationOptions, generate_article
from aiwriter.core.export import compose_markdown
from aiwriter.core.generators import ArticleGenerator
from aiwriter.core.images import PICK_FIRST, ImageResolver
from aiwriter.core.models import Title
from aiwriter.core.render import render_preview

TITLE = "如何挑選適合兩歲寶寶的繪本"


@pytest.mark.asyncio
class TestParentingArticle:
    """A manual title for chparenting goes through generation, images and export."""

    async def generate(self, fake_llm, fake_photos, article_response):
        llm = fake_llm(lambda prompt: article_response())
        primary = fake_photos("pexels", {
            "asian toddler picture book": ["https://img/cover.jpg"],
            "asian colorful board books": ["https://img/1.jpg"],
            "asian bookshelf children": ["https://img/2.jpg"],
            "asian parent reading child": ["https://img/3.jpg"],
        })
        secondary = fake_photos("unsplash")
        resolver = ImageResolver(primary, secondary, default_pick=PICK_FIRST)

        title = Title.manual(TITLE, site_id="s1", site_slug="chparenting", site_name="親子站", category="生活實用")
        article = await generate_article(title, 0, GenerationOptions(), ArticleGenerator(llm), resolver)
        return article, llm, primary, secondary

    async def test_body_and_sidecars(self, fake_llm, fake_photos, article_response):
        article, llm, _, _ = await self.generate(fake_llm, fake_photos, article_response)

        assert article.title == TITLE
        assert "## 一、" in article.content
        assert "---FAQ_START---" not in article.content
        assert 3 <= len(article.faq) <= 5
        assert all(item.q and item.a for item in article.faq)
        assert article.description
        assert TITLE in llm.calls[0][-1]["content"]

    async def test_cover_query_is_qualified(self, fake_llm, fake_photos, article_response):
        article, _, primary, secondary = await self.generate(fake_llm, fake_photos, article_response)

        assert "asian" in primary.queries[0]
        assert article.images["cover"].selected.url == "https://img/cover.jpg"
        assert article.images["cover"].source == "pexels"
        # every position answered by the primary, no fallback needed
        assert secondary.queries == []

    async def test_outputs(self, fake_llm, fake_photos, article_response):
        article, _, _, _ = await self.generate(fake_llm, fake_photos, article_response)

        markdown = compose_markdown(article)
        assert markdown.startswith("---\n")
        assert "https://img/cover.jpg" in markdown
        assert "https://img/1.jpg" in markdown

        preview = render_preview(article)
        assert 'class="preview-h2"' in preview["html"]
        assert preview["toc"][-1]["anchor"] == "faq"
