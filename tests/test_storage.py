"""Tests for storage.py"""

from datetime import datetime, timezone

import pytest

from aiwriter.core.models import (
    Article,
    ArticleStatus,
    BatchMode,
    BatchStatus,
    Difficulty,
    FaqItem,
    ImageCandidate,
    ImageSlot,
    Keyword,
    Title,
)
from aiwriter.core.storage import ArticleLockedError


def make_article(**kwargs):
    candidate = ImageCandidate(url="https://img/c.jpg", thumbnail="t", alt="封面", photographer="p")
    values = dict(
        title="繪本指南",
        slug="huiben-1",
        content="## 一、開始",
        category="生活實用",
        tags=["繪本"],
        faq=[FaqItem(q="q", a="a")],
        image_keywords={"cover": "books"},
        images={"cover": ImageSlot(selected=candidate, candidates=[candidate], source="pexels")},
        scheduled_date="2025-03-01",
    )
    values.update(kwargs)
    return Article(**values)


class TestSites:
    def test_upsert_and_get(self, db):
        db.upsert_site("s1", "親子站", "chparenting", github_repo="o/r", github_token="secret",
                       external_sources=["https://a.org"])
        db.upsert_site("s1", "親子站2", "chparenting", github_repo="o/r2")

        site = db.get_site("s1")
        assert site["name"] == "親子站2"
        assert site["github_repo"] == "o/r2"
        assert site["external_sources"] == []

    def test_list_sites_hides_tokens(self, db):
        db.upsert_site("s1", "站", "veganote", github_token="secret")
        assert "github_token" not in db.list_sites()[0]


class TestBatches:
    """Tests for batch records."""

    def test_create_and_get(self, db):
        batch = db.create_batch(BatchMode.SINGLE, "long", "2025-01-01", 3, ["s1", "s2"])
        assert batch.id is not None
        assert batch.status == BatchStatus.DRAFT
        assert db.get_batch(batch.id).site_ids == ["s1", "s2"]

    def test_status_update(self, db):
        batch = db.create_batch(BatchMode.BATCH, "medium", None, 2, [])
        assert db.update_batch_status(batch.id, BatchStatus.GENERATING)
        assert db.get_batch(batch.id).status == BatchStatus.GENERATING
        assert not db.update_batch_status(999, BatchStatus.COMPLETED)

    def test_list_counts_articles(self, db):
        batch = db.create_batch(BatchMode.BATCH, "medium", None, 2, [])
        db.save_article(make_article(batch_id=batch.id))
        db.save_article(make_article(batch_id=batch.id, slug="huiben-2", github_pushed=True))
        listed = db.list_batches()[0]
        assert listed["articleCount"] == 2
        assert listed["pushedCount"] == 1

    def test_keywords_and_titles_replace(self, db):
        batch = db.create_batch(BatchMode.BATCH, "medium", None, 2, [])
        db.replace_keywords(batch.id, [Keyword("k1", Difficulty.EASY), Keyword("k2", checked=False)])
        db.replace_keywords(batch.id, [Keyword("k3")])
        assert [k.text for k in db.list_keywords(batch.id)] == ["k3"]

        db.replace_titles(batch.id, [Title("k1", "T1"), Title("k2", "T2", checked=False), Title.manual("M")])
        assert [t.title for t in db.list_titles(batch.id)] == ["T1", "T2", "M"]
        assert [t.title for t in db.list_titles(batch.id, checked_only=True)] == ["T1", "M"]

    def test_detail(self, db):
        batch = db.create_batch(BatchMode.BATCH, "medium", None, 2, [])
        db.replace_keywords(batch.id, [Keyword("k1")])
        detail = db.get_batch_detail(batch.id)
        assert detail["batch"]["id"] == batch.id
        assert detail["keywords"][0]["keyword"] == "k1"
        assert db.get_batch_detail(12345) is None


class TestArticles:
    """Tests for article persistence and edit locking."""

    def test_save_and_load_roundtrip(self, db):
        article = make_article()
        article_id = db.save_article(article)
        loaded = db.get_article(article_id)

        assert loaded.db_id == article_id
        assert loaded.faq == [FaqItem(q="q", a="a")]
        assert loaded.images["cover"].selected.url == "https://img/c.jpg"
        assert loaded.status == ArticleStatus.DRAFT

    def test_partial_update(self, db):
        article_id = db.save_article(make_article())
        updated = db.update_article(article_id, {"title": "新標題", "tags": ["a", "b"], "unknown": 1})
        assert updated.title == "新標題"
        assert updated.tags == ["a", "b"]

    def test_update_missing_article(self, db):
        assert db.update_article(999, {"title": "x"}) is None

    def test_pushed_article_is_locked(self, db):
        article_id = db.save_article(make_article())
        db.mark_article_pushed(article_id)

        with pytest.raises(ArticleLockedError):
            db.update_article(article_id, {"content": "改寫"})
        # publish flags may still change
        assert db.update_article(article_id, {"status": "draft"}).status == ArticleStatus.DRAFT

    def test_list_by_site(self, db):
        db.upsert_site("s1", "站", "veganote")
        db.save_article(make_article(site_id="s1"))
        db.save_article(make_article(slug="other"))
        assert [a.slug for a in db.list_articles(site_id="s1")] == ["huiben-1"]


class TestExistingTitlesAndLinks:
    def test_existing_titles_union_and_dedupe(self, db):
        db.upsert_site("s1", "站", "veganote")
        db.upsert_site("s2", "站2", "bible")
        db.save_article(make_article(site_id="s1", title="文章一"))
        db.add_post("s1", "文章一", "post-1")
        db.add_post("s2", "文章二", "post-2")

        assert sorted(db.existing_titles(["s1", "s2"])) == ["文章一", "文章二"]
        assert db.existing_titles([]) == []

    def test_site_articles_only_pushed(self, db):
        db.upsert_site("s1", "站", "veganote")
        db.add_post("s1", "舊文", "old")
        db.save_article(make_article(site_id="s1", slug="draft-1"))
        db.save_article(make_article(site_id="s1", slug="live-1", github_pushed=True))

        slugs = [a["slug"] for a in db.site_articles("s1")]
        assert slugs == ["old", "live-1"]
        assert db.site_articles("s1")[0]["url"] == "/posts/old"


class TestCustomPromptsAndPosts:
    def test_custom_prompt_crud(self, db):
        assert db.get_custom_prompt("keywords") is None
        db.save_custom_prompt("keywords", "T", 0.3, 500)
        assert db.get_custom_prompt("keywords") == {"template": "T", "temperature": 0.3, "max_tokens": 500}
        assert db.delete_custom_prompt("keywords")
        assert not db.delete_custom_prompt("keywords")

    def test_add_post_is_draft(self, db):
        post_id = db.add_post(
            "s1", "草稿", "draft-1", description="摘要", image="https://img/c.jpg", publish_date="2025-03-01"
        )
        post = db.get_post(post_id)
        assert post["status"] == "draft"
        assert post["publish_date"] == "2025-03-01"
        assert post["image"] == "https://img/c.jpg"
        assert db.get_post(9999) is None

    def test_post_date_defaults_to_today(self, db):
        post = db.get_post(db.add_post("s1", "草稿", "draft-2"))
        # sqlite date('now') is UTC
        assert post["publish_date"] == datetime.now(timezone.utc).date().isoformat()
