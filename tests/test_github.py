"""Tests for providers/github.py and publishing.py"""

import base64
import json

import httpx
import pytest

from aiwriter.core.models import Article, ArticleStatus
from aiwriter.core.publishing import article_path, push_article, push_batch
from aiwriter.providers.github import GitHubClient, GitHubError


class FakeGitHub:
    """Minimal contents API: GET and PUT keyed by path."""

    def __init__(self, files=None, put_status=201, get_status=None):
        self.files = dict(files or {})
        self.put_status = put_status
        self.get_status = get_status
        self.requests = []

    def handler(self, request):
        self.requests.append(request)
        path = request.url.path.split("/contents/", 1)[1]
        if request.method == "GET":
            if self.get_status:
                return httpx.Response(self.get_status, json={"message": "Server Error"})
            if path not in self.files:
                return httpx.Response(404, json={"message": "Not Found"})
            content = base64.b64encode(self.files[path].encode()).decode()
            return httpx.Response(200, json={"path": path, "sha": "old-sha", "content": content})

        body = json.loads(request.content)
        if self.put_status >= 400:
            return httpx.Response(self.put_status, json={"message": "sha wasn't supplied"})
        self.files[path] = base64.b64decode(body["content"]).decode()
        return httpx.Response(self.put_status, json={"content": {"sha": "new-sha"}})

    def client(self):
        return GitHubClient("tok", transport=httpx.MockTransport(self.handler))


def last_put(fake):
    return [r for r in fake.requests if r.method == "PUT"][-1]


@pytest.mark.asyncio
class TestGitHubClient:
    """Tests for the contents API client."""

    async def test_get_missing_file(self):
        async with FakeGitHub().client() as client:
            assert await client.get_file("o/r", "posts/a.md") is None

    async def test_get_existing_file(self):
        async with FakeGitHub({"posts/a.md": "hello"}).client() as client:
            found = await client.get_file("o/r", "posts/a.md")
        assert found.sha == "old-sha"
        assert found.content == "hello"

    async def test_get_server_error_raises(self):
        async with FakeGitHub(get_status=500).client() as client:
            with pytest.raises(GitHubError):
                await client.get_file("o/r", "posts/a.md")

    async def test_publish_new_file_has_no_sha(self):
        fake = FakeGitHub()
        async with fake.client() as client:
            result = await client.publish_markdown("o/r", "posts/a.md", "內容", "Add article: a.md")

        assert result.success
        assert result.sha == "new-sha"
        body = json.loads(last_put(fake).content)
        assert "sha" not in body
        assert body["message"] == "Add article: a.md"
        assert fake.files["posts/a.md"] == "內容"
        assert last_put(fake).headers["Authorization"] == "token tok"

    async def test_publish_existing_file_passes_sha(self):
        fake = FakeGitHub({"posts/a.md": "old"})
        async with fake.client() as client:
            await client.publish_markdown("o/r", "posts/a.md", "new", "update")
        assert json.loads(last_put(fake).content)["sha"] == "old-sha"

    async def test_put_rejection_is_returned(self):
        async with FakeGitHub(put_status=422).client() as client:
            result = await client.put_file("o/r", "posts/a.md", "x", "m")
        assert not result.success
        assert result.status_code == 422
        assert result.error == "sha wasn't supplied"

    async def test_publish_get_failure_is_returned(self):
        async with FakeGitHub(get_status=502).client() as client:
            result = await client.publish_markdown("o/r", "posts/a.md", "x", "m")
        assert not result.success


def test_token_required():
    with pytest.raises(ValueError):
        GitHubClient("")


def make_article(db_id=None):
    return Article(title="繪本", slug="huiben-abc", content="## 一、開始", site_slug="chparenting", db_id=db_id)


class TestArticlePath:
    def test_default_path(self):
        assert article_path(make_article(), {}) == "src/content/posts/huiben-abc.md"

    def test_site_path_gets_trailing_slash(self):
        assert article_path(make_article(), {"github_path": "content/blog"}) == "content/blog/huiben-abc.md"


@pytest.mark.asyncio
class TestPushArticle:
    """Tests for publishing an article."""

    async def test_success_marks_article_pushed(self, db):
        db.upsert_site("s1", "站", "chparenting", github_repo="o/r")
        article = make_article()
        article.site_id = "s1"
        article.db_id = db.save_article(article)

        fake = FakeGitHub()
        result = await push_article(article, db.get_site("s1"), db=db, client=fake.client())

        assert result.success
        assert article.is_pushed
        assert article.status == ArticleStatus.PUBLISHED
        assert db.get_article(article.db_id).github_pushed
        assert fake.files["src/content/posts/huiben-abc.md"].startswith("---\ntitle: \"繪本\"")
        assert json.loads(last_put(fake).content)["message"] == "Add article: huiben-abc.md"

    async def test_failure_leaves_article_unpushed(self):
        article = make_article()
        result = await push_article(article, {"github_repo": "o/r"}, client=FakeGitHub(put_status=409).client())
        assert not result.success
        assert not article.is_pushed

    async def test_unconfigured_site(self):
        result = await push_article(make_article(), {"github_repo": ""}, fallback_token="tok")
        assert not result.success
        assert result.error == "此網站尚未設定 GitHub"

    async def test_missing_token_without_client(self):
        result = await push_article(make_article(), {"github_repo": "o/r"})
        assert not result.success


@pytest.mark.asyncio
class TestPushBatch:
    """Tests for pushing a whole batch."""

    def saved_article(self, db, slug, site_id="s1"):
        article = Article(title=slug, slug=slug, content="## 一、開始", site_id=site_id, site_slug="chparenting")
        article.db_id = db.save_article(article)
        return article

    async def test_pushes_unpushed_and_continues_after_failure(self, db):
        db.upsert_site("s1", "站", "chparenting", github_repo="o/r")
        done = self.saved_article(db, "done")
        done.mark_pushed()
        broken = self.saved_article(db, "broken")
        ok = self.saved_article(db, "ok")

        fake = FakeGitHub()

        def handler(request):
            if "broken" in request.url.path:
                raise httpx.ConnectError("connection refused", request=request)
            return fake.handler(request)

        client = GitHubClient("tok", transport=httpx.MockTransport(handler))
        results = await push_batch([done, broken, ok], db, client=client, delay=0)

        assert [(a.slug, r.success) for a, r in results] == [("broken", False), ("ok", True)]
        assert list(fake.files) == ["src/content/posts/ok.md"]
        assert db.get_article(ok.db_id).github_pushed
        assert not db.get_article(broken.db_id).github_pushed

    async def test_unconfigured_site_fails_each_article(self, db):
        db.upsert_site("s1", "站", "chparenting")
        articles = [self.saved_article(db, "a"), self.saved_article(db, "b")]
        results = await push_batch(articles, db, fallback_token="tok", delay=0)
        assert [r.error for _, r in results] == ["此網站尚未設定 GitHub"] * 2

