from __future__ import annotations

import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from typing import Any

from aiwriter.core.models import (
    Article,
    ArticleStatus,
    Batch,
    BatchMode,
    BatchStatus,
    Keyword,
    Title,
)
from aiwriter.core.settings import Settings

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS sites (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  slug TEXT NOT NULL UNIQUE,
  domain TEXT,
  github_repo TEXT,
  github_token TEXT,
  github_path TEXT,
  external_sources TEXT,
  created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS batches (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  mode TEXT NOT NULL,
  status TEXT NOT NULL,
  article_length TEXT,
  schedule_start TEXT,
  schedule_interval INTEGER,
  site_ids TEXT,
  created_at TEXT DEFAULT (datetime('now')),
  updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS keywords (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  batch_id INTEGER NOT NULL REFERENCES batches(id) ON DELETE CASCADE,
  position INTEGER NOT NULL,
  keyword TEXT NOT NULL,
  difficulty TEXT,
  site_id TEXT,
  site_slug TEXT,
  checked INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS titles (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  batch_id INTEGER NOT NULL REFERENCES batches(id) ON DELETE CASCADE,
  position INTEGER NOT NULL,
  keyword TEXT,
  title TEXT NOT NULL,
  site_id TEXT,
  site_slug TEXT,
  site_name TEXT,
  category TEXT,
  checked INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS articles (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  batch_id INTEGER REFERENCES batches(id) ON DELETE SET NULL,
  title TEXT NOT NULL,
  slug TEXT NOT NULL,
  content TEXT,
  category TEXT,
  description TEXT,
  tags TEXT,
  scheduled_date TEXT,
  faq TEXT,
  image_keywords TEXT,
  images TEXT,
  site_id TEXT,
  site_slug TEXT,
  site_name TEXT,
  github_pushed INTEGER DEFAULT 0,
  status TEXT DEFAULT 'draft',
  created_at TEXT DEFAULT (datetime('now')),
  updated_at TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_articles_batch_id ON articles(batch_id);
CREATE INDEX IF NOT EXISTS idx_articles_site_id ON articles(site_id);

CREATE TABLE IF NOT EXISTS posts (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  site_id TEXT NOT NULL,
  title TEXT NOT NULL,
  slug TEXT NOT NULL,
  description TEXT,
  content TEXT,
  category TEXT,
  image TEXT,
  status TEXT DEFAULT 'draft',
  publish_date TEXT,
  created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS custom_prompts (
  key TEXT PRIMARY KEY,
  template TEXT NOT NULL,
  temperature REAL,
  max_tokens INTEGER,
  updated_at TEXT DEFAULT (datetime('now'))
);
"""

# Fields a review-phase PATCH may change, with their column encoders
ARTICLE_EDITABLE_FIELDS: dict[str, str] = {
    "title": "title",
    "content": "content",
    "category": "category",
    "description": "description",
    "tags": "tags",
    "scheduledDate": "scheduled_date",
    "faq": "faq",
    "imageKeywords": "image_keywords",
    "images": "images",
    "githubPushed": "github_pushed",
    "status": "status",
}
_JSON_COLUMNS = {"tags", "faq", "image_keywords", "images"}
_PUBLISH_COLUMNS = {"github_pushed", "status"}

INTERNAL_LINK_LIMIT = 200


class ArticleLockedError(ValueError):
    """Article was already pushed and can no longer be edited."""


def _row_dict(row: sqlite3.Row | None) -> dict[str, Any] | None:
    return dict(row) if row is not None else None


@dataclass
class DB:
    conn: sqlite3.Connection

    def init(self) -> None:
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()

    # ==================== Sites ====================

    def upsert_site(
        self,
        site_id: str,
        name: str,
        slug: str,
        domain: str | None = None,
        github_repo: str | None = None,
        github_token: str | None = None,
        github_path: str | None = None,
        external_sources: list[str] | None = None,
    ) -> None:
        self.conn.execute(
            """
            INSERT INTO sites (id, name, slug, domain, github_repo, github_token, github_path, external_sources)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                slug = excluded.slug,
                domain = excluded.domain,
                github_repo = excluded.github_repo,
                github_token = excluded.github_token,
                github_path = excluded.github_path,
                external_sources = excluded.external_sources
            """,
            (
                site_id,
                name,
                slug,
                domain,
                github_repo,
                github_token,
                github_path,
                json.dumps(external_sources or []),
            ),
        )
        self.conn.commit()

    def get_site(self, site_id: str) -> dict[str, Any] | None:
        cur = self.conn.execute("SELECT * FROM sites WHERE id = ?", (site_id,))
        site = _row_dict(cur.fetchone())
        if site is not None:
            site["external_sources"] = json.loads(site["external_sources"] or "[]")
        return site

    def list_sites(self) -> list[dict[str, Any]]:
        """Sites without their GitHub tokens."""
        cur = self.conn.execute(
            "SELECT id, name, slug, domain, github_repo, github_path FROM sites ORDER BY name"
        )
        return [dict(r) for r in cur.fetchall()]

    # ==================== Batches ====================

    def create_batch(
        self,
        mode: BatchMode,
        article_length: str,
        schedule_start: str | None,
        schedule_interval: int,
        site_ids: list[str],
    ) -> Batch:
        cur = self.conn.execute(
            """
            INSERT INTO batches (mode, status, article_length, schedule_start, schedule_interval, site_ids)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                mode.value,
                BatchStatus.DRAFT.value,
                article_length,
                schedule_start,
                schedule_interval,
                json.dumps(site_ids),
            ),
        )
        batch_id = cur.fetchone()[0]
        self.conn.commit()
        return self.get_batch(batch_id)

    def get_batch(self, batch_id: int) -> Batch | None:
        cur = self.conn.execute("SELECT * FROM batches WHERE id = ?", (batch_id,))
        row = cur.fetchone()
        return Batch.from_row(row) if row else None

    def list_batches(self, limit: int = 50) -> list[dict[str, Any]]:
        """Newest batches first, with article counts."""
        cur = self.conn.execute(
            """
            SELECT b.*, COUNT(a.id) AS article_count,
                   COALESCE(SUM(a.github_pushed), 0) AS pushed_count
            FROM batches b
            LEFT JOIN articles a ON a.batch_id = b.id
            GROUP BY b.id
            ORDER BY b.id DESC
            LIMIT ?
            """,
            (limit,),
        )
        out = []
        for row in cur.fetchall():
            data = Batch.from_row(row).to_dict()
            data["articleCount"] = row["article_count"]
            data["pushedCount"] = row["pushed_count"]
            out.append(data)
        return out

    def update_batch_status(self, batch_id: int, status: BatchStatus) -> bool:
        cur = self.conn.execute(
            "UPDATE batches SET status = ?, updated_at = datetime('now') WHERE id = ?",
            (status.value, batch_id),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def get_batch_detail(self, batch_id: int) -> dict[str, Any] | None:
        batch = self.get_batch(batch_id)
        if batch is None:
            return None
        return {
            "batch": batch.to_dict(),
            "keywords": [k.to_dict() for k in self.list_keywords(batch_id)],
            "titles": [t.to_dict() for t in self.list_titles(batch_id)],
            "articles": [a.to_dict() for a in self.list_articles(batch_id=batch_id)],
        }

    # ==================== Keywords / Titles ====================

    def replace_keywords(self, batch_id: int, keywords: list[Keyword]) -> int:
        """Replace all keywords of a batch. Returns the number saved."""
        with self.conn:
            self.conn.execute("DELETE FROM keywords WHERE batch_id = ?", (batch_id,))
            self.conn.executemany(
                """
                INSERT INTO keywords (batch_id, position, keyword, difficulty, site_id, site_slug, checked)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (batch_id, i, k.text, k.difficulty.value, k.site_id, k.site_slug, int(k.checked))
                    for i, k in enumerate(keywords)
                ],
            )
        return len(keywords)

    def list_keywords(self, batch_id: int) -> list[Keyword]:
        cur = self.conn.execute(
            "SELECT * FROM keywords WHERE batch_id = ? ORDER BY position", (batch_id,)
        )
        return [
            Keyword.from_dict({
                "keyword": r["keyword"],
                "difficulty": r["difficulty"],
                "siteId": r["site_id"],
                "siteSlug": r["site_slug"],
                "checked": bool(r["checked"]),
            })
            for r in cur.fetchall()
        ]

    def replace_titles(self, batch_id: int, titles: list[Title]) -> int:
        with self.conn:
            self.conn.execute("DELETE FROM titles WHERE batch_id = ?", (batch_id,))
            self.conn.executemany(
                """
                INSERT INTO titles (batch_id, position, keyword, title, site_id, site_slug, site_name, category, checked)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        batch_id,
                        i,
                        t.keyword,
                        t.title,
                        t.site_id,
                        t.site_slug,
                        t.site_name,
                        t.category,
                        int(t.checked),
                    )
                    for i, t in enumerate(titles)
                ],
            )
        return len(titles)

    def list_titles(self, batch_id: int, checked_only: bool = False) -> list[Title]:
        sql = "SELECT * FROM titles WHERE batch_id = ?"
        if checked_only:
            sql += " AND checked = 1"
        cur = self.conn.execute(sql + " ORDER BY position", (batch_id,))
        return [
            Title(
                keyword=r["keyword"],
                title=r["title"],
                site_id=r["site_id"],
                site_slug=r["site_slug"],
                site_name=r["site_name"],
                category=r["category"] or "",
                checked=bool(r["checked"]),
            )
            for r in cur.fetchall()
        ]

    # ==================== Articles ====================

    def save_article(self, article: Article) -> int:
        """Insert an article and return its id."""
        cur = self.conn.execute(
            """
            INSERT INTO articles (
                batch_id, title, slug, content, category, description, tags,
                scheduled_date, faq, image_keywords, images,
                site_id, site_slug, site_name, github_pushed, status
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                article.batch_id,
                article.title,
                article.slug,
                article.content,
                article.category,
                article.description,
                json.dumps(article.tags, ensure_ascii=False),
                article.scheduled_date,
                json.dumps([f.to_dict() for f in article.faq], ensure_ascii=False),
                json.dumps(article.image_keywords, ensure_ascii=False),
                json.dumps({p: s.to_dict() for p, s in article.images.items()}, ensure_ascii=False),
                article.site_id,
                article.site_slug,
                article.site_name,
                int(article.github_pushed),
                article.status.value,
            ),
        )
        article_id = cur.fetchone()[0]
        self.conn.commit()
        return article_id

    def get_article(self, article_id: int) -> Article | None:
        cur = self.conn.execute("SELECT * FROM articles WHERE id = ?", (article_id,))
        row = cur.fetchone()
        return Article.from_row(row) if row else None

    def list_articles(self, batch_id: int | None = None, site_id: str | None = None) -> list[Article]:
        clauses, params = [], []
        if batch_id is not None:
            clauses.append("batch_id = ?")
            params.append(batch_id)
        if site_id is not None:
            clauses.append("site_id = ?")
            params.append(site_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cur = self.conn.execute(f"SELECT * FROM articles {where} ORDER BY id", params)
        return [Article.from_row(r) for r in cur.fetchall()]

    def update_article(self, article_id: int, changes: dict[str, Any]) -> Article | None:
        """Apply a partial update using API field names.

        Unknown fields are ignored. Content edits on a pushed article raise
        ArticleLockedError; only the publish flags may still change.

        Returns the updated article, or None if it does not exist.
        """
        article = self.get_article(article_id)
        if article is None:
            return None

        columns = {
            ARTICLE_EDITABLE_FIELDS[k]: v for k, v in changes.items() if k in ARTICLE_EDITABLE_FIELDS
        }
        if article.github_pushed and set(columns) - _PUBLISH_COLUMNS:
            raise ArticleLockedError(f"Article {article_id} was already pushed")
        if not columns:
            return article

        values = []
        for column, value in columns.items():
            if column in _JSON_COLUMNS:
                value = json.dumps(value, ensure_ascii=False)
            elif column == "github_pushed":
                value = int(bool(value))
            elif column == "status":
                value = ArticleStatus(value).value
            values.append(value)

        assignments = ", ".join(f"{c} = ?" for c in columns)
        self.conn.execute(
            f"UPDATE articles SET {assignments}, updated_at = datetime('now') WHERE id = ?",
            (*values, article_id),
        )
        self.conn.commit()
        return self.get_article(article_id)

    def mark_article_pushed(self, article_id: int) -> None:
        self.conn.execute(
            """
            UPDATE articles SET github_pushed = 1, status = ?, updated_at = datetime('now')
            WHERE id = ?
            """,
            (ArticleStatus.PUBLISHED.value, article_id),
        )
        self.conn.commit()

    def existing_titles(self, site_ids: list[str]) -> list[str]:
        """Titles already used on these sites, from articles and posts."""
        if not site_ids:
            return []
        marks = ", ".join("?" for _ in site_ids)
        cur = self.conn.execute(
            f"""
            SELECT title FROM articles WHERE site_id IN ({marks})
            UNION
            SELECT title FROM posts WHERE site_id IN ({marks})
            """,
            (*site_ids, *site_ids),
        )
        seen: set[str] = set()
        titles = []
        for row in cur.fetchall():
            title = (row[0] or "").strip()
            if title and title not in seen:
                seen.add(title)
                titles.append(title)
        return titles

    def add_post(
        self,
        site_id: str,
        title: str,
        slug: str,
        description: str | None = None,
        content: str | None = None,
        category: str | None = None,
        image: str | None = None,
        publish_date: str | None = None,
    ) -> int:
        """Insert a draft post on a site. Publish date defaults to today."""
        cur = self.conn.execute(
            """
            INSERT INTO posts (site_id, title, slug, description, content, category, image, status, publish_date)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'draft', COALESCE(?, date('now')))
            RETURNING id
            """,
            (site_id, title, slug, description, content, category, image, publish_date),
        )
        post_id = cur.fetchone()[0]
        self.conn.commit()
        return post_id

    def get_post(self, post_id: int) -> dict[str, Any] | None:
        cur = self.conn.execute("SELECT * FROM posts WHERE id = ?", (post_id,))
        return _row_dict(cur.fetchone())

    def site_articles(self, site_id: str) -> list[dict[str, str]]:
        """Internal-link candidates: site posts and pushed articles, unique by slug."""
        seen: set[str] = set()
        out = []
        queries = (
            "SELECT title, slug FROM posts WHERE site_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            """
            SELECT title, slug FROM articles
            WHERE site_id = ? AND github_pushed = 1
            ORDER BY created_at DESC, id DESC LIMIT ?
            """,
        )
        for sql in queries:
            for row in self.conn.execute(sql, (site_id, INTERNAL_LINK_LIMIT)).fetchall():
                slug = row["slug"]
                if slug and slug not in seen:
                    seen.add(slug)
                    out.append({"title": row["title"], "slug": slug, "url": f"/posts/{slug}"})
        return out

    # ==================== Custom prompts ====================

    def get_custom_prompt(self, key: str) -> dict[str, Any] | None:
        cur = self.conn.execute(
            "SELECT template, temperature, max_tokens FROM custom_prompts WHERE key = ?",
            (key,),
        )
        row = cur.fetchone()
        if not row:
            return None
        custom = {"template": row["template"]}
        if row["temperature"] is not None:
            custom["temperature"] = row["temperature"]
        if row["max_tokens"] is not None:
            custom["max_tokens"] = row["max_tokens"]
        return custom

    def save_custom_prompt(self, key: str, template: str, temperature: float, max_tokens: int) -> None:
        self.conn.execute(
            """
            INSERT INTO custom_prompts (key, template, temperature, max_tokens, updated_at)
            VALUES (?, ?, ?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET
                template = excluded.template,
                temperature = excluded.temperature,
                max_tokens = excluded.max_tokens,
                updated_at = datetime('now')
            """,
            (key, template, temperature, max_tokens),
        )
        self.conn.commit()

    def delete_custom_prompt(self, key: str) -> bool:
        cur = self.conn.execute("DELETE FROM custom_prompts WHERE key = ?", (key,))
        self.conn.commit()
        return cur.rowcount > 0


def connect(db_path: str) -> sqlite3.Connection:
    if db_path != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


_db: DB | None = None


def init_db(settings: Settings | None = None) -> DB:
    global _db
    s = settings or Settings.from_env()
    _db = DB(conn=connect(s.db_path))
    _db.init()
    logger.info(f"Database ready at {s.db_path}")
    return _db


def get_db() -> DB:
    assert _db is not None, "DB not initialized"
    return _db
