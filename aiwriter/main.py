from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response, StreamingResponse
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aiwriter.core.batch_job import (
    GenerationOptions,
    generate_article,
    get_generation_store,
    parse_schedule_start,
    start_generation_job,
)
from aiwriter.core.export import DOCX_MEDIA_TYPE, compose_markdown, docx_filename, markdown_to_docx
from aiwriter.core.generators import ArticleGenerator, KeywordGenerator, ParseError, TitleGenerator
from aiwriter.core.images import PICK_FIRST, PICK_RANDOM, get_image_resolver
from aiwriter.core.llm_providers import LLMError, get_chat_provider
from aiwriter.core.models import (
    DEFAULT_LENGTH,
    IMAGE_POSITIONS,
    MANUAL_KEYWORD,
    NO_SOURCE,
    ArticleStatus,
    BatchMode,
    BatchStatus,
    ImageSlot,
    Keyword,
    Title,
)
from aiwriter.core.prompts import PromptTemplateError, list_prompts, reset_prompt, save_prompt
from aiwriter.core.publishing import push_article, push_batch
from aiwriter.core.render import render_preview
from aiwriter.core.settings import Settings
from aiwriter.core.sites import get_site_profile, list_categories
from aiwriter.core.storage import ArticleLockedError, get_db, init_db

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

jinja = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

app = FastAPI(title="aiwriter")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.on_event("startup")
def _startup() -> None:
    s = Settings.from_env()
    configure_logging(s.log_level)
    init_db(s)


@app.on_event("shutdown")
async def _shutdown() -> None:
    # unfinished jobs keep their finished articles and end cancelled
    tasks = [j.task for j in get_generation_store().list_all() if j.task is not None and not j.task.done()]
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Cancelled {len(tasks)} generation jobs on shutdown")


def render(template_name: str, **ctx) -> HTMLResponse:
    template = jinja.get_template(template_name)
    return HTMLResponse(template.render(**ctx))


def status_message(level: str, message: str, **extra: Any) -> dict[str, Any]:
    """Response body for UI status messages. level is info, success or error."""
    return {"level": level, "message": message, **extra}


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


@app.exception_handler(LLMError)
async def _llm_error(request: Request, exc: LLMError) -> JSONResponse:
    logger.warning(f"Completion failed on {request.url.path}: {exc}")
    return error_response(502, str(exc))


@app.exception_handler(ParseError)
async def _parse_error(request: Request, exc: ParseError) -> JSONResponse:
    logger.warning(f"Unparseable completion on {request.url.path}: {exc}")
    return error_response(502, str(exc))


@app.exception_handler(ArticleLockedError)
async def _article_locked(request: Request, exc: ArticleLockedError) -> JSONResponse:
    return error_response(409, "文章已發佈，無法再編輯")


@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return error_response(400, f"{field}: {message}" if field else message)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class KeywordsRequest(ApiModel):
    category: str
    count: int = Field(default=10, ge=1, le=50)
    site_slug: str | None = None


class TitlesRequest(ApiModel):
    keywords: list[str]
    site_ids: list[str] = Field(default_factory=list)
    existing_titles: list[str] = Field(default_factory=list)


class ArticleRequestBody(ApiModel):
    title: str
    category: str = ""
    length: str = DEFAULT_LENGTH
    site_id: str | None = None
    schedule_start: str | None = None
    save: bool = False


class ImageSearchRequest(ApiModel):
    query: str
    site_slug: str | None = None
    pick: str = PICK_RANDOM


class BatchCreateRequest(ApiModel):
    mode: BatchMode = BatchMode.BATCH
    article_length: str = DEFAULT_LENGTH
    schedule_start: str | None = None
    schedule_interval: int = Field(default=2, ge=1)
    site_ids: list[str] = Field(default_factory=list)


class BatchUpdateRequest(ApiModel):
    keywords: list[dict[str, Any]] | None = None
    titles: list[dict[str, Any]] | None = None
    status: BatchStatus | None = None


class BatchKeywordsRequest(ApiModel):
    category: str
    count: int = Field(default=10, ge=1, le=50)


class BatchTitlesRequest(ApiModel):
    category: str = ""
    manual_titles: list[str] = Field(default_factory=list)


class ExistingTitlesRequest(ApiModel):
    site_ids: list[str]


class ImageActionRequest(ApiModel):
    action: str
    url: str | None = None
    query: str | None = None


class WordRequest(ApiModel):
    title: str = ""
    markdown: str


class PromptUpdateRequest(ApiModel):
    template: str
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=2000, ge=1)


class FaqModel(ApiModel):
    q: str
    a: str


class ImageCandidateModel(ApiModel):
    url: str
    thumbnail: str = ""
    alt: str = ""
    photographer: str = ""


class ImageSlotModel(ApiModel):
    selected: ImageCandidateModel | None = None
    candidates: list[ImageCandidateModel] = Field(default_factory=list)
    source: str = NO_SOURCE


class ArticleUpdateRequest(ApiModel):
    """Editable article fields. Only fields present in the body change."""

    title: str | None = None
    content: str | None = None
    category: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    scheduled_date: str | None = None
    faq: list[FaqModel] | None = None
    image_keywords: dict[str, str] | None = None
    images: dict[str, ImageSlotModel] | None = None
    github_pushed: bool | None = None
    status: ArticleStatus | None = None


class SiteRequest(ApiModel):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    domain: str | None = None
    github_repo: str | None = None
    github_token: str | None = None
    github_path: str | None = None
    external_sources: list[str] = Field(default_factory=list)


def _site_info(site_id: str | None) -> tuple[str | None, str | None]:
    """(slug, name) for a stored site; the id doubles as slug for unknown sites."""
    if not site_id:
        return None, None
    site = get_db().get_site(site_id)
    if site is None:
        return site_id, None
    return site["slug"], site["name"]


# ==================== Generation ====================


@app.post("/api/keywords")
async def api_keywords(body: KeywordsRequest):
    """Generate keywords for a category.

    Returns: {"keywords": [{"keyword": str, "difficulty": str}]}
    """
    s = Settings.from_env()
    generator = KeywordGenerator(get_chat_provider(s), store=get_db())
    keywords = await generator.generate(body.category, body.count, body.site_slug)
    return {"keywords": keywords, "categories": list_categories(body.site_slug)}


@app.post("/api/titles")
async def api_titles(body: TitlesRequest):
    """Turn keywords into titles, avoiding titles already used on the given sites."""
    s = Settings.from_env()
    db = get_db()
    existing = list(body.existing_titles) + db.existing_titles(body.site_ids)
    generator = TitleGenerator(get_chat_provider(s), store=db)
    titles = await generator.generate(body.keywords, existing)
    return {"titles": titles}


@app.post("/api/article")
async def api_article(body: ArticleRequestBody):
    """Generate a single article with images. Saved only when `save` is set."""
    s = Settings.from_env()
    db = get_db()
    site_slug, site_name = _site_info(body.site_id)
    title = Title(
        keyword=MANUAL_KEYWORD,
        title=body.title,
        site_id=body.site_id,
        site_slug=site_slug,
        site_name=site_name,
        category=body.category,
    )
    options = GenerationOptions(
        article_length=body.length,
        schedule_start=parse_schedule_start(body.schedule_start),
        mode=BatchMode.SINGLE,
    )

    generator = ArticleGenerator(get_chat_provider(s), store=db)
    resolver = get_image_resolver(s)
    try:
        article = await generate_article(title, 0, options, generator, resolver)
    finally:
        await resolver.close()

    if body.save:
        article.db_id = db.save_article(article)
    return {"article": article.to_dict()}


@app.post("/api/images/search")
async def api_images_search(body: ImageSearchRequest):
    """Search photos with the site's fallback chain. Returns an ImageSlot."""
    s = Settings.from_env()
    resolver = get_image_resolver(s)
    try:
        pick = PICK_FIRST if body.pick == PICK_FIRST else PICK_RANDOM
        slot = await resolver.resolve(body.query, body.site_slug, pick=pick)
    finally:
        await resolver.close()
    return slot.to_dict()


# ==================== Batches ====================


@app.post("/api/batch/create")
def api_batch_create(body: BatchCreateRequest):
    db = get_db()
    batch = db.create_batch(
        mode=body.mode,
        article_length=body.article_length,
        schedule_start=body.schedule_start,
        schedule_interval=body.schedule_interval,
        site_ids=body.site_ids,
    )
    logger.info(f"Created batch {batch.id} ({batch.mode.value}, {len(batch.site_ids)} sites)")
    return batch.to_dict()


@app.get("/api/batch/list")
def api_batch_list(limit: int = 50):
    return {"batches": get_db().list_batches(limit=limit)}


@app.post("/api/batch/existing-titles")
def api_batch_existing_titles(body: ExistingTitlesRequest):
    """Titles already used on these sites, for duplicate avoidance."""
    titles = get_db().existing_titles(body.site_ids)
    return {"titles": titles, "count": len(titles)}


@app.get("/api/batch/{batch_id}")
def api_batch_detail(batch_id: int):
    detail = get_db().get_batch_detail(batch_id)
    if detail is None:
        return error_response(404, "Batch not found")
    return detail


@app.patch("/api/batch/{batch_id}")
def api_batch_update(batch_id: int, body: BatchUpdateRequest):
    """Save edited keyword/title lists (including checked flags) or set status."""
    db = get_db()
    if db.get_batch(batch_id) is None:
        return error_response(404, "Batch not found")

    if body.keywords is not None:
        db.replace_keywords(batch_id, [Keyword.from_dict(k) for k in body.keywords])
    if body.titles is not None:
        db.replace_titles(batch_id, [Title.from_dict(t) for t in body.titles])
    if body.status is not None:
        db.update_batch_status(batch_id, body.status)
    return db.get_batch_detail(batch_id)


@app.post("/api/batch/{batch_id}/keywords")
async def api_batch_keywords(batch_id: int, body: BatchKeywordsRequest):
    """Generate keywords for every site of the batch and replace the batch list."""
    s = Settings.from_env()
    db = get_db()
    batch = db.get_batch(batch_id)
    if batch is None:
        return error_response(404, "Batch not found")

    generator = KeywordGenerator(get_chat_provider(s), store=db)
    keywords: list[Keyword] = []
    for site_id in batch.site_ids or [None]:
        site_slug, _ = _site_info(site_id)
        for item in await generator.generate(body.category, body.count, site_slug):
            keywords.append(
                Keyword.from_dict({**item, "siteId": site_id, "siteSlug": site_slug, "checked": True})
            )

    db.replace_keywords(batch_id, keywords)
    return status_message(
        "success",
        f"已產生 {len(keywords)} 個關鍵字",
        keywords=[k.to_dict() for k in keywords],
    )


@app.post("/api/batch/{batch_id}/titles")
async def api_batch_titles(batch_id: int, body: BatchTitlesRequest):
    """Generate titles from the checked keywords, per site, plus any manual titles."""
    s = Settings.from_env()
    db = get_db()
    batch = db.get_batch(batch_id)
    if batch is None:
        return error_response(404, "Batch not found")

    checked = [k for k in db.list_keywords(batch_id) if k.checked]
    if not checked and not body.manual_titles:
        return error_response(400, "請先勾選關鍵字")

    existing = db.existing_titles(batch.site_ids)
    generator = TitleGenerator(get_chat_provider(s), store=db)

    by_site: dict[str | None, list[Keyword]] = {}
    for keyword in checked:
        by_site.setdefault(keyword.site_id, []).append(keyword)

    titles: list[Title] = []
    for site_id, site_keywords in by_site.items():
        site_slug, site_name = _site_info(site_id)
        generated = await generator.generate([k.text for k in site_keywords], existing)
        for item in generated:
            titles.append(
                Title(
                    keyword=item["keyword"],
                    title=item["title"],
                    site_id=site_id,
                    site_slug=site_slug,
                    site_name=site_name,
                    category=body.category,
                )
            )

    default_site = batch.site_ids[0] if batch.site_ids else None
    site_slug, site_name = _site_info(default_site)
    for manual in body.manual_titles:
        if manual.strip():
            titles.append(
                Title.manual(
                    manual.strip(),
                    site_id=default_site,
                    site_slug=site_slug,
                    site_name=site_name,
                    category=body.category,
                )
            )

    db.replace_titles(batch_id, titles)
    return status_message(
        "success",
        f"已產生 {len(titles)} 個標題",
        titles=[t.to_dict() for t in titles],
    )


@app.post("/api/batch/{batch_id}/generate")
async def api_batch_generate(batch_id: int):
    """Start a generation job for the batch's approved titles.

    The job runs in the background; returns job ID for SSE stream connection.
    """
    s = Settings.from_env()
    db = get_db()
    store = get_generation_store()
    batch = db.get_batch(batch_id)
    if batch is None:
        return error_response(404, "Batch not found")

    running = store.get_running(batch_id)
    if running:
        return {"error": "A generation job is already running", "job_id": running.id}

    titles = db.list_titles(batch_id, checked_only=True)
    if not titles:
        return error_response(400, "沒有已勾選的標題")

    job = store.create(items_total=len(titles), batch_id=batch_id)
    start_generation_job(
        job,
        titles,
        GenerationOptions.for_batch(batch, s),
        ArticleGenerator(get_chat_provider(s), store=db),
        get_image_resolver(s),
        db,
        store,
    )
    return {"job_id": job.id, "items_total": len(titles)}


@app.get("/api/generate/{job_id}/stream")
async def api_generate_stream(job_id: str, since: int = 0):
    """SSE stream for generation progress.

    Replays the events so far, then follows the job until it ends. A dropped
    connection does not stop the job; reconnect with `since` to resume.
    """
    job = get_generation_store().get(job_id)
    if not job:
        return error_response(404, "Job not found")

    async def event_generator():
        """Generate SSE events from the generation job."""
        async for event in job.follow(since):
            yield event.to_sse()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/api/generate/{job_id}/status")
def api_generate_status(job_id: str):
    """Get current status of a generation job."""
    job = get_generation_store().get(job_id)
    if not job:
        return error_response(404, "Job not found")
    return job.to_dict()


@app.post("/api/generate/{job_id}/cancel")
def api_generate_cancel(job_id: str):
    """Cancel a generation job. Items already dispatched still finish."""
    job = get_generation_store().cancel(job_id)
    if not job:
        return {"error": "Job not found or cannot be cancelled"}
    return {"status": job.status.value, "job": job.to_dict()}


@app.post("/api/batch/{batch_id}/push")
async def api_batch_push(batch_id: int):
    """Push every not yet pushed article of the batch to GitHub."""
    s = Settings.from_env()
    db = get_db()
    if db.get_batch(batch_id) is None:
        return error_response(404, "Batch not found")

    articles = db.list_articles(batch_id=batch_id)
    if not any(not a.is_pushed for a in articles):
        return status_message("info", "沒有需要推送的文章")

    results = await push_batch(articles, db, fallback_token=s.github_token)
    ok = sum(1 for _, result in results if result.success)
    return status_message(
        "success" if ok == len(results) else "error",
        f"成功推送 {ok}/{len(results)} 篇到 GitHub",
        results=[
            {"dbId": article.db_id, "slug": article.slug, "success": result.success, "error": result.error}
            for article, result in results
        ],
    )


# ==================== Articles ====================


@app.patch("/api/articles/{article_id}")
def api_article_update(article_id: int, body: ArticleUpdateRequest):
    """Partial update with API field names. Pushed articles are locked."""
    changes = body.model_dump(by_alias=True, exclude_unset=True, exclude_none=True, mode="json")
    article = get_db().update_article(article_id, changes)
    if article is None:
        return error_response(404, "Article not found")
    return article.to_dict()


@app.post("/api/articles/{article_id}/images/{position}")
async def api_article_image(article_id: int, position: str, body: ImageActionRequest):
    """Change one image slot: select a candidate, shuffle, or re-search."""
    if position not in IMAGE_POSITIONS:
        return error_response(400, f"Unknown image position: {position}")

    db = get_db()
    article = db.get_article(article_id)
    if article is None:
        return error_response(404, "Article not found")
    if article.is_pushed:
        raise ArticleLockedError(f"Article {article_id} was already pushed")

    slot = article.images.get(position) or ImageSlot.empty()
    image_keywords = dict(article.image_keywords)
    resolver = get_image_resolver(Settings.from_env())
    try:
        if body.action == "select":
            try:
                slot = resolver.select(slot, body.url or "")
            except ValueError as e:
                return error_response(400, str(e))
        elif body.action == "shuffle":
            slot = resolver.reshuffle(slot)
        elif body.action == "research":
            query = (body.query or image_keywords.get(position) or "").strip()
            if not query:
                return error_response(400, "請輸入圖片關鍵字")
            slot = await resolver.research(query, article.site_slug)
            image_keywords[position] = query
        else:
            return error_response(400, f"Unknown action: {body.action}")
    finally:
        await resolver.close()

    images = {p: s.to_dict() for p, s in article.images.items()}
    images[position] = slot.to_dict()
    updated = db.update_article(article_id, {"images": images, "imageKeywords": image_keywords})
    return {"position": position, "slot": slot.to_dict(), "article": updated.to_dict()}


@app.get("/api/articles/{article_id}/preview", response_class=HTMLResponse)
def api_article_preview(request: Request, article_id: int):
    article = get_db().get_article(article_id)
    if article is None:
        return error_response(404, "Article not found")
    cover = article.images.get("cover")
    return render(
        "preview.html",
        request=request,
        article=article,
        preview=render_preview(article),
        cover=cover.selected if cover else None,
    )


@app.get("/api/articles/{article_id}/markdown", response_class=PlainTextResponse)
def api_article_markdown(article_id: int):
    """The Markdown file exactly as it would be pushed."""
    article = get_db().get_article(article_id)
    if article is None:
        return error_response(404, "Article not found")
    return PlainTextResponse(compose_markdown(article), media_type="text/markdown; charset=utf-8")


@app.post("/api/articles/{article_id}/push")
async def api_article_push(article_id: int):
    """Push the article to its site's GitHub repository."""
    s = Settings.from_env()
    db = get_db()
    article = db.get_article(article_id)
    if article is None:
        return error_response(404, "Article not found")
    if article.is_pushed:
        return status_message("info", "文章已發佈過", article=article.to_dict())

    site = (db.get_site(article.site_id) if article.site_id else None) or {}
    result = await push_article(article, site, db=db, fallback_token=s.github_token)
    if not result.success:
        return status_message("error", f"發佈失敗：{result.error}", article=article.to_dict())
    return status_message("success", f"已發佈 {article.slug}.md", article=article.to_dict())


@app.post("/api/articles/{article_id}/post")
def api_article_save_post(article_id: int):
    """Save the article as a draft post on its site."""
    db = get_db()
    article = db.get_article(article_id)
    if article is None:
        return error_response(404, "Article not found")
    if not article.site_id or db.get_site(article.site_id) is None:
        return status_message("error", "文章沒有對應的網站，無法存成草稿")

    cover = article.images.get("cover")
    post_id = db.add_post(
        article.site_id,
        article.title,
        article.slug,
        description=article.description or article.title,
        content=article.content,
        category=article.category,
        image=cover.selected.url if cover and cover.selected else None,
        publish_date=article.scheduled_date,
    )
    logger.info(f"Saved article {article_id} as draft post {post_id} on {article.site_id}")
    return status_message("success", "已存成草稿", post_id=post_id)


@app.post("/api/download/word")
def api_download_word(body: WordRequest):
    """Convert Markdown to a .docx download."""
    data = markdown_to_docx(body.title, body.markdown)
    return Response(
        content=data,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{docx_filename(body.title)}"},
    )


# ==================== Sites ====================


@app.get("/api/sites")
def api_sites():
    return {"sites": get_db().list_sites()}


@app.put("/api/sites/{site_id}")
def api_site_save(site_id: str, body: SiteRequest):
    """Create or update a site. An omitted GitHub token keeps the stored one."""
    db = get_db()
    existing = db.get_site(site_id)
    token = body.github_token
    if token is None and existing is not None:
        token = existing["github_token"]
    try:
        db.upsert_site(
            site_id,
            body.name,
            body.slug,
            domain=body.domain,
            github_repo=body.github_repo,
            github_token=token,
            github_path=body.github_path,
            external_sources=body.external_sources,
        )
    except sqlite3.IntegrityError:
        return error_response(409, f"網站代稱已被使用：{body.slug}")
    logger.info(f"Saved site {site_id} ({body.slug})")
    site = db.get_site(site_id)
    site.pop("github_token", None)
    return site


@app.get("/api/sites/{site_id}/articles")
def api_site_articles(site_id: str):
    """Internal-link candidates for a site."""
    db = get_db()
    site = db.get_site(site_id)
    if site is None:
        return error_response(404, "Site not found")
    profile = get_site_profile(site["slug"])
    return {
        "articles": db.site_articles(site_id),
        "categories": list_categories(profile.slug),
    }


# ==================== Prompts ====================


@app.get("/api/prompts")
def api_prompts():
    prompts = list_prompts(get_db())
    return {
        "prompts": [
            {
                "key": p.key,
                "category": p.category,
                "name": p.name,
                "description": p.description,
                "template": p.template,
                "variables": p.variables,
                "temperature": p.temperature,
                "max_tokens": p.max_tokens,
                "is_custom": p.is_custom,
            }
            for p in prompts
        ]
    }


@app.put("/api/prompts/{key}")
def api_prompt_save(key: str, body: PromptUpdateRequest):
    try:
        saved = save_prompt(key, body.template, body.temperature, body.max_tokens, get_db())
    except PromptTemplateError as e:
        return error_response(400, str(e))
    if not saved:
        return error_response(404, f"Unknown prompt: {key}")
    return status_message("success", f"已儲存 {key}")


@app.delete("/api/prompts/{key}")
def api_prompt_reset(key: str):
    """Revert a prompt to its default."""
    if not reset_prompt(key, get_db()):
        return error_response(404, f"Unknown prompt: {key}")
    return status_message("success", f"已還原 {key}")


@app.get("/api/health")
async def api_health(deep: bool = False):
    """Service health. With deep=true the completion provider is called too."""
    s = Settings.from_env()
    result: dict[str, Any] = {
        "status": "ok",
        "env": s.app_env,
        "configured": {
            "llm": bool(s.openai_api_key),
            "pexels": bool(s.pexels_api_key),
            "unsplash": bool(s.unsplash_access_key),
            "github": bool(s.github_token),
        },
    }
    if deep:
        try:
            health = await get_chat_provider(s).health_check()
            result["llm"] = {
                "provider": health.provider,
                "model": health.model,
                "healthy": health.healthy,
                "message": health.message,
                "latency_ms": health.latency_ms,
            }
        except Exception as e:
            result["llm"] = {"healthy": False, "message": str(e)}
    return result
