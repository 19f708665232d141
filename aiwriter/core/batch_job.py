"""Batch article generation job.

Provides:
- GenerationJob and GenerationJobStore for job state management
- CancellationToken for cooperative cancellation between windows
- run_generation_job() async generator of progress events
- start_generation_job() to run it as a background task that SSE readers follow

Approved titles are split into fixed-size windows. Every item in a window is
dispatched concurrently and the window settles completely before the next
one starts, so one failing title never cancels its siblings. Schedule dates
come from each title's position in the approved list, not completion order.
Each article is saved as soon as it is generated.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Sequence, TypeVar

from aiwriter.core.generators import ArticleRequest
from aiwriter.core.models import Article, BatchMode, BatchStatus, Title
from aiwriter.core.slugs import generate_slug

if TYPE_CHECKING:
    from aiwriter.core.generators import ArticleGenerator
    from aiwriter.core.images import ImageResolver
    from aiwriter.core.models import Batch
    from aiwriter.core.settings import Settings
    from aiwriter.core.storage import DB

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY = 3
DEFAULT_PAUSE_SECONDS = 5.0
DEFAULT_SINGLE_DELAY_SECONDS = 30.0
MIN_SINGLE_DELAY_SECONDS = 10.0
DEFAULT_SCHEDULE_INTERVAL = 2


class GenerationStatus(str, Enum):
    """Status of a generation job."""

    PENDING = "pending"
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationEventType(str, Enum):
    """Types of events emitted during generation."""

    STARTED = "started"
    ITEM_STARTED = "item_started"
    ITEM_SUCCESS = "item_success"
    ITEM_FAILED = "item_failed"
    ITEM_SAVED = "item_saved"
    SAVE_FAILED = "save_failed"
    WINDOW_COMPLETE = "window_complete"
    WAITING = "waiting"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class GenerationEvent:
    """Event emitted during a generation job for SSE streaming."""

    type: GenerationEventType
    job_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        """Format as Server-Sent Event."""
        event_data = {
            "type": self.type.value,
            "job_id": self.job_id,
            "timestamp": self.timestamp.isoformat(),
            **self.data,
        }
        return f"event: {self.type.value}\ndata: {json.dumps(event_data, ensure_ascii=False)}\n\n"


class CancellationToken:
    """Cooperative cancellation flag. Safe to set from any thread."""

    POLL_INTERVAL = 0.1

    def __init__(self) -> None:
        self._flag = threading.Event()

    def cancel(self) -> None:
        self._flag.set()

    @property
    def cancelled(self) -> bool:
        return self._flag.is_set()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancel. Returns True if cancelled."""
        deadline = time.monotonic() + seconds
        while not self.cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.POLL_INTERVAL, remaining))
        return self.cancelled


@dataclass
class GenerationOptions:
    """Per-run settings for the orchestrator."""

    article_length: str = "medium"
    schedule_start: date = field(default_factory=lambda: date.today() + timedelta(days=1))
    schedule_interval: int = DEFAULT_SCHEDULE_INTERVAL
    concurrency: int = DEFAULT_CONCURRENCY
    pause_seconds: float = DEFAULT_PAUSE_SECONDS
    item_timeout: float | None = None
    mode: BatchMode = BatchMode.BATCH

    @classmethod
    def for_batch(cls, batch: Batch, settings: Settings) -> GenerationOptions:
        """Batch mode runs windows of `batch_concurrency`; single mode runs one title at a time."""
        start = parse_schedule_start(batch.schedule_start)
        if batch.mode == BatchMode.SINGLE:
            concurrency = 1
            pause = max(settings.single_delay_seconds, MIN_SINGLE_DELAY_SECONDS)
        else:
            concurrency = max(settings.batch_concurrency, 1)
            pause = settings.batch_pause_seconds
        return cls(
            article_length=batch.article_length,
            schedule_start=start,
            schedule_interval=batch.schedule_interval or DEFAULT_SCHEDULE_INTERVAL,
            concurrency=concurrency,
            pause_seconds=pause,
            item_timeout=settings.item_timeout or None,
            mode=batch.mode,
        )


@dataclass
class GenerationJob:
    """Tracks state of a batch generation run."""

    id: str
    status: GenerationStatus
    batch_id: int | None = None
    items_total: int = 0
    current: int = 0
    current_title: str = ""
    items_succeeded: int = 0
    items_failed: int = 0
    items_saved: int = 0
    windows_done: int = 0
    articles: list[Article] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None
    token: CancellationToken = field(default_factory=CancellationToken, repr=False)
    events: list[GenerationEvent] = field(default_factory=list, repr=False)
    finished: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)
    _changed: asyncio.Condition = field(default_factory=asyncio.Condition, init=False, repr=False)

    def touch(self) -> None:
        self.last_activity = datetime.now(timezone.utc)

    async def publish(self, event: GenerationEvent) -> None:
        async with self._changed:
            self.events.append(event)
            self._changed.notify_all()

    async def close_events(self) -> None:
        async with self._changed:
            self.finished = True
            self._changed.notify_all()

    async def follow(self, start: int = 0) -> AsyncIterator[GenerationEvent]:
        """Replay published events from `start`, then wait for new ones until the job ends.

        Readers may come and go; the job keeps running without them.
        """
        index = start
        while True:
            async with self._changed:
                await self._changed.wait_for(lambda: index < len(self.events) or self.finished)
                pending = self.events[index:]
                done = self.finished
            for event in pending:
                yield event
            index += len(pending)
            if done:
                return

    @property
    def progress(self) -> dict[str, Any]:
        return {"current": self.current, "total": self.items_total, "currentTitle": self.current_title}

    @property
    def progress_percent(self) -> float:
        if not self.items_total:
            return 0.0
        done = self.items_succeeded + self.items_failed
        return (done / self.items_total) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "status": self.status.value,
            "batch_id": self.batch_id,
            "progress": self.progress,
            "items_total": self.items_total,
            "items_succeeded": self.items_succeeded,
            "items_failed": self.items_failed,
            "items_saved": self.items_saved,
            "windows_done": self.windows_done,
            "progress_percent": round(self.progress_percent, 1),
            "cancel_requested": self.token.cancelled,
            "started_at": self.started_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "error": self.error,
        }


class GenerationJobStore:
    """In-memory store for generation jobs. Thread-safe."""

    def __init__(self) -> None:
        self._jobs: dict[str, GenerationJob] = {}
        self._lock = threading.Lock()

    def create(self, items_total: int, batch_id: int | None = None) -> GenerationJob:
        job = GenerationJob(
            id=str(uuid.uuid4()),
            status=GenerationStatus.PENDING,
            batch_id=batch_id,
            items_total=items_total,
        )
        with self._lock:
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job: GenerationJob) -> None:
        job.touch()
        with self._lock:
            self._jobs[job.id] = job

    def cancel(self, job_id: str) -> GenerationJob | None:
        """Request cancellation. A running job stops before its next window."""
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status not in (GenerationStatus.PENDING, GenerationStatus.RUNNING):
                return None
            job.token.cancel()
            if job.status == GenerationStatus.PENDING:
                job.status = GenerationStatus.CANCELLED
            job.touch()
            return job

    def get_running(self, batch_id: int | None = None) -> GenerationJob | None:
        """A pending or running job, optionally for one batch."""
        with self._lock:
            for job in self._jobs.values():
                if job.status not in (GenerationStatus.PENDING, GenerationStatus.RUNNING):
                    continue
                if batch_id is None or job.batch_id == batch_id:
                    return job
            return None

    def list_all(self) -> list[GenerationJob]:
        """List all jobs, newest first."""
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.started_at, reverse=True)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None


def parse_schedule_start(value: str | date | None) -> date:
    """ISO date string to date; missing means tomorrow."""
    if isinstance(value, date):
        return value
    if value:
        return date.fromisoformat(value[:10])
    return date.today() + timedelta(days=1)


def schedule_date(start: date, index: int, interval_days: int) -> str:
    """Publish date for the title at `index` in the approved list."""
    return (start + timedelta(days=index * interval_days)).isoformat()


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split into consecutive windows of `size`, keeping order."""
    if size < 1:
        raise ValueError("window size must be at least 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


@dataclass
class SiteContext:
    existing_articles: list[dict[str, str]] = field(default_factory=list)
    source_urls: list[str] = field(default_factory=list)


def load_site_context(db: DB, titles: Sequence[Title]) -> dict[str, SiteContext]:
    """Internal-link candidates and citation sources for every site in the run."""
    context: dict[str, SiteContext] = {}
    for site_id in {t.site_id for t in titles if t.site_id}:
        try:
            site = db.get_site(site_id) or {}
            context[site_id] = SiteContext(
                existing_articles=db.site_articles(site_id),
                source_urls=site.get("external_sources") or [],
            )
        except Exception as e:
            logger.warning(f"Could not load context for site {site_id}: {e}")
            context[site_id] = SiteContext()
    return context


async def generate_article(
    title: Title,
    index: int,
    options: GenerationOptions,
    generator: ArticleGenerator,
    resolver: ImageResolver,
    context: SiteContext | None = None,
    batch_id: int | None = None,
) -> Article:
    """Generate one article and resolve its images."""
    context = context or SiteContext()
    generated = await generator.generate(
        ArticleRequest(
            title=title.title,
            category=title.category,
            length=options.article_length,
            site_slug=title.site_slug,
            existing_articles=context.existing_articles,
            source_urls=context.source_urls,
        )
    )
    images = await resolver.resolve_positions(generated.image_keywords, title.site_slug)

    return Article(
        title=title.title,
        slug=generate_slug(title.title),
        content=generated.content,
        category=title.category,
        description=generated.description,
        tags=generated.tags,
        scheduled_date=schedule_date(options.schedule_start, index, options.schedule_interval),
        faq=generated.faq,
        image_keywords=generated.image_keywords,
        images=images,
        site_id=title.site_id,
        site_slug=title.site_slug,
        site_name=title.site_name,
        batch_id=batch_id,
    )


async def _with_timeout(coro, timeout: float | None):
    if timeout is None:
        return await coro
    return await asyncio.wait_for(coro, timeout)


async def run_generation_job(
    job: GenerationJob,
    titles: Sequence[Title],
    options: GenerationOptions,
    generator: ArticleGenerator,
    resolver: ImageResolver,
    db: DB | None = None,
    store: GenerationJobStore | None = None,
) -> AsyncIterator[GenerationEvent]:
    """Run a generation job, yielding events for SSE streaming.

    Args:
        job: The GenerationJob to run
        titles: Approved titles in publish order
        options: Window size, pause, schedule and length settings
        generator: Article generator
        resolver: Image resolver
        db: Database for incremental saves (None keeps results in memory only)
        store: GenerationJobStore for state updates

    Yields:
        GenerationEvent for each significant action

    If the run is cancelled or closed mid-window, articles of that window
    which already finished are kept and saved, and the job ends CANCELLED.
    """

    def _update() -> None:
        if store is not None:
            store.update(job)
        else:
            job.touch()

    def _set_batch_status(status: BatchStatus) -> None:
        if db is None or job.batch_id is None:
            return
        try:
            db.update_batch_status(job.batch_id, status)
        except Exception as e:
            logger.warning(f"Could not update batch {job.batch_id} status: {e}")

    def _record(article: Article) -> Exception | None:
        """Count a generated article and save it. Returns the save error, if any."""
        job.items_succeeded += 1
        job.articles.append(article)
        _update()
        if db is None:
            return None
        try:
            article.db_id = db.save_article(article)
        except Exception as e:
            logger.warning(f"Saving '{article.title}' failed: {e}")
            return e
        job.items_saved += 1
        _update()
        return None

    in_flight: list[tuple[int, Title, asyncio.Future]] = []
    handled: set[int] = set()

    def _abandon_window() -> None:
        for index, title, task in in_flight:
            if index in handled:
                continue
            if not task.done():
                task.cancel()
            elif not task.cancelled() and task.exception() is None:
                _record(task.result())

    job.status = GenerationStatus.RUNNING
    job.items_total = len(titles)
    _update()
    _set_batch_status(BatchStatus.GENERATING)

    windows = partition(list(enumerate(titles)), options.concurrency)
    logger.info(
        f"Generation job {job.id}: {len(titles)} titles in {len(windows)} windows "
        f"(concurrency {options.concurrency})"
    )

    try:
        yield GenerationEvent(
            type=GenerationEventType.STARTED,
            job_id=job.id,
            data={"windows": len(windows), "concurrency": options.concurrency, **job.to_dict()},
        )
        context = load_site_context(db, titles) if db is not None else {}

        for window_no, window in enumerate(windows):
            if job.token.cancelled:
                job.status = GenerationStatus.CANCELLED
                _update()
                _set_batch_status(BatchStatus.CANCELLED)
                logger.info(f"Generation job {job.id} cancelled before window {window_no + 1}")
                yield GenerationEvent(type=GenerationEventType.CANCELLED, job_id=job.id, data=job.to_dict())
                return

            in_flight.clear()
            handled.clear()
            for index, title in window:
                job.current = index + 1
                job.current_title = title.title
                _update()
                task = asyncio.ensure_future(
                    _with_timeout(
                        generate_article(
                            title,
                            index,
                            options,
                            generator,
                            resolver,
                            context.get(title.site_id or ""),
                            job.batch_id,
                        ),
                        options.item_timeout,
                    )
                )
                in_flight.append((index, title, task))
                yield GenerationEvent(
                    type=GenerationEventType.ITEM_STARTED,
                    job_id=job.id,
                    data={"index": index, "title": title.title, "progress": job.progress},
                )

            results = await asyncio.gather(*(task for _, _, task in in_flight), return_exceptions=True)

            for (index, title), result in zip(window, results):
                handled.add(index)
                if isinstance(result, BaseException):
                    message = "逾時" if isinstance(result, asyncio.TimeoutError) else str(result) or type(result).__name__
                    logger.warning(f"Article '{title.title}' failed: {message}")
                    job.items_failed += 1
                    job.failures.append({"index": index, "title": title.title, "error": message})
                    _update()
                    yield GenerationEvent(
                        type=GenerationEventType.ITEM_FAILED,
                        job_id=job.id,
                        data={"index": index, "title": title.title, "error": message, **job.to_dict()},
                    )
                    continue

                article = result
                save_error = _record(article)
                yield GenerationEvent(
                    type=GenerationEventType.ITEM_SUCCESS,
                    job_id=job.id,
                    data={"index": index, "article": article.to_dict(), **job.to_dict()},
                )
                if db is None:
                    continue
                if save_error is not None:
                    yield GenerationEvent(
                        type=GenerationEventType.SAVE_FAILED,
                        job_id=job.id,
                        data={"index": index, "title": article.title, "error": str(save_error)},
                    )
                else:
                    yield GenerationEvent(
                        type=GenerationEventType.ITEM_SAVED,
                        job_id=job.id,
                        data={"index": index, "title": article.title, "db_id": article.db_id},
                    )

            in_flight.clear()
            job.windows_done += 1
            _update()
            yield GenerationEvent(
                type=GenerationEventType.WINDOW_COMPLETE,
                job_id=job.id,
                data={"window": window_no + 1, **job.to_dict()},
            )

            if window_no < len(windows) - 1 and options.pause_seconds > 0:
                yield GenerationEvent(
                    type=GenerationEventType.WAITING,
                    job_id=job.id,
                    data={"seconds": options.pause_seconds},
                )
                await job.token.sleep(options.pause_seconds)

        job.status = GenerationStatus.COMPLETED
        _update()
        _set_batch_status(BatchStatus.COMPLETED)
        logger.info(
            f"Generation job {job.id} completed: {job.items_succeeded} ok, {job.items_failed} failed"
        )
        yield GenerationEvent(type=GenerationEventType.COMPLETED, job_id=job.id, data=job.to_dict())

    except (asyncio.CancelledError, GeneratorExit):
        # No events can be yielded from here
        if job.status == GenerationStatus.RUNNING:
            _abandon_window()
            job.status = GenerationStatus.CANCELLED
            _update()
            _set_batch_status(BatchStatus.CANCELLED)
            logger.warning(f"Generation job {job.id} interrupted after {job.items_succeeded} articles")
        raise

    except Exception as e:
        logger.exception(f"Generation job {job.id} failed")
        _abandon_window()
        job.status = GenerationStatus.FAILED
        job.error = str(e)
        _update()
        _set_batch_status(BatchStatus.DRAFT)
        yield GenerationEvent(
            type=GenerationEventType.FAILED,
            job_id=job.id,
            data={"error": str(e), **job.to_dict()},
        )


def start_generation_job(
    job: GenerationJob,
    titles: Sequence[Title],
    options: GenerationOptions,
    generator: ArticleGenerator,
    resolver: ImageResolver,
    db: DB | None = None,
    store: GenerationJobStore | None = None,
) -> asyncio.Task:
    """Run the job as a background task that outlives any SSE reader.

    Events are published on the job for GenerationJob.follow(). The resolver
    is closed when the job ends.
    """

    async def _run() -> None:
        events = run_generation_job(job, titles, options, generator, resolver, db, store)
        try:
            async for event in events:
                await job.publish(event)
        except asyncio.CancelledError:
            await events.aclose()
            await job.publish(GenerationEvent(type=GenerationEventType.CANCELLED, job_id=job.id, data=job.to_dict()))
            raise
        finally:
            await job.close_events()
            await resolver.close()

    job.task = asyncio.create_task(_run(), name=f"generation-{job.id}")
    return job.task


# Global store instance
_generation_store: GenerationJobStore | None = None


def get_generation_store() -> GenerationJobStore:
    """Get or create the global generation store."""
    global _generation_store
    if _generation_store is None:
        _generation_store = GenerationJobStore()
    return _generation_store
