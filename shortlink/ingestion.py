"""Click Ingestion Pipeline - bounded, non-blocking recording of redirect clicks.

The redirect path hands each click to ``record()`` and moves on. A fixed set of
core worker tasks drains a bounded queue; when the queue is full extra workers
are spawned up to a ceiling, and past that the submitting coroutine runs the
job itself so no click is ever dropped.

Flow Diagram — record()
=======================
::
    ┌─────────────┐
    │  record()   │
    │ (stamp time)│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Accepting?   │──NO──▶ run inline
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Queue has    │──YES──▶ enqueue, return
    │ room?        │
    └──────┬──────┘
           │ NO
           ▼
    ┌─────────────┐
    │ Workers <    │──YES──▶ spawn overflow worker
    │ max?         │         with this job first
    └──────┬──────┘
           │ NO
           ▼
    ┌─────────────┐
    │ Caller runs  │
    │ the job      │
    └─────────────┘

Flow Diagram — one job
======================
::
    find link by code ──absent──▶ skip
           ▼
    hash IP (SHA-256), classify user agent
           ▼
    INSERT click_events row (occurred_at = submit time)
           ▼
    UPDATE short_links SET click_count = click_count + 1

Key Behaviours
===============
- Failures inside a job are logged with the traceback and counted; they
  never reach the caller of ``record()``.
- Overflow workers exit after ``keep_alive`` seconds without work.
- ``shutdown()`` stops queueing, drains for up to the grace period, then
  discards the leftovers (logging how many) and cancels the workers.
"""

import asyncio
import datetime
import hashlib
import logging
from dataclasses import dataclass

from prometheus_client import Counter

from shortlink.clock import Clock, utcnow
from shortlink.config import Settings
from shortlink.enums import IngestionStatus
from shortlink.repositories import ClickEventRepository, ShortLinkRepository
from shortlink.schemas import ClientMetadata
from shortlink.user_agent import classify

__all__ = ["ClickIngestionPipeline", "PipelineStats", "hash_ip"]

logger = logging.getLogger(__name__)

_MAX_TEXT_LENGTH = 500
_MAX_GEO_LENGTH = 100

CLICKS_INGESTED_TOTAL = Counter(
    "shortlink_clicks_ingested_total",
    "Click ingestion jobs by outcome",
    ["status"],
)
CLICK_CALLER_RUNS_TOTAL = Counter(
    "shortlink_click_caller_runs_total",
    "Click jobs executed by the submitter because the pool was saturated",
)
CLICKS_DISCARDED_TOTAL = Counter(
    "shortlink_clicks_discarded_total",
    "Queued click jobs dropped when the shutdown grace period ran out",
)


def hash_ip(ip_address: str | None) -> str | None:
    if ip_address is None:
        return None
    return hashlib.sha256(ip_address.encode("utf-8")).hexdigest()


def _clip(value: str | None, limit: int) -> str | None:
    return value[:limit] if value else value


@dataclass
class PipelineStats:
    submitted: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    caller_runs: int = 0
    discarded: int = 0


@dataclass(frozen=True)
class _ClickJob:
    code: str
    metadata: ClientMetadata
    occurred_at: datetime.datetime


class ClickIngestionPipeline:
    def __init__(
        self,
        links: ShortLinkRepository,
        events: ClickEventRepository,
        core_workers: int = 5,
        max_workers: int = 10,
        queue_capacity: int = 100,
        keep_alive: float = 60.0,
        shutdown_grace: float = 60.0,
        clock: Clock = utcnow,
    ):
        if core_workers < 1 or max_workers < core_workers or queue_capacity < 1:
            raise ValueError("need 1 <= core_workers <= max_workers and queue_capacity >= 1")
        self._links = links
        self._events = events
        self._core_workers = core_workers
        self._max_workers = max_workers
        self._keep_alive = keep_alive
        self._shutdown_grace = shutdown_grace
        self._clock = clock

        self._queue: asyncio.Queue[_ClickJob] = asyncio.Queue(maxsize=queue_capacity)
        self._workers: set[asyncio.Task] = set()
        self._worker_seq = 0
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._started = False
        self._accepting = True
        self.stats = PipelineStats()

    @classmethod
    def from_settings(
        cls,
        links: ShortLinkRepository,
        events: ClickEventRepository,
        settings: Settings,
        clock: Clock = utcnow,
    ) -> "ClickIngestionPipeline":
        return cls(
            links,
            events,
            core_workers=settings.CLICK_TRACKING_CORE_WORKERS,
            max_workers=settings.CLICK_TRACKING_MAX_WORKERS,
            queue_capacity=settings.CLICK_TRACKING_QUEUE_CAPACITY,
            keep_alive=settings.CLICK_TRACKING_KEEP_ALIVE_SECONDS,
            shutdown_grace=settings.CLICK_TRACKING_SHUTDOWN_GRACE_SECONDS,
            clock=clock,
        )

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Spawn the core workers. Must be called from inside the event loop."""
        if self._started:
            return
        self._started = True
        for _ in range(self._core_workers):
            self._spawn_worker(core=True)
        logger.info(
            f"Click ingestion started: {self._core_workers} core / {self._max_workers} max workers, "
            f"queue capacity {self._queue.maxsize}"
        )

    # ========================================================================
    # SUBMISSION
    # ========================================================================

    async def record(self, code: str, metadata: ClientMetadata) -> None:
        """Hand a click over for recording; never raises for ingestion failures."""
        job = _ClickJob(code=code, metadata=metadata, occurred_at=self._clock())
        self.stats.submitted += 1

        if not self._accepting:
            await self._run_inline(job)
            return
        if not self._started:
            self.start()

        try:
            self._queue.put_nowait(job)
            self._track_accepted()
            return
        except asyncio.QueueFull:
            pass

        if len(self._workers) < self._max_workers:
            self._track_accepted()
            self._spawn_worker(core=False, first_job=job)
            return

        await self._run_inline(job)

    async def _run_inline(self, job: _ClickJob) -> None:
        self.stats.caller_runs += 1
        CLICK_CALLER_RUNS_TOTAL.inc()
        logger.debug(f"Click for {job.code} running on the caller")
        await self._process(job)

    def _track_accepted(self) -> None:
        self._pending += 1
        self._idle.clear()

    def _track_finished(self) -> None:
        self._pending -= 1
        if self._pending == 0:
            self._idle.set()

    # ========================================================================
    # WORKERS
    # ========================================================================

    def _spawn_worker(self, core: bool, first_job: _ClickJob | None = None) -> None:
        self._worker_seq += 1
        task = asyncio.create_task(
            self._worker(core, first_job), name=f"click-tracking-{self._worker_seq}"
        )
        self._workers.add(task)
        task.add_done_callback(self._workers.discard)

    async def _worker(self, core: bool, first_job: _ClickJob | None) -> None:
        if first_job is not None:
            try:
                await self._process(first_job)
            finally:
                self._track_finished()

        while True:
            try:
                if core:
                    job = await self._queue.get()
                else:
                    job = await asyncio.wait_for(self._queue.get(), timeout=self._keep_alive)
            except asyncio.TimeoutError:
                logger.debug("Idle overflow click worker retiring")
                return
            try:
                await self._process(job)
            finally:
                self._queue.task_done()
                self._track_finished()

    async def _process(self, job: _ClickJob) -> None:
        try:
            link = await self._links.find_by_code(job.code)
            if link is None:
                self.stats.skipped += 1
                CLICKS_INGESTED_TOTAL.labels(status=IngestionStatus.SKIPPED).inc()
                logger.debug(f"Skipping click for unknown code {job.code}")
                return

            metadata = job.metadata
            info = classify(metadata.user_agent)
            await self._events.save(
                link_id=link.id,
                occurred_at=job.occurred_at,
                ip_address_hash=hash_ip(metadata.ip_address),
                user_agent=_clip(metadata.user_agent, _MAX_TEXT_LENGTH),
                referrer=_clip(metadata.referrer, _MAX_TEXT_LENGTH),
                device_type=info.device_type,
                browser=info.browser,
                operating_system=info.operating_system,
                country=_clip(metadata.country, _MAX_GEO_LENGTH),
                city=_clip(metadata.city, _MAX_GEO_LENGTH),
            )
            await self._links.increment_click_count(job.code)

            self.stats.completed += 1
            CLICKS_INGESTED_TOTAL.labels(status=IngestionStatus.RECORDED).inc()
            logger.debug(f"Click recorded for {job.code}: {info.device_type}/{info.browser}")
        except Exception:
            self.stats.failed += 1
            CLICKS_INGESTED_TOTAL.labels(status=IngestionStatus.FAILED).inc()
            logger.exception(f"Failed to record click for {job.code}")

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def join(self) -> None:
        """Wait until every accepted job has finished."""
        await self._idle.wait()

    async def shutdown(self, grace: float | None = None) -> None:
        self._accepting = False
        grace = self._shutdown_grace if grace is None else grace
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=grace)
        except asyncio.TimeoutError:
            discarded = 0
            while not self._queue.empty():
                self._queue.get_nowait()
                self._queue.task_done()
                self._track_finished()
                discarded += 1
            self.stats.discarded += discarded
            CLICKS_DISCARDED_TOTAL.inc(discarded)
            logger.warning(f"Click ingestion did not drain within {grace}s, discarded {discarded} queued clicks")

        workers = list(self._workers)
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        logger.info(f"Click ingestion stopped: {self.stats}")
