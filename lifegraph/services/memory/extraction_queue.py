"""Bounded background queue for entity extraction after an answer is saved.

The save path calls :func:`enqueue_answer_extraction` and returns right away.
A small pool of asyncio workers drains the queue; each job gets its own
database session and a hard timeout, and every failure is logged and
swallowed so nothing ever reaches the save caller.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lifegraph.core.config import MemorySettings, settings
from lifegraph.core.exceptions import RateLimitError
from lifegraph.core.rate_limiter import RateLimiter, get_rate_limiter
from lifegraph.core.unified_llm import UnifiedLLMClient
from lifegraph.services.memory.context_cache import ContextCache, context_cache
from lifegraph.services.memory.extraction_service import MemoryExtractionService
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ExtractionJob:
    user_id: str
    text: str
    chapter_id: Optional[str] = None
    question_id: Optional[str] = None
    story_id: Optional[str] = None


class ExtractionQueue:
    """Fixed-size job queue drained by a fixed number of workers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        llm_client_factory: Callable[[], Optional[UnifiedLLMClient]],
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[ContextCache] = None,
        memory_settings: Optional[MemorySettings] = None,
    ):
        """Initialize the queue.

        Args:
            session_factory: Creates one AsyncSession per job
            llm_client_factory: Returns the LLM client (None when unconfigured)
            rate_limiter: Per-user LLM budget shared with the HTTP endpoints
            cache: Context cache invalidated after each run
            memory_settings: Queue size, worker count and job timeout
        """
        self.session_factory = session_factory
        self.llm_client_factory = llm_client_factory
        self.rate_limiter = rate_limiter if rate_limiter is not None else get_rate_limiter()
        self.cache = cache if cache is not None else context_cache
        self.config = memory_settings or settings.memory

        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._llm_client: Optional[UnifiedLLMClient] = None

        self.processed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Create the queue and spawn the workers on the running loop."""
        if self.is_running:
            return

        self._queue = asyncio.Queue(maxsize=self.config.extraction_queue_size)
        self._llm_client = self.llm_client_factory()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"memory-extraction-{index}")
            for index in range(self.config.extraction_workers)
        ]
        LOGGER.info(
            "Extraction queue started",
            extra={
                "workers": self.config.extraction_workers,
                "queue_size": self.config.extraction_queue_size,
                "llm_configured": self._llm_client is not None,
            },
        )

    async def stop(self) -> None:
        """Cancel the workers; jobs still queued are discarded."""
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)

        backlog = self._queue.qsize() if self._queue else 0
        self._workers = []
        self._queue = None
        LOGGER.info("Extraction queue stopped", extra={"discarded": backlog})

    def submit(self, job: ExtractionJob) -> bool:
        """Enqueue a job without waiting.

        Returns:
            True if queued, False if dropped (queue full or not running)
        """
        if self._queue is None:
            self.dropped += 1
            LOGGER.warning(
                "Extraction queue not running, dropping job",
                extra={"user_id": job.user_id, "story_id": job.story_id},
            )
            return False

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.dropped += 1
            LOGGER.warning(
                "Extraction queue full, dropping job",
                extra={"user_id": job.user_id, "story_id": job.story_id, "backlog": self._queue.qsize()},
            )
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    def stats(self) -> Dict[str, int]:
        return {
            "backlog": self._queue.qsize() if self._queue else 0,
            "workers": len(self._workers),
            "processed": self.processed,
            "failed": self.failed,
            "dropped": self.dropped,
        }

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await asyncio.wait_for(
                    self._run(job), timeout=self.config.extraction_timeout_seconds
                )
                self.processed += 1
            except asyncio.CancelledError:
                raise
            except RateLimitError as e:
                self.failed += 1
                LOGGER.warning(
                    "Rate limited, dropping background extraction",
                    extra={"user_id": job.user_id, "story_id": job.story_id, "reset_in_ms": e.reset_in_ms},
                )
            except asyncio.TimeoutError:
                self.failed += 1
                LOGGER.error(
                    "Background extraction timed out",
                    extra={
                        "user_id": job.user_id,
                        "story_id": job.story_id,
                        "timeout_seconds": self.config.extraction_timeout_seconds,
                    },
                )
            except Exception as e:
                self.failed += 1
                LOGGER.error(
                    "Background extraction failed",
                    exc_info=True,
                    extra={"user_id": job.user_id, "story_id": job.story_id, "error": str(e)},
                )
            finally:
                self._queue.task_done()

    async def _run(self, job: ExtractionJob) -> None:
        async with self.session_factory() as session:
            service = MemoryExtractionService(
                session=session,
                llm_client=self._llm_client,
                rate_limiter=self.rate_limiter,
                memory_settings=self.config,
            )
            try:
                outcome = await service.extract_and_store(
                    user_id=job.user_id,
                    text=job.text,
                    chapter_id=job.chapter_id,
                    question_id=job.question_id,
                    story_id=job.story_id,
                )
            finally:
                self.cache.invalidate(job.user_id)

        if outcome.skipped_reason is None:
            LOGGER.info(
                "Background extraction finished",
                extra={
                    "user_id": job.user_id,
                    "story_id": job.story_id,
                    "entities": len(outcome.entities),
                    "relationships": outcome.relationships_linked,
                },
            )


_extraction_queue: Optional[ExtractionQueue] = None


def get_extraction_queue() -> ExtractionQueue:
    """Return the process-wide extraction queue."""
    global _extraction_queue
    if _extraction_queue is None:
        from lifegraph.core.database import async_session_maker
        from lifegraph.core.unified_llm import create_llm_client

        _extraction_queue = ExtractionQueue(
            session_factory=async_session_maker,
            llm_client_factory=create_llm_client,
        )
    return _extraction_queue


def enqueue_answer_extraction(
    user_id: str,
    text: str,
    chapter_id: Optional[str] = None,
    question_id: Optional[str] = None,
    story_id: Optional[str] = None,
) -> bool:
    """Schedule extraction for a freshly saved answer.

    Called by the answer-saving collaborator after the answer is durably
    stored. Never raises and never blocks.

    Returns:
        True if the job was queued
    """
    return get_extraction_queue().submit(
        ExtractionJob(
            user_id=user_id,
            text=text,
            chapter_id=chapter_id,
            question_id=question_id,
            story_id=story_id,
        )
    )
