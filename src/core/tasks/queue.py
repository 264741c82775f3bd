"""Durable extraction job queue on Redis + taskiq.

Job records live in Redis as JSON; taskiq only carries the job id. Keys:

    {queue}:job:{job_id}          JobRecord (no TTL while live)
    {queue}:active:{document_id}  job id of the document's live job (SET NX)
    {queue}:claim:{job_id}        per-attempt claim lock (SET NX PX)
    {queue}:completed             zset of completed job ids, for count retention

Immediate runs are sent with ``task.kiq(job_id)``; backoff re-attempts go
through the Redis schedule source so no worker sleeps on a retry.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from redis.asyncio import Redis

from src.core.config import Settings, settings
from src.core.schemas.jobs import (
    STEP_PROGRESS,
    JobPayload,
    JobProgress,
    JobRecord,
    JobResult,
    JobState,
    JobStatus,
    JobSubmission,
    ProcessingStep,
)

logger = logging.getLogger(__name__)

CLAIM_GRACE_MS = 30_000


@dataclass(frozen=True)
class QueueConfig:
    queue_name: str = "document-extraction"
    max_attempts: int = 3
    backoff_type: str = "exponential"
    backoff_delay_ms: int = 5000
    backoff_max_delay_ms: int = 600_000
    timeout_ms: int = 120_000
    keep_completed_seconds: int = 24 * 3600
    keep_completed_count: int = 1000
    keep_failed_seconds: int = 7 * 24 * 3600

    @classmethod
    def from_settings(cls, s: Settings = settings) -> "QueueConfig":
        return cls(
            queue_name=s.queue_name,
            max_attempts=s.job_max_attempts,
            backoff_type=s.job_backoff_type,
            backoff_delay_ms=s.job_backoff_delay_ms,
            backoff_max_delay_ms=s.job_backoff_max_delay_ms,
            timeout_ms=s.job_timeout_ms,
            keep_completed_seconds=s.keep_completed_seconds,
            keep_completed_count=s.keep_completed_count,
            keep_failed_seconds=s.keep_failed_seconds,
        )

    @property
    def active_pointer_ttl_ms(self) -> int:
        # Long enough to outlive every attempt and backoff of one job
        return self.max_attempts * (self.timeout_ms + self.backoff_max_delay_ms) + CLAIM_GRACE_MS


def backoff_delay_ms(config: QueueConfig, attempts_made: int) -> int:
    """Delay before the next attempt after ``attempts_made`` failures."""
    if config.backoff_type == "fixed":
        return config.backoff_delay_ms
    delay = config.backoff_delay_ms * 2 ** max(attempts_made - 1, 0)
    return min(delay, config.backoff_max_delay_ms)


def _now() -> datetime:
    return datetime.now(UTC)


class JobQueue:
    """Client for the extraction queue. One instance per process.

    ``task`` is the taskiq task that runs a job by id; ``schedule_source`` is
    the taskiq schedule source used for delayed re-attempts.
    """

    def __init__(
        self,
        config: QueueConfig,
        task: Any,
        schedule_source: Any = None,
        redis: Redis | None = None,
        redis_url: str | None = None,
    ):
        self.config = config
        self.task = task
        self.schedule_source = schedule_source
        self._redis = redis
        self._owns_redis = redis is None
        self._redis_url = redis_url or settings.redis_url

    async def open(self) -> None:
        if self._redis is None:
            self._redis = Redis.from_url(self._redis_url, decode_responses=True)

    async def close(self) -> None:
        if self._redis is not None and self._owns_redis:
            await self._redis.aclose()
            self._redis = None

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            raise RuntimeError("JobQueue is not open")
        return self._redis

    # --- keys ---

    def _job_key(self, job_id: str) -> str:
        return f"{self.config.queue_name}:job:{job_id}"

    def _active_key(self, document_id: str) -> str:
        return f"{self.config.queue_name}:active:{document_id}"

    def _claim_key(self, job_id: str) -> str:
        return f"{self.config.queue_name}:claim:{job_id}"

    @property
    def _completed_key(self) -> str:
        return f"{self.config.queue_name}:completed"

    # --- records ---

    async def _save(self, job: JobRecord, ex: int | None = None) -> None:
        await self.redis.set(self._job_key(job.id), job.model_dump_json(by_alias=True), ex=ex)

    async def get_job(self, job_id: str) -> JobRecord | None:
        raw = await self.redis.get(self._job_key(job_id))
        if raw is None:
            return None
        return JobRecord.model_validate_json(raw)

    async def get_status(self, job_id: str) -> JobStatus:
        job = await self.get_job(job_id)
        if job is None:
            return JobStatus(status="not_found")
        return JobStatus(status=job.state.value, job=job)

    async def _release_active(self, job: JobRecord) -> None:
        key = self._active_key(job.payload.document_id)
        if await self.redis.get(key) == job.id:
            await self.redis.delete(key)

    # --- lifecycle ---

    async def submit(self, payload: JobPayload) -> JobSubmission:
        """Enqueue a job unless the document already has a live one."""
        document_id = payload.document_id
        job_id = f"doc-{document_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
        active_key = self._active_key(document_id)
        ttl = self.config.active_pointer_ttl_ms

        if not await self.redis.set(active_key, job_id, nx=True, px=ttl):
            existing_id = await self.redis.get(active_key)
            existing = await self.get_job(existing_id) if existing_id else None
            if existing is not None and not existing.is_finished:
                logger.info("Document %s already has live job %s", document_id, existing_id)
                return JobSubmission(job_id=existing.id, document_id=document_id, created=False)
            logger.warning("Replacing stale active job pointer %s for %s", existing_id, document_id)
            await self.redis.set(active_key, job_id, px=ttl)

        job = JobRecord(
            id=job_id,
            payload=payload,
            max_attempts=self.config.max_attempts,
            created_at=_now(),
        )
        await self._save(job)
        try:
            await self.task.kiq(job_id)
        except Exception:
            await self.redis.delete(self._job_key(job_id))
            await self._release_active(job)
            raise
        logger.info("Queued job %s for document %s", job_id, document_id)
        return JobSubmission(job_id=job_id, document_id=document_id, created=True)

    async def claim(self, job_id: str) -> JobRecord | None:
        """Take the per-attempt lock and mark the job active.

        Returns None when the job is unknown, already finished, or held by
        another worker.
        """
        job = await self.get_job(job_id)
        if job is None:
            logger.warning("Job %s not found, dropping message", job_id)
            return None
        if job.is_finished:
            logger.info("Job %s already %s, skipping", job_id, job.state.value)
            return None
        claimed = await self.redis.set(
            self._claim_key(job_id), "1", nx=True, px=self.config.timeout_ms + CLAIM_GRACE_MS
        )
        if not claimed:
            logger.info("Job %s is claimed by another worker", job_id)
            return None
        job.state = JobState.active
        job.processed_on = _now()
        await self._save(job)
        return job

    async def update_progress(self, job: JobRecord, step: ProcessingStep) -> None:
        percentage, message = STEP_PROGRESS[step]
        job.progress = JobProgress(step=step, percentage=percentage, message=message)
        await self._save(job)

    async def complete(self, job: JobRecord, result: JobResult) -> None:
        now = _now()
        job.state = JobState.completed
        job.finished_on = now
        job.result = result
        await self._save(job, ex=self.config.keep_completed_seconds)
        await self.redis.delete(self._claim_key(job.id))
        await self._release_active(job)
        await self._trim_completed(job.id, now)

    async def _trim_completed(self, job_id: str, finished: datetime) -> None:
        key = self._completed_key
        await self.redis.zadd(key, {job_id: finished.timestamp()})
        stale = await self.redis.zrange(key, 0, -(self.config.keep_completed_count + 1))
        if stale:
            await self.redis.delete(*(self._job_key(j) for j in stale))
            await self.redis.zrem(key, *stale)

    def will_retry(self, job: JobRecord, retryable: bool) -> bool:
        """Whether failing the current attempt schedules another one."""
        return retryable and job.attempts_made + 1 < job.max_attempts

    async def fail(self, job: JobRecord, error: str, retryable: bool = True) -> bool:
        """Record a failed attempt. Returns True when a re-attempt was scheduled."""
        retry = self.will_retry(job, retryable)
        job.attempts_made += 1
        job.failed_reason = error

        if retry:
            delay = backoff_delay_ms(self.config, job.attempts_made)
            job.state = JobState.delayed
            await self._save(job)
            await self.redis.delete(self._claim_key(job.id))
            await self._schedule(job.id, _now() + timedelta(milliseconds=delay))
            logger.warning(
                "Job %s attempt %d/%d failed, retrying in %dms: %s",
                job.id,
                job.attempts_made,
                job.max_attempts,
                delay,
                error,
            )
            return True

        job.state = JobState.failed
        job.finished_on = _now()
        job.result = JobResult(success=False, document_id=job.payload.document_id, error=error)
        await self._save(job, ex=self.config.keep_failed_seconds)
        await self.redis.delete(self._claim_key(job.id))
        await self._release_active(job)
        logger.error("Job %s failed after %d attempt(s): %s", job.id, job.attempts_made, error)
        return False

    async def _schedule(self, job_id: str, when: datetime) -> None:
        if self.schedule_source is None:
            raise RuntimeError("JobQueue has no schedule source for delayed retries")
        await self.task.kicker().schedule_by_time(self.schedule_source, when, job_id)
