"""
RQ queue helpers and the video job queue.
"""

from typing import List, Optional

import redis
from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus
from rq.registry import FailedJobRegistry

from shortsfusion.config.settings import settings
from shortsfusion.services.observability import logger
from shortsfusion.workers.tasks import run_generation_job


PHASE_GENERATE = "generate"
PHASE_RENDER = "render"
PHASES = (PHASE_GENERATE, PHASE_RENDER)

PENDING_STATUSES = {
    JobStatus.QUEUED,
    JobStatus.STARTED,
    JobStatus.SCHEDULED,
    JobStatus.DEFERRED,
}


def get_redis_connection() -> redis.Redis:
    return redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    return Queue(name or settings.rq_queue_name, connection=get_redis_connection())


def backoff_intervals(max_attempts: int, initial_s: int) -> List[int]:
    """Retry delays between attempts: initial, 2*initial, 4*initial, ..."""
    return [initial_s * (2 ** i) for i in range(max(max_attempts - 1, 0))]


def job_id_for(video_id: str, phase: str = PHASE_GENERATE) -> str:
    return f"video:{video_id}:{phase}"


class JobQueue:
    """
    Durable at-least-once handoff of video ids from the API to workers

    Exhausted jobs stay in RQ's FailedJobRegistry, which acts as the
    dead-letter store.
    """

    def __init__(
        self,
        queue: Optional[Queue] = None,
        max_attempts: Optional[int] = None,
        backoff_initial_s: Optional[int] = None,
    ):
        self.queue = queue or get_queue()
        self.max_attempts = max_attempts or settings.job_max_attempts
        self.backoff_initial_s = backoff_initial_s or settings.job_backoff_initial_s

    def _fetch(self, job_id: str) -> Optional[Job]:
        try:
            return Job.fetch(job_id, connection=self.queue.connection)
        except NoSuchJobError:
            return None

    def enqueue(self, video_id: str, phase: str = PHASE_GENERATE) -> Job:
        """
        Enqueue a pipeline job for a video

        A job that is still pending under the same id is returned instead of
        being enqueued twice.
        """
        if phase not in PHASES:
            raise ValueError(f"Unknown job phase: {phase}")

        job_id = job_id_for(video_id, phase)
        existing = self._fetch(job_id)
        if existing is not None and existing.get_status() in PENDING_STATUSES:
            logger.info("video_job_already_pending", video_id=video_id, job_id=job_id)
            return existing

        retry = None
        if self.max_attempts > 1:
            retry = Retry(
                max=self.max_attempts - 1,
                interval=backoff_intervals(self.max_attempts, self.backoff_initial_s),
            )

        job = self.queue.enqueue(
            run_generation_job,
            video_id,
            job_id=job_id,
            retry=retry,
            job_timeout=settings.job_timeout_minutes * 60,
        )

        logger.info(
            "video_job_enqueued",
            video_id=video_id,
            job_id=job.id,
            phase=phase,
            queue=self.queue.name,
            max_attempts=self.max_attempts,
        )
        return job

    def has_pending_job(self, video_id: str) -> bool:
        """True if any phase of the video is queued, running or awaiting retry"""
        for phase in PHASES:
            job = self._fetch(job_id_for(video_id, phase))
            if job is not None and job.get_status() in PENDING_STATUSES:
                return True
        return False

    def dead_letters(self) -> List[str]:
        """Job ids that exhausted their retries"""
        registry = FailedJobRegistry(queue=self.queue)
        return registry.get_job_ids()

    def requeue_dead_letter(self, job_id: str) -> Job:
        """Put a dead-lettered job back on the queue"""
        registry = FailedJobRegistry(queue=self.queue)
        job = registry.requeue(job_id)
        logger.info("video_job_requeued", job_id=job_id)
        return job
