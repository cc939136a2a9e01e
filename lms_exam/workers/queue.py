# lms_exam/workers/queue.py

from typing import Any, Callable

from redis import Redis
from rq import Queue

from lms_exam.core.config import settings

_DEFAULT_QUEUE_NAME = "default"

_redis_conn: Redis | None = None


def get_redis_connection() -> Redis:
    global _redis_conn
    if _redis_conn is None:
        _redis_conn = Redis.from_url(settings.REDIS_URL)
    return _redis_conn


def get_queue(name: str = _DEFAULT_QUEUE_NAME) -> Queue:
    return Queue(name, connection=get_redis_connection())


def enqueue_job(
    func: Callable[..., Any],
    *args: Any,
    queue_name: str = _DEFAULT_QUEUE_NAME,
    **kwargs: Any,
) -> str:
    q = get_queue(queue_name)
    job = q.enqueue(func, *args, **kwargs)
    return job.id


def enqueue_certificate_issuance(attempt_id: str) -> str:
    from lms_exam.workers.tasks import certificate_issuance_task

    # job id keyed by attempt: repeated failures collapse onto one pending job
    return enqueue_job(
        certificate_issuance_task,
        attempt_id,
        queue_name=settings.CERTIFICATE_QUEUE_NAME,
        job_id=f"certificate-{attempt_id}",
    )
