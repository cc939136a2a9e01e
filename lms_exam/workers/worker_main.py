# lms_exam/workers/worker_main.py

from rq import Queue, SimpleWorker

from lms_exam.core.config import settings
from lms_exam.core.logging_config import setup_logging
from lms_exam.workers.queue import get_redis_connection

QUEUE_NAMES = [settings.CERTIFICATE_QUEUE_NAME]


def main():
    setup_logging()
    redis_conn = get_redis_connection()

    queues = [Queue(name, connection=redis_conn) for name in QUEUE_NAMES]

    worker = SimpleWorker(queues, connection=redis_conn)
    worker.work()


if __name__ == "__main__":
    main()
