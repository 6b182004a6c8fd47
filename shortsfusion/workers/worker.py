"""
RQ worker pool entrypoint.
"""

from dotenv import load_dotenv

load_dotenv()

from rq.worker_pool import WorkerPool

from shortsfusion.config.settings import settings
from shortsfusion.models import init_db
from shortsfusion.services.observability import logger
from shortsfusion.workers.queue import get_redis_connection


def main() -> None:
    init_db()
    logger.info(
        "worker_pool_starting",
        queue=settings.rq_queue_name,
        num_workers=settings.worker_concurrency,
    )
    pool = WorkerPool(
        [settings.rq_queue_name],
        connection=get_redis_connection(),
        num_workers=settings.worker_concurrency,
    )
    pool.start()


if __name__ == "__main__":
    main()
