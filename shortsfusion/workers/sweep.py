"""
Periodic reconciliation sweep process.

Also the operator entry for dead-lettered jobs:

    python -m shortsfusion.workers.sweep --dead-letters
    python -m shortsfusion.workers.sweep --requeue video:<id>:generate
"""

import argparse
import time

from dotenv import load_dotenv

load_dotenv()

from shortsfusion.config.settings import settings
from shortsfusion.models import SessionLocal, init_db
from shortsfusion.services.observability import logger
from shortsfusion.services.reconciliation import reconcile
from shortsfusion.workers.queue import JobQueue


def run_once(queue: JobQueue) -> dict:
    db = SessionLocal()
    try:
        return reconcile(db, queue)
    finally:
        db.close()


def main(argv=None, queue: JobQueue = None) -> None:
    parser = argparse.ArgumentParser(description="Reconcile stranded videos")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument(
        "--dead-letters", action="store_true", help="Print dead-lettered job ids and exit"
    )
    parser.add_argument("--requeue", metavar="JOB_ID", help="Requeue one dead-lettered job and exit")
    args = parser.parse_args(argv)

    queue = queue or JobQueue()

    if args.dead_letters:
        for job_id in queue.dead_letters():
            print(job_id)
        return
    if args.requeue:
        queue.requeue_dead_letter(args.requeue)
        return

    init_db()
    logger.info("sweep_starting", interval_s=settings.sweep_interval_s, once=args.once)

    while True:
        try:
            run_once(queue)
        except Exception as exc:
            logger.error("sweep_failed", error=str(exc), error_type=type(exc).__name__)
            if args.once:
                raise
        if args.once:
            return
        time.sleep(settings.sweep_interval_s)


if __name__ == "__main__":
    main()
