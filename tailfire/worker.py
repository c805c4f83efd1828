from __future__ import annotations

import logging
import time

from dotenv import load_dotenv

load_dotenv()

from tailfire.config import settings
from tailfire.infra.db import SessionLocal
from tailfire.logging_config import setup_logging
from tailfire.services.payment_transactions_service import mark_overdue_items

logger = logging.getLogger("tailfire.worker")


def run_once() -> int:
    with SessionLocal() as db:
        try:
            n = mark_overdue_items(db)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("mark_overdue_items failed")
            return 0
    return n


def run_loop() -> None:
    interval = settings.WORKER_INTERVAL_SECONDS
    logger.info("Worker started. interval=%ss", interval)

    while True:
        started = time.time()

        n = run_once()
        if n:
            logger.info("Sweep done: overdue=%s", n)

        elapsed = time.time() - started
        time.sleep(max(1, interval - int(elapsed)))


if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL)
    try:
        run_loop()
    except KeyboardInterrupt:
        logger.info("Worker stopped (Ctrl+C)")
