import logging

from arq import cron, run_worker

from housematch.core.config import get_settings
from housematch.workers.connection import get_redis_settings
from housematch.workers.jobs import (
    deliver_match_event,
    expire_pending_matches,
    send_expiration_reminders,
    startup,
    shutdown,
)

settings = get_settings()


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [
        deliver_match_event,
        expire_pending_matches,
        send_expiration_reminders,
    ]

    cron_jobs = [
        cron(expire_pending_matches, minute=settings.get_sweep_minutes(), unique=True),
        cron(send_expiration_reminders, minute=5, unique=True),
    ]

    on_startup = startup
    on_shutdown = shutdown

    max_jobs = 10
    job_timeout = 300
    keep_result = 3600
    retry_jobs = True
    max_tries = 5


def main() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
