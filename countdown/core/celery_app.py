import logging.config

from celery import Celery
from celery.signals import setup_logging, worker_process_init

from countdown.configs import configs

celery_app = Celery(
    "countdown_worker",
    broker=configs.Redis.REDIS_URL,
    backend=configs.Redis.REDIS_URL,
    include=["countdown.tasks.notification"],
)

beat_schedule: dict[str, dict[str, object]] = {}
if configs.Scheduler.Enable:
    beat_schedule["notification-tick"] = {
        "task": "run_notification_tick",
        "schedule": float(configs.Scheduler.TickIntervalSeconds),
    }

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule=beat_schedule,
)


@setup_logging.connect
def configure_logging(**kwargs: object) -> None:
    """Use the service log format in the worker instead of Celery's own."""
    from countdown.core.logger import LOGGING_CONFIG

    logging.config.dictConfig(LOGGING_CONFIG)


@worker_process_init.connect
def init_worker_process(**kwargs: object) -> None:
    """
    Validate the VAPID key pair when a worker process starts.

    A malformed key raises here and takes the worker down instead of
    failing every delivery later.
    """
    from countdown.core.push.vapid import ensure_vapid_keys

    if configs.Push.Enable:
        ensure_vapid_keys()
