"""
Celery application configuration.

    celery -A gatehouse.worker.celery_app worker -B
"""

from celery import Celery

from gatehouse.core.config import settings

app = Celery(
    "gatehouse-worker",
    broker=settings.queue.broker_url,
    backend=settings.queue.result_backend,
    include=["gatehouse.worker.tasks"],
)

app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    task_routes={
        "gatehouse.worker.tasks.*": {"queue": "scheduled"},
    },

    # Result backend settings
    result_expires=3600,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Beat schedule (periodic tasks)
    beat_schedule={
        "purge-expired-tokens": {
            "task": "gatehouse.worker.tasks.purge_expired_tokens",
            "schedule": settings.queue.token_purge_interval,
        },
    },
)


if __name__ == "__main__":
    app.start()
