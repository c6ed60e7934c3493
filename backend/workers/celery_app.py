"""
Celery application configuration.

The worker only carries out-of-band work for the API: quota fill-level
alert emails. Nothing on the submission path waits for it.
"""
import logging
import ssl

from celery import Celery

from surveyflow.config import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

BROKER_URL = settings.broker_url
REDIS_URL = settings.redis_url


def redis_ssl_options(url: str):
    """SSL options for managed Redis (rediss:// URLs), None otherwise."""
    if not url.startswith("rediss://"):
        return None
    return {
        'ssl_cert_reqs': ssl.CERT_NONE,
        'ssl_check_hostname': False,
    }


# Create Celery app
app = Celery(
    "surveyflow",
    broker=BROKER_URL,
    backend=REDIS_URL,
    include=[
        "workers.tasks.email_tasks",
    ]
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=120,
    # Alert results are logged, nobody polls them
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    broker_use_ssl=redis_ssl_options(BROKER_URL),
    redis_backend_use_ssl=redis_ssl_options(REDIS_URL),
)

if __name__ == "__main__":
    app.start()
