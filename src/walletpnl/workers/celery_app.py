from celery import Celery

from walletpnl.config import settings

celery_app = Celery(
    "walletpnl",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["walletpnl.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)
