"""
Celery application instance and configuration.
"""

from celery import Celery
from celery.schedules import crontab

from tubeindex.core.config import settings
from tubeindex.core.logging import setup_logging

setup_logging()

# Create Celery application
celery_app = Celery(
    "tubeindex",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=3 * 60 * 60,  # 3 hours, large channels
    task_soft_time_limit=170 * 60,
    result_expires=24 * 3600,
    worker_hijack_root_logger=False,
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'regenerate-missing-embeddings': {
        'task': 'indexing.regenerate_missing_embeddings',
        'schedule': crontab(minute='0', hour=f'*/{settings.EMBEDDING_REGEN_INTERVAL_HOURS}'),
        'options': {'queue': 'indexing'},
    },
    'index-database-status': {
        'task': 'indexing.database_status',
        'schedule': crontab(minute='*/15'),
        'options': {'queue': 'monitoring'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'indexing.database_status': {'queue': 'monitoring'},
    'indexing.*': {'queue': 'indexing'},
}

# Auto-discover tasks from tubeindex.tasks
celery_app.autodiscover_tasks(['tubeindex.tasks'])
