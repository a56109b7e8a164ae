"""
Celery tasks for channel indexing and index maintenance.

This module contains background tasks for:
- Indexing a channel's videos into searchable transcript chunks
- Regenerating embeddings missing after provider failures
- Reporting index health
"""

import asyncio
import concurrent.futures
from typing import Optional

from celery import Task

from tubeindex.core.exceptions import (
    ConfigurationError,
    IndexingAlreadyRunning,
    InvalidChannelReference,
    RunFailure,
)
from tubeindex.core.logging import get_logger
from tubeindex.services.factory import build_services
from tubeindex.workers.celery_app import celery_app

logger = get_logger(__name__)


# ========================================
# Async Helper
# ========================================

def run_async(coro):
    """
    Run async coroutine, handling both event loop and no event loop scenarios.

    This helper allows tasks to work in both:
    - Production (Celery worker with no event loop) - uses asyncio.run()
    - Tests (pytest with existing event loop) - runs in thread pool
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor() as executor:
        future = executor.submit(asyncio.run, coro)
        return future.result()


def _configuration_cause(exc: BaseException) -> Optional[ConfigurationError]:
    cause = exc.__cause__
    return cause if isinstance(cause, ConfigurationError) else None


# ========================================
# Base Task Class
# ========================================

class IndexingTask(Task):
    """Base task class with retry logic; caller and configuration errors are not retried."""

    autoretry_for = (Exception,)
    dont_autoretry_for = (
        ConfigurationError,
        InvalidChannelReference,
        IndexingAlreadyRunning,
        ValueError,
    )
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True


# ========================================
# Tasks
# ========================================

@celery_app.task(
    base=IndexingTask,
    name='indexing.index_channel',
    bind=True,
)
def index_channel(self, channel_url: str, max_videos: Optional[int] = None) -> dict:
    """
    Index a YouTube channel.

    Args:
        channel_url: Channel URL or handle
        max_videos: Only index the newest ``max_videos`` uploads

    Returns:
        IndexRunSummary as a dictionary
    """
    async def _index():
        services = build_services()
        try:
            summary = await services.indexer.index_channel(channel_url, max_videos)
        except RunFailure as e:
            # Missing credentials will not fix themselves on retry
            cause = _configuration_cause(e)
            if cause is not None:
                raise cause from e
            raise
        finally:
            await services.close()
        return summary.model_dump(mode="json")

    logger.info("index_channel_task_started", channel_url=channel_url, task_id=self.request.id)
    return run_async(_index())


@celery_app.task(
    base=IndexingTask,
    name='indexing.regenerate_missing_embeddings',
    bind=True,
)
def regenerate_missing_embeddings(self, batch_size: Optional[int] = None) -> dict:
    """
    Embed chunks that were stored without an embedding.

    Returns:
        {'processed': int, 'errors': int, 'total': int}
    """
    async def _regenerate():
        services = build_services()
        try:
            result = await services.maintenance.regenerate_missing_embeddings(batch_size)
        finally:
            await services.close()
        return result.model_dump()

    return run_async(_regenerate())


@celery_app.task(name='indexing.database_status')
def database_status() -> dict:
    """Index health report (counts, coverage, recent runs, recommendations)."""
    async def _status():
        services = build_services()
        try:
            report = await services.maintenance.database_status()
        finally:
            await services.close()
        return report.model_dump(mode="json")

    return run_async(_status())
