"""
Celery tasks for background processing.
"""

from tubeindex.tasks.indexing_tasks import (
    database_status,
    index_channel,
    regenerate_missing_embeddings,
)

__all__ = [
    "index_channel",
    "regenerate_missing_embeddings",
    "database_status",
]
