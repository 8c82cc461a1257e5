# =============================================================================
# Celery Task Definitions — Orphaned Blob Cleanup
# =============================================================================
#
# `delete_orphaned_blobs` removes blobs that were uploaded by a request which
# then failed (see app/services/upload_pipeline.py). Those blobs are not
# referenced by any agent record.
#
# `schedule_orphan_cleanup` is the producer side, called from the request
# path. It must never fail the request: if the broker is unreachable, the
# orphaned names are logged (they are already logged by the pipeline too)
# and the request's own error is what the client sees.
#
# IMPORTANT: Celery workers are SYNCHRONOUS. The task uses the sync Azure
# client through app.services.blob_store.delete_blobs().
#
# RETRY STRATEGY:
# max_retries=5 with exponential backoff on AzureError (transient network or
# throttling). Blobs that are already gone count as deleted.
# =============================================================================

import logging

from azure.core.exceptions import AzureError

from app.config import settings
from app.services.blob_store import delete_blobs
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="delete_orphaned_blobs",
    max_retries=5,
    default_retry_delay=30,
)
def delete_orphaned_blobs(self, blob_names: list[str]) -> dict:
    """
    Delete orphaned blobs from the agent documents container.

    Args:
        self: Celery task instance (bound task).
        blob_names: Names of blobs no record refers to.

    Returns:
        dict with the requested and deleted blob names.
    """
    logger.info(
        "[%s] Deleting %d orphaned blob(s) from '%s'",
        self.request.id, len(blob_names), settings.azure_container_name,
    )

    try:
        deleted = delete_blobs(blob_names, settings)
    except AzureError as exc:
        logger.warning("[%s] Orphan cleanup failed: %s", self.request.id, exc)
        raise self.retry(exc=exc, countdown=30 * 2 ** self.request.retries)

    summary = {"requested": list(blob_names), "deleted": deleted}
    logger.info("[%s] Orphan cleanup complete: %s", self.request.id, summary)
    return summary


def schedule_orphan_cleanup(blob_names: list[str]) -> None:
    """Queue orphaned blobs for deletion. Broker failures are only logged."""
    if not settings.orphan_cleanup_enabled or not blob_names:
        return
    try:
        task = delete_orphaned_blobs.delay(blob_names)
    except Exception as exc:
        logger.error(
            "Could not queue cleanup for orphaned blobs %s: %s", blob_names, exc,
        )
        return
    logger.info("Queued orphan cleanup task %s for %d blob(s)", task.id, len(blob_names))
