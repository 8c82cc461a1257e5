# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs background jobs that must outlive the request that caused them.
# In this service that is orphaned-blob cleanup: when an agent create or
# document re-upload fails after some files already reached blob storage,
# the blob names are queued here and deleted by a worker.
#
# WHY CELERY OVER FASTAPI BACKGROUNDTASKS?
# BackgroundTasks run in the API process and are lost if it restarts. A
# queued cleanup job survives restarts and is retried on transient storage
# errors.
#
# ARCHITECTURE:
# ┌──────────┐     ┌───────┐     ┌──────────────┐     ┌──────────────┐
# │ FastAPI  │────▶│ Redis │────▶│ Celery Worker│────▶│ Blob Storage │
# │(producer)│     │(broker)│    │  (consumer)  │     │   (delete)   │
# └──────────┘     └───────┘     └──────────────┘     └──────────────┘
#
# Run a worker with:
#   celery -A app.workers.celery_app worker --loglevel=info
# =============================================================================

from celery import Celery

from app.config import settings

celery_app = Celery(
    "app.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only: task arguments are plain lists of blob names.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Don't acknowledge until the task completes, and re-queue tasks whose
    # worker died, so a crash mid-cleanup doesn't leak blobs permanently.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    task_soft_time_limit=120,
    task_time_limit=300,

    # --- Results ---
    result_expires=3600,

    # --- Task Discovery ---
    include=["app.workers.tasks"],
)
