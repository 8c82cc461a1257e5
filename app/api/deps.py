# =============================================================================
# API Dependencies — Store, Blob Client and Pipeline Injection
# =============================================================================
#
# The RecordStore and BlobStoreClient are built once in the application
# lifespan (app/main.py) and kept on `app.state`. Handlers never reach for
# globals; they declare what they need through these dependencies.
#
# DESIGN DECISION: FastAPI dependencies over module-level singletons.
# - The handles have a clear owner (the lifespan) and teardown point
# - Tests swap any of them via app.dependency_overrides, no patching needed
# =============================================================================

from __future__ import annotations

from fastapi import Depends, Request

from app.config import Settings, get_settings
from app.db.store import CollectionStore, RecordStore
from app.services.blob_store import BlobStoreClient
from app.services.upload_pipeline import AgentUploadPipeline
from app.workers.tasks import schedule_orphan_cleanup


def get_record_store(request: Request) -> RecordStore:
    return request.app.state.record_store


def get_agent_store(store: RecordStore = Depends(get_record_store)) -> CollectionStore:
    return store.agents


def get_user_store(store: RecordStore = Depends(get_record_store)) -> CollectionStore:
    return store.users


def get_blob_store(request: Request) -> BlobStoreClient:
    return request.app.state.blob_store


def get_upload_pipeline(
    agents: CollectionStore = Depends(get_agent_store),
    blob_store: BlobStoreClient = Depends(get_blob_store),
    settings: Settings = Depends(get_settings),
) -> AgentUploadPipeline:
    """Build the per-request upload pipeline from the shared handles."""
    return AgentUploadPipeline(
        agents,
        blob_store,
        upload_dir=settings.upload_tmp_dir,
        document_keys=settings.document_keys,
        strict=settings.strict_file_uploads,
        chunk_size=settings.upload_chunk_size,
        on_orphans=schedule_orphan_cleanup,
    )
