# =============================================================================
# Blob Store Client — Azure Blob Storage
# =============================================================================
#
# Thin wrapper over one Azure Blob Storage container. Two operations are used
# by the request path:
#   ensure_container() — idempotent create-if-absent
#   upload()           — write bytes under a caller-chosen name, return URL
#
# DESIGN DECISION: Never overwrite. upload() passes overwrite=False, so a name
# collision surfaces as an UploadError instead of silently replacing another
# agent's document. Name uniqueness is the caller's job (the upload pipeline
# appends a uuid4 to every blob name).
#
# DESIGN DECISION: Async client for requests, sync client for workers.
# FastAPI handlers use azure.storage.blob.aio so uploads don't block the event
# loop. Celery workers are synchronous and use the plain client through
# delete_blobs() below.
#
# CREDENTIALS:
#   1. Connection string  → BlobServiceClient.from_connection_string()
#   2. Account URL + SAS  → BlobServiceClient(account_url, credential=sas)
# With a SAS credential, BlobClient.url already carries the token, so the
# returned URL is access-token-qualified.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import IO, Any

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient as SyncBlobServiceClient
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from app.config import Settings
from app.errors import UploadError

logger = logging.getLogger(__name__)


class BlobStoreClient:
    """Async client bound to a single blob container."""

    def __init__(self, service_client: BlobServiceClient, container_name: str) -> None:
        self._service_client = service_client
        self.container_name = container_name
        self._container = service_client.get_container_client(container_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> BlobStoreClient:
        """
        Build the client from whichever credential form is configured.

        Raises:
            ValueError: neither a connection string nor an account URL is set.
        """
        if settings.azure_storage_connection_string:
            service_client = BlobServiceClient.from_connection_string(
                settings.azure_storage_connection_string,
            )
        elif settings.azure_storage_account_url:
            service_client = BlobServiceClient(
                account_url=settings.azure_storage_account_url,
                credential=settings.azure_storage_sas_token or None,
            )
        else:
            raise ValueError(
                "Blob storage is not configured. Set AZURE_STORAGE_CONNECTION_STRING "
                "or AZURE_STORAGE_ACCOUNT_URL (with AZURE_STORAGE_SAS_TOKEN)."
            )
        return cls(service_client, settings.azure_container_name)

    async def ensure_container(self) -> None:
        """Create the container if it does not exist. Safe to call repeatedly."""
        try:
            await self._container.create_container()
            logger.info("Created blob container '%s'", self.container_name)
        except ResourceExistsError:
            logger.debug("Blob container '%s' already exists", self.container_name)
        except AzureError as exc:
            raise UploadError(
                f"Failed to ensure container '{self.container_name}'", exc,
            ) from exc

    async def upload(
        self,
        name: str,
        data: bytes | IO[bytes] | Iterable[bytes],
        content_type: str | None = None,
    ) -> str:
        """
        Upload `data` as blob `name` and return the blob URL.

        Raises:
            UploadError: the name is taken, or any transport/auth failure.
        """
        blob_client = self._container.get_blob_client(name)
        content_settings = ContentSettings(
            content_type=content_type or "application/octet-stream",
        )
        try:
            await blob_client.upload_blob(
                data,
                overwrite=False,
                content_settings=content_settings,
            )
        except ResourceExistsError as exc:
            raise UploadError(f"Blob '{name}' already exists", exc) from exc
        except AzureError as exc:
            raise UploadError("Failed to upload file to blob storage", exc) from exc

        url = blob_client.url
        logger.info("Uploaded blob '%s' → %s", name, url.split("?", 1)[0])
        return url

    async def close(self) -> None:
        await self._service_client.close()


# ---------------------------------------------------------------------------
# Sync helpers — Celery workers
# ---------------------------------------------------------------------------


def _sync_service_client(settings: Settings) -> Any:
    if settings.azure_storage_connection_string:
        return SyncBlobServiceClient.from_connection_string(
            settings.azure_storage_connection_string,
        )
    if settings.azure_storage_account_url:
        return SyncBlobServiceClient(
            account_url=settings.azure_storage_account_url,
            credential=settings.azure_storage_sas_token or None,
        )
    raise ValueError("Blob storage is not configured.")


def delete_blobs(
    blob_names: Iterable[str],
    settings: Settings,
    service_client: Any | None = None,
) -> list[str]:
    """
    Delete blobs by name. Blobs that are already gone are ignored.

    Returns the names that were actually deleted. AzureError other than
    not-found propagates so the calling task can retry.
    """
    client = service_client or _sync_service_client(settings)
    container = client.get_container_client(settings.azure_container_name)

    deleted: list[str] = []
    for name in blob_names:
        try:
            container.delete_blob(name)
            deleted.append(name)
        except ResourceNotFoundError:
            logger.debug("Blob '%s' already deleted", name)
    return deleted
