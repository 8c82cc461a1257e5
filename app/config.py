# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# DESIGN DECISION: We use Pydantic V2's `BaseSettings` for configuration.
# This provides:
# 1. Type-safe configuration with validation at startup
# 2. Automatic loading from environment variables
# 3. Support for .env files (via `env_file` in model_config)
# 4. Sensible defaults for local development
#
# HOW IT WORKS:
# Pydantic Settings loads values in this priority order (highest first):
#   1. Environment variables (e.g., `MONGO_URI=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from app.config import settings
#   print(settings.mongo_uri)
# =============================================================================

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have defaults for local development against a local
    MongoDB and the Azurite storage emulator, except the blob credentials,
    which must be provided in one of the two supported forms.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Agent Records API"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Document Database — MongoDB
    # -------------------------------------------------------------------------
    # One collection per record type. Uniqueness constraints are enforced by
    # unique indexes created at startup (see app/db/store.py).
    # -------------------------------------------------------------------------
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db_name: str = "agent_records"
    agents_collection: str = "agents"
    users_collection: str = "users"

    # -------------------------------------------------------------------------
    # Blob Storage — Azure
    # -------------------------------------------------------------------------
    # Two credential forms are supported:
    #   1. AZURE_STORAGE_CONNECTION_STRING (account key or SAS embedded)
    #   2. AZURE_STORAGE_ACCOUNT_URL + optional AZURE_STORAGE_SAS_TOKEN
    # The connection string wins when both are set.
    # -------------------------------------------------------------------------
    azure_storage_connection_string: str | None = None
    azure_storage_account_url: str | None = None
    azure_storage_sas_token: str | None = None
    azure_container_name: str = "agentfiles"

    # -------------------------------------------------------------------------
    # File Upload
    # -------------------------------------------------------------------------
    # Multipart file parts are staged to disk under upload_tmp_dir before
    # being streamed to blob storage. Staged files are removed as soon as
    # their upload finishes, whether it succeeded or not.
    #
    # document_keys: form keys accepted as agent documents. A file sent under
    # key "pan" is stored as blob "pan-<uuid>" and recorded as "panFilePath".
    #
    # strict_file_uploads: when False, empty, unreadable or unknown file parts
    # are skipped with a warning. When True they fail the request.
    # -------------------------------------------------------------------------
    upload_tmp_dir: str = str(Path(tempfile.gettempdir()) / "agent-uploads")
    upload_chunk_size: int = 1024 * 1024
    document_keys: list[str] = ["aadhar", "pan", "voterId"]
    strict_file_uploads: bool = False

    # -------------------------------------------------------------------------
    # Orphaned Blob Cleanup — Celery + Redis
    # -------------------------------------------------------------------------
    # Blobs uploaded by a request that later fails (e.g. the DB insert is
    # rejected) are orphaned. When enabled, their names are queued for
    # deletion by a Celery worker.
    #   db 0 = Celery broker
    #   db 1 = Celery result backend
    # -------------------------------------------------------------------------
    orphan_cleanup_enabled: bool = True
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------
    cors_allowed_origins: list[str] = ["http://localhost:3000"]

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------
    # PBKDF2-HMAC-SHA256 work factor for stored user passwords.
    # -------------------------------------------------------------------------
    password_hash_iterations: int = 600_000

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        # Load from .env file in the project root
        env_file=".env",
        env_file_encoding="utf-8",
        # Allow extra fields in environment (don't crash on unknown vars)
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    In tests, you can override this with FastAPI's dependency_overrides:
        app.dependency_overrides[get_settings] = lambda: Settings(debug=True)
    """
    return Settings()


# ---------------------------------------------------------------------------
# Module-level convenience instance
# ---------------------------------------------------------------------------
# Import this directly in most cases:
#   from app.config import settings
# ---------------------------------------------------------------------------
settings = get_settings()
