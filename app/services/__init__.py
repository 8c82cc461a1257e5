# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core business logic, separated from API handlers:
#   - upload_pipeline.py: Agent create / document re-upload orchestration
#   - blob_store.py: Azure Blob Storage client (async + sync helpers)
#   - auth.py: Password hashing
# =============================================================================
