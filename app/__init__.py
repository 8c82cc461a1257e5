# =============================================================================
# Agent Records API
# =============================================================================
# A REST backend for agent and user records stored in MongoDB, with agent
# identity documents uploaded to Azure Blob Storage.
#
# Package structure:
#   app/
#   ├── api/          → FastAPI route handlers (agents, users, health)
#   ├── db/           → Record store over MongoDB collections
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Upload pipeline, blob storage client, password hashing
#   └── workers/      → Celery app and orphaned-blob cleanup task
# =============================================================================
