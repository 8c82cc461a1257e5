# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - agents.py: Agent create (multipart upload), read, update, delete
#   - users.py: User account CRUD
#   - health.py: Liveness check
#   - deps.py: Dependencies injecting the shared store and blob client
# =============================================================================
