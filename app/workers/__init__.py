# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
# Handles work that must outlive a request:
#   - celery_app.py: Celery application configuration
#   - tasks.py: Orphaned blob cleanup
# =============================================================================
