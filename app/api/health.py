# =============================================================================
# Health API — Liveness Check
# =============================================================================
#
# GET /health reports the name and version of the running app. They are read
# from the Settings the app was created with (app.state.settings), so an app
# built by create_app(custom_settings) describes itself correctly.
#
# Liveness only: MongoDB and blob storage are not contacted.
# =============================================================================

from fastapi import APIRouter, Request

from app.config import Settings
from app.models.responses import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health(request: Request) -> HealthResponse:
    app_settings: Settings = request.app.state.settings
    return HealthResponse(version=app_settings.app_version, service=app_settings.app_name)
