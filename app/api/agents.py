# =============================================================================
# Agents API — Create with Documents, Read, Update, Delete
# =============================================================================
#
# ENDPOINTS (prefix /api/agents):
#   POST   /create                 — multipart create (upload pipeline)
#   GET    /                       — list agents
#   GET    /{agent_id}             — fetch one agent
#   PUT    /{agent_id}             — JSON partial update
#   PUT    /{agent_id}/documents   — multipart document re-upload
#   DELETE /{agent_id}             — delete (uploaded blobs are kept)
#
# DESIGN DECISION: Two update endpoints, one contract each.
# JSON partial updates and multipart file re-uploads used to share one route.
# Each now has its own path, so a client always knows which body it must
# send and what validation applies.
#
# {agent_id} is the agentId returned at creation. The store id (`id`) is
# accepted too.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import FormData
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.deps import get_agent_store, get_upload_pipeline
from app.db.store import CollectionStore
from app.errors import NotFoundError, ParseError
from app.models.requests import AgentUpdateRequest
from app.models.responses import (
    AgentListResponse,
    AgentRecord,
    AgentResponse,
    ErrorResponse,
    MessageResponse,
)
from app.services.upload_pipeline import AgentUploadPipeline, flatten_agent_update

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["Agents"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Agent not found"}}


async def _read_form(request: Request) -> FormData:
    """Parse the multipart body, reporting malformed input as ParseError."""
    try:
        return await request.form()
    except StarletteHTTPException as exc:
        raise ParseError("File upload error", exc) from exc


# ---------------------------------------------------------------------------
# POST /api/agents/create — Create an agent with documents
# ---------------------------------------------------------------------------


@router.post(
    "/create",
    response_model=AgentResponse,
    status_code=201,
    summary="Create an agent, uploading any attached documents",
    description=(
        "Multipart form. Required fields: firstName, lastName, email, "
        "mobileNumber, gender, dateOfBirth. Optional address fields: street, "
        "wardNumber, constituency, city, state, postCode, country. Files may "
        "be attached under the configured document keys (aadhar, pan, voterId)."
    ),
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_agent(
    request: Request,
    pipeline: AgentUploadPipeline = Depends(get_upload_pipeline),
) -> AgentResponse:
    form = await _read_form(request)
    try:
        agent = await pipeline.create(form)
    finally:
        await form.close()

    return AgentResponse(
        message="Agent created successfully",
        agent=AgentRecord.model_validate(agent),
    )


# ---------------------------------------------------------------------------
# GET /api/agents — List agents
# ---------------------------------------------------------------------------


@router.get("/", response_model=AgentListResponse, summary="List all agents")
async def list_agents(
    agents: CollectionStore = Depends(get_agent_store),
) -> AgentListResponse:
    records = await agents.find_all()
    return AgentListResponse(
        message="Agents retrieved successfully",
        agents=[AgentRecord.model_validate(r) for r in records],
    )


# ---------------------------------------------------------------------------
# GET /api/agents/{agent_id} — Fetch one agent
# ---------------------------------------------------------------------------


@router.get(
    "/{agent_id}",
    response_model=AgentResponse,
    summary="Get an agent by id",
    responses=_NOT_FOUND,
)
async def get_agent(
    agent_id: str,
    agents: CollectionStore = Depends(get_agent_store),
) -> AgentResponse:
    record = await agents.find_by_id(agent_id)
    if record is None:
        raise NotFoundError("Agent not found")
    return AgentResponse(
        message="Agent retrieved successfully",
        agent=AgentRecord.model_validate(record),
    )


# ---------------------------------------------------------------------------
# PUT /api/agents/{agent_id} — JSON partial update
# ---------------------------------------------------------------------------


@router.put(
    "/{agent_id}",
    response_model=AgentResponse,
    summary="Update agent fields",
    description=(
        "Merges the given fields into the stored agent. Fields not in the "
        "body are unchanged; address parts merge individually."
    ),
    responses=_NOT_FOUND,
)
async def update_agent(
    agent_id: str,
    body: AgentUpdateRequest,
    agents: CollectionStore = Depends(get_agent_store),
) -> AgentResponse:
    changes = flatten_agent_update(
        body.model_dump(exclude_unset=True, exclude_none=True),
    )
    record = await agents.update_by_id(agent_id, changes)

    logger.info("Updated agent %s (%d field(s))", agent_id, len(changes))
    return AgentResponse(
        message="Agent updated successfully",
        agent=AgentRecord.model_validate(record),
    )


# ---------------------------------------------------------------------------
# PUT /api/agents/{agent_id}/documents — Multipart document re-upload
# ---------------------------------------------------------------------------


@router.put(
    "/{agent_id}/documents",
    response_model=AgentResponse,
    summary="Re-upload agent documents",
    description=(
        "Multipart form. Uploaded files replace the stored URL for their "
        "document key; scalar fields in the form are merged like a partial "
        "update."
    ),
    responses={**_NOT_FOUND, 400: {"model": ErrorResponse}},
)
async def update_agent_documents(
    agent_id: str,
    request: Request,
    pipeline: AgentUploadPipeline = Depends(get_upload_pipeline),
) -> AgentResponse:
    form = await _read_form(request)
    try:
        agent = await pipeline.update_documents(agent_id, form)
    finally:
        await form.close()

    return AgentResponse(
        message="Agent updated successfully",
        agent=AgentRecord.model_validate(agent),
    )


# ---------------------------------------------------------------------------
# DELETE /api/agents/{agent_id}
# ---------------------------------------------------------------------------


@router.delete(
    "/{agent_id}",
    response_model=MessageResponse,
    summary="Delete an agent",
    responses=_NOT_FOUND,
)
async def delete_agent(
    agent_id: str,
    agents: CollectionStore = Depends(get_agent_store),
) -> MessageResponse:
    await agents.delete_by_id(agent_id)
    logger.info("Deleted agent %s", agent_id)
    return MessageResponse(message="Agent deleted successfully")
