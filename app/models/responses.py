# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API. Every body is
# a JSON object with at least a `message`; success bodies also carry the
# affected record or list.
#
# DESIGN DECISION: Separate response models from stored documents.
# - AgentRecord allows extra keys, so `<key>FilePath` URLs for any configured
#   document type pass through without being declared one by one.
# - UserRecord declares only public fields; `passwordHash` is dropped on the
#   way out.
# =============================================================================

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.requests import Address


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class MessageResponse(BaseModel):
    """Bare acknowledgement, e.g. after a delete."""

    message: str


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response."""

    message: str
    error: Any | None = Field(
        default=None,
        description="Underlying cause, when one is available",
    )


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class AgentRecord(BaseModel):
    """A stored agent, including any uploaded document URLs."""

    id: str | None = Field(default=None, description="Store-generated id")
    agentId: str
    firstName: str | None = None
    lastName: str | None = None
    email: str | None = None
    mobileNumber: str | None = None
    gender: str | None = None
    dateOfBirth: str | None = None
    address: Address | None = None

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "examples": [
                {
                    "id": "665f1c2e9b1e8a3d4c2b1a00",
                    "agentId": "0b7f6a52-3f57-4a8e-9f0e-6c1d2b3a4f5e",
                    "firstName": "Asha",
                    "lastName": "Rao",
                    "email": "asha@example.com",
                    "mobileNumber": "9876543210",
                    "gender": "female",
                    "dateOfBirth": "1990-04-12",
                    "aadharFilePath": "https://acct.blob.core.windows.net/agentfiles/aadhar-...",
                    "address": {"city": "Pune", "country": "India"},
                }
            ]
        },
    )


class AgentResponse(BaseModel):
    message: str
    agent: AgentRecord


class AgentListResponse(BaseModel):
    message: str
    agents: list[AgentRecord]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserRecord(BaseModel):
    """A stored user without credentials."""

    id: str | None = None
    userId: str
    username: str | None = None
    email: str | None = None
    officialEmail: str | None = None
    role: str | None = None

    model_config = ConfigDict(extra="ignore")


class UserResponse(BaseModel):
    message: str
    user: UserRecord


class UserCreatedResponse(BaseModel):
    message: str
    userId: str
    user: UserRecord


class UserListResponse(BaseModel):
    message: str
    users: list[UserRecord]
