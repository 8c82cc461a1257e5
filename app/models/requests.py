# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API.
#
# DESIGN DECISION: Typed request structures, unknown fields ignored.
# Multipart forms and JSON bodies are validated into explicit models with
# `extra="ignore"`: anything a client sends beyond the declared fields is
# dropped before it reaches the database. Document URLs (`<key>FilePath`)
# are never accepted from clients; they are only produced by uploads.
#
# Multipart forms (AgentCreateForm, AgentUpdateForm) are built by the upload
# pipeline from normalized form fields. JSON bodies (AgentUpdateRequest,
# CreateUserRequest, UpdateUserRequest) are parsed by FastAPI directly.
# =============================================================================

from datetime import date
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

ADDRESS_FIELDS = (
    "street",
    "wardNumber",
    "constituency",
    "city",
    "state",
    "postCode",
    "country",
)


def _check_iso_date(value: str) -> str:
    try:
        date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError("must be an ISO date (YYYY-MM-DD)") from exc
    return value


# Kept as the submitted string so records round-trip unchanged.
IsoDate = Annotated[str, AfterValidator(_check_iso_date)]


class Address(BaseModel):
    """Postal address of an agent. Every part is optional."""

    street: str | None = None
    wardNumber: str | None = None
    constituency: str | None = None
    city: str | None = None
    state: str | None = None
    postCode: str | None = None
    country: str | None = None

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Agents — multipart forms
# ---------------------------------------------------------------------------


class AgentCreateForm(BaseModel):
    """
    Scalar fields of a create-agent multipart form.

    Address parts arrive as flat form fields (street, city, ...) and are
    nested under `address` when the record is assembled.
    """

    firstName: str
    lastName: str
    email: str
    mobileNumber: str
    gender: str
    dateOfBirth: IsoDate

    street: str | None = None
    wardNumber: str | None = None
    constituency: str | None = None
    city: str | None = None
    state: str | None = None
    postCode: str | None = None
    country: str | None = None

    model_config = ConfigDict(extra="ignore")


class AgentUpdateForm(BaseModel):
    """
    Scalar fields of a document re-upload form. All optional, but a field
    that is sent may not be blank: required agent fields can't be cleared.
    """

    firstName: str | None = Field(default=None, min_length=1)
    lastName: str | None = Field(default=None, min_length=1)
    email: str | None = Field(default=None, min_length=1)
    mobileNumber: str | None = Field(default=None, min_length=1)
    gender: str | None = Field(default=None, min_length=1)
    dateOfBirth: IsoDate | None = None

    street: str | None = None
    wardNumber: str | None = None
    constituency: str | None = None
    city: str | None = None
    state: str | None = None
    postCode: str | None = None
    country: str | None = None

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Agents — JSON
# ---------------------------------------------------------------------------


class AgentUpdateRequest(BaseModel):
    """
    Request body for PUT /api/agents/{agent_id} — partial update.

    Only the fields present in the body are changed. `address` is merged per
    sub-field, so sending {"address": {"city": "Pune"}} keeps the street.
    Uniqueness of email / mobileNumber is enforced by the store indexes only.

    Example:
        {"firstName": "Asha", "address": {"city": "Pune"}}
    """

    firstName: str | None = Field(default=None, min_length=1)
    lastName: str | None = Field(default=None, min_length=1)
    email: str | None = Field(default=None, min_length=1)
    mobileNumber: str | None = Field(default=None, min_length=1)
    gender: str | None = Field(default=None, min_length=1)
    dateOfBirth: IsoDate | None = None
    address: Address | None = None

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class CreateUserRequest(BaseModel):
    """
    Request body for POST /api/addUsers/saveCreateUser.

    confirmPassword is optional; when given it must equal password. Neither
    is stored: the password is hashed before persistence.
    """

    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    officialEmail: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    confirmPassword: str | None = None

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "username": "alice",
                    "email": "a@x.com",
                    "officialEmail": "a@corp.com",
                    "role": "agent",
                    "password": "p1",
                    "confirmPassword": "p1",
                }
            ]
        },
    )


class UpdateUserRequest(BaseModel):
    """Request body for PUT /api/addUsers/updateUser/{user_id}. All optional."""

    username: str | None = Field(default=None, min_length=1)
    email: str | None = Field(default=None, min_length=1)
    officialEmail: str | None = Field(default=None, min_length=1)
    role: str | None = Field(default=None, min_length=1)
    password: str | None = Field(default=None, min_length=1)

    model_config = ConfigDict(extra="ignore")
