# =============================================================================
# Users API — Account Records
# =============================================================================
#
# ENDPOINTS (prefix /api/addUsers):
#   POST   /saveCreateUser          — create a user
#   GET    /getUser                 — list users
#   GET    /getUser/{user_id}       — fetch one user
#   PUT    /updateUser/{user_id}    — partial update
#   DELETE /deleteUser/{user_id}    — delete
#
# Users are keyed by the server-generated `userId` (uuid4).
#
# DESIGN DECISION: Passwords are hashed, never stored or returned in plain
# text. Hashing is CPU-bound (PBKDF2), so it runs in a worker thread via
# asyncio.to_thread() to keep the event loop responsive.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import APIRouter, Depends

from app.api.deps import get_user_store
from app.db.store import USER_CONFLICT_MESSAGES, CollectionStore
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.requests import CreateUserRequest, UpdateUserRequest
from app.models.responses import (
    ErrorResponse,
    MessageResponse,
    UserCreatedResponse,
    UserListResponse,
    UserRecord,
    UserResponse,
)
from app.services.auth import hash_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/addUsers", tags=["Users"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "User not found"}}


# ---------------------------------------------------------------------------
# POST /api/addUsers/saveCreateUser
# ---------------------------------------------------------------------------


@router.post(
    "/saveCreateUser",
    response_model=UserCreatedResponse,
    status_code=201,
    summary="Create a user",
    responses={400: {"model": ErrorResponse}},
)
async def create_user(
    body: CreateUserRequest,
    users: CollectionStore = Depends(get_user_store),
) -> UserCreatedResponse:
    if body.confirmPassword is not None and body.confirmPassword != body.password:
        raise ValidationError("Passwords do not match.", field="confirmPassword")

    # Pre-checks give precise messages; the unique indexes still catch races.
    for field_name in ("email", "officialEmail"):
        if await users.find_one({field_name: getattr(body, field_name)}) is not None:
            raise ConflictError(USER_CONFLICT_MESSAGES[field_name], field=field_name)

    user = {
        "userId": str(uuid.uuid4()),
        "username": body.username,
        "email": body.email,
        "officialEmail": body.officialEmail,
        "role": body.role,
        "passwordHash": await asyncio.to_thread(hash_password, body.password),
    }
    inserted_id = await users.insert(user)

    logger.info("Created user %s (role=%s)", user["userId"], user["role"])
    return UserCreatedResponse(
        message="User created successfully",
        userId=user["userId"],
        user=UserRecord.model_validate({**user, "id": inserted_id}),
    )


# ---------------------------------------------------------------------------
# GET /api/addUsers/getUser
# ---------------------------------------------------------------------------


@router.get("/getUser", response_model=UserListResponse, summary="List all users")
async def list_users(
    users: CollectionStore = Depends(get_user_store),
) -> UserListResponse:
    records = await users.find_all()
    return UserListResponse(
        message="Users retrieved successfully",
        users=[UserRecord.model_validate(r) for r in records],
    )


@router.get(
    "/getUser/{user_id}",
    response_model=UserResponse,
    summary="Get a user by userId",
    responses=_NOT_FOUND,
)
async def get_user(
    user_id: str,
    users: CollectionStore = Depends(get_user_store),
) -> UserResponse:
    record = await users.find_by_id(user_id)
    if record is None:
        raise NotFoundError("User not found")
    return UserResponse(
        message="User retrieved successfully",
        user=UserRecord.model_validate(record),
    )


# ---------------------------------------------------------------------------
# PUT /api/addUsers/updateUser/{user_id}
# ---------------------------------------------------------------------------


@router.put(
    "/updateUser/{user_id}",
    response_model=UserResponse,
    summary="Update a user",
    responses=_NOT_FOUND,
)
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    users: CollectionStore = Depends(get_user_store),
) -> UserResponse:
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "password" in changes:
        changes["passwordHash"] = await asyncio.to_thread(
            hash_password, changes.pop("password"),
        )

    record = await users.update_by_id(user_id, changes)

    logger.info("Updated user %s (%s)", user_id, ", ".join(sorted(changes)) or "no changes")
    return UserResponse(
        message="User updated successfully",
        user=UserRecord.model_validate(record),
    )


# ---------------------------------------------------------------------------
# DELETE /api/addUsers/deleteUser/{user_id}
# ---------------------------------------------------------------------------


@router.delete(
    "/deleteUser/{user_id}",
    response_model=MessageResponse,
    summary="Delete a user",
    responses=_NOT_FOUND,
)
async def delete_user(
    user_id: str,
    users: CollectionStore = Depends(get_user_store),
) -> MessageResponse:
    await users.delete_by_id(user_id)
    logger.info("Deleted user %s", user_id)
    return MessageResponse(message="User deleted successfully")
