# =============================================================================
# Agent Upload Pipeline — Multipart Create / Document Re-upload
# =============================================================================
#
# Turns one multipart request into zero or more uploaded blobs plus one
# persisted agent record.
#
# CREATE PIPELINE:
#   1. Normalize    — repeated form fields collapse to their first value
#   2. Validate     — required fields present, dateOfBirth is an ISO date
#   3. Uniqueness   — email, then mobileNumber, must not exist yet
#   4. Upload files — each accepted file part is staged to a temp file and
#                     streamed to blob storage as "<key>-<uuid4><ext>"
#   5. Persist      — scalar fields + nested address + "<key>FilePath" URLs
#                     + a fresh agentId are inserted as one document
#
# ORDERING: steps 1–3 have no side effects and always complete before the
# first upload, so invalid or duplicate requests never leave blobs behind.
# Uploads always complete before the insert.
#
# KNOWN GAP: uploads are durable. If an upload or the insert fails after at
# least one blob was written, those blobs are orphaned. They are logged at
# ERROR and handed to `on_orphans` (wired to a Celery cleanup task), and the
# original exception is re-raised.
#
# FILE POLICY (tolerant by default):
#   - empty file parts (no filename, or zero bytes) are skipped
#   - keys outside `document_keys` are skipped
#   - parts whose bytes can't be read from the request are skipped
# With strict=True the first two raise ValidationError and the third raises
# UploadError, all before anything is uploaded where possible. Failures of
# the staging area (temp dir, disk writes) and of the blob store are always
# fatal.
# =============================================================================

from __future__ import annotations

import logging
import os
import re
import tempfile
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Iterator, Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import IO, Any, Protocol

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from starlette.datastructures import UploadFile

from app.db.store import AGENT_CONFLICT_MESSAGES, CollectionStore, Record
from app.errors import ConflictError, NotFoundError, UploadError, ValidationError
from app.models.requests import ADDRESS_FIELDS, AgentCreateForm, AgentUpdateForm

logger = logging.getLogger(__name__)

REQUIRED_AGENT_FIELDS = (
    "firstName",
    "lastName",
    "email",
    "mobileNumber",
    "gender",
    "dateOfBirth",
)
UNIQUE_AGENT_FIELDS = ("email", "mobileNumber")
FILE_PATH_SUFFIX = "FilePath"

_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,10}$")

OrphanHandler = Callable[[list[str]], None]


class UnreadablePartError(Exception):
    """The client's file part could not be read. The OSError is the __cause__."""


class BlobStore(Protocol):
    """The part of BlobStoreClient the pipeline needs."""

    async def upload(
        self,
        name: str,
        data: bytes | IO[bytes],
        content_type: str | None = None,
    ) -> str:
        ...


# ---------------------------------------------------------------------------
# Step 1 & 2 — Normalization and validation (pure functions)
# ---------------------------------------------------------------------------


def normalize_form(form: Any) -> tuple[dict[str, str], dict[str, UploadFile]]:
    """
    Split a parsed form into scalar fields and file parts.

    Accepts a Starlette FormData (repeated keys via multi_items()) or a plain
    mapping whose values may be lists. Either way, each key keeps only its
    first value: the first string for fields, the first UploadFile for files.
    """
    fields: dict[str, str] = {}
    files: dict[str, UploadFile] = {}

    for key, value in _iter_form_items(form):
        if isinstance(value, UploadFile):
            files.setdefault(key, value)
        elif isinstance(value, str):
            fields.setdefault(key, value)

    return fields, files


def validate_required(fields: Mapping[str, str]) -> None:
    """Raise ValidationError naming the first missing or blank required field."""
    for field_name in REQUIRED_AGENT_FIELDS:
        value = fields.get(field_name)
        if value is None or not value.strip():
            raise ValidationError(
                f"Missing required field: {field_name}", field=field_name,
            )


def make_blob_name(key: str, filename: str | None = None) -> str:
    """
    Build a collision-free blob name: "<key>-<uuid4>[.ext]".

    uuid4 carries 122 random bits, so collisions are negligible without any
    coordination. Only short alphanumeric extensions are carried over.
    """
    extension = Path(filename).suffix.lower() if filename else ""
    if not _SAFE_EXTENSION.match(extension):
        extension = ""
    return f"{key}-{uuid.uuid4()}{extension}"


def flatten_agent_update(changes: Mapping[str, Any]) -> Record:
    """
    Turn a partial agent update into `$set` keys.

    Address parts, whether nested under "address" or sent flat, become
    "address.<part>" so they merge into the stored address instead of
    replacing it. agentId is never updatable.
    """
    flat: Record = {}
    for key, value in changes.items():
        if key == "address" and isinstance(value, Mapping):
            for part, part_value in value.items():
                flat[f"address.{part}"] = part_value
        elif key in ADDRESS_FIELDS:
            flat[f"address.{key}"] = value
        elif key != "agentId":
            flat[key] = value
    return flat


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class AgentUploadPipeline:
    """
    Request-scoped orchestration of agent creation and document re-upload.

    Holds no per-request state: every call works on its own locals, so one
    instance can serve concurrent requests.
    """

    def __init__(
        self,
        agents: CollectionStore,
        blob_store: BlobStore,
        *,
        upload_dir: str,
        document_keys: Iterable[str],
        strict: bool = False,
        chunk_size: int = 1024 * 1024,
        on_orphans: OrphanHandler | None = None,
    ) -> None:
        self._agents = agents
        self._blob_store = blob_store
        self._upload_dir = Path(upload_dir)
        self._document_keys = frozenset(document_keys)
        self._strict = strict
        self._chunk_size = chunk_size
        self._on_orphans = on_orphans

    async def create(self, form: Any) -> Record:
        """
        Create an agent from a multipart form.

        Returns:
            The persisted record, including `id`, `agentId` and one
            `<key>FilePath` per uploaded document.

        Raises:
            ValidationError: missing/invalid field or rejected file part.
            ConflictError: email or mobileNumber already registered.
            UploadError / PersistenceError: storage failures.
        """
        fields, files = normalize_form(form)
        validate_required(fields)
        agent_form = _validate_model(AgentCreateForm, fields)
        await self._check_unique(agent_form)
        selected = self._select_files(files)

        uploaded: list[str] = []
        try:
            document_urls = await self._upload_files(selected, uploaded)
            record = _assemble_record(agent_form, document_urls)
            inserted_id = await self._agents.insert(record)
        except Exception:
            self._report_orphans(uploaded, "Agent create")
            raise

        logger.info(
            "Created agent %s with %d document(s)",
            record["agentId"], len(document_urls),
        )
        return {**record, "id": inserted_id}

    async def update_documents(self, agent_id: str, form: Any) -> Record:
        """
        Re-upload documents and/or change scalar fields of an existing agent.

        No required-field or uniqueness pre-checks; fields absent from the
        form are left untouched.

        Raises:
            NotFoundError: no agent with this id.
            ValidationError, UploadError, PersistenceError, ConflictError.
        """
        existing = await self._agents.find_by_id(agent_id)
        if existing is None:
            raise NotFoundError("Agent not found")

        fields, files = normalize_form(form)
        update_form = _validate_model(AgentUpdateForm, fields)
        changes = flatten_agent_update(
            update_form.model_dump(exclude_unset=True, exclude_none=True),
        )
        selected = self._select_files(files)

        uploaded: list[str] = []
        try:
            changes.update(await self._upload_files(selected, uploaded))
            record = await self._agents.update_by_id(agent_id, changes)
        except Exception:
            self._report_orphans(uploaded, f"Agent {agent_id} update")
            raise

        logger.info(
            "Updated agent %s (%d field(s), %d document(s))",
            agent_id, len(changes) - len(uploaded), len(uploaded),
        )
        return record

    # --- Step 3 ---

    async def _check_unique(self, agent_form: AgentCreateForm) -> None:
        for field_name in UNIQUE_AGENT_FIELDS:
            value = getattr(agent_form, field_name)
            if await self._agents.find_one({field_name: value}) is not None:
                raise ConflictError(
                    AGENT_CONFLICT_MESSAGES[field_name], field=field_name,
                )

    # --- Step 4 ---

    def _select_files(
        self, files: Mapping[str, UploadFile],
    ) -> list[tuple[str, UploadFile]]:
        """Apply the file policy to every part before anything is uploaded."""
        selected: list[tuple[str, UploadFile]] = []
        for key, upload in files.items():
            if key not in self._document_keys:
                if self._strict:
                    raise ValidationError(
                        f"Unsupported document type: {key}", field=key,
                    )
                logger.warning("Skipping file part with unknown key '%s'", key)
                continue

            if not upload.filename or upload.size == 0:
                if self._strict:
                    raise ValidationError(f"Empty file for: {key}", field=key)
                logger.warning("Skipping empty file part '%s'", key)
                continue

            selected.append((key, upload))
        return selected

    async def _upload_files(
        self,
        selected: list[tuple[str, UploadFile]],
        uploaded: list[str],
    ) -> dict[str, str]:
        """
        Upload each selected file and return {"<key>FilePath": url}.

        `uploaded` is appended to as each blob lands, so the caller knows
        exactly which blobs exist if a later step fails.
        """
        urls: dict[str, str] = {}
        for key, upload in selected:
            blob_name = make_blob_name(key, upload.filename)
            try:
                async with self._staged_copy(key, upload) as stream:
                    url = await self._blob_store.upload(
                        blob_name, stream, upload.content_type,
                    )
            except UnreadablePartError as exc:
                if self._strict:
                    raise UploadError(
                        f"Could not read file for: {key}", exc.__cause__,
                    ) from exc
                logger.warning("Skipping unreadable file part '%s': %s", key, exc.__cause__)
                continue

            uploaded.append(blob_name)
            urls[f"{key}{FILE_PATH_SUFFIX}"] = url
        return urls

    @asynccontextmanager
    async def _staged_copy(
        self, key: str, upload: UploadFile,
    ) -> AsyncIterator[IO[bytes]]:
        """
        Copy an upload to a temp file and yield it opened for reading.

        The temp file is removed on exit. Reading the client's part can fail
        with UnreadablePartError; any failure of the staging area itself
        (mkdir, mkstemp, disk writes) is an UploadError.
        """
        try:
            self._upload_dir.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(prefix=f"{key}-", dir=self._upload_dir)
        except OSError as exc:
            raise UploadError(f"Could not stage file for: {key}", exc) from exc

        path = Path(name)
        try:
            try:
                with os.fdopen(fd, "wb") as staged:
                    await _read_part(upload.seek(0))
                    while chunk := await _read_part(upload.read(self._chunk_size)):
                        staged.write(chunk)
                stream = path.open("rb")
            except OSError as exc:
                raise UploadError(f"Could not stage file for: {key}", exc) from exc

            with stream:
                yield stream
        finally:
            path.unlink(missing_ok=True)

    # --- Orphans ---

    def _report_orphans(self, blob_names: list[str], operation: str) -> None:
        if not blob_names:
            return
        logger.error(
            "%s failed after uploading %d blob(s); orphaned: %s",
            operation, len(blob_names), ", ".join(blob_names),
        )
        if self._on_orphans is None:
            return
        try:
            self._on_orphans(list(blob_names))
        except Exception:
            logger.exception("Orphan handler failed for blobs: %s", blob_names)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


async def _read_part(call: Awaitable[Any]) -> Any:
    """Await a seek/read on an UploadFile, flagging OSError as an unreadable part."""
    try:
        return await call
    except OSError as exc:
        raise UnreadablePartError(str(exc)) from exc


def _iter_form_items(form: Any) -> Iterator[tuple[str, Any]]:
    if hasattr(form, "multi_items"):
        yield from form.multi_items()
        return
    for key, value in form.items():
        if isinstance(value, (list, tuple)):
            for item in value:
                yield key, item
        else:
            yield key, value


def _validate_model(model: type[BaseModel], fields: Mapping[str, str]) -> Any:
    """Validate normalized fields into `model`, mapping errors to ValidationError."""
    try:
        return model.model_validate(dict(fields))
    except SchemaError as exc:
        error = exc.errors()[0]
        field_name = str(error["loc"][0]) if error["loc"] else None
        raise ValidationError(
            f"Invalid value for field: {field_name}", field=field_name, cause=exc,
        ) from exc


def _assemble_record(agent_form: AgentCreateForm, document_urls: dict[str, str]) -> Record:
    data = agent_form.model_dump()
    address = {name: data.pop(name) for name in ADDRESS_FIELDS}

    record: Record = {key: value for key, value in data.items() if value is not None}
    record["address"] = {key: value for key, value in address.items() if value is not None}
    record.update(document_urls)
    record["agentId"] = str(uuid.uuid4())
    return record
