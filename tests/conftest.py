# =============================================================================
# Shared Test Fixtures — In-Memory Fakes
# =============================================================================
#
# Tests run without MongoDB, Azure or Redis. The fakes below honour the same
# contracts as the real implementations:
#   FakeCollectionStore — CollectionStore protocol, including unique-field
#                         enforcement (like the Mongo unique indexes) and
#                         dotted-key merges for "address.<part>" updates
#   FakeBlobStore       — BlobStoreClient.upload(), recording every blob and
#                         the staged temp file it was streamed from
# =============================================================================

from __future__ import annotations

import copy
import io
import uuid
from pathlib import Path

import pytest
from starlette.datastructures import Headers, UploadFile

from app.errors import ConflictError, NotFoundError, UploadError


class FakeCollectionStore:
    """In-memory CollectionStore. `calls` records the order of operations."""

    def __init__(self, id_field: str, unique_fields: tuple[str, ...] = (), label: str = "Record"):
        self.id_field = id_field
        self.unique_fields = unique_fields
        self.label = label
        self.records: list[dict] = []
        self.calls: list[str] = []
        self.fail_insert: Exception | None = None

    async def insert(self, record: dict) -> str:
        self.calls.append("insert")
        if self.fail_insert is not None:
            raise self.fail_insert
        for field_name in self.unique_fields:
            if any(r.get(field_name) == record.get(field_name) for r in self.records):
                raise ConflictError(f"{field_name} already exists", field=field_name)
        record_id = uuid.uuid4().hex[:24]
        self.records.append({**copy.deepcopy(record), "id": record_id})
        return record_id

    async def find_one(self, filter: dict) -> dict | None:
        self.calls.append(f"find_one:{','.join(filter)}")
        for record in self.records:
            if all(record.get(k) == v for k, v in filter.items()):
                return copy.deepcopy(record)
        return None

    async def find_by_id(self, record_id: str) -> dict | None:
        record = self._locate(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def find_all(self) -> list[dict]:
        return copy.deepcopy(self.records)

    async def update_by_id(self, record_id: str, partial: dict) -> dict:
        self.calls.append("update")
        record = self._locate(record_id)
        if record is None:
            raise NotFoundError(f"{self.label} not found")
        for key, value in partial.items():
            if key in (self.id_field, "id", "_id"):
                continue
            if "." in key:
                head, tail = key.split(".", 1)
                record.setdefault(head, {})[tail] = value
            else:
                record[key] = value
        return copy.deepcopy(record)

    async def delete_by_id(self, record_id: str) -> None:
        record = self._locate(record_id)
        if record is None:
            raise NotFoundError(f"{self.label} not found")
        self.records.remove(record)

    def _locate(self, record_id: str) -> dict | None:
        for record in self.records:
            if record.get(self.id_field) == record_id or record.get("id") == record_id:
                return record
        return None


class FakeBlobStore:
    """Records uploads; blob names starting with a prefix in `fail_on` fail."""

    def __init__(self) -> None:
        self.blobs: dict[str, tuple[bytes, str | None]] = {}
        self.staged_paths: list[Path] = []
        self.fail_on: set[str] = set()

    async def upload(self, name: str, data, content_type: str | None = None) -> str:
        if any(name.startswith(prefix) for prefix in self.fail_on):
            raise UploadError(
                "Failed to upload file to blob storage", RuntimeError("connection reset"),
            )
        if hasattr(data, "name"):
            self.staged_paths.append(Path(data.name))
        content = data if isinstance(data, bytes) else data.read()
        self.blobs[name] = (content, content_type)
        return f"https://fakeaccount.blob.core.windows.net/agentfiles/{name}"


def make_upload(
    content: bytes = b"%PDF-1.4 fake document",
    filename: str | None = "document.pdf",
    content_type: str = "application/pdf",
    file: io.IOBase | None = None,
) -> UploadFile:
    """Build a Starlette UploadFile as the multipart parser would."""
    return UploadFile(
        file=file or io.BytesIO(content),
        size=len(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def agent_store() -> FakeCollectionStore:
    return FakeCollectionStore("agentId", ("email", "mobileNumber"), label="Agent")


@pytest.fixture
def user_store() -> FakeCollectionStore:
    return FakeCollectionStore("userId", ("email", "officialEmail"), label="User")


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def upload_factory():
    return make_upload


@pytest.fixture
def agent_fields() -> dict[str, str]:
    return {
        "firstName": "Asha",
        "lastName": "Rao",
        "email": "asha@example.com",
        "mobileNumber": "9876543210",
        "gender": "female",
        "dateOfBirth": "1990-04-12",
        "street": "12 MG Road",
        "wardNumber": "7",
        "city": "Pune",
        "country": "India",
    }
