# =============================================================================
# Unit Tests — Agent Upload Pipeline
# =============================================================================
#
# Exercises the create / document re-upload flow against in-memory fakes
# (see conftest.py). No MongoDB or Azure needed.
#
# Test groups:
#   1. Normalization & validation helpers (pure functions)
#   2. Create: validation and uniqueness gates run before any upload
#   3. Create: file upload, naming, skip policy, temp-file cleanup
#   4. Create: orphaned blobs on late failure
#   5. Document re-upload (update) path
# =============================================================================

from __future__ import annotations

import asyncio
import io
import re
from unittest.mock import AsyncMock

import pytest
from starlette.datastructures import FormData

from app.errors import ConflictError, NotFoundError, PersistenceError, UploadError, ValidationError
from app.services.upload_pipeline import (
    REQUIRED_AGENT_FIELDS,
    AgentUploadPipeline,
    flatten_agent_update,
    make_blob_name,
    normalize_form,
    validate_required,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _form(fields: dict[str, str], files: dict | None = None) -> FormData:
    items = list(fields.items()) + list((files or {}).items())
    return FormData(items)


def _pipeline(agent_store, blob_store, tmp_path, **kwargs) -> AgentUploadPipeline:
    return AgentUploadPipeline(
        agent_store,
        blob_store,
        upload_dir=str(tmp_path / "staging"),
        document_keys=["aadhar", "pan", "voterId"],
        **kwargs,
    )


class _BrokenFile(io.BytesIO):
    def read(self, *args):
        raise OSError("device not ready")


# ---------------------------------------------------------------------------
# 1. Normalization & Validation
# ---------------------------------------------------------------------------


class TestNormalizeForm:
    def test_repeated_field_keeps_first_value(self):
        form = FormData([("email", "first@x.com"), ("email", "second@x.com")])
        fields, files = normalize_form(form)
        assert fields == {"email": "first@x.com"}
        assert files == {}

    def test_mapping_with_list_values_keeps_first(self):
        fields, _ = normalize_form({"firstName": ["Asha", "Ignored"], "lastName": "Rao"})
        assert fields == {"firstName": "Asha", "lastName": "Rao"}

    def test_files_are_separated_from_fields(self, upload_factory):
        upload = upload_factory()
        fields, files = normalize_form(FormData([("firstName", "Asha"), ("pan", upload)]))
        assert fields == {"firstName": "Asha"}
        assert files == {"pan": upload}

    def test_repeated_file_keeps_first(self, upload_factory):
        first, second = upload_factory(filename="a.pdf"), upload_factory(filename="b.pdf")
        _, files = normalize_form(FormData([("pan", first), ("pan", second)]))
        assert files["pan"] is first


class TestValidateRequired:
    def test_complete_fields_pass(self, agent_fields):
        validate_required(agent_fields)

    @pytest.mark.parametrize("missing", REQUIRED_AGENT_FIELDS)
    def test_missing_field_is_named(self, agent_fields, missing):
        del agent_fields[missing]
        with pytest.raises(ValidationError) as exc_info:
            validate_required(agent_fields)
        assert exc_info.value.field == missing
        assert exc_info.value.message == f"Missing required field: {missing}"

    def test_blank_value_counts_as_missing(self, agent_fields):
        agent_fields["gender"] = "   "
        with pytest.raises(ValidationError) as exc_info:
            validate_required(agent_fields)
        assert exc_info.value.field == "gender"


class TestBlobNaming:
    def test_name_combines_key_and_uuid(self):
        name = make_blob_name("aadhar", "scan.PDF")
        assert re.fullmatch(r"aadhar-[0-9a-f-]{36}\.pdf", name)

    def test_names_are_unique(self):
        assert make_blob_name("pan") != make_blob_name("pan")

    def test_unsafe_extension_is_dropped(self):
        name = make_blob_name("pan", "evil.p?d/f")
        assert re.fullmatch(r"pan-[0-9a-f-]{36}", name)


class TestFlattenAgentUpdate:
    def test_nested_address_becomes_dotted_keys(self):
        flat = flatten_agent_update({"firstName": "A", "address": {"city": "Pune"}})
        assert flat == {"firstName": "A", "address.city": "Pune"}

    def test_flat_address_parts_become_dotted_keys(self):
        assert flatten_agent_update({"postCode": "411001"}) == {"address.postCode": "411001"}

    def test_agent_id_is_dropped(self):
        assert flatten_agent_update({"agentId": "x", "gender": "m"}) == {"gender": "m"}


# ---------------------------------------------------------------------------
# 2. Create — gates before upload
# ---------------------------------------------------------------------------


class TestCreateGates:
    def test_missing_field_persists_nothing(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        del agent_fields["dateOfBirth"]
        pipeline = _pipeline(agent_store, blob_store, tmp_path)

        with pytest.raises(ValidationError) as exc_info:
            _run(pipeline.create(_form(agent_fields, {"pan": upload_factory()})))

        assert exc_info.value.field == "dateOfBirth"
        assert agent_store.records == []
        assert blob_store.blobs == {}

    def test_malformed_date_is_rejected(self, agent_store, blob_store, tmp_path, agent_fields):
        agent_fields["dateOfBirth"] = "12/04/1990"
        pipeline = _pipeline(agent_store, blob_store, tmp_path)

        with pytest.raises(ValidationError) as exc_info:
            _run(pipeline.create(_form(agent_fields)))
        assert exc_info.value.field == "dateOfBirth"

    def test_duplicate_email_uploads_nothing(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        agent_store.records.append({"agentId": "a1", "email": agent_fields["email"], "mobileNumber": "1"})
        pipeline = _pipeline(agent_store, blob_store, tmp_path)

        with pytest.raises(ConflictError) as exc_info:
            _run(pipeline.create(_form(agent_fields, {"aadhar": upload_factory()})))

        assert exc_info.value.field == "email"
        assert exc_info.value.message == "Email already exists"
        assert blob_store.blobs == {}
        assert len(agent_store.records) == 1

    def test_duplicate_mobile_uploads_nothing(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        agent_store.records.append(
            {"agentId": "a1", "email": "other@x.com", "mobileNumber": agent_fields["mobileNumber"]}
        )
        pipeline = _pipeline(agent_store, blob_store, tmp_path)

        with pytest.raises(ConflictError) as exc_info:
            _run(pipeline.create(_form(agent_fields, {"aadhar": upload_factory()})))

        assert exc_info.value.field == "mobileNumber"
        assert exc_info.value.message == "Mobile number already exists"
        assert blob_store.blobs == {}

    def test_email_checked_before_mobile_before_insert(self, agent_store, blob_store, tmp_path, agent_fields):
        _run(_pipeline(agent_store, blob_store, tmp_path).create(_form(agent_fields)))
        assert agent_store.calls == ["find_one:email", "find_one:mobileNumber", "insert"]


# ---------------------------------------------------------------------------
# 3. Create — uploads and record assembly
# ---------------------------------------------------------------------------


class TestCreateUploads:
    def test_record_has_fields_address_and_urls(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline = _pipeline(agent_store, blob_store, tmp_path)
        form = _form(
            {**agent_fields, "unknownField": "dropped"},
            {"aadhar": upload_factory(b"aadhar bytes", "aadhar.pdf")},
        )

        record = _run(pipeline.create(form))

        assert record["id"]
        assert re.fullmatch(r"[0-9a-f-]{36}", record["agentId"])
        for name in REQUIRED_AGENT_FIELDS:
            assert record[name] == agent_fields[name]
        assert record["address"] == {
            "street": "12 MG Road", "wardNumber": "7", "city": "Pune", "country": "India",
        }
        assert "street" not in record
        assert "unknownField" not in record
        assert record["aadharFilePath"].startswith("https://fakeaccount.blob.core.windows.net/agentfiles/aadhar-")
        assert "panFilePath" not in record
        assert agent_store.records[0]["agentId"] == record["agentId"]

    def test_content_type_and_bytes_are_passed_through(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline = _pipeline(agent_store, blob_store, tmp_path)
        _run(pipeline.create(_form(agent_fields, {"pan": upload_factory(b"png!", "pan.png", "image/png")})))

        [(name, (content, content_type))] = blob_store.blobs.items()
        assert name.startswith("pan-") and name.endswith(".png")
        assert content == b"png!"
        assert content_type == "image/png"

    def test_one_url_field_per_document(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        files = {
            "aadhar": upload_factory(filename="a.pdf"),
            "pan": upload_factory(filename="p.pdf"),
            "voterId": upload_factory(filename="v.jpg", content_type="image/jpeg"),
        }
        record = _run(_pipeline(agent_store, blob_store, tmp_path).create(_form(agent_fields, files)))

        assert {k for k in record if k.endswith("FilePath")} == {
            "aadharFilePath", "panFilePath", "voterIdFilePath",
        }
        assert len(blob_store.blobs) == 3

    def test_staged_files_are_removed(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline = _pipeline(agent_store, blob_store, tmp_path)
        _run(pipeline.create(_form(agent_fields, {"pan": upload_factory()})))

        assert blob_store.staged_paths
        assert all(not p.exists() for p in blob_store.staged_paths)
        assert list((tmp_path / "staging").iterdir()) == []

    def test_staged_file_removed_when_upload_fails(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        blob_store.fail_on = {"pan-"}
        pipeline = _pipeline(agent_store, blob_store, tmp_path)

        with pytest.raises(UploadError):
            _run(pipeline.create(_form(agent_fields, {"pan": upload_factory()})))

        assert list((tmp_path / "staging").iterdir()) == []
        assert agent_store.records == []

    def test_unknown_and_empty_parts_are_skipped(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        files = {
            "passport": upload_factory(filename="passport.pdf"),
            "pan": upload_factory(content=b"", filename=""),
        }
        record = _run(_pipeline(agent_store, blob_store, tmp_path).create(_form(agent_fields, files)))

        assert blob_store.blobs == {}
        assert not any(k.endswith("FilePath") for k in record)

    def test_unreadable_part_is_skipped(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        broken = upload_factory(filename="scan.pdf", file=_BrokenFile(b"x"))
        record = _run(
            _pipeline(agent_store, blob_store, tmp_path).create(_form(agent_fields, {"aadhar": broken}))
        )

        assert "aadharFilePath" not in record
        assert len(agent_store.records) == 1
        assert list((tmp_path / "staging").iterdir()) == []

    def test_strict_mode_rejects_unknown_key_before_upload(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline = _pipeline(agent_store, blob_store, tmp_path, strict=True)
        files = {"pan": upload_factory(), "passport": upload_factory()}

        with pytest.raises(ValidationError) as exc_info:
            _run(pipeline.create(_form(agent_fields, files)))

        assert exc_info.value.field == "passport"
        assert blob_store.blobs == {}

    def test_strict_mode_fails_on_unreadable_part(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline = _pipeline(agent_store, blob_store, tmp_path, strict=True)
        broken = upload_factory(filename="scan.pdf", file=_BrokenFile(b"x"))

        with pytest.raises(UploadError) as exc_info:
            _run(pipeline.create(_form(agent_fields, {"aadhar": broken})))
        assert isinstance(exc_info.value.cause, OSError)
        assert agent_store.records == []

    def test_unusable_staging_dir_fails_request(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        pipeline = AgentUploadPipeline(
            agent_store,
            blob_store,
            upload_dir=str(blocker / "staging"),
            document_keys=["aadhar"],
        )

        with pytest.raises(UploadError) as exc_info:
            _run(pipeline.create(_form(agent_fields, {"aadhar": upload_factory()})))

        assert exc_info.value.message == "Could not stage file for: aadhar"
        assert exc_info.value.status_code == 500
        assert agent_store.records == []
        assert blob_store.blobs == {}

    def test_blob_store_os_error_is_not_skipped(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        blob_store.upload = AsyncMock(side_effect=ConnectionResetError("connection reset"))
        pipeline = _pipeline(agent_store, blob_store, tmp_path)

        with pytest.raises(ConnectionResetError):
            _run(pipeline.create(_form(agent_fields, {"pan": upload_factory()})))

        assert agent_store.records == []
        assert list((tmp_path / "staging").iterdir()) == []


# ---------------------------------------------------------------------------
# 4. Orphaned blobs
# ---------------------------------------------------------------------------


class TestOrphans:
    def test_insert_failure_reports_uploaded_blobs(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        orphans: list[list[str]] = []
        agent_store.fail_insert = PersistenceError("Failed to insert record")
        pipeline = _pipeline(agent_store, blob_store, tmp_path, on_orphans=orphans.append)

        with pytest.raises(PersistenceError):
            _run(pipeline.create(_form(agent_fields, {"aadhar": upload_factory(), "pan": upload_factory()})))

        assert len(orphans) == 1
        assert sorted(orphans[0]) == sorted(blob_store.blobs)

    def test_upload_failure_reports_earlier_blobs(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        orphans: list[list[str]] = []
        blob_store.fail_on = {"pan-"}
        pipeline = _pipeline(agent_store, blob_store, tmp_path, on_orphans=orphans.append)
        files = {"aadhar": upload_factory(), "pan": upload_factory()}

        with pytest.raises(UploadError):
            _run(pipeline.create(_form(agent_fields, files)))

        [reported] = orphans
        assert len(reported) == 1 and reported[0].startswith("aadhar-")

    def test_no_report_when_nothing_was_uploaded(self, agent_store, blob_store, tmp_path, agent_fields):
        orphans: list[list[str]] = []
        agent_store.fail_insert = PersistenceError("Failed to insert record")
        pipeline = _pipeline(agent_store, blob_store, tmp_path, on_orphans=orphans.append)

        with pytest.raises(PersistenceError):
            _run(pipeline.create(_form(agent_fields)))
        assert orphans == []

    def test_failing_orphan_handler_keeps_original_error(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        def broken_handler(names):
            raise RuntimeError("broker down")

        agent_store.fail_insert = PersistenceError("Failed to insert record")
        pipeline = _pipeline(agent_store, blob_store, tmp_path, on_orphans=broken_handler)

        with pytest.raises(PersistenceError):
            _run(pipeline.create(_form(agent_fields, {"pan": upload_factory()})))


# ---------------------------------------------------------------------------
# 5. Document re-upload
# ---------------------------------------------------------------------------


class TestUpdateDocuments:
    def _create(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline = _pipeline(agent_store, blob_store, tmp_path)
        return pipeline, _run(pipeline.create(_form(agent_fields, {"aadhar": upload_factory()})))

    def test_unknown_agent_is_not_found(self, agent_store, blob_store, tmp_path, upload_factory):
        pipeline = _pipeline(agent_store, blob_store, tmp_path)
        with pytest.raises(NotFoundError):
            _run(pipeline.update_documents("missing", _form({}, {"pan": upload_factory()})))
        assert blob_store.blobs == {}

    def test_new_document_is_merged(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline, created = self._create(agent_store, blob_store, tmp_path, agent_fields, upload_factory)

        updated = _run(pipeline.update_documents(created["agentId"], _form({}, {"pan": upload_factory()})))

        assert updated["aadharFilePath"] == created["aadharFilePath"]
        assert updated["panFilePath"].startswith("https://")
        assert updated["email"] == agent_fields["email"]

    def test_scalar_and_address_fields_merge(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline, created = self._create(agent_store, blob_store, tmp_path, agent_fields, upload_factory)

        updated = _run(pipeline.update_documents(
            created["agentId"],
            _form({"firstName": "Asha M", "city": "Mumbai", "agentId": "forged"}),
        ))

        assert updated["firstName"] == "Asha M"
        assert updated["agentId"] == created["agentId"]
        assert updated["address"]["city"] == "Mumbai"
        assert updated["address"]["street"] == "12 MG Road"
        assert updated["mobileNumber"] == agent_fields["mobileNumber"]

    @pytest.mark.parametrize("field_name", ["firstName", "lastName", "email", "mobileNumber", "gender"])
    def test_blank_required_field_is_rejected(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory, field_name):
        pipeline, created = self._create(agent_store, blob_store, tmp_path, agent_fields, upload_factory)

        with pytest.raises(ValidationError) as exc_info:
            _run(pipeline.update_documents(
                created["agentId"], _form({field_name: ""}, {"pan": upload_factory()}),
            ))

        assert exc_info.value.field == field_name
        assert agent_store.records[0][field_name] == agent_fields[field_name]
        assert len(blob_store.blobs) == 1

    def test_lookup_by_store_id(self, agent_store, blob_store, tmp_path, agent_fields, upload_factory):
        pipeline, created = self._create(agent_store, blob_store, tmp_path, agent_fields, upload_factory)
        updated = _run(pipeline.update_documents(created["id"], _form({"gender": "f"})))
        assert updated["gender"] == "f"
