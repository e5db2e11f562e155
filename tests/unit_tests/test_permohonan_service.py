"""Unit tests for submission, requirement re-upload and completion use cases."""

import asyncio
from pathlib import Path
from uuid import uuid4

import pytest

from sipedes_api.workflow.enums import PermohonanStatus
from sipedes_api.workflow.exceptions import FileTooLarge
from sipedes_api.workflow.exceptions import InvalidState
from sipedes_api.workflow.exceptions import InvalidTransition
from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.exceptions import UnsupportedType
from sipedes_api.workflow.exceptions import ValidationFailed
from sipedes_api.workflow.models.document import UploadedFile
from sipedes_api.workflow.models.permohonan import Permohonan
from tests.consts import CITIZEN_ID
from tests.consts import DOMISILI_LABELS
from tests.consts import DOMISILI_SERVICE_ID
from tests.consts import OFFICER_ID
from tests.consts import OTHER_CITIZEN_ID
from tests.fixtures.workflow_fixtures import domisili_files
from tests.fixtures.workflow_fixtures import jpeg_upload
from tests.fixtures.workflow_fixtures import pdf_upload


def stored_blobs(storage):
    return [p for p in Path(storage.root).rglob("*") if p.is_file()] if Path(storage.root).exists() else []


class TestSubmit:
    """Tests for PermohonanService.submit."""

    async def test_submit_success(self, service, requester, repository):
        permohonan = await service.submit(requester, DOMISILI_SERVICE_ID, "Melamar pekerjaan", domisili_files())

        assert permohonan.status == PermohonanStatus.SUBMITTED
        assert permohonan.tracking_number == "REG-20240115-0001"
        assert permohonan.service.name == "Surat Keterangan Domisili"
        assert [d.label for d in permohonan.documents] == DOMISILI_LABELS
        assert all(d.sha256 for d in permohonan.documents)
        assert await repository.find_by_id(permohonan.permohonan_id) == permohonan

    async def test_sequence_increments_per_day(self, service, requester, clock):
        first = await service.submit(requester, DOMISILI_SERVICE_ID, "", domisili_files())
        second = await service.submit(requester, DOMISILI_SERVICE_ID, "", domisili_files())
        # 18:00 UTC is already the next day in Asia/Jakarta
        clock.advance(hours=15)
        third = await service.submit(requester, DOMISILI_SERVICE_ID, "", domisili_files())

        assert first.tracking_number == "REG-20240115-0001"
        assert second.tracking_number == "REG-20240115-0002"
        assert third.tracking_number == "REG-20240116-0001"

    async def test_labels_matched_case_and_space_insensitively(self, service, requester):
        files = [(f"  {label.upper()} ", upload) for label, upload in domisili_files()]

        permohonan = await service.submit(requester, DOMISILI_SERVICE_ID, "", files)

        assert [d.label for d in permohonan.documents] == DOMISILI_LABELS

    async def test_optional_requirement_may_be_added(self, service, requester, catalog):
        layanan = catalog.get(6)
        files = [(label, pdf_upload()) for label in layanan.required_labels]
        without_optional = await service.submit(requester, 6, "", files)
        with_optional = await service.submit(requester, 6, "", files + [("KTP lama (untuk perpanjangan)", pdf_upload())])

        assert len(with_optional.documents) == len(without_optional.documents) + 1

    async def test_unknown_service(self, service, requester):
        with pytest.raises(ValidationFailed):
            await service.submit(requester, 999, "", domisili_files())

    async def test_missing_document_stores_nothing(self, service, requester, storage, repository):
        with pytest.raises(ValidationFailed) as exc_info:
            await service.submit(requester, DOMISILI_SERVICE_ID, "", domisili_files()[:2])

        assert any("Missing required documents" in e for e in exc_info.value.errors)
        assert stored_blobs(storage) == []
        assert await repository.count_by_status() == {s: 0 for s in PermohonanStatus}

    async def test_all_problems_reported_together(self, service, requester, storage):
        files = domisili_files()
        files[0] = (files[0][0], UploadedFile(filename="ktp.docx", content_type="application/msword", data=b"doc"))
        files[1] = (files[1][0], UploadedFile(filename="kk.pdf", content_type="application/pdf", data=b""))
        files.append(("Ijazah", pdf_upload()))

        with pytest.raises(ValidationFailed) as exc_info:
            await service.submit(requester, DOMISILI_SERVICE_ID, "", files)

        errors = exc_info.value.errors
        assert any("Unknown document label 'Ijazah'" in e for e in errors)
        assert any("unsupported type" in e for e in errors)
        assert any("empty" in e for e in errors)
        assert stored_blobs(storage) == []


class TestUploadRequirementDocument:
    """Tests for PermohonanService.upload_requirement_document."""

    async def test_replaces_document_for_label(self, service, submitted):
        old = submitted.document_for("Fotokopi KTP")

        updated = await service.upload_requirement_document(
            submitted.permohonan_id, CITIZEN_ID, pdf_upload("ktp-jelas.pdf"), "fotokopi ktp"
        )

        assert len(updated.documents) == len(submitted.documents)
        new = updated.document_for("Fotokopi KTP")
        assert new.name == "ktp-jelas.pdf"
        assert new.document_id != old.document_id
        assert updated.version == submitted.version + 1
        assert updated.timeline == submitted.timeline

    async def test_other_citizen_sees_not_found(self, service, submitted):
        with pytest.raises(NotFound):
            await service.upload_requirement_document(
                submitted.permohonan_id, OTHER_CITIZEN_ID, pdf_upload(), "Fotokopi KTP"
            )

    async def test_unknown_label(self, service, submitted):
        with pytest.raises(ValidationFailed):
            await service.upload_requirement_document(submitted.permohonan_id, CITIZEN_ID, pdf_upload(), "Ijazah")

    async def test_invalid_upload_keeps_document_level_error(self, service, submitted, registry):
        with pytest.raises(UnsupportedType):
            await service.upload_requirement_document(
                submitted.permohonan_id,
                CITIZEN_ID,
                UploadedFile(filename="a.gif", content_type="image/gif", data=b"GIF89a"),
                "Fotokopi KTP",
            )
        big = jpeg_upload(data=b"\xff" * (registry.policy.max_bytes + 1))
        with pytest.raises(FileTooLarge):
            await service.upload_requirement_document(submitted.permohonan_id, CITIZEN_ID, big, "Pas foto 3x4 (2 lembar)")

    async def test_refused_after_verification(self, service, engine, submitted):
        await engine.transition(submitted, PermohonanStatus.VERIFIED, OFFICER_ID)

        with pytest.raises(InvalidState):
            await service.upload_requirement_document(submitted.permohonan_id, CITIZEN_ID, pdf_upload(), "Fotokopi KTP")


class TestUploadAgainstTransition:
    """Requirement re-upload and officer transitions on the same permohonan."""

    async def test_verified_while_bytes_were_stored(self, service, engine, repository, submitted, monkeypatch):
        """Verification landing between storing the bytes and saving wins; the upload is refused."""
        store = service.registry.validate_and_store

        async def store_then_verify(*args, **kwargs):
            record = await store(*args, **kwargs)
            await engine.transition(submitted.permohonan_id, PermohonanStatus.VERIFIED, OFFICER_ID)
            return record

        monkeypatch.setattr(service.registry, "validate_and_store", store_then_verify)

        with pytest.raises(InvalidState):
            await service.upload_requirement_document(
                submitted.permohonan_id, CITIZEN_ID, pdf_upload("ktp-baru.pdf"), "Fotokopi KTP"
            )

        stored = await repository.find_by_id(submitted.permohonan_id)
        assert stored.status == PermohonanStatus.VERIFIED
        assert stored.version == submitted.version + 1
        assert stored.document_for("Fotokopi KTP") == submitted.document_for("Fotokopi KTP")

    async def test_concurrent_upload_and_verify(self, service, engine, repository, submitted):
        """Whichever runs first, the stored permohonan reflects exactly the successful calls."""
        upload_result, verified = await asyncio.gather(
            service.upload_requirement_document(
                submitted.permohonan_id, CITIZEN_ID, pdf_upload("ktp-baru.pdf"), "Fotokopi KTP"
            ),
            engine.transition(submitted.permohonan_id, PermohonanStatus.VERIFIED, OFFICER_ID),
            return_exceptions=True,
        )

        assert isinstance(verified, Permohonan)
        stored = await repository.find_by_id(submitted.permohonan_id)
        assert stored.status == PermohonanStatus.VERIFIED
        assert len(stored.timeline) == 2
        if isinstance(upload_result, Permohonan):
            assert stored.document_for("Fotokopi KTP").name == "ktp-baru.pdf"
            assert stored.version == submitted.version + 2
        else:
            assert isinstance(upload_result, InvalidState)
            assert stored.document_for("Fotokopi KTP") == submitted.document_for("Fotokopi KTP")
            assert stored.version == submitted.version + 1

class TestCompleteWithFile:
    """Tests for PermohonanService.complete_with_file."""

    async def test_complete(self, service, processing, dispatcher, registry):
        completed = await service.complete_with_file(
            processing.permohonan_id, OFFICER_ID, pdf_upload("Surat-Domisili.pdf"), note="Silakan diambil"
        )

        assert completed.status == PermohonanStatus.COMPLETED
        assert completed.result_document.label == "result"
        assert completed.result_document.name == "Surat-Domisili.pdf"
        assert completed.latest_entry.note == "Silakan diambil"
        assert await registry.open(completed.result_document) == pdf_upload().data
        assert dispatcher.events[-1].new_status == PermohonanStatus.COMPLETED

    async def test_not_processing_stores_nothing(self, service, submitted, storage):
        before = stored_blobs(storage)

        with pytest.raises(InvalidTransition):
            await service.complete_with_file(submitted.permohonan_id, OFFICER_ID, pdf_upload())

        assert stored_blobs(storage) == before

    async def test_unknown_id(self, service):
        with pytest.raises(NotFound):
            await service.complete_with_file(uuid4(), OFFICER_ID, pdf_upload())
