"""
Tests for the file attachment ledger.

Covers:
1. Allow-list rejection before any byte is stored
2. DRAFT -> ASSETS_UPLOADED at the configured asset count
3. Ownership checks on attach/get/remove
4. Missing bytes on download and delete
5. Upload notifications per slot
"""
import logging
import os
from datetime import datetime

import pytest

from warranty_portal.errors import ForbiddenError, NotFoundError, ValidationError
from warranty_portal.models.db_models import FileDB, JobDB, JobStatus, UploadChannel
from warranty_portal.services.file_ledger import normalize_slot, validate_upload

from conftest import add_job, pdf_stream

ASSET_SLOTS = ["BUCKSLIP_1", "BUCKSLIP_2", "BUCKSLIP_3", "LETTER_REPLY", "OUTER_ENVELOPE", "MAIL_LIST"]


def stored_files(upload_dir):
    found = []
    for _, _, files in os.walk(upload_dir):
        found.extend(files)
    return found


class TestValidation:

    @pytest.mark.parametrize("name,mime", [
        ("proof.pdf", "application/pdf"),
        ("art.PNG", "image/png"),
        ("photo.jpg", "image/jpeg"),
        ("list.csv", "text/csv"),
        ("list.xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
        ("list.xls", "application/vnd.ms-excel"),
    ])
    def test_allowed(self, name, mime):
        validate_upload(name, mime)

    @pytest.mark.parametrize("name,mime", [
        ("setup.exe", "application/octet-stream"),
        ("proof.pdf", "application/x-msdownload"),
        ("script.sh", "text/csv"),
        ("noext", "application/pdf"),
    ])
    def test_rejected(self, name, mime):
        with pytest.raises(ValidationError):
            validate_upload(name, mime)

    def test_slot_normalized(self):
        assert normalize_slot(" buckslip_1 ") == "BUCKSLIP_1"
        with pytest.raises(ValidationError):
            normalize_slot("../etc")


class TestAttach:

    def test_attach_records_row_and_bytes(self, db, ledger, client_user):
        job = add_job(db, client_user)

        record = ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "buckslip.pdf", "application/pdf", client_user)

        assert record.job_id == job.id
        assert record.file_type == "BUCKSLIP_1"
        assert record.uploaded_via == UploadChannel.WEB
        assert record.file_size == len(b"%PDF-1.4 test asset")
        assert os.path.isfile(record.file_path)

    def test_disallowed_upload_stores_nothing(self, db, ledger, client_user, settings):
        job = add_job(db, client_user)

        with pytest.raises(ValidationError):
            ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(b"MZ"), "setup.exe", "application/octet-stream", client_user)

        assert db.query(FileDB).count() == 0
        assert stored_files(settings.upload_dir) == []

    def test_unknown_job_is_not_found(self, ledger, client_user):
        with pytest.raises(NotFoundError):
            ledger.attach("missing", "BUCKSLIP_1", pdf_stream(), "a.pdf", "application/pdf", client_user)

    def test_foreign_job_is_forbidden_and_stores_nothing(self, db, ledger, client_user, other_client, settings):
        job = add_job(db, client_user)

        with pytest.raises(ForbiddenError):
            ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "a.pdf", "application/pdf", other_client)

        assert stored_files(settings.upload_dir) == []

    def test_sixth_file_advances_draft(self, db, ledger, client_user):
        job = add_job(db, client_user)

        for slot in ASSET_SLOTS[:5]:
            ledger.attach(job.id, slot, pdf_stream(), f"{slot}.pdf", "application/pdf", client_user)
        assert db.get(JobDB, job.id).status == JobStatus.DRAFT

        ledger.attach(job.id, ASSET_SLOTS[5], pdf_stream(b"a,b\n"), "list.csv", "text/csv", client_user)
        assert db.get(JobDB, job.id).status == JobStatus.ASSETS_UPLOADED

    def test_more_files_keep_status(self, db, ledger, client_user):
        job = add_job(db, client_user)
        for slot in ASSET_SLOTS:
            ledger.attach(job.id, slot, pdf_stream(), f"{slot}.pdf", "application/pdf", client_user)

        ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "again.pdf", "application/pdf", client_user)

        assert db.get(JobDB, job.id).status == JobStatus.ASSETS_UPLOADED
        assert ledger.count_for_job(job.id) == 7

    def test_upload_to_later_state_does_not_move_job(self, db, ledger, staff_user, client_user):
        job = add_job(db, client_user, status=JobStatus.PROOFING)
        for i in range(6):
            ledger.attach(job.id, "PROOF", pdf_stream(), f"proof{i}.pdf", "application/pdf", staff_user)

        assert db.get(JobDB, job.id).status == JobStatus.PROOFING

    def test_oversized_upload_rejected(self, db, ledger, client_user, settings):
        job = add_job(db, client_user)
        big = pdf_stream(b"x" * (settings.max_file_size + 1))

        with pytest.raises(ValidationError):
            ledger.attach(job.id, "BUCKSLIP_1", big, "big.pdf", "application/pdf", client_user)

        assert db.query(FileDB).count() == 0


class TestReadAndRemove:

    def test_list_requires_ownership(self, db, ledger, client_user, other_client, staff_user):
        job = add_job(db, client_user)
        ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "a.pdf", "application/pdf", client_user)

        assert len(ledger.list_for_job(job.id, client_user)) == 1
        assert len(ledger.list_for_job(job.id, staff_user)) == 1
        with pytest.raises(ForbiddenError):
            ledger.list_for_job(job.id, other_client)

    def test_latest_upload_first_when_timestamps_tie(self, db, ledger, client_user):
        job = add_job(db, client_user)
        first = ledger.attach(job.id, "PROOF", pdf_stream(), "v1.pdf", "application/pdf", client_user)
        second = ledger.attach(job.id, "PROOF", pdf_stream(), "v2.pdf", "application/pdf", client_user)
        tick = datetime(2024, 12, 1, 9, 30)
        for record in (first, second):
            record.uploaded_at = tick
        db.commit()

        assert (first.upload_seq, second.upload_seq) == (1, 2)
        assert [f.id for f in ledger.list_for_job(job.id, client_user)] == [second.id, first.id]

    def test_open_streams_bytes(self, db, ledger, client_user):
        job = add_job(db, client_user)
        record = ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(b"%PDF-data"), "a.pdf", "application/pdf", client_user)

        row, stream = ledger.open(record.id, client_user)
        try:
            assert stream.read() == b"%PDF-data"
        finally:
            stream.close()
        assert row.id == record.id

    def test_open_missing_bytes_is_not_found(self, db, ledger, client_user):
        job = add_job(db, client_user)
        record = ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "a.pdf", "application/pdf", client_user)
        os.remove(record.file_path)

        with pytest.raises(NotFoundError):
            ledger.open(record.id, client_user)

    def test_remove_deletes_bytes_and_row(self, db, ledger, client_user):
        job = add_job(db, client_user)
        record = ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "a.pdf", "application/pdf", client_user)
        path = record.file_path

        ledger.remove(record.id, client_user)

        assert not os.path.exists(path)
        assert db.query(FileDB).count() == 0

    def test_remove_with_missing_bytes_logs_and_deletes_row(self, db, ledger, client_user, caplog):
        job = add_job(db, client_user)
        record = ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "a.pdf", "application/pdf", client_user)
        os.remove(record.file_path)

        with caplog.at_level(logging.WARNING):
            ledger.remove(record.id, client_user)

        assert "already missing" in caplog.text
        assert db.query(FileDB).count() == 0

    def test_remove_by_other_client_forbidden(self, db, ledger, client_user, other_client):
        job = add_job(db, client_user)
        record = ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "a.pdf", "application/pdf", client_user)

        with pytest.raises(ForbiddenError):
            ledger.remove(record.id, other_client)
        assert os.path.isfile(record.file_path)


class TestUploadNotifications:

    def test_mail_list_notifies_staff(self, db, ledger, client_user, staff_user, transport):
        job = add_job(db, client_user, campaign_name="Spring Push")

        ledger.attach(job.id, "MAIL_LIST", pdf_stream(b"a,b\n"), "list.csv", "text/csv", client_user)

        assert transport.subjects() == ["Data Files Uploaded - Spring Push Ready for Proofing"]
        assert [r.email for r in transport.sent[0].recipients] == [staff_user.email]

    def test_proof_upload_copies_client(self, db, ledger, client_user, staff_user, transport):
        job = add_job(db, client_user, status=JobStatus.PROOFING, campaign_name="Spring Push")

        ledger.attach(job.id, "PROOF", pdf_stream(), "proof.pdf", "application/pdf", staff_user)

        assert transport.subjects() == ["Proofs Ready for Review - Spring Push"]
        emails = [r.email for r in transport.sent[0].recipients]
        assert staff_user.email in emails
        assert client_user.email in emails

    def test_artwork_upload_sends_nothing(self, db, ledger, client_user, staff_user, transport):
        job = add_job(db, client_user)

        ledger.attach(job.id, "BUCKSLIP_1", pdf_stream(), "a.pdf", "application/pdf", client_user)

        assert transport.sent == []
