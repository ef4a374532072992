"""
Tests for the SFTP drop.

The SFTP interfaces are driven directly, without a socket.
"""
import os
from types import SimpleNamespace
from unittest.mock import MagicMock

import paramiko
import pytest
from paramiko import SFTPAttributes

from warranty_portal.services import SftpCredentialService
from warranty_portal.sftp import PortalSFTPServer, SftpAuthServer, SftpPortal, UserDirectoryCache

from conftest import add_job, pdf_stream

WRITE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_TRUNC


@pytest.fixture
def user_dir(tmp_path):
    path = tmp_path / "uploads" / "abt_uploads"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def session_server(user_dir):
    """Stand-in for an authenticated SftpAuthServer."""
    return SimpleNamespace(
        username="abt_uploads",
        user_directory=str(user_dir),
        upload_finished=MagicMock(),
    )


@pytest.fixture
def sftp(session_server):
    return PortalSFTPServer(session_server)


def write_file(sftp, path, data):
    handle = sftp.open(path, WRITE_FLAGS, SFTPAttributes())
    assert handle.write(0, data) == paramiko.SFTP_OK
    handle.close()
    return handle


class TestUserDirectoryCache:

    def test_creates_directory_lazily(self, tmp_path):
        cache = UserDirectoryCache(str(tmp_path))

        path = cache.get("abt_uploads")

        assert path == os.path.join(str(tmp_path), "abt_uploads")
        assert os.path.isdir(path)
        assert cache.get("abt_uploads") == path

    def test_least_recently_used_evicted(self, tmp_path):
        cache = UserDirectoryCache(str(tmp_path), max_size=2)
        cache.get("a")
        cache.get("b")
        cache.get("a")
        cache.get("c")

        assert "a" in cache
        assert "c" in cache
        assert "b" not in cache
        assert len(cache) == 2
        # Evicting forgets the path, never the directory
        assert os.path.isdir(tmp_path / "b")


class TestSftpOperations:

    def test_empty_directory_lists_nothing(self, sftp):
        assert sftp.list_folder("/") == []

    def test_write_then_read(self, sftp, user_dir):
        write_file(sftp, "/list.csv", b"name,address\n")

        assert (user_dir / "list.csv").read_bytes() == b"name,address\n"

        handle = sftp.open("list.csv", os.O_RDONLY, None)
        assert handle.read(0, 1024) == b"name,address\n"
        handle.close()

    def test_listing_shows_uploaded_files(self, sftp):
        write_file(sftp, "a.csv", b"1")
        write_file(sftp, "b.csv", b"22")

        entries = sftp.list_folder(".")

        assert [(e.filename, e.st_size) for e in entries] == [("a.csv", 1), ("b.csv", 2)]

    def test_paths_flattened_to_user_directory(self, sftp, user_dir, tmp_path):
        write_file(sftp, "../../escape.csv", b"x")
        write_file(sftp, "/nested/dir/inner.csv", b"y")

        assert (user_dir / "escape.csv").is_file()
        assert (user_dir / "inner.csv").is_file()
        assert not (tmp_path / "escape.csv").exists()

    def test_write_reports_upload_on_close(self, sftp, session_server, user_dir):
        write_file(sftp, "list.csv", b"data")

        session_server.upload_finished.assert_called_once_with(str(user_dir / "list.csv"))

    def test_read_does_not_report_upload(self, sftp, session_server, user_dir):
        (user_dir / "existing.csv").write_bytes(b"data")

        sftp.open("existing.csv", os.O_RDONLY, None).close()

        session_server.upload_finished.assert_not_called()

    def test_stat_file_and_root(self, sftp, user_dir):
        write_file(sftp, "list.csv", b"12345")

        assert sftp.stat("/anything/list.csv").st_size == 5
        assert isinstance(sftp.stat("/"), SFTPAttributes)

    def test_stat_missing_file(self, sftp):
        assert sftp.stat("nope.csv") == paramiko.SFTP_NO_SUCH_FILE

    def test_open_missing_file_for_read(self, sftp):
        assert sftp.open("nope.csv", os.O_RDONLY, None) == paramiko.SFTP_NO_SUCH_FILE

    def test_remove(self, sftp, user_dir):
        write_file(sftp, "list.csv", b"x")

        assert sftp.remove("list.csv") == paramiko.SFTP_OK
        assert not (user_dir / "list.csv").exists()


class TestSftpAuthentication:

    @pytest.fixture
    def portal(self, settings, database, transport):
        return SftpPortal(settings, database, mail_transport=transport)

    def test_password_login_binds_user_directory(self, portal, db, client_user, settings):
        SftpCredentialService(db).create(client_user, "abt_uploads", "abt_sftp_2024")
        server = SftpAuthServer(portal)

        result = server.check_auth_password("abt_uploads", "abt_sftp_2024")

        assert result == paramiko.AUTH_SUCCESSFUL
        assert server.owner_id == client_user.id
        assert server.user_directory == os.path.join(settings.sftp_home_dir, "abt_uploads")
        assert os.path.isdir(server.user_directory)

    def test_bad_password_rejected(self, portal, db, client_user):
        SftpCredentialService(db).create(client_user, "abt_uploads", "abt_sftp_2024")
        server = SftpAuthServer(portal)

        assert server.check_auth_password("abt_uploads", "wrong") == paramiko.AUTH_FAILED
        assert server.user_directory is None

    def test_only_password_auth_and_sessions(self, portal):
        server = SftpAuthServer(portal)

        assert server.get_allowed_auths("anyone") == "password"
        assert server.check_channel_request("session", 1) == paramiko.OPEN_SUCCEEDED
        assert server.check_channel_request("direct-tcpip", 2) == paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def test_upload_notifies_staff(self, portal, db, client_user, staff_user, transport, tmp_path):
        path = tmp_path / "list.csv"
        path.write_bytes(b"a" * 2048)

        portal.notify_upload("abt_uploads", client_user.id, str(path))

        assert transport.subjects() == ["Data Files Uploaded - SFTP Upload Ready for Proofing"]
        assert "Upload Method: SFTP" in transport.sent[0].text_body
        assert "2 KB" in transport.sent[0].text_body

    def test_upload_report_never_raises(self, portal, tmp_path):
        portal.notify_upload("abt_uploads", None, str(tmp_path / "vanished.csv"))

    def test_host_key_generated_once(self, portal, settings):
        first = portal.load_host_key()
        assert os.path.isfile(settings.sftp_host_key)

        second = portal.load_host_key()
        assert first.get_fingerprint() == second.get_fingerprint()

    def test_slot_named_login_cannot_see_web_uploads(self, portal, db, ledger, client_user, other_client):
        job = add_job(db, client_user)
        record = ledger.attach(job.id, "PROOF", pdf_stream(), "proof.pdf", "application/pdf", client_user)
        SftpCredentialService(db).create(other_client, "proofs", "secret123")
        server = SftpAuthServer(portal)

        assert server.check_auth_password("proofs", "secret123") == paramiko.AUTH_SUCCESSFUL
        assert PortalSFTPServer(server).list_folder("/") == []
        assert os.path.dirname(record.file_path) != server.user_directory
