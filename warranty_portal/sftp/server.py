"""
Warranty Portal - SFTP Drop

Password-authenticated SFTP listener for clients that push mail lists
instead of using the web upload. Each login is confined to
<UPLOAD_DIR>/sftp/<username>; every requested path is reduced to its basename
before it touches the filesystem.

Run with: python -m warranty_portal.sftp.server
"""
import logging
import os
import socket
import threading
from collections import OrderedDict
from typing import Optional

import paramiko
from paramiko import SFTPAttributes, SFTPHandle, SFTPServer, SFTPServerInterface, ServerInterface
from paramiko.sftp import SFTP_OK

from ..config import Settings, get_settings
from ..database import Database
from ..models.db_models import UploadChannel, UserDB
from ..services import LocalFileStorage, NotificationService, SftpCredentialService, build_transport
from ..services.storage import ensure_dir

logger = logging.getLogger(__name__)


# =============================================================================
# PER-USER DIRECTORIES
# =============================================================================

class UserDirectoryCache:
    """
    username -> upload directory, created on first use.

    Bounded LRU: the least recently used entry is dropped once max_size is
    reached. Dropping an entry only forgets the path; the directory stays.
    """

    def __init__(self, root: str, max_size: int = 256):
        self.root = root
        self.max_size = max(1, max_size)
        self._entries: "OrderedDict[str, str]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, username: str) -> str:
        with self._lock:
            path = self._entries.get(username)
            if path is not None:
                self._entries.move_to_end(username)
                return path

            path = os.path.join(self.root, os.path.basename(username))
            if not os.path.isdir(path):
                ensure_dir(path)
                logger.info(f"Created user directory: {path}")

            self._entries[username] = path
            if len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
            return path

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, username: str) -> bool:
        return username in self._entries


# =============================================================================
# SSH AUTHENTICATION
# =============================================================================

class SftpAuthServer(ServerInterface):
    """One instance per SSH connection. Holds the authenticated login."""

    def __init__(self, portal: "SftpPortal"):
        self.portal = portal
        self.username: Optional[str] = None
        self.owner_id: Optional[str] = None
        self.user_directory: Optional[str] = None

    def get_allowed_auths(self, username):
        return "password"

    def check_auth_password(self, username, password):
        credential = self.portal.authenticate(username, password)
        if credential is None:
            return paramiko.AUTH_FAILED

        self.username = username
        self.owner_id = credential.user_id
        self.user_directory = self.portal.directories.get(username)
        return paramiko.AUTH_SUCCESSFUL

    def check_channel_request(self, kind, chanid):
        if kind == "session":
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def upload_finished(self, path: str) -> None:
        self.portal.notify_upload(self.username, self.owner_id, path)


# =============================================================================
# SFTP OPERATIONS
# =============================================================================

class PortalSFTPHandle(SFTPHandle):
    """Open file in a user directory. Reports completed writes on close."""

    def __init__(self, flags=0, path: Optional[str] = None, on_written=None):
        super().__init__(flags)
        self.path = path
        self.on_written = on_written

    def stat(self):
        try:
            f = getattr(self, "readfile", None) or getattr(self, "writefile", None)
            return SFTPAttributes.from_stat(os.fstat(f.fileno()))
        except OSError as e:
            return SFTPServer.convert_errno(e.errno)

    def close(self):
        written = getattr(self, "writefile", None) is not None
        super().close()
        logger.info(f"SFTP: CLOSE - {self.path}")
        if written and self.on_written is not None:
            self.on_written(self.path)


class PortalSFTPServer(SFTPServerInterface):
    """
    File operations for one authenticated session.

    Every path is flattened with os.path.basename and joined onto the
    session's user directory. Subdirectories are not supported.
    """

    def __init__(self, server, *args, **kwargs):
        super().__init__(server, *args, **kwargs)
        self.server = server
        self.username = server.username
        self.root = server.user_directory

    def _local_path(self, path: str) -> str:
        return os.path.join(self.root, os.path.basename(path))

    def list_folder(self, path):
        logger.info(f"SFTP: READDIR for user {self.username}")
        try:
            entries = []
            for name in sorted(os.listdir(self.root)):
                attr = SFTPAttributes.from_stat(os.stat(os.path.join(self.root, name)))
                attr.filename = name
                entries.append(attr)
            # An empty list is answered with SSH_FX_EOF
            return entries
        except OSError as e:
            logger.error(f"SFTP: Error reading directory for user {self.username}: {e}")
            return SFTPServer.convert_errno(e.errno)

    def stat(self, path):
        logger.info(f"SFTP: STAT - {path} for user {self.username}")
        try:
            return SFTPAttributes.from_stat(os.stat(self._local_path(path)))
        except OSError as e:
            return SFTPServer.convert_errno(e.errno)

    def lstat(self, path):
        return self.stat(path)

    def open(self, path, flags, attr):
        local_path = self._local_path(path)
        logger.info(f"SFTP: OPEN - {path} for user {self.username}")
        try:
            binary_flag = getattr(os, "O_BINARY", 0)
            fd = os.open(local_path, flags | binary_flag, 0o644)
        except OSError as e:
            logger.error(f"SFTP: Error opening file {path}: {e}")
            return SFTPServer.convert_errno(e.errno)

        if (flags & os.O_CREAT) and attr is not None:
            SFTPServer.set_file_attr(local_path, attr)

        if flags & os.O_WRONLY:
            mode = "ab" if flags & os.O_APPEND else "wb"
        elif flags & os.O_RDWR:
            mode = "a+b" if flags & os.O_APPEND else "r+b"
        else:
            mode = "rb"

        try:
            f = os.fdopen(fd, mode)
        except OSError as e:
            os.close(fd)
            return SFTPServer.convert_errno(e.errno)

        handle = PortalSFTPHandle(flags, path=local_path, on_written=self.server.upload_finished)
        handle.filename = local_path
        handle.readfile = f
        if mode != "rb":
            handle.writefile = f
        return handle

    def remove(self, path):
        local_path = self._local_path(path)
        try:
            os.remove(local_path)
        except OSError as e:
            return SFTPServer.convert_errno(e.errno)
        logger.info(f"SFTP: REMOVE - {local_path}")
        return SFTP_OK


# =============================================================================
# LISTENER
# =============================================================================

class SftpPortal:
    """Shared state for every connection: database, directories, host key, mail."""

    def __init__(self, settings: Settings, database: Database, mail_transport=None):
        self.settings = settings
        self.database = database
        self.mail_transport = mail_transport or build_transport(settings)
        self.directories = UserDirectoryCache(settings.sftp_home_dir, settings.sftp_dir_cache_size)
        self._socket: Optional[socket.socket] = None
        self._running = False

    def authenticate(self, username: str, password: str):
        db = self.database.session()
        try:
            return SftpCredentialService(db).authenticate(username, password)
        except Exception:
            logger.exception(f"SFTP: Authentication error for user: {username}")
            return None
        finally:
            db.close()

    def notify_upload(self, username: Optional[str], owner_id: Optional[str], path: str) -> None:
        """Log a completed SFTP upload and tell staff about it. Never raises."""
        db = self.database.session()
        try:
            size = os.path.getsize(path)
            logger.info(f"SFTP: Upload complete - {path} ({size} bytes) by {username}")
            owner = db.query(UserDB).filter(UserDB.id == owner_id).first() if owner_id else None
            notifier = NotificationService(db, self.settings, transport=self.mail_transport)
            notifier.data_file_uploaded(
                campaign_name="SFTP Upload",
                campaign_id=None,
                file_name=os.path.basename(path),
                file_size=size,
                uploaded_by=(owner.name if owner and owner.name else username) or "unknown",
                uploader_email=owner.email if owner else "",
                channel=UploadChannel.SFTP.value,
            )
        except Exception:
            logger.exception(f"SFTP: Failed to report upload {path}")
        finally:
            db.close()

    def load_host_key(self) -> paramiko.RSAKey:
        """Read the host key, generating and saving one if the file is missing."""
        path = self.settings.sftp_host_key
        if not os.path.exists(path):
            key = paramiko.RSAKey.generate(2048)
            key.write_private_key_file(path)
            logger.info(f"SFTP: Generated host key at {path}")
            return key
        return paramiko.RSAKey(filename=path)

    def handle_connection(self, conn: socket.socket, host_key: paramiko.PKey) -> None:
        logger.info("SFTP: New connection attempt")
        transport = paramiko.Transport(conn)
        transport.add_server_key(host_key)
        transport.set_subsystem_handler("sftp", SFTPServer, PortalSFTPServer)

        server = SftpAuthServer(self)
        try:
            transport.start_server(server=server)
        except (paramiko.SSHException, EOFError) as e:
            logger.warning(f"SFTP: Negotiation failed: {e}")
            transport.close()
            return

        channel = transport.accept(60)
        if channel is None:
            logger.warning("SFTP: No channel opened, closing connection")
            transport.close()
            return

        logger.info(f"SFTP: Session started for user {server.username}")
        transport.join()
        logger.info(f"SFTP: Client disconnected ({server.username})")

    def serve_forever(self) -> None:
        ensure_dir(self.settings.sftp_home_dir)
        host_key = self.load_host_key()

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.settings.sftp_host, self.settings.sftp_port))
        sock.listen(100)
        self._socket = sock
        self._running = True
        logger.info(f"SFTP server listening on {self.settings.sftp_host}:{self.settings.sftp_port}")

        while self._running:
            try:
                conn, addr = sock.accept()
            except OSError:
                if not self._running:
                    break
                raise
            logger.debug(f"SFTP: Connection from {addr[0]}:{addr[1]}")
            threading.Thread(
                target=self.handle_connection, args=(conn, host_key), daemon=True
            ).start()

    def stop(self) -> None:
        self._running = False
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        logger.info("SFTP server stopped")


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    database = Database(settings.database_url)
    database.init_db()
    LocalFileStorage(settings.job_files_dir, settings.max_file_size).ensure_directories()

    portal = SftpPortal(settings, database)
    try:
        portal.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        portal.stop()
        database.dispose()


if __name__ == "__main__":
    main()
