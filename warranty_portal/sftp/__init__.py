"""Warranty Portal - SFTP drop front-end"""
from .server import (
    PortalSFTPHandle, PortalSFTPServer, SftpAuthServer, SftpPortal, UserDirectoryCache,
)

__all__ = [
    "PortalSFTPHandle", "PortalSFTPServer", "SftpAuthServer", "SftpPortal", "UserDirectoryCache",
]
