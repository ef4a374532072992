"""Warranty Portal - API Routers"""
from .auth import router as auth_router
from .jobs import router as jobs_router
from .files import router as files_router
from .sftp import router as sftp_router
from .invoices import router as invoices_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "jobs_router",
    "files_router",
    "sftp_router",
    "invoices_router",
    "users_router",
]
