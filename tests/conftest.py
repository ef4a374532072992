"""
Shared fixtures: in-memory database, settings on tmp_path, a recording
mail transport, and an API client with the app's lifespan running.
"""
import io
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from warranty_portal.auth import create_access_token, hash_password
from warranty_portal.config import Settings
from warranty_portal.database import Database
from warranty_portal.main import create_app
from warranty_portal.models.db_models import JobDB, JobStatus, UserDB, UserRole
from warranty_portal.services import (
    FileLedger, JobLifecycle, JobService, LocalFileStorage, NotificationService, ProofEventLog,
)

TEST_PASSWORD = "password123"


class RecordingTransport:
    """Mail transport that keeps every message instead of sending it."""

    def __init__(self):
        self.sent = []

    def send(self, message):
        self.sent.append(message)

    def subjects(self):
        return [m.subject for m in self.sent]


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        jwt_secret_key="test-secret",
        upload_dir=str(tmp_path / "uploads"),
        max_file_size=1024 * 1024,
        asset_threshold=6,
        sftp_host_key=str(tmp_path / "server_key"),
        sftp_dir_cache_size=4,
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def lifecycle(settings):
    return JobLifecycle(asset_threshold=settings.asset_threshold)


@pytest.fixture
def storage(settings):
    store = LocalFileStorage(settings.job_files_dir, settings.max_file_size)
    store.ensure_directories()
    return store


@pytest.fixture
def notifier(db, settings, transport):
    return NotificationService(db, settings, transport=transport)


@pytest.fixture
def job_service(db, lifecycle, notifier, storage, settings):
    return JobService(db, lifecycle, notifier=notifier, storage=storage, tax_rate=settings.tax_rate)


@pytest.fixture
def ledger(db, storage, lifecycle, notifier):
    return FileLedger(db, storage, lifecycle, notifier=notifier)


@pytest.fixture
def proof_log(db, lifecycle, notifier):
    return ProofEventLog(db, lifecycle, notifier=notifier)


# =============================================================================
# DATA HELPERS
# =============================================================================

def add_user(db, role=UserRole.CLIENT, email=None, name=None, active=True) -> UserDB:
    user = UserDB(
        id=str(uuid4()),
        email=email or f"{role.value.lower()}-{uuid4().hex[:8]}@example.com",
        name=name or f"{role.value.title()} User",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
        active=active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_job(db, owner: UserDB, status=JobStatus.DRAFT, **fields) -> JobDB:
    job = JobDB(
        id=str(uuid4()),
        user_id=owner.id,
        month=fields.pop("month", "December"),
        year=fields.pop("year", 2024),
        campaign_name=fields.pop("campaign_name", "Holiday Warranty Push"),
        status=status,
        **fields,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def pdf_stream(content: bytes = b"%PDF-1.4 test asset") -> io.BytesIO:
    return io.BytesIO(content)


@pytest.fixture
def client_user(db):
    return add_user(db, UserRole.CLIENT, email="client@abtelectronics.com", name="ABT Electronics")


@pytest.fixture
def other_client(db):
    return add_user(db, UserRole.CLIENT, email="other@example.com", name="Other Co")


@pytest.fixture
def staff_user(db):
    return add_user(db, UserRole.STAFF, email="staff@abtwarranty.com", name="Staff User")


@pytest.fixture
def admin_user(db):
    return add_user(db, UserRole.ADMIN, email="admin@abtwarranty.com", name="Admin User")


# =============================================================================
# API
# =============================================================================

@pytest.fixture
def app(settings, transport):
    return create_app(settings, transport=transport)


@pytest.fixture
def api(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_db(api):
    """Session on the database the running app uses."""
    session = api.app.state.database.session()
    yield session
    session.close()


def auth_headers(user: UserDB, settings: Settings) -> dict:
    token = create_access_token(user.id, user.email, user.role.value, settings)
    return {"Authorization": f"Bearer {token}"}
