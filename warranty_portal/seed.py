#!/usr/bin/env python3
"""
Demo Data Seed Script
Creates admin/staff/client users, an SFTP login and three sample campaigns.

Usage:
    python -m warranty_portal.seed

Running it again on a seeded database changes nothing.
"""
import sys
from datetime import datetime
from uuid import uuid4

from sqlalchemy.orm import Session

from .auth import hash_password
from .config import get_settings
from .database import Database
from .models.db_models import (
    InvoiceDB, InvoiceStatus, JobDB, JobStatus, SftpCredentialDB, UserDB, UserRole,
)

DEMO_USERS = [
    ("admin@abtwarranty.com", "admin123", "Admin User", UserRole.ADMIN),
    ("staff@abtwarranty.com", "staff123", "Staff User", UserRole.STAFF),
    ("client@abtelectronics.com", "client123", "ABT Electronics", UserRole.CLIENT),
]

DEMO_SFTP_USERNAME = "abt_uploads"
DEMO_SFTP_PASSWORD = "abt_sftp_2024"


def _get_or_create_user(db: Session, email: str, password: str, name: str, role: UserRole) -> UserDB:
    user = db.query(UserDB).filter(UserDB.email == email).first()
    if user:
        return user
    user = UserDB(
        id=str(uuid4()),
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=role,
        active=True,
    )
    db.add(user)
    db.flush()
    print(f"Created {role.value.lower()} user: {email}")
    return user


def seed(database: Database) -> bool:
    """
    Populate demo data.

    Returns False when the database already holds invoices (already seeded).
    """
    database.init_db()
    db: Session = database.session()
    try:
        if db.query(InvoiceDB).count() > 0:
            print("Database already seeded, skipping.")
            return False

        users = {
            role: _get_or_create_user(db, email, password, name, role)
            for email, password, name, role in DEMO_USERS
        }
        client = users[UserRole.CLIENT]

        if not db.query(SftpCredentialDB).filter(SftpCredentialDB.username == DEMO_SFTP_USERNAME).first():
            db.add(SftpCredentialDB(
                id=str(uuid4()),
                user_id=client.id,
                username=DEMO_SFTP_USERNAME,
                password_hash=hash_password(DEMO_SFTP_PASSWORD),
                active=True,
            ))
            print(f"Created SFTP credential: {DEMO_SFTP_USERNAME}")

        db.add(JobDB(
            id=str(uuid4()),
            user_id=client.id,
            month="December",
            year=2024,
            campaign_name="Holiday Warranty Push",
            status=JobStatus.DRAFT,
        ))
        db.add(JobDB(
            id=str(uuid4()),
            user_id=client.id,
            month="January",
            year=2025,
            campaign_name="New Year Extended Warranty",
            status=JobStatus.PROOFING,
            mail_count=5000,
            rate_per_piece=0.85,
        ))

        completed = JobDB(
            id=str(uuid4()),
            user_id=client.id,
            month="November",
            year=2024,
            campaign_name="Fall Protection Plans",
            status=JobStatus.COMPLETE,
            mail_count=4500,
            rate_per_piece=0.85,
            total_cost=3825.00,
            tax_amount=344.25,
            approved_at=datetime(2024, 10, 15),
            mailed_at=datetime(2024, 11, 1),
        )
        db.add(completed)
        db.flush()

        db.add(InvoiceDB(
            id=str(uuid4()),
            job_id=completed.id,
            invoice_num="INV-2024-001",
            amount=3825.00,
            tax_amount=344.25,
            total_amount=4169.25,
            status=InvoiceStatus.PAID,
            paid_at=datetime(2024, 11, 15),
        ))

        db.commit()
        print("Created 3 sample jobs and 1 invoice")
        return True

    except Exception as e:
        print(f"Seed failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def main():
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        seed(database)
    finally:
        database.dispose()

    print("\nLogin Credentials:")
    for email, password, _, role in DEMO_USERS:
        print(f"  {role.value.title()}: {email} / {password}")
    print("\nSFTP Credentials:")
    print(f"  Username: {DEMO_SFTP_USERNAME}")
    print(f"  Password: {DEMO_SFTP_PASSWORD}")
    print(f"  Host: localhost:{settings.sftp_port}")
    sys.exit(0)


if __name__ == "__main__":
    main()
