"""
SFTP Credential Service

Manages the SFTP login realm. Credentials belong to a portal user; the
SFTP server authenticates against them with the same bcrypt hashing the
web login uses.
"""
import logging
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..auth import hash_password, verify_password
from ..database import commit_unique
from ..errors import ConflictError, NotFoundError
from ..models.db_models import SftpCredentialDB, UserDB
from .policy import enforce, is_privileged

logger = logging.getLogger(__name__)


class SftpCredentialService:

    def __init__(self, db_session: Session):
        self.db = db_session

    def _get_or_404(self, credential_id: str) -> SftpCredentialDB:
        credential = self.db.query(SftpCredentialDB).filter(SftpCredentialDB.id == credential_id).first()
        if credential is None:
            raise NotFoundError("Credential not found")
        return credential

    def _username_taken(self, username: str) -> bool:
        return self.db.query(SftpCredentialDB).filter(SftpCredentialDB.username == username).first() is not None

    def create(
        self,
        requester: UserDB,
        username: str,
        password: str,
        user_id: Optional[str] = None,
    ) -> SftpCredentialDB:
        """
        Create a credential for the requester.

        Staff may create one on behalf of another user by passing user_id.
        """
        owner_id = requester.id
        if user_id and user_id != requester.id and is_privileged(requester):
            if self.db.query(UserDB).filter(UserDB.id == user_id).first() is None:
                raise NotFoundError("User not found")
            owner_id = user_id

        if self._username_taken(username):
            raise ConflictError("Username already exists")

        credential = SftpCredentialDB(
            id=str(uuid4()),
            user_id=owner_id,
            username=username,
            password_hash=hash_password(password),
            active=True,
        )
        self.db.add(credential)
        commit_unique(self.db, "Username already exists")
        self.db.refresh(credential)

        logger.info(f"SFTP credential created for user: {owner_id}, username: {username}")
        return credential

    def list(self, requester: UserDB) -> List[SftpCredentialDB]:
        """Staff see every credential, clients only their own."""
        query = self.db.query(SftpCredentialDB)
        if not is_privileged(requester):
            query = query.filter(SftpCredentialDB.user_id == requester.id)
        return query.order_by(SftpCredentialDB.created_at.desc()).all()

    def update(
        self,
        credential_id: str,
        requester: UserDB,
        password: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> SftpCredentialDB:
        credential = self._get_or_404(credential_id)
        enforce(requester, credential)

        if password:
            credential.password_hash = hash_password(password)
        if active is not None:
            credential.active = active

        self.db.commit()
        self.db.refresh(credential)
        logger.info(f"SFTP credential updated: {credential_id}")
        return credential

    def delete(self, credential_id: str, requester: UserDB) -> None:
        credential = self._get_or_404(credential_id)
        enforce(requester, credential)

        self.db.delete(credential)
        self.db.commit()
        logger.info(f"SFTP credential deleted: {credential_id}")

    def authenticate(self, username: str, password: str) -> Optional[SftpCredentialDB]:
        """
        Password check for the SFTP server.

        Only active credentials match. A successful login stamps last_used.
        """
        credential = (
            self.db.query(SftpCredentialDB)
            .filter(SftpCredentialDB.username == username, SftpCredentialDB.active.is_(True))
            .first()
        )
        if credential is None:
            logger.warning(f"SFTP: Failed login attempt for user: {username}")
            return None

        if not verify_password(password, credential.password_hash):
            logger.warning(f"SFTP: Invalid password for user: {username}")
            return None

        credential.last_used = datetime.utcnow()
        self.db.commit()
        logger.info(f"SFTP: Successful authentication for user: {username}")
        return credential
