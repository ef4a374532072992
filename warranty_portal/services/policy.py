"""
Authorization Policy

Single decision point for "may this requester touch this resource".
Handlers resolve the resource first (NotFound), then ask the policy
(Forbidden), so a missing id is never reported as a permission problem.
"""
from enum import Enum
from typing import Any, Optional

from ..errors import ForbiddenError
from ..models.db_models import UserRole, JobDB, FileDB, SftpCredentialDB, InvoiceDB

PRIVILEGED_ROLES = (UserRole.ADMIN, UserRole.STAFF)


class Decision(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


def is_privileged(requester: Any) -> bool:
    """ADMIN and STAFF see every resource."""
    return UserRole(requester.role) in PRIVILEGED_ROLES


def owner_of(resource: Any) -> Optional[str]:
    """
    Resolve the owning user id of a resource.

    Files and invoices inherit ownership from their parent job.
    """
    if isinstance(resource, JobDB):
        return resource.user_id
    if isinstance(resource, (FileDB, InvoiceDB)):
        return resource.job.user_id if resource.job is not None else None
    if isinstance(resource, SftpCredentialDB):
        return resource.user_id
    return getattr(resource, "user_id", None)


def authorize(requester: Any, owner_user_id: Optional[str]) -> Decision:
    """Pure decision: privileged roles always, clients only on what they own."""
    if is_privileged(requester):
        return Decision.ALLOW
    if owner_user_id is not None and owner_user_id == requester.id:
        return Decision.ALLOW
    return Decision.DENY


def enforce(requester: Any, resource: Any) -> None:
    """Raise ForbiddenError unless the requester may act on the resource."""
    if authorize(requester, owner_of(resource)) is Decision.DENY:
        raise ForbiddenError("Access denied")
