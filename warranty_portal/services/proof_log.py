"""
Proof Event Log

Append-only review trail for a job. APPROVED and REQUEST_CHANGES also move
the job status, in the same transaction as the event insert: either both
the event and the status change are stored, or neither is.
"""
import logging
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models.db_models import JobDB, JobStatus, ProofAction, ProofEventDB, UserDB
from .lifecycle import JobLifecycle, Trigger
from .notifications import NotificationService
from .policy import enforce

logger = logging.getLogger(__name__)

# Status change driven by each action, if any
ACTION_TRANSITIONS = {
    ProofAction.APPROVED: (JobStatus.APPROVED, Trigger.PROOF_APPROVED),
    ProofAction.REQUEST_CHANGES: (JobStatus.ASSETS_UPLOADED, Trigger.REQUEST_CHANGES),
}


class ProofEventLog:

    def __init__(
        self,
        db_session: Session,
        lifecycle: JobLifecycle,
        notifier: Optional[NotificationService] = None,
    ):
        self.db = db_session
        self.lifecycle = lifecycle
        self.notifier = notifier

    def _get_job(self, job_id: str) -> JobDB:
        job = self.db.query(JobDB).filter(JobDB.id == job_id).first()
        if job is None:
            raise NotFoundError("Job not found")
        return job

    def record(self, job_id: str, action: ProofAction, notes: Optional[str], requester: UserDB) -> ProofEventDB:
        """
        Append a review action.

        Raises InvalidTransitionError (and writes nothing) when the action's
        status change is not allowed from the job's current status.
        """
        action = ProofAction(action)
        job = self._get_job(job_id)
        enforce(requester, job)

        try:
            transition = ACTION_TRANSITIONS.get(action)
            if transition is not None:
                to_state, trigger = transition
                self.lifecycle.transition(job, to_state, trigger)

            event = ProofEventDB(
                id=str(uuid4()),
                job_id=job.id,
                user_id=requester.id,
                action=action,
                notes=notes,
            )
            self.db.add(event)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(event)
        logger.info(f"Proof event added: {action.value} for job {job.id}")

        if action == ProofAction.APPROVED and self.notifier is not None:
            self.db.refresh(job)
            self.notifier.proofs_approved(job, requester)
        return event

    def list_for_job(self, job_id: str, requester: UserDB) -> List[ProofEventDB]:
        """Events newest first."""
        job = self._get_job(job_id)
        enforce(requester, job)
        return (
            self.db.query(ProofEventDB)
            .filter(ProofEventDB.job_id == job.id)
            .order_by(ProofEventDB.created_at.desc())
            .all()
        )
