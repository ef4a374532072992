"""
Job Lifecycle State Machine

Deterministic status workflow for campaigns.
States only move forward, except the single send-back edge
PROOFING -> ASSETS_UPLOADED triggered by a change request.
Every edge also names the triggers allowed to take it.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Tuple

from ..errors import InvalidTransitionError
from ..models.db_models import JobDB, JobStatus

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    """What caused a status change."""
    FILE_THRESHOLD = "file_threshold"        # SYSTEM: enough assets uploaded
    STATUS_PATCH = "status_patch"            # STAFF: explicit status update
    PROOF_APPROVED = "proof_approved"        # Proof event APPROVED
    REQUEST_CHANGES = "request_changes"      # Proof event REQUEST_CHANGES
    INVOICE_GENERATED = "invoice_generated"  # Invoice created for the job


# =============================================================================
# STATE CONFIGURATION
# =============================================================================
#
# allowed_transitions maps each reachable state to the triggers that may
# take that edge. A state with no outgoing edges is terminal.
#
# =============================================================================

STATE_CONFIG = {
    JobStatus.DRAFT: {
        "description": "Campaign created, waiting for assets",
        "allowed_transitions": {
            JobStatus.ASSETS_UPLOADED: {Trigger.FILE_THRESHOLD, Trigger.STATUS_PATCH},
        },
    },
    JobStatus.ASSETS_UPLOADED: {
        "description": "All required assets received",
        "allowed_transitions": {
            JobStatus.PROOFING: {Trigger.STATUS_PATCH},
        },
    },
    JobStatus.PROOFING: {
        "description": "Proofs out for review",
        "allowed_transitions": {
            JobStatus.APPROVED: {Trigger.PROOF_APPROVED},
            JobStatus.ASSETS_UPLOADED: {Trigger.REQUEST_CHANGES},
        },
    },
    JobStatus.APPROVED: {
        "description": "Proofs approved, ready for production",
        "allowed_transitions": {
            JobStatus.PRINTING: {Trigger.STATUS_PATCH},
            JobStatus.INVOICED: {Trigger.STATUS_PATCH, Trigger.INVOICE_GENERATED},
            JobStatus.COMPLETE: {Trigger.STATUS_PATCH},
        },
    },
    JobStatus.PRINTING: {
        "description": "In production",
        "allowed_transitions": {
            JobStatus.INVOICED: {Trigger.STATUS_PATCH, Trigger.INVOICE_GENERATED},
            JobStatus.COMPLETE: {Trigger.STATUS_PATCH},
        },
    },
    JobStatus.INVOICED: {
        "description": "Invoice issued",
        "allowed_transitions": {
            JobStatus.COMPLETE: {Trigger.STATUS_PATCH},
        },
    },
    JobStatus.COMPLETE: {
        "description": "Campaign mailed and closed",
        "allowed_transitions": {},  # Terminal state
    },
}

STATUS_ORDER = list(JobStatus)


# =============================================================================
# STATE MACHINE
# =============================================================================

class JobLifecycle:
    """
    Status workflow for jobs.

    - Transitions outside STATE_CONFIG raise InvalidTransitionError
    - Re-entering the current status is a no-op, so repeated triggers are harmless
    - Entering APPROVED stamps approved_at
    """

    def __init__(self, asset_threshold: int = 6):
        self.asset_threshold = asset_threshold

    def get_state_config(self, state: JobStatus) -> Dict[str, Any]:
        """Get configuration for a state."""
        return STATE_CONFIG.get(JobStatus(state), {})

    def can_transition(
        self,
        from_state: JobStatus,
        to_state: JobStatus,
        trigger: Trigger,
    ) -> Tuple[bool, str]:
        """
        Check if a state transition is allowed for this trigger.

        Returns (allowed, reason)
        """
        from_state, to_state = JobStatus(from_state), JobStatus(to_state)
        allowed = self.get_state_config(from_state).get("allowed_transitions", {})

        if to_state not in allowed:
            if self.is_terminal_state(from_state):
                return False, f"Cannot transition from {from_state.value}: it is a terminal status"
            if self.is_regression(from_state, to_state):
                return False, f"Cannot transition from {from_state.value} back to {to_state.value}"
            return False, f"Cannot transition from {from_state.value} to {to_state.value}"
        if trigger not in allowed[to_state]:
            return False, f"Transition from {from_state.value} to {to_state.value} cannot be made by {trigger.value}"
        return True, "Transition allowed"

    def transition(self, job: JobDB, to_state: JobStatus, trigger: Trigger) -> bool:
        """
        Move a job to a new status.

        Returns True when the status changed, False when the job was already
        in the requested status.
        """
        to_state = JobStatus(to_state)
        from_state = JobStatus(job.status)

        if from_state == to_state:
            return False

        allowed, reason = self.can_transition(from_state, to_state, trigger)
        if not allowed:
            raise InvalidTransitionError(reason)

        job.status = to_state
        job.updated_at = datetime.utcnow()
        if to_state == JobStatus.APPROVED:
            job.approved_at = datetime.utcnow()

        if self.is_regression(from_state, to_state):
            logger.info(f"Job {job.id}: sent back {from_state.value} -> {to_state.value} ({trigger.value})")
        else:
            logger.info(f"Job {job.id}: {from_state.value} -> {to_state.value} ({trigger.value})")
        return True

    def apply_file_threshold(self, job: JobDB, file_count: int) -> bool:
        """
        Auto-advance DRAFT -> ASSETS_UPLOADED once enough files are attached.

        Only acts on DRAFT jobs; any other status is left alone.
        """
        if JobStatus(job.status) != JobStatus.DRAFT or file_count < self.asset_threshold:
            return False
        return self.transition(job, JobStatus.ASSETS_UPLOADED, Trigger.FILE_THRESHOLD)

    def is_terminal_state(self, state: JobStatus) -> bool:
        """Check if a state is terminal (no further transitions)."""
        return len(self.get_state_config(state).get("allowed_transitions", {})) == 0

    def get_next_states(self, state: JobStatus) -> List[JobStatus]:
        """Get possible next states from current state."""
        return list(self.get_state_config(state).get("allowed_transitions", {}).keys())

    @staticmethod
    def is_regression(from_state: JobStatus, to_state: JobStatus) -> bool:
        """True when to_state sits earlier in the workflow than from_state."""
        return STATUS_ORDER.index(JobStatus(to_state)) < STATUS_ORDER.index(JobStatus(from_state))
