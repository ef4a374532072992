"""
Tests for the job status workflow.

Covers:
1. Transition table enforcement per trigger
2. Idempotent re-entry of the current status
3. approved_at stamping
4. File threshold auto-advance (DRAFT only)
5. No backwards move except the change-request send-back
"""
import pytest

from warranty_portal.errors import InvalidTransitionError, ValidationError
from warranty_portal.models.db_models import JobDB, JobStatus
from warranty_portal.services.lifecycle import STATE_CONFIG, JobLifecycle, Trigger


def make_job(status=JobStatus.DRAFT):
    return JobDB(id="job-1", status=status)


class TestTransitions:

    def test_full_forward_path(self):
        """DRAFT through COMPLETE using the triggers each edge allows."""
        lifecycle = JobLifecycle()
        job = make_job()

        assert lifecycle.transition(job, JobStatus.ASSETS_UPLOADED, Trigger.FILE_THRESHOLD)
        assert lifecycle.transition(job, JobStatus.PROOFING, Trigger.STATUS_PATCH)
        assert lifecycle.transition(job, JobStatus.APPROVED, Trigger.PROOF_APPROVED)
        assert lifecycle.transition(job, JobStatus.PRINTING, Trigger.STATUS_PATCH)
        assert lifecycle.transition(job, JobStatus.INVOICED, Trigger.INVOICE_GENERATED)
        assert lifecycle.transition(job, JobStatus.COMPLETE, Trigger.STATUS_PATCH)

        assert job.status == JobStatus.COMPLETE
        assert lifecycle.is_terminal_state(JobStatus.COMPLETE)

    def test_skipping_states_rejected(self):
        lifecycle = JobLifecycle()
        job = make_job()

        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(job, JobStatus.COMPLETE, Trigger.STATUS_PATCH)
        assert job.status == JobStatus.DRAFT

    def test_complete_is_closed(self):
        lifecycle = JobLifecycle()
        job = make_job(JobStatus.COMPLETE)

        with pytest.raises(InvalidTransitionError, match="terminal status"):
            lifecycle.transition(job, JobStatus.INVOICED, Trigger.STATUS_PATCH)

    def test_backwards_patch_rejected(self):
        """Only a change request may send a job back."""
        lifecycle = JobLifecycle()
        job = make_job(JobStatus.PRINTING)

        with pytest.raises(InvalidTransitionError, match="PRINTING back to PROOFING"):
            lifecycle.transition(job, JobStatus.PROOFING, Trigger.STATUS_PATCH)
        assert job.status == JobStatus.PRINTING

    def test_invalid_transition_is_a_validation_error(self):
        """Maps to 400 at the API boundary."""
        assert issubclass(InvalidTransitionError, ValidationError)

    def test_approval_requires_proof_event(self):
        """A status PATCH cannot approve proofs."""
        lifecycle = JobLifecycle()
        job = make_job(JobStatus.PROOFING)

        allowed, reason = lifecycle.can_transition(JobStatus.PROOFING, JobStatus.APPROVED, Trigger.STATUS_PATCH)
        assert allowed is False
        assert "status_patch" in reason

        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(job, JobStatus.APPROVED, Trigger.STATUS_PATCH)

    def test_same_status_is_noop(self):
        lifecycle = JobLifecycle()
        job = make_job(JobStatus.APPROVED)

        assert lifecycle.transition(job, JobStatus.APPROVED, Trigger.PROOF_APPROVED) is False
        assert job.status == JobStatus.APPROVED
        assert job.approved_at is None

    def test_approved_stamps_timestamp(self):
        lifecycle = JobLifecycle()
        job = make_job(JobStatus.PROOFING)

        lifecycle.transition(job, JobStatus.APPROVED, Trigger.PROOF_APPROVED)

        assert job.approved_at is not None
        assert job.updated_at is not None

    def test_request_changes_sends_back(self):
        lifecycle = JobLifecycle()
        job = make_job(JobStatus.PROOFING)

        lifecycle.transition(job, JobStatus.ASSETS_UPLOADED, Trigger.REQUEST_CHANGES)
        assert job.status == JobStatus.ASSETS_UPLOADED

    def test_next_states(self):
        lifecycle = JobLifecycle()
        assert lifecycle.get_next_states(JobStatus.DRAFT) == [JobStatus.ASSETS_UPLOADED]
        assert lifecycle.get_next_states(JobStatus.COMPLETE) == []


class TestFileThreshold:

    def test_below_threshold_stays_draft(self):
        lifecycle = JobLifecycle(asset_threshold=6)
        job = make_job()

        assert lifecycle.apply_file_threshold(job, 5) is False
        assert job.status == JobStatus.DRAFT

    def test_threshold_advances_draft(self):
        lifecycle = JobLifecycle(asset_threshold=6)
        job = make_job()

        assert lifecycle.apply_file_threshold(job, 6) is True
        assert job.status == JobStatus.ASSETS_UPLOADED

    def test_threshold_ignores_later_states(self):
        """Uploading proofs to an approved job does not move it."""
        lifecycle = JobLifecycle(asset_threshold=6)
        job = make_job(JobStatus.APPROVED)

        assert lifecycle.apply_file_threshold(job, 10) is False
        assert job.status == JobStatus.APPROVED

    def test_threshold_is_configurable(self):
        lifecycle = JobLifecycle(asset_threshold=2)
        job = make_job()

        assert lifecycle.apply_file_threshold(job, 2) is True


class TestWorkflowShape:

    def test_every_state_configured(self):
        assert set(STATE_CONFIG) == set(JobStatus)

    def test_only_change_requests_move_backwards(self):
        """Every backwards edge is reachable only through REQUEST_CHANGES."""
        for from_state, config in STATE_CONFIG.items():
            for to_state, triggers in config["allowed_transitions"].items():
                if JobLifecycle.is_regression(from_state, to_state):
                    assert (from_state, to_state) == (JobStatus.PROOFING, JobStatus.ASSETS_UPLOADED)
                    assert triggers == {Trigger.REQUEST_CHANGES}
