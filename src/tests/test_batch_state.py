"""Tests for the Draft/Locked batch state machine."""

from types import SimpleNamespace

import pytest

from src.models import QaStatus
from src.services.batch_state import (
    QA_TRANSITIONS,
    Draft,
    Locked,
    coerce_qa_status,
    require_draft,
    state_of,
)
from src.services.exceptions import (
    BatchLocked,
    InvalidQaTransition,
    QaNotResolved,
    ValidationError,
)


class TestQaTransitions:
    """Tests for QA changes on a draft."""

    def test_new_draft_is_pending(self):
        """A draft starts with QA status pending."""
        assert Draft().qa == QaStatus.PENDING

    @pytest.mark.parametrize("target", ["approved", "rejected", "hold"])
    def test_pending_moves_to_any_decision(self, target):
        """Pending can move to approved, rejected or hold."""
        assert Draft().with_qa(target).qa == QaStatus(target)

    @pytest.mark.parametrize("current", ["hold", "approved", "rejected"])
    def test_nothing_returns_to_pending(self, current):
        """Once decided, QA status never goes back to pending."""
        with pytest.raises(InvalidQaTransition) as exc_info:
            Draft(QaStatus(current)).with_qa("pending")
        assert exc_info.value.current == current
        assert exc_info.value.requested == "pending"

    def test_revision_between_decisions(self):
        """Approved and rejected can be revised into each other or into hold."""
        approved = Draft(QaStatus.APPROVED)
        assert approved.with_qa("rejected").qa == QaStatus.REJECTED
        assert approved.with_qa("hold").qa == QaStatus.HOLD
        assert Draft(QaStatus.REJECTED).with_qa("approved").qa == QaStatus.APPROVED

    def test_same_status_is_noop(self):
        """Re-applying the current status returns the same draft."""
        draft = Draft(QaStatus.HOLD)
        assert draft.with_qa("hold") is draft

    def test_status_is_case_insensitive(self):
        """Status strings are normalized before lookup."""
        assert Draft().with_qa(" Approved ").qa == QaStatus.APPROVED

    def test_unknown_status_is_validation_error(self):
        """An unknown status is rejected as a validation error."""
        with pytest.raises(ValidationError):
            coerce_qa_status("shipped")

    def test_table_has_no_pending_target(self):
        """No transition in the table leads to pending."""
        for targets in QA_TRANSITIONS.values():
            assert QaStatus.PENDING not in targets


class TestLocking:
    """Tests for the lock axis."""

    @pytest.mark.parametrize("qa", [QaStatus.APPROVED, QaStatus.REJECTED])
    def test_resolved_draft_locks(self, qa):
        """Approved and rejected drafts can be locked."""
        locked = Draft(qa).lock()
        assert isinstance(locked, Locked)
        assert locked.qa == qa
        assert locked.is_locked

    @pytest.mark.parametrize("qa", [QaStatus.PENDING, QaStatus.HOLD])
    def test_unresolved_draft_cannot_lock(self, qa):
        """Pending and hold drafts raise QaNotResolved."""
        with pytest.raises(QaNotResolved):
            Draft(qa).lock()

    @pytest.mark.parametrize("qa", [QaStatus.PENDING, QaStatus.HOLD])
    def test_locked_pending_is_unrepresentable(self, qa):
        """Locked cannot be built with an unresolved QA status."""
        with pytest.raises(ValueError):
            Locked(qa)

    def test_only_approved_materializes(self):
        """Approved locked batches materialize; rejected ones do not."""
        assert Locked(QaStatus.APPROVED).materializes
        assert not Locked(QaStatus.REJECTED).materializes


class TestStateOfRow:
    """Tests for building the state from a batch row."""

    def test_unlocked_row_is_draft(self):
        """An unlocked row maps to Draft."""
        row = SimpleNamespace(id=1, batch_code="BATCH-0001", is_locked=False, qa_status="hold")
        assert state_of(row) == Draft(QaStatus.HOLD)

    def test_locked_row_is_locked(self):
        """A locked row maps to Locked."""
        row = SimpleNamespace(id=1, batch_code="BATCH-0001", is_locked=True, qa_status="rejected")
        assert state_of(row) == Locked(QaStatus.REJECTED)

    def test_require_draft_refuses_locked_row(self):
        """require_draft raises BatchLocked with the batch code."""
        row = SimpleNamespace(id=7, batch_code="BATCH-0007", is_locked=True, qa_status="approved")
        with pytest.raises(BatchLocked) as exc_info:
            require_draft(row)
        assert exc_info.value.batch_code == "BATCH-0007"
