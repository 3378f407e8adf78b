"""
Unit tests for the review gate (decide_* never mutate; apply_* copy flags).
"""

import pytest

from projectflow.errors import PreconditionFailed
from projectflow.models import ActivityType, Estimation, Quotation, User
from projectflow.review import (
    apply_approval,
    apply_check,
    apply_quotation_approval,
    decide_approval,
    decide_check,
    decide_quotation_approval,
)
from projectflow.status import ProjectStatus


@pytest.fixture
def reviewer():
    return User(id=7, username="reviewer", role="admin")


@pytest.fixture
def estimation():
    return Estimation(estimation_number="ESTAGA250001", is_checked=False, is_approved=False)


@pytest.fixture
def quotation():
    return Quotation(quotation_number="QTN250001", is_approved=False)


class TestCheck:
    def test_check_keeps_status(self, estimation, reviewer):
        decision = decide_check(estimation, True)

        assert decision.granted
        assert decision.action_type is ActivityType.CHECK
        assert decision.target_status is None
        assert decision.content == "Estimation checked"
        assert decision.subject == "Estimation Checked: ESTAGA250001"

        apply_check(estimation, decision, reviewer)
        assert estimation.is_checked
        assert estimation.checked_by_id == 7

    def test_rejection_sends_back_to_draft(self, estimation):
        decision = decide_check(estimation, False, "  Missing scaffolding  ")

        assert not decision.granted
        assert decision.action_type is ActivityType.REJECTION
        assert decision.target_status is ProjectStatus.DRAFT
        assert decision.content == "Missing scaffolding"

    def test_recheck_rejected(self, estimation):
        estimation.is_checked = True
        with pytest.raises(PreconditionFailed, match="already checked"):
            decide_check(estimation, True)

    def test_cannot_uncheck_approved(self, estimation):
        estimation.is_checked = True
        estimation.is_approved = True
        with pytest.raises(PreconditionFailed):
            decide_check(estimation, False)


class TestApproval:
    def test_requires_check(self, estimation):
        with pytest.raises(PreconditionFailed, match="must be checked"):
            decide_approval(estimation, True)
        assert estimation.is_approved is False

    def test_approve(self, estimation, reviewer):
        estimation.is_checked = True
        decision = decide_approval(estimation, True, "Good to go")

        assert decision.action_type is ActivityType.APPROVAL
        assert decision.target_status is ProjectStatus.ESTIMATION_PREPARED

        apply_approval(estimation, decision, reviewer)
        assert estimation.is_approved
        assert estimation.approved_by_id == 7
        assert estimation.approval_comment == "Good to go"

    def test_reject_resets_check(self, estimation, reviewer):
        estimation.is_checked = True
        estimation.checked_by_id = 3
        decision = decide_approval(estimation, False)

        assert decision.target_status is ProjectStatus.DRAFT
        assert decision.content == "Estimation rejected"

        apply_approval(estimation, decision, reviewer)
        assert not estimation.is_approved
        assert not estimation.is_checked
        assert estimation.checked_by_id is None

    def test_reapprove_rejected(self, estimation):
        estimation.is_checked = True
        estimation.is_approved = True
        with pytest.raises(PreconditionFailed, match="already approved"):
            decide_approval(estimation, True)


class TestQuotationApproval:
    def test_approve(self, quotation, reviewer):
        decision = decide_quotation_approval(quotation, True)
        assert decision.target_status is ProjectStatus.QUOTATION_APPROVED
        assert decision.subject == "Quotation Approved: QTN250001"

        apply_quotation_approval(quotation, decision, reviewer)
        assert quotation.is_approved
        assert quotation.approved_by_id == 7

    def test_reject(self, quotation, reviewer):
        decision = decide_quotation_approval(quotation, False, "Too expensive")
        assert decision.action_type is ActivityType.REJECTION
        assert decision.target_status is ProjectStatus.QUOTATION_REJECTED

        apply_quotation_approval(quotation, decision, reviewer)
        assert not quotation.is_approved
        assert quotation.approval_comment == "Too expensive"

    def test_reapprove_rejected(self, quotation):
        quotation.is_approved = True
        with pytest.raises(PreconditionFailed):
            decide_quotation_approval(quotation, True)
