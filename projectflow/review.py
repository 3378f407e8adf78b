"""
projectflow/review.py

Review gate for estimations (checked -> approved) and quotations (approved).

``decide_*`` functions validate the sign-off precondition and return a
ReviewDecision describing what must happen (activity type, comment text,
project status target). They do not mutate anything, so a failed
precondition leaves the document untouched.

``apply_*`` functions copy a decision onto the document (flags + acting user).
The orchestrator validates the status edge between the two calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import PreconditionFailed
from .models import ActivityType, Estimation, Quotation, User
from .status import ProjectStatus


@dataclass(frozen=True)
class ReviewDecision:
    granted: bool
    action_type: ActivityType
    content: str
    # None: the project status does not change
    target_status: Optional[ProjectStatus]
    subject: str
    comment: Optional[str] = None


def _clean(comment: Optional[str]) -> Optional[str]:
    comment = (comment or "").strip()
    return comment or None


# ---------------------------------------------------------------------
# Estimation: check
# ---------------------------------------------------------------------
def decide_check(estimation: Estimation, is_checked: bool, comment: Optional[str] = None) -> ReviewDecision:
    if is_checked and estimation.is_checked:
        raise PreconditionFailed("Estimation is already checked")
    if not is_checked and estimation.is_approved:
        raise PreconditionFailed("An approved estimation cannot be rejected")

    comment = _clean(comment)
    if is_checked:
        return ReviewDecision(
            granted=True,
            action_type=ActivityType.CHECK,
            content=comment or "Estimation checked",
            target_status=None,
            subject=f"Estimation Checked: {estimation.estimation_number}",
            comment=comment,
        )

    return ReviewDecision(
        granted=False,
        action_type=ActivityType.REJECTION,
        content=comment or "Estimation rejected during check",
        target_status=ProjectStatus.DRAFT,
        subject=f"Estimation Rejected: {estimation.estimation_number}",
        comment=comment,
    )


def apply_check(estimation: Estimation, decision: ReviewDecision, actor: User) -> None:
    estimation.is_checked = decision.granted
    estimation.checked_by_id = actor.id if decision.granted else None
    if decision.comment:
        estimation.approval_comment = decision.comment


# ---------------------------------------------------------------------
# Estimation: approval
# ---------------------------------------------------------------------
def decide_approval(estimation: Estimation, is_approved: bool, comment: Optional[str] = None) -> ReviewDecision:
    """
    Second sign-off. Requires a prior check.

    Approval keeps the project in ``estimation_prepared`` (ready for a
    quotation). Rejection sends it back to ``draft``.
    """
    if not estimation.is_checked:
        raise PreconditionFailed("Estimation must be checked before approval/rejection")
    if estimation.is_approved:
        if is_approved:
            raise PreconditionFailed("Estimation is already approved")
        raise PreconditionFailed("An approved estimation cannot be rejected")

    comment = _clean(comment)
    verb = "approved" if is_approved else "rejected"
    return ReviewDecision(
        granted=bool(is_approved),
        action_type=ActivityType.APPROVAL if is_approved else ActivityType.REJECTION,
        content=comment or f"Estimation {verb}",
        target_status=ProjectStatus.ESTIMATION_PREPARED if is_approved else ProjectStatus.DRAFT,
        subject=f"Estimation {verb.capitalize()}: {estimation.estimation_number}",
        comment=comment,
    )


def apply_approval(estimation: Estimation, decision: ReviewDecision, actor: User) -> None:
    estimation.is_approved = decision.granted
    estimation.approved_by_id = actor.id if decision.granted else None
    estimation.approval_comment = decision.comment

    if not decision.granted:
        # Rejected estimations go through the check again
        estimation.is_checked = False
        estimation.checked_by_id = None


# ---------------------------------------------------------------------
# Quotation: single-stage approval
# ---------------------------------------------------------------------
def decide_quotation_approval(
    quotation: Quotation, is_approved: bool, comment: Optional[str] = None
) -> ReviewDecision:
    if quotation.is_approved and is_approved:
        raise PreconditionFailed("Quotation is already approved")

    comment = _clean(comment)
    verb = "approved" if is_approved else "rejected"
    return ReviewDecision(
        granted=bool(is_approved),
        action_type=ActivityType.APPROVAL if is_approved else ActivityType.REJECTION,
        content=comment or f"Quotation {verb}",
        target_status=ProjectStatus.QUOTATION_APPROVED if is_approved else ProjectStatus.QUOTATION_REJECTED,
        subject=f"Quotation {verb.capitalize()}: {quotation.quotation_number}",
        comment=comment,
    )


def apply_quotation_approval(quotation: Quotation, decision: ReviewDecision, actor: User) -> None:
    quotation.is_approved = decision.granted
    quotation.approved_by_id = actor.id if decision.granted else None
    quotation.approval_comment = decision.comment
