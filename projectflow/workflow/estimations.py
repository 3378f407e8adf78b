"""
projectflow/workflow/estimations.py

Estimation operations: create / update / delete and the two review stages
(check, approve).

Rules:
- One estimation per project (Conflict on a second one).
- Review flags and derived amounts are never taken from the request; they
  only change through check_estimation() / approve_estimation() and
  Estimation.recalc_totals().
- An approved estimation cannot be deleted, and only its commission /
  quotation amounts may still be edited.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..activity import log_activity
from ..errors import Conflict, PreconditionFailed, ValidationError
from ..extensions import db
from ..models import ActivityType, Estimation, EstimationLabour, EstimationMaterial, EstimationTerm, Project, User
from ..notifications import notify
from ..numbering import ESTIMATION_PREFIX, related_document_number
from ..review import apply_approval, apply_check, decide_approval, decide_check
from ..rollup import money
from ..status import ProjectStatus
from ..utils import (
    get_or_404,
    optional_text,
    parse_bool,
    parse_date,
    parse_decimal,
    parse_list,
    parse_optional_int,
    parse_time,
    require_date,
    require_decimal,
    require_int,
    require_text,
)
from . import change_status, flush_or_conflict, transactional

logger = logging.getLogger(__name__)

# Fields that stay editable after approval
FINANCIAL_FIELDS = {"quotation_amount", "commission_amount"}

# Never accepted from clients
PROTECTED_FIELDS = {
    "is_checked",
    "is_approved",
    "checked_by_id",
    "approved_by_id",
    "estimated_amount",
    "profit",
    "estimation_number",
}


# ---------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------
def _rows(raw: Any, field: str) -> List[Dict[str, Any]]:
    rows = parse_list(raw, field)
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValidationError(f"{field}[{index}] must be an object")
    return rows


def _material_lines(raw: Any) -> List[EstimationMaterial]:
    lines = []
    for i, row in enumerate(_rows(raw, "materials")):
        if not row.get("description") or not row.get("uom") or row.get("quantity") is None or row.get("unit_price") is None:
            raise ValidationError("Material items require description, uom, quantity, and unit_price")
        lines.append(
            EstimationMaterial(
                description=require_text(row["description"], f"materials[{i}].description"),
                uom=require_text(row["uom"], f"materials[{i}].uom"),
                quantity=require_decimal(row["quantity"], f"materials[{i}].quantity"),
                unit_price=require_decimal(row["unit_price"], f"materials[{i}].unit_price"),
            )
        )
    return lines


def _labour_lines(raw: Any) -> List[EstimationLabour]:
    lines = []
    for i, row in enumerate(_rows(raw, "labour")):
        if not row.get("designation") or row.get("days") is None or row.get("price") is None:
            raise ValidationError("Labour items require designation, days, and price")
        lines.append(
            EstimationLabour(
                designation=require_text(row["designation"], f"labour[{i}].designation"),
                days=require_decimal(row["days"], f"labour[{i}].days"),
                price=require_decimal(row["price"], f"labour[{i}].price"),
            )
        )
    return lines


def _term_lines(raw: Any) -> List[EstimationTerm]:
    lines = []
    for i, row in enumerate(_rows(raw, "terms_and_conditions")):
        if not row.get("description") or row.get("quantity") is None or row.get("unit_price") is None:
            raise ValidationError("Terms items require description, quantity, and unit_price")
        lines.append(
            EstimationTerm(
                description=require_text(row["description"], f"terms_and_conditions[{i}].description"),
                quantity=require_decimal(row["quantity"], f"terms_and_conditions[{i}].quantity"),
                unit_price=require_decimal(row["unit_price"], f"terms_and_conditions[{i}].unit_price"),
            )
        )
    return lines


def _optional_amount(payload: Dict[str, Any], key: str):
    value = parse_decimal(payload.get(key), key)
    if value is not None and value < 0:
        raise ValidationError(f"{key} cannot be negative")
    return money(value) if value is not None else None


def _schedule(payload: Dict[str, Any], current: Optional[Estimation] = None) -> Dict[str, Any]:
    """Work window fields. work_days is derived when both dates are known."""
    start = parse_date(payload.get("work_start_date"), "work_start_date") if "work_start_date" in payload else (
        current.work_start_date if current else None
    )
    end = parse_date(payload.get("work_end_date"), "work_end_date") if "work_end_date" in payload else (
        current.work_end_date if current else None
    )
    if start and end and end < start:
        raise ValidationError("work_end_date cannot be before work_start_date")

    if start and end:
        work_days = (end - start).days
    elif "work_days" in payload:
        work_days = parse_optional_int(payload.get("work_days"), "work_days") or 0
    else:
        work_days = current.work_days if current else 0
    if work_days < 0:
        raise ValidationError("work_days cannot be negative")

    return {"work_start_date": start, "work_end_date": end, "work_days": work_days}


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
@transactional
def create_estimation(payload: Dict[str, Any], actor: User) -> Estimation:
    project_id = require_int(payload.get("project_id"), "project_id")
    if payload.get("valid_until") in (None, "") or payload.get("payment_due_by") in (None, ""):
        raise ValidationError("Required fields are missing: valid_until, payment_due_by")

    materials = _material_lines(payload.get("materials"))
    labour = _labour_lines(payload.get("labour"))
    terms = _term_lines(payload.get("terms_and_conditions"))
    if not (materials or labour or terms):
        raise ValidationError("At least one item (materials, labour, or terms) is required")

    payment_due_by = require_int(payload.get("payment_due_by"), "payment_due_by")
    if payment_due_by < 0:
        raise ValidationError("payment_due_by cannot be negative")

    project = get_or_404(Project, project_id, "Project")
    if project.estimation is not None:
        raise Conflict("Only one estimation is allowed per project. Update the existing estimation instead.")

    change_status(project, ProjectStatus.ESTIMATION_PREPARED, actor)

    estimation = Estimation(
        project=project,
        estimation_number=related_document_number(project.id, ESTIMATION_PREFIX),
        daily_start_time=parse_time(payload.get("daily_start_time"), "daily_start_time", "09:00"),
        daily_end_time=parse_time(payload.get("daily_end_time"), "daily_end_time", "18:00"),
        valid_until=require_date(payload.get("valid_until"), "valid_until"),
        payment_due_by=payment_due_by,
        subject=optional_text(payload.get("subject")),
        quotation_amount=_optional_amount(payload, "quotation_amount"),
        commission_amount=_optional_amount(payload, "commission_amount"),
        prepared_by_id=actor.id,
        **_schedule(payload),
    )
    estimation.materials = materials
    estimation.labour = labour
    estimation.terms = terms
    estimation.recalc_totals()

    db.session.add(estimation)
    flush_or_conflict("Only one estimation is allowed per project")

    log_activity(
        project,
        actor,
        ActivityType.GENERAL,
        f"Estimation {estimation.estimation_number} prepared ({money(estimation.estimated_amount)})",
    )
    db.session.commit()

    logger.info("Estimation %s created for %s", estimation.estimation_number, project.project_number)
    return estimation


def get_estimation(estimation_id: int) -> Estimation:
    return get_or_404(Estimation, estimation_id, "Estimation")


def get_project_estimation(project_id: int) -> Optional[Estimation]:
    get_or_404(Project, project_id, "Project")
    return Estimation.query.filter_by(project_id=project_id).first()


@transactional
def update_estimation(estimation_id: int, payload: Dict[str, Any], actor: User) -> Estimation:
    """
    Update fields and/or replace line collections, then recompute totals.

    Review flags and derived amounts in the payload are ignored. A project
    sent back to ``draft`` by a rejection is re-submitted to
    ``estimation_prepared``.
    """
    estimation = get_or_404(Estimation, estimation_id, "Estimation")
    payload = {k: v for k, v in payload.items() if k not in PROTECTED_FIELDS}

    if estimation.is_approved:
        locked = sorted(k for k in payload if k not in FINANCIAL_FIELDS)
        if locked:
            raise PreconditionFailed(
                "Approved estimation can only have its amounts updated",
                details={"fields": locked},
            )

    materials = _material_lines(payload["materials"]) if "materials" in payload else None
    labour = _labour_lines(payload["labour"]) if "labour" in payload else None
    terms = _term_lines(payload["terms_and_conditions"]) if "terms_and_conditions" in payload else None

    remaining = [
        materials if materials is not None else estimation.materials,
        labour if labour is not None else estimation.labour,
        terms if terms is not None else estimation.terms,
    ]
    if not any(remaining):
        raise ValidationError("At least one item (materials, labour, or terms) is required")

    scalars: Dict[str, Any] = _schedule(payload, estimation)
    if "valid_until" in payload:
        scalars["valid_until"] = require_date(payload.get("valid_until"), "valid_until")
    if "payment_due_by" in payload:
        scalars["payment_due_by"] = require_int(payload.get("payment_due_by"), "payment_due_by")
        if scalars["payment_due_by"] < 0:
            raise ValidationError("payment_due_by cannot be negative")
    if "daily_start_time" in payload:
        scalars["daily_start_time"] = parse_time(payload.get("daily_start_time"), "daily_start_time", "09:00")
    if "daily_end_time" in payload:
        scalars["daily_end_time"] = parse_time(payload.get("daily_end_time"), "daily_end_time", "18:00")
    if "subject" in payload:
        scalars["subject"] = optional_text(payload.get("subject"))
    for key in FINANCIAL_FIELDS:
        if key in payload:
            scalars[key] = _optional_amount(payload, key)

    project = estimation.project
    if project.status == ProjectStatus.DRAFT.value:
        change_status(project, ProjectStatus.ESTIMATION_PREPARED, actor)

    for key, value in scalars.items():
        setattr(estimation, key, value)
    if materials is not None:
        estimation.materials = materials
    if labour is not None:
        estimation.labour = labour
    if terms is not None:
        estimation.terms = terms
    estimation.recalc_totals()
    db.session.flush()

    log_activity(project, actor, ActivityType.GENERAL, f"Estimation {estimation.estimation_number} updated")
    db.session.commit()
    return estimation


@transactional
def delete_estimation(estimation_id: int, actor: User) -> None:
    estimation = get_or_404(Estimation, estimation_id, "Estimation")
    if estimation.is_approved:
        raise PreconditionFailed("Cannot delete an approved estimation")

    project = estimation.project
    if project.status == ProjectStatus.ESTIMATION_PREPARED.value:
        change_status(project, ProjectStatus.DRAFT, actor)

    log_activity(project, actor, ActivityType.GENERAL, f"Estimation {estimation.estimation_number} deleted")
    db.session.delete(estimation)
    db.session.commit()


# ---------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------
_REVIEW_VERBS = {
    ActivityType.CHECK: "checked",
    ActivityType.APPROVAL: "approved",
    ActivityType.REJECTION: "rejected",
}


def _review_notification(estimation: Estimation, decision, actor: User) -> None:
    project = estimation.project
    notify(
        project,
        subject=decision.subject,
        title=decision.subject.split(":")[0],
        message=f"Estimation {estimation.estimation_number} for project {project.project_name} "
        f"has been {_REVIEW_VERBS[decision.action_type]} by {actor.full_name()}.",
        actor=actor,
        details=[
            ("Estimated amount", money(estimation.estimated_amount)),
            ("Comment", decision.comment or "-"),
        ],
    )


@transactional
def check_estimation(estimation_id: int, is_checked: Any, actor: User, comment: Optional[str] = None) -> Estimation:
    """First review stage. ``is_checked=False`` rejects the estimation back to draft."""
    is_checked = parse_bool(is_checked, "is_checked")
    estimation = get_or_404(Estimation, estimation_id, "Estimation")

    decision = decide_check(estimation, is_checked, comment)
    project = estimation.project
    if decision.target_status is not None:
        change_status(project, decision.target_status, actor)

    apply_check(estimation, decision, actor)
    db.session.flush()

    log_activity(project, actor, decision.action_type, decision.content)
    db.session.commit()

    _review_notification(estimation, decision, actor)
    return estimation


@transactional
def approve_estimation(
    estimation_id: int, is_approved: Any, actor: User, comment: Optional[str] = None
) -> Estimation:
    """Second review stage; requires a prior check."""
    is_approved = parse_bool(is_approved, "is_approved")
    estimation = get_or_404(Estimation, estimation_id, "Estimation")

    decision = decide_approval(estimation, is_approved, comment)
    project = estimation.project
    change_status(project, decision.target_status, actor)

    apply_approval(estimation, decision, actor)
    db.session.flush()

    log_activity(project, actor, decision.action_type, decision.content)
    db.session.commit()

    _review_notification(estimation, decision, actor)
    return estimation
