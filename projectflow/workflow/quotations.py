"""
projectflow/workflow/quotations.py

Quotation operations: create / update / approve / delete.

Rules:
- One quotation per project, created from an APPROVED estimation.
- Creating a quotation moves the project to ``quotation_sent``; the
  estimation's quotation_amount follows the quotation subtotal so the
  estimation profit stays in sync.
- Item images go through the object storage collaborator. Objects stored by
  a failed operation, and objects no longer referenced after a successful
  one, are removed best-effort.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app
from werkzeug.datastructures import FileStorage

from ..activity import log_activity
from ..errors import Conflict, NotFound, PreconditionFailed, ValidationError
from ..extensions import db
from ..models import ActivityType, Project, Quotation, QuotationItem, User
from ..notifications import notify
from ..numbering import QUOTATION_PREFIX, related_document_number
from ..review import apply_quotation_approval, decide_quotation_approval
from ..rollup import money
from ..status import ProjectStatus
from ..utils import (
    get_or_404,
    parse_bool,
    parse_decimal,
    parse_list,
    require_date,
    require_decimal,
    require_int,
    require_text,
    string_list,
)
from . import change_status, discard_files, flush_or_conflict, transactional, upload_file

logger = logging.getLogger(__name__)

IMAGE_FOLDER = "quotation-items"


# ---------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------
def _vat_percentage(payload: Dict[str, Any]):
    if payload.get("vat_percentage") in (None, ""):
        return current_app.config.get("DEFAULT_VAT_PERCENTAGE", 5)
    vat = parse_decimal(payload.get("vat_percentage"), "vat_percentage")
    if vat < 0 or vat > 100:
        raise ValidationError("vat_percentage must be between 0 and 100")
    return vat


def _item_rows(raw: Any) -> List[Dict[str, Any]]:
    rows = parse_list(raw, "items")
    if not rows:
        raise ValidationError("At least one quotation item is required")

    parsed = []
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValidationError(f"items[{i}] must be an object")
        image = row.get("image") if isinstance(row.get("image"), dict) else None
        parsed.append(
            {
                "description": require_text(row.get("description"), f"items[{i}].description"),
                "uom": require_text(row.get("uom"), f"items[{i}].uom"),
                "quantity": require_decimal(row.get("quantity"), f"items[{i}].quantity"),
                "unit_price": require_decimal(row.get("unit_price"), f"items[{i}].unit_price"),
                # Existing image kept on update
                "image_key": (image or {}).get("key"),
                "image_url": (image or {}).get("url"),
            }
        )
    return parsed


def _build_items(
    rows: List[Dict[str, Any]],
    images: Mapping[int, FileStorage],
    uploaded: List[str],
    kept_keys: frozenset = frozenset(),
) -> List[QuotationItem]:
    items = []
    for index, row in enumerate(rows):
        item = QuotationItem(**row)
        if item.image_key not in kept_keys:
            # Only images already attached to this quotation can be kept
            item.image_key = item.image_url = None
        upload = images.get(index)
        if upload is not None and upload.filename:
            stored = upload_file(upload, IMAGE_FOLDER)
            uploaded.append(stored["key"])
            item.image_key = stored["key"]
            item.image_url = stored["url"]
        items.append(item)
    return items


def _sync_estimation(quotation: Quotation) -> None:
    estimation = quotation.estimation
    if estimation is None:
        return
    estimation.quotation_amount = quotation.subtotal
    estimation.recalc_totals()


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
@transactional
def create_quotation(
    payload: Dict[str, Any], actor: User, images: Optional[Mapping[int, FileStorage]] = None
) -> Quotation:
    project_id = require_int(payload.get("project_id"), "project_id")
    valid_until = require_date(payload.get("valid_until"), "valid_until")
    rows = _item_rows(payload.get("items"))
    vat_percentage = _vat_percentage(payload)
    scope_of_work = string_list(payload.get("scope_of_work"), "scope_of_work")
    terms = string_list(payload.get("terms_and_conditions"), "terms_and_conditions")

    project = get_or_404(Project, project_id, "Project")
    if project.quotation is not None:
        raise Conflict("Project already has a quotation")

    estimation = project.estimation
    if estimation is None:
        raise NotFound("Estimation not found for this project")
    if not estimation.is_approved:
        raise PreconditionFailed("Estimation must be approved before a quotation is created")

    change_status(project, ProjectStatus.QUOTATION_SENT, actor)

    uploaded: List[str] = []
    try:
        with db.session.no_autoflush:
            quotation = Quotation(
                project=project,
                estimation=estimation,
                quotation_number=related_document_number(project.id, QUOTATION_PREFIX),
                valid_until=valid_until,
                scope_of_work=scope_of_work,
                terms_and_conditions=terms,
                vat_percentage=vat_percentage,
                prepared_by_id=actor.id,
            )
            quotation.items = _build_items(rows, images or {}, uploaded)
            quotation.recalc_totals()
            _sync_estimation(quotation)

        db.session.add(quotation)
        flush_or_conflict("Project already has a quotation")

        log_activity(
            project,
            actor,
            ActivityType.GENERAL,
            f"Quotation {quotation.quotation_number} sent (net {money(quotation.net_amount)})",
        )
        db.session.commit()
    except Exception:
        discard_files(uploaded)
        raise

    logger.info("Quotation %s created for %s", quotation.quotation_number, project.project_number)
    return quotation


def get_project_quotation(project_id: int) -> Optional[Quotation]:
    get_or_404(Project, project_id, "Project")
    return Quotation.query.filter_by(project_id=project_id).first()


@transactional
def update_quotation(
    quotation_id: int, payload: Dict[str, Any], actor: User, images: Optional[Mapping[int, FileStorage]] = None
) -> Quotation:
    """
    Update fields and/or replace items, then recompute totals.

    A rejected quotation that is edited is sent again (``quotation_sent``).
    """
    quotation = get_or_404(Quotation, quotation_id, "Quotation")
    if quotation.is_approved:
        raise PreconditionFailed("An approved quotation cannot be modified")

    rows = _item_rows(payload["items"]) if "items" in payload else None
    scalars: Dict[str, Any] = {}
    if "valid_until" in payload:
        scalars["valid_until"] = require_date(payload.get("valid_until"), "valid_until")
    if "vat_percentage" in payload:
        scalars["vat_percentage"] = _vat_percentage(payload)
    if "scope_of_work" in payload:
        scalars["scope_of_work"] = string_list(payload.get("scope_of_work"), "scope_of_work")
    if "terms_and_conditions" in payload:
        scalars["terms_and_conditions"] = string_list(payload.get("terms_and_conditions"), "terms_and_conditions")

    project = quotation.project
    if project.status == ProjectStatus.QUOTATION_REJECTED.value:
        change_status(project, ProjectStatus.QUOTATION_SENT, actor)

    previous_keys = {item.image_key for item in quotation.items if item.image_key}
    uploaded: List[str] = []
    try:
        for key, value in scalars.items():
            setattr(quotation, key, value)
        if rows is not None:
            quotation.items = _build_items(rows, images or {}, uploaded, frozenset(previous_keys))
        quotation.recalc_totals()
        _sync_estimation(quotation)
        db.session.flush()

        log_activity(project, actor, ActivityType.GENERAL, f"Quotation {quotation.quotation_number} updated")
        db.session.commit()
    except Exception:
        discard_files(uploaded)
        raise

    current_keys = {item.image_key for item in quotation.items if item.image_key}
    discard_files(previous_keys - current_keys)
    return quotation


@transactional
def delete_quotation(quotation_id: int, actor: User) -> None:
    quotation = get_or_404(Quotation, quotation_id, "Quotation")
    if quotation.is_approved:
        raise PreconditionFailed("Cannot delete an approved quotation")

    project = quotation.project
    change_status(project, ProjectStatus.ESTIMATION_PREPARED, actor)

    image_keys = [item.image_key for item in quotation.items]
    log_activity(project, actor, ActivityType.GENERAL, f"Quotation {quotation.quotation_number} deleted")
    db.session.delete(quotation)
    db.session.commit()

    discard_files(image_keys)


# ---------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------
@transactional
def approve_quotation(quotation_id: int, is_approved: Any, actor: User, comment: Optional[str] = None) -> Quotation:
    is_approved = parse_bool(is_approved, "is_approved")
    quotation = get_or_404(Quotation, quotation_id, "Quotation")

    decision = decide_quotation_approval(quotation, is_approved, comment)
    project = quotation.project
    change_status(project, decision.target_status, actor)

    apply_quotation_approval(quotation, decision, actor)
    db.session.flush()

    log_activity(project, actor, decision.action_type, decision.content)
    db.session.commit()

    notify(
        project,
        subject=decision.subject,
        title=decision.subject.split(":")[0],
        message=f"Quotation {quotation.quotation_number} for project {project.project_name} has been "
        f"{'approved' if decision.granted else 'rejected'} by {actor.full_name()}.",
        actor=actor,
        details=[("Net amount", money(quotation.net_amount)), ("Comment", decision.comment or "-")],
    )
    return quotation
