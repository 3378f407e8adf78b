"""
projectflow/workflow/lpos.py

Client purchase order (LPO) operations.

Rules:
- An LPO can only be recorded while the project is exactly in
  ``quotation_sent``; it moves the project to ``lpo_received``.
- At least one item and at least one uploaded document are required.
- An LPO can only be deleted while the project is still ``lpo_received``
  (the project returns to ``quotation_sent``).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from werkzeug.datastructures import FileStorage

from ..activity import log_activity
from ..errors import Conflict, PreconditionFailed, ValidationError
from ..extensions import db
from ..models import ActivityType, Lpo, LpoDocument, LpoItem, Project, User
from ..notifications import notify
from ..rollup import money
from ..status import ProjectStatus
from ..utils import get_or_404, parse_list, require_date, require_decimal, require_int, require_text
from . import change_status, discard_files, flush_or_conflict, transactional, upload_file

logger = logging.getLogger(__name__)

DOCUMENT_FOLDER = "lpo-documents"


def _items(raw: Any) -> List[LpoItem]:
    rows = parse_list(raw, "items")
    if not rows:
        raise ValidationError("At least one LPO item is required")

    items = []
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValidationError(f"items[{i}] must be an object")
        items.append(
            LpoItem(
                description=require_text(row.get("description"), f"items[{i}].description"),
                quantity=require_decimal(row.get("quantity"), f"items[{i}].quantity"),
                unit_price=require_decimal(row.get("unit_price"), f"items[{i}].unit_price"),
            )
        )
    return items


def _header(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "lpo_number": require_text(payload.get("lpo_number"), "lpo_number", max_length=100),
        "lpo_date": require_date(payload.get("lpo_date"), "lpo_date"),
        "supplier": require_text(payload.get("supplier"), "supplier", max_length=255),
    }


def _store_documents(files: Sequence[FileStorage], uploaded: List[str]) -> List[LpoDocument]:
    documents = []
    for file in files:
        stored = upload_file(file, DOCUMENT_FOLDER)
        uploaded.append(stored["key"])
        documents.append(LpoDocument(**stored))
    return documents


@transactional
def create_lpo(payload: Dict[str, Any], files: Optional[Sequence[FileStorage]], actor: User) -> Lpo:
    project_id = require_int(payload.get("project_id"), "project_id")
    header = _header(payload)
    items = _items(payload.get("items"))
    files = [f for f in (files or []) if f and f.filename]

    project = get_or_404(Project, project_id, "Project")
    if project.status != ProjectStatus.QUOTATION_SENT.value:
        raise PreconditionFailed(
            f"Project must have quotation_sent status to record an LPO (current status: {project.status})"
        )
    if project.lpo is not None:
        raise Conflict("Project already has an LPO")
    if not files:
        raise ValidationError("At least one LPO document is required")

    change_status(project, ProjectStatus.LPO_RECEIVED, actor)

    uploaded: List[str] = []
    try:
        lpo = Lpo(project=project, created_by_id=actor.id, **header)
        lpo.items = items
        lpo.documents = _store_documents(files, uploaded)
        lpo.recalc_totals()

        db.session.add(lpo)
        flush_or_conflict("Project already has an LPO")

        log_activity(
            project,
            actor,
            ActivityType.GENERAL,
            f"LPO {lpo.lpo_number} received from {lpo.supplier} ({money(lpo.total_amount)})",
        )
        db.session.commit()
    except Exception:
        discard_files(uploaded)
        raise

    logger.info("LPO %s recorded for %s", lpo.lpo_number, project.project_number)
    notify(
        project,
        subject=f"LPO Received: {project.project_name}",
        title="LPO Received",
        message=f"LPO {lpo.lpo_number} has been received for project {project.project_name}.",
        actor=actor,
        details=[("Supplier", lpo.supplier), ("Total amount", money(lpo.total_amount))],
    )
    return lpo


def get_lpo(lpo_id: int) -> Lpo:
    return get_or_404(Lpo, lpo_id, "LPO")


def get_project_lpos(project_id: int) -> List[Lpo]:
    get_or_404(Project, project_id, "Project")
    return Lpo.query.filter_by(project_id=project_id).order_by(Lpo.created_at.desc()).all()


@transactional
def update_lpo(
    lpo_id: int, payload: Dict[str, Any], files: Optional[Sequence[FileStorage]], actor: User
) -> Lpo:
    """
    Replace header and items. ``existing_documents`` lists the keys of the
    stored documents to keep; the others are removed after commit.
    """
    lpo = get_or_404(Lpo, lpo_id, "LPO")
    header = _header(payload)
    items = _items(payload.get("items"))
    files = [f for f in (files or []) if f and f.filename]

    keep_keys = set()
    for entry in parse_list(payload.get("existing_documents"), "existing_documents"):
        keep_keys.add(entry.get("key") if isinstance(entry, dict) else str(entry))

    kept = [doc for doc in lpo.documents if doc.key in keep_keys]
    removed_keys = [doc.key for doc in lpo.documents if doc.key not in keep_keys]
    if not kept and not files:
        raise ValidationError("At least one LPO document is required")

    uploaded: List[str] = []
    try:
        for key, value in header.items():
            setattr(lpo, key, value)
        lpo.items = items
        lpo.documents = kept + _store_documents(files, uploaded)
        lpo.recalc_totals()
        db.session.flush()

        log_activity(lpo.project, actor, ActivityType.GENERAL, f"LPO {lpo.lpo_number} updated")
        db.session.commit()
    except Exception:
        discard_files(uploaded)
        raise

    discard_files(removed_keys)
    return lpo


@transactional
def delete_lpo(lpo_id: int, actor: User) -> None:
    lpo = get_or_404(Lpo, lpo_id, "LPO")
    project = lpo.project
    if project.status != ProjectStatus.LPO_RECEIVED.value:
        raise PreconditionFailed("LPO can only be deleted while the project is in lpo_received status")

    change_status(project, ProjectStatus.QUOTATION_SENT, actor)

    document_keys = [doc.key for doc in lpo.documents]
    log_activity(project, actor, ActivityType.GENERAL, f"LPO {lpo.lpo_number} deleted")
    db.session.delete(lpo)
    db.session.commit()

    discard_files(document_keys)
