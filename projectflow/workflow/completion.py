"""
projectflow/workflow/completion.py

Work completion certificate: one record per project (``WCPAGA…`` number)
holding the site pictures, plus the data needed to render the certificate.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from werkzeug.datastructures import FileStorage

from ..activity import log_activity
from ..errors import Conflict, Forbidden, NotFound, PreconditionFailed, ValidationError
from ..extensions import db
from ..models import ActivityType, Project, User, WorkCompletion, WorkCompletionImage
from ..numbering import WORK_COMPLETION_PREFIX, related_document_number
from ..status import ProjectStatus
from ..utils import get_or_404, require_int
from . import discard_files, flush_or_conflict, transactional, upload_file

logger = logging.getLogger(__name__)

IMAGE_FOLDER = "work-completion"

# A certificate only makes sense once the work is done
COMPLETION_STATUSES = {
    ProjectStatus.WORK_COMPLETED.value,
    ProjectStatus.QUALITY_CHECK.value,
    ProjectStatus.CLIENT_HANDOVER.value,
    ProjectStatus.FINAL_INVOICE_SENT.value,
    ProjectStatus.PAYMENT_RECEIVED.value,
    ProjectStatus.PROJECT_CLOSED.value,
}


def _ensure_owner(work_completion: WorkCompletion, actor: User) -> None:
    if actor.is_admin or work_completion.created_by_id == actor.id:
        return
    raise Forbidden("Not authorized to update this work completion")


@transactional
def create_work_completion(project_id: Any, actor: User) -> WorkCompletion:
    project = get_or_404(Project, require_int(project_id, "project_id"), "Project")
    if project.status not in COMPLETION_STATUSES:
        raise PreconditionFailed(
            f"Work completion requires the work to be completed (current status: {project.status})"
        )
    if project.work_completion is not None:
        raise Conflict("Project already has a work completion record")

    work_completion = WorkCompletion(
        project=project,
        completion_number=related_document_number(project.id, WORK_COMPLETION_PREFIX),
        created_by_id=actor.id,
    )
    db.session.add(work_completion)
    flush_or_conflict("Project already has a work completion record")

    log_activity(
        project, actor, ActivityType.GENERAL, f"Work completion {work_completion.completion_number} created"
    )
    db.session.commit()
    return work_completion


@transactional
def add_images(
    work_completion_id: int,
    files: Sequence[FileStorage],
    titles: Sequence[str],
    actor: User,
    descriptions: Optional[Sequence[str]] = None,
) -> WorkCompletion:
    """Attach site pictures; every picture needs a title."""
    work_completion = get_or_404(WorkCompletion, work_completion_id, "Work completion")
    _ensure_owner(work_completion, actor)

    files = [f for f in files if f and f.filename]
    if not files:
        raise ValidationError("No images uploaded")
    titles = [(t or "").strip() for t in titles]
    if len(titles) != len(files):
        raise ValidationError("Number of titles must match number of images")
    if not all(titles):
        raise ValidationError("All images must have a non-empty title")
    descriptions = list(descriptions or [])

    uploaded: List[str] = []
    try:
        for index, file in enumerate(files):
            stored = upload_file(file, IMAGE_FOLDER)
            uploaded.append(stored["key"])
            work_completion.images.append(
                WorkCompletionImage(
                    title=titles[index],
                    description=(descriptions[index] if index < len(descriptions) else None) or None,
                    image_key=stored["key"],
                    image_url=stored["url"],
                )
            )
        db.session.flush()
        db.session.commit()
    except Exception:
        discard_files(uploaded)
        raise

    logger.info("%d image(s) added to %s", len(files), work_completion.completion_number)
    return work_completion


@transactional
def remove_image(work_completion_id: int, image_id: int, actor: User) -> WorkCompletion:
    work_completion = get_or_404(WorkCompletion, work_completion_id, "Work completion")
    _ensure_owner(work_completion, actor)

    image = next((img for img in work_completion.images if img.id == image_id), None)
    if image is None:
        raise NotFound("Image not found")

    key = image.image_key
    work_completion.images.remove(image)
    db.session.commit()

    discard_files([key])
    return work_completion


def completion_data(project_id: int) -> Dict[str, Any]:
    """Data for the completion certificate."""
    project = get_or_404(Project, project_id, "Project")
    work_completion = project.work_completion
    lpo = project.lpo
    client = project.client
    engineer = project.assigned_to

    def iso(value):
        return value.isoformat() if value is not None else None

    return {
        "project_id": project.id,
        "project_name": project.project_name,
        "reference_number": (
            work_completion.completion_number
            if work_completion
            else related_document_number(project.id, WORK_COMPLETION_PREFIX)
        ),
        "client_name": client.client_name if client else None,
        "project_description": project.project_description,
        "location": f"{project.location}, {project.building}, {project.apartment_number}",
        "completion_date": iso(project.completion_date),
        "lpo_number": lpo.lpo_number if lpo else None,
        "lpo_date": iso(lpo.lpo_date) if lpo else None,
        "handover": {
            "name": engineer.full_name() if engineer else None,
            "date": iso(project.handover_date),
        },
        "acceptance": {
            "name": client.client_name if client else None,
            "date": iso(project.acceptance_date),
        },
        "site_pictures": [img.to_dict() for img in work_completion.images] if work_completion else [],
        "prepared_by": project.created_by.full_name() if project.created_by else None,
    }
