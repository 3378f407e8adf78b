"""
projectflow/workflow/projects.py

Project aggregate operations: create / update / delete, explicit status
changes, engineer and team assignment, progress, dates, GRN, invoice data,
general comments and attendance.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from ..activity import log_activity, project_activity
from ..errors import Forbidden, NotFound, PreconditionFailed, ValidationError
from ..extensions import db
from ..models import ActivityType, Attendance, Client, Comment, Project, Role, User
from ..notifications import Recipient, notify
from ..numbering import invoice_number, next_project_number
from ..rollup import money
from ..status import ProjectStatus
from ..utils import (
    get_or_404,
    optional_text,
    parse_bool,
    parse_date,
    parse_id_list,
    parse_optional_int,
    require_date,
    require_int,
    require_text,
)
from . import change_status, flush_or_conflict, transactional

logger = logging.getLogger(__name__)

# Statuses in which field progress may be reported
PROGRESS_STATUSES = {
    ProjectStatus.TEAM_ASSIGNED.value,
    ProjectStatus.WORK_STARTED.value,
    ProjectStatus.IN_PROGRESS.value,
}

DATE_FIELDS = ("work_start_date", "work_end_date", "completion_date", "handover_date", "acceptance_date")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _project_fields(payload: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    """Validate the general (non-workflow) project fields."""
    fields: Dict[str, Any] = {}

    def present(key: str) -> bool:
        return not partial or key in payload

    if present("project_name"):
        fields["project_name"] = require_text(payload.get("project_name"), "project_name", max_length=100)
    if "project_description" in payload:
        description = optional_text(payload.get("project_description"))
        if description and len(description) > 500:
            raise ValidationError("project_description cannot exceed 500 characters")
        fields["project_description"] = description
    if present("client_id"):
        client_id = require_int(payload.get("client_id"), "client_id")
        get_or_404(Client, client_id, "Client")
        fields["client_id"] = client_id
    for key in ("location", "building", "apartment_number"):
        if present(key):
            fields[key] = require_text(payload.get(key), key)

    return fields


def _resolve_users(user_ids: List[int], role: Role, label: str) -> List[User]:
    users = User.query.filter(User.id.in_(user_ids)).all() if user_ids else []
    by_id = {u.id: u for u in users}

    missing = [uid for uid in user_ids if uid not in by_id]
    if missing:
        raise NotFound(f"{label} not found: {', '.join(str(m) for m in missing)}")

    wrong = [by_id[uid] for uid in user_ids if by_id[uid].role != role.value]
    if wrong:
        raise ValidationError(
            f"All {label.lower()}s must have role '{role.value}'",
            details={"invalid_user_ids": [u.id for u in wrong]},
        )
    return [by_id[uid] for uid in user_ids]


def _resolve_driver(driver_id: int) -> User:
    return _resolve_users([driver_id], Role.DRIVER, "Driver")[0]


def _apply_progress(project: Project, progress: int, actor: User) -> int:
    """
    Set progress and drive the automatic status moves:

    - any report while team_assigned       -> work_started
    - progress > 0 while work_started      -> in_progress
    - progress == 100                      -> work_completed

    Every move goes through the transition graph. Returns the old value.
    """
    if progress < 0 or progress > 100:
        raise ValidationError("Progress must be between 0 and 100")
    if project.status not in PROGRESS_STATUSES:
        raise PreconditionFailed(
            f"Progress can only be updated once the team is assigned (current status: {project.status})"
        )

    if project.status == ProjectStatus.TEAM_ASSIGNED.value:
        change_status(project, ProjectStatus.WORK_STARTED, actor)
    if progress > 0 and project.status == ProjectStatus.WORK_STARTED.value:
        change_status(project, ProjectStatus.IN_PROGRESS, actor)
    if progress == 100:
        change_status(project, ProjectStatus.WORK_COMPLETED, actor)

    previous = project.progress or 0
    project.progress = progress
    project.updated_by_id = actor.id
    return previous


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
@transactional
def create_project(payload: Dict[str, Any], actor: User) -> Project:
    fields = _project_fields(payload, partial=False)

    project = Project(
        project_number=next_project_number(),
        status=ProjectStatus.DRAFT.value,
        progress=0,
        created_by_id=actor.id,
        updated_by_id=actor.id,
        **fields,
    )
    db.session.add(project)
    flush_or_conflict("Project number already in use, please retry")

    log_activity(project, actor, ActivityType.GENERAL, f"Project {project.project_number} created")
    db.session.commit()

    logger.info("Project %s created by %s", project.project_number, actor.username)
    return project


def list_projects(status: Optional[str] = None, search: Optional[str] = None) -> List[Project]:
    query = Project.query
    if status:
        query = query.filter(Project.status == ProjectStatus.parse(status).value)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Project.project_name.ilike(like),
                Project.project_number.ilike(like),
                Project.location.ilike(like),
            )
        )
    return query.order_by(Project.created_at.desc(), Project.id.desc()).all()


@transactional
def update_project(project_id: int, payload: Dict[str, Any], actor: User) -> Project:
    """
    General update. A ``status`` key goes through the transition graph and a
    ``progress`` key through the same rules as update_progress().
    """
    project = get_or_404(Project, project_id, "Project")
    fields = _project_fields(payload, partial=True)

    requested_status = ProjectStatus.parse(payload["status"]) if payload.get("status") else None
    progress = parse_optional_int(payload.get("progress"), "progress") if "progress" in payload else None

    previous_status = project.status
    if requested_status is not None:
        change_status(project, requested_status, actor)

    for key, value in fields.items():
        setattr(project, key, value)
    project.updated_by_id = actor.id

    if progress is not None and progress != project.progress:
        previous = _apply_progress(project, progress, actor)
        log_activity(
            project,
            actor,
            ActivityType.PROGRESS_UPDATE,
            f"Progress updated from {previous}% to {progress}%",
            progress=progress,
        )

    if project.status != previous_status:
        log_activity(
            project, actor, ActivityType.GENERAL, f"Status changed from {previous_status} to {project.status}"
        )

    db.session.commit()
    return project


@transactional
def update_status(project_id: int, status: Any, actor: User) -> Project:
    project = get_or_404(Project, project_id, "Project")
    requested = ProjectStatus.parse(status)

    previous = project.status
    if not change_status(project, requested, actor):
        return project

    log_activity(project, actor, ActivityType.GENERAL, f"Status changed from {previous} to {project.status}")
    db.session.commit()

    notify(
        project,
        subject=f"Project Status Updated: {project.project_name}",
        title="Project Status Updated",
        message=f"The status of project {project.project_name} changed from "
        f"{previous.replace('_', ' ')} to {project.status.replace('_', ' ')}.",
        actor=actor,
    )
    return project


@transactional
def delete_project(project_id: int, actor: User) -> None:
    project = get_or_404(Project, project_id, "Project")
    if project.status != ProjectStatus.DRAFT.value:
        raise PreconditionFailed("Only projects in draft status can be deleted")

    number = project.project_number
    db.session.delete(project)
    db.session.commit()
    logger.info("Project %s deleted by %s", number, actor.username)


# ---------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------
@transactional
def assign_engineer(project_id: int, engineer_id: Any, actor: User) -> Project:
    project = get_or_404(Project, project_id, "Project")
    engineer = _resolve_users([require_int(engineer_id, "assigned_to")], Role.ENGINEER, "Engineer")[0]

    project.assigned_to_id = engineer.id
    project.updated_by_id = actor.id
    log_activity(project, actor, ActivityType.GENERAL, f"Project assigned to {engineer.full_name()}")
    db.session.commit()

    recipients = [Recipient(email=engineer.email, name=engineer.first_name or "Engineer")] if engineer.email else []
    notify(
        project,
        subject=f"Project Assignment: {project.project_name}",
        title="Project Assignment",
        message=f"You have been assigned to project {project.project_name} ({project.project_number}).",
        actor=actor,
        details=[("Client", project.client.client_name), ("Location", f"{project.location}, {project.building}")],
        recipients=recipients,
    )
    return project


@transactional
def assign_team(project_id: int, worker_ids: Any, driver_id: Any, actor: User) -> Project:
    """Assign workers + driver to a project that has received its LPO."""
    workers_requested = parse_id_list(worker_ids, "workers")
    if not workers_requested or driver_id in (None, ""):
        raise ValidationError("Both workers array and driver_id are required")

    project = get_or_404(Project, project_id, "Project")

    workers = _resolve_users(workers_requested, Role.WORKER, "Worker")
    driver = _resolve_driver(require_int(driver_id, "driver_id"))

    if project.status != ProjectStatus.LPO_RECEIVED.value:
        raise PreconditionFailed(
            f"Project must be in 'lpo_received' status to assign a team (current status: {project.status})"
        )
    change_status(project, ProjectStatus.TEAM_ASSIGNED, actor)

    project.assigned_workers = workers
    project.assigned_driver = driver

    log_activity(
        project,
        actor,
        ActivityType.GENERAL,
        f"Team assigned: {', '.join(w.full_name() for w in workers)}; driver {driver.full_name()}",
    )
    db.session.commit()

    notify(
        project,
        subject=f"Team Assigned: {project.project_name}",
        title="Team Assigned",
        message=f"A team has been assigned to project {project.project_name}.",
        actor=actor,
        details=[("Workers", ", ".join(w.full_name() for w in workers)), ("Driver", driver.full_name())],
    )
    return project


@transactional
def update_team(project_id: int, worker_ids: Any, driver_id: Any, actor: User) -> Project:
    """Replace workers and/or driver without touching the project status."""
    project = get_or_404(Project, project_id, "Project")
    if not project.assigned_workers and project.assigned_driver_id is None:
        raise PreconditionFailed("No team has been assigned to this project yet")

    if worker_ids is None and driver_id in (None, ""):
        raise ValidationError("Provide workers and/or driver_id")

    if worker_ids is not None:
        requested = parse_id_list(worker_ids, "workers")
        if not requested:
            raise ValidationError("At least one worker is required")
        project.assigned_workers = _resolve_users(requested, Role.WORKER, "Worker")
    if driver_id not in (None, ""):
        project.assigned_driver = _resolve_driver(require_int(driver_id, "driver_id"))

    project.updated_by_id = actor.id
    log_activity(project, actor, ActivityType.GENERAL, "Project team updated")
    db.session.commit()
    return project


def get_team(project_id: int) -> Dict[str, Any]:
    project = get_or_404(Project, project_id, "Project")
    return {
        "workers": [w.to_dict() for w in project.assigned_workers],
        "driver": project.assigned_driver.to_dict() if project.assigned_driver else None,
    }


# ---------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------
@transactional
def update_progress(project_id: int, progress: Any, actor: User, comment: Optional[str] = None) -> Project:
    progress = require_int(progress, "progress")
    comment = optional_text(comment)

    project = get_or_404(Project, project_id, "Project")
    previous = _apply_progress(project, progress, actor)
    changed = previous != progress

    if comment or changed:
        log_activity(
            project,
            actor,
            ActivityType.PROGRESS_UPDATE,
            comment or f"Progress updated from {previous}% to {progress}%",
            progress=progress,
        )
    db.session.commit()

    if changed:
        notify(
            project,
            subject=f"Progress Update: {project.project_name} ({progress}% Complete)",
            title="Work Progress Update",
            message=f"Progress of project {project.project_name} moved from {previous}% to {progress}%.",
            actor=actor,
            details=[("Comment", comment)] if comment else None,
        )
    return project


def progress_updates(project_id: int) -> List[Comment]:
    get_or_404(Project, project_id, "Project")
    return project_activity(project_id, ActivityType.PROGRESS_UPDATE)


# ---------------------------------------------------------------------
# Dates / GRN / invoice
# ---------------------------------------------------------------------
@transactional
def set_dates(project_id: int, payload: Dict[str, Any], actor: User) -> Project:
    project = get_or_404(Project, project_id, "Project")

    updates = {key: parse_date(payload.get(key), key) for key in DATE_FIELDS if key in payload}
    if not updates:
        raise ValidationError(f"Provide at least one of: {', '.join(DATE_FIELDS)}")

    start = updates.get("work_start_date", project.work_start_date)
    end = updates.get("work_end_date", project.work_end_date)
    if start and end and end < start:
        raise ValidationError("work_end_date cannot be before work_start_date")

    handover = updates.get("handover_date", project.handover_date)
    acceptance = updates.get("acceptance_date", project.acceptance_date)
    if handover and acceptance and acceptance < handover:
        raise ValidationError("acceptance_date cannot be before handover_date")

    for key, value in updates.items():
        setattr(project, key, value)
    project.updated_by_id = actor.id

    log_activity(
        project,
        actor,
        ActivityType.GENERAL,
        "Dates updated: " + ", ".join(f"{k}={v.isoformat() if v else 'cleared'}" for k, v in updates.items()),
    )
    db.session.commit()
    return project


@transactional
def set_grn_number(project_id: int, grn_number: Any, actor: User) -> Project:
    project = get_or_404(Project, project_id, "Project")
    project.grn_number = require_text(grn_number, "grn_number", max_length=100)
    project.updated_by_id = actor.id
    log_activity(project, actor, ActivityType.GENERAL, f"GRN number set to {project.grn_number}")
    db.session.commit()
    return project


@transactional
def set_invoice_details(project_id: int, payload: Dict[str, Any], actor: User) -> Project:
    project = get_or_404(Project, project_id, "Project")
    project.invoice_date = require_date(payload.get("invoice_date"), "invoice_date")
    project.invoice_remarks = optional_text(payload.get("invoice_remarks"))
    project.updated_by_id = actor.id
    db.session.commit()
    return project


@transactional
def clear_invoice_details(project_id: int, actor: User) -> Project:
    project = get_or_404(Project, project_id, "Project")
    project.invoice_date = None
    project.invoice_remarks = None
    project.updated_by_id = actor.id
    db.session.commit()
    return project


_UNITS = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten",
    "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]
_SCALES = [(10 ** 9, "Billion"), (10 ** 6, "Million"), (1000, "Thousand"), (100, "Hundred")]


def _number_words(n: int) -> str:
    if n < 20:
        return _UNITS[n]
    if n < 100:
        return " ".join(w for w in (_TENS[n // 10], _UNITS[n % 10]) if w)
    for size, name in _SCALES:
        if n >= size:
            head, rest = divmod(n, size)
            words = f"{_number_words(head)} {name}"
            return f"{words} {_number_words(rest)}" if rest else words
    return ""


def amount_in_words(amount: Any) -> str:
    """e.g. 315.50 -> 'Three Hundred Fifteen UAE Dirhams and Fifty Fils'"""
    value = money(amount)
    dirhams = int(value)
    fils = int((value - dirhams) * 100)
    words = f"{_number_words(dirhams) or 'Zero'} UAE Dirhams"
    if fils:
        words += f" and {_number_words(fils)} Fils"
    return words


def invoice_data(project_id: int, today: Optional[date] = None) -> Dict[str, Any]:
    """Data for the final invoice: quotation lines, VAT summary, LPO reference."""
    project = get_or_404(Project, project_id, "Project")
    quotation = project.quotation
    if quotation is None:
        raise NotFound("Quotation not found for this project")
    lpo = project.lpo
    if lpo is None:
        raise NotFound("LPO not found for this project")
    if not quotation.items:
        raise ValidationError("Quotation items are required")

    client = project.client
    return {
        "project_id": project.id,
        "invoice_number": invoice_number(project.project_number),
        "date": (project.invoice_date or today or date.today()).isoformat(),
        "order_number": lpo.lpo_number,
        "grn_number": project.grn_number,
        "remarks": project.invoice_remarks,
        "client": client.to_dict() if client else None,
        "subject": ", ".join(quotation.scope_of_work or []) or None,
        "products": [
            {
                "sno": index,
                "description": item.description,
                "quantity": money(item.quantity),
                "unit_price": money(item.unit_price),
                "total": money(item.total_price),
            }
            for index, item in enumerate(quotation.items, start=1)
        ],
        "summary": {
            "amount": money(quotation.subtotal),
            "vat_percentage": money(quotation.vat_percentage),
            "vat": money(quotation.vat_amount),
            "total_receivable": money(quotation.net_amount),
        },
        "amount_in_words": amount_in_words(quotation.net_amount),
    }


# ---------------------------------------------------------------------
# Comments & attendance
# ---------------------------------------------------------------------
@transactional
def add_comment(project_id: int, content: Any, actor: User) -> Comment:
    project = get_or_404(Project, project_id, "Project")
    entry = log_activity(project, actor, ActivityType.GENERAL, require_text(content, "content"))
    db.session.commit()
    return entry


def list_activity(project_id: int) -> List[Comment]:
    get_or_404(Project, project_id, "Project")
    return project_activity(project_id)


@transactional
def mark_attendance(project_id: int, payload: Dict[str, Any], actor: User) -> Attendance:
    """
    Record (or correct) one day of presence for a team member.

    Workers and drivers may only mark themselves; the user must belong to
    the project team.
    """
    project = get_or_404(Project, project_id, "Project")
    user_id = require_int(payload.get("user_id"), "user_id")
    day = require_date(payload.get("date"), "date")
    present = parse_bool(payload.get("present", True), "present")

    if actor.role in (Role.WORKER.value, Role.DRIVER.value) and actor.id != user_id:
        raise Forbidden("Field staff can only mark their own attendance")

    team_ids = {w.id for w in project.assigned_workers}
    if project.assigned_driver_id:
        team_ids.add(project.assigned_driver_id)
    if user_id not in team_ids:
        raise ValidationError("User is not part of this project's team")

    record = Attendance.query.filter_by(project_id=project.id, user_id=user_id, date=day).first()
    if record is None:
        record = Attendance(project_id=project.id, user_id=user_id, date=day)
        db.session.add(record)
    record.present = present
    record.marked_by_id = actor.id

    db.session.commit()
    return record
