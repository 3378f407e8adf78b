"""
Project routes.

Thin HTTP layer over projectflow.workflow.projects: parse the request,
call the operation with the acting user, wrap the result in the JSON
envelope. Every rule lives in the workflow layer.

Role rules:
- admins create and delete projects.
- engineers run the project (status, team, progress, dates, GRN).
- finance handles invoice details.
- any authenticated user may comment; field staff record attendance.
"""

from flask import Blueprint, request
from flask_login import login_required

from ...models import Project, Role
from ...security import acting_user, admin_required, roles_required
from ...utils import api_response, get_or_404, json_payload
from ...workflow import projects as ops

projects_bp = Blueprint("projects", __name__, url_prefix="/projects")


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------

@projects_bp.route("", methods=["GET"])
@login_required
def list_projects():
    projects = ops.list_projects(status=request.args.get("status"), search=request.args.get("search"))
    return api_response([p.to_dict() for p in projects])


@projects_bp.route("", methods=["POST"])
@login_required
@admin_required
def create_project():
    project = ops.create_project(json_payload(), acting_user())
    return api_response(project.to_dict(), "Project created", 201)


@projects_bp.route("/<int:project_id>", methods=["GET"])
@login_required
def get_project(project_id: int):
    return api_response(get_or_404(Project, project_id, "Project").to_dict())


@projects_bp.route("/<int:project_id>", methods=["PATCH"])
@login_required
@roles_required(Role.ENGINEER)
def update_project(project_id: int):
    project = ops.update_project(project_id, json_payload(), acting_user())
    return api_response(project.to_dict(), "Project updated")


@projects_bp.route("/<int:project_id>", methods=["DELETE"])
@login_required
@admin_required
def delete_project(project_id: int):
    ops.delete_project(project_id, acting_user())
    return api_response(message="Project deleted")


@projects_bp.route("/<int:project_id>/status", methods=["PATCH"])
@login_required
@roles_required(Role.ENGINEER)
def update_status(project_id: int):
    project = ops.update_status(project_id, json_payload().get("status"), acting_user())
    return api_response(project.to_dict(), "Project status updated")


# ---------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/assign", methods=["POST"])
@login_required
@admin_required
def assign_engineer(project_id: int):
    project = ops.assign_engineer(project_id, json_payload().get("assigned_to"), acting_user())
    return api_response(project.to_dict(), "Engineer assigned")


@projects_bp.route("/<int:project_id>/team", methods=["GET"])
@login_required
def get_team(project_id: int):
    return api_response(ops.get_team(project_id))


@projects_bp.route("/<int:project_id>/team", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER)
def assign_team(project_id: int):
    payload = json_payload()
    project = ops.assign_team(project_id, payload.get("workers"), payload.get("driver_id"), acting_user())
    return api_response(project.to_dict(), "Team assigned")


@projects_bp.route("/<int:project_id>/team", methods=["PATCH"])
@login_required
@roles_required(Role.ENGINEER)
def update_team(project_id: int):
    payload = json_payload()
    project = ops.update_team(project_id, payload.get("workers"), payload.get("driver_id"), acting_user())
    return api_response(project.to_dict(), "Team updated")


# ---------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/progress", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER)
def update_progress(project_id: int):
    payload = json_payload()
    project = ops.update_progress(project_id, payload.get("progress"), acting_user(), payload.get("comment"))
    return api_response(project.to_dict(), "Progress updated")


@projects_bp.route("/<int:project_id>/progress", methods=["GET"])
@login_required
def progress_updates(project_id: int):
    return api_response([c.to_dict() for c in ops.progress_updates(project_id)])


# ---------------------------------------------------------------------
# Dates / GRN / invoice
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/dates", methods=["PATCH"])
@login_required
@roles_required(Role.ENGINEER)
def set_dates(project_id: int):
    project = ops.set_dates(project_id, json_payload(), acting_user())
    return api_response(project.to_dict(), "Dates updated")


@projects_bp.route("/<int:project_id>/grn", methods=["PATCH"])
@login_required
@roles_required(Role.ENGINEER, Role.FINANCE)
def set_grn_number(project_id: int):
    project = ops.set_grn_number(project_id, json_payload().get("grn_number"), acting_user())
    return api_response(project.to_dict(), "GRN number updated")


@projects_bp.route("/<int:project_id>/invoice", methods=["GET"])
@login_required
@roles_required(Role.FINANCE, Role.ENGINEER)
def invoice_data(project_id: int):
    return api_response(ops.invoice_data(project_id))


@projects_bp.route("/<int:project_id>/invoice", methods=["PUT"])
@login_required
@roles_required(Role.FINANCE)
def set_invoice_details(project_id: int):
    project = ops.set_invoice_details(project_id, json_payload(), acting_user())
    return api_response(project.to_dict(), "Invoice details updated")


@projects_bp.route("/<int:project_id>/invoice", methods=["DELETE"])
@login_required
@roles_required(Role.FINANCE)
def clear_invoice_details(project_id: int):
    project = ops.clear_invoice_details(project_id, acting_user())
    return api_response(project.to_dict(), "Invoice details cleared")


# ---------------------------------------------------------------------
# Comments & attendance (open to field staff)
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/comments", methods=["GET"])
@login_required
def list_activity(project_id: int):
    return api_response([c.to_dict() for c in ops.list_activity(project_id)])


@projects_bp.route("/<int:project_id>/comments", methods=["POST"])
@login_required
def add_comment(project_id: int):
    entry = ops.add_comment(project_id, json_payload().get("content"), acting_user())
    return api_response(entry.to_dict(), "Comment added", 201)


@projects_bp.route("/<int:project_id>/attendance", methods=["POST"])
@login_required
def mark_attendance(project_id: int):
    record = ops.mark_attendance(project_id, json_payload(), acting_user())
    return api_response(record.to_dict(), "Attendance recorded")
