"""
LPO routes. Create and update are multipart: form fields (``items`` and
``existing_documents`` as JSON strings) plus the files under ``documents``.
"""

from flask import Blueprint, request
from flask_login import login_required

from ...models import Role
from ...security import acting_user, roles_required
from ...utils import api_response, form_payload
from ...workflow import lpos as ops

lpos_bp = Blueprint("lpos", __name__, url_prefix="/lpos")


@lpos_bp.route("", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER, Role.FINANCE)
def create_lpo():
    lpo = ops.create_lpo(form_payload(), request.files.getlist("documents"), acting_user())
    return api_response(lpo.to_dict(), "LPO created", 201)


@lpos_bp.route("/<int:lpo_id>", methods=["GET"])
@login_required
def get_lpo(lpo_id: int):
    return api_response(ops.get_lpo(lpo_id).to_dict())


@lpos_bp.route("/project/<int:project_id>", methods=["GET"])
@login_required
def get_project_lpos(project_id: int):
    return api_response([lpo.to_dict() for lpo in ops.get_project_lpos(project_id)])


@lpos_bp.route("/<int:lpo_id>", methods=["PUT"])
@login_required
@roles_required(Role.ENGINEER, Role.FINANCE)
def update_lpo(lpo_id: int):
    lpo = ops.update_lpo(lpo_id, form_payload(), request.files.getlist("documents"), acting_user())
    return api_response(lpo.to_dict(), "LPO updated")


@lpos_bp.route("/<int:lpo_id>", methods=["DELETE"])
@login_required
@roles_required(Role.ENGINEER, Role.FINANCE)
def delete_lpo(lpo_id: int):
    ops.delete_lpo(lpo_id, acting_user())
    return api_response(message="LPO deleted")
