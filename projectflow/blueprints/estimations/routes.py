"""
Estimation routes.

- engineers (and admins) prepare estimations and run the check stage.
- approval is reserved to admins.
"""

from flask import Blueprint
from flask_login import login_required

from ...models import Role
from ...security import acting_user, admin_required, roles_required
from ...utils import api_response, json_payload
from ...workflow import estimations as ops

estimations_bp = Blueprint("estimations", __name__, url_prefix="/estimations")


@estimations_bp.route("", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER)
def create_estimation():
    estimation = ops.create_estimation(json_payload(), acting_user())
    return api_response(estimation.to_dict(), "Estimation created", 201)


@estimations_bp.route("/<int:estimation_id>", methods=["GET"])
@login_required
def get_estimation(estimation_id: int):
    return api_response(ops.get_estimation(estimation_id).to_dict())


@estimations_bp.route("/project/<int:project_id>", methods=["GET"])
@login_required
def get_project_estimation(project_id: int):
    estimation = ops.get_project_estimation(project_id)
    return api_response(estimation.to_dict() if estimation else None)


@estimations_bp.route("/<int:estimation_id>", methods=["PATCH"])
@login_required
@roles_required(Role.ENGINEER)
def update_estimation(estimation_id: int):
    estimation = ops.update_estimation(estimation_id, json_payload(), acting_user())
    return api_response(estimation.to_dict(), "Estimation updated")


@estimations_bp.route("/<int:estimation_id>", methods=["DELETE"])
@login_required
@roles_required(Role.ENGINEER)
def delete_estimation(estimation_id: int):
    ops.delete_estimation(estimation_id, acting_user())
    return api_response(message="Estimation deleted")


# ---------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------

@estimations_bp.route("/<int:estimation_id>/check", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER)
def check_estimation(estimation_id: int):
    payload = json_payload()
    estimation = ops.check_estimation(estimation_id, payload.get("is_checked"), acting_user(), payload.get("comment"))
    return api_response(estimation.to_dict(), "Estimation check recorded")


@estimations_bp.route("/<int:estimation_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve_estimation(estimation_id: int):
    payload = json_payload()
    estimation = ops.approve_estimation(
        estimation_id, payload.get("is_approved"), acting_user(), payload.get("comment")
    )
    return api_response(estimation.to_dict(), "Estimation approval recorded")
