"""
Work completion routes.

Images are uploaded as multipart ``images`` files with parallel ``titles``
(and optional ``descriptions``) form fields.
"""

from flask import Blueprint, request
from flask_login import login_required

from ...models import Role
from ...security import acting_user, roles_required
from ...utils import api_response, json_payload
from ...workflow import completion as ops

completion_bp = Blueprint("completion", __name__, url_prefix="/work-completion")


@completion_bp.route("", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER)
def create_work_completion():
    work_completion = ops.create_work_completion(json_payload().get("project_id"), acting_user())
    return api_response(work_completion.to_dict(), "Work completion created", 201)


@completion_bp.route("/project/<int:project_id>", methods=["GET"])
@login_required
def completion_data(project_id: int):
    return api_response(ops.completion_data(project_id))


@completion_bp.route("/<int:work_completion_id>/images", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER)
def add_images(work_completion_id: int):
    work_completion = ops.add_images(
        work_completion_id,
        request.files.getlist("images"),
        request.form.getlist("titles"),
        acting_user(),
        request.form.getlist("descriptions"),
    )
    return api_response(work_completion.to_dict(), "Images uploaded", 201)


@completion_bp.route("/<int:work_completion_id>/images/<int:image_id>", methods=["DELETE"])
@login_required
@roles_required(Role.ENGINEER)
def remove_image(work_completion_id: int, image_id: int):
    work_completion = ops.remove_image(work_completion_id, image_id, acting_user())
    return api_response(work_completion.to_dict(), "Image removed")
