"""
Quotation routes.

Create / update accept either a JSON body or multipart form data with the
fields in a ``data`` JSON part and item images as ``items[<index>][image]``.
"""

import re
from typing import Dict

from flask import Blueprint, request
from flask_login import login_required
from werkzeug.datastructures import FileStorage

from ...models import Role
from ...security import acting_user, admin_required, roles_required
from ...utils import api_response, form_payload
from ...workflow import quotations as ops

quotations_bp = Blueprint("quotations", __name__, url_prefix="/quotations")

_ITEM_IMAGE_RE = re.compile(r"^items\[(\d+)\]\[image\]$")


def _item_images() -> Dict[int, FileStorage]:
    images = {}
    for field, file in request.files.items():
        match = _ITEM_IMAGE_RE.match(field)
        if match:
            images[int(match.group(1))] = file
    return images


@quotations_bp.route("", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER)
def create_quotation():
    quotation = ops.create_quotation(form_payload(), acting_user(), _item_images())
    return api_response(quotation.to_dict(), "Quotation created", 201)


@quotations_bp.route("/project/<int:project_id>", methods=["GET"])
@login_required
def get_project_quotation(project_id: int):
    quotation = ops.get_project_quotation(project_id)
    return api_response(quotation.to_dict() if quotation else None)


@quotations_bp.route("/<int:quotation_id>", methods=["PATCH"])
@login_required
@roles_required(Role.ENGINEER)
def update_quotation(quotation_id: int):
    quotation = ops.update_quotation(quotation_id, form_payload(), acting_user(), _item_images())
    return api_response(quotation.to_dict(), "Quotation updated")


@quotations_bp.route("/<int:quotation_id>", methods=["DELETE"])
@login_required
@roles_required(Role.ENGINEER)
def delete_quotation(quotation_id: int):
    ops.delete_quotation(quotation_id, acting_user())
    return api_response(message="Quotation deleted")


@quotations_bp.route("/<int:quotation_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve_quotation(quotation_id: int):
    payload = form_payload()
    quotation = ops.approve_quotation(quotation_id, payload.get("is_approved"), acting_user(), payload.get("comment"))
    return api_response(quotation.to_dict(), "Quotation approval recorded")
