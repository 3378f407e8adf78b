"""
Stored attachment download.

Serves the ``url`` returned by LocalObjectStorage.upload(). The blueprint is
mounted at UPLOAD_URL_PREFIX by create_app().
"""

from flask import Blueprint, send_from_directory
from flask_login import login_required

from ...extensions import storage

uploads_bp = Blueprint("uploads", __name__)


@uploads_bp.route("/<path:key>", methods=["GET"])
@login_required
def download(key: str):
    # send_from_directory rejects keys escaping the upload root
    return send_from_directory(storage.directory(), key)
