"""
projectflow/storage.py

Object storage collaborator for attachments (LPO documents, quotation item
images, site pictures).

Objects are addressed by an opaque key string. The default implementation
stores files below UPLOAD_FOLDER; a cloud bucket can replace it as long as it
offers the same upload/delete contract.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Dict

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class LocalObjectStorage:
    """Filesystem-backed object storage (Flask extension)."""

    def __init__(self, app=None):
        self.root: Path | None = None
        self.url_prefix = "/uploads"
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.root = Path(app.config["UPLOAD_FOLDER"])
        self.url_prefix = app.config.get("UPLOAD_URL_PREFIX", "/uploads").rstrip("/")
        app.extensions["object_storage"] = self

    def directory(self) -> str:
        if self.root is None:
            raise RuntimeError("LocalObjectStorage used before init_app().")
        return str(self.root.resolve())

    def _path_for(self, key: str) -> Path:
        if self.root is None:
            raise RuntimeError("LocalObjectStorage used before init_app().")
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid storage key: {key!r}")
        return path

    def upload(self, file: FileStorage, folder: str) -> Dict[str, Any]:
        """
        Store an uploaded file and return its descriptor:
        {key, url, name, mimetype, size}.
        """
        original = file.filename or "upload"
        safe_name = secure_filename(original) or "upload"
        key = f"{secure_filename(folder)}/{uuid.uuid4().hex}-{safe_name}"

        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        file.save(str(path))

        return {
            "key": key,
            "url": f"{self.url_prefix}/{key}",
            "name": original,
            "mimetype": file.mimetype or "application/octet-stream",
            "size": path.stat().st_size,
        }

    def delete(self, key: str) -> None:
        """Delete an object. Missing objects are ignored."""
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("Storage delete: %s already absent", key)
