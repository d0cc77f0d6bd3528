# Overview: Multipart image uploads; sanitized unique filenames under per-field folders.

from __future__ import annotations

import os
from uuid import uuid4

from flask import current_app, g, request
from werkzeug.utils import secure_filename

from .errors import ValidationError


ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
ALLOWED_MIMETYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}

# form field -> subfolder of UPLOAD_FOLDER
FIELD_FOLDERS = {
    "billImage": "bills",
    "designImages": "designs",
    "productImages": "products",
    "returnImages": "returns",
    "profileImage": "profiles",
}

MAX_FILES_PER_FIELD = 5


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def save_upload(file_storage, field: str) -> str:
    """
    Store one uploaded image and return its public path (/uploads/<folder>/<name>).

    Raises ValidationError for non-image types or unusable names.
    """
    folder = FIELD_FOLDERS[field]
    original = secure_filename(file_storage.filename or "")
    if not original:
        raise ValidationError(f"{field}: please choose a valid file name")

    extension = _check_image(file_storage, original, field)

    directory = os.path.join(current_app.config["UPLOAD_FOLDER"], folder)
    os.makedirs(directory, exist_ok=True)

    unique_name = f"{uuid4().hex}.{extension}"
    target = os.path.join(directory, unique_name)
    file_storage.save(target)
    g.setdefault("saved_uploads", []).append(target)
    current_app.logger.info("Stored upload %s/%s (%s)", folder, unique_name, original)
    return f"/uploads/{folder}/{unique_name}"


def _check_image(file_storage, filename: str, field: str) -> str:
    """Both the extension and the declared content type must be an image."""
    extension = _extension(filename)
    if extension not in ALLOWED_EXTENSIONS or file_storage.mimetype not in ALLOWED_MIMETYPES:
        raise ValidationError(
            f"{field}: only image files are allowed ({', '.join(sorted(ALLOWED_EXTENSIONS))})"
        )
    return extension


def save_request_files(field: str) -> list[str]:
    """Save every file sent under `field` in the current request."""
    files = [f for f in request.files.getlist(field) if f and f.filename]
    if len(files) > MAX_FILES_PER_FIELD:
        raise ValidationError(f"{field}: at most {MAX_FILES_PER_FIELD} files are allowed")
    for f in files:
        _check_image(f, secure_filename(f.filename), field)
    return [save_upload(f, field) for f in files]


def discard_request_uploads() -> int:
    """
    Delete files stored during the current request. Called when the request
    fails so rejected submissions leave nothing behind.
    """
    paths = g.pop("saved_uploads", [])
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            continue
    if paths:
        current_app.logger.info("Discarded %d upload(s) from a failed request", len(paths))
    return len(paths)


def save_request_file(field: str) -> str | None:
    paths = save_request_files(field)
    return paths[0] if paths else None


def request_payload() -> dict:
    """
    JSON body, or form fields when the request is multipart.

    Form values arrive as strings; services coerce them.
    """
    if request.mimetype == "multipart/form-data" or request.form:
        return request.form.to_dict()
    payload = request.get_json(silent=True)
    return payload if payload is not None else {}
