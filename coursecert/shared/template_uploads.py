from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .errors import TemplateUploadError

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "webp"}
MAX_DIMENSION = 10000


def _validate_extension(filename: str) -> None:
    cleaned = secure_filename(filename or "")
    ext = cleaned.rsplit(".", 1)[-1].lower() if "." in cleaned else ""
    if ext not in ALLOWED_EXTENSIONS:
        raise TemplateUploadError("Template must be a PNG, JPG or WEBP image")


def _validate_image_bytes(raw: bytes) -> tuple[int, int]:
    try:
        image = Image.open(io.BytesIO(raw))
        image.verify()
        image = Image.open(io.BytesIO(raw))
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        raise TemplateUploadError("Template must be a valid image")
    width, height = image.size
    if width > MAX_DIMENSION or height > MAX_DIMENSION:
        raise TemplateUploadError("Template image dimensions are too large")
    return width, height


def read_template_upload(upload: FileStorage | None) -> bytes:
    """Return the uploaded template bytes after checking they are an image."""
    if upload is None or not upload.filename:
        raise TemplateUploadError("No template file uploaded")
    _validate_extension(upload.filename)
    data = upload.read()
    upload.stream.seek(0)
    if not data:
        raise TemplateUploadError("No template file uploaded")
    _validate_image_bytes(data)
    return data
