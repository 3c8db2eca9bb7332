from __future__ import annotations

import logging
from io import BytesIO

import cloudinary.exceptions
import cloudinary.uploader
from flask import current_app

from .errors import CertificateUpstreamError

logger = logging.getLogger("coursecert.publisher")

# upscale, keep full quality and rasterize at print density
RASTER_TRANSFORMATION: tuple[dict, ...] = (
    {"width": 2000, "crop": "scale"},
    {"quality": 100},
    {"fetch_format": "png"},
    {"density": 300},
)


class CloudinaryPublisher:
    """Uploads certificate artifacts and templates to Cloudinary."""

    def __init__(self, certificate_folder: str = "certificates"):
        self.certificate_folder = certificate_folder

    def _upload(self, raw: bytes, **options) -> str:
        try:
            result = cloudinary.uploader.upload(
                BytesIO(raw),
                transformation=[dict(step) for step in RASTER_TRANSFORMATION],
                **options,
            )
        except cloudinary.exceptions.Error as exc:
            logger.error("[CERT-UPLOAD] failed folder=%s error=%s", options.get("folder"), exc)
            raise CertificateUpstreamError(f"Object storage upload failed: {exc}") from exc
        url = (result or {}).get("secure_url")
        if not url:
            logger.error("[CERT-UPLOAD] no url returned folder=%s", options.get("folder"))
            raise CertificateUpstreamError("No URL returned from object storage")
        logger.info("[CERT-UPLOAD] stored folder=%s url=%s", options.get("folder"), url)
        return url

    def publish(self, pdf_bytes: bytes) -> str:
        """Upload a rendered certificate PDF; the first page is stored as PNG."""
        return self._upload(
            pdf_bytes,
            folder=self.certificate_folder,
            format="png",
            pages=True,
        )

    def upload_template(self, raw: bytes, folder: str | None = None) -> str:
        return self._upload(
            raw,
            folder=folder or self.certificate_folder,
            resource_type="image",
        )


def get_publisher():
    return current_app.extensions["certificate_publisher"]
