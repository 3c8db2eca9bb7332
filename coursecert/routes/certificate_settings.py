from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..app import db
from ..models import CertificateSettings
from ..shared.certificates import get_active_template_settings
from ..shared.errors import CertificateError, TemplateUploadError
from ..shared.rbac import admin_required, login_required
from ..shared.storage import get_publisher
from ..shared.template_uploads import read_template_upload
from ..shared.time import now_utc

bp = Blueprint("certificate_settings", __name__, url_prefix="/certificate-settings")


@bp.get("")
@login_required
def show_settings(current_user):
    settings = get_active_template_settings()
    if not settings:
        return jsonify({"templateUrl": None})
    return jsonify(settings.to_dict())


@bp.post("/template")
@admin_required
def upload_template(current_user):
    try:
        raw = read_template_upload(request.files.get("template"))
    except TemplateUploadError as exc:
        return jsonify({"message": str(exc)}), 400
    try:
        url = get_publisher().upload_template(
            raw, folder=current_app.config["CERTIFICATE_FOLDER"]
        )
    except CertificateError:
        current_app.logger.exception(
            "[CERT-FAIL] global template upload user=%s", current_user.id
        )
        return jsonify({"message": "Error uploading template"}), 500

    settings = CertificateSettings(
        template_url=url, updated_at=now_utc(), updated_by_id=current_user.id
    )
    db.session.add(settings)
    db.session.commit()
    current_app.logger.info(
        "[CERT-TEMPLATE] global template updated id=%s user=%s url=%s",
        settings.id,
        current_user.id,
        url,
    )
    return jsonify(settings.to_dict())
