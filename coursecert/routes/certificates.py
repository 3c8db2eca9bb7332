from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify

from ..services.certificates import generate_certificate, get_certificate_image
from ..shared.errors import CertificateError
from ..shared.rbac import login_required

bp = Blueprint("certificates", __name__, url_prefix="/certificates")


@bp.get("/<int:course_id>")
@login_required
def download_certificate(course_id: int, current_user):
    try:
        result = generate_certificate(current_user.id, course_id)
    except CertificateError as exc:
        if exc.is_client_error:
            current_app.logger.info(
                "[CERT] refused user=%s course=%s reason=%s",
                current_user.id,
                course_id,
                exc.message,
            )
            return jsonify({"message": exc.message}), exc.status_code
        current_app.logger.exception(
            "[CERT-FAIL] generate user=%s course=%s", current_user.id, course_id
        )
        return jsonify({"message": "Error generating certificate"}), 500
    except Exception:
        current_app.logger.exception(
            "[CERT-FAIL] generate user=%s course=%s", current_user.id, course_id
        )
        return jsonify({"message": "Error generating certificate"}), 500

    resp = Response(result.pdf_bytes, mimetype="application/pdf")
    resp.headers["Content-Disposition"] = (
        f"attachment; filename=certificate-{course_id}.pdf"
    )
    return resp


@bp.get("/<int:course_id>/image")
@login_required
def certificate_image(course_id: int, current_user):
    try:
        image_url = get_certificate_image(current_user.id, course_id)
    except CertificateError as exc:
        if exc.is_client_error:
            return jsonify({"message": exc.message}), exc.status_code
        current_app.logger.exception(
            "[CERT-FAIL] image user=%s course=%s", current_user.id, course_id
        )
        return jsonify({"message": "Error getting certificate image"}), 500
    except Exception:
        current_app.logger.exception(
            "[CERT-FAIL] image user=%s course=%s", current_user.id, course_id
        )
        return jsonify({"message": "Error getting certificate image"}), 500
    return jsonify({"imageUrl": image_url or None})
