from __future__ import annotations

import json

from flask import Blueprint, Response, abort, current_app, jsonify, request

from ..app import db
from ..models import Course
from ..services.certificates import generate_test_certificate
from ..shared.certificates_layout import sanitize_template_config
from ..shared.errors import CertificateError, TemplateUploadError
from ..shared.rbac import admin_required, can_manage_course, login_required
from ..shared.storage import get_publisher
from ..shared.template_uploads import read_template_upload

bp = Blueprint("course_templates", __name__, url_prefix="/courses")


def _manageable_course(course_id: int, user):
    """Return ``(course, None)`` or ``(None, error_response)``."""
    if user.role not in ("admin", "trainer"):
        return None, (jsonify({"message": "Unauthorized"}), 403)
    course = db.session.get(Course, course_id)
    if not course:
        return None, (jsonify({"message": "Course not found"}), 404)
    if not can_manage_course(user, course):
        return None, (jsonify({"message": "Unauthorized to update this course"}), 403)
    return course, None


def _parse_config_field(raw: str | None, course_id: int) -> dict | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        current_app.logger.warning(
            "[CERT-TEMPLATE] ignoring invalid templateConfig course=%s", course_id
        )
        return None
    if not isinstance(parsed, dict):
        current_app.logger.warning(
            "[CERT-TEMPLATE] ignoring non-object templateConfig course=%s", course_id
        )
        return None
    return parsed


@bp.post("/<int:course_id>/certificate-template")
@login_required
def upload_course_template(course_id: int, current_user):
    course, error = _manageable_course(course_id, current_user)
    if error:
        return error
    try:
        raw = read_template_upload(request.files.get("template"))
    except TemplateUploadError as exc:
        return jsonify({"message": str(exc)}), 400
    config = _parse_config_field(request.form.get("templateConfig"), course.id)

    try:
        url = get_publisher().upload_template(
            raw, folder=current_app.config["COURSE_TEMPLATE_FOLDER"]
        )
    except CertificateError:
        current_app.logger.exception(
            "[CERT-FAIL] course template upload course=%s user=%s",
            course.id,
            current_user.id,
        )
        return jsonify({"message": "Error uploading template"}), 500

    course.certificate_template_url = url
    course.certificate_template_config = sanitize_template_config(
        config, course_specific=True
    )
    db.session.commit()
    current_app.logger.info(
        "[CERT-TEMPLATE] course template updated course=%s user=%s url=%s",
        course.id,
        current_user.id,
        url,
    )
    return jsonify(course.template_payload())


@bp.put("/<int:course_id>/certificate-template/config")
@login_required
def update_course_template_config(course_id: int, current_user):
    course, error = _manageable_course(course_id, current_user)
    if error:
        return error
    if not course.certificate_template_url:
        return jsonify({"message": "Course has no certificate template"}), 400
    payload = request.get_json(silent=True) or {}
    config = payload.get("templateConfig")
    if not isinstance(config, dict):
        return jsonify({"message": "templateConfig is required"}), 400
    course.certificate_template_config = sanitize_template_config(
        config, course_specific=True
    )
    db.session.commit()
    current_app.logger.info(
        "[CERT-TEMPLATE] course config updated course=%s user=%s",
        course.id,
        current_user.id,
    )
    return jsonify(course.template_payload())


@bp.get("/<int:course_id>/certificate-template")
@login_required
def show_course_template(course_id: int, current_user):
    course = db.session.get(Course, course_id)
    if not course:
        abort(404, description="Course not found")
    return jsonify(course.template_payload())


@bp.delete("/<int:course_id>/certificate-template")
@login_required
def delete_course_template(course_id: int, current_user):
    course, error = _manageable_course(course_id, current_user)
    if error:
        return error
    if not course.certificate_template_url:
        return jsonify({"message": "Course has no certificate template"}), 404
    course.certificate_template_url = None
    course.certificate_template_config = None
    db.session.commit()
    current_app.logger.info(
        "[CERT-TEMPLATE] course template removed course=%s user=%s",
        course.id,
        current_user.id,
    )
    return jsonify(course.template_payload())


@bp.post("/<int:course_id>/certificate/test")
@admin_required
def test_certificate(course_id: int, current_user):
    course = db.session.get(Course, course_id)
    if not course:
        abort(404, description="Course not found")
    payload = request.get_json(silent=True) or {}
    user_name = (payload.get("userName") or "").strip()
    if not user_name:
        return jsonify({"message": "userName is required"}), 400
    try:
        pdf_bytes = generate_test_certificate(
            course,
            user_name=user_name,
            course_name=(payload.get("courseName") or "").strip() or None,
            certificate_id=(payload.get("certificateId") or "").strip() or None,
        )
    except CertificateError as exc:
        if exc.is_client_error:
            return jsonify({"message": exc.message}), exc.status_code
        current_app.logger.exception("[CERT-FAIL] test certificate course=%s", course.id)
        return jsonify({"message": "Error generating test certificate"}), 500
    except Exception:
        current_app.logger.exception("[CERT-FAIL] test certificate course=%s", course.id)
        return jsonify({"message": "Error generating test certificate"}), 500

    resp = Response(pdf_bytes, mimetype="application/pdf")
    resp.headers["Content-Disposition"] = (
        f"attachment; filename=test-certificate-{course.id}.pdf"
    )
    return resp
