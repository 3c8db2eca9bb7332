from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..app import db
from ..models import COURSE_STATUS_COMPLETED, Course, User, UserCourse
from ..shared.certificates import (
    CertificateData,
    assemble_certificate_data,
    attach_image_url_if_absent,
    fetch_template_bytes,
    find_course_record,
    render_certificate_pdf,
    resolve_template,
)
from ..shared.errors import CertificateError, CertificateNotFoundError
from ..shared.storage import get_publisher
from ..shared.time import epoch_millis

TEST_WATERMARK = "TEST CERTIFICATE"


@dataclass(frozen=True)
class GeneratedCertificate:
    pdf_bytes: bytes
    image_url: str
    attached: bool


@dataclass(frozen=True)
class BackfillSummary:
    scanned: int
    published: int
    failed: int


def _load_user_and_course(user_id: int, course_id: int) -> tuple[User, Course]:
    user = db.session.get(User, user_id)
    course = db.session.get(Course, course_id)
    if not user or not course:
        raise CertificateNotFoundError("Course or user not found")
    return user, course


def render_for_course(data: CertificateData, course: Course) -> bytes:
    source = resolve_template(course)
    template_bytes = fetch_template_bytes(source.url)
    return render_certificate_pdf(data, template_bytes, source.config)


def generate_certificate(user_id: int, course_id: int) -> GeneratedCertificate:
    """Render a fresh certificate PDF and publish its image.

    The image URL is stored on the learner record only when none is set
    yet; the PDF is returned either way.
    """
    user, course = _load_user_and_course(user_id, course_id)
    data = assemble_certificate_data(user, course)
    pdf_bytes = render_for_course(data, course)
    image_url = get_publisher().publish(pdf_bytes)

    record = find_course_record(user.id, course.id)
    attached = False
    if record is not None and not record.certificate_image_url:
        attached = attach_image_url_if_absent(user.id, course.id, image_url)
    current_app.logger.info(
        "[CERT] generated user=%s course=%s certificate_id=%s bytes=%s",
        user.id,
        course.id,
        data.certificate_id,
        len(pdf_bytes),
    )
    return GeneratedCertificate(pdf_bytes=pdf_bytes, image_url=image_url, attached=attached)


def get_certificate_image(user_id: int, course_id: int) -> str:
    user = db.session.get(User, user_id)
    if not user:
        raise CertificateNotFoundError("User not found")
    record = find_course_record(user_id, course_id)
    if not record:
        raise CertificateNotFoundError("Course not found")
    if record.status != COURSE_STATUS_COMPLETED:
        raise CertificateNotFoundError("Certificate not available")
    if record.certificate_image_url:
        current_app.logger.info(
            "[CERT-IMAGE] cache hit user=%s course=%s", user_id, course_id
        )
        return record.certificate_image_url

    course = db.session.get(Course, course_id)
    if not course:
        raise CertificateNotFoundError("Course not found")
    data = assemble_certificate_data(user, course)
    pdf_bytes = render_for_course(data, course)
    image_url = get_publisher().publish(pdf_bytes)
    attach_image_url_if_absent(user_id, course_id, image_url)
    return image_url


def generate_test_certificate(
    course: Course,
    *,
    user_name: str,
    course_name: str | None = None,
    certificate_id: str | None = None,
) -> bytes:
    """Render a watermarked sample with the course's template; nothing is stored."""
    data = CertificateData(
        user_name=user_name,
        course_name=course_name or course.title,
        certificate_id=certificate_id or f"TEST-{str(epoch_millis())[-8:]}",
    )
    source = resolve_template(course)
    template_bytes = fetch_template_bytes(source.url)
    return render_certificate_pdf(
        data,
        template_bytes,
        source.config,
        watermark=TEST_WATERMARK,
        title=f"{data.course_name} Test Certificate",
    )


def pending_image_records() -> list[UserCourse]:
    return (
        db.session.query(UserCourse)
        .filter(UserCourse.status == COURSE_STATUS_COMPLETED)
        .filter(
            (UserCourse.certificate_image_url.is_(None))
            | (UserCourse.certificate_image_url == "")
        )
        .order_by(UserCourse.id)
        .all()
    )


def backfill_certificate_images(dry_run: bool = False) -> BackfillSummary:
    pending = [(r.user_id, r.course_id) for r in pending_image_records()]
    published = failed = 0
    for user_id, course_id in pending:
        if dry_run:
            continue
        try:
            get_certificate_image(user_id, course_id)
            published += 1
        except CertificateError as exc:
            failed += 1
            current_app.logger.warning(
                "[CERT-FAIL] backfill user=%s course=%s reason=%s",
                user_id,
                course_id,
                exc.message,
            )
        except Exception:
            failed += 1
            db.session.rollback()
            current_app.logger.exception(
                "[CERT-FAIL] backfill user=%s course=%s", user_id, course_id
            )
    summary = BackfillSummary(scanned=len(pending), published=published, failed=failed)
    current_app.logger.info(
        "[CERT-BACKFILL] scanned=%s published=%s failed=%s",
        summary.scanned,
        summary.published,
        summary.failed,
    )
    return summary
