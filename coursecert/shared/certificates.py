from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

import httpx
from flask import current_app
from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas
from sqlalchemy import or_, update

from ..app import db
from ..models import (
    COURSE_STATUS_COMPLETED,
    CertificateSettings,
    Course,
    User,
    UserCourse,
)
from .certificates_layout import (
    CONTENT_WIDTH_PT,
    COURSE_FONT,
    FONT_ASCENT_FACTOR,
    ID_COLOR,
    ID_FONT,
    ID_LABEL,
    LINE_HEIGHT_FACTOR,
    NAME_FONT,
    PAGE_SIZE,
    TEXT_COLOR,
    default_template_config,
    sanitize_template_config,
)
from .errors import (
    CertificateNotFoundError,
    CertificatePreconditionError,
    CertificateRenderError,
    CertificateUpstreamError,
)
from .time import epoch_millis, now_utc

CERTIFICATE_AUTHOR = "AiCademy"
WATERMARK_FONT = ("Helvetica-Bold", 60)


@dataclass(frozen=True)
class CertificateData:
    user_name: str
    course_name: str
    certificate_id: str


@dataclass(frozen=True)
class TemplateSource:
    url: str
    config: dict
    source: str

    @property
    def course_specific(self) -> bool:
        return self.source == "course"


def find_course_record(user_id: int, course_id: int) -> UserCourse | None:
    return (
        db.session.query(UserCourse)
        .filter(UserCourse.user_id == user_id, UserCourse.course_id == course_id)
        .one_or_none()
    )


def assemble_certificate_data(user: User, course: Course) -> CertificateData:
    record = find_course_record(user.id, course.id)
    if not record:
        raise CertificateNotFoundError("Course not found in user's courses")
    if record.status != COURSE_STATUS_COMPLETED or not (record.certificate_id or "").strip():
        raise CertificatePreconditionError("Course not completed yet")
    return CertificateData(
        user_name=user.display_name,
        course_name=course.title,
        certificate_id=record.certificate_id,
    )


def issue_certificate_id(user_id: int, course_id: int) -> str:
    course_part = f"{int(course_id):06d}"[-6:]
    user_part = f"{int(user_id):04d}"[-4:]
    return f"CERT-{course_part}-{user_part}-{epoch_millis()}"


def mark_course_completed(user: User, course: Course) -> UserCourse:
    """Complete the learner's course and assign a certificate id once."""
    record = find_course_record(user.id, course.id)
    if not record:
        record = UserCourse(user_id=user.id, course_id=course.id)
        db.session.add(record)
    record.status = COURSE_STATUS_COMPLETED
    if not record.completed_at:
        record.completed_at = now_utc()
    if not record.certificate_id:
        record.certificate_id = issue_certificate_id(user.id, course.id)
    db.session.commit()
    current_app.logger.info(
        "[CERT] completed user=%s course=%s certificate_id=%s",
        user.id,
        course.id,
        record.certificate_id,
    )
    return record


def attach_image_url_if_absent(user_id: int, course_id: int, image_url: str) -> bool:
    """Store ``image_url`` on the learner record unless one is already set.

    A single conditional UPDATE; concurrent callers race on the WHERE clause
    and only the first write lands. Returns True when this call stored it.
    """
    result = db.session.execute(
        update(UserCourse)
        .where(
            UserCourse.user_id == user_id,
            UserCourse.course_id == course_id,
            or_(
                UserCourse.certificate_image_url.is_(None),
                UserCourse.certificate_image_url == "",
            ),
        )
        .values(certificate_image_url=image_url)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    attached = result.rowcount == 1
    if attached:
        current_app.logger.info(
            "[CERT-IMAGE] attached user=%s course=%s url=%s", user_id, course_id, image_url
        )
    else:
        current_app.logger.info(
            "[CERT-IMAGE] kept existing user=%s course=%s", user_id, course_id
        )
    return attached


def get_active_template_settings() -> CertificateSettings | None:
    return (
        db.session.query(CertificateSettings)
        .order_by(CertificateSettings.updated_at.desc(), CertificateSettings.id.desc())
        .first()
    )


def resolve_template(course: Course | None) -> TemplateSource:
    course_url = (getattr(course, "certificate_template_url", None) or "").strip()
    if course_url:
        resolution = TemplateSource(
            url=course_url,
            config=sanitize_template_config(
                course.certificate_template_config, course_specific=True
            ),
            source="course",
        )
    else:
        settings = get_active_template_settings()
        if not settings or not settings.template_url:
            raise CertificateNotFoundError("Certificate template not found")
        resolution = TemplateSource(
            url=settings.template_url,
            config=default_template_config(course_specific=False),
            source="global",
        )
    current_app.logger.info(
        "[CERT-TEMPLATE] using url=%s source=%s course=%s",
        resolution.url,
        resolution.source,
        getattr(course, "id", None),
    )
    return resolution


def fetch_template_bytes(url: str) -> bytes:
    timeout = current_app.config.get("CERT_TEMPLATE_FETCH_TIMEOUT", 15)
    transport = current_app.extensions.get("template_transport")
    try:
        with httpx.Client(
            timeout=timeout, transport=transport, follow_redirects=True
        ) as client:
            response = client.get(url)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise CertificateUpstreamError(
            f"Template download failed with status {exc.response.status_code}"
        ) from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise CertificateUpstreamError(f"Template download failed: {exc}") from exc
    if not response.content:
        raise CertificateUpstreamError("Template download returned no data")
    return response.content


def _is_pdf(raw: bytes) -> bool:
    return raw.lstrip()[:5] == b"%PDF-"


def _load_template_image(raw: bytes) -> ImageReader:
    try:
        probe = Image.open(BytesIO(raw))
        probe.verify()
        image = Image.open(BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise CertificateRenderError("Certificate template is not a readable image") from exc
    if image.mode != "RGB":
        image = image.convert("RGB")
    return ImageReader(image)


def _draw_text_block(
    c: canvas.Canvas,
    text: str,
    font: tuple[str, int],
    color: str,
    position: dict,
) -> None:
    if not text:
        return
    font_name, font_size = font
    page_w, page_h = PAGE_SIZE
    lines = simpleSplit(text, font_name, font_size, CONTENT_WIDTH_PT) or [text]
    center_x = position["x"] * page_w
    top = page_h - position["y"] * page_h
    line_height = font_size * LINE_HEIGHT_FACTOR
    c.setFont(font_name, font_size)
    c.setFillColor(HexColor(color))
    for index, line in enumerate(lines):
        baseline = top - font_size * FONT_ASCENT_FACTOR - index * line_height
        c.drawCentredString(center_x, baseline, line)


def _draw_watermark(c: canvas.Canvas, text: str) -> None:
    page_w, page_h = PAGE_SIZE
    font_name, font_size = WATERMARK_FONT
    c.saveState()
    c.setFillColorRGB(100 / 255, 100 / 255, 100 / 255)
    c.setFillAlpha(0.2)
    c.setFont(font_name, font_size)
    c.translate(page_w / 2, page_h / 2)
    c.rotate(45)
    c.drawCentredString(0, 0, text)
    c.restoreState()


def _merge_onto_pdf_template(template_pdf: bytes, overlay_pdf: bytes, title: str) -> bytes:
    page_w, page_h = PAGE_SIZE
    try:
        base_page = PdfReader(BytesIO(template_pdf)).pages[0]
    except (PdfReadError, IndexError, ValueError) as exc:
        raise CertificateRenderError("Certificate template is not a readable PDF") from exc
    base_page.scale_to(page_w, page_h)
    overlay_page = PdfReader(BytesIO(overlay_pdf)).pages[0]
    base_page.merge_page(overlay_page)
    writer = PdfWriter()
    writer.add_page(base_page)
    writer.add_metadata({"/Title": title, "/Author": CERTIFICATE_AUTHOR})
    out_buf = BytesIO()
    writer.write(out_buf)
    return out_buf.getvalue()


def render_certificate_pdf(
    data: CertificateData,
    template_bytes: bytes,
    config: dict | None = None,
    *,
    watermark: str | None = None,
    title: str | None = None,
) -> bytes:
    """Composite ``data`` onto the template and return a one-page PDF.

    Image templates are stretched over an A4 landscape page; PDF templates
    have their first page scaled to that size and the text merged on top.
    Output is byte-stable for the same inputs.
    """
    layout = sanitize_template_config(config)
    title = title or f"{data.course_name} Certificate"
    page_w, page_h = PAGE_SIZE
    pdf_template = _is_pdf(template_bytes)

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=PAGE_SIZE, invariant=1)
    c.setTitle(title)
    c.setAuthor(CERTIFICATE_AUTHOR)
    if not pdf_template:
        background = _load_template_image(template_bytes)
        c.drawImage(background, 0, 0, width=page_w, height=page_h)

    if layout["showUserName"]:
        _draw_text_block(c, data.user_name, NAME_FONT, TEXT_COLOR, layout["namePosition"])
    if layout["showCourseName"]:
        _draw_text_block(
            c, data.course_name, COURSE_FONT, TEXT_COLOR, layout["coursePosition"]
        )
    if layout["showCertificateId"]:
        _draw_text_block(
            c,
            f"{ID_LABEL}: {data.certificate_id}",
            ID_FONT,
            ID_COLOR,
            layout["idPosition"],
        )
    if watermark:
        _draw_watermark(c, watermark)

    c.showPage()
    c.save()
    pdf_bytes = buffer.getvalue()
    if pdf_template:
        pdf_bytes = _merge_onto_pdf_template(template_bytes, pdf_bytes, title)
    return pdf_bytes
