from io import BytesIO

import pytest
from PIL import Image
from PyPDF2 import PdfReader
from reportlab.pdfgen import canvas

from coursecert.shared.certificates import CertificateData, render_certificate_pdf
from coursecert.shared.certificates_layout import PAGE_SIZE
from coursecert.shared.errors import CertificateRenderError


DATA = CertificateData(
    user_name="Ada Lovelace",
    course_name="Analytical Engines",
    certificate_id="CERT-000042-0003-1700000000000",
)


def png_bytes(color="white") -> bytes:
    buf = BytesIO()
    Image.new("RGB", (842, 595), color).save(buf, format="PNG")
    return buf.getvalue()


def _text(pdf_bytes: bytes) -> str:
    reader = PdfReader(BytesIO(pdf_bytes))
    assert len(reader.pages) == 1
    return reader.pages[0].extract_text()


def _blank_pdf(label: str) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=(612, 792))
    c.setFont("Helvetica", 12)
    c.drawString(72, 720, label)
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture
def record_strings(monkeypatch):
    calls = []
    original = canvas.Canvas.drawCentredString

    def _record(self, x, y, text, *args, **kwargs):
        calls.append((self._fontname, self._fontsize, x, y, text))
        return original(self, x, y, text, *args, **kwargs)

    monkeypatch.setattr(canvas.Canvas, "drawCentredString", _record)
    return calls


def test_render_places_all_fields_on_image_template():
    pdf = render_certificate_pdf(DATA, png_bytes())
    text = _text(pdf)
    assert "Ada Lovelace" in text
    assert "Analytical Engines" in text
    assert "Certificate ID: CERT-000042-0003-1700000000000" in text


def test_render_page_is_a4_landscape():
    reader = PdfReader(BytesIO(render_certificate_pdf(DATA, png_bytes())))
    box = reader.pages[0].mediabox
    assert float(box.width) == pytest.approx(PAGE_SIZE[0], abs=0.01)
    assert float(box.height) == pytest.approx(PAGE_SIZE[1], abs=0.01)


def test_render_sets_title_and_author():
    reader = PdfReader(BytesIO(render_certificate_pdf(DATA, png_bytes())))
    assert reader.metadata.title == "Analytical Engines Certificate"
    assert reader.metadata.author == "AiCademy"


def test_hidden_fields_are_not_drawn():
    config = {"showCourseName": False, "showCertificateId": False}
    text = _text(render_certificate_pdf(DATA, png_bytes(), config))
    assert "Ada Lovelace" in text
    assert "Analytical Engines" not in text
    assert "Certificate ID" not in text


def test_default_positions(record_strings):
    render_certificate_pdf(DATA, png_bytes())
    by_text = {call[4]: call for call in record_strings}
    page_w, page_h = PAGE_SIZE

    name = by_text["Ada Lovelace"]
    assert name[0] == "Helvetica-Bold" and name[1] == 36
    assert name[2] == pytest.approx(page_w / 2)
    assert name[3] == pytest.approx(page_h * 0.48 - 36 * 0.718)

    course = by_text["Analytical Engines"]
    assert course[1] == 28
    assert course[3] < name[3]

    cert_id = by_text["Certificate ID: CERT-000042-0003-1700000000000"]
    assert cert_id[0] == "Helvetica" and cert_id[1] == 8
    assert cert_id[3] == pytest.approx(page_h * 0.05 - 8 * 0.718)


def test_custom_position_moves_text(record_strings):
    config = {"namePosition": {"x": 0.0, "y": 0.25}}
    render_certificate_pdf(DATA, png_bytes(), config)
    name = next(call for call in record_strings if call[4] == "Ada Lovelace")
    assert name[2] == pytest.approx(0.0)
    assert name[3] == pytest.approx(PAGE_SIZE[1] * 0.75 - 36 * 0.718)


def test_long_name_wraps_onto_following_lines(record_strings):
    long_name = "Augusta Ada King Countess of Lovelace and Baroness Wentworth of Nettlestead"
    data = CertificateData(long_name, DATA.course_name, DATA.certificate_id)
    render_certificate_pdf(data, png_bytes())
    name_lines = [call for call in record_strings if call[0] == "Helvetica-Bold" and call[1] == 36]
    assert len(name_lines) > 1
    assert " ".join(call[4] for call in name_lines) == long_name
    baselines = [call[3] for call in name_lines]
    assert baselines == sorted(baselines, reverse=True)
    assert baselines[0] - baselines[1] == pytest.approx(36 * 1.2)


def test_render_is_deterministic():
    template = png_bytes()
    assert render_certificate_pdf(DATA, template) == render_certificate_pdf(DATA, template)


def test_render_onto_pdf_template():
    pdf = render_certificate_pdf(DATA, _blank_pdf("Background Artwork"))
    reader = PdfReader(BytesIO(pdf))
    assert len(reader.pages) == 1
    text = reader.pages[0].extract_text()
    assert "Background Artwork" in text
    assert "Ada Lovelace" in text
    assert float(reader.pages[0].mediabox.width) == pytest.approx(PAGE_SIZE[0], abs=0.01)


def test_watermark_is_drawn(record_strings):
    pdf = render_certificate_pdf(DATA, png_bytes(), watermark="TEST CERTIFICATE", title="Sample")
    assert any(call[4] == "TEST CERTIFICATE" and call[1] == 60 for call in record_strings)
    assert PdfReader(BytesIO(pdf)).metadata.title == "Sample"


def test_unreadable_template_raises_render_error():
    with pytest.raises(CertificateRenderError) as exc:
        render_certificate_pdf(DATA, b"definitely not an image")
    assert exc.value.status_code == 500


def test_broken_pdf_template_raises_render_error():
    with pytest.raises(CertificateRenderError):
        render_certificate_pdf(DATA, b"%PDF-1.4 truncated")
