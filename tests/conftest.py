import os
import pathlib
import sys
from io import BytesIO

import httpx
import pytest
from PIL import Image

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from coursecert.app import create_app, db
from coursecert.models import (
    COURSE_STATUS_COMPLETED,
    CertificateSettings,
    Course,
    User,
    UserCourse,
)
from coursecert.shared.errors import CertificateUpstreamError
from coursecert.shared.rbac import issue_token
from coursecert.shared.time import now_utc

GLOBAL_TEMPLATE_URL = "https://res.cloudinary.com/demo/image/upload/certificates/global.png"
COURSE_TEMPLATE_URL = "https://res.cloudinary.com/demo/image/upload/certificates/courses/c1.png"


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


def png_bytes(size=(842, 595), color="white") -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakePublisher:
    """Stands in for Cloudinary; remembers every upload."""

    def __init__(self):
        self.published: list[bytes] = []
        self.templates: list[tuple[bytes, str | None]] = []
        self.fail = False

    def publish(self, pdf_bytes: bytes) -> str:
        if self.fail:
            raise CertificateUpstreamError("Object storage upload failed: boom")
        self.published.append(pdf_bytes)
        return f"https://res.cloudinary.com/demo/image/upload/certificates/{len(self.published)}.png"

    def upload_template(self, raw: bytes, folder: str | None = None) -> str:
        if self.fail:
            raise CertificateUpstreamError("Object storage upload failed: boom")
        self.templates.append((raw, folder))
        return f"https://res.cloudinary.com/demo/image/upload/{folder}/template-{len(self.templates)}.png"


class TemplateServer:
    """Serves template bytes through an ``httpx.MockTransport``."""

    def __init__(self):
        self.responses: dict[str, tuple[int, bytes]] = {}
        self.requests: list[str] = []

    def serve(self, url: str, body: bytes, status: int = 200) -> None:
        self.responses[url] = (status, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        status, body = self.responses.get(url, (404, b"missing"))
        return httpx.Response(status, content=body)


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def template_server():
    server = TemplateServer()
    server.serve(GLOBAL_TEMPLATE_URL, png_bytes())
    server.serve(COURSE_TEMPLATE_URL, png_bytes(color="ivory"))
    return server


@pytest.fixture
def app(publisher, template_server):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    application = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        }
    )
    application.extensions["certificate_publisher"] = publisher
    application.extensions["template_transport"] = httpx.MockTransport(
        template_server.handler
    )
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email="learner@example.com", full_name="Ada Lovelace", role="user", status="active", password=None):
        user = User(email=email, full_name=full_name, role=role, status=status)
        if password:
            user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_course(app):
    def _make(title="Analytical Engines 101", instructor=None, template_url=None, template_config=None):
        course = Course(
            title=title,
            instructor_id=instructor.id if instructor else None,
            certificate_template_url=template_url,
            certificate_template_config=template_config,
        )
        db.session.add(course)
        db.session.commit()
        return course

    return _make


@pytest.fixture
def make_record(app):
    def _make(user, course, status=COURSE_STATUS_COMPLETED, certificate_id="CERT-000001-0001-1700000000000", image_url=None):
        record = UserCourse(
            user_id=user.id,
            course_id=course.id,
            status=status,
            completed_at=now_utc() if status == COURSE_STATUS_COMPLETED else None,
            certificate_id=certificate_id,
            certificate_image_url=image_url,
        )
        db.session.add(record)
        db.session.commit()
        return record

    return _make


@pytest.fixture
def global_template(app, make_user):
    def _set(url=GLOBAL_TEMPLATE_URL, admin=None):
        admin = admin or make_user(email="settings-admin@example.com", role="admin")
        settings = CertificateSettings(
            template_url=url, updated_at=now_utc(), updated_by_id=admin.id
        )
        db.session.add(settings)
        db.session.commit()
        return settings

    return _set


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        return {"Authorization": f"Bearer {issue_token(user)}"}

    return _headers
