import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from coursecert.app import db
from coursecert.models import COURSE_STATUS_COMPLETED, Course, User, UserCourse
from manage import (
    backfill_certificate_images,
    complete_course,
    create_user,
    gen_cert,
    normalize_template_configs,
)


@pytest.fixture
def runner(app):
    for command in (
        gen_cert,
        complete_course,
        backfill_certificate_images,
        normalize_template_configs,
        create_user,
    ):
        app.cli.add_command(command)
    return app.test_cli_runner()


def test_create_user(runner):
    res = runner.invoke(
        args=["create_user", "--email", "Admin@Example.com", "--password", "pw", "--role", "admin"]
    )
    assert res.exit_code == 0
    assert "user_id=" in res.output
    user = db.session.query(User).one()
    assert user.email == "admin@example.com"
    assert user.is_admin
    assert user.check_password("pw")

    res = runner.invoke(args=["create_user", "--email", "admin@example.com", "--password", "pw"])
    assert "User already exists" in res.output


def test_complete_course_prints_certificate_id(runner, make_user, make_course):
    user = make_user()
    course = make_course()
    res = runner.invoke(
        args=["complete_course", "--user-email", user.email, "--course", str(course.id)]
    )
    assert res.exit_code == 0
    db.session.expire_all()
    record = db.session.query(UserCourse).one()
    assert record.status == COURSE_STATUS_COMPLETED
    assert res.output.strip() == record.certificate_id


def test_complete_course_unknown_user(runner, make_course):
    course = make_course()
    res = runner.invoke(
        args=["complete_course", "--user-email", "nobody@example.com", "--course", str(course.id)]
    )
    assert "Not found" in res.output
    assert db.session.query(UserCourse).count() == 0


def test_gen_cert_writes_pdf(runner, tmp_path, make_user, make_course, make_record, global_template, publisher):
    global_template()
    user = make_user()
    course = make_course()
    make_record(user, course)
    out = tmp_path / "cert.pdf"
    res = runner.invoke(
        args=["gen_cert", "--user-email", user.email, "--course", str(course.id), "--out", str(out)]
    )
    assert res.exit_code == 0
    assert out.read_bytes().startswith(b"%PDF")
    assert len(publisher.published) == 1


def test_gen_cert_not_completed(runner, tmp_path, make_user, make_course, global_template):
    global_template()
    user = make_user()
    course = make_course()
    out = tmp_path / "cert.pdf"
    res = runner.invoke(
        args=["gen_cert", "--user-email", user.email, "--course", str(course.id), "--out", str(out)]
    )
    assert "Failed: Course not found in user's courses" in res.output
    assert not out.exists()


def test_backfill_summary(runner, make_user, make_course, make_record, global_template, publisher):
    global_template()
    course = make_course()
    make_record(make_user(), course)
    make_record(make_user(email="grace@example.com"), course, image_url="https://cached/grace.png")

    res = runner.invoke(args=["backfill_certificate_images", "--dry-run"])
    assert "scanned=1 published=0 failed=0" in res.output
    assert publisher.published == []

    res = runner.invoke(args=["backfill_certificate_images"])
    assert "scanned=1 published=1 failed=0" in res.output

    res = runner.invoke(args=["backfill_certificate_images"])
    assert "scanned=0 published=0 failed=0" in res.output


def test_normalize_template_configs(runner, make_course):
    partial = make_course(
        title="Partial",
        template_url="https://t/a.png",
        template_config={"namePosition": {"y": 0.3}},
    )
    make_course(title="Untouched")
    partial_id = partial.id

    res = runner.invoke(args=["normalize_template_configs", "--dry-run"])
    assert f"course={partial_id}" in res.output
    assert "changed=1" in res.output
    db.session.expire_all()
    assert db.session.get(Course, partial_id).certificate_template_config == {"namePosition": {"y": 0.3}}

    res = runner.invoke(args=["normalize_template_configs"])
    assert res.exit_code == 0
    db.session.expire_all()
    config = db.session.get(Course, partial_id).certificate_template_config
    assert config["namePosition"] == {"x": 0.5, "y": 0.3}
    assert config["showCourseName"] is False

    res = runner.invoke(args=["normalize_template_configs"])
    assert "changed=0" in res.output
