from coursecert.app import create_app, db

from flask_migrate import Migrate
from flask.cli import FlaskGroup
import click
from sqlalchemy import func
from flask import current_app
from coursecert.models import ROLE_CHOICES, Course, User
from coursecert.services.certificates import (
    backfill_certificate_images as run_backfill,
    generate_certificate,
)
from coursecert.shared.certificates import mark_course_completed
from coursecert.shared.certificates_layout import (
    config_needs_normalizing,
    sanitize_template_config,
)
from coursecert.shared.errors import CertificateError


migrate = Migrate()


def create_coursecert_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_coursecert_app)


def _lookup(email: str, course_id: int):
    user = (
        db.session.query(User)
        .filter(func.lower(User.email) == email.strip().lower())
        .one_or_none()
    )
    course = db.session.get(Course, course_id)
    return user, course


@cli.command("gen_cert")
@click.option("--user-email", "email", required=True)
@click.option("--course", "course_id", required=True, type=int)
@click.option("--out", "out_path", default=None, help="Where to write the PDF")
def gen_cert(email: str, course_id: int, out_path: str | None):
    """Generate a certificate PDF for a learner."""
    user, course = _lookup(email, course_id)
    if not user or not course:
        click.echo("Not found", err=True)
        return
    try:
        result = generate_certificate(user.id, course.id)
    except CertificateError as exc:
        click.echo(f"Failed: {exc.message}", err=True)
        return
    out_path = out_path or f"certificate-{course.id}.pdf"
    with open(out_path, "wb") as fh:
        fh.write(result.pdf_bytes)
    click.echo(out_path)
    click.echo(result.image_url)


@cli.command("complete_course")
@click.option("--user-email", "email", required=True)
@click.option("--course", "course_id", required=True, type=int)
def complete_course(email: str, course_id: int):
    """Mark a learner's course completed and print its certificate id."""
    user, course = _lookup(email, course_id)
    if not user or not course:
        click.echo("Not found", err=True)
        return
    record = mark_course_completed(user, course)
    click.echo(record.certificate_id)


@cli.command("backfill_certificate_images")
@click.option(
    "--dry-run", is_flag=True, help="Count completed records missing an image"
)
def backfill_certificate_images(dry_run: bool):
    summary = run_backfill(dry_run=dry_run)
    click.echo(
        f"scanned={summary.scanned} published={summary.published} failed={summary.failed}"
    )


@cli.command("normalize_template_configs")
@click.option("--dry-run", is_flag=True, help="List courses that would change")
def normalize_template_configs(dry_run: bool):
    courses = (
        db.session.query(Course)
        .filter(Course.certificate_template_config.isnot(None))
        .order_by(Course.id)
        .all()
    )
    changed = 0
    for course in courses:
        if not config_needs_normalizing(course.certificate_template_config):
            continue
        changed += 1
        click.echo(f"course={course.id}")
        if not dry_run:
            course.certificate_template_config = sanitize_template_config(
                course.certificate_template_config, course_specific=True
            )
    if not dry_run:
        db.session.commit()
    summary = f"scanned={len(courses)} changed={changed}"
    click.echo(summary)
    current_app.logger.info("[CERT-TEMPLATE] normalize %s dry_run=%s", summary, dry_run)


@cli.command("create_user")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--full-name", "full_name", default=None)
@click.option("--role", type=click.Choice(ROLE_CHOICES), default="user")
def create_user(email: str, password: str, full_name: str | None, role: str):
    email = email.strip().lower()
    if db.session.query(User).filter(func.lower(User.email) == email).first():
        click.echo("User already exists", err=True)
        return
    user = User(email=email, full_name=full_name, role=role, status="active")
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    click.echo(f"user_id={user.id}")


if __name__ == "__main__":
    cli()
