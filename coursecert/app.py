import logging
import os

import cloudinary
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

db = SQLAlchemy()

from .models import User  # noqa: E402
from .shared.storage import CloudinaryPublisher  # noqa: E402


def create_app(test_config: dict | None = None):
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "coursecert")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "coursecert")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 25 * 1024 * 1024

    app.config["CLOUDINARY_CLOUD_NAME"] = os.getenv("CLOUDINARY_CLOUD_NAME")
    app.config["CLOUDINARY_API_KEY"] = os.getenv("CLOUDINARY_API_KEY")
    app.config["CLOUDINARY_API_SECRET"] = os.getenv("CLOUDINARY_API_SECRET")
    app.config["CERTIFICATE_FOLDER"] = os.getenv(
        "CERTIFICATE_FOLDER", "certificates"
    )
    app.config["COURSE_TEMPLATE_FOLDER"] = os.getenv(
        "COURSE_TEMPLATE_FOLDER", "certificates/courses"
    )
    app.config["CERT_TEMPLATE_FETCH_TIMEOUT"] = float(
        os.getenv("CERT_TEMPLATE_FETCH_TIMEOUT", "15")
    )
    app.config["AUTH_TOKEN_MAX_AGE"] = int(
        os.getenv("AUTH_TOKEN_MAX_AGE", str(7 * 24 * 3600))
    )

    if test_config:
        app.config.update(test_config)

    db.init_app(app)

    cloudinary.config(
        cloud_name=app.config["CLOUDINARY_CLOUD_NAME"],
        api_key=app.config["CLOUDINARY_API_KEY"],
        api_secret=app.config["CLOUDINARY_API_SECRET"],
        secure=True,
    )
    app.extensions["certificate_publisher"] = CloudinaryPublisher(
        certificate_folder=app.config["CERTIFICATE_FOLDER"]
    )
    app.extensions.setdefault("template_transport", None)

    @app.errorhandler(HTTPException)
    def json_http_error(exc: HTTPException):
        return jsonify({"message": exc.description}), exc.code

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    from .routes.auth import bp as auth_bp
    from .routes.certificates import bp as certificates_bp
    from .routes.certificate_settings import bp as certificate_settings_bp
    from .routes.course_templates import bp as course_templates_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(certificate_settings_bp)
    app.register_blueprint(course_templates_bp)

    with app.app_context():
        if os.getenv("SEED_ADMIN_EMAIL"):
            seed_initial_admin_safely()

    return app


def seed_initial_admin_safely() -> None:
    """Seed an admin user when the users table exists and is empty."""

    try:
        from sqlalchemy import inspect

        insp = inspect(db.engine)
        if "users" not in insp.get_table_names():
            logging.info("admin seed skipped (users table missing)")
            return
        if db.session.query(User).count() > 0:
            return
        email = os.getenv("SEED_ADMIN_EMAIL", "").strip().lower()
        admin = User(email=email, full_name=email, role="admin", status="active")
        password = os.getenv("SEED_ADMIN_PASSWORD")
        if password:
            admin.set_password(password)
        db.session.add(admin)
        db.session.commit()
        logging.info("Seeded admin user %s.", email)
    except Exception:
        db.session.rollback()
        logging.exception("seed_initial_admin_safely failed")
