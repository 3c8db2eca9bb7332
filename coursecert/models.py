from __future__ import annotations

from sqlalchemy.orm import validates

from .app import db
from .shared.passwords import check_password, hash_password, password_needs_rehash
from .shared.time import now_utc

ROLE_CHOICES = ("admin", "trainer", "user")
USER_STATUS_CHOICES = ("active", "inactive", "suspended")

COURSE_STATUS_IN_PROGRESS = "in progress"
COURSE_STATUS_SAVED = "saved"
COURSE_STATUS_COMPLETED = "completed"
COURSE_STATUS_CHOICES = (
    COURSE_STATUS_IN_PROGRESS,
    COURSE_STATUS_SAVED,
    COURSE_STATUS_COMPLETED,
)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255))
    full_name = db.Column(db.String(255))
    role = db.Column(db.String(20), nullable=False, default="user", server_default="user")
    status = db.Column(
        db.String(20), nullable=False, default="active", server_default="active"
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.Index("ix_users_email_lower", db.func.lower(email), unique=True),
    )

    courses = db.relationship(
        "UserCourse", back_populates="user", cascade="all, delete-orphan"
    )

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower()

    @validates("role")
    def check_role(self, key, value):
        if value not in ROLE_CHOICES:
            raise ValueError(f"Unsupported role: {value!r}")
        return value

    def set_password(self, plain: str) -> None:
        self.password_hash = hash_password(plain)

    def check_password(self, plain: str) -> bool:
        if not self.password_hash:
            return False
        return check_password(plain, self.password_hash)

    def password_needs_rehash(self) -> bool:
        return bool(self.password_hash) and password_needs_rehash(self.password_hash)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def display_name(self) -> str:
        return (self.full_name or "").strip() or self.email

    def course_record(self, course_id: int) -> "UserCourse | None":
        for record in self.courses:
            if record.course_id == course_id:
                return record
        return None


class Course(db.Model):
    __tablename__ = "courses"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    instructor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL")
    )
    certificate_template_url = db.Column(db.String(1024))
    certificate_template_config = db.Column(db.JSON(none_as_null=True))
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    instructor = db.relationship("User")

    def template_payload(self) -> dict:
        return {
            "courseId": self.id,
            "certificateTemplateUrl": self.certificate_template_url or None,
            "certificateTemplateConfig": self.certificate_template_config or None,
        }


class UserCourse(db.Model):
    __tablename__ = "user_courses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    course_id = db.Column(
        db.Integer, db.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    status = db.Column(
        db.String(20),
        nullable=False,
        default=COURSE_STATUS_IN_PROGRESS,
        server_default=COURSE_STATUS_IN_PROGRESS,
    )
    completed_at = db.Column(db.DateTime(timezone=True))
    certificate_id = db.Column(db.String(64))
    certificate_image_url = db.Column(db.String(1024))
    __table_args__ = (
        db.UniqueConstraint("user_id", "course_id", name="uix_user_course"),
    )

    user = db.relationship("User", back_populates="courses")
    course = db.relationship("Course")

    @validates("status")
    def check_status(self, key, value):
        if value not in COURSE_STATUS_CHOICES:
            raise ValueError(f"Unsupported course status: {value!r}")
        return value

    @property
    def is_completed(self) -> bool:
        return self.status == COURSE_STATUS_COMPLETED


class CertificateSettings(db.Model):
    __tablename__ = "certificate_settings"

    id = db.Column(db.Integer, primary_key=True)
    template_url = db.Column(db.String(1024), nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=now_utc, index=True
    )
    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    updated_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "templateUrl": self.template_url,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "updatedBy": self.updated_by_id,
        }
