"""create users, courses, user_courses and certificate_settings

Revision ID: 0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_users_email_lower", "users", [sa.text("lower(email)")], unique=True
    )

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column(
            "instructor_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("certificate_template_url", sa.String(1024), nullable=True),
        sa.Column("certificate_template_config", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "user_courses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "course_id",
            sa.Integer(),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "status", sa.String(20), nullable=False, server_default="in progress"
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("certificate_id", sa.String(64), nullable=True),
        sa.Column("certificate_image_url", sa.String(1024), nullable=True),
        sa.UniqueConstraint("user_id", "course_id", name="uix_user_course"),
    )

    op.create_table(
        "certificate_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("template_url", sa.String(1024), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False
        ),
    )
    op.create_index(
        "ix_certificate_settings_updated_at", "certificate_settings", ["updated_at"]
    )


def downgrade() -> None:
    op.drop_index(
        "ix_certificate_settings_updated_at", table_name="certificate_settings"
    )
    op.drop_table("certificate_settings")
    op.drop_table("user_courses")
    op.drop_table("courses")
    op.drop_index("ix_users_email_lower", table_name="users")
    op.drop_table("users")
