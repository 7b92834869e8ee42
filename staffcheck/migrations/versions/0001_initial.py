"""Initial staffcheck schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = postgresql.ENUM("admin", "manager", "employee", name="user_role", create_type=False)
attendance_status = postgresql.ENUM("present", "late", "absent", name="attendance_status", create_type=False)
job_frequency = postgresql.ENUM("daily", "weekly", "monthly", name="job_frequency", create_type=False)
notification_type = postgresql.ENUM(
    "info",
    "warning",
    "success",
    "error",
    name="notification_type",
    create_type=False,
)
audit_actor_type = postgresql.ENUM("USER", "SYSTEM", name="audit_actor_type", create_type=False)

ENUMS = (user_role, attendance_status, job_frequency, notification_type, audit_actor_type)


def _created_at(**kwargs) -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
        **kwargs,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False, server_default=sa.text("'employee'")),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("position", sa.String(length=255), nullable=True),
        sa.Column("employee_code", sa.String(length=64), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("employee_code", name="uq_profiles_employee_code"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    op.create_table(
        "work_locations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("radius_meters", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )

    op.create_table(
        "office_areas",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["location_id"], ["work_locations.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_office_areas_location_id", "office_areas", ["location_id"])

    op.create_table(
        "employee_schedules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("shift_start", sa.Time(timezone=False), nullable=False),
        sa.Column("shift_end", sa.Time(timezone=False), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["work_locations.id"], ondelete="SET NULL"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_employee_schedules_day_of_week"),
    )
    op.create_index("ix_employee_schedules_user_id", "employee_schedules", ["user_id"])
    op.create_index("ix_employee_schedules_location_id", "employee_schedules", ["location_id"])
    op.create_index("ix_employee_schedules_effective_date", "employee_schedules", ["effective_date"])

    op.create_table(
        "attendance",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("check_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_lat", sa.Float(), nullable=True),
        sa.Column("check_in_lng", sa.Float(), nullable=True),
        sa.Column("check_out_lat", sa.Float(), nullable=True),
        sa.Column("check_out_lng", sa.Float(), nullable=True),
        sa.Column("check_in_location_valid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("check_out_location_valid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", attendance_status, nullable=False, server_default=sa.text("'present'")),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attendance_user_id", "attendance", ["user_id"])
    op.create_index("ix_attendance_check_in", "attendance", ["check_in"])
    op.create_index(
        "uq_attendance_open_per_user",
        "attendance",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("check_out IS NULL"),
    )

    op.create_table(
        "job_templates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("area_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("frequency", job_frequency, nullable=False, server_default=sa.text("'daily'")),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["area_id"], ["office_areas.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_job_templates_area_id", "job_templates", ["area_id"])

    op.create_table(
        "job_checklists",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("job_template_id", sa.Integer(), nullable=False),
        sa.Column("area_id", sa.Integer(), nullable=False),
        sa.Column("assigned_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("start_photo_url", sa.String(length=1024), nullable=True),
        sa.Column("end_photo_url", sa.String(length=1024), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["job_template_id"], ["job_templates.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["area_id"], ["office_areas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["completed_by"], ["profiles.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_job_checklists_job_template_id", "job_checklists", ["job_template_id"])
    op.create_index("ix_job_checklists_area_id", "job_checklists", ["area_id"])
    op.create_index("ix_job_checklists_assigned_date", "job_checklists", ["assigned_date"])
    op.create_index(
        "uq_job_checklists_active_template_date",
        "job_checklists",
        ["job_template_id", "assigned_date"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", notification_type, nullable=False, server_default=sa.text("'info'")),
        sa.Column("sent_by", sa.Integer(), nullable=True),
        sa.Column("is_broadcast", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
        sa.ForeignKeyConstraint(["sent_by"], ["profiles.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "notification_recipients",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("notification_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["notification_id"], ["notifications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "notification_id",
            "user_id",
            name="uq_notification_recipients_notification_user",
        ),
    )
    op.create_index(
        "ix_notification_recipients_notification_id",
        "notification_recipients",
        ["notification_id"],
    )
    op.create_index("ix_notification_recipients_user_id", "notification_recipients", ["user_id"])

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("p256dh", sa.String(length=255), nullable=False),
        sa.Column("auth", sa.String(length=255), nullable=False),
        sa.Column("device_type", sa.String(length=32), nullable=False, server_default=sa.text("'web'")),
        sa.Column("device_info", sa.String(length=1024), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("endpoint", name="uq_push_subscriptions_endpoint"),
    )
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_push_subscriptions_user_id", table_name="push_subscriptions")
    op.drop_table("push_subscriptions")
    op.drop_index("ix_notification_recipients_user_id", table_name="notification_recipients")
    op.drop_index("ix_notification_recipients_notification_id", table_name="notification_recipients")
    op.drop_table("notification_recipients")
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("uq_job_checklists_active_template_date", table_name="job_checklists")
    op.drop_index("ix_job_checklists_assigned_date", table_name="job_checklists")
    op.drop_index("ix_job_checklists_area_id", table_name="job_checklists")
    op.drop_index("ix_job_checklists_job_template_id", table_name="job_checklists")
    op.drop_table("job_checklists")
    op.drop_index("ix_job_templates_area_id", table_name="job_templates")
    op.drop_table("job_templates")
    op.drop_index("uq_attendance_open_per_user", table_name="attendance")
    op.drop_index("ix_attendance_check_in", table_name="attendance")
    op.drop_index("ix_attendance_user_id", table_name="attendance")
    op.drop_table("attendance")
    op.drop_index("ix_employee_schedules_effective_date", table_name="employee_schedules")
    op.drop_index("ix_employee_schedules_location_id", table_name="employee_schedules")
    op.drop_index("ix_employee_schedules_user_id", table_name="employee_schedules")
    op.drop_table("employee_schedules")
    op.drop_index("ix_office_areas_location_id", table_name="office_areas")
    op.drop_table("office_areas")
    op.drop_table("work_locations")
    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
