from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


EXPECTED_ALEMBIC_REVISION = "0001_initial"

REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "profiles": {"id", "email", "role", "password_hash", "is_active"},
    "work_locations": {"id", "latitude", "longitude", "radius_meters", "is_active"},
    "office_areas": {"id", "location_id", "duration_minutes", "is_active"},
    "employee_schedules": {"id", "user_id", "day_of_week", "shift_start", "shift_end", "effective_date", "end_date"},
    "attendance": {"id", "user_id", "check_in", "check_out", "check_in_location_valid", "status"},
    "job_templates": {"id", "area_id", "frequency", "day_of_week", "day_of_month", "is_active"},
    "job_checklists": {"id", "job_template_id", "assigned_date", "completed_at", "is_active"},
    "notifications": {"id", "title", "is_broadcast", "created_at"},
    "notification_recipients": {"id", "notification_id", "user_id", "is_read"},
    "push_subscriptions": {"id", "user_id", "endpoint", "p256dh", "auth", "is_active"},
    "audit_logs": {"id", "actor_type", "action", "details"},
    "alembic_version": {"version_num"},
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "user_role": {"admin", "manager", "employee"},
    "attendance_status": {"present", "late", "absent"},
    "job_frequency": {"daily", "weekly", "monthly"},
}

REQUIRED_INDEXES: dict[str, str] = {
    "attendance": "uq_attendance_open_per_user",
    "job_checklists": "uq_job_checklists_active_template_date",
}


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except SQLAlchemyError as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, index_name in REQUIRED_INDEXES.items():
        try:
            index_names = {str(item.get("name")) for item in inspector.get_indexes(table_name)}
        except SQLAlchemyError as exc:
            warnings.append(f"INDEX_INSPECTION_FAILED:{table_name}:{exc.__class__.__name__}")
            continue
        if index_name not in index_names:
            issues.append(f"MISSING_INDEX:{table_name}:{index_name}")

    try:
        enums = inspector.get_enums() or []
    except (SQLAlchemyError, NotImplementedError, AttributeError) as exc:
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        enums = []

    enum_values_by_name: dict[str, set[str]] = {}
    for enum_item in enums:
        name = str(enum_item.get("name") or "").strip()
        if not name:
            continue
        labels = enum_item.get("labels")
        if isinstance(labels, list):
            enum_values_by_name[name] = {str(label) for label in labels}

    for enum_name, required_values in REQUIRED_ENUM_VALUES.items():
        if enum_name not in enum_values_by_name:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing_values = sorted(item for item in required_values if item not in enum_values_by_name[enum_name])
        if missing_values:
            issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing_values)}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
            elif version != EXPECTED_ALEMBIC_REVISION:
                warnings.append(f"ALEMBIC_VERSION_MISMATCH:{version}")
    except SQLAlchemyError as exc:
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
