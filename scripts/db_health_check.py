#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text


EXPECTED_HEAD = "0001_initial"
REQUIRED_TABLES = (
    "profiles",
    "work_locations",
    "office_areas",
    "employee_schedules",
    "attendance",
    "job_templates",
    "job_checklists",
    "notifications",
    "notification_recipients",
    "push_subscriptions",
    "audit_logs",
)


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append({"name": name, "status": status, "details": details})

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing_tables = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing_tables else "ok", {"tables": missing_tables})

        if "attendance" in tables:
            duplicate_open_rows = conn.execute(
                text(
                    """
                    select user_id, count(*)
                    from attendance
                    where check_out is null
                    group by user_id
                    having count(*) > 1
                    """
                )
            ).fetchall()
            add(
                "duplicate_open_attendance",
                "fail" if duplicate_open_rows else "ok",
                {"rows": [list(row) for row in duplicate_open_rows]},
            )

            inverted_rows = conn.execute(
                text(
                    """
                    select id
                    from attendance
                    where check_out is not null and check_out < check_in
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "attendance_checkout_before_checkin",
                "fail" if inverted_rows else "ok",
                {"sample_ids": [row[0] for row in inverted_rows]},
            )

        if "job_checklists" in tables:
            duplicate_checklists = conn.execute(
                text(
                    """
                    select job_template_id, assigned_date, count(*)
                    from job_checklists
                    where is_active = true
                    group by job_template_id, assigned_date
                    having count(*) > 1
                    """
                )
            ).fetchall()
            add(
                "duplicate_active_checklists",
                "fail" if duplicate_checklists else "ok",
                {"rows": [[row[0], str(row[1]), row[2]] for row in duplicate_checklists]},
            )

        if "employee_schedules" in tables:
            invalid_ranges = conn.execute(
                text(
                    """
                    select id
                    from employee_schedules
                    where effective_date is not null
                      and end_date is not null
                      and end_date < effective_date
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "schedule_inverted_date_range",
                "warn" if invalid_ranges else "ok",
                {"sample_ids": [row[0] for row in invalid_ranges]},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
