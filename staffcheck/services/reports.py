from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from staffcheck.errors import not_found, validation_error
from staffcheck.models import Attendance, AttendanceStatus, JobChecklist, JobTemplate, OfficeArea, Profile, WorkLocation
from staffcheck.schemas import (
    ChecklistReportArea,
    ChecklistReportDay,
    ChecklistReportResponse,
    ChecklistReportTemplate,
    MonthlyReportResponse,
    MonthlyReportRow,
)
from staffcheck.services.attendance import local_day_bounds_utc, local_today, to_local
from staffcheck.services.checklists import template_matches_day
from staffcheck.services.schedules import iter_days

MAX_CHECKLIST_REPORT_DAYS = 93


def parse_month(value: str | None) -> tuple[int, int]:
    if not value:
        today = local_today()
        return today.year, today.month
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m")
    except ValueError as exc:
        raise validation_error("month must be formatted as YYYY-MM.") from exc
    return parsed.year, parsed.month


def _worked_hours(row: Attendance) -> float:
    if row.check_out is None:
        return 0.0
    seconds = (row.check_out - row.check_in).total_seconds()
    return max(0.0, seconds / 3600)


def summarize_month(
    employees: list[Profile],
    rows: list[Attendance],
    *,
    year: int,
    month: int,
) -> MonthlyReportResponse:
    days_in_month = calendar.monthrange(year, month)[1]
    rows_by_user: dict[int, list[Attendance]] = defaultdict(list)
    for row in rows:
        rows_by_user[row.user_id].append(row)

    report_rows: list[MonthlyReportRow] = []
    grand_total_hours = 0.0
    total_attendance = 0
    for employee in employees:
        user_rows = rows_by_user.get(employee.id, [])
        total_attendance += len(user_rows)
        days_present = len({to_local(row.check_in).date() for row in user_rows})
        late_days = len(
            {to_local(row.check_in).date() for row in user_rows if row.status == AttendanceStatus.LATE}
        )
        total_hours = sum(_worked_hours(row) for row in user_rows)
        grand_total_hours += total_hours
        report_rows.append(
            MonthlyReportRow(
                user_id=employee.id,
                full_name=employee.full_name,
                employee_code=employee.employee_code,
                department=employee.department,
                days_present=days_present,
                late_days=late_days,
                total_hours=round(total_hours, 1),
                avg_hours=round(total_hours / days_present, 1) if days_present else 0.0,
            )
        )

    slots = len(employees) * days_in_month
    average_percent = round(total_attendance / slots * 100, 1) if slots else 0.0
    return MonthlyReportResponse(
        month=f"{year:04d}-{month:02d}",
        days_in_month=days_in_month,
        total_employees=len(employees),
        total_attendance=total_attendance,
        total_hours=round(grand_total_hours, 1),
        average_attendance_percent=average_percent,
        rows=report_rows,
    )


def load_month_rows(db: Session, *, year: int, month: int) -> tuple[list[Profile], list[Attendance]]:
    first_day = date(year, month, 1)
    last_day = date(year, month, calendar.monthrange(year, month)[1])
    start_utc = local_day_bounds_utc(first_day)[0]
    end_utc = local_day_bounds_utc(last_day)[1]

    employees = list(
        db.scalars(
            select(Profile)
            .where(Profile.is_active.is_(True))
            .order_by(Profile.full_name.asc(), Profile.id.asc())
        ).all()
    )
    rows = list(
        db.scalars(
            select(Attendance)
            .options(selectinload(Attendance.user))
            .where(Attendance.check_in >= start_utc, Attendance.check_in < end_utc)
            .order_by(Attendance.check_in.asc(), Attendance.id.asc())
        ).all()
    )
    return employees, rows


def build_monthly_report(db: Session, *, month: str | None) -> MonthlyReportResponse:
    year, month_number = parse_month(month)
    employees, rows = load_month_rows(db, year=year, month=month_number)
    return summarize_month(employees, rows, year=year, month=month_number)


def build_checklist_report(
    db: Session,
    *,
    location_id: int,
    start_date: date,
    end_date: date,
) -> ChecklistReportResponse:
    if start_date > end_date:
        raise validation_error("start_date must be on or before end_date.")
    if (end_date - start_date).days + 1 > MAX_CHECKLIST_REPORT_DAYS:
        raise validation_error(f"Checklist reports cover at most {MAX_CHECKLIST_REPORT_DAYS} days.")

    location = db.get(WorkLocation, location_id)
    if location is None:
        raise not_found("Work location")

    areas = list(
        db.scalars(
            select(OfficeArea)
            .where(OfficeArea.location_id == location_id)
            .order_by(OfficeArea.name.asc(), OfficeArea.id.asc())
        ).all()
    )
    area_ids = [area.id for area in areas]
    templates: list[JobTemplate] = []
    checklists: list[JobChecklist] = []
    if area_ids:
        templates = list(
            db.scalars(
                select(JobTemplate)
                .where(JobTemplate.area_id.in_(area_ids), JobTemplate.is_active.is_(True))
                .order_by(JobTemplate.title.asc(), JobTemplate.id.asc())
            ).all()
        )
        checklists = list(
            db.scalars(
                select(JobChecklist)
                .options(selectinload(JobChecklist.completed_by_profile))
                .where(
                    JobChecklist.area_id.in_(area_ids),
                    JobChecklist.assigned_date >= start_date,
                    JobChecklist.assigned_date <= end_date,
                    JobChecklist.is_active.is_(True),
                )
            ).all()
        )

    days = list(iter_days(start_date, end_date))
    by_key = {(item.job_template_id, item.assigned_date): item for item in checklists}

    report_areas: list[ChecklistReportArea] = []
    for area in areas:
        report_templates: list[ChecklistReportTemplate] = []
        for template in (item for item in templates if item.area_id == area.id):
            report_days: list[ChecklistReportDay] = []
            for day_date in days:
                checklist = by_key.get((template.id, day_date))
                completer = checklist.completed_by_profile if checklist is not None else None
                completed = checklist is not None and checklist.completed_at is not None
                report_days.append(
                    ChecklistReportDay(
                        day=day_date,
                        scheduled=checklist is not None or template_matches_day(template, day_date),
                        completed=completed,
                        completed_at=checklist.completed_at if checklist is not None else None,
                        completed_by_name=completer.full_name if completer is not None else None,
                        completed_by_code=completer.employee_code if completer is not None else None,
                    )
                )
            report_templates.append(
                ChecklistReportTemplate(
                    template_id=template.id,
                    title=template.title,
                    frequency=template.frequency,
                    days=report_days,
                    completed_count=sum(1 for item in report_days if item.completed),
                    scheduled_count=sum(1 for item in report_days if item.scheduled),
                )
            )
        if report_templates:
            report_areas.append(
                ChecklistReportArea(area_id=area.id, area_name=area.name, templates=report_templates)
            )

    return ChecklistReportResponse(
        location_id=location.id,
        location_name=location.name,
        start_date=start_date,
        end_date=end_date,
        dates=days,
        areas=report_areas,
    )
