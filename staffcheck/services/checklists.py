from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Literal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from staffcheck.errors import ApiError, not_found, validation_error
from staffcheck.models import JobChecklist, JobFrequency, JobTemplate, OfficeArea, Profile, UserRole
from staffcheck.schemas import ChecklistListResponse, ChecklistRead, ChecklistStats, GenerateResponse
from staffcheck.services.attendance import local_today
from staffcheck.services.schedules import iter_days, list_applicable_schedules, to_day_of_week

logger = logging.getLogger("staffcheck.checklists")

ChecklistStatusFilter = Literal["all", "completed", "pending"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def template_matches_day(template: JobTemplate, day_date: date) -> bool:
    frequency = JobFrequency(template.frequency)
    if frequency == JobFrequency.DAILY:
        return True
    if frequency == JobFrequency.WEEKLY:
        return template.day_of_week == to_day_of_week(day_date)
    if frequency == JobFrequency.MONTHLY:
        return template.day_of_month == day_date.day
    return False


def _checklist_options():
    return (
        selectinload(JobChecklist.job_template),
        selectinload(JobChecklist.area),
        selectinload(JobChecklist.completed_by_profile),
    )


def checklist_to_read(item: JobChecklist) -> ChecklistRead:
    template = item.job_template
    area = item.area
    completer = item.completed_by_profile
    return ChecklistRead(
        id=item.id,
        job_template_id=item.job_template_id,
        area_id=item.area_id,
        assigned_date=item.assigned_date,
        start_time=item.start_time,
        completed_at=item.completed_at,
        completed_by=item.completed_by,
        completed_by_name=completer.full_name if completer is not None else None,
        notes=item.notes,
        start_photo_url=item.start_photo_url,
        end_photo_url=item.end_photo_url,
        title=template.title,
        description=template.description,
        frequency=template.frequency,
        area_name=area.name,
        location_id=area.location_id,
        duration_minutes=area.duration_minutes,
    )


def list_generation_templates(db: Session, *, location_id: int | None) -> list[JobTemplate]:
    stmt = select(JobTemplate).where(JobTemplate.is_active.is_(True))
    if location_id is not None:
        stmt = stmt.join(OfficeArea, OfficeArea.id == JobTemplate.area_id).where(
            OfficeArea.location_id == location_id
        )
    return list(db.scalars(stmt.order_by(JobTemplate.id.asc())).all())


def generate_checklists(
    db: Session,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    location_id: int | None = None,
    overwrite: bool = False,
) -> GenerateResponse:
    start_date = start_date or local_today()
    end_date = end_date or start_date
    if start_date > end_date:
        raise validation_error("start_date must be on or before end_date.")

    templates = list_generation_templates(db, location_id=location_id)
    created = 0
    skipped = 0
    replaced = 0
    errors: list[str] = []

    for template in templates:
        template_id = template.id
        area_id = template.area_id
        for day_date in iter_days(start_date, end_date):
            if not template_matches_day(template, day_date):
                continue

            existing = list(
                db.scalars(
                    select(JobChecklist).where(
                        JobChecklist.job_template_id == template_id,
                        JobChecklist.assigned_date == day_date,
                        JobChecklist.is_active.is_(True),
                    )
                ).all()
            )
            if existing and not overwrite:
                skipped += 1
                continue

            try:
                for item in existing:
                    item.is_active = False
                if existing:
                    db.flush()
                db.add(
                    JobChecklist(
                        job_template_id=template_id,
                        area_id=area_id,
                        assigned_date=day_date,
                        is_active=True,
                    )
                )
                db.commit()
            except Exception as exc:
                db.rollback()
                logger.exception(
                    "checklist_generate_row_failed",
                    extra={"job_template_id": template_id, "day": day_date.isoformat()},
                )
                errors.append(f"template {template_id} on {day_date.isoformat()}: {exc}")
                continue

            if existing:
                replaced += 1
            else:
                created += 1

    logger.info(
        "checklist_generate_complete",
        extra={
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "location_id": location_id,
            "templates": len(templates),
            "created": created,
            "skipped": skipped,
            "replaced": replaced,
            "errors": len(errors),
        },
    )
    return GenerateResponse(
        message=(
            f"Generated {created + replaced} checklist(s) from {start_date.isoformat()} "
            f"to {end_date.isoformat()}. Skipped {skipped} existing checklist(s)."
        ),
        created=created,
        skipped=skipped,
        replaced=replaced,
        errors=errors,
    )


def compute_stats(items: list[JobChecklist]) -> ChecklistStats:
    total = len(items)
    completed = sum(1 for item in items if item.completed_at is not None)
    rate = round(completed / total * 100) if total else 0
    return ChecklistStats(total=total, completed=completed, pending=total - completed, completion_rate=rate)


def list_checklists_for_day(
    db: Session,
    *,
    day_date: date,
    location_id: int | None = None,
    area_id: int | None = None,
    status: ChecklistStatusFilter = "all",
) -> ChecklistListResponse:
    stmt = (
        select(JobChecklist)
        .options(*_checklist_options())
        .join(OfficeArea, OfficeArea.id == JobChecklist.area_id)
        .where(
            JobChecklist.assigned_date == day_date,
            JobChecklist.is_active.is_(True),
        )
    )
    if location_id is not None:
        stmt = stmt.where(OfficeArea.location_id == location_id)
    if area_id is not None:
        stmt = stmt.where(JobChecklist.area_id == area_id)
    if status == "completed":
        stmt = stmt.where(JobChecklist.completed_at.is_not(None))
    elif status == "pending":
        stmt = stmt.where(JobChecklist.completed_at.is_(None))

    stmt = stmt.order_by(JobChecklist.completed_at.desc().nulls_last(), JobChecklist.id.asc())
    items = list(db.scalars(stmt).all())
    return ChecklistListResponse(
        assigned_date=day_date,
        items=[checklist_to_read(item) for item in items],
        stats=compute_stats(items),
    )


def list_today_checklists_for_user(db: Session, *, user_id: int) -> list[JobChecklist]:
    today = local_today()
    schedules = list_applicable_schedules(db, user_id=user_id, day_date=today)
    location_ids = sorted({item.location_id for item in schedules if item.location_id is not None})
    if not location_ids:
        return []

    area_ids = list(
        db.scalars(
            select(OfficeArea.id).where(
                OfficeArea.location_id.in_(location_ids),
                OfficeArea.is_active.is_(True),
            )
        ).all()
    )
    if not area_ids:
        return []

    return list(
        db.scalars(
            select(JobChecklist)
            .options(*_checklist_options())
            .where(
                JobChecklist.area_id.in_(area_ids),
                JobChecklist.assigned_date == today,
                JobChecklist.is_active.is_(True),
            )
            .order_by(JobChecklist.area_id.asc(), JobChecklist.id.asc())
        ).all()
    )


def get_checklist(db: Session, checklist_id: int) -> JobChecklist:
    item = db.scalar(
        select(JobChecklist)
        .options(*_checklist_options())
        .where(JobChecklist.id == checklist_id, JobChecklist.is_active.is_(True))
    )
    if item is None:
        raise not_found("Checklist")
    return item


def start_checklist(db: Session, checklist_id: int, *, photo_url: str | None = None) -> JobChecklist:
    item = get_checklist(db, checklist_id)
    if item.completed_at is not None:
        raise ApiError(status_code=409, code="CHECKLIST_COMPLETED", message="Checklist is already completed.")
    item.start_time = _utcnow()
    if photo_url:
        item.start_photo_url = photo_url
    db.commit()
    return item


def complete_checklist(
    db: Session,
    checklist_id: int,
    *,
    profile: Profile,
    notes: str | None = None,
    photo_url: str | None = None,
) -> JobChecklist:
    item = get_checklist(db, checklist_id)
    if item.completed_at is not None:
        raise ApiError(status_code=409, code="CHECKLIST_COMPLETED", message="Checklist is already completed.")
    item.completed_at = _utcnow()
    item.completed_by = profile.id
    item.completed_by_profile = profile
    item.notes = notes or None
    if photo_url:
        item.end_photo_url = photo_url
    db.commit()
    return item


def uncomplete_checklist(db: Session, checklist_id: int, *, profile: Profile) -> JobChecklist:
    item = get_checklist(db, checklist_id)
    if UserRole(profile.role) != UserRole.ADMIN and item.completed_by != profile.id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only admins or the completer can undo this.")
    item.completed_at = None
    item.completed_by = None
    item.completed_by_profile = None
    item.notes = None
    item.end_photo_url = None
    db.commit()
    return item
