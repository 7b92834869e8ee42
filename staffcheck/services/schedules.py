from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from staffcheck.errors import not_found, validation_error
from staffcheck.models import EmployeeSchedule, Profile, WorkLocation
from staffcheck.schemas import (
    GenerateResponse,
    ScheduleCreate,
    ScheduleGenerateRequest,
    ScheduleRead,
    ScheduleUpdate,
)

logger = logging.getLogger("staffcheck.schedules")


def to_day_of_week(day_date: date) -> int:
    # 0=Sunday .. 6=Saturday
    return (day_date.weekday() + 1) % 7


def is_date_specific(schedule: EmployeeSchedule) -> bool:
    return schedule.effective_date is not None


def schedule_applies_on(schedule: EmployeeSchedule, day_date: date) -> bool:
    if not schedule.is_active:
        return False
    if schedule.day_of_week != to_day_of_week(day_date):
        return False
    if schedule.effective_date is None:
        return True
    if schedule.effective_date > day_date:
        return False
    return schedule.end_date is None or day_date <= schedule.end_date


def resolve_schedule_for_day(
    schedules: list[EmployeeSchedule],
    *,
    day_date: date,
) -> EmployeeSchedule | None:
    date_specific: list[EmployeeSchedule] = []
    recurring: list[EmployeeSchedule] = []
    for schedule in schedules:
        if not schedule_applies_on(schedule, day_date):
            continue
        if is_date_specific(schedule):
            date_specific.append(schedule)
        else:
            recurring.append(schedule)

    if date_specific:
        date_specific.sort(key=lambda item: (-item.effective_date.toordinal(), item.id))
        return date_specific[0]
    if recurring:
        recurring.sort(key=lambda item: item.id)
        return recurring[0]
    return None


def list_user_schedule_candidates(db: Session, *, user_id: int, day_date: date) -> list[EmployeeSchedule]:
    return list(
        db.scalars(
            select(EmployeeSchedule)
            .options(selectinload(EmployeeSchedule.location))
            .where(
                EmployeeSchedule.user_id == user_id,
                EmployeeSchedule.is_active.is_(True),
                EmployeeSchedule.day_of_week == to_day_of_week(day_date),
            )
            .order_by(EmployeeSchedule.id.asc())
        ).all()
    )


def find_schedule_for_day(db: Session, *, user_id: int, day_date: date) -> EmployeeSchedule | None:
    candidates = list_user_schedule_candidates(db, user_id=user_id, day_date=day_date)
    return resolve_schedule_for_day(candidates, day_date=day_date)


def list_applicable_schedules(db: Session, *, user_id: int, day_date: date) -> list[EmployeeSchedule]:
    candidates = list_user_schedule_candidates(db, user_id=user_id, day_date=day_date)
    return [item for item in candidates if schedule_applies_on(item, day_date)]


def schedule_to_read(schedule: EmployeeSchedule) -> ScheduleRead:
    location = schedule.location
    return ScheduleRead(
        id=schedule.id,
        user_id=schedule.user_id,
        day_of_week=schedule.day_of_week,
        shift_start=schedule.shift_start,
        shift_end=schedule.shift_end,
        location_id=schedule.location_id,
        location_name=location.name if location is not None else None,
        effective_date=schedule.effective_date,
        end_date=schedule.end_date,
        is_active=schedule.is_active,
    )


def list_schedules(
    db: Session,
    *,
    user_id: int | None = None,
    location_id: int | None = None,
    year: int | None = None,
    month: int | None = None,
) -> list[EmployeeSchedule]:
    stmt = (
        select(EmployeeSchedule)
        .options(selectinload(EmployeeSchedule.location))
        .where(EmployeeSchedule.is_active.is_(True))
    )
    if user_id is not None:
        stmt = stmt.where(EmployeeSchedule.user_id == user_id)
    if location_id is not None:
        stmt = stmt.where(EmployeeSchedule.location_id == location_id)
    if year is not None and month is not None:
        if month < 1 or month > 12:
            raise validation_error("month must be between 1 and 12.")
        month_start = date(year, month, 1)
        month_end = date(year, month, calendar.monthrange(year, month)[1])
        stmt = stmt.where(
            or_(
                and_(
                    EmployeeSchedule.effective_date <= month_end,
                    or_(EmployeeSchedule.end_date.is_(None), EmployeeSchedule.end_date >= month_start),
                ),
                and_(EmployeeSchedule.effective_date.is_(None), EmployeeSchedule.end_date.is_(None)),
            )
        )

    stmt = stmt.order_by(
        EmployeeSchedule.effective_date.desc().nulls_last(),
        EmployeeSchedule.user_id.asc(),
        EmployeeSchedule.day_of_week.asc(),
        EmployeeSchedule.id.asc(),
    )
    return list(db.scalars(stmt).all())


def _ensure_profile(db: Session, user_id: int) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise not_found("Employee")
    return profile


def _ensure_location(db: Session, location_id: int | None) -> WorkLocation | None:
    if location_id is None:
        return None
    location = db.get(WorkLocation, location_id)
    if location is None:
        raise not_found("Work location")
    return location


def create_schedule(db: Session, payload: ScheduleCreate) -> EmployeeSchedule:
    _ensure_profile(db, payload.user_id)
    location = _ensure_location(db, payload.location_id)

    schedule = EmployeeSchedule(
        user_id=payload.user_id,
        day_of_week=payload.day_of_week,
        shift_start=payload.shift_start,
        shift_end=payload.shift_end,
        location_id=payload.location_id,
        effective_date=payload.effective_date,
        end_date=payload.end_date,
        is_active=True,
    )
    schedule.location = location
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


def update_schedule(db: Session, schedule_id: int, payload: ScheduleUpdate) -> EmployeeSchedule:
    schedule = db.get(EmployeeSchedule, schedule_id)
    if schedule is None:
        raise not_found("Schedule")

    changes = payload.model_dump(exclude_unset=True)
    if "location_id" in changes:
        schedule.location = _ensure_location(db, changes["location_id"])
    for field_name, value in changes.items():
        if field_name in {"day_of_week", "shift_start", "shift_end", "is_active"} and value is None:
            continue
        setattr(schedule, field_name, value)

    if (
        schedule.effective_date is not None
        and schedule.end_date is not None
        and schedule.effective_date > schedule.end_date
    ):
        db.rollback()
        raise validation_error("effective_date must be on or before end_date.")

    db.commit()
    db.refresh(schedule)
    return schedule


def delete_schedule(db: Session, schedule_id: int) -> None:
    schedule = db.get(EmployeeSchedule, schedule_id)
    if schedule is None:
        raise not_found("Schedule")
    db.delete(schedule)
    db.commit()


def iter_days(start_date: date, end_date: date):
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def generate_schedules(db: Session, payload: ScheduleGenerateRequest) -> GenerateResponse:
    if payload.start_date > payload.end_date:
        raise validation_error("start_date must be on or before end_date.")
    _ensure_profile(db, payload.user_id)
    _ensure_location(db, payload.location_id)

    created = 0
    skipped = 0
    replaced = 0
    errors: list[str] = []

    for day_date in iter_days(payload.start_date, payload.end_date):
        existing = list(
            db.scalars(
                select(EmployeeSchedule).where(
                    EmployeeSchedule.user_id == payload.user_id,
                    EmployeeSchedule.location_id == payload.location_id,
                    EmployeeSchedule.effective_date == day_date,
                    EmployeeSchedule.is_active.is_(True),
                )
            ).all()
        )
        if existing and not payload.overwrite:
            skipped += 1
            continue

        try:
            for item in existing:
                item.is_active = False
            db.add(
                EmployeeSchedule(
                    user_id=payload.user_id,
                    day_of_week=to_day_of_week(day_date),
                    shift_start=payload.shift_start,
                    shift_end=payload.shift_end,
                    location_id=payload.location_id,
                    effective_date=day_date,
                    end_date=day_date,
                    is_active=True,
                )
            )
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.exception(
                "schedule_generate_day_failed",
                extra={"user_id": payload.user_id, "day": day_date.isoformat()},
            )
            errors.append(f"{day_date.isoformat()}: {exc}")
            continue

        if existing:
            replaced += 1
        else:
            created += 1

    logger.info(
        "schedule_generate_complete",
        extra={
            "user_id": payload.user_id,
            "location_id": payload.location_id,
            "created": created,
            "skipped": skipped,
            "replaced": replaced,
            "errors": len(errors),
        },
    )
    return GenerateResponse(
        message=f"Generated {created + replaced} schedule(s). Skipped {skipped} existing schedule(s).",
        created=created,
        skipped=skipped,
        replaced=replaced,
        errors=errors,
    )

