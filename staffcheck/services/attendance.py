from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from staffcheck.errors import ApiError
from staffcheck.models import Attendance, AttendanceStatus, EmployeeSchedule, Profile
from staffcheck.schemas import (
    AttendanceLocationRequest,
    AttendanceRead,
    CheckInResponse,
    CheckOutResponse,
    NearestLocationRead,
    RecomputeError,
    RecomputeResponse,
)
from staffcheck.services.location import GeofenceResult, evaluate_position
from staffcheck.services.schedules import find_schedule_for_day, schedule_to_read
from staffcheck.settings import get_attendance_timezone, get_settings

logger = logging.getLogger("staffcheck.attendance")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(get_attendance_timezone())


def local_today() -> date:
    return to_local(_utcnow()).date()


def local_day_bounds_utc(day_date: date) -> tuple[datetime, datetime]:
    tz = get_attendance_timezone()
    start_local = datetime.combine(day_date, time.min, tzinfo=tz)
    end_local = datetime.combine(day_date + timedelta(days=1), time.min, tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def compute_attendance_status(
    check_in_local: datetime,
    schedule: EmployeeSchedule | None,
    *,
    grace_minutes: int | None = None,
) -> AttendanceStatus:
    if schedule is None:
        return AttendanceStatus.PRESENT
    if grace_minutes is None:
        grace_minutes = get_settings().late_grace_minutes

    day_date = check_in_local.date()
    threshold = datetime.combine(day_date, schedule.shift_start) + timedelta(minutes=grace_minutes)
    arrived = datetime.combine(day_date, check_in_local.time().replace(microsecond=0))
    if arrived > threshold:
        return AttendanceStatus.LATE
    return AttendanceStatus.PRESENT


def is_early_checkout(
    check_out_local: datetime,
    schedule: EmployeeSchedule | None,
    *,
    early_minutes: int | None = None,
) -> bool:
    if schedule is None:
        return False
    if early_minutes is None:
        early_minutes = get_settings().early_checkout_minutes

    day_date = check_out_local.date()
    threshold = datetime.combine(day_date, schedule.shift_end) - timedelta(minutes=early_minutes)
    left = datetime.combine(day_date, check_out_local.time().replace(microsecond=0))
    return left < threshold


def _nearest_read(geofence: GeofenceResult) -> NearestLocationRead | None:
    location = geofence.nearest_location
    if location is None or geofence.distance_m is None:
        return None
    return NearestLocationRead(
        id=location.id,
        name=location.name,
        distance_m=geofence.distance_m,
        radius_meters=location.radius_meters,
    )


def get_open_attendance(db: Session, *, user_id: int) -> Attendance | None:
    return db.scalar(
        select(Attendance)
        .where(
            Attendance.user_id == user_id,
            Attendance.check_out.is_(None),
        )
        .order_by(Attendance.check_in.desc(), Attendance.id.desc())
        .limit(1)
    )


def check_in(db: Session, *, profile: Profile, payload: AttendanceLocationRequest) -> CheckInResponse:
    if get_open_attendance(db, user_id=profile.id) is not None:
        raise ApiError(
            status_code=409,
            code="ALREADY_CHECKED_IN",
            message="You already have an open check-in. Check out first.",
        )

    geofence = evaluate_position(db, payload.latitude, payload.longitude)
    now_utc = _utcnow()
    now_local = to_local(now_utc)
    schedule = find_schedule_for_day(db, user_id=profile.id, day_date=now_local.date())
    status = compute_attendance_status(now_local, schedule)

    attendance = Attendance(
        user_id=profile.id,
        check_in=now_utc,
        check_in_lat=payload.latitude,
        check_in_lng=payload.longitude,
        check_in_location_valid=geofence.is_valid,
        status=status,
        notes=payload.notes,
    )
    db.add(attendance)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="ALREADY_CHECKED_IN",
            message="You already have an open check-in. Check out first.",
        ) from exc
    db.refresh(attendance)

    logger.info(
        "attendance_check_in",
        extra={
            "user_id": profile.id,
            "attendance_id": attendance.id,
            "status": status.value,
            "location_valid": geofence.is_valid,
            "distance_m": geofence.distance_m,
            "schedule_id": schedule.id if schedule is not None else None,
        },
    )
    return CheckInResponse(
        attendance=AttendanceRead.model_validate(attendance),
        location_valid=geofence.is_valid,
        distance_m=geofence.distance_m,
        nearest_location=_nearest_read(geofence),
        schedule=schedule_to_read(schedule) if schedule is not None else None,
        status=status,
    )


def check_out(db: Session, *, profile: Profile, payload: AttendanceLocationRequest) -> CheckOutResponse:
    attendance = get_open_attendance(db, user_id=profile.id)
    if attendance is None:
        raise ApiError(
            status_code=409,
            code="NO_ACTIVE_CHECKIN",
            message="No active check-in found.",
        )

    geofence = evaluate_position(db, payload.latitude, payload.longitude)
    now_utc = _utcnow()
    # Judged against the shift that was checked into, so overnight shifts keep their schedule.
    schedule = find_schedule_for_day(
        db,
        user_id=profile.id,
        day_date=to_local(attendance.check_in).date(),
    )
    early = is_early_checkout(to_local(now_utc), schedule)

    attendance.check_out = now_utc
    attendance.check_out_lat = payload.latitude
    attendance.check_out_lng = payload.longitude
    attendance.check_out_location_valid = geofence.is_valid
    if payload.notes:
        attendance.notes = payload.notes
    db.commit()
    db.refresh(attendance)

    logger.info(
        "attendance_check_out",
        extra={
            "user_id": profile.id,
            "attendance_id": attendance.id,
            "location_valid": geofence.is_valid,
            "is_early_checkout": early,
        },
    )
    return CheckOutResponse(
        attendance=AttendanceRead.model_validate(attendance),
        location_valid=geofence.is_valid,
        distance_m=geofence.distance_m,
        nearest_location=_nearest_read(geofence),
        schedule=schedule_to_read(schedule) if schedule is not None else None,
        is_early_checkout=early,
    )


def get_today_attendance(db: Session, *, user_id: int) -> Attendance | None:
    start_utc, end_utc = local_day_bounds_utc(local_today())
    return db.scalar(
        select(Attendance)
        .where(
            Attendance.user_id == user_id,
            Attendance.check_in >= start_utc,
            Attendance.check_in < end_utc,
        )
        .order_by(Attendance.check_in.desc(), Attendance.id.desc())
        .limit(1)
    )


def list_history(
    db: Session,
    *,
    user_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 100,
) -> list[Attendance]:
    stmt = select(Attendance).where(Attendance.user_id == user_id)
    if start_date is not None:
        stmt = stmt.where(Attendance.check_in >= local_day_bounds_utc(start_date)[0])
    if end_date is not None:
        stmt = stmt.where(Attendance.check_in < local_day_bounds_utc(end_date)[1])
    stmt = stmt.order_by(Attendance.check_in.desc(), Attendance.id.desc()).limit(limit)
    return list(db.scalars(stmt).all())


def list_attendance_for_admin(
    db: Session,
    *,
    day_date: date | None = None,
    user_id: int | None = None,
    limit: int = 500,
) -> list[Attendance]:
    stmt = select(Attendance).options(selectinload(Attendance.user))
    if day_date is not None:
        start_utc, end_utc = local_day_bounds_utc(day_date)
        stmt = stmt.where(Attendance.check_in >= start_utc, Attendance.check_in < end_utc)
    if user_id is not None:
        stmt = stmt.where(Attendance.user_id == user_id)
    stmt = stmt.order_by(Attendance.check_in.desc(), Attendance.id.desc()).limit(limit)
    return list(db.scalars(stmt).all())


def recompute_statuses(db: Session, *, day_date: date, user_id: int | None = None) -> RecomputeResponse:
    start_utc, end_utc = local_day_bounds_utc(day_date)
    stmt = select(Attendance).where(Attendance.check_in >= start_utc, Attendance.check_in < end_utc)
    if user_id is not None:
        stmt = stmt.where(Attendance.user_id == user_id)
    rows = list(db.scalars(stmt.order_by(Attendance.id.asc())).all())

    updated = 0
    errors: list[RecomputeError] = []
    for row in rows:
        row_id = row.id
        try:
            check_in_local = to_local(row.check_in)
            schedule = find_schedule_for_day(db, user_id=row.user_id, day_date=check_in_local.date())
            new_status = compute_attendance_status(check_in_local, schedule)
            if row.status == new_status:
                continue
            row.status = new_status
            db.commit()
            updated += 1
        except Exception as exc:
            db.rollback()
            logger.exception(
                "attendance_recompute_row_failed",
                extra={"attendance_id": row_id, "day": day_date.isoformat()},
            )
            errors.append(RecomputeError(attendance_id=row_id, error=str(exc)))

    logger.info(
        "attendance_recompute_complete",
        extra={
            "day": day_date.isoformat(),
            "user_id": user_id,
            "total": len(rows),
            "updated": updated,
            "errors": len(errors),
        },
    )
    return RecomputeResponse(
        message=f"Recomputed {len(rows)} attendance record(s), updated {updated}.",
        updated=updated,
        total=len(rows),
        errors=errors,
    )
