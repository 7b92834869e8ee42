from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from staffcheck.errors import ApiError, not_found
from staffcheck.models import Profile, UserRole
from staffcheck.schemas import EmployeeCreate, EmployeeUpdate
from staffcheck.security import hash_password


def _normalize_email(value: str) -> str:
    return value.strip().lower()


def _ensure_email_available(db: Session, email: str, *, exclude_id: int | None = None) -> None:
    stmt = select(Profile.id).where(func.lower(Profile.email) == email)
    if exclude_id is not None:
        stmt = stmt.where(Profile.id != exclude_id)
    if db.scalar(stmt) is not None:
        raise ApiError(status_code=409, code="EMAIL_TAKEN", message="Email is already registered.")


def list_employees(
    db: Session,
    *,
    include_inactive: bool = False,
    role: UserRole | None = None,
) -> list[Profile]:
    stmt = select(Profile)
    if not include_inactive:
        stmt = stmt.where(Profile.is_active.is_(True))
    if role is not None:
        stmt = stmt.where(Profile.role == role)
    return list(db.scalars(stmt.order_by(Profile.full_name.asc(), Profile.id.asc())).all())


def _commit_profile(db: Session, profile: Profile) -> Profile:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="EMPLOYEE_CONFLICT",
            message="Email or employee code is already in use.",
        ) from exc
    db.refresh(profile)
    return profile


def create_employee(db: Session, payload: EmployeeCreate) -> Profile:
    email = _normalize_email(payload.email)
    _ensure_email_available(db, email)

    profile = Profile(
        email=email,
        full_name=payload.full_name.strip(),
        role=payload.role,
        department=payload.department,
        position=payload.position,
        employee_code=(payload.employee_code or "").strip() or None,
        phone=payload.phone,
        password_hash=hash_password(payload.password),
        is_active=True,
    )
    db.add(profile)
    return _commit_profile(db, profile)


def update_employee(db: Session, employee_id: int, payload: EmployeeUpdate) -> Profile:
    profile = db.get(Profile, employee_id)
    if profile is None:
        raise not_found("Employee")

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("email"):
        email = _normalize_email(changes["email"])
        _ensure_email_available(db, email, exclude_id=profile.id)
        profile.email = email
    if changes.get("full_name"):
        profile.full_name = changes["full_name"].strip()
    if changes.get("password"):
        profile.password_hash = hash_password(changes["password"])
    if changes.get("role") is not None:
        profile.role = changes["role"]
    if changes.get("is_active") is not None:
        profile.is_active = changes["is_active"]
    for field_name in ("department", "position", "phone"):
        if field_name in changes:
            setattr(profile, field_name, changes[field_name])
    if "employee_code" in changes:
        profile.employee_code = (changes["employee_code"] or "").strip() or None

    return _commit_profile(db, profile)


def deactivate_employee(db: Session, employee_id: int) -> Profile:
    profile = db.get(Profile, employee_id)
    if profile is None:
        raise not_found("Employee")
    profile.is_active = False
    db.commit()
    db.refresh(profile)
    return profile
