from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from staffcheck.errors import not_found, validation_error
from staffcheck.models import JobFrequency, JobTemplate, OfficeArea
from staffcheck.schemas import JobTemplateCreate, JobTemplateUpdate


def validate_frequency_fields(
    frequency: JobFrequency,
    *,
    day_of_week: int | None,
    day_of_month: int | None,
) -> tuple[int | None, int | None]:
    if frequency == JobFrequency.WEEKLY:
        if day_of_week is None:
            raise validation_error("Weekly job templates require day_of_week.")
        return day_of_week, None
    if frequency == JobFrequency.MONTHLY:
        if day_of_month is None:
            raise validation_error("Monthly job templates require day_of_month.")
        return None, day_of_month
    return None, None


def list_job_templates(
    db: Session,
    *,
    area_id: int | None = None,
    include_inactive: bool = False,
) -> list[JobTemplate]:
    stmt = select(JobTemplate)
    if area_id is not None:
        stmt = stmt.where(JobTemplate.area_id == area_id)
    if not include_inactive:
        stmt = stmt.where(JobTemplate.is_active.is_(True))
    return list(db.scalars(stmt.order_by(JobTemplate.area_id.asc(), JobTemplate.id.asc())).all())


def _ensure_area(db: Session, area_id: int) -> OfficeArea:
    area = db.get(OfficeArea, area_id)
    if area is None:
        raise not_found("Office area")
    return area


def create_job_template(db: Session, payload: JobTemplateCreate) -> JobTemplate:
    _ensure_area(db, payload.area_id)
    day_of_week, day_of_month = validate_frequency_fields(
        payload.frequency,
        day_of_week=payload.day_of_week,
        day_of_month=payload.day_of_month,
    )
    template = JobTemplate(
        area_id=payload.area_id,
        title=payload.title.strip(),
        description=payload.description,
        frequency=payload.frequency,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        is_active=payload.is_active,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def update_job_template(db: Session, template_id: int, payload: JobTemplateUpdate) -> JobTemplate:
    template = db.get(JobTemplate, template_id)
    if template is None:
        raise not_found("Job template")

    changes = payload.model_dump(exclude_unset=True)
    frequency = JobFrequency(changes.get("frequency") or template.frequency)
    day_of_week, day_of_month = validate_frequency_fields(
        frequency,
        day_of_week=changes["day_of_week"] if "day_of_week" in changes else template.day_of_week,
        day_of_month=changes["day_of_month"] if "day_of_month" in changes else template.day_of_month,
    )

    if changes.get("area_id") is not None:
        _ensure_area(db, changes["area_id"])
        template.area_id = changes["area_id"]
    if changes.get("title") is not None:
        template.title = changes["title"].strip()
    if "description" in changes:
        template.description = changes["description"]
    if changes.get("is_active") is not None:
        template.is_active = changes["is_active"]
    template.frequency = frequency
    template.day_of_week = day_of_week
    template.day_of_month = day_of_month

    db.commit()
    db.refresh(template)
    return template


def delete_job_template(db: Session, template_id: int) -> None:
    template = db.get(JobTemplate, template_id)
    if template is None:
        raise not_found("Job template")
    db.delete(template)
    db.commit()
