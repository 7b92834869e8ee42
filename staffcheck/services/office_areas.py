from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from staffcheck.errors import not_found
from staffcheck.models import OfficeArea, WorkLocation
from staffcheck.schemas import OfficeAreaCreate


def list_office_areas(
    db: Session,
    *,
    location_id: int | None = None,
    include_inactive: bool = False,
) -> list[OfficeArea]:
    stmt = select(OfficeArea)
    if location_id is not None:
        stmt = stmt.where(OfficeArea.location_id == location_id)
    if not include_inactive:
        stmt = stmt.where(OfficeArea.is_active.is_(True))
    return list(db.scalars(stmt.order_by(OfficeArea.location_id.asc(), OfficeArea.name.asc())).all())


def create_office_area(db: Session, payload: OfficeAreaCreate) -> OfficeArea:
    if db.get(WorkLocation, payload.location_id) is None:
        raise not_found("Work location")

    area = OfficeArea(
        location_id=payload.location_id,
        name=payload.name.strip(),
        description=payload.description,
        duration_minutes=payload.duration_minutes,
        is_active=payload.is_active,
    )
    db.add(area)
    db.commit()
    db.refresh(area)
    return area
