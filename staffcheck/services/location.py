from __future__ import annotations

from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt

from sqlalchemy import select
from sqlalchemy.orm import Session

from staffcheck.models import WorkLocation
from staffcheck.schemas import WorkLocationCreate

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True)
class GeofenceResult:
    is_valid: bool
    nearest_location: WorkLocation | None
    distance_m: float | None


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    # float noise can push a a hair above 1 for antipodal points
    c = 2 * asin(sqrt(min(1.0, a)))
    return EARTH_RADIUS_M * c


def evaluate_geofence(locations: list[WorkLocation], lat: float, lon: float) -> GeofenceResult:
    """Find the nearest active location and whether any active geofence contains the point.

    Invalid readings are still recorded by callers; the flag only marks them for review.
    """
    nearest: WorkLocation | None = None
    nearest_distance: float | None = None
    is_valid = False

    for location in locations:
        if not location.is_active:
            continue
        value = distance_m(location.latitude, location.longitude, lat, lon)
        if value <= location.radius_meters:
            is_valid = True
        if nearest_distance is None or value < nearest_distance:
            nearest = location
            nearest_distance = value

    if nearest_distance is not None:
        nearest_distance = round(nearest_distance, 2)
    return GeofenceResult(is_valid=is_valid, nearest_location=nearest, distance_m=nearest_distance)


def list_active_locations(db: Session) -> list[WorkLocation]:
    return list(
        db.scalars(
            select(WorkLocation)
            .where(WorkLocation.is_active.is_(True))
            .order_by(WorkLocation.id.asc())
        ).all()
    )


def evaluate_position(db: Session, lat: float, lon: float) -> GeofenceResult:
    return evaluate_geofence(list_active_locations(db), lat, lon)


def list_locations(db: Session, *, include_inactive: bool = False) -> list[WorkLocation]:
    if not include_inactive:
        return list_active_locations(db)
    return list(db.scalars(select(WorkLocation).order_by(WorkLocation.id.asc())).all())


def create_work_location(db: Session, payload: WorkLocationCreate) -> WorkLocation:
    location = WorkLocation(
        name=payload.name.strip(),
        latitude=payload.latitude,
        longitude=payload.longitude,
        radius_meters=payload.radius_meters,
        is_active=payload.is_active,
    )
    db.add(location)
    db.commit()
    db.refresh(location)
    return location
