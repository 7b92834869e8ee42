from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from staffcheck.audit import audit_user_action
from staffcheck.db import get_db
from staffcheck.models import Attendance, JobTemplate, Profile, WorkLocation
from staffcheck.schemas import (
    AttendanceLocationRequest,
    AttendanceRead,
    ChecklistCompleteRequest,
    ChecklistRead,
    ChecklistStartRequest,
    CheckInResponse,
    CheckOutResponse,
    InboxItemRead,
    JobTemplateRead,
    MarkReadResponse,
    OfficeAreaRead,
    PhotoUploadRequest,
    PhotoUploadResponse,
    PushConfigRead,
    PushSubscribeRequest,
    PushSubscriptionRead,
    PushUnsubscribeRequest,
    ScheduleRead,
    UnreadCountResponse,
    WorkLocationRead,
)
from staffcheck.security import require_user
from staffcheck.services.attendance import (
    check_in,
    check_out,
    get_today_attendance,
    list_history,
    local_today,
)
from staffcheck.services.checklists import (
    checklist_to_read,
    complete_checklist,
    get_checklist,
    list_today_checklists_for_user,
    start_checklist,
    uncomplete_checklist,
)
from staffcheck.services.job_templates import list_job_templates
from staffcheck.services.location import list_active_locations
from staffcheck.services.notifications import list_inbox, mark_all_read, mark_read, unread_count
from staffcheck.services.office_areas import list_office_areas
from staffcheck.services.photos import store_checklist_photo
from staffcheck.services.push_notifications import (
    deactivate_push_subscription,
    get_push_public_config,
    upsert_push_subscription,
)
from staffcheck.services.schedules import find_schedule_for_day, schedule_to_read

router = APIRouter(tags=["attendance"])


@router.post("/api/attendance/check-in", response_model=CheckInResponse, status_code=status.HTTP_201_CREATED)
def attendance_check_in(
    payload: AttendanceLocationRequest,
    request: Request,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> CheckInResponse:
    result = check_in(db, profile=profile, payload=payload)
    audit_user_action(
        db,
        request,
        actor=profile,
        action="ATTENDANCE_CHECK_IN",
        entity_type="attendance",
        entity_id=result.attendance.id,
        details={
            "status": result.status.value,
            "location_valid": result.location_valid,
            "distance_m": result.distance_m,
        },
    )
    return result


@router.post("/api/attendance/check-out", response_model=CheckOutResponse)
def attendance_check_out(
    payload: AttendanceLocationRequest,
    request: Request,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> CheckOutResponse:
    result = check_out(db, profile=profile, payload=payload)
    audit_user_action(
        db,
        request,
        actor=profile,
        action="ATTENDANCE_CHECK_OUT",
        entity_type="attendance",
        entity_id=result.attendance.id,
        details={
            "location_valid": result.location_valid,
            "is_early_checkout": result.is_early_checkout,
        },
    )
    return result


@router.get("/api/attendance/today", response_model=AttendanceRead | None)
def attendance_today(
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> Attendance | None:
    return get_today_attendance(db, user_id=profile.id)


@router.get("/api/attendance/history", response_model=list[AttendanceRead])
def attendance_history(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Attendance]:
    return list_history(db, user_id=profile.id, start_date=start_date, end_date=end_date, limit=limit)


@router.get("/api/schedule/today", response_model=ScheduleRead | None)
def my_schedule_today(
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> ScheduleRead | None:
    schedule = find_schedule_for_day(db, user_id=profile.id, day_date=local_today())
    if schedule is None:
        return None
    return schedule_to_read(schedule)


@router.get(
    "/api/locations",
    response_model=list[WorkLocationRead],
    dependencies=[Depends(require_user)],
)
def list_locations(db: Session = Depends(get_db)) -> list[WorkLocation]:
    return list_active_locations(db)


@router.get(
    "/api/office-areas",
    response_model=list[OfficeAreaRead],
    dependencies=[Depends(require_user)],
)
def list_areas(
    location_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
):
    return list_office_areas(db, location_id=location_id)


@router.get(
    "/api/job-templates",
    response_model=list[JobTemplateRead],
    dependencies=[Depends(require_user)],
)
def list_templates(
    area_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> list[JobTemplate]:
    return list_job_templates(db, area_id=area_id)


@router.get("/api/job-checklists/today", response_model=list[ChecklistRead])
def my_checklists_today(
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[ChecklistRead]:
    return [checklist_to_read(item) for item in list_today_checklists_for_user(db, user_id=profile.id)]


@router.post("/api/job-checklists/{checklist_id}/start", response_model=ChecklistRead)
def start_job(
    checklist_id: int,
    request: Request,
    payload: ChecklistStartRequest | None = None,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> ChecklistRead:
    item = start_checklist(db, checklist_id, photo_url=payload.photo_url if payload else None)
    audit_user_action(
        db,
        request,
        actor=profile,
        action="CHECKLIST_STARTED",
        entity_type="job_checklist",
        entity_id=checklist_id,
    )
    return checklist_to_read(item)


@router.post("/api/job-checklists/{checklist_id}/complete", response_model=ChecklistRead)
def complete_job(
    checklist_id: int,
    request: Request,
    payload: ChecklistCompleteRequest | None = None,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> ChecklistRead:
    item = complete_checklist(
        db,
        checklist_id,
        profile=profile,
        notes=payload.notes if payload else None,
        photo_url=payload.photo_url if payload else None,
    )
    audit_user_action(
        db,
        request,
        actor=profile,
        action="CHECKLIST_COMPLETED",
        entity_type="job_checklist",
        entity_id=checklist_id,
    )
    return checklist_to_read(item)


@router.post("/api/job-checklists/{checklist_id}/uncomplete", response_model=ChecklistRead)
def uncomplete_job(
    checklist_id: int,
    request: Request,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> ChecklistRead:
    item = uncomplete_checklist(db, checklist_id, profile=profile)
    audit_user_action(
        db,
        request,
        actor=profile,
        action="CHECKLIST_UNCOMPLETED",
        entity_type="job_checklist",
        entity_id=checklist_id,
    )
    return checklist_to_read(item)


@router.post(
    "/api/job-checklists/{checklist_id}/photo",
    response_model=PhotoUploadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_user)],
)
def upload_job_photo(
    checklist_id: int,
    payload: PhotoUploadRequest,
    db: Session = Depends(get_db),
) -> PhotoUploadResponse:
    get_checklist(db, checklist_id)
    url, filename = store_checklist_photo(checklist_id, payload.type, payload.image_data)
    return PhotoUploadResponse(url=url, filename=filename)


@router.get("/api/notifications", response_model=list[InboxItemRead])
def my_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[InboxItemRead]:
    return list_inbox(db, user_id=profile.id, unread_only=unread_only, limit=limit)


@router.get("/api/notifications/unread-count", response_model=UnreadCountResponse)
def my_unread_count(
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> UnreadCountResponse:
    return UnreadCountResponse(count=unread_count(db, user_id=profile.id))


@router.post("/api/notifications/read-all", response_model=MarkReadResponse)
def read_all_notifications(
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> MarkReadResponse:
    return MarkReadResponse(updated=mark_all_read(db, user_id=profile.id))


@router.post("/api/notifications/{notification_id}/read", response_model=MarkReadResponse)
def read_notification(
    notification_id: int,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> MarkReadResponse:
    return MarkReadResponse(updated=mark_read(db, user_id=profile.id, notification_id=notification_id))


@router.get("/api/push/config", response_model=PushConfigRead)
def push_config() -> PushConfigRead:
    return get_push_public_config()


@router.post("/api/push/subscriptions", response_model=PushSubscriptionRead, status_code=status.HTTP_201_CREATED)
def subscribe_push(
    payload: PushSubscribeRequest,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
):
    return upsert_push_subscription(db, profile=profile, payload=payload)


@router.delete("/api/push/subscriptions", response_model=dict[str, bool])
def unsubscribe_push(
    payload: PushUnsubscribeRequest,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    return {"ok": deactivate_push_subscription(db, profile=profile, endpoint=payload.endpoint)}
