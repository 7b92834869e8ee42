import hmac
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from staffcheck.audit import AuditContext, audit_user_action, log_audit
from staffcheck.db import get_db
from staffcheck.errors import ApiError
from staffcheck.models import AuditActorType, JobTemplate, OfficeArea, Profile, UserRole, WorkLocation
from staffcheck.schemas import (
    AdminAttendanceRead,
    ChecklistGenerateRequest,
    ChecklistListResponse,
    ChecklistReportResponse,
    CleanupResponse,
    EmployeeCreate,
    EmployeeUpdate,
    GenerateResponse,
    JobTemplateCreate,
    JobTemplateRead,
    JobTemplateUpdate,
    MonthlyReportResponse,
    NotificationCreate,
    NotificationRead,
    NotificationSendResponse,
    OfficeAreaCreate,
    OfficeAreaRead,
    ProfileRead,
    RecomputeRequest,
    RecomputeResponse,
    ScheduleCreate,
    ScheduleGenerateRequest,
    ScheduleRead,
    ScheduleUpdate,
    WorkLocationCreate,
    WorkLocationRead,
)
from staffcheck.security import bearer_scheme, require_admin, require_staff_manager
from staffcheck.services.attendance import list_attendance_for_admin, local_today, recompute_statuses
from staffcheck.services.checklists import generate_checklists, list_checklists_for_day
from staffcheck.services.employees import create_employee, deactivate_employee, list_employees, update_employee
from staffcheck.services.exports import XLSX_MEDIA_TYPE, build_monthly_attendance_xlsx_bytes
from staffcheck.services.job_templates import (
    create_job_template,
    delete_job_template,
    list_job_templates,
    update_job_template,
)
from staffcheck.services.location import create_work_location, list_locations
from staffcheck.services.notifications import cleanup_old_notifications, list_sent_notifications, send_notification
from staffcheck.services.office_areas import create_office_area, list_office_areas
from staffcheck.services.reports import build_checklist_report, build_monthly_report
from staffcheck.services.schedules import (
    create_schedule,
    delete_schedule,
    generate_schedules,
    list_schedules,
    schedule_to_read,
    update_schedule,
)
from staffcheck.settings import get_settings

router = APIRouter(tags=["admin"])


@router.get(
    "/api/admin/employees",
    response_model=list[ProfileRead],
    dependencies=[Depends(require_staff_manager)],
)
def admin_list_employees(
    include_inactive: bool = Query(default=False),
    role: UserRole | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[Profile]:
    return list_employees(db, include_inactive=include_inactive, role=role)


@router.post("/api/admin/employees", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
def admin_create_employee(
    payload: EmployeeCreate,
    request: Request,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Profile:
    profile = create_employee(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="EMPLOYEE_CREATED",
        entity_type="profile",
        entity_id=profile.id,
        details={"email": profile.email, "role": UserRole(profile.role).value},
    )
    return profile


@router.patch("/api/admin/employees/{employee_id}", response_model=ProfileRead)
def admin_update_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    request: Request,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Profile:
    profile = update_employee(db, employee_id, payload)
    changed = sorted(name for name in payload.model_fields_set if name != "password")
    if "password" in payload.model_fields_set:
        changed.append("password_reset")
    audit_user_action(
        db,
        request,
        actor=actor,
        action="EMPLOYEE_UPDATED",
        entity_type="profile",
        entity_id=profile.id,
        details={"fields": changed},
    )
    return profile


@router.delete("/api/admin/employees/{employee_id}", response_model=ProfileRead)
def admin_deactivate_employee(
    employee_id: int,
    request: Request,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Profile:
    if employee_id == actor.id:
        raise ApiError(status_code=400, code="VALIDATION_ERROR", message="You cannot deactivate your own account.")
    profile = deactivate_employee(db, employee_id)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="EMPLOYEE_DEACTIVATED",
        entity_type="profile",
        entity_id=profile.id,
    )
    return profile


@router.get(
    "/api/admin/locations",
    response_model=list[WorkLocationRead],
    dependencies=[Depends(require_staff_manager)],
)
def admin_list_locations(
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
) -> list[WorkLocation]:
    return list_locations(db, include_inactive=include_inactive)


@router.post("/api/admin/locations", response_model=WorkLocationRead, status_code=status.HTTP_201_CREATED)
def admin_create_location(
    payload: WorkLocationCreate,
    request: Request,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WorkLocation:
    location = create_work_location(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="LOCATION_CREATED",
        entity_type="work_location",
        entity_id=location.id,
        details={"name": location.name, "radius_meters": location.radius_meters},
    )
    return location


@router.get(
    "/api/admin/office-areas",
    response_model=list[OfficeAreaRead],
    dependencies=[Depends(require_staff_manager)],
)
def admin_list_office_areas(
    location_id: int | None = Query(default=None, ge=1),
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
) -> list[OfficeArea]:
    return list_office_areas(db, location_id=location_id, include_inactive=include_inactive)


@router.post("/api/admin/office-areas", response_model=OfficeAreaRead, status_code=status.HTTP_201_CREATED)
def admin_create_office_area(
    payload: OfficeAreaCreate,
    request: Request,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> OfficeArea:
    area = create_office_area(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="OFFICE_AREA_CREATED",
        entity_type="office_area",
        entity_id=area.id,
        details={"location_id": area.location_id, "name": area.name},
    )
    return area


@router.get(
    "/api/admin/schedules",
    response_model=list[ScheduleRead],
    dependencies=[Depends(require_staff_manager)],
)
def admin_list_schedules(
    user_id: int | None = Query(default=None, ge=1),
    location_id: int | None = Query(default=None, ge=1),
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
) -> list[ScheduleRead]:
    rows = list_schedules(db, user_id=user_id, location_id=location_id, year=year, month=month)
    return [schedule_to_read(item) for item in rows]


@router.post("/api/admin/schedules", response_model=ScheduleRead, status_code=status.HTTP_201_CREATED)
def admin_create_schedule(
    payload: ScheduleCreate,
    request: Request,
    actor: Profile = Depends(require_staff_manager),
    db: Session = Depends(get_db),
) -> ScheduleRead:
    schedule = create_schedule(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="SCHEDULE_CREATED",
        entity_type="employee_schedule",
        entity_id=schedule.id,
        details={"user_id": schedule.user_id, "day_of_week": schedule.day_of_week},
    )
    return schedule_to_read(schedule)


@router.post("/api/admin/schedules/generate", response_model=GenerateResponse)
def admin_generate_schedules(
    payload: ScheduleGenerateRequest,
    request: Request,
    actor: Profile = Depends(require_staff_manager),
    db: Session = Depends(get_db),
) -> GenerateResponse:
    result = generate_schedules(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="SCHEDULES_GENERATED",
        entity_type="employee_schedule",
        details={
            "user_id": payload.user_id,
            "location_id": payload.location_id,
            "start_date": payload.start_date.isoformat(),
            "end_date": payload.end_date.isoformat(),
            "overwrite": payload.overwrite,
            "created": result.created,
            "skipped": result.skipped,
            "replaced": result.replaced,
        },
    )
    return result


@router.patch("/api/admin/schedules/{schedule_id}", response_model=ScheduleRead)
def admin_update_schedule(
    schedule_id: int,
    payload: ScheduleUpdate,
    request: Request,
    actor: Profile = Depends(require_staff_manager),
    db: Session = Depends(get_db),
) -> ScheduleRead:
    schedule = update_schedule(db, schedule_id, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="SCHEDULE_UPDATED",
        entity_type="employee_schedule",
        entity_id=schedule.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return schedule_to_read(schedule)


@router.delete("/api/admin/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_schedule(
    schedule_id: int,
    request: Request,
    actor: Profile = Depends(require_staff_manager),
    db: Session = Depends(get_db),
) -> Response:
    delete_schedule(db, schedule_id)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="SCHEDULE_DELETED",
        entity_type="employee_schedule",
        entity_id=schedule_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/api/admin/job-templates",
    response_model=list[JobTemplateRead],
    dependencies=[Depends(require_staff_manager)],
)
def admin_list_job_templates(
    area_id: int | None = Query(default=None, ge=1),
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
) -> list[JobTemplate]:
    return list_job_templates(db, area_id=area_id, include_inactive=include_inactive)


@router.post("/api/admin/job-templates", response_model=JobTemplateRead, status_code=status.HTTP_201_CREATED)
def admin_create_job_template(
    payload: JobTemplateCreate,
    request: Request,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> JobTemplate:
    template = create_job_template(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="JOB_TEMPLATE_CREATED",
        entity_type="job_template",
        entity_id=template.id,
        details={"area_id": template.area_id, "frequency": payload.frequency.value},
    )
    return template


@router.patch("/api/admin/job-templates/{template_id}", response_model=JobTemplateRead)
def admin_update_job_template(
    template_id: int,
    payload: JobTemplateUpdate,
    request: Request,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> JobTemplate:
    template = update_job_template(db, template_id, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="JOB_TEMPLATE_UPDATED",
        entity_type="job_template",
        entity_id=template.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return template


@router.delete("/api/admin/job-templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_job_template(
    template_id: int,
    request: Request,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    delete_job_template(db, template_id)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="JOB_TEMPLATE_DELETED",
        entity_type="job_template",
        entity_id=template_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/api/admin/job-checklists",
    response_model=ChecklistListResponse,
    dependencies=[Depends(require_staff_manager)],
)
def admin_list_checklists(
    day: date | None = Query(default=None, alias="date"),
    location_id: int | None = Query(default=None, ge=1),
    area_id: int | None = Query(default=None, ge=1),
    status_filter: Literal["all", "completed", "pending"] = Query(default="all", alias="status"),
    db: Session = Depends(get_db),
) -> ChecklistListResponse:
    return list_checklists_for_day(
        db,
        day_date=day or local_today(),
        location_id=location_id,
        area_id=area_id,
        status=status_filter,
    )


@router.post("/api/admin/job-checklists/generate", response_model=GenerateResponse)
def admin_generate_checklists(
    request: Request,
    payload: ChecklistGenerateRequest | None = None,
    actor: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> GenerateResponse:
    payload = payload or ChecklistGenerateRequest()
    result = generate_checklists(
        db,
        start_date=payload.start_date,
        end_date=payload.end_date,
        location_id=payload.location_id,
        overwrite=payload.overwrite,
    )
    audit_user_action(
        db,
        request,
        actor=actor,
        action="CHECKLISTS_GENERATED",
        entity_type="job_checklist",
        details={
            "start_date": payload.start_date.isoformat() if payload.start_date else None,
            "end_date": payload.end_date.isoformat() if payload.end_date else None,
            "location_id": payload.location_id,
            "overwrite": payload.overwrite,
            "created": result.created,
            "skipped": result.skipped,
            "replaced": result.replaced,
        },
    )
    return result


@router.get(
    "/api/admin/attendance",
    response_model=list[AdminAttendanceRead],
    dependencies=[Depends(require_staff_manager)],
)
def admin_list_attendance(
    day: date | None = Query(default=None, alias="date"),
    user_id: int | None = Query(default=None, ge=1),
    limit: int = Query(default=500, ge=1, le=2000),
    db: Session = Depends(get_db),
):
    return list_attendance_for_admin(db, day_date=day, user_id=user_id, limit=limit)


@router.post("/api/admin/attendance/recompute", response_model=RecomputeResponse)
def admin_recompute_attendance(
    payload: RecomputeRequest,
    request: Request,
    actor: Profile = Depends(require_staff_manager),
    db: Session = Depends(get_db),
) -> RecomputeResponse:
    result = recompute_statuses(db, day_date=payload.date, user_id=payload.user_id)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="ATTENDANCE_RECOMPUTED",
        entity_type="attendance",
        details={
            "date": payload.date.isoformat(),
            "user_id": payload.user_id,
            "total": result.total,
            "updated": result.updated,
            "errors": len(result.errors),
        },
        success=not result.errors,
    )
    return result


@router.get(
    "/api/admin/notifications",
    response_model=list[NotificationRead],
    dependencies=[Depends(require_staff_manager)],
)
def admin_list_notifications(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[NotificationRead]:
    return list_sent_notifications(db, limit=limit)


@router.post(
    "/api/admin/notifications",
    response_model=NotificationSendResponse,
    status_code=status.HTTP_201_CREATED,
)
def admin_send_notification(
    payload: NotificationCreate,
    request: Request,
    actor: Profile = Depends(require_staff_manager),
    db: Session = Depends(get_db),
) -> NotificationSendResponse:
    result = send_notification(db, sender=actor, payload=payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="NOTIFICATION_SENT",
        entity_type="notification",
        entity_id=result.notification.id,
        details={
            "is_broadcast": payload.is_broadcast,
            "recipients": result.recipients_count,
            "push_sent": result.push.sent,
            "push_failed": result.push.failed,
        },
    )
    return result


@router.get(
    "/api/admin/reports/monthly",
    response_model=MonthlyReportResponse,
    dependencies=[Depends(require_staff_manager)],
)
def admin_monthly_report(
    month: str | None = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    db: Session = Depends(get_db),
) -> MonthlyReportResponse:
    return build_monthly_report(db, month=month)


@router.get(
    "/api/admin/reports/monthly.xlsx",
    dependencies=[Depends(require_staff_manager)],
)
def admin_monthly_report_xlsx(
    month: str | None = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    db: Session = Depends(get_db),
) -> Response:
    content, filename = build_monthly_attendance_xlsx_bytes(db, month=month)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/api/admin/reports/checklists",
    response_model=ChecklistReportResponse,
    dependencies=[Depends(require_staff_manager)],
)
def admin_checklist_report(
    location_id: int = Query(ge=1),
    start_date: date = Query(),
    end_date: date = Query(),
    db: Session = Depends(get_db),
) -> ChecklistReportResponse:
    return build_checklist_report(db, location_id=location_id, start_date=start_date, end_date=end_date)


@router.post("/api/cron/cleanup-notifications", response_model=CleanupResponse)
def cron_cleanup_notifications(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> CleanupResponse:
    secret = (get_settings().cron_secret or "").strip()
    if not secret:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Cron endpoint is disabled.")
    provided = credentials.credentials if credentials is not None else ""
    if not hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8")):
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Invalid cron secret.")

    request.state.actor = "cron"
    deleted, cutoff = cleanup_old_notifications(db)
    log_audit(
        db,
        actor_type=AuditActorType.SYSTEM,
        actor_id="cron",
        action="NOTIFICATIONS_CLEANED",
        success=True,
        details={"deleted": deleted, "cutoff": cutoff.isoformat()},
        context=AuditContext.from_request(request),
    )
    return CleanupResponse(deleted=deleted, cutoff=cutoff)
