from datetime import date, datetime, time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from staffcheck.models import AttendanceStatus, JobFrequency, NotificationType, UserRole


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=256)


class ProfileRead(BaseModel):
    id: int
    email: str
    full_name: str
    role: UserRole
    department: str | None = None
    position: str | None = None
    employee_code: str | None = None
    phone: str | None = None
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileSummary(BaseModel):
    id: int
    full_name: str
    email: str
    employee_code: str | None = None
    department: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: ProfileRead


class EmployeeCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    full_name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=6, max_length=256)
    role: UserRole = UserRole.EMPLOYEE
    department: str | None = Field(default=None, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    employee_code: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=64)


class EmployeeUpdate(BaseModel):
    email: str | None = Field(default=None, min_length=3, max_length=255)
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    password: str | None = Field(default=None, min_length=6, max_length=256)
    role: UserRole | None = None
    department: str | None = Field(default=None, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    employee_code: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=64)
    is_active: bool | None = None


class WorkLocationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius_meters: int = Field(default=100, ge=1, le=100000)
    is_active: bool = True


class WorkLocationRead(BaseModel):
    id: int
    name: str
    latitude: float
    longitude: float
    radius_meters: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class OfficeAreaCreate(BaseModel):
    location_id: int = Field(ge=1)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    duration_minutes: int | None = Field(default=None, ge=1, le=24 * 60)
    is_active: bool = True


class OfficeAreaRead(BaseModel):
    id: int
    location_id: int
    name: str
    description: str | None = None
    duration_minutes: int | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ScheduleCreate(BaseModel):
    user_id: int = Field(ge=1)
    day_of_week: int = Field(ge=0, le=6)
    shift_start: time
    shift_end: time
    location_id: int | None = Field(default=None, ge=1)
    effective_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def _validate_dates(self) -> "ScheduleCreate":
        if self.effective_date is not None and self.end_date is not None and self.effective_date > self.end_date:
            raise ValueError("effective_date must be on or before end_date.")
        return self


class ScheduleUpdate(BaseModel):
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    shift_start: time | None = None
    shift_end: time | None = None
    location_id: int | None = Field(default=None, ge=1)
    effective_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class ScheduleRead(BaseModel):
    id: int
    user_id: int
    day_of_week: int
    shift_start: time
    shift_end: time
    location_id: int | None = None
    location_name: str | None = None
    effective_date: date | None = None
    end_date: date | None = None
    is_active: bool


class ScheduleGenerateRequest(BaseModel):
    user_id: int = Field(ge=1)
    location_id: int = Field(ge=1)
    start_date: date
    end_date: date
    shift_start: time
    shift_end: time
    overwrite: bool = False


class GenerateResponse(BaseModel):
    message: str
    created: int
    skipped: int
    replaced: int
    errors: list[str] = Field(default_factory=list)


class AttendanceLocationRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    notes: str | None = Field(default=None, max_length=1000)


class NearestLocationRead(BaseModel):
    id: int
    name: str
    distance_m: float
    radius_meters: int


class AttendanceRead(BaseModel):
    id: int
    user_id: int
    check_in: datetime
    check_out: datetime | None = None
    check_in_lat: float | None = None
    check_in_lng: float | None = None
    check_out_lat: float | None = None
    check_out_lng: float | None = None
    check_in_location_valid: bool
    check_out_location_valid: bool
    status: AttendanceStatus
    notes: str | None = None

    model_config = ConfigDict(from_attributes=True)


class AdminAttendanceRead(AttendanceRead):
    user: ProfileSummary | None = None


class CheckInResponse(BaseModel):
    attendance: AttendanceRead
    location_valid: bool
    distance_m: float | None = None
    nearest_location: NearestLocationRead | None = None
    schedule: ScheduleRead | None = None
    status: AttendanceStatus


class CheckOutResponse(BaseModel):
    attendance: AttendanceRead
    location_valid: bool
    distance_m: float | None = None
    nearest_location: NearestLocationRead | None = None
    schedule: ScheduleRead | None = None
    is_early_checkout: bool


class RecomputeRequest(BaseModel):
    date: date
    user_id: int | None = Field(default=None, ge=1)


class RecomputeError(BaseModel):
    attendance_id: int
    error: str


class RecomputeResponse(BaseModel):
    message: str
    updated: int
    total: int
    errors: list[RecomputeError] = Field(default_factory=list)


class JobTemplateCreate(BaseModel):
    area_id: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    frequency: JobFrequency = JobFrequency.DAILY
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    is_active: bool = True


class JobTemplateUpdate(BaseModel):
    area_id: int | None = Field(default=None, ge=1)
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    frequency: JobFrequency | None = None
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    is_active: bool | None = None


class JobTemplateRead(BaseModel):
    id: int
    area_id: int
    title: str
    description: str | None = None
    frequency: JobFrequency
    day_of_week: int | None = None
    day_of_month: int | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ChecklistGenerateRequest(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    location_id: int | None = Field(default=None, ge=1)
    overwrite: bool = False


class ChecklistRead(BaseModel):
    id: int
    job_template_id: int
    area_id: int
    assigned_date: date
    start_time: datetime | None = None
    completed_at: datetime | None = None
    completed_by: int | None = None
    completed_by_name: str | None = None
    notes: str | None = None
    start_photo_url: str | None = None
    end_photo_url: str | None = None
    title: str
    description: str | None = None
    frequency: JobFrequency
    area_name: str
    location_id: int
    duration_minutes: int | None = None


class ChecklistStats(BaseModel):
    total: int
    completed: int
    pending: int
    completion_rate: int


class ChecklistListResponse(BaseModel):
    assigned_date: date
    items: list[ChecklistRead]
    stats: ChecklistStats


class ChecklistStartRequest(BaseModel):
    photo_url: str | None = Field(default=None, max_length=1024)


class ChecklistCompleteRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)
    photo_url: str | None = Field(default=None, max_length=1024)


class PhotoUploadRequest(BaseModel):
    type: Literal["start", "end"]
    image_data: str = Field(min_length=1)


class PhotoUploadResponse(BaseModel):
    url: str
    filename: str


class NotificationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=5000)
    type: NotificationType = NotificationType.INFO
    is_broadcast: bool = False
    recipient_ids: list[int] = Field(default_factory=list)


class NotificationRead(BaseModel):
    id: int
    title: str
    message: str
    type: NotificationType
    sent_by: int | None = None
    sender_name: str | None = None
    is_broadcast: bool
    recipients_count: int = 0
    read_count: int = 0
    created_at: datetime


class PushDispatchSummary(BaseModel):
    total_targets: int = 0
    sent: int = 0
    failed: int = 0
    deactivated: int = 0


class NotificationSendResponse(BaseModel):
    notification: NotificationRead
    recipients_count: int
    push: PushDispatchSummary


class InboxItemRead(BaseModel):
    notification_id: int
    title: str
    message: str
    type: NotificationType
    is_broadcast: bool
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class UnreadCountResponse(BaseModel):
    count: int


class MarkReadResponse(BaseModel):
    updated: int


class PushSubscriptionKeys(BaseModel):
    p256dh: str = Field(min_length=1, max_length=255)
    auth: str = Field(min_length=1, max_length=255)


class PushSubscribeRequest(BaseModel):
    endpoint: str = Field(min_length=1, max_length=4096)
    keys: PushSubscriptionKeys
    device_type: str = Field(default="web", max_length=32)
    device_info: str | None = Field(default=None, max_length=1024)


class PushUnsubscribeRequest(BaseModel):
    endpoint: str = Field(min_length=1, max_length=4096)


class PushSubscriptionRead(BaseModel):
    id: int
    endpoint: str
    device_type: str
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PushConfigRead(BaseModel):
    enabled: bool
    vapid_public_key: str | None = None


class MonthlyReportRow(BaseModel):
    user_id: int
    full_name: str
    employee_code: str | None = None
    department: str | None = None
    days_present: int
    late_days: int
    total_hours: float
    avg_hours: float


class MonthlyReportResponse(BaseModel):
    month: str
    days_in_month: int
    total_employees: int
    total_attendance: int
    total_hours: float
    average_attendance_percent: float
    rows: list[MonthlyReportRow]


class ChecklistReportDay(BaseModel):
    day: date
    scheduled: bool
    completed: bool
    completed_at: datetime | None = None
    completed_by_name: str | None = None
    completed_by_code: str | None = None


class ChecklistReportTemplate(BaseModel):
    template_id: int
    title: str
    frequency: JobFrequency
    days: list[ChecklistReportDay]
    completed_count: int
    scheduled_count: int


class ChecklistReportArea(BaseModel):
    area_id: int
    area_name: str
    templates: list[ChecklistReportTemplate]


class ChecklistReportResponse(BaseModel):
    location_id: int
    location_name: str
    start_date: date
    end_date: date
    dates: list[date]
    areas: list[ChecklistReportArea]


class CleanupResponse(BaseModel):
    deleted: int
    cutoff: datetime
