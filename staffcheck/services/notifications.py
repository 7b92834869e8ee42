from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload

from staffcheck.db import SessionLocal
from staffcheck.errors import not_found, validation_error
from staffcheck.models import Notification, NotificationRecipient, Profile
from staffcheck.schemas import (
    InboxItemRead,
    NotificationCreate,
    NotificationRead,
    NotificationSendResponse,
    PushDispatchSummary,
)
from staffcheck.services.push_notifications import send_push_to_users
from staffcheck.settings import get_settings

logger = logging.getLogger("staffcheck.notifications")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def notification_to_read(notification: Notification) -> NotificationRead:
    recipients = notification.recipients or []
    sender = notification.sender
    return NotificationRead(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        type=notification.type,
        sent_by=notification.sent_by,
        sender_name=sender.full_name if sender is not None else None,
        is_broadcast=notification.is_broadcast,
        recipients_count=len(recipients),
        read_count=sum(1 for item in recipients if item.is_read),
        created_at=notification.created_at,
    )


def resolve_recipient_ids(db: Session, *, is_broadcast: bool, recipient_ids: list[int]) -> list[int]:
    if is_broadcast:
        return list(
            db.scalars(
                select(Profile.id).where(Profile.is_active.is_(True)).order_by(Profile.id.asc())
            ).all()
        )

    requested = sorted(set(recipient_ids))
    if not requested:
        raise validation_error("recipient_ids is required for targeted notifications.")
    existing = list(
        db.scalars(
            select(Profile.id)
            .where(Profile.id.in_(requested), Profile.is_active.is_(True))
            .order_by(Profile.id.asc())
        ).all()
    )
    if not existing:
        raise validation_error("None of the recipients are active employees.")
    return existing


def send_notification(db: Session, *, sender: Profile, payload: NotificationCreate) -> NotificationSendResponse:
    target_ids = resolve_recipient_ids(
        db,
        is_broadcast=payload.is_broadcast,
        recipient_ids=payload.recipient_ids,
    )

    notification = Notification(
        title=payload.title.strip(),
        message=payload.message.strip(),
        type=payload.type,
        sent_by=sender.id,
        is_broadcast=payload.is_broadcast,
        created_at=_utcnow(),
    )
    notification.sender = sender
    db.add(notification)
    db.flush()
    notification.recipients = [
        NotificationRecipient(notification_id=notification.id, user_id=user_id, is_read=False)
        for user_id in target_ids
    ]
    db.commit()

    summary = PushDispatchSummary()
    try:
        push_result = send_push_to_users(
            db,
            user_ids=target_ids,
            title=notification.title,
            body=notification.message,
            data={"notification_id": notification.id, "type": payload.type.value},
        )
        summary = PushDispatchSummary(
            total_targets=push_result["total_targets"],
            sent=push_result["sent"],
            failed=push_result["failed"],
            deactivated=push_result["deactivated"],
        )
    except Exception:
        db.rollback()
        logger.exception(
            "notification_push_dispatch_failed",
            extra={"notification_id": notification.id, "recipients": len(target_ids)},
        )

    logger.info(
        "notification_sent",
        extra={
            "notification_id": notification.id,
            "is_broadcast": payload.is_broadcast,
            "recipients": len(target_ids),
            "push_sent": summary.sent,
            "push_failed": summary.failed,
        },
    )
    return NotificationSendResponse(
        notification=notification_to_read(notification),
        recipients_count=len(target_ids),
        push=summary,
    )


def list_sent_notifications(db: Session, *, limit: int = 50) -> list[NotificationRead]:
    rows = db.scalars(
        select(Notification)
        .options(selectinload(Notification.recipients), selectinload(Notification.sender))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    ).all()
    return [notification_to_read(item) for item in rows]


def list_inbox(db: Session, *, user_id: int, unread_only: bool = False, limit: int = 50) -> list[InboxItemRead]:
    stmt = (
        select(NotificationRecipient)
        .options(selectinload(NotificationRecipient.notification))
        .join(Notification, Notification.id == NotificationRecipient.notification_id)
        .where(NotificationRecipient.user_id == user_id)
    )
    if unread_only:
        stmt = stmt.where(NotificationRecipient.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)

    items: list[InboxItemRead] = []
    for row in db.scalars(stmt).all():
        notification = row.notification
        items.append(
            InboxItemRead(
                notification_id=notification.id,
                title=notification.title,
                message=notification.message,
                type=notification.type,
                is_broadcast=notification.is_broadcast,
                is_read=row.is_read,
                read_at=row.read_at,
                created_at=notification.created_at,
            )
        )
    return items


def mark_read(db: Session, *, user_id: int, notification_id: int) -> int:
    row = db.scalar(
        select(NotificationRecipient).where(
            NotificationRecipient.user_id == user_id,
            NotificationRecipient.notification_id == notification_id,
        )
    )
    if row is None:
        raise not_found("Notification")
    if row.is_read:
        return 0
    row.is_read = True
    row.read_at = _utcnow()
    db.commit()
    return 1


def mark_all_read(db: Session, *, user_id: int) -> int:
    rows = list(
        db.scalars(
            select(NotificationRecipient).where(
                NotificationRecipient.user_id == user_id,
                NotificationRecipient.is_read.is_(False),
            )
        ).all()
    )
    if not rows:
        return 0
    now_utc = _utcnow()
    for row in rows:
        row.is_read = True
        row.read_at = now_utc
    db.commit()
    return len(rows)


def unread_count(db: Session, *, user_id: int) -> int:
    value = db.scalar(
        select(func.count(NotificationRecipient.id)).where(
            NotificationRecipient.user_id == user_id,
            NotificationRecipient.is_read.is_(False),
        )
    )
    return int(value or 0)


def cleanup_old_notifications(
    db: Session,
    *,
    retention_days: int | None = None,
    now_utc: datetime | None = None,
) -> tuple[int, datetime]:
    if retention_days is None:
        retention_days = get_settings().notification_retention_days
    cutoff = (now_utc or _utcnow()) - timedelta(days=retention_days)
    result = db.execute(delete(Notification).where(Notification.created_at < cutoff))
    db.commit()
    deleted = int(result.rowcount or 0)
    logger.info(
        "notification_cleanup_complete",
        extra={"deleted": deleted, "cutoff": cutoff.isoformat(), "retention_days": retention_days},
    )
    return deleted, cutoff


def run_notification_cleanup(now_utc: datetime | None = None) -> int:
    with SessionLocal() as db:
        deleted, _ = cleanup_old_notifications(db, now_utc=now_utc)
    return deleted
