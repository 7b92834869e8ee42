from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pywebpush import WebPushException, webpush
from sqlalchemy import select
from sqlalchemy.orm import Session

from staffcheck.errors import ApiError
from staffcheck.models import Profile, PushSubscription
from staffcheck.schemas import PushConfigRead, PushSubscribeRequest
from staffcheck.settings import get_settings, is_push_enabled

logger = logging.getLogger("staffcheck.push")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_push_public_config() -> PushConfigRead:
    settings = get_settings()
    enabled = is_push_enabled()
    return PushConfigRead(
        enabled=enabled,
        vapid_public_key=settings.push_vapid_public_key if enabled else None,
    )


def upsert_push_subscription(
    db: Session,
    *,
    profile: Profile,
    payload: PushSubscribeRequest,
) -> PushSubscription:
    endpoint = payload.endpoint.strip()
    p256dh = payload.keys.p256dh.strip()
    auth = payload.keys.auth.strip()
    if not endpoint or not p256dh or not auth:
        raise ApiError(
            status_code=422,
            code="INVALID_PUSH_SUBSCRIPTION",
            message="Subscription payload is incomplete.",
        )

    row = db.scalar(select(PushSubscription).where(PushSubscription.endpoint == endpoint))
    if row is None:
        row = PushSubscription(
            user_id=profile.id,
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            device_type=payload.device_type or "web",
            device_info=payload.device_info,
            is_active=True,
        )
        db.add(row)
    else:
        # a browser endpoint follows whoever signed in on it last
        row.user_id = profile.id
        row.p256dh = p256dh
        row.auth = auth
        row.device_type = payload.device_type or row.device_type
        row.device_info = payload.device_info
        row.is_active = True
        row.last_error = None

    db.commit()
    db.refresh(row)
    return row


def deactivate_push_subscription(db: Session, *, profile: Profile, endpoint: str) -> bool:
    normalized_endpoint = endpoint.strip()
    if not normalized_endpoint:
        raise ApiError(
            status_code=422,
            code="INVALID_PUSH_SUBSCRIPTION",
            message="Endpoint is required.",
        )

    row = db.scalar(
        select(PushSubscription).where(
            PushSubscription.user_id == profile.id,
            PushSubscription.endpoint == normalized_endpoint,
        )
    )
    if row is None:
        return False

    if row.is_active:
        row.is_active = False
        db.commit()
    return True


def list_active_push_subscriptions(db: Session, *, user_ids: list[int]) -> list[PushSubscription]:
    if not user_ids:
        return []
    return list(
        db.scalars(
            select(PushSubscription)
            .join(Profile, Profile.id == PushSubscription.user_id)
            .where(
                PushSubscription.user_id.in_(user_ids),
                PushSubscription.is_active.is_(True),
                Profile.is_active.is_(True),
            )
            .order_by(PushSubscription.id.asc())
        ).all()
    )


def _send_to_subscription_row(
    row: PushSubscription,
    *,
    title: str,
    body: str,
    data: dict[str, Any] | None,
) -> tuple[bool, str | None, int | None]:
    settings = get_settings()
    payload = {
        "title": title,
        "body": body,
        "data": data or {},
        "ts_utc": _utcnow().isoformat(),
    }
    try:
        webpush(
            subscription_info={
                "endpoint": row.endpoint,
                "keys": {
                    "p256dh": row.p256dh,
                    "auth": row.auth,
                },
            },
            data=json.dumps(payload),
            vapid_private_key=settings.push_vapid_private_key,
            vapid_claims={"sub": settings.push_vapid_subject},
            ttl=60,
        )
        return True, None, None
    except WebPushException as exc:
        status_code: int | None = None
        if exc.response is not None:
            status_code = exc.response.status_code
        return False, str(exc), status_code
    except Exception as exc:
        logger.exception("push_send_unexpected_error", extra={"subscription_id": row.id})
        return False, str(exc), None


def send_push_to_subscriptions(
    db: Session,
    *,
    subscriptions: list[PushSubscription],
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    sent = 0
    failed = 0
    deactivated = 0
    failures: list[dict[str, Any]] = []
    now_utc = _utcnow()

    for row in subscriptions:
        ok, error_text, status_code = _send_to_subscription_row(
            row,
            title=title,
            body=body,
            data=data,
        )
        if ok:
            sent += 1
            row.last_error = None
            row.last_used_at = now_utc
            continue

        failed += 1
        row.last_error = error_text
        if status_code in {404, 410} and row.is_active:
            row.is_active = False
            deactivated += 1
        logger.warning(
            "push_send_failed",
            extra={
                "subscription_id": row.id,
                "user_id": row.user_id,
                "status_code": status_code,
                "error": error_text,
            },
        )
        failures.append(
            {
                "subscription_id": row.id,
                "status_code": status_code,
                "error": error_text,
            }
        )

    db.commit()
    return {
        "total_targets": len(subscriptions),
        "sent": sent,
        "failed": failed,
        "deactivated": deactivated,
        "failures": failures,
    }


def send_push_to_users(
    db: Session,
    *,
    user_ids: list[int],
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    if not is_push_enabled():
        return {"total_targets": 0, "sent": 0, "failed": 0, "deactivated": 0, "failures": [], "skipped": True}

    subscriptions = list_active_push_subscriptions(db, user_ids=user_ids)
    result = send_push_to_subscriptions(
        db,
        subscriptions=subscriptions,
        title=title,
        body=body,
        data=data,
    )
    result["skipped"] = False
    return result
