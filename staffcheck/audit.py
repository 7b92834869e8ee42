from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from staffcheck.models import AuditActorType, AuditLog, Profile

logger = logging.getLogger("staffcheck.audit")


def client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


@dataclass(frozen=True)
class AuditContext:
    """Where an audited action came from."""

    ip: str | None = None
    user_agent: str | None = None
    request_id: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> AuditContext:
        return cls(
            ip=client_ip(request),
            user_agent=user_agent(request),
            request_id=getattr(request.state, "request_id", None),
        )


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: Any = None,
    details: dict[str, Any] | None = None,
    context: AuditContext | None = None,
) -> None:
    context = context or AuditContext()
    entity_key = str(entity_id) if entity_id is not None else None
    payload = details or {}
    log_fields = {
        "request_id": context.request_id,
        "action": action,
        "actor_type": actor_type.value,
        "actor_id": actor_id,
        "entity_type": entity_type,
        "entity_id": entity_key,
    }

    db.add(
        AuditLog(
            ts_utc=datetime.now(timezone.utc),
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_key,
            ip=context.ip,
            user_agent=context.user_agent,
            success=success,
            details=payload,
        )
    )
    try:
        db.commit()
    except Exception:
        # The audited change is already committed; a lost audit row must not fail the request.
        db.rollback()
        logger.exception("audit_log_write_failed", extra=log_fields)
        return

    logger.info(
        "audit_event",
        extra={**log_fields, "ip": context.ip, "success": success, "details": payload},
    )


def audit_user_action(
    db: Session,
    request: Request,
    *,
    actor: Profile,
    action: str,
    entity_type: str | None = None,
    entity_id: Any = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(actor.id),
        action=action,
        success=success,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        context=AuditContext.from_request(request),
    )
