from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from staffcheck.audit import AuditContext, audit_user_action, client_ip, log_audit
from staffcheck.db import get_db
from staffcheck.errors import ApiError
from staffcheck.models import AuditActorType, Profile, UserRole
from staffcheck.routers.common import is_secure_request
from staffcheck.schemas import LoginRequest, ProfileRead, SessionResponse
from staffcheck.security import (
    create_session_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
    require_user,
    verify_password,
)
from staffcheck.settings import get_settings

router = APIRouter(tags=["auth"])


@router.post("/api/auth/login", response_model=SessionResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> SessionResponse:
    email = payload.email.strip().lower()
    ip = client_ip(request)
    audit_context = AuditContext.from_request(request)

    if ip:
        try:
            ensure_login_attempt_allowed(ip)
        except ApiError:
            log_audit(
                db,
                actor_type=AuditActorType.SYSTEM,
                actor_id=email,
                action="LOGIN_FAIL",
                success=False,
                details={"reason": "TOO_MANY_ATTEMPTS"},
                context=audit_context,
            )
            raise

    profile = db.scalar(select(Profile).where(func.lower(Profile.email) == email))
    if profile is None or not profile.is_active or not verify_password(payload.password, profile.password_hash):
        if ip:
            register_login_failure(ip)
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=email,
            action="LOGIN_FAIL",
            success=False,
            details={"reason": "INVALID_CREDENTIALS"},
            context=audit_context,
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid email or password.")

    if ip:
        register_login_success(ip)

    token, expires_in, _ = create_session_token(profile)
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=expires_in,
        path="/",
        samesite="lax",
        secure=settings.cookie_secure or is_secure_request(request),
        httponly=True,
    )
    request.state.actor = UserRole(profile.role).value
    request.state.actor_id = str(profile.id)
    audit_user_action(db, request, actor=profile, action="LOGIN_SUCCESS", entity_type="profile", entity_id=profile.id)
    return SessionResponse(
        access_token=token,
        expires_in=expires_in,
        user=ProfileRead.model_validate(profile),
    )


@router.post("/api/auth/logout")
def logout(response: Response) -> dict[str, bool]:
    response.delete_cookie(key=get_settings().session_cookie_name, path="/")
    return {"ok": True}


@router.get("/api/auth/me", response_model=ProfileRead)
def me(profile: Profile = Depends(require_user)) -> Profile:
    return profile
