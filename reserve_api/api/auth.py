"""Auth API router — login, register, refresh, logout, me, permissions."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from reserve_api.db.session import get_db
from reserve_api.schemas.schemas import (
    LoginRequest, RegisterRequest, RefreshRequest,
    TokenResponse, UserOut, AccountRequestOut, PermissionsOut, MessageResponse,
)
from reserve_api.services.auth_service import auth_service
from reserve_api.services.account_service import account_service
from reserve_api.services.audit_service import audit_service
from reserve_api.models.audit_log import AuditAction, AuditResource
from reserve_api.core.config import settings
from reserve_api.core.exceptions import ValidationError
from reserve_api.core.permissions import PermissionEvaluator, PERMISSION_TABLE_VERSION
from reserve_api.core.rate_limiter import limiter
from reserve_api.core.security import get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate and return JWT tokens."""
    result = auth_service.authenticate(db, body.email, body.password)
    user = auth_service.get_user(db, result["user"]["id"])
    audit_service.record_from_request(
        db, request, user, AuditAction.login, AuditResource.user,
        resource_id=user.id, details=f"{user.email} signed in",
    )
    return result


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """Submit a reservist account request for review."""
    account = account_service.submit(
        db,
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        rank=body.rank,
        company=body.company,
        service_number=body.service_number,
        password=body.password,
    )
    audit_service.record_from_request(
        db, request, None, AuditAction.register, AuditResource.account_request,
        resource_id=account.id, details=f"Account request submitted by {account.name}",
    )
    return {
        "success": True,
        "message": "Account request submitted for approval",
        "account": AccountRequestOut.model_validate(account),
    }


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    """Refresh access token."""
    return auth_service.refresh_access_token(db, body.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, db: Session = Depends(get_db), user=Depends(get_current_user)):
    """Revoke all refresh tokens."""
    auth_service.logout(db, user.id)
    audit_service.record_from_request(
        db, request, user, AuditAction.logout, AuditResource.user, resource_id=user.id,
    )
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserOut)
async def get_me(user=Depends(get_current_user)):
    """Get current user profile."""
    return user


@router.get("/permissions", response_model=PermissionsOut)
async def get_permissions(
    simulate: Optional[str] = Query(None),
    user=Depends(get_current_user),
):
    """Permission set for rendering the dashboard.

    With ``simulate`` the set is a preview for that role; it grants nothing.
    """
    evaluator = PermissionEvaluator(user)
    if simulate:
        try:
            evaluator.simulate_role(simulate)
        except ValueError as e:
            raise ValidationError(str(e))
    return {
        "role": evaluator.actual_role.value,
        "effective_role": evaluator.effective_role().value,
        "simulated": evaluator.is_simulating,
        "permissions": sorted(evaluator.permissions()),
        "table_version": PERMISSION_TABLE_VERSION,
    }
