"""Admin API router — user accounts, dashboard stats, health."""

import logging
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reserve_api.db.session import get_db
from reserve_api.schemas.schemas import UserOut, UserCreateRequest, UserUpdateRequest
from reserve_api.services.auth_service import auth_service
from reserve_api.services.audit_service import audit_service
from reserve_api.services.cache_service import cache_service, DASHBOARD_STATS_KEY
from reserve_api.models.account_request import AccountRequest, AccountStatus
from reserve_api.models.audit_log import AuditLog, AuditAction, AuditResource
from reserve_api.models.personnel import Personnel
from reserve_api.core.config import settings
from reserve_api.core.exceptions import ValidationError
from reserve_api.core.permissions import Role
from reserve_api.core.security import RequirePermission

logger = logging.getLogger("reserve_api")

router = APIRouter(prefix="/admin", tags=["admin"])

# Reservists only enter through the approval workflow.
CREATABLE_ROLES = (Role.staff, Role.administrator)

require_user_viewer = RequirePermission("manage_company_personnel")
require_admin_creator = RequirePermission("create_admin_accounts")
require_admin_manager = RequirePermission("manage_admin_accounts")
require_reports = RequirePermission("run_reports")


@router.get("/users")
async def admin_list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
    user=Depends(require_user_viewer),
):
    """List platform users."""
    result = auth_service.list_users(db, page, page_size)
    return {
        "users": [UserOut.model_validate(u) for u in result["users"]],
        "total": result["total"],
        "page": result["page"],
    }


@router.post("/users", response_model=UserOut, status_code=201)
async def admin_create_user(
    body: UserCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_admin_creator),
):
    """Create a staff or administrator account."""
    role = Role.parse(body.role)
    if role not in CREATABLE_ROLES:
        raise ValidationError("role must be 'staff' or 'administrator'")
    created = auth_service.create_user(
        db, body.email, body.password, body.first_name, body.last_name,
        role=role, company=body.company, rank=body.rank,
    )
    audit_service.record_from_request(
        db, request, user, AuditAction.create, AuditResource.user,
        resource_id=created.id, details=f"Created {role.value} account {created.email}",
    )
    return created


@router.put("/users/{user_id}", response_model=UserOut)
async def admin_update_user(
    user_id: int,
    body: UserUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_admin_manager),
):
    """Change a user's role, status, or assignment."""
    changes = body.model_dump(exclude_none=True)
    updated = auth_service.update_user(db, user_id, **changes)
    audit_service.record_from_request(
        db, request, user, AuditAction.update, AuditResource.user,
        resource_id=user_id,
        details=f"Updated {', '.join(f'{k}={v}' for k, v in sorted(changes.items()))} on {updated.email}",
    )
    return updated


@router.get("/stats")
async def dashboard_stats(db: Session = Depends(get_db), user=Depends(require_reports)):
    """Headline counts for the dashboard."""
    cached = cache_service.get_json(DASHBOARD_STATS_KEY)
    if cached is not None:
        return cached
    stats = {
        "pendingRequests": db.query(AccountRequest).filter(
            AccountRequest.status == AccountStatus.pending
        ).count(),
        "personnel": db.query(Personnel).count(),
        "auditEvents": db.query(AuditLog).count(),
    }
    cache_service.set_json(DASHBOARD_STATS_KEY, stats, settings.STATS_CACHE_TTL_SECONDS)
    return stats


@router.get("/health")
async def health(db: Session = Depends(get_db)):
    """Database and Redis reachability."""
    try:
        db.execute(text("SELECT 1"))
        database = True
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        database = False
    redis_ok = cache_service.health_check()
    return {"status": "ok" if database else "degraded", "database": database, "redis": redis_ok}
