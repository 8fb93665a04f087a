"""Audit trail API router."""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from reserve_api.db.session import get_db
from reserve_api.schemas.schemas import AuditLogOut, ClientAuditEvent
from reserve_api.services.audit_service import audit_service
from reserve_api.services.export_service import audit_logs_to_csv
from reserve_api.models.audit_log import AuditAction, AuditResource
from reserve_api.core.exceptions import ValidationError
from reserve_api.db.base import utcnow
from reserve_api.core.security import (
    RequirePermission, get_current_user, require_audit_viewer, require_system_settings,
)

router = APIRouter(prefix="/audit-logs", tags=["audit"])

# Events the dashboard may report on its own behalf.
CLIENT_ACTIONS = frozenset({AuditAction.view, AuditAction.download, AuditAction.export})

require_audit_export = RequirePermission("view_audit_logs", "export_data")


@router.get("")
async def get_audit_logs(
    action: Optional[str] = Query(None),
    resource: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search_term: Optional[str] = Query(None, alias="searchTerm"),
    page: int = Query(1),
    limit: int = Query(50),
    db: Session = Depends(get_db),
    user=Depends(require_audit_viewer),
):
    """Query the audit trail, newest first."""
    result = audit_service.query_logs(
        db, user,
        action=action,
        resource=resource,
        start_date=start_date,
        end_date=end_date,
        search_term=search_term,
        page=page,
        limit=limit,
    )
    return {
        "success": True,
        "data": {
            "logs": [AuditLogOut.model_validate(entry) for entry in result["logs"]],
            "pagination": result["pagination"],
        },
    }


@router.post("", status_code=201)
async def report_client_event(
    body: ClientAuditEvent,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    """Record a view/download/export performed in the dashboard."""
    try:
        action = AuditAction(body.action)
    except ValueError:
        raise ValidationError(f"Unknown audit action: {body.action!r}")
    if action not in CLIENT_ACTIONS:
        raise ValidationError(f"Action '{action.value}' cannot be reported by clients")

    entry = audit_service.record_from_request(
        db, request, user, action, body.resource,
        resource_id=body.resource_id, details=body.details,
    )
    return {"success": entry is not None}


@router.get("/export")
async def export_audit_logs(
    request: Request,
    action: Optional[str] = Query(None),
    resource: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search_term: Optional[str] = Query(None, alias="searchTerm"),
    db: Session = Depends(get_db),
    user=Depends(require_audit_export),
):
    """Download every entry of the filtered view as CSV."""
    entries = audit_service.all_matching(
        db, user,
        action=action,
        resource=resource,
        start_date=start_date,
        end_date=end_date,
        search_term=search_term,
    )
    content = audit_logs_to_csv(entries)
    audit_service.record_from_request(
        db, request, user, AuditAction.export, AuditResource.report,
        details=f"Exported {len(entries)} audit log entries",
    )
    filename = f"audit-logs-{utcnow().strftime('%Y-%m-%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("")
async def purge_audit_logs(
    request: Request,
    before: datetime = Query(...),
    db: Session = Depends(get_db),
    user=Depends(require_system_settings),
):
    """Remove entries older than ``before``."""
    removed = audit_service.purge_before(db, user, before, request)
    return {"success": True, "removed": removed}
