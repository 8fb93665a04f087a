"""Personnel directory API router."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from reserve_api.db.session import get_db
from reserve_api.schemas.schemas import (
    PersonnelOut, PersonnelCreate, PersonnelUpdate, PersonnelStatusUpdate, MessageResponse,
)
from reserve_api.services.personnel_service import personnel_service, describe
from reserve_api.services.audit_service import audit_service
from reserve_api.models.audit_log import AuditAction, AuditResource
from reserve_api.core.config import settings
from reserve_api.core.rate_limiter import limiter
from reserve_api.core.security import RequirePermission, require_view_personnel

router = APIRouter(prefix="/personnel", tags=["personnel"])

require_record_editor = RequirePermission("update_personnel_records")
require_status_editor = RequirePermission("update_personnel_status")
require_record_deleter = RequirePermission("delete_personnel_records")
require_company_manager = RequirePermission("manage_company_personnel")


@router.get("")
@limiter.limit(settings.SEARCH_RATE_LIMIT)
async def list_personnel(
    request: Request,
    search: Optional[str] = Query(None),
    company: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    db: Session = Depends(get_db),
    user=Depends(require_view_personnel),
):
    """Search the directory."""
    result = personnel_service.list_personnel(db, search, company, status, page, page_size)
    return {
        "personnel": [PersonnelOut.model_validate(p) for p in result["personnel"]],
        "pagination": result["pagination"],
    }


@router.get("/stats")
async def personnel_stats(db: Session = Depends(get_db), user=Depends(require_view_personnel)):
    """Counts by status and company."""
    return personnel_service.stats(db)


@router.post("/sync")
async def sync_directory(
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_company_manager),
):
    """Create missing records for approved requests and fix legacy statuses."""
    result = personnel_service.sync_directory(db)
    audit_service.record_from_request(
        db, request, user, AuditAction.system, AuditResource.personnel,
        details=f"Directory sync: {result['created']} created, {result['normalized']} normalized",
    )
    return {"success": True, **result}


@router.get("/{personnel_id}", response_model=PersonnelOut)
async def get_personnel(
    personnel_id: int,
    db: Session = Depends(get_db),
    user=Depends(require_view_personnel),
):
    return personnel_service.get(db, personnel_id)


@router.post("", response_model=PersonnelOut, status_code=201)
async def create_personnel(
    body: PersonnelCreate,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_record_editor),
):
    """Add a record directly."""
    personnel = personnel_service.create(db, **body.model_dump())
    audit_service.record_from_request(
        db, request, user, AuditAction.create, AuditResource.personnel,
        resource_id=personnel.id, details=f"Created personnel record {describe(personnel)}",
    )
    return personnel


@router.put("/{personnel_id}", response_model=PersonnelOut)
async def update_personnel(
    personnel_id: int,
    body: PersonnelUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_record_editor),
):
    changes = body.model_dump(exclude_none=True)
    personnel = personnel_service.update(db, personnel_id, **changes)
    audit_service.record_from_request(
        db, request, user, AuditAction.update, AuditResource.personnel,
        resource_id=personnel_id,
        details=f"Updated {', '.join(sorted(changes)) or 'nothing'} on {describe(personnel)}",
    )
    return personnel


@router.patch("/{personnel_id}/status", response_model=PersonnelOut)
async def update_personnel_status(
    personnel_id: int,
    body: PersonnelStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_status_editor),
):
    personnel = personnel_service.set_status(db, personnel_id, body.status)
    audit_service.record_from_request(
        db, request, user, AuditAction.update, AuditResource.personnel,
        resource_id=personnel_id,
        details=f"Status of {describe(personnel)} set to {personnel.status}",
    )
    return personnel


@router.post("/{personnel_id}/retire", response_model=PersonnelOut)
async def retire_personnel(
    personnel_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_status_editor),
):
    """Soft removal: mark the record retired."""
    personnel = personnel_service.retire(db, personnel_id)
    audit_service.record_from_request(
        db, request, user, AuditAction.update, AuditResource.personnel,
        resource_id=personnel_id, details=f"Retired {describe(personnel)}",
    )
    return personnel


@router.delete("/{personnel_id}", response_model=MessageResponse)
async def delete_personnel(
    personnel_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_record_deleter),
):
    """Permanently delete a record."""
    description = personnel_service.delete(db, personnel_id)
    audit_service.record_from_request(
        db, request, user, AuditAction.delete, AuditResource.personnel,
        resource_id=personnel_id, details=f"Deleted personnel record {description}",
    )
    return MessageResponse(message=f"Deleted {description}")
