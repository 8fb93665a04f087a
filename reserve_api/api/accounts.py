"""Account request API router — review queue and approval decisions."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from reserve_api.db.session import get_db
from reserve_api.schemas.schemas import AccountRequestOut, AccountDecisionRequest
from reserve_api.services.account_service import account_service
from reserve_api.services.audit_service import audit_service
from reserve_api.services.cache_service import cache_service
from reserve_api.models.account_request import AccountStatus
from reserve_api.models.audit_log import AuditAction, AuditResource
from reserve_api.core.security import require_account_approver
from reserve_api.tasks.celery_app import enqueue_account_decision

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("")
async def list_account_requests(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user=Depends(require_account_approver),
):
    """List account requests, newest first."""
    accounts = account_service.list_requests(db, status)
    return {"accounts": [AccountRequestOut.model_validate(a) for a in accounts]}


@router.patch("")
async def decide_account_request(
    body: AccountDecisionRequest,
    request: Request,
    db: Session = Depends(get_db),
    user=Depends(require_account_approver),
):
    """Approve or reject a pending account request."""
    account = account_service.decide(db, body.id, user, body.status, body.rejection_reason)

    if account.status == AccountStatus.approved:
        action, details = AuditAction.approve, f"Approved account request for {account.name}"
    else:
        action = AuditAction.reject
        details = f"Rejected account request for {account.name}: {account.rejection_reason}"
    audit_service.record_from_request(
        db, request, user, action, AuditResource.account_request,
        resource_id=account.id, details=details,
    )
    cache_service.invalidate_stats()
    enqueue_account_decision(
        account.email, account.name, account.status.value, account.rejection_reason,
    )

    return {
        "success": True,
        "message": f"Account request {account.status.value}",
        "account": AccountRequestOut.model_validate(account),
    }
