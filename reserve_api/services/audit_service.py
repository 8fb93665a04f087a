"""Audit service — append-only audit trail for all security-relevant actions."""

import logging
import math
from datetime import datetime, timezone
from typing import Optional, Any, Dict, List

from fastapi import Request
from sqlalchemy import or_, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reserve_api.core.config import settings
from reserve_api.core.exceptions import ValidationError
from reserve_api.core.permissions import Role, has_minimum_role
from reserve_api.models.audit_log import AuditLog, AuditAction, AuditResource
from reserve_api.db.base import LIKE_ESCAPE, contains_pattern

logger = logging.getLogger("reserve_api.audit")


def _coerce(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown audit {label}: {value!r}")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _request_metadata(request: Optional[Request]):
    if request is None:
        return None, None
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else (
        request.client.host if request.client else None
    )
    ua = request.headers.get("user-agent", "")[:500]
    return ip, ua


class AuditService:
    """Records immutable audit log entries for system events."""

    @staticmethod
    def _persist(db: Session, entry: AuditLog) -> None:
        db.add(entry)
        db.commit()

    @staticmethod
    def record(
        db: Session,
        actor: Any,
        action: Any,
        resource: Any,
        resource_id: Optional[Any] = None,
        details: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """Append one audit entry.

        Call only after the primary change has committed. Storage errors are
        rolled back and logged on ``reserve_api.audit``; they never reach the
        caller, so the return value is ``None`` when the write failed.

        ``actor`` is a ``User``, or ``None`` for unauthenticated submissions.
        """
        entry = AuditLog(
            user_id=getattr(actor, "id", None),
            user_name=getattr(actor, "full_name", None) or "anonymous",
            user_role=actor.role.value if actor is not None and actor.role else "anonymous",
            action=_coerce(AuditAction, action, "action"),
            resource=_coerce(AuditResource, resource, "resource"),
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            AuditService._persist(db, entry)
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Failed to write audit entry %s/%s for resource %s",
                entry.action.value, entry.resource.value, entry.resource_id,
            )
            return None
        return entry

    @staticmethod
    def record_from_request(
        db: Session,
        request: Optional[Request],
        actor: Any,
        action: Any,
        resource: Any,
        resource_id: Optional[Any] = None,
        details: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """Write audit entry extracting IP and user-agent from the request."""
        ip, ua = _request_metadata(request)
        return AuditService.record(
            db,
            actor,
            action,
            resource,
            resource_id=resource_id,
            details=details,
            ip_address=ip,
            user_agent=ua,
        )

    @staticmethod
    def _filtered(
        db: Session,
        viewer: Any = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search_term: Optional[str] = None,
    ):
        start_date, end_date = _naive_utc(start_date), _naive_utc(end_date)
        if start_date and end_date and start_date > end_date:
            raise ValidationError("startDate must not be after endDate")

        query = db.query(AuditLog)

        # Director activity is only visible to directors.
        if not has_minimum_role(getattr(viewer, "role", None), Role.director):
            query = query.filter(AuditLog.user_role != Role.director.value)

        if action:
            query = query.filter(AuditLog.action == _coerce(AuditAction, action, "action"))
        if resource:
            query = query.filter(AuditLog.resource == _coerce(AuditResource, resource, "resource"))
        if start_date:
            query = query.filter(AuditLog.timestamp >= start_date)
        if end_date:
            query = query.filter(AuditLog.timestamp <= end_date)
        if search_term and search_term.strip():
            pattern = contains_pattern(search_term.strip())
            query = query.filter(or_(
                AuditLog.user_name.ilike(pattern, escape=LIKE_ESCAPE),
                AuditLog.user_role.ilike(pattern, escape=LIKE_ESCAPE),
                AuditLog.details.ilike(pattern, escape=LIKE_ESCAPE),
            ))
        return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())

    @staticmethod
    def query_logs(
        db: Session,
        viewer: Any = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search_term: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """Query audit logs with filters and pagination, newest first.

        Raises:
            ValidationError: page/limit not positive integers, limit above
                ``AUDIT_MAX_PAGE_SIZE``, unknown action/resource, or an
                inverted date range.
        """
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise ValidationError("page must be a positive integer")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer")
        if limit > settings.AUDIT_MAX_PAGE_SIZE:
            raise ValidationError(f"limit must not exceed {settings.AUDIT_MAX_PAGE_SIZE}")

        query = AuditService._filtered(
            db, viewer, action, resource, start_date, end_date, search_term,
        )
        total = query.order_by(None).count()
        logs = query.offset((page - 1) * limit).limit(limit).all()

        return {
            "logs": logs,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit) if total else 0,
            },
        }

    @staticmethod
    def all_matching(db: Session, viewer: Any = None, **filters) -> List[AuditLog]:
        """Every entry matching the filters, for export."""
        return AuditService._filtered(db, viewer, **filters).all()

    @staticmethod
    def purge_before(db: Session, actor: Any, cutoff: datetime, request: Optional[Request] = None) -> int:
        """Administrative purge of entries older than ``cutoff``.

        The purge commits first and is then recorded as a new entry.
        """
        cutoff = _naive_utc(cutoff)
        result = db.execute(delete(AuditLog).where(AuditLog.timestamp < cutoff))
        db.commit()
        removed = result.rowcount or 0
        logger.warning("Audit purge by user %s removed %d entries before %s", actor.id, removed, cutoff)
        AuditService.record_from_request(
            db, request, actor, AuditAction.delete, AuditResource.system,
            details=f"Purged {removed} audit entries older than {cutoff.isoformat()}",
        )
        return removed


audit_service = AuditService()
