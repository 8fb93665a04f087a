"""Personnel service — directory CRUD, status normalization and sync."""

import logging
import math
from typing import Optional, Dict, Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reserve_api.core.config import settings
from reserve_api.core.exceptions import (
    ResourceNotFoundError, ResourceConflictError, ValidationError,
)
from reserve_api.db.base import LIKE_ESCAPE, contains_pattern
from reserve_api.models.account_request import AccountRequest, AccountStatus
from reserve_api.models.personnel import Personnel, PersonnelStatus
from reserve_api.services.cache_service import cache_service, PERSONNEL_STATS_KEY

logger = logging.getLogger("reserve_api.personnel")

_STATUS_ALIASES = {
    "active": PersonnelStatus.standby,
    "pending": PersonnelStatus.standby,
    "inactive": PersonnelStatus.retired,
    "medical": PersonnelStatus.retired,
    "leave": PersonnelStatus.retired,
    "deactivated": PersonnelStatus.retired,
}

CANONICAL_STATUSES = frozenset(s.value for s in PersonnelStatus)

EDITABLE_FIELDS = ("name", "rank", "service_number", "email", "company", "status")


def normalize_status(raw: Any) -> str:
    """Map any status value onto ready/standby/retired.

    Pure and total: canonical values (any case) map to themselves, known
    legacy values through the alias table, and everything else to
    ``retired``.
    """
    if not isinstance(raw, str):
        return PersonnelStatus.retired.value
    key = raw.strip().lower()
    if key in CANONICAL_STATUSES:
        return key
    return _STATUS_ALIASES.get(key, PersonnelStatus.retired).value


def describe(personnel: Personnel) -> str:
    if personnel.service_number:
        return f"{personnel.name} ({personnel.service_number})"
    return personnel.name


class PersonnelService:
    """Manages the personnel directory."""

    @staticmethod
    def get(db: Session, personnel_id: int) -> Personnel:
        """Get a personnel record by id."""
        personnel = db.get(Personnel, personnel_id)
        if not personnel:
            raise ResourceNotFoundError(f"Personnel {personnel_id} not found")
        return personnel

    @staticmethod
    def create_from_account(db: Session, account: AccountRequest, user_id: Optional[int] = None) -> Personnel:
        """Add the directory entry for an approved request.

        Flushes only; the caller owns the transaction.
        """
        personnel = Personnel(
            name=account.name,
            rank=account.rank or "Private",
            service_number=account.service_number,
            email=account.email.lower(),
            company=account.company,
            status=normalize_status("pending"),
            user_id=user_id,
            account_request_id=account.id,
        )
        db.add(personnel)
        db.flush()
        return personnel

    @staticmethod
    def create(db: Session, **fields) -> Personnel:
        """Create a record directly (administrative entry)."""
        if not fields.get("name") or not fields.get("rank") or not fields.get("email"):
            raise ValidationError("name, rank and email are required")
        fields = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        fields["email"] = fields["email"].lower()
        fields["status"] = normalize_status(fields.get("status") or "pending")
        personnel = Personnel(**fields)
        db.add(personnel)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ResourceConflictError("A record with this email or service number already exists")
        db.refresh(personnel)
        cache_service.invalidate_stats()
        return personnel

    @staticmethod
    def list_personnel(
        db: Session,
        search: Optional[str] = None,
        company: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Dict[str, Any]:
        """List personnel with filters, most recently updated first."""
        if page < 1 or page_size < 1:
            raise ValidationError("page and pageSize must be positive integers")

        query = db.query(Personnel)
        if company:
            query = query.filter(Personnel.company == company)
        if status:
            query = query.filter(Personnel.status == normalize_status(status))
        if search and search.strip():
            pattern = contains_pattern(search.strip())
            query = query.filter(or_(
                Personnel.name.ilike(pattern, escape=LIKE_ESCAPE),
                Personnel.rank.ilike(pattern, escape=LIKE_ESCAPE),
                Personnel.email.ilike(pattern, escape=LIKE_ESCAPE),
                Personnel.service_number.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        total = query.count()
        personnel = (
            query.order_by(Personnel.updated_at.desc(), Personnel.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        pages = math.ceil(total / page_size) if total else 0
        return {
            "personnel": personnel,
            "pagination": {"total": total, "page": page, "pageSize": page_size, "pages": pages},
        }

    @staticmethod
    def update(db: Session, personnel_id: int, **kwargs) -> Personnel:
        """Update editable fields; status is always normalized."""
        personnel = PersonnelService.get(db, personnel_id)
        for key, value in kwargs.items():
            if key not in EDITABLE_FIELDS or value is None:
                continue
            if key == "status":
                value = normalize_status(value)
            elif key == "email":
                value = value.lower()
            setattr(personnel, key, value)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ResourceConflictError("A record with this email or service number already exists")
        db.refresh(personnel)
        cache_service.invalidate_stats()
        return personnel

    @staticmethod
    def set_status(db: Session, personnel_id: int, status: str) -> Personnel:
        return PersonnelService.update(db, personnel_id, status=status)

    @staticmethod
    def retire(db: Session, personnel_id: int) -> Personnel:
        """Soft removal: the record stays, marked retired."""
        return PersonnelService.update(db, personnel_id, status=PersonnelStatus.retired.value)

    @staticmethod
    def delete(db: Session, personnel_id: int) -> str:
        """Hard-delete a record. Returns its description for the audit entry."""
        personnel = PersonnelService.get(db, personnel_id)
        description = describe(personnel)
        db.delete(personnel)
        db.commit()
        cache_service.invalidate_stats()
        return description

    @staticmethod
    def stats(db: Session) -> Dict[str, Any]:
        """Counts by status and company, cached in Redis."""
        cached = cache_service.get_json(PERSONNEL_STATS_KEY)
        if cached is not None:
            return cached

        by_status = {s.value: 0 for s in PersonnelStatus}
        for status, count in db.query(Personnel.status, func.count(Personnel.id)).group_by(Personnel.status):
            key = normalize_status(status)
            by_status[key] += count

        by_company = {
            (company or "Unassigned"): count
            for company, count in db.query(Personnel.company, func.count(Personnel.id)).group_by(Personnel.company)
        }
        result = {
            "total": sum(by_status.values()),
            "byStatus": by_status,
            "byCompany": by_company,
        }
        cache_service.set_json(PERSONNEL_STATS_KEY, result, settings.STATS_CACHE_TTL_SECONDS)
        return result

    @staticmethod
    def sync_directory(db: Session) -> Dict[str, int]:
        """Reconcile the directory with approved requests and legacy statuses."""
        created = 0
        linked = select(Personnel.account_request_id).where(
            Personnel.account_request_id.isnot(None)
        )
        missing = (
            db.query(AccountRequest)
            .filter(AccountRequest.status == AccountStatus.approved)
            .filter(AccountRequest.id.notin_(linked))
            .all()
        )
        for account in missing:
            existing = db.query(Personnel).filter(Personnel.email == account.email.lower()).first()
            if existing:
                existing.account_request_id = account.id
            else:
                PersonnelService.create_from_account(db, account)
                created += 1

        normalized = 0
        legacy = db.query(Personnel).filter(Personnel.status.notin_(sorted(CANONICAL_STATUSES))).all()
        for personnel in legacy:
            personnel.status = normalize_status(personnel.status)
            normalized += 1

        db.commit()
        cache_service.invalidate_stats()
        logger.info("Directory sync created %d records, normalized %d statuses", created, normalized)
        return {"created": created, "normalized": normalized}


personnel_service = PersonnelService()
