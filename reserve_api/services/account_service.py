"""Account request service — submission and the approval state machine.

A request moves ``pending -> approved`` or ``pending -> rejected`` exactly
once. The move is a single conditional UPDATE guarded on the row still
being pending, so two approvers racing on the same request cannot both
win: the loser sees zero affected rows and gets ``ResourceConflictError``.
"""

import logging
from typing import Optional, List

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reserve_api.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InvalidStateError,
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationError,
)
from reserve_api.core.permissions import PermissionEvaluator, Role
from reserve_api.core.security import hash_password
from reserve_api.db.base import utcnow
from reserve_api.models.account_request import AccountRequest, AccountStatus
from reserve_api.models.personnel import Personnel
from reserve_api.models.user import User, UserStatus
from reserve_api.services.personnel_service import normalize_status, personnel_service

logger = logging.getLogger("reserve_api.accounts")

APPROVE_PERMISSION = "approve_reservist_accounts"


def _require_approver(actor) -> None:
    if actor is None:
        raise AuthenticationError("Authentication required")
    if not PermissionEvaluator(actor).has_permission(APPROVE_PERMISSION):
        raise AuthorizationError(f"Permission '{APPROVE_PERMISSION}' required")


def _parse_status(raw) -> AccountStatus:
    try:
        return AccountStatus(raw)
    except ValueError:
        allowed = ", ".join(s.value for s in AccountStatus)
        raise ValidationError(f"Invalid status '{raw}'. Expected one of: {allowed}")


class AccountService:
    """Manages account requests and their approval workflow."""

    @staticmethod
    def submit(
        db: Session,
        first_name: str,
        last_name: str,
        email: str,
        rank: Optional[str] = None,
        company: Optional[str] = None,
        service_number: Optional[str] = None,
        password: Optional[str] = None,
    ) -> AccountRequest:
        """Create a pending request.

        Raises:
            ResourceConflictError: an account or open request already uses
                this email.
        """
        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            raise ResourceConflictError("Email already registered")
        open_request = (
            db.query(AccountRequest)
            .filter(
                AccountRequest.email == email,
                AccountRequest.status.in_([AccountStatus.pending, AccountStatus.approved]),
            )
            .first()
        )
        if open_request:
            raise ResourceConflictError("An account request for this email already exists")

        account = AccountRequest(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            rank=rank,
            company=company,
            service_number=service_number,
            hashed_password=hash_password(password) if password else None,
            status=AccountStatus.pending,
        )
        db.add(account)
        db.commit()
        db.refresh(account)
        logger.info("Account request %s submitted for %s", account.id, email)
        return account

    @staticmethod
    def get(db: Session, request_id: int) -> AccountRequest:
        account = db.get(AccountRequest, request_id)
        if not account:
            raise ResourceNotFoundError(f"Account request {request_id} not found")
        return account

    @staticmethod
    def list_requests(db: Session, status: Optional[str] = None) -> List[AccountRequest]:
        """List requests newest first, optionally filtered by status."""
        query = db.query(AccountRequest)
        if status:
            query = query.filter(AccountRequest.status == _parse_status(status))
        return query.order_by(AccountRequest.submitted_at.desc(), AccountRequest.id.desc()).all()

    @staticmethod
    def _compare_and_set(db: Session, request_id: int, **values) -> None:
        """UPDATE the request only while it is still pending."""
        result = db.execute(
            update(AccountRequest)
            .where(
                AccountRequest.id == request_id,
                AccountRequest.status == AccountStatus.pending,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.warning("Lost transition race on account request %s", request_id)
            raise ResourceConflictError("This request was already processed")

    @staticmethod
    def _pending(db: Session, request_id: int) -> AccountRequest:
        account = AccountService.get(db, request_id)
        if account.is_terminal:
            raise InvalidStateError(
                f"Account request {request_id} is already {account.status.value}"
            )
        return account

    @staticmethod
    def approve(db: Session, request_id: int, actor: User) -> AccountRequest:
        """Approve a pending request and activate its personnel record.

        The status change, the reservist login (for self-registered
        requests) and the directory entry commit together.
        """
        _require_approver(actor)
        AccountService._pending(db, request_id)
        AccountService._compare_and_set(
            db, request_id,
            status=AccountStatus.approved,
            decided_at=utcnow(),
            decided_by_id=actor.id,
            rejection_reason=None,
        )
        account = db.get(AccountRequest, request_id, populate_existing=True)

        try:
            user_id = AccountService._activate_login(db, account)
            existing = db.query(Personnel).filter(Personnel.email == account.email).first()
            if existing:
                existing.account_request_id = account.id
                existing.user_id = existing.user_id or user_id
                existing.status = normalize_status("pending")
            else:
                personnel_service.create_from_account(db, account, user_id=user_id)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ResourceConflictError(
                "Approval conflicts with an existing account or personnel record"
            )
        db.refresh(account)
        logger.info("Account request %s approved by user %s", request_id, actor.id)
        return account

    @staticmethod
    def _activate_login(db: Session, account: AccountRequest) -> Optional[int]:
        """Create the reservist login for a self-registered request."""
        user = db.query(User).filter(User.email == account.email).first()
        if user:
            return user.id
        if not account.hashed_password:
            return None
        user = User(
            email=account.email,
            hashed_password=account.hashed_password,
            first_name=account.first_name,
            last_name=account.last_name,
            role=Role.reservist,
            status=UserStatus.active,
            company=account.company,
            rank=account.rank,
            service_number=account.service_number,
        )
        db.add(user)
        db.flush()
        return user.id

    @staticmethod
    def reject(db: Session, request_id: int, actor: User, reason: Optional[str]) -> AccountRequest:
        """Reject a pending request. A non-blank reason is mandatory."""
        _require_approver(actor)
        if reason is None or not reason.strip():
            raise ValidationError("A rejection reason is required")
        AccountService._pending(db, request_id)
        AccountService._compare_and_set(
            db, request_id,
            status=AccountStatus.rejected,
            decided_at=utcnow(),
            decided_by_id=actor.id,
            rejection_reason=reason.strip(),
        )
        db.commit()
        account = db.get(AccountRequest, request_id, populate_existing=True)
        logger.info("Account request %s rejected by user %s", request_id, actor.id)
        return account

    @staticmethod
    def decide(
        db: Session,
        request_id: int,
        actor: User,
        status: str,
        rejection_reason: Optional[str] = None,
    ) -> AccountRequest:
        """Apply an ``approved``/``rejected`` decision."""
        target = _parse_status(status)
        if target == AccountStatus.approved:
            return AccountService.approve(db, request_id, actor)
        if target == AccountStatus.rejected:
            return AccountService.reject(db, request_id, actor, rejection_reason)
        raise ValidationError("status must be 'approved' or 'rejected'")


account_service = AccountService()
