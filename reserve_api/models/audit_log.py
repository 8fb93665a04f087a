"""Audit log model — append-only."""

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, Index

from reserve_api.db.base import Base, utcnow


class AuditAction(str, enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    view = "view"
    download = "download"
    upload = "upload"
    verify = "verify"
    approve = "approve"
    reject = "reject"
    login = "login"
    logout = "logout"
    system = "system"
    register = "register"
    cancel = "cancel"
    export = "export"
    import_ = "import"


class AuditResource(str, enum.Enum):
    user = "user"
    personnel = "personnel"
    account_request = "account_request"
    document = "document"
    training = "training"
    announcement = "announcement"
    report = "report"
    system = "system"


class AuditLog(Base):
    """Immutable audit trail entry.

    This table is APPEND-ONLY: rows are only removed by the explicit purge
    path, which records its own entry.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_timestamp", "timestamp"),
        Index("ix_audit_logs_user_id", "user_id"),
        Index("ix_audit_logs_action", "action"),
        Index("ix_audit_logs_resource", "resource"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    user_id = Column(Integer, nullable=True)  # no FK: entries outlive users
    user_name = Column(String(255), nullable=False)
    user_role = Column(String(50), nullable=False)
    action = Column(Enum(AuditAction, values_callable=lambda e: [m.value for m in e]), nullable=False)
    resource = Column(Enum(AuditResource), nullable=False)
    resource_id = Column(String(100), nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
