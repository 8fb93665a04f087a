"""Personnel directory model."""

import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from reserve_api.db.base import Base, utcnow


class PersonnelStatus(str, enum.Enum):
    ready = "ready"
    standby = "standby"
    retired = "retired"


class Personnel(Base):
    """Directory entry for an approved reservist."""
    __tablename__ = "personnel"
    __table_args__ = (
        Index("ix_personnel_company", "company"),
        Index("ix_personnel_status", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, index=True)
    rank = Column(String(100), nullable=False)
    service_number = Column(String(50), unique=True, nullable=True)
    email = Column(String(255), unique=True, nullable=False)
    company = Column(String(100), nullable=True)
    # String rather than Enum: imported rows may carry legacy values until sync.
    status = Column(String(20), nullable=False, default=PersonnelStatus.standby.value)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    account_request_id = Column(Integer, ForeignKey("account_requests.id"), nullable=True, unique=True)
    date_joined = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", lazy="joined")
