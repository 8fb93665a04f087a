"""Account request model — pending personnel accounts awaiting approval."""

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum

from reserve_api.db.base import Base, utcnow


class AccountStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class AccountRequest(Base):
    """A request for a new reservist account.

    Rows move from ``pending`` to a terminal state exactly once and are
    never deleted.
    """
    __tablename__ = "account_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    rank = Column(String(100), nullable=True)
    company = Column(String(100), nullable=True)
    service_number = Column(String(50), nullable=True)
    hashed_password = Column(String(255), nullable=True)  # only for self-registration
    status = Column(Enum(AccountStatus), default=AccountStatus.pending, nullable=False, index=True)
    rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    decided_at = Column(DateTime, nullable=True)
    decided_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_terminal(self) -> bool:
        return self.status != AccountStatus.pending
