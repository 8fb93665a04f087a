"""User model."""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.orm import relationship

from reserve_api.core.permissions import Role
from reserve_api.db.base import Base, utcnow


class UserStatus(str, enum.Enum):
    active = "active"
    pending = "pending"
    deactivated = "deactivated"


class User(Base):
    """Platform user. ``role`` is the stored role every server check uses."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(Enum(Role), nullable=False, default=Role.reservist)
    status = Column(Enum(UserStatus), nullable=False, default=UserStatus.active)
    company = Column(String(100), nullable=True)
    rank = Column(String(100), nullable=True)
    service_number = Column(String(50), unique=True, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    refresh_tokens = relationship("RefreshToken", back_populates="user", lazy="dynamic")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.active

    def __repr__(self):
        return f"<User {self.email} ({self.role.value if self.role else None})>"
