"""Models package — import all models so metadata.create_all sees them."""

from reserve_api.models.user import User, UserStatus
from reserve_api.models.token import RefreshToken
from reserve_api.models.account_request import AccountRequest, AccountStatus
from reserve_api.models.personnel import Personnel, PersonnelStatus
from reserve_api.models.audit_log import AuditLog, AuditAction, AuditResource

__all__ = [
    "User", "UserStatus", "RefreshToken",
    "AccountRequest", "AccountStatus",
    "Personnel", "PersonnelStatus",
    "AuditLog", "AuditAction", "AuditResource",
]
