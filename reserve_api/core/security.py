"""JWT authentication and permission-based authorization helpers."""

import logging
import uuid
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from reserve_api.core.config import settings
from reserve_api.core.exceptions import AuthenticationError, AuthorizationError
from reserve_api.core.permissions import ALL_PERMISSIONS, PermissionEvaluator
from reserve_api.db.session import get_db
from reserve_api.models.user import User

logger = logging.getLogger("reserve_api.security")

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    if not hashed_password:
        return False
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pwd_bytes, hashed_bytes)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS)
    to_encode.update({"exp": expire, "type": "refresh", "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, expected_type: str = "access") -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")
    if payload.get("type") != expected_type:
        raise AuthenticationError("Invalid token type")
    return payload


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> int:
    """Extract user_id from the JWT Bearer token."""
    if credentials is None:
        raise AuthenticationError("Authentication token is required")
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token payload")
    try:
        return int(user_id)
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Load the authenticated user; its stored role is the only one honoured."""
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or not active")
    return user


class RequirePermission:
    """Dependency that checks the authenticated user holds a permission."""

    def __init__(self, *permissions: str):
        unknown = set(permissions) - ALL_PERMISSIONS
        if unknown:
            raise ValueError(f"Unknown permission(s): {', '.join(sorted(unknown))}")
        self.permissions = permissions

    async def __call__(self, user=Depends(get_current_user)):
        evaluator = PermissionEvaluator(user)
        for permission in self.permissions:
            if not evaluator.has_permission(permission):
                logger.warning(
                    "Permission %s denied for user %s (%s)",
                    permission, user.id, user.role.value,
                )
                raise AuthorizationError(
                    f"Role '{user.role.value}' lacks permission '{permission}'"
                )
        return user


# Convenience dependencies
require_view_personnel = RequirePermission("view_personnel")
require_account_approver = RequirePermission("approve_reservist_accounts")
require_audit_viewer = RequirePermission("view_audit_logs")
require_system_settings = RequirePermission("access_system_settings")
