"""Auth service — JWT login, refresh, user management."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
import hashlib

from sqlalchemy.orm import Session

from reserve_api.core.permissions import Role
from reserve_api.db.base import utcnow
from reserve_api.models.user import User, UserStatus
from reserve_api.models.token import RefreshToken
from reserve_api.core.security import (
    hash_password, verify_password,
    create_access_token, create_refresh_token, decode_token,
)
from reserve_api.core.exceptions import (
    AuthenticationError, ResourceConflictError, ResourceNotFoundError, ValidationError,
)


def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def user_summary(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.full_name,
        "role": user.role.value,
        "status": user.status.value,
        "company": user.company,
        "rank": user.rank,
    }


class AuthService:
    """Handles authentication and user management."""

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> Dict[str, Any]:
        """Authenticate user and return JWT tokens.

        Raises:
            AuthenticationError: If credentials are invalid.
        """
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid email or password")

        if user.status == UserStatus.deactivated:
            raise AuthenticationError("Account is deactivated")
        if user.status == UserStatus.pending:
            raise AuthenticationError("Account is pending approval")

        # The role is deliberately absent from the token: it is re-read from
        # the database on every request.
        token_data = {"sub": str(user.id), "email": user.email}
        access_token = create_access_token(token_data)
        refresh_token_str = create_refresh_token(token_data)

        rt = RefreshToken(
            user_id=user.id,
            token_hash=_token_hash(refresh_token_str),
            expires_at=datetime.fromtimestamp(
                decode_token(refresh_token_str, "refresh")["exp"], tz=timezone.utc
            ).replace(tzinfo=None),
        )
        db.add(rt)

        # Update last login
        user.last_login_at = utcnow()
        db.commit()

        return {
            "access_token": access_token,
            "refresh_token": refresh_token_str,
            "token_type": "bearer",
            "user": user_summary(user),
        }

    @staticmethod
    def refresh_access_token(db: Session, refresh_token: str) -> Dict[str, Any]:
        """Refresh access token using a valid refresh token."""
        payload = decode_token(refresh_token, "refresh")

        stored = db.query(RefreshToken).filter(
            RefreshToken.token_hash == _token_hash(refresh_token),
            RefreshToken.revoked_at.is_(None),
        ).first()

        if not stored:
            raise AuthenticationError("Invalid refresh token")

        user = db.get(User, int(payload["sub"]))
        if not user or not user.is_active:
            raise AuthenticationError("User not found or not active")

        return {
            "access_token": create_access_token({"sub": str(user.id), "email": user.email}),
            "token_type": "bearer",
        }

    @staticmethod
    def logout(db: Session, user_id: int) -> None:
        """Revoke all refresh tokens for a user."""
        db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        ).update({"revoked_at": utcnow()})
        db.commit()

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: Any = Role.reservist,
        company: Optional[str] = None,
        rank: Optional[str] = None,
    ) -> User:
        """Create a new active user."""
        parsed = Role.parse(role)
        if parsed is None:
            raise ValidationError(f"Invalid role: '{role}'")
        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            raise ResourceConflictError(f"User with email {email} already exists")

        user = User(
            email=email,
            hashed_password=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=parsed,
            status=UserStatus.active,
            company=company,
            rank=rank,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        """Get a user by id."""
        user = db.get(User, user_id)
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def list_users(db: Session, page: int = 1, page_size: int = 20):
        """List all users with pagination."""
        total = db.query(User).count()
        users = (
            db.query(User)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"users": users, "total": total, "page": page}

    @staticmethod
    def update_user(
        db: Session,
        user_id: int,
        role: Optional[str] = None,
        status: Optional[str] = None,
        company: Optional[str] = None,
        rank: Optional[str] = None,
    ) -> User:
        """Change a user's role, status, or assignment (admin action)."""
        user = AuthService.get_user(db, user_id)
        if role is not None:
            parsed = Role.parse(role)
            if parsed is None:
                raise ValidationError(f"Invalid role: '{role}'")
            user.role = parsed
        if status is not None:
            try:
                user.status = UserStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid status: '{status}'")
        if company is not None:
            user.company = company
        if rank is not None:
            user.rank = rank
        db.commit()
        db.refresh(user)
        return user


auth_service = AuthService()
