"""Seed the director account from env vars."""

from sqlalchemy.orm import Session
from reserve_api.models.user import User, UserStatus
from reserve_api.core.permissions import Role
from reserve_api.core.security import hash_password
from reserve_api.core.config import settings


def seed_director(db: Session) -> None:
    """Create the director user if not already present."""
    email = settings.DIRECTOR_EMAIL.lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        print(f"Director '{email}' already exists, skipping.")
        return

    director = User(
        email=email,
        hashed_password=hash_password(settings.DIRECTOR_PASSWORD),
        first_name="Unit",
        last_name="Director",
        role=Role.director,
        status=UserStatus.active,
        company="Headquarters",
    )
    db.add(director)
    db.commit()
    print(f"Created director: {email}")
