"""Seed sample account requests for demo purposes."""

from sqlalchemy.orm import Session
from reserve_api.models.account_request import AccountRequest, AccountStatus


SAMPLE_REQUESTS = [
    ("John", "Smith", "john.smith@army.mil.ph", "Private First Class", "Alpha"),
    ("Sarah", "Johnson", "sarah.johnson@army.mil.ph", "Corporal", "Bravo"),
    ("Michael", "Davis", "michael.davis@army.mil.ph", "Sergeant", "Charlie"),
    ("Lisa", "Wilson", "lisa.wilson@army.mil.ph", "Staff Sergeant", "Headquarters"),
]


def seed_sample_data(db: Session) -> None:
    """Insert pending account requests for the review queue."""
    added = 0
    for first_name, last_name, email, rank, company in SAMPLE_REQUESTS:
        existing = db.query(AccountRequest).filter(AccountRequest.email == email).first()
        if existing:
            continue
        db.add(AccountRequest(
            first_name=first_name,
            last_name=last_name,
            email=email,
            rank=rank,
            company=company,
            status=AccountStatus.pending,
        ))
        added += 1
    db.commit()
    print(f"Sample data seeded: {added} pending account requests")
