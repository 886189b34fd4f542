"""Seed Users Script

Creates one active dev account per role (password "123").
Run with: python -m quoteflow.scripts.seed_users
"""

import logging

from sqlalchemy.orm import Session

from quoteflow.core.security import hash_password
from quoteflow.database import SessionLocal
from quoteflow.models.domain import User, UserRole

logger = logging.getLogger("quoteflow.seed")

DEV_PASSWORD = "123"

DEV_USERS: list[tuple[str, str, UserRole]] = [
    ("superuser@quoteflow.local", "Superuser", UserRole.SUPERUSER),
    ("admin@quoteflow.local", "Admin", UserRole.ADMIN),
    ("manager@quoteflow.local", "Manager", UserRole.MANAGER),
    ("sales@quoteflow.local", "Sales", UserRole.SALES),
    ("vpp@quoteflow.local", "VPP", UserRole.VPP),
    ("vp@quoteflow.local", "VP", UserRole.VP),
    ("tech@quoteflow.local", "Tech", UserRole.TECH),
]


def create_default_users(db: Session) -> int:
    """Insert missing dev accounts; existing e-mails are left untouched. Returns the number created."""

    created = 0
    for email, name, role in DEV_USERS:
        if db.query(User.id).filter(User.email == email).first():
            continue
        db.add(
            User(
                email=email,
                name=name,
                role=role,
                hashed_password=hash_password(DEV_PASSWORD),
                is_active=True,
            )
        )
        created += 1
    db.commit()
    return created


def main() -> None:
    db = SessionLocal()
    try:
        created = create_default_users(db)
        print(f"Dev users ready ({created} created). Password: {DEV_PASSWORD}")
        for email, _, role in DEV_USERS:
            print(f"  {role.value:<10} {email}")
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
