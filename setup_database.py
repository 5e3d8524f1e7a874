"""
Database setup script for the AutoLab DMS backend.

Creates the tables, seeds the page catalogue used by page permissions and
makes sure an admin account exists. Safe to run repeatedly.

Usage:
    ADMIN_PASSWORD=... python setup_database.py
"""
import os
import sys

from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal, init_db
from dms.models import NotificationPreference, User
from dms.services.notification_events import default_preferences_for_role
from dms.services.permissions import seed_page_definitions
from dms.utils.auth_utils import hash_password


def setup_pages(session):
    print("\n[PAGES] Seeding page definitions...")
    created = seed_page_definitions(session)
    session.commit()
    print(f"  [OK] {created} new page(s) created")


def create_admin(session, username, password, email=None):
    """Create the first admin account unless a user with that name exists."""
    print("\n[USER] Setting up admin account...")

    existing = session.query(User).filter(User.username == username).first()
    if existing:
        print(f"  [SKIP] User already exists: {username}")
        return existing

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name="System",
        last_name="Administrator",
        role="admin",
        is_active=True,
    )
    session.add(user)
    session.flush()
    session.add(NotificationPreference(user_id=user.id, **default_preferences_for_role("admin")))
    session.commit()

    print(f"  [OK] Created admin account: {username}")
    return user


def main():
    print("=" * 60)
    print("AutoLab DMS - Database Setup")
    print("=" * 60)

    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        print("[ERROR] Set ADMIN_PASSWORD before running setup")
        sys.exit(1)

    init_db()
    session = SessionLocal()
    try:
        setup_pages(session)
        create_admin(
            session,
            os.getenv("ADMIN_USERNAME", "admin"),
            password,
            email=os.getenv("ADMIN_EMAIL"),
        )
        print("\n[OK] Database setup complete!")
    except SQLAlchemyError as e:
        session.rollback()
        print(f"\n[ERROR] Error during setup: {str(e)}")
        sys.exit(1)
    finally:
        session.close()


if __name__ == "__main__":
    main()
