#!/usr/bin/env python3
"""
Admin User Seed Script
Creates an admin (attorney) account for the LetterDesk review console.

Usage:
    python -m scripts.seed_admin <email> <full name> <password>

Example:
    python -m scripts.seed_admin admin@letterdesk.com "Jane Doe" securepassword123
"""
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from letterdesk.auth import hash_password
from letterdesk.config import load_settings
from letterdesk.database import Database
from letterdesk.models.db_models import UserRole
from letterdesk.services.accounts import AccountStore


def create_admin_user(database: Database, email: str, full_name: str, password: str) -> bool:
    """Create an admin user, or upgrade an existing account to admin."""
    # Ensure tables exist
    database.create_all()

    db = database.session()
    try:
        store = AccountStore(db)
        store.seed_default_plans()

        existing = store.get_user_by_email(email)
        if existing:
            if UserRole(existing.role) == UserRole.ADMIN:
                print(f"Error: Email '{email}' already exists.")
                print("This user is already an admin.")
                return False
            # Upgrade existing user to admin
            existing.role = UserRole.ADMIN
            db.commit()
            print(f"Upgraded existing user '{email}' to admin role.")
            return True

        store.create_user(
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            role=UserRole.ADMIN,
        )
        db.commit()

        print("Admin user created successfully!")
        print(f"  Email: {email}")
        print(f"  Name: {full_name}")
        print("  Role: admin")
        return True

    except Exception as e:
        print(f"Error creating admin user: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(1)

    email = sys.argv[1]
    full_name = sys.argv[2]
    password = sys.argv[3]

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    if "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    database = Database(load_settings().database_url)
    try:
        success = create_admin_user(database, email, full_name, password)
    finally:
        database.dispose()
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
