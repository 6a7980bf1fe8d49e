"""
Script to create a back-office user (admin, manager or user).
Run this after migrations; prints a session token usable as the session cookie.
"""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from crm_billing.core.auth import create_session
from crm_billing.core.config import SESSION_COOKIE_NAME
from crm_billing.core.database import SessionLocal
from crm_billing.models.user import User
from crm_billing.services.access import Role


def create_user(email: str, role: str = Role.ADMIN, full_name: str = "Admin User"):
    """Create a user and print a session token for it."""
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            print(f"User with email {email} already exists (role: {user.role})")
        else:
            user = User(email=email, full_name=full_name, role=role, is_active=True)
            db.add(user)
            db.commit()
            db.refresh(user)
            print(f"✅ User created successfully!")
            print(f"   Email: {email}")
            print(f"   Role: {role}")

        token = create_session(user.id, user.role, email=user.email)
        print(f"   Cookie {SESSION_COOKIE_NAME}: {token}")

    except Exception as e:
        db.rollback()
        print(f"❌ Error creating user: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description='Create back-office user')
    parser.add_argument('--email', default='admin@example.com', help='User email')
    parser.add_argument('--role', default=Role.ADMIN, choices=Role.ALL, help='User role')
    parser.add_argument('--name', default='Admin User', help='User full name')

    args = parser.parse_args()
    create_user(args.email, args.role, args.name)
