"""
Create the first Admin account and the system chat channels.

Usage:
    python scripts/seed_admin.py <username> <password> [email]

Re-running with an existing username only resets that account's password.
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from crewdesk.config import settings
from crewdesk.db import Database
from crewdesk.auth.security import get_password_hash
from crewdesk.models.models import User, UserRole, utcnow
from crewdesk.services.activity import log_activity, SYSTEM_ACTOR
from crewdesk.services.channels import ensure_system_channels


def seed_admin(username: str, password: str, email: str) -> None:
    database = Database(settings.database_url)
    database.create_all()
    db = database.session()
    try:
        ensure_system_channels(db)
        user = db.query(User).filter(User.username == username).first()
        if user:
            print(f"User '{username}' already exists, resetting password...")
            user.password_hash = get_password_hash(password)
            user.status = "active"
            db.commit()
            return
        user = User(
            first_name="System",
            last_name="Administrator",
            national_id=f"admin-{username}",
            email=email,
            username=username,
            password_hash=get_password_hash(password),
            role=UserRole.ADMIN.value,
            status="active",
            created_at=utcnow(),
            created_by=SYSTEM_ACTOR,
        )
        db.add(user)
        db.commit()
        log_activity(db, f"user-creation:{username}", SYSTEM_ACTOR)
        print(f"Admin '{username}' created")
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)
    seed_admin(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else f"{sys.argv[1]}@crewdesk.local")
