"""
IP Platform - Admin Seed Script

Creates the default admin account from ADMIN_DEFAULT_* settings.
The application also does this on startup; the script is for setting up a
database before the first deploy.

Usage:
    ADMIN_DEFAULT_PASSWORD=... python -m scripts.seed_admin
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ipplatform.config import settings
from ipplatform.auth.accounts import ensure_default_admin
from ipplatform.auth.database import get_engine, get_session_factory, init_db


def seed_admin() -> bool:
    """Create the default admin if missing. Returns True if one was created."""
    if not settings.ADMIN_DEFAULT_PASSWORD:
        print("ADMIN_DEFAULT_PASSWORD is not set; refusing to create an admin without a password.")
        return False

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    with get_session_factory(engine)() as db:
        admin = ensure_default_admin(
            db,
            username=settings.ADMIN_DEFAULT_USERNAME,
            password=settings.ADMIN_DEFAULT_PASSWORD,
            email=settings.ADMIN_DEFAULT_EMAIL,
            name=settings.ADMIN_DEFAULT_NAME,
        )

    engine.dispose()

    if admin is None:
        print(f"Username {settings.ADMIN_DEFAULT_USERNAME} or email {settings.ADMIN_DEFAULT_EMAIL} already exists.")
        return False

    print("Admin created successfully!")
    print(f"  Username: {admin.username}")
    print(f"  Email: {admin.email}")
    return True


if __name__ == "__main__":
    print("=" * 50)
    print("IP Platform - Admin Seed Script")
    print("=" * 50)

    seed_admin()
