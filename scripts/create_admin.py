#!/usr/bin/env python3
"""
Create or promote the first admin account.

Reads ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_FIRST_NAME and ADMIN_LAST_NAME
from the environment (or .env).
"""

import os
import sys

# Add the project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from storefront.core.exceptions import StorefrontError  # noqa: E402
from storefront.database.core import SessionLocal, init_db  # noqa: E402
from storefront.users.service import UserService  # noqa: E402


def main() -> int:
    email = os.getenv("ADMIN_EMAIL", "")
    password = os.getenv("ADMIN_PASSWORD", "")
    if not email:
        print("ADMIN_EMAIL is required")
        return 1

    init_db()
    db = SessionLocal()
    try:
        admin = UserService.ensure_admin(
            db,
            email=email,
            password=password,
            first_name=os.getenv("ADMIN_FIRST_NAME", "Admin"),
            last_name=os.getenv("ADMIN_LAST_NAME", "User"),
        )
    except StorefrontError as e:
        print(f"Admin setup failed: {e.user_message}")
        return 1
    finally:
        db.close()

    print(f"Admin ready: {admin.email} (id {admin.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
