#!/usr/bin/env python3
"""
Promote an existing user to admin.

Registration always creates role "user", so the first admin has to be set
from the server side. Run once per admin:

    python -m backend.bootstrap_admin --email admin@example.com
"""

import argparse
import sys
from typing import Optional, Sequence

from pymongo.database import Database

from backend.db import USERS, get_db, now_utc
from backend.rbac import Role


def promote_to_admin(db: Database, email: str) -> Optional[str]:
    """
    Set role=admin on the user with this email.

    Returns:
        The user id, or None if no user has that email.
    """
    email_norm = email.strip().lower()
    user = db[USERS].find_one({"email": email_norm}, {"role": 1})
    if not user:
        return None

    if user.get("role") == Role.ADMIN:
        print(f"[BOOTSTRAP] User {email_norm} is already admin")
    else:
        db[USERS].update_one(
            {"_id": user["_id"]},
            {"$set": {"role": Role.ADMIN, "updated_at": now_utc()}},
        )
        print(f"[BOOTSTRAP] Promoted {email_norm} to admin")
    return str(user["_id"])


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Promote a registered user to admin")
    parser.add_argument("--email", required=True, help="Email of the registered user")
    args = parser.parse_args(argv)

    if promote_to_admin(get_db(), args.email) is None:
        print(f"[BOOTSTRAP] No user with email {args.email}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
