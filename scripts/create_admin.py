#!/usr/bin/env python
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import func, select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from staffcheck.db import SessionLocal
from staffcheck.models import Profile, UserRole
from staffcheck.security import hash_password


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or reset an administrator account.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--full-name", default="Administrator")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    email = args.email.strip().lower()
    if len(args.password) < 6:
        print("Password must be at least 6 characters.", file=sys.stderr)
        return 1

    with SessionLocal() as db:
        profile = db.scalar(select(Profile).where(func.lower(Profile.email) == email))
        if profile is None:
            profile = Profile(email=email, full_name=args.full_name, password_hash="")
            db.add(profile)
            action = "created"
        else:
            action = "updated"
        profile.role = UserRole.ADMIN
        profile.is_active = True
        profile.password_hash = hash_password(args.password)
        db.commit()
        print(f"Admin {email} {action} (id={profile.id}).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
