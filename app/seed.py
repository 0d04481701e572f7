#!/usr/bin/env python3
"""
Database Seeding for Daily Journal

Usage:
    python -m app.seed                  # Create the first user if no users exist
    SEED_DEMO=true python -m app.seed   # Also give that user a week of sample entries

Environment:
    SEED_EMAIL, SEED_FULL_NAME, SEED_PASSWORD   first user's credentials

Behavior:
    - If NO users exist: creates one user from the SEED_* variables
    - If users exist: does nothing (unless SEED_DEMO=true)
    - SEED_DEMO=true: writes sample entries for the first user on dates that are still empty
    - Safe to run multiple times (idempotent)

This script does NOT:
    - Auto-run on application startup
    - Modify existing users or entries
"""

import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

from app.database import SessionLocal, init_db
from app.models import User
from app.auth.utils import get_password_hash, normalize_email
from app.services.record_store import SqlRecordStore
from app.time_utils import today_local


DEMO_ENTRIES = [
    "Read two chapters of Designing Data-Intensive Applications.\n\nNotes on replication lag.",
    "学习了 TypeScript 泛型\n\n完成了项目部署",
    "Refactored the calendar view, fixed the month boundary bug.",
    "Went for a long run. Planned next week's study topics.",
    "复习了 SQL 索引，整理了笔记",
]


def first_user_data() -> dict:
    password = os.getenv("SEED_PASSWORD")
    if not password:
        raise SystemExit("SEED_PASSWORD must be set to create the first user")
    return {
        "email": os.getenv("SEED_EMAIL", "me@example.com"),
        "full_name": os.getenv("SEED_FULL_NAME", "Journal Owner"),
        "password": password,
    }


def create_user(db, user_data: dict) -> User:
    """Create a user with proper password hashing."""
    user = User(
        email=normalize_email(user_data["email"]),
        full_name=user_data["full_name"],
        password_hash=get_password_hash(user_data["password"]),
        is_active=True,
    )
    db.add(user)
    return user


def seed_first_user(db) -> bool:
    """
    Create the first user if no users exist in the database.
    Returns True if user was created, False if skipped.
    """
    user_count = db.query(User).count()

    if user_count > 0:
        print(f"  [SKIP] {user_count} user(s) already exist")
        return False

    user_data = first_user_data()
    print(f"  [CREATE] User: {user_data['email']}")
    create_user(db, user_data)
    return True


def seed_demo_entries(store, user_id: int) -> int:
    """
    Write sample entries for the days before today that have none.
    Returns count of entries created.
    """
    created_count = 0
    today = today_local()

    for offset, content in enumerate(DEMO_ENTRIES, start=1):
        date = (today - timedelta(days=offset)).isoformat()
        if store.get(user_id, date) is not None:
            print(f"  [SKIP] Entry exists: {date}")
            continue
        print(f"  [CREATE] Entry: {date}")
        store.upsert(user_id, date, content)
        created_count += 1

    return created_count


def main():
    """Main seeding entry point."""
    print("=" * 60)
    print("DAILY JOURNAL - DATABASE SEEDING")
    print("=" * 60)

    seed_demo = os.getenv("SEED_DEMO", "false").lower() == "true"
    init_db()

    db = SessionLocal()
    try:
        print("Phase 1: First User")
        user_created = seed_first_user(db)
        db.commit()
        user = db.query(User).order_by(User.id).first()
    except Exception as e:
        db.rollback()
        print(f"\n[ERROR] Seeding failed: {e}")
        raise
    finally:
        db.close()

    entries_created = 0
    if seed_demo and user is not None:
        print("\nPhase 2: Demo Entries")
        entries_created = seed_demo_entries(SqlRecordStore(SessionLocal), user.id)
    else:
        print("\nPhase 2: Demo Entries [SKIPPED - set SEED_DEMO=true to enable]")

    print("\n" + "=" * 60)
    print("SEEDING COMPLETE")
    print("=" * 60)
    if user_created or entries_created:
        print(f"Created {1 if user_created else 0} user(s), {entries_created} entr(ies)")
    else:
        print("No changes made")


if __name__ == "__main__":
    main()
