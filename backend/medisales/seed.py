"""Seed pharmacy users so chat and presence can be tried locally.

Usage (after ``pip install -e .``):
    medisales-seed-users
    medisales-seed-users --settings path/to/medisales.settings.yaml

Existing usernames are left untouched, so the command can be re-run.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional, Sequence

from medisales.config import load_config
from medisales.db import Database
from medisales.users.repository import UserRepository
from medisales.users.schemas import User, UserCreate, UserRole

logger = logging.getLogger(__name__)


DEMO_USERS = (
    UserCreate(username="admin", full_name="Pharmacy Administrator", role=UserRole.ADMINISTRATOR),
    UserCreate(username="cashier1", full_name="Front Counter Cashier", role=UserRole.STAFF),
    UserCreate(username="cashier2", full_name="Back Counter Cashier", role=UserRole.STAFF),
)


def seed_users(users: UserRepository, demo_users: Sequence[UserCreate] = DEMO_USERS) -> List[User]:
    """Insert every user whose username is not taken yet. Returns all of them."""
    seeded: List[User] = []
    for data in demo_users:
        existing = users.find_user_by_username(data.username)
        if existing is not None:
            logger.info("User %s already exists (id=%s)", data.username, existing.user_id)
            seeded.append(existing)
            continue
        seeded.append(users.create_user(data))
    return seeded


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed demo MediSales users.")
    parser.add_argument(
        "--settings",
        default=None,
        help="Settings YAML to read the database path from (default: MEDISALES_SETTINGS "
             "or ./medisales.settings.yaml).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)
    config = load_config(args.settings)

    db = Database(config.database.path)
    try:
        for user in seed_users(UserRepository(db)):
            print(f"{user.user_id:>4}  {user.role.value:<13}  {user.username}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
