#!/usr/bin/env python3
"""
Media store password reset utility

Reset a user's password from the command line.

Usage (interactive):
    python reset_password.py

Usage (non-interactive):
    python reset_password.py --username admin --password 'NewPass123'
"""

import argparse
import getpass
import sys
from pathlib import Path
from typing import Optional

from config import StorageSettings, get_settings
from log_utils import configure_logging
from database import StorageEngine
from users import UserRepository


# ── Colours ────────────────────────────────────────────────────────────
GREEN = "\033[0;32m"
RED = "\033[0;31m"
BLUE = "\033[0;34m"
BOLD = "\033[1m"
NC = "\033[0m"  # No Color


def prompt_new_password(username: str) -> Optional[str]:
    """Ask twice for a new password. Returns None if the entries differ or are empty."""
    password = getpass.getpass(f"New password for '{username}': ")
    if not password:
        print(f"{RED}Password cannot be empty.{NC}", file=sys.stderr)
        return None
    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        print(f"{RED}Passwords do not match.{NC}", file=sys.stderr)
        return None
    return password


def choose_user(engine: StorageEngine, repo: UserRepository) -> str:
    """List users and let the operator pick one by number or name."""
    with engine.transaction() as session:
        users = repo.list_all(session)
    if not users:
        print(f"{RED}No users found in the store.{NC}", file=sys.stderr)
        sys.exit(1)

    print(f"{BOLD}Existing users:{NC}")
    print()
    print(f"  {'#':<4} {'Username':<24} {'Role':<8} {'Banned'}")
    print(f"  {'─'*4} {'─'*24} {'─'*8} {'─'*6}")
    for i, u in enumerate(users, 1):
        banned_str = f"{RED}Yes{NC}" if u.banned else "No"
        print(f"  {i:<4} {u.username:<24} {u.role:<8} {banned_str}")
    print()

    names = [u.username for u in users]
    while True:
        choice = input(f"Enter username or number (1-{len(users)}): ").strip()
        if not choice:
            continue
        if choice in names:
            return choice
        if choice.isdigit() and 1 <= int(choice) <= len(users):
            return names[int(choice) - 1]
        print(f"{RED}User not found. Try again.{NC}")


def reset_password(engine: StorageEngine, repo: UserRepository, username: str, password: str) -> bool:
    """Store a new password for username. Returns False if the user does not exist."""
    with engine.transaction() as session:
        return repo.change_password(session, username, password)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Reset a user's password in the media store.",
        epilog="Run without arguments for interactive mode.",
    )
    parser.add_argument("--username", "-u", help="Username to reset")
    parser.add_argument("--password", "-p", help="New password (omit to be prompted)")
    parser.add_argument("--db-path", type=Path, help="Store file (defaults to SQLITE_DB_PATH)")
    args = parser.parse_args(argv)

    settings: StorageSettings = get_settings()
    if args.db_path:
        settings = settings.model_copy(update={"sqlite_db_path": args.db_path})
    configure_logging(settings.log_level)

    db_path = settings.sqlite_db_path
    if not db_path.exists():
        print(f"{RED}Error: Store not found at {db_path}{NC}", file=sys.stderr)
        print("Make sure the application has been started at least once.", file=sys.stderr)
        return 1

    engine = StorageEngine(settings)
    repo = UserRepository(settings.password_hash_rounds)
    try:
        engine.open()
        if args.username:
            username = args.username
        else:
            print(f"{BLUE}Media store password reset{NC}")
            print()
            username = choose_user(engine, repo)

        password = args.password or prompt_new_password(username)
        if not password:
            return 1

        if reset_password(engine, repo, username, password):
            print(f"{GREEN}Password for '{username}' has been reset successfully.{NC}")
            return 0
        print(f"{RED}Error: User '{username}' not found.{NC}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
