import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from panel.config import load_settings
from panel.database import Database, DuplicateEmailError
from panel.models import Role
from panel.passwords import PasswordHasher

MIN_PASSWORD_LENGTH = 8


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a CRUD panel account")
    parser.add_argument("name", help="Display name for the account")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.USER.value,
        help="Role granted to the account (default: user)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (defaults to PANEL_CONFIG)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < MIN_PASSWORD_LENGTH:
            print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    settings = load_settings(Path(args.config) if args.config else None)
    password = prompt_for_password()

    database = Database(
        settings.database_path,
        hasher=PasswordHasher(rounds=settings.password_rounds),
        timeout=settings.db_timeout,
    )
    database.initialize()

    try:
        account = database.create_account(args.name, args.email, password, role=Role(args.role))
    except DuplicateEmailError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created account {account.id}: {account.name or '<no name>'} <{account.email}> ({account.role.value})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
