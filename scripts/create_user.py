import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from usergate.config import load_settings_from_env
from usergate.database import Database, StoreError, resolve_database_path
from usergate.users import InvalidUserError, UserService


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a usergate user")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Email address; must contain '@'")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to USERGATE_DB_PATH or data/usergate.sqlite3)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    db_env = args.db_path or os.getenv("USERGATE_DB_PATH")
    db_path = resolve_database_path(db_env)

    database = Database(db_path)
    database.initialize()
    users = UserService(database, load_settings_from_env())

    try:
        user = users.create_user(args.name.strip(), args.email.strip())
    except InvalidUserError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except StoreError as exc:
        print(f"Database error: {exc}", file=sys.stderr)
        return 2

    print(f"Created user {user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
