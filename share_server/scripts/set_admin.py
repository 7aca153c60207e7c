"""Grant or revoke admin for an existing user.

Usage:
    python -m share_server.scripts.set_admin --sub <subject>
    python -m share_server.scripts.set_admin --sub <subject> --revoke

The user must have signed in at least once so that a user row exists.
"""

from __future__ import annotations

import argparse
import sys

from sqlalchemy.orm import Session

from share_server.config import get_settings
from share_server.db.session import create_db_engine, create_session_factory, utcnow
from share_server.services.errors import NotFoundError
from share_server.services.user_store import set_user_admin


def open_session() -> Session:
    engine = create_db_engine(get_settings())
    return create_session_factory(engine)()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Grant or revoke EDS share server admin")
    parser.add_argument("--sub", required=True, help="OIDC subject of the user")
    parser.add_argument("--revoke", action="store_true", help="Remove admin instead of granting it")
    args = parser.parse_args(argv)

    sub = args.sub.strip()
    if not sub:
        print("--sub must not be empty.", file=sys.stderr)
        sys.exit(2)

    db = open_session()
    try:
        set_user_admin(db, sub, not args.revoke, utcnow())
    except NotFoundError:
        print(f"User '{sub}' not found. They must sign in once first.")
        sys.exit(1)
    finally:
        db.close()
    state = "revoked" if args.revoke else "granted"
    print(f"Admin {state} for '{sub}'.")


if __name__ == "__main__":
    main()
