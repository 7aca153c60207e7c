#!/usr/bin/env python3
"""Delete expired legacy-mode sessions once.

Usage:
    python scripts/cleanup_sessions.py

Sessions are also swept on every authorization check; this is for deployments
that see long idle periods. Exits 0 on success, 1 on failure.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from share_server.db.session import utcnow
from share_server.scripts.set_admin import open_session
from share_server.services.session_store import cleanup_expired_sessions


def main() -> int:
    db = open_session()
    try:
        removed = cleanup_expired_sessions(db, utcnow())
        print(f"status=completed sessions_removed={removed}")
        return 0
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
