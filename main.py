#!/usr/bin/env python3
"""
tokengate -- user authentication and session token service.

Usage:
  python main.py                       # serve on $HOST:$PORT (default 0.0.0.0:8080)
  python main.py --port 9000
  python main.py --reload              # dev auto-reload
  python main.py --purge               # delete expired refresh tokens and exit

Environment variables (see core/config.py for the full list):
  JWT_SECRET      Signing secret for access tokens (>= 32 chars). Required
                  unless DEBUG=true.
  STORE_BACKEND   memory, sqlite (default), or postgres.
  SQLITE_PATH     Database file for the sqlite backend (default data/app.db).
  DATABASE_URL    SQLAlchemy URL for the postgres backend.
"""

import argparse
import sys

import uvicorn

from auth.errors import StorageError
from auth.store import create_store
from core.config import get_settings


def _purge() -> int:
    """Run one expired-refresh-token purge against the configured store."""
    store = create_store(get_settings())
    try:
        removed = store.purge_expired_refresh()
    except StorageError:
        print("  [!] Credential store unavailable.", file=sys.stderr)
        return 1
    finally:
        store.close()
    print(f"  Purged {removed} expired refresh token(s).")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="tokengate",
        description="User authentication and access/refresh token service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --host 127.0.0.1 --port 9000
  STORE_BACKEND=memory DEBUG=true python main.py --reload
  python main.py --purge
        """,
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Interface to bind (default: HOST setting, 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: PORT setting, 8080)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change (development only)",
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        help="Delete expired refresh tokens from the configured store and exit",
    )
    args = parser.parse_args()

    if args.purge:
        sys.exit(_purge())

    settings = get_settings()
    uvicorn.run(
        "asgi:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
